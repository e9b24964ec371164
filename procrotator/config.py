import os
import re
import signal
import logging
import argparse
import tomllib
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from procrotator import settings
from procrotator.log import LogLevel, all_level_names

log = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the runtime configuration cannot be built."""


@dataclass(frozen=True)
class RuntimeConfig:
    """
    The complete, validated configuration for one procrotator run.

    Built once at startup by `build_runtime_config` and never mutated after,
    so it can be read from every worker thread without locking.
    """
    server_command: str
    preamble_commands: Tuple[str, ...] = ()
    include_file_regexes: Tuple[Pattern, ...] = ()
    exclude_file_regexes: Tuple[Pattern, ...] = ()
    quit_signal: signal.Signals = settings.DEFAULT_QUIT_SIGNAL
    working_directory: str = ""
    log_level: LogLevel = LogLevel[settings.DEFAULT_LOG_LEVEL]
    min_restart_interval: float = settings.MIN_RESTART_INTERVAL

    def __str__(self) -> str:
        preamble = [f"'{c}'" for c in self.preamble_commands]
        includes = [f"'{r.pattern}'" for r in self.include_file_regexes]
        excludes = [f"'{r.pattern}'" for r in self.exclude_file_regexes]
        return (
            "Config:\n"
            f"  Working directory: {self.working_directory}\n"
            f"  Log level: {self.log_level.name}\n"
            f"  Server command: {self.server_command}\n"
            f"  Preamble commands: {preamble}\n"
            f"  Include file regexes: {includes}\n"
            f"  Exclude file regexes: {excludes}\n"
            f"  Quit signal: {self.quit_signal.name}\n"
            f"  Minimum restart interval: {self.min_restart_interval}s"
        )


#* --- Value Parsing ---
def _directory(value: str) -> str:
    """argparse type: an existing directory, returned as an absolute path."""
    path = os.path.abspath(value)
    if not os.path.exists(path):
        raise argparse.ArgumentTypeError(f"obtaining file information for {path}: no such file or directory")
    if not os.path.isdir(path):
        raise argparse.ArgumentTypeError(f"{path} is not a directory")
    return path


def _regex(value: str) -> Pattern:
    """argparse type: a compiled regular expression."""
    try:
        return re.compile(value)
    except re.error as e:
        raise argparse.ArgumentTypeError(f"invalid regular expression '{value}': {e}")


def _log_level(value: str) -> LogLevel:
    """argparse type: one of the supported log level names."""
    try:
        return LogLevel.from_name(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_quit_signal(value: str) -> signal.Signals:
    """
    Translates a quit signal name into a signal.

    :param value: 'SIGINT', 'SIGTERM' or an empty string for the default.
    :return signal.Signals: The matching signal.
    :raises ValueError: If the name is not supported.
    """
    if value == "":
        return settings.DEFAULT_QUIT_SIGNAL
    if value not in settings.SUPPORTED_QUIT_SIGNALS:
        raise ValueError(f"quit_signal value not supported: {value}")
    return settings.SUPPORTED_QUIT_SIGNALS[value]


def _quit_signal(value: str) -> signal.Signals:
    """argparse type wrapper around parse_quit_signal."""
    try:
        return parse_quit_signal(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _non_negative_seconds(value: str) -> float:
    """argparse type: a non-negative number of seconds."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number of seconds (got {value})")
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative number of seconds (got {value})")
    return seconds


#* --- Command Line ---
def build_arg_parser() -> argparse.ArgumentParser:
    """
    Builds the command line parser.
    Long options use a single dash, with the short letter as an alias.
    Nothing has a default here: `None` means the flag was not supplied, so
    file values can fill the gap.
    """
    parser = argparse.ArgumentParser(
        prog=settings.APP_NAME,
        description="Restart a server process whenever watched files change.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "-directory", "-d", dest="directory", type=_directory,
        help="The working directory where files will be watched and commands executed",
    )
    parser.add_argument(
        "-errorloglevel", "-l", dest="log_level", type=_log_level,
        help=f"The log level for stderr. Expected values: {', '.join(all_level_names())}. The default is INFO.",
    )
    parser.add_argument(
        "-servercommand", "-s", dest="server_command",
        help="The command to run the rotated server process",
    )
    parser.add_argument(
        "-includefileregexes", "-i", dest="include_file_regexes", type=_regex, action="append",
        help="A regular expression matching files to observe. May be specified multiple times.",
    )
    parser.add_argument(
        "-excludefileregexes", "-e", dest="exclude_file_regexes", type=_regex, action="append",
        help="A regular expression matching files to exclude from observation. May be specified multiple times.",
    )
    parser.add_argument(
        "-preamblecommand", "-p", dest="preamble_commands", action="append",
        help="A command to execute before the server command. May be specified multiple times.",
    )
    parser.add_argument(
        "-quitsignal", "-q", dest="quit_signal", type=_quit_signal,
        help="The signal sent to the server process group to stop it (SIGINT or SIGTERM). The default is SIGINT.",
    )
    parser.add_argument(
        "-minrestartinterval", "-r", dest="min_restart_interval", type=_non_negative_seconds,
        help=f"Minimum number of seconds between two restarts. The default is {settings.MIN_RESTART_INTERVAL:g}.",
    )
    return parser


#* --- Config File ---
def find_config_file(directory: str) -> Optional[Path]:
    """Returns the first config file found in the directory, if any."""
    for name in settings.CONFIG_FILE_NAMES:
        candidate = Path(directory) / name
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Reads and parses a TOML config file.

    :param path: The config file path.
    :return dict: The parsed table.
    :raises ConfigError: If the file cannot be read or is not valid TOML.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"reading config file {path}: {e}") from e


def _string_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"config file field '{key}' must be a list of strings")
    return value


def _string(data: Dict[str, Any], key: str) -> str:
    value = data.get(key, "")
    if not isinstance(value, str):
        raise ConfigError(f"config file field '{key}' must be a string")
    return value


def _compile_all(expressions: Sequence[str], kind: str) -> Tuple[Pattern, ...]:
    compiled = []
    for expression in expressions:
        try:
            compiled.append(re.compile(expression))
        except re.error as e:
            raise ConfigError(f"parsing {kind} file expressions: '{expression}': {e}") from e
    return tuple(compiled)


def values_from_file(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validates a parsed config file and converts it into RuntimeConfig fields.
    Only keys present in the file are returned.

    :param data: The parsed TOML table.
    :return dict: RuntimeConfig keyword arguments.
    :raises ConfigError: If any value has the wrong type or is invalid.
    """
    values: Dict[str, Any] = {}
    if "include_file_regexes" in data:
        values["include_file_regexes"] = _compile_all(_string_list(data, "include_file_regexes"), "include")
    if "exclude_file_regexes" in data:
        values["exclude_file_regexes"] = _compile_all(_string_list(data, "exclude_file_regexes"), "exclude")
    if "preamble_commands" in data:
        values["preamble_commands"] = tuple(_string_list(data, "preamble_commands"))
    if "server_command" in data:
        values["server_command"] = _string(data, "server_command")
    if "quit_signal" in data:
        try:
            values["quit_signal"] = parse_quit_signal(_string(data, "quit_signal"))
        except ValueError as e:
            raise ConfigError(str(e)) from e
    if "log_level" in data:
        level_name = _string(data, "log_level")
        if level_name:
            try:
                values["log_level"] = LogLevel.from_name(level_name)
            except ValueError as e:
                raise ConfigError(f"config file specifies unexpected log level: {level_name}") from e
    if "min_restart_interval" in data:
        interval = data["min_restart_interval"]
        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
            raise ConfigError("config file field 'min_restart_interval' must be a non-negative number")
        values["min_restart_interval"] = float(interval)
    return values


def values_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Returns the RuntimeConfig fields for every flag that was explicitly supplied."""
    values: Dict[str, Any] = {}
    if args.server_command:
        values["server_command"] = args.server_command
    if args.preamble_commands:
        values["preamble_commands"] = tuple(args.preamble_commands)
    if args.include_file_regexes:
        values["include_file_regexes"] = tuple(args.include_file_regexes)
    if args.exclude_file_regexes:
        values["exclude_file_regexes"] = tuple(args.exclude_file_regexes)
    if args.log_level is not None:
        values["log_level"] = args.log_level
    if args.quit_signal is not None:
        values["quit_signal"] = args.quit_signal
    if args.min_restart_interval is not None:
        values["min_restart_interval"] = args.min_restart_interval
    return values


def build_runtime_config(argv: Optional[Sequence[str]] = None) -> RuntimeConfig:
    """
    Builds the runtime configuration from command line flags and the config file.

    The working directory (from `-d`, else the current directory) is resolved
    first because it holds the config file. File values form the base and any
    explicitly supplied flag replaces the corresponding file value.

    :param argv: Command line arguments without the program name. Defaults to sys.argv[1:].
    :return RuntimeConfig: The validated configuration.
    :raises ConfigError: If the config file is unusable or required values are missing.
    :raises SystemExit: If the command line itself is invalid (argparse reports it).
    """
    args = build_arg_parser().parse_args(argv)
    working_directory = args.directory or os.getcwd()

    merged: Dict[str, Any] = {}
    config_path = find_config_file(working_directory)
    if config_path is not None:
        log.debug(f"Loading configuration from {config_path}")
        merged.update(values_from_file(read_config_file(config_path)))
    merged.update(values_from_args(args))

    if not merged.get("server_command"):
        raise ConfigError("server command required")
    if not merged.get("include_file_regexes"):
        raise ConfigError("at least one include file regex is required")

    return RuntimeConfig(working_directory=working_directory, **merged)
