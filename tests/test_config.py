import re
import signal

import pytest

from procrotator.config import ConfigError, RuntimeConfig, build_runtime_config
from procrotator.log import LogLevel

DEFAULT_CONFIG_FILE = """
include_file_regexes = ["\\\\.foo$", "\\\\.bar$"]
exclude_file_regexes = ["ignore\\\\.foo$"]
preamble_commands = ["some command"]
server_command = "./some-app"
quit_signal = "SIGTERM"
log_level = "DEBUG"
min_restart_interval = 2
"""

MINIMAL_CONFIG_FILE = """
include_file_regexes = ["\\\\.foo$"]
server_command = "./some-app"
"""

ALL_FLAGS = [
    "-s", "./some-other-app",
    "-p", "preamble foo",
    "-p", "preamble bar",
    "-i", "\\.baz$",
    "-i", "\\.quux$",
    "-e", "ignore\\.baz$",
    "-e", "ignore\\.quux$",
    "-l", "ERROR",
    "-q", "SIGINT",
    "-r", "0.5",
]


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write(directory, content, name=".procrotator.toml"):
    (directory / name).write_text(content)


def test_all_settings_from_config_file(project_dir):
    _write(project_dir, DEFAULT_CONFIG_FILE)

    config = build_runtime_config([])

    assert config.server_command == "./some-app"
    assert config.preamble_commands == ("some command",)
    assert config.quit_signal == signal.SIGTERM
    assert [r.pattern for r in config.include_file_regexes] == [r"\.foo$", r"\.bar$"]
    assert [r.pattern for r in config.exclude_file_regexes] == [r"ignore\.foo$"]
    assert config.log_level is LogLevel.DEBUG
    assert config.min_restart_interval == 2.0
    assert config.working_directory == str(project_dir)


def test_command_line_overrides_config_file(project_dir):
    _write(project_dir, DEFAULT_CONFIG_FILE)

    config = build_runtime_config(ALL_FLAGS)

    assert config.server_command == "./some-other-app"
    assert config.preamble_commands == ("preamble foo", "preamble bar")
    assert [r.pattern for r in config.include_file_regexes] == [r"\.baz$", r"\.quux$"]
    assert [r.pattern for r in config.exclude_file_regexes] == [r"ignore\.baz$", r"ignore\.quux$"]
    assert config.log_level is LogLevel.ERROR
    assert config.quit_signal == signal.SIGINT
    assert config.min_restart_interval == 0.5


def test_overriding_every_field_equals_flags_alone(tmp_path, monkeypatch):
    with_file = tmp_path / "with_file"
    without_file = tmp_path / "without_file"
    with_file.mkdir()
    without_file.mkdir()
    _write(with_file, DEFAULT_CONFIG_FILE)

    from_file_and_flags = build_runtime_config(["-d", str(with_file)] + ALL_FLAGS)
    from_flags = build_runtime_config(["-d", str(without_file)] + ALL_FLAGS)

    assert from_file_and_flags == RuntimeConfig(
        **{**from_flags.__dict__, "working_directory": str(with_file)}
    )


def test_long_flag_names(project_dir):
    config = build_runtime_config([
        "-servercommand", "./app",
        "-includefileregexes", "\\.py$",
        "-excludefileregexes", "test_",
        "-preamblecommand", "make",
        "-errorloglevel", "NOTICE",
        "-quitsignal", "SIGTERM",
        "-minrestartinterval", "1",
    ])
    assert config.server_command == "./app"
    assert config.include_file_regexes == (re.compile(r"\.py$"),)
    assert config.exclude_file_regexes == (re.compile("test_"),)
    assert config.preamble_commands == ("make",)
    assert config.log_level is LogLevel.NOTICE
    assert config.quit_signal == signal.SIGTERM
    assert config.min_restart_interval == 1.0


def test_defaults(project_dir):
    _write(project_dir, MINIMAL_CONFIG_FILE)

    config = build_runtime_config([])

    assert config.log_level is LogLevel.INFO
    assert config.quit_signal == signal.SIGINT
    assert config.min_restart_interval == 5.0
    assert config.preamble_commands == ()
    assert config.exclude_file_regexes == ()


def test_specify_directory(tmp_path):
    _write(tmp_path, MINIMAL_CONFIG_FILE)

    config = build_runtime_config(["-d", str(tmp_path)])

    assert config.server_command == "./some-app"
    assert config.working_directory == str(tmp_path)


def test_second_config_file_name_is_found(project_dir):
    _write(project_dir, MINIMAL_CONFIG_FILE, name="procrotator.toml")
    assert build_runtime_config([]).server_command == "./some-app"


def test_hidden_config_file_takes_precedence(project_dir):
    _write(project_dir, MINIMAL_CONFIG_FILE, name="procrotator.toml")
    _write(project_dir, MINIMAL_CONFIG_FILE.replace("./some-app", "./hidden-app"))
    assert build_runtime_config([]).server_command == "./hidden-app"


def test_flags_only_without_config_file(project_dir):
    config = build_runtime_config(["-s", "./app", "-i", "\\.go$"])
    assert config.server_command == "./app"
    assert config.log_level is LogLevel.INFO


def test_file_values_fill_gaps_left_by_flags(project_dir):
    _write(project_dir, DEFAULT_CONFIG_FILE)

    config = build_runtime_config(["-s", "./other"])

    assert config.server_command == "./other"
    assert config.preamble_commands == ("some command",)
    assert config.log_level is LogLevel.DEBUG


#* --- Errors ---
def test_missing_server_command_is_fatal(project_dir):
    with pytest.raises(ConfigError, match="server command required"):
        build_runtime_config(["-i", "\\.foo$"])


def test_missing_include_regexes_is_fatal(project_dir):
    with pytest.raises(ConfigError, match="include file regex"):
        build_runtime_config(["-s", "./app"])


def test_unsupported_quit_signal_in_file(project_dir):
    _write(project_dir, MINIMAL_CONFIG_FILE + 'quit_signal = "SIGKILL"\n')
    with pytest.raises(ConfigError, match="quit_signal value not supported: SIGKILL"):
        build_runtime_config([])


def test_unexpected_log_level_in_file(project_dir):
    _write(project_dir, MINIMAL_CONFIG_FILE + 'log_level = "VERBOSE"\n')
    with pytest.raises(ConfigError, match="unexpected log level: VERBOSE"):
        build_runtime_config([])


def test_malformed_config_file(project_dir):
    _write(project_dir, "server_command = \n")
    with pytest.raises(ConfigError, match="reading config file"):
        build_runtime_config([])


def test_invalid_regex_in_config_file(project_dir):
    _write(project_dir, 'server_command = "./app"\ninclude_file_regexes = ["("]\n')
    with pytest.raises(ConfigError, match="parsing include file expressions"):
        build_runtime_config([])


def test_wrong_value_type_in_config_file(project_dir):
    _write(project_dir, 'server_command = "./app"\ninclude_file_regexes = "\\\\.foo$"\n')
    with pytest.raises(ConfigError, match="must be a list of strings"):
        build_runtime_config([])


def test_invalid_regex_flag_exits(project_dir):
    with pytest.raises(SystemExit) as excinfo:
        build_runtime_config(["-s", "./app", "-i", "("])
    assert excinfo.value.code == 2


def test_directory_flag_must_be_a_directory(tmp_path):
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("")
    with pytest.raises(SystemExit):
        build_runtime_config(["-d", str(not_a_dir)])


def test_invalid_log_level_flag_exits(project_dir):
    with pytest.raises(SystemExit):
        build_runtime_config(["-s", "./app", "-i", "x", "-l", "LOUD"])


def test_str_summarizes_config(project_dir):
    _write(project_dir, DEFAULT_CONFIG_FILE)
    text = str(build_runtime_config([]))
    assert "Server command: ./some-app" in text
    assert "Log level: DEBUG" in text
    assert "Quit signal: SIGTERM" in text
