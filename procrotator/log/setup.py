import logging
import sys

from procrotator.settings import APP_NAME


class MainFormatter(logging.Formatter):
    """Formats records as '<time> - <LEVEL> - [<logger>] - <message>'."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record):
        # Multi-line messages (config dumps, directory lists) keep their layout,
        # only surrounding whitespace is trimmed. A copy is formatted so other
        # handlers still see the original record.
        trimmed = logging.makeLogRecord(record.__dict__)
        trimmed.msg = str(record.msg).strip()
        return super().format(trimmed)


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for procrotator.
    Clears any previously configured handlers so calling this a second time
    (after the runtime config is known) replaces the bootstrap setup.

    Diagnostics go to stderr; the supervised server owns stdout.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(console_level)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    logging.getLogger(APP_NAME).debug(f"Logging configured at level {logging.getLevelName(console_level)}.")
