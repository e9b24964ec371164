import enum
import logging
from typing import List

NOTICE_LEVEL = 25
logging.addLevelName(NOTICE_LEVEL, "NOTICE")


class LogLevel(enum.IntEnum):
    """The log levels accepted on the command line and in the config file."""
    NOTSET = logging.NOTSET
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    NOTICE = NOTICE_LEVEL
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """
        Looks up a level by its exact upper-case name.

        :param name: The level name, e.g. 'DEBUG'.
        :return LogLevel: The matching level.
        :raises ValueError: If the name is not one of the supported levels.
        """
        try:
            return cls[name]
        except KeyError:
            raise ValueError(
                f"invalid log level. expected one of: {', '.join(all_level_names())} (got {name})"
            ) from None


def all_level_names() -> List[str]:
    """Returns every supported level name, lowest first."""
    return [level.name for level in LogLevel]
