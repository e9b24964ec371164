import enum
from dataclasses import dataclass
from typing import FrozenSet


class OpKind(enum.Enum):
    """The kinds of filesystem operation a raw notification can carry."""
    CHMOD = "CHMOD"
    CREATE = "CREATE"
    REMOVE = "REMOVE"
    RENAME = "RENAME"
    WRITE = "WRITE"


# Chmod-only notifications never cause a restart.
REPORTABLE_OPS: FrozenSet[OpKind] = frozenset({OpKind.CREATE, OpKind.REMOVE, OpKind.RENAME, OpKind.WRITE})


@dataclass(frozen=True)
class RawNotification:
    """A notification as delivered by the filesystem watcher."""
    path: str
    operations: FrozenSet[OpKind]

    def is_reportable(self) -> bool:
        return not self.operations.isdisjoint(REPORTABLE_OPS)


@dataclass(frozen=True)
class ChangeEvent:
    """A file change that passed every filter and should trigger a restart."""
    path: str
