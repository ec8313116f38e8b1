"""Event messages fed into the refresh coordinator's queue."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class WatchChange(str, Enum):
    WRITE = "write"
    RENAME = "rename"
    DELETE = "delete"


@dataclass(frozen=True)
class WatchEvent:
    """A filesystem change on a watched control-directory file."""

    change: WatchChange
    path: str

    @property
    def replaces_file(self) -> bool:
        return self.change in (WatchChange.RENAME, WatchChange.DELETE)


@dataclass(frozen=True)
class PollTick:
    pass


@dataclass(frozen=True)
class RefreshRequested:
    force: bool = False


SessionEvent = Union[WatchEvent, PollTick, RefreshRequested]
