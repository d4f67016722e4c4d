# store/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol


class StoreError(Exception):
    pass


class NotFound(StoreError):
    def __init__(self, path: str):
        super().__init__(f"nothing stored at {path!r}")
        self.path = path


class WriteError(StoreError):
    pass


@dataclass(frozen=True)
class Increment:
    """Store-side atomic increment, usable as a value inside atomic_update."""
    delta: int = 1


@dataclass(frozen=True)
class Snapshot:
    path: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.value) if isinstance(self.value, dict) else {}


Listener = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]


class SharedStore(Protocol):
    """
    Tree-structured realtime key-value store.
    - read(): one snapshot of a subtree, raises NotFound when nothing is stored.
    - atomic_update(): all listed paths are applied as one unit or not at all.
      A None value deletes the path, Increment(n) adds n on the store side.
    - subscribe(): listener gets the subtree snapshot now and after each change.
    """

    async def read(self, path: str) -> Snapshot: ...

    async def atomic_update(self, updates: Mapping[str, Any]) -> None: ...

    def subscribe(self, path: str, listener: Listener) -> Unsubscribe: ...


async def read_or_none(store: SharedStore, path: str) -> Optional[Snapshot]:
    try:
        return await store.read(path)
    except NotFound:
        return None
