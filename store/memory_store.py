# store/memory_store.py
from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from store import paths
from store.base import Increment, Listener, NotFound, Snapshot, Unsubscribe, WriteError

logger = logging.getLogger(__name__)


def _overlaps(a: List[str], b: List[str]) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class InMemoryStore:
    """
    Process-local SharedStore with the realtime database's semantics:
    - the whole tree is one nested dict; empty nodes do not exist
    - atomic_update builds the next tree off to the side and swaps it in,
      so readers see either none or all of an update
    - `latency` seconds are awaited before every read and write to let
      concurrent flows interleave the way they do over the network
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, latency: float = 0.0):
        self._root: Dict[str, Any] = copy.deepcopy(data) if data else {}
        self.latency = latency
        self.writes: List[Dict[str, Any]] = []   # applied updates, oldest first
        self._listeners: List[Tuple[List[str], Listener]] = []

    # ---------------------- internal utils -----------------------------------

    @staticmethod
    def _get(root: Dict[str, Any], parts: List[str]) -> Any:
        node: Any = root
        for p in parts:
            if not isinstance(node, dict) or p not in node:
                return None
            node = node[p]
        return node

    @staticmethod
    def _set(root: Dict[str, Any], parts: List[str], value: Any) -> None:
        if not parts:
            raise WriteError("cannot replace the root in a multi-path update")
        node = root
        trail = []
        for p in parts[:-1]:
            child = node.get(p)
            if not isinstance(child, dict):
                child = {}
                node[p] = child
            trail.append((node, p))
            node = child

        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = copy.deepcopy(value)

        # prune nodes left empty by a delete
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]

    def _resolve(self, root: Dict[str, Any], parts: List[str], value: Any) -> Any:
        if isinstance(value, Increment):
            current = self._get(root, parts)
            if current is None:
                current = 0
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                raise WriteError(f"cannot increment non-numeric value at {'/'.join(parts)}")
            return current + value.delta
        if isinstance(value, dict):
            return {k: self._resolve(root, parts + [k], v) for k, v in value.items() if v is not None}
        return value

    def _notify(self, changed: List[List[str]]) -> None:
        for parts, listener in list(self._listeners):
            if not any(_overlaps(parts, c) for c in changed):
                continue
            try:
                listener(Snapshot("/".join(parts), copy.deepcopy(self._get(self._root, parts))))
            except Exception:
                logger.exception("[STORE] listener failed for %s", "/".join(parts))

    # ------------------------- SharedStore -----------------------------------

    async def read(self, path: str) -> Snapshot:
        await asyncio.sleep(self.latency)
        value = self._get(self._root, paths.split(path))
        if value is None:
            raise NotFound(path)
        return Snapshot(path, copy.deepcopy(value))

    async def atomic_update(self, updates: Mapping[str, Any]) -> None:
        await asyncio.sleep(self.latency)
        if not updates:
            raise WriteError("empty update")

        split = {path: paths.split(path) for path in updates}
        keys = list(split.values())
        for i, a in enumerate(keys):
            if not all(paths.is_valid_key(k) for k in a):
                raise WriteError(f"invalid path {'/'.join(a)!r}")
            for b in keys[i + 1:]:
                if _overlaps(a, b):
                    raise WriteError(f"path {'/'.join(a)!r} overlaps {'/'.join(b)!r}")

        staged = copy.deepcopy(self._root)
        for path, value in updates.items():
            self._set(staged, split[path], self._resolve(staged, split[path], value))

        self._root = staged
        self.writes.append(dict(updates))
        logger.debug("[STORE] applied %d paths", len(updates))
        self._notify(keys)

    def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        entry = (paths.split(path), listener)
        self._listeners.append(entry)
        listener(Snapshot(path, copy.deepcopy(self._get(self._root, entry[0]))))

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    # ------------------------------ test helpers -----------------------------

    def dump(self) -> Dict[str, Any]:
        return copy.deepcopy(self._root)
