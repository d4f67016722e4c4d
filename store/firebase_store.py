# store/firebase_store.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from firebase_admin import db as rtdb
from firebase_admin.exceptions import FirebaseError

from store.base import Increment, Listener, NotFound, Snapshot, StoreError, Unsubscribe, WriteError

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    if isinstance(value, Increment):
        return {".sv": {"increment": value.delta}}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


def encode_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Multi-path PATCH body for the realtime database, with server values inlined."""
    return {path.strip("/"): _encode(value) for path, value in updates.items()}


class FirebaseStore:
    """
    SharedStore backed by the Firebase Realtime Database.
    The admin SDK is blocking, so every call runs in a worker thread.
    """

    def __init__(self, reference: Optional[Callable[[str], rtdb.Reference]] = None):
        if reference is None:
            from db.base import reference
        self._ref = reference

    async def read(self, path: str) -> Snapshot:
        try:
            value = await asyncio.to_thread(lambda: self._ref(path).get())
        except FirebaseError as e:
            logger.warning("[FIREBASE] read failed for %s: %s", path, e)
            raise StoreError(str(e)) from e
        if value is None:
            raise NotFound(path)
        return Snapshot(path, value)

    async def atomic_update(self, updates: Mapping[str, Any]) -> None:
        body = encode_updates(updates)
        try:
            # a PATCH on the root is applied by the server as a single transaction
            await asyncio.to_thread(lambda: self._ref("/").update(body))
        except (FirebaseError, ValueError) as e:
            logger.warning("[FIREBASE] update of %d paths failed: %s", len(body), e)
            raise WriteError(str(e)) from e

    def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        ref = self._ref(path)

        def on_event(_event) -> None:
            # runs on the SDK's listener thread: re-read the full subtree, hand it to the loop
            try:
                value = ref.get()
            except FirebaseError:
                logger.exception("[FIREBASE] refresh failed for %s", path)
                return
            loop.call_soon_threadsafe(listener, Snapshot(path, value))

        registration = ref.listen(on_event)
        return registration.close
