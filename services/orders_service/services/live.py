"""Live-connection directory: which user currently has an open socket.

The directory only mirrors durable notifications; a missing or broken
connection never loses data because the ``Notification`` row is written first.
"""

import asyncio
from typing import Any, Optional, Protocol

from libs.common.logging import get_logger

logger = get_logger(__name__)


class ConnectionDirectory(Protocol):
    def register(self, user_id: str, handle: Any) -> None: ...

    def lookup(self, user_id: str) -> Optional[Any]: ...

    def unregister(self, user_id: str, handle: Any = None) -> None: ...


class InMemoryConnectionDirectory:
    """Single-process directory keyed by user id.

    The latest connection for a user wins. ``unregister`` with a handle only
    removes the entry if it is still that handle, so a stale socket closing
    does not drop a newer one.
    """

    def __init__(self):
        self._handles: dict[str, Any] = {}

    def register(self, user_id: str, handle: Any) -> None:
        self._handles[user_id] = handle
        logger.debug("Live connection registered for %s", user_id)

    def lookup(self, user_id: str) -> Optional[Any]:
        return self._handles.get(user_id)

    def unregister(self, user_id: str, handle: Any = None) -> None:
        current = self._handles.get(user_id)
        if current is None:
            return
        if handle is not None and current is not handle:
            return
        del self._handles[user_id]
        logger.debug("Live connection removed for %s", user_id)

    def __len__(self) -> int:
        return len(self._handles)


async def push_event(directory: ConnectionDirectory, user_id: str, event: str, data: dict):
    """Send ``{"event", "data"}`` to the user's socket if one is open.

    Returns True when a message was handed to a connection. Send failures
    propagate to the caller, which decides how to log them.
    """
    handle = directory.lookup(user_id)
    if handle is None:
        return False
    message = {"event": event, "data": data}
    result = handle.send_json(message)
    if asyncio.iscoroutine(result):
        await result
    return True
