"""Registry of live websocket connections used for in-app pushes."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, DefaultDict, Protocol, Set

from anyio import from_thread

from clinic_notify.domain.entities import Identity, Notification

from .serialization import serialize_notification

logger = logging.getLogger(__name__)

_DEFAULT_SHARDS = 16


class PushConnection(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def role_key(role: str) -> str:
    return f"role:{role}"


class _Shard:
    __slots__ = ("lock", "connections")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.connections: DefaultDict[str, Set[PushConnection]] = defaultdict(set)


class PushRegistry:
    """Map user ids and roles to their live connections.

    Each connection is listed under ``user:<id>`` and ``role:<role>``. Keys are
    spread over independently locked shards, so connects and disconnects for
    different users do not contend. Emitting is fire-and-forget: sends are
    scheduled on the event loop and the call only reports how many connections
    were targeted.
    """

    def __init__(self, shards: int = _DEFAULT_SHARDS) -> None:
        self._shards = [_Shard() for _ in range(max(1, shards))]
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: Set[asyncio.Task] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        """Use ``loop`` for sends scheduled from threads without a running loop."""

        self._loop = loop

    def register(self, connection: PushConnection, identity: Identity) -> None:
        for key in self._keys(identity):
            shard = self._shard(key)
            with shard.lock:
                shard.connections[key].add(connection)

    def unregister(self, connection: PushConnection, identity: Identity) -> None:
        for key in self._keys(identity):
            self._discard(key, connection)

    def connections_for(self, key: str) -> list[PushConnection]:
        shard = self._shard(key)
        with shard.lock:
            return list(shard.connections.get(key, ()))

    def emit_to_user(self, user_id: str, notification: Notification) -> int:
        return self._emit(user_key(user_id), notification)

    def emit_to_role(self, role: str, notification: Notification) -> int:
        return self._emit(role_key(role), notification)

    async def send_to_key(self, key: str, message: dict[str, Any]) -> None:
        """Send ``message`` to every connection under ``key``, dropping dead ones."""

        for connection in self.connections_for(key):
            try:
                await connection.send_json(message)
            except Exception:  # noqa: BLE001 - a broken socket must not stop the fan-out
                logger.debug("Dropping unresponsive connection under %s", key)
                self._forget(connection)

    def _emit(self, key: str, notification: Notification) -> int:
        targets = len(self.connections_for(key))
        if not targets:
            return 0
        message = {"type": "notification", "data": serialize_notification(notification)}
        self._schedule(key, message)
        return targets

    def _schedule(self, key: str, message: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self._start_task(loop, key, message)
            return

        if self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._start_task, self._loop, key, message)
            return

        try:
            from_thread.run_sync(self._start_task_in_running_loop, key, message)
        except RuntimeError:
            logger.debug("No event loop available; push to %s skipped", key)

    def _start_task_in_running_loop(self, key: str, message: dict[str, Any]) -> None:
        self._start_task(asyncio.get_running_loop(), key, message)

    def _start_task(
        self, loop: asyncio.AbstractEventLoop, key: str, message: dict[str, Any]
    ) -> None:
        # The loop only keeps weak references to tasks.
        task = loop.create_task(self.send_to_key(key, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _forget(self, connection: PushConnection) -> None:
        for shard in self._shards:
            with shard.lock:
                for key in [k for k, conns in shard.connections.items() if connection in conns]:
                    shard.connections[key].discard(connection)
                    if not shard.connections[key]:
                        del shard.connections[key]

    def _discard(self, key: str, connection: PushConnection) -> None:
        shard = self._shard(key)
        with shard.lock:
            connections = shard.connections.get(key)
            if connections is None:
                return
            connections.discard(connection)
            if not connections:
                shard.connections.pop(key, None)

    def _shard(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    @staticmethod
    def _keys(identity: Identity) -> tuple[str, ...]:
        keys = [user_key(identity.user_id)]
        if identity.role:
            keys.append(role_key(identity.role))
        return tuple(keys)


__all__ = ["PushConnection", "PushRegistry", "role_key", "user_key"]
