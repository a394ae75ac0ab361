"""
Connection pool for downstream servers.

One pooled resource per server id, reused across calls and closed once it
has been idle longer than ``idle_timeout``. The pool is an ordinary object
owned by its executor; the clock and timeout are injected so tests can run
the expiry logic without sleeping.

Stale entries are swept lazily on every acquire, or explicitly via sweep().
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from shepgate.schema import Server

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_IDLE_TIMEOUT_SECONDS = 5 * 60


@dataclass
class _Entry(Generic[T]):
    resource: T
    last_used: float


class ConnectionPool(Generic[T]):
    """
    Keyed pool of reusable connections.

    Args:
        factory: Opens a new connection for a server
        closer: Closes a connection
        idle_timeout: Seconds of inactivity after which a connection is closed
        clock: Monotonic time source
    """

    def __init__(
        self,
        factory: Callable[[Server], T],
        closer: Callable[[T], None],
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if idle_timeout <= 0:
            msg = "idle_timeout must be positive"
            raise ValueError(msg)
        self._factory = factory
        self._closer = closer
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}
        self._lock = threading.Lock()

    def acquire(self, server: Server) -> T:
        """Return the pooled connection for a server, opening one if needed."""
        self.sweep()
        with self._lock:
            entry = self._entries.get(server.id)
            if entry is not None:
                entry.last_used = self._clock()
                return entry.resource
            resource = self._factory(server)
            self._entries[server.id] = _Entry(resource=resource, last_used=self._clock())
            logger.debug("Opened connection to server %s", server.id)
            return resource

    def close(self, server_id: str) -> bool:
        """Close and forget the connection of one server."""
        with self._lock:
            entry = self._entries.pop(server_id, None)
        if entry is None:
            return False
        self._close_quietly(server_id, entry.resource)
        return True

    def close_all(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            entries = list(self._entries.items())
            self._entries.clear()
        for server_id, entry in entries:
            self._close_quietly(server_id, entry.resource)

    def sweep(self) -> list[str]:
        """
        Close connections idle for longer than ``idle_timeout``.

        Returns:
            IDs of the servers whose connection was closed
        """
        now = self._clock()
        with self._lock:
            stale = [
                server_id
                for server_id, entry in self._entries.items()
                if now - entry.last_used > self.idle_timeout
            ]
            entries = [(server_id, self._entries.pop(server_id)) for server_id in stale]
        for server_id, entry in entries:
            logger.info("Closing stale connection to server %s", server_id)
            self._close_quietly(server_id, entry.resource)
        return stale

    def status(self) -> list[tuple[str, float]]:
        """(server_id, idle seconds) for every pooled connection."""
        now = self._clock()
        with self._lock:
            return [(server_id, now - entry.last_used) for server_id, entry in self._entries.items()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, server_id: object) -> bool:
        with self._lock:
            return server_id in self._entries

    def _close_quietly(self, server_id: str, resource: T) -> None:
        try:
            self._closer(resource)
        except Exception as e:
            logger.warning("Error closing connection to server %s: %s", server_id, e)
