from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, NewType, Optional, Protocol

from cachetools import TTLCache

ClientIdentity = NewType("ClientIdentity", str)


@dataclass(frozen=True)
class ClientSession:
    """
    last_offset: last byte index delivered by a completed transfer (0 if none)
    completed: whether any transfer for this identity has completed
    """
    identity: ClientIdentity
    last_offset: int = 0
    completed: bool = False

    @property
    def resume_offset(self) -> int:
        """First byte a sequential reader would ask for next."""
        return self.last_offset + 1 if self.completed else self.last_offset


def identify(
    *,
    authorization: Optional[str] = None,
    signed_token: Optional[str] = None,
    host: Optional[str] = None,
) -> ClientIdentity:
    """
    Derive a stable client key: hash of the Authorization header when present,
    else of the signed query token, else of the network origin.
    """
    if authorization:
        material = authorization
    elif signed_token:
        material = f"st:{signed_token}"
    else:
        material = host or "unknown"
    return ClientIdentity(hashlib.sha256(material.encode("utf-8")).hexdigest())


class SessionStore(Protocol):
    def get(self, identity: ClientIdentity) -> ClientSession:
        ...

    def record_completion(self, identity: ClientIdentity, end_offset: int) -> None:
        ...

    def __len__(self) -> int:
        ...


class InMemorySessionStore:
    """
    Unbounded identity -> last served offset map for the life of the process.

    Mutated only from event-loop callbacks, so no lock is needed.
    """

    def __init__(self) -> None:
        self._offsets: Dict[ClientIdentity, int] = {}

    def get(self, identity: ClientIdentity) -> ClientSession:
        offset = self._offsets.get(identity)
        if offset is None:
            return ClientSession(identity)
        return ClientSession(identity, offset, completed=True)

    def record_completion(self, identity: ClientIdentity, end_offset: int) -> None:
        self._offsets[identity] = end_offset

    def __len__(self) -> int:
        return len(self._offsets)


class LruSessionStore:
    """
    Bounded store: keeps at most `max_clients` identities, dropping the least
    recently used first, and forgets any identity whose last completed transfer
    is older than `ttl_seconds`. Forgotten identities read as offset 0.
    """

    def __init__(
        self,
        *,
        max_clients: int = 10_000,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_clients <= 0:
            raise ValueError("max_clients must be positive")
        self.max_clients = max_clients
        self.ttl_seconds = ttl_seconds
        self._offsets: TTLCache[ClientIdentity, int] = TTLCache(
            maxsize=max_clients, ttl=ttl_seconds, timer=clock
        )

    def get(self, identity: ClientIdentity) -> ClientSession:
        offset = self._offsets.get(identity)
        if offset is None:
            return ClientSession(identity)
        return ClientSession(identity, offset, completed=True)

    def record_completion(self, identity: ClientIdentity, end_offset: int) -> None:
        self._offsets[identity] = end_offset

    def __len__(self) -> int:
        self._offsets.expire()
        return len(self._offsets)
