"""Image cache collaborator.

The pipeline only sees the ``ImageCache`` protocol; callers inject whatever
backs it. ``MemoryImageCache`` is the in-process implementation used by the
CLI and tests.
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol


class ImageCache(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, value: bytes, ttl: float) -> None: ...


@dataclass
class CacheEntry:
    value: bytes
    expires_at: float


class MemoryImageCache:
    """Thread-safe dict of byte payloads with per-entry expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value: bytes, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(value=bytes(value), expires_at=self._clock() + float(ttl))

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def cache_key(image_bytes: bytes, prompt: str) -> str:
    """Content hash of the source image plus the prompt that transformed it."""
    h = hashlib.sha256()
    h.update(image_bytes)
    h.update(b"\x00")
    h.update(prompt.encode("utf-8"))
    return h.hexdigest()
