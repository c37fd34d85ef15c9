"""
In-process TTL cache for decoded item documents.

Keys are request URLs; values are the decoded JSON payloads. Entries
expire after their TTL and the least recently used entry is evicted once
the cache is full.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

DOCUMENT_CACHE_CAPACITY = 512
DOCUMENT_CACHE_DEFAULT_TTL = 900.0  # 15 minutes


class _DocumentCache:
    def __init__(self, capacity: int, default_ttl: float):
        self._cap = max(1, capacity)
        self._ttl = max(1.0, default_ttl)
        self._lock = threading.RLock()
        # url -> (document, expires_at_monotonic)
        self._docs: OrderedDict[str, Tuple[Any, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def _drop_expired(self, now: float) -> None:
        for key in [k for k, (_, exp) in self._docs.items() if exp <= now]:
            del self._docs[key]

    def get(self, url: str) -> Optional[Any]:
        with self._lock:
            entry = self._docs.get(url)
            if entry is None or entry[1] <= time.monotonic():
                self._docs.pop(url, None)
                self.misses += 1
                return None
            self._docs.move_to_end(url)
            self.hits += 1
            return entry[0]

    def put(self, url: str, document: Any, ttl: Optional[float] = None) -> None:
        now = time.monotonic()
        lifetime = self._ttl if ttl is None else max(1.0, ttl)
        with self._lock:
            self._drop_expired(now)
            self._docs[url] = (document, now + lifetime)
            self._docs.move_to_end(url)
            while len(self._docs) > self._cap:
                self._docs.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._docs.clear()
            self.hits = self.misses = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._docs), "hits": self.hits, "misses": self.misses}


_documents = _DocumentCache(DOCUMENT_CACHE_CAPACITY, DOCUMENT_CACHE_DEFAULT_TTL)


def cache_get(url: str) -> Optional[Any]:
    return _documents.get(url)


def cache_set(url: str, document: Any, ttl: Optional[float] = None) -> None:
    _documents.put(url, document, ttl=ttl)


def cache_clear() -> None:
    _documents.clear()


def cache_stats() -> Dict[str, int]:
    return _documents.stats()
