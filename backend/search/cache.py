"""
TTL + LRU cache for search pages.

Keys are a hash of the normalized request (tokens, filter, window, store
identity and store revision), so any catalog write makes older entries
unreachable; they then age out or get evicted.
"""
from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Any

_DEFAULT_TTL = 60  # seconds
_MAX_ENTRIES = 512

_cache: OrderedDict[str, tuple[float, Any]] = OrderedDict()
_lock = threading.Lock()
_stats = {"hits": 0, "misses": 0, "evictions": 0}


def _make_key(request_dict: dict) -> str:
    normalized = json.dumps(request_dict, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def cache_get(request_dict: dict, ttl: float = _DEFAULT_TTL) -> Any | None:
    key = _make_key(request_dict)
    with _lock:
        entry = _cache.get(key)
        if entry is not None:
            created_at, value = entry
            if time.time() - created_at < ttl:
                _cache.move_to_end(key)
                _stats["hits"] += 1
                return value
            del _cache[key]
        _stats["misses"] += 1
    return None


def cache_set(request_dict: dict, value: Any, max_entries: int = _MAX_ENTRIES) -> None:
    key = _make_key(request_dict)
    with _lock:
        _cache[key] = (time.time(), value)
        _cache.move_to_end(key)
        while len(_cache) > max_entries:
            _cache.popitem(last=False)
            _stats["evictions"] += 1


def get_cache_stats() -> dict:
    with _lock:
        lookups = _stats["hits"] + _stats["misses"]
        return {
            "size": len(_cache),
            **_stats,
            "hit_rate": round(_stats["hits"] / lookups * 100, 1) if lookups else 0.0,
        }


def clear_cache() -> None:
    with _lock:
        _cache.clear()
        for name in _stats:
            _stats[name] = 0
