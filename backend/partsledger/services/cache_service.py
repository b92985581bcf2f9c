# Overview: In-process cache for derived read views (stock lists, reports).

"""
Derived views are recomputed from the ledger and invoice tables on read.
Hot ones are memoized here for READ_CACHE_TTL_SECONDS and dropped by
namespace after every committed write, never before the commit.

Each namespace carries a generation counter bumped by invalidate(). A value
computed while its namespace was invalidated is returned to that caller but
never stored, so a read racing a commit cannot re-seed the cache with
pre-commit data.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Any, Callable, Hashable

from flask import current_app

INVOICES = "invoices"
STOCK = "stock"
REPORTS = "reports"
ALL_NAMESPACES = (INVOICES, STOCK, REPORTS)

_lock = threading.Lock()
_entries: dict[tuple[str, Hashable], tuple[float, Any]] = {}
_generations: dict[str, int] = defaultdict(int)


def _ttl() -> int:
    return int(current_app.config.get("READ_CACHE_TTL_SECONDS", 0))


def cached(namespace: str, key: Hashable, compute: Callable[[], Any]) -> Any:
    ttl = _ttl()
    if ttl <= 0:
        return compute()

    now = time.monotonic()
    with _lock:
        hit = _entries.get((namespace, key))
        if hit is not None and hit[0] > now:
            return hit[1]
        generation = _generations[namespace]

    value = compute()
    with _lock:
        if _generations[namespace] == generation:
            _entries[(namespace, key)] = (now + ttl, value)
    return value


def invalidate(*namespaces: str) -> None:
    targets = set(namespaces or ALL_NAMESPACES)
    with _lock:
        for namespace in targets:
            _generations[namespace] += 1
        for entry_key in [k for k in _entries if k[0] in targets]:
            del _entries[entry_key]


def clear() -> None:
    with _lock:
        _entries.clear()
        for namespace in list(_generations):
            _generations[namespace] += 1
