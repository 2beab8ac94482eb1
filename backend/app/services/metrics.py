# Overview: Process-local operational counters exposed on /api/metrics.

from __future__ import annotations

import threading
from collections import Counter

_lock = threading.Lock()
_counters: Counter = Counter()

# Known counters, reported as 0 until first incremented
KNOWN_COUNTERS = (
    "transfer_code_retries",
    "transfers_created",
    "transfer_transitions",
    "mirror_writes",
    "mirror_failures",
    "exchanges_created",
    "exchange_link_failures",
    "holds_created",
    "holds_resumed",
)


def incr(name: str, amount: int = 1) -> None:
    with _lock:
        _counters[name] += amount


def get(name: str) -> int:
    with _lock:
        return _counters[name]


def snapshot() -> dict:
    with _lock:
        data = {name: 0 for name in KNOWN_COUNTERS}
        data.update(_counters)
        return data


def reset() -> None:
    """Test helper."""
    with _lock:
        _counters.clear()
