from __future__ import annotations

from datetime import datetime
from typing import Optional

from taskcat.domain.entities import RecurrenceRule

MISS = object()


class DateComputationCache:
    """Bounded memo of next-occurrence results.

    Keys are ``(base, rule.cache_key())``. A stored ``None`` means "no more
    occurrences" and is distinct from ``MISS``. When full, the oldest inserted
    entry is evicted first.
    """

    def __init__(self, capacity: int = 100) -> None:
        self._capacity = max(int(capacity), 1)
        self._entries: dict[tuple, Optional[datetime]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, base: datetime, rule: RecurrenceRule) -> object:
        return self._entries.get((base, rule.cache_key()), MISS)

    def put(self, base: datetime, rule: RecurrenceRule, value: Optional[datetime]) -> None:
        key = (base, rule.cache_key())
        if key not in self._entries:
            while len(self._entries) >= self._capacity:
                del self._entries[next(iter(self._entries))]
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()
