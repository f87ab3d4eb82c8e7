from __future__ import annotations

from datetime import datetime

from taskcat.domain.entities import RecurrenceRule
from taskcat.domain.enums import RecurrencePattern
from taskcat.services.date_cache import MISS, DateComputationCache

BASE = datetime(2026, 3, 1, 8, 0)
DAILY = RecurrenceRule(RecurrencePattern.DAILY)


def test_miss_is_distinct_from_cached_none() -> None:
    cache = DateComputationCache()

    assert cache.get(BASE, DAILY) is MISS
    cache.put(BASE, DAILY, None)
    assert cache.get(BASE, DAILY) is None


def test_oldest_entry_evicted_at_capacity() -> None:
    cache = DateComputationCache(capacity=2)
    days = [datetime(2026, 3, d) for d in (1, 2, 3)]

    for day in days:
        cache.put(day, DAILY, day)

    assert len(cache) == 2
    assert cache.get(days[0], DAILY) is MISS
    assert cache.get(days[2], DAILY) == days[2]


def test_overwriting_a_key_does_not_evict() -> None:
    cache = DateComputationCache(capacity=2)
    cache.put(BASE, DAILY, None)
    cache.put(datetime(2026, 3, 2), DAILY, None)

    cache.put(BASE, DAILY, BASE)

    assert len(cache) == 2
    assert cache.get(BASE, DAILY) == BASE


def test_key_uses_full_rule_content() -> None:
    cache = DateComputationCache()
    rule = RecurrenceRule(RecurrencePattern.WEEKLY, week_days=("Monday", "Friday"))
    reordered = RecurrenceRule(RecurrencePattern.WEEKLY, week_days=("Friday", "Monday"))
    with_end = RecurrenceRule(RecurrencePattern.WEEKLY, week_days=("Monday", "Friday"), end_date=BASE)

    cache.put(BASE, rule, BASE)

    assert cache.get(BASE, reordered) == BASE
    assert cache.get(BASE, with_end) is MISS
    assert cache.get(BASE, RecurrenceRule(RecurrencePattern.WEEKLY, interval=2)) is MISS


def test_clear_empties_cache() -> None:
    cache = DateComputationCache()
    cache.put(BASE, DAILY, BASE)

    cache.clear()

    assert len(cache) == 0
    assert cache.get(BASE, DAILY) is MISS
