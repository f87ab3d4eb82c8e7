from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any, Optional

from taskcat.domain.entities import RecurrenceRule, TaskEntity
from taskcat.domain.enums import WEEKDAY_INDEX, RecurrencePattern

from .date_cache import MISS, DateComputationCache

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_DAYS = 30
DEFAULT_MAX_INSTANCES = 10


class RecurrenceService:
    """Computes occurrence dates for recurrence rules and materializes instances.

    Every ``next_occurrence`` result goes through the injected
    ``DateComputationCache``; dropping the cache never changes results.
    """

    def __init__(self, cache: DateComputationCache | None = None) -> None:
        self._cache = cache if cache is not None else DateComputationCache()

    @property
    def cache(self) -> DateComputationCache:
        return self._cache

    @staticmethod
    def is_recurring(task: TaskEntity) -> bool:
        return task.recurrence is not None and task.recurrence.pattern != RecurrencePattern.NONE

    def clear_date_cache(self) -> None:
        self._cache.clear()

    def next_occurrence(self, base: datetime, rule: RecurrenceRule) -> Optional[datetime]:
        cached = self._cache.get(base, rule)
        if cached is not MISS:
            return cached
        result = _compute_next(base, rule)
        self._cache.put(base, rule, result)
        return result

    def generate_instances(
        self,
        template: TaskEntity,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        max_instances: int = DEFAULT_MAX_INSTANCES,
    ) -> list[TaskEntity]:
        if not self.is_recurring(template):
            return []

        if from_date is None:
            from_date = datetime.now(template.created_at.tzinfo)
        if to_date is None:
            to_date = from_date + timedelta(days=DEFAULT_GENERATION_DAYS)
        from_date = align_tz(from_date, template.created_at)
        to_date = align_tz(to_date, template.created_at)

        rule = template.recurrence
        instances: list[TaskEntity] = []
        occurrence = self.next_occurrence(max(template.created_at, from_date), rule)
        while occurrence is not None and occurrence <= to_date and len(instances) < max_instances:
            instances.append(make_instance(template, occurrence))
            occurrence = self.next_occurrence(occurrence, rule)

        logger.debug("Generated %s instances for task %s", len(instances), template.id)
        return instances


def make_instance(template: TaskEntity, occurrence: datetime) -> TaskEntity:
    return replace(
        template,
        id=instance_id(template.id, occurrence),
        parent_task_id=template.id,
        instance_date=occurrence,
        completed=False,
    )


def instance_id(template_id: str, occurrence: datetime) -> str:
    return f"{template_id}_{round(occurrence.timestamp() * 1000)}"


def align_tz(moment: datetime, reference: datetime) -> datetime:
    """Return ``moment`` as naive or aware to match ``reference``.

    Naive values are read as local time.
    """
    if (moment.tzinfo is None) == (reference.tzinfo is None):
        return moment
    if reference.tzinfo is None:
        return moment.astimezone().replace(tzinfo=None)
    return moment.astimezone(reference.tzinfo)


def _compute_next(base: datetime, rule: RecurrenceRule) -> Optional[datetime]:
    if rule.pattern == RecurrencePattern.NONE:
        return None
    end_date = align_tz(rule.end_date, base) if rule.end_date is not None else None
    if end_date is not None and base >= end_date:
        return None

    try:
        result = _advance(base, rule)
    except (OverflowError, ValueError):
        # Out of the representable date range.
        return None

    if result is not None and end_date is not None and result > end_date:
        return None
    return result


def _advance(base: datetime, rule: RecurrenceRule) -> Optional[datetime]:
    interval = max(_as_int(rule.interval, 1), 1)

    if rule.pattern == RecurrencePattern.DAILY:
        return base + timedelta(days=interval)
    if rule.pattern == RecurrencePattern.WEEKLY:
        return _next_weekly(base, rule.week_days, interval)
    if rule.pattern == RecurrencePattern.MONTHLY:
        month_day = _as_int(rule.month_day, 0)
        if month_day:
            day = min(max(1, month_day), 31)
        else:
            day = base.day
        target = _add_months(base.date(), interval, day)
        return base.replace(year=target.year, month=target.month, day=target.day,
                            hour=0, minute=0, second=0, microsecond=0)
    # Custom and anything unrecognized have no generation logic.
    return None


def _next_weekly(base: datetime, week_days: tuple[str, ...], interval: int) -> datetime:
    indices = sorted({
        WEEKDAY_INDEX[day] for day in week_days or () if isinstance(day, str) and day in WEEKDAY_INDEX
    })
    if not indices:
        return base + timedelta(days=7 * interval)

    current = (base.weekday() + 1) % 7
    later = [index for index in indices if index > current]
    if later:
        days_to_add = later[0] - current
    else:
        days_to_add = 7 - current + indices[0]

    if interval > 1:
        days_to_add += 7 * (interval - 1)
    return base + timedelta(days=days_to_add)


def _add_months(base: date, months: int, day: int) -> date:
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    return date(year, month, min(day, _days_in_month(year, month)))


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default
