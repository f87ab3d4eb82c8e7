from __future__ import annotations

from datetime import datetime

from taskcat.domain.entities import CompletionEntry, RecurrenceRule, ReminderSettings, TaskEntity
from taskcat.domain.enums import RecurrencePattern, TaskCategory, TaskPriority


def test_task_round_trips_through_dict() -> None:
    task = TaskEntity(
        id="t1",
        title="Run",
        created_at=datetime(2026, 1, 1, 7, 30),
        category=TaskCategory.HEALTH,
        priority=TaskPriority.HIGH,
        recurrence=RecurrenceRule(
            RecurrencePattern.MONTHLY, interval=2, month_day=15, end_date=datetime(2026, 12, 31)
        ),
        reminder=ReminderSettings(enabled=True, time=3_600_000),
        completion_history=(CompletionEntry(datetime(2026, 1, 2, 8, 0), "t1_1767339000000"),),
    )

    assert TaskEntity.from_dict(task.to_dict()) == task


def test_minimal_record_uses_defaults() -> None:
    task = TaskEntity.from_dict({"id": "t2", "created_at": "2026-01-01T00:00:00"})

    assert task.title == ""
    assert not task.completed
    assert task.category == TaskCategory.OTHER
    assert task.priority == TaskPriority.MEDIUM
    assert task.recurrence is None
    assert task.completion_history == ()
    assert not task.is_instance


def test_unknown_pattern_degrades_to_none() -> None:
    rule = RecurrenceRule.from_dict({"pattern": "Yearly", "interval": 0})

    assert rule.pattern == RecurrencePattern.NONE
    assert rule.interval == 1
