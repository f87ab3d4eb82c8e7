from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import RecurrencePattern, TaskCategory, TaskPriority


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_dt(value: Optional[datetime]) -> str | None:
    return value.isoformat() if value else None


def _key_part(value: Any) -> Any:
    return value if value is None or isinstance(value, (int, str)) else repr(value)


def _parse_pattern(value: Any) -> RecurrencePattern:
    try:
        return RecurrencePattern(value)
    except ValueError:
        return RecurrencePattern.NONE


@dataclass(frozen=True)
class RecurrenceRule:
    pattern: RecurrencePattern
    interval: int = 1
    week_days: tuple[str, ...] = ()
    month_day: int | None = None
    end_date: Optional[datetime] = None

    def cache_key(self) -> tuple:
        # Stored rules may carry malformed values; keep the key hashable and sortable.
        return (
            str(self.pattern),
            _key_part(self.interval),
            tuple(sorted({str(day) for day in self.week_days or ()})),
            _key_part(self.month_day),
            self.end_date,
        )

    def to_dict(self) -> dict:
        return {
            "pattern": str(self.pattern),
            "interval": self.interval,
            "week_days": list(self.week_days),
            "month_day": self.month_day,
            "end_date": _format_dt(self.end_date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> RecurrenceRule:
        return cls(
            pattern=_parse_pattern(data.get("pattern")),
            interval=data.get("interval") or 1,
            week_days=tuple(data.get("week_days") or ()),
            month_day=data.get("month_day"),
            end_date=_parse_dt(data.get("end_date")),
        )


@dataclass(frozen=True)
class ReminderSettings:
    enabled: bool
    reminder_date: Optional[datetime] = None
    # milliseconds since midnight
    time: int | None = None
    notification_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "reminder_date": _format_dt(self.reminder_date),
            "time": self.time,
            "notification_id": self.notification_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ReminderSettings:
        return cls(
            enabled=bool(data.get("enabled", False)),
            reminder_date=_parse_dt(data.get("reminder_date")),
            time=data.get("time"),
            notification_id=data.get("notification_id"),
        )


@dataclass(frozen=True)
class CompletionEntry:
    completed_at: datetime
    instance_id: str

    def to_dict(self) -> dict:
        return {"completed_at": _format_dt(self.completed_at), "instance_id": self.instance_id}

    @classmethod
    def from_dict(cls, data: dict) -> CompletionEntry:
        return cls(
            completed_at=_parse_dt(data["completed_at"]),
            instance_id=data["instance_id"],
        )


@dataclass(frozen=True)
class TaskEntity:
    id: str
    title: str
    created_at: datetime
    completed: bool = False
    category: TaskCategory = TaskCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    recurrence: Optional[RecurrenceRule] = None
    reminder: Optional[ReminderSettings] = None
    completion_history: tuple[CompletionEntry, ...] = field(default_factory=tuple)
    parent_task_id: str | None = None
    instance_date: Optional[datetime] = None

    @property
    def is_instance(self) -> bool:
        return self.parent_task_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "created_at": _format_dt(self.created_at),
            "category": str(self.category),
            "priority": str(self.priority),
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "reminder": self.reminder.to_dict() if self.reminder else None,
            "completion_history": [entry.to_dict() for entry in self.completion_history],
            "parent_task_id": self.parent_task_id,
            "instance_date": _format_dt(self.instance_date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> TaskEntity:
        recurrence = data.get("recurrence")
        reminder = data.get("reminder")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            completed=bool(data.get("completed", False)),
            created_at=_parse_dt(data["created_at"]),
            category=TaskCategory(data.get("category", TaskCategory.OTHER.value)),
            priority=TaskPriority(data.get("priority", TaskPriority.MEDIUM.value)),
            recurrence=RecurrenceRule.from_dict(recurrence) if recurrence else None,
            reminder=ReminderSettings.from_dict(reminder) if reminder else None,
            completion_history=tuple(
                CompletionEntry.from_dict(entry) for entry in data.get("completion_history") or ()
            ),
            parent_task_id=data.get("parent_task_id"),
            instance_date=_parse_dt(data.get("instance_date")),
        )
