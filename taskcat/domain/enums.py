from __future__ import annotations

from enum import StrEnum


class RecurrencePattern(StrEnum):
    NONE = "None"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    CUSTOM = "Custom"


class WeekDay(StrEnum):
    SUNDAY = "Sunday"
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"


class TaskCategory(StrEnum):
    HEALTH = "Health"
    WORK = "Work"
    PERSONAL = "Personal"
    OTHER = "Other"


class TaskPriority(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# 0=Sunday..6=Saturday
WEEKDAY_INDEX: dict[str, int] = {day.value: index for index, day in enumerate(WeekDay)}
