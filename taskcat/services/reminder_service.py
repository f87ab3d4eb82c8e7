from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, Protocol

from taskcat.domain.entities import ReminderSettings, TaskEntity
from taskcat.services.recurrence_service import RecurrenceService

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE


class ReminderScheduler(Protocol):
    async def schedule_reminder(self, task: TaskEntity) -> str | None: ...


class ReminderService:
    """Reminder bookkeeping without a device notification backend.

    Scheduling and cancelling only log; notification ids are still handed out
    so callers can store and cancel them later.
    """

    def __init__(self, clock=datetime.now) -> None:
        self._clock = clock

    async def schedule_reminder(self, task: TaskEntity) -> str | None:
        if not task.reminder or not task.reminder.enabled:
            return None
        notification_id = f"notification_{task.id}_{round(self._clock().timestamp() * 1000)}"
        logger.info(
            "Scheduled reminder %s for task %r at %s",
            notification_id,
            task.title,
            self.next_reminder_time(task, self._clock()),
        )
        return notification_id

    async def cancel_reminder(self, notification_id: str) -> bool:
        logger.info("Cancelled reminder %s", notification_id)
        return True

    async def update_reminder(self, task: TaskEntity, settings: ReminderSettings) -> TaskEntity:
        if task.reminder and task.reminder.notification_id:
            await self.cancel_reminder(task.reminder.notification_id)

        updated = replace(task, reminder=replace(settings, notification_id=None))
        if settings.enabled:
            notification_id = await self.schedule_reminder(updated)
            if notification_id:
                updated = replace(updated, reminder=replace(updated.reminder, notification_id=notification_id))
        return updated

    @staticmethod
    def next_reminder_time(task: TaskEntity, now: datetime) -> Optional[datetime]:
        reminder = task.reminder
        if not reminder or not reminder.enabled:
            return None

        if reminder.reminder_date:
            return reminder.reminder_date

        if RecurrenceService.is_recurring(task):
            if task.instance_date:
                instance_time = _at_time_of_day(task.instance_date, reminder.time)
                if instance_time > now:
                    return instance_time
            return _at_time_of_day(now + timedelta(days=1), reminder.time)

        if reminder.time is not None:
            reminder_time = _at_time_of_day(now, reminder.time)
            if reminder_time < now:
                reminder_time += timedelta(days=1)
            return reminder_time

        return None


def _at_time_of_day(moment: datetime, millis: int | None) -> datetime:
    if millis is None:
        return moment
    hours, remainder = divmod(millis, MS_PER_HOUR)
    return moment.replace(hour=hours % 24, minute=remainder // MS_PER_MINUTE, second=0, microsecond=0)
