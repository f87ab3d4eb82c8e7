from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from taskcat.domain.entities import CompletionEntry, TaskEntity
from taskcat.infra.repository import KeyValueStorage, StorageError

from .recurrence_service import DEFAULT_MAX_INSTANCES, RecurrenceService, align_tz
from .reminder_service import ReminderScheduler

logger = logging.getLogger(__name__)

TASKS_STORAGE_KEY = "taskcat_tasks"
TASK_INSTANCES_KEY = "taskcat_task_instances"
SETTINGS_KEY = "taskcat_settings"

DEFAULT_WINDOW_DAYS = 14
DEFAULT_STALENESS_SECONDS = 30.0
RECENT_COMPLETION_WINDOW = timedelta(days=1)

# Decoding errors from corrupt stored JSON are treated like I/O failures.
_FAILURES = (StorageError, ValueError, TypeError, KeyError)


def _decode_tasks(raw: Optional[str]) -> list[TaskEntity]:
    return [TaskEntity.from_dict(item) for item in json.loads(raw)] if raw else []


def _encode_tasks(tasks: list[TaskEntity]) -> str:
    return json.dumps([task.to_dict() for task in tasks])


def _decode_settings(raw: Optional[str]) -> dict:
    return json.loads(raw) if raw else {}


_CODECS: dict[str, tuple[Callable[[Optional[str]], Any], Callable[[Any], str]]] = {
    TASKS_STORAGE_KEY: (_decode_tasks, _encode_tasks),
    TASK_INSTANCES_KEY: (_decode_tasks, _encode_tasks),
    SETTINGS_KEY: (_decode_settings, json.dumps),
}


@dataclass
class _CacheEntry:
    value: Any
    loaded_at: float


def _in_window(instance: TaskEntity, from_date: datetime, to_date: datetime) -> bool:
    moment = instance.instance_date
    if moment is None:
        return False
    return align_tz(from_date, moment) <= moment <= align_tz(to_date, moment)


def _without(records: list[TaskEntity], predicate: Callable[[TaskEntity], bool]) -> list[TaskEntity] | None:
    remaining = [record for record in records if not predicate(record)]
    return remaining if len(remaining) != len(records) else None


class TaskStore:
    """Persists templates and their materialized instances.

    Every public operation contains storage failures: they are logged and
    reported as an empty collection, ``{}`` or ``False``. Reads are served
    from a per-key cache while younger than ``staleness`` seconds; writes
    update the cache immediately.

    Read-modify-write sequences on one storage key run under a single
    ``asyncio.Lock``, so concurrent coroutines sharing a store do not lose
    updates. Several processes writing the same storage are not supported.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        recurrence: RecurrenceService | None = None,
        reminders: ReminderScheduler | None = None,
        staleness: float = DEFAULT_STALENESS_SECONDS,
        window_days: int = DEFAULT_WINDOW_DAYS,
        max_instances: int = DEFAULT_MAX_INSTANCES,
        clock: Callable[[], datetime] = datetime.now,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._storage = storage
        self._recurrence = recurrence or RecurrenceService()
        self._reminders = reminders
        self._staleness = staleness
        self._window_days = window_days
        self._max_instances = max_instances
        self._clock = clock
        self._timer = timer
        self._cache: dict[str, _CacheEntry] = {}
        self._write_lock = asyncio.Lock()

    # -- templates --------------------------------------------------------

    async def save_templates(self, tasks: list[TaskEntity]) -> bool:
        templates = [task for task in tasks if not task.is_instance]
        try:
            await self._write(TASKS_STORAGE_KEY, templates)
        except _FAILURES:
            logger.exception("Error saving tasks")
            return False
        await self.generate_and_persist_instances(templates)
        return True

    async def add_task(self, task: TaskEntity) -> bool:
        if task.is_instance:
            return await self.save_instances([task])
        try:
            await self._mutate(TASKS_STORAGE_KEY, lambda templates: templates + [task])
        except _FAILURES:
            logger.exception("Error adding task %s", task.id)
            return False
        await self.generate_and_persist_instances([task])
        return True

    async def load_tasks(
        self,
        include_instances: bool = True,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        bypass_cache: bool = False,
    ) -> list[TaskEntity]:
        try:
            templates = await self._read(TASKS_STORAGE_KEY, bypass_cache)
        except _FAILURES:
            logger.exception("Error loading tasks")
            return []

        if not include_instances:
            return templates
        if not any(self._recurrence.is_recurring(task) for task in templates):
            return templates

        instances = await self.load_instances(templates, from_date, to_date, bypass_cache)
        cutoff = self._clock() - RECENT_COMPLETION_WINDOW
        visible = [
            instance
            for instance in instances
            if not instance.completed
            or (instance.instance_date and instance.instance_date >= align_tz(cutoff, instance.instance_date))
        ]
        return templates + visible

    # -- instances --------------------------------------------------------

    async def generate_and_persist_instances(
        self,
        templates: list[TaskEntity],
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> list[TaskEntity]:
        """Store the occurrences of ``templates`` in the window that are not covered yet.

        Returns the newly stored instances.
        """
        recurring = [task for task in templates if self._recurrence.is_recurring(task)]
        if not recurring:
            return []

        from_date, to_date = self._window(from_date, to_date)
        try:
            return await self._persist_missing(recurring, from_date, to_date)
        except _FAILURES:
            logger.exception("Error generating task instances")
            return []

    async def save_instances(self, instances: list[TaskEntity]) -> bool:
        if not instances:
            return True

        def merge(existing: list[TaskEntity]) -> list[TaskEntity]:
            merged = {instance.id: instance for instance in existing}
            for instance in instances:
                merged[instance.id] = instance
            return list(merged.values())

        try:
            await self._mutate(TASK_INSTANCES_KEY, merge)
        except _FAILURES:
            logger.exception("Error saving task instances")
            return False
        return True

    async def load_instances(
        self,
        templates: list[TaskEntity],
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        bypass_cache: bool = False,
    ) -> list[TaskEntity]:
        recurring = [task for task in templates if self._recurrence.is_recurring(task)]
        if not recurring:
            return []

        from_date, to_date = self._window(from_date, to_date)
        recurring_ids = {task.id for task in recurring}
        try:
            stored = await self._read(TASK_INSTANCES_KEY, bypass_cache)
            in_window = [
                instance
                for instance in stored
                if instance.parent_task_id in recurring_ids and _in_window(instance, from_date, to_date)
            ]
            added: list[TaskEntity] = []
            if self._missing_instances(recurring, stored, from_date, to_date):
                added = await self._persist_missing(recurring, from_date, to_date)
        except _FAILURES:
            logger.exception("Error loading task instances")
            return []

        logger.debug("Loaded %s stored and %s new instances", len(in_window), len(added))
        return in_window + added

    # -- updates ----------------------------------------------------------

    async def update_template_or_instance(self, task: TaskEntity) -> bool:
        key = TASK_INSTANCES_KEY if task.is_instance else TASKS_STORAGE_KEY
        found = False

        def swap(records: list[TaskEntity]) -> list[TaskEntity] | None:
            nonlocal found
            found = any(record.id == task.id for record in records)
            if not found:
                return None
            return [task if record.id == task.id else record for record in records]

        try:
            await self._mutate(key, swap)
        except _FAILURES:
            logger.exception("Error updating task %s", task.id)
            return False

        if not found:
            logger.warning("Task %s not found, nothing updated", task.id)
            return False
        if not task.is_instance:
            await self.generate_and_persist_instances([task])
        return True

    async def delete_by_id(self, task_id: str, cascade_instances: bool = True) -> bool:
        """Delete a template (and, with ``cascade_instances``, its instances) or one instance.

        The template and instance collections are written separately. If the
        cascade write fails after the template was removed, the call returns
        ``False`` and the orphaned instances stay stored.
        """
        try:
            remaining = await self._mutate(
                TASKS_STORAGE_KEY, lambda templates: _without(templates, lambda t: t.id == task_id)
            )
            if remaining is None:
                remaining = await self._mutate(
                    TASK_INSTANCES_KEY, lambda instances: _without(instances, lambda i: i.id == task_id)
                )
                return remaining is not None
        except _FAILURES:
            logger.exception("Error deleting task %s", task_id)
            return False

        if cascade_instances:
            try:
                await self._mutate(
                    TASK_INSTANCES_KEY,
                    lambda instances: _without(instances, lambda i: i.parent_task_id == task_id),
                )
            except _FAILURES:
                logger.exception("Partial delete: task %s removed but its instances were kept", task_id)
                return False
        return True

    def record_completion(self, instance: TaskEntity, templates: list[TaskEntity]) -> list[TaskEntity]:
        """Append a completion entry for ``instance`` to its parent template.

        Returns ``templates`` itself when the record is not an instance or its
        parent is not in the collection.
        """
        if not instance.parent_task_id:
            return templates
        parent = next((task for task in templates if task.id == instance.parent_task_id), None)
        if parent is None:
            return templates

        entry = CompletionEntry(completed_at=self._clock(), instance_id=instance.id)
        updated = replace(parent, completion_history=parent.completion_history + (entry,))
        return [updated if task.id == parent.id else task for task in templates]

    async def complete_instance(self, instance: TaskEntity) -> bool:
        """Mark ``instance`` completed and append it to its parent's completion history.

        Returns ``False`` if either write fails; a failed history write leaves
        the instance stored as completed.
        """
        if not instance.is_instance:
            return False
        if not await self.save_instances([replace(instance, completed=True)]):
            return False

        def append_history(templates: list[TaskEntity]) -> list[TaskEntity] | None:
            updated = self.record_completion(instance, templates)
            return updated if updated is not templates else None

        try:
            await self._mutate(TASKS_STORAGE_KEY, append_history)
        except _FAILURES:
            logger.exception(
                "Partial completion: instance %s marked completed but no history entry was recorded",
                instance.id,
            )
            return False
        return True

    # -- settings ---------------------------------------------------------

    async def save_settings(self, settings: dict) -> bool:
        try:
            await self._write(SETTINGS_KEY, settings)
        except _FAILURES:
            logger.exception("Error saving settings")
            return False
        self._recurrence.clear_date_cache()
        return True

    async def load_settings(self, bypass_cache: bool = False) -> dict:
        try:
            return await self._read(SETTINGS_KEY, bypass_cache)
        except _FAILURES:
            logger.exception("Error loading settings")
            return {}

    def invalidate_cache(self) -> None:
        self._cache.clear()

    # -- internals --------------------------------------------------------

    def _window(self, from_date: Optional[datetime], to_date: Optional[datetime]) -> tuple[datetime, datetime]:
        if from_date is None:
            from_date = self._clock()
        if to_date is None:
            to_date = from_date + timedelta(days=self._window_days)
        return from_date, to_date

    async def _read(self, key: str, bypass_cache: bool = False) -> Any:
        entry = self._cache.get(key)
        if entry and not bypass_cache and self._timer() - entry.loaded_at < self._staleness:
            return copy.copy(entry.value)

        decode, _ = _CODECS[key]
        value = decode(await self._storage.get(key))
        self._cache[key] = _CacheEntry(value, self._timer())
        return copy.copy(value)

    async def _write(self, key: str, value: Any) -> None:
        _, encode = _CODECS[key]
        await self._storage.set(key, encode(value))
        self._cache[key] = _CacheEntry(copy.copy(value), self._timer())

    async def _mutate(self, key: str, change: Callable[[Any], Any]) -> Any:
        """Re-read ``key`` from storage, apply ``change`` and write the result.

        ``change`` returns ``None`` when there is nothing to write; that
        ``None`` is also what this returns.
        """
        async with self._write_lock:
            current = await self._read(key, bypass_cache=True)
            updated = change(current)
            if updated is not None:
                await self._write(key, updated)
            return updated

    def _missing_instances(
        self,
        templates: list[TaskEntity],
        existing: list[TaskEntity],
        from_date: datetime,
        to_date: datetime,
    ) -> list[TaskEntity]:
        missing: list[TaskEntity] = []
        for template in templates:
            covered = sorted(
                instance.instance_date
                for instance in existing
                if instance.parent_task_id == template.id and _in_window(instance, from_date, to_date)
            )
            missing.extend(self._fill_window(template, covered, from_date, to_date))
        return missing

    def _fill_window(
        self,
        template: TaskEntity,
        covered: list[datetime],
        from_date: datetime,
        to_date: datetime,
    ) -> list[TaskEntity]:
        """Occurrences of ``template`` in the window around the stored ones.

        A stored chain is continued from its latest occurrence, and the gap
        before its earliest one is filled from ``from_date``. Restarting the
        chain at ``from_date`` would shift every occurrence to a new time of
        day whenever the clock moves.
        """
        generate = self._recurrence.generate_instances
        if not covered:
            return generate(template, from_date, to_date, self._max_instances)

        budget = self._max_instances - len(covered)
        if budget <= 0:
            return []
        earliest = covered[0]
        before = [
            instance
            for instance in generate(template, from_date, earliest, budget)
            if instance.instance_date < earliest
        ]
        return before + generate(template, covered[-1], to_date, budget - len(before))

    async def _persist_missing(
        self, templates: list[TaskEntity], from_date: datetime, to_date: datetime
    ) -> list[TaskEntity]:
        # Stored records win over regenerated ones so completion state survives.
        added: list[TaskEntity] = []

        def append_new(existing: list[TaskEntity]) -> list[TaskEntity] | None:
            known = {instance.id for instance in existing}
            for instance in self._missing_instances(templates, existing, from_date, to_date):
                if instance.id not in known:
                    known.add(instance.id)
                    added.append(instance)
            return existing + added if added else None

        await self._mutate(TASK_INSTANCES_KEY, append_new)
        for instance in added:
            if instance.reminder and instance.reminder.enabled:
                await self._schedule_reminder(instance)
        return added

    async def _schedule_reminder(self, instance: TaskEntity) -> None:
        if self._reminders is None:
            return
        try:
            await self._reminders.schedule_reminder(instance)
        except Exception:  # noqa: BLE001
            logger.exception("Error scheduling reminder for %s", instance.id)
