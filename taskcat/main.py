from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta

from taskcat.config import SETTINGS
from taskcat.domain.entities import TaskEntity
from taskcat.infra.db import init_db
from taskcat.infra.logging import setup_logging
from taskcat.infra.repository import SqlKeyValueStorage
from taskcat.services.date_cache import DateComputationCache
from taskcat.services.recurrence_service import RecurrenceService
from taskcat.services.reminder_service import ReminderService
from taskcat.services.task_store import TaskStore

logger = logging.getLogger(__name__)


def build_store() -> TaskStore:
    recurrence = RecurrenceService(DateComputationCache(SETTINGS.date_cache_capacity))
    return TaskStore(
        SqlKeyValueStorage(),
        recurrence=recurrence,
        reminders=ReminderService(),
        staleness=SETTINGS.store_cache_ttl_seconds,
        window_days=SETTINGS.instance_window_days,
        max_instances=SETTINGS.max_instances,
    )


def _format_task(task: TaskEntity) -> str:
    mark = "x" if task.completed else " "
    if task.is_instance:
        return f"  [{mark}] {task.instance_date:%Y-%m-%d %H:%M}  {task.title}"
    pattern = task.recurrence.pattern if task.recurrence else "-"
    return f"[{mark}] {task.title} ({task.category}, {task.priority}, {pattern})"


async def _show(days: int, include_instances: bool, refresh: bool) -> int:
    store = build_store()
    now = datetime.now()
    tasks = await store.load_tasks(include_instances, now, now + timedelta(days=days), bypass_cache=refresh)
    for task in tasks:
        print(_format_task(task))
    logger.info("Listed %s tasks", len(tasks))
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="taskcat", description="List tasks and upcoming occurrences.")
    parser.add_argument("--days", type=int, default=SETTINGS.instance_window_days)
    parser.add_argument("--no-instances", action="store_true")
    parser.add_argument("--refresh", action="store_true", help="bypass the read cache")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.verbose else None)
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        logger.error("DB error: %s", exc)
        sys.exit(1)

    sys.exit(asyncio.run(_show(args.days, not args.no_instances, args.refresh)))


if __name__ == "__main__":
    main()
