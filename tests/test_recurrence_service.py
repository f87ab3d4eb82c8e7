from __future__ import annotations

from datetime import datetime, timedelta, timezone

from taskcat.domain.entities import RecurrenceRule, TaskEntity
from taskcat.domain.enums import RecurrencePattern
from taskcat.services.date_cache import DateComputationCache
from taskcat.services.recurrence_service import RecurrenceService, instance_id

T0 = datetime(2026, 1, 5, 9, 0)  # a Monday


def make_template(rule: RecurrenceRule | None, created_at: datetime = T0) -> TaskEntity:
    return TaskEntity(id="t1", title="Stretch", created_at=created_at, recurrence=rule)


def test_daily_window_is_inclusive() -> None:
    service = RecurrenceService()
    template = make_template(RecurrenceRule(RecurrencePattern.DAILY))

    instances = service.generate_instances(template, T0, T0 + timedelta(days=3), 10)

    assert [i.instance_date for i in instances] == [T0 + timedelta(days=d) for d in (1, 2, 3)]
    assert all(not i.completed for i in instances)
    assert all(i.parent_task_id == "t1" for i in instances)
    assert instances[0].id == instance_id("t1", T0 + timedelta(days=1))
    assert instances[0].title == "Stretch"


def test_daily_crosses_month_and_year() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.DAILY, interval=2)

    assert service.next_occurrence(datetime(2025, 12, 31, 8, 30), rule) == datetime(2026, 1, 2, 8, 30)


def test_monthly_day_clamps_to_short_month() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.MONTHLY, month_day=31)

    assert service.next_occurrence(datetime(2025, 1, 31), rule) == datetime(2025, 2, 28)
    assert service.next_occurrence(datetime(2024, 1, 31), rule) == datetime(2024, 2, 29)


def test_monthly_day_out_of_range_is_clamped() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.MONTHLY, month_day=45)

    assert service.next_occurrence(datetime(2025, 3, 10), rule) == datetime(2025, 4, 30)


def test_monthly_keeps_day_of_month_with_year_rollover() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.MONTHLY, interval=3)

    assert service.next_occurrence(datetime(2025, 11, 15, 14, 0), rule) == datetime(2026, 2, 15)
    assert service.next_occurrence(datetime(2025, 8, 31), rule) == datetime(2025, 11, 30)


def test_monthly_clamped_day_does_not_catch_up() -> None:
    service = RecurrenceService()
    template = make_template(RecurrenceRule(RecurrencePattern.MONTHLY), created_at=datetime(2025, 1, 31))

    instances = service.generate_instances(template, datetime(2025, 1, 31), datetime(2025, 4, 30), 10)

    assert [i.instance_date.day for i in instances] == [28, 28, 28]


def test_weekly_multiple_days_within_week_and_wrap() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.WEEKLY, week_days=("Monday", "Friday"))
    wednesday = datetime(2026, 1, 7, 7, 0)

    friday = service.next_occurrence(wednesday, rule)
    assert friday == datetime(2026, 1, 9, 7, 0)
    assert service.next_occurrence(friday, rule) == datetime(2026, 1, 12, 7, 0)


def test_weekly_interval_skips_whole_weeks() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.WEEKLY, interval=2, week_days=("Monday",))

    assert service.next_occurrence(T0, rule) == T0 + timedelta(days=14)


def test_weekly_without_known_days_falls_back_to_plain_weekly() -> None:
    service = RecurrenceService()
    plain = RecurrenceRule(RecurrencePattern.WEEKLY, interval=2)
    unknown = RecurrenceRule(RecurrencePattern.WEEKLY, interval=2, week_days=("Funday",))

    assert service.next_occurrence(T0, plain) == T0 + timedelta(days=14)
    assert service.next_occurrence(T0, unknown) == T0 + timedelta(days=14)


def test_end_date_boundary() -> None:
    service = RecurrenceService()
    end = datetime(2026, 1, 10, 9, 0)
    rule = RecurrenceRule(RecurrencePattern.DAILY, end_date=end)

    assert service.next_occurrence(end, rule) is None
    assert service.next_occurrence(end - timedelta(days=1), rule) == end
    assert service.next_occurrence(end - timedelta(hours=1), rule) is None


def test_none_and_custom_patterns_never_occur() -> None:
    service = RecurrenceService()

    assert service.next_occurrence(T0, RecurrenceRule(RecurrencePattern.NONE)) is None
    assert service.next_occurrence(T0, RecurrenceRule(RecurrencePattern.CUSTOM)) is None
    assert service.generate_instances(make_template(RecurrenceRule(RecurrencePattern.NONE)), T0) == []
    assert service.generate_instances(make_template(None), T0) == []


def test_malformed_interval_is_clamped() -> None:
    service = RecurrenceService()

    assert service.next_occurrence(T0, RecurrenceRule(RecurrencePattern.DAILY, interval=0)) == T0 + timedelta(days=1)
    assert service.next_occurrence(T0, RecurrenceRule(RecurrencePattern.DAILY, interval=-4)) == T0 + timedelta(days=1)


def test_generation_respects_cap() -> None:
    service = RecurrenceService()
    template = make_template(RecurrenceRule(RecurrencePattern.DAILY))

    instances = service.generate_instances(template, T0, T0 + timedelta(days=365), 5)

    assert len(instances) == 5


def test_generation_starts_after_creation_date() -> None:
    service = RecurrenceService()
    created = T0 + timedelta(days=5)
    template = make_template(RecurrenceRule(RecurrencePattern.DAILY), created_at=created)

    instances = service.generate_instances(template, T0, T0 + timedelta(days=8), 10)

    assert [i.instance_date for i in instances] == [created + timedelta(days=d) for d in (1, 2, 3)]


def test_default_generation_window_and_cap() -> None:
    service = RecurrenceService()
    template = make_template(RecurrenceRule(RecurrencePattern.WEEKLY), created_at=datetime(2000, 1, 1))

    instances = service.generate_instances(template)

    assert 4 <= len(instances) <= 5
    assert all(i.instance_date > datetime.now() for i in instances)


def test_results_match_with_and_without_cache() -> None:
    cache = DateComputationCache(capacity=10)
    cached = RecurrenceService(cache)
    rule = RecurrenceRule(RecurrencePattern.WEEKLY, week_days=("Tuesday", "Thursday"))

    first = cached.next_occurrence(T0, rule)
    second = cached.next_occurrence(T0, rule)
    fresh = RecurrenceService().next_occurrence(T0, rule)

    assert first == second == fresh == T0 + timedelta(days=1)
    assert len(cache) == 1

    cached.clear_date_cache()
    assert len(cache) == 0
    assert cached.next_occurrence(T0, rule) == first


def test_out_of_range_dates_end_the_chain() -> None:
    service = RecurrenceService()
    base = datetime(2026, 1, 1)

    assert service.next_occurrence(base, RecurrenceRule(RecurrencePattern.MONTHLY, interval=100_000)) is None
    assert service.next_occurrence(base, RecurrenceRule(RecurrencePattern.DAILY, interval=10**9)) is None
    assert service.next_occurrence(base, RecurrenceRule(RecurrencePattern.WEEKLY, interval=10**9)) is None


def test_stored_rule_with_mixed_weekday_values() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule.from_dict({"pattern": "Weekly", "week_days": ["Monday", 3, None]})

    assert service.next_occurrence(T0, rule) == T0 + timedelta(days=7)
    assert service.next_occurrence(T0, rule) == T0 + timedelta(days=7)


def test_aware_end_date_with_naive_base() -> None:
    service = RecurrenceService()
    rule = RecurrenceRule(RecurrencePattern.DAILY, end_date=datetime(2030, 1, 1, tzinfo=timezone.utc))

    assert service.next_occurrence(T0, rule) == T0 + timedelta(days=1)
