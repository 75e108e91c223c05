import asyncio
import threading
from dataclasses import replace
from datetime import date, datetime

import pytz
from sqlmodel import Session

from recurring_engine.errors import StoreUnavailableError
from recurring_engine.models.recurrence_rule import RecurrenceType, SeriesStatus
from recurring_engine.models.task import Task, TaskStatus
from recurring_engine.models.user import User
from recurring_engine.services.instance_generator import InstanceGenerator
from recurring_engine.services.scheduler_driver import SchedulerDriver
from recurring_engine.utils.metrics import ERRORS, SWEEPS, metrics_collector

NOW = datetime(2024, 1, 3, 12, 0, tzinfo=pytz.utc)


class FailingGenerator(InstanceGenerator):
    """Generator whose catch-up fails for selected series."""

    def __init__(self, engine, publisher, failures):
        super().__init__(engine, publisher=publisher)
        self.failures = failures

    def catch_up(self, parent, today, limit=31):
        if parent in self.failures:
            raise self.failures[parent]
        return super().catch_up(parent, today, limit)


class RecordingGenerator(InstanceGenerator):
    """Generator that only records which series it was asked to catch up."""

    def __init__(self, engine, publisher):
        super().__init__(engine, publisher=publisher)
        self.calls = []
        self.lock = threading.Lock()

    def catch_up(self, parent, today, limit=31):
        with self.lock:
            self.calls.append((parent, today))
        return []


class TestSweep:
    def test_generates_due_instances_for_active_series(self, driver, make_parent, instances_of):
        daily_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        weekly_id = make_parent(RecurrenceType.WEEKLY, due_date=date(2024, 1, 1), weekdays=(1,))

        result = driver.run_sweep(NOW)

        assert result.processed == 2
        assert result.failed == {}
        assert [i.due_date for i in instances_of(daily_id)] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert instances_of(weekly_id) == []
        assert driver.last_sweep is result
        assert metrics_collector.get_metrics()["counters"][SWEEPS] == 1

    def test_repeated_sweep_generates_nothing_new(self, driver, make_parent, instances_of):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        driver.run_sweep(NOW)

        result = driver.run_sweep(NOW)

        assert result.generated == []
        assert len(instances_of(parent_id)) == 2

    def test_today_is_taken_in_owner_timezone(self, session, driver, make_parent, instances_of):
        owner = User(email="honolulu@example.com", timezone="Pacific/Honolulu")
        session.add(owner)
        session.commit()
        session.refresh(owner)
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1), owner=owner)

        # 05:00 UTC on the 3rd is still the 2nd in Honolulu
        driver.run_sweep(datetime(2024, 1, 3, 5, 0, tzinfo=pytz.utc))

        assert [i.due_date for i in instances_of(parent_id)] == [date(2024, 1, 2)]

    def test_skips_ended_and_one_off_tasks(self, driver, make_parent):
        make_parent(RecurrenceType.NONE)
        make_parent(RecurrenceType.DAILY, end_date=date(2024, 1, 2))

        first = driver.run_sweep(NOW)
        second = driver.run_sweep(NOW)

        assert first.processed == 1
        assert first.generated == []
        assert second.processed == 0

    def test_failing_series_does_not_fail_batch(self, engine, publisher, settings, make_parent, instances_of):
        healthy_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        broken_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        crashing_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        generator = FailingGenerator(engine, publisher, {
            broken_id: StoreUnavailableError("Task store unavailable"),
            crashing_id: RuntimeError("unexpected"),
        })
        driver = SchedulerDriver(engine, generator=generator, settings=settings)

        result = driver.run_sweep(NOW)

        assert set(result.failed) == {broken_id, crashing_id}
        assert result.processed == 3
        assert len(instances_of(healthy_id)) == 2
        assert metrics_collector.get_metrics()["counters"][ERRORS] == 2

    def test_parallel_sweep_visits_every_series(self, engine, publisher, settings, make_parent):
        parent_ids = [make_parent(RecurrenceType.DAILY) for _ in range(4)]
        generator = RecordingGenerator(engine, publisher)
        driver = SchedulerDriver(engine, generator=generator, settings=replace(settings, sweep_max_workers=3))

        result = driver.run_sweep(NOW)

        assert result.processed == 4
        assert sorted(parent for parent, _ in generator.calls) == sorted(parent_ids)
        assert {today for _, today in generator.calls} == {date(2024, 1, 3)}

    def test_catch_up_limit_from_settings(self, engine, generator, settings, make_parent, instances_of):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2023, 1, 1))
        driver = SchedulerDriver(engine, generator=generator, settings=replace(settings, catch_up_limit=5))

        driver.run_sweep(NOW)

        assert len(instances_of(parent_id)) == 5

    def test_deleted_parent_leaves_no_series_behind(self, driver, service, make_parent, fetch):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        instance_ids = [g.task_id for g in driver.run_sweep(NOW).generated]
        assert len(instance_ids) == 2

        service.delete_task(parent_id)
        result = driver.run_sweep(NOW)

        assert result.processed == 0
        assert result.generated == []
        for task_id in instance_ids:
            orphan = fetch(task_id)
            assert orphan.recurring_parent_id is None
            assert not orphan.is_recurring_parent

    def test_store_level_parent_delete_leaves_no_series_behind(self, engine, driver, make_parent, fetch):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        instance_ids = [g.task_id for g in driver.run_sweep(NOW).generated]

        # ON DELETE SET NULL orphans the instances with their rule copy intact
        with Session(engine) as s:
            s.delete(s.get(Task, parent_id))
            s.commit()
        result = driver.run_sweep(datetime(2024, 1, 10, 12, 0, tzinfo=pytz.utc))

        assert result.processed == 0
        assert result.generated == []
        assert {fetch(task_id).recurring_parent_id for task_id in instance_ids} == {None}

    def test_result_serializes(self, driver, make_parent):
        make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))

        payload = driver.run_sweep(NOW).to_dict()

        assert payload["processed"] == 1
        assert [g["due_date"] for g in payload["generated"]] == ["2024-01-02", "2024-01-03"]


class TestCompletionHook:
    def test_completion_based_instance_generates_next(self, driver, make_parent, instances_of):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 31), completion_based=True)
        first = driver.generator.maybe_generate_next(parent_id)

        generated = driver.on_task_completed(first.task_id, datetime(2024, 2, 10, 9, 0, tzinfo=pytz.utc))

        assert generated.due_date == date(2024, 2, 11)
        assert len(instances_of(parent_id)) == 2

    def test_records_completion_when_missing(self, driver, make_parent, fetch):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 31), completion_based=True)
        first = driver.generator.maybe_generate_next(parent_id)

        paris_evening = pytz.timezone("Europe/Paris").localize(datetime(2024, 2, 10, 18, 0))
        driver.on_task_completed(first.task_id, paris_evening)

        completed = fetch(first.task_id)
        assert completed.status == TaskStatus.DONE.value
        assert completed.completed_at.tzinfo is None
        assert completed.completed_at.date() == date(2024, 2, 10)

    def test_duplicate_completion_events_generate_once(self, driver, make_parent, instances_of):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 31), completion_based=True)
        first = driver.generator.maybe_generate_next(parent_id)
        completed_at = datetime(2024, 2, 10, 9, 0, tzinfo=pytz.utc)

        driver.on_task_completed(first.task_id, completed_at)
        assert driver.on_task_completed(first.task_id, completed_at) is None

        assert len(instances_of(parent_id)) == 2

    def test_completing_parent_itself(self, engine, driver, make_parent):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 31), completion_based=True)

        generated = driver.on_task_completed(parent_id, datetime(2024, 2, 3, 9, 0, tzinfo=pytz.utc))

        assert generated.due_date == date(2024, 2, 4)

    def test_schedule_based_series_waits_for_sweep(self, driver, make_parent, instances_of):
        parent_id = make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        first = driver.generator.maybe_generate_next(parent_id)

        assert driver.on_task_completed(first.task_id, datetime(2024, 1, 2, 9, 0, tzinfo=pytz.utc)) is None
        assert len(instances_of(parent_id)) == 1

    def test_one_off_task_and_unknown_task(self, driver, make_parent):
        task_id = make_parent(RecurrenceType.NONE)
        assert driver.on_task_completed(task_id) is None
        assert driver.on_task_completed(9999) is None

    def test_invalid_series_is_not_regenerated(self, engine, driver, make_parent):
        parent_id = make_parent(RecurrenceType.DAILY, completion_based=True)
        with Session(engine) as s:
            parent = s.get(Task, parent_id)
            parent.recurrence_status = SeriesStatus.INVALID.value
            s.add(parent)
            s.commit()

        assert driver.on_task_completed(parent_id, NOW) is None


class TestLoop:
    def test_disabled_scheduler_does_not_start(self, driver):
        asyncio.run(driver.start())

        assert not driver.is_running
        status = driver.get_status()
        assert status["running"] is False
        assert status["disabled"] is True
        assert status["last_sweep"] is None

    def test_start_and_stop(self, engine, publisher, settings):
        driver = SchedulerDriver(
            engine,
            generator=RecordingGenerator(engine, publisher),
            settings=replace(settings, disable_scheduler=False),
        )

        async def run():
            await driver.start()
            running = driver.is_running
            await driver.stop()
            return running

        assert asyncio.run(run()) is True
        assert not driver.is_running

    def test_status_reports_last_sweep(self, driver, make_parent):
        make_parent(RecurrenceType.DAILY, due_date=date(2024, 1, 1))
        driver.run_sweep(NOW)

        status = driver.get_status()

        assert status["last_sweep"]["processed"] == 1
        assert status["interval_seconds"] == 300
