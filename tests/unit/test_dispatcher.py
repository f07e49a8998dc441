from datetime import UTC, datetime, timedelta

import pytest

from task_dispatcher.application.dtos import ScheduleDefinition
from task_dispatcher.application.services import Dispatcher, compile_schedule


def _spec(name: str, recurrence: str, reference_time: datetime, enabled: bool = True):
    definition = ScheduleDefinition(
        name=name, recurrence=recurrence, task="checkAssociations", enabled=enabled
    )
    return compile_schedule(definition, reference_time)


@pytest.fixture
def daily(day0):
    dispatcher = Dispatcher()
    dispatcher.load([_spec("daily", "rate(1 day)", day0)], day0)
    return dispatcher


class TestTick:
    def test_nothing_due_before_first_instant(self, daily, day0):
        assert daily.tick(day0) == []
        assert daily.tick(day0 + timedelta(hours=23)) == []

    def test_emits_at_due_instant(self, daily, day0):
        events = daily.tick(day0 + timedelta(days=1))

        assert len(events) == 1
        assert events[0].schedule_ref == "daily"
        assert events[0].fired_at == day0 + timedelta(days=1)
        assert events[0].attempt == 1
        assert events[0].catch_up is False

    def test_retick_same_now_is_idempotent(self, daily, day0):
        now = day0 + timedelta(days=1, minutes=5)

        assert len(daily.tick(now)) == 1
        assert daily.tick(now) == []
        assert daily.tick(now) == []

    def test_backlog_collapses_to_single_catch_up(self, daily, day0):
        events = daily.tick(day0 + timedelta(days=3))

        assert len(events) == 1
        assert events[0].fired_at == day0 + timedelta(days=3)
        assert events[0].attempt == 1
        assert events[0].missed == 2
        assert events[0].catch_up is True

    def test_fired_at_strictly_increasing_with_cadence(self, day0):
        dispatcher = Dispatcher()
        dispatcher.load([_spec("hourly", "rate(1 hour)", day0)], day0)

        fired = []
        now = day0
        for _ in range(24 * 4):
            now += timedelta(minutes=15)
            fired.extend(e.fired_at for e in dispatcher.tick(now))

        assert len(fired) == 24
        assert all(b - a == timedelta(hours=1) for a, b in zip(fired, fired[1:]))

    def test_clock_going_backwards_emits_nothing(self, daily, day0):
        daily.tick(day0 + timedelta(days=3))

        assert daily.tick(day0 + timedelta(days=2)) == []
        assert daily.tick(day0 + timedelta(days=3)) == []
        assert len(daily.tick(day0 + timedelta(days=4))) == 1

    def test_events_ordered_by_fired_at_then_name(self, day0):
        dispatcher = Dispatcher()
        dispatcher.load(
            [
                _spec("b-hourly", "rate(1 hour)", day0),
                _spec("a-hourly", "rate(1 hour)", day0),
                _spec("half-hourly", "rate(30 minutes)", day0),
            ],
            day0,
        )

        events = dispatcher.tick(day0 + timedelta(minutes=90))

        assert [(e.schedule_ref, e.fired_at) for e in events] == [
            ("a-hourly", day0 + timedelta(hours=1)),
            ("b-hourly", day0 + timedelta(hours=1)),
            ("half-hourly", day0 + timedelta(minutes=90)),
        ]

    def test_cron_schedule_catch_up(self, day0):
        dispatcher = Dispatcher()
        dispatcher.load([_spec("noon", "cron(0 12 * * ? *)", day0)], day0)

        events = dispatcher.tick(datetime(2024, 1, 3, 13, tzinfo=UTC))

        assert len(events) == 1
        assert events[0].fired_at == datetime(2024, 1, 3, 12, tzinfo=UTC)
        assert events[0].missed == 2

    def test_one_time_schedule_fires_once(self, day0):
        dispatcher = Dispatcher()
        dispatcher.load([_spec("once", "at(2024-01-02T00:00:00)", day0)], day0)

        assert len(dispatcher.tick(day0 + timedelta(days=2))) == 1
        assert dispatcher.tick(day0 + timedelta(days=30)) == []
        assert dispatcher.get("once") is not None

    def test_naive_now_rejected(self, daily):
        with pytest.raises(ValueError):
            daily.tick(datetime(2024, 1, 2))


class TestEnableDisable:
    def test_disable_after_due_instant_suppresses_emission(self, daily, day0):
        due = day0 + timedelta(days=1)
        daily.disable("daily")

        assert daily.tick(due + timedelta(minutes=1)) == []

    def test_disabled_at_load(self, day0):
        dispatcher = Dispatcher()
        dispatcher.load([_spec("off", "rate(1 day)", day0, enabled=False)], day0)

        assert dispatcher.tick(day0 + timedelta(days=5)) == []
        assert dispatcher.next_due() is None

    def test_reenable_does_not_replay_missed_instants(self, daily, day0):
        daily.tick(day0 + timedelta(days=1))
        daily.disable("daily")
        daily.tick(day0 + timedelta(days=2, hours=1))
        daily.enable("daily", day0 + timedelta(days=2, hours=3))

        assert daily.tick(day0 + timedelta(days=2, hours=4)) == []
        events = daily.tick(day0 + timedelta(days=3))
        assert [e.fired_at for e in events] == [day0 + timedelta(days=3)]
        assert events[0].missed == 0

    def test_unknown_schedule(self, daily):
        with pytest.raises(KeyError):
            daily.disable("missing")


class TestRegistration:
    def test_duplicate_name_rejected(self, daily, day0):
        with pytest.raises(ValueError, match="already registered"):
            daily.add(_spec("daily", "rate(2 days)", day0), day0)

    def test_remove(self, daily):
        assert daily.remove("daily") is True
        assert daily.remove("daily") is False
        assert daily.schedules == []

    def test_next_due(self, daily, day0):
        assert daily.next_due() == day0 + timedelta(days=1)
        daily.tick(day0 + timedelta(days=1))
        assert daily.next_due() == day0 + timedelta(days=2)
