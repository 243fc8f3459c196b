"""Tests for plantcare.core.reminders — summary text and rescheduling."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

from plantcare.core.reminders import ReminderService, build_reminder_summary
from plantcare.data.models import CareStep, CareStepType, Direction, LightType, Plant

NOW = datetime(2026, 10, 18, 10, 0)


def _plant(name, *steps):
    return Plant(
        name=name,
        preferred_light_direction=Direction.WEST,
        light_type=LightType.DIRECT,
        care_steps=list(steps),
    )


def _overdue_step(step_type=CareStepType.WATERING, custom_name=None):
    return CareStep(type=step_type, instructions="", frequency_days=3, custom_name=custom_name)


def _fresh_step():
    return CareStep(
        type=CareStepType.WATERING, instructions="", frequency_days=7,
        last_completed_date=NOW - timedelta(days=1),
    )


# ---------------------------------------------------------------------------
# Summary text
# ---------------------------------------------------------------------------


class TestBuildReminderSummary:
    def test_empty(self):
        assert build_reminder_summary([]) == ""

    def test_single_step(self):
        plant = _plant("Calathea", _overdue_step())
        assert build_reminder_summary([(plant, plant.care_steps[0])]) == "Calathea needs watering"

    def test_single_custom_step(self):
        plant = _plant("Fig", _overdue_step(CareStepType.CUSTOM, "Fertilize"))
        assert build_reminder_summary([(plant, plant.care_steps[0])]) == "Fig needs fertilize"

    def test_one_plant_many_steps(self):
        plant = _plant("Fern", _overdue_step(), _overdue_step(CareStepType.MISTING))
        pairs = [(plant, s) for s in plant.care_steps]
        assert build_reminder_summary(pairs) == "Fern has 2 overdue care steps"

    def test_many_plants(self):
        a = _plant("A", _overdue_step(), _overdue_step(CareStepType.DUSTING))
        b = _plant("B", _overdue_step())
        pairs = [(a, a.care_steps[0]), (a, a.care_steps[1]), (b, b.care_steps[0])]
        assert build_reminder_summary(pairs) == "2 plants need care (3 overdue steps)"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TestReminderService:
    def test_refresh_cancels_then_schedules(self, empty_store):
        empty_store.add_plant(_plant("Pothos", _overdue_step()))
        port = MagicMock()
        service = ReminderService(empty_store, port)

        summary = service.refresh(NOW)

        assert summary == "Pothos needs watering"
        port.cancel_reminders.assert_called_once()
        port.schedule_daily_reminder.assert_called_once_with("Pothos needs watering", 1)

    def test_nothing_overdue_only_cancels(self, empty_store):
        empty_store.add_plant(_plant("Pothos", _fresh_step()))
        port = MagicMock()

        assert ReminderService(empty_store, port).refresh(NOW) is None

        port.cancel_reminders.assert_called_once()
        port.schedule_daily_reminder.assert_not_called()

    def test_port_failure_is_logged(self, empty_store, caplog):
        empty_store.add_plant(_plant("Pothos", _overdue_step()))
        port = MagicMock()
        port.schedule_daily_reminder.side_effect = RuntimeError("queue closed")

        assert ReminderService(empty_store, port).refresh(NOW) is None
        assert "queue closed" in caplog.text

    def test_start_follows_store_mutations(self, empty_store):
        port = MagicMock()
        service = ReminderService(empty_store, port)
        service.start()
        port.schedule_daily_reminder.assert_not_called()

        empty_store.add_plant(_plant("Basil", _overdue_step()))

        port.schedule_daily_reminder.assert_called_once_with("Basil needs watering", 1)

    def test_stop_unsubscribes(self, empty_store):
        port = MagicMock()
        service = ReminderService(empty_store, port)
        service.start()
        service.stop()
        port.reset_mock()

        empty_store.add_plant(_plant("Basil", _overdue_step()))

        port.cancel_reminders.assert_not_called()

    def test_cancel_all(self, empty_store):
        port = MagicMock()
        ReminderService(empty_store, port).cancel_all()
        port.cancel_reminders.assert_called_once()


class TestPassingTime:
    def _watered_today(self, store):
        return store.add_plant(_plant("Calathea", CareStep(
            type=CareStepType.WATERING, instructions="", frequency_days=3,
            last_completed_date=NOW,
        )))

    def test_current_summary_follows_the_clock(self, empty_store):
        self._watered_today(empty_store)
        service = ReminderService(empty_store, MagicMock())

        assert service.current_summary(NOW) is None
        assert service.current_summary(NOW + timedelta(days=5)) == ("Calathea needs watering", 1)

    def test_daily_refresh_schedules_without_store_change(self, empty_store):
        self._watered_today(empty_store)
        port = MagicMock()
        service = ReminderService(empty_store, port)
        service.refresh(NOW)
        port.schedule_daily_reminder.assert_not_called()

        summary = service.refresh(NOW + timedelta(days=5))

        assert summary == "Calathea needs watering"
        port.schedule_daily_reminder.assert_called_once_with("Calathea needs watering", 1)
