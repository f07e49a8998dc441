import json

from task_dispatcher.config import Settings


class TestSettings:
    def test_defaults_schedule_daily_association_check(self, monkeypatch):
        monkeypatch.delenv("SCHEDULES", raising=False)

        settings = Settings()

        (schedule,) = settings.schedules
        assert schedule.name == "check-author-associations"
        assert schedule.recurrence == "rate(1 day)"
        assert schedule.task == "checkAssociations"
        assert schedule.parameters == {"association_type": "Spatium Author"}
        assert settings.task_targets == {"checkAssociations": "lambda:checkAssociations"}
        assert settings.max_attempts == 3

    def test_schedules_from_environment(self, monkeypatch):
        monkeypatch.setenv(
            "SCHEDULES",
            json.dumps([{"name": "nightly", "recurrence": "cron(0 2 * * ? *)", "task": "report"}]),
        )
        monkeypatch.setenv("TASK_TARGETS", json.dumps({"report": "https://tasks.example.com/report"}))
        monkeypatch.setenv("MAX_ATTEMPTS", "5")

        settings = Settings()

        assert [s.name for s in settings.schedules] == ["nightly"]
        assert settings.schedules[0].enabled is True
        assert settings.task_targets["report"] == "https://tasks.example.com/report"
        assert settings.max_attempts == 5
