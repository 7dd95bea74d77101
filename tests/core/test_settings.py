"""Tests for taskspine.core.settings.

Covers:
- TaskSpineSettings defaults
- TASKSPINE_* environment variable override
- Field validation
- Cached get_settings()
"""

import pytest
from pydantic import ValidationError

from taskspine.core.settings import TaskSpineSettings, WorkerOptions, get_settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for key in ("STORAGE_DSN", "TIMEZONE", "LOG_FORMAT", "TASK_LIMIT", "LOCK_DSN"):
        monkeypatch.delenv(f"TASKSPINE_{key}", raising=False)
    # no stray .env file
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        s = TaskSpineSettings()
        assert s.timezone == "UTC"
        assert s.storage_dsn == "memory://first_in_first_out"
        assert s.lock_dsn == "memory://"
        assert s.max_clock_drift_seconds == 1.0
        assert s.sleep_duration_delay == 1
        assert s.task_limit is None

    def test_worker_options_default_delay(self):
        assert WorkerOptions().sleep_duration_delay == 1


class TestEnvOverride:
    def test_storage_dsn_from_env(self, monkeypatch):
        monkeypatch.setenv("TASKSPINE_STORAGE_DSN", "sqlite:///tasks.db")
        assert TaskSpineSettings().storage_dsn == "sqlite:///tasks.db"

    def test_task_limit_from_env(self, monkeypatch):
        monkeypatch.setenv("TASKSPINE_TASK_LIMIT", "3")
        assert TaskSpineSettings().task_limit == 3

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("TASKSPINE_TIMEZONE=Europe/Paris\n")
        assert TaskSpineSettings().timezone == "Europe/Paris"


class TestValidation:
    def test_unknown_timezone(self, monkeypatch):
        monkeypatch.setenv("TASKSPINE_TIMEZONE", "Mars/Olympus")
        with pytest.raises(ValidationError):
            TaskSpineSettings()

    def test_log_format(self):
        with pytest.raises(ValidationError):
            TaskSpineSettings(log_format="xml")

    def test_limits_must_be_positive(self):
        with pytest.raises(ValidationError):
            TaskSpineSettings(task_limit=0)


class TestGetSettings:
    def test_cached(self):
        first = get_settings(_force_reload=True)
        assert get_settings() is first

    def test_force_reload(self):
        first = get_settings(_force_reload=True)
        assert get_settings(_force_reload=True) is not first
