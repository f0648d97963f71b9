import importlib

import pytest
from django.conf import settings

import project.settings


@pytest.fixture
def reload_settings(monkeypatch):
    yield lambda: importlib.reload(project.settings)
    monkeypatch.undo()
    importlib.reload(project.settings)


def test_time_zone_defaults_to_utc(monkeypatch, reload_settings):
    monkeypatch.delenv("TIME_ZONE", raising=False)
    assert reload_settings().TIME_ZONE == "UTC"


def test_time_zone_follows_env(monkeypatch, reload_settings):
    monkeypatch.setenv("TIME_ZONE", "Asia/Kolkata")
    module = reload_settings()
    assert module.TIME_ZONE == "Asia/Kolkata"
    assert module.CELERY_TIMEZONE == "Asia/Kolkata"


def test_no_cache_backend_is_configured(reload_settings):
    assert not hasattr(reload_settings(), "CACHES")
    assert "redis" not in settings.CACHES["default"]["BACKEND"].lower()
