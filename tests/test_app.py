import yaml

import pytest

from prayer_badge.core.db import close_db
from prayer_badge.core.app import PrayerBadgeApp
from prayer_badge.prayer.sync import BADGE_ALARM_NAME

from helpers import FakeCalculator


@pytest.fixture
def app(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "location": {"latitude": 21.42, "longitude": 39.83, "city": "Makkah", "country": "Saudi Arabia"},
        "logging": {"level": "DEBUG", "file": str(tmp_path / "logs" / "prayer_badge.log")},
    }))
    app = PrayerBadgeApp(
        config_path=str(path),
        watch_config=False,
        calculator=FakeCalculator(),
        db_url=f"sqlite:///{tmp_path / 'records.db'}",
    )
    yield app
    app.stop()
    close_db()


def test_background_mode_arms_alarm(app):
    app.start("background")
    assert [a["name"] for a in app.task_manager.active_alarms()] == [BADGE_ALARM_NAME]
    assert app.urgency_threshold == 10


def test_run_mode_computes_and_badges(app):
    app.start("run")
    assert app.foreground.event_set is not None
    assert not app.surface.badge.cleared
    assert "countdown" in app.synchronizer.loops


def test_unknown_mode(app):
    with pytest.raises(ValueError):
        app.start("sideways")
