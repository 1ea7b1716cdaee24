import yaml

from prayer_badge.core.config import DEFAULT_CONFIG, Config


def test_creates_default_config(tmp_path):
    path = tmp_path / "config.yaml"
    config = Config(str(path))
    assert path.exists()
    assert config.get("countdown") == DEFAULT_CONFIG["countdown"]
    assert config.get("location") is None


def test_env_substitution_and_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("PRAYER_CITY", raising=False)
    monkeypatch.setenv("PRAYER_LAT", "21.42")
    (tmp_path / ".env").write_text("PRAYER_CITY='Makkah'\n# comment\n")
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "location": {"latitude": "${PRAYER_LAT}", "longitude": 39.83, "city": "$PRAYER_CITY"},
        "countdown": {"urgency_threshold_minutes": 5},
    }))
    config = Config(str(path))
    assert config.data["location"]["latitude"] == "21.42"
    assert config.data["location"]["city"] == "Makkah"
    assert config.data["countdown"] == {"period_seconds": 15, "urgency_threshold_minutes": 5}


def test_reload_notifies_only_on_change(tmp_path):
    path = tmp_path / "config.yaml"
    config = Config(str(path))
    seen = []
    config.register_change_callback(seen.append)

    config.reload()
    assert seen == []

    path.write_text(yaml.safe_dump({"calculation": {"method": "ISNA"}}))
    config.reload()
    assert len(seen) == 1
    assert seen[0]["calculation"] == {"method": "ISNA", "madhab": "Shafi"}


def test_invalid_config_keeps_previous(tmp_path):
    path = tmp_path / "config.yaml"
    config = Config(str(path))
    path.write_text("- just\n- a list\n")
    config.reload()
    assert config.data["countdown"]["period_seconds"] == 15
