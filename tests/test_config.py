from datetime import date

import pytest

from ipo_sync.config import Settings
from ipo_sync.core.errors import ConfigError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ("DATABASE_URL", "IPO_SYNC_CUTOFF_DATE", "IPO_SYNC_HTTP_TIMEOUT", "IPO_SYNC_SCHEDULER",
                "IPO_SYNC_LOG_LEVEL", "IPO_SYNC_SQLITE_PATH", "IPO_SYNC_CONFIG"):
        monkeypatch.delenv(key, raising=False)
    # keep a stray .env or config.yaml in the cwd out of the picture
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_defaults(clean_env, tmp_path):
    settings = Settings.from_env(tmp_path / "missing.yaml")
    assert settings.database_url is None
    assert settings.cutoff_date == date(2025, 1, 1)
    assert settings.mainboard_interval_seconds == 900
    assert settings.sme_market_hours_utc == (5, 12)


def test_env_values(clean_env, tmp_path):
    clean_env.setenv("IPO_SYNC_CUTOFF_DATE", "2024-04-01")
    clean_env.setenv("IPO_SYNC_SCHEDULER", "off")
    clean_env.setenv("IPO_SYNC_HTTP_TIMEOUT", "30")
    clean_env.setenv("IPO_SYNC_LOG_LEVEL", "debug")
    settings = Settings.from_env(tmp_path / "missing.yaml")
    assert settings.cutoff_date == date(2024, 4, 1)
    assert settings.scheduler_enabled is False
    assert settings.http_timeout == 30.0
    assert settings.log_level == "DEBUG"


def test_yaml_overlay(clean_env, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("sme_interval_seconds: 60\nsme_market_hours_utc: [4, 10]\nnote: kept\n")
    settings = Settings.from_env(path)
    assert settings.sme_interval_seconds == 60
    assert settings.sme_market_hours_utc == (4, 10)
    assert settings.extra == {"note": "kept"}


@pytest.mark.parametrize("env", [("IPO_SYNC_CUTOFF_DATE", "01/01/2025"), ("IPO_SYNC_HTTP_TIMEOUT", "soon")])
def test_invalid_env_raises(clean_env, tmp_path, env):
    clean_env.setenv(*env)
    with pytest.raises(ConfigError):
        Settings.from_env(tmp_path / "missing.yaml")


def test_invalid_yaml_hours(clean_env, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("sme_market_hours_utc: [4, 30]\n")
    with pytest.raises(ConfigError):
        Settings.from_env(path)
