from __future__ import annotations

from pathlib import Path

import pytest

from fpl_sync.utils.config import ConfigError, load_settings


def _write_cfg(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "fpl_sync.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_env_and_yaml_are_combined(tmp_path: Path) -> None:
    cfg = _write_cfg(
        tmp_path,
        "upstream:\n  timeout_seconds: 3\n  fallback_period: 7\nschedule:\n  enabled: true\n  cron: '15 * * * *'\n",
    )
    env = {
        "DATABASE_URL": "postgresql://u@db:5432/fpl",
        "DATABASE_PASSWORD": "k",
        "CRON_SECRET": "s",
        "FPL_CLASSIC_LEAGUE_ID": "42",
        "FPL_H2H_LEAGUE_KIND": "h2h",
    }
    s = load_settings(env=env, config_path=cfg)

    assert s.require_store() == ("postgresql://u@db:5432/fpl", "k")
    assert s.trigger_secret == "s"
    assert [(lg.label, lg.league_id, lg.kind) for lg in s.leagues] == [
        ("classic", 42, "classic"),
        ("lms", 1190208, "classic"),
        ("h2h", 1190166, "h2h"),
    ]
    assert s.primary.label == "classic"
    assert [lg.label for lg in s.secondaries] == ["lms", "h2h"]
    assert s.upstream.timeout_seconds == 3.0
    assert s.upstream.fallback_period == 7
    assert s.upstream.base_url == "https://fantasy.premierleague.com/api"
    assert s.schedule.enabled is True
    assert s.schedule.cron == "15 * * * *"


def test_defaults_without_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FPL_SYNC_CONFIG", str(_write_cfg(tmp_path, "")))
    s = load_settings(env={})
    assert s.upstream.fallback_period == 11
    assert s.schedule.enabled is False


def test_missing_store_credentials_raise_config_error(tmp_path: Path) -> None:
    s = load_settings(env={"DATABASE_URL": "postgresql://db/fpl"}, config_path=_write_cfg(tmp_path, ""))
    with pytest.raises(ConfigError, match="DATABASE_PASSWORD"):
        s.require_store()


def test_non_numeric_league_id_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="FPL_LMS_LEAGUE_ID"):
        load_settings(env={"FPL_LMS_LEAGUE_ID": "abc"}, config_path=_write_cfg(tmp_path, ""))


def test_unknown_league_kind_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(env={"FPL_CLASSIC_LEAGUE_KIND": "draft"}, config_path=_write_cfg(tmp_path, ""))


def test_bad_cron_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(env={}, config_path=_write_cfg(tmp_path, "schedule:\n  cron: 'every hour'\n"))


def test_missing_explicit_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(env={}, config_path=tmp_path / "nope.yaml")
