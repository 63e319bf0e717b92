from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv


class ConfigError(Exception):
    pass


DEFAULT_BASE_URL = "https://fantasy.premierleague.com/api"
DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)"

# Label order matters: the first league is the primary one.
LEAGUE_LABELS = ("classic", "lms", "h2h")
DEFAULT_LEAGUE_IDS = {"classic": 1229613, "lms": 1190208, "h2h": 1190166}
LEAGUE_KINDS = ("classic", "h2h")


@dataclass(frozen=True)
class UpstreamConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 15.0
    invocation_deadline_seconds: float = 120.0
    fallback_period: int = 11
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(frozen=True)
class ScheduleConfig:
    enabled: bool = False
    cron: str = "0 */2 * * *"
    timezone: str = "UTC"


@dataclass(frozen=True)
class TrackedLeague:
    label: str
    league_id: int
    kind: str = "classic"


@dataclass(frozen=True)
class Settings:
    store_url: str | None
    store_key: str | None
    trigger_secret: str | None
    leagues: tuple[TrackedLeague, ...]
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    @property
    def primary(self) -> TrackedLeague:
        return self.leagues[0]

    @property
    def secondaries(self) -> tuple[TrackedLeague, ...]:
        return self.leagues[1:]

    def require_store(self) -> tuple[str, str]:
        missing = [name for name, v in (("DATABASE_URL", self.store_url), ("DATABASE_PASSWORD", self.store_key)) if not v]
        if missing:
            raise ConfigError(f"Missing store credentials: {', '.join(missing)} not set")
        assert self.store_url is not None and self.store_key is not None
        return self.store_url, self.store_key


def _project_root() -> Path:
    # .../src/fpl_sync/utils/config.py -> project root is 4 parents up.
    return Path(__file__).resolve().parents[3]


def _config_path(path: str | Path | None) -> Path | None:
    """
    Precedence:
    - explicit `path`
    - env `FPL_SYNC_CONFIG`
    - project default `config/fpl_sync.yaml` (only if it exists)
    """
    if path is not None:
        return Path(path)
    env_path = os.getenv("FPL_SYNC_CONFIG")
    if env_path:
        return Path(env_path)
    default = _project_root() / "config" / "fpl_sync.yaml"
    return default if default.exists() else None


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    try:
        return yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {p}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e


def _section(cfg: dict[str, Any], name: str, cfg_path: Path | None) -> dict[str, Any]:
    sec = cfg.get(name) or {}
    if not isinstance(sec, dict):
        raise ConfigError(f"'{name}' must be a mapping in {cfg_path}")
    return sec


def load_upstream_config(path: str | Path | None = None) -> UpstreamConfig:
    cfg_path = _config_path(path)
    cfg = load_yaml(cfg_path) if cfg_path else {}
    up = _section(cfg, "upstream", cfg_path)
    defaults = UpstreamConfig()
    try:
        return UpstreamConfig(
            base_url=str(up.get("base_url") or defaults.base_url).rstrip("/"),
            timeout_seconds=float(up.get("timeout_seconds", defaults.timeout_seconds)),
            invocation_deadline_seconds=float(up.get("invocation_deadline_seconds", defaults.invocation_deadline_seconds)),
            fallback_period=int(up.get("fallback_period", defaults.fallback_period)),
            user_agent=str(up.get("user_agent") or defaults.user_agent),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid upstream section in {cfg_path}: {e}") from e


def load_schedule_config(path: str | Path | None = None) -> ScheduleConfig:
    cfg_path = _config_path(path)
    cfg = load_yaml(cfg_path) if cfg_path else {}
    sched = _section(cfg, "schedule", cfg_path)
    defaults = ScheduleConfig()
    cron = str(sched.get("cron") or defaults.cron).strip()
    if len(cron.split()) != 5:
        raise ConfigError(f"schedule.cron must be a 5-field crontab expression, got {cron!r}")
    return ScheduleConfig(
        enabled=bool(sched.get("enabled", defaults.enabled)),
        cron=cron,
        timezone=str(sched.get("timezone") or defaults.timezone),
    )


def _league_from_env(label: str, env: Mapping[str, str]) -> TrackedLeague:
    id_var = f"FPL_{label.upper()}_LEAGUE_ID"
    kind_var = f"FPL_{label.upper()}_LEAGUE_KIND"
    raw_id = (env.get(id_var) or "").strip()
    try:
        league_id = int(raw_id) if raw_id else DEFAULT_LEAGUE_IDS[label]
    except ValueError as e:
        raise ConfigError(f"{id_var} must be numeric, got {raw_id!r}") from e
    kind = (env.get(kind_var) or "classic").strip().lower()
    if kind not in LEAGUE_KINDS:
        raise ConfigError(f"{kind_var} must be one of {LEAGUE_KINDS}, got {kind!r}")
    return TrackedLeague(label=label, league_id=league_id, kind=kind)


def load_settings(*, env: Mapping[str, str] | None = None, config_path: str | Path | None = None) -> Settings:
    """
    Secrets and league ids come from the environment (.env honoured),
    upstream/schedule tuning from YAML.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    return Settings(
        store_url=(env.get("DATABASE_URL") or None),
        store_key=(env.get("DATABASE_PASSWORD") or None),
        trigger_secret=(env.get("CRON_SECRET") or None),
        leagues=tuple(_league_from_env(label, env) for label in LEAGUE_LABELS),
        upstream=load_upstream_config(config_path),
        schedule=load_schedule_config(config_path),
    )
