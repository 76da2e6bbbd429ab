"""Configuration management for the deceptive site monitor."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONFIG_PATH = "config.yaml"


class KeitaroSettings(BaseModel):
    """Domain source (Keitaro tracker API) settings."""
    model_config = ConfigDict(frozen=True)

    api_url: str = Field(description="Keitaro admin API base URL")
    api_key: str = Field(description="Keitaro API key")
    request_timeout_ms: int = Field(default=15000, gt=0, description="Domain fetch timeout")


class TelegramSettings(BaseModel):
    """Notification sink settings."""
    model_config = ConfigDict(frozen=True)

    bot_token: str = Field(description="Telegram bot token")
    chat_id: str = Field(description="Telegram chat to notify")


class CheckSettings(BaseModel):
    """Browser check settings."""
    model_config = ConfigDict(frozen=True)

    browser_timeout_ms: int = Field(default=30000, gt=0, description="Per-check navigation timeout")
    max_concurrent_checks: int = Field(default=10, ge=1, description="Domains checked in parallel per batch")
    settle_ms: int = Field(default=2000, ge=0, description="Wait after page load for interstitials to render")
    batch_pause_ms: int = Field(default=1000, ge=0, description="Pause between batches")
    headless: bool = Field(default=True, description="Run browsers headless")


class ScheduleSettings(BaseModel):
    """Scheduling settings."""
    model_config = ConfigDict(frozen=True)

    interval_minutes: int = Field(default=30, ge=1, description="Minutes between scheduled runs")
    startup_delay_seconds: float = Field(default=5.0, ge=0, description="Delay before the first run")


class MonitorConfig(BaseModel):
    """Main configuration, validated once at startup and immutable afterwards."""
    model_config = ConfigDict(frozen=True)

    keitaro: KeitaroSettings
    telegram: TelegramSettings
    check: CheckSettings = Field(default_factory=CheckSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    log_level: str = Field(default="INFO", description="Logging level")
    warning_patterns: List[Dict[str, Any]] = Field(
        default_factory=list, description="Optional replacement for the built-in warning pattern table"
    )


# env var -> (section, key, type)
_ENV_OVERRIDES = {
    "KEITARO_API_URL": ("keitaro", "api_url", str),
    "KEITARO_API_KEY": ("keitaro", "api_key", str),
    "REQUEST_TIMEOUT_MS": ("keitaro", "request_timeout_ms", int),
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token", str),
    "TELEGRAM_CHAT_ID": ("telegram", "chat_id", str),
    "BROWSER_TIMEOUT_MS": ("check", "browser_timeout_ms", int),
    "MAX_CONCURRENT_CHECKS": ("check", "max_concurrent_checks", int),
    "CHECK_INTERVAL_MINUTES": ("schedule", "interval_minutes", int),
    "LOG_LEVEL": (None, "log_level", str),
}


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


def load_config(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> MonitorConfig:
    """Load configuration from YAML (if present) with environment variable overrides."""
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = env.get("DECEPTIVE_CHECKS_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: Dict[str, Any] = {}
    path = Path(config_path)
    if path.exists():
        config_data = _read_yaml(path)

    for env_name, (section, key, cast) in _ENV_OVERRIDES.items():
        raw = env.get(env_name)
        if raw is None or not str(raw).strip():
            continue
        try:
            value = cast(str(raw).strip())
        except ValueError as exc:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from exc
        if section is None:
            config_data[key] = value
            continue
        target = config_data.get(section)
        if not isinstance(target, dict):
            target = {}
        config_data[section] = {**target, key: value}

    return MonitorConfig(**config_data)
