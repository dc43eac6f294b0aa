"""Configuration loader for the SIRI-VM to GTFS-Realtime bridge."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

DEFAULT_GTFS_RESOURCE_URL = "https://www.data.gouv.fr/api/1/datasets/r/8d4c3e5c-1702-4649-b47a-b16c6016dcc6"
DEFAULT_SIRI_ENDPOINT = (
    "https://navineo.filibus.sae-chartres.ovh:4435/ProfilSiri2_0pIDF2_4Producer-FILIBUS/SiriServices"
)


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    gtfs_resource_url: str
    siri_endpoint: str
    requestor_ref: str
    port: int
    siri_rate_limit_seconds: float
    sweep_threshold_seconds: float
    sweep_interval_seconds: float
    staleness_check_seconds: float
    monitored_lines_refresh_seconds: float
    request_timeout_seconds: float
    timezone: ZoneInfo
    log_level: str


def _positive(env: Mapping[str, str], key: str, default, cast=float):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Load configuration from the environment.

    A local .env file is merged into the process environment first.
    Passing an explicit mapping skips both.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    timezone_name = env.get("OPERATOR_TIMEZONE") or "Europe/Paris"
    try:
        timezone = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown OPERATOR_TIMEZONE {timezone_name!r}") from exc

    return AppConfig(
        gtfs_resource_url=env.get("GTFS_RESOURCE_URL") or DEFAULT_GTFS_RESOURCE_URL,
        siri_endpoint=env.get("SIRI_ENDPOINT") or DEFAULT_SIRI_ENDPOINT,
        requestor_ref=env.get("SIRI_REQUESTOR_REF") or "opendata",
        port=_positive(env, "PORT", 3000, cast=int),
        siri_rate_limit_seconds=_positive(env, "SIRI_RATELIMIT_SECONDS", 2.5),
        sweep_threshold_seconds=_positive(env, "SWEEP_THRESHOLD_SECONDS", 600.0),
        sweep_interval_seconds=_positive(env, "SWEEP_INTERVAL_SECONDS", 60.0),
        staleness_check_seconds=_positive(env, "STALENESS_CHECK_SECONDS", 300.0),
        monitored_lines_refresh_seconds=_positive(env, "MONITORED_LINES_REFRESH_SECONDS", 7200.0),
        request_timeout_seconds=_positive(env, "REQUEST_TIMEOUT_SECONDS", 30.0),
        timezone=timezone,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
