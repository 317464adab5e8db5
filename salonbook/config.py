"""
Centralized configuration with environment variable overrides.

Scheduling granularity, ledger policies and dashboard limits are
configurable here. Nothing is hardcoded in the engine logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (true/false, yes/no, 1/0, on/off)."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class SchedulingConfig:
    """Slot grid and dashboard window settings."""

    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "UTC")
    # 0 steps the grid by the service duration
    slot_step_minutes: int = _safe_int("SLOT_STEP_MINUTES", "0")
    week_window_days: int = _safe_int("WEEK_WINDOW_DAYS", "7")
    popular_services_limit: int = _safe_int("POPULAR_SERVICES_LIMIT", "4")
    upcoming_bookings_limit: int = _safe_int("UPCOMING_BOOKINGS_LIMIT", "5")
    next_available_days: int = _safe_int("NEXT_AVAILABLE_DAYS", "14")


@dataclass(frozen=True)
class LedgerConfig:
    """Booking ledger policies and locking bounds."""

    guest_bookings_require_confirmation: bool = _safe_bool(
        "GUEST_BOOKINGS_REQUIRE_CONFIRMATION", "false"
    )
    allow_complete_from_pending: bool = _safe_bool("ALLOW_COMPLETE_FROM_PENDING", "true")
    lock_timeout_seconds: float = _safe_float("LOCK_TIMEOUT_SECONDS", "5.0")
    default_page_size: int = _safe_int("DEFAULT_PAGE_SIZE", "10")
    max_page_size: int = _safe_int("MAX_PAGE_SIZE", "100")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "salonbook")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    try:
        ZoneInfo(config.scheduling.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"DEFAULT_TIMEZONE is not a known IANA timezone: "
            f"{config.scheduling.default_timezone!r}"
        ) from None
    if config.scheduling.slot_step_minutes < 0:
        raise ValueError(
            f"SLOT_STEP_MINUTES must be >= 0, got {config.scheduling.slot_step_minutes}"
        )
    if config.scheduling.week_window_days < 1:
        raise ValueError(
            f"WEEK_WINDOW_DAYS must be >= 1, got {config.scheduling.week_window_days}"
        )
    if config.scheduling.popular_services_limit < 1:
        raise ValueError(
            "POPULAR_SERVICES_LIMIT must be >= 1, "
            f"got {config.scheduling.popular_services_limit}"
        )
    if config.scheduling.upcoming_bookings_limit < 0:
        raise ValueError(
            "UPCOMING_BOOKINGS_LIMIT must be >= 0, "
            f"got {config.scheduling.upcoming_bookings_limit}"
        )
    if config.scheduling.next_available_days < 1:
        raise ValueError(
            f"NEXT_AVAILABLE_DAYS must be >= 1, got {config.scheduling.next_available_days}"
        )
    if config.ledger.lock_timeout_seconds <= 0:
        raise ValueError(
            f"LOCK_TIMEOUT_SECONDS must be > 0, got {config.ledger.lock_timeout_seconds}"
        )
    if config.ledger.default_page_size < 1:
        raise ValueError(
            f"DEFAULT_PAGE_SIZE must be >= 1, got {config.ledger.default_page_size}"
        )
    if config.ledger.max_page_size < config.ledger.default_page_size:
        raise ValueError(
            "MAX_PAGE_SIZE must be >= DEFAULT_PAGE_SIZE, "
            f"got {config.ledger.max_page_size}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
