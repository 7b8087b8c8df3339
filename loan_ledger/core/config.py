"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent
_CONFIG_PATH = _BASE_DIR / "config.yml"

STORAGE_BACKENDS = {"memory", "firestore"}


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file.

    Money tolerances and limits are kept in minor units (cents).
    """

    app_name: str = "Loan Ledger API"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    timezone: str = "America/Lima"
    currency: str = "PEN"
    rounding_tolerance_minor: int = 5
    late_fee_bps: int = 100
    min_digital_amount_minor: int = 200
    duplicate_window_seconds: int = 60
    advance_match_tolerance_minor: int = 1
    close_tolerance_minor: int = 1
    max_conflict_retries: int = 5
    payment_intent_ttl_minutes: int = 60
    storage_backend: str = "memory"
    collection_prefix: str = "ledger_"
    firebase_project_id: Optional[str] = None
    firebase_credentials_path: Optional[str] = None

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int, minimum: int = 0) -> int:
    """Convert value to int with a default fallback."""
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default
    if result < minimum:
        logger.warning("Integer value %s is below %s. Using default=%s", result, minimum, default)
        return default
    return result


def _to_minor(value: Any, default: int) -> int:
    """Convert a major-unit amount such as `0.05` into minor units."""
    try:
        amount = Decimal(str(value))
        if amount < 0 or amount != amount.quantize(Decimal("0.01")):
            raise InvalidOperation(str(value))
        return int(amount * 100)
    except (InvalidOperation, ValueError):
        logger.warning("Invalid money value '%s'. Using default=%s minor units", value, default)
        return default


def _to_timezone(value: Any, default: str) -> str:
    """Accept only IANA timezone names that resolve on this host."""
    try:
        ZoneInfo(str(value))
        return str(value)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s'. Using default=%s", value, default)
        return default


def _read_config(path: Path) -> dict:
    """Read and parse YAML configuration."""
    try:
        with path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", path)
        return {}
    except yaml.YAMLError:
        logger.exception("Failed to parse config file %s. Falling back to defaults.", path)
        return {}


def load_settings(path: Optional[Union[str, Path]] = None) -> AppSettings:
    """Load and validate application settings from `config.yml`.

    Args:
        path: Optional override for the YAML file location.
    """
    config = _read_config(Path(path) if path else _CONFIG_PATH)
    defaults = AppSettings()
    app_cfg = config.get("app") or {}
    ledger_cfg = config.get("ledger") or {}
    storage_cfg = config.get("storage") or {}
    firebase_cfg = storage_cfg.get("firebase") or {}

    storage_backend = str(storage_cfg.get("backend", defaults.storage_backend)).lower()
    if storage_backend not in STORAGE_BACKENDS:
        logger.warning("Unknown storage backend '%s'. Using memory.", storage_backend)
        storage_backend = "memory"

    return AppSettings(
        app_name=str(app_cfg.get("name", defaults.app_name)),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", defaults.host)),
        port=_to_int(app_cfg.get("port", defaults.port), defaults.port, minimum=1),
        timezone=_to_timezone(ledger_cfg.get("timezone", defaults.timezone), defaults.timezone),
        currency=str(ledger_cfg.get("currency", defaults.currency)).upper(),
        rounding_tolerance_minor=_to_minor(
            ledger_cfg.get("rounding_tolerance", "0.05"), defaults.rounding_tolerance_minor
        ),
        late_fee_bps=_to_int(ledger_cfg.get("late_fee_bps", defaults.late_fee_bps), defaults.late_fee_bps),
        min_digital_amount_minor=_to_minor(
            ledger_cfg.get("min_digital_amount", "2.00"), defaults.min_digital_amount_minor
        ),
        duplicate_window_seconds=_to_int(
            ledger_cfg.get("duplicate_window_seconds", defaults.duplicate_window_seconds),
            defaults.duplicate_window_seconds,
        ),
        advance_match_tolerance_minor=_to_minor(
            ledger_cfg.get("advance_match_tolerance", "0.01"), defaults.advance_match_tolerance_minor
        ),
        close_tolerance_minor=_to_minor(ledger_cfg.get("close_tolerance", "0.01"), defaults.close_tolerance_minor),
        max_conflict_retries=_to_int(
            ledger_cfg.get("max_conflict_retries", defaults.max_conflict_retries),
            defaults.max_conflict_retries,
            minimum=1,
        ),
        payment_intent_ttl_minutes=_to_int(
            ledger_cfg.get("payment_intent_ttl_minutes", defaults.payment_intent_ttl_minutes),
            defaults.payment_intent_ttl_minutes,
            minimum=1,
        ),
        storage_backend=storage_backend,
        collection_prefix=str(storage_cfg.get("collection_prefix", defaults.collection_prefix) or ""),
        firebase_project_id=firebase_cfg.get("project_id"),
        firebase_credentials_path=firebase_cfg.get("credentials_path"),
    )
