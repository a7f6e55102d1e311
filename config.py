"""
Configuration Module
====================
Storefront settings read from the environment (and .env, when present).

✅ Tax rate and delivery fee
✅ Menu / orders / carts locations
✅ Checkout limits
✅ Instrumentation and server settings

Every value is checked when Config is built, so a bad deployment fails at
startup instead of at checkout.
"""

import os
import logging
from typing import Any, Dict, Optional
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


# ============================================================================
# ENVIRONMENT
# ============================================================================

def load_environment():
    """Merge .env from the working directory into os.environ (existing vars win)."""
    env_file = Path(".env")
    if not env_file.exists():
        logger.debug("No .env file, reading process environment only")
        return

    load_dotenv(env_file)
    logger.info(f"Environment loaded from {env_file.resolve()}")


load_environment()


class ConfigurationError(Exception):
    """A setting is missing or out of range."""
    pass


# ============================================================================
# READERS
# ============================================================================

def _env_str(name: str, fallback: Optional[str] = None) -> Optional[str]:
    """Trimmed value of an env var, or fallback when unset or blank."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return fallback
    return raw.strip()


def _env_flag(name: str, fallback: bool = False) -> bool:
    raw = _env_str(name)
    if raw is None:
        return fallback
    return raw.lower() in ("1", "true", "yes", "on")


def _env_int(name: str, fallback: int) -> int:
    """
    Raises:
        ConfigurationError: value is not a whole number
    """
    raw = _env_str(name)
    if raw is None:
        return fallback
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, fallback: float) -> float:
    """
    Raises:
        ConfigurationError: value is not a number
    """
    raw = _env_str(name)
    if raw is None:
        return fallback
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


# ============================================================================
# PRICING
# ============================================================================

class PricingConfig:
    """Tax and delivery charges applied by the cart aggregator."""

    def __init__(self):
        self.tax_rate = _env_float("TAX_RATE", 0.08)
        self.delivery_fee = _env_float("DELIVERY_FEE", 4.99)

        if not 0.0 <= self.tax_rate < 1.0:
            raise ConfigurationError(
                f"TAX_RATE must be in [0, 1): {self.tax_rate}"
            )

        if self.delivery_fee < 0:
            raise ConfigurationError(
                f"DELIVERY_FEE must not be negative: {self.delivery_fee}"
            )


# ============================================================================
# STORAGE
# ============================================================================

class StorageConfig:
    """Flat-file storage locations."""

    def __init__(self):
        self.data_dir = Path(_env_str("DATA_DIR", "data"))

        self.menu_path = Path(_env_str(
            "MENU_PATH",
            str(Path(__file__).parent / "data" / "menu.json")
        ))
        self.orders_dir = Path(_env_str("ORDERS_DIR", str(self.data_dir / "orders")))
        self.carts_dir = Path(_env_str("CARTS_DIR", str(self.data_dir / "carts")))


# ============================================================================
# CHECKOUT LIMITS
# ============================================================================

class CheckoutLimits:
    """Bounds enforced on submitted orders."""

    def __init__(self):
        self.max_order_items = _env_int("MAX_ORDER_ITEMS", 50)
        self.max_item_quantity = _env_int("MAX_ITEM_QUANTITY", 20)
        self.max_string_length = _env_int("MAX_STRING_LENGTH", 500)

        for name, value in (
            ("MAX_ORDER_ITEMS", self.max_order_items),
            ("MAX_ITEM_QUANTITY", self.max_item_quantity),
            ("MAX_STRING_LENGTH", self.max_string_length),
        ):
            if value < 1:
                raise ConfigurationError(f"{name} must be at least 1: {value}")


# ============================================================================
# INSTRUMENTATION
# ============================================================================

class PerformanceConfig:
    """Timing history size and verbosity."""

    def __init__(self):
        self.max_metrics = _env_int("PERF_MAX_METRICS", 1000)
        self.log_fast_operations = _env_flag("PERF_LOG_FAST_OPERATIONS")

        if self.max_metrics < 1:
            raise ConfigurationError(
                f"PERF_MAX_METRICS must be at least 1: {self.max_metrics}"
            )


# ============================================================================
# HTTP SERVER
# ============================================================================

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ServerConfig:
    """Bind address, CORS and log level for server.py."""

    def __init__(self):
        self.host = _env_str("HOST", "127.0.0.1")
        self.port = _env_int("PORT", 8000)
        self.cors_origins = [
            origin.strip() for origin in _env_str("CORS_ORIGINS", "*").split(",") if origin.strip()
        ]
        self.log_level = _env_str("LOG_LEVEL", "INFO").upper()

        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}: {self.log_level}"
            )

        if not 0 < self.port < 65536:
            raise ConfigurationError(f"PORT out of range: {self.port}")


# ============================================================================
# CONFIG
# ============================================================================

class Config:
    """All settings, validated together."""

    def __init__(self):
        """
        Raises:
            ConfigurationError: first invalid setting
        """
        try:
            self.pricing = PricingConfig()
            self.storage = StorageConfig()
            self.checkout = CheckoutLimits()
            self.performance = PerformanceConfig()
            self.server = ServerConfig()
        except ConfigurationError as e:
            logger.error(f"Invalid configuration: {e}")
            raise

        logger.debug("Configuration validated")

    def get_safe_summary(self) -> Dict[str, Any]:
        """Settings worth printing at startup."""
        return {
            "pricing": {
                "tax_rate": self.pricing.tax_rate,
                "delivery_fee": self.pricing.delivery_fee,
            },
            "storage": {
                "menu_path": str(self.storage.menu_path),
                "orders_dir": str(self.storage.orders_dir),
                "carts_dir": str(self.storage.carts_dir),
            },
            "checkout": {
                "max_order_items": self.checkout.max_order_items,
                "max_item_quantity": self.checkout.max_item_quantity,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "log_level": self.server.log_level,
            },
        }


_config: Optional[Config] = None


def get_config() -> Config:
    """
    Process-wide settings, built on first use.

    Raises:
        ConfigurationError: If any setting is invalid
    """
    global _config

    if _config is None:
        _config = Config()

    return _config


def reload_config() -> Config:
    """Re-read .env and the environment (tests, SIGHUP-style reloads)."""
    global _config
    load_environment()
    _config = Config()
    logger.info("Configuration reloaded")
    return _config


def validate_configuration():
    """
    Build the config and log what the server will run with.

    Raises:
        ConfigurationError: If any setting is invalid
    """
    summary = get_config().get_safe_summary()

    logger.info(
        f"Pricing: tax {summary['pricing']['tax_rate']:.2%}, "
        f"delivery ${summary['pricing']['delivery_fee']:.2f}"
    )
    logger.info(f"Menu: {summary['storage']['menu_path']}")
    logger.info(f"Orders: {summary['storage']['orders_dir']}")
    logger.info(f"Carts: {summary['storage']['carts_dir']}")
    logger.info(
        f"Checkout limits: {summary['checkout']['max_order_items']} items, "
        f"quantity {summary['checkout']['max_item_quantity']}"
    )
    logger.info(
        f"Listening on {summary['server']['host']}:{summary['server']['port']} "
        f"(log level {summary['server']['log_level']})"
    )
