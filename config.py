"""
Configuration for the Champion Cart pricing client.

Settings are read from environment variables (optionally from a .env file):
- CHAMPION_CART_API_URL: Base URL of the pricing backend
- CHAMPION_CART_TIMEOUT: Request timeout in seconds
- CHAMPION_CART_DB_URL: SQLAlchemy URL of the local cart store
- CHAMPION_CART_DEFAULT_CITY: City used when the user has not picked one
- CHAMPION_CART_TIMEZONE: Zone of naive timestamps sent by the backend
- CHAMPION_CART_LOG_LEVEL: Root logging level
- CHAMPION_CART_TOKEN: Optional bearer token for authenticated endpoints
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000/api/"
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_DB_URL = "sqlite:///champion_cart.db"
DEFAULT_CITY = "תל אביב"
DEFAULT_TIMEZONE = "Asia/Jerusalem"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the pricing client"""
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    db_url: str = DEFAULT_DB_URL
    default_city: str = DEFAULT_CITY
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "INFO"
    auth_token: Optional[str] = None


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Returns:
        Settings with defaults for every unset variable

    Raises:
        ValueError: If CHAMPION_CART_TIMEOUT is not a positive number
    """
    load_dotenv()

    timeout = float(os.getenv("CHAMPION_CART_TIMEOUT", DEFAULT_TIMEOUT))
    if timeout <= 0:
        raise ValueError(f"CHAMPION_CART_TIMEOUT must be positive, got {timeout}")

    return Settings(
        api_url=os.getenv("CHAMPION_CART_API_URL", DEFAULT_API_URL),
        timeout=timeout,
        db_url=os.getenv("CHAMPION_CART_DB_URL", DEFAULT_DB_URL),
        default_city=os.getenv("CHAMPION_CART_DEFAULT_CITY", DEFAULT_CITY),
        timezone=os.getenv("CHAMPION_CART_TIMEZONE", DEFAULT_TIMEZONE),
        log_level=os.getenv("CHAMPION_CART_LOG_LEVEL", "INFO").upper(),
        auth_token=os.getenv("CHAMPION_CART_TOKEN") or None,
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get global settings instance.
    Load from the environment if not already loaded.
    """
    global _settings

    if _settings is None:
        _settings = load_settings()
        logger.debug(f"Settings loaded: api_url={_settings.api_url}")

    return _settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the configured log level to the root logger"""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
