# gamedeals/config/settings.py

"""Central configuration for the gamedeals browser."""

import math
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(ValueError):
    """An environment variable holds a value gamedeals cannot use."""


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    """Read a float tunable from the environment, falling back to *default*."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    """Read an int tunable from the environment, falling back to *default*."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    """Read one of a fixed set of keywords (case-insensitive)."""
    raw = (os.getenv(name) or default).strip().lower()
    if raw not in choices:
        raise ConfigurationError(
            f"{name} must be one of {', '.join(choices)}; got {raw!r}"
        )
    return raw


class Settings:
    """Central configuration for the gamedeals browser.

    Values are read once at import and treated as immutable for the
    lifetime of the process.
    """

    # --- Credentials ---
    API_KEY: str | None = os.getenv("ITAD_API_KEY") or None

    # --- Upstream API ---
    API_BASE_URL: str = "https://api.isthereanydeal.com"
    COUNTRY: str = os.getenv("COUNTRY", "US")
    PAGE_SIZE: int = _env_int("PAGE_SIZE", 50, minimum=1)
    MAX_SEARCH_RESULTS: int = 100       # Hard cap of /games/search/v1
    REQUEST_TIMEOUT: float = _env_float("REQUEST_TIMEOUT", 10.0, minimum=0.1)
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
        "User-Agent": "gamedeals/0.1 (+terminal deal browser)",
    }

    # --- Rate limiting ---
    RATE_LIMIT_MAX_REQUESTS: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 5, minimum=1)
    RATE_LIMIT_WINDOW_SECONDS: float = _env_float(
        "RATE_LIMIT_WINDOW_SECONDS", 1.0, minimum=0.001
    )
    RATE_LIMIT_POLICIES: tuple[str, ...] = ("wait", "fail")
    RATE_LIMIT_POLICY: str = _env_choice(
        "RATE_LIMIT_POLICY", "wait", RATE_LIMIT_POLICIES
    )

    # --- Input handling ---
    DEBOUNCE_SECONDS: float = _env_float("DEBOUNCE_SECONDS", 0.3, minimum=0.0)
    DEFAULT_SORT: str = os.getenv("DEFAULT_SORT", "price")

    # --- Caching ---
    CACHE_FRESHNESS_SECONDS: float = _env_float(
        "CACHE_FRESHNESS_SECONDS", 120.0, minimum=0.0
    )
    CACHE_CAPACITY: int = _env_int("CACHE_CAPACITY", 64, minimum=1)

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    LOGS_DIR: Path = BASE_DIR / "logs"
    LOG_KEEP_RUNS: int = _env_int("LOG_KEEP_RUNS", 20, minimum=1)
