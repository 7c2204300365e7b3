"""Application configuration — environment variables and derived constants.

Loads the bot token and the polling settings from the environment via
``python-dotenv``.  All values are resolved at import time so ``main.py`` can
``from config import …`` without repeated lookups.  The library packages
(``sdk/``, ``bot/``) never import this module.
"""

# ── stdlib ───────────────────────────────────────────────────────────────────
import os

# ── third-party ──────────────────────────────────────────────────────────────
from dotenv import load_dotenv

# ── core ─────────────────────────────────────────────────────────────────────
from core.logger import TgwireLogger

# ── Environment bootstrap ────────────────────────────────────────────────────
load_dotenv()

# ── Logger (used for startup diagnostics at the bottom of this module) ───────
logger = TgwireLogger.get_logger()


# ── Helper functions (private) ───────────────────────────────────────────────


def _parse_number(name: str, default, cast=int, minimum=0):
    """Read a numeric variable; invalid or out-of-range values fall back to *default*."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Invalid numeric setting, using default", extra={"setting": name, "default": default})
        return default
    if value < minimum:
        logger.warning("Setting out of range, using default", extra={"setting": name, "default": default})
        return default
    return value


def _parse_list(raw: str | None) -> list[str] | None:
    """Parse a comma-separated string (e.g. ``"message,callback_query"``).

    Returns ``None`` when the variable is unset so the server default applies.
    """
    if raw is None:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


# ── Public constants ─────────────────────────────────────────────────────────

BOT_TOKEN: str | None = os.environ.get("BOT_TOKEN")
API_BASE_URL: str = os.environ.get("API_BASE_URL") or "https://api.telegram.org"
POLL_INTERVAL: float = _parse_number("POLL_INTERVAL", 0.025, cast=float)
POLL_LIMIT: int | None = _parse_number("POLL_LIMIT", None, minimum=1)
POLL_TIMEOUT: int | None = _parse_number("POLL_TIMEOUT", None)
REQUEST_TIMEOUT: float | None = _parse_number("REQUEST_TIMEOUT", None, cast=float, minimum=1)
LAST_N_UPDATES: int | None = _parse_number("LAST_N_UPDATES", None, minimum=1)
ALLOWED_UPDATES: list[str] | None = _parse_list(os.environ.get("ALLOWED_UPDATES"))

if POLL_LIMIT is not None and POLL_LIMIT > 100:
    logger.warning("POLL_LIMIT above 100, clamping", extra={"setting": "POLL_LIMIT"})
    POLL_LIMIT = 100


# ── Startup diagnostics ─────────────────────────────────────────────────────

if BOT_TOKEN:
    logger.info("Config loaded — BOT_TOKEN is set")
else:
    logger.warning("Config loaded — BOT_TOKEN is NOT set")

logger.info(
    "Polling settings resolved",
    extra={
        "api_base_url": API_BASE_URL,
        "poll_interval": POLL_INTERVAL,
        "poll_limit": POLL_LIMIT,
        "poll_timeout": POLL_TIMEOUT,
        "request_timeout": REQUEST_TIMEOUT,
        "last_n_updates": LAST_N_UPDATES,
        "allowed_updates": ALLOWED_UPDATES,
    },
)
