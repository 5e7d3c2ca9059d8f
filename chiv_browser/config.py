import os
from pathlib import Path

from dotenv import load_dotenv

from chiv_browser.models import UNSET, FilterCriteria, GameType, Perspective

load_dotenv(override=True)

STEAM_API_KEY = os.getenv("STEAM_API_KEY")
GEOIP_KEY = os.getenv("GEOIP_KEY")
GEOIP_DB = Path(os.getenv("GEOIP_DB", "./GeoLite2-City.mmdb"))

DEBUG = os.getenv("BROWSER_DEBUG") is not None

APP_ID = 219640
GAME_DIR = "chivalrymedievalwarfare"
QUERY_FILTER = rf"\gamedir\{GAME_DIR}"
QUERY_LIMIT = os.getenv("QUERY_LIMIT", "10000")

WORKER_COUNT = int(os.getenv("WORKER_COUNT", "8"))
A2S_TIMEOUT = float(os.getenv("A2S_TIMEOUT", "3.0"))

# countries formatted as "City State, Country"
HOME_COUNTRY = os.getenv("HOME_COUNTRY", "US")
JITTER_MAX = float(os.getenv("JITTER_MAX", "0.1"))


def _env_bool(key: str) -> bool:
    return os.getenv(key, "").lower() in ("1", "true", "yes")


def _env_int(key: str, default: int = UNSET) -> int:
    val = os.getenv(key)
    if not val:
        return default
    return int(val)


def criteria_from_env() -> FilterCriteria:
    """
    Builds the filters for a command line refresh from FILTER_* variables.
    """
    return FilterCriteria(
        name=os.getenv("FILTER_NAME", ""),
        game_type=GameType(os.getenv("FILTER_GAME_TYPE", "ALL").upper()),
        hide_passworded=_env_bool("FILTER_HIDE_PASSWORD"),
        hide_empty=_env_bool("FILTER_HIDE_EMPTY"),
        hide_full=_env_bool("FILTER_HIDE_FULL"),
        max_ping=_env_int("FILTER_MAX_PING"),
        min_rank=_env_int("FILTER_MIN_RANK"),
        max_rank=_env_int("FILTER_MAX_RANK"),
        perspective=Perspective(_env_int("FILTER_PERSPECTIVE", Perspective.ANY)),
        official_only=_env_bool("FILTER_OFFICIAL_ONLY"),
        worker_count=WORKER_COUNT,
    )
