"""
Configuration constants for the IGDB game recommender.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """Integer counterpart of _get_float_env."""
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Parse a boolean flag such as 'true'/'0'/'off'; unknown values keep the default."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning(f"Invalid {key}='{raw}', using default {default}")
    return default


# Twitch / IGDB credentials
TWITCH_CLIENT_ID = os.environ.get("TWITCH_CLIENT_ID")
TWITCH_CLIENT_SECRET = os.environ.get("TWITCH_CLIENT_SECRET")

# Endpoints
IGDB_API_URL = os.environ.get("IGDB_API_URL", "https://api.igdb.com/v4").rstrip("/")
TWITCH_TOKEN_URL = os.environ.get("TWITCH_TOKEN_URL", "https://id.twitch.tv/oauth2/token")

# HTTP behaviour
HTTP_TIMEOUT = _get_float_env("IGDB_REC_HTTP_TIMEOUT", 30.0, min_val=1.0)
MAX_HTTP_RETRIES = _get_int_env("IGDB_REC_MAX_RETRIES", 3, min_val=1)
RETRY_INITIAL_DELAY = 1.0
RETRY_BACKOFF_FACTOR = 2.0
AUTH_EXPIRY_MARGIN = 60  # Refresh the token this many seconds before it expires

# Query limits (IGDB caps a single query at 500 results)
QUERY_BATCH_SIZE = 500
SIMILAR_GAMES_LIMIT = 100
SEARCH_LIMIT = 20

# Candidate retrieval
CANDIDATE_LIMIT = min(_get_int_env("IGDB_REC_CANDIDATE_LIMIT", 500, min_val=1), QUERY_BATCH_SIZE)
CANDIDATE_MIN_RATING = _get_float_env("IGDB_REC_MIN_RATING", 6.0, min_val=0.0)

# Profile building
# Negative ratings express aversion; disable to reject them outright.
ALLOW_NEGATIVE_RATINGS = _get_bool_env("IGDB_REC_ALLOW_NEGATIVE_RATINGS", True)
PROFILE_ZERO_TOLERANCE = 1e-12

# Recommendation output
EXCLUDE_RATED_GAMES = _get_bool_env("IGDB_REC_EXCLUDE_RATED", True)
DEFAULT_RECOMMENDATION_LIMIT = 20
