"""
Configuration constants for the cfrank recommendation core.

This module centralizes reserved keys, sentinels and defaults.
Defaults can be overridden via environment variables.
"""
import os
import logging

logger = logging.getLogger(__name__)


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


def _get_int_env(key: str, default: int, min_val: int | None = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value; None leaves range checks to the caller

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if min_val is not None and val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Parse a true/false style environment variable, falling back to default."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid {key}='{raw}', using default {default}")
    return default


# Reserved row keys for the statistics records written at the end of a pass.
# All negative, so they never collide with a row or column index.
NORM_VECTOR_MARKER = -2**31
MAXVALUE_VECTOR_MARKER = -2**31 + 1
NUM_NON_ZERO_ENTRIES_VECTOR_MARKER = -2**31 + 2

# Threshold value meaning "no pruning threshold configured"
NO_THRESHOLD = float("-inf")

# Starting value for per-row maxima (smallest positive double)
MIN_POSITIVE_DOUBLE = 5e-324

# Preference value carried by every record in boolean (implicit) data
BOOLEAN_PREF_VALUE = 1.0

# Predictions need at least this many contributing neighbors
MIN_CONTRIBUTIONS_PER_PREDICTION = 2

# Recommender Configuration
DEFAULT_NUM_RECOMMENDATIONS = 10
# Not clamped: RecommenderConfig rejects K < 1 at setup
NUM_RECOMMENDATIONS = _get_int_env("CFRANK_NUM_RECOMMENDATIONS", DEFAULT_NUM_RECOMMENDATIONS, min_val=None)
BOOLEAN_DATA = _get_bool_env("CFRANK_BOOLEAN_DATA", False)
STRICT_INDEX_LOOKUP = _get_bool_env("CFRANK_STRICT_INDEX_LOOKUP", True)

# Row statistics
THRESHOLD = _get_float_env("CFRANK_THRESHOLD", NO_THRESHOLD, min_val=NO_THRESHOLD)

# Harness
SHOW_PROGRESS = _get_bool_env("CFRANK_SHOW_PROGRESS", False)
