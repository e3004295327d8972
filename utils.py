"""
Utility Functions for the Task Recommendation Engine

Contains helper functions for categorical encoding, normalisation and the
coarse bucketing shared by the feature encoder and the pattern miner.
"""

import math
from datetime import datetime
from typing import List, Optional, Union
from categories import get_categories, get_default_value, is_valid_category_value

# Mood check-ins use a 1-5 scale; index 0 is unused
MOOD_SCALE_TO_ENERGY = [0, 20, 40, 60, 80, 100]
DEFAULT_MOOD_ENERGY = 60.0


def encode_categorical_feature(value: str, category_name: str, unknown_value: str = None) -> List[float]:
    """
    Encode categorical features using one-hot encoding with standardised categories.

    Args:
        value: The categorical value to encode
        category_name: Name of the category (must exist in categories.py)
        unknown_value: Value to use for unknown/missing data (defaults to category default)

    Returns:
        One-hot encoded feature vector

    Example:
        >>> encode_categorical_feature('Personal', 'task_category')
        [0.0, 0.0, 1.0, 0.0]  # Work, Wellbeing, Personal, Hobbies

        >>> encode_categorical_feature('Errands', 'task_category')
        [0.0, 0.0, 0.0, 0.0]  # default is outside the tracked list
    """
    try:
        categories = get_categories(category_name)
    except KeyError:
        raise ValueError(f"Unknown category name: {category_name}")

    if unknown_value is None:
        unknown_value = get_default_value(category_name)

    if not is_valid_category_value(category_name, value):
        value = unknown_value

    features = [0.0] * len(categories)
    if value in categories:
        features[categories.index(value)] = 1.0

    return features


def normalise_numeric_feature(value: Optional[float], min_val: float, max_val: float,
                              default_val: float = 0.0) -> float:
    """
    Normalise a numeric feature to [0, 1] range.

    Args:
        value: Value to normalise
        min_val: Minimum expected value
        max_val: Maximum expected value
        default_val: Default value if input is None or invalid

    Returns:
        Normalised value between 0 and 1
    """
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        value = default_val

    if max_val <= min_val:
        return 0.0

    value = max(min_val, min(max_val, value))

    return (value - min_val) / (max_val - min_val)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers, returning default if denominator is zero."""
    if denominator == 0:
        return default
    return numerator / denominator


def time_of_day_bucket(hour: int) -> str:
    """Map an hour (0-23) to morning [6, 12), afternoon [12, 18) or evening."""
    if 6 <= hour < 12:
        return 'morning'
    elif 12 <= hour < 18:
        return 'afternoon'
    return 'evening'


def duration_bucket(minutes: float) -> str:
    """Map a task duration in minutes to short (<=15), medium (<=45) or long."""
    if minutes <= 15:
        return 'short'
    elif minutes <= 45:
        return 'medium'
    return 'long'


def energy_bucket(level: float) -> str:
    """Map a 0-100 energy level to low (<=33), medium (<=66) or high."""
    if level <= 33:
        return 'low'
    elif level <= 66:
        return 'medium'
    return 'high'


def normalize_energy(value: Union[str, float, int]) -> float:
    """
    Convert a mood score or raw energy reading to the 0-100 energy range.

    Values up to 5 are read as the 1-5 mood scale; anything else is clamped.
    Unreadable values fall back to the neutral mood.
    """
    try:
        val = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MOOD_ENERGY
    if math.isnan(val):
        return DEFAULT_MOOD_ENERGY
    if val <= 5:
        index = int(val + 0.5)
        if 1 <= index < len(MOOD_SCALE_TO_ENERGY):
            return float(MOOD_SCALE_TO_ENERGY[index])
        return DEFAULT_MOOD_ENERGY
    return min(100.0, max(0.0, val))


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """
    Convert a timezone-aware datetime to naive local time.

    The engine compares against the naive datetime.now(), so every timestamp
    entering it has to be naive local time too. Naive values pass through.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
