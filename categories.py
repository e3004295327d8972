"""
Categorical Variables for the Task Recommendation Engine

Fixed value lists for the categorical fields shared by the encoder, the
pattern miner and the API schemas.
"""

# Task energy requirement categories
ENERGY_LEVEL_CATEGORIES = ['High', 'Medium', 'Low']

# Task lifecycle categories
TASK_STATUS_CATEGORIES = ['active', 'completed', 'skipped', 'archived']

# Task categories that get a dedicated slot in the context vector
TRACKED_TASK_CATEGORIES = ['Work', 'Wellbeing', 'Personal', 'Hobbies']

# Coarse time of day buckets used by the pattern miner
TIME_OF_DAY_CATEGORIES = ['morning', 'afternoon', 'evening']

# Coarse task duration buckets
DURATION_CATEGORIES = ['short', 'medium', 'long']

# Coarse energy buckets
ENERGY_BUCKET_CATEGORIES = ['low', 'medium', 'high']

# User vital record types
VITAL_TYPE_CATEGORIES = ['mood', 'focus', 'journal', 'breathe']

# Feedback kinds accepted at the API boundary
FEEDBACK_CATEGORIES = ['accept', 'complete_failed', 'reject', 'organic']

# Category name -> ordered values
CATEGORY_MAPPINGS = {
    'energy_level': ENERGY_LEVEL_CATEGORIES,
    'task_status': TASK_STATUS_CATEGORIES,
    'task_category': TRACKED_TASK_CATEGORIES,
    'time_of_day': TIME_OF_DAY_CATEGORIES,
    'duration': DURATION_CATEGORIES,
    'energy_bucket': ENERGY_BUCKET_CATEGORIES,
    'vital_type': VITAL_TYPE_CATEGORIES,
    'feedback': FEEDBACK_CATEGORIES,
}

# Default values for categorical features. A default outside its category
# list encodes to an all-zero vector.
DEFAULT_CATEGORICAL_VALUES = {
    'energy_level': 'Medium',
    'task_status': 'active',
    'task_category': 'uncategorised',
    'time_of_day': 'afternoon',
    'duration': 'medium',
    'energy_bucket': 'medium',
    'vital_type': 'mood',
    'feedback': 'accept',
}


def get_categories(category_name: str):
    """
    Return the ordered values of a category.

    Raises:
        KeyError: If the category is not registered
    """
    if category_name not in CATEGORY_MAPPINGS:
        raise KeyError(f"No category named '{category_name}' (known: {sorted(CATEGORY_MAPPINGS)})")

    return CATEGORY_MAPPINGS[category_name]


def get_default_value(category_name: str):
    """Fallback value used when a category value is missing or unknown."""
    if category_name not in DEFAULT_CATEGORICAL_VALUES:
        raise KeyError(f"No default registered for category '{category_name}'")

    return DEFAULT_CATEGORICAL_VALUES[category_name]


def is_valid_category_value(category_name: str, value: str) -> bool:
    try:
        return value in get_categories(category_name)
    except KeyError:
        return False
