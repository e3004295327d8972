"""
Feature encoder turning a SuggestionContext into the bandit's context vector.

The layout is fixed and part of the persisted model contract: changing it
requires a new FEATURE_DIM, which invalidates stored models on the next load.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional

import numpy as np

from config import StrategyConfig
from models.entities import SuggestionContext
from utils import encode_categorical_feature, normalise_numeric_feature, safe_divide

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    'bias',
    'hour_of_day',
    'energy',
    'queue_pressure',
    'urgency_ratio',
    'completion_recency',
    'last_duration',
    'last_work',
    'last_wellbeing',
    'last_personal',
    'last_hobbies',
]

FEATURE_DIM = len(FEATURE_NAMES)

DEFAULT_ENERGY = 0.5


def build_context_vector(ctx: SuggestionContext, config: Optional[StrategyConfig] = None) -> np.ndarray:
    """
    Encode the context into a vector of length FEATURE_DIM.

    Every time-relative feature is measured against ctx.current_time, so the
    same context always encodes to the same vector.
    """
    config = config or StrategyConfig()
    now = ctx.current_time

    hour = now.hour / 24.0

    if ctx.energy is None:
        energy = DEFAULT_ENERGY
    else:
        energy = normalise_numeric_feature(ctx.energy, 0.0, 100.0, default_val=50.0)

    total_duration = sum(t.duration for t in ctx.tasks)
    queue_pressure = min(1.0, safe_divide(total_duration, config.queue_pressure_minutes))

    horizon = now + timedelta(hours=config.urgent_window_hours)
    urgent_count = sum(1 for t in ctx.tasks if t.due_date is not None and t.due_date < horizon)
    urgency_ratio = safe_divide(urgent_count, len(ctx.tasks))

    completion_recency = 1.0
    last_duration = 0.0
    last_categories = [0.0] * 4

    last = ctx.last_completed()
    if last is not None:
        if last.completed_at is None:
            completion_recency = 0.0
        else:
            hours_since = (now - last.completed_at).total_seconds() / 3600.0
            completion_recency = min(1.0, max(0.0, 1.0 - hours_since / config.recency_window_hours))

        seconds = last.actual_duration or last.duration * 60
        last_duration = min(1.0, seconds / 3600.0)
        last_categories = encode_categorical_feature(ctx.tag_name(last.category), 'task_category')

    features = [
        1.0,
        hour,
        energy,
        queue_pressure,
        urgency_ratio,
        completion_recency,
        last_duration,
        *last_categories,
    ]

    return np.array(features, dtype=float)


def describe_context_vector(x) -> Dict[str, float]:
    """Map feature names to values for logging."""
    return {name: float(value) for name, value in zip(FEATURE_NAMES, x)}
