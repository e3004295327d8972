"""
Shared test fixtures.

Provides in-memory stores, a fixed clock and task factories so that tests
never depend on the wall clock or on external services.
"""

from datetime import datetime, timedelta

import numpy as np
import pytest

from config import BanditConfig
from models.entities import TaskEntity
from services.decision_log import InMemoryDecisionLog
from services.feature_encoder import FEATURE_DIM
from services.model_store import InMemoryModelStore
from services.session import create_user_session


@pytest.fixture
def now() -> datetime:
    """A Monday morning, 10:00."""
    return datetime(2024, 5, 6, 10, 0, 0)


@pytest.fixture
def bandit_config() -> BanditConfig:
    return BanditConfig(feature_dim=FEATURE_DIM)


@pytest.fixture
def model_store() -> InMemoryModelStore:
    return InMemoryModelStore()


@pytest.fixture
def decision_log() -> InMemoryDecisionLog:
    return InMemoryDecisionLog()


@pytest.fixture
def session(model_store, decision_log, bandit_config):
    return create_user_session("user_1", model_store, decision_log, bandit_config=bandit_config)


@pytest.fixture
def make_task(now):
    """Factory for tasks created relative to the fixed clock."""
    counter = {'n': 0}

    def _make(title: str = None, age_days: float = 1, **kwargs) -> TaskEntity:
        counter['n'] += 1
        task_id = kwargs.pop('id', f"task_{counter['n']}")
        return TaskEntity(
            id=task_id,
            title=title or f"Task {counter['n']}",
            created_at=kwargs.pop('created_at', now - timedelta(days=age_days)),
            **kwargs,
        )

    return _make


@pytest.fixture
def unit_context() -> np.ndarray:
    """Context vector with only the bias feature set."""
    x = np.zeros(FEATURE_DIM)
    x[0] = 1.0
    return x
