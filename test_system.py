"""
End-to-end test of the recommendation system against a SQLite database.

Runs a full suggestion / feedback cycle, then rebuilds every service from
scratch and checks the learned state survives.
"""

from datetime import datetime, timedelta

import numpy as np
import pytest

from config.settings import (
    Settings,
    build_bandit_config,
    build_learning_config,
    build_reward_config,
    create_default_config_file,
    default_env_lines,
    get_environment_settings,
    validate_settings,
)
from models.contextual_bandit import NUM_ARMS, StrategyArm
from models.entities import Tag, TaskEntity
from services.database import create_db_engine, init_db
from services.decision_log import SQLDecisionLog
from services.feature_encoder import FEATURE_DIM
from services.model_store import SQLModelStore
from services.session import SessionRegistry


def build_registry(db_engine, settings: Settings) -> SessionRegistry:
    return SessionRegistry(
        SQLModelStore(db_engine),
        SQLDecisionLog(db_engine),
        bandit_config=build_bandit_config(settings, FEATURE_DIM, NUM_ARMS),
        reward_config=build_reward_config(settings),
        learning_config=build_learning_config(settings),
        persistence_timeout=settings.persistence_timeout_seconds,
    )


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'system.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


def test_settings():
    settings = get_environment_settings("testing")

    assert validate_settings(settings)
    assert settings.bandit_alpha == 0.5
    assert build_bandit_config(settings, FEATURE_DIM, NUM_ARMS).alpha == 0.5
    assert build_reward_config(settings).rejected == -0.5
    assert settings.redis_enabled is False
    assert get_environment_settings("production").redis_enabled is True


def test_default_env_file(tmp_path):
    lines = default_env_lines()
    assert 'DATABASE_URL="sqlite:///taskweave.db"' in lines
    assert "BANDIT_ALPHA=0.5" in lines

    env_file = tmp_path / ".env"
    create_default_config_file(str(env_file))
    assert "API_PORT=8000" in env_file.read_text().splitlines()


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        settings = get_environment_settings("testing").model_copy(update={"bandit_alpha": 0, "api_port": 0})
        validate_settings(settings)


@pytest.mark.asyncio
async def test_learning_survives_restart(db_engine):
    settings = get_environment_settings("testing")
    now = datetime.now().replace(hour=9, minute=0, second=0, microsecond=0)
    tags = [Tag(id="tag_work", name="Work")]
    tasks = [
        TaskEntity(id="t1", title="Write report", category="tag_work", duration=90, energy="High",
                   created_at=now - timedelta(days=1)),
        TaskEntity(id="t2", title="Water plants", category="tag_work", duration=10, energy="Low",
                   created_at=now - timedelta(days=2)),
    ]

    registry = build_registry(db_engine, settings)
    session = registry.get("alice")

    await session.engine.calibrate(tasks, now=now)
    ctx = await session.engine.build_context(tasks, energy=85, tags=tags, now=now)
    for _ in range(3):
        await session.engine.log_completion(ctx, "Deep Flow", True, task=tasks[0])
    trained_A = session.bandit.bandit.A[StrategyArm.DEEP_FLOW].copy()

    recommendation = await session.engine.generate_suggestion(ctx)
    assert recommendation.suggestion.type in ('task', 'wellbeing', 'none')
    assert recommendation.arm in session.engine.get_valid_strategies(ctx)

    # Fresh registry, same database
    restarted = build_registry(db_engine, settings).get("alice")
    await restarted.bandit.ensure_loaded()
    np.testing.assert_allclose(restarted.bandit.bandit.A[StrategyArm.DEEP_FLOW], trained_A)

    replayed = await restarted.engine.generate_suggestion(ctx)
    assert replayed.arm == recommendation.arm
    assert replayed.score == pytest.approx(recommendation.score)

    insights = await restarted.learning.generate_user_insights("alice", now=now + timedelta(minutes=5))
    assert "You complete Work tasks 100% of the time" in insights
    assert "Your most productive time is morning" in insights

    other = build_registry(db_engine, settings).get("bob")
    await other.bandit.ensure_loaded()
    np.testing.assert_array_equal(other.bandit.bandit.A[StrategyArm.DEEP_FLOW], np.eye(FEATURE_DIM))
