"""
Tests for the LinUCB core in models/contextual_bandit.py.
"""

import numpy as np
import pytest

from config import BanditConfig
from models.contextual_bandit import (
    ARM_NAMES,
    NO_ARM,
    NUM_ARMS,
    ContextualBandit,
    StrategyArm,
    arm_from_name,
)
from models.entities import FeedbackSample
from services.feature_encoder import FEATURE_DIM


@pytest.fixture
def bandit(bandit_config):
    return ContextualBandit(bandit_config)


def test_arm_enumeration_is_fixed():
    assert NUM_ARMS == 13
    assert StrategyArm.DEEP_FLOW == 0
    assert StrategyArm.NO_OP == 8
    assert StrategyArm.TWILIGHT_RITUAL == 12
    assert ARM_NAMES[StrategyArm.NO_OP] == "Status Quo"
    assert arm_from_name("The Crusher") == StrategyArm.THE_CRUSHER
    assert arm_from_name("SNOWBALL") == StrategyArm.SNOWBALL
    assert arm_from_name("Nope") is None


def test_cold_start_symmetry(bandit):
    """Every arm scores the same on a fresh model; the first arm wins ties."""
    rng = np.random.default_rng(0)
    x = rng.random(FEATURE_DIM)

    arm, score = bandit.predict(x, [7, 3])

    assert arm == 7
    assert score == pytest.approx(bandit.score_arm(3, x))


def test_single_bias_context_scores_alpha_times_norm(bandit, unit_context):
    arm, score = bandit.predict(unit_context, [2, 4, 9])

    assert arm == 2
    assert score == pytest.approx(0.5 * np.linalg.norm(unit_context))


def test_update_accumulates_outer_product(bandit):
    rng = np.random.default_rng(1)
    x = rng.random(FEATURE_DIM)
    before_A = [a.copy() for a in bandit.A]
    before_b = [v.copy() for v in bandit.b]

    assert bandit.apply_update(x, 3, 0.7) is True

    np.testing.assert_allclose(bandit.A[3], before_A[3] + np.outer(x, x))
    np.testing.assert_allclose(bandit.b[3], before_b[3] + 0.7 * x)
    for arm in range(NUM_ARMS):
        if arm != 3:
            np.testing.assert_array_equal(bandit.A[arm], before_A[arm])
            np.testing.assert_array_equal(bandit.b[arm], before_b[arm])


def test_matrices_stay_symmetric(bandit):
    rng = np.random.default_rng(2)
    for _ in range(200):
        bandit.apply_update(rng.random(FEATURE_DIM), int(rng.integers(NUM_ARMS)), float(rng.normal()))

    for A in bandit.A:
        np.testing.assert_allclose(A, A.T)


def test_rewarded_arm_wins_after_update(bandit, unit_context):
    bandit.apply_update(unit_context, 2, 1.0)

    arm, score = bandit.predict(unit_context, [5, 2])

    assert arm == 2
    assert score > bandit.score_arm(5, unit_context)


def test_empty_valid_arms(bandit, unit_context):
    arm, score = bandit.predict(unit_context, [])

    assert arm == NO_ARM
    assert score == float('-inf')


def test_out_of_range_arms_are_skipped(bandit, unit_context):
    arm, _ = bandit.predict(unit_context, [42, 5])
    assert arm == 5

    arm, score = bandit.predict(unit_context, [42, 99])
    assert (arm, score) == (42, 0.0)


def test_singular_arm_is_skipped(bandit, unit_context):
    bandit.A[1] = np.zeros((FEATURE_DIM, FEATURE_DIM))

    arm, _ = bandit.predict(unit_context, [1, 2])
    assert arm == 2

    arm, score = bandit.predict(unit_context, [1])
    assert (arm, score) == (1, 0.0)


def test_badly_conditioned_arm_is_skipped(unit_context):
    bandit = ContextualBandit(BanditConfig(feature_dim=FEATURE_DIM, max_condition_number=10.0))
    bandit.A[0] = np.diag([1.0] * (FEATURE_DIM - 1) + [100.0])

    arm, _ = bandit.predict(unit_context, [0, 1])

    assert arm == 1


def test_wrong_dimension_raises(bandit):
    with pytest.raises(ValueError):
        bandit.predict(np.ones(FEATURE_DIM + 1), [0])
    with pytest.raises(ValueError):
        bandit.apply_update(np.ones(3), 0, 1.0)


def test_out_of_range_update_is_ignored(bandit, unit_context):
    assert bandit.apply_update(unit_context, NUM_ARMS, 1.0) is False
    assert all(np.array_equal(A, np.eye(FEATURE_DIM)) for A in bandit.A)


def test_apply_samples_counts_applied(bandit, unit_context):
    samples = [
        FeedbackSample(x=unit_context, arm=0, reward=1.0),
        FeedbackSample(x=unit_context, arm=-1, reward=1.0),
        FeedbackSample(x=unit_context, arm=0, reward=0.5),
    ]

    assert bandit.apply_samples(samples) == 2
    assert bandit.A[0][0, 0] == pytest.approx(3.0)
    assert bandit.b[0][0] == pytest.approx(1.5)
    assert bandit.update_counts[0] == 2


def test_record_roundtrip(bandit, unit_context):
    bandit.apply_update(unit_context, 6, 1.0)
    record = bandit.to_record()

    assert record.feature_count == FEATURE_DIM
    assert len(record.arm_models) == NUM_ARMS

    restored = ContextualBandit(bandit.config)
    restored.load_arms(
        [np.array(a.A) for a in record.arm_models],
        [np.array(a.b) for a in record.arm_models],
    )
    np.testing.assert_allclose(restored.A[6], bandit.A[6])
    np.testing.assert_allclose(restored.b[6], bandit.b[6])


def test_reset_restores_cold_start(bandit, unit_context):
    bandit.apply_update(unit_context, 0, 1.0)
    bandit.reset_model()

    assert np.array_equal(bandit.A[0], np.eye(FEATURE_DIM))
    assert not bandit.b[0].any()


def test_arm_statistics(bandit, unit_context):
    bandit.apply_update(unit_context, StrategyArm.MOMENTUM, 1.0)
    stats = bandit.get_arm_statistics()

    momentum = stats['arms']['Momentum']
    assert momentum['session_updates'] == 1
    assert momentum['trace_A'] == pytest.approx(FEATURE_DIM + 1.0)
    assert momentum['theta_norm'] == pytest.approx(0.5)
    assert len(stats['arms']) == NUM_ARMS
