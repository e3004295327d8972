"""
Contextual Bandit Model for Task Recommendations

Implements LinUCB (Linear Upper Confidence Bound) over a fixed set of
strategy arms. Each arm keeps its own ridge regression state (A, b) and is
scored as theta.x plus an exploration bonus scaled by alpha.
"""

import logging
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from config import BanditConfig
from models.entities import FeedbackSample
from models.schemas import ArmParameters, PersistedModel

logger = logging.getLogger(__name__)


class StrategyArm(IntEnum):
    """Strategy arms. Indices are positional in persisted models and never reused."""
    DEEP_FLOW = 0
    QUICK_SPARK = 1
    MOMENTUM = 2
    PALETTE_CLEANSER = 3
    THE_CRUSHER = 4
    LOW_GEAR = 5
    SOMATIC_RESET = 6
    COGNITIVE_RESET = 7
    NO_OP = 8
    PULL_BACK = 9
    ARCHAEOLOGIST = 10
    SNOWBALL = 11
    TWILIGHT_RITUAL = 12


ARM_NAMES = {
    StrategyArm.DEEP_FLOW: "Deep Flow",
    StrategyArm.QUICK_SPARK: "Quick Spark",
    StrategyArm.MOMENTUM: "Momentum",
    StrategyArm.PALETTE_CLEANSER: "Palette Cleanser",
    StrategyArm.THE_CRUSHER: "The Crusher",
    StrategyArm.LOW_GEAR: "Low Gear",
    StrategyArm.SOMATIC_RESET: "Somatic Reset",
    StrategyArm.COGNITIVE_RESET: "Cognitive Reset",
    StrategyArm.NO_OP: "Status Quo",
    StrategyArm.PULL_BACK: "Pull Back",
    StrategyArm.ARCHAEOLOGIST: "The Archaeologist",
    StrategyArm.SNOWBALL: "Snowball",
    StrategyArm.TWILIGHT_RITUAL: "Twilight Ritual",
}

NUM_ARMS = len(StrategyArm)

# Returned by predict when there is nothing to choose from
NO_ARM = -1


def arm_from_name(name: str) -> Optional[StrategyArm]:
    """Look up an arm by its display name or enum member name."""
    for arm, display in ARM_NAMES.items():
        if name == display or name == arm.name:
            return arm
    return None


class ContextualBandit:
    """
    LinUCB over the strategy arms.

    This class is synchronous and holds no I/O; loading and persisting the
    state is handled by LinUCBService in services/bandit_service.py.
    """

    def __init__(self, config: BanditConfig):
        self.config = config
        self.A: List[np.ndarray] = []
        self.b: List[np.ndarray] = []
        self.update_counts: List[int] = []
        self.last_update: Optional[datetime] = None
        self.reset_model()

        logger.info(f"Initialised Contextual Bandit with config: {config}")

    @property
    def feature_dim(self) -> int:
        return self.config.feature_dim

    @property
    def num_arms(self) -> int:
        return self.config.num_arms

    def reset_model(self):
        """Return every arm to the cold-start state (A = I, b = 0)."""
        d = self.feature_dim
        self.A = [np.eye(d) for _ in range(self.num_arms)]
        self.b = [np.zeros(d) for _ in range(self.num_arms)]
        self.update_counts = [0] * self.num_arms
        self.last_update = None

    def _validate_context(self, x) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.shape != (self.feature_dim,):
            raise ValueError(
                f"Context vector has shape {x.shape}, expected ({self.feature_dim},)"
            )
        return x

    def _arm_in_range(self, arm: int) -> bool:
        return 0 <= int(arm) < self.num_arms

    def score_arm(self, arm: int, x: np.ndarray) -> float:
        """
        UCB score of one arm for context x.

        Raises np.linalg.LinAlgError when A cannot be inverted reliably
        (singular, badly conditioned or producing non-finite values).
        """
        A = self.A[arm]
        cond = np.linalg.cond(A)
        if not np.isfinite(cond) or cond > self.config.max_condition_number:
            raise np.linalg.LinAlgError(f"Condition number {cond:.3g} too large")

        A_inv = np.linalg.inv(A)
        theta = A_inv @ self.b[arm]
        mean = float(theta @ x)
        variance = float(x @ A_inv @ x)
        bonus = self.config.alpha * np.sqrt(max(0.0, variance))
        score = mean + bonus

        if not np.isfinite(score):
            raise np.linalg.LinAlgError("Non-finite score")
        return score

    def predict(self, x, valid_arms: Sequence[int]) -> Tuple[int, float]:
        """
        Select the arm with the highest UCB score among valid_arms.

        Args:
            x: Context vector of length feature_dim
            valid_arms: Candidate arm indices, scored in the given order

        Returns:
            (arm, score). Ties keep the first arm encountered. An empty
            candidate list yields (NO_ARM, -inf); if every candidate fails
            to score the first candidate is returned with score 0.0.
        """
        x = self._validate_context(x)
        valid_arms = list(valid_arms)
        if not valid_arms:
            return NO_ARM, float('-inf')

        best_arm = None
        best_score = float('-inf')

        for arm in valid_arms:
            if not self._arm_in_range(arm):
                logger.warning(f"Skipping out-of-range arm {arm}")
                continue
            try:
                score = self.score_arm(int(arm), x)
            except np.linalg.LinAlgError as e:
                logger.warning(f"Skipping arm {arm}: {e}")
                continue

            if best_arm is None or score > best_score:
                best_arm = int(arm)
                best_score = score

        if best_arm is None:
            logger.warning("No arm could be scored, falling back to the first valid arm")
            return int(valid_arms[0]), 0.0

        return best_arm, best_score

    def _accumulate(self, x: np.ndarray, arm: int, reward: float):
        self.A[arm] += np.outer(x, x)
        self.b[arm] += reward * x
        self.update_counts[arm] += 1

    def apply_update(self, x, arm: int, reward: float) -> bool:
        """
        Ridge update of one arm: A += x x^T, b += reward * x.

        Returns False, leaving the state untouched, for an out-of-range arm.
        """
        x = self._validate_context(x)
        if not self._arm_in_range(arm):
            logger.warning(f"Attempting to update non-existent arm: {arm}")
            return False

        self._accumulate(x, int(arm), reward)
        self.last_update = datetime.now()
        return True

    def apply_samples(self, samples: Iterable[FeedbackSample]) -> int:
        """Accumulate a batch of samples; returns how many were applied."""
        applied = 0
        for sample in samples:
            x = self._validate_context(sample.x)
            if not self._arm_in_range(sample.arm):
                logger.warning(f"Skipping sample for non-existent arm: {sample.arm}")
                continue
            self._accumulate(x, int(sample.arm), sample.reward)
            applied += 1

        if applied:
            self.last_update = datetime.now()
        return applied

    def load_arms(self, A_list: List[np.ndarray], b_list: List[np.ndarray]):
        """Replace the arm state with restored matrices."""
        if len(A_list) != self.num_arms or len(b_list) != self.num_arms:
            raise ValueError(
                f"Expected {self.num_arms} arms, got {len(A_list)} A and {len(b_list)} b"
            )
        self.A = [np.array(a, dtype=float) for a in A_list]
        self.b = [np.array(v, dtype=float) for v in b_list]
        self.update_counts = [0] * self.num_arms

    def to_record(self) -> PersistedModel:
        """Snapshot of the arm state in the persisted schema."""
        return PersistedModel(
            arm_models=[
                ArmParameters(A=self.A[i].tolist(), b=self.b[i].tolist())
                for i in range(self.num_arms)
            ],
            updated_at=datetime.now(),
            version=self.config.model_version,
            feature_count=self.feature_dim,
        )

    def get_arm_statistics(self) -> Dict[str, Any]:
        """Get statistics about every arm."""
        stats = {
            'alpha': self.config.alpha,
            'feature_dim': self.feature_dim,
            'last_update': self.last_update.isoformat() if self.last_update else None,
            'arms': {}
        }

        for arm in StrategyArm:
            if arm >= self.num_arms:
                break
            try:
                theta = np.linalg.solve(self.A[arm], self.b[arm])
                theta_norm = float(np.linalg.norm(theta))
            except np.linalg.LinAlgError:
                theta_norm = None

            stats['arms'][ARM_NAMES[arm]] = {
                'index': int(arm),
                'session_updates': self.update_counts[arm],
                'theta_norm': theta_norm,
                'trace_A': float(np.trace(self.A[arm])),
            }

        return stats
