"""
Per-user session wiring.

A UserSession bundles the bandit service, pattern miner and orchestrator of
one user. Sessions are built explicitly and passed around; nothing here is a
module-level singleton.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from config import BanditConfig, LearningConfig, RewardConfig, StrategyConfig
from services.bandit_service import LinUCBService
from services.decision_log import DecisionLogStore
from services.learning_engine import LearningEngine
from services.model_store import ModelStore
from services.recommendation_engine import RecommendationEngine, SnapshotProvider

logger = logging.getLogger(__name__)


@dataclass
class UserSession:
    user_id: str
    bandit: LinUCBService
    learning: LearningEngine
    engine: RecommendationEngine


def create_user_session(user_id: str, model_store: ModelStore, decision_log: DecisionLogStore,
                        bandit_config: Optional[BanditConfig] = None,
                        reward_config: Optional[RewardConfig] = None,
                        strategy_config: Optional[StrategyConfig] = None,
                        learning_config: Optional[LearningConfig] = None,
                        snapshot_provider: Optional[SnapshotProvider] = None,
                        persistence_timeout: Optional[float] = None) -> UserSession:
    """Wire up the services of one user session."""
    bandit = LinUCBService(user_id, model_store, bandit_config, persistence_timeout=persistence_timeout)
    learning = LearningEngine(decision_log, learning_config)
    engine = RecommendationEngine(
        bandit,
        learning,
        reward_config=reward_config,
        strategy_config=strategy_config,
        snapshot_provider=snapshot_provider,
    )
    return UserSession(user_id=user_id, bandit=bandit, learning=learning, engine=engine)


class SessionRegistry:
    """Creates one session per user on first use and reuses it afterwards."""

    def __init__(self, model_store: ModelStore, decision_log: DecisionLogStore,
                 bandit_config: Optional[BanditConfig] = None,
                 reward_config: Optional[RewardConfig] = None,
                 strategy_config: Optional[StrategyConfig] = None,
                 learning_config: Optional[LearningConfig] = None,
                 snapshot_provider: Optional[SnapshotProvider] = None,
                 persistence_timeout: Optional[float] = None):
        self.model_store = model_store
        self.decision_log = decision_log
        self.bandit_config = bandit_config
        self.reward_config = reward_config
        self.strategy_config = strategy_config
        self.learning_config = learning_config
        self.snapshot_provider = snapshot_provider
        self.persistence_timeout = persistence_timeout
        self.sessions: Dict[str, UserSession] = {}

    def get(self, user_id: str) -> UserSession:
        session = self.sessions.get(user_id)
        if session is None:
            session = create_user_session(
                user_id,
                self.model_store,
                self.decision_log,
                bandit_config=self.bandit_config,
                reward_config=self.reward_config,
                strategy_config=self.strategy_config,
                learning_config=self.learning_config,
                snapshot_provider=self.snapshot_provider,
                persistence_timeout=self.persistence_timeout,
            )
            self.sessions[user_id] = session
            logger.info(f"Created session for {user_id}")
        return session

    def __len__(self) -> int:
        return len(self.sessions)
