"""
Per-user LinUCB service.

Wraps the synchronous ContextualBandit with lazy loading from a ModelStore,
a single shared load per session and persist-on-update.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import BanditConfig
from models.contextual_bandit import ContextualBandit
from models.entities import FeedbackSample
from services.model_store import ModelStore, restore_arm_parameters

logger = logging.getLogger(__name__)


class LinUCBService:
    """
    Bandit state of one user session.

    The model is loaded lazily by the first operation that needs it; every
    concurrent caller awaits the same load. Updates persist before returning.
    A user with no stored model stays unsaved until the first update.
    """

    def __init__(self, user_id: str, store: ModelStore, config: Optional[BanditConfig] = None,
                 persistence_timeout: Optional[float] = None):
        self.user_id = user_id
        self.store = store
        self.config = config or BanditConfig()
        self.persistence_timeout = persistence_timeout
        self.bandit = ContextualBandit(self.config)

        self._loaded = False
        self._load_task: Optional[asyncio.Task] = None
        self.save_failures = 0

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def _with_timeout(self, coro):
        if self.persistence_timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self.persistence_timeout)

    async def _load_model(self):
        try:
            record = await self._with_timeout(self.store.load(self.user_id))
            restored = restore_arm_parameters(record, self.config.feature_dim, self.config.num_arms)
            if restored is None:
                if record is None:
                    logger.info(f"No stored model for {self.user_id}, starting cold")
                self.bandit.reset_model()
            else:
                self.bandit.load_arms(*restored)
                logger.info(f"Loaded model for {self.user_id} (version {record.version})")
        except Exception as e:
            logger.warning(f"Failed to load model for {self.user_id}, using default: {e}")
            self.bandit.reset_model()
        finally:
            self._loaded = True

    async def ensure_loaded(self):
        """Load the stored model once; concurrent callers share the same load."""
        if self._loaded:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load_model())
        await asyncio.shield(self._load_task)

    async def predict(self, x, valid_arms: Sequence[int]) -> Tuple[int, float]:
        """Best arm among valid_arms for context x, see ContextualBandit.predict."""
        await self.ensure_loaded()
        return self.bandit.predict(x, valid_arms)

    async def update(self, x, arm: int, reward: float) -> bool:
        """
        Apply one reward and persist the model.

        Returns False, without touching or saving the model, for an
        out-of-range arm.
        """
        if not 0 <= int(arm) < self.config.num_arms:
            logger.warning(f"Ignoring update for out-of-range arm {arm}")
            return False

        await self.ensure_loaded()
        self.bandit.apply_update(x, arm, reward)
        await self._save()
        return True

    async def batch_train(self, samples: List[FeedbackSample]) -> int:
        """Apply every sample, then persist once. An empty batch does nothing."""
        if not samples:
            return 0

        await self.ensure_loaded()
        applied = self.bandit.apply_samples(samples)
        await self._save()
        logger.info(f"Batch trained {applied} samples for {self.user_id}")
        return applied

    async def reset_model(self):
        """
        Return to the cold-start state. Nothing is saved until the next update or persist.

        A load already in flight is awaited first so it cannot land on top of the reset.
        """
        if self._load_task is not None and not self._loaded:
            await asyncio.shield(self._load_task)
        self.bandit.reset_model()
        self._loaded = True

    async def persist(self):
        """Save the current state explicitly."""
        await self.ensure_loaded()
        await self._save()

    async def _save(self):
        try:
            await self._with_timeout(self.store.save(self.user_id, self.bandit.to_record()))
        except Exception as e:
            # In-memory state stays authoritative for the rest of the session
            self.save_failures += 1
            logger.error(f"Failed to save model for {self.user_id}: {e}")

    def get_statistics(self) -> Dict[str, Any]:
        stats = self.bandit.get_arm_statistics()
        stats['user_id'] = self.user_id
        stats['loaded'] = self._loaded
        stats['save_failures'] = self.save_failures
        return stats
