"""
Persistence of per-user LinUCB models.

Stores read and write whole PersistedModel records. Turning a record back into
arm matrices, including the feature-count guard, is restore_arm_parameters.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import numpy as np
from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Engine

from models.schemas import PersistedModel
from services.database import bandit_models

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = 'linucb_model'


class ModelStore(ABC):
    """Key-value persistence of one model record per user."""

    @abstractmethod
    async def load(self, user_id: str) -> Optional[PersistedModel]:
        """Stored record, or None when the user has none."""

    @abstractmethod
    async def save(self, user_id: str, record: PersistedModel):
        """Overwrite the user's record."""


class InMemoryModelStore(ModelStore):
    """Keeps serialized records in a dict; used by tests and the demo."""

    def __init__(self):
        self.records: Dict[str, str] = {}
        self.load_count = 0
        self.save_count = 0

    async def load(self, user_id: str) -> Optional[PersistedModel]:
        self.load_count += 1
        payload = self.records.get(user_id)
        if payload is None:
            return None
        return PersistedModel.model_validate_json(payload)

    async def save(self, user_id: str, record: PersistedModel):
        self.save_count += 1
        self.records[user_id] = record.model_dump_json()


class SQLModelStore(ModelStore):
    """
    Stores records in the bandit_models table with an optional Redis
    read-through cache.

    Cache failures are logged and otherwise ignored; the database is the
    source of truth.
    """

    def __init__(self, db_engine: Engine, redis_client=None, cache_ttl: int = 3600):
        self.db_engine = db_engine
        self.redis_client = redis_client
        self.cache_ttl = cache_ttl

    def _cache_key(self, user_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}:{user_id}"

    def _get_cached(self, user_id: str) -> Optional[str]:
        if self.redis_client is None:
            return None
        try:
            return self.redis_client.get(self._cache_key(user_id))
        except Exception as e:
            logger.warning(f"Redis read failed for {user_id}: {e}")
            return None

    def _set_cached(self, user_id: str, payload: str):
        if self.redis_client is None:
            return
        try:
            self.redis_client.setex(self._cache_key(user_id), self.cache_ttl, payload)
        except Exception as e:
            logger.warning(f"Redis write failed for {user_id}: {e}")

    def _load_sync(self, user_id: str) -> Optional[PersistedModel]:
        cached = self._get_cached(user_id)
        if cached is not None:
            return PersistedModel.model_validate_json(cached)

        with self.db_engine.connect() as conn:
            row = conn.execute(
                select(bandit_models.c.payload).where(bandit_models.c.user_id == user_id)
            ).first()

        if row is None:
            return None

        self._set_cached(user_id, row.payload)
        return PersistedModel.model_validate_json(row.payload)

    def _save_sync(self, user_id: str, record: PersistedModel):
        payload = record.model_dump_json()
        with self.db_engine.begin() as conn:
            conn.execute(delete(bandit_models).where(bandit_models.c.user_id == user_id))
            conn.execute(
                insert(bandit_models).values(
                    user_id=user_id,
                    version=record.version,
                    feature_count=record.feature_count,
                    payload=payload,
                    updated_at=record.updated_at,
                )
            )
        self._set_cached(user_id, payload)
        logger.debug(f"Saved model for {user_id}")

    async def load(self, user_id: str) -> Optional[PersistedModel]:
        return await asyncio.to_thread(self._load_sync, user_id)

    async def save(self, user_id: str, record: PersistedModel):
        await asyncio.to_thread(self._save_sync, user_id, record)


def restore_arm_parameters(record: Optional[PersistedModel], feature_dim: int,
                           num_arms: int) -> Optional[Tuple[List[np.ndarray], List[np.ndarray]]]:
    """
    Turn a persisted record into per-arm (A, b) lists.

    Returns None when there is nothing usable to restore: no record, or a
    record trained with a different feature count. Raises ValueError for
    records whose matrices do not have the declared shape.

    Records with fewer arms are padded with cold-start arms; extra arms are
    dropped.
    """
    if record is None:
        return None

    if record.feature_count != feature_dim:
        logger.warning(
            f"Stored model has {record.feature_count} features, encoder has {feature_dim}; resetting"
        )
        return None

    A_list = []
    b_list = []
    for i, arm in enumerate(record.arm_models):
        A = np.array(arm.A, dtype=float)
        b = np.array(arm.b, dtype=float)
        if A.shape != (feature_dim, feature_dim) or b.shape != (feature_dim,):
            raise ValueError(f"Arm {i} has shapes {A.shape} and {b.shape}, expected d={feature_dim}")
        A_list.append(A)
        b_list.append(b)

    if len(A_list) > num_arms:
        logger.warning(f"Stored model has {len(A_list)} arms, dropping {len(A_list) - num_arms}")
        A_list = A_list[:num_arms]
        b_list = b_list[:num_arms]

    while len(A_list) < num_arms:
        A_list.append(np.eye(feature_dim))
        b_list.append(np.zeros(feature_dim))

    return A_list, b_list
