"""
Tests for LinUCBService: lazy loading, persistence and failure handling.
"""

import asyncio

import numpy as np
import pytest

from config import BanditConfig
from models.contextual_bandit import NUM_ARMS, ContextualBandit
from models.entities import FeedbackSample
from models.schemas import ArmParameters, PersistedModel
from services.bandit_service import LinUCBService
from services.feature_encoder import FEATURE_DIM
from services.model_store import InMemoryModelStore


class SlowStore(InMemoryModelStore):

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay

    async def load(self, user_id):
        await asyncio.sleep(self.delay)
        return await super().load(user_id)


class ReadThenWaitStore(InMemoryModelStore):
    """Reads the stored record, then stalls before handing it back."""

    async def load(self, user_id):
        record = await super().load(user_id)
        await asyncio.sleep(0.05)
        return record


class FailingStore(InMemoryModelStore):

    def __init__(self, fail_load: bool = False, fail_save: bool = False):
        super().__init__()
        self.fail_load = fail_load
        self.fail_save = fail_save

    async def load(self, user_id):
        if self.fail_load:
            raise ConnectionError("database unreachable")
        return await super().load(user_id)

    async def save(self, user_id, record):
        if self.fail_save:
            raise ConnectionError("database unreachable")
        await super().save(user_id, record)


def _record(num_arms: int, feature_dim: int = FEATURE_DIM, scale: float = 2.0) -> PersistedModel:
    return PersistedModel(
        arm_models=[
            ArmParameters(A=(np.eye(feature_dim) * scale).tolist(), b=[0.1] * feature_dim)
            for _ in range(num_arms)
        ],
        version=1,
        feature_count=feature_dim,
    )


@pytest.mark.asyncio
async def test_cold_user_is_not_saved_until_update(model_store, bandit_config, unit_context):
    service = LinUCBService("u1", model_store, bandit_config)

    await service.predict(unit_context, [0, 1])
    assert model_store.save_count == 0
    assert service.is_loaded

    assert await service.update(unit_context, 0, 1.0) is True
    assert model_store.save_count == 1
    assert "u1" in model_store.records


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_load(bandit_config, unit_context):
    store = SlowStore()
    service = LinUCBService("u1", store, bandit_config)

    results = await asyncio.gather(*[service.predict(unit_context, [3, 4]) for _ in range(5)])

    assert store.load_count == 1
    assert all(arm == 3 for arm, _ in results)


@pytest.mark.asyncio
async def test_empty_batch_does_nothing(model_store, bandit_config):
    service = LinUCBService("u1", model_store, bandit_config)

    assert await service.batch_train([]) == 0
    assert model_store.load_count == 0
    assert model_store.save_count == 0


@pytest.mark.asyncio
async def test_batch_train_saves_once(model_store, bandit_config, unit_context):
    service = LinUCBService("u1", model_store, bandit_config)
    samples = [FeedbackSample(x=unit_context, arm=arm, reward=1.0) for arm in (0, 1, 2)]

    assert await service.batch_train(samples) == 3
    assert model_store.save_count == 1


@pytest.mark.asyncio
async def test_out_of_range_update_skips_load_and_save(model_store, bandit_config, unit_context):
    service = LinUCBService("u1", model_store, bandit_config)

    assert await service.update(unit_context, NUM_ARMS, 1.0) is False
    assert await service.update(unit_context, -1, 1.0) is False
    assert model_store.load_count == 0
    assert model_store.save_count == 0


@pytest.mark.asyncio
async def test_stored_model_is_restored(model_store, bandit_config, unit_context):
    first = LinUCBService("u1", model_store, bandit_config)
    await first.update(unit_context, 4, 1.0)

    second = LinUCBService("u1", model_store, bandit_config)
    await second.ensure_loaded()

    np.testing.assert_allclose(second.bandit.A[4], first.bandit.A[4])
    np.testing.assert_allclose(second.bandit.b[4], first.bandit.b[4])


@pytest.mark.asyncio
async def test_feature_count_mismatch_starts_cold(model_store, bandit_config):
    model_store.records["u1"] = _record(NUM_ARMS, feature_dim=5).model_dump_json()
    service = LinUCBService("u1", model_store, bandit_config)

    await service.ensure_loaded()

    assert all(np.array_equal(A, np.eye(FEATURE_DIM)) for A in service.bandit.A)


@pytest.mark.asyncio
async def test_record_with_fewer_arms_is_padded(model_store, bandit_config):
    model_store.records["u1"] = _record(10).model_dump_json()
    service = LinUCBService("u1", model_store, bandit_config)

    await service.ensure_loaded()

    assert len(service.bandit.A) == NUM_ARMS
    np.testing.assert_allclose(service.bandit.A[9], np.eye(FEATURE_DIM) * 2.0)
    for arm in (10, 11, 12):
        np.testing.assert_array_equal(service.bandit.A[arm], np.eye(FEATURE_DIM))
        assert not service.bandit.b[arm].any()


@pytest.mark.asyncio
async def test_save_failure_keeps_in_memory_state(bandit_config, unit_context):
    store = FailingStore(fail_save=True)
    service = LinUCBService("u1", store, bandit_config)

    assert await service.update(unit_context, 2, 1.0) is True

    assert service.save_failures == 1
    assert service.bandit.b[2][0] == pytest.approx(1.0)
    assert service.get_statistics()['save_failures'] == 1


@pytest.mark.asyncio
async def test_load_failure_falls_back_to_cold_model(bandit_config, unit_context):
    service = LinUCBService("u1", FailingStore(fail_load=True), bandit_config)

    arm, score = await service.predict(unit_context, [1, 2])

    assert service.is_loaded
    assert (arm, score) == (1, pytest.approx(0.5))


@pytest.mark.asyncio
async def test_load_timeout_falls_back_to_cold_model(bandit_config, unit_context):
    store = SlowStore(delay=1.0)
    store.records["u1"] = _record(NUM_ARMS).model_dump_json()
    service = LinUCBService("u1", store, bandit_config, persistence_timeout=0.01)

    await service.ensure_loaded()

    assert service.is_loaded
    np.testing.assert_array_equal(service.bandit.A[0], np.eye(FEATURE_DIM))


@pytest.mark.asyncio
async def test_reset_skips_pending_load(model_store, bandit_config, unit_context):
    model_store.records["u1"] = _record(NUM_ARMS).model_dump_json()
    service = LinUCBService("u1", model_store, bandit_config)

    await service.reset_model()
    await service.predict(unit_context, [0])

    assert model_store.load_count == 0
    np.testing.assert_array_equal(service.bandit.A[0], np.eye(FEATURE_DIM))

    await service.persist()
    assert model_store.save_count == 1


@pytest.mark.asyncio
async def test_reset_during_load_keeps_retrained_model(bandit_config, unit_context):
    store = ReadThenWaitStore()
    store.records["u1"] = _record(NUM_ARMS).model_dump_json()
    service = LinUCBService("u1", store, bandit_config)

    pending = asyncio.ensure_future(service.predict(unit_context, [0]))
    await asyncio.sleep(0)
    await service.reset_model()
    await service.batch_train([FeedbackSample(x=unit_context, arm=0, reward=1.0)])
    await pending

    saved = (await store.load("u1")).arm_models[0]
    assert saved.b[0] == 1.0
    assert service.bandit.b[0][0] == 1.0
    np.testing.assert_allclose(service.bandit.A[0], np.array(saved.A))


def test_statistics_include_session_fields(model_store):
    service = LinUCBService("u1", model_store, BanditConfig(feature_dim=FEATURE_DIM))

    stats = service.get_statistics()

    assert stats['user_id'] == "u1"
    assert stats['loaded'] is False
    assert stats['feature_dim'] == FEATURE_DIM
    assert isinstance(service.bandit, ContextualBandit)
