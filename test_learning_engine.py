"""
Tests for the historical pattern miner.
"""

from datetime import datetime, timedelta

import pytest

from models.entities import LearnedPattern
from services.database import create_db_engine, init_db
from services.decision_log import InMemoryDecisionLog, SQLDecisionLog
from services.learning_engine import NO_PATTERNS_INSIGHT, LearningEngine


class BrokenLog(InMemoryDecisionLog):

    async def append(self, user_id, record):
        raise ConnectionError("log unavailable")

    async def fetch_recent(self, user_id, since, limit, event_type='task_complete'):
        raise ConnectionError("log unavailable")


def pattern(category='Work', hour=9, energy=80.0, completed=True, duration=None, ts=None):
    ts = ts or datetime(2024, 5, 6, hour, 0)
    return LearnedPattern(
        task_category=category,
        time_of_day=hour,
        day_of_week=1,
        energy_level=energy,
        completed=completed,
        timestamp=ts,
        duration=duration,
    )


@pytest.fixture
def engine(decision_log):
    return LearningEngine(decision_log)


def test_time_slot_rates(engine):
    patterns = [pattern(hour=9), pattern(hour=10), pattern(hour=11), pattern(hour=20, completed=False)]

    slots = engine.calculate_optimal_time_slots(patterns)

    assert slots == {'morning': 1.0, 'afternoon': 0.0, 'evening': 0.0}


def test_empty_patterns_give_zero_buckets(engine):
    assert engine.calculate_category_preferences([]) == {}
    assert engine.calculate_optimal_time_slots([]) == {'morning': 0.0, 'afternoon': 0.0, 'evening': 0.0}
    assert engine.get_task_duration_preferences([]) == {'short': 0.0, 'medium': 0.0, 'long': 0.0}
    assert engine.calculate_energy_alignment([]) == {'low': 0.0, 'medium': 0.0, 'high': 0.0}


def test_missing_duration_counts_as_default(engine):
    durations = engine.get_task_duration_preferences([pattern(duration=None), pattern(duration=10)])

    assert durations == {'short': 1.0, 'medium': 1.0, 'long': 0.0}


def test_category_preferences_keep_zero_rates(engine):
    patterns = [pattern('Work'), pattern('Hobbies', completed=False), pattern('Work', completed=False)]

    prefs = engine.calculate_category_preferences(patterns)

    assert list(prefs) == ['Work', 'Hobbies']
    assert prefs['Work'] == pytest.approx(0.5)
    assert prefs['Hobbies'] == 0.0


def test_energy_alignment_buckets(engine):
    patterns = [pattern(energy=20), pattern(energy=50, completed=False), pattern(energy=90)]

    assert engine.calculate_energy_alignment(patterns) == {'low': 1.0, 'medium': 0.0, 'high': 1.0}


def test_insights(engine):
    patterns = [pattern('Work', hour=9, energy=80, completed=i != 0) for i in range(10)]
    patterns += [pattern('Hobbies', hour=20, energy=20, completed=i == 0) for i in range(3)]

    insights = engine.generate_insights(patterns)

    assert "You complete Work tasks 90% of the time" in insights
    assert "Consider breaking Hobbies tasks into smaller steps" in insights
    assert "Your most productive time is morning" in insights
    assert "You work best at high energy levels" in insights


def test_no_patterns_insight(engine):
    assert engine.generate_insights([]) == [NO_PATTERNS_INSIGHT]


def test_summarize_keys(engine):
    summary = engine.summarize([pattern()])

    assert set(summary) == {'categories', 'time_slots', 'durations', 'energy'}


@pytest.mark.asyncio
async def test_learning_window_and_order(engine, now):
    for days_ago in (40, 2, 1):
        await engine.record_decision("u1", pattern(ts=now - timedelta(days=days_ago)))

    patterns = await engine.get_learned_patterns("u1", now=now)

    assert len(patterns) == 2
    assert patterns[0].timestamp > patterns[1].timestamp


@pytest.mark.asyncio
async def test_missing_fields_are_filled(decision_log, now):
    engine = LearningEngine(decision_log)
    await decision_log.append("u1", {'timestamp': now - timedelta(hours=1)})

    patterns = await engine.get_learned_patterns("u1", now=now)

    assert len(patterns) == 1
    assert patterns[0].task_category == 'Work'
    assert patterns[0].energy_level == 50.0
    assert patterns[0].completed is True
    assert patterns[0].time_of_day == 9
    # Monday, with Sunday as 0
    assert patterns[0].day_of_week == 1


@pytest.mark.asyncio
async def test_zero_energy_reading_stays_low(engine, now):
    await engine.record_decision("u1", pattern(energy=0.0, ts=now - timedelta(hours=1)))

    patterns = await engine.get_learned_patterns("u1", now=now)

    assert patterns[0].energy_level == 0.0
    assert engine.calculate_energy_alignment(patterns) == {'low': 1.0, 'medium': 0.0, 'high': 0.0}


@pytest.mark.asyncio
async def test_other_event_types_are_ignored(decision_log, now):
    engine = LearningEngine(decision_log)
    await decision_log.append("u1", {'event_type': 'session_start', 'timestamp': now})

    assert await engine.get_learned_patterns("u1", now=now) == []


@pytest.mark.asyncio
async def test_broken_log_is_tolerated(now):
    engine = LearningEngine(BrokenLog())

    await engine.record_decision("u1", pattern())

    assert await engine.get_learned_patterns("u1", now=now) == []
    assert await engine.generate_user_insights("u1", now=now) == [NO_PATTERNS_INSIGHT]


@pytest.mark.asyncio
async def test_sql_decision_log_roundtrip(tmp_path, now):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'logs.db'}")
    init_db(db_engine)
    engine = LearningEngine(SQLDecisionLog(db_engine))

    await engine.record_decision("u1", pattern('Personal', ts=now - timedelta(hours=3), duration=20),
                                 strategy="Snowball")
    await engine.record_decision("u1", pattern('Work', ts=now - timedelta(hours=1), completed=False))
    await engine.record_decision("u2", pattern('Hobbies', ts=now - timedelta(hours=2)))

    patterns = await engine.get_learned_patterns("u1", now=now)
    db_engine.dispose()

    assert [p.task_category for p in patterns] == ['Work', 'Personal']
    assert patterns[0].completed is False
    assert patterns[1].duration == 20
