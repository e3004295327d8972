"""
Historical Pattern Miner

Reads recent decision logs back as LearnedPattern records and aggregates
completion rates by category, time of day, task duration and energy level.
The output is advisory: it feeds insights and the suggestion context, never
the bandit's arm selection.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd

from categories import DURATION_CATEGORIES, ENERGY_BUCKET_CATEGORIES, TIME_OF_DAY_CATEGORIES
from config import LearningConfig
from models.entities import LearnedPattern
from services.decision_log import TASK_COMPLETE, DecisionLogStore
from utils import duration_bucket, energy_bucket, time_of_day_bucket

logger = logging.getLogger(__name__)

NO_PATTERNS_INSIGHT = "Keep completing tasks to get personalized suggestions"


def _js_day_of_week(ts: datetime) -> int:
    """Day of week with Sunday as 0."""
    return (ts.weekday() + 1) % 7


def _round_percent(rate: float) -> int:
    # Half-up rounding of rate * 100
    return int(rate * 100 + 0.5)


class LearningEngine:
    """
    Pattern miner over a user's decision log.

    All aggregation methods are pure functions of the pattern list; only
    record_decision and get_learned_patterns touch the store.
    """

    def __init__(self, decision_log: DecisionLogStore, config: Optional[LearningConfig] = None):
        self.decision_log = decision_log
        self.config = config or LearningConfig()

    async def record_decision(self, user_id: str, pattern: LearnedPattern, strategy: Optional[str] = None):
        """Append one decision. Failures are logged and swallowed."""
        record = {
            'event_type': TASK_COMPLETE,
            'task_category': pattern.task_category,
            'strategy': strategy,
            'time_of_day': pattern.time_of_day,
            'day_of_week': pattern.day_of_week,
            'energy_level': pattern.energy_level,
            'duration': pattern.duration,
            'completed': pattern.completed,
            'timestamp': pattern.timestamp,
        }
        try:
            await self.decision_log.append(user_id, record)
        except Exception as e:
            logger.error(f"Failed to record learning decision for {user_id}: {e}")

    async def get_learned_patterns(self, user_id: str, now: Optional[datetime] = None) -> List[LearnedPattern]:
        """Completed-task patterns from the learning window, newest first."""
        now = now or datetime.now()
        since = now - timedelta(days=self.config.learning_window_days)

        try:
            records = await self.decision_log.fetch_recent(
                user_id, since, self.config.max_patterns, event_type=TASK_COMPLETE
            )
        except Exception as e:
            logger.warning(f"Failed to fetch learned patterns for {user_id}: {e}")
            return []

        patterns = []
        for record in records:
            ts = record['timestamp']
            patterns.append(LearnedPattern(
                task_category=record.get('task_category') or 'Work',
                time_of_day=record['time_of_day'] if record.get('time_of_day') is not None else ts.hour,
                day_of_week=record['day_of_week'] if record.get('day_of_week') is not None else _js_day_of_week(ts),
                energy_level=record['energy_level'] if record.get('energy_level') is not None else 50.0,
                completed=record['completed'] if record.get('completed') is not None else True,
                timestamp=ts,
                duration=record.get('duration'),
            ))

        logger.debug(f"Loaded {len(patterns)} patterns for {user_id}")
        return patterns

    def _to_frame(self, patterns: List[LearnedPattern]) -> pd.DataFrame:
        return pd.DataFrame({
            'category': [p.task_category for p in patterns],
            'hour': [p.time_of_day for p in patterns],
            'energy': [p.energy_level for p in patterns],
            'duration': [
                p.duration if p.duration is not None else self.config.default_task_duration
                for p in patterns
            ],
            'completed': [bool(p.completed) for p in patterns],
        })

    @staticmethod
    def _bucket_rates(df: pd.DataFrame, column: str, buckets: List[str]) -> Dict[str, float]:
        """Completion rate per bucket; empty buckets are 0.0."""
        if df.empty:
            return {bucket: 0.0 for bucket in buckets}
        rates = df.groupby(column)['completed'].mean()
        return {bucket: float(rates.get(bucket, 0.0)) for bucket in buckets}

    def calculate_category_preferences(self, patterns: List[LearnedPattern]) -> Dict[str, float]:
        """Completion rate for every observed category, in first-seen order."""
        if not patterns:
            return {}
        df = self._to_frame(patterns)
        rates = df.groupby('category', sort=False)['completed'].mean()
        return {category: float(rate) for category, rate in rates.items()}

    def calculate_optimal_time_slots(self, patterns: List[LearnedPattern]) -> Dict[str, float]:
        df = self._to_frame(patterns)
        if not df.empty:
            df['slot'] = df['hour'].map(time_of_day_bucket)
        return self._bucket_rates(df, 'slot', TIME_OF_DAY_CATEGORIES)

    def get_task_duration_preferences(self, patterns: List[LearnedPattern]) -> Dict[str, float]:
        df = self._to_frame(patterns)
        if not df.empty:
            df['bucket'] = df['duration'].map(duration_bucket)
        return self._bucket_rates(df, 'bucket', DURATION_CATEGORIES)

    def calculate_energy_alignment(self, patterns: List[LearnedPattern]) -> Dict[str, float]:
        df = self._to_frame(patterns)
        if not df.empty:
            df['bucket'] = df['energy'].map(energy_bucket)
        return self._bucket_rates(df, 'bucket', ENERGY_BUCKET_CATEGORIES)

    @staticmethod
    def _best_bucket(rates: Dict[str, float]):
        best_name, best_rate = '', 0.0
        for name, rate in rates.items():
            if rate > best_rate:
                best_name, best_rate = name, rate
        return best_name, best_rate

    def generate_insights(self, patterns: List[LearnedPattern]) -> List[str]:
        """Short natural-language observations about the patterns."""
        if not patterns:
            return [NO_PATTERNS_INSIGHT]

        insights = []

        for category, rate in self.calculate_category_preferences(patterns).items():
            if rate > self.config.strong_category_rate:
                insights.append(f"You complete {category} tasks {_round_percent(rate)}% of the time")
            elif rate < self.config.weak_category_rate:
                insights.append(f"Consider breaking {category} tasks into smaller steps")

        slot, slot_rate = self._best_bucket(self.calculate_optimal_time_slots(patterns))
        if slot_rate > self.config.strong_bucket_rate:
            insights.append(f"Your most productive time is {slot}")

        level, level_rate = self._best_bucket(self.calculate_energy_alignment(patterns))
        if level_rate > self.config.strong_bucket_rate:
            insights.append(f"You work best at {level} energy levels")

        return insights

    async def generate_user_insights(self, user_id: str, now: Optional[datetime] = None) -> List[str]:
        patterns = await self.get_learned_patterns(user_id, now=now)
        return self.generate_insights(patterns)

    def summarize(self, patterns: List[LearnedPattern]) -> Dict[str, Dict[str, float]]:
        """All aggregations at once, for the insights endpoint."""
        return {
            'categories': self.calculate_category_preferences(patterns),
            'time_slots': self.calculate_optimal_time_slots(patterns),
            'durations': self.get_task_duration_preferences(patterns),
            'energy': self.calculate_energy_alignment(patterns),
        }
