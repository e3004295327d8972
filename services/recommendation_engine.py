"""
Recommendation Engine Service

Turns the user's task state into one suggestion at a time:
1. Encode the situation into a context vector
2. Mask the strategy arms that cannot apply right now
3. Let the LinUCB bandit pick an arm
4. Resolve the arm to a concrete task or wellbeing action

User feedback (completion, rejection, picking a task unprompted) is turned
into rewards and fed back into the bandit. Calibration warms up a fresh model
from synthetic scenarios or by replaying the user's history.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

import numpy as np

from config import RewardConfig, StrategyConfig
from models.contextual_bandit import ARM_NAMES, NO_ARM, StrategyArm, arm_from_name
from models.entities import (
    ContextSnapshot,
    FeedbackSample,
    LearnedPattern,
    Recommendation,
    Suggestion,
    SuggestionContext,
    Tag,
    TaskEntity,
    UserVital,
)
from services import strategies
from services.bandit_service import LinUCBService
from services.calibration import RuleBasedScenarioSource, ScenarioSource
from services.feature_encoder import build_context_vector, describe_context_vector
from services.learning_engine import LearningEngine
from utils import normalize_energy

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[str], Awaitable[Optional[ContextSnapshot]]]

ARM_REASONS = {
    StrategyArm.DEEP_FLOW: "Deep Flow: Capitalize on your energy.",
    StrategyArm.QUICK_SPARK: "Quick Spark: Build momentum fast.",
    StrategyArm.PALETTE_CLEANSER: "Palette Cleanser: Switch context to stay fresh.",
    StrategyArm.THE_CRUSHER: "The Crusher: Clear urgent items.",
    StrategyArm.LOW_GEAR: "Low Gear: Productive despite low energy.",
    StrategyArm.SOMATIC_RESET: "Somatic Reset: Move your body to refuel.",
    StrategyArm.COGNITIVE_RESET: "Cognitive Reset: Clear your mind.",
    StrategyArm.PULL_BACK: "Capacity Reached: Focus on current queue.",
    StrategyArm.ARCHAEOLOGIST: "The Archaeologist: Clear stagnant items.",
    StrategyArm.SNOWBALL: "Snowball Effect: Stack small wins.",
    StrategyArm.TWILIGHT_RITUAL: "Twilight Ritual: Wind down productively.",
}

WELLBEING_TITLES = {
    StrategyArm.SOMATIC_RESET: "Stretch & Hydrate",
    StrategyArm.COGNITIVE_RESET: "2min Breathe",
    StrategyArm.PULL_BACK: "Review Queue",
}

WELLBEING_DURATION = 5
WELLBEING_CONFIDENCE = 90
TASK_CONFIDENCE = 85
DEFAULT_PRIORITY = 10
DEFAULT_REPLAY_ENERGY = 75.0


class RecommendationError(Exception):
    """Base error raised by the recommendation engine."""


class CalibrationError(RecommendationError):
    """Calibration could not produce any training data."""


class RecommendationEngine:
    """
    Orchestrates one user's suggestion cycle.

    The engine owns no model state itself: the bandit service and learning
    engine are passed in, so one engine instance serves exactly one user.
    """

    def __init__(self, bandit_service: LinUCBService, learning_engine: LearningEngine,
                 reward_config: Optional[RewardConfig] = None,
                 strategy_config: Optional[StrategyConfig] = None,
                 snapshot_provider: Optional[SnapshotProvider] = None):
        self.bandit = bandit_service
        self.learning = learning_engine
        self.rewards = reward_config or RewardConfig()
        self.strategy_config = strategy_config or StrategyConfig()
        self.snapshot_provider = snapshot_provider

        # Performance tracking
        self.metrics = {
            'total_suggestions': 0,
            'task_suggestions': 0,
            'wellbeing_suggestions': 0,
            'empty_suggestions': 0,
            'completions': 0,
            'failed_completions': 0,
            'rejections': 0,
            'organic_selections': 0,
            'calibrations': 0,
            'history_recalibrations': 0,
        }

    @property
    def user_id(self) -> str:
        return self.bandit.user_id

    async def build_context(self, tasks: List[TaskEntity],
                            completed_tasks: Optional[List[TaskEntity]] = None,
                            energy: Optional[float] = None,
                            tags: Optional[List[Tag]] = None,
                            now: Optional[datetime] = None,
                            available_minutes: int = 60,
                            user_id: Optional[str] = None) -> SuggestionContext:
        """Assemble a SuggestionContext with learned patterns and the current snapshot."""
        user_id = user_id or self.user_id
        now = now or datetime.now()

        patterns = await self.learning.get_learned_patterns(user_id, now=now)

        snapshot = None
        if self.snapshot_provider is not None:
            try:
                snapshot = await self.snapshot_provider(user_id)
            except Exception as e:
                logger.warning(f"Context snapshot unavailable for {user_id}: {e}")

        return SuggestionContext(
            current_time=now,
            energy=energy,
            available_minutes=available_minutes,
            tasks=list(tasks),
            tags=list(tags or []),
            completed_tasks=list(completed_tasks or []),
            backlog_count=len(tasks),
            previous_patterns=patterns,
            user_context=snapshot,
        )

    def build_context_vector(self, ctx: SuggestionContext) -> np.ndarray:
        return build_context_vector(ctx, self.strategy_config)

    def get_valid_strategies(self, ctx: SuggestionContext) -> List[int]:
        return strategies.valid_arms(ctx, self.strategy_config)

    def _empty(self, reason: str, strategy: str, arm: int, score: float,
               x: Optional[np.ndarray]) -> Recommendation:
        self.metrics['empty_suggestions'] += 1
        suggestion = Suggestion(type='none', reason=reason, strategy=strategy)
        return Recommendation(suggestion=suggestion, strategy=strategy, arm=arm, score=score, context_vector=x)

    async def generate_suggestion(self, ctx: SuggestionContext) -> Recommendation:
        """
        Run one recommendation cycle.

        Returns a Recommendation whose suggestion has type 'none' when no
        arm is applicable, the bandit has nothing to offer, or the chosen
        arm resolves to nothing (Status Quo).
        """
        self.metrics['total_suggestions'] += 1

        x = self.build_context_vector(ctx)
        valid = self.get_valid_strategies(ctx)
        logger.debug(f"Context for {self.user_id}: {describe_context_vector(x)}; valid arms {valid}")

        if not valid:
            return self._empty("Nothing to suggest right now.", "None", NO_ARM, float('-inf'), x)

        arm, score = await self.bandit.predict(x, valid)
        if arm == NO_ARM:
            return self._empty("Nothing to suggest right now.", "Fallback", NO_ARM, score, x)

        strategy = ARM_NAMES.get(StrategyArm(arm), "Unknown")
        suggestion = self.resolve_strategy(arm, ctx)

        if suggestion is None:
            return self._empty("Stay with what you are doing.", strategy, arm, score, x)

        if suggestion.type == 'wellbeing':
            self.metrics['wellbeing_suggestions'] += 1
        else:
            self.metrics['task_suggestions'] += 1

        logger.info(f"Suggested {suggestion.type} via {strategy} for {self.user_id} (score {score:.3f})")
        return Recommendation(suggestion=suggestion, strategy=strategy, arm=arm, score=score, context_vector=x)

    @staticmethod
    def pick_best(tasks: List[TaskEntity]) -> Optional[TaskEntity]:
        """Earliest due date first; undated tasks after, newest first."""
        if not tasks:
            return None
        return min(
            tasks,
            key=lambda t: (t.due_date is None, t.due_date or datetime.max, -t.created_at.timestamp()),
        )

    def _reason(self, arm: StrategyArm, ctx: SuggestionContext) -> str:
        if arm == StrategyArm.MOMENTUM:
            last = ctx.last_completed()
            zone = ctx.tag_name(last.category) if last else ''
            return f"Momentum: Stay in the {zone} zone."
        return ARM_REASONS.get(arm, ARM_NAMES[arm])

    def resolve_strategy(self, arm: int, ctx: SuggestionContext) -> Optional[Suggestion]:
        """Concrete suggestion for an arm, or None if it resolves to nothing."""
        arm = StrategyArm(arm)
        strategy = ARM_NAMES[arm]

        if arm == StrategyArm.NO_OP:
            return None

        if arm in strategies.WELLBEING_ARMS:
            return Suggestion(
                type='wellbeing',
                title=WELLBEING_TITLES[arm],
                reason=self._reason(arm, ctx),
                strategy=strategy,
                estimated_duration=WELLBEING_DURATION,
                category='Wellbeing',
                energy_requirement='Low',
                confidence=WELLBEING_CONFIDENCE,
                priority=DEFAULT_PRIORITY,
            )

        candidates = strategies.candidate_tasks(arm, ctx, self.strategy_config)
        if not candidates:
            return None

        if arm == StrategyArm.THE_CRUSHER:
            chosen = min(candidates, key=lambda t: t.due_date)
        elif arm == StrategyArm.ARCHAEOLOGIST:
            chosen = min(candidates, key=lambda t: t.created_at)
        else:
            chosen = self.pick_best(candidates)

        return Suggestion(
            type='task',
            task_id=chosen.id,
            title=chosen.title,
            reason=self._reason(arm, ctx),
            strategy=strategy,
            estimated_duration=chosen.duration,
            category=chosen.category,
            energy_requirement=chosen.energy,
            confidence=TASK_CONFIDENCE,
            priority=DEFAULT_PRIORITY,
        )

    async def _record(self, ctx: SuggestionContext, arm: Optional[int], completed: bool,
                      task: Optional[TaskEntity] = None):
        if task is not None and task.category:
            category = ctx.tag_name(task.category)
        elif arm is not None and arm in strategies.WELLBEING_ARMS:
            category = 'Wellbeing'
        else:
            category = 'Work'

        pattern = LearnedPattern(
            task_category=category,
            time_of_day=ctx.current_time.hour,
            day_of_week=(ctx.current_time.weekday() + 1) % 7,
            energy_level=ctx.energy if ctx.energy is not None else 50.0,
            completed=completed,
            timestamp=ctx.current_time,
            duration=task.duration if task is not None else None,
        )
        strategy = ARM_NAMES[StrategyArm(arm)] if arm is not None else None
        await self.learning.record_decision(self.user_id, pattern, strategy=strategy)

    def _resolve_arm(self, strategy: str) -> Optional[StrategyArm]:
        arm = arm_from_name(strategy)
        if arm is None:
            logger.warning(f"Ignoring feedback for unknown strategy '{strategy}'")
        return arm

    async def log_completion(self, ctx: SuggestionContext, strategy: str, success: bool,
                             task: Optional[TaskEntity] = None) -> bool:
        """A followed suggestion was finished (success) or abandoned."""
        arm = self._resolve_arm(strategy)
        if arm is None:
            return False

        x = self.build_context_vector(ctx)
        reward = self.rewards.accepted if success else self.rewards.failed_completion
        await self.bandit.update(x, arm, reward)

        self.metrics['completions' if success else 'failed_completions'] += 1
        await self._record(ctx, arm, success, task)
        return True

    async def log_rejection(self, ctx: SuggestionContext, strategy: str,
                            task: Optional[TaskEntity] = None) -> bool:
        """A suggestion was explicitly dismissed."""
        arm = self._resolve_arm(strategy)
        if arm is None:
            return False

        x = self.build_context_vector(ctx)
        await self.bandit.update(x, arm, self.rewards.rejected)

        self.metrics['rejections'] += 1
        await self._record(ctx, arm, False, task)
        return True

    def _organic_samples(self, task: TaskEntity, ctx: SuggestionContext,
                         suggested_strategy: Optional[str] = None) -> List[FeedbackSample]:
        x = self.build_context_vector(ctx)
        valid = self.get_valid_strategies(ctx)
        matching = strategies.matching_arms(task, ctx, valid, self.strategy_config)

        samples = [FeedbackSample(x=x, arm=arm, reward=self.rewards.organic_match) for arm in matching]

        if suggested_strategy:
            suggested = arm_from_name(suggested_strategy)
            if suggested is not None and suggested not in matching:
                samples.append(FeedbackSample(x=x, arm=int(suggested), reward=self.rewards.organic_skipped))

        return samples

    async def log_organic_selection(self, task: TaskEntity, ctx: SuggestionContext,
                                    suggested_strategy: Optional[str] = None) -> int:
        """
        The user picked a task on their own.

        Every applicable arm that would have suggested the task is rewarded;
        a strategy that was suggested and passed over is penalised. All
        rewards are applied as one batch.
        """
        samples = self._organic_samples(task, ctx, suggested_strategy)
        applied = await self.bandit.batch_train(samples)

        self.metrics['organic_selections'] += 1
        await self._record(ctx, None, True, task)
        logger.info(f"Organic selection of {task.id} rewarded {applied} arms")
        return applied

    async def calibrate(self, tasks: List[TaskEntity], scenario_source: Optional[ScenarioSource] = None,
                        now: Optional[datetime] = None) -> int:
        """
        Warm start the model from synthetic scenarios.

        Returns the number of samples trained. Raises CalibrationError when
        there are no tasks or no scenario maps to a known strategy.
        """
        if not tasks:
            raise CalibrationError("Calibration needs at least one task")

        now = now or datetime.now()
        source = scenario_source or RuleBasedScenarioSource(
            urgent_window_hours=self.strategy_config.urgent_window_hours,
            stale_task_days=self.strategy_config.stale_task_days,
        )

        try:
            scenarios = await source.get_scenarios(tasks, now)
        except Exception as e:
            raise CalibrationError(f"Scenario source failed: {e}") from e

        samples = []
        for scenario in scenarios:
            arm = arm_from_name(scenario.strategy)
            if arm is None:
                logger.debug(f"Skipping scenario with unknown strategy '{scenario.strategy}'")
                continue

            mock_time = now.replace(hour=scenario.hour, minute=0, second=0, microsecond=0)
            completed = []
            if scenario.last_category:
                completed.append(TaskEntity(
                    id='synth-last',
                    title='Synthetic Last Task',
                    category=scenario.last_category,
                    duration=30,
                    energy='Medium',
                    status='completed',
                    created_at=mock_time,
                    completed_at=mock_time - timedelta(minutes=15),
                    actual_duration=30 * 60,
                ))

            ctx = SuggestionContext(
                current_time=mock_time,
                energy=scenario.energy,
                tasks=list(tasks),
                completed_tasks=completed,
                backlog_count=len(tasks),
            )
            samples.append(FeedbackSample(x=self.build_context_vector(ctx), arm=int(arm),
                                          reward=self.rewards.synthetic))

        if not samples:
            raise CalibrationError("No usable calibration scenarios")

        trained = await self.bandit.batch_train(samples)
        self.metrics['calibrations'] += 1
        logger.info(f"Calibrated {self.user_id} with {trained} synthetic samples")
        return trained

    async def recalibrate_from_history(self, all_tasks: List[TaskEntity], all_vitals: List[UserVital]) -> int:
        """
        Reset the model and replay every completed task as an organic selection.

        Energy at each completion comes from the latest earlier mood vital.
        Returns the number of completions replayed.
        """
        completed = sorted(
            (t for t in all_tasks if t.status == 'completed' and t.completed_at is not None),
            key=lambda t: t.completed_at,
        )
        if not completed:
            raise CalibrationError("No completed tasks to replay")

        moods = sorted((v for v in all_vitals if v.type == 'mood'), key=lambda v: v.timestamp)

        await self.bandit.reset_model()
        samples: List[FeedbackSample] = []

        for task in completed:
            completion_time = task.completed_at

            energy = DEFAULT_REPLAY_ENERGY
            prior = [v for v in moods if v.timestamp < completion_time]
            if prior:
                energy = normalize_energy(prior[-1].value)

            previous = [t for t in completed if t.completed_at < completion_time]
            active = [
                t for t in all_tasks
                if t.id != task.id
                and t.created_at <= completion_time
                and not (t.completed_at and t.completed_at < completion_time)
                and not (t.archived_at and t.archived_at < completion_time)
            ]

            ctx = SuggestionContext(
                current_time=completion_time,
                energy=energy,
                tasks=active,
                completed_tasks=previous,
                backlog_count=len(active),
            )
            samples.extend(self._organic_samples(task, ctx))

        if samples:
            await self.bandit.batch_train(samples)
        else:
            await self.bandit.persist()

        self.metrics['history_recalibrations'] += 1
        logger.info(f"Replayed {len(completed)} completions ({len(samples)} samples) for {self.user_id}")
        return len(completed)

    def get_metrics(self) -> Dict[str, Any]:
        """Get engine performance metrics."""
        return {
            **self.metrics,
            'user_id': self.user_id,
            'model_loaded': self.bandit.is_loaded,
            'save_failures': self.bandit.save_failures,
        }
