"""
Synthetic calibration scenarios.

A scenario says "at this hour and energy, after a task of this category, this
strategy is the right call". The orchestrator turns each one into a context
vector and trains the bandit on it with a positive reward, giving a new user
a warm start instead of a uniform cold model.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from categories import TRACKED_TASK_CATEGORIES
from models.contextual_bandit import ARM_NAMES, StrategyArm
from models.entities import TaskEntity

logger = logging.getLogger(__name__)


@dataclass
class CalibrationScenario:
    hour: int
    energy: float
    strategy: str  # Arm display name
    last_category: Optional[str] = None


class ScenarioSource(ABC):
    """Produces calibration scenarios for a task list."""

    @abstractmethod
    async def get_scenarios(self, tasks: List[TaskEntity], now: datetime) -> List[CalibrationScenario]:
        ...


class RuleBasedScenarioSource(ScenarioSource):
    """
    Deterministic scenarios derived from the shape of the user's tasks.

    Each task contributes the scenarios its own attributes make obvious
    (urgent, stale, high energy, low energy, category continuity), followed
    by one scenario for each wellbeing arm.
    """

    def __init__(self, max_tasks: int = 25, max_scenarios: int = 30,
                 urgent_window_hours: float = 24.0, stale_task_days: int = 14):
        self.max_tasks = max_tasks
        self.max_scenarios = max_scenarios
        self.urgent_window_hours = urgent_window_hours
        self.stale_task_days = stale_task_days

    def _task_scenarios(self, task: TaskEntity, now: datetime, seen_categories: set) -> List[CalibrationScenario]:
        scenarios = []

        if task.due_date is not None and task.due_date < now + timedelta(hours=self.urgent_window_hours):
            scenarios.append(CalibrationScenario(10, 60, ARM_NAMES[StrategyArm.THE_CRUSHER]))
        elif task.due_date is None and task.created_at < now - timedelta(days=self.stale_task_days):
            scenarios.append(CalibrationScenario(14, 50, ARM_NAMES[StrategyArm.ARCHAEOLOGIST]))

        if task.energy == 'High' and task.duration > 30:
            scenarios.append(CalibrationScenario(9, 85, ARM_NAMES[StrategyArm.DEEP_FLOW]))
        elif task.energy == 'High' and task.duration <= 20:
            scenarios.append(CalibrationScenario(15, 75, ARM_NAMES[StrategyArm.QUICK_SPARK]))
        elif task.energy == 'Low':
            scenarios.append(CalibrationScenario(20, 30, ARM_NAMES[StrategyArm.TWILIGHT_RITUAL]))
            scenarios.append(CalibrationScenario(13, 30, ARM_NAMES[StrategyArm.LOW_GEAR]))

        if task.category and task.category not in seen_categories:
            seen_categories.add(task.category)
            other = next(c for c in TRACKED_TASK_CATEGORIES if c != task.category)
            scenarios.append(CalibrationScenario(11, 60, ARM_NAMES[StrategyArm.MOMENTUM], task.category))
            scenarios.append(CalibrationScenario(16, 55, ARM_NAMES[StrategyArm.PALETTE_CLEANSER], other))

        return scenarios

    async def get_scenarios(self, tasks: List[TaskEntity], now: datetime) -> List[CalibrationScenario]:
        scenarios: List[CalibrationScenario] = []
        seen_categories: set = set()

        for task in tasks[:self.max_tasks]:
            scenarios.extend(self._task_scenarios(task, now, seen_categories))

        scenarios.extend([
            CalibrationScenario(15, 35, ARM_NAMES[StrategyArm.SOMATIC_RESET]),
            CalibrationScenario(10, 45, ARM_NAMES[StrategyArm.COGNITIVE_RESET]),
            CalibrationScenario(18, 25, ARM_NAMES[StrategyArm.PULL_BACK]),
        ])

        if len(scenarios) > self.max_scenarios:
            # Keep the wellbeing scenarios at the tail
            scenarios = scenarios[:self.max_scenarios - 3] + scenarios[-3:]

        logger.debug(f"Generated {len(scenarios)} calibration scenarios from {len(tasks)} tasks")
        return scenarios
