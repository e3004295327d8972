"""
Applicability rules for the strategy arms.

Arm masking, task resolution and organic-selection rewards all ask the same
questions of a task; the answers live here and nowhere else.
"""

from datetime import timedelta
from typing import List, Optional

from config import StrategyConfig
from models.contextual_bandit import StrategyArm
from models.entities import SuggestionContext, TaskEntity

# Arms that never point at a task
WELLBEING_ARMS = (
    StrategyArm.SOMATIC_RESET,
    StrategyArm.COGNITIVE_RESET,
    StrategyArm.PULL_BACK,
)

ALWAYS_VALID_ARMS = (
    StrategyArm.SOMATIC_RESET,
    StrategyArm.COGNITIVE_RESET,
    StrategyArm.NO_OP,
)

_DEFAULT_CONFIG = StrategyConfig()


def is_blocked(task: TaskEntity, tasks: List[TaskEntity]) -> bool:
    """A task is blocked while any of its blockers is still in the active list."""
    if not task.blocked_by:
        return False
    active_ids = {t.id for t in tasks}
    return any(blocker in active_ids for blocker in task.blocked_by)


def available_tasks(tasks: List[TaskEntity]) -> List[TaskEntity]:
    return [t for t in tasks if not is_blocked(t, tasks)]


def is_urgent(task: TaskEntity, ctx: SuggestionContext, config: StrategyConfig = _DEFAULT_CONFIG) -> bool:
    """Due within the urgency window, or already overdue."""
    if task.due_date is None:
        return False
    return task.due_date < ctx.current_time + timedelta(hours=config.urgent_window_hours)


def is_stale(task: TaskEntity, ctx: SuggestionContext, config: StrategyConfig = _DEFAULT_CONFIG) -> bool:
    """Old and undated."""
    cutoff = ctx.current_time - timedelta(days=config.stale_task_days)
    return task.due_date is None and task.created_at < cutoff


def is_twilight(ctx: SuggestionContext, config: StrategyConfig = _DEFAULT_CONFIG) -> bool:
    return config.twilight_start_hour <= ctx.current_time.hour < config.twilight_end_hour


def task_matches_arm(arm: int, task: TaskEntity, ctx: SuggestionContext,
                     config: StrategyConfig = _DEFAULT_CONFIG) -> bool:
    """
    Whether the given arm would have suggested this task.

    Wellbeing arms and Status Quo never match a task.
    """
    last = ctx.last_completed()

    if arm == StrategyArm.DEEP_FLOW:
        return task.energy == 'High' and task.duration > config.deep_flow_min_duration
    if arm == StrategyArm.QUICK_SPARK:
        return task.energy == 'High' and task.duration <= config.quick_spark_max_duration
    if arm == StrategyArm.MOMENTUM:
        return last is not None and task.category == last.category
    if arm == StrategyArm.PALETTE_CLEANSER:
        return last is not None and task.category != last.category
    if arm == StrategyArm.THE_CRUSHER:
        return is_urgent(task, ctx, config)
    if arm == StrategyArm.LOW_GEAR:
        return task.energy == 'Low'
    if arm == StrategyArm.ARCHAEOLOGIST:
        return is_stale(task, ctx, config)
    if arm == StrategyArm.SNOWBALL:
        return (last is not None
                and last.duration <= config.small_task_max_duration
                and task.duration <= config.small_task_max_duration)
    if arm == StrategyArm.TWILIGHT_RITUAL:
        return is_twilight(ctx, config) and task.energy == 'Low'
    return False


def is_arm_applicable(arm: int, tasks: List[TaskEntity], ctx: SuggestionContext,
                      config: StrategyConfig = _DEFAULT_CONFIG) -> bool:
    """
    Whether an arm may be offered to the bandit.

    Args:
        arm: Strategy arm index
        tasks: Unblocked candidate tasks
        ctx: Context the decision is made in
    """
    if arm in ALWAYS_VALID_ARMS:
        return True

    if arm == StrategyArm.PULL_BACK:
        total_duration = sum(t.duration for t in ctx.tasks)
        low_energy = ctx.energy is not None and ctx.energy < config.pull_back_energy
        return total_duration > config.pull_back_queue_minutes or low_energy

    return any(task_matches_arm(arm, task, ctx, config) for task in tasks)


def valid_arms(ctx: SuggestionContext, config: StrategyConfig = _DEFAULT_CONFIG) -> List[int]:
    """Applicable arms in index order."""
    tasks = available_tasks(ctx.tasks)
    return [int(arm) for arm in StrategyArm if is_arm_applicable(arm, tasks, ctx, config)]


def candidate_tasks(arm: int, ctx: SuggestionContext,
                    config: StrategyConfig = _DEFAULT_CONFIG) -> List[TaskEntity]:
    """Unblocked tasks the arm would suggest."""
    return [t for t in available_tasks(ctx.tasks) if task_matches_arm(arm, t, ctx, config)]


def matching_arms(task: TaskEntity, ctx: SuggestionContext, arms: Optional[List[int]] = None,
                  config: StrategyConfig = _DEFAULT_CONFIG) -> List[int]:
    """Arms among `arms` (default: all valid arms) whose rule matches the task."""
    if arms is None:
        arms = valid_arms(ctx, config)
    return [arm for arm in arms if task_matches_arm(arm, task, ctx, config)]
