"""
Domain entities consumed and produced by the recommendation engine.

Tasks, tags, vitals and the environmental snapshot come from the task store
and sensor layers; suggestions and decision patterns are produced here.
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import numpy as np


@dataclass
class Tag:
    id: str
    name: str
    color: Optional[str] = None


@dataclass
class TaskEntity:
    """A task as stored by the task store."""
    id: str
    title: str
    category: str = ''  # Tag id or legacy category name
    duration: int = 30  # Planned minutes
    energy: str = 'Medium'  # High, Medium or Low
    status: str = 'active'
    created_at: datetime = field(default_factory=datetime.now)
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    actual_duration: Optional[float] = None  # Seconds actually spent
    blocked_by: List[str] = field(default_factory=list)


@dataclass
class ContextSnapshot:
    """Environmental, device and temporal signals at one point in time."""
    location_label: str = 'Unknown'
    motion_intensity: str = 'Stationary'
    is_moving: bool = False
    battery_level: Optional[float] = None  # 0.0 - 1.0
    is_charging: Optional[bool] = None
    is_online: bool = True
    hour: Optional[int] = None
    day_of_week: Optional[int] = None
    is_work_hours: bool = False
    is_daytime: bool = True


@dataclass
class LearnedPattern:
    """One historical decision replayed from the decision log."""
    task_category: str
    time_of_day: int  # 0-23
    day_of_week: int  # 0-6, Sunday first
    energy_level: float  # 0-100
    completed: bool
    timestamp: datetime
    duration: Optional[int] = None  # Minutes, absent on older logs


@dataclass
class UserVital:
    id: str
    timestamp: datetime
    type: str  # mood, focus, journal or breathe
    value: Union[str, float]


@dataclass
class SuggestionContext:
    """Point-in-time snapshot of everything the recommender looks at."""
    current_time: datetime
    energy: Optional[float] = 50.0  # 0-100
    available_minutes: int = 60
    tasks: List[TaskEntity] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)
    completed_tasks: List[TaskEntity] = field(default_factory=list)
    backlog_count: int = 0
    previous_patterns: List[LearnedPattern] = field(default_factory=list)
    user_context: Optional[ContextSnapshot] = None

    def last_completed(self) -> Optional[TaskEntity]:
        """Most recently completed task, if any."""
        if not self.completed_tasks:
            return None
        return max(self.completed_tasks, key=lambda t: t.completed_at or datetime.min)

    def tag_name(self, category: str) -> str:
        """Resolve a tag id to its name; plain category names pass through."""
        for tag in self.tags:
            if tag.id == category:
                return tag.name
        return category


@dataclass
class Suggestion:
    """A single recommendation rendered by the presentation layer."""
    type: str  # task, wellbeing or none
    reason: str
    strategy: Optional[str] = None
    task_id: Optional[str] = None
    title: Optional[str] = None
    estimated_duration: Optional[int] = None
    category: Optional[str] = None
    energy_requirement: Optional[str] = None
    confidence: int = 0
    priority: int = 10
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FeedbackSample:
    x: np.ndarray
    arm: int
    reward: float


@dataclass
class Recommendation:
    """Outcome of one recommendation cycle."""
    suggestion: Suggestion
    strategy: str
    arm: int
    score: float
    context_vector: Optional[np.ndarray] = None
