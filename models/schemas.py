"""
Versioned schema of the per-user model record.

Each arm is stored explicitly as a nested d x d matrix and a d vector, and the
record carries the feature count it was trained with so that incompatible
records can be rejected with a plain equality check.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class ArmParameters(BaseModel):
    A: List[List[float]] = Field(..., description="Ridge regression design matrix (d x d)")
    b: List[float] = Field(..., description="Reward-weighted context sum (d)")


class PersistedModel(BaseModel):
    arm_models: List[ArmParameters]
    updated_at: datetime = Field(default_factory=datetime.now)
    version: int = Field(..., description="Schema version")
    feature_count: int = Field(..., description="Context vector dimension the model was trained with")
