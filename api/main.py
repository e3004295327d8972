"""
FastAPI Web Service for the Task Recommendation Engine

Provides RESTful endpoints for:
- Getting the next suggestion for a user's current situation
- Recording feedback on suggestions and unprompted task choices
- Calibrating a user's model
- Insights, model statistics and model reset
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import redis
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from categories import FEEDBACK_CATEGORIES, get_categories, is_valid_category_value
from config.settings import (
    build_bandit_config,
    build_learning_config,
    build_reward_config,
    configure_logging,
    get_settings,
)
from models.contextual_bandit import NUM_ARMS
from models.entities import SuggestionContext, Tag, TaskEntity, UserVital
from services.database import create_db_engine, init_db
from services.decision_log import SQLDecisionLog
from services.feature_encoder import FEATURE_DIM, describe_context_vector
from services.model_store import SQLModelStore
from services.recommendation_engine import CalibrationError
from services.session import SessionRegistry, UserSession
from utils import to_local_naive

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Task Recommendation Engine API",
    description="Adaptive task suggestions using a LinUCB contextual bandit",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session registry, created on first request
session_registry: Optional[SessionRegistry] = None


# Pydantic models for request/response
def _check_category(category_name: str, value: str) -> str:
    if not is_valid_category_value(category_name, value):
        raise ValueError(f"must be one of: {', '.join(get_categories(category_name))}")
    return value


class TaskModel(BaseModel):
    id: str = Field(..., description="Task identifier")
    title: str = Field(..., description="Task title")
    category: str = Field("", description="Tag id or category name")
    duration: int = Field(30, ge=0, description="Planned duration in minutes")
    energy: str = Field("Medium", description="Energy requirement")
    status: str = "active"
    created_at: datetime = Field(default_factory=datetime.now)
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    actual_duration: Optional[float] = Field(None, description="Seconds actually spent")
    blocked_by: List[str] = Field(default_factory=list)

    @field_validator("energy")
    @classmethod
    def validate_energy(cls, v: str) -> str:
        return _check_category('energy_level', v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_category('task_status', v)

    @field_validator("created_at", "due_date", "completed_at", "archived_at")
    @classmethod
    def to_local_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(v)

    def to_entity(self) -> TaskEntity:
        return TaskEntity(**self.model_dump())


class TagModel(BaseModel):
    id: str
    name: str
    color: Optional[str] = None


class VitalModel(BaseModel):
    id: str
    timestamp: datetime
    type: str
    value: Union[float, str]

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _check_category('vital_type', v)

    @field_validator("timestamp")
    @classmethod
    def to_local_time(cls, v: datetime) -> datetime:
        return to_local_naive(v)


class ContextRequest(BaseModel):
    user_id: str = Field(..., description="Unique user identifier")
    tasks: List[TaskModel] = Field(default_factory=list, description="Active tasks")
    completed_tasks: List[TaskModel] = Field(default_factory=list, description="Recently completed tasks")
    tags: List[TagModel] = Field(default_factory=list)
    energy: Optional[float] = Field(None, ge=0, le=100, description="Current energy (0-100)")
    current_time: Optional[datetime] = Field(None, description="Defaults to the server time")
    available_minutes: int = Field(60, ge=0)

    @field_validator("current_time")
    @classmethod
    def to_local_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(v)


class SuggestionResponse(BaseModel):
    suggestion: Dict[str, Any]
    strategy: str
    arm: int
    score: Optional[float]
    context: Dict[str, float]
    timestamp: datetime


class FeedbackRequest(ContextRequest):
    kind: str = Field(..., description="accept, complete_failed, reject or organic")
    strategy: Optional[str] = Field(None, description="Strategy of the suggestion the feedback is about")
    task_id: Optional[str] = Field(None, description="Task the feedback is about")


class FeedbackResponse(BaseModel):
    success: bool
    message: str
    timestamp: datetime


class CalibrationRequest(BaseModel):
    user_id: str
    tasks: List[TaskModel]
    current_time: Optional[datetime] = None

    @field_validator("current_time")
    @classmethod
    def to_local_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(v)


class HistoryCalibrationRequest(BaseModel):
    user_id: str
    tasks: List[TaskModel]
    vitals: List[VitalModel] = Field(default_factory=list)


class CalibrationResponse(BaseModel):
    user_id: str
    samples: int
    timestamp: datetime


def _build_registry() -> SessionRegistry:
    settings = get_settings()

    db_engine = create_db_engine(settings.database_url, echo=settings.debug)
    init_db(db_engine)

    redis_client = None
    if settings.redis_enabled:
        redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            decode_responses=True,
        )

    return SessionRegistry(
        SQLModelStore(db_engine, redis_client, cache_ttl=settings.cache_ttl),
        SQLDecisionLog(db_engine),
        bandit_config=build_bandit_config(settings, FEATURE_DIM, NUM_ARMS),
        reward_config=build_reward_config(settings),
        learning_config=build_learning_config(settings),
        persistence_timeout=settings.persistence_timeout_seconds,
    )


# Dependency to get the session registry
def get_registry() -> SessionRegistry:
    global session_registry
    if session_registry is None:
        session_registry = _build_registry()
        logger.info("Session registry initialized")
    return session_registry


@app.on_event("startup")
async def startup_event():
    """Configure logging on startup."""
    configure_logging(get_settings())
    logger.info("Task Recommendation Engine API starting")


async def _context_from_request(session: UserSession, request: ContextRequest) -> SuggestionContext:
    return await session.engine.build_context(
        tasks=[t.to_entity() for t in request.tasks],
        completed_tasks=[t.to_entity() for t in request.completed_tasks],
        energy=request.energy,
        tags=[Tag(**t.model_dump()) for t in request.tags],
        now=request.current_time,
        available_minutes=request.available_minutes,
    )


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "message": "Task Recommendation Engine API",
        "version": "1.0.0",
        "status": "healthy",
        "timestamp": datetime.now()
    }


@app.post("/suggestions", response_model=SuggestionResponse)
async def get_suggestion(request: ContextRequest, registry: SessionRegistry = Depends(get_registry)):
    """
    Get the next suggestion.

    The bandit picks one strategy among those applicable to the submitted
    tasks; the strategy is then resolved to a task or a wellbeing action.
    """
    try:
        session = registry.get(request.user_id)
        ctx = await _context_from_request(session, request)
        recommendation = await session.engine.generate_suggestion(ctx)

        return SuggestionResponse(
            suggestion=recommendation.suggestion.to_dict(),
            strategy=recommendation.strategy,
            arm=recommendation.arm,
            score=_finite_or_none(recommendation.score),
            context=describe_context_vector(recommendation.context_vector),
            timestamp=datetime.now()
        )

    except Exception as e:
        logger.error(f"Error generating suggestion for {request.user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to generate suggestion: {str(e)}")


@app.post("/feedback", response_model=FeedbackResponse)
async def record_feedback(request: FeedbackRequest, registry: SessionRegistry = Depends(get_registry)):
    """
    Record the user's response.

    accept / complete_failed / reject reward the strategy that produced the
    suggestion; organic rewards every strategy that would have suggested the
    task the user picked instead.
    """
    if request.kind not in FEEDBACK_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown feedback kind: {request.kind}")
    if request.kind != 'organic' and not request.strategy:
        raise HTTPException(status_code=400, detail="Feedback on a suggestion needs its strategy")
    if request.kind == 'organic' and not request.task_id:
        raise HTTPException(status_code=400, detail="Organic feedback needs a task_id")

    try:
        session = registry.get(request.user_id)
        ctx = await _context_from_request(session, request)

        task = None
        if request.task_id:
            task = next((t for t in ctx.tasks + ctx.completed_tasks if t.id == request.task_id), None)

        if request.kind == 'organic':
            if task is None:
                raise HTTPException(status_code=400, detail=f"Unknown task: {request.task_id}")
            applied = await session.engine.log_organic_selection(task, ctx, suggested_strategy=request.strategy)
            message = f"Organic selection recorded for {applied} strategies"
        elif request.kind == 'reject':
            applied = await session.engine.log_rejection(ctx, request.strategy, task=task)
            message = "Rejection recorded" if applied else f"Unknown strategy: {request.strategy}"
        else:
            success = request.kind == 'accept'
            applied = await session.engine.log_completion(ctx, request.strategy, success, task=task)
            message = "Completion recorded" if applied else f"Unknown strategy: {request.strategy}"

        logger.info(f"Recorded feedback: user={request.user_id}, kind={request.kind}, strategy={request.strategy}")

        return FeedbackResponse(success=bool(applied) or request.kind == 'organic', message=message,
                                timestamp=datetime.now())

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error recording feedback: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to record feedback: {str(e)}")


@app.post("/calibration/synthetic", response_model=CalibrationResponse)
async def calibrate_synthetic(request: CalibrationRequest, registry: SessionRegistry = Depends(get_registry)):
    """Warm start a user's model from synthetic scenarios built from their tasks."""
    try:
        session = registry.get(request.user_id)
        samples = await session.engine.calibrate(
            [t.to_entity() for t in request.tasks], now=request.current_time
        )
        return CalibrationResponse(user_id=request.user_id, samples=samples, timestamp=datetime.now())

    except CalibrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error calibrating {request.user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to calibrate: {str(e)}")


@app.post("/calibration/history", response_model=CalibrationResponse)
async def calibrate_history(request: HistoryCalibrationRequest, registry: SessionRegistry = Depends(get_registry)):
    """Reset a user's model and replay their completed tasks."""
    try:
        session = registry.get(request.user_id)
        processed = await session.engine.recalibrate_from_history(
            [t.to_entity() for t in request.tasks],
            [UserVital(**v.model_dump()) for v in request.vitals],
        )
        return CalibrationResponse(user_id=request.user_id, samples=processed, timestamp=datetime.now())

    except CalibrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error replaying history for {request.user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to recalibrate: {str(e)}")


@app.get("/insights/{user_id}")
async def get_insights(user_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Insights and completion-rate breakdowns from the user's recent decisions."""
    try:
        session = registry.get(user_id)
        patterns = await session.learning.get_learned_patterns(user_id)
        return {
            "user_id": user_id,
            "insights": session.learning.generate_insights(patterns),
            "patterns": len(patterns),
            **session.learning.summarize(patterns),
            "timestamp": datetime.now()
        }
    except Exception as e:
        logger.error(f"Error getting insights for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get insights: {str(e)}")


@app.post("/model/{user_id}/reset")
async def reset_model(user_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Reset a user's model to the cold-start state and save it."""
    try:
        session = registry.get(user_id)
        await session.bandit.reset_model()
        await session.bandit.persist()
        return {
            "success": True,
            "message": f"Model reset for {user_id}",
            "timestamp": datetime.now()
        }
    except Exception as e:
        logger.error(f"Error resetting model for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to reset model: {str(e)}")


@app.get("/model/{user_id}/stats")
async def get_model_stats(user_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Per-arm statistics of a user's model and the engine's counters."""
    try:
        session = registry.get(user_id)
        await session.bandit.ensure_loaded()
        return {
            "model": session.bandit.get_statistics(),
            "metrics": session.engine.get_metrics(),
            "timestamp": datetime.now()
        }
    except Exception as e:
        logger.error(f"Error getting model stats for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get model stats: {str(e)}")


@app.get("/health")
async def health_check(registry: SessionRegistry = Depends(get_registry)):
    """Comprehensive health check endpoint."""
    try:
        return {
            "status": "healthy",
            "recommendation_engine": "operational",
            "active_sessions": len(registry),
            "feature_dim": FEATURE_DIM,
            "num_arms": NUM_ARMS,
            "timestamp": datetime.now()
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
            "timestamp": datetime.now()
        }


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
