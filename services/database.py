"""
Database tables and engine factory.

Tables:
- bandit_models: one persisted LinUCB model per user, overwritten wholesale
- decision_logs: one row per recorded decision, read back by the pattern miner
"""

import logging
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine

from config import DatabaseConfig

logger = logging.getLogger(__name__)

metadata = MetaData()

bandit_models = Table(
    'bandit_models',
    metadata,
    Column('user_id', String(255), primary_key=True),
    Column('version', Integer, nullable=False),
    Column('feature_count', Integer, nullable=False),
    Column('payload', Text, nullable=False),
    Column('updated_at', DateTime, nullable=False),
)

decision_logs = Table(
    'decision_logs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(255), nullable=False, index=True),
    Column('event_type', String(50), nullable=False, default='task_complete'),
    Column('task_category', String(100)),
    Column('strategy', String(50)),
    Column('time_of_day', Integer),
    Column('day_of_week', Integer),
    Column('energy_level', Float),
    Column('duration', Integer),
    Column('completed', Boolean),
    Column('timestamp', DateTime, nullable=False, index=True),
)


def create_db_engine(database_url: str, echo: bool = False,
                     config: Optional[DatabaseConfig] = None) -> Engine:
    """Create an engine, sharing SQLite connections with worker threads."""
    config = config or DatabaseConfig(echo=echo)
    engine = create_engine(database_url, **config.get_engine_kwargs(database_url))
    logger.info(f"Database engine created for {engine.url.get_backend_name()}")
    return engine


def init_db(engine: Engine):
    """Create any missing tables."""
    metadata.create_all(engine)
    logger.info("Database tables ready")
