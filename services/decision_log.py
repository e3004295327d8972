"""
Decision log stores.

Each record captures one decision (typically a task completion) with the time,
energy and category it happened at. The pattern miner reads them back.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from services.database import decision_logs

logger = logging.getLogger(__name__)

TASK_COMPLETE = 'task_complete'

# Values assumed for fields missing from older records
RECORD_DEFAULTS = {
    'task_category': 'Work',
    'energy_level': 50.0,
    'completed': True,
}


def _with_defaults(record: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(record)
    for key, value in RECORD_DEFAULTS.items():
        if result.get(key) is None:
            result[key] = value
    return result


class DecisionLogStore(ABC):

    @abstractmethod
    async def append(self, user_id: str, record: Dict[str, Any]):
        """Store one decision record."""

    @abstractmethod
    async def fetch_recent(self, user_id: str, since: datetime, limit: int,
                           event_type: str = TASK_COMPLETE) -> List[Dict[str, Any]]:
        """Records of the given type at or after `since`, newest first."""


class InMemoryDecisionLog(DecisionLogStore):

    def __init__(self):
        self.records: Dict[str, List[Dict[str, Any]]] = {}

    async def append(self, user_id: str, record: Dict[str, Any]):
        entry = dict(record)
        entry.setdefault('event_type', TASK_COMPLETE)
        entry.setdefault('timestamp', datetime.now())
        self.records.setdefault(user_id, []).append(entry)

    async def fetch_recent(self, user_id: str, since: datetime, limit: int,
                           event_type: str = TASK_COMPLETE) -> List[Dict[str, Any]]:
        matching = [
            _with_defaults(r) for r in self.records.get(user_id, [])
            if r.get('event_type') == event_type and r['timestamp'] >= since
        ]
        matching.sort(key=lambda r: r['timestamp'], reverse=True)
        return matching[:limit]


class SQLDecisionLog(DecisionLogStore):
    """Decision records in the decision_logs table."""

    COLUMNS = (
        'event_type', 'task_category', 'strategy', 'time_of_day', 'day_of_week',
        'energy_level', 'duration', 'completed', 'timestamp',
    )

    def __init__(self, db_engine: Engine):
        self.db_engine = db_engine

    def _append_sync(self, user_id: str, record: Dict[str, Any]):
        values = {key: record.get(key) for key in self.COLUMNS}
        values['user_id'] = user_id
        values['event_type'] = values['event_type'] or TASK_COMPLETE
        values['timestamp'] = values['timestamp'] or datetime.now()
        with self.db_engine.begin() as conn:
            conn.execute(insert(decision_logs).values(**values))

    def _fetch_sync(self, user_id: str, since: datetime, limit: int, event_type: str) -> List[Dict[str, Any]]:
        query = (
            select(decision_logs)
            .where(decision_logs.c.user_id == user_id)
            .where(decision_logs.c.event_type == event_type)
            .where(decision_logs.c.timestamp >= since)
            .order_by(decision_logs.c.timestamp.desc())
            .limit(limit)
        )
        with self.db_engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [_with_defaults(dict(row)) for row in rows]

    async def append(self, user_id: str, record: Dict[str, Any]):
        await asyncio.to_thread(self._append_sync, user_id, record)

    async def fetch_recent(self, user_id: str, since: datetime, limit: int,
                           event_type: str = TASK_COMPLETE) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._fetch_sync, user_id, since, limit, event_type)
