"""
Audit trail of validation attempts.

Entries are written through their own session so a rollback of the
pipeline's work never takes the audit record with it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.database import ValidationLog

logger = logging.getLogger(__name__)

DECISION_GRANTED = "access_granted"
DECISION_DENIED = "access_denied"
DECISION_ERROR = "error"
DECISION_UNKNOWN = "unknown"


@dataclass
class LogEntry:
    user_id: Optional[str] = None
    observed_user_id: Optional[str] = None
    camera_id: Optional[str] = None
    result: bool = False
    user_type: Optional[str] = None
    vector_attempted: List[Any] = field(default_factory=list)
    match_status: Optional[str] = None
    decision: str = DECISION_UNKNOWN
    reason: str = "function_started"
    confidence_score: Optional[float] = None
    requested_zone_id: Optional[str] = None

    def grant_or_deny(self, has_access: bool, reason: str, match_status: str) -> None:
        self.result = has_access
        self.decision = DECISION_GRANTED if has_access else DECISION_DENIED
        self.reason = reason
        self.match_status = match_status

    def error(self, reason: str, match_status: str) -> None:
        self.result = False
        self.decision = DECISION_ERROR
        self.reason = reason
        self.match_status = match_status


def _is_finite(item: Any) -> bool:
    try:
        return math.isfinite(float(item))
    except OverflowError:
        return False


def sanitize_vector(value: Any) -> List[Any]:
    """Keep whatever was attempted, minus values a JSON column cannot hold"""
    if not isinstance(value, (list, tuple)):
        return []
    cleaned = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            cleaned.append(None)
        elif not _is_finite(item):
            cleaned.append(None)
        else:
            cleaned.append(item)
    return cleaned


class AuditLogger:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def write(self, entry: LogEntry) -> bool:
        """Persist one entry; failures are reported but never raised"""
        try:
            async with self.session_maker() as session:
                session.add(
                    ValidationLog(
                        user_id=entry.user_id,
                        observed_user_id=entry.observed_user_id,
                        camera_id=entry.camera_id,
                        result=entry.result,
                        user_type=entry.user_type,
                        vector_attempted=sanitize_vector(entry.vector_attempted),
                        match_status=entry.match_status,
                        decision=entry.decision,
                        reason=entry.reason,
                        confidence_score=entry.confidence_score,
                        requested_zone_id=entry.requested_zone_id,
                    )
                )
                await session.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to write validation log entry ({entry.match_status}): {e}")
            return False
