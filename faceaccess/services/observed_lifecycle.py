"""
Observed user lifecycle: creation, per-match updates, administrative actions
and the dashboard listing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import ActionNotImplementedError, NotFoundError
from ..models.database import ObservedUser, Zone, utcnow
from . import status_catalog as statuses
from .access_decision import DenialState, ObservedDecision, accumulate_zones
from .status_catalog import StatusCatalog

logger = logging.getLogger(__name__)

ACTION_BLOCK = "block"
ACTION_EXTEND = "extend"
ACTION_REGISTER = "register"
ACTION_TYPES = (ACTION_BLOCK, ACTION_EXTEND, ACTION_REGISTER)

FILTER_PENDING_REVIEW = "pendingReview"
FILTER_HIGH_RISK = "highRisk"
FILTER_ACTIVE_TEMPORAL = "activeTemporal"
FILTER_EXPIRED = "expired"


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ObservedUserService:
    def __init__(self, ttl_hours: Optional[int] = None):
        self.ttl = timedelta(hours=settings.observed_access_ttl_hours if ttl_hours is None else ttl_hours)
        self.pending_review_access_count = settings.pending_review_access_count

    async def create(
        self,
        session: AsyncSession,
        embedding: List[float],
        zone_id: Optional[str],
        catalog: StatusCatalog,
        now: Optional[datetime] = None,
        ai_action: Optional[str] = None,
    ) -> ObservedUser:
        now = now or utcnow()
        observed = ObservedUser(
            embedding=embedding,
            first_seen_at=now,
            last_seen_at=now,
            access_count=1,
            last_accessed_zones=accumulate_zones([], zone_id),
            status_id=catalog.id_for(statuses.ACTIVE_TEMPORAL),
            expires_at=now + self.ttl,
            alert_triggered=False,
            consecutive_denied_accesses=0,
            potential_match_user_id=None,
            ai_action=ai_action,
        )
        session.add(observed)
        await session.flush()
        logger.info(f"Created observed user {observed.id}, expires at {observed.expires_at.isoformat()}")
        return observed

    async def get(self, session: AsyncSession, observed_id: str) -> ObservedUser:
        observed = await session.get(ObservedUser, observed_id)
        if observed is None:
            raise NotFoundError(f"Observed user {observed_id} not found.")
        return observed

    def apply_match(
        self,
        observed: ObservedUser,
        decision: ObservedDecision,
        denial: DenialState,
        zone_id: Optional[str],
        catalog: StatusCatalog,
        now: Optional[datetime] = None,
    ) -> ObservedUser:
        """Apply one observed-match event; the embedding and first_seen_at stay untouched"""
        observed.last_seen_at = now or utcnow()
        observed.access_count = (observed.access_count or 0) + 1
        observed.last_accessed_zones = accumulate_zones(observed.last_accessed_zones, zone_id)
        observed.consecutive_denied_accesses = denial.consecutive_denied_accesses
        observed.alert_triggered = denial.alert_triggered
        if decision.new_status:
            observed.status_id = catalog.id_for(decision.new_status)
            logger.info(f"Observed user {observed.id} moved to status {decision.new_status}")
        return observed

    async def perform_action(
        self,
        session: AsyncSession,
        observed_id: str,
        action_type: str,
        catalog: StatusCatalog,
        now: Optional[datetime] = None,
    ) -> str:
        if action_type == ACTION_REGISTER:
            # Promotion into a registered user has no agreed transaction shape yet
            raise ActionNotImplementedError(
                f"Action 'register' for user {observed_id} is not yet implemented."
            )
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Invalid action type: {action_type}")

        observed = await self.get(session, observed_id)

        if action_type == ACTION_BLOCK:
            observed.status_id = catalog.id_for(statuses.BLOCKED)
            message = f"Observed user {observed_id} blocked successfully."
        else:
            new_expires_at = (now or utcnow()) + self.ttl
            observed.expires_at = new_expires_at
            observed.status_id = catalog.id_for(statuses.ACTIVE_TEMPORAL)
            message = (
                f"Observed user {observed_id} access extended successfully. "
                f"New expiry: {new_expires_at.isoformat()}"
            )

        await session.commit()
        logger.info(f"Action '{action_type}' completed for observed user ID: {observed_id}")
        return message

    def _apply_filter(self, query, filter_type: Optional[str], catalog: StatusCatalog):
        if filter_type == FILTER_PENDING_REVIEW:
            return query.where(
                ObservedUser.status_id == catalog.id_for(statuses.ACTIVE_TEMPORAL),
                ObservedUser.access_count > self.pending_review_access_count,
            )
        if filter_type == FILTER_HIGH_RISK:
            return query.where(
                ObservedUser.alert_triggered.is_(True),
                ObservedUser.status_id != catalog.id_for(statuses.BLOCKED),
            )
        if filter_type == FILTER_ACTIVE_TEMPORAL:
            return query.where(ObservedUser.status_id == catalog.id_for(statuses.ACTIVE_TEMPORAL))
        if filter_type == FILTER_EXPIRED:
            return query.where(ObservedUser.status_id == catalog.id_for(statuses.EXPIRED))
        return query

    async def _count(self, session: AsyncSession, filter_type: Optional[str], catalog: StatusCatalog) -> int:
        query = self._apply_filter(select(func.count()).select_from(ObservedUser), filter_type, catalog)
        return int((await session.execute(query)).scalar_one())

    async def list_observed_users(
        self,
        session: AsyncSession,
        catalog: StatusCatalog,
        page: int = 1,
        page_size: int = 10,
        search_term: str = "",
        filter_type: str = "",
    ) -> Dict[str, Any]:
        page = max(page, 1)
        page_size = max(page_size, 1)
        offset = (page - 1) * page_size

        zone_rows = await session.execute(select(Zone.id, Zone.name))
        zone_names = {zone_id: name for zone_id, name in zone_rows.all()}

        absolute_total = await self._count(session, None, catalog)
        counts = {
            "pendingReviewCount": await self._count(session, FILTER_PENDING_REVIEW, catalog),
            "highRiskCount": await self._count(session, FILTER_HIGH_RISK, catalog),
            "activeTemporalCount": await self._count(session, FILTER_ACTIVE_TEMPORAL, catalog),
            "expiredCount": await self._count(session, FILTER_EXPIRED, catalog),
        }

        query = self._apply_filter(select(ObservedUser), filter_type or None, catalog).order_by(
            ObservedUser.last_seen_at.desc()
        )

        if search_term and not filter_type:
            # Zone and status names live outside the row, so search after mapping
            rows = (await session.execute(query)).scalars().all()
            items = [self._to_list_item(row, catalog, zone_names) for row in rows]
            needle = search_term.lower()
            items = [item for item in items if self._matches_search(item, needle)]
            total = len(items)
            items = items[offset:offset + page_size]
        else:
            rows = (await session.execute(query.offset(offset).limit(page_size))).scalars().all()
            items = [self._to_list_item(row, catalog, zone_names) for row in rows]
            total = await self._count(session, filter_type or None, catalog) if filter_type else absolute_total

        return {
            "users": items,
            "totalCount": total,
            "absoluteTotalCount": absolute_total,
            **counts,
        }

    @staticmethod
    def _matches_search(item: Dict[str, Any], needle: str) -> bool:
        if needle in item["id"].lower():
            return True
        if item["aiAction"] and needle in item["aiAction"].lower():
            return True
        if needle in item["status"]["name"].lower():
            return True
        return any(needle in zone["name"].lower() for zone in item["accessedZones"])

    @staticmethod
    def _to_list_item(observed: ObservedUser, catalog: StatusCatalog, zone_names: Dict[str, str]) -> Dict[str, Any]:
        return {
            "id": observed.id,
            "firstSeen": isoformat(observed.first_seen_at),
            "lastSeen": isoformat(observed.last_seen_at),
            "tempAccesses": observed.access_count,
            "accessedZones": [
                {"id": zone_id, "name": zone_names.get(zone_id, f"Unknown Zone ({zone_id[:4]}...)")}
                for zone_id in (observed.last_accessed_zones or [])
            ],
            "status": {"id": observed.status_id, "name": catalog.name_for(observed.status_id) or "Unknown"},
            "aiAction": observed.ai_action,
            "faceImage": observed.face_image_url,
            "alertTriggered": observed.alert_triggered,
            "expiresAt": isoformat(observed.expires_at),
            "potentialMatchUserId": observed.potential_match_user_id,
            "consecutiveDeniedAccesses": observed.consecutive_denied_accesses,
        }


observed_user_service = ObservedUserService()
