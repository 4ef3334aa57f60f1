"""
Status catalog: the id <-> name mapping of user_statuses_catalog.

Loaded once when the application starts and handed to the services that need
it, so tests can build one directly without a database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import StatusCatalogError
from ..models.database import UserStatus, Zone

logger = logging.getLogger(__name__)

ACTIVE = "active"
INACTIVE = "inactive"
ACTIVE_TEMPORAL = "active_temporal"
EXPIRED = "expired"
BLOCKED = "blocked"
IN_REVIEW_ADMIN = "in_review_admin"

ESSENTIAL_OBSERVED_STATUSES = (ACTIVE_TEMPORAL, EXPIRED, BLOCKED, IN_REVIEW_ADMIN)


@dataclass(frozen=True)
class StatusCatalog:
    names_by_id: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[Tuple[str, str]]) -> "StatusCatalog":
        catalog = cls(names_by_id={status_id: name for status_id, name in rows})
        missing = [name for name in ESSENTIAL_OBSERVED_STATUSES if catalog.find_id(name) is None]
        if missing:
            raise StatusCatalogError(
                f"Missing essential status IDs in user_statuses_catalog: {', '.join(missing)}"
            )
        return catalog

    def find_id(self, name: str) -> Optional[str]:
        for status_id, status_name in self.names_by_id.items():
            if status_name == name:
                return status_id
        return None

    def id_for(self, name: str) -> str:
        status_id = self.find_id(name)
        if status_id is None:
            raise StatusCatalogError(f"Status '{name}' not found in catalog.")
        return status_id

    def name_for(self, status_id: Optional[str]) -> Optional[str]:
        if status_id is None:
            return None
        return self.names_by_id.get(status_id)

    def details(self, status_id: Optional[str]) -> Dict[str, str]:
        """{id, name} block used in responses, with an Unknown fallback"""
        name = self.name_for(status_id)
        if name is None:
            return {"id": "unknown", "name": "Unknown"}
        return {"id": status_id, "name": name}


async def load_status_catalog(session: AsyncSession) -> StatusCatalog:
    result = await session.execute(select(UserStatus.id, UserStatus.name))
    rows = result.all()
    if not rows:
        raise StatusCatalogError("Failed to load user status catalog. Essential IDs are missing.")
    catalog = StatusCatalog.from_rows(rows)
    logger.info(f"Loaded status catalog with {len(catalog.names_by_id)} entries")
    return catalog


async def resolve_zone_details(session: AsyncSession, zone_ids: Iterable[str]) -> List[Dict[str, str]]:
    """Resolve zone ids to {id, name} pairs, skipping blanks and unknown ids"""
    wanted = [zone_id for zone_id in zone_ids if zone_id and zone_id.strip()]
    if not wanted:
        return []
    result = await session.execute(select(Zone.id, Zone.name).where(Zone.id.in_(wanted)))
    names = {zone_id: name for zone_id, name in result.all()}
    return [{"id": zone_id, "name": names[zone_id]} for zone_id in wanted if zone_id in names]
