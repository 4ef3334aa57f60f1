from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import EmbeddingLookupError
from ..models.database import Face, ObservedUser, utcnow
from .matcher import Candidate, find_closest

logger = logging.getLogger(__name__)

REGISTERED = "registered"
OBSERVED = "observed"


class EmbeddingStore:
    """Read and write access to the registered and observed face populations"""

    async def registered_population(self, session: AsyncSession) -> List[Tuple[str, List[float]]]:
        try:
            result = await session.execute(select(Face.user_id, Face.embedding))
            return [(user_id, embedding) for user_id, embedding in result.all()]
        except SQLAlchemyError as e:
            raise EmbeddingLookupError(REGISTERED, str(e)) from e

    async def observed_population(self, session: AsyncSession) -> List[Tuple[str, List[float]]]:
        try:
            result = await session.execute(select(ObservedUser.id, ObservedUser.embedding))
            return [(observed_id, embedding) for observed_id, embedding in result.all()]
        except SQLAlchemyError as e:
            raise EmbeddingLookupError(OBSERVED, str(e)) from e

    async def closest_registered(self, session: AsyncSession, query: Sequence[float]) -> Optional[Candidate]:
        candidate = find_closest(query, await self.registered_population(session))
        if candidate:
            logger.debug(f"Closest registered face: user {candidate.candidate_id} distance={candidate.distance:.4f}")
        return candidate

    async def closest_observed(self, session: AsyncSession, query: Sequence[float]) -> Optional[Candidate]:
        candidate = find_closest(query, await self.observed_population(session))
        if candidate:
            logger.debug(f"Closest observed face: {candidate.candidate_id} distance={candidate.distance:.4f}")
        return candidate

    async def set_registered_face(self, session: AsyncSession, user_id: str, embedding: List[float]) -> Face:
        """Create or replace the single face of a registered user"""
        result = await session.execute(select(Face).where(Face.user_id == user_id))
        face = result.scalar_one_or_none()
        if face is None:
            face = Face(user_id=user_id, embedding=embedding)
            session.add(face)
        else:
            face.embedding = embedding
            face.created_at = utcnow()
        await session.flush()
        return face


embedding_store = EmbeddingStore()
