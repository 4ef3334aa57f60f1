"""
Registered user enrolment and maintenance
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError
from ..models.database import Face, Role, User, UserStatus, Zone
from ..schemas import UserRegister
from .classifier import MatchClassifier
from .embedding_store import EmbeddingStore, embedding_store
from .matcher import find_closest, validate_embedding

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, store: Optional[EmbeddingStore] = None, classifier: Optional[MatchClassifier] = None):
        self.store = store or embedding_store
        self.classifier = classifier or MatchClassifier()

    async def _ensure_unique_face(self, session: AsyncSession, embedding: List[float], exclude_user_id: Optional[str] = None):
        population = [
            (user_id, vector)
            for user_id, vector in await self.store.registered_population(session)
            if user_id != exclude_user_id
        ]
        closest = find_closest(embedding, population)
        if self.classifier.is_registered_match(closest):
            logger.warning(
                f"Duplicate facial embedding detected for user ID: {closest.candidate_id}. "
                f"Distance: {closest.distance:.4f}"
            )
            raise ConflictError(
                "A user with a very similar facial profile already exists. "
                "Please contact support if you believe this is an error."
            )

    async def register_user(self, session: AsyncSession, payload: UserRegister) -> User:
        embedding = validate_embedding(payload.faceEmbedding)

        existing = await session.execute(select(User.id).where(User.email == payload.email))
        if existing.scalar_one_or_none():
            raise ConflictError("User with this email is already registered.")

        await self._ensure_unique_face(session, embedding)

        role = (await session.execute(select(Role).where(Role.name == payload.roleName))).scalar_one_or_none()
        if role is None:
            raise ValueError(f'Role "{payload.roleName}" not found in catalog.')

        status = (
            await session.execute(select(UserStatus).where(UserStatus.name == payload.statusName))
        ).scalar_one_or_none()
        if status is None:
            raise ValueError(f'User status "{payload.statusName}" not found in catalog.')

        wanted_zones = list(dict.fromkeys(payload.accessZoneNames))
        zones = (await session.execute(select(Zone).where(Zone.name.in_(wanted_zones)))).scalars().all()
        if len(zones) != len(wanted_zones):
            found = {zone.name for zone in zones}
            missing = [name for name in wanted_zones if name not in found]
            raise ValueError(f"Some access zones not found: {', '.join(missing)}.")

        user = User(
            full_name=payload.fullName,
            email=payload.email,
            role_id=role.id,
            status_id=status.id,
            access_method="facial",
            profile_picture_url=payload.profilePictureUrl,
            access_zones=list(zones),
        )
        session.add(user)
        await session.flush()
        await self.store.set_registered_face(session, user.id, embedding)
        await session.commit()

        logger.info(f"Registered user {user.id} with {len(zones)} access zones")
        return user

    async def replace_face(self, session: AsyncSession, user_id: str, face_embedding: List[float]) -> None:
        embedding = validate_embedding(face_embedding)
        if await session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found.")
        await self._ensure_unique_face(session, embedding, exclude_user_id=user_id)
        await self.store.set_registered_face(session, user_id, embedding)
        await session.commit()
        logger.info(f"Replaced registered face for user {user_id}")

    async def get_user(self, session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        return user

    async def has_face(self, session: AsyncSession, user_id: str) -> bool:
        result = await session.execute(select(Face.id).where(Face.user_id == user_id))
        return result.scalar_one_or_none() is not None

    async def delete_user(self, session: AsyncSession, user_id: str) -> None:
        user = await self.get_user(session, user_id)
        await session.delete(user)
        await session.commit()
        logger.info(f"Deleted user {user_id} and its registered face")

    async def list_catalog(self, session: AsyncSession, model) -> List[Dict[str, str]]:
        result = await session.execute(select(model.id, model.name).order_by(model.name))
        return [{"id": item_id, "name": name} for item_id, name in result.all()]


user_service = UserService()
