import os
from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "test"
os.environ.pop("GEMINI_API_KEY", None)

from faceaccess.core.database import get_db_session
from faceaccess.core.db_init import create_default_data
from faceaccess.core.dependencies import get_face_image_uploader, get_validation_service
from faceaccess.main import app
from faceaccess.models.database import Base, Face, User, UserStatus, Zone, new_id
from faceaccess.services.audit_log import AuditLogger
from faceaccess.services.observed_lifecycle import ObservedUserService
from faceaccess.services.side_channels import SideChannelResult
from faceaccess.services.status_catalog import load_status_catalog
from faceaccess.services.validation_service import FaceValidationService

DIMENSION = 128
ZONE_A = "Zone A"
ZONE_B = "Zone B"


def embedding(*head: float) -> List[float]:
    """128-d vector with the given leading coordinates; L2 distances are easy to read off"""
    return list(head) + [0.0] * (DIMENSION - len(head))


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 8, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeUploader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def upload(self, owner_id, image_data, is_observed_user):
        self.calls.append((owner_id, image_data, is_observed_user))
        if self.fail:
            return SideChannelResult.failure(f"Failed to upload image for {owner_id}: storage offline")
        return SideChannelResult.success(f"http://minio.test/face-images/{owner_id}.jpeg")


class FakeSuggester:
    def __init__(self, suggestion: Optional[str] = "Monitor closely"):
        self.suggestion = suggestion
        self.prompts = []

    async def suggest(self, image_data, prompt):
        if not image_data:
            return SideChannelResult.success(None)
        self.prompts.append(prompt)
        return SideChannelResult.success(self.suggestion)


@pytest.fixture
async def engine():
    async_engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_engine

    await async_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def zones(session_maker):
    """Seed the catalogs and return zone ids keyed by name"""
    async with session_maker() as session:
        await create_default_data(session, zones=(ZONE_A, ZONE_B))
        rows = (await session.execute(Zone.__table__.select())).all()
    return {row.name: row.id for row in rows}


@pytest.fixture
async def status_catalog(session_maker, zones):
    async with session_maker() as session:
        return await load_status_catalog(session)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def suggester():
    return FakeSuggester()


@pytest.fixture
def validation_service(session_maker, zones, clock, uploader, suggester):
    return FaceValidationService(
        session_maker,
        observed_service=ObservedUserService(ttl_hours=24),
        uploader=uploader,
        suggester=suggester,
        audit_logger=AuditLogger(session_maker),
        clock=clock,
    )


@pytest.fixture
def make_registered_user(session_maker, zones):
    """Create a registered user with one face directly in the database"""

    async def _make(face: List[float], status: str = "active", zone_names=(ZONE_A,), email=None) -> str:
        async with session_maker() as session:
            status_row = (
                await session.execute(select(UserStatus).where(UserStatus.name == status))
            ).scalar_one()
            zone_rows = (
                await session.execute(select(Zone).where(Zone.name.in_(list(zone_names))))
            ).scalars().all()
            user = User(
                full_name="Ada Lovelace",
                email=email or f"{new_id()}@example.com",
                status_id=status_row.id,
                access_zones=list(zone_rows),
            )
            session.add(user)
            await session.flush()
            session.add(Face(user_id=user.id, embedding=face))
            await session.commit()
            return user.id

    return _make


@pytest.fixture
async def async_client(session_maker, validation_service, uploader):
    """API client bound to the test database and fake collaborators"""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_validation_service] = lambda: validation_service
    app.dependency_overrides[get_face_image_uploader] = lambda: uploader
    app.state.status_catalog = None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.status_catalog = None
