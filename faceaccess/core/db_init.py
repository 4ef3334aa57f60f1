"""Database initialization utility for development."""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from ..core.config import settings
from ..models.database import Base, Role, UserStatus, Zone
from ..services import status_catalog as statuses

logger = logging.getLogger(__name__)

DEFAULT_STATUSES = (
    statuses.ACTIVE,
    statuses.INACTIVE,
    statuses.ACTIVE_TEMPORAL,
    statuses.EXPIRED,
    statuses.BLOCKED,
    statuses.IN_REVIEW_ADMIN,
)
DEFAULT_ROLES = ("admin", "employee", "visitor")
DEFAULT_ZONES = ("Main Entrance", "Office Floor", "Server Room")


async def init_database(drop_existing: bool = False) -> None:
    """Initialize database with tables and default data.

    Args:
        drop_existing: If True, drop all existing tables first
    """
    logger.info("Initializing database...")

    engine = create_async_engine(settings.database_url, echo=settings.database_echo)

    try:
        async with engine.begin() as conn:
            if drop_existing:
                logger.info("Dropping existing tables...")
                await conn.run_sync(Base.metadata.drop_all)

            logger.info("Creating database tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")

        async with AsyncSession(engine) as session:
            await create_default_data(session)

    finally:
        await engine.dispose()


async def _ensure_names(session: AsyncSession, model, names) -> int:
    result = await session.execute(select(model.name))
    existing = set(result.scalars().all())
    created = 0
    for name in names:
        if name not in existing:
            session.add(model(name=name))
            created += 1
    return created


async def create_default_data(session: AsyncSession, zones=DEFAULT_ZONES) -> None:
    """Seed the status and role catalogs plus a few zones; safe to run repeatedly."""
    logger.info("Creating default catalog data...")

    try:
        created_statuses = await _ensure_names(session, UserStatus, DEFAULT_STATUSES)
        created_roles = await _ensure_names(session, Role, DEFAULT_ROLES)
        created_zones = await _ensure_names(session, Zone, zones)
        await session.commit()
        logger.info(
            f"Default data ready (statuses +{created_statuses}, roles +{created_roles}, zones +{created_zones})"
        )
    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to create default data: {e}")
        raise


async def reset_database() -> None:
    """Drop and recreate the entire database."""
    logger.info("Resetting database (drop and recreate)...")
    await init_database(drop_existing=True)
    logger.info("Database reset completed")


if __name__ == "__main__":
    import argparse

    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Database initialization utility")
    parser.add_argument(
        "--reset", action="store_true", help="Drop and recreate all tables"
    )
    parser.add_argument(
        "--init", action="store_true", help="Create tables if they don't exist"
    )
    args = parser.parse_args()

    if args.reset:
        asyncio.run(reset_database())
    elif args.init:
        asyncio.run(init_database(drop_existing=False))
    else:
        print("Use --init to create tables or --reset to drop and recreate all tables")
