from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


Base = declarative_base()


user_access_zones = Table(
    "user_access_zones",
    Base.metadata,
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("zone_id", String(64), ForeignKey("zones.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles_catalog"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(64), unique=True, nullable=False)


class UserStatus(Base):
    __tablename__ = "user_statuses_catalog"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(64), unique=True, nullable=False)


class Zone(Base):
    __tablename__ = "zones"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), unique=True, nullable=False)


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=new_id)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role_id = Column(String(64), ForeignKey("roles_catalog.id"), nullable=True)
    status_id = Column(String(64), ForeignKey("user_statuses_catalog.id"), nullable=True)
    access_method = Column(String(32), default="facial", nullable=False)
    profile_picture_url = Column(Text, nullable=True)
    alert_triggered = Column(Boolean, default=False, nullable=False)
    consecutive_denied_accesses = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    role = relationship("Role", lazy="selectin")
    status = relationship("UserStatus", lazy="selectin")
    access_zones = relationship("Zone", secondary=user_access_zones, lazy="selectin")
    face = relationship(
        "Face",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index('idx_users_status', 'status_id'),
    )


class Face(Base):
    """Registered face: one embedding per enrolled user"""
    __tablename__ = "faces"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    embedding = Column(JSON, nullable=False)  # 128 floats
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="face")


class ObservedUser(Base):
    """Transient record for a face that matched no registered user"""
    __tablename__ = "observed_users"

    id = Column(String(64), primary_key=True, default=new_id)
    embedding = Column(JSON, nullable=False)
    first_seen_at = Column(DateTime, default=utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=utcnow, nullable=False)
    access_count = Column(Integer, default=1, nullable=False)
    last_accessed_zones = Column(JSON, nullable=False, default=list)  # list of zone ids
    status_id = Column(String(64), ForeignKey("user_statuses_catalog.id"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    alert_triggered = Column(Boolean, default=False, nullable=False)
    consecutive_denied_accesses = Column(Integer, default=0, nullable=False)
    potential_match_user_id = Column(
        String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    face_image_url = Column(Text, nullable=True)
    ai_action = Column(Text, nullable=True)

    __table_args__ = (
        Index('idx_observed_users_status', 'status_id'),
        Index('idx_observed_users_last_seen', 'last_seen_at'),
    )


class ValidationLog(Base):
    """Append-only audit record, one per validation request"""
    __tablename__ = "logs"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=True)
    observed_user_id = Column(String(64), nullable=True)
    camera_id = Column(String(64), nullable=True)
    result = Column(Boolean, default=False, nullable=False)
    user_type = Column(String(32), nullable=True)  # registered, observed, new_observed, unknown
    vector_attempted = Column(JSON, nullable=True)
    match_status = Column(String(64), nullable=True)
    decision = Column(String(32), nullable=False)  # access_granted, access_denied, error, unknown
    reason = Column(Text, nullable=False)
    confidence_score = Column(Float, nullable=True)
    requested_zone_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_logs_created', 'created_at'),
        Index('idx_logs_user', 'user_id', 'created_at'),
        Index('idx_logs_observed_user', 'observed_user_id', 'created_at'),
    )
