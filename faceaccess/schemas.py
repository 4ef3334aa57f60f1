from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ===============================
# Shared Models
# ===============================


class ItemWithNameAndId(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


# ===============================
# Face Validation Models
# ===============================


class ObservedDetails(BaseModel):
    firstSeenAt: datetime
    lastSeenAt: datetime
    accessCount: int
    alertTriggered: bool
    expiresAt: datetime
    potentialMatchUserId: Optional[str]
    similarity: float
    distance: float
    faceImageUrl: Optional[str]
    aiAction: Optional[str]


class ValidationUser(BaseModel):
    id: str
    full_name: Optional[str]
    user_type: Literal["registered", "observed", "unknown"]
    hasAccess: bool
    similarity: float
    role_details: Optional[ItemWithNameAndId]
    status_details: ItemWithNameAndId
    zones_accessed_details: List[ItemWithNameAndId]
    observed_details: Optional[ObservedDetails] = None


class ValidationResponse(BaseModel):
    """Unified validation response; ``type`` discriminates the outcome"""

    user: ValidationUser
    type: str
    message: Optional[str] = None
    error: Optional[str] = None

    def to_json(self) -> dict:
        # Unset optional blocks are omitted, explicit nulls are kept
        return self.model_dump(mode="json", exclude_unset=True)


# ===============================
# Observed User Management Models
# ===============================


class ObservedUserAction(BaseModel):
    observedUserId: Optional[str] = None
    actionType: Optional[str] = None


class ObservedUserListItem(BaseModel):
    id: str
    firstSeen: Optional[str]
    lastSeen: Optional[str]
    tempAccesses: int
    accessedZones: List[ItemWithNameAndId]
    status: ItemWithNameAndId
    aiAction: Optional[str]
    faceImage: Optional[str]
    alertTriggered: bool
    expiresAt: Optional[str]
    potentialMatchUserId: Optional[str]
    consecutiveDeniedAccesses: int


class ObservedUsersPage(BaseModel):
    users: List[ObservedUserListItem]
    totalCount: int
    absoluteTotalCount: int
    pendingReviewCount: int
    highRiskCount: int
    activeTemporalCount: int
    expiredCount: int


# ===============================
# Registered User Models
# ===============================


class UserRegister(BaseModel):
    fullName: str = Field(min_length=1)
    email: EmailStr
    roleName: str
    statusName: str
    accessZoneNames: List[str]
    faceEmbedding: List[float]
    profilePictureUrl: Optional[str] = None


class FaceUpdate(BaseModel):
    faceEmbedding: List[float]


class UserDetails(BaseModel):
    id: str
    full_name: str
    email: str
    role_details: Optional[ItemWithNameAndId]
    status_details: Optional[ItemWithNameAndId]
    zones_accessed_details: List[ItemWithNameAndId]
    alert_triggered: bool
    consecutive_denied_accesses: int
    profile_picture_url: Optional[str]
    has_face: bool
    created_at: datetime


class UserRegisterResponse(BaseModel):
    message: str
    userId: str


# ===============================
# File Models
# ===============================


class UploadImageRequest(BaseModel):
    userId: str = Field(min_length=1)
    imageData: str = Field(min_length=1)
    isObservedUser: bool = False


class UploadImageResponse(BaseModel):
    message: str
    imageUrl: str
