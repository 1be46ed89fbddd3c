from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from enum import Enum

class OfferingType(str, Enum):
    SKILL = "skill"
    GOOD = "good"

class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

class OfferingBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field("", max_length=2000)
    category: Optional[str] = None
    condition: Optional[str] = None
    skill_level: Optional[str] = Field(None, alias="skillLevel")
    estimated_value: Optional[float] = Field(None, alias="estimatedValue", ge=0)
    images: List[str] = []

class OfferingCreate(OfferingBase):
    type: OfferingType

class OfferingUpdate(BaseModel):
    """Partial update; the offering type is fixed at creation."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = None
    condition: Optional[str] = None
    skill_level: Optional[str] = Field(None, alias="skillLevel")
    estimated_value: Optional[float] = Field(None, alias="estimatedValue", ge=0)
    images: Optional[List[str]] = None

class Offering(OfferingCreate):
    id: str
    is_approved: bool = Field(False, alias="isApproved")
    is_rejected: bool = Field(False, alias="isRejected")
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")
    moderated_by: Optional[str] = Field(None, alias="moderatedBy")
    moderated_at: Optional[datetime] = Field(None, alias="moderatedAt")

class ModerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    offering_id: str = Field(..., alias="offeringId")
    action: ModerationAction
    reason: Optional[str] = Field(None, max_length=500)
