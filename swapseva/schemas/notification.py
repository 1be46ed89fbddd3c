from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from enum import Enum

class NotificationType(str, Enum):
    BARTER_REQUEST = "barter_request"
    BARTER_ACCEPTED = "barter_accepted"
    BARTER_DECLINED = "barter_declined"
    TRADE_CONFIRMED = "trade_confirmed"
    MESSAGE = "message"
    BARTER_COMPLETED = "barter_completed"
    SYSTEM = "system"

class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class NotificationIds(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_ids: List[str] = Field(..., alias="notificationIds")

class PlatformNotificationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=1000)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
