from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from enum import Enum

class TradeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CONFIRMED = "confirmed"

class ConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient_id: str = Field(..., alias="recipientId")
    skill_id: str = Field(..., alias="skillId")

class AcceptTradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_id: str = Field(..., alias="notificationId")
    selected_item_id: str = Field(..., alias="selectedItemId")

class DeclineTradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_id: str = Field(..., alias="notificationId")
    reason: Optional[str] = Field(None, max_length=500)

class ConfirmTradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_id: str = Field(..., alias="notificationId")
