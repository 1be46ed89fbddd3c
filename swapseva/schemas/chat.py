from pydantic import BaseModel, Field, ConfigDict
from enum import Enum

class ChatTradeStatus(str, Enum):
    CONFIRMED = "confirmed"
    COMPLETED = "completed"

class MessageCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(..., alias="chatId")
    content: str = Field(..., max_length=5000)
