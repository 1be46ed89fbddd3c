from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class BanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_banned: bool = Field(..., alias="isBanned")
    ban_reason: Optional[str] = Field(None, alias="banReason", max_length=500)
