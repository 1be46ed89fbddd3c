import logging
from fastapi import APIRouter, Depends
from ...core import supabase as db
from ...core.exceptions import Unauthenticated
from ...schemas.user import LoginRequest, Token
from .users import create_access_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

@router.post("/login", response_model=Token)
async def login(credentials: LoginRequest):
    """Log in with Supabase Auth and return an API access token."""
    try:
        auth_response = await db.sign_in(credentials.email, credentials.password)
    except Exception as e:
        logger.info(f"Sign-in failed for {credentials.email}: {e}")
        raise Unauthenticated("Invalid credentials")

    if not auth_response or not getattr(auth_response, "user", None):
        raise Unauthenticated("Invalid credentials")

    user = await db.fetch_one("users", {"email": credentials.email})
    if not user:
        raise Unauthenticated("Invalid credentials")

    return {"access_token": create_access_token(data={"sub": user["id"]}), "token_type": "bearer"}

@router.get("/me")
async def me(current_user: dict = Depends(get_current_user)):
    return {"success": True, "user": current_user}
