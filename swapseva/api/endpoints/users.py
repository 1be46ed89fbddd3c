import logging
from fastapi import APIRouter, status, Depends, Path, Query
from typing import Optional, Dict, Any
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from fastapi.security import OAuth2PasswordBearer
from ...core import supabase as db
from ...core.config import get_settings
from ...core.exceptions import Unauthenticated, Forbidden
from ...schemas.offering import OfferingCreate, OfferingUpdate, OfferingType
from ...schemas.trade import ConnectRequest
from ...services import offering_service, trade_service, user_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/auth/login",
    description="Enter the access token directly (without 'Bearer' prefix)",
    scheme_name="JWT",
    auto_error=False
)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expiration_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)

def decode_token(token: str) -> str:
    """Return the user id carried by a token, or raise Unauthenticated."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        raise Unauthenticated("Invalid authentication token")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Token missing subject")
    return user_id

async def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """Get the current authenticated user."""
    if not token:
        raise Unauthenticated("Not authenticated")

    user_id = decode_token(token)
    user = await db.fetch_one("users", {"id": user_id})
    if not user:
        logger.info(f"Token subject {user_id} has no user row")
        raise Unauthenticated()
    if user.get("is_banned"):
        raise Forbidden("Your account has been suspended")
    return user

async def get_admin_user(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    if current_user.get("role") != "admin":
        raise Forbidden("Admin access required")
    return current_user

@router.get("")
async def list_users(
    has_skill_offerings: bool = Query(False, alias="hasSkillOfferings"),
    has_good_offerings: bool = Query(False, alias="hasGoodOfferings"),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user)
):
    """Browse other users and their offerings to find something to trade for."""
    types = []
    if has_skill_offerings:
        types.append(OfferingType.SKILL)
    if has_good_offerings:
        types.append(OfferingType.GOOD)

    users = await user_service.list_traders(current_user["id"], types, search, limit)
    return {"success": True, "count": len(users), "users": users}

@router.get("/offerings")
async def list_my_offerings(
    type: Optional[OfferingType] = None,
    current_user: dict = Depends(get_current_user)
):
    """List the current user's offerings, optionally only skills or goods."""
    offerings = await offering_service.list_offerings(current_user["id"], type)
    return {"success": True, "count": len(offerings), "offerings": offerings}

@router.post("/offerings", status_code=status.HTTP_201_CREATED)
async def add_offering(
    offering: OfferingCreate,
    current_user: dict = Depends(get_current_user)
):
    created = await offering_service.add_offering(current_user["id"], offering)
    return {"success": True, "message": "Offering added successfully", "offering": created}

@router.get("/offerings/{offering_id}")
async def get_offering(
    offering_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    offering = await offering_service.get_offering(current_user["id"], offering_id)
    return {"success": True, "offering": offering}

@router.put("/offerings/{offering_id}")
async def update_offering(
    updates: OfferingUpdate,
    offering_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    offering = await offering_service.update_offering(current_user["id"], offering_id, updates)
    return {"success": True, "message": "Offering updated successfully", "offering": offering}

@router.delete("/offerings/{offering_id}")
async def delete_offering(
    offering_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    await offering_service.delete_offering(current_user["id"], offering_id)
    return {"success": True, "message": "Offering deleted successfully"}

@router.post("/connect", status_code=status.HTTP_201_CREATED)
async def send_connection_request(
    request: ConnectRequest,
    current_user: dict = Depends(get_current_user)
):
    """
    Send a trade request for another user's offering.

    All of the caller's offerings of the same type are sent along as the
    items the recipient can choose from.
    """
    notification = await trade_service.request_trade(current_user, request.recipient_id, request.skill_id)
    return {"success": True, "message": "Connection request sent successfully", "notification": notification}

@router.get("/{user_id}")
async def get_user_profile(
    user_id: str = Path(...),
    type: Optional[OfferingType] = Query(None, description="Only list offerings of this type"),
    current_user: dict = Depends(get_current_user)
):
    profile = user_service.public_profile(await user_service.get_user(user_id))
    if type:
        profile["offerings"] = [o for o in profile["offerings"] or [] if o.get("type") == type.value]
    return {"success": True, "user": profile}
