import logging
import math
from typing import Dict, Any, List, Optional
from ..core import supabase as db
from ..core.exceptions import InvalidArgument, NotFound
from ..schemas.offering import Offering, OfferingCreate, OfferingUpdate, OfferingType, ModerationAction
from ..utils.helpers import new_id, now_iso
from .user_service import get_user

logger = logging.getLogger(__name__)

# Fields the owner may never overwrite through an update
IMMUTABLE_FIELDS = {"id", "type"}

async def _save_offerings(user_id: str, offerings: List[Dict[str, Any]]):
    await db.execute_query(
        table="users",
        query_type="update",
        filters={"id": user_id},
        data={"offerings": offerings, "updated_at": now_iso()}
    )

def find_offering(user: Dict[str, Any], offering_id: str) -> Optional[Dict[str, Any]]:
    return next(
        (o for o in user.get("offerings") or [] if str(o.get("id")) == str(offering_id)),
        None
    )

async def list_offerings(user_id: str, type: Optional[OfferingType] = None) -> List[Dict[str, Any]]:
    user = await get_user(user_id)
    offerings = user.get("offerings") or []
    if type:
        offerings = [o for o in offerings if o.get("type") == OfferingType(type).value]
    return offerings

async def get_offering(user_id: str, offering_id: str) -> Dict[str, Any]:
    offering = find_offering(await get_user(user_id), offering_id)
    if not offering:
        raise NotFound("Offering not found")
    return offering

async def add_offering(user_id: str, payload: OfferingCreate) -> Dict[str, Any]:
    user = await get_user(user_id)
    offering = Offering(id=new_id(), **payload.model_dump()).model_dump(by_alias=True, mode="json")

    offerings = list(user.get("offerings") or [])
    offerings.append(offering)
    await _save_offerings(user_id, offerings)

    logger.info(f"User {user_id} added {offering['type']} offering {offering['id']}")
    return offering

async def update_offering(user_id: str, offering_id: str, updates: OfferingUpdate) -> Dict[str, Any]:
    user = await get_user(user_id)
    offerings = list(user.get("offerings") or [])

    index = next((i for i, o in enumerate(offerings) if str(o.get("id")) == str(offering_id)), None)
    if index is None:
        raise NotFound("Offering not found")

    changes = {
        key: value
        for key, value in updates.model_dump(by_alias=True, exclude_unset=True, mode="json").items()
        if key not in IMMUTABLE_FIELDS
    }
    offerings[index] = {**offerings[index], **changes}
    await _save_offerings(user_id, offerings)

    return offerings[index]

async def delete_offering(user_id: str, offering_id: str):
    user = await get_user(user_id)
    offerings = user.get("offerings") or []
    remaining = [o for o in offerings if str(o.get("id")) != str(offering_id)]

    if len(remaining) == len(offerings):
        raise NotFound("Offering not found")

    await _save_offerings(user_id, remaining)
    logger.info(f"User {user_id} deleted offering {offering_id}")

async def moderate_offering(
    admin: Dict[str, Any],
    user_id: str,
    offering_id: str,
    action: ModerationAction,
    reason: Optional[str] = None
) -> Dict[str, Any]:
    """Approve or reject a user's offering. Rejected offerings stay in place, flagged."""
    user = await get_user(user_id)
    offerings = list(user.get("offerings") or [])

    index = next((i for i, o in enumerate(offerings) if str(o.get("id")) == str(offering_id)), None)
    if index is None:
        raise NotFound("Offering not found")

    offering = dict(offerings[index])
    try:
        action = ModerationAction(action)
    except ValueError:
        raise InvalidArgument(f"Unknown moderation action: {action}")

    if action == ModerationAction.APPROVE:
        offering.update({"isApproved": True, "isRejected": False, "rejectionReason": None})
    else:
        offering.update({"isApproved": False, "isRejected": True, "rejectionReason": reason})
    offering.update({"moderatedBy": admin["id"], "moderatedAt": now_iso()})

    offerings[index] = offering
    await _save_offerings(user_id, offerings)

    logger.info(f"Admin {admin['id']} moderated offering {offering_id} of user {user_id}: {action.value}")
    return offering

async def list_pending_offerings(page: int = 1, limit: int = 20, include_rejected: bool = False) -> Dict[str, Any]:
    """
    Offerings waiting for moderation, across all users, with their owners.

    Rejected offerings are only listed when `include_rejected` is set.
    """
    if page < 1 or limit < 1:
        raise InvalidArgument("page and limit must be positive")

    users = await db.execute_query(
        table="users",
        query_type="select",
        select="id,name,email,offerings",
        order_by={"created_at": "asc"}
    )

    pending = [
        {"userId": user["id"], "userName": user.get("name"), "userEmail": user.get("email"), "offering": offering}
        for user in users
        for offering in user.get("offerings") or []
        if not offering.get("isApproved") and (include_rejected or not offering.get("isRejected"))
    ]

    start = (page - 1) * limit
    return {
        "pendingOfferings": pending[start:start + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(len(pending) / limit),
            "totalCount": len(pending)
        }
    }
