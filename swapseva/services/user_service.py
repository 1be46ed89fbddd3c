import logging
from typing import Dict, Any, List, Optional
from ..core import supabase as db
from ..core.exceptions import InvalidArgument, NotFound, Forbidden
from ..core.realtime import manager
from ..schemas.offering import OfferingType
from ..utils.helpers import now_iso, is_valid_id

logger = logging.getLogger(__name__)

# Columns safe to show to other users
PUBLIC_USER_FIELDS = ("id", "name", "avatar", "location", "trust_score", "offerings")

async def get_user(user_id: str) -> Dict[str, Any]:
    if not is_valid_id(user_id):
        raise InvalidArgument("Invalid user ID")
    user = await db.fetch_one("users", {"id": user_id})
    if not user:
        raise NotFound("User not found")
    return user

def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    profile = {key: user.get(key) for key in PUBLIC_USER_FIELDS}
    profile["isOnline"] = manager.is_connected(user["id"])
    return profile

def _matches(user: Dict[str, Any], search: str) -> bool:
    needle = search.lower()
    if needle in (user.get("name") or "").lower():
        return True
    return any(
        needle in (o.get("title") or "").lower() or needle in (o.get("description") or "").lower()
        for o in user.get("offerings") or []
    )

async def list_traders(
    current_user_id: Optional[str] = None,
    offering_types: Optional[List[OfferingType]] = None,
    search: Optional[str] = None,
    limit: int = 50
) -> List[Dict[str, Any]]:
    """
    Find other users to trade with.

    `offering_types` keeps users holding at least one offering of every
    listed type; `search` matches the user's name or any offering title or
    description, case-insensitively.
    """
    filters = {"id": {"neq": current_user_id}} if current_user_id else None
    users = await db.execute_query(
        table="users",
        query_type="select",
        select=",".join(PUBLIC_USER_FIELDS),
        filters=filters,
        order_by={"name": "asc"}
    )

    found = []
    for user in users:
        held = {o.get("type") for o in user.get("offerings") or []}
        if offering_types and not all(OfferingType(t).value in held for t in offering_types):
            continue
        if search and not _matches(user, search):
            continue
        found.append(public_profile(user))
        if len(found) >= limit:
            break
    return found

async def set_ban(admin: Dict[str, Any], user_id: str, is_banned: bool, reason: Optional[str] = None) -> Dict[str, Any]:
    """Ban or unban a user. Banned users are refused by every authenticated route."""
    user = await get_user(user_id)
    if user.get("role") == "admin":
        raise Forbidden("Cannot ban admin users")

    changes = {
        "is_banned": is_banned,
        "ban_reason": reason if is_banned else None,
        "banned_at": now_iso() if is_banned else None,
        "banned_by": admin["id"] if is_banned else None,
        "updated_at": now_iso(),
    }
    updated = await db.execute_query(table="users", query_type="update", filters={"id": user_id}, data=changes)

    logger.info(f"Admin {admin['id']} {'banned' if is_banned else 'unbanned'} user {user_id}")
    return updated[0] if updated else {**user, **changes}
