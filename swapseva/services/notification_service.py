import logging
import math
from typing import Dict, Any, List, Optional
from ..core import supabase as db
from ..core.exceptions import InvalidArgument, NotFound
from ..core.realtime import manager, PLATFORM_NOTIFICATION
from ..schemas.notification import NotificationType, NotificationPriority
from ..utils.helpers import new_id, now_iso, is_valid_id

logger = logging.getLogger(__name__)

TABLE = "notifications"

async def create_notification(
    recipient: str,
    sender: Optional[str],
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    expires_at: Optional[str] = None
) -> Dict[str, Any]:
    """Store a single notification addressed to `recipient`."""
    notification = {
        "id": new_id(),
        "recipient": str(recipient),
        "sender": str(sender) if sender else None,
        "type": NotificationType(type).value,
        "title": title,
        "message": message,
        "data": data or {},
        "read": False,
        "read_at": None,
        "priority": NotificationPriority(priority).value,
        "created_at": now_iso(),
        "expires_at": expires_at,
    }
    created = await db.execute_query(table=TABLE, query_type="insert", data=notification)
    logger.info(f"Created {notification['type']} notification {notification['id']} for {recipient}")
    return created[0] if created else notification

async def get_notification(notification_id: str) -> Dict[str, Any]:
    if not is_valid_id(notification_id):
        raise InvalidArgument("Valid notification ID is required")
    notification = await db.fetch_one(TABLE, {"id": notification_id})
    if not notification:
        raise NotFound("Notification not found")
    return notification

async def _with_senders(notifications: List[Dict[str, Any]], select: str = "id,name,avatar") -> List[Dict[str, Any]]:
    """Replace each sender id with the sender's public fields."""
    sender_ids = list({n["sender"] for n in notifications if n.get("sender")})
    senders = {}
    if sender_ids:
        users = await db.execute_query(
            table="users",
            query_type="select",
            select=select,
            filters={"id": {"in": sender_ids}}
        )
        senders = {str(u["id"]): u for u in users}

    return [
        {**n, "sender": senders.get(str(n["sender"]), {"id": n["sender"]}) if n.get("sender") else None}
        for n in notifications
    ]

async def _page(filters: Dict[str, Any], page: int, limit: int, sender_fields: str = "id,name,avatar") -> Dict[str, Any]:
    notifications, total = await db.execute_query(
        table=TABLE,
        query_type="select",
        filters=filters,
        order_by={"created_at": "desc"},
        limit=limit,
        offset=(page - 1) * limit,
        count=True
    )

    return {
        "notifications": await _with_senders(notifications, sender_fields),
        "pagination": {
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit),
            "totalCount": total
        }
    }

async def list_notifications(
    user_id: str,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False
) -> Dict[str, Any]:
    """Page through a user's notifications, newest first."""
    if page < 1 or limit < 1:
        raise InvalidArgument("page and limit must be positive")

    filters = {"recipient": user_id}
    if unread_only:
        filters["read"] = False

    return await _page(filters, page, limit)

def _valid_ids(notification_ids: List[str]) -> List[str]:
    if not notification_ids:
        raise InvalidArgument("Notification IDs array is required")
    valid = [nid for nid in notification_ids if is_valid_id(nid)]
    if not valid:
        raise InvalidArgument("No valid notification IDs provided")
    return valid

async def mark_read(user_id: str, notification_ids: List[str]) -> int:
    """Mark the caller's unread notifications among `notification_ids` as read."""
    updated = await db.execute_query(
        table=TABLE,
        query_type="update",
        filters={"id": {"in": _valid_ids(notification_ids)}, "recipient": user_id, "read": False},
        data={"read": True, "read_at": now_iso()}
    )
    return len(updated or [])

async def mark_all_read(user_id: str) -> int:
    updated = await db.execute_query(
        table=TABLE,
        query_type="update",
        filters={"recipient": user_id, "read": False},
        data={"read": True, "read_at": now_iso()}
    )
    count = len(updated or [])
    logger.info(f"Marked {count} notifications read for {user_id}")
    return count

async def unread_count(user_id: str) -> int:
    _, total = await db.execute_query(
        table=TABLE,
        query_type="select",
        select="id",
        filters={"recipient": user_id, "read": False},
        count=True
    )
    return total

async def delete_notifications(user_id: str, notification_ids: List[str]) -> int:
    deleted = await db.execute_query(
        table=TABLE,
        query_type="delete",
        filters={"id": {"in": _valid_ids(notification_ids)}, "recipient": user_id}
    )
    return len(deleted or [])

async def claim(notification_id: str) -> bool:
    """
    Flip an unread notification to read.

    The update is conditioned on read=false, so of several concurrent callers
    exactly one gets True.
    """
    updated = await db.execute_query(
        table=TABLE,
        query_type="update",
        filters={"id": notification_id, "read": False},
        data={"read": True, "read_at": now_iso()}
    )
    return bool(updated)

async def send_platform_notification(
    admin: Dict[str, Any],
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    expires_at: Optional[str] = None
) -> int:
    """Send a system notification to every non-admin user and push it to live sessions."""
    users = await db.execute_query(
        table="users",
        query_type="select",
        select="id",
        filters={"role": {"neq": "admin"}}
    )
    if not users:
        raise InvalidArgument("No users found to send notification to")

    created_at = now_iso()
    rows = [
        {
            "id": new_id(),
            "recipient": user["id"],
            "sender": admin["id"],
            "type": NotificationType.SYSTEM.value,
            "title": title,
            "message": message,
            "data": {"isPlatformMessage": True, "sentBy": admin.get("name")},
            "read": False,
            "read_at": None,
            "priority": NotificationPriority(priority).value,
            "created_at": created_at,
            "expires_at": expires_at,
        }
        for user in users
    ]
    await db.execute_query(table=TABLE, query_type="insert", data=rows)
    logger.info(f"Platform notification '{title}' sent to {len(rows)} users")

    try:
        await manager.broadcast(PLATFORM_NOTIFICATION, {
            "title": title,
            "message": message,
            "priority": NotificationPriority(priority).value,
            "sentBy": admin.get("name"),
            "timestamp": created_at
        })
    except Exception as e:
        logger.warning(f"Platform notification broadcast failed: {e}")

    return len(rows)

async def platform_notification_history(page: int = 1, limit: int = 20) -> Dict[str, Any]:
    """Platform notifications sent by admins, newest first, one row per recipient."""
    if page < 1 or limit < 1:
        raise InvalidArgument("page and limit must be positive")

    filters = {
        "type": NotificationType.SYSTEM.value,
        "data": {"contains": {"isPlatformMessage": True}},
    }
    return await _page(filters, page, limit, sender_fields="id,name,email")
