from fastapi import APIRouter, Depends, Path, Query
from ...schemas.notification import PlatformNotificationCreate
from ...schemas.offering import ModerationRequest, ModerationAction
from ...schemas.user import BanRequest
from ...services import notification_service, offering_service, user_service
from .users import get_admin_user

MODERATION_MESSAGES = {
    ModerationAction.APPROVE: "Offering approved successfully",
    ModerationAction.REJECT: "Offering rejected successfully",
}

router = APIRouter(tags=["admin"])

@router.get("/offerings/pending")
async def get_pending_offerings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    include_rejected: bool = Query(False, alias="includeRejected"),
    admin: dict = Depends(get_admin_user)
):
    """Offerings that have not been approved yet, with their owners."""
    result = await offering_service.list_pending_offerings(page, limit, include_rejected)
    return {"success": True, **result}

@router.put("/offerings/moderate")
async def moderate_offering(
    body: ModerationRequest,
    admin: dict = Depends(get_admin_user)
):
    offering = await offering_service.moderate_offering(
        admin, body.user_id, body.offering_id, body.action, body.reason
    )
    return {"success": True, "message": MODERATION_MESSAGES[body.action], "offering": offering}

@router.put("/users/{user_id}/ban")
async def toggle_user_ban(
    body: BanRequest,
    user_id: str = Path(...),
    admin: dict = Depends(get_admin_user)
):
    user = await user_service.set_ban(admin, user_id, body.is_banned, body.ban_reason)
    return {
        "success": True,
        "message": f"User {'banned' if body.is_banned else 'unbanned'} successfully",
        "user": {
            "id": user["id"],
            "name": user.get("name"),
            "email": user.get("email"),
            "isBanned": user.get("is_banned", False),
            "banReason": user.get("ban_reason")
        }
    }

@router.get("/notifications")
async def get_platform_notification_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(get_admin_user)
):
    result = await notification_service.platform_notification_history(page, limit)
    return {"success": True, **result}

@router.post("/notifications")
async def send_platform_notification(
    body: PlatformNotificationCreate,
    admin: dict = Depends(get_admin_user)
):
    """Send a system notification to every user and push it to connected sessions."""
    expires_at = body.expires_at.isoformat() if body.expires_at else None
    sent_to = await notification_service.send_platform_notification(
        admin, body.title, body.message, body.priority, expires_at
    )
    return {
        "success": True,
        "message": f"Platform notification sent to {sent_to} users",
        "sentTo": sent_to,
        "notification": {
            "title": body.title,
            "message": body.message,
            "priority": body.priority.value,
            "expiresAt": expires_at
        }
    }
