from fastapi import APIRouter, Depends, Query
from ...core.config import get_settings
from ...schemas.notification import NotificationIds
from ...schemas.trade import AcceptTradeRequest, DeclineTradeRequest, ConfirmTradeRequest
from ...services import notification_service, trade_service
from .users import get_current_user

settings = get_settings()

router = APIRouter(tags=["notifications"])

@router.get("")
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.notification_page_size, ge=1, le=settings.notification_max_page_size),
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: dict = Depends(get_current_user)
):
    """Get the current user's notifications, newest first."""
    result = await notification_service.list_notifications(
        current_user["id"], page=page, limit=limit, unread_only=unread_only
    )
    return {"success": True, **result}

@router.get("/unread-count")
async def get_unread_count(current_user: dict = Depends(get_current_user)):
    count = await notification_service.unread_count(current_user["id"])
    return {"success": True, "unreadCount": count}

@router.put("/mark-read")
async def mark_as_read(
    body: NotificationIds,
    current_user: dict = Depends(get_current_user)
):
    count = await notification_service.mark_read(current_user["id"], body.notification_ids)
    return {"success": True, "message": "Notifications marked as read", "count": count}

@router.put("/mark-all-read")
async def mark_all_as_read(current_user: dict = Depends(get_current_user)):
    count = await notification_service.mark_all_read(current_user["id"])
    return {"success": True, "message": "All notifications marked as read", "count": count}

@router.delete("")
async def delete_notifications(
    body: NotificationIds,
    current_user: dict = Depends(get_current_user)
):
    count = await notification_service.delete_notifications(current_user["id"], body.notification_ids)
    return {"success": True, "message": "Notifications deleted", "count": count}

@router.post("/accept-trade")
async def accept_trade_request(
    body: AcceptTradeRequest,
    current_user: dict = Depends(get_current_user)
):
    """Accept a trade request by picking one of the items the requester offered."""
    notification = await trade_service.accept_trade(current_user, body.notification_id, body.selected_item_id)
    return {"success": True, "message": "Trade request accepted successfully", "notification": notification}

@router.post("/decline-trade")
async def decline_trade_request(
    body: DeclineTradeRequest,
    current_user: dict = Depends(get_current_user)
):
    notification = await trade_service.decline_trade(current_user, body.notification_id, body.reason)
    return {"success": True, "message": "Trade request declined", "notification": notification}

@router.post("/confirm-trade")
async def confirm_trade_request(
    body: ConfirmTradeRequest,
    current_user: dict = Depends(get_current_user)
):
    """Confirm an accepted trade. Returns the id of the chat opened for it."""
    chat_id = await trade_service.confirm_trade(current_user, body.notification_id)
    return {"success": True, "message": "Trade confirmed successfully", "chatId": chat_id}
