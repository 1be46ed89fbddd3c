"""
Trade workflow.

A trade moves through one ``trade_requests`` row:

    pending -> accepted -> confirmed   (a chat exists)
    pending -> declined

Each transition is a conditional update on ``status``, so when two callers
race on the same request only one of them advances it. Notifications are the
delivery records of each transition and point back at the request through
``data.requestId``.
"""
import logging
from typing import Dict, Any, Optional
from ..core import supabase as db
from ..core.exceptions import InvalidArgument, Forbidden, NotFound, InvalidState, Internal
from ..schemas.chat import ChatTradeStatus
from ..schemas.notification import NotificationType, NotificationPriority
from ..schemas.trade import TradeStatus
from ..utils.helpers import new_id, now_iso, is_valid_id, offering_ref_id
from . import chat_service, notification_service
from .offering_service import find_offering

logger = logging.getLogger(__name__)

TABLE = "trade_requests"

async def _transition(request_id: str, expected: TradeStatus, target: TradeStatus, **fields) -> Optional[Dict[str, Any]]:
    """Move a trade request from `expected` to `target`. Returns None if another caller got there first."""
    updated = await db.execute_query(
        table=TABLE,
        query_type="update",
        filters={"id": request_id, "status": expected.value},
        data={"status": target.value, "updated_at": now_iso(), **fields}
    )
    if not updated:
        return None
    logger.info(f"Trade request {request_id}: {expected.value} -> {target.value}")
    return updated[0]

async def _load_request(request_id: Optional[str]) -> Dict[str, Any]:
    trade = await db.fetch_one(TABLE, {"id": request_id}) if request_id else None
    if not trade:
        raise NotFound("Trade request not found")
    return trade

def _check_recipient(notification: Dict[str, Any], user_id: str, action: str):
    if str(notification["recipient"]) != str(user_id):
        raise Forbidden(f"You are not authorized to {action} this request")

async def request_trade(requester: Dict[str, Any], recipient_id: str, target_offering_id: str) -> Dict[str, Any]:
    """
    Ask `recipient_id` for one of their offerings.

    Every offering of the same type that the requester owns is put on the
    table; the recipient picks one of them when accepting.
    """
    requester_id = str(requester["id"])
    if not recipient_id or not is_valid_id(recipient_id):
        raise InvalidArgument("Valid recipient ID is required")
    if str(recipient_id) == requester_id:
        raise InvalidArgument("You cannot trade with yourself")

    current_user = await db.fetch_one("users", {"id": requester_id})
    if not current_user:
        raise NotFound("User not found")

    recipient = await db.fetch_one("users", {"id": recipient_id})
    if not recipient:
        raise NotFound("Recipient user not found")

    requested_offering = find_offering(recipient, target_offering_id)
    if not requested_offering:
        raise NotFound("Requested offering not found")

    offering_type = requested_offering["type"]
    offered_items = [o for o in current_user.get("offerings") or [] if o.get("type") == offering_type]
    if not offered_items:
        raise InvalidState(f"You don't have any {offering_type}s to offer in exchange")

    request_id = new_id()
    now = now_iso()
    await db.execute_query(
        table=TABLE,
        query_type="insert",
        data={
            "id": request_id,
            "requester": requester_id,
            "recipient": str(recipient_id),
            "requested_offering": requested_offering,
            "offered_items": offered_items,
            "selected_item": None,
            "status": TradeStatus.PENDING.value,
            "chat_id": None,
            "created_at": now,
            "updated_at": now,
        }
    )

    notification = await notification_service.create_notification(
        recipient=recipient_id,
        sender=requester_id,
        type=NotificationType.BARTER_REQUEST,
        title=f"New {offering_type.capitalize()} Trade Request",
        message=f"{current_user.get('name', 'Someone')} wants to trade for your {requested_offering['title']} {offering_type}",
        data={
            "requestedOffering": requested_offering,
            "offeredItems": offered_items,
            "requestId": request_id
        },
        priority=NotificationPriority.MEDIUM
    )
    logger.info(f"Trade request {request_id} sent from {requester_id} to {recipient_id} ({len(offered_items)} items offered)")
    return notification

async def _resolve_selected_item(notification: Dict[str, Any], selected_item_id: str) -> Optional[Dict[str, Any]]:
    for item in notification["data"].get("offeredItems") or []:
        if offering_ref_id(item) != str(selected_item_id):
            continue
        if isinstance(item, dict):
            return item
        # Bare id: read the offering from the requester's current list
        sender = await db.fetch_one("users", {"id": notification["sender"]})
        return find_offering(sender, selected_item_id) if sender else None
    return None

async def accept_trade(accepter: Dict[str, Any], notification_id: str, selected_item_id: str) -> Dict[str, Any]:
    """Pick one of the offered items. Fixes the exchange pair and notifies the requester."""
    notification = await notification_service.get_notification(notification_id)
    _check_recipient(notification, accepter["id"], "accept")

    if notification["type"] != NotificationType.BARTER_REQUEST.value:
        raise InvalidState("This notification is not a trade request")

    selected_item = await _resolve_selected_item(notification, selected_item_id)
    if not selected_item:
        raise NotFound("Selected item not found in the offered items")

    request_id = notification["data"].get("requestId")
    await _load_request(request_id)
    if not await _transition(request_id, TradeStatus.PENDING, TradeStatus.ACCEPTED, selected_item=selected_item):
        raise InvalidState("This trade request has already been answered")

    await notification_service.claim(notification["id"])

    requested_offering = notification["data"].get("requestedOffering") or {}
    return await notification_service.create_notification(
        recipient=notification["sender"],
        sender=accepter["id"],
        type=NotificationType.BARTER_ACCEPTED,
        title="Trade Request Accepted",
        message=(
            f"{accepter.get('name', 'Someone')} has accepted your trade request and wants your "
            f"{selected_item.get('title')} in exchange for their {requested_offering.get('title')}"
        ),
        data={
            "originalRequestId": request_id,
            "requestId": request_id,
            "requestedOffering": requested_offering,
            "selectedItem": selected_item
        },
        priority=NotificationPriority.HIGH
    )

async def decline_trade(decliner: Dict[str, Any], notification_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    notification = await notification_service.get_notification(notification_id)
    _check_recipient(notification, decliner["id"], "decline")

    if notification["type"] != NotificationType.BARTER_REQUEST.value:
        raise InvalidState("This notification is not a trade request")

    request_id = notification["data"].get("requestId")
    await _load_request(request_id)
    if not await _transition(request_id, TradeStatus.PENDING, TradeStatus.DECLINED):
        raise InvalidState("This trade request has already been answered")

    await notification_service.claim(notification["id"])

    requested_offering = notification["data"].get("requestedOffering") or {}
    message = f"{decliner.get('name', 'Someone')} has declined your trade request for their {requested_offering.get('title')}"
    if reason:
        message += f": {reason}"

    return await notification_service.create_notification(
        recipient=notification["sender"],
        sender=decliner["id"],
        type=NotificationType.BARTER_DECLINED,
        title="Trade Request Declined",
        message=message,
        data={"requestId": request_id, "requestedOffering": requested_offering, "reason": reason},
        priority=NotificationPriority.MEDIUM
    )

async def confirm_trade(confirmer: Dict[str, Any], notification_id: str) -> str:
    """
    Confirm an accepted trade and open the chat for it.

    Returns the new chat id. If the chat cannot be created the request goes
    back to `accepted` and no confirmation notifications are sent.
    """
    notification = await notification_service.get_notification(notification_id)
    _check_recipient(notification, confirmer["id"], "confirm")

    if notification["type"] != NotificationType.BARTER_ACCEPTED.value:
        raise InvalidState("This notification is not a trade acceptance")

    # The accepter opened the exchange pair, the original requester answers it
    initiator_id = str(notification["sender"])
    responder_id = str(notification["recipient"])
    if initiator_id == responder_id:
        raise InvalidState("Cannot create a chat with yourself.")

    initiator = await db.fetch_one("users", {"id": initiator_id})
    responder = await db.fetch_one("users", {"id": responder_id})
    if not initiator or not responder:
        raise NotFound("One or both users not found")

    data = notification["data"]
    request_id = data.get("requestId") or data.get("originalRequestId")
    await _load_request(request_id)
    if not await _transition(request_id, TradeStatus.ACCEPTED, TradeStatus.CONFIRMED):
        raise InvalidState("This trade has already been confirmed")

    trade_info = {
        "initiatorOffering": data.get("selectedItem"),
        "responderOffering": data.get("requestedOffering"),
        "status": ChatTradeStatus.CONFIRMED.value,
        "confirmedAt": now_iso(),
    }
    try:
        chat = await chat_service.create_chat([initiator_id, responder_id], trade_info, trade_request_id=request_id)
    except Exception:
        logger.exception(f"Error creating chat for trade request {request_id}")
        await _transition(request_id, TradeStatus.CONFIRMED, TradeStatus.ACCEPTED)
        raise Internal("Failed to create chat")

    await db.execute_query(
        table=TABLE,
        query_type="update",
        filters={"id": request_id},
        data={"chat_id": chat["id"]}
    )
    await notification_service.claim(notification["id"])

    await notification_service.create_notification(
        recipient=initiator_id,
        sender=responder_id,
        type=NotificationType.TRADE_CONFIRMED,
        title="Trade Confirmed",
        message=f"{responder.get('name')} has confirmed the trade. You can now chat to arrange the exchange.",
        data={"chatId": chat["id"], "tradeInfo": chat["trade_info"], "requestId": request_id},
        priority=NotificationPriority.HIGH
    )
    await notification_service.create_notification(
        recipient=responder_id,
        sender=initiator_id,
        type=NotificationType.TRADE_CONFIRMED,
        title="Trade Confirmed",
        message=f"You have confirmed the trade with {initiator.get('name')}. You can now chat to arrange the exchange.",
        data={"chatId": chat["id"], "tradeInfo": chat["trade_info"], "requestId": request_id},
        priority=NotificationPriority.HIGH
    )

    logger.info(f"Trade request {request_id} confirmed, chat {chat['id']} created")
    return chat["id"]

async def get_trade_request(user_id: str, request_id: str) -> Dict[str, Any]:
    if not is_valid_id(request_id):
        raise InvalidArgument("Invalid trade request ID")
    trade = await _load_request(request_id)
    if str(user_id) not in (str(trade["requester"]), str(trade["recipient"])):
        raise Forbidden("You are not a party to this trade")
    return trade
