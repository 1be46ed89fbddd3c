"""
Chat store.

A chat is created once per confirmed trade and then mutated by messaging,
read receipts and trade completion. Every mutation is a read-modify-write
conditioned on the row's ``version``, retried a bounded number of times, so
concurrent writers never overwrite each other's counters or messages.
"""
import logging
from typing import Dict, Any, List, Callable, Optional
from ..core import supabase as db
from ..core.config import get_settings
from ..core.exceptions import InvalidArgument, Forbidden, NotFound, InvalidState, Internal
from ..core.realtime import manager, emit_safely, NEW_MESSAGE, TRADE_COMPLETED
from ..schemas.chat import ChatTradeStatus
from ..schemas.notification import NotificationType, NotificationPriority
from ..utils.helpers import new_id, now_iso, is_valid_id, truncate
from . import notification_service

logger = logging.getLogger(__name__)

TABLE = "chats"

def is_participant(chat: Dict[str, Any], user_id: str) -> bool:
    return str(user_id) in [str(p) for p in chat.get("participants") or []]

def other_participants(chat: Dict[str, Any], user_id: str) -> List[str]:
    return [str(p) for p in chat.get("participants") or [] if str(p) != str(user_id)]

async def _load(chat_id: str) -> Dict[str, Any]:
    if not is_valid_id(chat_id):
        raise InvalidArgument("Invalid chat ID")
    chat = await db.fetch_one(TABLE, {"id": chat_id})
    if not chat:
        raise NotFound("Chat not found")
    return chat

async def _load_for(user_id: str, chat_id: str) -> Dict[str, Any]:
    chat = await _load(chat_id)
    if not is_participant(chat, user_id):
        raise Forbidden("You are not authorized to access this chat")
    return chat

async def _write(chat_id: str, mutate: Callable[[Dict[str, Any]], Dict[str, Any]]) -> Dict[str, Any]:
    """
    Apply `mutate` to the current chat row and store the result.

    `mutate` gets a fresh copy of the row on every attempt and returns the
    columns to change; it may raise to abort. The write only lands if the
    row's version is unchanged since it was read.
    """
    retries = get_settings().write_retries
    for attempt in range(retries):
        chat = await _load(chat_id)
        changes = mutate(chat)
        version = chat.get("version") or 0

        updated = await db.execute_query(
            table=TABLE,
            query_type="update",
            filters={"id": chat_id, "version": version},
            data={**changes, "version": version + 1, "updated_at": now_iso()}
        )
        if updated:
            return updated[0]

        logger.info(f"Chat {chat_id} changed during write, retrying ({attempt + 1}/{retries})")

    logger.error(f"Gave up writing chat {chat_id} after {retries} attempts")
    raise Internal("Chat is busy, please try again")

async def create_chat(
    participants: List[str],
    trade_info: Dict[str, Any],
    trade_request_id: Optional[str] = None
) -> Dict[str, Any]:
    participants = [str(p) for p in participants]
    if len(participants) != 2 or participants[0] == participants[1]:
        raise InvalidArgument("A chat needs exactly two distinct participants")

    now = now_iso()
    chat = {
        "id": new_id(),
        "participants": participants,
        "messages": [],
        "trade_info": trade_info,
        "unread_count": {p: 0 for p in participants},
        "trade_request_id": trade_request_id,
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }
    created = await db.execute_query(table=TABLE, query_type="insert", data=chat)
    if not created:
        raise Internal("Failed to create chat")

    logger.info(f"Created chat {chat['id']} between {participants[0]} and {participants[1]}")
    return created[0]

async def _user_cards(user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Public name, avatar and presence for each user id, keyed by id."""
    if not user_ids:
        return {}
    users = await db.execute_query(
        table="users",
        query_type="select",
        select="id,name,avatar",
        filters={"id": {"in": user_ids}}
    )
    return {str(u["id"]): {**u, "isOnline": manager.is_connected(u["id"])} for u in users}

async def present_chat(chat: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a chat row for clients, with participants expanded."""
    cards = await _user_cards([str(p) for p in chat.get("participants") or []])
    return {
        "id": chat["id"],
        "participants": [cards.get(str(p), {"id": p}) for p in chat.get("participants") or []],
        "messages": chat.get("messages") or [],
        "tradeInfo": chat.get("trade_info"),
        "unreadCount": chat.get("unread_count") or {},
        "tradeRequestId": chat.get("trade_request_id"),
        "createdAt": chat.get("created_at"),
        "updatedAt": chat.get("updated_at"),
    }

async def list_chats_for_user(user_id: str) -> List[Dict[str, Any]]:
    """
    One row per trade partner. When several chats exist with the same partner
    only the most recently updated one is listed.
    """
    chats = await db.execute_query(
        table=TABLE,
        query_type="select",
        filters={"participants": {"contains": [str(user_id)]}},
        order_by={"updated_at": "desc"}
    )

    latest_by_partner: Dict[str, Dict[str, Any]] = {}
    for chat in chats:
        others = other_participants(chat, user_id)
        if not others:
            logger.warning(f"Chat {chat['id']} has no other participant for {user_id}")
            continue
        partner = others[0]
        current = latest_by_partner.get(partner)
        if current is None or chat["updated_at"] > current["updated_at"]:
            latest_by_partner[partner] = chat

    partners = await _user_cards(list(latest_by_partner))

    rows = []
    for partner, chat in latest_by_partner.items():
        messages = chat.get("messages") or []
        rows.append({
            "id": chat["id"],
            "otherUser": partners.get(partner, {"id": partner}),
            "lastMessage": messages[-1] if messages else None,
            "unreadCount": (chat.get("unread_count") or {}).get(str(user_id), 0),
            "tradeInfo": chat.get("trade_info"),
            "updatedAt": chat["updated_at"],
        })
    rows.sort(key=lambda row: row["updatedAt"], reverse=True)
    return rows

async def get_chat(user_id: str, chat_id: str) -> Dict[str, Any]:
    """Return a chat with its messages and participants; opening a chat reads it."""
    chat = await _load_for(user_id, chat_id)
    if (chat.get("unread_count") or {}).get(str(user_id), 0) or any(
        not m.get("read") and str(m.get("sender")) != str(user_id) for m in chat.get("messages") or []
    ):
        chat = await mark_read(user_id, chat_id)
    return await present_chat(chat)

async def send_message(sender: Dict[str, Any], chat_id: str, content: str) -> Dict[str, Any]:
    sender_id = str(sender["id"])
    if not content or not content.strip():
        raise InvalidArgument("Chat ID and message content are required")

    message = {
        "id": new_id(),
        "sender": sender_id,
        "content": content,
        "timestamp": now_iso(),
        "read": False,
    }

    def append(chat):
        if not is_participant(chat, sender_id):
            raise Forbidden("You are not authorized to send messages to this chat")
        unread = dict(chat.get("unread_count") or {})
        for participant in other_participants(chat, sender_id):
            unread[participant] = unread.get(participant, 0) + 1
        return {
            "messages": list(chat.get("messages") or []) + [message],
            "unread_count": unread,
        }

    chat = await _write(chat_id, append)

    for participant in other_participants(chat, sender_id):
        try:
            await notification_service.create_notification(
                recipient=participant,
                sender=sender_id,
                type=NotificationType.MESSAGE,
                title="New Message",
                message=f"{sender.get('name', 'Someone')}: {truncate(content)}",
                data={"chatId": chat["id"], "messageId": message["id"]},
                priority=NotificationPriority.MEDIUM
            )
        except Exception as e:
            logger.warning(f"Error creating message notification for {participant}: {e}")

        await emit_safely(participant, NEW_MESSAGE, {"chatId": chat["id"], "message": message})

    return message

async def mark_read(user_id: str, chat_id: str) -> Dict[str, Any]:
    user_id = str(user_id)

    def read_all(chat):
        if not is_participant(chat, user_id):
            raise Forbidden("You are not authorized to access this chat")
        messages = [
            {**m, "read": True} if str(m.get("sender")) != user_id else m
            for m in chat.get("messages") or []
        ]
        return {
            "messages": messages,
            "unread_count": {**(chat.get("unread_count") or {}), user_id: 0},
        }

    return await _write(chat_id, read_all)

async def complete_trade(user: Dict[str, Any], chat_id: str) -> Dict[str, Any]:
    user_id = str(user["id"])

    def complete(chat):
        if not is_participant(chat, user_id):
            raise Forbidden("You are not authorized to complete this trade")
        trade_info = dict(chat.get("trade_info") or {})
        if trade_info.get("status") == ChatTradeStatus.COMPLETED.value:
            raise InvalidState("This trade is already completed")
        trade_info.update({"status": ChatTradeStatus.COMPLETED.value, "completedAt": now_iso()})
        return {"trade_info": trade_info}

    chat = await _write(chat_id, complete)
    logger.info(f"Trade in chat {chat_id} completed by {user_id}")

    for participant in other_participants(chat, user_id):
        try:
            await notification_service.create_notification(
                recipient=participant,
                sender=user_id,
                type=NotificationType.BARTER_COMPLETED,
                title="Trade Completed",
                message=f"{user.get('name', 'Your trade partner')} has marked the trade as completed.",
                data={"chatId": chat["id"], "tradeInfo": chat["trade_info"]},
                priority=NotificationPriority.HIGH
            )
        except Exception as e:
            logger.warning(f"Error creating completion notification for {participant}: {e}")

        await emit_safely(participant, TRADE_COMPLETED, {"chatId": chat["id"], "completedBy": user_id})

    return chat
