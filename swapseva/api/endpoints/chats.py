from fastapi import APIRouter, status, Depends, Path
from ...schemas.chat import MessageCreate
from ...services import chat_service
from .users import get_current_user

router = APIRouter(tags=["chats"])

@router.get("")
async def get_user_chats(current_user: dict = Depends(get_current_user)):
    """List the current user's chats, one per trade partner."""
    chats = await chat_service.list_chats_for_user(current_user["id"])
    return {"success": True, "chats": chats}

@router.post("/message", status_code=status.HTTP_201_CREATED)
async def send_message(
    body: MessageCreate,
    current_user: dict = Depends(get_current_user)
):
    message = await chat_service.send_message(current_user, body.chat_id, body.content)
    return {"success": True, "message": message}

@router.get("/{chat_id}")
async def get_chat(
    chat_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    """Get a chat with its messages. Opening a chat marks it read for the caller."""
    chat = await chat_service.get_chat(current_user["id"], chat_id)
    return {"success": True, "chat": chat}

@router.put("/{chat_id}/read")
async def mark_messages_as_read(
    chat_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    await chat_service.mark_read(current_user["id"], chat_id)
    return {"success": True, "message": "Messages marked as read"}

@router.put("/{chat_id}/complete")
async def complete_trade(
    chat_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    chat = await chat_service.complete_trade(current_user, chat_id)
    return {"success": True, "message": "Trade marked as completed", "chat": await chat_service.present_chat(chat)}
