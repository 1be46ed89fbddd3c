from fastapi import APIRouter, Depends, Path
from ...services import trade_service
from .users import get_current_user

router = APIRouter(tags=["trades"])

@router.get("/{request_id}")
async def get_trade_request(
    request_id: str = Path(...),
    current_user: dict = Depends(get_current_user)
):
    """Get the state of a trade request the caller is a party to."""
    trade = await trade_service.get_trade_request(current_user["id"], request_id)
    return {"success": True, "trade": trade}
