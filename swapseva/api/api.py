from fastapi import APIRouter
from .endpoints import auth, users, notifications, chats, trades, admin

router = APIRouter(prefix="/api")

# Include all endpoint routers
router.include_router(auth.router, prefix="/auth")
router.include_router(users.router, prefix="/users")
router.include_router(notifications.router, prefix="/notifications")
router.include_router(chats.router, prefix="/chats")
router.include_router(trades.router, prefix="/trades")
router.include_router(admin.router, prefix="/admin")
