"""HTTP routers exposing session, chat and group operations."""

from gateway.api.chats_api import router as chats_router
from gateway.api.groups_api import router as groups_router
from gateway.api.sessions_api import router as sessions_router

__all__ = ["chats_router", "groups_router", "sessions_router"]
