from .admin import router as admin_router
from .comments import router as comments_router
from .diaries import router as diaries_router
from .profile import router as profile_router
from .uploads import router as uploads_router

__all__ = [
    "admin_router",
    "comments_router",
    "diaries_router",
    "profile_router",
    "uploads_router",
]
