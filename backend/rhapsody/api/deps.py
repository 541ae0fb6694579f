"""路由共用依赖：管理员校验、外部发布时间来源"""

from __future__ import annotations

import logging

from fastapi import Request

from ..config import settings
from ..services import WordPressPublishTimeSource
from ..utils.admin_token import verify_token
from ..utils.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def is_admin_request(request: Request) -> bool:
    if not settings.admin_configured:
        return False
    ok, reason = verify_token(
        request.cookies.get(settings.admin_cookie_name),
        secret=settings.admin_session_secret or "",
        expected_pwd_version=settings.admin_password_version,
    )
    if not ok and reason != "missing":
        logger.info("[ADMIN] Invalid session cookie: %s", reason)
    return ok


async def require_admin(request: Request) -> None:
    """写操作门禁：挂在路由的 dependencies 上，先于数据库会话解析，未登录时不会触碰存储。"""
    if not is_admin_request(request):
        raise UnauthorizedError("ADMIN_REQUIRED")


def get_publish_time_source() -> WordPressPublishTimeSource:
    return WordPressPublishTimeSource()
