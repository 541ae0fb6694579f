"""FastAPI application entry point"""
import logging
import tomllib
import uuid
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import (
    http_exception_handler as fastapi_http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from .api import (
    admin_router,
    comments_router,
    diaries_router,
    profile_router,
    uploads_router,
)
from .config import resolve_repo_path, settings
from .database import engine, init_db
from .utils.access_log import AccessLogTimer, log_http_request
from .utils.errors import FeedError, exception_summary

logger = logging.getLogger(__name__)

if not settings.sql_echo:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def _read_app_version() -> str:
    """从仓库根目录的 pyproject.toml 读取版本，避免多处硬编码。"""
    pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        return "0.1.0"
    version = ((data.get("project") or {}).get("version") or "").strip()
    return version or "0.1.0"


APP_VERSION = _read_app_version()

app = FastAPI(
    title="DailyRhapsody API",
    description="Personal diary feed with pinned entries, tag cloud and comments",
    version=APP_VERSION,
)


def _split_csv(value: str) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


cors_origins = _split_csv(settings.cors_allow_origins)
if not cors_origins or cors_origins == ["*"]:
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_allow_credentials = bool(settings.cors_allow_credentials)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=_split_csv(settings.cors_allow_methods) or ["*"],
    allow_headers=_split_csv(settings.cors_allow_headers) or ["*"],
)


def _request_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    timer = AccessLogTimer()
    status_code = 500
    error: str | None = None

    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 200) or 200
        return response
    except Exception as e:
        error = exception_summary(e, max_len=200 if settings.debug else 0)
        raise
    finally:
        # 访问日志不应影响业务逻辑
        try:
            await log_http_request(
                request,
                status_code=status_code,
                duration_ms=timer.elapsed_ms(),
                error=error,
                request_id=_request_id(request),
            )
        except Exception:
            logger.debug("[ACCESS_LOG] Failed to write access log", exc_info=True)


def _normalize_request_id(value: str | None) -> str | None:
    """外部传入的 request id：去空白，拒绝超长或含控制字符的值。"""
    s = (value or "").strip()
    if not s or len(s) > 64 or any(ord(ch) < 32 for ch in s):
        return None
    return s


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
    rid = _normalize_request_id(incoming) or uuid.uuid4().hex
    request.state.request_id = rid

    response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(FeedError)
async def feed_error_handler(request: Request, exc: FeedError):
    rid = _request_id(request)
    if exc.status_code >= 500:
        logger.error("[FEED] %s request_id=%s: %s", exc.code, rid or "-", exc.detail)

    payload: dict[str, object] = {"detail": exc.detail, "code": exc.code}
    if rid:
        payload["request_id"] = rid
    headers = {"X-Request-Id": rid} if rid else None
    return JSONResponse(payload, status_code=exc.status_code, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler_with_request_id(request: Request, exc: HTTPException):
    response = await fastapi_http_exception_handler(request, exc)
    rid = _request_id(request)
    if rid:
        response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_with_request_id(request: Request, exc: RequestValidationError):
    response = await request_validation_exception_handler(request, exc)
    rid = _request_id(request)
    if rid:
        response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id(request)
    logger.exception("[UNHANDLED] request_id=%s", rid or "-")

    # 对外默认不泄露内部异常细节；debug 时给一个可读摘要
    detail = exception_summary(exc, max_len=200) if settings.debug else "INTERNAL_ERROR"
    payload: dict[str, object] = {"detail": detail}
    if rid:
        payload["request_id"] = rid
    headers = {"X-Request-Id": rid} if rid else None
    return JSONResponse(payload, status_code=500, headers=headers)


app.include_router(diaries_router, prefix=settings.api_prefix)
app.include_router(comments_router, prefix=settings.api_prefix)
app.include_router(profile_router, prefix=settings.api_prefix)
app.include_router(uploads_router, prefix=settings.api_prefix)
app.include_router(admin_router, prefix=settings.api_prefix)

# 上传的图片以静态文件形式对外提供；目录在启动时创建
app.mount(
    settings.upload_public_prefix.rstrip("/") or "/uploads",
    StaticFiles(directory=resolve_repo_path(settings.upload_dir), check_dir=False),
    name="uploads",
)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    await init_db()
    resolve_repo_path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    if not settings.admin_configured:
        logger.warning("[STARTUP] Admin password not configured: all write operations are disabled")
    if not settings.wordpress_site:
        logger.info("[STARTUP] WORDPRESS_SITE not set: feed uses local publish times only")


@app.get("/")
async def root():
    return {"message": "DailyRhapsody API", "version": APP_VERSION}


@app.get("/health")
async def health_check():
    """Health check endpoint（包含 DB 可用性探测）。"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.exception("[HEALTH] Database check failed: %s", exception_summary(e))
        raise HTTPException(status_code=503, detail="DB_UNAVAILABLE") from e

    return {"status": "healthy", "db": "ok"}
