from __future__ import annotations

import base64
import hashlib
from pathlib import Path

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_APP_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _APP_DIR.parent
_REPO_ROOT = _BACKEND_DIR.parent


def _derive_admin_session_secret(password: str) -> str:
    """从管理员密码派生 ADMIN_SESSION_SECRET（避免必须额外配置一个随机 secret）。

    说明：
    - 仅作为便利默认值；部署到公网时建议显式配置高强度的 ADMIN_SESSION_SECRET。
    - 修改密码会导致派生 secret 变化，旧的会话 Cookie 自动失效。
    """
    dk = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        b"rhapsody_admin_session_secret_v1",
        210_000,
        dklen=32,
    )
    return base64.urlsafe_b64encode(dk).decode("utf-8").rstrip("=")


def _load_root_dotenv() -> None:
    """先加载 `backend/.env`，再加载根目录 `.env`（override=True，根目录优先）。"""
    backend_env = _BACKEND_DIR / ".env"
    root_env = _REPO_ROOT / ".env"

    for env_file in (backend_env, root_env):
        if env_file.exists():
            load_dotenv(env_file, override=True, encoding="utf-8")


def resolve_repo_path(value: str) -> Path:
    """相对路径统一按仓库根目录解析。"""
    path = Path(value)
    if path.is_absolute():
        return path
    return (_REPO_ROOT / path).resolve()


class Settings(BaseSettings):
    """Application settings"""

    # Server（供 run.py 使用）
    backend_host: str = "0.0.0.0"
    backend_port: int = 31020
    backend_reload: bool = True

    # Database
    # 优先使用 DATABASE_URL；不配置时再使用 SQLITE_DB_PATH 生成 sqlite URL
    database_url: str | None = None
    sqlite_db_path: str = "data/rhapsody.db"
    sql_echo: bool = False

    # API
    api_prefix: str = "/api"
    debug: bool = True

    # CORS（逗号分隔；"*" 表示允许所有来源，此时强制关闭 allow_credentials）
    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = False
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    # Admin（写操作门禁）
    # 二选一：ADMIN_PASSWORD_HASH=pbkdf2_sha256$...（推荐）或 ADMIN_PASSWORD=明文
    # 约定：客户端登录时先对输入做 sha256，再把 hex 字符串传给后端。
    # 两者都不配置时，所有写操作一律拒绝。
    admin_password: str | None = None
    admin_password_hash: str | None = None
    admin_session_secret: str | None = None
    admin_password_version: int = 1
    admin_session_days: int = 30
    admin_cookie_name: str = "rhapsody_admin"
    admin_cookie_samesite: str = "lax"  # lax | strict | none
    admin_cookie_secure: str = "auto"  # auto | true | false
    admin_rate_limit_window_seconds: int = 300
    admin_rate_limit_max_attempts: int = 20
    # 只有部署在反向代理之后才信任 X-Forwarded-For / X-Real-IP 作为限流用的客户端 IP
    admin_trust_proxy_headers: bool = False

    # Feed
    # SEED_DIARIES_PATH：JSON 数组，库里还没有任何记录时作为初始数据返回
    seed_diaries_path: str | None = None
    # 只有日期（YYYY-MM-DD）的记录按该时区的中午参与排序；不配置时使用服务器本地时区
    feed_timezone: str | None = None

    # WordPress（外部发布时间来源，可选；不配置站点则完全跳过）
    wordpress_site: str | None = None
    wordpress_api_base: str = "https://public-api.wordpress.com/rest/v1.1/sites"
    wordpress_per_page: int = 100
    wordpress_max_pages: int = 50
    wordpress_request_timeout_seconds: float = 8.0
    # 整次拉取（含翻页与重试）的总超时；超时按失败处理，不阻塞 feed
    wordpress_total_timeout_seconds: float = 15.0
    wordpress_http_trust_env: bool = True
    wordpress_http_max_attempts: int = 2
    wordpress_http_retry_backoff_seconds: float = 0.5
    wordpress_http_retry_max_backoff_seconds: float = 3.0
    wordpress_http_retry_jitter_ratio: float = 0.1

    # Uploads
    upload_dir: str = "data/uploads"
    upload_public_prefix: str = "/uploads"
    upload_max_bytes: int = 10 * 1024 * 1024

    # Access Log（本地访问日志，按天落盘：<repo>/logs/YYYY-MM-DD.logs）
    access_log_enabled: bool = True
    access_log_dir: str = "logs"
    access_log_ignore_paths: str = "/health"
    access_log_include_query: bool = False

    @model_validator(mode="after")
    def _build_database_url_if_missing(self) -> "Settings":
        if self.database_url and self.database_url.strip():
            return self

        db_path = resolve_repo_path(self.sqlite_db_path)
        self.database_url = f"sqlite+aiosqlite:///{db_path.as_posix()}"
        return self

    @model_validator(mode="after")
    def _normalize_admin(self) -> "Settings":
        plain = (self.admin_password or "").strip() or None
        configured_hash = (self.admin_password_hash or "").strip() or None
        self.admin_password = plain
        self.admin_password_hash = configured_hash

        secret = (self.admin_session_secret or "").strip()
        if not secret and plain:
            secret = _derive_admin_session_secret(plain)
        self.admin_session_secret = secret or None

        if int(self.admin_session_days or 0) <= 0:
            self.admin_session_days = 30
        if int(self.admin_password_version or 0) <= 0:
            self.admin_password_version = 1
        if not (self.admin_cookie_name or "").strip():
            self.admin_cookie_name = "rhapsody_admin"

        samesite = (self.admin_cookie_samesite or "lax").strip().lower()
        if samesite not in {"lax", "strict", "none"}:
            samesite = "lax"
        self.admin_cookie_samesite = samesite

        secure = (self.admin_cookie_secure or "auto").strip().lower()
        if secure not in {"auto", "true", "false"}:
            secure = "auto"
        self.admin_cookie_secure = secure
        return self

    @model_validator(mode="after")
    def _normalize_wordpress(self) -> "Settings":
        site = (self.wordpress_site or "").strip().strip("/")
        self.wordpress_site = site or None
        self.wordpress_api_base = (self.wordpress_api_base or "").strip().rstrip("/")

        if int(self.wordpress_per_page or 0) <= 0:
            self.wordpress_per_page = 100
        self.wordpress_per_page = min(int(self.wordpress_per_page), 100)
        if int(self.wordpress_max_pages or 0) <= 0:
            self.wordpress_max_pages = 50
        if float(self.wordpress_total_timeout_seconds or 0) <= 0:
            self.wordpress_total_timeout_seconds = 15.0
        return self

    @property
    def admin_configured(self) -> bool:
        return bool(self.admin_password_hash or self.admin_password) and bool(
            self.admin_session_secret
        )

    model_config = SettingsConfigDict(
        case_sensitive=False
    )


_load_root_dotenv()
settings = Settings()
