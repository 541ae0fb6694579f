"""图片上传：按 MIME 白名单落盘，返回公开 URL

不做任何图片处理（缩放/转码），内容原样保存。
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import AsyncIterator
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from ..config import resolve_repo_path, settings
from ..utils.errors import StorageError, ValidationError, exception_summary, safe_str

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def normalize_content_type(value: str | None) -> str:
    # "image/png; charset=binary" -> "image/png"
    return (value or "").split(";", 1)[0].strip().lower()


def _write_file_sync(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".part")
    tmp.write_bytes(content)
    tmp.replace(path)


class ImageUploadService:
    def __init__(
        self,
        *,
        upload_dir: Path | None = None,
        public_prefix: str | None = None,
        max_bytes: int | None = None,
    ):
        self.upload_dir = upload_dir or resolve_repo_path(settings.upload_dir)
        self.public_prefix = (public_prefix or settings.upload_public_prefix).rstrip("/")
        self.max_bytes = int(max_bytes or settings.upload_max_bytes)

    def _too_large(self) -> ValidationError:
        return ValidationError(f"图片过大（上限 {self.max_bytes} 字节）")

    async def read_body(
        self, chunks: AsyncIterator[bytes], content_length: str | None = None
    ) -> bytes:
        """边读边计数；声明长度或实际读到的字节超过上限时立即拒绝，不把整个请求读进内存。"""
        declared = (content_length or "").strip()
        if declared.isdigit() and int(declared) > self.max_bytes:
            raise self._too_large()

        buf = bytearray()
        async for chunk in chunks:
            buf.extend(chunk)
            if len(buf) > self.max_bytes:
                raise self._too_large()
        return bytes(buf)

    async def store(self, content: bytes, content_type: str | None) -> str:
        mime = normalize_content_type(content_type)
        ext = ALLOWED_TYPES.get(mime)
        if ext is None:
            raise ValidationError(f"不支持的图片类型：{safe_str(mime, max_len=64) or 'unknown'}")
        if not content:
            raise ValidationError("上传内容为空")
        if len(content) > self.max_bytes:
            raise self._too_large()

        name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"
        try:
            await run_in_threadpool(_write_file_sync, self.upload_dir / name, content)
        except OSError as e:
            logger.error("[UPLOAD] Failed to write %s: %s", name, exception_summary(e))
            raise StorageError("保存图片失败") from e

        logger.info("[UPLOAD] Stored %s (%s bytes, %s)", name, len(content), mime)
        return f"{self.public_prefix}/{name}"
