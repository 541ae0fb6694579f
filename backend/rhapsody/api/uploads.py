"""Image upload API

请求体即图片二进制，Content-Type 为图片 MIME（jpeg/png/gif/webp）。
超过 UPLOAD_MAX_BYTES 的请求在读取过程中就被拒绝。
"""

from fastapi import APIRouter, Depends, Request

from ..schemas import UploadResponse
from ..services import ImageUploadService
from .deps import require_admin

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("", response_model=UploadResponse, dependencies=[Depends(require_admin)])
async def upload_image(request: Request):
    service = ImageUploadService()
    content = await service.read_body(request.stream(), request.headers.get("content-length"))
    url = await service.store(content, request.headers.get("content-type"))
    return UploadResponse(urls=[url])
