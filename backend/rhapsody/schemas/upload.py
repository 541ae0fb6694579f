from pydantic import Field

from .base import CamelModel


class UploadResponse(CamelModel):
    urls: list[str] = Field(default_factory=list)
