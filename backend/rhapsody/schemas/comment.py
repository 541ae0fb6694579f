from datetime import datetime

from .base import CamelModel


class CommentCreateRequest(CamelModel):
    author: str | None = None
    content: str | None = None


class CommentResponse(CamelModel):
    id: str
    diary_id: int
    author: str
    content: str
    created_at: datetime
