from .comment import CommentCreateRequest, CommentResponse
from .diary import (
    DeleteResult,
    DiaryCreateRequest,
    DiaryEntry,
    DiaryPage,
    DiaryUpdateRequest,
    TagCount,
)
from .profile import ProfileResponse, ProfileUpdateRequest
from .upload import UploadResponse

__all__ = [
    "CommentCreateRequest",
    "CommentResponse",
    "DeleteResult",
    "DiaryCreateRequest",
    "DiaryEntry",
    "DiaryPage",
    "DiaryUpdateRequest",
    "TagCount",
    "ProfileResponse",
    "ProfileUpdateRequest",
    "UploadResponse",
]
