from .comments import CommentService
from .entry_store import EntryStore
from .feed import FeedService
from .profile import ProfileService
from .uploads import ImageUploadService
from .wordpress import PublishTimesResult, WordPressPublishTimeSource

__all__ = [
    "CommentService",
    "EntryStore",
    "FeedService",
    "ImageUploadService",
    "ProfileService",
    "PublishTimesResult",
    "WordPressPublishTimeSource",
]
