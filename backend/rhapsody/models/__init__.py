from .comment import Comment
from .diary_entry import CollectionMeta, DiaryEntryRow
from .profile import Profile

__all__ = [
    "CollectionMeta",
    "Comment",
    "DiaryEntryRow",
    "Profile",
]
