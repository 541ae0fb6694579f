from .base import CamelModel


class ProfileResponse(CamelModel):
    """作者展示资料"""

    name: str
    signature: str
    avatar: str
    location: str
    industry: str
    zodiac: str
    header_bg: str


class ProfileUpdateRequest(CamelModel):
    name: str | None = None
    signature: str | None = None
    avatar: str | None = None
    location: str | None = None
    industry: str | None = None
    zodiac: str | None = None
    header_bg: str | None = None
