from __future__ import annotations

from pydantic import Field, field_validator

from .base import CamelModel


def _normalize_tags(value: list[str] | None) -> list[str] | None:
    """去掉首尾空白与空标签，按首次出现去重。"""
    if value is None:
        return None
    out: list[str] = []
    seen: set[str] = set()
    for raw in value:
        tag = str(raw or "").strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out


def _normalize_images(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    return [str(v).strip() for v in value if str(v or "").strip()]


class DiaryEntry(CamelModel):
    """日记条目（存储与对外响应共用）"""

    id: int
    date: str
    # 精确发布时间（ISO）；为空时按 date 当天中午排序
    published_at: str | None = None
    pinned: bool = False
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class DiaryCreateRequest(CamelModel):
    """新建日记请求；date 不传时使用当天"""

    date: str | None = None
    pinned: bool = False
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str]) -> list[str]:
        return _normalize_tags(value) or []

    @field_validator("images")
    @classmethod
    def _images(cls, value: list[str]) -> list[str]:
        return _normalize_images(value) or []


class DiaryUpdateRequest(CamelModel):
    """按 id 合并更新：只覆盖请求里出现的字段。

    publishedAt 显式传 null 表示清除精确时间；其他字段传 null 视为未提供。
    """

    date: str | None = None
    published_at: str | None = None
    pinned: bool | None = None
    summary: str | None = None
    tags: list[str] | None = None
    images: list[str] | None = None

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str] | None) -> list[str] | None:
        return _normalize_tags(value)

    @field_validator("images")
    @classmethod
    def _images(cls, value: list[str] | None) -> list[str] | None:
        return _normalize_images(value)


class TagCount(CamelModel):
    name: str
    value: int


class DiaryPage(CamelModel):
    """分页响应；tagCounts / dates 只在第一页（offset=0）返回"""

    items: list[DiaryEntry] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False
    tag_counts: list[TagCount] | None = None
    dates: list[str] | None = None


class DeleteResult(CamelModel):
    ok: bool = True
