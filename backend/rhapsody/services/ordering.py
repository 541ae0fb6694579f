"""Feed 排序 / 分页 / 聚合的纯函数

FeedService 只负责读写与加锁，这里的函数不做任何 I/O，方便单独测试：
- 排序：置顶在前，其余按“有效时间”倒序；时间相同保持原相对顺序（稳定排序）。
- 有效时间：publishedAt（可解析时）优先，否则取 date 当天中午（FEED_TIMEZONE 或服务器本地时区）。
- 分页参数沿用字符串语义：非法/缺省/0 的 limit 视为 30，并夹到 [1, 100]。
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..schemas import DiaryEntry, TagCount
from ..utils.errors import ValidationError

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def resolve_zone(name: str | None) -> tzinfo | None:
    """FEED_TIMEZONE -> tzinfo；未配置或无法识别时返回 None（即服务器本地时区）。"""
    text = (name or "").strip()
    if not text:
        return None
    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _parse_instant(value: str | None, zone: tzinfo | None) -> datetime | None:
    text = (value or "").strip()
    if not text:
        return None
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None and zone is not None:
        dt = dt.replace(tzinfo=zone)
    return dt


def _parse_day(value: str | None) -> date | None:
    text = (value or "").strip()
    if not _DATE_RE.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def effective_timestamp(entry: DiaryEntry, zone: tzinfo | None = None) -> float | None:
    """排序用的时间戳（秒）。publishedAt 与 date 都无法解析时返回 None。"""
    published = _parse_instant(entry.published_at, zone)
    if published is not None:
        return published.timestamp()

    day = _parse_day(entry.date)
    if day is None:
        return None
    noon = datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=zone)
    # naive datetime 的 timestamp() 按服务器本地时区解释
    return noon.timestamp()


def sort_entries(entries: Iterable[DiaryEntry], zone: tzinfo | None = None) -> list[DiaryEntry]:
    """置顶优先，其余按有效时间倒序；无法解析时间的排在同组最后。"""

    def _key(entry: DiaryEntry) -> tuple[bool, float]:
        ts = effective_timestamp(entry, zone)
        return (not entry.pinned, -ts if ts is not None else math.inf)

    return sorted(entries, key=_key)


def find_pinned(
    entries: Iterable[DiaryEntry], *, exclude_id: int | None = None
) -> DiaryEntry | None:
    for entry in entries:
        if entry.pinned and entry.id != exclude_id:
            return entry
    return None


def next_entry_id(entries: Iterable[DiaryEntry], high_water: int = 0) -> int:
    """max(已有 id, 历史最大 id) + 1；空集合且从未分配过时为 1。"""
    current = max((e.id for e in entries), default=0)
    return max(current, int(high_water or 0), 0) + 1


def _to_number(raw: str | int | float | None) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_page_params(
    limit_raw: str | int | None, offset_raw: str | int | None
) -> tuple[int, int]:
    """解析字符串形式的 limit / offset。"""
    limit_num = _to_number(limit_raw)
    if not limit_num:
        limit_num = DEFAULT_PAGE_SIZE
    limit = min(max(1, math.floor(limit_num)), MAX_PAGE_SIZE)

    offset_num = _to_number(offset_raw) or 0
    offset = max(0, math.floor(offset_num))
    return limit, offset


def filter_by_tag(entries: Sequence[DiaryEntry], tag: str | None) -> list[DiaryEntry]:
    """精确匹配（区分大小写）；tag 为空时不过滤。"""
    if not tag:
        return list(entries)
    return [e for e in entries if tag in (e.tags or [])]


def paginate(
    entries: Sequence[DiaryEntry], *, offset: int, limit: int
) -> tuple[list[DiaryEntry], int, bool]:
    """返回 (items, total, has_more)。"""
    total = len(entries)
    items = list(entries[offset : offset + limit])
    return items, total, offset + len(items) < total


def tag_counts(entries: Iterable[DiaryEntry]) -> list[TagCount]:
    """标签云：按出现次数倒序；同一条目里的重复标签只计一次，次数相同按首次出现顺序。"""
    counter: Counter[str] = Counter()
    for entry in entries:
        for tag in dict.fromkeys(entry.tags or []):
            counter[tag] += 1
    ranked = sorted(counter.items(), key=lambda kv: -kv[1])
    return [TagCount(name=name, value=value) for name, value in ranked]


def distinct_dates(entries: Iterable[DiaryEntry]) -> list[str]:
    return list(dict.fromkeys(e.date for e in entries))


def merge_publish_times(
    entries: Iterable[DiaryEntry], times: Mapping[int, str]
) -> list[DiaryEntry]:
    """用外部发布时间覆盖 publishedAt；映射里没有的条目保持原值。"""
    merged: list[DiaryEntry] = []
    for entry in entries:
        published = times.get(entry.id)
        if published:
            entry = entry.model_copy(update={"published_at": published})
        merged.append(entry)
    return merged


def ensure_date(value: str | None, field_name: str = "date") -> str:
    day = _parse_day(value)
    if day is None:
        raise ValidationError(f"{field_name} 格式必须为 YYYY-MM-DD")
    return day.isoformat()


def ensure_instant(value: str, field_name: str = "publishedAt") -> str:
    text = (value or "").strip()
    if _parse_instant(text, None) is None:
        raise ValidationError(f"{field_name} 必须是 ISO-8601 时间")
    return text


def today(zone: tzinfo | None = None) -> str:
    return datetime.now(zone).date().isoformat()
