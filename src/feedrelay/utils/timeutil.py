"""时间工具.

数据库中统一保存不带时区的 UTC 时间。
"""

import calendar
import time
from datetime import UTC, datetime


def utcnow() -> datetime:
    """当前 UTC 时间（naive）."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """转换为 naive UTC，naive 输入视为已是 UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_struct_time(value: time.struct_time | None) -> datetime | None:
    """feedparser 解析出的 struct_time（UTC）转 datetime."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), UTC).replace(
            tzinfo=None
        )
    except (OverflowError, ValueError, OSError):
        return None
