"""
时间工具
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """当前UTC时间（带时区）"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """无时区的时间按UTC处理"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
