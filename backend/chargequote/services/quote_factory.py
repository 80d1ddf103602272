"""
报价单创建
空白报价单、报价单编号、复制报价单
"""
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from chargequote.core.clock import ensure_utc, utc_now
from chargequote.core.config import settings
from chargequote.schemas.quote import ClientInfo, Quote, QuoteSettings, QuoteStatus, QuoteTotals
from chargequote.services.price_math import recalculate_totals


def new_id(prefix: str) -> str:
    """生成带前缀的唯一ID"""
    return f"{prefix}-{uuid4().hex}"


def generate_quote_number(now: Optional[datetime] = None, offset_ms: int = 0) -> str:
    """
    生成报价单编号
    格式：QT{YY}{MM}-{毫秒时间戳后6位}
    """
    now = now or utc_now()
    timestamp_ms = int(now.timestamp() * 1000) + offset_ms
    return f"QT{now:%y%m}-{str(timestamp_ms)[-6:]}"


def create_empty_quote(
    project_id: Optional[str] = None,
    created_by: str = "",
    now: Optional[datetime] = None,
    validity_days: Optional[int] = None,
    gst_rate=None
) -> Quote:
    """创建空白草稿报价单"""
    now = now or utc_now()
    validity_days = validity_days or settings.DEFAULT_VALIDITY_DAYS
    gst_rate = settings.GST_RATE if gst_rate is None else gst_rate

    return Quote(
        id=new_id("quote"),
        quote_number=generate_quote_number(now),
        project_id=project_id,
        version=1,
        status=QuoteStatus.DRAFT,
        client_info=ClientInfo(),
        totals=QuoteTotals(gst_rate=gst_rate),
        settings=QuoteSettings(validity_days=validity_days),
        created_at=now,
        updated_at=now,
        valid_until=now + timedelta(days=validity_days),
        created_by=created_by,
    )


def duplicate_quote(source: Quote, quote_number: str, now: Optional[datetime] = None) -> Quote:
    """复制报价单为新的草稿，清空发送、查看、评论与审批记录"""
    now = ensure_utc(now) if now is not None else utc_now()
    copied = source.model_copy(deep=True)

    line_items = [
        item.model_copy(update={"id": new_id("line")})
        for item in copied.line_items
    ]

    return copied.model_copy(update={
        "id": new_id("quote"),
        "quote_number": quote_number,
        "version": 1,
        "status": QuoteStatus.DRAFT,
        "line_items": line_items,
        "totals": recalculate_totals(line_items, copied.totals),
        "created_at": now,
        "updated_at": now,
        "valid_until": now + timedelta(days=settings.DEFAULT_VALIDITY_DAYS),
        "sent_at": None,
        "accepted_at": None,
        "client_views": [],
        "comments": [],
        "approvals": [],
    })


def touch(quote: Quote, now: Optional[datetime] = None) -> Quote:
    """记录一次修改：更新时间与版本号"""
    quote.updated_at = ensure_utc(now) if now is not None else utc_now()
    quote.version += 1
    return quote
