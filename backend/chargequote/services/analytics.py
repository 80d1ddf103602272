"""
报价统计
"""
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from chargequote.schemas.quote import Quote, QuoteAnalytics, QuoteStatus
from chargequote.services.price_math import HUNDRED, ZERO

TWO_PLACES = Decimal("0.01")
SECONDS_PER_HOUR = Decimal("3600")


def compute_quote_analytics(quotes: Iterable[Quote]) -> QuoteAnalytics:
    """
    汇总报价单统计

    成交率 = 已接受数 / 总数 * 100；
    平均响应时间取已接受报价单从发送到接受的小时数，没有样本时为 None
    """
    quotes = list(quotes)
    total_quotes = len(quotes)
    total_value = sum((q.totals.total for q in quotes), ZERO)
    accepted = [q for q in quotes if q.status == QuoteStatus.ACCEPTED]

    if total_quotes:
        conversion_rate = (Decimal(len(accepted)) / Decimal(total_quotes) * HUNDRED).quantize(TWO_PLACES, ROUND_HALF_UP)
        average_quote_value = (total_value / Decimal(total_quotes)).quantize(TWO_PLACES, ROUND_HALF_UP)
    else:
        conversion_rate = ZERO
        average_quote_value = ZERO

    response_hours = [
        Decimal(str((q.accepted_at - q.sent_at).total_seconds())) / SECONDS_PER_HOUR
        for q in accepted
        if q.sent_at is not None and q.accepted_at is not None
    ]
    average_response_time = None
    if response_hours:
        average_response_time = (
            sum(response_hours, ZERO) / Decimal(len(response_hours))
        ).quantize(TWO_PLACES, ROUND_HALF_UP)

    return QuoteAnalytics(
        total_quotes=total_quotes,
        total_value=total_value,
        conversion_rate=conversion_rate,
        average_quote_value=average_quote_value,
        average_response_time=average_response_time,
        status_breakdown=dict(Counter(q.status for q in quotes)),
    )
