"""
报价统计测试
"""
from datetime import timedelta
from decimal import Decimal

from chargequote.schemas.quote import ClientDecision, DecisionType, QuoteStatus
from chargequote.services.analytics import compute_quote_analytics
from chargequote.services.lifecycle import accept_quote, reject_quote, send_quote
from chargequote.services.line_items import add_line_item


class TestQuoteAnalytics:
    """报价统计测试"""

    def test_empty(self):
        analytics = compute_quote_analytics([])

        assert analytics.total_quotes == 0
        assert analytics.total_value == Decimal("0")
        assert analytics.conversion_rate == Decimal("0")
        assert analytics.average_response_time is None
        assert analytics.status_breakdown == {}

    def test_mixed_quotes(self, draft_quote, charger_item, now):
        """测试成交率、平均金额与平均响应时间"""
        priced = add_line_item(draft_quote, charger_item)

        accepted_sent = send_quote(priced, now)
        accepted = accept_quote(accepted_sent, ClientDecision(
            quote_id=accepted_sent.id, decision=DecisionType.ACCEPTED, timestamp=now + timedelta(hours=3)
        ))
        rejected_sent = send_quote(priced, now)
        rejected = reject_quote(rejected_sent, ClientDecision(
            quote_id=rejected_sent.id, decision=DecisionType.REJECTED, timestamp=now + timedelta(hours=1)
        ))
        still_draft = priced

        analytics = compute_quote_analytics([accepted, rejected, still_draft, draft_quote])

        assert analytics.total_quotes == 4
        assert analytics.total_value == Decimal("2860") * 3
        assert analytics.conversion_rate == Decimal("25.00")
        assert analytics.average_quote_value == Decimal("2145.00")
        assert analytics.average_response_time == Decimal("3.00")
        assert analytics.status_breakdown == {
            QuoteStatus.ACCEPTED: 1,
            QuoteStatus.REJECTED: 1,
            QuoteStatus.DRAFT: 2,
        }

    def test_naive_decision_time(self, draft_quote, charger_item, now):
        """测试客户决定时间不带时区时仍可计算响应时间"""
        sent = send_quote(add_line_item(draft_quote, charger_item), now)
        accepted = accept_quote(sent, ClientDecision(
            quote_id=sent.id,
            decision=DecisionType.ACCEPTED,
            timestamp=now.replace(tzinfo=None) + timedelta(hours=4),
        ))

        assert compute_quote_analytics([accepted]).average_response_time == Decimal("4.00")
