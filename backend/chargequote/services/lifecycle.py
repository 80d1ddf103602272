"""
报价单状态流转

draft -> pending_review -> sent -> viewed -> accepted / rejected
sent / viewed / pending_review 到期后 -> expired
"""
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from loguru import logger

from chargequote.core.clock import ensure_utc, utc_now
from chargequote.core.exceptions import IllegalTransitionException, ValidationException
from chargequote.schemas.quote import (
    ApprovalStatus, ClientDecision, DecisionType, Quote, QuoteApproval, QuoteComment,
    QuoteStatus, QuoteView
)
from chargequote.services.quote_factory import new_id, touch


ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.PENDING_REVIEW, QuoteStatus.SENT}),
    QuoteStatus.PENDING_REVIEW: frozenset({QuoteStatus.SENT, QuoteStatus.EXPIRED}),
    QuoteStatus.SENT: frozenset({
        QuoteStatus.VIEWED, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED
    }),
    QuoteStatus.VIEWED: frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED}),
    QuoteStatus.ACCEPTED: frozenset(),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.EXPIRED: frozenset(),
}

DEFAULT_DECISION_MESSAGES = {
    DecisionType.ACCEPTED: "Quote accepted",
    DecisionType.REJECTED: "Quote rejected",
}


def _resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now is not None else utc_now()


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(quote: Quote, target: str) -> None:
    """校验状态流转是否合法"""
    if not can_transition(quote.status, target):
        raise IllegalTransitionException(quote.status, target)


def is_due_for_expiry(quote: Quote, now: Optional[datetime] = None) -> bool:
    """是否已过有效期且处于可过期状态"""
    now = _resolve_now(now)
    return QuoteStatus.EXPIRED in ALLOWED_TRANSITIONS[quote.status] and now >= quote.valid_until


def _transition(quote: Quote, target: str, now: datetime) -> Quote:
    updated = quote.model_copy(deep=True)
    logger.info(f"报价单 {quote.quote_number} 状态变更: {quote.status} -> {target}")
    updated.status = target
    return touch(updated, now)


def submit_for_review(quote: Quote, now: Optional[datetime] = None) -> Quote:
    """提交审核"""
    ensure_transition(quote, QuoteStatus.PENDING_REVIEW)
    return _transition(quote, QuoteStatus.PENDING_REVIEW, _resolve_now(now))


def record_approval(quote: Quote, approval: QuoteApproval, now: Optional[datetime] = None) -> Quote:
    """记录审批意见，仅草稿或待审核状态可用"""
    if quote.status not in (QuoteStatus.DRAFT, QuoteStatus.PENDING_REVIEW):
        raise IllegalTransitionException(quote.status, quote.status, "当前状态不接受审批")
    updated = quote.model_copy(deep=True)
    updated.approvals.append(approval.model_copy())
    return touch(updated, now)


def send_quote(quote: Quote, now: Optional[datetime] = None) -> Quote:
    """
    发送报价单

    仅草稿或待审核状态可发送；发送时间只设置一次。
    需要审批的报价单必须至少有一条通过的审批。
    """
    now = _resolve_now(now)
    ensure_transition(quote, QuoteStatus.SENT)

    if not quote.client_info.name:
        raise ValidationException("发送前必须填写客户名称", {"field": "client_info.name"})
    if quote.requires_approval and not any(a.status == ApprovalStatus.APPROVED for a in quote.approvals):
        raise IllegalTransitionException(quote.status, QuoteStatus.SENT, "报价单尚未审批通过")

    updated = _transition(quote, QuoteStatus.SENT, now)
    updated.sent_at = now
    return updated


def mark_viewed(quote: Quote, view: Optional[QuoteView] = None, now: Optional[datetime] = None) -> Quote:
    """记录客户查看；首次查看时 sent -> viewed"""
    now = _resolve_now(now)
    if quote.status not in (QuoteStatus.SENT, QuoteStatus.VIEWED):
        raise IllegalTransitionException(quote.status, QuoteStatus.VIEWED)

    view = view or QuoteView(id=new_id("view"), viewed_at=now)
    if quote.status == QuoteStatus.SENT:
        updated = _transition(quote, QuoteStatus.VIEWED, now)
    else:
        updated = touch(quote.model_copy(deep=True), now)
    updated.client_views.append(view)
    return updated


def _client_comment(quote: Quote, decision: ClientDecision) -> QuoteComment:
    return QuoteComment(
        id=new_id("comment"),
        user_id="client",
        user_name=quote.client_info.contact_person,
        message=decision.comments or DEFAULT_DECISION_MESSAGES[decision.decision],
        timestamp=decision.timestamp,
        is_internal=False,
    )


def _check_decision(quote: Quote, decision: ClientDecision, expected: str) -> None:
    if decision.quote_id != quote.id:
        raise ValidationException(
            "客户决定与报价单不匹配",
            {"quote_id": quote.id, "decision_quote_id": decision.quote_id}
        )
    if decision.decision != expected:
        raise ValidationException(
            f"客户决定类型错误: 期望 {expected}，实际 {decision.decision}",
            {"decision": decision.decision}
        )


def accept_quote(quote: Quote, decision: ClientDecision, now: Optional[datetime] = None) -> Quote:
    """客户接受报价"""
    _check_decision(quote, decision, DecisionType.ACCEPTED)
    ensure_transition(quote, QuoteStatus.ACCEPTED)

    updated = _transition(quote, QuoteStatus.ACCEPTED, _resolve_now(now))
    updated.accepted_at = decision.timestamp
    updated.comments.append(_client_comment(quote, decision))
    return updated


def reject_quote(quote: Quote, decision: ClientDecision, now: Optional[datetime] = None) -> Quote:
    """客户拒绝报价，拒绝时间以评论时间为准"""
    _check_decision(quote, decision, DecisionType.REJECTED)
    ensure_transition(quote, QuoteStatus.REJECTED)

    updated = _transition(quote, QuoteStatus.REJECTED, _resolve_now(now))
    updated.comments.append(_client_comment(quote, decision))
    return updated


def record_client_decision(quote: Quote, decision: ClientDecision, now: Optional[datetime] = None) -> Quote:
    """按客户决定类型分发"""
    if decision.decision == DecisionType.ACCEPTED:
        return accept_quote(quote, decision, now)
    return reject_quote(quote, decision, now)


def expire_quote_if_due(quote: Quote, now: Optional[datetime] = None) -> Quote:
    """到期则置为 expired，否则原样返回"""
    now = _resolve_now(now)
    if not is_due_for_expiry(quote, now):
        return quote
    return _transition(quote, QuoteStatus.EXPIRED, now)


def add_comment(
    quote: Quote,
    user_id: str,
    message: str,
    user_name: str = "",
    is_internal: bool = True,
    now: Optional[datetime] = None
) -> Quote:
    """添加评论，任何状态均可"""
    now = _resolve_now(now)
    if not message:
        raise ValidationException("评论内容不能为空")
    updated = quote.model_copy(deep=True)
    updated.comments.append(QuoteComment(
        id=new_id("comment"),
        user_id=user_id,
        user_name=user_name,
        message=message,
        timestamp=now,
        is_internal=is_internal,
    ))
    return touch(updated, now)
