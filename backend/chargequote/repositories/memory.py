"""
内存仓储
以JSON快照保存，读取时重新校验，调用方拿到的对象与存储互不影响
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from chargequote.core.clock import utc_now
from chargequote.core.exceptions import ConflictException
from chargequote.repositories.base import (
    MarginSettingsRepository, QuoteRepository, TemplateRepository, generate_changes_summary
)
from chargequote.schemas.quote import MarginSettings, Quote, QuoteTemplate, QuoteVersionResponse


def check_version(quote_id: str, stored_version: Optional[int], expected_version: Optional[int]) -> None:
    """乐观锁校验"""
    if expected_version is None:
        return
    if stored_version != expected_version:
        raise ConflictException(
            f"报价单 {quote_id} 已被修改 (期望版本 {expected_version}，当前版本 {stored_version})",
            {"quote_id": quote_id, "expected_version": expected_version, "current_version": stored_version}
        )


class InMemoryQuoteRepository(QuoteRepository):
    """内存报价单仓储"""

    def __init__(self):
        self._quotes: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, List[Dict[str, Any]]] = {}

    async def get(self, quote_id: str) -> Optional[Quote]:
        snapshot = self._quotes.get(quote_id)
        return Quote.model_validate(snapshot) if snapshot else None

    async def get_by_quote_number(self, quote_number: str) -> Optional[Quote]:
        for snapshot in self._quotes.values():
            if snapshot["quote_number"] == quote_number:
                return Quote.model_validate(snapshot)
        return None

    async def list(self, status: Optional[str] = None, project_id: Optional[str] = None) -> List[Quote]:
        quotes = [Quote.model_validate(s) for s in self._quotes.values()]
        if status:
            quotes = [q for q in quotes if q.status == status]
        if project_id:
            quotes = [q for q in quotes if q.project_id == project_id]
        return sorted(quotes, key=lambda q: q.created_at, reverse=True)

    async def put(
        self,
        quote: Quote,
        expected_version: Optional[int] = None,
        change_type: str = "update"
    ) -> Quote:
        stored = self._quotes.get(quote.id)
        check_version(quote.id, stored["version"] if stored else None, expected_version)

        if stored is None:
            for other in self._quotes.values():
                if other["quote_number"] == quote.quote_number:
                    raise ConflictException(
                        f"报价单编号 {quote.quote_number} 已存在",
                        {"quote_number": quote.quote_number}
                    )

        snapshot = quote.model_dump(mode="json")
        self._quotes[quote.id] = snapshot
        self._versions.setdefault(quote.id, []).append({
            "version_number": quote.version,
            "change_type": change_type,
            "changes_summary": generate_changes_summary(change_type, quote),
            "created_at": utc_now(),
            "snapshot_data": snapshot,
        })
        logger.debug(f"保存报价单 {quote.quote_number} v{quote.version} ({change_type})")
        return Quote.model_validate(snapshot)

    async def delete(self, quote_id: str) -> bool:
        self._versions.pop(quote_id, None)
        return self._quotes.pop(quote_id, None) is not None

    async def list_versions(self, quote_id: str) -> List[QuoteVersionResponse]:
        versions = sorted(self._versions.get(quote_id, []), key=lambda v: v["version_number"], reverse=True)
        return [QuoteVersionResponse.model_validate(v) for v in versions]


class InMemoryTemplateRepository(TemplateRepository):
    """内存模板仓储"""

    def __init__(self):
        self._templates: Dict[str, Dict[str, Any]] = {}

    async def get(self, template_id: str) -> Optional[QuoteTemplate]:
        snapshot = self._templates.get(template_id)
        return QuoteTemplate.model_validate(snapshot) if snapshot else None

    async def list(self, category: Optional[str] = None) -> List[QuoteTemplate]:
        templates = [QuoteTemplate.model_validate(s) for s in self._templates.values()]
        if category:
            templates = [t for t in templates if t.category == category]
        return templates

    async def put(self, template: QuoteTemplate) -> QuoteTemplate:
        snapshot = template.model_dump(mode="json")
        self._templates[template.id] = snapshot
        return QuoteTemplate.model_validate(snapshot)

    async def delete(self, template_id: str) -> bool:
        return self._templates.pop(template_id, None) is not None


class InMemoryMarginSettingsRepository(MarginSettingsRepository):
    """内存定价策略仓储"""

    def __init__(self, policy: Optional[MarginSettings] = None):
        self._snapshot: Optional[Dict[str, Any]] = policy.model_dump(mode="json") if policy else None
        self.updated_at: Optional[datetime] = None

    async def get(self) -> Optional[MarginSettings]:
        return MarginSettings.model_validate(self._snapshot) if self._snapshot else None

    async def put(self, policy: MarginSettings) -> MarginSettings:
        self._snapshot = policy.model_dump(mode="json")
        self.updated_at = utc_now()
        return MarginSettings.model_validate(self._snapshot)
