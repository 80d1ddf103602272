"""
数据库仓储测试（内存 SQLite）
"""
from decimal import Decimal

import pytest

from chargequote.core.exceptions import ConflictException
from chargequote.core.config import Settings
from chargequote.repositories.sql import (
    SqlMarginSettingsRepository, SqlQuoteRepository, SqlTemplateRepository
)
from chargequote.schemas.quote import MarginSettingsUpdate, QuoteStatus
from chargequote.services.line_items import add_line_item
from chargequote.services.margin_policy import DEFAULT_MARGIN_SETTINGS
from chargequote.services.quote_factory import create_empty_quote
from chargequote.services.quote_service import QuoteService
from chargequote.services.template_service import DEFAULT_TEMPLATES, new_template


class TestSqlQuoteRepository:
    """报价单仓储测试"""

    @pytest.mark.asyncio
    async def test_put_and_get(self, session_maker, draft_quote, charger_item):
        """测试保存与读取完整快照"""
        repo = SqlQuoteRepository(session_maker)
        quote = add_line_item(draft_quote, charger_item)

        await repo.put(quote, change_type="create")
        loaded = await repo.get(quote.id)

        assert loaded == quote
        assert loaded.totals.total == Decimal("2860")
        assert (await repo.get_by_quote_number(quote.quote_number)).id == quote.id
        assert await repo.get("quote-missing") is None

    @pytest.mark.asyncio
    async def test_version_check(self, session_maker, draft_quote, charger_item):
        """测试乐观锁"""
        repo = SqlQuoteRepository(session_maker)
        await repo.put(draft_quote, change_type="create")

        updated = add_line_item(draft_quote, charger_item)
        await repo.put(updated, expected_version=draft_quote.version, change_type="add_item")

        with pytest.raises(ConflictException):
            await repo.put(add_line_item(draft_quote, charger_item), expected_version=draft_quote.version)

        assert (await repo.get(draft_quote.id)).version == updated.version

    @pytest.mark.asyncio
    async def test_duplicate_quote_number(self, session_maker, now):
        """测试编号唯一约束"""
        repo = SqlQuoteRepository(session_maker)
        first = create_empty_quote(now=now)
        second = create_empty_quote(now=now)
        assert first.quote_number == second.quote_number

        await repo.put(first, change_type="create")
        with pytest.raises(ConflictException):
            await repo.put(second, change_type="create")

    @pytest.mark.asyncio
    async def test_list_versions_and_delete(self, session_maker, draft_quote, charger_item):
        """测试版本历史与删除"""
        repo = SqlQuoteRepository(session_maker)
        await repo.put(draft_quote, change_type="create")
        updated = add_line_item(draft_quote, charger_item)
        await repo.put(updated, expected_version=draft_quote.version, change_type="add_item")

        versions = await repo.list_versions(draft_quote.id)
        assert [v.version_number for v in versions] == [updated.version, draft_quote.version]
        assert versions[0].changes_summary == "添加报价项，当前共1个报价项"

        assert await repo.delete(draft_quote.id) is True
        assert await repo.delete(draft_quote.id) is False
        assert await repo.list_versions(draft_quote.id) == []

    @pytest.mark.asyncio
    async def test_list_filters(self, session_maker, now):
        repo = SqlQuoteRepository(session_maker)
        a = create_empty_quote(project_id="proj-a", now=now)
        b = create_empty_quote(project_id="proj-b", now=now)
        b.quote_number = "QT2503-000001"
        b.status = QuoteStatus.SENT
        await repo.put(a, change_type="create")
        await repo.put(b, change_type="create")

        assert [q.id for q in await repo.list(project_id="proj-a")] == [a.id]
        assert [q.id for q in await repo.list(status=QuoteStatus.SENT)] == [b.id]
        assert len(await repo.list()) == 2


class TestSqlTemplateAndSettings:
    """模板与定价策略仓储测试"""

    @pytest.mark.asyncio
    async def test_template_roundtrip(self, session_maker, now):
        repo = SqlTemplateRepository(session_maker)
        template = new_template(DEFAULT_TEMPLATES[1], now)

        await repo.put(template)
        template.usage_count += 1
        await repo.put(template)

        loaded = await repo.get(template.id)
        assert loaded.usage_count == 1
        assert loaded.line_items[0].unit_price == Decimal("65000")
        assert [t.id for t in await repo.list(category="commercial")] == [template.id]
        assert await repo.delete(template.id) is True

    @pytest.mark.asyncio
    async def test_margin_settings(self, session_maker):
        repo = SqlMarginSettingsRepository(session_maker)
        assert await repo.get() is None

        await repo.put(DEFAULT_MARGIN_SETTINGS)
        assert await repo.get() == DEFAULT_MARGIN_SETTINGS


class TestServiceOnSql:
    """基于数据库仓储的服务测试"""

    @pytest.mark.asyncio
    async def test_full_flow(self, session_maker, charger_item):
        """测试初始化、创建、编辑与策略持久化"""
        service = QuoteService(
            quotes=SqlQuoteRepository(session_maker),
            templates=SqlTemplateRepository(session_maker),
            margins=SqlMarginSettingsRepository(session_maker),
            app_settings=Settings(SEED_DEFAULT_TEMPLATES=True),
        )
        await service.initialize()

        templates = await service.list_templates()
        assert len(templates) == 2

        residential = next(t for t in templates if t.category == "residential")
        quote = await service.create_quote(created_by="tester", template_id=residential.id)
        quote = await service.add_line_item(quote.id, charger_item)
        assert len(quote.line_items) == 4

        await service.update_margin_settings(MarginSettingsUpdate(minimum_margin=Decimal("20")))
        assert (await service.margins.get()).minimum_margin == Decimal("20")
