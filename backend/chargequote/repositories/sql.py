"""
SQLAlchemy 仓储
基于 async_sessionmaker，每个操作使用独立会话
"""
from typing import List, Optional

from loguru import logger
from sqlalchemy import select, delete, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from chargequote.core.exceptions import ConflictException
from chargequote.models.quote import MarginSettingsRecord, QuoteRecord, QuoteTemplateRecord, QuoteVersion
from chargequote.repositories.base import (
    DEFAULT_SETTINGS_KEY, MarginSettingsRepository, QuoteRepository, TemplateRepository,
    generate_changes_summary
)
from chargequote.repositories.memory import check_version
from chargequote.schemas.quote import MarginSettings, Quote, QuoteTemplate, QuoteVersionResponse


class SqlQuoteRepository(QuoteRepository):
    """报价单仓储（数据库）"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def get(self, quote_id: str) -> Optional[Quote]:
        async with self.session_maker() as db:
            record = await db.get(QuoteRecord, quote_id)
            return Quote.model_validate(record.snapshot_data) if record else None

    async def get_by_quote_number(self, quote_number: str) -> Optional[Quote]:
        async with self.session_maker() as db:
            query = select(QuoteRecord).where(QuoteRecord.quote_number == quote_number)
            result = await db.execute(query)
            record = result.scalars().first()
            return Quote.model_validate(record.snapshot_data) if record else None

    async def list(self, status: Optional[str] = None, project_id: Optional[str] = None) -> List[Quote]:
        async with self.session_maker() as db:
            query = select(QuoteRecord)
            if status:
                query = query.where(QuoteRecord.status == status)
            if project_id:
                query = query.where(QuoteRecord.project_id == project_id)
            query = query.order_by(desc(QuoteRecord.created_at))

            result = await db.execute(query)
            return [Quote.model_validate(r.snapshot_data) for r in result.scalars().all()]

    async def put(
        self,
        quote: Quote,
        expected_version: Optional[int] = None,
        change_type: str = "update"
    ) -> Quote:
        snapshot = quote.model_dump(mode="json")
        async with self.session_maker() as db:
            try:
                record = await db.get(QuoteRecord, quote.id)
                check_version(quote.id, record.version if record else None, expected_version)

                if record is None:
                    record = QuoteRecord(id=quote.id, created_at=quote.created_at)
                    db.add(record)

                record.quote_number = quote.quote_number
                record.project_id = quote.project_id
                record.template_id = quote.template_id
                record.status = quote.status
                record.version = quote.version
                record.client_name = quote.client_info.name
                record.title = quote.title
                record.total = quote.totals.total
                record.created_by = quote.created_by
                record.valid_until = quote.valid_until
                record.updated_at = quote.updated_at
                record.snapshot_data = snapshot

                db.add(QuoteVersion(
                    quote_id=quote.id,
                    version_number=quote.version,
                    change_type=change_type,
                    changes_summary=generate_changes_summary(change_type, quote),
                    snapshot_data=snapshot,
                    created_at=quote.updated_at
                ))

                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.warning(f"保存报价单 {quote.quote_number} 冲突: {e.orig}")
                raise ConflictException(
                    f"报价单 {quote.quote_number} 保存冲突",
                    {"quote_id": quote.id, "quote_number": quote.quote_number, "version": quote.version}
                ) from e
            except Exception as e:
                await db.rollback()
                logger.error(f"保存报价单失败: {e}")
                raise

        return Quote.model_validate(snapshot)

    async def delete(self, quote_id: str) -> bool:
        async with self.session_maker() as db:
            try:
                record = await db.get(QuoteRecord, quote_id)
                if record is None:
                    return False
                await db.execute(delete(QuoteVersion).where(QuoteVersion.quote_id == quote_id))
                await db.delete(record)
                await db.commit()
                return True
            except Exception as e:
                await db.rollback()
                logger.error(f"删除报价单失败: {e}")
                raise

    async def list_versions(self, quote_id: str) -> List[QuoteVersionResponse]:
        async with self.session_maker() as db:
            query = select(QuoteVersion).where(
                QuoteVersion.quote_id == quote_id
            ).order_by(desc(QuoteVersion.version_number))
            result = await db.execute(query)
            return [QuoteVersionResponse.model_validate(v) for v in result.scalars().all()]


class SqlTemplateRepository(TemplateRepository):
    """模板仓储（数据库）"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def get(self, template_id: str) -> Optional[QuoteTemplate]:
        async with self.session_maker() as db:
            record = await db.get(QuoteTemplateRecord, template_id)
            return QuoteTemplate.model_validate(record.snapshot_data) if record else None

    async def list(self, category: Optional[str] = None) -> List[QuoteTemplate]:
        async with self.session_maker() as db:
            query = select(QuoteTemplateRecord)
            if category:
                query = query.where(QuoteTemplateRecord.category == category)
            query = query.order_by(QuoteTemplateRecord.created_at)
            result = await db.execute(query)
            return [QuoteTemplate.model_validate(r.snapshot_data) for r in result.scalars().all()]

    async def put(self, template: QuoteTemplate) -> QuoteTemplate:
        snapshot = template.model_dump(mode="json")
        async with self.session_maker() as db:
            try:
                record = await db.get(QuoteTemplateRecord, template.id)
                if record is None:
                    record = QuoteTemplateRecord(id=template.id, created_at=template.created_at)
                    db.add(record)
                record.name = template.name
                record.category = template.category
                record.is_default = template.is_default
                record.usage_count = template.usage_count
                record.snapshot_data = snapshot
                await db.commit()
            except Exception as e:
                await db.rollback()
                logger.error(f"保存模板失败: {e}")
                raise
        return QuoteTemplate.model_validate(snapshot)

    async def delete(self, template_id: str) -> bool:
        async with self.session_maker() as db:
            record = await db.get(QuoteTemplateRecord, template_id)
            if record is None:
                return False
            await db.delete(record)
            await db.commit()
            return True


class SqlMarginSettingsRepository(MarginSettingsRepository):
    """定价策略仓储（数据库）"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def get(self) -> Optional[MarginSettings]:
        async with self.session_maker() as db:
            record = await db.get(MarginSettingsRecord, DEFAULT_SETTINGS_KEY)
            return MarginSettings.model_validate(record.snapshot_data) if record else None

    async def put(self, policy: MarginSettings) -> MarginSettings:
        snapshot = policy.model_dump(mode="json")
        async with self.session_maker() as db:
            try:
                record = await db.get(MarginSettingsRecord, DEFAULT_SETTINGS_KEY)
                if record is None:
                    record = MarginSettingsRecord(id=DEFAULT_SETTINGS_KEY)
                    db.add(record)
                record.snapshot_data = snapshot
                await db.commit()
            except Exception as e:
                await db.rollback()
                logger.error(f"保存定价策略失败: {e}")
                raise
        return MarginSettings.model_validate(snapshot)
