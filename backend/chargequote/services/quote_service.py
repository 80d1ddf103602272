"""
报价单管理服务

对纯函数层的异步封装：读取 -> 变换 -> 带版本校验写回
"""
from datetime import datetime
from typing import Callable, List, Optional, Union

from loguru import logger

from chargequote.core.clock import ensure_utc, utc_now
from chargequote.core.config import Settings, settings as default_settings
from chargequote.core.exceptions import BusinessException, ConflictException, NotFoundException
from chargequote.repositories.base import MarginSettingsRepository, QuoteRepository, TemplateRepository
from chargequote.schemas.quote import (
    ApprovalStatus, ClientDecision, LineItemCreate, LineItemUpdate, MarginSettings,
    MarginSettingsUpdate, Quote, QuoteAnalytics, QuoteApproval, QuoteTemplate,
    QuoteUpdateRequest, QuoteVersionResponse, QuoteView, TemplateCreateRequest
)
from chargequote.services import lifecycle, line_items
from chargequote.services.analytics import compute_quote_analytics
from chargequote.services.integrations import ProductCatalog, ProjectSource
from chargequote.services.margin_policy import DEFAULT_MARGIN_SETTINGS, update_margin_settings
from chargequote.services.price_math import recalculate_totals
from chargequote.services.project_integration import integrate_project_data
from chargequote.services.quote_factory import (
    create_empty_quote, duplicate_quote, generate_quote_number, new_id, touch
)
from chargequote.services.template_service import DEFAULT_TEMPLATES, apply_template, new_template
from chargequote.services.volume_discount import apply_volume_discounts


class QuoteService:
    """报价单管理服务"""

    def __init__(
        self,
        quotes: QuoteRepository,
        templates: TemplateRepository,
        margins: MarginSettingsRepository,
        projects: Optional[ProjectSource] = None,
        catalog: Optional[ProductCatalog] = None,
        app_settings: Optional[Settings] = None
    ):
        self.quotes = quotes
        self.templates = templates
        self.margins = margins
        self.projects = projects
        self.catalog = catalog
        self.settings = app_settings or default_settings
        self._policy: Optional[MarginSettings] = None

    async def initialize(self) -> None:
        """加载定价策略，按配置写入默认模板"""
        await self.get_margin_settings()
        if self.settings.SEED_DEFAULT_TEMPLATES:
            await self.ensure_default_templates()

    # ===== 定价策略 =====
    async def get_margin_settings(self) -> MarginSettings:
        """获取定价策略，首次读取后缓存；未保存过时写入默认策略"""
        if self._policy is None:
            policy = await self.margins.get()
            if policy is None:
                policy = await self.margins.put(DEFAULT_MARGIN_SETTINGS)
                logger.info("已写入默认定价策略")
            self._policy = policy
        return self._policy

    async def update_margin_settings(self, patch: MarginSettingsUpdate) -> MarginSettings:
        """更新定价策略"""
        try:
            current = await self.get_margin_settings()
            self._policy = await self.margins.put(update_margin_settings(current, patch))
            return self._policy
        except Exception as e:
            logger.error(f"更新定价策略失败: {e}")
            raise

    async def _enforced_policy(self) -> Optional[MarginSettings]:
        if not self.settings.ENFORCE_MARGIN_BOUNDS:
            return None
        return await self.get_margin_settings()

    # ===== 内部工具 =====
    async def _load(self, quote_id: str) -> Quote:
        quote = await self.quotes.get(quote_id)
        if quote is None:
            raise NotFoundException("报价单", quote_id)
        return quote

    async def _load_template(self, template_id: str) -> QuoteTemplate:
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundException("模板", template_id)
        return template

    async def generate_quote_number(self, now: Optional[datetime] = None) -> str:
        """
        生成唯一报价单编号
        格式：QT{YY}{MM}-{毫秒时间戳后6位}，重复时按毫秒偏移重试
        """
        now = now or utc_now()
        max_retries = self.settings.QUOTE_NUMBER_MAX_RETRIES
        for attempt in range(max_retries):
            quote_number = generate_quote_number(now, offset_ms=attempt)
            if await self.quotes.get_by_quote_number(quote_number) is None:
                return quote_number
            logger.warning(f"报价单编号 {quote_number} 已存在，重试...")

        raise BusinessException(
            "生成报价单编号失败：达到最大重试次数",
            error_code="QUOTE_NUMBER_EXHAUSTED",
            details={"max_retries": max_retries}
        )

    async def _mutate(
        self,
        quote_id: str,
        change_type: str,
        action: str,
        transform: Callable[[Quote], Quote]
    ) -> Quote:
        """读取报价单，执行变换并按读取时的版本号写回"""
        try:
            quote = await self._load(quote_id)
            with logger.contextualize(quote_no=quote.quote_number):
                updated = transform(quote)
                if updated is quote:
                    return quote
                return await self.quotes.put(updated, expected_version=quote.version, change_type=change_type)
        except Exception as e:
            logger.error(f"{action}失败: {e}")
            raise

    # ===== 报价单 =====
    async def create_quote(
        self,
        created_by: str = "",
        project_id: Optional[str] = None,
        template_id: Optional[str] = None
    ) -> Quote:
        """创建报价单草稿：空白报价单 -> 应用模板 -> 集成项目数据 -> 分配编号 -> 保存"""
        try:
            now = utc_now()
            quote = create_empty_quote(
                project_id=project_id,
                created_by=created_by,
                now=now,
                validity_days=self.settings.DEFAULT_VALIDITY_DAYS,
                gst_rate=self.settings.GST_RATE
            )

            template = None
            if template_id:
                template = await self._load_template(template_id)
                quote = apply_template(quote, template, now)

            if project_id:
                project_data = await self._get_project_data(project_id)
                policy = await self.get_margin_settings()
                quote = integrate_project_data(
                    quote, project_data, policy, self.settings.ENFORCE_MARGIN_BOUNDS, now
                )

            quote.quote_number = await self.generate_quote_number(now)
            # 模板与项目集成中的中间修改不计入版本，新报价单从版本1开始
            quote.version = 1

            with logger.contextualize(quote_no=quote.quote_number):
                saved = await self.quotes.put(quote, change_type="create")
                if template is not None:
                    await self.templates.put(template)
                logger.info(f"创建报价单 {saved.quote_number}，共 {len(saved.line_items)} 个报价项")
            return saved
        except Exception as e:
            logger.error(f"创建报价单失败: {e}")
            raise

    async def get_quote(self, quote_id: str) -> Quote:
        """获取报价单"""
        try:
            return await self._load(quote_id)
        except Exception as e:
            logger.error(f"获取报价单失败: {e}")
            raise

    async def list_quotes(self, status: Optional[str] = None, project_id: Optional[str] = None) -> List[Quote]:
        """查询报价单列表"""
        try:
            return await self.quotes.list(status=status, project_id=project_id)
        except Exception as e:
            logger.error(f"查询报价单列表失败: {e}")
            raise

    async def delete_quote(self, quote_id: str) -> bool:
        """删除报价单"""
        try:
            deleted = await self.quotes.delete(quote_id)
            if not deleted:
                raise NotFoundException("报价单", quote_id)
            logger.info(f"删除报价单 {quote_id}")
            return True
        except Exception as e:
            logger.error(f"删除报价单失败: {e}")
            raise

    async def update_quote_details(self, quote_id: str, data: QuoteUpdateRequest) -> Quote:
        """更新报价单基本信息，仅草稿可改"""
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        def transform(quote: Quote) -> Quote:
            line_items.ensure_editable(quote)
            if not update_data:
                return quote
            updated = quote.model_copy(deep=True)
            for key in update_data:
                setattr(updated, key, getattr(data, key))
            return touch(updated)

        return await self._mutate(quote_id, "update", "更新报价单", transform)

    async def duplicate_quote(self, quote_id: str) -> Quote:
        """复制报价单为新的草稿"""
        try:
            source = await self._load(quote_id)
            quote_number = await self.generate_quote_number()
            copied = duplicate_quote(source, quote_number)
            with logger.contextualize(quote_no=copied.quote_number):
                saved = await self.quotes.put(copied, change_type="clone")
                logger.info(f"复制报价单 {source.quote_number} -> {saved.quote_number}")
            return saved
        except Exception as e:
            logger.error(f"复制报价单失败: {e}")
            raise

    # ===== 报价项 =====
    async def add_line_item(self, quote_id: str, item: Union[LineItemCreate, dict]) -> Quote:
        """添加报价项"""
        policy = await self._enforced_policy()
        return await self._mutate(
            quote_id, "add_item", "添加报价项",
            lambda quote: line_items.add_line_item(quote, item, policy)
        )

    async def update_line_item(
        self,
        quote_id: str,
        line_item_id: str,
        patch: Union[LineItemUpdate, dict]
    ) -> Quote:
        """更新报价项"""
        policy = await self._enforced_policy()
        return await self._mutate(
            quote_id, "update_item", "更新报价项",
            lambda quote: line_items.update_line_item(quote, line_item_id, patch, policy)
        )

    async def remove_line_item(self, quote_id: str, line_item_id: str, missing_ok: bool = False) -> Quote:
        """删除报价项"""
        return await self._mutate(
            quote_id, "delete_item", "删除报价项",
            lambda quote: line_items.remove_line_item(quote, line_item_id, missing_ok)
        )

    async def set_discount(self, quote_id: str, discount, discount_type: str) -> Quote:
        """设置整体折扣"""
        policy = await self._enforced_policy()
        return await self._mutate(
            quote_id, "apply_discount", "设置折扣",
            lambda quote: line_items.set_discount(quote, discount, discount_type, policy)
        )

    async def apply_volume_discounts(self, quote_id: str) -> Quote:
        """按当前定价策略应用阶梯数量折扣"""
        policy = await self.get_margin_settings()

        def transform(quote: Quote) -> Quote:
            line_items.ensure_editable(quote)
            updated = quote.model_copy(deep=True)
            updated.line_items = apply_volume_discounts(updated.line_items, policy)
            updated.totals = recalculate_totals(updated.line_items, updated.totals)
            return touch(updated)

        return await self._mutate(quote_id, "volume_discount", "应用阶梯折扣", transform)

    async def add_product_to_quote(self, quote_id: str, product_id: str, quantity: int = 1) -> Quote:
        """从产品目录添加报价项"""
        try:
            if self.catalog is None:
                raise NotFoundException("产品", product_id)
            product = await self.catalog.get_product(product_id)
            if product is None:
                raise NotFoundException("产品", product_id)
        except Exception as e:
            logger.error(f"添加产品失败: {e}")
            raise

        policy = await self.get_margin_settings()
        return await self._mutate(
            quote_id, "add_item", "添加产品",
            lambda quote: line_items.add_product_to_quote(
                quote, product, policy, quantity, self.settings.ENFORCE_MARGIN_BOUNDS
            )
        )

    # ===== 模板与项目 =====
    async def apply_template(self, quote_id: str, template_id: str) -> Quote:
        """将模板应用到已有报价单"""
        try:
            template = await self._load_template(template_id)
        except Exception as e:
            logger.error(f"应用模板失败: {e}")
            raise

        saved = await self._mutate(
            quote_id, "apply_template", "应用模板",
            lambda quote: apply_template(quote, template)
        )
        await self.templates.put(template)
        return saved

    async def _get_project_data(self, project_id: str):
        if self.projects is None:
            raise NotFoundException("项目", project_id)
        project_data = await self.projects.get_project_data(project_id)
        if project_data is None:
            raise NotFoundException("项目", project_id)
        return project_data

    async def integrate_project(self, quote_id: str, project_id: str) -> Quote:
        """将外部项目数据集成到已有报价单"""
        try:
            project_data = await self._get_project_data(project_id)
        except Exception as e:
            logger.error(f"集成项目数据失败: {e}")
            raise

        policy = await self.get_margin_settings()
        return await self._mutate(
            quote_id, "integrate_project", "集成项目数据",
            lambda quote: integrate_project_data(
                quote, project_data, policy, self.settings.ENFORCE_MARGIN_BOUNDS
            )
        )

    # ===== 状态流转 =====
    async def submit_for_review(self, quote_id: str) -> Quote:
        """提交审核"""
        return await self._mutate(quote_id, "status_change", "提交审核", lifecycle.submit_for_review)

    async def record_approval(
        self,
        quote_id: str,
        approver_user_id: str,
        status: str = ApprovalStatus.APPROVED,
        approver_name: str = "",
        notes: Optional[str] = None
    ) -> Quote:
        """记录审批意见"""
        approval = QuoteApproval(
            id=new_id("approval"),
            approver_user_id=approver_user_id,
            approver_name=approver_name,
            status=status,
            notes=notes,
            timestamp=utc_now(),
        )
        return await self._mutate(
            quote_id, "approval", "记录审批",
            lambda quote: lifecycle.record_approval(quote, approval)
        )

    async def send_quote(self, quote_id: str) -> Quote:
        """发送报价单"""
        return await self._mutate(quote_id, "status_change", "发送报价单", lifecycle.send_quote)

    async def mark_viewed(
        self,
        quote_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        duration: Optional[int] = None
    ) -> Quote:
        """记录客户查看"""
        view = QuoteView(
            id=new_id("view"),
            viewed_at=utc_now(),
            ip_address=ip_address,
            user_agent=user_agent,
            duration=duration,
        )
        return await self._mutate(
            quote_id, "view", "记录客户查看",
            lambda quote: lifecycle.mark_viewed(quote, view)
        )

    async def accept_quote(self, decision: ClientDecision) -> Quote:
        """客户接受报价"""
        return await self._mutate(
            decision.quote_id, "status_change", "接受报价",
            lambda quote: lifecycle.accept_quote(quote, decision)
        )

    async def reject_quote(self, decision: ClientDecision) -> Quote:
        """客户拒绝报价"""
        return await self._mutate(
            decision.quote_id, "status_change", "拒绝报价",
            lambda quote: lifecycle.reject_quote(quote, decision)
        )

    async def record_client_decision(self, decision: ClientDecision) -> Quote:
        """记录客户决定"""
        return await self._mutate(
            decision.quote_id, "status_change", "记录客户决定",
            lambda quote: lifecycle.record_client_decision(quote, decision)
        )

    async def add_comment(
        self,
        quote_id: str,
        user_id: str,
        message: str,
        user_name: str = "",
        is_internal: bool = True
    ) -> Quote:
        """添加评论"""
        return await self._mutate(
            quote_id, "comment", "添加评论",
            lambda quote: lifecycle.add_comment(quote, user_id, message, user_name, is_internal)
        )

    async def expire_overdue_quotes(self, now: Optional[datetime] = None) -> List[Quote]:
        """将已过有效期的报价单置为 expired，返回被处理的报价单"""
        now = ensure_utc(now) if now is not None else utc_now()
        expired = []
        try:
            for quote in await self.quotes.list():
                if not lifecycle.is_due_for_expiry(quote, now):
                    continue
                with logger.contextualize(quote_no=quote.quote_number):
                    updated = lifecycle.expire_quote_if_due(quote, now)
                    try:
                        saved = await self.quotes.put(
                            updated, expected_version=quote.version, change_type="status_change"
                        )
                    except ConflictException as e:
                        # 并发修改的报价单留待下次处理
                        logger.warning(f"报价单 {quote.quote_number} 过期处理冲突，已跳过: {e}")
                        continue
                    expired.append(saved)
            if expired:
                logger.info(f"已过期报价单 {len(expired)} 个")
            return expired
        except Exception as e:
            logger.error(f"处理过期报价单失败: {e}")
            raise

    # ===== 模板管理 =====
    async def create_template(self, data: TemplateCreateRequest) -> QuoteTemplate:
        """创建模板"""
        try:
            for item in data.line_items:
                line_items.validate_line_item(item)
            template = await self.templates.put(new_template(data))
            logger.info(f"创建模板 {template.name} ({template.id})")
            return template
        except Exception as e:
            logger.error(f"创建模板失败: {e}")
            raise

    async def get_template(self, template_id: str) -> QuoteTemplate:
        """获取模板"""
        try:
            return await self._load_template(template_id)
        except Exception as e:
            logger.error(f"获取模板失败: {e}")
            raise

    async def list_templates(self, category: Optional[str] = None) -> List[QuoteTemplate]:
        """查询模板列表"""
        return await self.templates.list(category=category)

    async def ensure_default_templates(self) -> List[QuoteTemplate]:
        """模板库为空时写入默认模板"""
        existing = await self.templates.list()
        if existing:
            return existing
        created = [await self.templates.put(new_template(data)) for data in DEFAULT_TEMPLATES]
        logger.info(f"已写入默认模板 {len(created)} 个")
        return created

    # ===== 统计与历史 =====
    async def get_quote_analytics(self) -> QuoteAnalytics:
        """报价统计"""
        try:
            return compute_quote_analytics(await self.quotes.list())
        except Exception as e:
            logger.error(f"获取报价统计失败: {e}")
            raise

    async def get_quote_versions(self, quote_id: str) -> List[QuoteVersionResponse]:
        """获取报价单版本历史"""
        try:
            await self._load(quote_id)
            return await self.quotes.list_versions(quote_id)
        except Exception as e:
            logger.error(f"获取版本历史失败: {e}")
            raise
