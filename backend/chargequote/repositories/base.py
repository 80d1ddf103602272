"""
仓储接口

报价单整体读写；带 expected_version 的写入在版本不一致时抛出 ConflictException。
"""
from typing import List, Optional, Protocol

from chargequote.schemas.quote import MarginSettings, Quote, QuoteTemplate, QuoteVersionResponse

DEFAULT_SETTINGS_KEY = "default"

CHANGE_SUMMARIES = {
    "create": "创建报价单",
    "update": "更新报价单信息",
    "add_item": "添加报价项，当前共{items_count}个报价项",
    "update_item": "更新报价项",
    "delete_item": "删除报价项，当前剩余{items_count}个报价项",
    "apply_discount": "应用整体折扣",
    "volume_discount": "应用阶梯数量折扣",
    "apply_template": "应用模板，当前共{items_count}个报价项",
    "integrate_project": "集成项目数据，当前共{items_count}个报价项",
    "status_change": "状态变更为 {status}",
    "comment": "添加评论",
    "approval": "记录审批",
    "view": "客户查看",
    "clone": "复制报价单",
}


def generate_changes_summary(change_type: str, quote: Quote) -> str:
    """生成变更摘要"""
    template = CHANGE_SUMMARIES.get(change_type)
    if template is None:
        return "未知变更"
    return template.format(items_count=len(quote.line_items), status=quote.status)


class QuoteRepository(Protocol):
    """报价单仓储"""

    async def get(self, quote_id: str) -> Optional[Quote]:
        """按ID读取"""

    async def get_by_quote_number(self, quote_number: str) -> Optional[Quote]:
        """按编号读取"""

    async def list(self, status: Optional[str] = None, project_id: Optional[str] = None) -> List[Quote]:
        """列出报价单，按创建时间倒序"""

    async def put(
        self,
        quote: Quote,
        expected_version: Optional[int] = None,
        change_type: str = "update"
    ) -> Quote:
        """
        保存报价单并记录一条版本历史

        expected_version 为已保存的版本号；与当前存储不一致时抛出 ConflictException。
        新建报价单时 expected_version 为 None，编号重复同样抛出 ConflictException。
        """

    async def delete(self, quote_id: str) -> bool:
        """删除报价单及其版本历史，返回是否存在"""

    async def list_versions(self, quote_id: str) -> List[QuoteVersionResponse]:
        """版本历史，按版本号倒序"""


class TemplateRepository(Protocol):
    """模板仓储"""

    async def get(self, template_id: str) -> Optional[QuoteTemplate]:
        """按ID读取"""

    async def list(self, category: Optional[str] = None) -> List[QuoteTemplate]:
        """列出模板"""

    async def put(self, template: QuoteTemplate) -> QuoteTemplate:
        """新增或覆盖模板"""

    async def delete(self, template_id: str) -> bool:
        """删除模板"""


class MarginSettingsRepository(Protocol):
    """定价策略仓储（单例）"""

    async def get(self) -> Optional[MarginSettings]:
        """读取当前策略，未保存过时返回 None"""

    async def put(self, policy: MarginSettings) -> MarginSettings:
        """保存策略"""
