"""
报价单相关的Pydantic模式
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, ConfigDict, field_validator

from chargequote.core.clock import ensure_utc


# ===== 枚举值定义 =====
class QuoteStatus:
    """报价单状态"""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

    ALL = (DRAFT, PENDING_REVIEW, SENT, VIEWED, ACCEPTED, REJECTED, EXPIRED)


class LineItemType:
    """报价项类型"""
    CHARGER = "charger"
    ACCESSORY = "accessory"
    INSTALLATION = "installation"
    SERVICE = "service"
    CUSTOM = "custom"

    ALL = (CHARGER, ACCESSORY, INSTALLATION, SERVICE, CUSTOM)


class LineItemUnit:
    """计量单位"""
    EACH = "each"
    HOUR = "hour"
    METER = "meter"
    SQM = "sqm"
    LINEAR_METER = "linear_meter"

    ALL = (EACH, HOUR, METER, SQM, LINEAR_METER)


class DiscountType:
    """折扣类型"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    ALL = (PERCENTAGE, FIXED)


class ApprovalStatus:
    """审批状态"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)


class DecisionType:
    """客户决定"""
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    ALL = (ACCEPTED, REJECTED)


# ===== 报价项 =====
class SupplierInfo(BaseModel):
    """供应商信息"""
    supplier_id: Optional[str] = Field(None, description="供应商ID")
    supplier_name: Optional[str] = Field(None, description="供应商名称")
    part_number: Optional[str] = Field(None, description="零件编号")
    lead_time: Optional[str] = Field(None, description="交货周期")


class LineItemBase(BaseModel):
    """报价项公共字段"""
    type: str = Field(default=LineItemType.CUSTOM, description="报价项类型")
    product_id: Optional[str] = Field(None, description="产品目录ID")
    name: str = Field(..., description="名称")
    description: str = Field(default="", description="描述")
    category: str = Field(..., description="类别")
    quantity: int = Field(default=1, description="数量")
    unit_price: Decimal = Field(..., description="单价")
    markup: Decimal = Field(default=Decimal("0"), description="加价百分比")
    cost: Decimal = Field(default=Decimal("0"), description="成本")
    unit: str = Field(default=LineItemUnit.EACH, description="计量单位")
    specifications: Optional[Dict[str, Any]] = Field(None, description="规格参数")
    supplier_info: Optional[SupplierInfo] = Field(None, description="供应商信息")
    is_optional: bool = Field(default=False, description="是否可选项")
    notes: Optional[str] = Field(None, description="备注")


class LineItemCreate(LineItemBase):
    """新增报价项（不含ID与总价）"""
    pass


class QuoteLineItem(LineItemBase):
    """报价项"""
    id: str = Field(..., description="报价项ID")
    total_price: Decimal = Field(..., description="总价（派生）")
    list_unit_price: Optional[Decimal] = Field(None, description="阶梯折扣前的单价")


class LineItemUpdate(BaseModel):
    """更新报价项请求"""
    type: Optional[str] = None
    product_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None
    markup: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    unit: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None
    supplier_info: Optional[SupplierInfo] = None
    is_optional: Optional[bool] = None
    notes: Optional[str] = None


# ===== 报价单组成部分 =====
class QuoteTotals(BaseModel):
    """报价合计"""
    subtotal: Decimal = Field(default=Decimal("0"), description="小计")
    discount: Decimal = Field(default=Decimal("0"), description="折扣金额")
    discount_type: str = Field(default=DiscountType.PERCENTAGE, description="折扣类型")
    discount_value: Decimal = Field(default=Decimal("0"), description="折扣输入值（百分比或金额）")
    gst: Decimal = Field(default=Decimal("0"), description="GST税额")
    gst_rate: Decimal = Field(default=Decimal("10"), description="GST税率")
    total: Decimal = Field(default=Decimal("0"), description="含税总额")
    total_ex_gst: Decimal = Field(default=Decimal("0"), description="不含税总额")


class ClientInfo(BaseModel):
    """客户信息"""
    id: Optional[str] = Field(None, description="客户ID")
    name: str = Field(default="", description="客户名称")
    contact_person: str = Field(default="", description="联系人")
    email: str = Field(default="", description="邮箱")
    phone: str = Field(default="", description="电话")
    address: str = Field(default="", description="地址")
    abn: Optional[str] = Field(None, description="ABN")
    company: str = Field(default="", description="公司")


class QuoteSettings(BaseModel):
    """报价条款设置"""
    validity_days: int = Field(default=30, ge=1, description="有效期天数")
    terms: str = Field(default="Payment is due within 30 days of invoice date.", description="条款")
    notes: str = Field(default="", description="备注")
    payment_terms: str = Field(default="30 days net", description="付款条款")
    warranty: str = Field(default="12 months parts and labour warranty", description="质保")
    delivery_terms: str = Field(default="Standard delivery 5-10 business days", description="交付条款")


class ProjectData(BaseModel):
    """关联项目数据"""
    project_id: Optional[str] = Field(None, description="项目ID")
    project_name: Optional[str] = Field(None, description="项目名称")
    site_address: Optional[str] = Field(None, description="站点地址")
    site_type: Optional[str] = Field(None, description="站点类型")
    project_objective: Optional[str] = Field(None, description="项目目标")
    estimated_install_date: Optional[str] = Field(None, description="预计安装日期")


class QuoteView(BaseModel):
    """客户查看记录"""
    id: str = Field(..., description="记录ID")
    viewed_at: datetime = Field(..., description="查看时间")
    ip_address: Optional[str] = Field(None, description="IP地址")
    user_agent: Optional[str] = Field(None, description="客户端")
    duration: Optional[int] = Field(None, description="查看时长（秒）")


class QuoteComment(BaseModel):
    """评论"""
    id: str = Field(..., description="评论ID")
    user_id: str = Field(..., description="用户ID")
    user_name: str = Field(default="", description="用户名")
    message: str = Field(..., description="内容")
    timestamp: datetime = Field(..., description="时间")
    is_internal: bool = Field(default=False, description="是否内部备注")


class QuoteAttachment(BaseModel):
    """附件"""
    id: str
    name: str
    url: str
    type: str
    size: int
    uploaded_at: datetime
    uploaded_by: str


class QuoteApproval(BaseModel):
    """审批记录"""
    id: str = Field(..., description="审批ID")
    approver_user_id: str = Field(..., description="审批人ID")
    approver_name: str = Field(default="", description="审批人")
    status: str = Field(default=ApprovalStatus.PENDING, description="审批状态")
    notes: Optional[str] = Field(None, description="审批意见")
    timestamp: datetime = Field(..., description="时间")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ApprovalStatus.ALL:
            raise ValueError(f"审批状态必须是以下之一: {', '.join(ApprovalStatus.ALL)}")
        return v


# ===== 报价单 =====
class Quote(BaseModel):
    """报价单（聚合根）"""
    id: str = Field(..., description="报价单ID")
    quote_number: str = Field(default="", description="报价单编号")
    project_id: Optional[str] = Field(None, description="关联项目ID")
    template_id: Optional[str] = Field(None, description="来源模板ID")
    version: int = Field(default=1, description="版本号")
    status: str = Field(default=QuoteStatus.DRAFT, description="状态")

    client_info: ClientInfo = Field(default_factory=ClientInfo, description="客户信息")

    title: str = Field(default="", description="标题")
    description: str = Field(default="", description="描述")
    line_items: List[QuoteLineItem] = Field(default_factory=list, description="报价项列表")
    totals: QuoteTotals = Field(default_factory=QuoteTotals, description="合计")

    settings: QuoteSettings = Field(default_factory=QuoteSettings, description="条款设置")

    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")
    sent_at: Optional[datetime] = Field(None, description="发送时间")
    valid_until: datetime = Field(..., description="有效期")
    accepted_at: Optional[datetime] = Field(None, description="接受时间")

    created_by: str = Field(default="", description="创建人")
    assigned_to: Optional[str] = Field(None, description="负责人")

    project_data: Optional[ProjectData] = Field(None, description="项目数据")

    client_views: List[QuoteView] = Field(default_factory=list, description="查看记录")
    comments: List[QuoteComment] = Field(default_factory=list, description="评论")
    attachments: List[QuoteAttachment] = Field(default_factory=list, description="附件")

    approvals: List[QuoteApproval] = Field(default_factory=list, description="审批记录")
    requires_approval: bool = Field(default=False, description="是否需要审批")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in QuoteStatus.ALL:
            raise ValueError(f"状态必须是以下之一: {', '.join(QuoteStatus.ALL)}")
        return v

    @field_validator("created_at", "updated_at", "sent_at", "valid_until", "accepted_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return ensure_utc(v) if v is not None else v


class QuoteUpdateRequest(BaseModel):
    """更新报价单基本信息请求"""
    title: Optional[str] = Field(None, max_length=255, description="标题")
    description: Optional[str] = Field(None, description="描述")
    client_info: Optional[ClientInfo] = Field(None, description="客户信息")
    settings: Optional[QuoteSettings] = Field(None, description="条款设置")
    assigned_to: Optional[str] = Field(None, description="负责人")
    requires_approval: Optional[bool] = Field(None, description="是否需要审批")


# ===== 模板 =====
class TemplateCreateRequest(BaseModel):
    """创建模板请求"""
    name: str = Field(..., min_length=1, max_length=255, description="模板名称")
    description: str = Field(default="", description="描述")
    category: str = Field(default="", description="模板类别")
    is_default: bool = Field(default=False, description="是否默认模板")
    line_items: List[LineItemCreate] = Field(default_factory=list, description="报价项")
    settings: QuoteSettings = Field(default_factory=QuoteSettings, description="条款设置")
    created_by: str = Field(default="system", description="创建人")


class QuoteTemplate(TemplateCreateRequest):
    """报价模板"""
    id: str = Field(..., description="模板ID")
    created_at: datetime = Field(..., description="创建时间")
    usage_count: int = Field(default=0, ge=0, description="使用次数")


# ===== 定价策略 =====
class VolumeDiscount(BaseModel):
    """阶梯数量折扣"""
    minimum_quantity: int = Field(..., ge=1, description="最小数量")
    discount_percentage: Decimal = Field(..., ge=0, le=100, description="折扣百分比")
    applicable_categories: List[str] = Field(default_factory=list, description="适用类别")


class MarginSettings(BaseModel):
    """利润率与折扣策略"""
    model_config = ConfigDict(frozen=True)

    default_markup: Decimal = Field(default=Decimal("35"), description="默认加价百分比")
    category_markups: Dict[str, Decimal] = Field(default_factory=dict, description="分类加价百分比")
    minimum_margin: Decimal = Field(default=Decimal("15"), description="最低加价百分比")
    maximum_discount: Decimal = Field(default=Decimal("25"), description="最大折扣百分比")
    volume_discounts: List[VolumeDiscount] = Field(default_factory=list, description="阶梯折扣")


class MarginSettingsUpdate(BaseModel):
    """更新定价策略请求"""
    default_markup: Optional[Decimal] = None
    category_markups: Optional[Dict[str, Decimal]] = None
    minimum_margin: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = None
    volume_discounts: Optional[List[VolumeDiscount]] = None


# ===== 外部输入 =====
class ClientDecision(BaseModel):
    """客户决定"""
    quote_id: str = Field(..., description="报价单ID")
    decision: str = Field(..., description="决定")
    timestamp: datetime = Field(..., description="决定时间")
    signature: Optional[str] = Field(None, description="签名")
    comments: Optional[str] = Field(None, description="意见")
    requested_changes: Optional[List[str]] = Field(None, description="修改要求")

    @field_validator("decision")
    @classmethod
    def validate_decision(cls, v):
        if v not in DecisionType.ALL:
            raise ValueError(f"决定必须是以下之一: {', '.join(DecisionType.ALL)}")
        return v

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)


class ProjectIntegration(BaseModel):
    """外部项目数据"""
    project_id: str = Field(..., description="项目ID")
    project_name: Optional[str] = Field(None, description="项目名称")
    client_requirements: Optional[Dict[str, Any]] = Field(None, description="客户需求")
    site_assessment: Optional[Dict[str, Any]] = Field(None, description="现场勘察")
    charger_selection: Optional[Dict[str, Any]] = Field(None, description="充电桩选型")
    estimated_budget: Optional[str] = Field(None, description="预算")
    raw_project_data: Optional[Dict[str, Any]] = Field(None, description="原始项目数据")


class ProductPricing(BaseModel):
    """产品价格"""
    cost: Decimal = Field(..., description="成本")
    list_price: Decimal = Field(default=Decimal("0"), description="目录价")
    recommended_retail: Decimal = Field(..., description="建议零售价")


class ProductSupplier(BaseModel):
    """产品供应商"""
    id: str
    name: str
    part_number: str = ""
    minimum_order_quantity: int = 1


class ProductInventory(BaseModel):
    """库存"""
    in_stock: int = 0
    reserved: int = 0
    available: int = 0
    lead_time: str = ""


class CatalogProduct(BaseModel):
    """产品目录项"""
    id: str = Field(..., description="产品ID")
    sku: str = Field(default="", description="SKU")
    name: str = Field(..., description="名称")
    description: str = Field(default="", description="描述")
    category: str = Field(..., description="类别")
    subcategory: str = Field(default="", description="子类别")
    brand: str = Field(default="", description="品牌")
    model: str = Field(default="", description="型号")
    specifications: Dict[str, Any] = Field(default_factory=dict, description="规格")
    pricing: ProductPricing = Field(..., description="价格")
    supplier: ProductSupplier = Field(..., description="供应商")
    inventory: ProductInventory = Field(default_factory=ProductInventory, description="库存")
    is_active: bool = Field(default=True, description="是否上架")


# ===== 响应 =====
class QuoteVersionResponse(BaseModel):
    """版本历史响应"""
    model_config = ConfigDict(from_attributes=True)

    version_number: int = Field(..., description="版本号")
    change_type: Optional[str] = Field(None, description="变更类型")
    changes_summary: Optional[str] = Field(None, description="变更摘要")
    created_at: datetime = Field(..., description="创建时间")


class QuoteAnalytics(BaseModel):
    """报价统计"""
    total_quotes: int = Field(..., description="报价单总数")
    total_value: Decimal = Field(..., description="报价总额")
    conversion_rate: Decimal = Field(..., description="成交率（%）")
    average_quote_value: Decimal = Field(..., description="平均报价金额")
    average_response_time: Optional[Decimal] = Field(None, description="平均响应时间（小时）")
    status_breakdown: Dict[str, int] = Field(default_factory=dict, description="状态分布")
