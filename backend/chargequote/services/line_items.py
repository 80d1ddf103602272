"""
报价项管理
新增、更新、删除报价项，每次变更后重新计算合计
"""
from datetime import datetime
from typing import Optional, Union

from chargequote.core.exceptions import (
    InvalidLineItemException, NotFoundException, QuoteNotEditableException
)
from chargequote.schemas.quote import (
    CatalogProduct, LineItemBase, LineItemCreate, LineItemType, LineItemUnit, LineItemUpdate,
    MarginSettings, Quote, QuoteLineItem, QuoteStatus, SupplierInfo
)
from chargequote.services.margin_policy import (
    check_discount_limit, check_line_item_margin, markup_for_category
)
from chargequote.services.price_math import (
    calculate_quote_totals, line_item_total, recalculate_totals, to_decimal
)
from chargequote.services.quote_factory import new_id, touch

# 影响总价的字段
PRICE_FIELDS = {"quantity", "unit_price", "markup"}

# 产品类别到报价项类型的映射
CATEGORY_TO_TYPE = {
    "chargers": LineItemType.CHARGER,
    "accessories": LineItemType.ACCESSORY,
    "installation": LineItemType.INSTALLATION,
    "service": LineItemType.SERVICE,
}


def ensure_editable(quote: Quote) -> None:
    """只有草稿状态的报价单可以修改"""
    if quote.status != QuoteStatus.DRAFT:
        raise QuoteNotEditableException(quote.id, quote.status)


def validate_line_item(item: LineItemBase) -> None:
    """校验报价项字段"""
    if item.quantity <= 0:
        raise InvalidLineItemException(f"数量必须大于0: {item.quantity}", {"quantity": item.quantity})
    if item.unit_price < 0:
        raise InvalidLineItemException(f"单价不能为负数: {item.unit_price}", {"unit_price": str(item.unit_price)})
    if item.cost < 0:
        raise InvalidLineItemException(f"成本不能为负数: {item.cost}", {"cost": str(item.cost)})
    if item.type not in LineItemType.ALL:
        raise InvalidLineItemException(
            f"报价项类型必须是以下之一: {', '.join(LineItemType.ALL)}", {"type": item.type}
        )
    if item.unit not in LineItemUnit.ALL:
        raise InvalidLineItemException(
            f"计量单位必须是以下之一: {', '.join(LineItemUnit.ALL)}", {"unit": item.unit}
        )
    if not item.name:
        raise InvalidLineItemException("报价项名称不能为空")


def build_line_item(item: LineItemBase, policy: Optional[MarginSettings] = None) -> QuoteLineItem:
    """分配ID并计算总价"""
    validate_line_item(item)
    if policy is not None:
        check_line_item_margin(item, policy)

    data = item.model_dump(exclude={"id", "total_price"})
    return QuoteLineItem(
        **data,
        id=new_id("line"),
        total_price=line_item_total(item.quantity, item.unit_price, item.markup)
    )


def add_line_item(
    quote: Quote,
    item: Union[LineItemCreate, dict],
    policy: Optional[MarginSettings] = None,
    now: Optional[datetime] = None
) -> Quote:
    """添加报价项，保留原有折扣重新计算合计"""
    ensure_editable(quote)
    if isinstance(item, dict):
        item = LineItemCreate(**item)

    new_item = build_line_item(item, policy)

    updated = quote.model_copy(deep=True)
    updated.line_items.append(new_item)
    updated.totals = recalculate_totals(updated.line_items, updated.totals)
    return touch(updated, now)


def update_line_item(
    quote: Quote,
    line_item_id: str,
    patch: Union[LineItemUpdate, dict],
    policy: Optional[MarginSettings] = None,
    now: Optional[datetime] = None
) -> Quote:
    """更新报价项；数量、单价或加价变化时重新计算总价"""
    ensure_editable(quote)
    if isinstance(patch, dict):
        patch = LineItemUpdate(**patch)

    index = next(
        (i for i, item in enumerate(quote.line_items) if item.id == line_item_id),
        None
    )
    if index is None:
        raise NotFoundException("报价项", line_item_id)

    update_data = patch.model_dump(exclude_unset=True, exclude_none=True)
    updated = quote.model_copy(deep=True)
    merged = QuoteLineItem.model_validate({**updated.line_items[index].model_dump(), **update_data})

    validate_line_item(merged)
    if policy is not None and "markup" in update_data:
        check_line_item_margin(merged, policy)

    # 手动改价后不再保留阶梯折扣前的单价
    if "unit_price" in update_data:
        merged.list_unit_price = None

    if PRICE_FIELDS & set(update_data.keys()):
        merged.total_price = line_item_total(merged.quantity, merged.unit_price, merged.markup)

    updated.line_items[index] = merged
    updated.totals = recalculate_totals(updated.line_items, updated.totals)
    return touch(updated, now)


def remove_line_item(
    quote: Quote,
    line_item_id: str,
    missing_ok: bool = False,
    now: Optional[datetime] = None
) -> Quote:
    """删除报价项；未找到时抛出 NotFoundException，除非 missing_ok"""
    ensure_editable(quote)
    if not any(item.id == line_item_id for item in quote.line_items):
        if missing_ok:
            return quote
        raise NotFoundException("报价项", line_item_id)

    updated = quote.model_copy(deep=True)
    updated.line_items = [item for item in updated.line_items if item.id != line_item_id]
    updated.totals = recalculate_totals(updated.line_items, updated.totals)
    return touch(updated, now)


def set_discount(
    quote: Quote,
    discount,
    discount_type: str,
    policy: Optional[MarginSettings] = None,
    now: Optional[datetime] = None
) -> Quote:
    """设置报价单整体折扣"""
    ensure_editable(quote)
    totals = calculate_quote_totals(quote.line_items, discount, discount_type, quote.totals.gst_rate)
    if policy is not None:
        check_discount_limit(to_decimal(discount), discount_type, totals.subtotal, policy)

    updated = quote.model_copy(deep=True)
    updated.totals = totals
    return touch(updated, now)


def line_item_from_product(
    product: CatalogProduct,
    quantity: int,
    policy: MarginSettings
) -> LineItemCreate:
    """根据产品目录项构建报价项"""
    return LineItemCreate(
        type=CATEGORY_TO_TYPE.get(product.category, LineItemType.CUSTOM),
        product_id=product.id,
        name=product.name,
        description=product.description,
        category=product.category,
        quantity=quantity,
        unit_price=product.pricing.recommended_retail,
        cost=product.pricing.cost,
        markup=markup_for_category(policy, product.category),
        unit=LineItemUnit.EACH,
        specifications=dict(product.specifications),
        supplier_info=SupplierInfo(
            supplier_id=product.supplier.id,
            supplier_name=product.supplier.name,
            part_number=product.supplier.part_number,
            lead_time=product.inventory.lead_time,
        ),
    )


def add_product_to_quote(
    quote: Quote,
    product: CatalogProduct,
    policy: MarginSettings,
    quantity: int = 1,
    enforce_margin: bool = False,
    now: Optional[datetime] = None
) -> Quote:
    """从产品目录添加报价项"""
    item = line_item_from_product(product, quantity, policy)
    return add_line_item(quote, item, policy if enforce_margin else None, now)
