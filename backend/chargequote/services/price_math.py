"""
价格计算
报价项总价与报价单合计，纯函数，无副作用
"""
from decimal import Decimal
from typing import Iterable, Union

from chargequote.core.exceptions import InvalidLineItemException, ValidationException
from chargequote.schemas.quote import DiscountType, QuoteLineItem, QuoteTotals

HUNDRED = Decimal("100")
ZERO = Decimal("0")
DEFAULT_GST_RATE = Decimal("10")

Number = Union[int, float, str, Decimal]


def to_decimal(value: Number) -> Decimal:
    """统一转换为Decimal，浮点数先转字符串避免二进制误差"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def line_item_total(quantity: Number, unit_price: Number, markup: Number) -> Decimal:
    """
    计算报价项总价

    总价 = 数量 × 单价 × (1 + 加价% / 100)
    """
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    markup = to_decimal(markup)

    if quantity < 0:
        raise InvalidLineItemException(f"数量不能为负数: {quantity}", {"quantity": str(quantity)})
    if unit_price < 0:
        raise InvalidLineItemException(f"单价不能为负数: {unit_price}", {"unit_price": str(unit_price)})

    return quantity * unit_price * (1 + markup / HUNDRED)


def calculate_quote_totals(
    line_items: Iterable[QuoteLineItem],
    discount: Number = 0,
    discount_type: str = DiscountType.PERCENTAGE,
    gst_rate: Number = DEFAULT_GST_RATE
) -> QuoteTotals:
    """
    计算报价单合计

    折扣金额不超过小计，保证 不含税总额 = 小计 - 折扣 恒成立
    """
    if discount_type not in DiscountType.ALL:
        raise ValidationException(
            f"折扣类型必须是以下之一: {', '.join(DiscountType.ALL)}",
            {"discount_type": discount_type}
        )

    discount_value = to_decimal(discount)
    if discount_value < 0:
        raise ValidationException(f"折扣不能为负数: {discount_value}", {"discount": str(discount_value)})

    gst_rate = to_decimal(gst_rate)

    subtotal = sum((item.total_price for item in line_items), ZERO)

    if discount_type == DiscountType.PERCENTAGE:
        discount_amount = subtotal * discount_value / HUNDRED
    else:
        discount_amount = discount_value
    discount_amount = min(discount_amount, subtotal)

    total_ex_gst = max(subtotal - discount_amount, ZERO)
    gst = total_ex_gst * gst_rate / HUNDRED
    total = total_ex_gst + gst

    return QuoteTotals(
        subtotal=subtotal,
        discount=discount_amount,
        discount_type=discount_type,
        discount_value=discount_value,
        gst=gst,
        gst_rate=gst_rate,
        total=total,
        total_ex_gst=total_ex_gst
    )


def recalculate_totals(line_items: Iterable[QuoteLineItem], previous: QuoteTotals) -> QuoteTotals:
    """按原有折扣输入与税率重新计算合计"""
    return calculate_quote_totals(
        line_items,
        discount=previous.discount_value,
        discount_type=previous.discount_type,
        gst_rate=previous.gst_rate
    )
