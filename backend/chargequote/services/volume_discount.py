"""
阶梯数量折扣
按类别汇总数量，命中阈值后下调单价
"""
from collections import defaultdict
from typing import Dict, List, Optional

from chargequote.schemas.quote import MarginSettings, QuoteLineItem, VolumeDiscount
from chargequote.services.price_math import HUNDRED, line_item_total


def category_quantities(line_items: List[QuoteLineItem]) -> Dict[str, int]:
    """按类别汇总数量"""
    totals: Dict[str, int] = defaultdict(int)
    for item in line_items:
        totals[item.category] += item.quantity
    return dict(totals)


def best_volume_discount(
    category: str,
    quantity: int,
    volume_discounts: List[VolumeDiscount]
) -> Optional[VolumeDiscount]:
    """
    选出适用的最高折扣档位

    折扣百分比相同时取策略中靠前的档位（max 返回首个最大值）
    """
    candidates = [
        tier for tier in volume_discounts
        if category in tier.applicable_categories and quantity >= tier.minimum_quantity
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda tier: tier.discount_percentage)


def apply_volume_discounts(
    line_items: List[QuoteLineItem],
    policy: MarginSettings
) -> List[QuoteLineItem]:
    """
    应用阶梯折扣，返回新的报价项列表，加价保持不变

    折扣始终基于 list_unit_price（首次折扣前的单价）计算，重复应用结果不变；
    不再满足阈值的报价项恢复原单价
    """
    quantities = category_quantities(line_items)

    result = []
    for item in line_items:
        base_price = item.unit_price if item.list_unit_price is None else item.list_unit_price
        tier = best_volume_discount(item.category, quantities[item.category], policy.volume_discounts)
        if tier is None:
            if item.list_unit_price is None:
                result.append(item)
            else:
                result.append(item.model_copy(update={
                    "unit_price": base_price,
                    "list_unit_price": None,
                    "total_price": line_item_total(item.quantity, base_price, item.markup),
                }))
            continue

        discounted_price = base_price * (1 - tier.discount_percentage / HUNDRED)
        result.append(item.model_copy(update={
            "unit_price": discounted_price,
            "list_unit_price": base_price,
            "total_price": line_item_total(item.quantity, discounted_price, item.markup),
        }))
    return result
