"""
定价策略
默认利润率、分类加价、折扣上限校验
"""
from decimal import Decimal
from typing import Union

from loguru import logger

from chargequote.core.exceptions import ValidationException
from chargequote.schemas.quote import (
    DiscountType, LineItemBase, MarginSettings, MarginSettingsUpdate, VolumeDiscount
)
from chargequote.services.price_math import HUNDRED, ZERO, Number, to_decimal


DEFAULT_MARGIN_SETTINGS = MarginSettings(
    default_markup=Decimal("35"),
    category_markups={
        "chargers": Decimal("30"),
        "accessories": Decimal("40"),
        "installation": Decimal("50"),
        "service": Decimal("60"),
        "custom": Decimal("35"),
    },
    minimum_margin=Decimal("15"),
    maximum_discount=Decimal("25"),
    volume_discounts=[
        VolumeDiscount(minimum_quantity=5, discount_percentage=Decimal("5"), applicable_categories=["chargers"]),
        VolumeDiscount(minimum_quantity=10, discount_percentage=Decimal("10"), applicable_categories=["chargers"]),
        VolumeDiscount(minimum_quantity=20, discount_percentage=Decimal("15"), applicable_categories=["chargers"]),
    ],
)


def markup_for_category(policy: MarginSettings, category: str) -> Decimal:
    """获取分类加价，未配置（或为0）时使用默认加价"""
    return policy.category_markups.get(category) or policy.default_markup


def check_line_item_margin(item: Union[LineItemBase, dict], policy: MarginSettings) -> None:
    """校验报价项加价不低于最低利润率"""
    markup = item["markup"] if isinstance(item, dict) else item.markup
    markup = to_decimal(markup)
    if markup < policy.minimum_margin:
        raise ValidationException(
            f"加价 {markup}% 低于最低利润率 {policy.minimum_margin}%",
            {"markup": str(markup), "minimum_margin": str(policy.minimum_margin)}
        )


def check_discount_limit(
    discount: Number,
    discount_type: str,
    subtotal: Decimal,
    policy: MarginSettings
) -> None:
    """校验折扣不超过最大折扣；固定金额折扣按占小计的百分比计算"""
    discount = to_decimal(discount)
    if discount_type == DiscountType.FIXED:
        if subtotal <= ZERO:
            return
        percentage = discount / subtotal * HUNDRED
    else:
        percentage = discount

    if percentage > policy.maximum_discount:
        raise ValidationException(
            f"折扣 {percentage:.2f}% 超过最大折扣 {policy.maximum_discount}%",
            {"discount": str(discount), "discount_type": discount_type,
             "maximum_discount": str(policy.maximum_discount)}
        )


def _check_percentage(name: str, value: Decimal) -> None:
    if value < 0 or value > HUNDRED * 10:
        raise ValidationException(f"{name} 超出允许范围: {value}", {name: str(value)})


def update_margin_settings(current: MarginSettings, patch: MarginSettingsUpdate) -> MarginSettings:
    """应用定价策略更新，返回新的策略对象"""
    update_data = patch.model_dump(exclude_unset=True, exclude_none=True)

    if "volume_discounts" in update_data:
        update_data["volume_discounts"] = patch.volume_discounts

    for key in ("default_markup", "minimum_margin"):
        if key in update_data:
            _check_percentage(key, update_data[key])
    for category, markup in update_data.get("category_markups", {}).items():
        _check_percentage(f"category_markups.{category}", markup)

    if "maximum_discount" in update_data:
        maximum_discount = update_data["maximum_discount"]
        if maximum_discount < 0 or maximum_discount > HUNDRED:
            raise ValidationException(
                f"最大折扣必须在0到100之间: {maximum_discount}",
                {"maximum_discount": str(maximum_discount)}
            )

    updated = current.model_copy(update=update_data)
    logger.info(f"定价策略已更新: {sorted(update_data.keys())}")
    return updated
