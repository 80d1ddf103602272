"""
报价模板
模板实例化与默认模板
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from loguru import logger

from chargequote.core.clock import utc_now
from chargequote.schemas.quote import (
    DiscountType, LineItemCreate, LineItemType, Quote, QuoteSettings, QuoteTemplate,
    TemplateCreateRequest
)
from chargequote.services.line_items import build_line_item, ensure_editable
from chargequote.services.price_math import calculate_quote_totals
from chargequote.services.quote_factory import new_id, touch


def new_template(data: TemplateCreateRequest, now: Optional[datetime] = None) -> QuoteTemplate:
    """创建模板对象，使用次数从0开始"""
    return QuoteTemplate(
        **data.model_dump(),
        id=new_id("template"),
        created_at=now or utc_now(),
        usage_count=0
    )


def apply_template(quote: Quote, template: QuoteTemplate, now: Optional[datetime] = None) -> Quote:
    """
    将模板应用到报价单

    报价项与条款整体覆盖，折扣归零；
    模板使用次数在传入的模板对象上加1，每次调用都计数
    """
    ensure_editable(quote)

    line_items = [build_line_item(item) for item in template.line_items]

    updated = quote.model_copy(deep=True)
    updated.line_items = line_items
    updated.settings = template.settings.model_copy(deep=True)
    updated.template_id = template.id
    updated.totals = calculate_quote_totals(
        line_items, 0, DiscountType.PERCENTAGE, quote.totals.gst_rate
    )

    template.usage_count += 1
    logger.info(f"应用模板 {template.name} ({template.id})，当前使用次数 {template.usage_count}")
    return touch(updated, now)


DEFAULT_TEMPLATES: List[TemplateCreateRequest] = [
    TemplateCreateRequest(
        name="Residential AC Charging Package",
        description="Standard package for residential single or dual AC charger installation",
        category="residential",
        is_default=True,
        line_items=[
            LineItemCreate(
                type=LineItemType.CHARGER,
                name="7kW AC Charging Station",
                description="Wall-mounted AC charging station with Type 2 connector",
                category="chargers",
                quantity=1,
                unit_price=Decimal("2400"),
                cost=Decimal("1680"),
                markup=Decimal("30"),
            ),
            LineItemCreate(
                type=LineItemType.INSTALLATION,
                name="Standard Installation",
                description="Professional installation including electrical work and commissioning",
                category="installation",
                quantity=1,
                unit_price=Decimal("1500"),
                cost=Decimal("900"),
                markup=Decimal("50"),
            ),
            LineItemCreate(
                type=LineItemType.SERVICE,
                name="Annual Maintenance",
                description="12-month maintenance and support package",
                category="service",
                quantity=1,
                unit_price=Decimal("300"),
                cost=Decimal("120"),
                markup=Decimal("60"),
                is_optional=True,
            ),
        ],
        settings=QuoteSettings(
            validity_days=30,
            terms="Payment is due within 30 days of invoice date.",
            notes="Installation includes all necessary electrical work and permits.",
            payment_terms="30 days net",
            warranty="24 months parts and labour warranty",
            delivery_terms="Standard delivery 5-10 business days",
        ),
        created_by="system",
    ),
    TemplateCreateRequest(
        name="Commercial DC Fast Charging Hub",
        description="Complete commercial DC fast charging solution with multiple units",
        category="commercial",
        is_default=True,
        line_items=[
            LineItemCreate(
                type=LineItemType.CHARGER,
                name="50kW DC Fast Charging Station",
                description="Commercial DC fast charger with CCS2 and CHAdeMO connectors",
                category="chargers",
                quantity=4,
                unit_price=Decimal("65000"),
                cost=Decimal("45500"),
                markup=Decimal("25"),
            ),
            LineItemCreate(
                type=LineItemType.INSTALLATION,
                name="Commercial Installation Package",
                description="Complete installation including site preparation, electrical work, and commissioning",
                category="installation",
                quantity=1,
                unit_price=Decimal("45000"),
                cost=Decimal("27000"),
                markup=Decimal("40"),
            ),
            LineItemCreate(
                type=LineItemType.ACCESSORY,
                name="Weather Protection Canopy",
                description="Protective canopy structure for outdoor installation",
                category="accessories",
                quantity=2,
                unit_price=Decimal("8500"),
                cost=Decimal("5950"),
                markup=Decimal("35"),
            ),
            LineItemCreate(
                type=LineItemType.SERVICE,
                name="Premium Maintenance Package",
                description="24/7 monitoring and maintenance for 24 months",
                category="service",
                quantity=1,
                unit_price=Decimal("12000"),
                cost=Decimal("4800"),
                markup=Decimal("60"),
            ),
        ],
        settings=QuoteSettings(
            validity_days=60,
            terms="Payment terms: 30% deposit, 40% on delivery, 30% on completion.",
            notes="Project includes all necessary permits, grid connection coordination, and compliance certifications.",
            payment_terms="Staged payments as per contract",
            warranty="36 months comprehensive warranty with 24/7 support",
            delivery_terms="8-12 weeks from order confirmation",
        ),
        created_by="system",
    ),
]
