"""
项目数据集成
将外部项目记录映射为客户信息、项目信息，并根据充电桩选型自动生成报价项

外部系统的字段命名不统一（camelCase / snake_case 混用），
每个目标字段对应一组按优先级排列的取值路径，第一个非空值生效。
"""
import math
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from chargequote.schemas.quote import (
    ClientInfo, LineItemCreate, LineItemType, LineItemUnit, MarginSettings, ProjectData,
    ProjectIntegration, Quote
)
from chargequote.services.line_items import add_line_item, ensure_editable
from chargequote.services.margin_policy import markup_for_category
from chargequote.services.quote_factory import touch

Extractor = Callable[[ProjectIntegration], Any]


def _lookup(section: str, key: str) -> Extractor:
    """从项目数据的某个部分读取字段"""
    def extract(project: ProjectIntegration) -> Any:
        if section == "project":
            return getattr(project, key, None)
        data = getattr(project, section, None) or {}
        return data.get(key)
    extract.__name__ = f"{section}.{key}"
    return extract


def requirements(key: str) -> Extractor:
    return _lookup("client_requirements", key)


def site(key: str) -> Extractor:
    return _lookup("site_assessment", key)


def raw(key: str) -> Extractor:
    return _lookup("raw_project_data", key)


def project(key: str) -> Extractor:
    return _lookup("project", key)


def first_available(project_data: ProjectIntegration, extractors: Sequence[Extractor], default: Any = "") -> Any:
    """按顺序取第一个非空值，统一转为字符串"""
    for extractor in extractors:
        value = extractor(project_data)
        if value:
            return value if isinstance(value, str) else str(value)
    return default


# ===== 字段映射（顺序即优先级）=====
CLIENT_INFO_FIELDS: Dict[str, List[Extractor]] = {
    "name": [requirements("contactPersonName"), raw("client_name"), raw("client")],
    "contact_person": [requirements("contactPersonName"), raw("contactPerson"), raw("contact_person_name")],
    "email": [requirements("contactEmail"), raw("contact_email"), raw("email")],
    "phone": [requirements("contactPhone"), raw("contact_phone"), raw("phone")],
    "address": [site("siteAddress"), raw("site_address"), raw("siteAddress"), raw("location")],
    "company": [raw("client_name"), requirements("organizationType"), raw("organization_type"), raw("company")],
    "abn": [raw("abn")],
}

TITLE_FIELDS: List[Extractor] = [project("project_name"), raw("name"), raw("project_name")]

DESCRIPTION_FIELDS: List[Extractor] = [
    raw("notes"), raw("description"), site("additionalNotes"), requirements("specialRequirements"),
]

PROJECT_DATA_FIELDS: Dict[str, List[Extractor]] = {
    "site_address": [site("siteAddress"), raw("site_address"), raw("location")],
    "site_type": [site("siteType"), raw("site_type")],
    "project_objective": [requirements("projectObjective"), raw("project_objective")],
}


# ===== 自动生成报价项的价格规则 =====
DEFAULT_CHARGER_PRICE = Decimal("8000")

# (规则名, 条件, 单价)，按顺序匹配
CHARGER_PRICE_RULES: List[Tuple[str, Callable[[Dict[str, Any]], bool], Decimal]] = [
    ("dc-fast", lambda selection: selection.get("chargingType") == "dc-fast", Decimal("45000")),
    ("22kw", lambda selection: selection.get("powerRating") == "22kw", Decimal("12000")),
]

CHARGER_COST_RATIO = Decimal("0.7")
INSTALLATION_UNIT_PRICE = Decimal("2500")
INSTALLATION_COST = Decimal("1500")
CANOPY_UNIT_PRICE = Decimal("3500")
CANOPY_COST = Decimal("2200")
CHARGERS_PER_CANOPY = 2


def charger_unit_price(selection: Dict[str, Any]) -> Decimal:
    """按规则表选择充电桩单价"""
    for _, condition, price in CHARGER_PRICE_RULES:
        if condition(selection):
            return price
    return DEFAULT_CHARGER_PRICE


def parse_charger_quantity(value: Any) -> int:
    """解析充电桩数量，取字符串开头的整数，无法解析或非正数时为1"""
    match = re.match(r"\s*([+-]?\d+)", str(value))
    if not match:
        return 1
    quantity = int(match.group(1))
    return quantity if quantity > 0 else 1


def build_client_info(project_data: ProjectIntegration) -> ClientInfo:
    """构建客户信息"""
    values = {
        field: first_available(project_data, extractors)
        for field, extractors in CLIENT_INFO_FIELDS.items()
    }
    return ClientInfo(id=project_data.project_id, **values)


def build_project_data(project_data: ProjectIntegration) -> ProjectData:
    """构建项目数据"""
    values = {
        field: first_available(project_data, extractors, default=None)
        for field, extractors in PROJECT_DATA_FIELDS.items()
    }
    return ProjectData(
        project_id=project_data.project_id,
        project_name=project_data.project_name,
        **values
    )


def generate_line_items(selection: Dict[str, Any], policy: MarginSettings) -> List[LineItemCreate]:
    """根据充电桩选型生成报价项：充电桩、安装，以及可选的防雨棚"""
    if not (selection.get("chargingType") and selection.get("powerRating") and selection.get("numberOfChargers")):
        return []

    quantity = parse_charger_quantity(selection["numberOfChargers"])
    power_rating = selection["powerRating"]
    charging_type = selection["chargingType"]
    unit_price = charger_unit_price(selection)
    connectors = ", ".join(selection.get("connectorTypes") or []) or "standard"

    items = [
        LineItemCreate(
            type=LineItemType.CHARGER,
            name=f"{power_rating} {charging_type.replace('-', ' ', 1).upper()} Charger",
            description=f"{power_rating} charging station with {connectors} connectors",
            category="chargers",
            quantity=quantity,
            unit_price=unit_price,
            cost=unit_price * CHARGER_COST_RATIO,
            markup=markup_for_category(policy, "chargers"),
            unit=LineItemUnit.EACH,
            specifications={
                "powerRating": power_rating,
                "chargingType": charging_type,
                "mountingType": selection.get("mountingType"),
                "connectorTypes": selection.get("connectorTypes"),
                "weatherProtection": selection.get("weatherProtection"),
                "networkConnectivity": selection.get("networkConnectivity"),
            },
        ),
        LineItemCreate(
            type=LineItemType.INSTALLATION,
            name="Professional Installation",
            description="Complete installation including electrical work, mounting, and commissioning",
            category="installation",
            quantity=quantity,
            unit_price=INSTALLATION_UNIT_PRICE,
            cost=INSTALLATION_COST,
            markup=markup_for_category(policy, "installation"),
            unit=LineItemUnit.EACH,
        ),
    ]

    if selection.get("weatherProtection"):
        items.append(LineItemCreate(
            type=LineItemType.ACCESSORY,
            name="Weather Protection Canopy",
            description="Protective canopy for outdoor installation",
            category="accessories",
            quantity=math.ceil(quantity / CHARGERS_PER_CANOPY),
            unit_price=CANOPY_UNIT_PRICE,
            cost=CANOPY_COST,
            markup=markup_for_category(policy, "accessories"),
            unit=LineItemUnit.EACH,
        ))

    return items


def integrate_project_data(
    quote: Quote,
    project_data: ProjectIntegration,
    policy: MarginSettings,
    enforce_margin: bool = False,
    now: Optional[datetime] = None
) -> Quote:
    """将项目数据集成到报价单"""
    ensure_editable(quote)
    updated = quote.model_copy(deep=True)

    if project_data.client_requirements or project_data.raw_project_data:
        updated.client_info = build_client_info(project_data)

    updated.title = first_available(project_data, TITLE_FIELDS, default=updated.title)
    updated.description = first_available(project_data, DESCRIPTION_FIELDS, default=updated.description)
    updated.project_data = build_project_data(project_data)
    updated.project_id = project_data.project_id
    updated = touch(updated, now)

    # 逐项追加，每次追加后重新计算合计
    if project_data.charger_selection:
        generated = generate_line_items(project_data.charger_selection, policy)
        for item in generated:
            updated = add_line_item(updated, item, policy if enforce_margin else None, now)
        logger.info(f"项目 {project_data.project_id} 自动生成 {len(generated)} 个报价项")

    return updated
