"""
外部数据源
项目记录与产品目录的读取接口，以及基于内存的实现
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol

from loguru import logger

from chargequote.schemas.quote import (
    CatalogProduct, ProductInventory, ProductPricing, ProductSupplier, ProjectIntegration
)


class ProjectSource(Protocol):
    """项目数据来源"""

    async def get_project_data(self, project_id: str) -> Optional[ProjectIntegration]:
        """按ID读取项目，未找到时返回 None"""


class ProductCatalog(Protocol):
    """产品目录"""

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        """按ID读取产品，未找到时返回 None"""

    async def list_products(self, category: Optional[str] = None) -> List[CatalogProduct]:
        """列出上架产品，可按类别过滤"""


def project_from_record(record: Dict[str, Any]) -> ProjectIntegration:
    """正式项目记录 -> 项目数据"""
    project_info = record.get("projectInfo") or {}
    return ProjectIntegration(
        project_id=record["id"],
        project_name=record.get("name") or project_info.get("name"),
        client_requirements=record.get("clientRequirements"),
        site_assessment=record.get("siteAssessment"),
        charger_selection=record.get("chargerSelection"),
        estimated_budget=record.get("estimatedBudget"),
        raw_project_data=record,
    )


def project_from_draft(draft: Dict[str, Any]) -> ProjectIntegration:
    """项目草稿 -> 项目数据"""
    site_assessment = draft.get("siteAssessment") or {}
    return ProjectIntegration(
        project_id=draft["id"],
        project_name=site_assessment.get("projectName") or draft.get("draftName"),
        client_requirements=draft.get("clientRequirements"),
        site_assessment=draft.get("siteAssessment"),
        charger_selection=draft.get("chargerSelection"),
        estimated_budget=draft.get("estimatedBudget"),
        raw_project_data=draft,
    )


class InMemoryProjectSource(ProjectSource):
    """内存项目来源：先查正式项目，再查草稿"""

    def __init__(
        self,
        projects: Iterable[Dict[str, Any]] = (),
        drafts: Iterable[Dict[str, Any]] = ()
    ):
        self.projects = {p["id"]: p for p in projects}
        self.drafts = {d["id"]: d for d in drafts}

    async def get_project_data(self, project_id: str) -> Optional[ProjectIntegration]:
        if project_id in self.projects:
            return project_from_record(self.projects[project_id])
        if project_id in self.drafts:
            return project_from_draft(self.drafts[project_id])
        logger.warning(f"未找到项目: {project_id}")
        return None


SAMPLE_CATALOG_ITEMS: List[CatalogProduct] = [
    CatalogProduct(
        id="prod-1",
        sku="CHG-AC-7KW",
        name="7kW AC Charging Station",
        description="Single-phase AC charging station suitable for residential and light commercial use",
        category="chargers",
        subcategory="ac-chargers",
        brand="ChargePoint",
        model="Home Flex",
        specifications={
            "powerRating": "7kW",
            "inputVoltage": "240V",
            "outputVoltage": "240V",
            "connectorType": "Type 2",
            "dimensions": "330 x 193 x 107 mm",
            "weight": "4.2kg",
            "protection": "IP54",
        },
        pricing=ProductPricing(cost=Decimal("1200"), list_price=Decimal("1800"), recommended_retail=Decimal("2400")),
        supplier=ProductSupplier(id="sup-1", name="ChargePoint", part_number="CPH25-L2-P-NA"),
        inventory=ProductInventory(in_stock=25, reserved=5, available=20, lead_time="3-5 business days"),
    ),
    CatalogProduct(
        id="prod-2",
        sku="CHG-DC-50KW",
        name="50kW DC Fast Charging Station",
        description="Commercial DC fast charging station with dual connector support",
        category="chargers",
        subcategory="dc-chargers",
        brand="ABB",
        model="Terra 54",
        specifications={
            "powerRating": "50kW",
            "inputVoltage": "400V AC 3-phase",
            "outputVoltage": "150-920V DC",
            "connectorTypes": ["CCS2", "CHAdeMO"],
            "dimensions": "700 x 500 x 1700 mm",
            "weight": "380kg",
            "protection": "IP54",
        },
        pricing=ProductPricing(cost=Decimal("35000"), list_price=Decimal("50000"), recommended_retail=Decimal("65000")),
        supplier=ProductSupplier(id="sup-2", name="ABB", part_number="TERRA54CJ"),
        inventory=ProductInventory(in_stock=8, reserved=2, available=6, lead_time="2-3 weeks"),
    ),
]


class InMemoryProductCatalog(ProductCatalog):
    """内存产品目录，默认载入示例产品"""

    def __init__(self, products: Optional[Iterable[CatalogProduct]] = None):
        items = SAMPLE_CATALOG_ITEMS if products is None else products
        self.products = {p.id: p for p in items}

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        product = self.products.get(product_id)
        if product is None or not product.is_active:
            return None
        return product

    async def list_products(self, category: Optional[str] = None) -> List[CatalogProduct]:
        return [
            p for p in self.products.values()
            if p.is_active and (category is None or p.category == category)
        ]
