"""
项目数据集成测试
"""
from decimal import Decimal

import pytest

from chargequote.schemas.quote import LineItemType, ProjectIntegration
from chargequote.services.integrations import InMemoryProjectSource
from chargequote.services.project_integration import (
    charger_unit_price, generate_line_items, integrate_project_data, parse_charger_quantity
)


class TestChargerRules:
    """充电桩价格规则测试"""

    @pytest.mark.parametrize("selection,expected", [
        ({"chargingType": "dc-fast", "powerRating": "50kw"}, Decimal("45000")),
        ({"chargingType": "dc-fast", "powerRating": "22kw"}, Decimal("45000")),
        ({"chargingType": "ac-level2", "powerRating": "22kw"}, Decimal("12000")),
        ({"chargingType": "ac-level2", "powerRating": "7kw"}, Decimal("8000")),
    ])
    def test_unit_price(self, selection, expected):
        assert charger_unit_price(selection) == expected

    @pytest.mark.parametrize("value,expected", [
        ("4", 4), ("3 units", 3), (6, 6), ("many", 1), ("0", 1), ("-2", 1), ("", 1),
    ])
    def test_parse_quantity(self, value, expected):
        """测试数量解析，无法解析时为1"""
        assert parse_charger_quantity(value) == expected


class TestGenerateLineItems:
    """自动生成报价项测试"""

    def test_dc_fast_without_canopy(self, policy):
        """测试直流快充4台：充电桩45000 + 安装2500，无防雨棚"""
        items = generate_line_items(
            {"chargingType": "dc-fast", "powerRating": "50kw", "numberOfChargers": "4"}, policy
        )

        assert len(items) == 2
        charger, installation = items
        assert charger.type == LineItemType.CHARGER
        assert charger.unit_price == Decimal("45000")
        assert charger.quantity == 4
        assert charger.cost == Decimal("31500")
        assert charger.markup == Decimal("30")
        assert installation.type == LineItemType.INSTALLATION
        assert installation.unit_price == Decimal("2500")
        assert installation.quantity == 4
        assert installation.markup == Decimal("50")
        assert not any(item.type == LineItemType.ACCESSORY for item in items)

    def test_canopy_with_weather_protection(self, policy):
        """测试防雨棚数量为 ceil(数量/2)"""
        items = generate_line_items({
            "chargingType": "ac-level2", "powerRating": "22kw",
            "numberOfChargers": "3", "weatherProtection": True,
        }, policy)

        canopy = items[2]
        assert canopy.type == LineItemType.ACCESSORY
        assert canopy.quantity == 2
        assert canopy.unit_price == Decimal("3500")
        assert canopy.markup == Decimal("40")

    def test_incomplete_selection(self, policy):
        assert generate_line_items({"chargingType": "dc-fast"}, policy) == []


class TestIntegrateProjectData:
    """项目数据集成测试"""

    @pytest.mark.asyncio
    async def test_integrate_project_record(self, draft_quote, sample_projects, policy):
        """测试正式项目字段映射"""
        project = await sample_projects.get_project_data("proj-1")
        quote = integrate_project_data(draft_quote, project, policy)

        assert quote.project_id == "proj-1"
        assert quote.title == "Depot Charging Upgrade"
        assert quote.description == "Night-time install only"
        assert quote.client_info.id == "proj-1"
        assert quote.client_info.name == "Jane Citizen"
        assert quote.client_info.company == "Acme Fleet"
        assert quote.client_info.email == "jane@acme.test"
        assert quote.client_info.address == "1 Depot Rd, Sydney NSW"
        assert quote.project_data.site_type == "depot"
        assert quote.project_data.project_objective == "Electrify delivery vans"
        assert len(quote.line_items) == 2
        assert quote.totals.subtotal == Decimal("4") * Decimal("45000") * Decimal("1.3") + Decimal("4") * Decimal("2500") * Decimal("1.5")

    @pytest.mark.asyncio
    async def test_integrate_draft(self, draft_quote, sample_projects, policy):
        """测试项目草稿：名称取现场勘察中的项目名"""
        project = await sample_projects.get_project_data("draft-1")
        quote = integrate_project_data(draft_quote, project, policy)

        assert project.project_name == "Retail Carpark"
        assert quote.project_data.project_name == "Retail Carpark"
        assert quote.client_info.address == "9 Mall St"
        assert [item.quantity for item in quote.line_items] == [3, 3, 2]

    @pytest.mark.asyncio
    async def test_unknown_project(self, sample_projects):
        assert await sample_projects.get_project_data("nope") is None

    @pytest.mark.asyncio
    async def test_project_name_fallbacks(self):
        """测试项目名回退：projectInfo.name 与 draftName"""
        source = InMemoryProjectSource(
            projects=[{"id": "p", "projectInfo": {"name": "Fallback"}}],
            drafts=[{"id": "d", "draftName": "Draft Name"}],
        )

        assert (await source.get_project_data("p")).project_name == "Fallback"
        assert (await source.get_project_data("d")).project_name == "Draft Name"

    def test_client_info_kept_without_requirements(self, draft_quote, policy):
        """测试没有客户需求与原始数据时保留原客户信息"""
        project = ProjectIntegration(project_id="p-2", project_name="Bare")
        quote = integrate_project_data(draft_quote, project, policy)

        assert quote.client_info == draft_quote.client_info
        assert quote.title == "Bare"

    def test_field_priority(self, draft_quote, policy):
        """测试取第一个非空值"""
        project = ProjectIntegration(
            project_id="p-3",
            client_requirements={"contactPersonName": ""},
            raw_project_data={"client_name": "Raw Client", "client": "Ignored", "email": "raw@x.test"},
        )
        quote = integrate_project_data(draft_quote, project, policy)

        assert quote.client_info.name == "Raw Client"
        assert quote.client_info.email == "raw@x.test"
        assert quote.client_info.phone == ""
        assert quote.line_items == []

    def test_numeric_values_become_text(self, draft_quote, policy):
        """测试外部数据中的数字字段转为字符串"""
        project = ProjectIntegration(
            project_id="p-4",
            raw_project_data={"client_name": "X", "phone": 400123123, "abn": 51824753556, "name": 2025},
        )
        quote = integrate_project_data(draft_quote, project, policy)

        assert quote.client_info.phone == "400123123"
        assert quote.client_info.abn == "51824753556"
        assert quote.title == "2025"
