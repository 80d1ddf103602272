"""
测试配置和公共夹具
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from chargequote.core.config import Settings
from chargequote.core.database import create_engine, create_session_maker, init_db
from chargequote.repositories.memory import (
    InMemoryMarginSettingsRepository, InMemoryQuoteRepository, InMemoryTemplateRepository
)
from chargequote.schemas.quote import ClientInfo, LineItemCreate, LineItemType
from chargequote.services.integrations import InMemoryProductCatalog, InMemoryProjectSource
from chargequote.services.margin_policy import DEFAULT_MARGIN_SETTINGS
from chargequote.services.quote_factory import create_empty_quote
from chargequote.services.quote_service import QuoteService

# 内存 SQLite，StaticPool 保证所有会话共用同一连接
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def now():
    """固定的当前时间"""
    return datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def policy():
    """默认定价策略"""
    return DEFAULT_MARGIN_SETTINGS


@pytest.fixture
def charger_item():
    """2 x 1000，加价30% 的充电桩"""
    return LineItemCreate(
        type=LineItemType.CHARGER,
        name="22kW AC Charger",
        category="chargers",
        quantity=2,
        unit_price=Decimal("1000"),
        cost=Decimal("700"),
        markup=Decimal("30"),
    )


@pytest.fixture
def installation_item():
    return LineItemCreate(
        type=LineItemType.INSTALLATION,
        name="Installation",
        category="installation",
        quantity=1,
        unit_price=Decimal("500"),
        cost=Decimal("300"),
        markup=Decimal("50"),
    )


@pytest.fixture
def draft_quote(now):
    """带客户名称的空白草稿"""
    quote = create_empty_quote(created_by="tester", now=now)
    quote.client_info = ClientInfo(name="Acme Fleet", contact_person="Jane Citizen", email="jane@acme.test")
    return quote


@pytest.fixture
def sample_projects():
    """正式项目与项目草稿"""
    projects = [
        {
            "id": "proj-1",
            "name": "Depot Charging Upgrade",
            "client_name": "Acme Fleet",
            "notes": "Night-time install only",
            "clientRequirements": {
                "contactPersonName": "Jane Citizen",
                "contactEmail": "jane@acme.test",
                "contactPhone": "0400 000 000",
                "organizationType": "logistics",
                "projectObjective": "Electrify delivery vans",
            },
            "siteAssessment": {
                "siteAddress": "1 Depot Rd, Sydney NSW",
                "siteType": "depot",
            },
            "chargerSelection": {
                "chargingType": "dc-fast",
                "powerRating": "50kw",
                "numberOfChargers": "4",
            },
        },
    ]
    drafts = [
        {
            "id": "draft-1",
            "draftName": "Retail carpark draft",
            "siteAssessment": {"projectName": "Retail Carpark", "siteAddress": "9 Mall St"},
            "chargerSelection": {
                "chargingType": "ac-level2",
                "powerRating": "22kw",
                "numberOfChargers": "3 units",
                "weatherProtection": True,
            },
        },
    ]
    return InMemoryProjectSource(projects=projects, drafts=drafts)


@pytest.fixture
def test_settings():
    """测试配置：不自动写入默认模板"""
    return Settings(SEED_DEFAULT_TEMPLATES=False, ENFORCE_MARGIN_BOUNDS=True)


@pytest.fixture
def quote_service(sample_projects, test_settings):
    """基于内存仓储的报价服务"""
    return QuoteService(
        quotes=InMemoryQuoteRepository(),
        templates=InMemoryTemplateRepository(),
        margins=InMemoryMarginSettingsRepository(),
        projects=sample_projects,
        catalog=InMemoryProductCatalog(),
        app_settings=test_settings,
    )


@pytest.fixture
async def session_maker():
    """内存 SQLite 会话工厂"""
    engine = create_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    try:
        yield create_session_maker(engine)
    finally:
        await engine.dispose()
