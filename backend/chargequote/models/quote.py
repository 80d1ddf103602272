"""
报价单数据模型

报价单以完整快照（JSON）保存，常用查询字段单独成列以便建索引。
"""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index, Numeric, Boolean, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from chargequote.core.database import Base

# PostgreSQL 下使用 JSONB，其他数据库退化为 JSON
SnapshotType = JSON().with_variant(JSONB(), "postgresql")


class QuoteRecord(Base):
    """报价单主表"""
    __tablename__ = "quotes"

    id = Column(String(64), primary_key=True, comment="报价单ID")
    quote_number = Column(String(50), unique=True, nullable=False, comment="报价单编号")
    project_id = Column(String(64), comment="关联项目ID")
    template_id = Column(String(64), comment="来源模板ID")
    status = Column(String(50), nullable=False, default="draft", comment="状态")
    version = Column(Integer, nullable=False, default=1, comment="版本号")
    client_name = Column(String(255), comment="客户名称")
    title = Column(String(255), comment="标题")
    total = Column(Numeric(20, 6), comment="含税总额")
    created_by = Column(String(100), comment="创建人")
    valid_until = Column(DateTime(timezone=True), comment="有效期")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
    snapshot_data = Column(SnapshotType, nullable=False, comment="报价单快照")

    __table_args__ = (
        Index('ix_quotes_status', 'status'),
        Index('ix_quotes_project', 'project_id'),
        Index('ix_quotes_created_at', 'created_at'),
        {'comment': '报价单主表'}
    )


class QuoteVersion(Base):
    """版本快照表"""
    __tablename__ = "quote_versions"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="版本记录ID")
    quote_id = Column(String(64), ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False, comment="所属报价单")
    version_number = Column(Integer, nullable=False, comment="版本号")
    change_type = Column(String(50), comment="变更类型")
    changes_summary = Column(String(500), comment="变更摘要")
    snapshot_data = Column(SnapshotType, comment="快照数据")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")

    __table_args__ = (
        Index('ix_version_quote', 'quote_id'),
        Index('ix_version_number', 'quote_id', 'version_number', unique=True),
        {'comment': '版本快照表'}
    )


class QuoteTemplateRecord(Base):
    """报价模板表"""
    __tablename__ = "quote_templates"

    id = Column(String(64), primary_key=True, comment="模板ID")
    name = Column(String(255), nullable=False, comment="模板名称")
    category = Column(String(100), comment="模板类别")
    is_default = Column(Boolean, nullable=False, default=False, comment="是否默认模板")
    usage_count = Column(Integer, nullable=False, default=0, comment="使用次数")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    snapshot_data = Column(SnapshotType, nullable=False, comment="模板快照")

    __table_args__ = (
        Index('ix_template_category', 'category'),
        {'comment': '报价模板表'}
    )


class MarginSettingsRecord(Base):
    """定价策略表"""
    __tablename__ = "margin_settings"

    id = Column(String(50), primary_key=True, default="default", comment="策略ID")
    snapshot_data = Column(SnapshotType, nullable=False, comment="策略快照")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '定价策略表'},
    )
