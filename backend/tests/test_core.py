"""
配置、异常与日志测试
"""
import sys
from decimal import Decimal

import pytest
from loguru import logger
from pydantic import ValidationError

from chargequote.core.config import Settings
from chargequote.core.exceptions import (
    ConflictException, IllegalTransitionException, InvalidLineItemException, NotFoundException,
    ValidationException
)
from chargequote.core.logger import configure_logging


class TestSettings:
    """配置测试"""

    def test_defaults(self):
        settings = Settings()
        assert settings.GST_RATE == Decimal("10")
        assert settings.DEFAULT_VALIDITY_DAYS == 30

    def test_log_level_normalized(self):
        assert Settings(LOG_LEVEL=" debug ").LOG_LEVEL == "DEBUG"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("GST_RATE", "15")
        assert Settings().GST_RATE == Decimal("15")

    def test_gst_rate_bounds(self):
        with pytest.raises(ValidationError):
            Settings(GST_RATE=Decimal("150"))


class TestExceptions:
    """异常测试"""

    def test_not_found(self):
        exc = NotFoundException("报价单", "quote-1")
        assert exc.status_code == 404
        assert exc.to_dict() == {
            "code": "NOT_FOUND",
            "message": "报价单 [quote-1] 不存在",
            "details": {"resource": "报价单", "resource_id": "quote-1"},
        }

    def test_hierarchy(self):
        assert isinstance(InvalidLineItemException("x"), ValidationException)
        assert InvalidLineItemException("x").error_code == "INVALID_LINE_ITEM"
        assert ConflictException("x").status_code == 409

    def test_illegal_transition_message(self):
        exc = IllegalTransitionException("accepted", "sent", "终态")
        assert exc.details == {"current_status": "accepted", "target_status": "sent"}
        assert exc.message.endswith("终态")


class TestLogging:
    """日志配置测试"""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        yield
        logger.remove()
        logger.add(sys.stderr)

    def test_file_sinks(self, tmp_path):
        """测试写入日志文件"""
        configure_logging(app_name="cq", level="DEBUG", log_dir=str(tmp_path), to_file=True)
        logger.error("写入错误日志")

        names = sorted(p.name for p in tmp_path.iterdir())
        assert any(name.startswith("cq_error_") for name in names)
        assert any(name.startswith("cq_2") for name in names)

    def test_quote_no_context(self):
        """测试报价单编号上下文"""
        configure_logging(level="INFO", to_file=False)
        messages = []
        logger.add(lambda m: messages.append(m.record["extra"].get("quote_no")), level="INFO")

        with logger.contextualize(quote_no="QT2503-123456"):
            logger.info("带编号")

        assert messages[-1] == "QT2503-123456"
