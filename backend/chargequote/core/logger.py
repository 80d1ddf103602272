"""
loguru日志配置
"""
import sys
from typing import Optional

from loguru import logger

from chargequote.core.config import settings


def _ensure_quote_no(record) -> bool:
    record["extra"].setdefault("quote_no", "-")
    return True


def configure_logging(
    app_name: Optional[str] = None,
    level: Optional[str] = None,
    log_dir: Optional[str] = None,
    to_file: Optional[bool] = None,
):
    """配置loguru日志"""
    app_name = app_name or settings.APP_NAME
    level = level or settings.LOG_LEVEL
    log_dir = log_dir or settings.LOG_DIR
    to_file = settings.LOG_TO_FILE if to_file is None else to_file

    # 移除默认处理器
    logger.remove()

    # 控制台输出格式
    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<blue>[{extra[quote_no]}]</blue> - "
        "<level>{message}</level>"
    )

    # 文件输出格式
    file_format = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
        "{level: <8} | "
        "{name}:{function}:{line} | "
        "[{extra[quote_no]}] | "
        "{message}"
    )

    logger.add(
        sys.stderr,
        format=console_format,
        level=level,
        colorize=True,
        filter=_ensure_quote_no
    )

    if to_file:
        # 一般日志
        logger.add(
            f"{log_dir}/{app_name}_{{time:YYYY-MM-DD}}.log",
            format=file_format,
            level=level,
            rotation="00:00",
            retention="30 days",
            compression="gz",
            filter=_ensure_quote_no
        )

        # 错误日志
        logger.add(
            f"{log_dir}/{app_name}_error_{{time:YYYY-MM-DD}}.log",
            format=file_format,
            level="ERROR",
            rotation="00:00",
            retention="60 days",
            compression="gz",
            filter=_ensure_quote_no
        )

    logger.info(f"日志已初始化 | level={level} | file={to_file}")
    return logger
