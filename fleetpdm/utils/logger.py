"""
Logging utilities for FleetPDM.
"""

import logging
import sys
from typing import Optional


def setup_logger(
    name: str = "fleetpdm",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    设置日志记录器

    Args:
        name: 日志记录器名称
        level: 日志级别
        log_file: 日志文件路径

    Returns:
        日志记录器
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # 避免重复添加处理器
    logger.handlers = []

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # 日志输出到stderr, stdout留给命令行结果
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "fleetpdm") -> logging.Logger:
    """获取日志记录器"""
    return logging.getLogger(name)


def resolve_level(level_name: str) -> int:
    """日志级别名称转数值, 未知名称按INFO处理"""
    level = logging.getLevelName(str(level_name).upper())
    return level if isinstance(level, int) else logging.INFO
