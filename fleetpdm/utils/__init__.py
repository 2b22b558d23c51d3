"""
Utility modules for FleetPDM.
机队预测性维护工具模块
"""

from fleetpdm.utils.logger import setup_logger, get_logger, resolve_level
from fleetpdm.utils.config import Config, load_config
from fleetpdm.utils.serialization import (
    MAX_CONFIDENCE,
    clamp,
    clamp_confidence,
    round_half_up,
    to_plain,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "resolve_level",
    "Config",
    "load_config",
    "MAX_CONFIDENCE",
    "clamp",
    "clamp_confidence",
    "round_half_up",
    "to_plain",
]
