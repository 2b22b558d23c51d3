"""
Result serialization helpers.
结果对象转普通数据结构
"""

import math
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

MAX_CONFIDENCE = 0.95


def clamp(value: float, lower: float, upper: float) -> float:
    """限制到[lower, upper]"""
    return max(lower, min(upper, value))


def clamp_confidence(value: float) -> float:
    """置信度限制到[0, 0.95], 不声称确定性"""
    if value is None or math.isnan(value):
        return 0.0
    return clamp(float(value), 0.0, MAX_CONFIDENCE)


def round_half_up(value: float) -> int:
    """四舍五入(0.5进位)"""
    return int(math.floor(value + 0.5))


def to_plain(value: Any) -> Any:
    """递归转换dataclass/枚举/时间为可JSON序列化的结构"""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, float) and math.isinf(value):
        return None
    return value
