"""
Risk Classification with Hysteresis
带滞回的风险等级分类

三个信号(故障概率/剩余天数/健康指数)任一越限即进入该等级,
按 critical → high → medium → low 顺序判断

- 无历史等级: 使用加宽的缓冲阈值(偏向更高风险), 单次调用无状态
- 给出上次等级: 施密特触发器, 升级需越过名义阈值, 降级需离开缓冲带
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class RiskLevel(Enum):
    """风险等级"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def __lt__(self, other: 'RiskLevel') -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


@dataclass(frozen=True)
class RiskThreshold:
    """单个等级的名义阈值"""
    level: RiskLevel
    probability: float      # 故障概率高于此值
    days: float             # 剩余天数低于此值
    health: float           # 健康指数低于此值


# 缓冲只向高风险方向加宽
PROBABILITY_BUFFER = 0.05
DAYS_BUFFER = 2
HEALTH_BUFFER = 5

RISK_THRESHOLDS = [
    RiskThreshold(RiskLevel.CRITICAL, probability=0.70, days=7, health=30),
    RiskThreshold(RiskLevel.HIGH, probability=0.40, days=21, health=60),
    RiskThreshold(RiskLevel.MEDIUM, probability=0.20, days=35, health=80),
]


class HysteresisRiskClassifier:
    """滞回风险分类器"""

    def __init__(self, thresholds: Optional[List[RiskThreshold]] = None):
        self.thresholds = thresholds or RISK_THRESHOLDS

    def _matches(
        self,
        threshold: RiskThreshold,
        remaining_days: float,
        failure_probability: float,
        health_index: float,
        buffered: bool
    ) -> bool:
        probability_limit = threshold.probability
        days_limit = threshold.days
        health_limit = threshold.health
        if buffered:
            # 0.7 - 0.05 在浮点下小于0.65
            probability_limit = round(probability_limit - PROBABILITY_BUFFER, 6)
            days_limit += DAYS_BUFFER
            health_limit += HEALTH_BUFFER

        return (
            failure_probability > probability_limit
            or remaining_days < days_limit
            or health_index < health_limit
        )

    def _level(
        self,
        remaining_days: float,
        failure_probability: float,
        health_index: float,
        buffered: bool
    ) -> RiskLevel:
        for threshold in self.thresholds:
            if self._matches(threshold, remaining_days, failure_probability,
                             health_index, buffered):
                return threshold.level
        return RiskLevel.LOW

    def classify(
        self,
        remaining_days: float,
        failure_probability: float,
        health_index: float,
        previous_level: Optional[RiskLevel] = None
    ) -> RiskLevel:
        """计算风险等级"""
        buffered_level = self._level(
            remaining_days, failure_probability, health_index, buffered=True
        )
        if previous_level is None:
            return buffered_level

        nominal_level = self._level(
            remaining_days, failure_probability, health_index, buffered=False
        )
        if previous_level < nominal_level:
            level = nominal_level
        elif buffered_level < previous_level:
            level = buffered_level
        else:
            level = previous_level

        if level != previous_level:
            logger.debug(f"Risk level changed: {previous_level.value} -> {level.value}")
        return level


def parse_risk_level(value: Optional[str]) -> Optional[RiskLevel]:
    """解析风险等级字符串"""
    if value is None:
        return None
    try:
        return RiskLevel(value.lower())
    except ValueError:
        raise ValueError(f"Unknown risk level: {value}") from None
