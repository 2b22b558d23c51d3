"""
Fleet Trend Aggregation for FleetPDM
机队趋势汇总、设备风险排名与机队建议
"""

import statistics
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Tuple
import logging

from fleetpdm.analytics.data_analytics import (
    SeverityLevel,
    TrendAnalysisResult,
    TrendType,
)
from fleetpdm.utils.serialization import clamp, to_plain

logger = logging.getLogger(__name__)


# ============================================================
# 数据类定义
# ============================================================

@dataclass
class FleetMetrics:
    """机队汇总指标"""
    health_score: float
    anomaly_rate: float
    volatility_index: float
    maintenance_risk: SeverityLevel


@dataclass
class EquipmentRanking:
    """设备风险排名"""
    equipment_id: str
    rank: int
    score: float
    risk_factors: List[str] = field(default_factory=list)
    priority: SeverityLevel = SeverityLevel.LOW


@dataclass
class FleetRecommendation:
    """机队建议"""
    type: str                   # maintenance / monitoring / optimization
    equipment_ids: List[str]
    priority: int               # 1最高
    description: str
    expected_benefit: str
    time_frame: str


@dataclass
class FleetTrendSummary:
    """机队趋势汇总"""
    fleet_id: str
    equipment_count: int
    sensor_types: List[str]
    time_range: Tuple[datetime, datetime]
    aggregated_metrics: FleetMetrics
    equipment_rankings: List[EquipmentRanking] = field(default_factory=list)
    recommendations: List[FleetRecommendation] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return to_plain(self)


# ============================================================
# 汇总计算
# ============================================================

def aggregate_fleet_metrics(analyses: List[TrendAnalysisResult]) -> FleetMetrics:
    """计算机队健康分和维护风险"""
    if not analyses:
        return FleetMetrics(
            health_score=0.0,
            anomaly_rate=0.0,
            volatility_index=0.0,
            maintenance_risk=SeverityLevel.CRITICAL
        )

    anomaly_rate = statistics.fmean(
        a.anomaly_detection.anomaly_rate for a in analyses
    )
    volatility = statistics.fmean(
        a.statistical_summary.std_dev for a in analyses
    )
    stability = statistics.fmean(
        a.statistical_summary.trend.r_squared for a in analyses
    )

    health_score = clamp(
        100 - anomaly_rate * 200 - volatility * 10 + stability * 20,
        0.0,
        100.0
    )

    if anomaly_rate > 0.3 or health_score < 30:
        risk = SeverityLevel.CRITICAL
    elif anomaly_rate > 0.15 or health_score < 50:
        risk = SeverityLevel.HIGH
    elif anomaly_rate > 0.05 or health_score < 70:
        risk = SeverityLevel.MEDIUM
    else:
        risk = SeverityLevel.LOW

    return FleetMetrics(
        health_score=health_score,
        anomaly_rate=anomaly_rate,
        volatility_index=volatility,
        maintenance_risk=risk
    )


def risk_score(analysis: TrendAnalysisResult) -> Tuple[float, List[str]]:
    """单传感器风险分及风险因素"""
    rate = analysis.anomaly_detection.anomaly_rate
    std_dev = analysis.statistical_summary.std_dev
    volatile = analysis.statistical_summary.trend.trend_type == TrendType.VOLATILE

    score = rate * 100 + std_dev * 10 + (25 if volatile else 0)

    factors = []
    if rate > 0.15:
        factors.append("High anomaly rate")
    if std_dev > 5:
        factors.append("High volatility")
    if volatile:
        factors.append("Unstable trends")

    return score, factors


def _priority(score: float) -> SeverityLevel:
    if score > 75:
        return SeverityLevel.CRITICAL
    if score > 50:
        return SeverityLevel.HIGH
    if score > 25:
        return SeverityLevel.MEDIUM
    return SeverityLevel.LOW


def rank_equipment(analyses: List[TrendAnalysisResult]) -> List[EquipmentRanking]:
    """按风险分降序排名, 每台设备取其各传感器的最高分"""
    by_equipment: Dict[str, EquipmentRanking] = {}

    for analysis in analyses:
        score, factors = risk_score(analysis)
        ranking = by_equipment.get(analysis.equipment_id)
        if ranking is None:
            ranking = EquipmentRanking(
                equipment_id=analysis.equipment_id,
                rank=0,
                score=score
            )
            by_equipment[analysis.equipment_id] = ranking
        else:
            ranking.score = max(ranking.score, score)

        for factor in factors:
            if factor not in ranking.risk_factors:
                ranking.risk_factors.append(factor)

    rankings = sorted(by_equipment.values(), key=lambda r: r.score, reverse=True)
    for index, ranking in enumerate(rankings, start=1):
        ranking.rank = index
        ranking.priority = _priority(ranking.score)

    return rankings


def _unique_ids(analyses: List[TrendAnalysisResult]) -> List[str]:
    return list(dict.fromkeys(a.equipment_id for a in analyses))


def generate_fleet_recommendations(
    analyses: List[TrendAnalysisResult],
    metrics: FleetMetrics
) -> List[FleetRecommendation]:
    """生成机队级建议, 按优先级排序"""
    recommendations = []

    high_risk = _unique_ids([
        a for a in analyses if a.anomaly_detection.anomaly_rate > 0.2
    ])
    if high_risk:
        recommendations.append(FleetRecommendation(
            type="maintenance",
            equipment_ids=high_risk,
            priority=1,
            description=(
                f"Immediate maintenance required for {len(high_risk)} "
                f"equipment units with high anomaly rates."
            ),
            expected_benefit=(
                "Prevent potential equipment failures and reduce unplanned downtime."
            ),
            time_frame="24-48 hours"
        ))

    volatile = _unique_ids([
        a for a in analyses
        if a.statistical_summary.trend.trend_type == TrendType.VOLATILE
    ])
    if volatile:
        recommendations.append(FleetRecommendation(
            type="monitoring",
            equipment_ids=volatile,
            priority=2,
            description=(
                f"Increase monitoring frequency for {len(volatile)} "
                f"equipment units with volatile behavior."
            ),
            expected_benefit="Improve early detection of potential issues.",
            time_frame="1-2 weeks"
        ))

    if metrics.maintenance_risk in (SeverityLevel.HIGH, SeverityLevel.CRITICAL):
        recommendations.append(FleetRecommendation(
            type="optimization",
            equipment_ids=_unique_ids(analyses),
            priority=3,
            description=(
                "Fleet-wide maintenance strategy review recommended "
                "due to elevated risk levels."
            ),
            expected_benefit=(
                "Optimize maintenance schedules and reduce overall fleet risk."
            ),
            time_frame="2-4 weeks"
        ))

    return sorted(recommendations, key=lambda r: r.priority)


def build_fleet_summary(
    fleet_id: str,
    equipment_count: int,
    sensor_types: List[str],
    time_range: Tuple[datetime, datetime],
    analyses: List[TrendAnalysisResult]
) -> FleetTrendSummary:
    """组装机队汇总"""
    metrics = aggregate_fleet_metrics(analyses)
    logger.debug(
        f"Fleet {fleet_id}: {len(analyses)} sensor analyses, "
        f"health={metrics.health_score:.1f}, risk={metrics.maintenance_risk.value}"
    )

    return FleetTrendSummary(
        fleet_id=fleet_id,
        equipment_count=equipment_count,
        sensor_types=sensor_types,
        time_range=time_range,
        aggregated_metrics=metrics,
        equipment_rankings=rank_equipment(analyses),
        recommendations=generate_fleet_recommendations(analyses, metrics)
    )
