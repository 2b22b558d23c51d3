"""
Trend Analytics Module for FleetPDM
传感器趋势分析模块
"""

from fleetpdm.analytics.data_analytics import (
    InsufficientDataError,
    TrendType,
    AnomalySeverity,
    SeverityLevel,
    ForecastMethod,
    CycleType,
    Relationship,
    CorrelationStrength,
    Causality,
    DistributionAnalysis,
    TrendFit,
    StatisticalSummary,
    AnomalyPoint,
    AnomalyAnalysis,
    ForecastPoint,
    ForecastMetrics,
    ForecastingResult,
    SeasonalCycle,
    SeasonalityAnalysis,
    CorrelationAnalysis,
    TrendAnalysisResult,
    StatisticsCalculator,
    AnomalyDetector,
    SeasonalityAnalyzer,
    Forecaster,
    CorrelationAnalyzer,
    approximate_t_cdf,
)
from fleetpdm.analytics.fleet_trends import (
    FleetMetrics,
    EquipmentRanking,
    FleetRecommendation,
    FleetTrendSummary,
    aggregate_fleet_metrics,
    rank_equipment,
    generate_fleet_recommendations,
)
from fleetpdm.analytics.enhanced_trends import (
    EnhancedTrendsAnalyzer,
    create_trends_analyzer,
)

__all__ = [
    # 异常
    "InsufficientDataError",
    # 枚举
    "TrendType",
    "AnomalySeverity",
    "SeverityLevel",
    "ForecastMethod",
    "CycleType",
    "Relationship",
    "CorrelationStrength",
    "Causality",
    # 结果
    "DistributionAnalysis",
    "TrendFit",
    "StatisticalSummary",
    "AnomalyPoint",
    "AnomalyAnalysis",
    "ForecastPoint",
    "ForecastMetrics",
    "ForecastingResult",
    "SeasonalCycle",
    "SeasonalityAnalysis",
    "CorrelationAnalysis",
    "TrendAnalysisResult",
    "FleetMetrics",
    "EquipmentRanking",
    "FleetRecommendation",
    "FleetTrendSummary",
    # 计算器
    "StatisticsCalculator",
    "AnomalyDetector",
    "SeasonalityAnalyzer",
    "Forecaster",
    "CorrelationAnalyzer",
    "approximate_t_cdf",
    "aggregate_fleet_metrics",
    "rank_equipment",
    "generate_fleet_recommendations",
    # 服务
    "EnhancedTrendsAnalyzer",
    "create_trends_analyzer",
]
