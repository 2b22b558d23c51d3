"""
Predictive Maintenance Module for FleetPDM
预测性维护模块: RUL计算与风险等级
"""

from fleetpdm.maintenance.risk_classification import (
    RiskLevel,
    RiskThreshold,
    RISK_THRESHOLDS,
    HysteresisRiskClassifier,
    parse_risk_level,
)
from fleetpdm.maintenance.rul_engine import (
    PredictionMethod,
    DegradationPattern,
    ComponentHealthStatus,
    RulPrediction,
    DegradationAnalyzer,
    ComponentHealthCalculator,
    RulEngine,
    generate_recommendations,
    create_rul_engine,
)

__all__ = [
    "RiskLevel",
    "RiskThreshold",
    "RISK_THRESHOLDS",
    "HysteresisRiskClassifier",
    "parse_risk_level",
    "PredictionMethod",
    "DegradationPattern",
    "ComponentHealthStatus",
    "RulPrediction",
    "DegradationAnalyzer",
    "ComponentHealthCalculator",
    "RulEngine",
    "generate_recommendations",
    "create_rul_engine",
]
