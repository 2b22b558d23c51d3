"""
FleetPDM - Fleet Predictive Maintenance
机队预测性维护分析核心: 剩余寿命(RUL)计算与传感器趋势分析

版本: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "FleetPDM Development Team"

# 存储接口
from fleetpdm.store import (
    SensorSample,
    DegradationRecord,
    FailurePrediction,
    EquipmentRecord,
    ModelMetadata,
    TelemetryStore,
    InMemoryTelemetryStore,
)

# 趋势分析
from fleetpdm.analytics import (
    InsufficientDataError,
    EnhancedTrendsAnalyzer,
    TrendAnalysisResult,
    FleetTrendSummary,
    create_trends_analyzer,
)

# 预测性维护
from fleetpdm.maintenance import (
    RiskLevel,
    PredictionMethod,
    RulPrediction,
    ComponentHealthStatus,
    RulEngine,
    create_rul_engine,
)

# 工具
from fleetpdm.utils import Config, load_config, setup_logger

__all__ = [
    "__version__",
    # 存储
    "SensorSample",
    "DegradationRecord",
    "FailurePrediction",
    "EquipmentRecord",
    "ModelMetadata",
    "TelemetryStore",
    "InMemoryTelemetryStore",
    # 趋势分析
    "InsufficientDataError",
    "EnhancedTrendsAnalyzer",
    "TrendAnalysisResult",
    "FleetTrendSummary",
    "create_trends_analyzer",
    # 预测性维护
    "RiskLevel",
    "PredictionMethod",
    "RulPrediction",
    "ComponentHealthStatus",
    "RulEngine",
    "create_rul_engine",
    # 工具
    "Config",
    "load_config",
    "setup_logger",
]
