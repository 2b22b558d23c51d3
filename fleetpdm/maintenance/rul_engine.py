"""
Remaining Useful Life Engine for FleetPDM
剩余使用寿命(RUL)计算引擎

功能：
- 部件退化趋势拟合
- 与机器学习故障预测融合
- 部件健康与设备健康指数
- 滞回风险等级
- 维护建议
"""

import asyncio
import math
from collections import OrderedDict
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

import numpy as np

from fleetpdm.maintenance.risk_classification import (
    HysteresisRiskClassifier,
    RiskLevel,
)
from fleetpdm.store.telemetry_store import (
    DegradationRecord,
    FailurePrediction,
    TelemetryStore,
    require_org,
)
from fleetpdm.utils.config import Config
from fleetpdm.utils.serialization import (
    MAX_CONFIDENCE,
    clamp,
    clamp_confidence,
    round_half_up,
    to_plain,
)

logger = logging.getLogger(__name__)


# ============================================================================
# 数据模型
# ============================================================================

class PredictionMethod(Enum):
    """预测方法"""
    ML_LSTM = "ml_lstm"
    ML_RF = "ml_rf"
    STATISTICAL = "statistical"
    HYBRID = "hybrid"


@dataclass
class DegradationPattern:
    """部件退化模式"""
    equipment_id: str
    component_type: str
    trend_slope: float          # 每天退化点数
    acceleration: float
    volatility: float           # 残差均方根
    time_to_failure: float      # 天, 无失效趋势时为inf
    confidence: float
    r_squared: float = 0.0


@dataclass
class ComponentHealthStatus:
    """部件健康状态"""
    component_type: str
    health_score: float         # 0-100
    degradation_metric: float
    degradation_rate: float
    predicted_failure_days: int
    confidence: float
    critical_metrics: List[str] = field(default_factory=list)


@dataclass
class RulPrediction:
    """RUL预测结果"""
    equipment_id: str
    remaining_days: int
    confidence_score: float
    health_index: int
    degradation_rate: float
    failure_probability: float
    risk_level: RiskLevel
    component_status: List[ComponentHealthStatus]
    prediction_method: PredictionMethod
    recommendations: List[str]

    def to_dict(self) -> Dict:
        return to_plain(self)


# ============================================================================
# 退化趋势分析
# ============================================================================

def _group_by_component(records: List[DegradationRecord]) -> Dict[str, List[DegradationRecord]]:
    """按部件分组, 组内按时间稳定排序"""
    groups: Dict[str, List[DegradationRecord]] = OrderedDict()
    for record in records:
        groups.setdefault(record.component_type, []).append(record)
    return {k: sorted(v, key=lambda r: r.timestamp) for k, v in groups.items()}


class DegradationAnalyzer:
    """退化趋势分析器"""

    def __init__(self, min_samples: int = 3, failure_threshold: float = 100.0):
        self.min_samples = min_samples
        self.failure_threshold = failure_threshold

    def fit_component(
        self,
        equipment_id: str,
        component_type: str,
        records: List[DegradationRecord]
    ) -> DegradationPattern:
        """拟合单个部件的退化趋势(按样本序号做线性回归)"""
        n = len(records)
        values = np.array([r.degradation_metric for r in records], dtype=float)
        x = np.arange(n)

        slope, intercept = np.polyfit(x, values, 1)
        slope = float(slope)
        residuals = values - (slope * x + intercept)
        ss_res = float(np.sum(residuals ** 2))
        ss_tot = float(np.sum((values - values.mean()) ** 2))

        volatility = math.sqrt(ss_res / n)
        r_squared = 1 - ss_res / (ss_tot + 0.0001)

        span_days = (records[-1].timestamp - records[0].timestamp).total_seconds() / 86400
        days_per_point = span_days / (n - 1)
        if days_per_point <= 0:
            days_per_point = 1.0
        per_day = slope / days_per_point

        # 拟合数值噪声不视为上升趋势
        if slope > 1e-12:
            remaining = self.failure_threshold - float(values[-1])
            time_to_failure = max(0.0, remaining / per_day)
        else:
            time_to_failure = math.inf

        acceleration = ((values[-1] - values[-2]) - (values[1] - values[0])) / n

        return DegradationPattern(
            equipment_id=equipment_id,
            component_type=component_type,
            trend_slope=per_day,
            acceleration=float(acceleration),
            volatility=volatility,
            time_to_failure=time_to_failure,
            confidence=clamp_confidence(min(MAX_CONFIDENCE, r_squared * min(n, 30) / 30)),
            r_squared=r_squared
        )

    def analyze(
        self,
        equipment_id: str,
        records: List[DegradationRecord]
    ) -> Optional[DegradationPattern]:
        """返回最先失效(剩余时间最短)的部件退化模式"""
        governing = None

        for component_type, component_records in _group_by_component(records).items():
            if len(component_records) < self.min_samples:
                continue

            pattern = self.fit_component(equipment_id, component_type, component_records)
            if math.isinf(pattern.time_to_failure):
                continue
            if governing is None or pattern.time_to_failure < governing.time_to_failure:
                governing = pattern

        return governing


# ============================================================================
# 部件健康
# ============================================================================

class ComponentHealthCalculator:
    """部件健康计算器"""

    VIBRATION_LIMIT = 10
    TEMPERATURE_LIMIT = 80
    OIL_CONDITION_LIMIT = 40
    WEAR_PARTICLE_LIMIT = 1000

    def critical_metrics(self, record: DegradationRecord) -> List[str]:
        """识别越限指标"""
        metrics = []
        if record.vibration_level is not None and record.vibration_level > self.VIBRATION_LIMIT:
            metrics.append("vibration")
        if record.temperature is not None and record.temperature > self.TEMPERATURE_LIMIT:
            metrics.append("temperature")
        if record.oil_condition is not None and record.oil_condition < self.OIL_CONDITION_LIMIT:
            metrics.append("oil_condition")
        if (record.wear_particle_count is not None
                and record.wear_particle_count > self.WEAR_PARTICLE_LIMIT):
            metrics.append("wear_particles")
        return metrics

    def calculate(
        self,
        records: List[DegradationRecord],
        now: datetime
    ) -> List[ComponentHealthStatus]:
        """按各部件最新记录计算健康状态"""
        statuses = []

        for component_type, component_records in _group_by_component(records).items():
            latest = component_records[-1]
            health_score = max(0.0, 100 - latest.degradation_metric)

            if latest.predicted_failure_date is not None:
                days = (latest.predicted_failure_date - now).total_seconds() / 86400
                predicted_days = max(0.0, days)
            else:
                # 粗略估计: 满健康约30天
                predicted_days = health_score * 0.3

            confidence = 0.5
            if latest.confidence_score is not None:
                confidence = clamp_confidence(latest.confidence_score)

            statuses.append(ComponentHealthStatus(
                component_type=component_type,
                health_score=health_score,
                degradation_metric=latest.degradation_metric,
                degradation_rate=latest.degradation_rate,
                predicted_failure_days=round_half_up(predicted_days),
                confidence=confidence,
                critical_metrics=self.critical_metrics(latest)
            ))

        return statuses


# ============================================================================
# 维护建议
# ============================================================================

RISK_RECOMMENDATIONS = {
    RiskLevel.CRITICAL: [
        "URGENT: Schedule immediate inspection and maintenance",
        "Consider taking equipment offline to prevent catastrophic failure",
    ],
    RiskLevel.HIGH: [
        "Schedule maintenance within the next week",
        "Increase monitoring frequency to daily",
    ],
    RiskLevel.MEDIUM: [
        "Plan maintenance within the next 2-3 weeks",
        "Monitor degradation trends closely",
    ],
}

METRIC_RECOMMENDATIONS = {
    "vibration": "Investigate {component} vibration levels - possible misalignment or bearing wear",
    "temperature": "Check {component} cooling system - temperature elevated",
    "oil_condition": "Schedule oil change for {component} - contamination detected",
    "wear_particles": "Inspect {component} for excessive wear - particle count high",
}


def generate_recommendations(
    risk_level: RiskLevel,
    component_status: List[ComponentHealthStatus],
    pattern: Optional[DegradationPattern],
    limit: int = 6
) -> List[str]:
    """生成维护建议(有序, 去重, 限制条数)"""
    recommendations = list(RISK_RECOMMENDATIONS.get(risk_level, []))

    for component in component_status:
        if component.health_score < 50:
            recommendations.append(
                f"Replace or service {component.component_type} - "
                f"health at {round_half_up(component.health_score)}%"
            )
        for metric in component.critical_metrics:
            recommendations.append(
                METRIC_RECOMMENDATIONS[metric].format(component=component.component_type)
            )

    if pattern is not None:
        if pattern.acceleration > 1:
            recommendations.append(
                "Degradation is accelerating - prioritize investigation of root cause"
            )
        if pattern.volatility > 5:
            recommendations.append(
                "Unstable operating conditions detected - review recent operational changes"
            )

    return list(dict.fromkeys(recommendations))[:limit]


# ============================================================================
# RUL引擎
# ============================================================================

DEGRADATION_METRIC_FIELDS = {
    f.name for f in fields(DegradationRecord)
} - {"org_id", "equipment_id", "component_type", "timestamp", "degradation_rate"}


class RulEngine:
    """RUL计算引擎"""

    DEFAULT_REMAINING_DAYS = 30
    DEFAULT_CONFIDENCE = 0.5
    DEFAULT_FAILURE_PROBABILITY = 0.1

    def __init__(
        self,
        store: TelemetryStore,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.config = config or Config()
        self.clock = clock or datetime.now
        self.logger = logger or logging.getLogger(__name__)

        self.degradation_analyzer = DegradationAnalyzer(
            min_samples=self.config.min_degradation_samples
        )
        self.health_calculator = ComponentHealthCalculator()
        self.risk_classifier = HysteresisRiskClassifier()

    async def calculate_rul(
        self,
        equipment_id: str,
        org_id: str,
        previous_risk_level: Optional[RiskLevel] = None
    ) -> Optional[RulPrediction]:
        """
        计算单台设备的RUL

        Args:
            equipment_id: 设备ID
            org_id: 组织(租户)ID
            previous_risk_level: 调用方保存的上次风险等级, 提供时启用施密特触发

        Returns:
            RUL预测, 设备不存在时返回None
        """
        require_org(org_id)
        now = self.clock()
        self.logger.info(f"Calculating RUL for {org_id}:{equipment_id}")

        prediction = await self.store.get_latest_failure_prediction(equipment_id, org_id)
        since = now - timedelta(days=self.config.degradation_window_days)
        records = await self.store.get_degradation_history(equipment_id, org_id, since)
        equipment = await self.store.get_equipment_record(equipment_id, org_id)

        if equipment is None:
            self.logger.info(f"Equipment not found: {org_id}:{equipment_id}")
            return None

        self.logger.debug(
            f"{equipment_id} ({equipment.equipment_type}): {len(records)} degradation records, "
            f"ml_prediction={'yes' if prediction else 'no'}"
        )

        pattern = self.degradation_analyzer.analyze(equipment_id, records)
        component_status = self.health_calculator.calculate(records, now)

        remaining_days = self.DEFAULT_REMAINING_DAYS
        confidence = self.DEFAULT_CONFIDENCE
        failure_probability = self.DEFAULT_FAILURE_PROBABILITY
        method = PredictionMethod.STATISTICAL

        if prediction is not None:
            remaining_days, confidence, failure_probability, method = \
                await self._reconcile_ml_prediction(prediction, now)
        elif pattern is not None:
            remaining_days = round_half_up(pattern.time_to_failure)
            confidence = pattern.confidence
            failure_probability = self.estimate_failure_probability(pattern)

        health_index = self.calculate_health_index(remaining_days, pattern, component_status)
        risk_level = self.risk_classifier.classify(
            remaining_days, failure_probability, health_index, previous_risk_level
        )

        return RulPrediction(
            equipment_id=equipment_id,
            remaining_days=remaining_days,
            confidence_score=clamp_confidence(confidence),
            health_index=health_index,
            degradation_rate=pattern.trend_slope if pattern else 0.0,
            failure_probability=failure_probability,
            risk_level=risk_level,
            component_status=component_status,
            prediction_method=method,
            recommendations=generate_recommendations(
                risk_level, component_status, pattern,
                limit=self.config.max_recommendations
            )
        )

    async def _reconcile_ml_prediction(self, prediction: FailurePrediction, now: datetime):
        """以机器学习预测为准计算剩余天数/置信度/故障概率"""
        remaining_days = self.DEFAULT_REMAINING_DAYS
        if prediction.predicted_failure_date is not None:
            days = (prediction.predicted_failure_date - now).total_seconds() / 86400
            remaining_days = round_half_up(max(0.0, days))

        base_confidence = prediction.confidence
        if base_confidence is None:
            base_confidence = self.DEFAULT_CONFIDENCE
        confidence = base_confidence

        if prediction.model_id:
            metadata = await self.store.get_model_metadata(prediction.model_id)
            if metadata is not None and metadata.confidence_multiplier is not None:
                multiplier = metadata.confidence_multiplier
                confidence = min(MAX_CONFIDENCE, base_confidence * multiplier)
                self.logger.info(
                    f"Applied {metadata.data_quality_tier} tier multiplier ({multiplier}x): "
                    f"{base_confidence:.2f} -> {confidence:.2f}"
                )

        model_type = (prediction.model_type or "").lower()
        if "lstm" in model_type:
            method = PredictionMethod.ML_LSTM
        elif "forest" in model_type:
            method = PredictionMethod.ML_RF
        else:
            method = PredictionMethod.HYBRID

        failure_probability = prediction.failure_probability
        if failure_probability is None:
            failure_probability = self.DEFAULT_FAILURE_PROBABILITY

        return (
            remaining_days,
            clamp_confidence(confidence),
            clamp_confidence(failure_probability),
            method
        )

    async def calculate_batch_rul(
        self,
        equipment_ids: List[str],
        org_id: str
    ) -> Dict[str, RulPrediction]:
        """批量并发计算, 未知设备和失败设备不出现在结果中"""
        require_org(org_id)
        outcomes = await asyncio.gather(
            *[self.calculate_rul(equipment_id, org_id) for equipment_id in equipment_ids],
            return_exceptions=True
        )

        results = {}
        for equipment_id, outcome in zip(equipment_ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.logger.warning(f"RUL calculation failed for {org_id}:{equipment_id}: {outcome}")
            elif outcome is not None:
                results[equipment_id] = outcome

        return results

    async def record_degradation(
        self,
        org_id: str,
        equipment_id: str,
        component_type: str,
        metrics: Dict[str, Any]
    ) -> DegradationRecord:
        """记录一次部件退化测量, 退化速率相对同部件上一条记录计算"""
        require_org(org_id)
        unknown = set(metrics) - DEGRADATION_METRIC_FIELDS
        if unknown:
            raise ValueError(f"Unknown degradation metrics: {sorted(unknown)}")
        if metrics.get("degradation_metric") is None:
            raise ValueError("degradation_metric is required")

        now = self.clock()
        previous = await self.store.get_latest_degradation(org_id, equipment_id, component_type)

        degradation_rate = 0.0
        if previous is not None:
            elapsed_days = (now - previous.timestamp).total_seconds() / 86400
            if elapsed_days > 0:
                degradation_rate = (
                    metrics["degradation_metric"] - previous.degradation_metric
                ) / elapsed_days

        record = DegradationRecord(
            org_id=org_id,
            equipment_id=equipment_id,
            component_type=component_type,
            timestamp=now,
            degradation_rate=degradation_rate,
            **metrics
        )
        await self.store.append_degradation(record)
        self.logger.info(
            f"Recorded {component_type} degradation for {org_id}:{equipment_id}: "
            f"metric={record.degradation_metric}, rate={degradation_rate:.3f}/day"
        )
        return record

    @staticmethod
    def calculate_health_index(
        remaining_days: float,
        pattern: Optional[DegradationPattern],
        component_status: List[ComponentHealthStatus]
    ) -> int:
        """设备健康指数(0-100)"""
        health_index = min(100.0, remaining_days / 30 * 100)

        if component_status:
            avg_component = sum(c.health_score for c in component_status) / len(component_status)
            health_index = health_index * 0.6 + avg_component * 0.4

        # 快速退化惩罚
        if pattern is not None and pattern.trend_slope > 2:
            health_index *= 0.9

        return round_half_up(clamp(health_index, 0.0, 100.0))

    @staticmethod
    def estimate_failure_probability(pattern: Optional[DegradationPattern]) -> float:
        """由退化模式估计故障概率: 0.5*时间 + 0.3*速率 + 0.2*加速度"""
        if pattern is None:
            return RulEngine.DEFAULT_FAILURE_PROBABILITY

        time_factor = max(0.0, 1 - pattern.time_to_failure / 60)
        rate_factor = clamp(pattern.trend_slope / 5, 0.0, 1.0)
        accel_factor = min(0.3, abs(pattern.acceleration) / 10)

        probability = time_factor * 0.5 + rate_factor * 0.3 + accel_factor * 0.2
        return clamp(probability, 0.05, MAX_CONFIDENCE)


def create_rul_engine(store: TelemetryStore, config: Optional[Config] = None) -> RulEngine:
    """创建RUL引擎实例"""
    return RulEngine(store, config=config)
