"""
RUL引擎测试
Tests for degradation fitting, component health and RUL calculation
"""

import logging
import math
from datetime import timedelta

import numpy as np
import pytest

from conftest import NOW, ORG, OTHER_ORG, daily_degradation
from fleetpdm.maintenance import (
    ComponentHealthCalculator,
    DegradationAnalyzer,
    DegradationPattern,
    PredictionMethod,
    RiskLevel,
    RulEngine,
    create_rul_engine,
)
from fleetpdm.store import (
    DegradationRecord,
    EquipmentRecord,
    FailurePrediction,
    InMemoryTelemetryStore,
    ModelMetadata,
)


@pytest.fixture
def engine(store, clock):
    return RulEngine(store, clock=clock)


def load(store, records):
    for record in records:
        store.add_degradation(record)


class TestDegradationAnalyzer:
    """测试退化趋势拟合"""

    def test_linear_rise(self):
        """测试线性上升的剩余时间"""
        records = daily_degradation([10, 20, 30, 40])
        pattern = DegradationAnalyzer().fit_component("pump-01", "bearing", records)

        assert pattern.trend_slope == pytest.approx(10.0)
        assert pattern.time_to_failure == pytest.approx(6.0)
        assert pattern.r_squared == pytest.approx(1.0, abs=1e-4)
        assert pattern.volatility == pytest.approx(0.0, abs=1e-9)

    def test_slope_is_per_day(self):
        """测试按实际时间间隔换算每日斜率"""
        records = [
            DegradationRecord(ORG, "pump-01", "bearing", NOW - timedelta(hours=12 * (3 - i)), 10.0 * (i + 1))
            for i in range(4)
        ]
        pattern = DegradationAnalyzer().fit_component("pump-01", "bearing", records)

        assert pattern.trend_slope == pytest.approx(20.0)
        assert pattern.time_to_failure == pytest.approx(3.0)

    def test_zero_interval_uses_one_day_per_point(self):
        """测试时间戳相同"""
        records = [
            DegradationRecord(ORG, "pump-01", "bearing", NOW, float(v))
            for v in (10, 20, 30)
        ]
        pattern = DegradationAnalyzer().fit_component("pump-01", "bearing", records)
        assert pattern.trend_slope == pytest.approx(10.0)

    def test_flat_has_no_failure_trend(self):
        """测试无上升趋势"""
        analyzer = DegradationAnalyzer()
        records = daily_degradation([30, 30, 30, 30])

        assert math.isinf(analyzer.fit_component("pump-01", "bearing", records).time_to_failure)
        assert analyzer.analyze("pump-01", records) is None

    def test_already_failed(self):
        """测试已越过失效阈值"""
        records = daily_degradation([90, 100, 110])
        pattern = DegradationAnalyzer().fit_component("pump-01", "bearing", records)
        assert pattern.time_to_failure == 0

    def test_governing_component(self):
        """测试取最先失效的部件"""
        records = (
            daily_degradation([10, 12, 14, 16], component_type="seal")
            + daily_degradation([50, 60, 70, 80], component_type="bearing")
            + daily_degradation([5, 6], component_type="motor")
        )
        pattern = DegradationAnalyzer().analyze("pump-01", records)

        assert pattern.component_type == "bearing"
        assert pattern.time_to_failure == pytest.approx(2.0)

    def test_confidence_grows_with_samples(self):
        """测试样本数影响置信度"""
        analyzer = DegradationAnalyzer()
        few = analyzer.fit_component("pump-01", "bearing", daily_degradation([10, 20, 30]))
        many = analyzer.fit_component(
            "pump-01", "bearing", daily_degradation(list(np.linspace(10, 40, 30)))
        )

        assert few.confidence == pytest.approx(0.1, abs=1e-4)
        assert many.confidence == pytest.approx(0.95)


class TestComponentHealth:
    """测试部件健康"""

    def test_health_from_latest_record(self):
        """测试使用最新记录"""
        records = daily_degradation([20, 40], vibration_level=12.0, oil_condition=30.0)
        status = ComponentHealthCalculator().calculate(records, NOW)[0]

        assert status.component_type == "bearing"
        assert status.health_score == 60
        assert status.predicted_failure_days == 18
        assert status.confidence == 0.5
        assert status.critical_metrics == ["vibration", "oil_condition"]

    def test_predicted_failure_date(self):
        """测试记录自带的预计失效日期"""
        records = daily_degradation(
            [20], predicted_failure_date=NOW + timedelta(days=10, hours=12), confidence_score=0.99
        )
        status = ComponentHealthCalculator().calculate(records, NOW)[0]

        assert status.predicted_failure_days == 11
        assert status.confidence == 0.95

    def test_health_floor(self):
        """测试健康分下限"""
        status = ComponentHealthCalculator().calculate(daily_degradation([120]), NOW)[0]
        assert status.health_score == 0
        assert status.predicted_failure_days == 0


class TestScoring:
    """测试健康指数与故障概率"""

    def test_health_index(self):
        """测试健康指数"""
        assert RulEngine.calculate_health_index(15, None, []) == 50
        assert RulEngine.calculate_health_index(90, None, []) == 100

    def test_fast_degradation_penalty(self):
        """测试快速退化惩罚"""
        pattern = DegradationPattern("pump-01", "bearing", 3.0, 0.0, 0.0, 10.0, 0.5)
        assert RulEngine.calculate_health_index(15, pattern, []) == 45

    def test_failure_probability(self):
        """测试故障概率估计"""
        assert RulEngine.estimate_failure_probability(None) == 0.1

        no_trend = DegradationPattern("pump-01", "bearing", 0.0, 0.0, 0.0, math.inf, 0.5)
        assert RulEngine.estimate_failure_probability(no_trend) == 0.05

        imminent = DegradationPattern("pump-01", "bearing", 10.0, 10.0, 0.0, 0.0, 0.5)
        assert RulEngine.estimate_failure_probability(imminent) == pytest.approx(0.86)


class TestCalculateRul:
    """测试单台设备RUL计算"""

    @pytest.mark.asyncio
    async def test_unknown_equipment(self, engine):
        """测试未知设备"""
        assert await engine.calculate_rul("ghost", ORG) is None

    @pytest.mark.asyncio
    async def test_other_tenant(self, engine):
        """测试跨租户不可见"""
        assert await engine.calculate_rul("comp-01", ORG) is None
        assert await engine.calculate_rul("pump-01", OTHER_ORG) is None

    @pytest.mark.asyncio
    async def test_requires_org(self, engine):
        """测试租户标识必填"""
        with pytest.raises(ValueError):
            await engine.calculate_rul("pump-01", "")

    @pytest.mark.asyncio
    async def test_no_data_defaults(self, engine):
        """测试无数据时的默认值"""
        result = await engine.calculate_rul("pump-01", ORG)

        assert result.remaining_days == 30
        assert result.confidence_score == 0.5
        assert result.failure_probability == 0.1
        assert result.health_index == 100
        assert result.prediction_method == PredictionMethod.STATISTICAL
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.component_status == []

    @pytest.mark.asyncio
    async def test_statistical_failure(self, store, engine):
        """测试统计退化到失效"""
        load(store, daily_degradation(list(np.linspace(10, 100, 15))))

        result = await engine.calculate_rul("pump-01", ORG)

        assert result.remaining_days == 0
        assert result.failure_probability == pytest.approx(0.8)
        assert result.health_index == 0
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.prediction_method == PredictionMethod.STATISTICAL
        assert result.confidence_score == pytest.approx(0.5, abs=1e-4)
        assert result.degradation_rate == pytest.approx(90 / 14)
        assert result.recommendations[0].startswith("URGENT")
        assert "Replace or service bearing - health at 0%" in result.recommendations

    @pytest.mark.asyncio
    async def test_window_excludes_old_records(self, store, engine):
        """测试退化窗口"""
        load(store, daily_degradation([10, 20, 30, 40], end=NOW - timedelta(days=40)))

        result = await engine.calculate_rul("pump-01", ORG)

        assert result.component_status == []
        assert result.remaining_days == 30

    @pytest.mark.asyncio
    async def test_ml_prediction_wins(self, store, engine, caplog):
        """测试机器学习预测优先并应用置信度乘数"""
        load(store, daily_degradation(list(np.linspace(10, 100, 15))))
        store.add_model_metadata(ModelMetadata("m-1", confidence_multiplier=1.5, data_quality_tier="gold"))
        store.add_failure_prediction(FailurePrediction(
            equipment_id="pump-01",
            org_id=ORG,
            prediction_timestamp=NOW,
            failure_probability=0.5,
            confidence=0.8,
            model_id="m-1",
            model_type="LSTM-v2",
            predicted_failure_date=NOW + timedelta(days=20),
        ))

        with caplog.at_level(logging.INFO, logger="fleetpdm.maintenance.rul_engine"):
            result = await engine.calculate_rul("pump-01", ORG)

        assert result.prediction_method == PredictionMethod.ML_LSTM
        assert result.remaining_days == 20
        assert result.confidence_score == 0.95
        assert result.failure_probability == 0.5
        assert "1.5x" in caplog.text

    @pytest.mark.asyncio
    async def test_ml_prediction_without_degradation(self, store, engine):
        """测试仅有机器学习预测"""
        store.add_failure_prediction(FailurePrediction(
            "pump-01", ORG, NOW, failure_probability=0.5, confidence=0.8,
            model_type="random_forest", predicted_failure_date=NOW + timedelta(days=20)
        ))

        result = await engine.calculate_rul("pump-01", ORG)

        assert result.prediction_method == PredictionMethod.ML_RF
        assert result.confidence_score == 0.8
        assert result.health_index == 67
        assert result.risk_level == RiskLevel.HIGH

    @pytest.mark.asyncio
    async def test_ml_probability_is_clamped(self, store, engine):
        """测试故障概率上限"""
        store.add_failure_prediction(FailurePrediction(
            "pump-01", ORG, NOW, failure_probability=1.0, confidence=None
        ))

        result = await engine.calculate_rul("pump-01", ORG)

        assert result.failure_probability == 0.95
        assert result.confidence_score == 0.5
        assert result.remaining_days == 30
        assert result.prediction_method == PredictionMethod.HYBRID

    @pytest.mark.asyncio
    async def test_previous_risk_level(self, store, engine):
        """测试调用方提供上次等级时的滞回"""
        store.add_failure_prediction(FailurePrediction(
            "pump-01", ORG, NOW, failure_probability=0.1, confidence=0.8,
            predicted_failure_date=NOW + timedelta(days=22)
        ))

        stateless = await engine.calculate_rul("pump-01", ORG)
        held = await engine.calculate_rul("pump-01", ORG, previous_risk_level=RiskLevel.MEDIUM)

        assert stateless.risk_level == RiskLevel.HIGH
        assert held.risk_level == RiskLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_recommendations_capped(self, store, engine):
        """测试建议条数上限与顺序"""
        store.add_degradation(DegradationRecord(
            ORG, "pump-01", "bearing", NOW, 60.0,
            vibration_level=12.0, temperature=85.0, oil_condition=30.0,
            wear_particle_count=1500
        ))

        result = await engine.calculate_rul("pump-01", ORG)

        assert result.health_index == 76
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.recommendations == [
            "Plan maintenance within the next 2-3 weeks",
            "Monitor degradation trends closely",
            "Replace or service bearing - health at 40%",
            "Investigate bearing vibration levels - possible misalignment or bearing wear",
            "Check bearing cooling system - temperature elevated",
            "Schedule oil change for bearing - contamination detected",
        ]

    @pytest.mark.asyncio
    async def test_to_dict(self, store, engine):
        """测试序列化"""
        load(store, daily_degradation(list(np.linspace(10, 100, 15))))

        data = (await engine.calculate_rul("pump-01", ORG)).to_dict()

        assert data["risk_level"] == "critical"
        assert data["prediction_method"] == "statistical"
        assert data["component_status"][0]["component_type"] == "bearing"


class FailingStore(InMemoryTelemetryStore):
    """对指定设备读取失败的存储"""

    def __init__(self, broken):
        super().__init__()
        self.broken = set(broken)

    async def get_degradation_history(self, equipment_id, org_id, since):
        if equipment_id in self.broken:
            raise RuntimeError("degradation backend unavailable")
        return await super().get_degradation_history(equipment_id, org_id, since)


class TestBatchRul:
    """测试批量RUL计算"""

    @pytest.mark.asyncio
    async def test_batch(self, engine):
        """测试未知设备不出现在结果中"""
        results = await engine.calculate_batch_rul(["pump-01", "ghost", "pump-02"], ORG)
        assert set(results) == {"pump-01", "pump-02"}

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, clock, caplog):
        """测试单台失败不影响其他设备"""
        store = FailingStore(broken={"pump-02"})
        store.add_equipment(EquipmentRecord("pump-01", ORG, "pump"))
        store.add_equipment(EquipmentRecord("pump-02", ORG, "pump"))
        engine = RulEngine(store, clock=clock)

        with caplog.at_level(logging.WARNING, logger="fleetpdm.maintenance.rul_engine"):
            results = await engine.calculate_batch_rul(["pump-01", "pump-02"], ORG)

        assert list(results) == ["pump-01"]
        assert "pump-02" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine):
        """测试空列表"""
        assert await engine.calculate_batch_rul([], ORG) == {}


class TestRecordDegradation:
    """测试退化记录写入"""

    @pytest.mark.asyncio
    async def test_first_record(self, store, engine):
        """测试首条记录速率为0"""
        record = await engine.record_degradation(
            ORG, "pump-01", "bearing", {"degradation_metric": 12.0, "vibration_level": 3.1}
        )

        assert record.degradation_rate == 0
        assert record.timestamp == NOW
        assert record.vibration_level == 3.1
        assert await store.get_latest_degradation(ORG, "pump-01", "bearing") is record

    @pytest.mark.asyncio
    async def test_rate_against_previous(self, store, engine):
        """测试相对上一条记录的每日速率"""
        store.add_degradation(DegradationRecord(ORG, "pump-01", "bearing", NOW - timedelta(days=2), 10.0))

        record = await engine.record_degradation(
            ORG, "pump-01", "bearing", {"degradation_metric": 20.0}
        )
        assert record.degradation_rate == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_recorded_rate_visible_in_rul(self, store, engine):
        """测试写入后立即计算RUL可见新速率"""
        store.add_equipment(EquipmentRecord("pump-01", ORG, "pump"))
        store.add_degradation(DegradationRecord(ORG, "pump-01", "bearing", NOW - timedelta(days=4), 10.0))

        record = await engine.record_degradation(
            ORG, "pump-01", "bearing", {"degradation_metric": 30.0}
        )
        prediction = await engine.calculate_rul("pump-01", ORG)

        assert record.degradation_rate == pytest.approx(5.0)
        status = prediction.component_status[0]
        assert status.component_type == "bearing"
        assert status.degradation_metric == 30.0
        assert status.degradation_rate == record.degradation_rate

    @pytest.mark.asyncio
    async def test_previous_is_tenant_scoped(self, store, engine):
        """测试其他租户的记录不参与速率计算"""
        store.add_degradation(DegradationRecord(OTHER_ORG, "pump-01", "bearing", NOW - timedelta(days=2), 10.0))

        record = await engine.record_degradation(
            ORG, "pump-01", "bearing", {"degradation_metric": 20.0}
        )
        assert record.degradation_rate == 0

    @pytest.mark.asyncio
    async def test_invalid_metrics(self, engine):
        """测试非法指标"""
        with pytest.raises(ValueError, match="Unknown degradation metrics"):
            await engine.record_degradation(
                ORG, "pump-01", "bearing", {"degradation_metric": 1.0, "colour": "red"}
            )
        with pytest.raises(ValueError, match="degradation_metric is required"):
            await engine.record_degradation(ORG, "pump-01", "bearing", {"vibration_level": 1.0})


def test_create_rul_engine():
    """测试工厂函数"""
    engine = create_rul_engine(InMemoryTelemetryStore())
    assert isinstance(engine, RulEngine)
    assert engine.config.degradation_window_days == 30
