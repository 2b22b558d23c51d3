"""
机队汇总测试
Tests for fleet metrics, rankings and recommendations
"""

import pytest

from conftest import NOW, hourly_samples
from fleetpdm.analytics import (
    AnomalyDetector,
    Forecaster,
    SeasonalityAnalyzer,
    SeverityLevel,
    StatisticsCalculator,
    TrendAnalysisResult,
    TrendType,
    aggregate_fleet_metrics,
    generate_fleet_recommendations,
    rank_equipment,
)
from fleetpdm.analytics.fleet_trends import build_fleet_summary, risk_score


def spiky_values():
    """每4个点一个尖峰, 异常率恰为25%"""
    return [20.0 if i % 4 == 0 else 10.0 for i in range(40)]


def quiet_values():
    return [10.0 + 0.1 * (i % 2) for i in range(40)]


def make_analysis(equipment_id, values, sensor_type="temperature"):
    """直接用计算器构造单传感器分析结果"""
    samples = hourly_samples(values)
    timestamps = [s.timestamp for s in samples]
    summary = StatisticsCalculator().calculate_summary(values)
    seasonality = SeasonalityAnalyzer().analyze(values)
    return TrendAnalysisResult(
        equipment_id=equipment_id,
        sensor_type=sensor_type,
        time_range=(timestamps[0], timestamps[-1]),
        statistical_summary=summary,
        anomaly_detection=AnomalyDetector().detect(values, timestamps),
        forecasting=Forecaster().forecast(values, timestamps, summary, seasonality),
        seasonality=seasonality,
    )


class TestFleetMetrics:
    """测试机队汇总指标"""

    def test_empty_fleet(self):
        """测试空机队"""
        metrics = aggregate_fleet_metrics([])

        assert metrics.health_score == 0
        assert metrics.anomaly_rate == 0
        assert metrics.maintenance_risk == SeverityLevel.CRITICAL

    def test_mixed_fleet(self):
        """测试一台尖峰设备加一台平稳设备"""
        metrics = aggregate_fleet_metrics([
            make_analysis("pump-01", spiky_values()),
            make_analysis("pump-02", quiet_values()),
        ])

        assert metrics.anomaly_rate == pytest.approx(0.125)
        assert 50 <= metrics.health_score < 70
        assert metrics.maintenance_risk == SeverityLevel.MEDIUM

    def test_health_score_bounds(self):
        """测试健康分限制在0-100"""
        values = [0.0 if i % 2 else 100.0 for i in range(40)]
        metrics = aggregate_fleet_metrics([make_analysis("pump-01", values)])

        assert metrics.health_score == 0
        assert metrics.maintenance_risk == SeverityLevel.CRITICAL


class TestRanking:
    """测试设备风险排名"""

    def test_risk_score_factors(self):
        """测试风险因素"""
        analysis = make_analysis("pump-01", spiky_values())
        score, factors = risk_score(analysis)

        assert analysis.statistical_summary.trend.trend_type == TrendType.VOLATILE
        assert score == pytest.approx(25 + analysis.statistical_summary.std_dev * 10 + 25)
        assert factors == ["High anomaly rate", "Unstable trends"]

    def test_spiky_asset_ranks_first(self):
        """测试高异常设备排第一"""
        rankings = rank_equipment([
            make_analysis("pump-02", quiet_values()),
            make_analysis("pump-01", spiky_values()),
        ])

        assert [r.equipment_id for r in rankings] == ["pump-01", "pump-02"]
        assert [r.rank for r in rankings] == [1, 2]
        assert rankings[0].priority == SeverityLevel.CRITICAL
        assert rankings[1].priority == SeverityLevel.LOW
        assert rankings[1].risk_factors == []

    def test_one_entry_per_asset(self):
        """测试同一设备多传感器取最高分"""
        spiky = make_analysis("pump-01", spiky_values(), "temperature")
        quiet = make_analysis("pump-01", quiet_values(), "vibration")

        rankings = rank_equipment([quiet, spiky])

        assert len(rankings) == 1
        assert rankings[0].score == pytest.approx(risk_score(spiky)[0])


class TestRecommendations:
    """测试机队建议"""

    def test_spiky_asset_recommendations(self):
        """测试维护与监控建议"""
        analyses = [
            make_analysis("pump-01", spiky_values()),
            make_analysis("pump-02", quiet_values()),
        ]
        recommendations = generate_fleet_recommendations(
            analyses, aggregate_fleet_metrics(analyses)
        )

        assert [r.type for r in recommendations] == ["maintenance", "monitoring"]
        assert [r.priority for r in recommendations] == [1, 2]
        assert recommendations[0].equipment_ids == ["pump-01"]
        assert recommendations[0].time_frame == "24-48 hours"
        assert recommendations[0].description.startswith("Immediate maintenance required for 1 ")

    def test_equipment_ids_deduplicated(self):
        """测试设备标识去重"""
        analyses = [
            make_analysis("pump-01", spiky_values(), "temperature"),
            make_analysis("pump-01", spiky_values(), "vibration"),
        ]
        recommendations = generate_fleet_recommendations(
            analyses, aggregate_fleet_metrics(analyses)
        )

        for recommendation in recommendations:
            assert recommendation.equipment_ids == ["pump-01"]

    def test_optimization_for_high_risk_fleet(self):
        """测试高风险机队的整体优化建议"""
        analyses = [make_analysis("pump-01", [0.0 if i % 2 else 100.0 for i in range(40)])]
        recommendations = generate_fleet_recommendations(
            analyses, aggregate_fleet_metrics(analyses)
        )

        assert recommendations[-1].type == "optimization"
        assert recommendations[-1].priority == 3


class TestFleetSummary:
    """测试机队汇总组装"""

    def test_summary_to_dict(self):
        """测试序列化"""
        analyses = [make_analysis("pump-01", spiky_values())]
        summary = build_fleet_summary(
            "fleet-a", 1, ["temperature"], (NOW, NOW), analyses
        )
        data = summary.to_dict()

        assert data["fleet_id"] == "fleet-a"
        assert data["equipment_count"] == 1
        assert data["time_range"] == [NOW.isoformat(), NOW.isoformat()]
        assert data["aggregated_metrics"]["maintenance_risk"] in {"low", "medium", "high", "critical"}
        assert data["equipment_rankings"][0]["equipment_id"] == "pump-01"
