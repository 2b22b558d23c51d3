"""
Enhanced Trends Analyzer for FleetPDM
设备传感器趋势分析服务

从遥测存储读取数据, 组合统计/异常/预测/周期/相关性分析,
并汇总为机队级趋势报告
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from fleetpdm.analytics.data_analytics import (
    AnomalyDetector,
    CorrelationAnalysis,
    CorrelationAnalyzer,
    Forecaster,
    InsufficientDataError,
    SeasonalityAnalyzer,
    StatisticsCalculator,
    TrendAnalysisResult,
)
from fleetpdm.analytics.fleet_trends import FleetTrendSummary, build_fleet_summary
from fleetpdm.store.telemetry_store import SensorSample, TelemetryStore, require_org
from fleetpdm.utils.config import Config

logger = logging.getLogger(__name__)


class EnhancedTrendsAnalyzer:
    """趋势分析服务"""

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

        rigorous = self.config.rigorous_statistics
        self.statistics_calculator = StatisticsCalculator(rigorous=rigorous)
        self.anomaly_detector = AnomalyDetector()
        self.seasonality_analyzer = SeasonalityAnalyzer()
        self.forecaster = Forecaster(horizon_hours=self.config.forecast_horizon_hours)
        self.correlation_analyzer = CorrelationAnalyzer(
            tolerance=timedelta(minutes=self.config.alignment_tolerance_minutes),
            min_points=self.config.min_aligned_points,
            rigorous=rigorous
        )

    def _time_range(self, hours: Optional[int]) -> Tuple[datetime, datetime]:
        hours = self.config.trend_window_hours if hours is None else hours
        if hours <= 0:
            raise ValueError(f"hours must be positive, got {hours}")
        end = self.clock()
        return end - timedelta(hours=hours), end

    async def analyze_equipment_trends(
        self,
        org_id: str,
        equipment_id: str,
        sensor_type: str,
        hours: Optional[int] = None,
        include_correlations: bool = True
    ) -> TrendAnalysisResult:
        """分析单台设备单个传感器的趋势

        Raises:
            InsufficientDataError: 窗口内样本少于最小样本数
        """
        require_org(org_id)
        start, end = self._time_range(hours)
        self.logger.info(
            f"Analyzing trends {org_id}:{equipment_id}:{sensor_type} "
            f"from {start.isoformat()} to {end.isoformat()}"
        )

        samples = await self.store.get_telemetry_history(
            org_id, equipment_id, sensor_type, start, end
        )
        # 存储不保证返回顺序, 统计前按时间稳定排序
        samples = sorted(samples, key=lambda s: s.timestamp)
        self.logger.debug(f"Fetched {len(samples)} samples for {equipment_id}:{sensor_type}")

        required = self.config.min_trend_samples
        if len(samples) < required:
            raise InsufficientDataError(len(samples), required)

        values = [s.value for s in samples]
        timestamps = [s.timestamp for s in samples]

        summary = self.statistics_calculator.calculate_summary(values)
        anomalies = self.anomaly_detector.detect(values, timestamps)
        seasonality = self.seasonality_analyzer.analyze(values)
        forecasting = self.forecaster.forecast(values, timestamps, summary, seasonality)

        correlations = []
        if include_correlations:
            correlations = await self._analyze_correlations(
                org_id, equipment_id, sensor_type, samples, start, end
            )

        return TrendAnalysisResult(
            equipment_id=equipment_id,
            sensor_type=sensor_type,
            time_range=(start, end),
            statistical_summary=summary,
            anomaly_detection=anomalies,
            forecasting=forecasting,
            seasonality=seasonality,
            correlations=correlations
        )

    async def _analyze_correlations(
        self,
        org_id: str,
        equipment_id: str,
        target_sensor: str,
        target_samples: List[SensorSample],
        start: datetime,
        end: datetime
    ) -> List[CorrelationAnalysis]:
        """与同一设备的其他传感器做相关性分析"""
        sensor_types = await self.store.get_equipment_sensor_types(org_id, equipment_id)

        correlations = []
        for sensor in sensor_types:
            if sensor == target_sensor:
                continue
            try:
                other = await self.store.get_telemetry_history(
                    org_id, equipment_id, sensor, start, end
                )
                if len(other) < self.config.min_aligned_points:
                    continue
                other = sorted(other, key=lambda s: s.timestamp)

                result = self.correlation_analyzer.analyze(
                    target_sensor, sensor, target_samples, other
                )
                if result is not None:
                    correlations.append(result)
            except Exception as e:
                self.logger.warning(
                    f"Correlation analysis failed for {equipment_id}:{sensor}: {e}"
                )

        correlations.sort(key=lambda c: abs(c.correlation), reverse=True)
        return correlations

    async def analyze_fleet_trends(
        self,
        org_id: str,
        equipment_ids: List[str],
        hours: Optional[int] = None
    ) -> FleetTrendSummary:
        """机队趋势分析, 单台设备失败只记录日志并跳过"""
        require_org(org_id)
        time_range = self._time_range(hours)
        self.logger.info(
            f"Analyzing fleet trends for {org_id}: {len(equipment_ids)} equipment units"
        )

        per_asset = await asyncio.gather(*[
            self._analyze_asset(org_id, equipment_id, hours)
            for equipment_id in equipment_ids
        ])

        sensor_types: List[str] = []
        analyses: List[TrendAnalysisResult] = []
        for asset_sensors, asset_analyses in per_asset:
            for sensor in asset_sensors:
                if sensor not in sensor_types:
                    sensor_types.append(sensor)
            analyses.extend(asset_analyses)

        return build_fleet_summary(
            fleet_id=self.config.fleet_id,
            equipment_count=len(equipment_ids),
            sensor_types=sensor_types,
            time_range=time_range,
            analyses=analyses
        )

    async def _analyze_asset(
        self,
        org_id: str,
        equipment_id: str,
        hours: Optional[int]
    ) -> Tuple[List[str], List[TrendAnalysisResult]]:
        """分析单台设备的主要传感器"""
        try:
            sensor_types = await self.store.get_equipment_sensor_types(org_id, equipment_id)
        except Exception as e:
            self.logger.warning(f"Fleet analysis failed for {org_id}:{equipment_id}: {e}")
            return [], []

        wanted = {t.lower() for t in self.config.primary_sensor_types}
        primary = [
            s for s in sensor_types
            if s.lower() in wanted
        ][:self.config.fleet_sensor_limit]

        analyses = []
        try:
            for sensor in primary:
                analyses.append(await self.analyze_equipment_trends(
                    org_id, equipment_id, sensor, hours,
                    include_correlations=False
                ))
        except Exception as e:
            self.logger.warning(f"Fleet analysis failed for {org_id}:{equipment_id}: {e}")
            return sensor_types, []

        return sensor_types, analyses


def create_trends_analyzer(
    store: TelemetryStore,
    config: Optional[Config] = None
) -> EnhancedTrendsAnalyzer:
    """创建趋势分析服务实例"""
    return EnhancedTrendsAnalyzer(store, config=config)
