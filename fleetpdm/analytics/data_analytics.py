"""
Sensor Data Analytics Module for FleetPDM
传感器数据统计分析模块

实现统计摘要、集成异常检测、短期预测、周期性分析、跨传感器相关性分析

近似算法说明:
- 正态性检验使用68/95经验法则, 并非真正的Shapiro-Wilk检验
- p值使用简化的Student-t分布CDF: 0.5 + 0.5*sign(t)*sqrt(1 - exp(-2t²/π))
两者都保留为默认行为, 设置 rigorous=True 时改用scipy的严格检验,
这会改变趋势p值/相关显著性等结果
"""

import bisect
import math
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np
from scipy import stats

from fleetpdm.store.telemetry_store import SensorSample
from fleetpdm.utils.serialization import clamp_confidence, to_plain

logger = logging.getLogger(__name__)


# ============================================================
# 异常定义
# ============================================================

class InsufficientDataError(ValueError):
    """样本数不足以进行统计分析"""

    def __init__(self, count: int, required: int):
        self.count = count
        self.required = required
        super().__init__(
            f"Insufficient data for statistical analysis "
            f"({count} points, need >= {required})"
        )


# ============================================================
# 枚举定义
# ============================================================

class TrendType(Enum):
    """趋势类型"""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    VOLATILE = "volatile"


class AnomalySeverity(Enum):
    """单点异常严重程度"""
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    EXTREME = "extreme"


class SeverityLevel(Enum):
    """汇总风险等级"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ForecastMethod(Enum):
    """预测方法"""
    LINEAR = "linear"
    SEASONAL = "seasonal"
    EXPONENTIAL = "exponential"


class CycleType(Enum):
    """周期类型"""
    DAILY = "daily"
    WEEKLY = "weekly"
    OPERATIONAL = "operational"     # 8小时班次
    MAINTENANCE = "maintenance"     # 30天维护周期


class Relationship(Enum):
    """相关关系"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NONLINEAR = "nonlinear"
    NONE = "none"


class CorrelationStrength(Enum):
    """相关强度"""
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


class Causality(Enum):
    """因果关系推断"""
    NONE = "none"
    POSSIBLE = "possible"
    LIKELY = "likely"
    STRONG = "strong"


# ============================================================
# 数据类定义
# ============================================================

@dataclass
class DistributionAnalysis:
    """分布特征"""
    skewness: float
    kurtosis: float
    is_normal: bool
    normality_confidence: float


@dataclass
class TrendFit:
    """线性趋势拟合结果"""
    slope: float
    intercept: float
    r_squared: float
    p_value: float
    trend_type: TrendType


@dataclass
class StatisticalSummary:
    """统计摘要"""
    count: int
    mean: float
    median: float
    std_dev: float              # 总体标准差
    min_value: float
    max_value: float
    q1: float
    q2: float
    q3: float
    distribution: DistributionAnalysis
    trend: TrendFit


@dataclass
class AnomalyPoint:
    """异常点"""
    timestamp: datetime
    value: float
    expected_value: float
    deviation: float
    severity: AnomalySeverity
    confidence: float
    context: str = ""


@dataclass
class AnomalyAnalysis:
    """异常检测汇总"""
    anomalies: List[AnomalyPoint]
    total_anomalies: int
    anomaly_rate: float
    severity: SeverityLevel
    recommendation: str
    method: str = "hybrid"


@dataclass
class ForecastPoint:
    """预测点"""
    timestamp: datetime
    predicted_value: float
    lower: float
    upper: float
    probability: float


@dataclass
class ForecastMetrics:
    """预测误差指标(简化估计)"""
    mae: float
    rmse: float
    mape: float


@dataclass
class ForecastingResult:
    """预测结果"""
    method: ForecastMethod
    predictions: List[ForecastPoint]
    confidence: float
    horizon: int                # 小时
    metrics: ForecastMetrics
    recommendation: str = ""


@dataclass
class SeasonalCycle:
    """周期分量"""
    period: int                 # 小时(样本数)
    amplitude: float
    phase: float                # 弧度
    strength: float
    cycle_type: CycleType


@dataclass
class SeasonalityAnalysis:
    """周期性分析结果"""
    has_seasonality: bool
    cycles: List[SeasonalCycle] = field(default_factory=list)
    dominant_period: int = 0
    strength: float = 0.0
    recommendation: str = ""

    def dominant_cycle(self) -> Optional[SeasonalCycle]:
        """获取主周期"""
        for cycle in self.cycles:
            if cycle.period == self.dominant_period:
                return cycle
        return None


@dataclass
class CorrelationAnalysis:
    """跨传感器相关性"""
    target_sensor: str
    correlated_sensor: str
    correlation: float
    significance: float
    lag_hours: int
    relationship: Relationship
    strength: CorrelationStrength
    causality: Causality

    def to_dict(self) -> Dict:
        return to_plain(self)


# ============================================================
# 分布函数
# ============================================================

def approximate_t_cdf(t: float) -> float:
    """简化的Student-t分布CDF(与自由度无关的近似)"""
    sign = (t > 0) - (t < 0)
    return 0.5 + 0.5 * sign * math.sqrt(1 - math.exp(-2 * t * t / math.pi))


def two_sided_p_value(t: float, df: int, rigorous: bool = False) -> float:
    """双侧p值"""
    if df <= 0:
        return 1.0
    if rigorous:
        p_value = 2 * stats.t.sf(abs(t), df)
    else:
        p_value = 2 * (1 - approximate_t_cdf(abs(t)))
    return max(0.0, min(1.0, float(p_value)))


def population_std(values: Sequence[float]) -> float:
    """总体标准差"""
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


# ============================================================
# 统计计算器
# ============================================================

class StatisticsCalculator:
    """统计计算器"""

    def __init__(self, rigorous: bool = False):
        self.rigorous = rigorous

    def calculate_summary(self, values: List[float]) -> StatisticalSummary:
        """计算统计摘要"""
        if not values:
            raise InsufficientDataError(0, 1)

        n = len(values)
        sorted_values = sorted(values)
        mean = statistics.fmean(values)
        std_dev = population_std(values)

        q1 = self.percentile(sorted_values, 25)
        q2 = self.percentile(sorted_values, 50)
        q3 = self.percentile(sorted_values, 75)

        is_normal, normality_confidence = self.normality_check(values)
        distribution = DistributionAnalysis(
            skewness=self._skewness(values, mean, std_dev),
            kurtosis=self._kurtosis(values, mean, std_dev),
            is_normal=is_normal,
            normality_confidence=normality_confidence
        )

        return StatisticalSummary(
            count=n,
            mean=mean,
            median=q2,
            std_dev=std_dev,
            min_value=sorted_values[0],
            max_value=sorted_values[-1],
            q1=q1,
            q2=q2,
            q3=q3,
            distribution=distribution,
            trend=self.fit_trend(values)
        )

    @staticmethod
    def percentile(sorted_values: List[float], p: float) -> float:
        """计算百分位数(线性插值)"""
        n = len(sorted_values)
        k = (n - 1) * p / 100
        f = math.floor(k)
        c = math.ceil(k)

        if f == c:
            return sorted_values[int(k)]

        return sorted_values[int(f)] * (c - k) + sorted_values[int(c)] * (k - f)

    @staticmethod
    def _skewness(values: List[float], mean: float, std_dev: float) -> float:
        """计算样本偏度"""
        n = len(values)
        if n < 3 or std_dev == 0:
            return 0.0

        total = sum(((x - mean) / std_dev) ** 3 for x in values)
        return (n / ((n - 1) * (n - 2))) * total

    @staticmethod
    def _kurtosis(values: List[float], mean: float, std_dev: float) -> float:
        """计算超额峰度"""
        n = len(values)
        if n < 4 or std_dev == 0:
            return 0.0

        total = sum(((x - mean) / std_dev) ** 4 for x in values)
        return (
            (n * (n + 1)) / ((n - 1) * (n - 2) * (n - 3)) * total
            - (3 * (n - 1) ** 2) / ((n - 2) * (n - 3))
        )

    def normality_check(self, values: List[float]) -> Tuple[bool, float]:
        """正态性检验

        默认按68/95经验法则统计落在1σ/2σ内的比例(样本标准差),
        rigorous模式下使用scipy的Shapiro-Wilk检验
        """
        n = len(values)
        if n < 8:
            return False, 0.0

        std_dev = statistics.stdev(values)
        if std_dev == 0:
            return False, 0.0

        if self.rigorous:
            _, p_value = stats.shapiro(values)
            return bool(p_value > 0.05), clamp_confidence(float(p_value))

        mean = statistics.fmean(values)
        within_one = 0
        within_two = 0
        for x in values:
            z = abs((x - mean) / std_dev)
            if z <= 1:
                within_one += 1
            if z <= 2:
                within_two += 1

        pct_one = within_one / n
        pct_two = within_two / n
        is_normal = pct_one >= 0.6 and pct_two >= 0.9
        return is_normal, clamp_confidence((pct_one + pct_two) / 2)

    def fit_trend(self, values: List[float]) -> TrendFit:
        """按样本序号做最小二乘线性回归并分类趋势"""
        n = len(values)
        x = list(range(n))
        sum_x = sum(x)
        sum_y = sum(values)
        sum_xy = sum(xi * yi for xi, yi in zip(x, values))
        sum_xx = sum(xi * xi for xi in x)

        denominator = n * sum_xx - sum_x * sum_x
        if denominator == 0:
            mean = sum_y / n if n else 0.0
            return TrendFit(0.0, mean, 0.0, 1.0, TrendType.STABLE)

        slope = (n * sum_xy - sum_x * sum_y) / denominator
        intercept = (sum_y - slope * sum_x) / n

        mean_y = sum_y / n
        ss_res = sum((yi - (slope * xi + intercept)) ** 2 for xi, yi in zip(x, values))
        ss_tot = sum((yi - mean_y) ** 2 for yi in values)
        r_squared = 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0

        # 标准误沿用未中心化的 Σx²
        if n <= 2:
            p_value = 1.0
        else:
            se = math.sqrt(ss_res / ((n - 2) * sum_xx))
            if se == 0:
                p_value = 0.0 if slope != 0 else 1.0
            else:
                p_value = two_sided_p_value(slope / se, n - 2, self.rigorous)

        if abs(slope) < 0.001:
            trend_type = TrendType.STABLE
        elif r_squared < 0.1:
            trend_type = TrendType.VOLATILE
        elif slope > 0:
            trend_type = TrendType.INCREASING
        else:
            trend_type = TrendType.DECREASING

        return TrendFit(
            slope=slope,
            intercept=intercept,
            r_squared=r_squared,
            p_value=p_value,
            trend_type=trend_type
        )


# ============================================================
# 异常检测器
# ============================================================

ANOMALY_VERDICTS = [
    (0.05, SeverityLevel.LOW,
     "Equipment operating within normal parameters. Continue routine monitoring."),
    (0.15, SeverityLevel.MEDIUM,
     "Moderate anomaly rate detected. Increase monitoring frequency and investigate patterns."),
    (0.30, SeverityLevel.HIGH,
     "High anomaly rate indicates potential equipment degradation. Schedule diagnostic maintenance."),
]
CRITICAL_ANOMALY_RECOMMENDATION = (
    "Critical anomaly rate detected. Immediate maintenance intervention required."
)


class AnomalyDetector:
    """集成异常检测器(IQR + Z-score + 滑动窗口孤立度)"""

    IQR_CONFIDENCE = 0.85
    ZSCORE_CONFIDENCE = 0.90
    ISOLATION_CONFIDENCE = 0.80

    def __init__(
        self,
        z_threshold: float = 2.5,
        iqr_multiplier: float = 1.5,
        isolation_threshold: float = 3.0,
        max_half_window: int = 20
    ):
        self.z_threshold = z_threshold
        self.iqr_multiplier = iqr_multiplier
        self.isolation_threshold = isolation_threshold
        self.max_half_window = max_half_window

    def detect(
        self,
        values: List[float],
        timestamps: List[datetime]
    ) -> AnomalyAnalysis:
        """运行三种检测方法并合并"""
        anomalies = self.combine([
            self._detect_iqr(values, timestamps),
            self._detect_zscore(values, timestamps),
            self._detect_isolation(values, timestamps),
        ])

        anomaly_rate = len(anomalies) / len(values) if values else 0.0
        severity, recommendation = self.verdict(anomaly_rate)

        return AnomalyAnalysis(
            anomalies=anomalies,
            total_anomalies=len(anomalies),
            anomaly_rate=anomaly_rate,
            severity=severity,
            recommendation=recommendation
        )

    @staticmethod
    def verdict(anomaly_rate: float) -> Tuple[SeverityLevel, str]:
        """按异常率给出等级和建议"""
        for limit, level, recommendation in ANOMALY_VERDICTS:
            if anomaly_rate < limit:
                return level, recommendation
        return SeverityLevel.CRITICAL, CRITICAL_ANOMALY_RECOMMENDATION

    @staticmethod
    def classify_severity(deviation: float, scale: float) -> AnomalySeverity:
        """按偏差/尺度分级"""
        if scale <= 0:
            return AnomalySeverity.EXTREME

        ratio = deviation / scale
        if ratio < 2:
            return AnomalySeverity.MILD
        if ratio < 3:
            return AnomalySeverity.MODERATE
        if ratio < 5:
            return AnomalySeverity.SEVERE
        return AnomalySeverity.EXTREME

    @staticmethod
    def combine(anomaly_lists: List[List[AnomalyPoint]]) -> List[AnomalyPoint]:
        """按时间戳去重, 保留置信度最高的检测结果"""
        combined: Dict[datetime, AnomalyPoint] = {}

        for anomalies in anomaly_lists:
            for anomaly in anomalies:
                existing = combined.get(anomaly.timestamp)
                if existing is None or anomaly.confidence > existing.confidence:
                    combined[anomaly.timestamp] = anomaly

        return sorted(combined.values(), key=lambda a: a.timestamp)

    def _detect_iqr(
        self,
        values: List[float],
        timestamps: List[datetime]
    ) -> List[AnomalyPoint]:
        """IQR异常检测"""
        sorted_values = sorted(values)
        q1 = StatisticsCalculator.percentile(sorted_values, 25)
        q3 = StatisticsCalculator.percentile(sorted_values, 75)
        iqr = q3 - q1
        lower_bound = q1 - self.iqr_multiplier * iqr
        upper_bound = q3 + self.iqr_multiplier * iqr
        expected = (q1 + q3) / 2

        anomalies = []
        for timestamp, value in zip(timestamps, values):
            if value < lower_bound or value > upper_bound:
                deviation = abs(value - expected)
                anomalies.append(AnomalyPoint(
                    timestamp=timestamp,
                    value=value,
                    expected_value=expected,
                    deviation=deviation,
                    severity=self.classify_severity(deviation, iqr),
                    confidence=self.IQR_CONFIDENCE,
                    context="IQR-based outlier detection"
                ))

        return anomalies

    def _detect_zscore(
        self,
        values: List[float],
        timestamps: List[datetime]
    ) -> List[AnomalyPoint]:
        """Z-score异常检测(全局均值/总体标准差)"""
        mean = statistics.fmean(values)
        std = population_std(values)
        if std == 0:
            return []

        anomalies = []
        for timestamp, value in zip(timestamps, values):
            z_score = abs((value - mean) / std)
            if z_score > self.z_threshold:
                deviation = abs(value - mean)
                anomalies.append(AnomalyPoint(
                    timestamp=timestamp,
                    value=value,
                    expected_value=mean,
                    deviation=deviation,
                    severity=self.classify_severity(deviation, std),
                    confidence=self.ZSCORE_CONFIDENCE,
                    context=f"Z-score: {z_score:.2f}"
                ))

        return anomalies

    def _detect_isolation(
        self,
        values: List[float],
        timestamps: List[datetime]
    ) -> List[AnomalyPoint]:
        """滑动窗口孤立度检测(简化的孤立森林)"""
        n = len(values)
        half_window = min(self.max_half_window, n // 5)
        data = np.asarray(values, dtype=float)

        anomalies = []
        for i in range(half_window, n - half_window):
            window = data[i - half_window:i + half_window + 1]
            window_mean = float(np.mean(window))
            window_std = float(np.std(window))
            if window_std == 0:
                continue

            score = abs((values[i] - window_mean) / window_std)
            if score > self.isolation_threshold:
                deviation = abs(values[i] - window_mean)
                anomalies.append(AnomalyPoint(
                    timestamp=timestamps[i],
                    value=values[i],
                    expected_value=window_mean,
                    deviation=deviation,
                    severity=self.classify_severity(deviation, window_std),
                    confidence=self.ISOLATION_CONFIDENCE,
                    context=f"Isolation score: {score:.2f}"
                ))

        return anomalies


# ============================================================
# 周期性分析器
# ============================================================

CANDIDATE_PERIODS = [
    (24, CycleType.DAILY),
    (168, CycleType.WEEKLY),
    (8, CycleType.OPERATIONAL),
    (720, CycleType.MAINTENANCE),
]


class SeasonalityAnalyzer:
    """基于自相关的周期性分析"""

    def __init__(self, threshold: float = 0.3):
        self.threshold = threshold

    def analyze(self, values: List[float]) -> SeasonalityAnalysis:
        """检测候选周期"""
        cycles = []
        dominant_period = 0
        max_strength = 0.0

        for period, cycle_type in CANDIDATE_PERIODS:
            # 至少两个完整周期
            if len(values) < period * 2:
                continue

            strength = abs(self.autocorrelation(values, period))
            if strength <= self.threshold:
                continue

            cycles.append(SeasonalCycle(
                period=period,
                amplitude=self._amplitude(values, period),
                phase=self._phase(values, period),
                strength=strength,
                cycle_type=cycle_type
            ))

            if strength > max_strength:
                max_strength = strength
                dominant_period = period

        has_seasonality = bool(cycles)
        if has_seasonality:
            recommendation = (
                f"Seasonal patterns detected ({dominant_period}h cycle). "
                f"Consider time-based maintenance scheduling."
            )
        else:
            recommendation = (
                "No significant seasonal patterns detected. "
                "Equipment operates consistently."
            )

        return SeasonalityAnalysis(
            has_seasonality=has_seasonality,
            cycles=cycles,
            dominant_period=dominant_period,
            strength=max_strength,
            recommendation=recommendation
        )

    @staticmethod
    def autocorrelation(values: List[float], lag: int) -> float:
        """滞后自相关(前后两段分别去均值)"""
        data = np.asarray(values, dtype=float)
        if lag >= len(data) - 1:
            return 0.0

        n = len(data) - lag
        head = data[:n] - data[:n].mean()
        tail = data[lag:lag + n] - data[lag:lag + n].mean()

        denominator = math.sqrt(float(np.sum(head * head)) * float(np.sum(tail * tail)))
        if denominator == 0:
            return 0.0
        return float(np.sum(head * tail)) / denominator

    @staticmethod
    def _amplitude(values: List[float], period: int) -> float:
        """分段均值偏差估计振幅"""
        segments = len(values) // period
        if segments < 2:
            return 0.0

        segment_means = [
            statistics.fmean(values[s * period:(s + 1) * period])
            for s in range(segments)
        ]
        overall = statistics.fmean(segment_means)
        return statistics.fmean(abs(m - overall) for m in segment_means)

    @staticmethod
    def _phase(values: List[float], period: int) -> float:
        """穷举起始偏移, 取周期乘积均值最大者"""
        n = len(values)
        if n // period < 2:
            return 0.0

        best_corr = 0.0
        best_phase = 0
        for phase in range(period):
            products = [
                values[i] * values[i + period]
                for i in range(phase, n - period, period)
            ]
            if not products:
                continue
            corr = sum(products) / len(products)
            if abs(corr) > abs(best_corr):
                best_corr = corr
                best_phase = phase

        return best_phase / period * 2 * math.pi


# ============================================================
# 预测器
# ============================================================

class Forecaster:
    """短期预测(线性/指数平滑/周期叠加)"""

    def __init__(self, horizon_hours: int = 24, alpha: float = 0.3):
        self.horizon_hours = horizon_hours
        self.alpha = alpha

    def forecast(
        self,
        values: List[float],
        timestamps: List[datetime],
        summary: StatisticalSummary,
        seasonality: SeasonalityAnalysis
    ) -> ForecastingResult:
        """选择方法并生成预测"""
        method = self.select_method(summary.trend, seasonality)

        if method == ForecastMethod.SEASONAL:
            result = self.seasonal(values, timestamps, summary, seasonality)
        elif method == ForecastMethod.LINEAR:
            result = self.linear(values, timestamps, summary)
        else:
            result = self.exponential(values, timestamps)

        result.recommendation = self.recommendation(result.confidence)
        return result

    @staticmethod
    def select_method(
        trend: TrendFit,
        seasonality: SeasonalityAnalysis
    ) -> ForecastMethod:
        """周期强度 > 0.4 用周期法, R² > 0.3 用线性, 否则指数平滑"""
        if seasonality.has_seasonality and seasonality.strength > 0.4:
            return ForecastMethod.SEASONAL
        if trend.r_squared > 0.3:
            return ForecastMethod.LINEAR
        return ForecastMethod.EXPONENTIAL

    def _future_times(self, timestamps: List[datetime]) -> List[datetime]:
        last = timestamps[-1]
        return [last + timedelta(hours=h) for h in range(1, self.horizon_hours + 1)]

    def linear(
        self,
        values: List[float],
        timestamps: List[datetime],
        summary: StatisticalSummary
    ) -> ForecastingResult:
        """线性趋势外推"""
        n = len(values)
        trend = summary.trend
        std = summary.std_dev
        margin = 1.96 * std
        probability = clamp_confidence(max(0.5, trend.r_squared))

        predictions = []
        for h, ts in enumerate(self._future_times(timestamps), start=1):
            predicted = trend.intercept + trend.slope * (n + h - 1)
            predictions.append(ForecastPoint(
                timestamp=ts,
                predicted_value=predicted,
                lower=predicted - margin,
                upper=predicted + margin,
                probability=probability
            ))

        return ForecastingResult(
            method=ForecastMethod.LINEAR,
            predictions=predictions,
            confidence=clamp_confidence(trend.r_squared),
            horizon=self.horizon_hours,
            metrics=ForecastMetrics(
                mae=std * 0.8,
                rmse=std,
                mape=_percentage(std, summary.mean)
            )
        )

    def exponential(
        self,
        values: List[float],
        timestamps: List[datetime]
    ) -> ForecastingResult:
        """简单指数平滑"""
        smoothed = [values[0]]
        for value in values[1:]:
            smoothed.append(self.alpha * value + (1 - self.alpha) * smoothed[-1])

        level = smoothed[-1]
        residuals = [abs(v - s) for v, s in zip(values, smoothed)]
        mae = statistics.fmean(residuals)
        rmse = math.sqrt(statistics.fmean(r * r for r in residuals))
        margin = 1.96 * mae

        predictions = [
            ForecastPoint(
                timestamp=ts,
                predicted_value=level,
                lower=level - margin,
                upper=level + margin,
                probability=0.75
            )
            for ts in self._future_times(timestamps)
        ]

        return ForecastingResult(
            method=ForecastMethod.EXPONENTIAL,
            predictions=predictions,
            confidence=0.75,
            horizon=self.horizon_hours,
            metrics=ForecastMetrics(
                mae=mae,
                rmse=rmse,
                mape=_percentage(mae, statistics.fmean(abs(v) for v in values))
            )
        )

    def seasonal(
        self,
        values: List[float],
        timestamps: List[datetime],
        summary: StatisticalSummary,
        seasonality: SeasonalityAnalysis
    ) -> ForecastingResult:
        """线性趋势 + 主周期余弦分量"""
        cycle = seasonality.dominant_cycle()
        if cycle is None:
            return self.linear(values, timestamps, summary)

        n = len(values)
        trend = summary.trend
        period = cycle.period
        margin = 1.5 * cycle.amplitude
        probability = clamp_confidence(cycle.strength)

        predictions = []
        for h, ts in enumerate(self._future_times(timestamps), start=1):
            seasonal_phase = (h % period) / period * 2 * math.pi
            predicted = (
                trend.intercept
                + trend.slope * (n + h - 1)
                + cycle.amplitude * math.cos(seasonal_phase + cycle.phase)
            )
            predictions.append(ForecastPoint(
                timestamp=ts,
                predicted_value=predicted,
                lower=predicted - margin,
                upper=predicted + margin,
                probability=probability
            ))

        return ForecastingResult(
            method=ForecastMethod.SEASONAL,
            predictions=predictions,
            confidence=probability,
            horizon=self.horizon_hours,
            metrics=ForecastMetrics(
                mae=cycle.amplitude * 0.5,
                rmse=cycle.amplitude * 0.7,
                mape=_percentage(cycle.amplitude, summary.mean)
            )
        )

    @staticmethod
    def recommendation(confidence: float) -> str:
        """根据置信度生成建议"""
        pct = f"{confidence * 100:.1f}%"
        if confidence > 0.8:
            return (
                f"High confidence forecast ({pct}). "
                f"Suitable for proactive maintenance planning."
            )
        if confidence > 0.6:
            return (
                f"Moderate confidence forecast ({pct}). "
                f"Use for trend awareness, validate with additional sensors."
            )
        return (
            f"Low confidence forecast ({pct}). "
            f"Equipment behavior is unpredictable, increase monitoring frequency."
        )


def _percentage(numerator: float, reference: float) -> float:
    """百分比误差, 参考值为0时记为0"""
    if reference == 0:
        return 0.0
    return numerator / abs(reference) * 100


# ============================================================
# 相关性分析器
# ============================================================

class CorrelationAnalyzer:
    """跨传感器相关性分析器"""

    def __init__(
        self,
        tolerance: timedelta = timedelta(minutes=5),
        min_points: int = 10,
        max_lag: int = 10,
        rigorous: bool = False
    ):
        self.tolerance = tolerance
        self.min_points = min_points
        self.max_lag = max_lag
        self.rigorous = rigorous

    def analyze(
        self,
        target_sensor: str,
        correlated_sensor: str,
        target: List[SensorSample],
        other: List[SensorSample]
    ) -> Optional[CorrelationAnalysis]:
        """分析两路传感器的相关性, 不值得报告时返回None"""
        aligned_target, aligned_other = self.align(target, other)
        if len(aligned_target) < self.min_points:
            return None

        correlation = self.pearson(aligned_target, aligned_other)
        significance = self.significance(correlation, len(aligned_target))
        lag, _ = self.lag_correlation(aligned_target, aligned_other)

        if abs(correlation) <= 0.2 and significance >= 0.05:
            return None

        return CorrelationAnalysis(
            target_sensor=target_sensor,
            correlated_sensor=correlated_sensor,
            correlation=correlation,
            significance=significance,
            lag_hours=lag,
            relationship=self.relationship(correlation),
            strength=self.strength(abs(correlation)),
            causality=self.causality(correlation, significance, lag)
        )

    def align(
        self,
        target: List[SensorSample],
        other: List[SensorSample]
    ) -> Tuple[List[float], List[float]]:
        """按时间容差对齐, 每个目标点取第一个落入容差的对方样本"""
        other_times = [s.timestamp for s in other]
        aligned_target = []
        aligned_other = []

        for sample in target:
            idx = bisect.bisect_left(other_times, sample.timestamp - self.tolerance)
            if idx < len(other) and other_times[idx] <= sample.timestamp + self.tolerance:
                aligned_target.append(sample.value)
                aligned_other.append(other[idx].value)

        return aligned_target, aligned_other

    @staticmethod
    def pearson(x: List[float], y: List[float]) -> float:
        """计算Pearson相关系数"""
        n = len(x)
        if n == 0 or n != len(y):
            return 0.0

        mean_x = sum(x) / n
        mean_y = sum(y) / n

        numerator = sum((xi - mean_x) * (yi - mean_y) for xi, yi in zip(x, y))
        denominator_x = sum((xi - mean_x) ** 2 for xi in x)
        denominator_y = sum((yi - mean_y) ** 2 for yi in y)

        if denominator_x == 0 or denominator_y == 0:
            return 0.0

        return numerator / math.sqrt(denominator_x * denominator_y)

    def significance(self, correlation: float, n: int) -> float:
        """相关系数显著性(简化t检验)"""
        if n < 3:
            return 1.0
        if abs(correlation) >= 1:
            return 0.0

        t_stat = correlation * math.sqrt((n - 2) / (1 - correlation ** 2))
        return two_sided_p_value(t_stat, n - 2, self.rigorous)

    def lag_correlation(self, x: List[float], y: List[float]) -> Tuple[int, float]:
        """滞后相关扫描, 正滞后表示y落后于x"""
        n = len(x)
        max_lag = min(self.max_lag, n // 4)
        best_lag = 0
        best_corr = 0.0

        for lag in range(-max_lag, max_lag + 1):
            start = max(0, -lag)
            end = min(n, n - lag)
            if end <= start:
                continue

            corr = self.pearson(x[start:end], y[start + lag:end + lag])
            if abs(corr) > abs(best_corr):
                best_corr = corr
                best_lag = lag

        return best_lag, best_corr

    @staticmethod
    def relationship(correlation: float) -> Relationship:
        """判断相关方向"""
        if abs(correlation) < 0.1:
            return Relationship.NONE
        if correlation > 0.1:
            return Relationship.POSITIVE
        if correlation < -0.1:
            return Relationship.NEGATIVE
        return Relationship.NONLINEAR

    @staticmethod
    def strength(abs_correlation: float) -> CorrelationStrength:
        """判断相关强度"""
        if abs_correlation < 0.3:
            return CorrelationStrength.WEAK
        if abs_correlation < 0.5:
            return CorrelationStrength.MODERATE
        if abs_correlation < 0.7:
            return CorrelationStrength.STRONG
        return CorrelationStrength.VERY_STRONG

    @staticmethod
    def causality(correlation: float, significance: float, lag: int) -> Causality:
        """由相关强度和滞后推断因果可能性"""
        r = abs(correlation)
        if r < 0.3 or significance > 0.05:
            return Causality.NONE
        if r < 0.5 and lag == 0:
            return Causality.POSSIBLE
        if r >= 0.5 and abs(lag) <= 1:
            return Causality.LIKELY
        return Causality.STRONG


# ============================================================
# 综合结果
# ============================================================

@dataclass
class TrendAnalysisResult:
    """单传感器趋势分析结果"""
    equipment_id: str
    sensor_type: str
    time_range: Tuple[datetime, datetime]
    statistical_summary: StatisticalSummary
    anomaly_detection: AnomalyAnalysis
    forecasting: ForecastingResult
    seasonality: SeasonalityAnalysis
    correlations: List[CorrelationAnalysis] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return to_plain(self)
