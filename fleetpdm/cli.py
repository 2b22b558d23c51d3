"""
FleetPDM Command Line Interface (CLI)
机队预测性维护命令行工具

对JSON数据集运行分析:
- RUL计算
- 单传感器趋势分析
- 机队趋势汇总

退出码: 0 成功, 1 用法错误/设备不存在, 2 数据不足
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fleetpdm.analytics import EnhancedTrendsAnalyzer, InsufficientDataError
from fleetpdm.maintenance import RulEngine, parse_risk_level
from fleetpdm.store import InMemoryTelemetryStore
from fleetpdm.utils import Config, load_config, resolve_level, setup_logger

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_INSUFFICIENT_DATA = 2


class OutputFormatter:
    """输出格式化器"""

    def __init__(self, format_type: str = "text"):
        self.format_type = format_type

    def print_header(self, title: str):
        """打印标题"""
        if self.format_type == "text":
            print(f"\n{'='*60}")
            print(f"  {title}")
            print(f"{'='*60}")

    def print_section(self, title: str):
        """打印章节"""
        if self.format_type == "text":
            print(f"\n--- {title} ---")

    def print_item(self, key: str, value: Any, indent: int = 0):
        """打印项目"""
        prefix = "  " * indent
        if self.format_type == "text":
            print(f"{prefix}{key}: {value}")

    def print_table(self, headers: List[str], rows: List[List[Any]]):
        """打印表格"""
        if self.format_type != "text":
            return

        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(str(cell)))

        header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
        print(header_line)
        print("-" * len(header_line))
        for row in rows:
            print(" | ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)))

    def print_status(self, status: str, message: str):
        """打印状态(错误信息在JSON模式下输出到stderr)"""
        icons = {
            "ok": "✓",
            "error": "✗",
            "warning": "⚠",
            "info": "ℹ"
        }
        icon = icons.get(status, "•")
        if self.format_type == "text":
            print(f"  [{icon}] {message}")
        elif status == "error":
            print(json.dumps({"error": message}), file=sys.stderr)

    def print_json(self, data: Any):
        """打印JSON"""
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def load_dataset(path: str) -> InMemoryTelemetryStore:
    """读取JSON数据集到内存存储"""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return InMemoryTelemetryStore.from_dict(data)


class AnalysisCommands:
    """分析命令"""

    def __init__(
        self,
        formatter: OutputFormatter,
        config: Config,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.formatter = formatter
        self.config = config
        self.clock = clock

    def rul(
        self,
        store: InMemoryTelemetryStore,
        equipment_id: str,
        org_id: str,
        previous_risk: Optional[str] = None
    ) -> int:
        """计算并显示RUL"""
        engine = RulEngine(store, config=self.config, clock=self.clock)
        prediction = asyncio.run(engine.calculate_rul(
            equipment_id, org_id, parse_risk_level(previous_risk)
        ))

        if prediction is None:
            self.formatter.print_status("error", f"Unknown equipment: {equipment_id}")
            return EXIT_USAGE

        if self.formatter.format_type == "json":
            self.formatter.print_json(prediction.to_dict())
            return EXIT_OK

        self.formatter.print_header(f"RUL: {equipment_id}")
        self.formatter.print_item("Remaining days", prediction.remaining_days)
        self.formatter.print_item("Risk level", prediction.risk_level.value)
        self.formatter.print_item("Health index", prediction.health_index)
        self.formatter.print_item("Failure probability", f"{prediction.failure_probability:.2f}")
        self.formatter.print_item("Confidence", f"{prediction.confidence_score:.2f}")
        self.formatter.print_item("Method", prediction.prediction_method.value)
        self.formatter.print_item("Degradation rate", f"{prediction.degradation_rate:.3f}/day")

        if prediction.component_status:
            self.formatter.print_section("Components")
            self.formatter.print_table(
                ["Component", "Health", "Rate", "Days", "Critical"],
                [
                    [
                        c.component_type,
                        f"{c.health_score:.0f}",
                        f"{c.degradation_rate:.2f}",
                        c.predicted_failure_days,
                        ", ".join(c.critical_metrics) or "-"
                    ]
                    for c in prediction.component_status
                ]
            )

        self._print_recommendations(prediction.recommendations)
        return EXIT_OK

    def trends(
        self,
        store: InMemoryTelemetryStore,
        equipment_id: str,
        sensor_type: str,
        org_id: str,
        hours: Optional[int] = None,
        correlations: bool = True
    ) -> int:
        """单传感器趋势分析"""
        analyzer = EnhancedTrendsAnalyzer(store, config=self.config, clock=self.clock)
        result = asyncio.run(analyzer.analyze_equipment_trends(
            org_id, equipment_id, sensor_type, hours,
            include_correlations=correlations
        ))

        if self.formatter.format_type == "json":
            self.formatter.print_json(result.to_dict())
            return EXIT_OK

        summary = result.statistical_summary
        anomalies = result.anomaly_detection
        forecast = result.forecasting

        self.formatter.print_header(f"Trends: {equipment_id} / {sensor_type}")
        self.formatter.print_section("Statistics")
        self.formatter.print_item("Samples", summary.count)
        self.formatter.print_item("Mean", f"{summary.mean:.3f}")
        self.formatter.print_item("Std dev", f"{summary.std_dev:.3f}")
        self.formatter.print_item("Range", f"{summary.min_value:.3f} .. {summary.max_value:.3f}")
        self.formatter.print_item("Trend", f"{summary.trend.trend_type.value} "
                                  f"(slope={summary.trend.slope:.4f}, R²={summary.trend.r_squared:.3f})")

        self.formatter.print_section("Anomalies")
        self.formatter.print_item("Count", anomalies.total_anomalies)
        self.formatter.print_item("Rate", f"{anomalies.anomaly_rate:.1%}")
        self.formatter.print_item("Severity", anomalies.severity.value)
        self.formatter.print_status("info", anomalies.recommendation)

        self.formatter.print_section("Forecast")
        self.formatter.print_item("Method", forecast.method.value)
        self.formatter.print_item("Horizon", f"{forecast.horizon}h")
        if forecast.predictions:
            last = forecast.predictions[-1]
            self.formatter.print_item(
                "Final value",
                f"{last.predicted_value:.3f} [{last.lower:.3f}, {last.upper:.3f}]"
            )
        self.formatter.print_status("info", forecast.recommendation)

        self.formatter.print_section("Seasonality")
        self.formatter.print_status("info", result.seasonality.recommendation)

        if result.correlations:
            self.formatter.print_section("Correlations")
            self.formatter.print_table(
                ["Sensor", "r", "Lag", "Strength", "Causality"],
                [
                    [
                        c.correlated_sensor,
                        f"{c.correlation:.3f}",
                        c.lag_hours,
                        c.strength.value,
                        c.causality.value
                    ]
                    for c in result.correlations
                ]
            )
        return EXIT_OK

    def fleet(
        self,
        store: InMemoryTelemetryStore,
        org_id: str,
        equipment_ids: List[str],
        hours: Optional[int] = None
    ) -> int:
        """机队趋势汇总"""
        if not equipment_ids:
            equipment_ids = [
                eq_id for (org, eq_id) in store.equipment.keys() if org == org_id
            ]

        analyzer = EnhancedTrendsAnalyzer(store, config=self.config, clock=self.clock)
        summary = asyncio.run(analyzer.analyze_fleet_trends(org_id, equipment_ids, hours))

        if self.formatter.format_type == "json":
            self.formatter.print_json(summary.to_dict())
            return EXIT_OK

        metrics = summary.aggregated_metrics
        self.formatter.print_header(f"Fleet: {summary.fleet_id}")
        self.formatter.print_item("Equipment", summary.equipment_count)
        self.formatter.print_item("Sensor types", ", ".join(summary.sensor_types) or "-")
        self.formatter.print_item("Health score", f"{metrics.health_score:.1f}")
        self.formatter.print_item("Anomaly rate", f"{metrics.anomaly_rate:.1%}")
        self.formatter.print_item("Maintenance risk", metrics.maintenance_risk.value)

        if summary.equipment_rankings:
            self.formatter.print_section("Rankings")
            self.formatter.print_table(
                ["Rank", "Equipment", "Score", "Priority", "Risk factors"],
                [
                    [
                        r.rank,
                        r.equipment_id,
                        f"{r.score:.1f}",
                        r.priority.value,
                        ", ".join(r.risk_factors) or "-"
                    ]
                    for r in summary.equipment_rankings
                ]
            )

        self._print_recommendations([
            f"[{r.time_frame}] {r.description}" for r in summary.recommendations
        ])
        return EXIT_OK

    def _print_recommendations(self, recommendations: List[str]):
        if not recommendations:
            return
        self.formatter.print_section("Recommendations")
        for recommendation in recommendations:
            self.formatter.print_status("info", recommendation)

    def version(self) -> Dict[str, str]:
        """显示版本信息"""
        from fleetpdm import __version__

        info = {"version": __version__, "python": sys.version.split()[0]}
        if self.formatter.format_type == "json":
            self.formatter.print_json(info)
            return info

        self.formatter.print_header("FleetPDM Version Information")
        self.formatter.print_item("Version", __version__)
        self.formatter.print_item("Python", info["python"])

        self.formatter.print_section("Dependencies")
        for dep in ["numpy", "scipy"]:
            try:
                mod = __import__(dep)
                self.formatter.print_status("ok", f"{dep} {getattr(mod, '__version__', 'unknown')}")
            except ImportError:
                self.formatter.print_status("error", f"{dep} not installed")

        return info


class FleetPdmCLI:
    """FleetPDM命令行接口主类"""

    def __init__(self):
        self.formatter = OutputFormatter()

    def create_parser(self) -> argparse.ArgumentParser:
        """创建命令行解析器"""
        parser = argparse.ArgumentParser(
            prog="fleetpdm",
            description="FleetPDM CLI - 机队预测性维护命令行工具",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  fleetpdm rul data.json pump-01 --org acme
  fleetpdm trends data.json pump-01 temperature --org acme --hours 72
  fleetpdm fleet data.json --org acme pump-01 pump-02
  fleetpdm version
            """
        )

        parser.add_argument(
            "-v", "--verbose",
            action="store_true",
            help="Enable verbose output"
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output in JSON format"
        )
        parser.add_argument(
            "-c", "--config",
            help="Configuration file path"
        )
        parser.add_argument(
            "--now",
            help="Evaluate as of this ISO timestamp instead of the current time"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        subparsers.add_parser("version", help="Show version information")

        rul_parser = subparsers.add_parser("rul", help="Calculate remaining useful life")
        rul_parser.add_argument("dataset", help="JSON dataset path")
        rul_parser.add_argument("equipment_id", help="Equipment ID")
        rul_parser.add_argument("--org", required=True, help="Organization ID")
        rul_parser.add_argument(
            "--previous-risk",
            choices=["low", "medium", "high", "critical"],
            help="Last known risk level (enables hysteresis)"
        )

        trends_parser = subparsers.add_parser("trends", help="Analyze one sensor stream")
        trends_parser.add_argument("dataset", help="JSON dataset path")
        trends_parser.add_argument("equipment_id", help="Equipment ID")
        trends_parser.add_argument("sensor_type", help="Sensor type")
        trends_parser.add_argument("--org", required=True, help="Organization ID")
        trends_parser.add_argument("--hours", type=int, help="Analysis window in hours")
        trends_parser.add_argument(
            "--no-correlations",
            action="store_true",
            help="Skip cross-sensor correlation analysis"
        )

        fleet_parser = subparsers.add_parser("fleet", help="Analyze fleet trends")
        fleet_parser.add_argument("dataset", help="JSON dataset path")
        fleet_parser.add_argument(
            "equipment_ids",
            nargs="*",
            help="Equipment IDs (default: all equipment of the organization)"
        )
        fleet_parser.add_argument("--org", required=True, help="Organization ID")
        fleet_parser.add_argument("--hours", type=int, help="Analysis window in hours")

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """运行CLI"""
        parser = self.create_parser()
        try:
            parsed = parser.parse_args(args)
        except SystemExit as e:
            # argparse的用法错误退出码为2, 此处统一为1
            return EXIT_OK if e.code == 0 else EXIT_USAGE

        if parsed.json:
            self.formatter = OutputFormatter("json")

        try:
            config = load_config(parsed.config)
            clock = self._clock(parsed.now)
        except (OSError, ValueError) as e:
            self.formatter.print_status("error", str(e))
            return EXIT_USAGE

        level = logging.DEBUG if parsed.verbose else resolve_level(config.log_level)
        setup_logger("fleetpdm", level, config.log_file)

        commands = AnalysisCommands(self.formatter, config, clock)

        if parsed.command == "version":
            commands.version()
            return EXIT_OK
        if parsed.command not in ("rul", "trends", "fleet"):
            parser.print_help()
            return EXIT_USAGE

        try:
            store = load_dataset(parsed.dataset)
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.formatter.print_status("error", f"Failed to load dataset: {e}")
            return EXIT_USAGE

        try:
            if parsed.command == "rul":
                return commands.rul(store, parsed.equipment_id, parsed.org, parsed.previous_risk)
            if parsed.command == "trends":
                return commands.trends(
                    store, parsed.equipment_id, parsed.sensor_type, parsed.org,
                    parsed.hours, correlations=not parsed.no_correlations
                )
            return commands.fleet(store, parsed.org, parsed.equipment_ids, parsed.hours)
        except InsufficientDataError as e:
            self.formatter.print_status("error", str(e))
            return EXIT_INSUFFICIENT_DATA
        except ValueError as e:
            self.formatter.print_status("error", str(e))
            return EXIT_USAGE

    @staticmethod
    def _clock(now: Optional[str]) -> Optional[Callable[[], datetime]]:
        if now is None:
            return None
        fixed = datetime.fromisoformat(now)
        return lambda: fixed


def main():
    """CLI入口点"""
    cli = FleetPdmCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
