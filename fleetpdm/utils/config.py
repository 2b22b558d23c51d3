"""
Configuration utilities for FleetPDM.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List
import json
import os


@dataclass
class Config:
    """分析核心配置"""
    # RUL引擎
    degradation_window_days: int = 30
    min_degradation_samples: int = 3
    max_recommendations: int = 6

    # 趋势分析
    trend_window_hours: int = 168
    min_trend_samples: int = 10
    forecast_horizon_hours: int = 24
    alignment_tolerance_minutes: float = 5.0
    min_aligned_points: int = 10

    # 机队分析
    primary_sensor_types: List[str] = field(
        default_factory=lambda: ["temperature", "vibration", "pressure"]
    )
    fleet_sensor_limit: int = 2
    fleet_id: str = "default-fleet"

    # 使用scipy的严格检验替代近似算法(会改变结果)
    rigorous_statistics: bool = False

    # 日志
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # 其他配置
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """从字典创建, 忽略未知字段"""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, filepath: str):
        """保存配置到文件"""
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'Config':
        """从文件加载配置"""
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls.from_dict(data)


def load_config(filepath: Optional[str] = None) -> Config:
    """
    加载配置

    Args:
        filepath: 配置文件路径

    Returns:
        配置对象
    """
    if filepath and os.path.exists(filepath):
        return Config.load(filepath)

    default_paths = [
        'config/fleetpdm.json',
        'fleetpdm.json',
        os.path.expanduser('~/.fleetpdm/config.json')
    ]

    for path in default_paths:
        if os.path.exists(path):
            return Config.load(path)

    return Config()
