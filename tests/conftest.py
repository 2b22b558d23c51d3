"""
Pytest Configuration and Shared Fixtures
pytest配置和共享测试夹具
"""

import os
import sys
from datetime import datetime, timedelta
from typing import List

import numpy as np
import pytest

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fleetpdm.store import (  # noqa: E402
    DegradationRecord,
    EquipmentRecord,
    InMemoryTelemetryStore,
    SensorSample,
)

ORG = "org-acme"
OTHER_ORG = "org-globex"
NOW = datetime(2024, 6, 1, 12, 0, 0)


def hourly_samples(values, end: datetime = NOW, unit: str = "unknown") -> List[SensorSample]:
    """生成以end为最后时刻的逐小时采样"""
    n = len(values)
    return [
        SensorSample(timestamp=end - timedelta(hours=n - 1 - i), value=float(v), unit=unit)
        for i, v in enumerate(values)
    ]


def daily_degradation(
    values,
    component_type: str = "bearing",
    equipment_id: str = "pump-01",
    org_id: str = ORG,
    end: datetime = NOW,
    **extra
) -> List[DegradationRecord]:
    """生成以end为最后一天的逐日退化记录"""
    n = len(values)
    return [
        DegradationRecord(
            org_id=org_id,
            equipment_id=equipment_id,
            component_type=component_type,
            timestamp=end - timedelta(days=n - 1 - i),
            degradation_metric=float(v),
            **extra
        )
        for i, v in enumerate(values)
    ]


@pytest.fixture
def now():
    """固定的当前时间"""
    return NOW


@pytest.fixture
def clock():
    """可注入的时钟"""
    return lambda: NOW


@pytest.fixture
def store():
    """带两台设备的内存存储"""
    store = InMemoryTelemetryStore()
    store.add_equipment(EquipmentRecord("pump-01", ORG, "pump", "Main pump"))
    store.add_equipment(EquipmentRecord("pump-02", ORG, "pump", "Backup pump"))
    store.add_equipment(EquipmentRecord("comp-01", OTHER_ORG, "compressor"))
    return store


@pytest.fixture
def rng():
    """固定种子的随机数生成器"""
    return np.random.default_rng(42)


@pytest.fixture
def spike_values():
    """含单个尖峰的序列"""
    values = [10 + 0.1 * (i % 5) for i in range(50)]
    values[25] = 50.0
    return values


# pytest配置
def pytest_configure(config):
    """pytest配置"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
