"""
Telemetry Store Interface for FleetPDM
设备遥测与退化记录存储接口

分析核心只通过该接口读取数据, 所有读取都必须带租户(组织)标识
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# ============================================================
# 数据类定义
# ============================================================

@dataclass(frozen=True)
class SensorSample:
    """传感器采样"""
    timestamp: datetime
    value: float
    unit: str = "unknown"


@dataclass
class DegradationRecord:
    """部件退化记录"""
    org_id: str
    equipment_id: str
    component_type: str
    timestamp: datetime
    degradation_metric: float          # 0-100, 100 = 失效
    degradation_rate: float = 0.0      # 每天退化点数, 写入时计算
    vibration_level: Optional[float] = None
    temperature: Optional[float] = None
    oil_condition: Optional[float] = None
    wear_particle_count: Optional[float] = None
    acoustic_signature: Optional[float] = None
    operating_hours: Optional[float] = None
    cycle_count: Optional[int] = None
    load_factor: Optional[float] = None
    predicted_failure_date: Optional[datetime] = None
    confidence_score: Optional[float] = None


@dataclass
class FailurePrediction:
    """机器学习故障预测"""
    equipment_id: str
    org_id: str
    prediction_timestamp: datetime
    failure_probability: Optional[float]
    confidence: Optional[float]
    model_id: Optional[str] = None
    model_type: str = ""
    predicted_failure_date: Optional[datetime] = None


@dataclass
class EquipmentRecord:
    """设备档案"""
    equipment_id: str
    org_id: str
    equipment_type: str
    name: str = ""


@dataclass
class ModelMetadata:
    """模型元数据"""
    model_id: str
    confidence_multiplier: Optional[float] = None
    data_quality_tier: Optional[str] = None


def require_org(org_id: str):
    """校验租户标识, 核心从不使用默认租户"""
    if not org_id:
        raise ValueError("org_id is required for tenant-scoped reads")


# ============================================================
# 存储接口
# ============================================================

class TelemetryStore(ABC):
    """遥测/退化数据存储接口"""

    @abstractmethod
    async def get_latest_failure_prediction(
        self,
        equipment_id: str,
        org_id: str
    ) -> Optional[FailurePrediction]:
        """获取最新的故障预测"""
        pass

    @abstractmethod
    async def get_degradation_history(
        self,
        equipment_id: str,
        org_id: str,
        since: datetime
    ) -> List[DegradationRecord]:
        """获取指定时间以来的退化记录"""
        pass

    @abstractmethod
    async def get_equipment_record(
        self,
        equipment_id: str,
        org_id: str
    ) -> Optional[EquipmentRecord]:
        """获取设备档案"""
        pass

    @abstractmethod
    async def get_telemetry_history(
        self,
        org_id: str,
        equipment_id: str,
        sensor_type: str,
        start: datetime,
        end: datetime
    ) -> List[SensorSample]:
        """获取时间窗口内的遥测数据, 不保证返回顺序"""
        pass

    @abstractmethod
    async def get_equipment_sensor_types(
        self,
        org_id: str,
        equipment_id: str
    ) -> List[str]:
        """获取设备的传感器类型"""
        pass

    @abstractmethod
    async def get_model_metadata(self, model_id: str) -> Optional[ModelMetadata]:
        """获取模型元数据"""
        pass

    @abstractmethod
    async def get_latest_degradation(
        self,
        org_id: str,
        equipment_id: str,
        component_type: str
    ) -> Optional[DegradationRecord]:
        """获取部件最近一条退化记录"""
        pass

    @abstractmethod
    async def append_degradation(self, record: DegradationRecord):
        """追加退化记录"""
        pass


# ============================================================
# 内存实现
# ============================================================

class InMemoryTelemetryStore(TelemetryStore):
    """内存存储, 用于测试/命令行/嵌入式调用"""

    def __init__(self):
        self.equipment: Dict[Tuple[str, str], EquipmentRecord] = {}
        self.telemetry: Dict[Tuple[str, str, str], List[SensorSample]] = defaultdict(list)
        self.degradation: Dict[Tuple[str, str], List[DegradationRecord]] = defaultdict(list)
        self.predictions: Dict[Tuple[str, str], List[FailurePrediction]] = defaultdict(list)
        self.models: Dict[str, ModelMetadata] = {}
        self._lock = asyncio.Lock()

    # ---------------- 数据装载 ----------------

    def add_equipment(self, record: EquipmentRecord):
        """登记设备"""
        require_org(record.org_id)
        self.equipment[(record.org_id, record.equipment_id)] = record

    def add_telemetry(
        self,
        org_id: str,
        equipment_id: str,
        sensor_type: str,
        samples: List[SensorSample]
    ):
        """添加遥测数据"""
        require_org(org_id)
        self.telemetry[(org_id, equipment_id, sensor_type)].extend(samples)

    def add_degradation(self, record: DegradationRecord):
        """直接装载历史退化记录(不重新计算退化速率)"""
        require_org(record.org_id)
        self.degradation[(record.org_id, record.equipment_id)].append(record)

    def add_failure_prediction(self, prediction: FailurePrediction):
        """添加故障预测"""
        require_org(prediction.org_id)
        self.predictions[(prediction.org_id, prediction.equipment_id)].append(prediction)

    def add_model_metadata(self, metadata: ModelMetadata):
        """添加模型元数据"""
        self.models[metadata.model_id] = metadata

    # ---------------- 接口实现 ----------------

    async def get_latest_failure_prediction(
        self,
        equipment_id: str,
        org_id: str
    ) -> Optional[FailurePrediction]:
        require_org(org_id)
        predictions = self.predictions.get((org_id, equipment_id), [])
        if not predictions:
            return None
        return _latest(predictions, lambda p: p.prediction_timestamp)

    async def get_degradation_history(
        self,
        equipment_id: str,
        org_id: str,
        since: datetime
    ) -> List[DegradationRecord]:
        require_org(org_id)
        records = self.degradation.get((org_id, equipment_id), [])
        selected = [r for r in records if r.timestamp >= since]
        return sorted(selected, key=lambda r: r.timestamp)

    async def get_equipment_record(
        self,
        equipment_id: str,
        org_id: str
    ) -> Optional[EquipmentRecord]:
        require_org(org_id)
        return self.equipment.get((org_id, equipment_id))

    async def get_telemetry_history(
        self,
        org_id: str,
        equipment_id: str,
        sensor_type: str,
        start: datetime,
        end: datetime
    ) -> List[SensorSample]:
        require_org(org_id)
        samples = self.telemetry.get((org_id, equipment_id, sensor_type), [])
        selected = [s for s in samples if start <= s.timestamp <= end]
        # 稳定排序, 相同时间戳保持到达顺序
        return sorted(selected, key=lambda s: s.timestamp)

    async def get_equipment_sensor_types(
        self,
        org_id: str,
        equipment_id: str
    ) -> List[str]:
        require_org(org_id)
        return [
            sensor_type
            for (org, equipment, sensor_type) in self.telemetry.keys()
            if org == org_id and equipment == equipment_id
        ]

    async def get_model_metadata(self, model_id: str) -> Optional[ModelMetadata]:
        return self.models.get(model_id)

    async def get_latest_degradation(
        self,
        org_id: str,
        equipment_id: str,
        component_type: str
    ) -> Optional[DegradationRecord]:
        require_org(org_id)
        records = [
            r for r in self.degradation.get((org_id, equipment_id), [])
            if r.component_type == component_type
        ]
        if not records:
            return None
        return _latest(records, lambda r: r.timestamp)

    async def append_degradation(self, record: DegradationRecord):
        require_org(record.org_id)
        async with self._lock:
            self.degradation[(record.org_id, record.equipment_id)].append(record)
            logger.debug(
                f"Degradation recorded: {record.org_id}:{record.equipment_id}:"
                f"{record.component_type} = {record.degradation_metric}"
            )

    # ---------------- 数据集导入 ----------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InMemoryTelemetryStore':
        """从JSON数据集创建

        数据集结构::

            {
              "equipment": [{"equipment_id", "org_id", "equipment_type", "name"}],
              "telemetry": [{"org_id", "equipment_id", "sensor_type",
                             "samples": [{"timestamp", "value", "unit"}]}],
              "degradation": [{DegradationRecord字段}],
              "failure_predictions": [{FailurePrediction字段}],
              "models": [{ModelMetadata字段}]
            }
        """
        store = cls()

        for item in data.get("equipment", []):
            store.add_equipment(_build(EquipmentRecord, item))

        for series in data.get("telemetry", []):
            samples = [
                SensorSample(
                    timestamp=_parse_datetime(s["timestamp"]),
                    value=float(s["value"]),
                    unit=s.get("unit", "unknown")
                )
                for s in series.get("samples", [])
            ]
            store.add_telemetry(
                series["org_id"],
                series["equipment_id"],
                series["sensor_type"],
                samples
            )

        for item in data.get("degradation", []):
            store.add_degradation(_build(DegradationRecord, item))

        for item in data.get("failure_predictions", []):
            store.add_failure_prediction(_build(FailurePrediction, item))

        for item in data.get("models", []):
            store.add_model_metadata(_build(ModelMetadata, item))

        return store


# ============================================================
# 辅助函数
# ============================================================

_DATETIME_FIELDS = {
    "timestamp",
    "prediction_timestamp",
    "predicted_failure_date",
}


def _parse_datetime(value: Any) -> Optional[datetime]:
    """解析ISO时间"""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _build(cls, item: Dict[str, Any]):
    """按dataclass字段构造对象, 未知字段视为格式错误"""
    names = {f.name for f in fields(cls)}
    unknown = set(item) - names
    if unknown:
        raise ValueError(f"Unknown fields for {cls.__name__}: {sorted(unknown)}")

    kwargs = {
        k: _parse_datetime(v) if k in _DATETIME_FIELDS else v
        for k, v in item.items()
    }
    return cls(**kwargs)


def _latest(items: List[Any], key) -> Any:
    """取时间最晚的一项, 相同时间取最后加入的"""
    best_index = 0
    for i in range(1, len(items)):
        if key(items[i]) >= key(items[best_index]):
            best_index = i
    return items[best_index]
