"""
Telemetry Store Module for FleetPDM
遥测与退化记录存储模块
"""

from fleetpdm.store.telemetry_store import (
    SensorSample,
    DegradationRecord,
    FailurePrediction,
    EquipmentRecord,
    ModelMetadata,
    TelemetryStore,
    InMemoryTelemetryStore,
    require_org,
)

__all__ = [
    "SensorSample",
    "DegradationRecord",
    "FailurePrediction",
    "EquipmentRecord",
    "ModelMetadata",
    "TelemetryStore",
    "InMemoryTelemetryStore",
    "require_org",
]
