"""Fleet Remediator - SSH metrics collection, threshold alerting, and policy-driven remediation."""

__version__ = "0.1.0"

from fleet_remediator.config import FleetConfig, get_config, load_monitor_config
from fleet_remediator.exceptions import (
    ConfigError,
    FleetError,
    MetricsParseError,
    RemoteAuthError,
    RemoteConnectionError,
    RemoteExecutionError,
    RemoteTimeoutError,
    UnsupportedActionError,
)
from fleet_remediator.models import (
    Alert,
    AuditRecord,
    CollectionTask,
    CycleReport,
    ExecResult,
    HostDescriptor,
    MetricsSample,
    MonitorConfig,
    RemediationConfig,
    RemediationRule,
    Thresholds,
)

__all__ = [
    "__version__",
    "FleetConfig",
    "get_config",
    "load_monitor_config",
    "FleetError",
    "RemoteExecutionError",
    "RemoteConnectionError",
    "RemoteAuthError",
    "RemoteTimeoutError",
    "MetricsParseError",
    "UnsupportedActionError",
    "ConfigError",
    "HostDescriptor",
    "MetricsSample",
    "CollectionTask",
    "Alert",
    "Thresholds",
    "RemediationRule",
    "RemediationConfig",
    "MonitorConfig",
    "ExecResult",
    "AuditRecord",
    "CycleReport",
]
