"""Custom exception hierarchy for the fleet remediator.

Maps SSH transport failures, malformed remote output, and configuration
problems to typed exceptions so per-host and per-rule failures can be
isolated without aborting a monitoring cycle.
"""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all fleet-remediator errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class RemoteExecutionError(FleetError):
    """Base class for failures while running a command over SSH."""


class RemoteConnectionError(RemoteExecutionError):
    """Raised when the SSH session cannot be established."""


class RemoteAuthError(RemoteExecutionError):
    """Raised when the host rejects the configured key."""


class RemoteTimeoutError(RemoteExecutionError):
    """Raised when a remote command exceeds its timeout."""

    def __init__(self, message: str, timeout: float | None = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.timeout = timeout


class MetricsParseError(FleetError):
    """Raised when the remote metrics procedure returns unparseable output."""


class UnsupportedActionError(FleetError):
    """Raised when no command can be synthesized for an action type."""

    def __init__(self, message: str, action_type: str | None = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.action_type = action_type


class ConfigError(FleetError):
    """Raised for invalid host lists or monitor configuration files."""
