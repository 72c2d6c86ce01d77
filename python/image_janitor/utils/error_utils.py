"""
Error message utilities for providing actionable guidance to operators.

This module provides functions to create helpful error messages with
suggested fixes and troubleshooting steps for the failures that stop the
janitor from starting or keep it from talking to the Docker daemon.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    STREAM = "stream"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


def create_runtime_connection_error(docker_host: str, error: Exception) -> ActionableError:
    """Create actionable error for Docker daemon connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the Docker endpoint is correct: {docker_host}",
        "Check that the Docker daemon is running (docker info)",
        "Verify DOCKER_HOST points at the daemon you want to clean",
    ]
    category = ErrorCategory.CONNECTION

    if "permission denied" in error_str:
        category = ErrorCategory.PERMISSION
        suggestions.insert(0, "Run the janitor as root or as a member of the 'docker' group")
        suggestions.insert(1, "When running in a container, mount /var/run/docker.sock read-write")

    if "timeout" in error_str or "timed out" in error_str:
        category = ErrorCategory.TIMEOUT
        suggestions.insert(1, "Check whether the daemon is overloaded or hung")
        suggestions.insert(2, "Increase HM_DOCKER_TIMEOUT if the daemon is slow to answer")

    if "version" in error_str:
        suggestions.insert(0, "Set HM_DOCKER_API_VERSION to a version supported by the daemon (or 'auto')")

    return ActionableError(
        message=f"Failed to connect to Docker daemon at {docker_host}",
        category=category,
        suggestions=suggestions,
        details={
            "docker_host": docker_host,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_docker_socket_error(socket_path: str) -> ActionableError:
    """Create actionable error for a missing Docker socket"""
    return ActionableError(
        message=f"Docker socket does not exist at {socket_path}",
        category=ErrorCategory.CONNECTION,
        suggestions=[
            "Check that the Docker daemon is installed and running",
            f"When running in a container, mount the host socket: -v {socket_path}:{socket_path}",
            "Set DOCKER_HOST if the daemon listens on a different socket or TCP endpoint",
        ],
        details={"socket_path": socket_path}
    )


def create_event_stream_error(docker_host: str, error: Exception) -> ActionableError:
    """Create actionable error for a broken container event stream"""
    return ActionableError(
        message=f"Container event stream from {docker_host} failed",
        category=ErrorCategory.STREAM,
        suggestions=[
            "Check whether the Docker daemon was restarted or crashed",
            "Inspect the daemon logs (journalctl -u docker)",
            "Restart the janitor once the daemon is healthy again",
        ],
        details={
            "docker_host": docker_host,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_config_error(field: str, value: Any, reason: str) -> ActionableError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Check the '{field}' value in config.yaml or its HM_* environment variable",
        "Verify the value matches the expected format",
        "Run 'image-janitor config' to print the effective configuration",
    ]

    if "until" in field.lower() or "retention" in field.lower() or "timeout" in field.lower():
        suggestions.insert(1, "Time values must be positive integers (seconds)")
    elif "host" in field.lower():
        suggestions.insert(1, "Docker host should look like unix:///var/run/docker.sock or tcp://host:2375")

    return ActionableError(
        message=f"Configuration error: Invalid value for '{field}'",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={
            "field": field,
            "value": value,
            "reason": reason
        }
    )
