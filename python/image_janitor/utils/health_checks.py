"""
Health check utilities for verifying startup preconditions.

This module provides health checks for:
- Configuration validity
- Presence of the Docker socket (unix endpoints only)
- Docker daemon connectivity
"""

import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from image_janitor.runtime import ContainerRuntime, RuntimeOperationError
from image_janitor.utils.config_manager import ConfigManager
from image_janitor.utils.error_utils import (
    create_config_error,
    create_docker_socket_error,
    create_runtime_connection_error,
)
from image_janitor.utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check"""

    name: str
    status: bool  # True if healthy, False if unhealthy
    message: str
    details: Optional[Dict] = None


def _default_runtime_factory(config_manager: ConfigManager) -> ContainerRuntime:
    from image_janitor.utils.docker_client import DockerRuntime

    return DockerRuntime(config_manager)


class HealthChecker:
    """Performs startup health checks"""

    def __init__(
        self,
        config_manager: ConfigManager,
        runtime_factory: Optional[Callable[[ConfigManager], ContainerRuntime]] = None,
    ):
        self.config_manager = config_manager
        self.runtime_factory = runtime_factory or _default_runtime_factory
        # Set by a successful connectivity check so callers can reuse the client
        self.runtime: Optional[ContainerRuntime] = None
        self.logger = get_logger(self.__class__.__name__)

    def check_configuration(self) -> HealthCheckResult:
        """Check if configuration is valid

        Returns:
            HealthCheckResult indicating configuration validity
        """
        try:
            # This will raise ConfigValidationError if invalid
            self.config_manager.validate_config()

            return HealthCheckResult(
                name="configuration",
                status=True,
                message="Configuration is valid",
                details={
                    "retention_window": self.config_manager.get_retention_window(),
                    "enforcing": self.config_manager.is_enforcing(),
                    "prune_dangling": self.config_manager.is_prune_dangling(),
                },
            )
        except Exception as e:
            actionable_error = create_config_error("configuration", self.config_manager.config_file, str(e))
            return HealthCheckResult(
                name="configuration",
                status=False,
                message=f"Configuration validation failed: {str(e)}",
                details={"error": str(e), "suggestions": actionable_error.suggestions},
            )

    def check_docker_socket(self) -> HealthCheckResult:
        """Check the Docker socket exists when the daemon is reached through one

        Returns:
            HealthCheckResult indicating whether the socket is present
        """
        socket_path = self.config_manager.get_docker_socket_path()
        if socket_path is None:
            return HealthCheckResult(
                name="docker_socket",
                status=True,
                message="Docker endpoint is not a unix socket; nothing to check",
                details={"docker_host": self.config_manager.get_docker_host()},
            )

        if not os.path.exists(socket_path):
            actionable_error = create_docker_socket_error(socket_path)
            return HealthCheckResult(
                name="docker_socket",
                status=False,
                message=actionable_error.message,
                details={"socket_path": socket_path, "suggestions": actionable_error.suggestions},
            )

        self.logger.info("Docker socket exists")
        return HealthCheckResult(
            name="docker_socket",
            status=True,
            message=f"Docker socket exists at {socket_path}",
            details={"socket_path": socket_path},
        )

    def check_runtime_connectivity(self) -> HealthCheckResult:
        """Check if the Docker daemon is reachable

        Returns:
            HealthCheckResult indicating daemon connectivity status
        """
        docker_host = self.config_manager.get_docker_host()
        self.logger.info(f"Checking Docker daemon connectivity at {docker_host}")

        try:
            runtime = self.runtime_factory(self.config_manager)
            runtime.ping()
        except RuntimeOperationError as e:
            actionable_error = create_runtime_connection_error(docker_host, e.error or e)
            return HealthCheckResult(
                name="runtime_connectivity",
                status=False,
                message=actionable_error.message,
                details={
                    "docker_host": docker_host,
                    "error": str(e),
                    "suggestions": actionable_error.suggestions,
                },
            )

        self.runtime = runtime
        return HealthCheckResult(
            name="runtime_connectivity",
            status=True,
            message=f"Successfully connected to Docker daemon at {docker_host}",
            details={
                "docker_host": docker_host,
                "api_version": self.config_manager.get_docker_api_version(),
            },
        )

    def run_all_checks(self) -> List[HealthCheckResult]:
        """Run all health checks in order, stopping at the first failure

        Returns:
            List of HealthCheckResult objects
        """
        results = []
        for check in (self.check_configuration, self.check_docker_socket, self.check_runtime_connectivity):
            result = check()
            results.append(result)
            if not result.status:
                break
        return results

    def print_health_report(self, results: List[HealthCheckResult]) -> bool:
        """Print a formatted health check report

        Args:
            results: List of HealthCheckResult objects

        Returns:
            True if all checks passed, False otherwise
        """
        print("\n" + "=" * 60)
        print("Health Check Report")
        print("=" * 60)

        all_healthy = True

        for result in results:
            status_icon = "✓" if result.status else "✗"
            status_text = "HEALTHY" if result.status else "UNHEALTHY"

            print(f"\n{status_icon} {result.name.upper().replace('_', ' ')}: {status_text}")
            print(f"   {result.message}")

            if result.details:
                for key, value in result.details.items():
                    if key == "suggestions":
                        for i, suggestion in enumerate(value, 1):
                            print(f"   {i}. {suggestion}")
                    elif key != "error":  # Don't print error in details if it's already in message
                        print(f"   {key}: {value}")

            if not result.status:
                all_healthy = False

        print("\n" + "=" * 60)

        if all_healthy:
            print("✓ All health checks passed")
        else:
            print("✗ Some health checks failed - please review the issues above")

        print("=" * 60 + "\n")

        return all_healthy
