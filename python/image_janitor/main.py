#!/usr/bin/env python3
"""
Docker image janitor.

Watches container create events on a Docker host and deletes images that
have not been used for a configurable time.

Examples:
  # Run the janitor with defaults (one week retention, lenient mode)
  image-janitor run

  # Delete images unused for a day, including those only used by stopped containers
  HM_UNTIL=86400 HM_ENFORCING=1 image-janitor run

  # Check the Docker daemon is reachable and the configuration is valid
  image-janitor check

  # Show the effective configuration
  image-janitor config
"""

import argparse
import signal
import sys
from typing import List, Optional

from image_janitor.orchestrator import EXIT_OK, EXIT_STARTUP_FAILURE, ImageJanitor
from image_janitor.runtime import RuntimeOperationError
from image_janitor.utils.config_manager import ConfigManager
from image_janitor.utils.error_utils import create_runtime_connection_error
from image_janitor.utils.health_checks import HealthChecker
from image_janitor.utils.logging_utils import get_logger, log_exception, setup_logging

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="image-janitor",
        description="Delete Docker images that have not been used for a while",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration is read from config.yaml (or CONFIG_FILE) and HM_* environment
variables; run 'image-janitor config' to see every setting.
        """,
    )
    parser.add_argument("--config-file", help="Path to configuration YAML file (default: CONFIG_FILE or config.yaml)")
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "check", "config"],
        help="run: watch events and clean images (default); check: run health checks; config: print configuration",
    )
    return parser.parse_args(argv)


def run_janitor(config_manager: ConfigManager) -> int:
    """Start the janitor and block until the event stream ends"""
    logger.info("Starting docker image janitor ...")
    config_manager.log_config(logger)

    checker = HealthChecker(config_manager)
    results = checker.run_all_checks()
    failed = [r for r in results if not r.status]
    if failed:
        for result in failed:
            logger.error(result.message)
            for suggestion in (result.details or {}).get("suggestions", []):
                logger.error(f"  - {suggestion}")
        return EXIT_STARTUP_FAILURE

    runtime = checker.runtime
    janitor = ImageJanitor(config_manager.get_policy_config(), runtime)

    try:
        stream = runtime.subscribe_creation_events()
    except RuntimeOperationError as e:
        logger.error(str(create_runtime_connection_error(config_manager.get_docker_host(), e.error or e)))
        return EXIT_STARTUP_FAILURE

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}")
        janitor.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    exit_code = janitor.run(stream)
    logger.info("Stopped docker image janitor")
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging()

    config_manager = ConfigManager(config_file=args.config_file, validate=False)
    setup_logging(config_manager.get_log_level())

    if args.command == "config":
        config_manager.print_config()
        return EXIT_OK

    if args.command == "check":
        checker = HealthChecker(config_manager)
        healthy = checker.print_health_report(checker.run_all_checks())
        return EXIT_OK if healthy else EXIT_STARTUP_FAILURE

    try:
        return run_janitor(config_manager)
    except Exception as e:
        log_exception(logger, "Docker image janitor terminated unexpectedly", e)
        return EXIT_STARTUP_FAILURE


if __name__ == "__main__":
    sys.exit(main())
