"""
main_asyncio.py — Operator entry point
--------------------------------------

Responsible for:
- loading configuration (YAML, environment, command line)
- registering the built-in controllers
- wiring the lease store, shared context and status API
- running the operator until a fatal condition and exiting non-zero
"""

import sys

# ---------------------------------------------------------------------------
# UTF-8 ENCODING FIX
# ---------------------------------------------------------------------------

if hasattr(sys.stdout, 'reconfigure') and sys.stdout.encoding != 'UTF-8':
    sys.stdout.reconfigure(encoding='utf-8')  # type: ignore
if hasattr(sys.stderr, 'reconfigure') and sys.stderr.encoding != 'UTF-8':
    sys.stderr.reconfigure(encoding='utf-8')  # type: ignore

import argparse
import asyncio
from typing import List, Optional

from api.dependencies import set_runtime
from api.main import create_app
from election.memory_store import InMemoryLeaseStore
from lifecycle.api_server_wrapper import APIServerWrapper
from lifecycle.handlers import APIServerShutdownHandler
from lifecycle.operator_runtime import OperatorRuntime
from lifecycle.task_registry import TaskCategory, create_tracked_task
from managers import ConfigManager
from models.enums import ExitCode, LogCategory
from models.errors import ProgrammingError
from services import EnvironmentClusterClient
from utils.logger import get_logger, configure_logger

import controllers.builtin  # noqa: F401  (registers the built-in controllers)

log = get_logger().for_category(LogCategory.SYSTEM)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="operator",
        description="Leader-gated controller supervisor",
    )
    parser.add_argument("--config", default="config/operator.yaml",
                        help="Configuration file (relative paths resolve against src/)")
    parser.add_argument("--namespace", help="Namespace to watch (overrides POD_NAMESPACE)")
    parser.add_argument("--pod-name", help="Name of this pod (overrides POD_NAME)")
    parser.add_argument("--identity", help="Election identity (default: host name)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARN or ERROR")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        manager = ConfigManager(config_path=args.config)
        manager.load()
        config = manager.build({
            "namespace": args.namespace,
            "pod_name": args.pod_name,
            "identity": args.identity,
            "log_level": args.log_level,
        })
    except ProgrammingError as e:
        log.error(f"Invalid configuration: {e}")
        return int(ExitCode.FATAL)

    configure_logger(config.logging.level, config.logging.colors)

    # TODO: replace with a cluster-backed LeaseStore once one is available;
    # the in-memory store only coordinates candidates inside this process.
    store = InMemoryLeaseStore()
    runtime = OperatorRuntime(config, store, EnvironmentClusterClient())

    if config.api.enabled:
        set_runtime(runtime)
        api_wrapper = APIServerWrapper(create_app(), host=config.api.host, port=config.api.port)
        create_tracked_task(
            api_wrapper.start(),
            category=TaskCategory.API,
            description="Status API server",
        )
        runtime.coordinator.register(APIServerShutdownHandler(api_wrapper))

    try:
        code = await runtime.run()
    except ProgrammingError as e:
        log.error(f"Startup failed: {e}", exc_info=True)
        return int(ExitCode.FATAL)

    return int(code)


# ---------------------------------------------------------------------------
# ENTRY POINT
# ---------------------------------------------------------------------------
def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
