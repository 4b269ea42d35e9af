"""Command line entry point for the rpcwatch engine."""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rpcwatch.config.settings import get_settings
from rpcwatch.container import MonitoringContainer
from rpcwatch.exceptions import RpcWatchException
from rpcwatch.infrastructure.logging import get_logger

logger = get_logger(__name__)


async def run_engine(endpoints_path: Optional[Path]) -> None:
    settings = get_settings()
    if endpoints_path is not None:
        settings.endpoints.path = endpoints_path

    container = MonitoringContainer(settings=settings).initialize()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms (e.g. Windows)
            pass

    await container.monitoring_service.start()
    try:
        await stop_event.wait()
    finally:
        await container.shutdown()


async def detect(url: str) -> int:
    container = MonitoringContainer().initialize()
    try:
        result = await container.monitoring_service.detect_network(url)
    finally:
        await container.probe_client.aclose()

    if result is None:
        print(f"Could not reach {url}")
        return 1
    chain_id, network = result
    print(f"{url}: chain_id={chain_id} network={network}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="RPC health monitoring and SLA compliance engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the monitoring engine")
    run_parser.add_argument("--endpoints", type=Path, help="Path to endpoints.yaml")

    detect_parser = subparsers.add_parser("detect", help="Identify the network behind an RPC URL")
    detect_parser.add_argument("url")

    args = parser.parse_args(argv)

    try:
        if args.command == "run":
            asyncio.run(run_engine(args.endpoints))
            return 0
        return asyncio.run(detect(args.url))
    except RpcWatchException as e:
        logger.error("rpcwatch_failed", error=str(e), details=e.details)
        return 2


if __name__ == "__main__":
    sys.exit(main())
