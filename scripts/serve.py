"""Run the Flashbacks backend HTTP server."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import logging
import signal

from flashbacks.api import WebServer, build_context
from flashbacks.config import AppConfig, load_config
from flashbacks.log import configure_logging

logger = logging.getLogger("flashbacks.serve")


def check_media_root(config: AppConfig) -> None:
    """Exit before binding the port when the photo root is missing."""
    if not config.media.root_dir.is_dir():
        raise SystemExit(f"media root missing: {config.media.root_dir}")


async def _serve(config: AppConfig) -> None:
    server = WebServer(build_context(config))
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, shutdown.set)

    await server.start(host=config.server.host, port=config.server.port)
    logger.info(
        "listening on %s:%d, root=%s, cacheDir=%s",
        config.server.host,
        config.server.port,
        config.media.root_dir,
        config.media.cache_dir,
    )
    try:
        await shutdown.wait()
    finally:
        await server.stop()


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to the YAML config file",
    )
    parser.add_argument("--port", type=int, default=None, help="Override the configured port")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.log)
    check_media_root(config)
    if args.port is not None:
        config = replace(config, server=replace(config.server, port=args.port))

    asyncio.run(_serve(config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
