"""
Control service entrypoint.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from ..utils.logging import configure_logging
from .server import ProcessSupervisor, create_app

LOG = logging.getLogger(__name__)


async def serve(
    supervisor: ProcessSupervisor,
    host: str = "127.0.0.1",
    port: int = 9090,
    log_level: str = "info",
) -> None:
    import uvicorn

    app = create_app(supervisor)
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_config=None,
        log_level=log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config=server_config)
    LOG.info("Control service listening on http://%s:%d", host, port)
    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="clive-control", description="Start and stop the clive relay and client")
    parser.add_argument("--host", default="127.0.0.1", help="bind host for the control API")
    parser.add_argument("--port", type=int, default=9090, help="bind port for the control API")
    parser.add_argument("--log-dir", type=Path, default=Path("."), help="directory for process log files")
    parser.add_argument("--relay-port", type=int, default=8080, help="port the managed relay listens on")
    parser.add_argument("--log-level", default="INFO", help="logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    supervisor = ProcessSupervisor(args.log_dir, relay_port=args.relay_port)

    try:
        asyncio.run(serve(supervisor, host=args.host, port=args.port, log_level=args.log_level))
    except KeyboardInterrupt:
        LOG.info("Control service interrupted by user.")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
