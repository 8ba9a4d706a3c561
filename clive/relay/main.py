"""
Relay process entrypoint.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from ..utils.logging import configure_logging
from .server import create_app

LOG = logging.getLogger(__name__)


async def serve(host: str = "0.0.0.0", port: int = 8080, log_level: str = "info") -> None:
    """
    Run the relay inside an asyncio loop.

    Parameters
    ----------
    host, port:
        Bind address for the FastAPI/uvicorn server.
    log_level:
        Level name handed to uvicorn.
    """

    import uvicorn

    app = create_app()
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_config=None,
        log_level=log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config=server_config)
    LOG.info("Signaling relay listening on ws://%s:%d/ws", host, port)
    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="clive-relay", description="clive room signaling relay")
    parser.add_argument("--host", default="0.0.0.0", help="bind host for the relay")
    parser.add_argument("--port", type=int, default=8080, help="bind port for the relay")
    parser.add_argument("--log-level", default="INFO", help="logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        asyncio.run(serve(host=args.host, port=args.port, log_level=args.log_level))
    except KeyboardInterrupt:
        LOG.info("Relay interrupted by user.")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
