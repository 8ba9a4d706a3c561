"""
Client process entrypoint.

Resolves configuration, initialises logging and runs one
:class:`~clive.controller.SessionController` until the call ends.  The exit
status is ``0`` for a clean close, ``1`` for a transport or negotiation
failure and ``2`` for invalid configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .config import DEFAULT_ROOM, DEFAULT_SERVER, build_config
from .controller import SessionController
from .errors import ConfigError
from .rtc.webrtcbin import WebRTCBinEngine
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2

# CLI destinations forwarded to build_config when given.
OVERRIDE_KEYS = ("room", "server", "caller", "negotiation_timeout", "stun_server", "self_view", "log_level")


async def serve(controller: SessionController) -> int:
    def _handle_signal(signum: int, frame: Optional[object]) -> None:
        LOG.info("Received signal %s, closing session...", signum)
        controller.stop(f"signal {signum}")

    for signame in ("SIGINT", "SIGTERM"):
        signal.signal(getattr(signal, signame), _handle_signal)

    return await controller.run()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="clive",
        description="WebRTC peer that negotiates a call through a room relay",
    )
    parser.add_argument("-r", "--room", default=None, help=f"room to join (default: {DEFAULT_ROOM})")
    parser.add_argument(
        "-s", "--server", default=None, help=f"signaling server host:port (default: {DEFAULT_SERVER})"
    )
    parser.add_argument(
        "-c", "--caller", action="store_true", default=None, help="initiate the call once a peer joins"
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--profile", default=None, help="profile to load from the configuration file")
    parser.add_argument(
        "--timeout",
        dest="negotiation_timeout",
        type=float,
        default=None,
        help="seconds to wait for an offer/answer round (0 disables)",
    )
    parser.add_argument("--stun-server", default=None, help="STUN server URI, e.g. stun://host:port")
    parser.add_argument(
        "--no-self-view",
        dest="self_view",
        action="store_false",
        default=None,
        help="do not render the local video preview",
    )
    parser.add_argument("--log-level", default=None, help="logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {key: getattr(args, key) for key in OVERRIDE_KEYS}
    try:
        config = build_config(overrides, config_path=args.config, profile=args.profile)
    except ConfigError as exc:
        configure_logging()
        LOG.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    configure_logging(config.log_level)
    engine = WebRTCBinEngine(config.media_profile())
    controller = SessionController(config, engine)
    try:
        return asyncio.run(serve(controller))
    except KeyboardInterrupt:
        LOG.info("Interrupted by user.")
        return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
