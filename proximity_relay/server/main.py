"""Server entry point."""

import argparse
import asyncio

from ..common import log
from ..common.attenuation import Curve
from ..common.constants import (
    DEFAULT_CURVE,
    DEFAULT_HOST,
    DEFAULT_MAX_DISTANCE,
    DEFAULT_PORT,
    LOG_FILE,
    OUTBOX_SIZE,
    PING_INTERVAL,
    ROSTER_DEBOUNCE,
    ROSTER_INTERVAL,
)
from .config import RelayConfig
from .relay_server import RelayServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Proximity voice relay server")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Host to bind to")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Port to bind to"
    )
    parser.add_argument(
        "--max-distance",
        type=float,
        default=DEFAULT_MAX_DISTANCE,
        help=f"Hearing radius in world units (default: {DEFAULT_MAX_DISTANCE:g})",
    )
    parser.add_argument(
        "--curve",
        choices=[c.value for c in Curve],
        default=DEFAULT_CURVE,
        help=f"Attenuation curve for relayed gain (default: {DEFAULT_CURVE})",
    )
    parser.add_argument(
        "--outbox-size",
        type=int,
        default=OUTBOX_SIZE,
        help=f"Audio frames queued per listener (default: {OUTBOX_SIZE})",
    )
    parser.add_argument(
        "--roster-debounce",
        type=float,
        default=ROSTER_DEBOUNCE,
        help="Seconds to coalesce join/leave roster broadcasts",
    )
    parser.add_argument(
        "--roster-interval",
        type=float,
        default=ROSTER_INTERVAL,
        help="Seconds between periodic roster broadcasts, 0 disables",
    )
    parser.add_argument(
        "--ping-interval",
        type=float,
        default=PING_INTERVAL,
        help="Seconds between WebSocket keepalive pings",
    )
    parser.add_argument(
        "--log-file",
        default=LOG_FILE,
        help=f"Debug log destination (default: {LOG_FILE})",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> RelayConfig:
    return RelayConfig(
        host=args.host,
        port=args.port,
        max_distance=args.max_distance,
        curve=args.curve,
        outbox_size=args.outbox_size,
        roster_debounce=args.roster_debounce,
        roster_interval=args.roster_interval,
        ping_interval=args.ping_interval,
        log_file=args.log_file,
    ).validate()


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    log.configure(config.log_file)
    server = RelayServer(config)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nServer stopped")
    print(f"Stats: {server.stats.as_dict()}")


if __name__ == "__main__":
    main()
