#!/usr/bin/env python3
"""Example bot that circles the spawn point while talking.

The bot:
- Walks a circle of the given radius around (0, 0)
- Sends an opaque audio chunk every 100ms (like a browser MediaRecorder)
- Logs the mix parameters of every player it hears

Usage:
    python examples/orbit_bot.py [--host HOST] [--port PORT] [--nick NICK]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import os

from proximity_relay.client.relay_client import RelayClient, relay_url
from proximity_relay.common.protocol import AudioRelay

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("orbit_bot")
# Silence noisy loggers
logging.getLogger("websockets").setLevel(logging.WARNING)

CHUNK_INTERVAL = 0.1  # seconds
CHUNK_SIZE = 320  # bytes of placeholder payload


async def main() -> None:
    parser = argparse.ArgumentParser(description="Orbiting bot for the relay")
    parser.add_argument("--host", default="localhost", help="Server host")
    parser.add_argument("--port", type=int, default=8787, help="Server port")
    parser.add_argument("--nick", default="OrbitBot", help="Bot nickname")
    parser.add_argument("--radius", type=float, default=10.0, help="Orbit radius")
    args = parser.parse_args()

    url = relay_url(args.host, args.port, args.nick)
    logger.info(f"Connecting to {url}...")

    async with RelayClient(url, args.nick) as bot:
        talk_task = asyncio.create_task(orbit_and_talk(bot, args.radius))
        try:
            async for frame in bot.frames():
                if isinstance(frame, AudioRelay):
                    params = bot.mix_params.get(frame.player_nick)
                    if params is not None:
                        logger.info(
                            f"Heard {frame.player_nick}: gain={params.gain:.2f} "
                            f"pan={params.pan:+.0f} dist={params.distance:.1f}"
                        )
        finally:
            talk_task.cancel()
            try:
                await talk_task
            except asyncio.CancelledError:
                pass


async def orbit_and_talk(bot: RelayClient, radius: float) -> None:
    """Move one step around the circle and send one chunk per tick."""
    angle = 0.0
    while True:
        x = radius * math.cos(angle)
        z = radius * math.sin(angle)
        await bot.send_position(x, z)
        await bot.send_audio(os.urandom(CHUNK_SIZE))
        angle = (angle + 0.05) % (2 * math.pi)
        await asyncio.sleep(CHUNK_INTERVAL)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
