from __future__ import annotations

import argparse
import sys

import uvicorn
from loguru import logger

from chatrelay.app import build_relay
from chatrelay.config import get_settings


_UVICORN_LEVELS = ("critical", "error", "warning", "info", "debug", "trace")


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    p = argparse.ArgumentParser(description="Run the persona chat relay (Socket.IO + debug HTTP)")
    p.add_argument("--host", type=str, default=settings.host, help="Interface to bind")
    p.add_argument("--port", type=int, default=settings.port, help="Listening port (env PORT)")
    p.add_argument("--log-level", type=str, default=settings.log_level, help="Loguru level (env LOG_LEVEL)")
    return p.parse_args()


def main() -> None:
    args = parse_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper(), format="{time:HH:mm:ss} | {level} | {message}")

    relay = build_relay(get_settings())
    logger.info(f"Server listening on http://{args.host}:{args.port}")
    uv_level = args.log_level.lower()
    if uv_level not in _UVICORN_LEVELS:
        uv_level = "info"
    uvicorn.run(relay.asgi, host=args.host, port=args.port, log_level=uv_level)


if __name__ == "__main__":
    main()
