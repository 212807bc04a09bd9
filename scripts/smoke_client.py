from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path as _PathForSys

from loguru import logger

# Ensure the project root is on sys.path when run from scripts/
_pkg_root = str(_PathForSys(__file__).resolve().parents[1])
if _pkg_root not in sys.path:
    sys.path.insert(0, _pkg_root)

from chatrelay.client import DEFAULT_URL, ReplyTimeout, send_and_wait


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Send one message over Socket.IO and print the persona's reply")
    p.add_argument("--url", type=str, default=DEFAULT_URL, help="Relay base URL")
    p.add_argument("--text", type=str, default="I feel sad and overwhelmed", help="Message text")
    p.add_argument("--persona", type=str, default="zoya", help="Persona id")
    p.add_argument("--llm", action="store_true", help="Opt this connection in to external models")
    p.add_argument("--medical-consent", action="store_true", help="Give medical consent (dr_gupta + --llm)")
    p.add_argument("--timeout", type=float, default=8.0, help="Seconds to wait for the reply")
    return p.parse_args()


async def main() -> int:
    args = parse_args()
    logger.remove()
    logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")

    try:
        result = await send_and_wait(
            args.url,
            args.text,
            persona=args.persona,
            use_llm=args.llm,
            medical_consent=args.medical_consent,
            timeout=args.timeout,
        )
    except ReplyTimeout as e:
        logger.error(f"Timeout waiting for reply: {e}")
        return 2
    logger.info(f"History on connect: {len(result['history'])} messages")
    print(json.dumps(result["reply"], ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
