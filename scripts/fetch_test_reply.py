from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path as _PathForSys

import httpx
from loguru import logger

# Ensure the project root is on sys.path when run from scripts/
_pkg_root = str(_PathForSys(__file__).resolve().parents[1])
if _pkg_root not in sys.path:
    sys.path.insert(0, _pkg_root)

from chatrelay.client import DEFAULT_URL


def main() -> int:
    p = argparse.ArgumentParser(description="Ask the heuristic engine for a reply via /_testReply")
    p.add_argument("--url", type=str, default=DEFAULT_URL)
    p.add_argument("--q", type=str, default="I feel sad and overwhelmed")
    p.add_argument("--persona", type=str, default="zoya")
    args = p.parse_args()

    try:
        res = httpx.get(f"{args.url.rstrip('/')}/_testReply", params={"q": args.q, "persona": args.persona}, timeout=10.0)
    except httpx.HTTPError as e:
        logger.error(f"problem with request: {e}")
        return 1
    print("STATUS", res.status_code)
    print("HEADERS", dict(res.headers))
    try:
        print("BODY", json.dumps(res.json(), ensure_ascii=False, indent=2))
    except ValueError:
        print("BODY", res.text)
    return 0 if res.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
