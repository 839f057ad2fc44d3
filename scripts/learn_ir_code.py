#!/usr/bin/env python3
"""Capture an IR code from the original remote with a Broadlink blaster.

The printed hex string goes into the matching ``IRAMP_CODE_*`` variable.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyiramp import IrAmpTransportError  # noqa: E402
from pyiramp._devices import BroadlinkTransmitter  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Learn one IR code.")
    parser.add_argument("host", help="Broadlink host or IP.")
    parser.add_argument("--mac", help="Broadlink MAC, when several devices share the host.")
    parser.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait for a button press.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    transmitter = BroadlinkTransmitter(args.host, mac=args.mac)
    try:
        code = await transmitter.learn(timeout=args.timeout)
    except IrAmpTransportError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if code is None:
        print("No code received before timeout.", file=sys.stderr)
        return 1
    print(code)
    return 0


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
