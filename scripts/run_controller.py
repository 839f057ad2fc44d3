#!/usr/bin/env python3
"""Run the amplifier controller until interrupted.

Configuration comes from ``IRAMP_*`` environment variables (see
:meth:`pyiramp.config.AmplifierConfig.from_env`). Command line flags
override the most common ones.
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

from pyiramp import AmplifierConfig, AmplifierController, IrAmpConfigError  # noqa: E402
from pyiramp._devices import build_devices  # noqa: E402

_LOG = logging.getLogger("run_controller")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Keep an IR amplifier's power state reconciled with its metering outlet.",
    )
    parser.add_argument("--outlet-host", help="Smart outlet host (overrides IRAMP_OUTLET_HOST).")
    parser.add_argument("--ir-host", help="IR blaster host (overrides IRAMP_IR_HOST).")
    parser.add_argument(
        "--power-threshold",
        type=float,
        help="Watts above which the amplifier counts as on.",
    )
    parser.add_argument(
        "--power",
        choices=("on", "off"),
        help="Request a power state once the controller is started.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _build_config(args: argparse.Namespace) -> AmplifierConfig:
    overrides: dict[str, object] = {}
    if args.outlet_host:
        overrides["outlet_host"] = args.outlet_host
    if args.ir_host:
        overrides["ir_host"] = args.ir_host
    if args.power_threshold is not None:
        overrides["power_threshold"] = args.power_threshold
    return AmplifierConfig.from_env(**overrides)


async def run(args: argparse.Namespace) -> None:
    config = _build_config(args)
    outlet, transmitter = build_devices(config)

    def _print_event(event: str, value: object) -> None:
        _LOG.info("%s -> %s", event, value)

    try:
        async with AmplifierController(config, outlet=outlet, transmitter=transmitter) as amp:
            amp.add_listener(_print_event)
            if args.power is not None:
                await amp.set_power(args.power == "on")
            await asyncio.Event().wait()
    finally:
        await outlet.close()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run(args))
    except IrAmpConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
