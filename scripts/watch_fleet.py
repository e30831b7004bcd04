#!/usr/bin/env python3
"""Live fleet monitor.

Connects to the telemetry broker configured through ``FLEET_MQTT_*``
environment variables, tracks every active trip and prints a fleet
summary (plus active alerts) every few seconds.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleettrack import (  # noqa: E402
    FleetEngine,
    FleetSnapshot,
    HttpUserDirectory,
    MqttTelemetrySource,
    TrackerConfig,
)
from fleettrack.exceptions import FleetConfigError  # noqa: E402

_LOG = logging.getLogger("watch_fleet")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track active trips and print fleet snapshots.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=5.0,
        help="Seconds between printed summaries.",
    )
    parser.add_argument(
        "--directory-url",
        default="",
        help="Base URL of the user directory (GET <url>/users/<id>) for rider names.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print each snapshot as JSON instead of a summary line.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_snapshot(snapshot: FleetSnapshot, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return
    print(
        f"[{snapshot.generated_at:%H:%M:%S}] tracked={snapshot.tracked_count} "
        f"live={snapshot.live_count} delayed={snapshot.delayed_count} offline={snapshot.offline_count} "
        f"moving={snapshot.moving_count} mean_speed={snapshot.mean_speed:.1f}m/s "
        f"distance={snapshot.total_distance_m / 1000:.2f}km alerts={len(snapshot.alerts)}"
    )
    for alert in snapshot.alerts:
        print(f"    {alert.severity.upper():7} {alert.trip_id}: {alert.message}")


async def _watch(args: argparse.Namespace, config: TrackerConfig) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)
    if args.duration > 0:
        loop.call_later(args.duration, stop.set)

    async with contextlib.AsyncExitStack() as stack:
        directory = None
        if args.directory_url:
            directory = await stack.enter_async_context(HttpUserDirectory(args.directory_url))
        source = await stack.enter_async_context(MqttTelemetrySource(config.mqtt))
        engine = await stack.enter_async_context(FleetEngine(source, config=config, directory=directory))
        _LOG.info("Watching %s:%s prefix=%s", config.mqtt.host, config.mqtt.port, config.mqtt.topic_prefix)

        while not stop.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=args.interval)
            _print_snapshot(engine.snapshot(), as_json=args.json)


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = TrackerConfig.from_env()
    except FleetConfigError as exc:
        print(f"[watch] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    try:
        asyncio.run(_watch(args, config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
