"""CLI entry point for the watering monitor."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional, Sequence

from .config import get_settings
from .errors import ConfigError
from .model import TelemetrySnapshot
from .mqtt.commander import ALLOWED_DURATIONS, ActuatorCommander
from .session import MonitorSession

logger = logging.getLogger(__name__)


def _fmt(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:g}"


def format_snapshot(snap: TelemetrySnapshot) -> str:
    live = snap.live
    mode = "MQTT live" if snap.is_live else "History mode"
    latest = snap.history.moisture.latest
    trend = f"{latest.value:g}@{snap.history.labels[-1]}" if latest else "-"
    return (
        f"[{mode}] state={snap.connection_state.value} "
        f"moisture={_fmt(live.moisture)} temp={_fmt(live.temperature)} "
        f"hum={_fmt(live.humidity)} pump={live.pump_status or '-'} "
        f"history={len(snap.history)} last={trend}"
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Smart watering telemetry monitor")
    p.add_argument("--env-file", default=None, help="path to a .env file")
    p.add_argument(
        "--run-pump",
        type=int,
        choices=ALLOWED_DURATIONS,
        metavar="SECONDS",
        help=f"send RUN:<seconds> and exit (one of {list(ALLOWED_DURATIONS)})",
    )
    p.add_argument("--once", action="store_true", help="fetch history once, print and exit")
    p.add_argument("--status-seconds", type=float, default=10.0)
    args = p.parse_args(argv)

    try:
        settings = get_settings(args.env_file)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if args.run_pump is not None:
        result = ActuatorCommander(settings.broker).run_for(args.run_pump)
        print(f"{result.payload}: {result.status.value}")
        return 0 if result.sent else 1

    session = MonitorSession(settings)

    if args.once:
        try:
            session.poller.fetch_once()
            print(format_snapshot(session.snapshot()))
        finally:
            session.poller.stop()
        return 0

    with session:
        try:
            while True:
                time.sleep(args.status_seconds)
                logger.info(format_snapshot(session.snapshot()))
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
