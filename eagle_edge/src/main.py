"""
Edge daemon entrypoint and command line for the Eagle HAN meter bridge.

``eagle-edge run`` (the default) starts the daemon:

1. Load settings, build the device session and controller. Missing device
   configuration (no MAC id for the Eagle 100, unresolvable Eagle 200
   hardware address) is reported once and the process exits with status 1
   without polling.
2. Start the poll scheduler at the stored Pulse.
3. Every ``PULSE_WATCH_S`` seconds pick up a Pulse changed by the CLI.
4. Graceful shutdown on SIGTERM/SIGINT cancels the schedule and closes the
   variable store.

The other sub-commands apply one action to the persisted store and exit:
``start-peak``, ``end-peak``, ``reset-period``, ``set-pulse SECONDS`` and
``set-season NAME``.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Add action sub-commands
- 2026-10-19: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from eagle_edge.src.errors import MissingConfigurationError
from eagle_edge.src.scheduler import PollScheduler

if TYPE_CHECKING:
    from eagle_edge.src.config import EagleSettings
    from eagle_edge.src.controller import MeterController

logger = logging.getLogger(__name__)

PULSE_WATCH_S: float = 30.0
"""Seconds between checks for a Pulse changed outside the daemon."""


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging() -> None:
    """Configure structured JSON logging for the edge daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: EagleSettings) -> None:
    """Log a config summary at startup, masking the install code."""
    logger.info(
        "Eagle edge starting with config: "
        "eagle_host=%s, eagle_model=%s, device_mac_id=%s, cloud_id=%s, "
        "metering_type=%s, pulse_s=%s, max_pulse_s=%s, http_timeout_s=%s, "
        "season=%s, rates=%s, store_path=%s, device_id=%s, "
        "install_code_masked=%s",
        settings.eagle_host,
        settings.eagle_model.value,
        settings.device_mac_id,
        settings.cloud_id,
        settings.metering_type.value,
        settings.pulse_s,
        settings.max_pulse_s,
        settings.http_timeout_s,
        settings.season,
        settings.rates,
        settings.store_path,
        settings.device_id,
        _masked_token(settings.device_install_code),
    )


# ---------------------------------------------------------------------------
# Daemon
# ---------------------------------------------------------------------------


async def run_daemon(
    *,
    controller: MeterController,
    pulse_s: int,
    startup_delay_s: float,
    shutdown_event: asyncio.Event,
    watch_interval_s: float = PULSE_WATCH_S,
) -> None:
    """Poll until *shutdown_event* is set.

    Args:
        controller: Controller for the configured gateway.
        pulse_s: Initial poll interval.
        startup_delay_s: Delay before the first poll.
        shutdown_event: Event to signal graceful shutdown.
        watch_interval_s: Seconds between stored-Pulse checks.
    """
    scheduler = PollScheduler(controller.poll_once)
    controller.start_polling(scheduler, pulse_s, initial_delay_s=startup_delay_s)
    try:
        while not shutdown_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(shutdown_event.wait(), timeout=watch_interval_s)
            if not shutdown_event.is_set():
                try:
                    await controller.sync_pulse()
                except Exception:
                    logger.warning("Failed to read stored pulse", exc_info=True)
    finally:
        await scheduler.stop()
    logger.info("Shutdown complete")


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eagle-edge",
        description="Rainforest Eagle 100/200 meter bridge.",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="run the polling daemon (default)")
    sub.add_parser("start-peak", help="start of the peak billing window")
    sub.add_parser("end-peak", help="end of the peak billing window")
    sub.add_parser("reset-period", help="start a new billing period")
    pulse = sub.add_parser("set-pulse", help="change the poll interval")
    pulse.add_argument("seconds", help="poll interval in seconds, 0 disables polling")
    season = sub.add_parser("set-season", help="change the billing season")
    season.add_argument("name", help="'Winter' or 'Summer'")
    return parser


async def run_action(controller: MeterController, args: argparse.Namespace) -> None:
    """Apply the action selected on the command line."""
    if args.command == "start-peak":
        await controller.start_peak()
    elif args.command == "end-peak":
        await controller.end_peak()
    elif args.command == "reset-period":
        await controller.reset_period()
    elif args.command == "set-pulse":
        await controller.set_pulse(args.seconds)
    elif args.command == "set-season":
        await controller.set_season(args.name)
    else:
        raise ValueError(f"unknown command: {args.command}")


async def async_main(argv: Sequence[str] | None = None) -> int:
    """Async entrypoint: parse arguments, load config, run daemon or action.

    Returns:
        Process exit status.
    """
    configure_logging()
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    from eagle_edge.src.config import EagleSettings
    from eagle_edge.src.controller import create_controller
    from eagle_edge.src.store import VariableStore

    settings = EagleSettings()

    async with VariableStore(settings.store_path, device_id=settings.device_id) as store:
        if command != "run":
            controller = await create_controller(settings, store, offline=True)
            await run_action(controller, args)
            return 0

        log_config_summary(settings)
        try:
            controller = await create_controller(settings, store)
        except MissingConfigurationError as exc:
            logger.critical("Cannot start polling: %s", exc)
            return 1

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: _handle_signal(shutdown_event))

        await run_daemon(
            controller=controller,
            pulse_s=await controller.stored_pulse(settings.pulse_s),
            startup_delay_s=settings.startup_delay_s,
            shutdown_event=shutdown_event,
        )
    return 0


def main() -> None:
    """Synchronous entrypoint for the edge daemon."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
