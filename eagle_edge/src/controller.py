"""
Meter controller: one poll cycle plus the host actions.

The controller wires the pieces together for a single gateway:

    adapter.read() -> normalize() -> repository.publish_reading()
                 \\-> CommFailureMonitor (every poll)

and exposes the actions that mutate billing state or configuration:
``start_peak``, ``end_peak``, ``reset_period``, ``set_pulse`` and
``set_season``. Actions only need the repository, so the CLI can run them
against the persisted store while the daemon is stopped or running.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-014)
- 2026-10-19: Stamp comm failures with the controller clock

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from eagle_edge.src import billing
from eagle_edge.src.eagle100 import Eagle100Adapter
from eagle_edge.src.eagle200 import Eagle200Adapter
from eagle_edge.src.errors import FieldParseError
from eagle_edge.src.health import CommFailureMonitor
from eagle_edge.src.models import CanonicalReading, EagleModel, MeteringType
from eagle_edge.src.normalizer import normalize
from eagle_edge.src.repository import MeterRepository
from eagle_edge.src.scheduler import DEFAULT_PULSE_S, MAX_PULSE_S, clamp_pulse
from eagle_edge.src.session import DeviceSession, build_session

if TYPE_CHECKING:
    import httpx

    from eagle_edge.src.config import EagleSettings
    from eagle_edge.src.scheduler import PollScheduler
    from eagle_edge.src.store import VariableStore

logger = logging.getLogger(__name__)

Adapter = Eagle100Adapter | Eagle200Adapter


def build_adapter(session: DeviceSession) -> Adapter:
    """Return the protocol adapter for the session's hardware model."""
    if session.config.model is EagleModel.EAGLE_200:
        return Eagle200Adapter(session)
    return Eagle100Adapter(session)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class MeterController:
    """Polls one gateway and applies billing actions.

    Args:
        session: Device session (model, metering type).
        adapter: Protocol adapter matching the session model.
        repository: Typed access to the variable store.
        monitor: Comm-failure state machine.
        rates: Configured rate schedule used on period reset.
        default_season: Season assumed when none is stored.
        default_pulse_s: Poll interval used when the stored one is invalid.
        max_pulse_s: Largest accepted poll interval.
        clock: Returns the timezone-aware local time (tests override).
    """

    def __init__(
        self,
        *,
        session: DeviceSession,
        adapter: Adapter,
        repository: MeterRepository,
        monitor: CommFailureMonitor,
        rates: billing.RateSchedule,
        default_season: str = "Summer",
        default_pulse_s: int = DEFAULT_PULSE_S,
        max_pulse_s: int = MAX_PULSE_S,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self._session = session
        self._adapter = adapter
        self._repository = repository
        self._monitor = monitor
        self._rates = rates
        self._default_season = default_season
        self._default_pulse_s = default_pulse_s
        self._max_pulse_s = max_pulse_s
        self._clock = clock
        self.scheduler: PollScheduler | None = None

    @property
    def monitor(self) -> CommFailureMonitor:
        return self._monitor

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> CanonicalReading | None:
        """Execute a single read-normalize-publish cycle.

        Transport, decode and field errors never escape: they are turned
        into a comm-failure transition and ``None`` is returned.

        Returns:
            The published reading, or ``None`` when the poll failed.
        """
        now = self._clock()
        raw = await self._adapter.read()
        if raw is None:
            await self._monitor.record_failure(
                "no usable response from gateway", now=int(now.timestamp())
            )
            return None

        try:
            reading = normalize(raw, model=self._session.config.model, now=now)
        except FieldParseError as exc:
            logger.warning("Discarding reading: %s", exc)
            await self._monitor.record_failure(
                f"malformed reading: {exc}", now=int(now.timestamp())
            )
            return None

        if not reading.connected:
            logger.warning("Connection problem: %s", reading.link_status)
            await self._monitor.record_failure(
                f"meter status {reading.link_status!r}", now=int(now.timestamp())
            )
            return None

        state = await self._repository.load_period_state()
        metering_type = self._session.config.metering_type
        kwh = billing.kwh_since_reset(
            metering_type,
            delivered=reading.delivered_kwh,
            received=reading.received_kwh,
            state=state,
        )
        per_period = (
            billing.delivered_per_period(reading.delivered_kwh, state)
            if metering_type is MeteringType.NET
            else None
        )
        await self._repository.publish_reading(
            reading, kwh=kwh, delivered_per_period=per_period
        )
        await self._monitor.record_success()
        logger.info(
            "Poll success: delivered=%.3f received=%.3f demand=%.0fW",
            reading.delivered_kwh,
            reading.received_kwh,
            reading.demand_watts,
        )
        return reading

    # ------------------------------------------------------------------
    # Billing actions
    # ------------------------------------------------------------------

    async def start_peak(self) -> None:
        """Close the off-peak interval and start tracking peak energy."""
        state = await self._repository.load_period_state()
        current_kwh = await self._repository.current_kwh()
        await self._repository.save_period_state(billing.start_peak(state, current_kwh))

    async def end_peak(self) -> None:
        """Close the peak interval and start tracking off-peak energy."""
        state = await self._repository.load_period_state()
        current_kwh = await self._repository.current_kwh()
        await self._repository.save_period_state(billing.end_peak(state, current_kwh))

    async def reset_period(self) -> None:
        """Roll the billing period over to the current counters."""
        state = await self._repository.load_period_state()
        new_state = billing.reset_period(
            state,
            current_delivered=await self._repository.current_delivered(),
            current_received=await self._repository.current_received(),
            current_kwh=await self._repository.current_kwh(),
            season=await self._repository.get_season(self._default_season),
            rates=self._rates,
            now=int(self._clock().timestamp()),
        )
        await self._repository.save_period_state(new_state)
        await self._repository.set_kwh(0.0)
        logger.info(
            "Reset base values: delivered_prior=%.3f peak=%.3f off_peak=%.3f",
            new_state.delivered_prior,
            new_state.prior_peak,
            new_state.prior_off_peak,
        )

    # ------------------------------------------------------------------
    # Configuration actions
    # ------------------------------------------------------------------

    def _clamp(self, value: object) -> int:
        return clamp_pulse(value, default=self._default_pulse_s, maximum=self._max_pulse_s)

    async def set_pulse(self, value: object) -> int:
        """Change the poll interval.

        Invalid or too large values fall back to the default; 0 disables
        polling. Nothing is rescheduled when the interval is unchanged.

        Returns:
            The interval now in effect.
        """
        pulse = self._clamp(value)
        stored = await self._repository.get_pulse()
        scheduled = self.scheduler is None or self.scheduler.interval_s == pulse
        if pulse == stored and scheduled:
            return pulse

        await self._repository.set_pulse(pulse)
        if self.scheduler is not None:
            self.scheduler.set_interval(pulse)
        logger.info("Pulse set to %ss", pulse)
        return pulse

    async def stored_pulse(self, default: int) -> int:
        """Poll interval from the store, or *default* if none is stored."""
        stored = await self._repository.get_pulse()
        return self._clamp(default if stored is None else stored)

    async def sync_pulse(self) -> None:
        """Apply a Pulse changed in the store by another process."""
        if self.scheduler is None:
            return
        pulse = self._clamp(await self._repository.get_pulse())
        if self.scheduler.set_interval(pulse):
            logger.info("Stored pulse changed, now polling every %ss", pulse)

    async def set_season(self, season: str) -> bool:
        """Store a new season name.

        Returns:
            ``True`` if the season changed.
        """
        season = (season or "").strip()
        if not season or season == await self._repository.get_season(self._default_season):
            return False
        await self._repository.set_season(season)
        logger.info("Season set to %s", season)
        return True

    def start_polling(
        self,
        scheduler: PollScheduler,
        pulse_s: int,
        *,
        initial_delay_s: float,
    ) -> None:
        """Attach *scheduler* and start polling at *pulse_s*."""
        self.scheduler = scheduler
        scheduler.start(self._clamp(pulse_s), initial_delay_s=initial_delay_s)


async def create_controller(
    settings: EagleSettings,
    store: VariableStore,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], datetime] = _local_now,
    offline: bool = False,
) -> MeterController:
    """Build a controller for the configured gateway.

    For the Eagle 200 this queries ``device_list`` to resolve the meter
    hardware address. With *offline* set, device checks and network access
    are skipped; the controller can then only run actions.

    Raises:
        MissingConfigurationError: If required device configuration is
            missing or the Eagle 200 hardware address cannot be found.
    """
    if offline:
        session = DeviceSession(config=settings.device_config())
    else:
        session = build_session(settings, transport=transport)
    adapter = build_adapter(session)
    if isinstance(adapter, Eagle200Adapter) and not offline:
        await adapter.resolve_hardware_address()

    repository = MeterRepository(store)
    await repository.define_defaults(pulse_s=settings.pulse_s, season=settings.season)
    monitor = CommFailureMonitor(repository, await repository.load_comm_failure())

    return MeterController(
        session=session,
        adapter=adapter,
        repository=repository,
        monitor=monitor,
        rates=billing.parse_rates(settings.rates),
        default_season=settings.season,
        default_pulse_s=DEFAULT_PULSE_S,
        max_pulse_s=settings.max_pulse_s,
        clock=clock,
    )
