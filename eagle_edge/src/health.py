"""
Communication-failure state machine for the poll loop.

Two states: healthy and failing.

- The first failed poll of a run switches to failing, stamps the failure
  start time, raises an alert (ERROR log + ``CommFailureAlert`` variable)
  and sets the ``CommFailure`` fault indicator.
- Further consecutive failures keep the original start time.
- Only a poll that produced a connected, fully derived reading switches
  back to healthy and clears the alert.

The state is persisted through the repository after every transition so a
restarted daemon continues the same failure run. The in-memory state only
moves once the write succeeded, so a failed write is retried on the next poll.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-012)
- 2026-10-19: Persist each transition before adopting it

TODO:
- None
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from eagle_edge.src.models import CommFailureState

if TYPE_CHECKING:
    from eagle_edge.src.repository import MeterRepository

logger = logging.getLogger(__name__)


def on_failure(state: CommFailureState, now: int) -> CommFailureState:
    """Return the state after a failed poll at *now*."""
    if state.failing:
        return state
    return CommFailureState(failing=True, failure_start_time=now)


def on_success(state: CommFailureState) -> CommFailureState:
    """Return the state after a fully successful poll."""
    if not state.failing:
        return state
    return CommFailureState()


class CommFailureMonitor:
    """Tracks gateway communication health and publishes it.

    Args:
        repository: Repository used to persist the state and the alert.
        state: Initial state (usually loaded from the repository).
    """

    def __init__(
        self,
        repository: MeterRepository,
        state: CommFailureState | None = None,
    ) -> None:
        self._repository = repository
        self._state = state or CommFailureState()

    @property
    def state(self) -> CommFailureState:
        """Current communication state."""
        return self._state

    async def record_failure(self, reason: str, *, now: int | None = None) -> None:
        """Record a failed poll; only the first failure of a run alerts."""
        new_state = on_failure(self._state, int(time.time()) if now is None else now)
        if new_state is self._state:
            logger.warning(
                "Poll failed again (failing since %s): %s",
                self._state.failure_start_time,
                reason,
            )
            return

        alert = f"Communication failure with Eagle gateway: {reason}"
        logger.error(alert)
        await self._repository.save_comm_failure(new_state, alert=alert)
        self._state = new_state

    async def record_success(self) -> None:
        """Record a fully successful poll, clearing any active failure."""
        new_state = on_success(self._state)
        if new_state is self._state:
            return

        logger.info(
            "Communication with Eagle gateway restored (failing since %s)",
            self._state.failure_start_time,
        )
        await self._repository.save_comm_failure(new_state)
        self._state = new_state
