# dynmap_exporter/core/confirmation.py
# -*- coding: utf-8 -*-

"""Confirmation gate between planning and drawing.

The gate waits for one decision on a ``DecisionToken``: the front-end calls
``token.confirm()`` or ``token.cancel()`` while the gate is pending. A
reminder is reported every ``interval_s`` seconds with the remaining time;
when the countdown reaches zero the export is cancelled automatically.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Optional

from .constants import CONFIRM_POLL_S, CONFIRM_REMINDER_INTERVAL_S, DEFAULT_TIMEOUT_S
from .models import DecisionToken

log = logging.getLogger(__name__)

ReminderCallback = Callable[[float], None]


class GateOutcome(str, Enum):
    AUTO_CONFIRMED = "AUTO_CONFIRMED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def proceed(self) -> bool:
        return self in (GateOutcome.AUTO_CONFIRMED, GateOutcome.CONFIRMED)


class ConfirmationGate:
    """Single-shot confirm/cancel/timeout decision.

    Args:
        timeout_s: Countdown length in seconds.
        interval_s: Reminder interval; the countdown decrements by this step.
        reminder_cb: Called with the remaining seconds on every reminder.
        process_events: Called on every poll so an event loop can deliver
            confirm/cancel signals.
        sleep: Sleep function (injectable for tests).
        clock: Monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        *,
        interval_s: float = CONFIRM_REMINDER_INTERVAL_S,
        reminder_cb: Optional[ReminderCallback] = None,
        process_events: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_s = float(timeout_s)
        self.interval_s = float(interval_s)
        self.reminder_cb = reminder_cb
        self.process_events = process_events
        self._sleep = sleep
        self._clock = clock

    def wait(self, token: Optional[DecisionToken] = None, *, auto_confirm: bool = False) -> GateOutcome:
        """Block until the token is decided or the countdown expires.

        The token is closed on every outcome, so late signals are ignored.
        """
        token = token if token is not None else DecisionToken()

        if auto_confirm:
            token.close()
            return GateOutcome.AUTO_CONFIRMED

        token.open()
        try:
            remaining = self.timeout_s
            self._remind(remaining)
            next_tick = self._clock() + self.interval_s

            while True:
                if self.process_events is not None:
                    self.process_events()

                if token.decision is not None:
                    return GateOutcome.CONFIRMED if token.decision else GateOutcome.CANCELLED

                now = self._clock()
                if now >= next_tick:
                    remaining -= self.interval_s
                    if remaining <= 0:
                        log.info("Confirmation timed out after %.0f s.", self.timeout_s)
                        return GateOutcome.TIMED_OUT
                    self._remind(remaining)
                    next_tick += self.interval_s
                    continue

                self._sleep(min(CONFIRM_POLL_S, next_tick - now))
        finally:
            token.close()

    def _remind(self, remaining: float) -> None:
        log.debug("Waiting for confirmation, %.0f s left.", remaining)
        if self.reminder_cb is not None:
            self.reminder_cb(remaining)
