# Customer-facing display: state machine plus the polling loop that feeds it.

"""
Customer Display

The register publishes its cart to the server; the customer display polls it.

    IDLE -> ACTIVE -> AWAITING_TIP -> TIP_SELECTED -> REVIEW -> COMPLETED
    CANCELLED clears back to IDLE

Once a tip is picked, locally or as read from the server, the display is
"processing" (TIP_SELECTED). While processing, remote states are ignored
unless they are COMPLETED, IDLE, CANCELLED, or a non-empty ACTIVE cart whose
items differ from the cart being processed. A processing state that lasts
longer than the processing timeout resets to IDLE.
"""

from __future__ import annotations

import json
import logging
import threading
import time

from .config import TerminalConfig
from .errors import TerminalError
from .timers import ThreadScheduler

logger = logging.getLogger(__name__)

IDLE = "IDLE"
ACTIVE = "ACTIVE"
AWAITING_TIP = "AWAITING_TIP"
TIP_SELECTED = "TIP_SELECTED"
REVIEW = "REVIEW"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

PROCESSING_EXITS = (COMPLETED, IDLE, CANCELLED)


def _serialize(value) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _idle_view() -> dict:
    return {
        "status": IDLE,
        "items": [],
        "subtotal": 0,
        "tax": 0,
        "total": 0,
        "tipAmount": 0,
        "showTipPrompt": False,
        "tipSelected": False,
        "customerName": None,
    }


class CustomerDisplay:
    def __init__(
        self,
        client,
        station_id: str,
        scheduler=None,
        processing_timeout: float = 120.0,
        tip_write_attempts: int = 3,
        tip_retry_delay: float = 0.25,
        failure_threshold: int = 3,
        sleep=time.sleep,
    ):
        self.client = client
        self.station_id = station_id
        self.scheduler = scheduler or ThreadScheduler()
        self.processing_timeout = processing_timeout
        self.tip_write_attempts = max(1, tip_write_attempts)
        self.tip_retry_delay = tip_retry_delay
        self.failure_threshold = failure_threshold
        self._sleep = sleep

        self._lock = threading.RLock()
        self.view = _idle_view()
        self.processing = False
        self._processing_items = None
        self._processing_timer = None
        self._timer_generation = 0
        self._last_payload = None

        self.consecutive_failures = 0
        self.connection_lost = False

    @classmethod
    def from_config(cls, client, config: TerminalConfig, scheduler=None) -> "CustomerDisplay":
        return cls(
            client,
            config.station_id,
            scheduler=scheduler,
            processing_timeout=config.processing_timeout,
            tip_write_attempts=config.tip_write_attempts,
            tip_retry_delay=config.tip_retry_delay,
            failure_threshold=config.display_failure_threshold,
        )

    @property
    def status(self) -> str:
        return self.view["status"]

    # -- remote state -------------------------------------------------------

    def apply_remote_state(self, state: dict) -> bool:
        """
        Apply a state read from the server.

        Returns True if the visible state changed. Payloads identical to the
        previous one are skipped.
        """
        if not isinstance(state, dict):
            return False
        payload = _serialize(state)
        with self._lock:
            if payload == self._last_payload:
                return False
            self._last_payload = payload

            status = str(state.get("status") or IDLE).upper()
            items = state.get("items") or []

            if self.processing:
                new_cart = (
                    status == ACTIVE
                    and len(items) > 0
                    and _serialize(items) != self._processing_items
                )
                if status not in PROCESSING_EXITS and not new_cart:
                    logger.debug("Display ignoring %s while processing", status)
                    return False
                self._end_processing()
            elif self.status == COMPLETED and not (status == ACTIVE and items):
                # thank-you screen stays up until acknowledged or a new cart arrives
                return False

            if status in (CANCELLED, IDLE):
                self.view = _idle_view()
            else:
                view = _idle_view()
                view.update({k: state[k] for k in view if k in state})
                view["status"] = status
                view["items"] = list(items)
                self.view = view
                if status == TIP_SELECTED:
                    # e.g. a display restarted mid-payment
                    self.processing = True
                    self._processing_items = _serialize(view["items"])
                    self._start_processing_timer()
            return True

    # -- tip ----------------------------------------------------------------

    def submit_tip(self, amount_cents: int) -> bool:
        """
        Write the customer's tip back to the register, then enter processing.

        The write is retried; the display enters processing whether or not
        it succeeded. Returns True if the write went through.
        """
        amount_cents = max(0, int(amount_cents or 0))
        with self._lock:
            cart = dict(self.view)
        cart.update({
            "status": TIP_SELECTED,
            "tipAmount": amount_cents,
            "tipSelected": True,
            "showTipPrompt": False,
        })

        written = False
        for attempt in range(1, self.tip_write_attempts + 1):
            try:
                self.client.publish_display_state(self.station_id, cart)
                written = True
                break
            except TerminalError as e:
                logger.warning("Tip write attempt %s/%s failed: %s", attempt, self.tip_write_attempts, e)
                if attempt < self.tip_write_attempts:
                    self._sleep(self.tip_retry_delay)

        with self._lock:
            self.view = cart
            self.processing = True
            self._processing_items = _serialize(cart.get("items") or [])
            self._start_processing_timer()
        return written

    def _start_processing_timer(self) -> None:
        self._cancel_processing_timer()
        self._timer_generation += 1
        generation = self._timer_generation
        self._processing_timer = self.scheduler.call_later(
            self.processing_timeout, self._processing_timed_out, generation
        )

    def _cancel_processing_timer(self) -> None:
        if self._processing_timer is not None:
            self._processing_timer.cancel()
            self._processing_timer = None

    def _end_processing(self) -> None:
        self._cancel_processing_timer()
        self._timer_generation += 1
        self.processing = False
        self._processing_items = None

    def _processing_timed_out(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation or not self.processing:
                return
            logger.warning("Display stuck in %s for %ss; resetting", TIP_SELECTED, self.processing_timeout)
            self._processing_timer = None
            self._end_processing()
            self.view = _idle_view()

    def acknowledge(self) -> None:
        """Dismiss the thank-you screen."""
        with self._lock:
            if self.status == COMPLETED:
                self.view = _idle_view()

    # -- connectivity -------------------------------------------------------

    def record_poll_success(self) -> None:
        with self._lock:
            if self.connection_lost:
                logger.info("Display connection restored")
            self.consecutive_failures = 0
            self.connection_lost = False

    def record_poll_failure(self) -> None:
        with self._lock:
            self.consecutive_failures += 1
            if self.consecutive_failures >= self.failure_threshold and not self.connection_lost:
                logger.warning("Display connection lost after %s failed polls", self.consecutive_failures)
                self.connection_lost = True


class DisplayPoller:
    """
    Fixed-interval poller with at most one request outstanding.

    The next poll is scheduled only after the previous one completes.
    """

    def __init__(self, client, display: CustomerDisplay, interval: float = 0.5, scheduler=None):
        self.client = client
        self.display = display
        self.interval = interval
        self.scheduler = scheduler or display.scheduler
        self.running = False
        self._handle = None
        self._in_flight = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self.running = True
            self._handle = self.scheduler.call_later(0, self._tick)

    def stop(self) -> None:
        with self._lock:
            self.running = False
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def poll_once(self) -> bool:
        """Run one poll. Returns False if a poll was already in flight."""
        with self._lock:
            if self._in_flight:
                return False
            self._in_flight = True
        try:
            state = self.client.get_display_state(self.display.station_id)
        except TerminalError as e:
            logger.debug("Display poll failed: %s", e)
            self.display.record_poll_failure()
        else:
            self.display.record_poll_success()
            self.display.apply_remote_state(state)
        finally:
            with self._lock:
                self._in_flight = False
        return True

    def _tick(self) -> None:
        if not self.running:
            return
        try:
            self.poll_once()
        finally:
            with self._lock:
                if self.running:
                    self._handle = self.scheduler.call_later(self.interval, self._tick)
