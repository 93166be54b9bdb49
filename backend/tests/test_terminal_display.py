# Overview: Pytest coverage for the customer display state machine and poller.

import pytest

from oropos.terminal.display import CustomerDisplay, DisplayPoller
from oropos.terminal.errors import TransientNetworkError

from terminal_fakes import FakeScheduler

CART_A = [{"name": "Shampoo", "quantity": 1, "price": 1000}]
CART_B = [{"name": "Conditioner", "quantity": 2, "price": 1250}]


def _state(status, items=None, version=1, **extra):
    state = {"status": status, "items": items if items is not None else [], "subtotal": 1000, "tax": 80,
             "total": 1080, "tipAmount": 0, "showTipPrompt": status == "AWAITING_TIP",
             "tipSelected": False, "customerName": None, "version": version}
    state.update(extra)
    return state


class FakeDisplayClient:
    def __init__(self):
        self.published = []
        self.publish_failures = 0
        self.states = []
        self.poll_error = None
        self.polls = 0

    def publish_display_state(self, station_id, cart):
        if self.publish_failures:
            self.publish_failures -= 1
            raise TransientNetworkError("down")
        self.published.append(cart)
        return {"success": True}

    def get_display_state(self, station_id, since=None, wait=None):
        self.polls += 1
        if self.poll_error is not None:
            raise self.poll_error
        return self.states.pop(0) if self.states else _state("IDLE", version=0)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def api():
    return FakeDisplayClient()


@pytest.fixture
def display(api, scheduler):
    return CustomerDisplay(api, "front", scheduler=scheduler, tip_retry_delay=0, sleep=lambda s: None)


def _to_tip_selected(display):
    display.apply_remote_state(_state("ACTIVE", CART_A, version=1))
    display.apply_remote_state(_state("AWAITING_TIP", CART_A, version=2))
    display.submit_tip(200)
    assert display.processing


class TestRemoteState:
    def test_active_cart_shown(self, display):
        assert display.apply_remote_state(_state("ACTIVE", CART_A)) is True
        assert display.status == "ACTIVE"
        assert display.view["items"] == CART_A

    def test_identical_payload_skipped(self, display):
        display.apply_remote_state(_state("ACTIVE", CART_A))
        assert display.apply_remote_state(_state("ACTIVE", CART_A)) is False

    def test_cancelled_clears_to_idle(self, display):
        display.apply_remote_state(_state("ACTIVE", CART_A, version=1))
        display.apply_remote_state(_state("CANCELLED", CART_A, version=2))
        assert display.status == "IDLE"
        assert display.view["items"] == []


class TestProcessing:
    def test_tip_written_before_local_flip(self, display, api):
        _to_tip_selected(display)
        assert api.published[-1]["status"] == "TIP_SELECTED"
        assert api.published[-1]["tipAmount"] == 200
        assert display.status == "TIP_SELECTED"

    def test_zero_tip_is_written(self, display, api):
        display.apply_remote_state(_state("AWAITING_TIP", CART_A))
        display.submit_tip(0)
        assert api.published[-1]["tipAmount"] == 0

    def test_tip_write_retried(self, display, api):
        api.publish_failures = 2
        display.apply_remote_state(_state("AWAITING_TIP", CART_A))
        assert display.submit_tip(100) is True
        assert len(api.published) == 1

    def test_processing_entered_even_if_write_fails(self, display, api):
        api.publish_failures = 10
        display.apply_remote_state(_state("AWAITING_TIP", CART_A))
        assert display.submit_tip(100) is False
        assert display.processing
        assert display.status == "TIP_SELECTED"

    @pytest.mark.parametrize("status", ["ACTIVE", "AWAITING_TIP", "REVIEW"])
    def test_ignores_stale_states(self, display, status):
        _to_tip_selected(display)
        assert display.apply_remote_state(_state(status, CART_A, version=9)) is False
        assert display.status == "TIP_SELECTED"

    def test_ignores_empty_active(self, display):
        _to_tip_selected(display)
        assert display.apply_remote_state(_state("ACTIVE", [], version=9)) is False
        assert display.processing

    def test_accepts_completed(self, display, scheduler):
        _to_tip_selected(display)
        assert display.apply_remote_state(_state("COMPLETED", CART_A, version=9)) is True
        assert display.status == "COMPLETED"
        assert not display.processing
        assert scheduler.pending == []

    def test_accepts_new_cart(self, display):
        _to_tip_selected(display)
        assert display.apply_remote_state(_state("ACTIVE", CART_B, version=9)) is True
        assert display.status == "ACTIVE"
        assert display.view["items"] == CART_B

    def test_cancelled_while_processing(self, display):
        _to_tip_selected(display)
        display.apply_remote_state(_state("CANCELLED", CART_A, version=9))
        assert display.status == "IDLE"
        assert not display.processing

    def test_timeout_resets_to_idle(self, display, scheduler):
        _to_tip_selected(display)
        scheduler.advance(119)
        assert display.status == "TIP_SELECTED"
        scheduler.advance(1)
        assert display.status == "IDLE"
        assert not display.processing

    def test_remote_tip_selected_enters_processing(self, display, scheduler):
        display.apply_remote_state(_state("ACTIVE", CART_A, version=1))
        display.apply_remote_state(_state("TIP_SELECTED", CART_A, version=2, tipSelected=True))

        assert display.processing
        assert display.apply_remote_state(_state("ACTIVE", [], version=3)) is False
        assert display.status == "TIP_SELECTED"

        scheduler.advance(120)
        assert display.status == "IDLE"
        assert not display.processing

    def test_completion_cancels_timeout(self, display, scheduler):
        _to_tip_selected(display)
        display.apply_remote_state(_state("COMPLETED", CART_A, version=9))
        scheduler.advance(200)
        assert display.status == "COMPLETED"


class TestCompleted:
    def test_acknowledge_returns_to_idle(self, display):
        display.apply_remote_state(_state("COMPLETED", CART_A))
        display.acknowledge()
        assert display.status == "IDLE"

    def test_new_active_cart_replaces_thank_you(self, display):
        display.apply_remote_state(_state("COMPLETED", CART_A, version=1))
        display.apply_remote_state(_state("ACTIVE", CART_B, version=2))
        assert display.status == "ACTIVE"

    def test_idle_does_not_cut_thank_you_short(self, display):
        display.apply_remote_state(_state("COMPLETED", CART_A, version=1))
        display.apply_remote_state(_state("IDLE", version=2))
        assert display.status == "COMPLETED"


class TestConnectivity:
    def test_lost_after_three_failures_and_restored(self, display):
        display.record_poll_failure()
        display.record_poll_failure()
        assert not display.connection_lost
        display.record_poll_failure()
        assert display.connection_lost
        display.record_poll_success()
        assert not display.connection_lost
        assert display.consecutive_failures == 0


class TestDisplayPoller:
    def test_polls_on_interval_after_completion(self, display, api, scheduler):
        poller = DisplayPoller(api, display, interval=0.5, scheduler=scheduler)
        api.states = [_state("ACTIVE", CART_A)]

        poller.start()
        scheduler.advance(0)
        assert api.polls == 1
        assert display.status == "ACTIVE"
        # only the next poll is queued
        assert len(scheduler.pending) == 1

        scheduler.advance(0.5)
        assert api.polls == 2
        scheduler.advance(1.0)
        assert api.polls == 4

    def test_failures_flag_connection(self, display, api, scheduler):
        api.poll_error = TransientNetworkError("down")
        poller = DisplayPoller(api, display, interval=0.5, scheduler=scheduler)
        poller.start()
        scheduler.advance(1.0)
        assert api.polls == 3
        assert display.connection_lost

        api.poll_error = None
        scheduler.advance(0.5)
        assert not display.connection_lost

    def test_stop_cancels_next_poll(self, display, api, scheduler):
        poller = DisplayPoller(api, display, interval=0.5, scheduler=scheduler)
        poller.start()
        scheduler.advance(0)
        poller.stop()
        scheduler.advance(5)
        assert api.polls == 1
