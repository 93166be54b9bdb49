# One-shot timers for debounce, poll scheduling and processing timeouts.

import threading


class TimerHandle:
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadScheduler:
    """Runs callbacks on daemon threading.Timer threads."""

    def call_later(self, delay: float, callback, *args) -> TimerHandle:
        timer = threading.Timer(delay, callback, args=args)
        timer.daemon = True
        timer.start()
        return TimerHandle(timer)
