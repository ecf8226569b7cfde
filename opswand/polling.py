"""Bounded retry/poll loops shared by the debug and migration flows."""

import logging
import queue
import random
import threading
import time
from typing import Callable, Iterator

from opswand.errors import ReadinessTimeout

logger = logging.getLogger(__name__)


def poll_until(
    check: Callable[[], bool],
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[int, int], None] | None = None,
    what: str = "condition",
) -> None:
    """Call `check` up to `attempts` times, sleeping `interval` after each miss.

    Returns as soon as `check` is true. Raises ReadinessTimeout once every
    attempt has missed. Exceptions from `check` propagate untouched.
    """
    for attempt in range(1, attempts + 1):
        if on_attempt is not None:
            on_attempt(attempt, attempts)
        if check():
            return
        sleep(interval)

    raise ReadinessTimeout(
        f"{what} not reached within {attempts} attempts ({attempts * interval:g}s)"
    )


class ProgressFeed:
    """Background producer of "still running" status lines.

    A worker thread sleeps a random delay between `min_delay` and `max_delay`
    seconds and hands a line to the consumer through a single-slot queue.
    The stream ends after `iterations` lines, when `is_complete` returns true,
    or when `stop()` is called. A `None` sentinel closes the stream.
    """

    message = "Migration setup is still running, waited {delay} seconds"

    def __init__(
        self,
        rng: random.Random | None = None,
        iterations: int = 50,
        min_delay: int = 5,
        max_delay: int = 10,
        is_complete: Callable[[], bool] | None = None,
        wait: Callable[[float], bool] | None = None,
    ):
        self.rng = rng or random.Random()
        self.iterations = iterations
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.is_complete = is_complete
        self.completed = False
        self._stop = threading.Event()
        # wait(delay) returns True when the feed should stop early
        self._wait = wait or self._stop.wait
        self._queue: queue.Queue[str | None] = queue.Queue(maxsize=1)
        self._thread = threading.Thread(target=self._produce, daemon=True)

    def start(self) -> "ProgressFeed":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()

    def _completed(self) -> bool:
        if self.is_complete is None:
            return False
        try:
            return self.is_complete()
        except Exception as e:
            logger.debug("Completion check failed: %s", e)
            return False

    def _put(self, item: str | None) -> None:
        while True:
            try:
                self._queue.put(item, timeout=0.1)
                return
            except queue.Full:
                if self._stop.is_set():
                    return

    def _produce(self) -> None:
        try:
            for _ in range(self.iterations):
                delay = self.rng.randint(self.min_delay, self.max_delay)
                if self._wait(delay) or self._stop.is_set():
                    break
                if self._completed():
                    self.completed = True
                    break
                self._put(self.message.format(delay=delay))
        finally:
            self._put(None)

    def __iter__(self) -> Iterator[str]:
        while True:
            line = self._queue.get()
            if line is None:
                return
            yield line

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)
