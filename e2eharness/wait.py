"""Polling helpers that wait for a condition to be met."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, Union

DEFAULT_POLL_TIMEOUT = 5 * 60.0
DEFAULT_POLL_INTERVAL = 5.0

Duration = Union[float, int, timedelta]
ConditionFunc = Callable[[], bool]


class WaitTimeoutError(TimeoutError):
    """Raised when a condition is not met before the timeout or stop signal."""

    def __init__(self, message: str = "timed out waiting for the condition") -> None:
        super().__init__(message)


def _seconds(value: Duration) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


@dataclass
class Options:
    """Settings that control how a condition is polled."""

    interval: float = DEFAULT_POLL_INTERVAL
    timeout: float = DEFAULT_POLL_TIMEOUT
    stop_event: Optional[threading.Event] = None
    immediate: bool = False


Option = Callable[[Options], None]


def with_timeout(timeout: Duration) -> Option:
    """Set the longest time to keep polling before giving up."""
    seconds = _seconds(timeout)

    def apply(options: Options) -> None:
        options.timeout = seconds

    return apply


def with_interval(interval: Duration) -> Option:
    """Set the pause between two checks of the condition."""
    seconds = _seconds(interval)

    def apply(options: Options) -> None:
        options.interval = seconds

    return apply


def with_stop_event(stop_event: threading.Event) -> Option:
    """Poll until the condition is met or the event is set, ignoring the timeout."""

    def apply(options: Options) -> None:
        options.stop_event = stop_event

    return apply


def with_immediate() -> Option:
    """Check the condition once before the first interval elapses."""

    def apply(options: Options) -> None:
        options.immediate = True

    return apply


def _poll_until_stopped(condition: ConditionFunc, interval: float, stop: threading.Event) -> None:
    while True:
        if stop.wait(interval):
            raise WaitTimeoutError()
        if condition():
            return


def _poll_with_timeout(condition: ConditionFunc, interval: float, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise WaitTimeoutError()
        if remaining < interval:
            time.sleep(remaining)
            raise WaitTimeoutError()
        time.sleep(interval)
        if condition():
            return


def wait_for(condition: ConditionFunc, *options: Option) -> None:
    """Poll ``condition`` until it returns true.

    Raises WaitTimeoutError when the timeout expires or the stop event is set;
    any exception raised by the condition ends the wait and propagates.
    """
    opts = Options()
    for apply in options:
        apply(opts)

    if opts.immediate:
        if opts.stop_event is not None and opts.stop_event.is_set():
            raise WaitTimeoutError()
        if condition():
            return

    if opts.stop_event is not None:
        _poll_until_stopped(condition, opts.interval, opts.stop_event)
    else:
        _poll_with_timeout(condition, opts.interval, opts.timeout)