"""Bounded fixed-interval polling.

Both waits in the VM lifecycle (instance RUNNING, readiness marker) are the
same shape: call a passive probe every ``interval`` seconds until it reports
success or ``max_attempts`` probes have been made. Running out of attempts is
not an error; the caller gets ``PollTimedOut`` and decides how to degrade.

Example:
    from gke_sandbox.retry import PollSuccess, poll

    match poll(lambda: client.get_instance(...), interval=10, max_attempts=19,
               until=lambda inst: inst is not None and inst.is_running):
        case PollSuccess(value=inst):
            ...
        case PollTimedOut(attempts=n):
            ...
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

log = logger.bind(component="poll")


@dataclass(frozen=True, slots=True)
class PollSuccess[T]:
    value: T
    attempts: int


@dataclass(frozen=True, slots=True)
class PollTimedOut[T]:
    attempts: int
    last: T | None = None


type PollResult[T] = PollSuccess[T] | PollTimedOut[T]


def attempts_for(timeout: float, interval: float) -> int:
    """Probes needed to cover ``timeout`` seconds: one at t=0, then one per ``interval``."""
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    return int(timeout // interval) + 1


def poll[T](
    operation: Callable[[], T],
    *,
    interval: float,
    max_attempts: int,
    until: Callable[[T], bool] = bool,
    description: str = "condition",
    on_attempt: Callable[[int, int], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult[T]:
    """Probe ``operation`` until ``until(result)`` holds or attempts run out.

    Args:
        operation: Passive probe. Exceptions propagate; probes that can fail
            transiently should catch and return a falsy value themselves.
        interval: Seconds to sleep between probes.
        max_attempts: Total number of probes, including the first one.
        until: Success predicate applied to each probe result.
        description: Used in debug logs.
        on_attempt: Called with ``(attempt, max_attempts)`` after each miss.
        sleep: Sleep function, replaceable in tests.

    Returns:
        ``PollSuccess`` with the satisfying value, or ``PollTimedOut`` with the
        last value seen.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    def _after(state: RetryCallState) -> None:
        log.debug(
            "Waiting for {what}: attempt {n}/{total}",
            what=description, n=state.attempt_number, total=max_attempts,
        )
        if on_attempt is not None:
            on_attempt(state.attempt_number, max_attempts)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda result: not until(result)),
        after=_after,
        sleep=sleep,
    )

    calls = 0

    def _probe() -> T:
        nonlocal calls
        calls += 1
        return operation()

    try:
        value = retrying(_probe)
    except RetryError as e:
        last = e.last_attempt
        return PollTimedOut(
            attempts=last.attempt_number,
            last=last.result() if not last.failed else None,
        )

    return PollSuccess(value=value, attempts=calls)
