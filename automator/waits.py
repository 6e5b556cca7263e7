"""
Retry / wait engine shared by both drivers.

Polls conditions on a monotonic clock and retries interactions a bounded number
of times. Clock and sleep are injectable so timing behaviour is testable without
real delays.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .exceptions import (
    ElementNotFoundError,
    InteractionFailedError,
    NotStartedError,
    OperationTimeoutError,
    UnsupportedSelectorError,
)
from .models import WaitCondition

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]

# Errors that describe caller mistakes rather than page state; retrying cannot help
NON_RETRYABLE: tuple[type[BaseException], ...] = (NotStartedError, UnsupportedSelectorError)

_logger = logging.getLogger("automator.waits")


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def await_condition(
    locate: Callable[[], Any],
    condition: WaitCondition,
    timeout_ms: int,
    *,
    check: Callable[[Any, WaitCondition], Any] | None = None,
    poll_interval_ms: int = 100,
    description: str = "element",
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """
    Poll until a located element satisfies a wait condition.

    Args:
        locate: Returns an element handle or None (sync or async)
        condition: State the element must reach
        timeout_ms: Deadline for the whole wait
        check: ``check(handle, condition) -> bool`` (sync or async). Defaults to
               "satisfied once located"
        poll_interval_ms: Delay between polls
        description: Selector or label used in the failure message

    Returns:
        The element handle. For INVISIBLE the handle may be None when the
        element is gone entirely.

    Raises:
        ElementNotFoundError: Condition not reached before the deadline
    """
    deadline = clock() + timeout_ms / 1000
    last_error: BaseException | None = None

    while True:
        try:
            handle = await _maybe_await(locate())
            if handle is None:
                if condition == WaitCondition.INVISIBLE:
                    return None
            elif check is None or await _maybe_await(check(handle, condition)):
                return handle
        except NON_RETRYABLE:
            raise
        except Exception as e:
            # Stale handles and transient engine errors: re-locate on the next poll
            last_error = e

        remaining = deadline - clock()
        if remaining <= 0:
            raise ElementNotFoundError(
                description,
                timeout_ms=timeout_ms,
                condition=condition.value,
                last_error=last_error,
            )
        await sleep(min(poll_interval_ms / 1000, remaining))


async def wait_until(
    predicate: Callable[[], Any],
    timeout_ms: int,
    *,
    poll_interval_ms: int = 100,
    description: str = "condition",
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """
    Poll a predicate until it returns a truthy value.

    Raises:
        OperationTimeoutError: Predicate stayed falsy until the deadline
    """
    deadline = clock() + timeout_ms / 1000
    last_error: BaseException | None = None

    while True:
        try:
            result = await _maybe_await(predicate())
            if result:
                return result
        except NON_RETRYABLE:
            raise
        except Exception as e:
            last_error = e

        remaining = deadline - clock()
        if remaining <= 0:
            message = f"Timed out after {timeout_ms}ms waiting for {description}"
            if last_error is not None:
                message += f". Last error: {last_error}"
            raise OperationTimeoutError(message, timeout_ms=timeout_ms)
        await sleep(min(poll_interval_ms / 1000, remaining))


async def retry(
    operation: Callable[[int], Awaitable[T]],
    *,
    attempts: int = 3,
    delay_ms: int = 1000,
    action: str = "interact with",
    target: str = "element",
    logger: Any = None,
    sleep: Sleep = asyncio.sleep,
    non_retryable: tuple[type[BaseException], ...] = NON_RETRYABLE,
) -> T:
    """
    Run an operation up to ``attempts`` times with a fixed delay between attempts.

    Args:
        operation: Coroutine function receiving the 1-based attempt number
        attempts: Maximum attempts (>= 1)
        delay_ms: Delay between attempts; no delay after the final attempt
        action: Verb for the failure message ("click", "send keys to")
        target: Selector or label for the failure message
        logger: Logger with a ``warning(message)`` method

    Returns:
        Whatever the successful attempt returned

    Raises:
        InteractionFailedError: Every attempt failed
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    log = logger or _logger
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation(attempt)
        except non_retryable:
            raise
        except Exception as e:
            last_error = e
            log.warning(f"{action.capitalize()} attempt {attempt}/{attempts} failed for {target}: {e}")
            if attempt < attempts:
                await sleep(delay_ms / 1000)

    raise InteractionFailedError(action, target, attempts, last_error) from last_error
