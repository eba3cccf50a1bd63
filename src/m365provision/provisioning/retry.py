"""Retry with fixed backoff for directory replication lag.

A new account is visible in Entra ID right away but can take minutes to
reach Exchange Online. Until then Exchange answers with "couldn't find
object" style errors, which are worth waiting out. Every other error is
final.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from m365provision.core.errors import ServiceError
from m365provision.provisioning.models import RetryPlan

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERROR_PATTERNS = [
    r"couldn[’']t find object",
    r"wasn[’']t found",
]

SleepFn = Callable[[float], Awaitable[None]]
RetryHook = Callable[[RetryPlan, BaseException], None]


def is_transient_error(error_msg: str) -> bool:
    """Check if an error message indicates a replication-lag not-found error."""
    return any(re.search(pattern, error_msg, re.IGNORECASE) for pattern in TRANSIENT_ERROR_PATTERNS)


def is_transient_exception(exc: BaseException) -> bool:
    """Check if a service exception is a replication-lag not-found error."""
    return isinstance(exc, ServiceError) and is_transient_error(exc.message)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    plan: RetryPlan,
    is_transient: Callable[[BaseException], bool] = is_transient_exception,
    sleep: SleepFn = asyncio.sleep,
    on_retry: RetryHook | None = None,
) -> T:
    """Run ``operation`` until it succeeds, fails permanently, or the plan runs out.

    Waits ``plan.delay_seconds`` between attempts (never before the first)
    and retries only exceptions accepted by ``is_transient``. ``plan.attempts``
    is kept current so callers can report how many attempts were used.

    Args:
        operation: Zero-argument coroutine function performing one attempt
        plan: Attempt limit and delay for this pass
        is_transient: Decides whether an exception is worth retrying
        sleep: Awaitable sleep, injectable for tests
        on_retry: Called with the plan and error before each wait

    Returns:
        The operation's result

    Raises:
        The last exception raised by ``operation`` when it is not transient
        or when the plan is exhausted
    """

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            f"Attempt {plan.attempts}/{plan.max_attempts} (pass {plan.pass_number}) "
            f"hit replication lag, retrying in {plan.delay_seconds:g}s"
        )
        if on_retry is not None and exc is not None:
            on_retry(plan, exc)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(plan.max_attempts),
        wait=wait_fixed(plan.delay_seconds),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            plan.attempts = attempt.retry_state.attempt_number
            result = await operation()
    return result
