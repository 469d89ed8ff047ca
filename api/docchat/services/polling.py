"""
Poll-with-deadline for long-running remote operations.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from docchat.core.cancellation import CancellationToken
from docchat.core.config import Settings
from docchat.core.errors import OperationTimeoutError
from docchat.models.documents import UploadOperation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    """Fixed-interval polling bounded by a time budget and/or attempt count."""

    interval: float = 3.0
    max_wait: float | None = 600.0
    max_attempts: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollPolicy":
        return cls(
            interval=settings.poll_interval_seconds,
            max_wait=settings.upload_max_wait_seconds,
            max_attempts=settings.upload_max_poll_attempts,
        )


async def poll_operation(
    operation: UploadOperation,
    fetch: Callable[[UploadOperation], Awaitable[UploadOperation]],
    policy: PollPolicy,
    cancel: CancellationToken | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> UploadOperation:
    """
    Poll `operation` until it reports done.

    Sleeps `policy.interval` between polls. The first status request is
    issued one interval after submission, and no request is issued once a
    handle reports done.

    Args:
        operation: The handle returned by the submission call.
        fetch: Coroutine returning the refreshed handle.
        policy: Interval and limits.
        cancel: Checked before each sleep and each status request.
        clock: Monotonic time source.

    Returns:
        The terminal handle. Callers inspect `error` to tell success from
        failure.

    Raises:
        OperationTimeoutError: If the budget is exhausted first.
        OperationCancelledError: If `cancel` fires.
    """
    cancel = cancel or CancellationToken()
    started = clock()
    attempts = 0

    while not operation.done:
        waited = clock() - started
        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            raise OperationTimeoutError(operation.name, waited, attempts)
        if policy.max_wait is not None and waited + policy.interval > policy.max_wait:
            raise OperationTimeoutError(operation.name, waited, attempts)

        await cancel.sleep(policy.interval)
        operation = await cancel.guard(fetch(operation))
        attempts += 1
        logger.debug(
            "Operation %s poll #%d: done=%s", operation.name, attempts, operation.done
        )

    return operation
