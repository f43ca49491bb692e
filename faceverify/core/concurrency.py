"""Timeouts, cancellation and retry helpers shared by the pipeline services."""
import asyncio
import threading
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from faceverify.core.exceptions import OperationCancelledError, OperationTimeoutError
from faceverify.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation signal checked between pipeline stages.

    The token is thread-safe, so a batch running on worker threads sees a
    cancel issued from the event loop (or any other thread).
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise OperationCancelledError when cancellation was requested.

        Args:
            stage: Name of the stage about to start, reported in the error details
        """
        if self._event.is_set():
            raise OperationCancelledError(
                f"Operation cancelled before {stage}",
                details={"stage": stage},
            )


def check_cancelled(token: Optional[CancellationToken], stage: str) -> None:
    if token is not None:
        token.raise_if_cancelled(stage)


async def run_blocking(
    func: Callable[..., T],
    *args,
    timeout: Optional[float] = None,
    stage: str = "operation",
) -> T:
    """Run a blocking call on a worker thread, bounded by ``timeout`` seconds.

    Raises:
        OperationTimeoutError: If the call does not finish in time
    """
    call = asyncio.to_thread(func, *args)
    if timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Stage timed out", stage=stage, timeout=timeout)
        raise OperationTimeoutError(
            f"{stage} exceeded {timeout:.2f}s",
            details={"stage": stage, "timeout": timeout},
        )


def call_with_retries(
    func: Callable[[], T],
    retry_on: Tuple[Type[Exception], ...],
    max_retries: int,
    backoff_seconds: float,
    description: str = "call",
) -> T:
    """Call ``func``, retrying on ``retry_on`` with exponential backoff.

    The last error is re-raised once ``max_retries`` retries are used up.
    """
    attempt = 0
    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= max_retries:
                raise
            delay = backoff_seconds * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Retrying after transient failure",
                call=description,
                attempt=attempt,
                max_retries=max_retries,
                delay=delay,
                error=str(e),
            )
            time.sleep(delay)
