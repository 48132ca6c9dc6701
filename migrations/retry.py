"""Bounded exponential-backoff retry for transient transport errors."""

import logging
from typing import Awaitable, Callable, TypeVar

from pymongo.errors import AutoReconnect, ConnectionFailure, NetworkTimeout, ServerSelectionTimeoutError
from sqlalchemy import exc as sa_exc
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from db.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_source_error(error: BaseException) -> bool:
    return isinstance(
        error,
        (AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError, ConnectionFailure, OSError, TimeoutError),
    )


def is_transient_target_error(error: BaseException) -> bool:
    # Constraint, data and SQL errors fail the same way every time.
    if isinstance(error, (sa_exc.IntegrityError, sa_exc.DataError, sa_exc.ProgrammingError)):
        return False
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(
        error,
        (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, ConnectionError, OSError, TimeoutError),
    )


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args,
    is_transient: Callable[[BaseException], bool],
    **kwargs,
) -> T:
    """Await ``func``, retrying only errors accepted by ``is_transient``; the last error is re-raised."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(settings.max_retries),
        wait=wait_exponential(multiplier=1, min=settings.retry_wait_min, max=settings.retry_wait_max),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)
