"""Retry policy for model turns and internal endpoint calls.

Failures are sorted into three buckets:

* not delivered: the upstream never acted on the request (connect failure,
  pool exhaustion, rate limiting). Always safe to retry.
* outcome unknown: the upstream may already have acted (read timeout,
  dropped connection, 5xx). Retried only when the call is idempotent, so an
  approved generation request is never sent twice.
* permanent: everything else. Never retried.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import httpx
import openai

logger = logging.getLogger("reelsmith.retry")

T = TypeVar("T")


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.2

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1``, with jitter."""
        base = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        jitter = base * self.jitter_factor * (2 * random.random() - 1)
        return max(base + jitter, 0.0)


class TransientError(Exception):
    """A failure that did not reach the upstream; safe to retry."""


class OutcomeUnknownError(TransientError):
    """A failure after the request may have been processed upstream."""


class PermanentError(Exception):
    """A failure that retrying cannot fix."""


_NOT_DELIVERED = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.PoolTimeout,
    openai.RateLimitError,
    ConnectionRefusedError,
)

_OUTCOME_UNKNOWN = (
    httpx.TransportError,
    openai.APIConnectionError,
    openai.InternalServerError,
    ConnectionError,
    TimeoutError,
)


def is_transient_error(error: BaseException) -> bool:
    """Return True if retrying ``error`` could succeed."""
    if isinstance(error, TransientError):
        return True
    return isinstance(error, _NOT_DELIVERED + _OUTCOME_UNKNOWN)


def may_have_executed(error: BaseException) -> bool:
    """Return True if the upstream may have acted on the failed request."""
    if isinstance(error, OutcomeUnknownError):
        return True
    if isinstance(error, TransientError) or isinstance(error, _NOT_DELIVERED):
        return False
    return True


async def retry_with_backoff(
    func: Callable[..., Any],
    config: RetryConfig,
    *args: Any,
    idempotent: bool = True,
    **kwargs: Any,
) -> Any:
    """
    Call ``func`` until it succeeds or retrying stops making sense.

    Args:
        func: Sync or async callable
        config: Attempt count and backoff shape
        idempotent: When False, failures whose outcome is unknown are raised
            after the first attempt instead of being retried
        *args, **kwargs: Forwarded to ``func``

    Raises:
        PermanentError: for failures that are not transient
        TransientError: the last transient failure, once no retry is allowed
    """
    for attempt in range(config.max_attempts):
        try:
            if inspect.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)

            if attempt > 0:
                logger.info("retry_succeeded attempt=%d", attempt + 1)
            return result

        except asyncio.CancelledError:
            raise
        except PermanentError:
            logger.error("retry_aborted reason=permanent")
            raise
        except Exception as e:
            if not is_transient_error(e):
                logger.error("retry_aborted reason=permanent error=%s", e)
                raise PermanentError(str(e)) from e

            if not idempotent and may_have_executed(e):
                logger.error("retry_aborted reason=outcome_unknown error=%s", e)
                _raise_transient(e)

            if attempt == config.max_attempts - 1:
                logger.error("retry_exhausted attempts=%d error=%s", config.max_attempts, e)
                _raise_transient(e)

            delay = config.delay_for(attempt)
            logger.warning(
                "retry_scheduled attempt=%d/%d delay=%.2fs error=%s",
                attempt + 1,
                config.max_attempts,
                delay,
                e,
            )
            await asyncio.sleep(delay)

    raise TransientError("Retry failed: no attempts were made")


def _raise_transient(error: Exception) -> None:
    if isinstance(error, TransientError):
        raise error
    wrapper = OutcomeUnknownError if may_have_executed(error) else TransientError
    raise wrapper(str(error)) from error
