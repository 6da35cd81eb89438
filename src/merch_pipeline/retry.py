"""Retry-with-backoff executor used for every network call.

The executor knows nothing about HTTP: callers translate remote failures into
:class:`~merch_pipeline.errors.TransientTransportError` or a
:class:`~merch_pipeline.errors.PermanentError` subclass. Permanent errors
propagate on the spot; anything else is retried until the policy's attempt
budget runs out.
"""
from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from .errors import ExhaustedRetriesError, InvalidInputError, PermanentError
from .models import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """Result of the first successful attempt."""

    value: T
    attempt: int


def retry_call_with_attempt(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome[T]:
    """Run ``operation`` until it succeeds or the attempt budget is spent.

    Args:
        operation: Zero-argument callable performing one attempt.
        policy: Attempt budget and backoff parameters.
        description: Human-readable label used in log lines and errors.
        sleep: Sleep function (injectable for tests).

    Returns:
        ``RetryOutcome`` with the operation's value and the attempt number
        that produced it.

    Raises:
        PermanentError: Re-raised unchanged from the first attempt that
            raises it.
        ExhaustedRetriesError: If every attempt failed; ``cause`` holds the
            last error.
        InvalidInputError: If ``policy`` allows no attempts at all.
    """
    for attempt in range(1, policy.max_attempts + 1):
        logger.debug("%s: attempt %d/%d", description, attempt, policy.max_attempts)
        try:
            value = operation()
        except PermanentError:
            raise
        except Exception as exc:
            if attempt >= policy.max_attempts:
                logger.error(
                    "%s failed on final attempt %d/%d: %s",
                    description, attempt, policy.max_attempts, exc,
                )
                raise ExhaustedRetriesError(
                    exc, attempts=policy.max_attempts, description=description
                ) from exc

            delay = policy.delay_before(attempt + 1)
            retry_after = getattr(exc, "retry_after", None)
            if retry_after and retry_after > delay:
                delay = retry_after
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                description, attempt, policy.max_attempts, exc, delay,
            )
            sleep(delay)
            continue

        if attempt > 1:
            logger.info("%s succeeded on attempt %d", description, attempt)
        return RetryOutcome(value=value, attempt=attempt)

    raise InvalidInputError(f"{description}: retry policy allows no attempts")


def retry_call(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Like :func:`retry_call_with_attempt` but return only the value."""

    return retry_call_with_attempt(
        operation, policy, description=description, sleep=sleep
    ).value


def retrying(policy: RetryPolicy, description: str | None = None):
    """Decorator form: retry the wrapped function under ``policy``."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        label = description or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return retry_call(lambda: func(*args, **kwargs), policy, description=label)

        return wrapper

    return decorator


__all__ = ["RetryOutcome", "retry_call", "retry_call_with_attempt", "retrying"]
