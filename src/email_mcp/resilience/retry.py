"""Retry decorator for Gmail API calls using tenacity.

Retries 3 times with exponential backoff and jitter, but only for failures
that are worth repeating: throttling, 5xx responses, and transport errors.
Client errors (400, 401, 403, 404) surface on the first attempt.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import google.auth.exceptions
import structlog
from googleapiclient.errors import HttpError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` for errors a retry can plausibly fix."""
    if isinstance(exc, HttpError):
        return exc.resp.status in TRANSIENT_STATUS_CODES
    return isinstance(exc, (google.auth.exceptions.TransportError, TimeoutError, ConnectionError))


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    api_name = getattr(retry_state.fn, "_api_name", "unknown") if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying API call",
        api_name=api_name,
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        exception=str(exception),
    )


def resilient_api_call(api_name: str) -> Callable[[F], F]:
    """Create a retry decorator for a Gmail API call.

    Returns a tenacity retry decorator configured with:
    - 3 attempts maximum
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter)
    - Retry only when ``is_transient`` accepts the exception
    - Warning log before each retry
    - Original exception re-raised after exhaustion

    Works for both plain and ``async`` functions.

    Args:
        api_name: Human-readable name for the API (used in logs).

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._api_name = api_name  # type: ignore[attr-defined]

        wrapped = retry(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(3),
            wait=wait_exponential_jitter(initial=1, max=30, jitter=5),
            before_sleep=_before_sleep_log,
            reraise=True,
        )(func)

        return wrapped  # type: ignore[no-any-return]

    return decorator
