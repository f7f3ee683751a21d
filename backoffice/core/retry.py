from __future__ import annotations

from collections.abc import Callable
from typing import Any

import requests
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from backoffice.core.config import settings
from backoffice.core.errors import ExternalAPIError

logger = structlog.get_logger(__name__)


def _is_retryable_exception(exc: BaseException) -> bool:
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(exc, ExternalAPIError):
        if exc.status_code is None:
            return True
        return exc.status_code == 429 or exc.status_code >= 500
    return False


def _log_retry(service: str) -> Callable[[Any], None]:
    def _log(state: Any) -> None:
        outcome = state.outcome
        reason = None
        if outcome and outcome.failed:
            reason = str(outcome.exception())
        logger.warning(
            "external_api_retry",
            service=service,
            attempt=state.attempt_number,
            reason=reason,
        )

    return _log


def _stop_after_configured_attempts(retry_state: Any) -> bool:
    # Read at call time so tests and env overrides apply without re-import
    return stop_after_attempt(max(1, settings.retry_max_attempts))(retry_state)


def _wait_configured_backoff(retry_state: Any) -> float:
    return wait_exponential_jitter(
        initial=settings.retry_backoff_initial,
        max=settings.retry_backoff_max,
    )(retry_state)


def retryable(service: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return retry(
        retry=retry_if_exception(_is_retryable_exception),
        stop=_stop_after_configured_attempts,
        wait=_wait_configured_backoff,
        before_sleep=_log_retry(service),
        reraise=True,
    )


def raise_for_status(response: requests.Response, service: str) -> None:
    if response.status_code >= 400:
        raise ExternalAPIError(
            service,
            f"{service} error {response.status_code}: {response.text}",
            status_code=response.status_code,
        )
