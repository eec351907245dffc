from collections.abc import Callable

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from .exceptions import UnavailableError
from .utils import setup_logger

logger = setup_logger(name="core.retry")


def backoff(attempts: int = 5, max_wait: float = 30.0, min_wait: float = 1.0) -> Retrying:
    """
    Build a retry controller for provider calls.

    Only UnavailableError is retried; every other error propagates on the
    first attempt. The last UnavailableError is re-raised once attempts run out.
    """
    return Retrying(
        retry=retry_if_exception_type(UnavailableError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=min(min_wait, max_wait), max=max_wait),
        before_sleep=_log_retry,
        reraise=True,
    )


def poll_until(
    predicate: Callable[[], bool],
    timeout: float,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
) -> bool:
    """
    Call predicate with exponential backoff until it returns True.

    Returns False when timeout seconds pass without success.
    """
    retrying = Retrying(
        retry=retry_if_result(lambda ok: not ok),
        stop=stop_after_delay(timeout),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
    )
    try:
        return retrying(predicate)
    except RetryError:
        return False


def _log_retry(retry_state):
    exc = retry_state.outcome.exception()
    logger.warning(
        f"Attempt {retry_state.attempt_number} failed: {exc}; "
        f"retrying in {retry_state.next_action.sleep:.1f}s"
    )
