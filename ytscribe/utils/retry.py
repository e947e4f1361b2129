import time
from typing import Callable, Sequence, TypeVar
from tenacity import Retrying, RetryCallState, retry_if_exception, stop_after_attempt
from ytscribe.core.exceptions import RateLimitError
from ytscribe.utils.logger import logger

T = TypeVar("T")

# Player/page requests: 1 attempt + 3 retries. Caption XML: 1 attempt + 1 retry.
PLAYER_ATTEMPTS = 4
PLAYER_DELAYS = (2.0, 4.0, 8.0)
CAPTION_ATTEMPTS = 2
CAPTION_DELAYS = (2.0,)


def is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitError)


def delay_schedule(delays: Sequence[float]) -> Callable[[RetryCallState], float]:
    """Tenacity wait strategy that walks an explicit list of delays.

    The last delay is reused if there are more retries than entries.
    """
    def wait(retry_state: RetryCallState) -> float:
        idx = min(retry_state.attempt_number - 1, len(delays) - 1)
        return float(delays[idx])
    return wait


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    logger.info(
        f"{exc} (attempt {retry_state.attempt_number}), "
        f"retrying in {retry_state.next_action.sleep:.0f}s..."
    )


def with_retry(
    fn: Callable[..., T],
    *args,
    max_attempts: int = PLAYER_ATTEMPTS,
    delays: Sequence[float] = PLAYER_DELAYS,
    retryable: Callable[[BaseException], bool] = is_rate_limited,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """Call ``fn`` and retry it while ``retryable(exc)`` holds.

    The final exception is re-raised unchanged once ``max_attempts`` is
    reached, so callers see e.g. a ``RateLimitError`` rather than a
    tenacity ``RetryError``.
    """
    retryer = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=delay_schedule(delays),
        retry=retry_if_exception(retryable),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    return retryer(fn, *args, **kwargs)
