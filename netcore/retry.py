"""
Retry decisions.

A `RetryStrategy` looks at a failed attempt and answers whether, and after how
long, the call should be dispatched again. A `RetryController` holds the state
of one logical call while it consults the strategy; it is never shared between
calls, so attempt counts never leak from one call into another.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import Callable, FrozenSet, Iterable, Optional

from .errors import NetworkError, NetworkErrorKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExponentialBackoff:
    base_delay: float = 1.0
    backoff_base: float = 2.0
    max_delay: Optional[float] = None

    def delay(self, attempt: int) -> float:
        """
        The delay in seconds before retry number `attempt` (zero-based).

        Computes `base_delay * backoff_base ** attempt`, capped at `max_delay`
        when one is set.
        """
        try:
            computed = self.base_delay * math.pow(self.backoff_base, attempt)
        except OverflowError:
            computed = math.inf
        if self.max_delay is None:
            return computed
        return min(computed, self.max_delay)


class RetryResult(ABC):
    @abstractmethod
    def delay(self, attempt: int) -> Optional[float]:
        """
        The delay before the next attempt, or `None` to stop retrying.
        """


class DoNotRetry(RetryResult):
    def delay(self, attempt: int) -> Optional[float]:
        return None

    def __repr__(self):
        return 'DoNotRetry()'


class Retry(RetryResult):
    def delay(self, attempt: int) -> Optional[float]:
        return 0.0

    def __repr__(self):
        return 'Retry()'


@dataclass(frozen=True)
class RetryWithDelay(RetryResult):
    seconds: float

    def delay(self, attempt: int) -> Optional[float]:
        return max(0.0, self.seconds)


@dataclass(frozen=True)
class RetryWithExponentialBackoff(RetryResult):
    backoff: ExponentialBackoff = ExponentialBackoff()

    def delay(self, attempt: int) -> Optional[float]:
        return self.backoff.delay(attempt)


DO_NOT_RETRY = DoNotRetry()
RETRY = Retry()


class RetryStrategy(ABC):
    """
    A pluggable retry policy.

    `max_retries` bounds the number of retries of one call whatever `decide()`
    answers.
    """

    max_retries = 0

    @abstractmethod
    def decide(self, error: NetworkError, retry_count: int) -> RetryResult:
        """
        Decide what to do about a failed attempt.

        @param error
          The failure of the latest attempt.
        @param retry_count
          How many retries of this call have already been made.
        """


TRANSIENT_KINDS = frozenset({
    NetworkErrorKind.NO_INTERNET_CONNECTION,
    NetworkErrorKind.NETWORK_ERROR,
    NetworkErrorKind.NETWORK_UNAVAILABLE,
    NetworkErrorKind.TIMEOUT,
    NetworkErrorKind.SERVER_ERROR,
})


class DefaultRetryStrategy(RetryStrategy):
    """
    Retries transient failures with exponential backoff and gives up on
    everything else.
    """

    def __init__(self, max_retries: int = 3, backoff: ExponentialBackoff = ExponentialBackoff(),
                 retry_on: Iterable[NetworkErrorKind] = TRANSIENT_KINDS) -> None:
        self.max_retries = max_retries
        self.__result = RetryWithExponentialBackoff(backoff)
        self.__retry_on = frozenset(retry_on)

    @property
    def retry_on(self) -> FrozenSet[NetworkErrorKind]:
        return self.__retry_on

    def decide(self, error: NetworkError, retry_count: int) -> RetryResult:
        if error.kind in self.__retry_on:
            return self.__result
        return DO_NOT_RETRY


class FunctionRetryStrategy(RetryStrategy):
    def __init__(self, max_retries: int, decide: Callable[[NetworkError, int], RetryResult]) -> None:
        self.max_retries = max_retries
        self.__decide = decide

    def decide(self, error: NetworkError, retry_count: int) -> RetryResult:
        return self.__decide(error, retry_count)


class RetryState(Enum):
    NOT_STARTED = 'not started'
    DECIDING = 'deciding'
    WAITING = 'waiting'
    RETRYING = 'retrying'
    STOPPED = 'stopped'


class RetryController:
    """
    Tracks the retries of one logical call.

    Usage: call `on_failure()` with each failed attempt. A `None` result means
    the error is final; otherwise wait the returned number of seconds, call
    `begin_retry()`, and dispatch again.
    """

    def __init__(self, strategy: Optional[RetryStrategy]) -> None:
        self.__strategy = strategy
        self.state = RetryState.NOT_STARTED
        self.attempt_count = 0
        self.last_error = None  # type: Optional[NetworkError]

    def on_failure(self, error: NetworkError) -> Optional[float]:
        self.state = RetryState.DECIDING
        self.last_error = error

        if self.__strategy is None:
            self.state = RetryState.STOPPED
            return None
        if self.attempt_count >= self.__strategy.max_retries:
            logger.info('Giving up after {} retries. Last error: {}'.format(self.attempt_count, error))
            self.state = RetryState.STOPPED
            return None

        result = self.__strategy.decide(error, self.attempt_count)
        delay = result.delay(self.attempt_count)
        if delay is None:
            logger.info('Retry strategy declined to retry {}'.format(error))
            self.state = RetryState.STOPPED
            return None

        logger.info('Retry strategy decided {!r}; waiting {:.3f}s before retry {}'.format(
            result, delay, self.attempt_count + 1))
        self.state = RetryState.WAITING
        return delay

    def begin_retry(self) -> None:
        if self.state is not RetryState.WAITING:
            raise RuntimeError('begin_retry() called in state {}'.format(self.state.value))
        self.state = RetryState.RETRYING
        self.attempt_count += 1
