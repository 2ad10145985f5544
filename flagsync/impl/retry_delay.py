from random import Random
from typing import Optional


class RetryDelayStrategy:
    """Backoff and jitter for stream reconnections and for retrying the initial synchronization.

    - The system is either in a "good" state or a "bad" state. The initial state is "bad"; the
    caller reports the transition to "good" with :func:`set_good_since()`. Asking for a new retry
    delay implies the state is "bad" again.

    - If the state stayed "good" for at least ``reset_interval`` seconds, the backoff starts over from
    the base delay.

    Not safe for concurrent use; each owner keeps its own instance.
    """

    def __init__(self, base_delay: float, reset_interval: Optional[float], backoff_strategy, jitter_strategy):
        self.__base_delay = base_delay
        self.__reset_interval = reset_interval
        self.__backoff = backoff_strategy
        self.__jitter = jitter_strategy
        self.__retry_count = 0
        self.__good_since = None

    @staticmethod
    def default(base_delay: float, max_delay: float, reset_interval: float = 60, jitter_ratio: float = 0.5) -> 'RetryDelayStrategy':
        return RetryDelayStrategy(base_delay, reset_interval, DefaultBackoffStrategy(max_delay), DefaultJitterStrategy(jitter_ratio))

    def next_retry_delay(self, current_time: float) -> float:
        """Computes the next retry interval and marks the state as "bad".

        :param current_time: the current time, in seconds
        """
        if self.__good_since and self.__reset_interval and (current_time - self.__good_since >= self.__reset_interval):
            self.__retry_count = 0
        self.__good_since = None
        delay = self.__base_delay
        if self.__backoff:
            delay = self.__backoff.apply_backoff(delay, self.__retry_count)
        self.__retry_count += 1
        if self.__jitter:
            delay = self.__jitter.apply_jitter(delay)
        return delay

    def set_good_since(self, good_since: float):
        """Marks the current state as "good" and records the time.

        :param good_since: the time that the state became "good", in seconds
        """
        self.__good_since = good_since

    def reset(self):
        self.__retry_count = 0
        self.__good_since = None


class DefaultBackoffStrategy:
    """Exponential backoff: doubles the delay on each consecutive retry, up to ``max_delay``."""

    def __init__(self, max_delay: float):
        self.__max_delay = max_delay

    def apply_backoff(self, delay: float, retry_count: int) -> float:
        d = delay * (2 ** retry_count)
        return d if d <= self.__max_delay else self.__max_delay


class DefaultJitterStrategy:
    """Subtracts a pseudo-random share, up to ``ratio``, from each delay."""

    def __init__(self, ratio: float, rand_seed: Optional[int] = None):
        """
        :param ratio: a number in the range [0.0, 1.0] representing 0%-100% jitter
        :param rand_seed: if not None, will use this random seed (for test determinacy)
        """
        self.__ratio = ratio
        self.__random = Random(rand_seed)

    def apply_jitter(self, delay: float) -> float:
        return delay - (self.__random.random() * self.__ratio * delay)
