"""
Backoff strategies for webhook retries.

A strategy maps the number of attempts already made (starting at 1)
to the number of seconds to wait before the next one.
"""
import random

from hookline.exceptions import ConfigurationError


class BackoffStrategy:
    """Base class for retry delay strategies."""

    def wait(self, attempt: int) -> int:
        raise NotImplementedError

    def __call__(self, attempt: int) -> int:
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return self.wait(attempt)


class ExponentialBackoffStrategy(BackoffStrategy):
    """
    10 x 10^(n-1) seconds: 10s, 100s, 1000s.

    Three attempts fail definitively within about 18.5 minutes.
    """

    def __init__(self, base: int = 10, factor: int = 10):
        self.base = base
        self.factor = factor

    def wait(self, attempt: int) -> int:
        return self.base * self.factor ** (attempt - 1)


class LinearBackoffStrategy(BackoffStrategy):
    """step x n seconds."""

    def __init__(self, step: int = 60):
        self.step = step

    def wait(self, attempt: int) -> int:
        return self.step * attempt


class FixedBackoffStrategy(BackoffStrategy):
    """Same delay after every attempt."""

    def __init__(self, seconds: int = 60):
        self.seconds = seconds

    def wait(self, attempt: int) -> int:
        return self.seconds


class JitteredExponentialBackoffStrategy(ExponentialBackoffStrategy):
    """Exponential delay with up to `jitter` fraction added at random."""

    def __init__(self, base: int = 10, factor: int = 10, jitter: float = 0.2, rng: random.Random | None = None):
        super().__init__(base, factor)
        self.jitter = jitter
        self.rng = rng or random.Random()

    def wait(self, attempt: int) -> int:
        delay = super().wait(attempt)
        return int(delay + delay * self.jitter * self.rng.random())


BACKOFF_STRATEGIES = {
    "exponential": ExponentialBackoffStrategy,
    "linear": LinearBackoffStrategy,
    "fixed": FixedBackoffStrategy,
    "jittered": JitteredExponentialBackoffStrategy,
}


def get_backoff_strategy(name: str) -> BackoffStrategy:
    """Resolve a configured strategy identifier."""
    try:
        return BACKOFF_STRATEGIES[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown backoff strategy '{name}'. Expected one of: {', '.join(BACKOFF_STRATEGIES)}"
        ) from None
