"""Retry delay strategies."""
import random

import pytest

from hookline.exceptions import ConfigurationError
from hookline.services.backoff import (
    ExponentialBackoffStrategy,
    FixedBackoffStrategy,
    JitteredExponentialBackoffStrategy,
    LinearBackoffStrategy,
    get_backoff_strategy,
)


def test_default_exponential_delays():
    strategy = ExponentialBackoffStrategy()
    assert [strategy(n) for n in (1, 2, 3)] == [10, 100, 1000]


def test_three_failures_finish_within_twenty_minutes():
    strategy = ExponentialBackoffStrategy()
    # Only the gaps between attempts count: two waits for three attempts
    assert strategy(1) + strategy(2) < 20 * 60


def test_linear_and_fixed():
    assert [LinearBackoffStrategy(step=30)(n) for n in (1, 2, 3)] == [30, 60, 90]
    assert [FixedBackoffStrategy(seconds=5)(n) for n in (1, 2, 3)] == [5, 5, 5]


def test_jitter_stays_within_bound():
    strategy = JitteredExponentialBackoffStrategy(jitter=0.5, rng=random.Random(7))
    for n in (1, 2, 3):
        delay = strategy(n)
        base = 10 * 10 ** (n - 1)
        assert base <= delay <= base * 1.5


def test_attempt_numbers_start_at_one():
    with pytest.raises(ValueError):
        ExponentialBackoffStrategy()(0)


def test_lookup_by_name():
    assert isinstance(get_backoff_strategy("exponential"), ExponentialBackoffStrategy)
    assert isinstance(get_backoff_strategy("linear"), LinearBackoffStrategy)

    with pytest.raises(ConfigurationError):
        get_backoff_strategy("fibonacci")
