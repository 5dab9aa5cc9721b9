import pytest

from jobqueue.retry import (
    MAX_DELAY, add_jitter, calculate_delay, format_delay, get_delay_for_attempt, get_retry_schedule,
)


def test_exponential_schedule():
    assert get_retry_schedule("exponential", 60, 5) == {1: 60, 2: 120, 3: 240, 4: 480, 5: 960}


def test_linear_schedule():
    assert get_retry_schedule("linear", 30, 4) == {1: 30, 2: 60, 3: 90, 4: 120}


def test_fixed_schedule():
    assert get_retry_schedule("fixed", 45, 3) == {1: 45, 2: 45, 3: 45}


def test_unknown_strategy_behaves_as_exponential():
    assert get_retry_schedule("fibonacci", 10, 3) == {1: 10, 2: 20, 3: 40}


@pytest.mark.parametrize("strategy", ["exponential", "linear", "fixed"])
def test_delay_is_capped(strategy):
    assert get_delay_for_attempt(strategy, 5000, 3) == MAX_DELAY


def test_large_attempt_numbers_do_not_overflow():
    assert get_delay_for_attempt("exponential", 60, 10_000) == MAX_DELAY


def test_zero_base_delay():
    assert get_delay_for_attempt("exponential", 0, 4) == 0


def test_jitter_stays_within_ten_percent():
    for _ in range(200):
        delay = calculate_delay("fixed", 100, 1, jitter=True)
        assert 90 <= delay <= 110


def test_jitter_never_exceeds_cap():
    for _ in range(200):
        assert calculate_delay("fixed", MAX_DELAY, 1, jitter=True) <= MAX_DELAY


def test_jitter_on_tiny_delays_is_a_noop():
    assert add_jitter(5) == 5


@pytest.mark.parametrize("seconds,text", [
    (0, "0s"),
    (45, "45s"),
    (60, "1m"),
    (90, "1m 30s"),
    (3600, "1h"),
    (3660, "1h 1m"),
    (3725, "1h 2m"),
])
def test_format_delay(seconds, text):
    assert format_delay(seconds) == text
