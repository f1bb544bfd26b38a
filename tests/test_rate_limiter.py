import threading
from datetime import timedelta

import pytest

from app.services.rate_limiter import LoginRateLimiter


def test_fresh_identifier_has_full_budget(rate_limiter):
    status = rate_limiter.check_attempt("a@b.com")
    assert status.allowed
    assert status.attempts_left == 5
    assert status.lockout_remaining is None


def test_failures_consume_budget(rate_limiter):
    for _ in range(3):
        rate_limiter.record_failure("a@b.com")
    status = rate_limiter.check_attempt("a@b.com")
    assert status.allowed
    assert status.attempts_left == 2


def test_locks_after_max_failures(rate_limiter, monotonic_clock):
    for _ in range(5):
        rate_limiter.record_failure("a@b.com")
    monotonic_clock.advance(timedelta(minutes=5))

    status = rate_limiter.check_attempt("a@b.com")
    assert not status.allowed
    assert status.attempts_left == 0
    assert status.lockout_remaining == timedelta(minutes=10)


def test_budget_restored_after_lockout(rate_limiter, monotonic_clock):
    for _ in range(5):
        rate_limiter.record_failure("a@b.com")
    monotonic_clock.advance(timedelta(minutes=15))

    status = rate_limiter.check_attempt("a@b.com")
    assert status.allowed
    assert status.attempts_left == 5


def test_identifiers_are_independent(rate_limiter):
    for _ in range(5):
        rate_limiter.record_failure("a@b.com")
    assert not rate_limiter.check_attempt("a@b.com").allowed
    assert rate_limiter.check_attempt("c@d.com").allowed


def test_clear_is_idempotent(rate_limiter):
    rate_limiter.record_failure("a@b.com")
    rate_limiter.clear_attempts("a@b.com")
    rate_limiter.clear_attempts("a@b.com")
    assert rate_limiter.check_attempt("a@b.com").attempts_left == 5


def test_purge_drops_only_stale_records(rate_limiter, monotonic_clock):
    rate_limiter.record_failure("old@b.com")
    monotonic_clock.advance(timedelta(minutes=20))
    rate_limiter.record_failure("new@b.com")

    assert rate_limiter.purge_expired() == 1
    assert rate_limiter.check_attempt("old@b.com").attempts_left == 5
    assert rate_limiter.check_attempt("new@b.com").attempts_left == 4


def test_rejects_non_positive_budget():
    with pytest.raises(ValueError):
        LoginRateLimiter(max_attempts=0)


def test_concurrent_failures_are_all_counted():
    limiter = LoginRateLimiter(max_attempts=1000)
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        for _ in range(50):
            limiter.record_failure("shared@b.com")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert limiter.check_attempt("shared@b.com").attempts_left == 1000 - 400


def test_guard_serialises_check_and_record(rate_limiter):
    allowed = []
    barrier = threading.Barrier(10)

    def attempt() -> None:
        barrier.wait()
        with rate_limiter.guard("race@b.com"):
            if rate_limiter.check_attempt("race@b.com").allowed:
                allowed.append(True)
                rate_limiter.record_failure("race@b.com")

    threads = [threading.Thread(target=attempt) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(allowed) == rate_limiter.max_attempts
