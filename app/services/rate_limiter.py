"""Fixed-count, fixed-window lockout for failed logins."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, ContextManager, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LOCKOUT = timedelta(minutes=15)


@dataclass(slots=True)
class LoginAttempt:
    failure_count: int
    last_failure_at: float


@dataclass(slots=True)
class AttemptStatus:
    allowed: bool
    attempts_left: int
    lockout_remaining: Optional[timedelta] = None


class LoginRateLimiter:
    """
    Tracks failed authentication attempts per identifier.

    Once an identifier accumulates ``max_attempts`` failures it is locked
    until ``lockout`` has elapsed since its last failure; the record is then
    dropped and the full budget restored. Every identifier owns a re-entrant
    lock, so calls for different identifiers never wait on each other while
    read-modify-write on the same identifier is serialised.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout: timedelta = DEFAULT_LOCKOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._lockout_seconds = lockout.total_seconds()
        self._clock = clock
        self._attempts: Dict[str, LoginAttempt] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # ------------------------------------------------------------------
    def _lock_for(self, identifier: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(identifier)
            if lock is None:
                lock = threading.RLock()
                self._locks[identifier] = lock
            return lock

    @contextmanager
    def _locked(self, identifier: str) -> Iterator[None]:
        while True:
            lock = self._lock_for(identifier)
            lock.acquire()
            with self._registry_lock:
                current = self._locks.get(identifier)
            if current is lock:
                break
            # Evicted by purge_expired between lookup and acquire.
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def guard(self, identifier: str) -> ContextManager[None]:
        """Hold the identifier's lock so check, verify and record happen as one step."""
        return self._locked(identifier)

    def check_attempt(self, identifier: str) -> AttemptStatus:
        with self._locked(identifier):
            attempt = self._attempts.get(identifier)
            if attempt is None:
                return AttemptStatus(allowed=True, attempts_left=self._max_attempts)

            if attempt.failure_count >= self._max_attempts:
                elapsed = self._clock() - attempt.last_failure_at
                if elapsed >= self._lockout_seconds:
                    del self._attempts[identifier]
                    return AttemptStatus(allowed=True, attempts_left=self._max_attempts)
                return AttemptStatus(
                    allowed=False,
                    attempts_left=0,
                    lockout_remaining=timedelta(seconds=self._lockout_seconds - elapsed),
                )

            return AttemptStatus(
                allowed=True,
                attempts_left=self._max_attempts - attempt.failure_count,
            )

    def record_failure(self, identifier: str) -> None:
        with self._locked(identifier):
            attempt = self._attempts.get(identifier)
            if attempt is None:
                attempt = LoginAttempt(failure_count=0, last_failure_at=0.0)
                self._attempts[identifier] = attempt
            attempt.failure_count += 1
            attempt.last_failure_at = self._clock()
            if attempt.failure_count == self._max_attempts:
                logger.warning("Login locked for %s after %s failed attempts.", identifier, attempt.failure_count)

    def clear_attempts(self, identifier: str) -> None:
        with self._locked(identifier):
            self._attempts.pop(identifier, None)

    def purge_expired(self) -> int:
        """Drop records whose last failure is older than the lockout window."""
        now = self._clock()
        with self._registry_lock:
            candidates = list(self._attempts.items())
        removed = 0
        for identifier, attempt in candidates:
            with self._locked(identifier):
                current = self._attempts.get(identifier)
                if current is attempt and now - attempt.last_failure_at >= self._lockout_seconds:
                    del self._attempts[identifier]
                    removed += 1
        with self._registry_lock:
            for identifier in [key for key in self._locks if key not in self._attempts]:
                lock = self._locks[identifier]
                # A lock that is currently held belongs to an in-flight attempt.
                if lock.acquire(blocking=False):
                    try:
                        del self._locks[identifier]
                    finally:
                        lock.release()
        if removed:
            logger.debug("Purged %s expired login attempt records.", removed)
        return removed
