"""In-process soft rate limiting for credential checks.

Failures are counted per (scope, client IP, hashed identifier) inside a
sliding window. Successful attempts reset the counter.
"""
import hashlib
import time
from collections import defaultdict
from typing import DefaultDict, List

from ..errors import RateLimitError

AUTH_RATE_LIMIT_MAX_ATTEMPTS = 5
AUTH_RATE_LIMIT_WINDOW_SECONDS = 60
PIN_RATE_LIMIT_MAX_ATTEMPTS = 5
PIN_RATE_LIMIT_WINDOW_SECONDS = 300
IP_FALLBACK_LENGTH = 8


class SoftRateLimiter:
    def __init__(self, max_attempts: int, window_seconds: int) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._attempts: DefaultDict[str, List[float]] = defaultdict(list)

    def _prune(self, key: str, now: float) -> List[float]:
        cutoff = now - self.window_seconds
        attempts = [ts for ts in self._attempts.get(key, []) if ts >= cutoff]
        if attempts:
            self._attempts[key] = attempts
        else:
            self._attempts.pop(key, None)
        return attempts

    def is_limited(self, key: str, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return len(self._prune(key, current)) >= self.max_attempts

    def record_failure(self, key: str, now: float | None = None) -> None:
        current = time.time() if now is None else now
        attempts = self._prune(key, current)
        attempts.append(current)
        self._attempts[key] = attempts

    def reset(self, key: str) -> None:
        self._attempts.pop(key, None)

    def clear(self) -> None:
        self._attempts.clear()

    def check(self, key: str, now: float | None = None) -> str:
        if self.is_limited(key, now):
            raise RateLimitError()
        return key


def make_key(scope: str, identifier: str, client_ip: str | None) -> str:
    if not identifier:
        raise ValueError("identifier is required for rate limiting")
    identifier_hash = hashlib.sha256(identifier.encode()).hexdigest()
    ip_component = client_ip or f"unknown-ip-{identifier_hash[:IP_FALLBACK_LENGTH]}"
    return f"{scope}:{ip_component}:{identifier_hash}"


auth_rate_limiter = SoftRateLimiter(
    max_attempts=AUTH_RATE_LIMIT_MAX_ATTEMPTS,
    window_seconds=AUTH_RATE_LIMIT_WINDOW_SECONDS,
)

pin_rate_limiter = SoftRateLimiter(
    max_attempts=PIN_RATE_LIMIT_MAX_ATTEMPTS,
    window_seconds=PIN_RATE_LIMIT_WINDOW_SECONDS,
)


def check_login_rate_limit(email: str, client_ip: str | None = None) -> str:
    return auth_rate_limiter.check(make_key("login", email.lower(), client_ip))


def check_refresh_rate_limit(token_identifier: str, client_ip: str | None = None) -> str:
    return auth_rate_limiter.check(make_key("refresh", token_identifier, client_ip))


def check_pin_rate_limit(document_id: str, user_id: str) -> str:
    return pin_rate_limiter.check(make_key("pin", document_id, user_id))
