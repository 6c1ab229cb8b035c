import pytest

from peak1031.application.auth_rate_limit import (
    AUTH_RATE_LIMIT_MAX_ATTEMPTS,
    SoftRateLimiter,
    auth_rate_limiter,
    check_login_rate_limit,
    check_pin_rate_limit,
    make_key,
    pin_rate_limiter,
)
from peak1031.errors import RateLimitError


@pytest.fixture(autouse=True)
def clear_rate_limiters():
    auth_rate_limiter.clear()
    pin_rate_limiter.clear()
    yield
    auth_rate_limiter.clear()
    pin_rate_limiter.clear()


def test_limiter_blocks_after_max_attempts() -> None:
    limiter = SoftRateLimiter(max_attempts=3, window_seconds=60)
    for offset in range(3):
        limiter.record_failure("key", now=1000.0 + offset)

    assert limiter.is_limited("key", now=1010.0) is True
    with pytest.raises(RateLimitError):
        limiter.check("key", now=1010.0)
    assert limiter.check("key", now=1100.0) == "key"


def test_limiter_window_expires() -> None:
    limiter = SoftRateLimiter(max_attempts=2, window_seconds=60)
    limiter.record_failure("key", now=1000.0)
    limiter.record_failure("key", now=1001.0)

    assert limiter.is_limited("key", now=1030.0) is True
    assert limiter.is_limited("key", now=1100.0) is False


def test_reset_clears_attempts() -> None:
    limiter = SoftRateLimiter(max_attempts=1, window_seconds=60)
    limiter.record_failure("key", now=1000.0)
    limiter.reset("key")

    assert limiter.is_limited("key", now=1001.0) is False


def test_keys_hash_identifier_and_fall_back_without_ip() -> None:
    key = make_key("login", "user@example.com", None)

    assert key.startswith("login:unknown-ip-")
    assert "user@example.com" not in key
    with pytest.raises(ValueError):
        make_key("login", "", "127.0.0.1")


def test_login_limit_is_case_insensitive() -> None:
    key = check_login_rate_limit("User@Example.com", "10.0.0.1")
    for _ in range(AUTH_RATE_LIMIT_MAX_ATTEMPTS):
        auth_rate_limiter.record_failure(key)

    with pytest.raises(RateLimitError):
        check_login_rate_limit("user@example.com", "10.0.0.1")
    # other clients are unaffected
    check_login_rate_limit("user@example.com", "10.0.0.2")


def test_pin_limit_is_per_document_and_user() -> None:
    key = check_pin_rate_limit("doc-1", "user-1")
    for _ in range(pin_rate_limiter.max_attempts):
        pin_rate_limiter.record_failure(key)

    with pytest.raises(RateLimitError):
        check_pin_rate_limit("doc-1", "user-1")
    check_pin_rate_limit("doc-2", "user-1")


def test_zero_timestamp_is_not_replaced_by_clock() -> None:
    limiter = SoftRateLimiter(max_attempts=1, window_seconds=60)
    limiter.record_failure("key", now=0.0)

    assert limiter.is_limited("key", now=0.0) is True
    assert limiter.is_limited("key", now=61.0) is False
