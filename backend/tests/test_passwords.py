import asyncio

import pytest

from peak1031.security import passwords
from peak1031.security.passwords import (
    hash_secret,
    hash_secret_async,
    verify_secret,
    verify_secret_async,
)

pytestmark = pytest.mark.anyio


@pytest.fixture
def offloaded(monkeypatch):
    calls = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args):
        calls.append(func.__name__)
        return await real_to_thread(func, *args)

    monkeypatch.setattr(passwords.asyncio, "to_thread", recording_to_thread)
    return calls


async def test_async_helpers_run_bcrypt_in_worker_thread(offloaded) -> None:
    secret_hash = await hash_secret_async("1234")

    assert await verify_secret_async("1234", secret_hash) is True
    assert await verify_secret_async("9999", secret_hash) is False
    assert offloaded == ["hash_secret", "verify_secret", "verify_secret"]


async def test_missing_values_skip_the_worker_thread(offloaded) -> None:
    assert await verify_secret_async(None, hash_secret("1234")) is False
    assert await verify_secret_async("1234", None) is False
    assert offloaded == []


def test_malformed_hash_does_not_verify() -> None:
    assert verify_secret("1234", "not-a-bcrypt-hash") is False
