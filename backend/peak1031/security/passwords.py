import asyncio

import bcrypt

BCRYPT_ROUNDS = 12


def hash_secret(secret: str) -> str:
    """bcrypt hash used for both account passwords and document PINs."""
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_secret(secret: str | None, secret_hash: str | None) -> bool:
    if not secret or not secret_hash:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), secret_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


async def hash_secret_async(secret: str) -> str:
    return await asyncio.to_thread(hash_secret, secret)


async def verify_secret_async(secret: str | None, secret_hash: str | None) -> bool:
    if not secret or not secret_hash:
        return False
    return await asyncio.to_thread(verify_secret, secret, secret_hash)
