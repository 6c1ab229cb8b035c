from datetime import datetime
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.refresh_token import RefreshToken


class RefreshTokenRepository:
    """One refresh token row per user; rotation overwrites the stored hash."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_or_rotate(
        self, user_id: uuid.UUID, token_hash: str, expires_at: datetime
    ) -> RefreshToken:
        existing = await self.get_by_user_id(user_id)
        if existing:
            existing.token_hash = token_hash
            existing.expires_at = expires_at
            existing.revoked = False
            await self.session.flush()
            return existing

        refresh_token = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            revoked=False,
        )
        self.session.add(refresh_token)
        await self.session.flush()
        return refresh_token

    async def get_by_hash(
        self, token_hash: str, *, for_update: bool = False
    ) -> RefreshToken | None:
        stmt = select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_user_id(
        self, user_id: uuid.UUID, *, for_update: bool = False
    ) -> RefreshToken | None:
        stmt = select(RefreshToken).where(RefreshToken.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def revoke(self, user_id: uuid.UUID) -> RefreshToken | None:
        token = await self.get_by_user_id(user_id)
        if token:
            token.revoked = True
            await self.session.flush()
        return token

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
