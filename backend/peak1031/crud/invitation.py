import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.invitation import ExchangeInvitation


class InvitationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, invitation_id: uuid.UUID) -> ExchangeInvitation | None:
        return await self.session.get(ExchangeInvitation, invitation_id)

    async def get_by_token_hash(self, token_hash: str) -> ExchangeInvitation | None:
        result = await self.session.execute(
            select(ExchangeInvitation).where(ExchangeInvitation.token_hash == token_hash)
        )
        return result.scalars().first()

    async def get_pending(self, exchange_id: uuid.UUID, email: str) -> ExchangeInvitation | None:
        result = await self.session.execute(
            select(ExchangeInvitation).where(
                ExchangeInvitation.exchange_id == exchange_id,
                func.lower(ExchangeInvitation.email) == email.lower(),
                ExchangeInvitation.status == "pending",
            )
        )
        return result.scalars().first()

    async def list_for_exchange(self, exchange_id: uuid.UUID) -> list[ExchangeInvitation]:
        result = await self.session.execute(
            select(ExchangeInvitation)
            .where(ExchangeInvitation.exchange_id == exchange_id)
            .order_by(ExchangeInvitation.created_at.desc(), ExchangeInvitation.id)
        )
        return list(result.scalars().all())

    async def list_pending_for_email(self, email: str) -> list[ExchangeInvitation]:
        result = await self.session.execute(
            select(ExchangeInvitation)
            .where(
                func.lower(ExchangeInvitation.email) == email.lower(),
                ExchangeInvitation.status == "pending",
            )
            .order_by(ExchangeInvitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def create(self, **values) -> ExchangeInvitation:
        invitation = ExchangeInvitation(**values)
        self.session.add(invitation)
        await self.session.flush()
        return invitation
