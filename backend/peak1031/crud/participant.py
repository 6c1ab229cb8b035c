import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.participant import ExchangeParticipant


class ParticipantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, exchange_id: uuid.UUID, user_id: uuid.UUID) -> ExchangeParticipant | None:
        result = await self.session.execute(
            select(ExchangeParticipant).where(
                ExchangeParticipant.exchange_id == exchange_id,
                ExchangeParticipant.user_id == user_id,
            )
        )
        return result.scalars().first()

    async def get_active(
        self, exchange_id: uuid.UUID, user_id: uuid.UUID
    ) -> ExchangeParticipant | None:
        participant = await self.get(exchange_id, user_id)
        if participant is None or not participant.is_active:
            return None
        return participant

    async def list_for_exchange(
        self, exchange_id: uuid.UUID, *, include_inactive: bool = False
    ) -> list[ExchangeParticipant]:
        stmt = select(ExchangeParticipant).where(ExchangeParticipant.exchange_id == exchange_id)
        if not include_inactive:
            stmt = stmt.where(ExchangeParticipant.is_active.is_(True))
        result = await self.session.execute(stmt.order_by(ExchangeParticipant.created_at))
        return list(result.scalars().all())

    async def create(self, **values) -> ExchangeParticipant:
        participant = ExchangeParticipant(**values)
        self.session.add(participant)
        await self.session.flush()
        return participant
