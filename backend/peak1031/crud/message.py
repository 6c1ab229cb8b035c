import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.message import Message, MessageReceipt


class MessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, message_id: uuid.UUID) -> Message | None:
        return await self.session.get(Message, message_id)

    async def create(self, **values) -> Message:
        message = Message(**values)
        self.session.add(message)
        await self.session.flush()
        return message

    async def delete(self, message: Message) -> None:
        await self.session.delete(message)
        await self.session.flush()

    async def list_for_exchange(
        self, exchange_id: uuid.UUID, *, limit: int = 50, offset: int = 0
    ) -> tuple[list[Message], int]:
        total = await self.session.scalar(
            select(func.count()).select_from(Message).where(Message.exchange_id == exchange_id)
        )
        result = await self.session.execute(
            select(Message)
            .where(Message.exchange_id == exchange_id)
            .order_by(Message.created_at.asc(), Message.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_recent(
        self, exchange_ids: list[uuid.UUID], *, limit: int = 50, offset: int = 0
    ) -> tuple[list[Message], int]:
        if not exchange_ids:
            return [], 0
        condition = Message.exchange_id.in_(exchange_ids)
        total = await self.session.scalar(select(func.count()).select_from(Message).where(condition))
        result = await self.session.execute(
            select(Message)
            .where(condition)
            .order_by(Message.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

    async def count_unread(self, exchange_ids: list[uuid.UUID], user_id: uuid.UUID) -> int:
        if not exchange_ids:
            return 0
        receipt = (
            select(MessageReceipt.id)
            .where(MessageReceipt.message_id == Message.id, MessageReceipt.user_id == user_id)
            .exists()
        )
        total = await self.session.scalar(
            select(func.count())
            .select_from(Message)
            .where(
                Message.exchange_id.in_(exchange_ids),
                or_(Message.sender_id.is_(None), Message.sender_id != user_id),
                ~receipt,
            )
        )
        return int(total or 0)

    async def add_receipt(self, message: Message, user_id: uuid.UUID) -> None:
        message.receipts.append(MessageReceipt(user_id=user_id))
        await self.session.flush()
