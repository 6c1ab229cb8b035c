import logging
import uuid
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from ..crud.notification import NotificationRepository
from ..errors import NotFoundError
from ..models.notification import Notification
from ..models.user import User
from ..utils.time import utcnow

logger = logging.getLogger("peak1031.notifications")


class NotificationService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = NotificationRepository(session)

    async def notify(
        self,
        user_ids: Iterable[uuid.UUID | None],
        *,
        title: str,
        message: str,
        type: str = "info",
        exchange_id: uuid.UUID | None = None,
        urgent: bool = False,
        exclude: uuid.UUID | None = None,
    ) -> list[Notification]:
        """Queue one notification per distinct recipient in the current transaction."""
        recipients: list[uuid.UUID] = []
        for user_id in user_ids:
            if user_id is None or user_id == exclude or user_id in recipients:
                continue
            recipients.append(user_id)
        if not recipients:
            return []

        rows = [
            {
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": type,
                "exchange_id": exchange_id,
                "urgent": urgent,
            }
            for user_id in recipients
        ]
        created = await self.repo.create_many(rows)
        logger.info(
            "notifications queued type=%s exchange_id=%s recipients=%d urgent=%s",
            type,
            exchange_id,
            len(created),
            urgent,
        )
        return created

    async def list_for_user(
        self, user: User, *, unread_only: bool, limit: int, offset: int
    ) -> tuple[list[Notification], int]:
        return await self.repo.list_for_user(
            user.id, unread_only=unread_only, limit=limit, offset=offset
        )

    async def unread_count(self, user: User) -> int:
        return await self.repo.count_unread(user.id)

    async def mark_read(self, user: User, notification_id: uuid.UUID) -> Notification:
        notification = await self.repo.get_by_id(notification_id)
        # Other users' notifications are reported as missing
        if notification is None or notification.user_id != user.id:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self.session.commit()
        return notification

    async def mark_all_read(self, user: User) -> int:
        updated = await self.repo.mark_all_read(user.id, utcnow())
        await self.session.commit()
        return updated
