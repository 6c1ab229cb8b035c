import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import Role, get_view_scope
from ..crud.document import DocumentRepository
from ..crud.exchange import ExchangeRepository, visibility_condition
from ..crud.message import MessageRepository
from ..errors import NotFoundError, PermissionError, ValidationError
from ..models.message import Message, MessageReceipt
from ..models.user import User
from ..schemas.message import MessageCreate
from ..utils.time import utcnow
from .audit_service import AuditService
from .context import EMPTY_CONTEXT, RequestContext
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.messages")


class MessageService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = MessageRepository(session)
        self.documents = DocumentRepository(session)
        self.exchanges = ExchangeRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)

    async def send(
        self,
        exchange_id: uuid.UUID,
        payload: MessageCreate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Message:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_send_messages", context=context
        )
        if payload.attachment_id is not None:
            attachment = await self.documents.get_by_id(payload.attachment_id)
            if attachment is None or attachment.exchange_id != exchange.id:
                raise ValidationError("Attachment must be a document of the same exchange")

        message = await self.repo.create(
            exchange_id=exchange.id,
            sender_id=actor.id,
            content=payload.content,
            attachment_id=payload.attachment_id,
            receipts=[MessageReceipt(user_id=actor.id)],
        )
        exchange.last_activity_at = utcnow()
        await self.session.commit()
        logger.info("message sent id=%s exchange_id=%s sender=%s", message.id, exchange.id, actor.id)
        return message

    async def list_messages(
        self,
        exchange_id: uuid.UUID,
        actor: User,
        *,
        limit: int = 50,
        offset: int = 0,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[list[Message], int]:
        await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_view_messages", context=context
        )
        return await self.repo.list_for_exchange(exchange_id, limit=limit, offset=offset)

    async def mark_read(
        self, message_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> Message:
        message = await self.repo.get_by_id(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        await self.permissions.require_exchange_permission(
            actor, message.exchange_id, "can_view_messages", context=context
        )
        if not message.is_read_by(actor.id):
            await self.repo.add_receipt(message, actor.id)
            await self.session.commit()
        return message

    async def _readable_exchange_ids(self, actor: User) -> list[uuid.UUID]:
        scope = get_view_scope(actor.role, "messages")
        readable: list[uuid.UUID] = []
        for exchange in await self.exchanges.list_visible(visibility_condition(actor.id, scope)):
            access = await self.permissions.resolve_access(actor, exchange)
            if access is not None and access.has("can_view_messages"):
                readable.append(exchange.id)
        return readable

    async def unread_count(self, actor: User) -> int:
        exchange_ids = await self._readable_exchange_ids(actor)
        return await self.repo.count_unread(exchange_ids, actor.id)

    async def recent(self, actor: User, *, limit: int = 20, offset: int = 0) -> tuple[list[Message], int]:
        exchange_ids = await self._readable_exchange_ids(actor)
        return await self.repo.list_recent(exchange_ids, limit=limit, offset=offset)

    async def delete(
        self, message_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        message = await self.repo.get_by_id(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if actor.role != Role.ADMIN.value:
            await self.permissions.require_exchange_permission(
                actor, message.exchange_id, "can_view_messages", context=context
            )
            if message.sender_id != actor.id:
                await self.permissions.audit_denial(actor, "messages.delete", str(message_id), context)
                raise PermissionError("Only the sender or an admin can delete a message")

        await self.audit.log_delete(
            "message",
            message.id,
            {"exchange_id": str(message.exchange_id), "sender_id": str(message.sender_id)},
            actor=actor,
            context=context,
        )
        await self.repo.delete(message)
        await self.session.commit()
