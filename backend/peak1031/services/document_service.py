import logging
import uuid
from pathlib import Path

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from ..application.auth_rate_limit import check_pin_rate_limit, pin_rate_limiter
from ..auth.rbac_contract import get_view_scope
from ..config import settings
from ..crud.document import DocumentRepository
from ..crud.exchange import ExchangeRepository, visibility_condition
from ..errors import NotFoundError, PinRequiredError, ValidationError
from ..infra.storage import LocalDocumentStorage
from ..models.document import Document
from ..models.user import User
from ..security.passwords import hash_secret_async, verify_secret_async
from ..utils.time import utcnow
from .audit_service import AuditService, serialize_entity
from .context import EMPTY_CONTEXT, RequestContext
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.documents")

DOCUMENT_FIELDS = (
    "exchange_id",
    "original_filename",
    "content_type",
    "size",
    "category",
    "description",
    "is_template_generated",
    "template_id",
)
MIN_PIN_LENGTH = 4


def get_storage() -> LocalDocumentStorage:
    return LocalDocumentStorage(settings.upload_dir)


def _validate_pin(pin: str) -> str:
    pin = pin.strip()
    if len(pin) < MIN_PIN_LENGTH:
        raise ValidationError(f"PIN must be at least {MIN_PIN_LENGTH} characters")
    return pin


class DocumentService:
    def __init__(self, session: AsyncSession, storage: LocalDocumentStorage | None = None):
        self.session = session
        self.repo = DocumentRepository(session)
        self.exchanges = ExchangeRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)
        self.storage = storage or get_storage()

    async def upload(
        self,
        exchange_id: uuid.UUID,
        *,
        filename: str,
        content_type: str | None,
        data: bytes,
        actor: User,
        category: str = "general",
        description: str | None = None,
        pin: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Document:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_upload_documents", context=context
        )
        if not filename:
            raise ValidationError("Filename is required")
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > settings.max_upload_bytes:
            raise ValidationError(
                "File exceeds the maximum upload size",
                code="FILE_TOO_LARGE",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                details={"max_bytes": settings.max_upload_bytes, "size": len(data)},
            )
        pin_hash = await hash_secret_async(_validate_pin(pin)) if pin else None

        stored_name, storage_path = await self.storage.save(exchange.id, filename, data)
        try:
            document = await self.repo.create(
                exchange_id=exchange.id,
                filename=stored_name,
                original_filename=Path(filename).name,
                content_type=content_type or "application/octet-stream",
                size=len(data),
                category=category,
                description=description,
                storage_path=storage_path,
                pin_hash=pin_hash,
                uploaded_by=actor.id,
            )
            exchange.last_activity_at = utcnow()
            await self.audit.log_create(
                "document",
                document.id,
                serialize_entity(document, DOCUMENT_FIELDS),
                actor=actor,
                context=context,
            )
            await self.session.commit()
        except Exception:
            await self.storage.delete(storage_path)
            raise
        logger.info(
            "document uploaded id=%s exchange_id=%s size=%d pin=%s",
            document.id,
            exchange.id,
            document.size,
            pin_hash is not None,
        )
        return document

    async def list_documents(
        self,
        actor: User,
        *,
        exchange_id: uuid.UUID | None = None,
        category: str | None = None,
        limit: int = 50,
        offset: int = 0,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[list[Document], int]:
        await self.permissions.require_permission(actor, "documents.view", context=context)
        if exchange_id is not None:
            await self.permissions.require_exchange_permission(
                actor, exchange_id, "can_view_documents", context=context
            )
            exchange_ids = [exchange_id]
        else:
            scope = get_view_scope(actor.role, "documents")
            exchange_ids = []
            for exchange in await self.exchanges.list_visible(visibility_condition(actor.id, scope)):
                access = await self.permissions.resolve_access(actor, exchange)
                if access is not None and access.has("can_view_documents"):
                    exchange_ids.append(exchange.id)
        return await self.repo.list_for_exchanges(
            exchange_ids, category=category, limit=limit, offset=offset
        )

    async def _load(self, document_id: uuid.UUID) -> Document:
        document = await self.repo.get_by_id(document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return document

    async def get_document(
        self, document_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> Document:
        document = await self._load(document_id)
        await self.permissions.require_exchange_permission(
            actor, document.exchange_id, "can_view_documents", context=context
        )
        return document

    async def _check_pin(self, document: Document, actor: User, pin: str | None) -> None:
        if document.pin_hash is None:
            return
        key = check_pin_rate_limit(str(document.id), str(actor.id))
        if not pin:
            raise PinRequiredError("PIN required to access this document")
        if not await verify_secret_async(pin, document.pin_hash):
            pin_rate_limiter.record_failure(key)
            logger.warning("invalid document pin document_id=%s user_id=%s", document.id, actor.id)
            raise PinRequiredError("Invalid PIN", details={"document_id": str(document.id)})
        pin_rate_limiter.reset(key)

    async def download(
        self,
        document_id: uuid.UUID,
        actor: User,
        *,
        pin: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[Document, Path]:
        """
        Resolve a document for download.

        Raises:
            PinRequiredError: the document is PIN protected and the PIN is
                missing or wrong
            NotFoundError: the stored file is gone
        """
        document = await self._load(document_id)
        await self.permissions.require_exchange_permission(
            actor, document.exchange_id, "can_view_documents", context=context
        )
        await self._check_pin(document, actor, pin)

        path = self.storage.absolute_path(document.storage_path)
        if not path.is_file():
            logger.error("document file missing id=%s path=%s", document.id, document.storage_path)
            raise NotFoundError("Document file not found")

        await self.audit.log(
            action="document.download",
            entity_type="document",
            entity_id=document.id,
            actor=actor,
            after={"exchange_id": str(document.exchange_id)},
            context=context,
        )
        await self.session.commit()
        return document, path

    async def update_document(
        self,
        document_id: uuid.UUID,
        actor: User,
        *,
        changes: dict,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Document:
        document = await self._load(document_id)
        await self.permissions.require_exchange_permission(
            actor, document.exchange_id, "can_edit_documents", context=context
        )
        before = serialize_entity(document, DOCUMENT_FIELDS)
        for field in ("category", "description"):
            if field in changes:
                setattr(document, field, changes[field])
        if "pin" in changes:
            pin = changes["pin"]
            document.pin_hash = await hash_secret_async(_validate_pin(pin)) if pin else None

        after = serialize_entity(document, DOCUMENT_FIELDS)
        after["pin_protected"] = document.pin_protected
        await self.audit.log_update("document", document.id, before, after, actor=actor, context=context)
        await self.session.commit()
        return document

    async def delete_document(
        self, document_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        document = await self._load(document_id)
        await self.permissions.require_exchange_permission(
            actor, document.exchange_id, "can_delete_documents", context=context
        )
        before = serialize_entity(document, DOCUMENT_FIELDS)
        storage_path = document.storage_path
        await self.repo.delete(document)
        await self.audit.log_delete("document", document_id, before, actor=actor, context=context)
        await self.session.commit()
        await self.storage.delete(storage_path)
        logger.info("document deleted id=%s actor=%s", document_id, actor.id)
