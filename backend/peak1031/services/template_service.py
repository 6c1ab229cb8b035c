import logging
import re
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ..crud.document import DocumentRepository
from ..crud.template import TemplateRepository
from ..crud.user import UserRepository
from ..domain.placeholders import format_date, format_money, render_template
from ..errors import NotFoundError, ValidationError
from ..infra.storage import LocalDocumentStorage
from ..models.document import Document
from ..models.exchange import Exchange
from ..models.template import DocumentTemplate
from ..models.user import User
from ..schemas.document import DocumentRead
from ..schemas.template import (
    TemplateCreate,
    TemplateGenerateRequest,
    TemplateGenerateResult,
    TemplateUpdate,
)
from ..utils.time import utcnow
from .audit_service import AuditService, serialize_entity
from .context import EMPTY_CONTEXT, RequestContext
from .document_service import get_storage
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.templates")

TEMPLATE_FIELDS = ("name", "category", "is_active", "description")
GENERATED_CONTENT_TYPE = "text/plain; charset=utf-8"
_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._ -]+")


def _person_values(prefix: str, user: User | None) -> dict[str, str]:
    if user is None:
        return {f"{prefix}.Name": "", f"{prefix}.Email": ""}
    return {
        f"{prefix}.Name": user.full_name,
        f"{prefix}.FirstName": user.first_name or "",
        f"{prefix}.LastName": user.last_name or "",
        f"{prefix}.Email": user.email,
        f"{prefix}.Phone": user.phone or "",
        f"{prefix}.Company": user.company or "",
    }


def exchange_placeholder_values(
    exchange: Exchange,
    *,
    client: User | None,
    coordinator: User | None,
    generated_by: User,
    now: datetime,
) -> dict[str, str]:
    """Placeholder values derived from one exchange and its parties."""
    values: dict[str, str] = {
        "Exchange.ID": str(exchange.id),
        "Exchange.Number": exchange.exchange_number,
        "Exchange.Name": exchange.name,
        "Exchange.Type": exchange.exchange_type,
        "Exchange.Status": exchange.status,
        "Exchange.Stage": exchange.stage,
        "Exchange.Value": format_money(exchange.exchange_value),
        "Property.Address": exchange.relinquished_property_address or "",
        "Property.RelinquishedAddress": exchange.relinquished_property_address or "",
        "Property.SalePrice": format_money(exchange.relinquished_sale_price),
        "Property.ReplacementValue": format_money(exchange.replacement_value),
        "Financial.ExchangeValue": format_money(exchange.exchange_value),
        "Financial.RelinquishedValue": format_money(exchange.relinquished_value),
        "Financial.ReplacementValue": format_money(exchange.replacement_value),
        "Financial.SalePrice": format_money(exchange.relinquished_sale_price),
        "QI.Name": exchange.qi_company or "",
        "QI.Company": exchange.qi_company or "",
        "Date.Current": format_date(now),
        "Date.Today": format_date(now),
        "Date.Start": format_date(exchange.start_date),
        "Date.RelinquishedClosing": format_date(exchange.relinquished_closing_date),
        "Date.IdentificationDeadline": format_date(exchange.identification_deadline),
        "Date.CompletionDeadline": format_date(exchange.completion_deadline),
        "System.CurrentDate": format_date(now),
        "System.CurrentDateTime": f"{format_date(now)} {now:%H:%M} UTC",
        "System.GeneratedBy": generated_by.full_name,
        "System.Priority": exchange.priority,
        "System.RiskLevel": exchange.risk_level,
        "System.Notes": exchange.notes or "",
    }
    values.update(_person_values("Client", client))
    values.update(_person_values("Coordinator", coordinator))
    return values


def _output_filename(template: DocumentTemplate, exchange: Exchange, requested: str | None) -> str:
    base = requested or f"{template.name} - {exchange.exchange_number}"
    base = _UNSAFE_FILENAME.sub("", base).strip() or "document"
    if not base.lower().endswith(".txt"):
        base = f"{base}.txt"
    return base


class TemplateService:
    def __init__(self, session: AsyncSession, storage: LocalDocumentStorage | None = None):
        self.session = session
        self.repo = TemplateRepository(session)
        self.documents = DocumentRepository(session)
        self.users = UserRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)
        self.storage = storage or get_storage()

    async def list_templates(
        self,
        actor: User,
        *,
        category: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[list[DocumentTemplate], int]:
        await self.permissions.require_permission(actor, "templates.view", context=context)
        return await self.repo.list_by_filters(
            category=category, is_active=is_active, limit=limit, offset=offset
        )

    async def get_template(
        self, template_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> DocumentTemplate:
        await self.permissions.require_permission(actor, "templates.view", context=context)
        template = await self.repo.get_by_id(template_id)
        if template is None:
            raise NotFoundError("Template not found")
        return template

    async def create_template(
        self, payload: TemplateCreate, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> DocumentTemplate:
        await self.permissions.require_permission(actor, "templates.manage", context=context)
        template = await self.repo.create(**payload.model_dump(), created_by=actor.id)
        after = serialize_entity(template, TEMPLATE_FIELDS)
        after["placeholders"] = template.placeholders
        await self.audit.log_create("template", template.id, after, actor=actor, context=context)
        await self.session.commit()
        logger.info("template created id=%s placeholders=%d", template.id, len(template.placeholders))
        return template

    async def update_template(
        self,
        template_id: uuid.UUID,
        payload: TemplateUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> DocumentTemplate:
        await self.permissions.require_permission(
            actor, "templates.manage", resource=str(template_id), context=context
        )
        template = await self.repo.get_by_id(template_id)
        if template is None:
            raise NotFoundError("Template not found")
        before = serialize_entity(template, TEMPLATE_FIELDS)
        for field, value in payload.model_dump(exclude_unset=True).items():
            if value is None and field in ("name", "category", "content", "is_active"):
                continue
            setattr(template, field, value)
        await self.session.flush()
        await self.audit.log_update(
            "template",
            template.id,
            before,
            serialize_entity(template, TEMPLATE_FIELDS),
            actor=actor,
            context=context,
        )
        await self.session.commit()
        return template

    async def delete_template(
        self, template_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        await self.permissions.require_permission(
            actor, "templates.manage", resource=str(template_id), context=context
        )
        template = await self.repo.get_by_id(template_id)
        if template is None:
            raise NotFoundError("Template not found")
        before = serialize_entity(template, TEMPLATE_FIELDS)
        await self.repo.delete(template)
        await self.audit.log_delete("template", template_id, before, actor=actor, context=context)
        await self.session.commit()

    async def generate(
        self,
        template_id: uuid.UUID,
        payload: TemplateGenerateRequest,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> TemplateGenerateResult:
        """Render a template against an exchange and store it as a document."""
        await self.permissions.require_permission(
            actor, "templates.generate", resource=str(template_id), context=context
        )
        template = await self.repo.get_by_id(template_id)
        if template is None:
            raise NotFoundError("Template not found")
        if not template.is_active:
            raise ValidationError("Template is inactive")
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, payload.exchange_id, "can_upload_documents", context=context
        )

        now = utcnow()
        client = await self.users.get_by_id(exchange.client_id) if exchange.client_id else None
        coordinator = (
            await self.users.get_by_id(exchange.coordinator_id) if exchange.coordinator_id else None
        )
        values = exchange_placeholder_values(
            exchange, client=client, coordinator=coordinator, generated_by=actor, now=now
        )
        # Caller supplied values win over derived ones
        values.update(payload.values)
        rendered = render_template(template.content, values)

        filename = _output_filename(template, exchange, payload.filename)
        data = rendered.content.encode("utf-8")
        stored_name, storage_path = await self.storage.save(exchange.id, filename, data)
        try:
            document: Document = await self.documents.create(
                exchange_id=exchange.id,
                filename=stored_name,
                original_filename=filename,
                content_type=GENERATED_CONTENT_TYPE,
                size=len(data),
                category=template.category,
                description=f"Generated from template '{template.name}'",
                storage_path=storage_path,
                is_template_generated=True,
                template_id=template.id,
                uploaded_by=actor.id,
            )
            exchange.last_activity_at = now
            await self.audit.log(
                action="template.generate",
                entity_type="document",
                entity_id=document.id,
                actor=actor,
                after={
                    "template_id": str(template.id),
                    "exchange_id": str(exchange.id),
                    "used_placeholders": rendered.used,
                    "missing_placeholders": rendered.missing,
                },
                context=context,
            )
            await self.session.commit()
        except Exception:
            await self.storage.delete(storage_path)
            raise

        if rendered.missing:
            logger.warning(
                "template rendered with missing placeholders template_id=%s missing=%s",
                template.id,
                rendered.missing,
            )
        return TemplateGenerateResult(
            document=DocumentRead.model_validate(document),
            used_placeholders=rendered.used,
            missing_placeholders=rendered.missing,
        )
