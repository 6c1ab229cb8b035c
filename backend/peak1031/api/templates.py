from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.template import (
    TemplateCreate,
    TemplateGenerateRequest,
    TemplateGenerateResult,
    TemplateRead,
    TemplateUpdate,
)
from ..services.context import RequestContext
from ..services.template_service import TemplateService

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=Page[TemplateRead])
async def list_templates(
    category: str | None = Query(None),
    is_active: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[TemplateRead]:
    items, total = await TemplateService(db).list_templates(
        current_user,
        category=category,
        is_active=is_active,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(TemplateRead, items, total, limit, offset)


@router.post("", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TemplateService(db).create_template(payload, current_user, context)


@router.get("/{template_id}", response_model=TemplateRead)
async def get_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TemplateService(db).get_template(template_id, current_user, context)


@router.put("/{template_id}", response_model=TemplateRead)
async def update_template(
    template_id: UUID,
    payload: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TemplateService(db).update_template(template_id, payload, current_user, context)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await TemplateService(db).delete_template(template_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{template_id}/generate",
    response_model=TemplateGenerateResult,
    status_code=status.HTTP_201_CREATED,
)
async def generate_document(
    template_id: UUID,
    payload: TemplateGenerateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> TemplateGenerateResult:
    """Render the template for an exchange and store it as a document."""
    return await TemplateService(db).generate(template_id, payload, current_user, context)
