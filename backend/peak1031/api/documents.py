from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Header, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.document import DocumentRead, DocumentUpdate
from ..services.context import RequestContext
from ..services.document_service import DocumentService

router = APIRouter(prefix="/documents", tags=["documents"])
exchange_router = APIRouter(prefix="/exchanges/{exchange_id}/documents", tags=["documents"])


@exchange_router.post("", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
async def upload_document(
    exchange_id: UUID,
    file: UploadFile = File(...),
    category: str = Form("general"),
    description: str | None = Form(None),
    pin: str | None = Form(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    data = await file.read()
    return await DocumentService(db).upload(
        exchange_id,
        filename=file.filename or "upload",
        content_type=file.content_type,
        data=data,
        actor=current_user,
        category=category,
        description=description,
        pin=pin,
        context=context,
    )


@exchange_router.get("", response_model=Page[DocumentRead])
async def list_exchange_documents(
    exchange_id: UUID,
    category: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[DocumentRead]:
    items, total = await DocumentService(db).list_documents(
        current_user,
        exchange_id=exchange_id,
        category=category,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(DocumentRead, items, total, limit, offset)


@router.get("", response_model=Page[DocumentRead])
async def list_documents(
    exchange_id: UUID | None = Query(None),
    category: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[DocumentRead]:
    items, total = await DocumentService(db).list_documents(
        current_user,
        exchange_id=exchange_id,
        category=category,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(DocumentRead, items, total, limit, offset)


@router.get("/{document_id}", response_model=DocumentRead)
async def get_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await DocumentService(db).get_document(document_id, current_user, context)


@router.get("/{document_id}/download")
async def download_document(
    document_id: UUID,
    pin: str | None = Query(None, description="PIN for protected documents"),
    x_document_pin: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> FileResponse:
    document, path = await DocumentService(db).download(
        document_id, current_user, pin=x_document_pin or pin, context=context
    )
    return FileResponse(
        path,
        media_type=document.content_type,
        filename=document.original_filename,
    )


@router.put("/{document_id}", response_model=DocumentRead)
async def update_document(
    document_id: UUID,
    payload: DocumentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await DocumentService(db).update_document(
        document_id,
        current_user,
        changes=payload.model_dump(exclude_unset=True),
        context=context,
    )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await DocumentService(db).delete_document(document_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
