from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from app.db.session import get_db
from app.core.config import settings
from app.schemas.document import DocumentStatusOut, SyncResultOut
from app.core.security import get_current_user, require_admin, verify_document_token
from app.core.audit_decorator import audit_log
from app.core.rate_limit import check_rate_limit
from app.core.enums import AuditAction, DocumentKind, SyncOutcome
from app.core.exceptions import DocumentNotReady
from app.api.deps import get_accounting, get_orchestrator, load_owned_order
from app.services.document_sync import ID_FIELDS, document_statuses
from app.services.orders import load_order

router = APIRouter(tags=["documents"])


def _pdf_response(content: bytes, lead_id: str, kind: DocumentKind) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{kind}_{lead_id}.pdf"'},
    )


@router.get("/orders/{lead_id}/documents", response_model=DocumentStatusOut)
async def get_document_status(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    order = await load_owned_order(db, lead_id, current_user)
    statuses = await document_statuses(db, order)
    return DocumentStatusOut(
        lead_id=order.lead_id,
        documents=statuses,
        ids={kind: getattr(order, field) for kind, field in ID_FIELDS.items()},
    )


@router.post("/orders/{lead_id}/documents/{kind}/generate", response_model=SyncResultOut)
@audit_log(AuditAction.GENERATE_DOCUMENT)
async def generate_document(
    lead_id: str,
    kind: DocumentKind,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
    orchestrator=Depends(get_orchestrator),
):
    """Run the document sync inline. Safe to repeat: an existing document is never recreated."""
    await check_rate_limit(int(current_user.id), scope="documents", limit=settings.DOCUMENT_RATE_LIMIT)

    result = await orchestrator.sync(lead_id, kind)
    if result.outcome == SyncOutcome.FAILED:
        raise HTTPException(status_code=503, detail=f"Accounting system unavailable: {result.error}")
    if result.outcome == SyncOutcome.MISSING_PREREQUISITE:
        raise HTTPException(status_code=409, detail=f"Cannot create {kind} for {lead_id}, missing {result.missing}")

    return SyncResultOut(
        lead_id=result.lead_id,
        kind=result.kind,
        outcome=result.outcome,
        document_id=result.document_id,
        missing=result.missing,
        error=result.error,
    )


@router.get("/orders/{lead_id}/documents/{kind}/pdf")
async def download_document(
    lead_id: str,
    kind: DocumentKind,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    accounting=Depends(get_accounting),
    orchestrator=Depends(get_orchestrator),
):
    """Stream the document PDF, creating the document first if it was never made."""
    await check_rate_limit(int(current_user.id), scope="documents", limit=settings.DOCUMENT_RATE_LIMIT)

    order = await load_owned_order(db, lead_id, current_user)

    document_id = getattr(order, ID_FIELDS[kind])
    if not document_id:
        result = await orchestrator.sync(lead_id, kind)
        if result.outcome == SyncOutcome.FAILED:
            raise HTTPException(status_code=503, detail=f"Accounting system unavailable: {result.error}")
        if not result.document_id:
            raise DocumentNotReady(lead_id, kind)
        document_id = result.document_id

    content = await accounting.fetch_pdf(kind, document_id)
    return _pdf_response(content, lead_id, kind)


@router.get("/documents/{kind}/pdf")
async def download_document_by_link(
    kind: DocumentKind,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
    accounting=Depends(get_accounting),
):
    """Public download for the signed links sent in notifications."""
    lead_id = verify_document_token(token, kind)
    order = await load_order(db, lead_id)

    document_id = getattr(order, ID_FIELDS[kind])
    if not document_id:
        raise DocumentNotReady(lead_id, kind)

    content = await accounting.fetch_pdf(kind, document_id)
    return _pdf_response(content, lead_id, kind)
