from pydantic import BaseModel
from typing import Optional, Dict
from app.core.enums import DocumentKind, DocumentStatus, SyncOutcome


class DocumentStatusOut(BaseModel):
    lead_id: str
    documents: Dict[DocumentKind, DocumentStatus]
    ids: Dict[DocumentKind, Optional[str]]


class SyncResultOut(BaseModel):
    lead_id: str
    kind: DocumentKind
    outcome: SyncOutcome
    document_id: Optional[str] = None
    missing: Optional[str] = None
    error: Optional[str] = None
