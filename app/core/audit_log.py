"""Audit trail for mutating API calls"""
import hashlib
import json
import logging
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.audit import Audit
from app.core.metrics import audit_logs_created
from app.core.enums import AuditAction

logger = logging.getLogger(__name__)


def payload_hash(payload: dict) -> str:
    s = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(s.encode()).hexdigest()


def _payload_dict(payload: Any) -> dict:
    if payload is None:
        return {}
    if hasattr(payload, "model_dump"):
        return payload.model_dump(exclude_unset=True)
    if isinstance(payload, dict):
        return payload
    return {}


async def log_audit(
    db: AsyncSession,
    user_id: int,
    action: str,
    payload: Optional[Any] = None,
    resource_ref: Optional[str] = None,
) -> None:
    """Write and commit one audit row. Audit failures never fail the request."""
    try:
        audit_record = Audit(
            user_id=int(user_id),
            endpoint=str(action),
            resource_ref=resource_ref,
            payload_hash=payload_hash(_payload_dict(payload)),
        )
        db.add(audit_record)
        await db.commit()
        audit_logs_created.labels(action=str(action)).inc()
    except Exception as e:
        await db.rollback()
        logger.error(f"Audit logging failed for action {action}: {e}", exc_info=True)


async def log_login(db: AsyncSession, user_id: int, username: str) -> None:
    await log_audit(db, user_id, AuditAction.LOGIN, {"username": username})
