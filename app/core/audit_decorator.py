import logging
from functools import wraps
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.audit_log import log_audit

logger = logging.getLogger(__name__)

PAYLOAD_KWARGS = ("payload", "data", "body")


def audit_log(action: str) -> Callable:
    """Record an audit row after the wrapped endpoint succeeds."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            result = await func(*args, **kwargs)

            db: AsyncSession = kwargs.get("db")
            current_user = kwargs.get("current_user")

            if not db or not current_user:
                return result

            payload = next((kwargs[key] for key in PAYLOAD_KWARGS if key in kwargs), None)
            resource_ref = kwargs.get("lead_id")
            if resource_ref is None:
                resource_ref = getattr(result, "lead_id", None) or getattr(getattr(result, "order", None), "lead_id", None)

            await log_audit(db, int(current_user.id), action, payload, resource_ref=resource_ref)
            return result

        return wrapper
    return decorator
