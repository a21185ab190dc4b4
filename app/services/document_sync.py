"""Creates each accounting document at most once per order.

The order's ``external_*_id`` column for a document kind is both the
completion marker and the idempotency key: a set id means there is nothing to
do. New ids are written with ``UPDATE ... WHERE <column> IS NULL`` so two
concurrent runs cannot both store one. A sales order needs a quote first;
``sync`` creates the missing quote and then retries the sales order.

Every external call is bounded by a timeout. A timeout or collaborator error
ends the run with ``SyncOutcome.FAILED`` and leaves the id unset, so a later
run starts the pipeline over. Emails and notifications after a successful
create are best effort and never change the outcome.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Dict

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import settings
from app.core.enums import DocumentKind, DocumentStatus, SideEffectStatus, SyncOutcome
from app.core.exceptions import ExternalCollaboratorFailure
from app.core.metrics import document_sync
from app.core.security import document_link
from app.models.order import Order
from app.models.user import User
from app.services.accounting import AccountingClient
from app.services.notifications import Notifier
from app.services.orders import load_order
from app.services.outbox import latest_effect

logger = logging.getLogger(__name__)

ID_FIELDS = {
    DocumentKind.QUOTE: "external_quote_id",
    DocumentKind.SALES_ORDER: "external_sales_order_id",
    DocumentKind.INVOICE: "external_invoice_id",
}


@dataclass
class SyncResult:
    lead_id: str
    kind: DocumentKind
    outcome: SyncOutcome
    document_id: Optional[str] = None
    missing: Optional[str] = None
    error: Optional[str] = None


def missing_prerequisite(order: Order, kind: DocumentKind) -> Optional[str]:
    if kind == DocumentKind.SALES_ORDER and not order.external_quote_id:
        return str(DocumentKind.QUOTE)
    if kind == DocumentKind.INVOICE and order.customer is None:
        return "customer"
    return None


async def set_external_id(db: AsyncSession, order: Order, field: str, value: str) -> bool:
    """Store ``value`` only if the column is still empty. Returns True when this call wrote it."""
    column = getattr(Order, field)
    res = await db.execute(
        update(Order)
        .where(Order.id == order.id, column.is_(None))
        .values({field: value})
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 1:
        set_committed_value(order, field, value)
        return True
    return False


class DocumentSyncOrchestrator:
    def __init__(
        self,
        session_factory,
        accounting: AccountingClient,
        notifier: Notifier,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.accounting = accounting
        self.notifier = notifier
        self.timeout = timeout or settings.EXTERNAL_CALL_TIMEOUT

    async def sync(self, lead_id: str, kind) -> SyncResult:
        kind = DocumentKind(kind)
        if kind == DocumentKind.SALES_ORDER:
            return await self._sales_order_saga(lead_id)
        return await self._run(lead_id, kind)

    async def _sales_order_saga(self, lead_id: str) -> SyncResult:
        result = await self._run(lead_id, DocumentKind.SALES_ORDER)
        if result.outcome != SyncOutcome.MISSING_PREREQUISITE:
            return result

        logger.info(f"Order {lead_id} has no quote yet, creating it before the sales order")
        quote = await self._run(lead_id, DocumentKind.QUOTE)
        if quote.outcome not in (SyncOutcome.CREATED, SyncOutcome.ALREADY_EXISTS):
            return SyncResult(
                lead_id=lead_id,
                kind=DocumentKind.SALES_ORDER,
                outcome=SyncOutcome.FAILED,
                error=f"quote step failed: {quote.error or quote.outcome}",
            )
        return await self._run(lead_id, DocumentKind.SALES_ORDER)

    async def _call(self, operation: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ExternalCollaboratorFailure("accounting", operation, f"timed out after {self.timeout}s")

    async def _ensure_customer(self, db: AsyncSession, profile: User) -> str:
        if profile.external_customer_id:
            return profile.external_customer_id

        customer_id = await self._call("ensure_customer", self.accounting.ensure_customer(profile))
        res = await db.execute(
            update(User)
            .where(User.id == profile.id, User.external_customer_id.is_(None))
            .values(external_customer_id=customer_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if res.rowcount == 1:
            set_committed_value(profile, "external_customer_id", customer_id)
        else:
            await db.refresh(profile, ["external_customer_id"])
        return profile.external_customer_id

    async def _create(self, kind: DocumentKind, order: Order, customer_id: str) -> str:
        if kind == DocumentKind.QUOTE:
            return await self._call("create_quote", self.accounting.create_quote(order, customer_id))
        if kind == DocumentKind.SALES_ORDER:
            return await self._call(
                "create_sales_order", self.accounting.create_sales_order(order, order.vendor, customer_id)
            )
        return await self._call(
            "create_invoice", self.accounting.create_invoice(order, order.payment, order.vendor, customer_id)
        )

    async def _run(self, lead_id: str, kind: DocumentKind) -> SyncResult:
        field = ID_FIELDS[kind]
        async with self.session_factory() as db:
            order = await load_order(db, lead_id)

            existing = getattr(order, field)
            if existing:
                document_sync.labels(kind=str(kind), outcome=str(SyncOutcome.ALREADY_EXISTS)).inc()
                return SyncResult(lead_id, kind, SyncOutcome.ALREADY_EXISTS, document_id=existing)

            missing = missing_prerequisite(order, kind)
            if missing:
                document_sync.labels(kind=str(kind), outcome=str(SyncOutcome.MISSING_PREREQUISITE)).inc()
                return SyncResult(lead_id, kind, SyncOutcome.MISSING_PREREQUISITE, missing=missing)

            try:
                customer_id = await self._ensure_customer(db, order.customer)
                document_id = await self._create(kind, order, customer_id)
            except ExternalCollaboratorFailure as e:
                logger.error(f"Creating {kind} for order {lead_id} failed: {e}", exc_info=True)
                document_sync.labels(kind=str(kind), outcome=str(SyncOutcome.FAILED)).inc()
                return SyncResult(lead_id, kind, SyncOutcome.FAILED, error=str(e))

            stored = await set_external_id(db, order, field, document_id)
            await db.commit()

            if not stored:
                await db.refresh(order, [field])
                winner = getattr(order, field)
                logger.warning(f"{kind} for order {lead_id} was stored concurrently as {winner}, discarding {document_id}")
                document_sync.labels(kind=str(kind), outcome=str(SyncOutcome.ALREADY_EXISTS)).inc()
                return SyncResult(lead_id, kind, SyncOutcome.ALREADY_EXISTS, document_id=winner)

            logger.info(f"Created {kind} {document_id} for order {lead_id}")
            document_sync.labels(kind=str(kind), outcome=str(SyncOutcome.CREATED)).inc()
            await self._notify(order, kind, document_id)
            return SyncResult(lead_id, kind, SyncOutcome.CREATED, document_id=document_id)

    async def _notify(self, order: Order, kind: DocumentKind, document_id: str) -> None:
        recipient = order.notification_email or (order.customer.email if order.customer else None)
        name = order.receiver_name or (order.customer.name if order.customer else None)

        try:
            await self._call("email_document", self.accounting.email_document(kind, document_id, recipient))
        except Exception as e:
            logger.warning(f"Accounting email for {kind} {document_id} of order {order.lead_id} failed: {e}")

        try:
            await asyncio.wait_for(
                self.notifier.send(kind, recipient, name, order.lead_id, document_link(order.lead_id, kind)),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(f"Notification for {kind} of order {order.lead_id} failed: {e!r}")


async def document_statuses(db: AsyncSession, order: Order) -> Dict[DocumentKind, DocumentStatus]:
    statuses = {}
    for kind, field in ID_FIELDS.items():
        if getattr(order, field):
            statuses[kind] = DocumentStatus.READY
            continue
        effect = await latest_effect(db, order.id, kind)
        if effect is None:
            statuses[kind] = DocumentStatus.NOT_REQUESTED
        elif effect.status == SideEffectStatus.FAILED:
            statuses[kind] = DocumentStatus.FAILED
        elif effect.status == SideEffectStatus.DONE:
            # done without an id only happens if the id was cleared by hand
            statuses[kind] = DocumentStatus.NOT_REQUESTED
        else:
            statuses[kind] = DocumentStatus.PENDING
    return statuses
