import asyncio

import pytest

from app.core.enums import OrderStatus, DocumentKind, DocumentStatus, SyncOutcome
from app.models.order import Order
from app.models.user import User
from app.services.document_sync import (
    DocumentSyncOrchestrator,
    document_statuses,
    missing_prerequisite,
    set_external_id,
)
from app.services.outbox import record_side_effects
from conftest import FakeAccounting, FakeNotifier, reload

ACCEPTED = (OrderStatus.ORDER_PLACED, OrderStatus.VENDOR_ACCEPTED)


class TestIdempotentCreation:

    @pytest.mark.asyncio
    async def test_quote_created_once(self, make_order, orchestrator, accounting, session_factory):
        order = await make_order(statuses=ACCEPTED)

        first = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)
        second = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)

        assert first.outcome == SyncOutcome.CREATED
        assert second.outcome == SyncOutcome.ALREADY_EXISTS
        assert second.document_id == first.document_id
        assert len(accounting.documents[DocumentKind.QUOTE]) == 1

        stored = await reload(session_factory, order.lead_id)
        assert stored.external_quote_id == first.document_id

    @pytest.mark.asyncio
    async def test_customer_record_created_once(self, make_order, orchestrator, accounting, session_factory):
        order = await make_order(statuses=ACCEPTED)

        await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)
        await orchestrator.sync(order.lead_id, DocumentKind.INVOICE)

        assert accounting.customers == [order.customer_id]
        async with session_factory() as session:
            profile = await session.get(User, order.customer_id)
            assert profile.external_customer_id == f"CUST-{order.customer_id}"

    @pytest.mark.asyncio
    async def test_concurrent_runs_store_one_id(self, make_order, session_factory, notifier):
        order = await make_order(statuses=ACCEPTED)
        accounting = FakeAccounting(delay=0.05)
        orchestrator = DocumentSyncOrchestrator(session_factory, accounting, notifier, timeout=5)

        results = await asyncio.gather(
            orchestrator.sync(order.lead_id, DocumentKind.QUOTE),
            orchestrator.sync(order.lead_id, DocumentKind.QUOTE),
        )

        outcomes = sorted(str(r.outcome) for r in results)
        assert outcomes == [str(SyncOutcome.ALREADY_EXISTS), str(SyncOutcome.CREATED)]
        assert results[0].document_id == results[1].document_id

        stored = await reload(session_factory, order.lead_id)
        assert stored.external_quote_id == results[0].document_id
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_conditional_update_never_overwrites(self, make_order, db):
        order = await make_order(statuses=ACCEPTED)

        assert await set_external_id(db, order, "external_invoice_id", "INV-A") is True
        await db.commit()
        assert await set_external_id(db, order, "external_invoice_id", "INV-B") is False
        await db.commit()

        await db.refresh(order, ["external_invoice_id"])
        assert order.external_invoice_id == "INV-A"


class TestSalesOrderSaga:

    def test_missing_prerequisite(self):
        order = Order(lead_id="X", invoice_number="Y", customer_id=1)
        assert missing_prerequisite(order, DocumentKind.SALES_ORDER) == "quote"
        order.external_quote_id = "Q-1"
        assert missing_prerequisite(order, DocumentKind.SALES_ORDER) is None

    @pytest.mark.asyncio
    async def test_quote_created_before_sales_order(self, make_order, orchestrator, accounting, session_factory):
        order = await make_order(statuses=ACCEPTED + (OrderStatus.PAYMENT_DONE,))

        result = await orchestrator.sync(order.lead_id, DocumentKind.SALES_ORDER)

        assert result.outcome == SyncOutcome.CREATED
        assert len(accounting.documents[DocumentKind.QUOTE]) == 1
        assert len(accounting.documents[DocumentKind.SALES_ORDER]) == 1

        stored = await reload(session_factory, order.lead_id)
        assert stored.external_quote_id is not None
        assert stored.external_sales_order_id == result.document_id

    @pytest.mark.asyncio
    async def test_failed_quote_stops_sales_order(self, make_order, orchestrator, accounting, session_factory):
        order = await make_order(statuses=ACCEPTED)
        accounting.fail_kinds.add(DocumentKind.QUOTE)

        result = await orchestrator.sync(order.lead_id, DocumentKind.SALES_ORDER)

        assert result.outcome == SyncOutcome.FAILED
        assert "quote step failed" in result.error
        assert accounting.documents[DocumentKind.SALES_ORDER] == []
        stored = await reload(session_factory, order.lead_id)
        assert stored.external_sales_order_id is None


class TestFailures:

    @pytest.mark.asyncio
    async def test_failure_leaves_id_unset_and_retry_succeeds(
        self, make_order, orchestrator, accounting, notifier, session_factory
    ):
        order = await make_order(statuses=ACCEPTED)
        accounting.fail_kinds.add(DocumentKind.INVOICE)

        failed = await orchestrator.sync(order.lead_id, DocumentKind.INVOICE)
        assert failed.outcome == SyncOutcome.FAILED
        assert (await reload(session_factory, order.lead_id)).external_invoice_id is None
        assert notifier.sent == []

        accounting.fail_kinds.clear()
        retried = await orchestrator.sync(order.lead_id, DocumentKind.INVOICE)
        assert retried.outcome == SyncOutcome.CREATED
        assert (await reload(session_factory, order.lead_id)).external_invoice_id == retried.document_id

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(self, make_order, session_factory, notifier):
        order = await make_order(statuses=ACCEPTED)
        accounting = FakeAccounting()
        accounting.hang_kinds.add(DocumentKind.QUOTE)
        orchestrator = DocumentSyncOrchestrator(session_factory, accounting, notifier, timeout=0.1)

        result = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)

        assert result.outcome == SyncOutcome.FAILED
        assert "timed out" in result.error
        assert (await reload(session_factory, order.lead_id)).external_quote_id is None

    @pytest.mark.asyncio
    async def test_customer_failure_is_a_failure(self, make_order, orchestrator, accounting):
        order = await make_order(statuses=ACCEPTED)
        accounting.fail_customer = True

        result = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)

        assert result.outcome == SyncOutcome.FAILED
        assert accounting.documents[DocumentKind.QUOTE] == []

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_sync(self, make_order, session_factory, accounting):
        order = await make_order(statuses=ACCEPTED)
        orchestrator = DocumentSyncOrchestrator(session_factory, accounting, FakeNotifier(fail=True), timeout=1)

        result = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)

        assert result.outcome == SyncOutcome.CREATED
        assert (await reload(session_factory, order.lead_id)).external_quote_id == result.document_id

    @pytest.mark.asyncio
    async def test_unexpected_notification_errors_do_not_fail_sync(self, make_order, session_factory):
        class BrokenEmailAccounting(FakeAccounting):
            async def email_document(self, kind, document_id, to_email=None) -> bool:
                raise ValueError("unexpected mail payload")

        class BrokenNotifier(FakeNotifier):
            async def send(self, kind, recipient_email, recipient_name, order_ref, link) -> bool:
                raise ValueError("template missing")

        order = await make_order(statuses=ACCEPTED)
        orchestrator = DocumentSyncOrchestrator(
            session_factory, BrokenEmailAccounting(), BrokenNotifier(), timeout=1.0
        )

        result = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)

        assert result.outcome == SyncOutcome.CREATED
        assert (await reload(session_factory, order.lead_id)).external_quote_id == result.document_id


class TestNotifications:

    @pytest.mark.asyncio
    async def test_created_document_is_emailed_with_link(self, make_order, orchestrator, accounting, notifier):
        order = await make_order(statuses=ACCEPTED)

        result = await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)

        assert accounting.emails == [(DocumentKind.QUOTE, result.document_id, "ravi@example.com")]
        kind, email, order_ref, link = notifier.sent[0]
        assert (kind, email, order_ref) == (DocumentKind.QUOTE, "ravi@example.com", order.lead_id)
        assert link.startswith("http://test/documents/quote/pdf?token=")


class TestDocumentStatus:

    @pytest.mark.asyncio
    async def test_statuses_follow_outbox_and_ids(self, make_order, db, orchestrator):
        order = await make_order(statuses=ACCEPTED)

        statuses = await document_statuses(db, order)
        assert set(statuses.values()) == {DocumentStatus.NOT_REQUESTED}

        await record_side_effects(db, order, [DocumentKind.QUOTE])
        await db.commit()
        assert (await document_statuses(db, order))[DocumentKind.QUOTE] == DocumentStatus.PENDING

        await orchestrator.sync(order.lead_id, DocumentKind.QUOTE)
        await db.refresh(order, ["external_quote_id"])
        assert (await document_statuses(db, order))[DocumentKind.QUOTE] == DocumentStatus.READY
