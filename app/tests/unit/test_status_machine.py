import pytest

from app.core.enums import OrderStatus, ChangeActor, DocumentKind
from app.core.exceptions import InvalidTransition
from app.models.order import Order
from app.services.status_machine import (
    PIPELINE,
    apply_transition,
    get_policy,
    ForwardOnlyPolicy,
    PermissivePolicy,
)


def fresh_order(**kwargs):
    return Order(lead_id="STEEL-TEST0001", invoice_number="INV-2-test", customer_id=1, **kwargs)


def walk(order, statuses, policy=None):
    return [apply_transition(order, status, ChangeActor.ADMIN, policy=policy) for status in statuses]


class TestTransitions:

    def test_history_matches_transitions(self):
        order = fresh_order()
        walk(order, PIPELINE)

        assert len(order.status_events) == len(PIPELINE)
        assert order.status == order.status_events[-1].status == OrderStatus.DELIVERED
        assert order.status_events[0].previous_status is None
        for before, after in zip(order.status_events, order.status_events[1:]):
            assert after.previous_status == before.status

    def test_cancelling_delivered_order_rejected(self):
        order = fresh_order()
        walk(order, PIPELINE)

        with pytest.raises(InvalidTransition):
            apply_transition(order, OrderStatus.CANCELLED, ChangeActor.ADMIN)
        assert order.status == OrderStatus.DELIVERED
        assert len(order.status_events) == len(PIPELINE)

    @pytest.mark.parametrize("target", ["teleported", "", "DELIVERED", None])
    def test_unknown_status_rejected(self, target):
        order = fresh_order()
        apply_transition(order, OrderStatus.PENDING, ChangeActor.SYSTEM)

        with pytest.raises(InvalidTransition):
            apply_transition(order, target, ChangeActor.ADMIN)
        assert order.status == OrderStatus.PENDING
        assert len(order.status_events) == 1

    @pytest.mark.parametrize("current", [s for s in PIPELINE if s != OrderStatus.DELIVERED])
    def test_cancel_allowed_before_delivery(self, current):
        order = fresh_order(status=current)
        result = apply_transition(order, "cancelled", ChangeActor.ADMIN, remarks="customer request")
        assert result.status == OrderStatus.CANCELLED
        assert result.event.remarks == "customer request"

    def test_permissive_allows_backward_and_skipping(self):
        order = fresh_order(status=OrderStatus.TRUCK_LOADING)
        apply_transition(order, OrderStatus.ORDER_PLACED, ChangeActor.ADMIN)
        apply_transition(order, OrderStatus.SHIPPED, ChangeActor.ADMIN)
        assert order.status == OrderStatus.SHIPPED

    def test_reissuing_same_status_records_event(self):
        order = fresh_order(status=OrderStatus.PAYMENT_DONE)
        result = apply_transition(order, OrderStatus.PAYMENT_DONE, ChangeActor.ADMIN)
        assert result.previous_status == result.status == OrderStatus.PAYMENT_DONE
        assert len(order.status_events) == 1

    def test_event_carries_order_keys(self):
        order = fresh_order(status=OrderStatus.ORDER_PLACED, vendor_id=7)
        event = apply_transition(order, OrderStatus.VENDOR_ACCEPTED, ChangeActor.VENDOR, user_id=7).event
        assert event.lead_id == order.lead_id
        assert event.invoice_number == order.invoice_number
        assert event.vendor_id == 7
        assert event.changed_by == ChangeActor.VENDOR


class TestUnlocks:

    def test_quote_unlocked_only_from_order_placed(self):
        assert apply_transition(
            fresh_order(status=OrderStatus.ORDER_PLACED), OrderStatus.VENDOR_ACCEPTED, ChangeActor.ADMIN
        ).unlocked == [DocumentKind.QUOTE]
        assert apply_transition(
            fresh_order(status=OrderStatus.PENDING), OrderStatus.VENDOR_ACCEPTED, ChangeActor.ADMIN
        ).unlocked == []

    def test_sales_order_unlocked_on_payment(self):
        result = apply_transition(fresh_order(status=OrderStatus.VENDOR_ACCEPTED), "payment_done", ChangeActor.ADMIN)
        assert result.unlocked == [DocumentKind.SALES_ORDER]

    @pytest.mark.parametrize("target", [OrderStatus.IN_TRANSIT, OrderStatus.OUT_FOR_DELIVERY])
    def test_invoice_unlocked_on_dispatch(self, target):
        result = apply_transition(fresh_order(status=OrderStatus.TRUCK_LOADING), target, ChangeActor.ADMIN)
        assert result.unlocked == [DocumentKind.INVOICE]

    def test_existing_documents_are_not_unlocked_again(self):
        order = fresh_order(
            status=OrderStatus.IN_TRANSIT,
            external_sales_order_id="SO-1",
            external_invoice_id="INV-9",
        )
        assert apply_transition(order, OrderStatus.OUT_FOR_DELIVERY, ChangeActor.ADMIN).unlocked == []
        assert apply_transition(order, OrderStatus.PAYMENT_DONE, ChangeActor.ADMIN).unlocked == []

    @pytest.mark.parametrize("quote_id,unlocked", [
        (None, [DocumentKind.QUOTE]),
        ("EST-1", []),
    ])
    def test_confirmation_unlocks_missing_quote(self, quote_id, unlocked):
        order = fresh_order(status=OrderStatus.PAYMENT_DONE, external_quote_id=quote_id)
        assert apply_transition(order, OrderStatus.ORDER_CONFIRMED, ChangeActor.ADMIN).unlocked == unlocked

    @pytest.mark.parametrize("target", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_other_statuses_unlock_nothing(self, target):
        assert apply_transition(fresh_order(status=OrderStatus.PAYMENT_DONE), target, ChangeActor.ADMIN).unlocked == []


class TestForwardOnlyPolicy:

    def test_backward_rejected(self):
        order = fresh_order(status=OrderStatus.IN_TRANSIT)
        with pytest.raises(InvalidTransition):
            apply_transition(order, OrderStatus.PAYMENT_DONE, ChangeActor.ADMIN, policy=ForwardOnlyPolicy())
        assert order.status == OrderStatus.IN_TRANSIT

    def test_forward_skip_and_cancel_allowed(self):
        order = fresh_order(status=OrderStatus.ORDER_PLACED)
        policy = ForwardOnlyPolicy()
        apply_transition(order, OrderStatus.TRUCK_LOADING, ChangeActor.ADMIN, policy=policy)
        apply_transition(order, OrderStatus.CANCELLED, ChangeActor.ADMIN, policy=policy)
        with pytest.raises(InvalidTransition):
            apply_transition(order, OrderStatus.PENDING, ChangeActor.ADMIN, policy=policy)

    def test_still_refuses_cancelling_delivered(self):
        with pytest.raises(InvalidTransition):
            apply_transition(
                fresh_order(status=OrderStatus.DELIVERED), OrderStatus.CANCELLED, ChangeActor.ADMIN,
                policy=ForwardOnlyPolicy(),
            )

    @pytest.mark.parametrize("name,expected", [
        ("forward_only", ForwardOnlyPolicy),
        ("permissive", PermissivePolicy),
        ("bogus", PermissivePolicy),
    ])
    def test_policy_from_config(self, name, expected):
        assert type(get_policy(name)) is expected
