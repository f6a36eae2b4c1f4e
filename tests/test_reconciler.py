from decimal import Decimal

import pytest

from storefront.data.models import OrderModel
from storefront.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    ReferenceConflictError,
    ValidationError,
)
from storefront.services.reconciler import OrderStatusReconciler


def _order(db, status="pending", method="card", ref=None, user_id=1, key="1:1"):
    order = OrderModel(
        user_id=user_id,
        checkout_key=key,
        total_amount=Decimal("25.00"),
        status=status,
        payment_method=method,
        external_payment_reference=ref,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture
def reconciler(db, notifier):
    return OrderStatusReconciler(db, notifier)


class TestPaymentSucceeded:
    def test_marks_pending_order_paid(self, db, reconciler, notifier):
        order = _order(db, ref="pi_1")

        result = reconciler.apply_payment_succeeded("pi_1")

        assert result.status == "paid"
        assert notifier.sent == [(1, order.id, "paid")]

    def test_second_delivery_is_a_no_op(self, db, reconciler, notifier):
        _order(db, ref="pi_1")

        first = reconciler.apply_payment_succeeded("pi_1")
        first_updated_at = first.updated_at
        second = reconciler.apply_payment_succeeded("pi_1")

        assert second.status == "paid"
        assert second.updated_at == first_updated_at
        assert len(notifier.sent) == 1

    def test_unknown_reference_is_tolerated(self, db, reconciler, notifier):
        order = _order(db, ref=None)

        assert reconciler.apply_payment_succeeded("pi_unknown") is None
        assert db.get(OrderModel, order.id, populate_existing=True).status == "pending"
        assert notifier.sent == []

    @pytest.mark.parametrize("ref", [None, ""])
    def test_missing_reference_never_matches_unattached_orders(self, db, reconciler, notifier, ref):
        first = _order(db, method="cash", key="1:1")
        second = _order(db, method="cash", key="1:2")

        assert reconciler.apply_payment_succeeded(ref) is None
        assert reconciler.apply_payment_canceled(ref) is None
        assert reconciler.apply_payment_failed(ref) is None
        for order_id in (first.id, second.id):
            assert db.get(OrderModel, order_id, populate_existing=True).status == "pending"
        assert notifier.sent == []

    @pytest.mark.parametrize("status", ["shipped", "delivered"])
    def test_later_states_are_left_alone(self, db, reconciler, status):
        _order(db, status=status, ref="pi_1")

        assert reconciler.apply_payment_succeeded("pi_1").status == status

    def test_cancelled_order_stays_cancelled(self, db, reconciler):
        _order(db, status="cancelled", ref="pi_1")

        assert reconciler.apply_payment_succeeded("pi_1").status == "cancelled"

    def test_lost_compare_and_set_is_not_an_error(self, db, reconciler, notifier, monkeypatch):
        order = _order(db, ref="pi_1")
        repo = reconciler.repo
        original = repo.transition_status

        def other_writer_first(order_id, expected, new):
            # another instance flips the row between our read and our write
            original(order_id, expected, new)
            repo.commit()
            return 0

        monkeypatch.setattr(repo, "transition_status", other_writer_first)

        result = reconciler.apply_payment_succeeded("pi_1")

        assert result.status == "paid"
        assert result.id == order.id
        assert notifier.sent == []


class TestPaymentFailedAndCanceled:
    def test_failure_keeps_order_pending(self, db, reconciler):
        _order(db, ref="pi_1")

        assert reconciler.apply_payment_failed("pi_1", "card declined").status == "pending"

    def test_cancellation_cancels_pending_order(self, db, reconciler):
        _order(db, ref="pi_1")

        assert reconciler.apply_payment_canceled("pi_1").status == "cancelled"

    def test_cancellation_after_payment_is_ignored(self, db, reconciler):
        _order(db, status="paid", ref="pi_1")

        assert reconciler.apply_payment_canceled("pi_1").status == "paid"


class TestAttachReference:
    def test_written_once(self, db, reconciler):
        order = _order(db)

        attached = reconciler.attach_reference(order.id, "pi_1")

        assert attached.external_payment_reference == "pi_1"

    def test_same_value_again_is_harmless(self, db, reconciler):
        order = _order(db)
        first = reconciler.attach_reference(order.id, "pi_1")
        updated_at = first.updated_at

        again = reconciler.attach_reference(order.id, "pi_1")

        assert again.external_payment_reference == "pi_1"
        assert again.updated_at == updated_at

    def test_different_value_is_rejected(self, db, reconciler):
        order = _order(db, ref="pi_1")

        with pytest.raises(ReferenceConflictError):
            reconciler.attach_reference(order.id, "pi_2")
        assert db.get(OrderModel, order.id, populate_existing=True).external_payment_reference == "pi_1"

    def test_reference_of_another_order_is_rejected(self, db, reconciler):
        _order(db, ref="pi_1", key="1:1")
        other = _order(db, key="1:2")

        with pytest.raises(ReferenceConflictError):
            reconciler.attach_reference(other.id, "pi_1")

    def test_missing_order(self, reconciler):
        with pytest.raises(NotFoundError):
            reconciler.attach_reference(999, "pi_1")


class TestStatusChange:
    def test_operator_path(self, db, reconciler, notifier):
        order = _order(db, method="cash")

        for status in ("paid", "shipped", "delivered"):
            assert reconciler.apply_status_change(order.id, status).status == status

        assert [s for _, _, s in notifier.sent] == ["paid", "shipped", "delivered"]

    def test_bogus_status_is_rejected_and_status_unchanged(self, db, reconciler):
        order = _order(db)

        with pytest.raises(ValidationError):
            reconciler.apply_status_change(order.id, "bogus")
        assert db.get(OrderModel, order.id, populate_existing=True).status == "pending"

    @pytest.mark.parametrize("requested", ["pending", "paid", "shipped", "cancelled", "delivered"])
    def test_nothing_leaves_delivered(self, db, reconciler, requested):
        order = _order(db, status="delivered", method="cash")

        with pytest.raises(InvalidTransitionError):
            reconciler.apply_status_change(order.id, requested)
        assert db.get(OrderModel, order.id, populate_existing=True).status == "delivered"

    def test_paid_order_can_be_cancelled(self, db, reconciler):
        order = _order(db, status="paid")

        assert reconciler.apply_status_change(order.id, "cancelled").status == "cancelled"

    def test_card_orders_cannot_be_marked_paid_by_hand(self, db, reconciler):
        order = _order(db, method="card")

        with pytest.raises(InvalidTransitionError):
            reconciler.apply_status_change(order.id, "paid")

    def test_requesting_current_status_is_a_no_op(self, db, reconciler, notifier):
        order = _order(db, status="shipped", method="cash")

        assert reconciler.apply_status_change(order.id, "shipped").status == "shipped"
        assert notifier.sent == []

    def test_scoped_to_owner(self, db, reconciler):
        order = _order(db, user_id=1)

        with pytest.raises(NotFoundError):
            reconciler.apply_status_change(order.id, "cancelled", user_id=2)


def test_cancelled_order_cannot_be_cancelled_again(db, reconciler, notifier):
    order = _order(db, status="cancelled", method="cash")

    with pytest.raises(InvalidTransitionError):
        reconciler.apply_status_change(order.id, "cancelled")
    assert notifier.sent == []
