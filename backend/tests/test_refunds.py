# Overview: Pytest coverage for the refund engine.

"""
Refund Engine Tests

Covers:
- over-refund protection across repeated partial refunds
- refund amounts (negative subtotal, proportional tax)
- FULL vs PARTIAL status handling
- shift gating, tenant isolation, state checks
- idempotent replay and post-commit side effects
- the /api/pos/refund route status codes
"""

import pytest

from oropos.errors import (
    Forbidden,
    InvalidState,
    LineItemNotFound,
    NoOpenShift,
    NotFound,
    OverRefund,
    ShiftClosed,
    ValidationFailed,
)
from oropos.models import AuditLog, DrawerActivity, StoreException, Transaction
from oropos.models.registers import ACTIVITY_REFUND
from oropos.services import refund_service, register_service, sales_service


@pytest.fixture
def sale(db_session, tenant, cashier, product, open_session):
    """3 x $10.00 at 8% tax: subtotal 3000, tax 240, total 3240."""
    tx, _ = sales_service.commit_sale(
        tenant.id, cashier.id, open_session.id, "CASH",
        [{"type": "PRODUCT", "productId": product.id, "quantity": 3}],
    )
    return tx


@pytest.fixture
def two_line_sale(db_session, tenant, cashier, product, second_product, open_session):
    tx, _ = sales_service.commit_sale(
        tenant.id, cashier.id, open_session.id, "CARD",
        [
            {"productId": product.id, "quantity": 2},
            {"productId": second_product.id, "quantity": 1},
        ],
    )
    return tx


def _refund(tenant, employee, original, refund_type, items=None, session=None, **kwargs):
    return refund_service.process_refund(
        tenant.id, employee.id, original.id, refund_type, items,
        cash_drawer_session_id=session.id if session is not None else None,
        **kwargs,
    )


class TestRefundAmounts:
    def test_partial_refund_of_two_units(self, db_session, tenant, manager, product, sale, open_session):
        line_id = sale.line_items[0].id
        refund, replayed = _refund(
            tenant, manager, sale, "PARTIAL",
            [{"lineItemId": line_id, "quantity": 2}],
            session=open_session, reason="Damaged",
        )

        assert replayed is False
        assert refund.status == "REFUNDED"
        assert refund.original_transaction_id == sale.id
        assert refund.subtotal_cents == -2000
        assert refund.tax_cents == -160
        assert refund.total_cents == -2160
        assert refund.refund_reason == "Damaged"
        assert refund.receipt_number.startswith("RF-")

        [line] = refund.line_items
        assert line.quantity == -2
        assert line.total_cents == -2000
        assert line.refunds_line_item_id == line_id

        db_session.refresh(product)
        assert product.stock == 17 + 2

        db_session.refresh(sale)
        assert sale.status == "COMPLETED"

    def test_second_refund_of_two_is_over_refund(self, db_session, tenant, manager, sale, open_session):
        line_id = sale.line_items[0].id
        _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 2}], session=open_session)

        with pytest.raises(OverRefund) as exc:
            _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 2}],
                    session=open_session)

        assert exc.value.details["remaining"] == 1
        assert exc.value.details["lineItemId"] == line_id
        assert exc.value.details["requested"] == 2

    def test_last_unit_still_refundable(self, db_session, tenant, manager, sale, open_session):
        line_id = sale.line_items[0].id
        _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 2}], session=open_session)
        refund, _ = _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 1}],
                            session=open_session)
        assert refund.total_cents == -1080

        with pytest.raises(OverRefund) as exc:
            _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 1}],
                    session=open_session)
        assert exc.value.details["remaining"] == 0

    def test_repeated_line_ids_are_summed(self, db_session, tenant, manager, sale, open_session):
        line_id = sale.line_items[0].id
        with pytest.raises(OverRefund):
            _refund(tenant, manager, sale, "PARTIAL", [
                {"lineItemId": line_id, "quantity": 2},
                {"lineItemId": line_id, "quantity": 2},
            ], session=open_session)

    def test_discounted_line(self, db_session, tenant, cashier, manager, product, open_session):
        sale, _ = sales_service.commit_sale(
            tenant.id, cashier.id, open_session.id, "CASH",
            [{"productId": product.id, "quantity": 4, "discount": 10}],
        )
        refund, _ = _refund(tenant, manager, sale, "PARTIAL",
                            [{"lineItemId": sale.line_items[0].id, "quantity": 1}], session=open_session)
        assert refund.subtotal_cents == -900
        assert refund.tax_cents == -72

    def test_zero_tax_original(self, db_session, tenant, cashier, manager, product, open_session, location):
        location.tax_rate_bps = 0
        db_session.commit()
        sale, _ = sales_service.commit_sale(
            tenant.id, cashier.id, open_session.id, "CASH",
            [{"productId": product.id, "quantity": 1}],
        )
        refund, _ = _refund(tenant, manager, sale, "FULL", session=open_session)
        assert refund.tax_cents == 0
        assert refund.total_cents == -1000


class TestRefundTypes:
    def test_full_refund_without_items(self, db_session, tenant, manager, two_line_sale, open_session):
        refund, _ = _refund(tenant, manager, two_line_sale, "FULL", session=open_session)

        assert sorted(line.quantity for line in refund.line_items) == [-2, -1]
        assert refund.subtotal_cents == -3250
        assert refund.payment_method == "CARD"

        db_session.refresh(two_line_sale)
        assert two_line_sale.status == "REFUNDED"

    def test_full_refund_after_partial_takes_the_rest(self, db_session, tenant, manager, sale, open_session):
        line_id = sale.line_items[0].id
        _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 1}], session=open_session)
        refund, _ = _refund(tenant, manager, sale, "FULL", session=open_session)
        assert refund.line_items[0].quantity == -2

    def test_partial_never_flips_status(self, db_session, tenant, manager, sale, open_session):
        line_id = sale.line_items[0].id
        _refund(tenant, manager, sale, "PARTIAL", [{"lineItemId": line_id, "quantity": 3}], session=open_session)
        db_session.refresh(sale)
        assert sale.status == "COMPLETED"

    def test_fully_refunded_original_is_invalid_state(self, db_session, tenant, manager, sale, open_session):
        _refund(tenant, manager, sale, "FULL", session=open_session)
        with pytest.raises(InvalidState):
            _refund(tenant, manager, sale, "PARTIAL",
                    [{"lineItemId": sale.line_items[0].id, "quantity": 1}], session=open_session)

    def test_partial_needs_items(self, db_session, tenant, manager, sale, open_session):
        with pytest.raises(ValidationFailed):
            _refund(tenant, manager, sale, "PARTIAL", [], session=open_session)

    def test_unknown_refund_type(self, db_session, tenant, manager, sale, open_session):
        with pytest.raises(ValidationFailed):
            _refund(tenant, manager, sale, "SOME", session=open_session)

    @pytest.mark.parametrize("quantity", [0, -1, "two", 1.5])
    def test_quantity_must_be_positive_integer(self, db_session, tenant, manager, sale, open_session, quantity):
        with pytest.raises(ValidationFailed):
            _refund(tenant, manager, sale, "PARTIAL",
                    [{"lineItemId": sale.line_items[0].id, "quantity": quantity}], session=open_session)

    def test_line_from_another_sale(self, db_session, tenant, manager, sale, two_line_sale, open_session):
        foreign_line = two_line_sale.line_items[0].id
        with pytest.raises(LineItemNotFound):
            _refund(tenant, manager, sale, "PARTIAL",
                    [{"lineItemId": foreign_line, "quantity": 1}], session=open_session)


class TestRefundGuards:
    def test_closed_shift(self, db_session, tenant, manager, sale, closed_session):
        with pytest.raises(ShiftClosed):
            _refund(tenant, manager, sale, "FULL", session=closed_session)
        assert db_session.query(Transaction).count() == 1

    @pytest.mark.parametrize("refund_type, items", [
        ("PARTIAL", []),
        ("PARTIAL", None),
        ("BOGUS", None),
        ("PARTIAL", [{"lineItemId": "x", "quantity": 1}]),
    ])
    def test_closed_shift_wins_over_bad_request(self, db_session, tenant, manager, sale, closed_session,
                                                refund_type, items):
        with pytest.raises(ShiftClosed):
            _refund(tenant, manager, sale, refund_type, items, session=closed_session)

    def test_closed_shift_wins_over_zero_quantity(self, db_session, tenant, manager, sale, closed_session):
        with pytest.raises(ShiftClosed):
            _refund(tenant, manager, sale, "PARTIAL",
                    [{"lineItemId": sale.line_items[0].id, "quantity": 0}], session=closed_session)

    def test_closed_shift_wins_over_oversized_key(self, db_session, tenant, manager, sale, closed_session):
        with pytest.raises(ShiftClosed):
            _refund(tenant, manager, sale, "FULL", session=closed_session, idempotency_key="k" * 500)

    def test_missing_shift_wins_over_bad_request(self, db_session, tenant, manager, sale):
        with pytest.raises(NoOpenShift):
            _refund(tenant, manager, sale, "PARTIAL", [])

    def test_missing_shift(self, db_session, tenant, manager, sale):
        with pytest.raises(NoOpenShift):
            _refund(tenant, manager, sale, "FULL")

    def test_unknown_original(self, db_session, tenant, manager, open_session):
        with pytest.raises(NotFound):
            refund_service.process_refund(tenant.id, manager.id, 987654, "FULL", None,
                                          cash_drawer_session_id=open_session.id)

    def test_other_tenant_original(self, db_session, tenant, sale, other_tenant, other_location, other_cashier):
        from oropos.models import CashDrawerSession
        from oropos.time_utils import utcnow
        foreign_session = CashDrawerSession(
            tenant_id=other_tenant.id, location_id=other_location.id,
            employee_id=other_cashier.id, opening_cash_cents=0, start_time=utcnow(),
        )
        db_session.add(foreign_session)
        db_session.commit()

        with pytest.raises(Forbidden):
            refund_service.process_refund(other_tenant.id, other_cashier.id, sale.id, "FULL", None,
                                          cash_drawer_session_id=foreign_session.id)


class TestRefundSideEffects:
    def test_replay_applies_once(self, db_session, tenant, manager, product, sale, open_session):
        items = [{"lineItemId": sale.line_items[0].id, "quantity": 1}]
        first, _ = _refund(tenant, manager, sale, "PARTIAL", items, session=open_session, idempotency_key="rf-1")
        second, replayed = _refund(tenant, manager, sale, "PARTIAL", items, session=open_session,
                                   idempotency_key="rf-1")

        assert replayed is True
        assert first.id == second.id
        db_session.refresh(product)
        assert product.stock == 18
        assert db_session.query(AuditLog).filter_by(event_type="REFUND_PROCESSED").count() == 1

    def test_sale_key_is_not_a_refund_replay(self, db_session, tenant, cashier, manager, product, open_session):
        sale, _ = sales_service.commit_sale(
            tenant.id, cashier.id, open_session.id, "CASH",
            [{"productId": product.id, "quantity": 2}], idempotency_key="reused",
        )

        with pytest.raises(ValidationFailed):
            _refund(tenant, manager, sale, "FULL", session=open_session, idempotency_key="reused")
        db_session.refresh(sale)
        assert sale.status == "COMPLETED"
        assert db_session.query(Transaction).count() == 1

    def test_drawer_activity_and_expected_cash(self, db_session, tenant, manager, sale, open_session):
        refund, _ = _refund(tenant, manager, sale, "PARTIAL",
                            [{"lineItemId": sale.line_items[0].id, "quantity": 2}], session=open_session)

        activity = db_session.query(DrawerActivity).filter_by(type=ACTIVITY_REFUND).one()
        assert activity.transaction_id == refund.id
        assert activity.amount_cents == -2160

        summary = register_service.compute_expected_cash(open_session)
        assert summary["cash_sales_cents"] == 3240
        assert summary["cash_refunds_cents"] == -2160
        assert summary["expected_cash_cents"] == 10000 + 3240 - 2160

    def test_refund_spike_exception(self, db_session, tenant, cashier, manager, product, open_session):
        for _ in range(3):
            sale, _ = sales_service.commit_sale(
                tenant.id, cashier.id, open_session.id, "CASH",
                [{"productId": product.id, "quantity": 1}],
            )
            _refund(tenant, manager, sale, "FULL", session=open_session)

        exc = db_session.query(StoreException).filter_by(type="REFUND_SPIKE").one()
        assert exc.severity == "WARNING"


class TestRefundRoute:
    def test_success(self, client, db_session, sale, open_session, manager_headers):
        response = client.post("/api/pos/refund", json={
            "originalTransactionId": sale.id,
            "refundType": "PARTIAL",
            "items": [{"lineItemId": sale.line_items[0].id, "quantity": 2}],
            "reason": "Damaged",
            "cashDrawerSessionId": open_session.id,
        }, headers=manager_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data["success"] is True
        assert data["refundTransaction"]["total_cents"] == -2160

    def test_over_refund_body(self, client, db_session, sale, open_session, manager_headers):
        body = {
            "originalTransactionId": sale.id,
            "refundType": "PARTIAL",
            "items": [{"lineItemId": sale.line_items[0].id, "quantity": 4}],
            "cashDrawerSessionId": open_session.id,
        }
        response = client.post("/api/pos/refund", json=body, headers=manager_headers)
        assert response.status_code == 400
        data = response.get_json()
        assert data["code"] == "OVER_REFUND"
        assert data["remaining"] == 3

    def test_cashier_without_permission(self, client, db_session, sale, open_session, cashier_headers):
        response = client.post("/api/pos/refund", json={
            "originalTransactionId": sale.id,
            "refundType": "FULL",
            "cashDrawerSessionId": open_session.id,
        }, headers=cashier_headers)
        assert response.status_code == 403

    def test_owner_always_may_refund(self, client, db_session, sale, open_session, owner_headers):
        response = client.post("/api/pos/refund", json={
            "originalTransactionId": sale.id,
            "refundType": "FULL",
            "cashDrawerSessionId": open_session.id,
        }, headers=owner_headers)
        assert response.status_code == 200

    def test_unknown_original_is_404(self, client, db_session, open_session, manager_headers):
        response = client.post("/api/pos/refund", json={
            "originalTransactionId": 999999,
            "refundType": "FULL",
            "cashDrawerSessionId": open_session.id,
        }, headers=manager_headers)
        assert response.status_code == 404

    def test_unexpected_failure_is_opaque_500(self, client, db_session, sale, open_session, manager_headers,
                                              monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("database exploded")

        monkeypatch.setattr(refund_service, "process_refund", boom)
        response = client.post("/api/pos/refund", json={
            "originalTransactionId": sale.id,
            "refundType": "FULL",
            "cashDrawerSessionId": open_session.id,
        }, headers=manager_headers)

        assert response.status_code == 500
        data = response.get_json()
        assert data["code"] == "INTERNAL_ERROR"
        assert "exploded" not in data["error"]
