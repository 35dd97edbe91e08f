# Overview: Pytest coverage for purchase order creation, receiving and cancellation.

"""
Purchase Order Tests

Verifies:
1. Creating a purchase order has no stock effect
2. Receiving credits every line to the branch exactly once
3. Receiving overwrites the product unit cost (last receipt wins)
4. Received and cancelled purchase orders are immutable
5. Purchase orders are isolated per organization
"""

import pytest

from stockflow.errors import InvalidStateTransition, NotFound, ScopeError, ValidationError
from stockflow.models import AuditEvent, Product
from stockflow.services import allocation_service, purchasing_service
from stockflow.services.tenant_service import Scope


def _create_po(scope, supplier, *lines):
    return purchasing_service.create_purchase_order(
        scope,
        supplier_id=supplier.id,
        items=[
            {"product_id": product.id, "quantity": quantity, "unit_cost_cents": cost}
            for product, quantity, cost in lines
        ],
    )


class TestCreatePurchaseOrder:
    def test_create_is_open_with_totals(self, db_session, scope_a, branch_a, supplier_a, product_a, product_a2):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450), (product_a2, 2, 1000))

        assert po.status == "OPEN"
        assert po.branch_id == branch_a.id
        assert po.total_cost_cents == 10 * 450 + 2 * 1000
        assert [line.line_cost_cents for line in po.lines] == [4500, 2000]

    def test_create_has_no_stock_effect(self, db_session, scope_a, branch_a, supplier_a, product_a):
        _create_po(scope_a, supplier_a, (product_a, 10, 450))
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 0

    def test_empty_items_rejected(self, db_session, scope_a, supplier_a):
        with pytest.raises(ValidationError):
            purchasing_service.create_purchase_order(scope_a, supplier_id=supplier_a.id, items=[])

    @pytest.mark.parametrize("quantity,cost", [(0, 100), (-2, 100), (3, -1)])
    def test_invalid_lines_rejected(self, db_session, scope_a, supplier_a, product_a, quantity, cost):
        with pytest.raises(ValidationError):
            _create_po(scope_a, supplier_a, (product_a, quantity, cost))

    def test_foreign_supplier_not_found(self, db_session, scope_b, supplier_a, product_b):
        with pytest.raises(NotFound):
            _create_po(scope_b, supplier_a, (product_b, 1, 100))

    def test_foreign_product_not_found(self, db_session, scope_a, supplier_a, product_b):
        with pytest.raises(NotFound):
            _create_po(scope_a, supplier_a, (product_b, 1, 100))


class TestReceivePurchaseOrder:
    def test_receive_credits_physical_stock(self, db_session, scope_a, branch_a, supplier_a, product_a, product_a2):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450), (product_a2, 4, 1100))

        received = purchasing_service.receive_purchase_order(scope_a, po.id)

        assert received.status == "RECEIVED"
        assert received.received_date is not None
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 10
        assert allocation_service.physical_stock(product_a2.id, branch_a.id) == 4

    def test_receive_overwrites_unit_cost(self, db_session, scope_a, supplier_a, product_a):
        """Product cost 400 -> 450 after receiving at 450 (not averaged)."""
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        db_session.refresh(product_a)
        assert product_a.cost_cents == 450

    def test_last_line_wins_for_repeated_product(self, db_session, scope_a, branch_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 5, 300), (product_a, 5, 350))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        db_session.refresh(product_a)
        assert product_a.cost_cents == 350
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 10

    def test_second_receive_rejected_without_stock_change(self, db_session, scope_a, branch_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        with pytest.raises(InvalidStateTransition):
            purchasing_service.receive_purchase_order(scope_a, po.id)

        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 10

    def test_receive_goes_to_po_branch(self, db_session, org_a, scope_a2, branch_a, branch_a2, supplier_a, product_a):
        po = _create_po(scope_a2, supplier_a, (product_a, 6, 450))
        purchasing_service.receive_purchase_order(Scope(org_id=org_a.id), po.id)

        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 6
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 0

    def test_receive_leaves_allocation_alone(self, db_session, scope_a, branch_a, supplier_a, product_a):
        from stockflow.services import checkout_service

        checkout_service.checkout(scope_a, items=[{"product_id": product_a.id, "quantity": 3}])
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        pos = allocation_service.stock_position(product_a.id, branch_a.id)
        assert pos["allocated"] == 3
        assert pos["available"] == 7

    def test_receive_audit_events(self, db_session, scope_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 400))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        types = [e.event_type for e in db_session.query(AuditEvent).order_by(AuditEvent.id)]
        # Cost unchanged (400 -> 400): no cost event
        assert types == ["purchase_order.created", "stock.received", "purchase_order.received"]

    def test_cost_change_is_audited(self, db_session, scope_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 1, 425))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        event = db_session.query(AuditEvent).filter_by(event_type="product.cost_updated").one()
        assert event.entity_id == product_a.id
        assert event.to_dict()["payload"]["previous_cost_cents"] == 400

    def test_foreign_org_cannot_receive(self, db_session, scope_a, scope_b, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        with pytest.raises(NotFound):
            purchasing_service.receive_purchase_order(scope_b, po.id)

    def test_other_branch_cannot_receive(self, db_session, scope_a, scope_a2, branch_a2, supplier_a, product_a):
        po = _create_po(scope_a2, supplier_a, (product_a, 10, 450))

        with pytest.raises(NotFound):
            purchasing_service.receive_purchase_order(scope_a, po.id)
        assert purchasing_service.get_purchase_order(scope_a2, po.id).status == "OPEN"
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 0

    def test_inactive_branch_cannot_receive(self, db_session, org_a, scope_a, branch_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        branch_a.is_active = False
        db_session.commit()

        with pytest.raises(ScopeError):
            purchasing_service.receive_purchase_order(Scope(org_id=org_a.id), po.id)
        assert purchasing_service.get_purchase_order(Scope(org_id=org_a.id), po.id).status == "OPEN"
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 0
        assert db_session.get(Product, product_a.id).cost_cents == 400


class TestCancelPurchaseOrder:
    def test_cancel_open(self, db_session, scope_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        cancelled = purchasing_service.cancel_purchase_order(scope_a, po.id, reason="supplier out of stock")

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancellation_reason == "supplier out of stock"
        assert cancelled.cancelled_at is not None

    def test_cancelled_cannot_be_received(self, db_session, scope_a, branch_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        purchasing_service.cancel_purchase_order(scope_a, po.id)

        with pytest.raises(InvalidStateTransition):
            purchasing_service.receive_purchase_order(scope_a, po.id)
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 0

    def test_received_cannot_be_cancelled(self, db_session, scope_a, supplier_a, product_a):
        po = _create_po(scope_a, supplier_a, (product_a, 10, 450))
        purchasing_service.receive_purchase_order(scope_a, po.id)

        with pytest.raises(InvalidStateTransition):
            purchasing_service.cancel_purchase_order(scope_a, po.id)


class TestListPurchaseOrders:
    def test_list_filters(self, db_session, scope_a, scope_a2, supplier_a, product_a):
        po1 = _create_po(scope_a, supplier_a, (product_a, 1, 100))
        po2 = _create_po(scope_a2, supplier_a, (product_a, 1, 100))
        purchasing_service.receive_purchase_order(scope_a, po1.id)

        org_wide = Scope(org_id=scope_a.org_id)
        assert {po.id for po in purchasing_service.list_purchase_orders(org_wide)} == {po1.id, po2.id}
        assert [po.id for po in purchasing_service.list_purchase_orders(scope_a)] == [po1.id]
        assert [po.id for po in purchasing_service.list_purchase_orders(org_wide, status="open")] == [po2.id]

        with pytest.raises(ValidationError):
            purchasing_service.list_purchase_orders(org_wide, status="LOST")
