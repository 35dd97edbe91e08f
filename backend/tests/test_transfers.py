# Overview: Pytest coverage for inter-branch stock transfers (draft, send, receive, cancel).

"""
Stock Transfer Tests

Verifies:
1. A DRAFT transfer has no stock effect and can be edited
2. Sending debits the source branch exactly once, all lines or none
3. Receiving credits the destination branch exactly once, with optional shortfall
4. Cancelling in transit returns the goods to the source; terminal states reject it
5. Transfers stay within one organization and respect the caller's branch
"""

import pytest

from stockflow.errors import InvalidStateTransition, NotFound, ScopeError, ValidationError
from stockflow.models import AuditEvent, Branch, Order, StockTransfer
from stockflow.services import adjustment_service, allocation_service, transfer_service
from stockflow.services.tenant_service import Scope
from conftest import stock_in


def _draft(scope, to_branch, *lines):
    return transfer_service.create_transfer(
        scope,
        to_branch_id=to_branch.id,
        items=[{"product_id": p.id, "quantity": q} for p, q in lines],
    )


# =============================================================================
# DRAFT
# =============================================================================


class TestCreateTransfer:
    def test_draft_has_no_stock_effect(self, db_session, scope_a, branch_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 10)
        transfer = _draft(scope_a, branch_a2, (product_a, 4))

        assert transfer.status == "DRAFT"
        assert transfer.from_branch_id == branch_a.id
        assert transfer.transfer_number == f"TRF-{transfer.id:06d}"
        assert [(line.product_id, line.quantity) for line in transfer.lines] == [(product_a.id, 4)]
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 10
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 0

    def test_created_event_audited(self, db_session, scope_a, branch_a2, product_a):
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        event = db_session.query(AuditEvent).filter_by(event_type="transfer.created").one()
        assert event.entity_id == transfer.id

    def test_same_branch_rejected(self, db_session, scope_a, branch_a, product_a):
        with pytest.raises(ValidationError):
            _draft(scope_a, branch_a, (product_a, 1))

    def test_foreign_destination_rejected(self, db_session, scope_a, branch_b, product_a):
        with pytest.raises(ScopeError):
            _draft(scope_a, branch_b, (product_a, 1))
        assert db_session.query(StockTransfer).count() == 0

    def test_foreign_product_not_found(self, db_session, scope_a, branch_a2, product_b):
        with pytest.raises(NotFound):
            _draft(scope_a, branch_a2, (product_b, 1))

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, db_session, scope_a, branch_a2, product_a, quantity):
        with pytest.raises(ValidationError):
            _draft(scope_a, branch_a2, (product_a, quantity))

    def test_duplicate_product_rejected(self, db_session, scope_a, branch_a2, product_a):
        with pytest.raises(ValidationError):
            _draft(scope_a, branch_a2, (product_a, 1), (product_a, 2))

    def test_requires_branch_scope(self, db_session, org_a, branch_a2, product_a):
        with pytest.raises(ScopeError):
            _draft(Scope(org_id=org_a.id), branch_a2, (product_a, 1))

    def test_update_replaces_lines(self, db_session, scope_a, branch_a2, product_a, product_a2):
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        updated = transfer_service.update_transfer(
            scope_a,
            transfer.id,
            items=[{"product_id": product_a2.id, "quantity": 3}],
            note="Rebalance",
        )

        assert [(line.product_id, line.quantity) for line in updated.lines] == [(product_a2.id, 3)]
        assert updated.note == "Rebalance"

    def test_update_only_in_draft(self, db_session, scope_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 5)
        transfer = _draft(scope_a, branch_a2, (product_a, 1))
        transfer_service.send_transfer(scope_a, transfer.id)

        with pytest.raises(InvalidStateTransition):
            transfer_service.update_transfer(scope_a, transfer.id, note="too late")


# =============================================================================
# SEND / RECEIVE
# =============================================================================


class TestSendTransfer:
    def test_send_debits_source_once(self, db_session, scope_a, branch_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 10)
        transfer = _draft(scope_a, branch_a2, (product_a, 4))

        sent = transfer_service.send_transfer(scope_a, transfer.id)

        assert sent.status == "IN_TRANSIT"
        assert sent.sent_at is not None
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 6
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 0

        with pytest.raises(InvalidStateTransition):
            transfer_service.send_transfer(scope_a, transfer.id)
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 6

    def test_send_writes_transfer_out_movement(self, db_session, scope_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 10)
        transfer = _draft(scope_a, branch_a2, (product_a, 4))
        transfer_service.send_transfer(scope_a, transfer.id)

        movements = adjustment_service.list_transactions(scope_a, transaction_type="TRANSFER_OUT")
        assert len(movements) == 1
        assert movements[0].lines[0].quantity == -4
        assert movements[0].fulfillment_status == "DELIVERED"

    def test_insufficient_stock_changes_nothing(self, db_session, scope_a, branch_a, branch_a2, product_a, product_a2):
        """One short line rejects the whole send, including lines that would fit."""
        stock_in(scope_a, product_a, 10)
        stock_in(scope_a, product_a2, 1)
        transfer = _draft(scope_a, branch_a2, (product_a, 4), (product_a2, 3))

        with pytest.raises(ValidationError):
            transfer_service.send_transfer(scope_a, transfer.id)

        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 10
        assert allocation_service.physical_stock(product_a2.id, branch_a.id) == 1
        assert db_session.get(StockTransfer, transfer.id).status == "DRAFT"
        assert db_session.query(Order).filter_by(type="TRANSFER_OUT").count() == 0

    def test_only_source_branch_can_send(self, db_session, scope_a, scope_a2, branch_a2, product_a):
        stock_in(scope_a, product_a, 5)
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        with pytest.raises(ScopeError):
            transfer_service.send_transfer(scope_a2, transfer.id)

    def test_inactive_destination_cannot_be_sent_to(self, db_session, scope_a, branch_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 5)
        transfer = _draft(scope_a, branch_a2, (product_a, 1))
        branch_a2.is_active = False
        db_session.commit()

        with pytest.raises(ScopeError):
            transfer_service.send_transfer(scope_a, transfer.id)
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 5


class TestReceiveTransfer:
    def _sent(self, scope, to_branch, product, quantity):
        stock_in(scope, product, 10)
        transfer = _draft(scope, to_branch, (product, quantity))
        return transfer_service.send_transfer(scope, transfer.id)

    def test_receive_credits_destination_once(self, db_session, scope_a, scope_a2, branch_a, branch_a2, product_a):
        transfer = self._sent(scope_a, branch_a2, product_a, 4)

        received = transfer_service.receive_transfer(scope_a2, transfer.id)

        assert received.status == "RECEIVED"
        assert received.lines[0].received_quantity == 4
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 6
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 4

        with pytest.raises(InvalidStateTransition):
            transfer_service.receive_transfer(scope_a2, transfer.id)
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 4

    def test_receive_writes_transfer_in_at_destination(self, db_session, scope_a, scope_a2, branch_a2, product_a):
        transfer = self._sent(scope_a, branch_a2, product_a, 4)
        transfer_service.receive_transfer(scope_a2, transfer.id)

        movements = adjustment_service.list_transactions(scope_a2, transaction_type="TRANSFER_IN")
        assert [m.lines[0].quantity for m in movements] == [4]
        assert adjustment_service.list_transactions(scope_a, transaction_type="TRANSFER_IN") == []

    def test_partial_receipt(self, db_session, scope_a, scope_a2, branch_a2, product_a):
        transfer = self._sent(scope_a, branch_a2, product_a, 4)

        received = transfer_service.receive_transfer(
            scope_a2, transfer.id, [{"product_id": product_a.id, "received_quantity": 3}]
        )

        assert received.lines[0].received_quantity == 3
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 3
        event = db_session.query(AuditEvent).filter_by(event_type="transfer.received").one()
        assert event.to_dict()["payload"]["shortfall"] == [{"product_id": product_a.id, "missing": 1}]

    @pytest.mark.parametrize("quantity", [-1, 5])
    def test_received_quantity_bounds(self, db_session, scope_a, scope_a2, branch_a2, product_a, quantity):
        transfer = self._sent(scope_a, branch_a2, product_a, 4)

        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(
                scope_a2, transfer.id, [{"product_id": product_a.id, "received_quantity": quantity}]
            )
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 0

    def test_only_destination_branch_can_receive(self, db_session, scope_a, branch_a2, product_a):
        transfer = self._sent(scope_a, branch_a2, product_a, 4)

        with pytest.raises(ScopeError):
            transfer_service.receive_transfer(scope_a, transfer.id)

    def test_draft_cannot_be_received(self, db_session, scope_a, scope_a2, branch_a2, product_a):
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        with pytest.raises(InvalidStateTransition):
            transfer_service.receive_transfer(scope_a2, transfer.id)
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 0


# =============================================================================
# CANCEL / VISIBILITY
# =============================================================================


class TestCancelTransfer:
    def test_cancel_draft(self, db_session, scope_a, branch_a2, product_a):
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        cancelled = transfer_service.cancel_transfer(scope_a, transfer.id, reason="  wrong branch ")

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancellation_reason == "wrong branch"
        assert db_session.query(Order).count() == 0

    def test_cancel_in_transit_restores_source(self, db_session, scope_a, branch_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 10)
        transfer = _draft(scope_a, branch_a2, (product_a, 4))
        transfer_service.send_transfer(scope_a, transfer.id)

        transfer_service.cancel_transfer(scope_a, transfer.id)

        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 10
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 0
        event = db_session.query(AuditEvent).filter_by(event_type="transfer.cancelled").one()
        assert event.to_dict()["payload"] == {"restocked_source": True}

    def test_terminal_transfers_cannot_be_cancelled(self, db_session, scope_a, scope_a2, branch_a, branch_a2, product_a):
        stock_in(scope_a, product_a, 10)
        transfer = _draft(scope_a, branch_a2, (product_a, 4))
        transfer_service.send_transfer(scope_a, transfer.id)
        transfer_service.receive_transfer(scope_a2, transfer.id)

        with pytest.raises(InvalidStateTransition):
            transfer_service.cancel_transfer(scope_a, transfer.id)
        assert allocation_service.physical_stock(product_a.id, branch_a.id) == 6
        assert allocation_service.physical_stock(product_a.id, branch_a2.id) == 4

        draft = _draft(scope_a, branch_a2, (product_a, 1))
        transfer_service.cancel_transfer(scope_a, draft.id)
        with pytest.raises(InvalidStateTransition):
            transfer_service.cancel_transfer(scope_a, draft.id)


class TestTransferVisibility:
    def test_other_org_cannot_see_transfer(self, db_session, scope_a, scope_b, branch_a2, product_a):
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        with pytest.raises(NotFound):
            transfer_service.get_transfer(scope_b, transfer.id)
        assert transfer_service.list_transfers(scope_b) == []

    def test_branch_scope_sees_only_its_transfers(self, db_session, org_a, scope_a, scope_a2, branch_a2, product_a):
        third = Scope(org_id=org_a.id, branch_id=_third_branch(db_session, org_a).id)
        transfer = _draft(scope_a, branch_a2, (product_a, 1))

        assert [t.id for t in transfer_service.list_transfers(scope_a)] == [transfer.id]
        assert [t.id for t in transfer_service.list_transfers(scope_a2)] == [transfer.id]
        assert transfer_service.list_transfers(third) == []
        with pytest.raises(NotFound):
            transfer_service.get_transfer(third, transfer.id)

    def test_list_filters_by_status(self, db_session, org_a, scope_a, branch_a2, product_a):
        draft = _draft(scope_a, branch_a2, (product_a, 1))
        cancelled = _draft(scope_a, branch_a2, (product_a, 1))
        transfer_service.cancel_transfer(scope_a, cancelled.id)

        org_scope = Scope(org_id=org_a.id)
        assert [t.id for t in transfer_service.list_transfers(org_scope, status="draft")] == [draft.id]
        with pytest.raises(ValidationError):
            transfer_service.list_transfers(org_scope, status="LOST")


def _third_branch(db_session, org):
    branch = Branch(org_id=org.id, name="Branch A3", code="A3")
    db_session.add(branch)
    db_session.commit()
    return branch
