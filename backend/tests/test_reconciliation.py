"""Refund and dispute reconciliation tests"""
from datetime import datetime, timedelta, timezone

import pytest

from revshare.core.exceptions import PurchaseNotFoundError
from revshare.models.commission_adjustment import CommissionAdjustment
from revshare.models.enums import (
    AdjustmentReason,
    AdjustmentStatus,
    CommissionStatus,
    NotificationType,
    PurchaseStatus,
)
from revshare.models.event import Event
from revshare.models.notification import Notification
from revshare.schemas.stripe_events import DisputeDetails, RefundDetails, parse_refund_event
from revshare.services.notification_service import BestEffortTasks
from revshare.services.reconciliation_service import reconcile_dispute, reconcile_refund


def refund(purchase, total=None, refund_id=None, amount=None, refund_ids=None):
    if refund_ids is None:
        refund_ids = [refund_id] if refund_id else []
    return RefundDetails(
        charge_id=purchase.stripe_charge_id,
        refunded_total=total,
        refund_id=refund_id,
        refund_amount=amount,
        refund_ids=refund_ids,
    )


def dispute(purchase, status, dispute_id="dp_test_1", amount=None):
    return DisputeDetails(
        dispute_id=dispute_id,
        charge_id=purchase.stripe_charge_id,
        amount=purchase.amount if amount is None else amount,
        currency=purchase.currency,
        status=status,
    )


def adjustments_for(db_session, purchase):
    return db_session.query(CommissionAdjustment).filter(
        CommissionAdjustment.purchase_id == purchase.id
    ).order_by(CommissionAdjustment.created_at).all()


@pytest.mark.critical
class TestRefundReconciliation:
    """Refunds against unsettled and settled commissions"""

    def test_partial_refund_scales_unsettled_commission(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 5000
        assert purchase.commission_amount == 1000
        assert purchase.commission_amount_original == 2000
        assert purchase.commission_status == CommissionStatus.AWAITING_REFUND_WINDOW
        assert purchase.refunded_at is not None
        assert adjustments_for(db_session, purchase) == []

    def test_full_refund_marks_commission_refunded(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))
        reconcile_refund(db_session, BestEffortTasks(), "evt_r2", refund(purchase, total=10000))

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 10000
        assert purchase.commission_amount == 0
        assert purchase.commission_status == CommissionStatus.REFUNDED

    def test_settled_commission_records_adjustment_instead(self, db_session, purchase_factory, creator, marketer):
        purchase = purchase_factory(
            status=PurchaseStatus.PAID,
            commission_status=CommissionStatus.PAID,
        )

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))

        db_session.refresh(purchase)
        assert purchase.commission_amount == 2000
        assert purchase.commission_status == CommissionStatus.PAID
        assert purchase.status == PurchaseStatus.PAID
        assert purchase.refunded_amount == 5000

        adjustments = adjustments_for(db_session, purchase)
        assert len(adjustments) == 1
        assert adjustments[0].amount == -1000
        assert adjustments[0].reason == AdjustmentReason.REFUND
        assert adjustments[0].status == AdjustmentStatus.PENDING
        assert adjustments[0].creator_id == creator.id
        assert adjustments[0].marketer_id == marketer.id

    def test_settled_full_refund_claws_back_only_the_delta(self, db_session, purchase_factory):
        purchase = purchase_factory(status=PurchaseStatus.PAID, commission_status=CommissionStatus.PAID)

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))
        reconcile_refund(db_session, BestEffortTasks(), "evt_r2", refund(purchase, total=10000))

        amounts = [a.amount for a in adjustments_for(db_session, purchase)]
        assert amounts == [-1000, -1000]
        db_session.refresh(purchase)
        assert purchase.commission_status == CommissionStatus.PAID

    def test_replayed_refund_is_a_no_op(self, db_session, purchase_factory):
        purchase = purchase_factory(status=PurchaseStatus.PAID, commission_status=CommissionStatus.PAID)

        first = reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))
        second = reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))

        assert first is not None
        assert second is None
        assert len(adjustments_for(db_session, purchase)) == 1

    def test_refund_objects_accumulate_once_per_refund_id(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, refund_id="re_1", amount=3000))
        reconcile_refund(db_session, BestEffortTasks(), "evt_r2", refund(purchase, refund_id="re_1", amount=3000))
        reconcile_refund(db_session, BestEffortTasks(), "evt_r3", refund(purchase, refund_id="re_2", amount=2000))

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 5000
        assert purchase.commission_amount == 1000
        assert sorted(purchase.stripe_refund_ids) == ["re_1", "re_2"]

    def test_charge_total_after_refund_object_does_not_double_count(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, refund_id="re_1", amount=5000))
        charge_refund = refund(purchase, total=5000, refund_ids=["re_1"])
        assert reconcile_refund(db_session, BestEffortTasks(), "evt_r2", charge_refund) is None

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 5000

    def test_refund_object_after_charge_total_does_not_double_count(self, db_session, purchase_factory):
        purchase = purchase_factory()

        # Live Charge payloads carry no refunds list, so the total arrives without ids
        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))
        same_refund = refund(purchase, refund_id="re_A", amount=5000)
        assert reconcile_refund(db_session, BestEffortTasks(), "evt_r2", same_refund) is None

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 5000
        assert purchase.commission_amount == 1000
        assert purchase.commission_status == CommissionStatus.AWAITING_REFUND_WINDOW
        assert purchase.refunds_tracked_by_charge is True
        assert purchase.stripe_refund_ids == ["re_A"]

    def test_later_refunds_wait_for_the_next_charge_total(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))
        reconcile_refund(db_session, BestEffortTasks(), "evt_r2", refund(purchase, refund_id="re_B", amount=3000))
        db_session.refresh(purchase)
        assert purchase.refunded_amount == 5000

        reconcile_refund(db_session, BestEffortTasks(), "evt_r3", refund(purchase, total=8000))
        db_session.refresh(purchase)
        assert purchase.refunded_amount == 8000
        assert purchase.commission_amount == 400

    def test_refunded_amount_is_capped_at_purchase_amount(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, refund_id="re_1", amount=25000))

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 10000
        assert purchase.commission_status == CommissionStatus.REFUNDED

    def test_refund_never_decreases(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=6000))
        assert reconcile_refund(db_session, BestEffortTasks(), "evt_r2", refund(purchase, total=4000)) is None

        db_session.refresh(purchase)
        assert purchase.refunded_amount == 6000

    def test_pending_refund_object_is_ignored(self, db_session, purchase_factory):
        purchase = purchase_factory()
        pending = parse_refund_event("refund.created", {
            "id": "re_pending", "object": "refund", "amount": 5000,
            "charge": purchase.stripe_charge_id, "status": "pending",
        })

        assert reconcile_refund(db_session, BestEffortTasks(), "evt_r1", pending) is None
        db_session.refresh(purchase)
        assert purchase.refunded_amount == 0

    def test_falls_back_to_payment_intent(self, db_session, purchase_factory):
        purchase = purchase_factory(stripe_charge_id=None)
        details = RefundDetails(payment_intent_id=purchase.stripe_payment_intent_id, refunded_total=5000)

        assert reconcile_refund(db_session, BestEffortTasks(), "evt_r1", details) is not None

    def test_unknown_charge_is_retryable(self, db_session, purchase_factory):
        purchase_factory()
        details = RefundDetails(charge_id="ch_unknown", refunded_total=5000)

        with pytest.raises(PurchaseNotFoundError) as exc_info:
            reconcile_refund(db_session, BestEffortTasks(), "evt_r1", details)
        assert exc_info.value.status_code == 404
        assert "ch_unknown" in exc_info.value.message

    def test_writes_event_and_notifies_both_parties(self, db_session, purchase_factory, creator, marketer):
        purchase = purchase_factory()

        reconcile_refund(db_session, BestEffortTasks(), "evt_r1", refund(purchase, total=5000))

        event = db_session.query(Event).filter(Event.type == "PURCHASE_REFUNDED").one()
        assert event.data["delta_commission"] == 1000
        recipients = {n.user_id for n in db_session.query(Notification).filter(
            Notification.type == NotificationType.REFUND
        )}
        assert recipients == {creator.id, marketer.id}


@pytest.mark.critical
class TestDisputeReconciliation:
    """Chargebacks, reversals and dispute idempotency"""

    def test_lost_then_won_round_trip_nets_to_zero(self, db_session, purchase_factory):
        purchase = purchase_factory(status=PurchaseStatus.PAID, commission_status=CommissionStatus.PAID)

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))
        first = adjustments_for(db_session, purchase)
        assert [(a.amount, a.reason) for a in first] == [(-2000, AdjustmentReason.CHARGEBACK)]

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d2", dispute(purchase, "won"))

        adjustments = adjustments_for(db_session, purchase)
        by_reason = {a.reason: a for a in adjustments}
        assert len(adjustments) == 2
        assert by_reason[AdjustmentReason.CHARGEBACK].status == AdjustmentStatus.REVERSED
        assert by_reason[AdjustmentReason.CHARGEBACK_REVERSAL].amount == 2000
        assert by_reason[AdjustmentReason.CHARGEBACK_REVERSAL].status == AdjustmentStatus.PENDING
        assert sum(a.amount for a in adjustments) == 0

        db_session.refresh(purchase)
        assert purchase.commission_status == CommissionStatus.PAID
        assert purchase.dispute_status == "won"

    def test_partial_dispute_claws_back_proportionally(self, db_session, purchase_factory):
        purchase = purchase_factory(status=PurchaseStatus.PAID, commission_status=CommissionStatus.PAID)

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response", amount=2500))

        assert [a.amount for a in adjustments_for(db_session, purchase)] == [-500]

    def test_loss_updates_do_not_claw_back_twice(self, db_session, purchase_factory):
        purchase = purchase_factory(status=PurchaseStatus.PAID, commission_status=CommissionStatus.PAID)

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))
        reconcile_dispute(db_session, BestEffortTasks(), "evt_d2", dispute(purchase, "under_review"))
        reconcile_dispute(db_session, BestEffortTasks(), "evt_d3", dispute(purchase, "lost"))

        assert [a.amount for a in adjustments_for(db_session, purchase)] == [-2000]

    def test_duplicate_dispute_delivery_is_a_no_op(self, db_session, purchase_factory):
        purchase = purchase_factory()

        first = reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))
        second = reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))

        assert first is not None
        assert second is None
        assert db_session.query(Event).filter(Event.type == "PURCHASE_CHARGEBACK").count() == 1

    def test_unsettled_dispute_holds_commission_without_adjustment(self, db_session, purchase_factory):
        purchase = purchase_factory()

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))

        db_session.refresh(purchase)
        assert purchase.commission_status == CommissionStatus.CHARGEBACK
        assert purchase.chargeback_at is not None
        assert purchase.dispute_id == "dp_test_1"
        assert purchase.commission_amount == 2000
        assert adjustments_for(db_session, purchase) == []

    def test_won_dispute_restores_waiting_status(self, db_session, purchase_factory):
        purchase = purchase_factory(refund_eligible_at=datetime.now(timezone.utc) - timedelta(days=1))

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))
        reconcile_dispute(db_session, BestEffortTasks(), "evt_d2", dispute(purchase, "won"))

        db_session.refresh(purchase)
        assert purchase.commission_status == CommissionStatus.PENDING_CREATOR_PAYMENT
        assert adjustments_for(db_session, purchase) == []

    def test_won_dispute_keeps_refunded_purchase_refunded(self, db_session, purchase_factory):
        purchase = purchase_factory(refunded_amount=10000, commission_amount=0,
                                    commission_status=CommissionStatus.REFUNDED)

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "won"))

        db_session.refresh(purchase)
        assert purchase.commission_status == CommissionStatus.REFUNDED

    def test_chargeback_notifications(self, db_session, purchase_factory, creator, marketer):
        purchase = purchase_factory()

        reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", dispute(purchase, "needs_response"))
        reconcile_dispute(db_session, BestEffortTasks(), "evt_d2", dispute(purchase, "won"))

        notes = db_session.query(Notification).filter(Notification.type == NotificationType.CHARGEBACK).all()
        titles = sorted(n.title for n in notes)
        assert titles == ["Chargeback opened", "Chargeback opened", "Chargeback resolved", "Chargeback resolved"]
        assert {n.user_id for n in notes} == {creator.id, marketer.id}

    def test_unknown_dispute_is_retryable(self, db_session, purchase_factory):
        purchase_factory()
        details = DisputeDetails(dispute_id="dp_x", charge_id="ch_unknown", amount=100, status="needs_response")

        with pytest.raises(PurchaseNotFoundError):
            reconcile_dispute(db_session, BestEffortTasks(), "evt_d1", details)
