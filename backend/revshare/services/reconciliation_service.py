"""Refund and dispute reconciliation against recorded purchases.

Both handlers lock the purchase row, compute the next state from what is
stored, and write the purchase update, any CommissionAdjustment, the audit
event and the notifications in a single commit. Replaying an event that was
already applied leaves everything unchanged.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from revshare.core.exceptions import PurchaseNotFoundError
from revshare.core.metrics import commission_adjustments_counter
from revshare.models.base import new_id
from revshare.models.commission_adjustment import CommissionAdjustment
from revshare.models.enums import AdjustmentReason, AdjustmentStatus, CommissionStatus, NotificationType
from revshare.models.purchase import Purchase
from revshare.schemas.stripe_events import DisputeDetails, RefundDetails
from revshare.services import event_service
from revshare.services.notification_service import (
    BestEffortTasks,
    chargeback_lost_message,
    chargeback_opened_message,
    chargeback_resolved_message,
    dispatch_notification,
    refund_recorded_message,
)
from revshare.services.purchase_service import derive_commission_status, is_commission_settled
from revshare.utils.dates import utcnow
from revshare.utils.money import proportional

logger = logging.getLogger(__name__)

ACTIVE_ADJUSTMENT_STATUSES = (AdjustmentStatus.PENDING, AdjustmentStatus.APPLIED)


def _find_purchase(db: Session, *lookups) -> Optional[Purchase]:
    """First purchase matching (column, value) pairs in priority order, locked for update."""
    for column, value in lookups:
        if not value:
            continue
        purchase = db.query(Purchase).filter(
            getattr(Purchase, column) == value
        ).order_by(Purchase.created_at).with_for_update().first()
        if purchase:
            return purchase
    return None


def _add_adjustment(
    db: Session,
    purchase: Purchase,
    amount: int,
    reason: AdjustmentReason,
) -> CommissionAdjustment:
    adjustment = CommissionAdjustment(
        id=new_id(),
        creator_id=purchase.project.user_id,
        marketer_id=purchase.marketer_id,
        project_id=purchase.project_id,
        purchase_id=purchase.id,
        amount=amount,
        currency=purchase.currency,
        reason=reason,
        status=AdjustmentStatus.PENDING,
    )
    db.add(adjustment)
    commission_adjustments_counter.labels(reason=reason.value).inc()
    logger.info(f"Commission adjustment {reason.value} {amount} on purchase {purchase.id}")
    return adjustment


def _notify_marketer_and_owner(db: Session, tasks: BestEffortTasks, purchase: Purchase,
                               notification_type: NotificationType, content, data):
    dispatch_notification(db, tasks, purchase.marketer_id, notification_type, content, data)
    dispatch_notification(db, tasks, purchase.project.user_id, notification_type, content, data)


# ============================================================================
# REFUNDS
# ============================================================================

def reconcile_refund(
    db: Session,
    tasks: BestEffortTasks,
    event_id: str,
    details: RefundDetails,
    now: Optional[datetime] = None,
) -> Optional[Purchase]:
    """Fold a refund into its purchase. Returns the purchase when anything changed."""
    if not details.succeeded:
        logger.info(f"Refund {details.refund_id} in event {event_id} has not succeeded; ignoring")
        return None

    purchase = _find_purchase(
        db,
        ("stripe_charge_id", details.charge_id),
        ("stripe_payment_intent_id", details.payment_intent_id),
        ("stripe_invoice_id", details.invoice_id),
    )
    if not purchase:
        raise PurchaseNotFoundError(
            f"Refund event {event_id} matches no purchase "
            f"(charge={details.charge_id}, payment_intent={details.payment_intent_id})"
        )

    known_refund_ids: List[str] = list(purchase.stripe_refund_ids or [])
    new_refund_ids = [refund_id for refund_id in details.refund_ids if refund_id not in known_refund_ids]
    previous_refunded = purchase.refunded_amount or 0
    starts_charge_tracking = details.refunded_total is not None and not purchase.refunds_tracked_by_charge

    if details.refunded_total is not None:
        reported = details.refunded_total
    elif purchase.refunds_tracked_by_charge:
        # charge.refunded carries every refund in its total, which may already include this one
        reported = previous_refunded
    elif details.refund_id and details.refund_id in known_refund_ids:
        logger.info(f"Refund {details.refund_id} already applied to purchase {purchase.id}")
        return None
    else:
        reported = previous_refunded + (details.refund_amount or 0)

    if starts_charge_tracking:
        purchase.refunds_tracked_by_charge = True

    # Refunds never decrease and never exceed the purchase amount
    next_refunded = min(purchase.amount, max(previous_refunded, reported))
    if next_refunded == previous_refunded:
        if new_refund_ids or starts_charge_tracking:
            purchase.stripe_refund_ids = known_refund_ids + new_refund_ids
            db.commit()
        logger.info(f"Refund event {event_id} leaves purchase {purchase.id} unchanged")
        return None

    now = now or utcnow()
    original = purchase.commission_amount_original or 0
    delta_refunded = next_refunded - previous_refunded
    delta_commission = proportional(original, delta_refunded, purchase.amount)
    next_commission = max(0, original - proportional(original, next_refunded, purchase.amount))

    if is_commission_settled(purchase):
        if delta_commission > 0 and purchase.marketer_id:
            _add_adjustment(db, purchase, -delta_commission, AdjustmentReason.REFUND)
    else:
        purchase.commission_amount = next_commission
        if next_refunded >= purchase.amount:
            purchase.commission_status = CommissionStatus.REFUNDED

    purchase.refunded_amount = next_refunded
    purchase.refunded_at = now
    purchase.stripe_refund_ids = known_refund_ids + new_refund_ids

    event_service.record_event(
        db,
        event_service.PURCHASE_REFUNDED,
        subject_type="purchase",
        subject_id=purchase.id,
        project_id=purchase.project_id,
        data={
            "stripe_event_id": event_id,
            "refunded_amount": next_refunded,
            "delta_refunded": delta_refunded,
            "delta_commission": delta_commission,
            "commission_amount": purchase.commission_amount,
            "commission_status": purchase.commission_status.value,
        },
    )
    _notify_marketer_and_owner(
        db, tasks, purchase, NotificationType.REFUND,
        refund_recorded_message(purchase.project.name, next_refunded, purchase.commission_amount, purchase.currency),
        {"purchase_id": purchase.id, "refunded_amount": next_refunded},
    )

    db.commit()
    logger.info(
        f"Refund applied to purchase {purchase.id}: refunded={previous_refunded}->{next_refunded} "
        f"commission={purchase.commission_amount} status={purchase.commission_status.value}"
    )
    return purchase


# ============================================================================
# DISPUTES
# ============================================================================

def _active_chargeback_adjustments(db: Session, purchase: Purchase) -> List[CommissionAdjustment]:
    return db.query(CommissionAdjustment).filter(
        CommissionAdjustment.purchase_id == purchase.id,
        CommissionAdjustment.reason == AdjustmentReason.CHARGEBACK,
        CommissionAdjustment.status.in_(ACTIVE_ADJUSTMENT_STATUSES)
    ).all()


def _dispute_target_status(purchase: Purchase, details: DisputeDetails, now: datetime) -> CommissionStatus:
    if is_commission_settled(purchase):
        return purchase.commission_status
    if not details.is_won:
        return CommissionStatus.CHARGEBACK
    if purchase.amount and purchase.refunded_amount >= purchase.amount:
        return CommissionStatus.REFUNDED
    return derive_commission_status(purchase, now)


def reconcile_dispute(
    db: Session,
    tasks: BestEffortTasks,
    event_id: str,
    details: DisputeDetails,
    now: Optional[datetime] = None,
) -> Optional[Purchase]:
    """Apply a dispute update to its purchase. Returns the purchase when anything changed."""
    purchase = _find_purchase(
        db,
        ("stripe_charge_id", details.charge_id),
        ("stripe_payment_intent_id", details.payment_intent_id),
    )
    if not purchase:
        raise PurchaseNotFoundError(
            f"Dispute {details.dispute_id} in event {event_id} matches no purchase (charge={details.charge_id})"
        )

    now = now or utcnow()
    target_status = _dispute_target_status(purchase, details, now)
    if (
        purchase.dispute_id == details.dispute_id
        and purchase.dispute_status == details.status
        and purchase.commission_status == target_status
    ):
        logger.info(f"Dispute {details.dispute_id} already reflected on purchase {purchase.id}")
        return None

    is_new_dispute = purchase.dispute_id != details.dispute_id
    original = purchase.commission_amount_original or 0
    active_adjustments = _active_chargeback_adjustments(db, purchase)
    clawed_back = 0
    restored = 0

    if not details.is_won:
        if purchase.chargeback_at is None:
            purchase.chargeback_at = now
        if not active_adjustments and purchase.marketer_id and is_commission_settled(purchase):
            disputed = min(details.amount or purchase.amount, purchase.amount)
            clawed_back = proportional(original, disputed, purchase.amount)
            if clawed_back > 0:
                _add_adjustment(db, purchase, -clawed_back, AdjustmentReason.CHARGEBACK)
    else:
        total = sum(adjustment.amount for adjustment in active_adjustments)
        if total < 0:
            restored = abs(total)
            _add_adjustment(db, purchase, restored, AdjustmentReason.CHARGEBACK_REVERSAL)
            for adjustment in active_adjustments:
                adjustment.status = AdjustmentStatus.REVERSED

    purchase.dispute_id = details.dispute_id
    purchase.dispute_status = details.status
    purchase.commission_status = target_status

    event_service.record_event(
        db,
        event_service.PURCHASE_CHARGEBACK_RESOLVED if details.is_won else event_service.PURCHASE_CHARGEBACK,
        subject_type="purchase",
        subject_id=purchase.id,
        project_id=purchase.project_id,
        data={
            "stripe_event_id": event_id,
            "dispute_id": details.dispute_id,
            "dispute_status": details.status,
            "disputed_amount": details.amount,
            "clawed_back": clawed_back,
            "restored": restored,
            "commission_status": target_status.value,
        },
    )

    data = {"purchase_id": purchase.id, "dispute_id": details.dispute_id, "dispute_status": details.status}
    project_name = purchase.project.name
    if details.is_won:
        content = chargeback_resolved_message(project_name, details.amount or purchase.amount, purchase.currency)
    elif details.status == "lost":
        content = chargeback_lost_message(project_name, clawed_back or purchase.commission_amount, purchase.currency)
    elif is_new_dispute:
        content = chargeback_opened_message(project_name, details.amount or purchase.amount, purchase.currency)
    else:
        content = None
    if content:
        _notify_marketer_and_owner(db, tasks, purchase, NotificationType.CHARGEBACK, content, data)

    db.commit()
    logger.info(
        f"Dispute {details.dispute_id} ({details.status}) applied to purchase {purchase.id}: "
        f"commission_status={target_status.value}"
    )
    return purchase
