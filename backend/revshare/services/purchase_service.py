"""Purchase ledger: one Purchase per real-world payment"""
import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revshare.core.config import settings
from revshare.core.metrics import purchases_created_counter
from revshare.models.base import new_id
from revshare.models.contract import Contract
from revshare.models.enums import CommissionStatus, CreatorPaymentStatus, NotificationType, PurchaseStatus
from revshare.models.project import Project
from revshare.models.purchase import Purchase
from revshare.schemas.stripe_events import PaymentDetails
from revshare.services import event_service
from revshare.services.attribution_service import Attribution
from revshare.services.notification_service import (
    BestEffortTasks,
    commission_due_message,
    dispatch_notification,
    new_sale_message,
    referral_sale_message,
)
from revshare.utils.dates import add_days, ensure_utc, utcnow
from revshare.utils.money import apply_percent

logger = logging.getLogger(__name__)


def resolve_refund_window_days(project: Optional[Project], contract: Optional[Contract]) -> int:
    """Contract, then project, then the platform default."""
    if contract is not None and contract.refund_window_days is not None:
        return contract.refund_window_days
    if project is not None and project.refund_window_days is not None:
        return project.refund_window_days
    return settings.DEFAULT_REFUND_WINDOW_DAYS


def is_commission_settled(purchase: Purchase) -> bool:
    """Settled commissions are never corrected in place; adjustments are recorded instead."""
    return purchase.commission_status == CommissionStatus.PAID or purchase.status == PurchaseStatus.PAID


def derive_commission_status(
    purchase: Purchase,
    now: Optional[datetime] = None,
    creator_paid: Optional[bool] = None,
) -> CommissionStatus:
    """Waiting-window state of a commission.

    Used at creation, after a won dispute, when a creator payment completes and
    by the maturity job, so every path agrees on where a commission stands.
    """
    if not purchase.marketer_id or not purchase.commission_amount_original:
        return CommissionStatus.PAID

    now = now or utcnow()
    eligible_at = ensure_utc(purchase.refund_eligible_at)
    if eligible_at is None or eligible_at > now:
        return CommissionStatus.AWAITING_REFUND_WINDOW

    if creator_paid is None:
        payment = purchase.creator_payment
        creator_paid = payment is not None and payment.status == CreatorPaymentStatus.PAID
    if creator_paid:
        return CommissionStatus.READY_FOR_PAYOUT
    return CommissionStatus.PENDING_CREATOR_PAYMENT


def find_duplicate_purchase(db: Session, project_id: str, lookup_keys: Dict[str, str]) -> Optional[Purchase]:
    """A purchase in the project already recorded under any of the same charge/invoice/payment-intent ids."""
    if not lookup_keys:
        return None
    conditions = [getattr(Purchase, column) == value for column, value in lookup_keys.items()]
    return db.query(Purchase).filter(
        Purchase.project_id == project_id,
        or_(*conditions)
    ).first()


def record_purchase(
    db: Session,
    tasks: BestEffortTasks,
    event_id: str,
    details: PaymentDetails,
    project: Project,
    attribution: Attribution,
    now: Optional[datetime] = None,
) -> Optional[Purchase]:
    """Create the Purchase for a payment event.

    Returns None when the payment was already recorded, whether by this event
    id, by another event type for the same charge, or by a concurrent delivery
    that won the insert race. Commits on success.
    """
    if db.query(Purchase).filter(Purchase.stripe_event_id == event_id).first():
        logger.info(f"Purchase for event {event_id} already recorded")
        return None

    duplicate = find_duplicate_purchase(db, project.id, details.lookup_keys)
    if duplicate:
        logger.info(
            f"Payment from {details.source} ({event_id}) already recorded as purchase "
            f"{duplicate.id} via event {duplicate.stripe_event_id}"
        )
        return None

    now = now or utcnow()
    refund_window_days = resolve_refund_window_days(project, attribution.contract)
    commission_amount = apply_percent(details.amount, attribution.commission_percent) if attribution.is_attributed else 0

    purchase = Purchase(
        id=new_id(),
        stripe_event_id=event_id,
        stripe_charge_id=details.charge_id,
        stripe_invoice_id=details.invoice_id,
        stripe_payment_intent_id=details.payment_intent_id,
        project_id=project.id,
        coupon_id=attribution.coupon_id,
        marketer_id=attribution.marketer_id,
        customer_email=details.customer_email,
        amount=details.amount,
        currency=(details.currency or "usd").lower(),
        commission_amount=commission_amount,
        commission_amount_original=commission_amount,
        refunded_amount=0,
        stripe_refund_ids=[],
        refund_window_days=refund_window_days,
        refund_eligible_at=add_days(now, refund_window_days),
        created_at=now,
    )
    purchase.commission_status = derive_commission_status(purchase, now, creator_paid=False)
    purchase.status = PurchaseStatus.PAID if purchase.commission_status == CommissionStatus.PAID else PurchaseStatus.PENDING

    db.add(purchase)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info(f"Purchase for event {event_id} inserted concurrently; treating as duplicate")
        return None

    event_service.record_event(
        db,
        event_service.PURCHASE_CREATED,
        subject_type="purchase",
        subject_id=purchase.id,
        actor_id=purchase.marketer_id,
        project_id=project.id,
        data={
            "source": details.source,
            "amount": purchase.amount,
            "currency": purchase.currency,
            "commission_amount": commission_amount,
            "coupon_id": purchase.coupon_id,
            "stripe_event_id": event_id,
        },
    )
    _notify_purchase_created(db, tasks, purchase, project)

    db.commit()
    db.refresh(purchase)

    purchases_created_counter.labels(attributed=str(attribution.is_attributed).lower()).inc()
    logger.info(
        f"Recorded purchase {purchase.id} for project {project.id}: amount={purchase.amount} "
        f"commission={commission_amount} status={purchase.commission_status.value}"
    )
    return purchase


def _notify_purchase_created(db: Session, tasks: BestEffortTasks, purchase: Purchase, project: Project):
    data = {"purchase_id": purchase.id, "project_id": project.id}
    if purchase.marketer_id:
        dispatch_notification(
            db, tasks, purchase.marketer_id, NotificationType.SALE,
            referral_sale_message(purchase.commission_amount, purchase.currency),
            data,
        )
        dispatch_notification(
            db, tasks, project.user_id, NotificationType.COMMISSION_DUE,
            commission_due_message(project.name, purchase.amount, purchase.commission_amount, purchase.currency),
            data,
        )
    else:
        dispatch_notification(
            db, tasks, project.user_id, NotificationType.NEW_SALE,
            new_sale_message(project.name, purchase.amount, purchase.currency),
            data,
        )
