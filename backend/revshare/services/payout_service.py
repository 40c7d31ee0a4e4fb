"""Creator payouts: completing a payout invoice and previewing what is owed"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from revshare.core.config import settings
from revshare.core.exceptions import CreatorPaymentNotFoundError
from revshare.core.logging import payout_logger
from revshare.models.commission_adjustment import CommissionAdjustment
from revshare.models.creator_payment import CreatorPayment
from revshare.models.enums import (
    WAITING_COMMISSION_STATUSES,
    AdjustmentStatus,
    CommissionStatus,
    CreatorPaymentStatus,
    NotificationType,
)
from revshare.models.project import Project
from revshare.models.purchase import Purchase
from revshare.schemas.payouts import (
    AdjustmentList,
    AdjustmentOut,
    MarketerSubtotal,
    PayoutLine,
    PayoutPreview,
    PayoutTotals,
)
from revshare.services import event_service
from revshare.services.notification_service import BestEffortTasks, dispatch_notification, payout_invoice_paid_message
from revshare.services.purchase_service import derive_commission_status
from revshare.utils.dates import add_days, utcnow
from revshare.utils.money import apply_percent, normalize_percent
from revshare.utils.stripe_objects import get_stripe_value, object_id

logger = logging.getLogger(__name__)


def complete_creator_payment(
    db: Session,
    tasks: BestEffortTasks,
    creator_payment_id: str,
    session: Any,
    now: Optional[datetime] = None,
) -> CreatorPayment:
    """Mark a creator payout invoice paid and release its purchases.

    Waiting purchases move to READY_FOR_PAYOUT once their refund window has
    elapsed, otherwise to AWAITING_REFUND_WINDOW.
    """
    payment = db.get(CreatorPayment, creator_payment_id)
    if not payment:
        raise CreatorPaymentNotFoundError(f"Creator payment {creator_payment_id} not found")

    session_id = get_stripe_value(session, "id")
    if payment.status == CreatorPaymentStatus.PAID and payment.stripe_checkout_session_id == session_id:
        payout_logger.info(f"Creator payment {payment.id} already marked paid by session {session_id}")
        return payment

    now = now or utcnow()
    payment.status = CreatorPaymentStatus.PAID
    payment.paid_at = now
    payment.stripe_checkout_session_id = session_id
    payment.stripe_payment_intent_id = object_id(get_stripe_value(session, "payment_intent"))

    purchases = db.query(Purchase).filter(
        Purchase.creator_payment_id == payment.id,
        Purchase.commission_status.in_(WAITING_COMMISSION_STATUSES)
    ).all()

    released = 0
    for purchase in purchases:
        if purchase.refund_eligible_at is None:
            window = purchase.refund_window_days
            if window is None:
                window = settings.DEFAULT_REFUND_WINDOW_DAYS
            purchase.refund_eligible_at = add_days(purchase.created_at, window)
        purchase.commission_status = derive_commission_status(purchase, now, creator_paid=True)
        if purchase.commission_status == CommissionStatus.READY_FOR_PAYOUT:
            released += 1

    event_service.record_event(
        db,
        event_service.CREATOR_PAYMENT_COMPLETED,
        subject_type="creator_payment",
        subject_id=payment.id,
        actor_id=payment.creator_id,
        data={
            "stripe_checkout_session_id": session_id,
            "purchase_count": len(purchases),
            "ready_for_payout": released,
        },
    )
    dispatch_notification(
        db, tasks, payment.creator_id, NotificationType.SYSTEM,
        payout_invoice_paid_message(),
        {"creator_payment_id": payment.id},
    )

    db.commit()
    payout_logger.info(
        f"Creator payment {payment.id} paid: {len(purchases)} purchase(s) updated, {released} ready for payout"
    )
    return payment


def list_creator_adjustments(db: Session, creator_id: str, limit: int = 100) -> AdjustmentList:
    adjustments = db.query(CommissionAdjustment).filter(
        CommissionAdjustment.creator_id == creator_id
    ).order_by(CommissionAdjustment.created_at.desc()).limit(limit).all()

    return AdjustmentList(data=[
        AdjustmentOut(
            id=adjustment.id,
            purchase_id=adjustment.purchase_id,
            project_id=adjustment.project_id,
            project_name=adjustment.project.name if adjustment.project else None,
            marketer_id=adjustment.marketer_id,
            marketer_name=adjustment.marketer.name if adjustment.marketer else None,
            amount=adjustment.amount,
            currency=adjustment.currency,
            reason=adjustment.reason.value.lower(),
            status=adjustment.status.value.lower(),
            created_at=adjustment.created_at,
        )
        for adjustment in adjustments
    ])


def _platform_rate(project: Project):
    if project.platform_commission_percent is not None:
        return normalize_percent(project.platform_commission_percent)
    return settings.platform_commission_rate


def get_payout_preview(db: Session, creator_id: str) -> PayoutPreview:
    """What the creator owes: commissions and platform fees on releasable purchases.

    When a payout invoice is already pending, the preview covers exactly the
    purchases on that invoice.
    """
    pending_payment = db.query(CreatorPayment).filter(
        CreatorPayment.creator_id == creator_id,
        CreatorPayment.status == CreatorPaymentStatus.PENDING
    ).order_by(CreatorPayment.created_at.desc()).first()

    query = db.query(Purchase).join(Project, Purchase.project_id == Project.id)
    if pending_payment:
        query = query.filter(Purchase.creator_payment_id == pending_payment.id)
    else:
        query = query.filter(
            Project.user_id == creator_id,
            Purchase.commission_status == CommissionStatus.PENDING_CREATOR_PAYMENT,
            Purchase.creator_payment_id.is_(None)
        )
    purchases = query.order_by(Purchase.created_at).all()

    lines: List[PayoutLine] = []
    per_marketer: Dict[str, MarketerSubtotal] = {}
    for purchase in purchases:
        commission = purchase.commission_amount or 0
        platform_fee = apply_percent(purchase.amount, _platform_rate(purchase.project))
        lines.append(PayoutLine(
            purchase_id=purchase.id,
            project_id=purchase.project_id,
            marketer_id=purchase.marketer_id,
            amount=purchase.amount,
            marketer_commission=commission,
            platform_fee=platform_fee,
            merchant_net=purchase.amount - commission - platform_fee,
            currency=purchase.currency,
            created_at=purchase.created_at,
        ))
        if purchase.marketer_id:
            subtotal = per_marketer.get(purchase.marketer_id)
            if subtotal is None:
                subtotal = per_marketer[purchase.marketer_id] = MarketerSubtotal(
                    marketer_id=purchase.marketer_id,
                    marketer_name=purchase.marketer.name if purchase.marketer else None,
                    purchase_count=0,
                    commission=0,
                )
            subtotal.purchase_count += 1
            subtotal.commission += commission

    pending_adjustments = sum(
        adjustment.amount for adjustment in db.query(CommissionAdjustment).filter(
            CommissionAdjustment.creator_id == creator_id,
            CommissionAdjustment.status == AdjustmentStatus.PENDING
        ).all()
    )

    total_commission = sum(line.marketer_commission for line in lines)
    total_fee = sum(line.platform_fee for line in lines)
    totals = PayoutTotals(
        amount=sum(line.amount for line in lines),
        marketer_commission=total_commission,
        platform_fee=total_fee,
        merchant_net=sum(line.merchant_net for line in lines),
        pending_adjustments=pending_adjustments,
        amount_due=max(0, total_commission + total_fee + pending_adjustments),
    )

    return PayoutPreview(
        creator_id=creator_id,
        creator_payment_id=pending_payment.id if pending_payment else None,
        currency=lines[0].currency if lines else "usd",
        lines=lines,
        per_marketer=list(per_marketer.values()),
        totals=totals,
    )
