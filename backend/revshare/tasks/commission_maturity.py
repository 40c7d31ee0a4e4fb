"""Background job promoting commissions whose refund window has elapsed"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from revshare.core.config import settings
from revshare.core.metrics import matured_commissions_counter, maturity_runs_counter
from revshare.db.session import SessionLocal
from revshare.models.enums import CommissionStatus
from revshare.models.purchase import Purchase
from revshare.services.purchase_service import derive_commission_status
from revshare.utils.dates import utcnow

maturity_logger = logging.getLogger("maturity")


def promote_matured_commissions(db: Session, now: Optional[datetime] = None) -> int:
    """Move AWAITING_REFUND_WINDOW purchases past their eligibility date forward.

    Returns the number of purchases promoted.
    """
    now = now or utcnow()
    candidates = db.query(Purchase).filter(
        Purchase.commission_status == CommissionStatus.AWAITING_REFUND_WINDOW,
        Purchase.refund_eligible_at.isnot(None),
        Purchase.refund_eligible_at <= now
    ).with_for_update().all()

    promoted = 0
    for purchase in candidates:
        next_status = derive_commission_status(purchase, now)
        if next_status != purchase.commission_status:
            purchase.commission_status = next_status
            promoted += 1

    db.commit()
    if promoted:
        matured_commissions_counter.inc(promoted)
        maturity_logger.info(f"Promoted {promoted} commission(s) out of the refund window")
    return promoted


async def commission_maturity_task():
    """Run promote_matured_commissions every COMMISSION_MATURITY_INTERVAL_SECONDS."""
    while True:
        try:
            await asyncio.sleep(settings.COMMISSION_MATURITY_INTERVAL_SECONDS)

            db = SessionLocal()
            try:
                promote_matured_commissions(db)
                maturity_runs_counter.labels(status="success").inc()
            finally:
                db.close()

        except asyncio.CancelledError:
            raise
        except Exception as e:
            maturity_logger.error(f"Error in commission maturity task: {e}", exc_info=True)
            maturity_runs_counter.labels(status="failure").inc()
