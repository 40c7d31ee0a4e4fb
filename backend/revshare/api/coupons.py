"""Coupon claim endpoint"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from revshare.core.exceptions import CouponClaimError
from revshare.core.security import require_internal_token
from revshare.db.session import get_db
from revshare.models.coupon import Coupon
from revshare.schemas.coupons import CouponClaimRequest, CouponClaimResponse, CouponOut
from revshare.services.coupon_service import claim_coupon

router = APIRouter(prefix="/api/coupons", tags=["coupons"], dependencies=[Depends(require_internal_token)])
logger = logging.getLogger(__name__)


def _coupon_out(coupon: Coupon) -> CouponOut:
    return CouponOut(
        id=coupon.id,
        project_id=coupon.project_id,
        template_id=coupon.template_id,
        marketer_id=coupon.marketer_id,
        code=coupon.code,
        stripe_promotion_code_id=coupon.stripe_promotion_code_id,
        percent_off=coupon.percent_off,
        commission_percent=float(coupon.commission_percent),
        status=coupon.status.value,
        claimed_at=coupon.claimed_at,
    )


@router.post("/claim")
def claim(request_data: CouponClaimRequest, db: Session = Depends(get_db)):
    """Claim (or fetch) the marketer's promotion code for a coupon template"""
    try:
        coupon, created = claim_coupon(
            db,
            request_data.project_id,
            request_data.template_id,
            request_data.marketer_id,
            request_data.code,
        )
    except CouponClaimError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    body = CouponClaimResponse(coupon=_coupon_out(coupon), created=created)
    return JSONResponse(status_code=201 if created else 200, content=body.model_dump(mode="json"))
