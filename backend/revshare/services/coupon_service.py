"""Coupon claims: hand a marketer a Stripe promotion code for a project's template"""
import logging
import re
import secrets
from datetime import datetime
from typing import Optional, Tuple

import stripe
from sqlalchemy.orm import Session

from revshare.core.exceptions import CouponClaimError
from revshare.models.base import new_id
from revshare.models.contract import Contract
from revshare.models.coupon import Coupon, CouponTemplate
from revshare.models.enums import ContractStatus, CouponStatus, UserRole
from revshare.models.project import Project
from revshare.models.user import User
from revshare.services.stripe_service import create_promotion_code
from revshare.utils.dates import ensure_utc, utcnow
from revshare.utils.stripe_objects import get_stripe_value

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9_-]{2,39}$")


def generate_promo_code(template_name: str) -> str:
    """PREFIX-XXXXXX where the prefix comes from the template name."""
    prefix = re.sub(r"[^A-Za-z0-9]", "", template_name or "").upper()[:6] or "REV"
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
    return f"{prefix}-{suffix}"


def _normalize_requested_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    normalized = code.strip().upper()
    if not normalized:
        return None
    if not CODE_PATTERN.match(normalized):
        raise CouponClaimError("Code must be 3-40 characters of letters, digits, '-' or '_'", 400)
    return normalized


def claim_coupon(
    db: Session,
    project_id: str,
    template_id: str,
    marketer_id: str,
    requested_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Coupon, bool]:
    """Return the marketer's active coupon for the template, creating it if needed.

    Returns (coupon, created). Raises CouponClaimError with the HTTP status to
    send back when the claim is not allowed.
    """
    now = now or utcnow()
    code = _normalize_requested_code(requested_code)

    project = db.get(Project, project_id)
    if not project:
        raise CouponClaimError("Project not found", 404)

    marketer = db.get(User, marketer_id)
    if not marketer or marketer.role != UserRole.MARKETER:
        raise CouponClaimError("Marketer not found", 404)

    if not project.creator_stripe_account_id:
        raise CouponClaimError("Project has no connected Stripe account", 400)

    template = db.get(CouponTemplate, template_id)
    if not template or template.project_id != project.id:
        raise CouponClaimError("Coupon template not found", 404)

    if template.status != CouponStatus.ACTIVE:
        raise CouponClaimError("Coupon template is not active", 400)

    start_at = ensure_utc(template.start_at)
    end_at = ensure_utc(template.end_at)
    if (start_at and now < start_at) or (end_at and now > end_at):
        raise CouponClaimError("Coupon template is outside its active window", 400)

    allowed = template.allowed_marketer_ids or []
    if allowed and marketer.id not in allowed:
        raise CouponClaimError("Marketer is not allowed to claim this coupon", 403)

    existing = db.query(Coupon).filter(
        Coupon.template_id == template.id,
        Coupon.marketer_id == marketer.id,
        Coupon.status == CouponStatus.ACTIVE
    ).first()
    if existing:
        return existing, False

    contract = db.query(Contract).filter(
        Contract.project_id == project.id,
        Contract.user_id == marketer.id
    ).first()
    if not contract:
        raise CouponClaimError("Contract not found", 404)
    if contract.status != ContractStatus.APPROVED:
        raise CouponClaimError("Contract is not approved", 403)

    code = code or generate_promo_code(template.name)
    try:
        promotion_code = create_promotion_code(
            template.stripe_coupon_id,
            code,
            project.creator_stripe_account_id,
            metadata={
                "projectId": project.id,
                "templateId": template.id,
                "marketerId": marketer.id,
            },
        )
    except stripe.InvalidRequestError as e:
        logger.warning(f"Stripe rejected promotion code {code} for template {template.id}: {e}")
        raise CouponClaimError(getattr(e, "user_message", None) or "Stripe rejected the promotion code", 400)
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating promotion code for template {template.id}: {e}", exc_info=True)
        raise CouponClaimError("Failed to create promotion code", 502)

    coupon = Coupon(
        id=new_id(),
        project_id=project.id,
        template_id=template.id,
        marketer_id=marketer.id,
        code=get_stripe_value(promotion_code, "code", code),
        stripe_coupon_id=template.stripe_coupon_id,
        stripe_promotion_code_id=get_stripe_value(promotion_code, "id"),
        percent_off=template.percent_off,
        commission_percent=contract.commission_percent,
        status=CouponStatus.ACTIVE,
        claimed_at=now,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)

    logger.info(f"Marketer {marketer.id} claimed coupon {coupon.code} on template {template.id}")
    return coupon, True
