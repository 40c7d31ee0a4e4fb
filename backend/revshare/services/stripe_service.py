"""Stripe API surface: webhook verification, the event log, and Connect calls"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revshare.core.config import settings
from revshare.core.exceptions import WebhookConfigurationError, WebhookSignatureError
from revshare.core.logging import security_logger
from revshare.models.stripe_event import StripeEvent
from revshare.utils.stripe_objects import get_stripe_value

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY

# ============================================================================
# WEBHOOK VERIFICATION
# ============================================================================

def verify_webhook_event(payload: bytes, sig_header: Optional[str], secrets: List[str]) -> Dict[str, Any]:
    """Verify the signature against each configured secret in order.

    The first secret that verifies wins; the event is rejected only when every
    secret fails. Returns the event as a plain dict.

    Raises:
        WebhookConfigurationError: no secret configured
        WebhookSignatureError: missing header, bad payload, or no secret verified
    """
    if not secrets:
        logger.error("Webhook secret not configured")
        raise WebhookConfigurationError("Webhook secret not configured")

    if not sig_header:
        security_logger.warning("Stripe webhook received without signature header")
        raise WebhookSignatureError("Missing stripe-signature header")

    for index, secret in enumerate(secrets):
        try:
            stripe.Webhook.construct_event(payload, sig_header, secret)
        except stripe.SignatureVerificationError:
            continue
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise WebhookSignatureError("Invalid payload")

        if index > 0:
            logger.info(f"Webhook verified with secret #{index + 1} of {len(secrets)}")
        event = json.loads(payload)
        if not isinstance(event, dict) or "id" not in event or "type" not in event:
            raise WebhookSignatureError("Invalid payload")
        return event

    security_logger.warning(f"Stripe webhook signature did not match any of {len(secrets)} secret(s)")
    raise WebhookSignatureError("Invalid signature")


# ============================================================================
# EVENT LOG
# ============================================================================

def log_stripe_event(event_id: str, event_type: str, payload: dict, db: Session) -> StripeEvent:
    """Fetch or create the delivery log row for an event.

    A concurrent delivery may insert the same row between our read and write;
    the unique constraint rejects ours and we read theirs.
    """
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        return stripe_event

    stripe_event = StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        payload=payload,
        processed=False
    )
    db.add(stripe_event)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Stripe event {event_id} logged concurrently by another delivery")
        return db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).one()
    db.refresh(stripe_event)
    return stripe_event


def mark_stripe_event_processed(event_id: str, db: Session):
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        stripe_event.processed = True
        stripe_event.processed_at = datetime.now(timezone.utc)
        stripe_event.error_message = None
        db.commit()


def record_stripe_event_error(event_id: str, db: Session, error_message: str):
    """Keep the failure on the log row; the event stays unprocessed so a retry re-drives it."""
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        stripe_event.error_message = error_message[:2000]
        db.commit()


# ============================================================================
# CONNECT API CALLS
# ============================================================================

def retrieve_checkout_session_with_discounts(session_id: str, account_id: str):
    """Re-read a Checkout Session on the connected account with promotion codes expanded."""
    try:
        return stripe.checkout.Session.retrieve(
            session_id,
            expand=["discounts.promotion_code"],
            stripe_account=account_id,
        )
    except stripe.StripeError as e:
        logger.warning(f"Failed to re-fetch checkout session {session_id} on {account_id}: {e}")
        return None


def retrieve_invoice_with_discounts(invoice_id: str, account_id: str):
    """Re-read an Invoice on the connected account with discounts expanded."""
    try:
        return stripe.Invoice.retrieve(
            invoice_id,
            expand=["discounts"],
            stripe_account=account_id,
        )
    except stripe.StripeError as e:
        logger.warning(f"Failed to re-fetch invoice {invoice_id} on {account_id}: {e}")
        return None


def create_promotion_code(stripe_coupon_id: str, code: str, account_id: str, metadata: Dict[str, str]):
    """Create a promotion code for a coupon that lives on the connected account.

    Stripe errors propagate; the claim endpoint maps them to a response.
    """
    promotion_code = stripe.PromotionCode.create(
        promotion={"type": "coupon", "coupon": stripe_coupon_id},
        code=code,
        metadata=metadata,
        stripe_account=account_id,
    )
    logger.info(f"Created promotion code {get_stripe_value(promotion_code, 'id')} ({code}) on {account_id}")
    return promotion_code
