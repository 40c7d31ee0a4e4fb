"""Stripe webhook router: verify, log, dedupe, dispatch"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from revshare.core.config import settings
from revshare.core.exceptions import UnresolvableProjectError, WebhookError
from revshare.core.logging import webhook_logger
from revshare.core.metrics import webhook_events_counter
from revshare.core.otel import get_tracer
from revshare.schemas.stripe_events import (
    PAYMENT_EVENT_PARSERS,
    DisputeDetails,
    PaymentDetails,
    parse_payment_event,
    parse_refund_event,
    promotion_code_from_discounts,
)
from revshare.services import stripe_service
from revshare.services.attribution_service import resolve_attribution, resolve_project
from revshare.services.notification_service import BestEffortTasks
from revshare.services.payout_service import complete_creator_payment
from revshare.services.purchase_service import record_purchase
from revshare.services.reconciliation_service import reconcile_dispute, reconcile_refund
from revshare.utils.stripe_objects import get_nested, get_stripe_value

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

REFUND_EVENT_TYPES = {
    "charge.refunded",
    "charge.refund.updated",
    "refund.created",
    "refund.updated",
}

DISPUTE_EVENT_TYPES = {
    "charge.dispute.created",
    "charge.dispute.updated",
    "charge.dispute.closed",
    "charge.dispute.funds_withdrawn",
    "charge.dispute.funds_reinstated",
}


def process_stripe_webhook(
    payload: bytes,
    sig_header: Optional[str],
    db: Session,
    side_effects: Optional[BestEffortTasks] = None,
) -> Dict[str, Any]:
    """Process Stripe webhook event

    Validates the signature against every configured secret, logs the event
    for idempotency and dispatches by type. Side effects queued by the
    handlers are moved onto ``side_effects`` after a successful commit, or run
    inline when no queue is given.

    Raises:
        WebhookError: signature/configuration problems and unresolvable events,
            carrying the HTTP status to answer with
        Exception: anything else (transaction failures) propagates so Stripe retries
    """
    event = stripe_service.verify_webhook_event(payload, sig_header, settings.webhook_secrets)
    event_id = event["id"]
    event_type = event["type"]

    with tracer.start_as_current_span("stripe.webhook") as span:
        span.set_attribute("stripe.event_id", event_id)
        span.set_attribute("stripe.event_type", event_type)

        stripe_event = stripe_service.log_stripe_event(event_id, event_type, event, db)
        if stripe_event.processed:
            webhook_logger.info(f"Webhook event {event_id} already processed")
            webhook_events_counter.labels(event_type=event_type, outcome="duplicate").inc()
            return {"received": True, "duplicate": True}

        pending = BestEffortTasks()
        try:
            outcome = dispatch_event(event, db, pending)
        except WebhookError as e:
            db.rollback()
            webhook_logger.warning(f"Rejected webhook event {event_id} ({event_type}): {e.message}")
            stripe_service.record_stripe_event_error(event_id, db, e.message)
            webhook_events_counter.labels(event_type=event_type, outcome="rejected").inc()
            span.set_attribute("stripe.outcome", "rejected")
            raise
        except Exception as e:
            db.rollback()
            webhook_logger.error(f"Error processing webhook {event_id} ({event_type}): {e}", exc_info=True)
            stripe_service.record_stripe_event_error(event_id, db, str(e))
            webhook_events_counter.labels(event_type=event_type, outcome="failed").inc()
            span.set_attribute("stripe.outcome", "failed")
            raise

        stripe_service.mark_stripe_event_processed(event_id, db)
        webhook_events_counter.labels(event_type=event_type, outcome=outcome).inc()
        span.set_attribute("stripe.outcome", outcome)
        webhook_logger.info(f"Processed webhook event {event_id} of type {event_type}: {outcome}")

    if side_effects is not None:
        side_effects.extend(pending)
    else:
        pending.run_all()
    return {"received": True}


def dispatch_event(event: Dict[str, Any], db: Session, tasks: BestEffortTasks) -> str:
    """Route one verified event to its handler; returns an outcome label."""
    event_id = event["id"]
    event_type = event["type"]
    obj = get_nested(event, "data", "object", default={})
    account_id = event.get("account")

    if event_type == "checkout.session.completed":
        creator_payment_id = get_nested(obj, "metadata", "creatorPaymentId")
        if creator_payment_id:
            complete_creator_payment(db, tasks, str(creator_payment_id), obj)
            return "creator_payment"

    if event_type in PAYMENT_EVENT_PARSERS:
        purchase = handle_payment_event(db, tasks, event_id, event_type, obj, account_id)
        return "purchase_created" if purchase else "duplicate_purchase"

    if event_type in REFUND_EVENT_TYPES:
        purchase = reconcile_refund(db, tasks, event_id, parse_refund_event(event_type, obj))
        return "refund_applied" if purchase else "refund_noop"

    if event_type in DISPUTE_EVENT_TYPES:
        purchase = reconcile_dispute(db, tasks, event_id, DisputeDetails.from_stripe(obj))
        return "dispute_applied" if purchase else "dispute_noop"

    logger.debug(f"Ignoring unhandled event type {event_type}")
    return "ignored"


def handle_payment_event(
    db: Session,
    tasks: BestEffortTasks,
    event_id: str,
    event_type: str,
    obj: Any,
    account_id: Optional[str],
):
    details = parse_payment_event(event_type, obj)
    if not details.promotion_code_id and account_id and details.can_refetch_discounts:
        details = refetch_promotion_code(details, account_id)

    project = resolve_project(db, account_id, details.promotion_code_id, details.project_id_hint)
    if project is None:
        raise UnresolvableProjectError(
            f"Unable to resolve project for {event_type} {event_id}: "
            "bind the connected account to a project or set metadata.projectId"
        )

    attribution = resolve_attribution(db, project, details.promotion_code_id)
    return record_purchase(db, tasks, event_id, details, project, attribution)


def refetch_promotion_code(details: PaymentDetails, account_id: str) -> PaymentDetails:
    """Connect webhooks sometimes omit discounts; read the object back with them expanded."""
    if details.source == "checkout.session.completed":
        fresh = stripe_service.retrieve_checkout_session_with_discounts(details.stripe_object_id, account_id)
    else:
        fresh = stripe_service.retrieve_invoice_with_discounts(details.stripe_object_id, account_id)
    if fresh is None:
        return details

    promotion_code_id = promotion_code_from_discounts(get_stripe_value(fresh, "discounts"))
    if not promotion_code_id:
        return details
    logger.info(f"Recovered promotion code {promotion_code_id} for {details.source} {details.stripe_object_id}")
    return details.model_copy(update={"promotion_code_id": promotion_code_id})
