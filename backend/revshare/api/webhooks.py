"""Stripe webhook endpoint"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from revshare.core.exceptions import WebhookError
from revshare.db.session import get_db
from revshare.services.notification_service import BestEffortTasks
from revshare.services.webhook_service import process_stripe_webhook

router = APIRouter(prefix="/api/stripe", tags=["stripe"])
logger = logging.getLogger(__name__)


@router.post("/webhook")
async def stripe_webhook(request: Request, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """Handle Stripe webhook events

    Note: the body is read as raw bytes; signature verification needs the
    exact payload Stripe signed.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    side_effects = BestEffortTasks()
    try:
        result = process_stripe_webhook(payload, sig_header, db, side_effects)
    except WebhookError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    if len(side_effects):
        background_tasks.add_task(side_effects.run_all)
    return result
