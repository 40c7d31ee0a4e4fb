"""Audit event log"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from revshare.models.base import new_id
from revshare.models.event import Event

logger = logging.getLogger(__name__)

# Event types written by the ledger
PURCHASE_CREATED = "PURCHASE_CREATED"
PURCHASE_REFUNDED = "PURCHASE_REFUNDED"
PURCHASE_CHARGEBACK = "PURCHASE_CHARGEBACK"
PURCHASE_CHARGEBACK_RESOLVED = "PURCHASE_CHARGEBACK_RESOLVED"
CREATOR_PAYMENT_COMPLETED = "CREATOR_PAYMENT_COMPLETED"


def record_event(
    db: Session,
    event_type: str,
    subject_type: str,
    subject_id: str,
    data: Optional[Dict[str, Any]] = None,
    actor_id: Optional[str] = None,
    project_id: Optional[str] = None,
) -> Event:
    """Add an audit row to the current transaction (caller commits)."""
    event = Event(
        id=new_id(),
        type=event_type,
        actor_id=actor_id,
        project_id=project_id,
        subject_type=subject_type,
        subject_id=subject_id,
        data=data or {},
    )
    db.add(event)
    logger.debug(f"Recorded {event_type} for {subject_type} {subject_id}")
    return event
