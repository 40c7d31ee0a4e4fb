"""Notifications and best-effort side effects.

Notification rows are written in the caller's transaction. Everything that
talks to the outside world (realtime publish, email) is queued on a
BestEffortTasks instance and only runs after the caller has committed; a
failure there is logged and counted and never reaches the webhook response.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from revshare.core.config import settings
from revshare.core.metrics import side_effect_failures_counter
from revshare.db.redis import publish_user_event
from revshare.models.base import new_id
from revshare.models.enums import NotificationType
from revshare.models.notification import Notification
from revshare.models.user import User
from revshare.services.email_service import send_notification_email
from revshare.utils.money import format_minor_units

logger = logging.getLogger(__name__)

# Notification types that are also mirrored by email
EMAIL_NOTIFICATION_TYPES = {
    NotificationType.SALE,
    NotificationType.COMMISSION_DUE,
    NotificationType.CHARGEBACK,
}


def run_best_effort(kind: str, func: Callable, *args, **kwargs) -> bool:
    """Call func, swallowing and logging any exception. Returns True on success."""
    try:
        func(*args, **kwargs)
        return True
    except Exception as e:
        logger.error(f"Best-effort {kind} task failed: {e}", exc_info=True)
        side_effect_failures_counter.labels(kind=kind).inc()
        return False


class BestEffortTasks:
    """Queue of side effects that run after the ledger transaction commits"""

    def __init__(self):
        self._tasks: List[Tuple[str, Callable, tuple, dict]] = []

    def __len__(self):
        return len(self._tasks)

    def add(self, kind: str, func: Callable, *args, **kwargs):
        self._tasks.append((kind, func, args, kwargs))

    def extend(self, other: "BestEffortTasks"):
        self._tasks.extend(other._tasks)
        other._tasks = []

    def run_all(self) -> int:
        """Run and drain every queued task; returns how many failed."""
        tasks, self._tasks = self._tasks, []
        failures = 0
        for kind, func, args, kwargs in tasks:
            if not run_best_effort(kind, func, *args, **kwargs):
                failures += 1
        return failures


# ============================================================================
# MESSAGES
# ============================================================================

def referral_sale_message(commission_amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "New referral sale",
        "message": f"You earned {format_minor_units(commission_amount, currency)} in commission.",
    }


def commission_due_message(project_name: str, amount: int, commission_amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "Commission due",
        "message": (
            f"Sale {format_minor_units(amount, currency)} · "
            f"Commission {format_minor_units(commission_amount, currency)} for {project_name}."
        ),
    }


def new_sale_message(project_name: str, amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "New sale",
        "message": f"Sale {format_minor_units(amount, currency)} for {project_name}.",
    }


def refund_recorded_message(project_name: str, refunded_amount: int, commission_amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "Refund recorded",
        "message": (
            f"Refund {format_minor_units(refunded_amount, currency)} for {project_name}. "
            f"Commission now {format_minor_units(commission_amount, currency)}."
        ),
    }


def chargeback_opened_message(project_name: str, amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "Chargeback opened",
        "message": (
            f"Chargeback opened for {project_name} ({format_minor_units(amount, currency)}). "
            "Commission is on hold."
        ),
    }


def chargeback_resolved_message(project_name: str, amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "Chargeback resolved",
        "message": (
            f"Chargeback resolved in the merchant's favor for {project_name} "
            f"({format_minor_units(amount, currency)}). Commission restored."
        ),
    }


def chargeback_lost_message(project_name: str, commission_amount: int, currency: str) -> Dict[str, str]:
    return {
        "title": "Chargeback lost",
        "message": (
            f"Chargeback lost for {project_name}. "
            f"Commission of {format_minor_units(commission_amount, currency)} reversed."
        ),
    }


def payout_invoice_paid_message() -> Dict[str, str]:
    return {
        "title": "Payment received",
        "message": "Your payout invoice has been paid. Marketer transfers can now be processed.",
    }


# ============================================================================
# DISPATCH
# ============================================================================

def dispatch_notification(
    db: Session,
    tasks: BestEffortTasks,
    user_id: Optional[str],
    notification_type: NotificationType,
    content: Dict[str, str],
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Notification]:
    """Add a notification row and queue its realtime publish and optional email."""
    if not user_id:
        return None

    notification = Notification(
        id=new_id(),
        user_id=user_id,
        type=notification_type,
        title=content["title"],
        message=content["message"],
        data=data or {},
    )
    db.add(notification)

    tasks.add(
        "realtime",
        publish_user_event,
        user_id,
        "notification_created",
        {
            "id": notification.id,
            "type": notification_type.value,
            "title": notification.title,
            "message": notification.message,
            "data": notification.data,
        },
    )

    if notification_type in EMAIL_NOTIFICATION_TYPES and settings.RESEND_API_KEY:
        user = db.get(User, user_id)
        if user and user.email:
            tasks.add("email", _send_or_raise, user.email, content["title"], content["message"])

    return notification


def _send_or_raise(to: str, title: str, message: str):
    # send_notification_email reports failure by return value; surface it so it is counted
    if not send_notification_email(to, title, message):
        raise RuntimeError(f"Notification email to {to} was not sent")
