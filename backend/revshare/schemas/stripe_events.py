"""Normalized projections of the Stripe objects the ledger consumes.

Each payment event type gets its own variant, tagged by ``source``, so business
logic works on one shape instead of narrowing Stripe unions inline.
"""
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict

from revshare.utils.stripe_objects import get_nested, get_stripe_value, list_data, object_id


def promotion_code_from_discounts(discounts: Any) -> Optional[str]:
    """Promotion code id of the first discount, whether expanded or not."""
    items = list_data(discounts)
    if not items:
        return None
    first = items[0]
    if isinstance(first, str):
        # Unexpanded discount id carries no promotion code
        return None
    return object_id(get_stripe_value(first, "promotion_code"))


def _metadata_value(obj: Any, key: str) -> Optional[str]:
    metadata = get_stripe_value(obj, "metadata") or {}
    value = get_stripe_value(metadata, key)
    return str(value) if value else None


class PaymentDetails(BaseModel):
    """Fields every purchase-creating event is reduced to"""
    model_config = ConfigDict(frozen=True)

    source: str
    stripe_object_id: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    customer_email: Optional[str] = None
    charge_id: Optional[str] = None
    invoice_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    promotion_code_id: Optional[str] = None
    project_id_hint: Optional[str] = None

    @property
    def lookup_keys(self) -> Dict[str, str]:
        """Non-empty alternate ids, keyed by Purchase column name."""
        keys = {
            "stripe_charge_id": self.charge_id,
            "stripe_invoice_id": self.invoice_id,
            "stripe_payment_intent_id": self.payment_intent_id,
        }
        return {column: value for column, value in keys.items() if value}

    @property
    def can_refetch_discounts(self) -> bool:
        return False


class CheckoutSessionPayment(PaymentDetails):
    source: Literal["checkout.session.completed"] = "checkout.session.completed"

    @classmethod
    def from_stripe(cls, session: Any) -> "CheckoutSessionPayment":
        amount = get_stripe_value(session, "amount_total")
        if amount is None:
            amount = get_stripe_value(session, "amount_subtotal", 0)
        return cls(
            stripe_object_id=get_stripe_value(session, "id"),
            amount=amount,
            currency=get_stripe_value(session, "currency", "usd"),
            customer_email=(
                get_nested(session, "customer_details", "email")
                or get_stripe_value(session, "customer_email")
            ),
            invoice_id=object_id(get_stripe_value(session, "invoice")),
            payment_intent_id=object_id(get_stripe_value(session, "payment_intent")),
            promotion_code_id=promotion_code_from_discounts(get_stripe_value(session, "discounts")),
            project_id_hint=(
                _metadata_value(session, "projectId")
                or get_stripe_value(session, "client_reference_id")
            ),
        )

    @property
    def can_refetch_discounts(self) -> bool:
        return bool(self.stripe_object_id)


class InvoicePayment(PaymentDetails):
    source: Literal["invoice.payment_succeeded"] = "invoice.payment_succeeded"

    @classmethod
    def from_stripe(cls, invoice: Any) -> "InvoicePayment":
        return cls(
            stripe_object_id=get_stripe_value(invoice, "id"),
            amount=get_stripe_value(invoice, "amount_paid", 0),
            currency=get_stripe_value(invoice, "currency", "usd"),
            customer_email=get_stripe_value(invoice, "customer_email"),
            charge_id=object_id(get_stripe_value(invoice, "charge")),
            invoice_id=get_stripe_value(invoice, "id"),
            payment_intent_id=object_id(get_stripe_value(invoice, "payment_intent")),
            promotion_code_id=promotion_code_from_discounts(get_stripe_value(invoice, "discounts")),
            project_id_hint=(
                _metadata_value(invoice, "projectId")
                or _metadata_value(get_nested(invoice, "parent", "subscription_details"), "projectId")
                or _metadata_value(get_stripe_value(invoice, "subscription_details"), "projectId")
            ),
        )

    @property
    def can_refetch_discounts(self) -> bool:
        return bool(self.stripe_object_id)


class ChargePayment(PaymentDetails):
    source: Literal["charge.succeeded"] = "charge.succeeded"

    @classmethod
    def from_stripe(cls, charge: Any) -> "ChargePayment":
        return cls(
            stripe_object_id=get_stripe_value(charge, "id"),
            amount=get_stripe_value(charge, "amount", 0),
            currency=get_stripe_value(charge, "currency", "usd"),
            customer_email=(
                get_nested(charge, "billing_details", "email")
                or get_stripe_value(charge, "receipt_email")
            ),
            charge_id=get_stripe_value(charge, "id"),
            invoice_id=object_id(get_stripe_value(charge, "invoice")),
            payment_intent_id=object_id(get_stripe_value(charge, "payment_intent")),
            promotion_code_id=promotion_code_from_discounts(get_stripe_value(charge, "discounts")),
            project_id_hint=_metadata_value(charge, "projectId"),
        )


class PaymentIntentPayment(PaymentDetails):
    source: Literal["payment_intent.succeeded"] = "payment_intent.succeeded"

    @classmethod
    def from_stripe(cls, intent: Any) -> "PaymentIntentPayment":
        return cls(
            stripe_object_id=get_stripe_value(intent, "id"),
            amount=get_stripe_value(intent, "amount", 0),
            currency=get_stripe_value(intent, "currency", "usd"),
            payment_intent_id=get_stripe_value(intent, "id"),
            project_id_hint=_metadata_value(intent, "projectId"),
        )


AnyPayment = Union[CheckoutSessionPayment, InvoicePayment, ChargePayment, PaymentIntentPayment]

PAYMENT_EVENT_PARSERS: Dict[str, Type[PaymentDetails]] = {
    "checkout.session.completed": CheckoutSessionPayment,
    "invoice.payment_succeeded": InvoicePayment,
    "charge.succeeded": ChargePayment,
    "payment_intent.succeeded": PaymentIntentPayment,
}


def parse_payment_event(event_type: str, obj: Any) -> Optional[AnyPayment]:
    parser = PAYMENT_EVENT_PARSERS.get(event_type)
    if parser is None:
        return None
    return parser.from_stripe(obj)


class RefundDetails(BaseModel):
    """A refund as reported by either a Charge (authoritative total) or a Refund object (increment)"""
    model_config = ConfigDict(frozen=True)

    charge_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    invoice_id: Optional[str] = None
    currency: str = "usd"
    # Refunded-to-date reported by the charge; preferred when present
    refunded_total: Optional[int] = None
    # Single refund increment reported by a Refund object
    refund_id: Optional[str] = None
    refund_amount: Optional[int] = None
    refund_ids: List[str] = []
    succeeded: bool = True

    @classmethod
    def from_charge(cls, charge: Any) -> "RefundDetails":
        refunds = list_data(get_stripe_value(charge, "refunds"))
        return cls(
            charge_id=get_stripe_value(charge, "id"),
            payment_intent_id=object_id(get_stripe_value(charge, "payment_intent")),
            invoice_id=object_id(get_stripe_value(charge, "invoice")),
            currency=get_stripe_value(charge, "currency", "usd"),
            refunded_total=get_stripe_value(charge, "amount_refunded", 0),
            refund_ids=[
                get_stripe_value(refund, "id") for refund in refunds
                if get_stripe_value(refund, "id") and get_stripe_value(refund, "status", "succeeded") == "succeeded"
            ],
        )

    @classmethod
    def from_refund(cls, refund: Any) -> "RefundDetails":
        refund_id = get_stripe_value(refund, "id")
        return cls(
            charge_id=object_id(get_stripe_value(refund, "charge")),
            payment_intent_id=object_id(get_stripe_value(refund, "payment_intent")),
            currency=get_stripe_value(refund, "currency", "usd"),
            refund_id=refund_id,
            refund_amount=get_stripe_value(refund, "amount", 0),
            refund_ids=[refund_id] if refund_id else [],
            succeeded=get_stripe_value(refund, "status", "succeeded") == "succeeded",
        )


def parse_refund_event(event_type: str, obj: Any) -> RefundDetails:
    """charge.refunded carries a Charge; charge.refund.* and refund.* carry a Refund."""
    if event_type == "charge.refunded":
        return RefundDetails.from_charge(obj)
    return RefundDetails.from_refund(obj)


class DisputeDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    dispute_id: str
    charge_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    status: str = ""

    @property
    def is_won(self) -> bool:
        return self.status == "won"

    @classmethod
    def from_stripe(cls, dispute: Any) -> "DisputeDetails":
        return cls(
            dispute_id=get_stripe_value(dispute, "id", ""),
            charge_id=object_id(get_stripe_value(dispute, "charge")),
            payment_intent_id=object_id(get_stripe_value(dispute, "payment_intent")),
            amount=get_stripe_value(dispute, "amount", 0),
            currency=get_stripe_value(dispute, "currency", "usd"),
            status=get_stripe_value(dispute, "status", ""),
        )
