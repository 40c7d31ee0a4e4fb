"""Pydantic schemas for creator payout views"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AdjustmentOut(BaseModel):
    id: str
    purchase_id: Optional[str] = None
    project_id: str
    project_name: Optional[str] = None
    marketer_id: str
    marketer_name: Optional[str] = None
    amount: int
    currency: str
    reason: str  # lower-cased for dashboards
    status: str
    created_at: datetime


class AdjustmentList(BaseModel):
    data: List[AdjustmentOut]


class PayoutLine(BaseModel):
    purchase_id: str
    project_id: str
    marketer_id: Optional[str] = None
    amount: int
    marketer_commission: int
    platform_fee: int
    merchant_net: int
    currency: str
    created_at: datetime


class MarketerSubtotal(BaseModel):
    marketer_id: str
    marketer_name: Optional[str] = None
    purchase_count: int
    commission: int


class PayoutTotals(BaseModel):
    amount: int
    marketer_commission: int
    platform_fee: int
    merchant_net: int
    pending_adjustments: int  # signed sum of PENDING adjustments
    amount_due: int  # commission + platform fee + pending adjustments, floored at 0


class PayoutPreview(BaseModel):
    creator_id: str
    creator_payment_id: Optional[str] = None
    currency: str
    lines: List[PayoutLine]
    per_marketer: List[MarketerSubtotal]
    totals: PayoutTotals
