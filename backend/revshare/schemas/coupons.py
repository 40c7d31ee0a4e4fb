"""Pydantic schemas for coupon claims"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CouponClaimRequest(BaseModel):
    project_id: str = Field(alias="projectId")
    template_id: str = Field(alias="templateId")
    marketer_id: str = Field(alias="marketerId")
    code: Optional[str] = None

    model_config = {"populate_by_name": True}


class CouponOut(BaseModel):
    id: str
    project_id: str
    template_id: Optional[str] = None
    marketer_id: str
    code: str
    stripe_promotion_code_id: str
    percent_off: int
    commission_percent: float
    status: str
    claimed_at: datetime

    model_config = {"from_attributes": True}


class CouponClaimResponse(BaseModel):
    coupon: CouponOut
    created: bool
