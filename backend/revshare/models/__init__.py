"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from revshare.models.base import Base
from revshare.models.user import User
from revshare.models.project import Project
from revshare.models.contract import Contract
from revshare.models.coupon import Coupon, CouponTemplate
from revshare.models.creator_payment import CreatorPayment
from revshare.models.purchase import Purchase
from revshare.models.commission_adjustment import CommissionAdjustment
from revshare.models.event import Event
from revshare.models.notification import Notification
from revshare.models.stripe_event import StripeEvent

# Export all for convenience
__all__ = [
    "Base", "User", "Project", "Contract", "Coupon", "CouponTemplate",
    "CreatorPayment", "Purchase", "CommissionAdjustment", "Event",
    "Notification", "StripeEvent"
]
