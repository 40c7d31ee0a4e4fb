"""Exception taxonomy for webhook processing and the coupon-claim collaborator"""


class WebhookError(Exception):
    """Webhook failure that maps to a specific HTTP status"""
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class WebhookConfigurationError(WebhookError):
    """No signing secret configured"""
    status_code = 500


class WebhookSignatureError(WebhookError):
    """Missing header, malformed payload, or no configured secret verified the signature"""
    status_code = 400


class UnresolvableProjectError(WebhookError):
    """Purchase event that cannot be bound to a project (operator configuration error)"""
    status_code = 400


class CreatorPaymentNotFoundError(WebhookError):
    status_code = 400


class PurchaseNotFoundError(WebhookError):
    """Refund or dispute for a purchase not recorded yet; the event stays unprocessed so Stripe redelivers it"""
    status_code = 404


class CouponClaimError(Exception):
    """Coupon claim rejected; status_code is the HTTP status returned to the caller"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
