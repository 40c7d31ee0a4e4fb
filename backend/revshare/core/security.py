"""Security dependencies"""
import secrets
from typing import Optional

from fastapi import Header, HTTPException

from revshare.core.config import settings
from revshare.core.logging import security_logger


def require_internal_token(
    x_internal_token: Optional[str] = Header(None, alias="X-Internal-Token")
) -> None:
    """Dependency: Require the shared token used by the dashboard backend"""
    if not settings.INTERNAL_API_TOKEN:
        security_logger.error("INTERNAL_API_TOKEN not configured; rejecting internal request")
        raise HTTPException(503, "Internal API not configured")

    if not x_internal_token or not secrets.compare_digest(x_internal_token, settings.INTERNAL_API_TOKEN):
        security_logger.warning("Internal API request with missing or invalid token")
        raise HTTPException(401, "Invalid internal token")
