"""Creator-facing read endpoints for payouts and adjustments"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from revshare.core.security import require_internal_token
from revshare.db.session import get_db
from revshare.models.user import User
from revshare.schemas.payouts import AdjustmentList, PayoutPreview
from revshare.services.payout_service import get_payout_preview, list_creator_adjustments

router = APIRouter(prefix="/api/creator", tags=["creator"], dependencies=[Depends(require_internal_token)])


def _require_creator(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    return user


@router.get("/adjustments", response_model=AdjustmentList)
def get_adjustments(
    user_id: str = Query(..., alias="userId"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """Commission adjustments recorded against the creator's projects, newest first"""
    _require_creator(db, user_id)
    return list_creator_adjustments(db, user_id, limit)


@router.get("/payouts/preview", response_model=PayoutPreview)
def get_preview(user_id: str = Query(..., alias="userId"), db: Session = Depends(get_db)):
    _require_creator(db, user_id)
    return get_payout_preview(db, user_id)
