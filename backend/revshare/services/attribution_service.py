"""Attribution: bind a payment to a project and, through a coupon, to a marketer"""
import logging
from fractions import Fraction
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from revshare.models.contract import Contract
from revshare.models.coupon import Coupon
from revshare.models.enums import ContractStatus
from revshare.models.project import Project
from revshare.utils.money import normalize_percent

logger = logging.getLogger(__name__)


class Attribution(BaseModel):
    """Result of resolving a promotion code; empty when the sale is unattributed"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    coupon: Optional[Coupon] = None
    contract: Optional[Contract] = None
    commission_percent: Fraction = Fraction(0)

    @property
    def is_attributed(self) -> bool:
        return self.coupon is not None

    @property
    def coupon_id(self) -> Optional[str]:
        return self.coupon.id if self.coupon else None

    @property
    def marketer_id(self) -> Optional[str]:
        return self.coupon.marketer_id if self.coupon else None


UNATTRIBUTED = Attribution()


def find_coupon_by_promotion_code(db: Session, promotion_code_id: Optional[str]) -> Optional[Coupon]:
    if not promotion_code_id:
        return None
    return db.query(Coupon).filter(Coupon.stripe_promotion_code_id == promotion_code_id).first()


def resolve_project(
    db: Session,
    account_id: Optional[str],
    promotion_code_id: Optional[str],
    project_id_hint: Optional[str],
) -> Optional[Project]:
    """Connected account first, then the coupon's project, then metadata.projectId."""
    if account_id:
        project = db.query(Project).filter(Project.creator_stripe_account_id == account_id).first()
        if project:
            return project
        logger.warning(f"No project bound to connected account {account_id}")

    coupon = find_coupon_by_promotion_code(db, promotion_code_id)
    if coupon:
        return coupon.project

    if project_id_hint:
        project = db.get(Project, project_id_hint)
        if project:
            return project
        logger.warning(f"Project hint {project_id_hint} does not match any project")

    return None


def resolve_attribution(db: Session, project: Project, promotion_code_id: Optional[str]) -> Attribution:
    """Resolve the marketer and commission rate for a promotion code.

    Commission only applies through an APPROVED contract; a coupon that was
    handed out before its contract was paused or rejected yields an
    unattributed sale.
    """
    if not promotion_code_id:
        return UNATTRIBUTED

    coupon = find_coupon_by_promotion_code(db, promotion_code_id)
    if not coupon:
        logger.info(f"Promotion code {promotion_code_id} is not a marketer coupon")
        return UNATTRIBUTED

    if coupon.project_id != project.id:
        logger.warning(
            f"Coupon {coupon.id} belongs to project {coupon.project_id}, "
            f"event resolved to project {project.id}; treating as unattributed"
        )
        return UNATTRIBUTED

    contract = db.query(Contract).filter(
        Contract.project_id == project.id,
        Contract.user_id == coupon.marketer_id
    ).first()
    if not contract or contract.status != ContractStatus.APPROVED:
        status = contract.status.value if contract else "missing"
        logger.info(f"Contract for marketer {coupon.marketer_id} on project {project.id} is {status}; no commission")
        return UNATTRIBUTED

    return Attribution(
        coupon=coupon,
        contract=contract,
        commission_percent=normalize_percent(contract.commission_percent),
    )
