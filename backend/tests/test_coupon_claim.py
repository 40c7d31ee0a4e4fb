"""Coupon claim service and endpoint tests"""
import re
from datetime import datetime, timedelta, timezone

import pytest
import stripe

from revshare.core.exceptions import CouponClaimError
from revshare.models.contract import Contract
from revshare.models.coupon import Coupon
from revshare.models.enums import ContractStatus, CouponStatus
from revshare.models.project import Project
from revshare.models.user import User
from revshare.services.coupon_service import claim_coupon, generate_promo_code


def claim(db_session, project, template, marketer, **kwargs):
    return claim_coupon(db_session, project.id, template.id, marketer.id, **kwargs)


@pytest.mark.high
class TestClaimCoupon:
    def test_creates_promotion_code_on_connected_account(self, db_session, project, coupon_template, marketer, contract, mock_stripe_api):
        coupon, created = claim(db_session, project, coupon_template, marketer)

        assert created is True
        assert coupon.stripe_promotion_code_id == "promo_created123"
        assert coupon.code == "GENERATED"
        assert coupon.status == CouponStatus.ACTIVE
        assert coupon.percent_off == 15
        assert float(coupon.commission_percent) == 0.2

        kwargs = mock_stripe_api["promotion_code_create"].call_args.kwargs
        assert kwargs["promotion"] == {"type": "coupon", "coupon": "coupon_launch"}
        assert kwargs["stripe_account"] == "acct_test123"
        assert kwargs["metadata"] == {
            "projectId": project.id,
            "templateId": coupon_template.id,
            "marketerId": marketer.id,
        }
        assert re.match(r"^LAUNCH-[A-Z0-9]{6}$", kwargs["code"])

    def test_requested_code_is_normalized(self, db_session, project, coupon_template, marketer, contract, mock_stripe_api):
        claim(db_session, project, coupon_template, marketer, requested_code="  summer-sale ")

        assert mock_stripe_api["promotion_code_create"].call_args.kwargs["code"] == "SUMMER-SALE"

    def test_invalid_requested_code_is_rejected(self, db_session, project, coupon_template, marketer, contract, mock_stripe_api):
        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer, requested_code="no spaces allowed")
        assert exc.value.status_code == 400
        mock_stripe_api["promotion_code_create"].assert_not_called()

    def test_existing_active_coupon_is_returned(self, db_session, project, coupon_template, marketer, coupon, mock_stripe_api):
        claimed, created = claim(db_session, project, coupon_template, marketer)

        assert created is False
        assert claimed.id == coupon.id
        mock_stripe_api["promotion_code_create"].assert_not_called()

    def test_inactive_coupon_does_not_block_new_claim(self, db_session, project, coupon_template, marketer, coupon):
        coupon.status = CouponStatus.INACTIVE
        db_session.commit()

        claimed, created = claim(db_session, project, coupon_template, marketer)

        assert created is True
        assert claimed.id != coupon.id
        assert db_session.query(Coupon).count() == 2

    def test_unknown_project(self, db_session, coupon_template, marketer):
        with pytest.raises(CouponClaimError) as exc:
            claim_coupon(db_session, "missing", coupon_template.id, marketer.id)
        assert exc.value.status_code == 404

    def test_creator_cannot_claim(self, db_session, project, coupon_template, creator):
        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, creator)
        assert exc.value.status_code == 404
        assert exc.value.message == "Marketer not found"

    def test_project_without_connected_account(self, db_session, project, coupon_template, marketer, contract):
        project.creator_stripe_account_id = None
        db_session.commit()

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 400

    def test_template_from_another_project(self, db_session, project, coupon_template, marketer, creator):
        other = Project(user_id=creator.id, name="Other", creator_stripe_account_id="acct_other")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, other, coupon_template, marketer)
        assert exc.value.status_code == 404

    def test_inactive_template(self, db_session, project, coupon_template, marketer, contract):
        coupon_template.status = CouponStatus.INACTIVE
        db_session.commit()

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 400

    @pytest.mark.parametrize("start_offset,end_offset", [(1, None), (None, -1)])
    def test_template_outside_window(self, db_session, project, coupon_template, marketer, contract, start_offset, end_offset):
        now = datetime.now(timezone.utc)
        if start_offset is not None:
            coupon_template.start_at = now + timedelta(days=start_offset)
        if end_offset is not None:
            coupon_template.end_at = now + timedelta(days=end_offset)
        db_session.commit()

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 400

    def test_marketer_not_on_allow_list(self, db_session, project, coupon_template, marketer, contract):
        coupon_template.allowed_marketer_ids = ["someone-else"]
        db_session.commit()

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 403

    def test_marketer_on_allow_list(self, db_session, project, coupon_template, marketer, contract):
        coupon_template.allowed_marketer_ids = [marketer.id]
        db_session.commit()

        _, created = claim(db_session, project, coupon_template, marketer)
        assert created is True

    def test_missing_contract(self, db_session, project, coupon_template, marketer):
        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 404

    @pytest.mark.parametrize("status", [ContractStatus.PENDING, ContractStatus.PAUSED, ContractStatus.REJECTED])
    def test_unapproved_contract(self, db_session, project, coupon_template, marketer, contract, status):
        contract.status = status
        db_session.commit()

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 403

    def test_stripe_rejects_code(self, db_session, project, coupon_template, marketer, contract, mock_stripe_api):
        mock_stripe_api["promotion_code_create"].side_effect = stripe.InvalidRequestError(
            "An active promotion code with `code: SUMMER` already exists.", "code"
        )

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer, requested_code="SUMMER")
        assert exc.value.status_code == 400
        assert db_session.query(Coupon).count() == 0

    def test_stripe_unavailable(self, db_session, project, coupon_template, marketer, contract, mock_stripe_api):
        mock_stripe_api["promotion_code_create"].side_effect = stripe.APIConnectionError("timeout")

        with pytest.raises(CouponClaimError) as exc:
            claim(db_session, project, coupon_template, marketer)
        assert exc.value.status_code == 502


def test_generate_promo_code_format():
    assert re.match(r"^LAUNCH-[A-Z0-9]{6}$", generate_promo_code("Launch Week!"))
    assert re.match(r"^REV-[A-Z0-9]{6}$", generate_promo_code("!!!"))


@pytest.mark.high
class TestClaimEndpoint:
    def _body(self, project, template, marketer, **extra):
        body = {"projectId": project.id, "templateId": template.id, "marketerId": marketer.id}
        body.update(extra)
        return body

    def test_claim_returns_201_then_200(self, client, project, coupon_template, marketer, contract, internal_headers):
        body = self._body(project, coupon_template, marketer)

        first = client.post("/api/coupons/claim", json=body, headers=internal_headers)
        second = client.post("/api/coupons/claim", json=body, headers=internal_headers)

        assert first.status_code == 201
        assert first.json()["created"] is True
        assert first.json()["coupon"]["stripe_promotion_code_id"] == "promo_created123"
        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["coupon"]["id"] == first.json()["coupon"]["id"]

    def test_claim_error_body(self, client, project, coupon_template, marketer, internal_headers):
        response = client.post("/api/coupons/claim", json=self._body(project, coupon_template, marketer),
                               headers=internal_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Contract not found"}

    def test_claim_requires_internal_token(self, client, project, coupon_template, marketer, contract):
        response = client.post("/api/coupons/claim", json=self._body(project, coupon_template, marketer))
        assert response.status_code == 401

        response = client.post("/api/coupons/claim", json=self._body(project, coupon_template, marketer),
                               headers={"X-Internal-Token": "wrong"})
        assert response.status_code == 401

    def test_claim_validates_body(self, client, internal_headers):
        response = client.post("/api/coupons/claim", json={"projectId": "p"}, headers=internal_headers)
        assert response.status_code == 422


def test_second_marketer_gets_own_coupon(db_session, project, coupon_template, coupon, mock_stripe_api):
    other = User(email="other@example.com", name="Other", role="marketer")
    db_session.add(other)
    db_session.commit()
    db_session.add(Contract(project_id=project.id, user_id=other.id, status=ContractStatus.APPROVED,
                            commission_percent=coupon.commission_percent))
    db_session.commit()

    claimed, created = claim_coupon(db_session, project.id, coupon_template.id, other.id)

    assert created is True
    assert claimed.marketer_id == other.id
