# Overview: Pytest coverage for initiate/verify/refund against a mocked hosted-checkout provider.

import hashlib
import hmac
import json

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from pantry.errors import ForbiddenError, InvalidStateError, PaymentProviderError, ValidationError
from pantry.extensions import db
from pantry.models import Payment
from pantry.services import order_service, payment_service

SECRET = "rzp_test_secret"


def sign(provider_order_id: str, payment_id: str) -> str:
    message = f"{provider_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(SECRET.encode("utf-8"), message, hashlib.sha256).hexdigest()


class FakeRazorpay:
    """Records requests and answers like the provider's orders/refunds endpoints."""

    def __init__(self):
        self.requests = []
        self.order_counter = 0
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"description": "boom"}})

        body = json.loads(request.content or b"{}")
        if request.url.path.endswith("/orders"):
            self.order_counter += 1
            return httpx.Response(200, json={
                "id": f"order_{self.order_counter}",
                "amount": body["amount"],
                "currency": body["currency"],
                "status": "created",
            })
        if request.url.path.endswith("/refund"):
            return httpx.Response(200, json={"id": f"rfnd_{len(self.requests)}", "status": "processed"})
        return httpx.Response(404)


@pytest.fixture
def provider(app, monkeypatch):
    fake = FakeRazorpay()
    monkeypatch.setitem(app.extensions, "payment_transport", httpx.MockTransport(fake))
    return fake


@pytest.fixture
def commit_fails_once(monkeypatch):
    """Arm the session so its next commit raises a lock error, then works again."""
    def arm():
        session = db.session()
        real_commit = session.commit
        calls = {"count": 0}

        def commit():
            calls["count"] += 1
            if calls["count"] == 1:
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            return real_commit()

        monkeypatch.setattr(session, "commit", commit)

    return arm


@pytest.fixture
def paid_org(db_session, org_a):
    org_a.require_payment = True
    org_a.payment_provider = "razorpay"
    db_session.commit()
    return org_a


@pytest.fixture
def paid_order(paid_org, session_a, tea):
    """Tea x4 = 200 in a tenant that takes payment."""
    return order_service.create_order(session_a.id, [{"item_id": tea.id, "quantity": 4}])


def _initiate_and_verify(order, payment_id="pay_1"):
    started = payment_service.initiate_payment(order.id)
    return payment_service.verify_payment(
        order.id, payment_id, started["provider_order_id"], sign(started["provider_order_id"], payment_id),
    )


class TestFreePath:

    def test_free_tenant_completes_and_accepts(self, db_session, session_a, tea, org_a_events):
        order = order_service.create_order(session_a.id, [{"item_id": tea.id, "quantity": 2}])
        org_a_events.next()

        result = payment_service.initiate_payment(order.id)

        assert result["completed"] is True
        assert result["status"] == "COMPLETED"
        assert result["provider"] == "free"
        assert result["provider_order_id"] is None
        assert order_service.get_order(order.id).status == "ACCEPTED"
        event = org_a_events.next()
        assert event["type"] == "STATUS_UPDATE"
        assert event["order"]["status"] == "ACCEPTED"

    def test_zero_total_skips_provider(self, db_session, paid_org, session_a, water, provider):
        order = order_service.create_order(session_a.id, [{"item_id": water.id, "quantity": 1}])
        result = payment_service.initiate_payment(order.id)
        assert result["completed"] is True
        assert provider.requests == []

    def test_already_paid(self, db_session, session_a, tea):
        order = order_service.create_order(session_a.id, [{"item_id": tea.id, "quantity": 1}])
        payment_service.initiate_payment(order.id)
        with pytest.raises(InvalidStateError, match="already paid"):
            payment_service.initiate_payment(order.id)


class TestInitiate:

    def test_creates_provider_order(self, db_session, paid_order, provider):
        result = payment_service.initiate_payment(paid_order.id)

        assert result["status"] == "PENDING"
        assert result["completed"] is False
        assert result["provider_order_id"] == "order_1"
        assert result["amount_cents"] == 200
        assert result["key_id"] == "rzp_test_key"

        request = provider.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"amount": 200, "currency": "INR", "receipt": "ORD-00001"}
        assert request.headers["Authorization"].startswith("Basic ")
        assert order_service.get_order(paid_order.id).status == "PENDING"

    def test_repeat_initiate_is_idempotent(self, db_session, paid_order, provider):
        first = payment_service.initiate_payment(paid_order.id)
        second = payment_service.initiate_payment(paid_order.id)

        assert second["payment_id"] == first["payment_id"]
        assert second["provider_order_id"] == first["provider_order_id"]
        assert len(provider.requests) == 1

    def test_failed_payment_gets_fresh_provider_order(self, db_session, paid_order, provider):
        first = payment_service.initiate_payment(paid_order.id)
        with pytest.raises(InvalidStateError):
            payment_service.verify_payment(paid_order.id, "pay_x", first["provider_order_id"], "bad")

        second = payment_service.initiate_payment(paid_order.id)

        assert second["payment_id"] == first["payment_id"]
        assert second["provider_order_id"] == "order_2"
        assert second["status"] == "PENDING"

    def test_provider_timeout_leaves_no_payment(self, db_session, paid_order, provider):
        provider.fail_with = "timeout"
        with pytest.raises(PaymentProviderError):
            payment_service.initiate_payment(paid_order.id)

        assert db_session.query(Payment).filter_by(order_id=paid_order.id).count() == 0

        provider.fail_with = None
        assert payment_service.initiate_payment(paid_order.id)["status"] == "PENDING"

    def test_tenant_without_provider(self, db_session, paid_org, paid_order):
        paid_org.payment_provider = None
        db_session.commit()
        with pytest.raises(PaymentProviderError):
            payment_service.initiate_payment(paid_order.id)


class TestVerify:

    def test_valid_signature_completes(self, db_session, paid_order, provider):
        result = _initiate_and_verify(paid_order)

        assert result["success"] is True
        assert result["payment"]["status"] == "COMPLETED"
        assert result["payment"]["external_payment_id"] == "pay_1"
        assert order_service.get_order(paid_order.id).status == "ACCEPTED"

        payment = db_session.query(Payment).filter_by(order_id=paid_order.id).one()
        assert payment.audit_metadata["signature"] == sign("order_1", "pay_1")

    def test_repeat_verify_is_idempotent(self, db_session, paid_order, provider):
        _initiate_and_verify(paid_order)
        again = payment_service.verify_payment(paid_order.id, "pay_1", "order_1", sign("order_1", "pay_1"))
        assert again["payment"]["status"] == "COMPLETED"

    def test_bad_signature_marks_failed(self, db_session, paid_order, provider):
        started = payment_service.initiate_payment(paid_order.id)
        with pytest.raises(InvalidStateError, match="verification failed"):
            payment_service.verify_payment(paid_order.id, "pay_1", started["provider_order_id"], "0" * 64)

        db_session.expire_all()
        payment = db_session.query(Payment).filter_by(order_id=paid_order.id).one()
        assert payment.status == "FAILED"
        assert order_service.get_order(paid_order.id).status == "PENDING"

    def test_mismatched_provider_order(self, db_session, paid_order, provider):
        payment_service.initiate_payment(paid_order.id)
        with pytest.raises(InvalidStateError):
            payment_service.verify_payment(paid_order.id, "pay_1", "order_999", sign("order_999", "pay_1"))

    def test_cancelled_order_stays_cancelled(self, db_session, paid_org, paid_order, provider):
        started = payment_service.initiate_payment(paid_order.id)
        order_service.update_order_status(paid_order.id, "CANCELLED", paid_org.id)

        payment_service.verify_payment(
            paid_order.id, "pay_1", started["provider_order_id"], sign(started["provider_order_id"], "pay_1"),
        )
        assert order_service.get_order(paid_order.id).status == "CANCELLED"


class TestRefund:

    def test_two_halves_then_nothing_left(self, db_session, paid_org, paid_order, provider):
        _initiate_and_verify(paid_order)

        first = payment_service.refund_payment(paid_order.id, 100, paid_org.id)
        assert first["payment"]["status"] == "PARTIALLY_REFUNDED"
        assert first["payment"]["refunded_amount_cents"] == 100

        second = payment_service.refund_payment(paid_order.id, 100, paid_org.id)
        assert second["payment"]["status"] == "REFUNDED"
        assert second["payment"]["refunded_amount_cents"] == 200

        with pytest.raises(InvalidStateError):
            payment_service.refund_payment(paid_order.id, 1, paid_org.id)

        refund_calls = [r for r in provider.requests if r.url.path.endswith("/refund")]
        assert [json.loads(r.content) for r in refund_calls] == [{"amount": 100}, {"amount": 100}]
        assert refund_calls[0].url.path == "/v1/payments/pay_1/refund"

    def test_default_amount_is_remainder(self, db_session, paid_org, paid_order, provider):
        _initiate_and_verify(paid_order)
        payment_service.refund_payment(paid_order.id, 50, paid_org.id)

        result = payment_service.refund_payment(paid_order.id, None, paid_org.id)

        assert result["refunded_cents"] == 150
        assert result["payment"]["status"] == "REFUNDED"
        payment = db_session.query(Payment).filter_by(order_id=paid_order.id).one()
        assert len(payment.audit_metadata["refunds"]) == 2

    def test_over_refund_rejected(self, db_session, paid_org, paid_order, provider):
        _initiate_and_verify(paid_order)
        with pytest.raises(InvalidStateError) as exc:
            payment_service.refund_payment(paid_order.id, 201, paid_org.id)
        assert exc.value.details == {"refundable_cents": 200}

    def test_non_positive_amount(self, db_session, paid_org, paid_order, provider):
        _initiate_and_verify(paid_order)
        with pytest.raises(ValidationError):
            payment_service.refund_payment(paid_order.id, 0, paid_org.id)

    def test_unpaid_order(self, db_session, paid_org, paid_order, provider):
        payment_service.initiate_payment(paid_order.id)
        with pytest.raises(InvalidStateError, match="No completed payment"):
            payment_service.refund_payment(paid_order.id, 10, paid_org.id)

    def test_other_tenant_forbidden(self, db_session, org_b, paid_order, provider):
        _initiate_and_verify(paid_order)
        with pytest.raises(ForbiddenError):
            payment_service.refund_payment(paid_order.id, 10, org_b.id)

    def test_provider_rejection_keeps_accumulator(self, db_session, paid_org, paid_order, provider):
        _initiate_and_verify(paid_order)
        provider.fail_with = 500
        with pytest.raises(PaymentProviderError):
            payment_service.refund_payment(paid_order.id, 50, paid_org.id)

        db_session.expire_all()
        payment = db_session.query(Payment).filter_by(order_id=paid_order.id).one()
        assert payment.refunded_amount_cents == 0
        assert payment.status == "COMPLETED"

    def test_free_settlement_cannot_be_refunded(self, db_session, org_a, session_a, tea, provider):
        order = order_service.create_order(session_a.id, [{"item_id": tea.id, "quantity": 2}])
        started = payment_service.initiate_payment(order.id)
        assert started["amount_cents"] == 0

        with pytest.raises(InvalidStateError, match="settled without payment"):
            payment_service.refund_payment(order.id, None, org_a.id)

        payment = db_session.query(Payment).filter_by(order_id=order.id).one()
        assert payment.refunded_amount_cents == 0
        assert payment.status == "COMPLETED"
        assert provider.requests == []


class TestCommitRetry:
    """A failed commit is retried without asking the provider a second time."""

    def test_initiate_reuses_provider_order(self, db_session, paid_order, provider, commit_fails_once):
        commit_fails_once()

        result = payment_service.initiate_payment(paid_order.id)

        assert len(provider.requests) == 1
        assert result["provider_order_id"] == "order_1"
        payment = db_session.query(Payment).filter_by(order_id=paid_order.id).one()
        assert payment.status == "PENDING"
        assert payment.external_order_id == "order_1"

    def test_refund_sent_once(self, db_session, paid_org, paid_order, provider, commit_fails_once):
        _initiate_and_verify(paid_order)
        commit_fails_once()

        result = payment_service.refund_payment(paid_order.id, 100, paid_org.id)

        refund_calls = [r for r in provider.requests if r.url.path.endswith("/refund")]
        assert len(refund_calls) == 1
        assert result["refunded_cents"] == 100
        db_session.expire_all()
        payment = db_session.query(Payment).filter_by(order_id=paid_order.id).one()
        assert payment.refunded_amount_cents == 100
        assert payment.status == "PARTIALLY_REFUNDED"
        assert len(payment.audit_metadata["refunds"]) == 1
