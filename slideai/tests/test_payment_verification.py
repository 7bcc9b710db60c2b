"""Redirect parameter verification and server-side commit."""
import pytest

from slideai.features.payments.service import ServerPaymentVerifier, verify_payment_server_side
from slideai.features.payments.verification import (
    PaymentRedirect,
    has_redirect_params,
    strip_redirect_params,
    verify_payment,
)
from slideai.models.entitlement import SubscriptionStatus

APPROVED = {
    "success": "true",
    "txn_response_code": "APPROVED",
    "data.message": "Approved",
    "merchant_order_id": "order_42",
}


def test_all_three_fields_approved():
    assert verify_payment(APPROVED) is True


@pytest.mark.parametrize(
    "field,value",
    [
        ("success", "false"),
        ("success", "True"),
        ("success", ""),
        ("txn_response_code", "DECLINED"),
        ("txn_response_code", "approved"),
        ("data.message", "Declined"),
        ("data.message", "approved"),
        ("data.message", "Approved "),
    ],
)
def test_any_field_mismatch_rejects(field, value):
    assert verify_payment({**APPROVED, field: value}) is False


@pytest.mark.parametrize("field", ["success", "txn_response_code", "data.message"])
def test_missing_field_rejects(field):
    params = {k: v for k, v in APPROVED.items() if k != field}
    assert verify_payment(params) is False


def test_order_id_not_required_for_verification():
    params = {k: v for k, v in APPROVED.items() if k != "merchant_order_id"}
    assert verify_payment(params) is True
    assert PaymentRedirect.from_params(params).merchant_order_id is None


def test_has_redirect_params():
    assert has_redirect_params(APPROVED)
    assert has_redirect_params({"success": "false"})
    assert not has_redirect_params({})
    assert not has_redirect_params({"utm_source": "mail"})


def test_strip_redirect_params_keeps_other_query():
    url = "http://localhost:8080/payment-success?success=true&txn_response_code=APPROVED&data.message=Approved&merchant_order_id=o1&ref=abc"
    assert strip_redirect_params(url) == "http://localhost:8080/payment-success?ref=abc"
    assert strip_redirect_params("http://x/payment-success?success=true") == "http://x/payment-success"


@pytest.mark.asyncio
async def test_server_side_commit_marks_paid(memory_store):
    memory_store.seed("user_1")
    result = await verify_payment_server_side(memory_store, "user_1", APPROVED)

    assert result.success is True
    assert result.record.status == SubscriptionStatus.PAID
    assert result.record.payment_reference == "order_42"
    assert memory_store.records_for("user_1")[0].is_paid


@pytest.mark.asyncio
async def test_server_side_rejection_does_not_touch_store(memory_store):
    memory_store.seed("user_1")
    result = await verify_payment_server_side(memory_store, "user_1", {**APPROVED, "success": "false"})

    assert result.success is False
    assert memory_store.update_calls == 0
    assert not memory_store.records_for("user_1")[0].is_paid


@pytest.mark.asyncio
async def test_server_verifier_reports_store_failure(memory_store):
    memory_store.seed("user_1")
    memory_store.fail_update = True
    result = await ServerPaymentVerifier(memory_store).verify("user_1", APPROVED)

    assert result.success is False
    assert result.record is None
