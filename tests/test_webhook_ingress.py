import json
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from storefront.domain.enums import PaymentStatus
from storefront.services.webhook_ingress import WebhookIngress, event_object, parse_event, InvalidPayloadError

SECRET = "whsec_test"


def _event(event_type, obj):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


@pytest.fixture
def signed(sign_webhook):
    def make(event, secret=SECRET, timestamp=None):
        body = json.dumps(event).encode("utf-8")
        return body, sign_webhook(body, secret, timestamp)

    return make


@pytest.fixture
def ingress(orchestrator, refund_engine):
    return WebhookIngress(orchestrator, refund_engine, secret=SECRET, tolerance=300)


def test_parse_event_leaves_data_object_to_handlers():
    event = parse_event('{"type": "balance.available", "data": {"object": null}}')

    assert event["type"] == "balance.available"
    with pytest.raises(InvalidPayloadError):
        event_object(event)
    assert event_object(_event("charge.refunded", {"id": "ch_1"})) == {"id": "ch_1"}


def test_any_matching_signature_is_accepted(ingress, sign_webhook):
    body = json.dumps(_event("customer.created", {})).encode()
    timestamp = int(time.time())
    good = sign_webhook(body, timestamp=timestamp).split("v1=")[1]

    response = ingress.handle(body, f"t={timestamp},v1=deadbeef,v1={good}")

    assert response.status_code == 200


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "v1=abc",
        "t=1760000000,v1=0000",
    ],
)
def test_invalid_signature_is_rejected(ingress, header):
    body = json.dumps(_event("payment_intent.succeeded", {})).encode()

    response = ingress.handle(body, header)

    assert response.status_code == 400
    assert response.body == {"error": "Invalid signature"}


def test_signature_for_other_body_is_rejected(ingress, sign_webhook):
    body = json.dumps(_event("payment_intent.succeeded", {})).encode()

    assert ingress.handle(body, sign_webhook(b"other body")).body == {"error": "Invalid signature"}


def test_signature_with_wrong_secret_is_rejected(ingress, signed):
    body, header = signed(_event("payment_intent.succeeded", {}), secret="whsec_other")

    assert ingress.handle(body, header).body == {"error": "Invalid signature"}


def test_stale_timestamp_is_rejected(ingress, signed):
    body, header = signed(_event("customer.created", {}), timestamp=int(time.time()) - 400)

    response = ingress.handle(body, header)

    assert (response.status_code, response.body) == (400, {"error": "Invalid signature"})


def test_missing_secret_rejects_every_webhook(orchestrator, refund_engine, signed, pending_payment, caplog):
    ingress = WebhookIngress(orchestrator, refund_engine, secret="", tolerance=300)
    body, header = signed(_event("payment_intent.succeeded", {"metadata": {"payment_uuid": pending_payment.uuid}}))

    response = ingress.handle(body, header)

    assert (response.status_code, response.body) == (400, {"error": "Invalid signature"})
    assert orchestrator.find_by_uuid(pending_payment.uuid).status == PaymentStatus.PENDING.value
    assert "STRIPE_WEBHOOK_SECRET is not configured" in caplog.text


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"\xff\xfe",
        b"[]",
        b'{"data": {"object": {}}}',
        b'{"type": "payment_intent.succeeded"}',
        b'{"type": "payment_intent.succeeded", "data": {"object": "pi_1"}}',
        b'{"type": "charge.refunded", "data": {"object": null}}',
    ],
)
def test_invalid_payload_is_rejected(ingress, sign_webhook, payload):
    response = ingress.handle(payload, sign_webhook(payload))

    assert response.status_code == 400
    assert response.body == {"error": "Invalid payload"}


@pytest.mark.parametrize("event_type", ["payment_intent.succeeded", "checkout.session.completed"])
def test_succeeded_event_marks_payment_paid_once(
    ingress, signed, orchestrator, pending_payment, event_type, ticket_issuer, notifier
):
    body, header = signed(
        _event(event_type, {"id": pending_payment.transaction_id, "metadata": {"payment_uuid": pending_payment.uuid}})
    )

    first = ingress.handle(body, header)
    second = ingress.handle(body, header)

    assert (first.status_code, first.body) == (200, None)
    assert (second.status_code, second.body) == (200, None)
    assert orchestrator.find_by_uuid(pending_payment.uuid).status == PaymentStatus.PAID.value
    ticket_issuer.issue_for_payment.assert_called_once()
    notifier.payment_succeeded.assert_called_once()


def test_succeeded_event_without_payment_uuid_is_acknowledged(ingress, signed, orchestrator, pending_payment):
    body, header = signed(_event("payment_intent.succeeded", {"id": pending_payment.transaction_id}))

    assert ingress.handle(body, header).status_code == 200
    assert orchestrator.find_by_uuid(pending_payment.uuid).status == PaymentStatus.PENDING.value


def test_succeeded_event_for_unknown_payment_is_acknowledged(ingress, signed):
    body, header = signed(_event("payment_intent.succeeded", {"metadata": {"payment_uuid": "missing"}}))

    assert ingress.handle(body, header).status_code == 200


def test_failed_event_marks_payment_failed(ingress, signed, orchestrator, pending_payment):
    body, header = signed(_event("payment_intent.payment_failed", {"id": pending_payment.transaction_id}))

    assert ingress.handle(body, header).status_code == 200
    assert orchestrator.find_by_uuid(pending_payment.uuid).status == PaymentStatus.FAILED.value


def test_failed_event_does_not_override_paid(ingress, signed, orchestrator, paid_payment):
    body, header = signed(_event("payment_intent.payment_failed", {"id": paid_payment.transaction_id}))

    assert ingress.handle(body, header).status_code == 200
    assert orchestrator.find_by_uuid(paid_payment.uuid).status == PaymentStatus.PAID.value


def test_charge_refunded_event_reconciles_refund(ingress, signed, orchestrator, paid_payment):
    body, header = signed(
        _event(
            "charge.refunded",
            {"id": "ch_1", "payment_intent": paid_payment.transaction_id, "amount_refunded": 10000},
        )
    )

    assert ingress.handle(body, header).status_code == 200
    payment = orchestrator.find_by_uuid(paid_payment.uuid)
    assert payment.status == PaymentStatus.REFUNDED.value
    assert payment.refunded_amount == Decimal("100.00")


@pytest.mark.parametrize(
    "event",
    [
        _event("customer.created", {"id": "cus_1"}),
        {"type": "balance.available", "data": {"object": None}},
        {"type": "balance.available"},
    ],
)
def test_unknown_event_type_is_acknowledged(ingress, signed, event):
    body, header = signed(event)

    response = ingress.handle(body, header)

    assert (response.status_code, response.body) == (200, None)


def test_database_errors_propagate_for_redelivery(signed):
    orchestrator = MagicMock()
    orchestrator.mark_as_paid_by_uuid.side_effect = OperationalError("UPDATE payments", {}, Exception("db down"))
    ingress = WebhookIngress(orchestrator, MagicMock(), secret=SECRET, tolerance=300)
    body, header = signed(_event("payment_intent.succeeded", {"metadata": {"payment_uuid": "abc"}}))

    with pytest.raises(OperationalError):
        ingress.handle(body, header)
