"""
Tests for the PayPal IPN handler.
"""
import json
from urllib.parse import parse_qsl, urlencode

import pytest

from app.db import Payment
from app.services.payments import handle_ipn, parse_custom

IPN_PATH = "/functions/v1/paypal-ipn-handler"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


def ipn(**fields):
    form = {
        "txn_id": "9AB12345CD678901E",
        "payment_status": "Completed",
        "mc_gross": "5.00",
        "mc_currency": "EUR",
        "payer_email": "fan@example.com",
    }
    form.update(fields)
    return {k: v for k, v in form.items() if v is not None}


class TestParseCustom:

    def test_json_payload(self):
        custom = json.dumps({"user_id": "u1", "payment_type": "premium", "league_id": 7})
        assert parse_custom({"custom": custom}) == {"user_id": "u1", "payment_type": "premium", "league_id": 7}

    def test_raw_value_is_user_id(self):
        assert parse_custom({"custom": "u1"})["user_id"] == "u1"
        assert parse_custom({"custom": "u1"})["payment_type"] == "donation"

    def test_empty(self):
        assert parse_custom({}) == {"user_id": None, "payment_type": "donation", "league_id": None}


class TestHandleIPN:

    @pytest.mark.asyncio
    async def test_donation_recorded(self, db, make_profile, ipn_verifier, paypal):
        fan = make_profile(username="fan")

        status, text = await handle_ipn(db, ipn(custom=fan.id), ipn_verifier)

        assert (status, text) == (200, "OK")
        payment = db.query(Payment).one()
        assert payment.payment_type == "donation"
        assert payment.amount == 5.0
        assert payment.status == "completed"
        assert payment.user_id == fan.id
        assert b"cmd=_notify-validate" in paypal.requests[0].content

    @pytest.mark.asyncio
    async def test_echo_is_form_encoded_with_command_first(self, ipn_verifier, paypal):
        assert await ipn_verifier.verify({"txn_id": "T1", "custom": '{"user_id": "u1"}'}) is True

        request = paypal.requests[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert parse_qsl(request.content.decode()) == [
            ("cmd", "_notify-validate"),
            ("txn_id", "T1"),
            ("custom", '{"user_id": "u1"}'),
        ]

    @pytest.mark.asyncio
    async def test_unverified_notification(self, db, ipn_verifier, paypal):
        paypal.verdict = "INVALID"

        assert await handle_ipn(db, ipn(custom="u1"), ipn_verifier) == (400, "INVALID")
        assert db.query(Payment).count() == 0

    @pytest.mark.asyncio
    async def test_sandbox_notifications_use_sandbox_endpoint(self, db, ipn_verifier, paypal):
        await handle_ipn(db, ipn(custom="u1", test_ipn="1"), ipn_verifier)
        assert "sandbox" in str(paypal.requests[0].url)

    @pytest.mark.asyncio
    async def test_pending_payment_is_ignored(self, db, ipn_verifier):
        result = await handle_ipn(db, ipn(custom="u1", payment_status="Pending"), ipn_verifier)

        assert result == (200, "OK - Payment not completed")
        assert db.query(Payment).count() == 0

    @pytest.mark.asyncio
    async def test_missing_transaction_id(self, db, ipn_verifier):
        assert await handle_ipn(db, ipn(txn_id=None), ipn_verifier) == (400, "INVALID - Missing transaction_id")

    @pytest.mark.asyncio
    async def test_premium_upgrades_league(self, db, make_league, ipn_verifier):
        league = make_league()
        custom = json.dumps({"payment_type": "premium", "league_id": str(league.id)})

        assert await handle_ipn(db, ipn(custom=custom), ipn_verifier) == (200, "OK")

        db.refresh(league)
        assert league.type == "premium"
        assert db.query(Payment).one().league_id == league.id

    @pytest.mark.asyncio
    async def test_pro_flags_profile(self, db, make_profile, ipn_verifier):
        fan = make_profile(username="fan")
        custom = json.dumps({"payment_type": "pro", "user_id": fan.id})

        assert await handle_ipn(db, ipn(custom=custom), ipn_verifier) == (200, "OK")

        db.refresh(fan)
        assert fan.is_pro is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("custom,expected", [
        ({"payment_type": "gift", "user_id": "u1"}, "INVALID - Invalid payment_type"),
        ({"payment_type": "premium"}, "INVALID - Premium payment requires league_id"),
        ({"payment_type": "pro"}, "INVALID - Donation/Pro payment requires user_id"),
        ({"payment_type": "premium", "league_id": "abc"}, "INVALID - Invalid league_id"),
    ])
    async def test_invalid_custom_payloads(self, db, ipn_verifier, custom, expected):
        assert await handle_ipn(db, ipn(custom=json.dumps(custom)), ipn_verifier) == (400, expected)
        assert db.query(Payment).count() == 0

    @pytest.mark.asyncio
    async def test_status_change_updates_existing_payment(self, db, ipn_verifier):
        await handle_ipn(db, ipn(custom="u1"), ipn_verifier)

        result = await handle_ipn(db, ipn(custom="u1", payment_status="Processed"), ipn_verifier)

        assert result == (200, "OK - Already processed")
        assert db.query(Payment).one().status == "processed"


class TestIPNEndpoint:
    """PayPal posts form-encoded bodies and expects plain text back."""

    def test_already_processed_is_not_duplicated(self, client, db):
        body = urlencode(ipn(custom="u1"))

        first = client.post(IPN_PATH, content=body, headers=FORM_HEADERS)
        second = client.post(IPN_PATH, content=body, headers=FORM_HEADERS)

        assert first.status_code == 200
        assert first.text == "OK"
        assert second.status_code == 200
        assert second.text == "OK - Already processed"
        assert db.query(Payment).count() == 1

    def test_invalid_is_plain_text_400(self, client, paypal):
        paypal.verdict = "INVALID"

        response = client.post(IPN_PATH, content=urlencode(ipn(custom="u1")), headers=FORM_HEADERS)

        assert response.status_code == 400
        assert response.text == "INVALID"
        assert response.headers["content-type"].startswith("text/plain")
