"""
PayPal Instant Payment Notifications.

PayPal expects plain-text answers: "OK..." with 200 when the notification was
handled (or deliberately ignored) and "INVALID..." with 400 when it should not
be retried as-is.
"""

import json
import logging
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from app.config import PAYPAL_IPN_URL, PAYPAL_SANDBOX_IPN_URL
from app.db import League, Payment, Profile
from app.schemas.core import LeagueType, PaymentType

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = ("Completed", "Processed")
VERIFY_TIMEOUT_SECONDS = 20.0

IPNResponse = Tuple[int, str]


class IPNVerifier:
    """Echoes a notification back to PayPal with cmd=_notify-validate."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def url_for(self, form: Dict[str, str]) -> str:
        return PAYPAL_SANDBOX_IPN_URL if form.get("test_ipn") == "1" else PAYPAL_IPN_URL

    async def verify(self, form: Dict[str, str]) -> bool:
        body = [("cmd", "_notify-validate")] + list(form.items())
        async with httpx.AsyncClient(timeout=VERIFY_TIMEOUT_SECONDS, transport=self.transport) as client:
            response = await client.post(
                self.url_for(form),
                content=urlencode(body),
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "User-Agent": "Jambol-IPN-Handler/1.0",
                },
            )
        verdict = response.text.strip()
        if verdict != "VERIFIED":
            logger.error(f"PayPal IPN verification failed: {verdict[:100]}")
            return False
        return True


def get_ipn_verifier() -> IPNVerifier:
    return IPNVerifier()


def parse_custom(form: Dict[str, str]) -> Dict[str, Optional[object]]:
    """The `custom` field carries {"user_id", "payment_type", "league_id"}; a bare value is a user id."""
    raw = form.get("custom") or form.get("item_number") or ""
    parsed = {"user_id": None, "payment_type": PaymentType.DONATION.value, "league_id": None}
    if not raw:
        return parsed

    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Could not parse custom field as JSON, using it as user_id")
        parsed["user_id"] = raw
        return parsed

    if not isinstance(data, dict):
        parsed["user_id"] = raw
        return parsed

    parsed["user_id"] = data.get("user_id") or None
    parsed["payment_type"] = data.get("payment_type") or PaymentType.DONATION.value
    parsed["league_id"] = data.get("league_id") or None
    return parsed


def _amount(form: Dict[str, str]) -> float:
    try:
        return float(form.get("mc_gross") or form.get("amount") or 0)
    except ValueError:
        return 0.0


async def handle_ipn(db: Session, form: Dict[str, str], verifier: IPNVerifier) -> IPNResponse:
    logger.info(
        f"PayPal IPN received: txn_type={form.get('txn_type')} "
        f"payment_status={form.get('payment_status')} txn_id={form.get('txn_id')}"
    )

    if not await verifier.verify(form):
        return 400, "INVALID"

    payment_status = form.get("payment_status") or ""
    if payment_status not in COMPLETED_STATUSES:
        return 200, "OK - Payment not completed"

    transaction_id = form.get("txn_id")
    if not transaction_id:
        return 400, "INVALID - Missing transaction_id"

    status = payment_status.lower()
    existing = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
    if existing is not None:
        if existing.status != status:
            existing.status = status
            existing.ipn_data = dict(form)
            db.commit()
            logger.info(f"Payment {transaction_id} status updated to {status}")
        return 200, "OK - Already processed"

    custom = parse_custom(form)
    payment_type = custom["payment_type"]
    user_id = custom["user_id"]
    league_id = custom["league_id"]

    if payment_type not in [t.value for t in PaymentType]:
        return 400, "INVALID - Invalid payment_type"
    if payment_type == PaymentType.PREMIUM.value and not league_id:
        return 400, "INVALID - Premium payment requires league_id"
    if payment_type in (PaymentType.DONATION.value, PaymentType.PRO.value) and not user_id:
        return 400, "INVALID - Donation/Pro payment requires user_id"
    if league_id:
        try:
            league_id = int(league_id)
        except (TypeError, ValueError):
            return 400, "INVALID - Invalid league_id"

    payment = Payment(
        user_id=str(user_id) if user_id else None,
        league_id=league_id or None,
        payment_type=payment_type,
        amount=_amount(form),
        currency=form.get("mc_currency") or form.get("currency_code") or "EUR",
        transaction_id=transaction_id,
        payer_email=form.get("payer_email") or form.get("payer_mail") or "",
        status=status,
        ipn_data=dict(form),
    )
    db.add(payment)

    if payment_type == PaymentType.PREMIUM.value:
        league = db.get(League, payment.league_id)
        if league is not None:
            league.type = LeagueType.PREMIUM.value
        else:
            logger.error(f"Premium payment {transaction_id} references unknown league {payment.league_id}")
    elif payment_type == PaymentType.PRO.value:
        db.query(Profile).filter(Profile.id == payment.user_id).update({"is_pro": True}, synchronize_session=False)

    db.commit()
    logger.info(f"Payment {transaction_id} recorded: {payment_type} {payment.amount} {payment.currency}")
    return 200, "OK"
