"""
Checkout hand-off and payment success handling.

The hosted checkout provider is a collaborator: it takes a price, a
quantity and redirect URLs and returns a URL to send the diner to.  The
price is a one-cent unit price, so the quantity is the owed amount in cents.  This module owns
the two money-relevant writes around it: marking a payment paid (only
once) and crediting the host ledger (only once per payment id).
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

import httpx
from sqlalchemy.orm import Session

from splitsmart.database import commit
from splitsmart.errors import ConflictError, InvalidRequestError, NotFoundError, StoreError, UpstreamError
from splitsmart.models import HostLedgerEntryModel, ParticipantModel, PaymentModel, SessionModel
from splitsmart.pipeline.allocation import compute_share
from splitsmart.pipeline.claims import list_claims
from splitsmart.pipeline.ledger import normalize_currency
from splitsmart.pipeline.sessions import get_participant, get_session, list_items

logger = logging.getLogger(__name__)

HOST_CREDIT = "host_credit"


@dataclass
class CheckoutSession:
    url: str
    provider_id: Optional[str] = None


class PaymentProvider(Protocol):
    def find_or_create_customer(self, external_id: str, name: Optional[str] = None) -> str: ...

    def create_checkout_session(
        self, price_id: str, quantity: int, success_url: str, cancel_url: str,
        customer_external_id: Optional[str] = None,
    ) -> CheckoutSession: ...


class DemoPaymentProvider:
    """Skips hosted checkout: the "checkout" URL is the success callback."""

    def find_or_create_customer(self, external_id: str, name: Optional[str] = None) -> str:
        return f"demo-{external_id}"

    def create_checkout_session(
        self, price_id: str, quantity: int, success_url: str, cancel_url: str,
        customer_external_id: Optional[str] = None,
    ) -> CheckoutSession:
        return CheckoutSession(url=success_url, provider_id="demo")


class FlowgladPaymentProvider:
    def __init__(
        self,
        api_url: str,
        secret_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> httpx.Response:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                return client.request(
                    method,
                    f"{self.api_url}{path}",
                    json=json,
                    headers={"Authorization": self.secret_key},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Payment provider unreachable: {exc}") from exc

    def find_or_create_customer(self, external_id: str, name: Optional[str] = None) -> str:
        resp = self._request("GET", f"/customers/{quote(external_id)}")
        if resp.status_code == 404:
            resp = self._request(
                "POST", "/customers",
                json={"customer": {"externalId": external_id, "name": name or "Guest"}},
            )
        if resp.status_code >= 400:
            raise UpstreamError("Payment provider rejected customer lookup", raw=resp.text)
        data = resp.json().get("customer") or {}
        return data.get("id") or external_id

    def create_checkout_session(
        self, price_id: str, quantity: int, success_url: str, cancel_url: str,
        customer_external_id: Optional[str] = None,
    ) -> CheckoutSession:
        body = {
            "checkoutSession": {
                "type": "product",
                "priceId": price_id,
                "quantity": quantity,
                "successUrl": success_url,
                "cancelUrl": cancel_url,
                "customerExternalId": customer_external_id,
            }
        }
        resp = self._request("POST", "/checkout-sessions", json=body)
        if resp.status_code >= 400:
            raise UpstreamError("Payment provider rejected checkout", raw=resp.text)
        data = resp.json()
        url = data.get("url") or (data.get("checkoutSession") or {}).get("url")
        if not url:
            raise UpstreamError("Payment provider returned no checkout URL", raw=resp.text)
        return CheckoutSession(url=url, provider_id=(data.get("checkoutSession") or {}).get("id"))


def use_demo_checkout(price_id: str, force_demo: bool = False) -> bool:
    """Demo when forced, when no price is set, or when a product id was configured by mistake."""
    return force_demo or not price_id or price_id.startswith("prod_")


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def owed_cents(db: Session, session: SessionModel, participant_id: str) -> int:
    items = list_items(db, session)
    claims = list_claims(db, session)
    return compute_share(participant_id, items, claims, session).total_cents


def start_checkout(
    db: Session,
    code: str,
    participant_id: Optional[str],
    provider: PaymentProvider,
    price_id: str,
    callback_base: str,
    public_base: str,
) -> tuple[PaymentModel, CheckoutSession]:
    if not participant_id:
        raise InvalidRequestError("participant_id is required")
    session = get_session(db, code)
    participant = get_participant(db, session, participant_id)

    amount = owed_cents(db, session, participant_id)
    if amount <= 0:
        raise InvalidRequestError("Nothing owed; claim items first", amount_cents=amount)

    payment = PaymentModel(
        id=str(uuid.uuid4()),
        session_id=session.id,
        participant_id=participant.id,
        host_id=session.host_id,
        amount_cents=amount,
        currency=normalize_currency(session.currency),
        status="pending",
    )
    db.add(payment)
    commit(db, "Create payment")

    query = urlencode({"code": session.code, "payment_id": payment.id})
    success_url = f"{callback_base.rstrip('/')}/api/payments/success?{query}"
    cancel_url = f"{public_base.rstrip('/')}/s/{quote(session.code)}?cancelled=1"
    try:
        provider.find_or_create_customer(participant.id, participant.name)
        # the configured price is one cent, so the quantity is the amount owed
        checkout = provider.create_checkout_session(
            price_id=price_id,
            quantity=amount,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_external_id=participant.id,
        )
    except UpstreamError:
        payment.status = "failed"
        commit(db, "Mark payment failed")
        raise

    payment.checkout_url = checkout.url
    commit(db, "Record checkout")
    logger.info("Checkout for %s in %s: %d cents (payment %s)", participant.id, session.code, amount, payment.id)
    return payment, checkout


# ---------------------------------------------------------------------------
# Success callback
# ---------------------------------------------------------------------------

def _mark_participant_paid(db: Session, participant_id: str) -> None:
    participant = db.get(ParticipantModel, participant_id)
    if participant is None:
        return
    participant.paid = True
    try:
        commit(db, "Mark participant paid")
    except StoreError as exc:
        # UX flag only; the payment row is the record of truth
        logger.warning("Could not flag participant %s as paid: %s", participant_id, exc)


def credit_host(db: Session, payment: PaymentModel) -> Optional[HostLedgerEntryModel]:
    """Insert the host credit for *payment* unless it already exists."""
    if not payment.host_id or (payment.amount_cents or 0) <= 0:
        return None
    existing = (
        db.query(HostLedgerEntryModel)
        .filter(HostLedgerEntryModel.payment_id == payment.id, HostLedgerEntryModel.type == HOST_CREDIT)
        .first()
    )
    if existing is not None:
        return existing
    entry = HostLedgerEntryModel(
        id=str(uuid.uuid4()),
        host_id=payment.host_id,
        type=HOST_CREDIT,
        amount_cents=payment.amount_cents,
        payment_id=payment.id,
        notes="SplitSmart payment credit",
    )
    db.add(entry)
    try:
        commit(db, "Credit host")
    except ConflictError:
        # a concurrent callback delivery got there first
        logger.info("Host credit for payment %s already recorded", payment.id)
        return (
            db.query(HostLedgerEntryModel)
            .filter(HostLedgerEntryModel.payment_id == payment.id, HostLedgerEntryModel.type == HOST_CREDIT)
            .first()
        )
    logger.info("Credited host %s with %d cents", payment.host_id, payment.amount_cents)
    return entry


def handle_payment_success(db: Session, code: str, payment_id: str) -> PaymentModel:
    """Idempotent: repeated deliveries neither re-mark nor re-credit."""
    if not code or not payment_id:
        raise InvalidRequestError("Missing code or payment_id")
    session = get_session(db, code)
    payment = (
        db.query(PaymentModel)
        .filter(PaymentModel.id == payment_id, PaymentModel.session_id == session.id)
        .first()
    )
    if payment is None:
        raise NotFoundError("Payment not found", payment_id=payment_id)

    if payment.status != "paid":
        payment.status = "paid"
        commit(db, "Mark payment paid")
        logger.info("Payment %s marked paid", payment.id)
        if payment.participant_id:
            _mark_participant_paid(db, payment.participant_id)

    credit_host(db, payment)
    return payment
