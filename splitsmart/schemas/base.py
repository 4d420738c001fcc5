"""
splitsmart contracts — Pydantic v2 models shared by the engines and the API.

Money crosses the system boundary twice: as decimal units in a parsed
receipt, and as integer cents everywhere after the ledger normalizer.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_AMOUNT_NOISE = re.compile(r"[\s,$€£]")


def _coerce_amount(value: Any) -> Any:
    """Accept ``12.5``, ``"12.50"``, ``"$1,012.50"``; blanks become missing."""
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = _AMOUNT_NOISE.sub("", value)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return value


# ---------------------------------------------------------------------------
# Parsed receipt (decimal units, as produced by the receipt parser)
# ---------------------------------------------------------------------------

class ParsedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    quantity: Optional[float] = 1.0
    unit_price: Optional[float] = Field(default=None, alias="unitPrice")
    total: Optional[float] = None
    tax_included: bool = False

    @field_validator("unit_price", "total", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> Any:
        return _coerce_amount(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, v: Any) -> Any:
        v = _coerce_amount(v)
        if v is None:
            return 1.0
        try:
            return float(v) if float(v) > 0 else 1.0
        except (TypeError, ValueError):
            return 1.0

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


class ParsedReceipt(BaseModel):
    items: list[ParsedItem] = Field(default_factory=list)
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    tip: Optional[float] = None
    total: Optional[float] = None
    currency: Optional[str] = None

    @field_validator("subtotal", "tax", "tip", "total", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> Any:
        return _coerce_amount(v)

    @field_validator("items", mode="before")
    @classmethod
    def _items(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []


# ---------------------------------------------------------------------------
# Normalized ledger (integer cents)
# ---------------------------------------------------------------------------

class LedgerItem(BaseModel):
    name: str
    quantity: float = 1.0
    unit_price_cents: int = 0
    total_cents: int = 0
    tax_included: bool = False


class SessionTotals(BaseModel):
    subtotal_cents: int = 0
    tax_cents: int = 0
    tip_cents: int = 0
    total_cents: int = 0
    currency: str = "USD"


# ---------------------------------------------------------------------------
# Store rows
# ---------------------------------------------------------------------------

class SessionInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    host_id: Optional[str] = None
    currency: Optional[str] = None
    subtotal_cents: int = 0
    tax_cents: int = 0
    tip_cents: int = 0
    total_cents: int = 0
    created_at: Optional[datetime] = None


class Item(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    quantity: float = 1.0
    unit_price_cents: int = 0
    total_cents: int = 0
    tax_included: bool = False


class Participant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    name: Optional[str] = None
    paid: bool = False
    created_at: Optional[datetime] = None


class Claim(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    item_id: str
    participant_id: str
    share: float = 1.0
    created_at: Optional[datetime] = None


class Host(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class Share(BaseModel):
    """What one participant owes, in cents."""
    items_cents: int = 0
    tax_cents: int = 0
    tip_cents: int = 0
    total_cents: int = 0


# ---------------------------------------------------------------------------
# API request / response envelopes
# ---------------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    currency: Optional[str] = None
    host_name: Optional[str] = None
    host_email: Optional[str] = None


class SessionResponse(BaseModel):
    ok: bool = True
    session: SessionInfo


class SessionItemsResponse(BaseModel):
    ok: bool = True
    session: SessionInfo
    currency: str
    items: list[Item]


class JoinRequest(BaseModel):
    name: Optional[str] = None


class ParticipantResponse(BaseModel):
    ok: bool = True
    participant: Participant


class HostRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ToggleClaimRequest(BaseModel):
    item_id: str
    participant_id: str
    share: float = Field(default=1.0, gt=0)
    seq: Optional[int] = Field(default=None, ge=0, description="client toggle sequence")


class ToggleClaimResponse(BaseModel):
    ok: bool = True
    toggled: str  # added | removed


class EnsureClaimsRequest(BaseModel):
    item_ids: list[str]
    participant_id: str


class EnsureClaimsResponse(BaseModel):
    ok: bool = True
    added: list[str] = Field(default_factory=list)
    already_claimed: list[str] = Field(default_factory=list)


class ShareResponse(BaseModel):
    participant_id: str
    currency: str
    share: Share
    display: dict[str, str] = Field(default_factory=dict)


class SummaryResponse(BaseModel):
    currency: str
    totals: SessionTotals
    shares: list[ShareResponse]
    allocated_cents: int
    unclaimed_cents: int


class SuggestionResponse(BaseModel):
    ok: bool = True
    suggestions: list[str] = Field(default_factory=list)
    source: str = "none"  # model | heuristic | none
    local: list[str] = Field(default_factory=list)
    remote: list[str] = Field(default_factory=list)


class ParseReceiptResponse(BaseModel):
    ok: bool = True
    model_used: str
    result: ParsedReceipt


class CheckoutRequest(BaseModel):
    participant_id: Optional[str] = None


class CheckoutResponse(BaseModel):
    ok: bool = True
    url: str
    payment_id: str
    amount_cents: int
