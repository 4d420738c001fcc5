"""
Receipt parser collaborator.

Image bytes in, :class:`ParsedReceipt` (decimal units) out.  The Gemini
parser tries the primary model and falls back to the cheaper one on any
call failure; the caller only sees an error when both fail, or when the
text that came back holds no usable JSON.  Without credentials the demo
parser returns a fixed sample receipt.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from pydantic import ValidationError

from splitsmart.errors import InvalidRequestError, UpstreamError
from splitsmart.llm import GeminiClient, extract_json_object
from splitsmart.pipeline.fallback import Stage, run_with_fallback
from splitsmart.schemas import ParsedReceipt

logger = logging.getLogger(__name__)

DEMO_RECEIPT = {
    "items": [
        {"name": "Burger", "quantity": 1, "unitPrice": 9.99, "total": 9.99},
        {"name": "Fries", "quantity": 1, "unitPrice": 3.49, "total": 3.49},
        {"name": "Soda", "quantity": 1, "unitPrice": 2.50, "total": 2.50},
    ],
    "subtotal": 15.98,
    "tax": 1.28,
    "tip": 2.00,
    "total": 19.26,
    "currency": "USD",
}

RECEIPT_PROMPT = """You are parsing a restaurant receipt. Extract a strict JSON object with this schema:
{
  "items": [
    {"name": string, "quantity": number, "unitPrice": number, "total": number}
  ],
  "subtotal": number,
  "tax": number,
  "tip": number,
  "total": number,
  "currency": string
}
Rules:
- Return ONLY valid JSON. No markdown fences. No commentary.
- If something is missing, use 0 for numbers and omit unknown optional fields.
- Ensure items totals and sum relationships are consistent: subtotal + tax + tip = total.
"""

_DATA_URL = re.compile(r"^data:(.*?);base64,(.*)$", re.DOTALL)


@dataclass
class ParseOutcome:
    model_used: str
    receipt: ParsedReceipt


class ReceiptParser(Protocol):
    def parse(self, image: bytes, mime_type: str) -> ParseOutcome: ...


class DemoReceiptParser:
    """Fixed sample receipt so the rest of the system works offline."""

    def parse(self, image: bytes, mime_type: str) -> ParseOutcome:
        return ParseOutcome(model_used="demo", receipt=ParsedReceipt.model_validate(DEMO_RECEIPT))


class GeminiReceiptParser:
    def __init__(self, client: GeminiClient, model: str, fallback_model: str):
        self.client = client
        self.model = model
        self.fallback_model = fallback_model

    def parse(self, image: bytes, mime_type: str) -> ParseOutcome:
        contents = [RECEIPT_PROMPT, self.client.image_part(image, mime_type)]
        stages = [Stage(self.model, lambda: self.client.generate_text(self.model, contents))]
        if self.fallback_model and self.fallback_model != self.model:
            stages.append(
                Stage(self.fallback_model, lambda: self.client.generate_text(self.fallback_model, contents))
            )
        result = run_with_fallback(stages)
        text = result.unwrap()
        return ParseOutcome(model_used=result.stage, receipt=receipt_from_text(text))


def receipt_from_text(text: str) -> ParsedReceipt:
    payload = extract_json_object(text)
    try:
        return ParsedReceipt.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamError("Model JSON does not look like a receipt", raw=text, status_code=422) from exc


def decode_image_payload(
    data_url: Optional[str] = None,
    image_base64: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> tuple[bytes, str]:
    """Decode ``{dataUrl}`` or ``{imageBase64, mimeType}`` JSON bodies."""
    if data_url:
        m = _DATA_URL.match(data_url)
        if not m:
            raise InvalidRequestError("Invalid dataUrl")
        mime_type, image_base64 = m.group(1), m.group(2)
    if not image_base64 or not mime_type:
        raise InvalidRequestError("No image provided")
    try:
        return base64.b64decode(image_base64, validate=True), mime_type
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError("Image is not valid base64") from exc
