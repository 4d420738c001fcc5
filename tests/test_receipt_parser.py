"""
Unit tests for the receipt parser collaborator and JSON extraction.
"""
import base64

import pytest

from splitsmart.errors import InvalidRequestError, UpstreamError
from splitsmart.llm import extract_json_array, extract_json_object
from splitsmart.pipeline.ledger import normalize
from splitsmart.pipeline.receipt_parser import (
    DemoReceiptParser,
    GeminiReceiptParser,
    decode_image_payload,
    receipt_from_text,
)

GOOD_JSON = '{"items": [{"name": "Pho", "quantity": 1, "unitPrice": 12.5, "total": 12.5}], "subtotal": 12.5, "tax": 1, "tip": 2, "total": 15.5, "currency": "usd"}'


class FakeGeminiClient:
    """Stands in for ``GeminiClient``; *replies* maps model → text or exception."""

    def __init__(self, replies):
        self.replies = replies
        self.calls = []

    @staticmethod
    def image_part(data, mime_type):
        return {"mime_type": mime_type, "size": len(data)}

    def generate_text(self, model, contents):
        self.calls.append(model)
        reply = self.replies[model]
        if isinstance(reply, Exception):
            raise reply
        return reply


class TestDemoParser:
    def test_fixed_sample(self):
        outcome = DemoReceiptParser().parse(b"", "image/png")
        assert outcome.model_used == "demo"
        items, totals = normalize(outcome.receipt)
        assert [(i.name, i.total_cents) for i in items] == [
            ("Burger", 999), ("Fries", 349), ("Soda", 250),
        ]
        assert (totals.subtotal_cents, totals.tax_cents, totals.tip_cents, totals.total_cents) == (
            1598, 128, 200, 1926,
        )
        assert totals.currency == "USD"


class TestGeminiParser:
    def test_primary_model(self):
        client = FakeGeminiClient({"pro": GOOD_JSON, "flash": GOOD_JSON})
        outcome = GeminiReceiptParser(client, "pro", "flash").parse(b"img", "image/jpeg")
        assert outcome.model_used == "pro"
        assert outcome.receipt.items[0].name == "Pho"
        assert client.calls == ["pro"]

    def test_falls_back_on_primary_failure(self):
        client = FakeGeminiClient({"pro": UpstreamError("quota"), "flash": "```json\n" + GOOD_JSON + "\n```"})
        outcome = GeminiReceiptParser(client, "pro", "flash").parse(b"img", "image/jpeg")
        assert outcome.model_used == "flash"
        assert outcome.receipt.subtotal == 12.5
        assert client.calls == ["pro", "flash"]

    def test_both_fail(self):
        client = FakeGeminiClient({"pro": UpstreamError("quota"), "flash": UpstreamError("timeout")})
        with pytest.raises(UpstreamError) as exc:
            GeminiReceiptParser(client, "pro", "flash").parse(b"img", "image/jpeg")
        assert "timeout" in str(exc.value)

    def test_garbage_text_is_422_with_raw(self):
        client = FakeGeminiClient({"pro": "no receipt here", "flash": GOOD_JSON})
        with pytest.raises(UpstreamError) as exc:
            GeminiReceiptParser(client, "pro", "flash").parse(b"img", "image/jpeg")
        assert exc.value.status_code == 422
        assert exc.value.raw == "no receipt here"


class TestJsonExtraction:
    def test_object_with_chatter(self):
        assert extract_json_object('Here you go: {"a": 1} thanks') == {"a": 1}

    def test_object_rejects_array(self):
        with pytest.raises(UpstreamError):
            extract_json_object("[1, 2]")

    def test_receipt_shape_checked(self):
        with pytest.raises(UpstreamError) as exc:
            receipt_from_text('{"items": ["Burger", "Fries"]}')
        assert exc.value.status_code == 422

    def test_array_bare_and_embedded(self):
        assert extract_json_array('["a", "b"]') == ["a", "b"]
        assert extract_json_array('Suggestions:\n["a"]\nEnjoy') == ["a"]

    def test_array_missing(self):
        with pytest.raises(UpstreamError):
            extract_json_array('{"a": 1}')


class TestImagePayload:
    def test_data_url(self):
        encoded = base64.b64encode(b"\x89PNG").decode()
        data, mime = decode_image_payload(data_url=f"data:image/png;base64,{encoded}")
        assert data == b"\x89PNG"
        assert mime == "image/png"

    def test_base64_and_mime(self):
        encoded = base64.b64encode(b"jpeg").decode()
        assert decode_image_payload(image_base64=encoded, mime_type="image/jpeg") == (b"jpeg", "image/jpeg")

    @pytest.mark.parametrize("kwargs", [
        {},
        {"data_url": "not a data url"},
        {"image_base64": "aGVsbG8="},
        {"image_base64": "***", "mime_type": "image/png"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidRequestError):
            decode_image_payload(**kwargs)
