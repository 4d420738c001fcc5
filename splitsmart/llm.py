"""
Thin wrapper around the Gemini SDK plus permissive JSON extraction.

Every failure coming out of the SDK (network, quota, timeout, safety
block, empty text) is reported as :class:`UpstreamError`, so callers can
treat all of them the same way.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from google import genai
from google.genai import types

from splitsmart.errors import UpstreamError

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_ARRAY = re.compile(r"\[[\s\S]*\]")


class GeminiClient:
    def __init__(self, api_key: str, timeout_seconds: float = 30.0):
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )

    @staticmethod
    def image_part(data: bytes, mime_type: str) -> types.Part:
        return types.Part.from_bytes(data=data, mime_type=mime_type)

    def generate_text(self, model: str, contents: list[Any]) -> str:
        try:
            resp = self._client.models.generate_content(model=model, contents=contents)
            text = (resp.text or "").strip()
        except Exception as exc:
            raise UpstreamError(f"{model} call failed: {exc}") from exc
        if not text:
            raise UpstreamError(f"{model} returned no text")
        logger.info("%s returned %d chars", model, len(text))
        return text


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object, tolerating code fences and surrounding chatter."""
    fenced = _FENCE.search(text)
    body = fenced.group(1) if fenced else text
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        start, end = body.find("{"), body.rfind("}")
        if start < 0 or end <= start:
            raise UpstreamError("Model did not return parseable JSON", raw=text, status_code=422)
        try:
            parsed = json.loads(body[start:end + 1])
        except json.JSONDecodeError as exc:
            raise UpstreamError("Model did not return parseable JSON", raw=text, status_code=422) from exc
    if not isinstance(parsed, dict):
        raise UpstreamError("Model did not return a JSON object", raw=text, status_code=422)
    return parsed


def extract_json_array(text: str) -> list[Any]:
    """Parse a bare JSON array, or the first bracketed substring of *text*."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        m = _ARRAY.search(text)
        if not m:
            raise UpstreamError("Model did not return a JSON array", raw=text)
        try:
            parsed = json.loads(m.group(0))
        except json.JSONDecodeError as exc:
            raise UpstreamError("Model did not return a JSON array", raw=text) from exc
    if not isinstance(parsed, list):
        raise UpstreamError("Model did not return a JSON array", raw=text)
    return parsed
