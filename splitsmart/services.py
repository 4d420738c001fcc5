"""
Collaborator providers for FastAPI ``Depends``.

Each one is overridable through ``app.dependency_overrides`` (the tests
swap in fakes).  Without credentials the offline variants are used: the
demo receipt, heuristic-only suggestions and demo checkout.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from splitsmart.cache import InMemoryCache, Memory
from splitsmart.config import settings
from splitsmart.llm import GeminiClient
from splitsmart.pipeline.payments import DemoPaymentProvider, FlowgladPaymentProvider, PaymentProvider, use_demo_checkout
from splitsmart.pipeline.receipt_parser import DemoReceiptParser, GeminiReceiptParser, ReceiptParser
from splitsmart.pipeline.suggestions import GeminiSuggestionModel, SuggestionModel

logger = logging.getLogger(__name__)


def get_memory(request: Request) -> Memory:
    memory = getattr(request.app.state, "memory", None)
    if memory is None:
        # app used without its lifespan (e.g. mounted elsewhere)
        memory = request.app.state.memory = InMemoryCache()
    return memory


def get_receipt_parser() -> ReceiptParser:
    if not settings.GEMINI_API_KEY:
        return DemoReceiptParser()
    client = GeminiClient(settings.GEMINI_API_KEY, timeout_seconds=settings.RECEIPT_TIMEOUT_SECONDS)
    return GeminiReceiptParser(client, settings.GEMINI_MODEL, settings.GEMINI_FALLBACK_MODEL)


def get_suggestion_model() -> Optional[SuggestionModel]:
    if not settings.GEMINI_API_KEY:
        return None
    client = GeminiClient(settings.GEMINI_API_KEY, timeout_seconds=settings.SUGGESTION_TIMEOUT_SECONDS)
    return GeminiSuggestionModel(client, settings.SUGGESTION_MODEL)


def get_payment_provider() -> PaymentProvider:
    if use_demo_checkout(settings.FLOWGLAD_PRICE_ID, settings.PAYMENTS_DEMO) or not settings.FLOWGLAD_SECRET_KEY:
        return DemoPaymentProvider()
    return FlowgladPaymentProvider(settings.FLOWGLAD_API_URL, settings.FLOWGLAD_SECRET_KEY)
