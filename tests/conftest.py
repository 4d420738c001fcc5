"""
Shared pytest fixtures — in‑memory SQLite + FastAPI TestClient.
"""
import json
import pathlib

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import splitsmart.models  # noqa: F401  — register models
from splitsmart.cache import InMemoryCache
from splitsmart.database import Base, get_db
from splitsmart.main import app
from splitsmart.pipeline import apply_receipt
from splitsmart.pipeline.payments import DemoPaymentProvider
from splitsmart.pipeline.receipt_parser import DemoReceiptParser
from splitsmart.pipeline.sessions import create_session, join_session
from splitsmart.realtime import attach_change_feed
from splitsmart.schemas import ParsedReceipt
from splitsmart.services import get_memory, get_payment_provider, get_receipt_parser, get_suggestion_model

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)
attach_change_feed(_Session)

FIXTURES = pathlib.Path(__file__).resolve().parent.parent / "fixtures"

# A($10.00), B($20.00); subtotal 30, tax 3, tip 5
TWO_ITEM_RECEIPT = json.loads((FIXTURES / "two_item_receipt.json").read_text())


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def memory():
    return InMemoryCache()


@pytest.fixture()
def client(db, memory):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_memory] = lambda: memory
    app.dependency_overrides[get_receipt_parser] = lambda: DemoReceiptParser()
    app.dependency_overrides[get_suggestion_model] = lambda: None
    app.dependency_overrides[get_payment_provider] = lambda: DemoPaymentProvider()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def session(db):
    """A session holding the two-item receipt."""
    s = create_session(db, currency="USD", host_name="Hana")
    return apply_receipt(db, s.code, ParsedReceipt.model_validate(TWO_ITEM_RECEIPT))


@pytest.fixture()
def alice(db, session):
    return join_session(db, session, "Alice")


@pytest.fixture()
def bob(db, session):
    return join_session(db, session, "Bob")
