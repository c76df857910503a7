"""
Shared pytest fixtures for the fulfillment tests.

Every test runs against a throwaway SQLite file with freshly created tables,
and every outgoing Brevo call is captured instead of hitting the network.
"""

import os
import tempfile
from concurrent.futures import Future
from decimal import Decimal

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="fulfillment-tests-")
os.environ["SQLALCHEMY_DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'fulfillment.db')}"
os.environ["TELEGRAM_BOT_SECRET"] = "bot-secret"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ.pop("USD_TO_BIRR_RATE", None)

from fastapi import BackgroundTasks, Depends  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from fulfillment import models  # noqa: E402,F401
from fulfillment.database import create_db_and_tables, engine, get_session, session_factory  # noqa: E402
from fulfillment.dependencies.catalog import get_catalog_repository  # noqa: E402
from fulfillment.dependencies.currency import get_currency_converter  # noqa: E402
from fulfillment.dependencies.services import get_contact_service, get_purchase_service  # noqa: E402
from fulfillment.models.book import Book  # noqa: E402
from fulfillment.models.bundle import Bundle, BundleBook  # noqa: E402
from fulfillment.models.user import User  # noqa: E402
from fulfillment.realtime import ChangeFeed, LocalRealtimeTransport  # noqa: E402
from fulfillment.repositories.cached_catalog_repository import CachedCatalogRepository  # noqa: E402
from fulfillment.services import email_service  # noqa: E402
from fulfillment.services.contact_service import ContactService  # noqa: E402
from fulfillment.services.currency import CurrencyConverter  # noqa: E402
from fulfillment.services.purchase_service import PurchaseService  # noqa: E402
from fulfillment.services.storage_service import StorageError  # noqa: E402
from fulfillment.utils.token import create_access_token  # noqa: E402


class ImmediateExecutor:
    """Runs submitted work inline so detached notifications finish before asserts."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploaded = []
        self.deleted = []

    def upload_payment_proof(self, file, purchase_id, reference):
        if self.fail:
            raise StorageError("bucket unavailable")
        key = f"payment_proofs/{purchase_id}/{reference}.png"
        self.uploaded.append(key)
        return key

    def delete_payment_proof(self, key):
        self.deleted.append(key)


class FakeBrevoResponse:
    def __init__(self, status_code: int, message_id: str):
        self.status_code = status_code
        self.text = "" if status_code < 400 else "provider error"
        self._message_id = message_id

    def json(self):
        return {"messageId": self._message_id}


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture(autouse=True)
def database():
    """Empty tables and an empty process-wide catalog cache for each test."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    get_catalog_repository().clear_cache()
    yield engine


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Payloads of every Brevo call made during the test."""
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append(json)
        return FakeBrevoResponse(201, f"<msg-{len(sent)}@brevo>")

    monkeypatch.setattr(email_service.requests, "post", fake_post)
    return sent


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def executor():
    return ImmediateExecutor()


@pytest.fixture
def dispatcher():
    """Stands in for the notification dispatcher and remembers every call."""
    calls = []

    def dispatch(**kwargs):
        calls.append(kwargs)
        return {}

    dispatch.calls = calls
    return dispatch


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def catalog():
    return CachedCatalogRepository(session_factory)


@pytest.fixture
def converter():
    return CurrencyConverter(120)


@pytest.fixture
def transport():
    return LocalRealtimeTransport()


@pytest.fixture
def change_feed(transport):
    feed = ChangeFeed(transport).install()
    yield feed
    feed.remove()


# =============================================================================
# Rows
# =============================================================================

def _persist(session, row):
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


@pytest.fixture
def buyer(session) -> User:
    return _persist(session, User(
        first_name="Abebe", last_name="Kebede", username="abebe", email="abebe@example.com",
    ))


@pytest.fixture
def other_buyer(session) -> User:
    return _persist(session, User(username="liya", email="liya@example.com"))


@pytest.fixture
def admin(session) -> User:
    return _persist(session, User(
        first_name="Sara", last_name="Tesfaye", username="sara", email="admin@example.com", role="admin",
    ))


@pytest.fixture
def book(session) -> Book:
    return _persist(session, Book(title="Test Book", author="Jane Doe", price=Decimal("19.99")))


@pytest.fixture
def free_book(session) -> Book:
    return _persist(session, Book(title="Free Sample", author="Jane Doe", price=Decimal("0"), is_free=True))


@pytest.fixture
def bundle(session, book) -> Bundle:
    second = _persist(session, Book(title="Second Book", author="John Roe", price=Decimal("9.99")))
    bundle = _persist(session, Bundle(title="Starter Bundle", price=Decimal("24.99")))
    session.add(BundleBook(bundle_id=bundle.id, book_id=book.id))
    session.add(BundleBook(bundle_id=bundle.id, book_id=second.id))
    session.commit()
    return bundle


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def purchase_service(session, catalog, converter, storage, dispatcher, executor) -> PurchaseService:
    return PurchaseService(
        session, catalog=catalog, converter=converter, storage=storage,
        dispatcher=dispatcher, executor=executor,
    )


@pytest.fixture
def contact_service(session, catalog, dispatcher, executor) -> ContactService:
    return ContactService(session, catalog=catalog, dispatcher=dispatcher, executor=executor)


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def auth_headers():
    def headers_for(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'user_id': user.id})}"}
    return headers_for


@pytest.fixture
def client(catalog, converter, storage):
    from fulfillment.main import app

    def purchase_service_override(background_tasks: BackgroundTasks, session: Session = Depends(get_session)):
        return PurchaseService(
            session, catalog=catalog, converter=converter, storage=storage, background_tasks=background_tasks,
        )

    def contact_service_override(background_tasks: BackgroundTasks, session: Session = Depends(get_session)):
        return ContactService(session, catalog=catalog, background_tasks=background_tasks)

    app.dependency_overrides[get_catalog_repository] = lambda: catalog
    app.dependency_overrides[get_currency_converter] = lambda: converter
    app.dependency_overrides[get_purchase_service] = purchase_service_override
    app.dependency_overrides[get_contact_service] = contact_service_override

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
