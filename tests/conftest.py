from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("ENABLE_TRACING", "false")
os.environ.setdefault("ENABLE_EVENT_FEED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from assemblyvote.api.deps import (
    get_db_session,
    get_document_store,
    get_event_publisher,
    get_notification_gateway,
)
from assemblyvote.api.routes.auth import issue_tokens, refresh_token_store
from assemblyvote.core.config import get_settings
from assemblyvote.core.errors import ExternalDependencyFailed
from assemblyvote.main import app
from assemblyvote.models import Assembly, Base, Identity, IdentityRole, Unit
from assemblyvote.obs import AuditMiddleware
from assemblyvote.services.attendance import quorum_cache
from assemblyvote.services.notifications import DispatchResult


class InMemoryS3Client:
    """Simple in-memory S3 stub used by the audit middleware and document store."""

    exceptions = SimpleNamespace(NoSuchKey=type("NoSuchKey", (Exception,), {}))

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}

    def head_bucket(self, *, Bucket: str) -> None:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, *, Bucket: str, **_: object) -> None:
        self._buckets.setdefault(Bucket, {})

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, BytesIO]:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "NoSuchBucket"}}, "GetObject")
        bucket = self._buckets[Bucket]
        if Key not in bucket:
            raise self.exceptions.NoSuchKey()
        return {"Body": BytesIO(bucket[Key])}

    def put_object(self, *, Bucket: str, Key: str, Body: bytes | str, **_: object) -> dict[str, str]:
        bucket = self._buckets.setdefault(Bucket, {})
        bucket[Key] = Body.encode("utf-8") if isinstance(Body, str) else Body
        return {"ETag": "in-memory"}

    def delete_object(self, *, Bucket: str, Key: str) -> None:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "NoSuchBucket"}}, "DeleteObject")
        self._buckets[Bucket].pop(Key, None)

    @property
    def buckets(self) -> dict[str, dict[str, bytes]]:
        return self._buckets


class RecordingGateway:
    """Notification gateway that records messages instead of sending them."""

    def __init__(self) -> None:
        self.emails: list[dict[str, str]] = []
        self.sms: list[dict[str, str]] = []
        self.fail_email = False
        self.fail_sms = False

    def send_email(self, to: str, subject: str, html: str) -> DispatchResult:
        if self.fail_email:
            return DispatchResult(channel="email", success=False, error="smtp down")
        self.emails.append({"to": to, "subject": subject, "html": html})
        return DispatchResult(channel="email", success=True)

    def send_sms(self, to: str, body: str) -> DispatchResult:
        if self.fail_sms:
            return DispatchResult(channel="sms", success=False, error="provider code 35")
        self.sms.append({"to": to, "body": body})
        return DispatchResult(channel="sms", success=True)

    def last_code(self) -> str:
        body = self.sms[-1]["body"] if self.sms else self.emails[-1]["html"]
        digits = [token for token in body.replace("<", " ").replace(">", " ").split() if token.isdigit()]
        return next(token for token in digits if len(token) == 6)


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_delete = False

    def put(self, proxy_id: str, payload: bytes, *, filename: str | None = None) -> str:
        url = f"s3://test-proxies/{proxy_id}/{uuid4().hex}.pdf"
        self.objects[url] = payload
        return url

    def delete(self, url: str) -> None:
        if self.fail_delete:
            raise ExternalDependencyFailed("storage unavailable")
        self.objects.pop(url, None)
        self.deleted.append(url)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list = []

    def publish(self, events) -> None:  # type: ignore[no-untyped-def]
        self.events.extend(events)

    def types(self) -> list[str]:
        return [item.event_type for item in self.events]


DATABASE_URL = "sqlite+pysqlite://"


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(autouse=True)
def audit_s3_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemoryS3Client]:
    client = InMemoryS3Client()

    def _client_factory(*args: object, **kwargs: object) -> InMemoryS3Client:
        return client

    monkeypatch.setattr("assemblyvote.obs.audit.boto3.client", _client_factory)
    stack = getattr(app, "middleware_stack", None)
    middleware = getattr(stack, "app", None)
    while middleware is not None and hasattr(middleware, "app"):
        if isinstance(middleware, AuditMiddleware):
            middleware.sink.reset()
        middleware = getattr(middleware, "app", None)
    yield client


@pytest.fixture(autouse=True)
def _reset_shared_state() -> Iterator[None]:
    quorum_cache.invalidate()
    refresh_token_store.reset()
    yield
    quorum_cache.invalidate()
    refresh_token_store.reset()


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture()
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def make_identity(db_session: Session) -> Callable[..., Identity]:
    def _make(
        document: str,
        name: str | None = None,
        *,
        role: IdentityRole = IdentityRole.USER,
        assembly_id: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> Identity:
        identity = Identity(
            document_id=document,
            full_name=name or f"Person {document}",
            role=role,
            assembly_id=assembly_id,
            email=email,
            phone=phone,
        )
        db_session.add(identity)
        db_session.commit()
        return identity

    return _make


@pytest.fixture()
def community(db_session: Session, make_identity: Callable[..., Identity]) -> SimpleNamespace:
    """Assembly with four units summing to 1.0 and their owners checked out.

    * alice owns 101 (0.30)
    * bob owns 102 (0.25) and 103 (0.15)
    * carol owns 201 (0.30)
    """

    assembly = Assembly(name="Torres del Parque", city="Bogota")
    db_session.add(assembly)
    db_session.commit()

    admin = make_identity("9001", "Admin", role=IdentityRole.ADMIN, assembly_id=assembly.id)
    operator = make_identity("9002", "Operator", role=IdentityRole.OPERATOR, assembly_id=assembly.id)
    alice = make_identity("1001", "Alice", assembly_id=assembly.id, email="alice@example.com", phone="3001112233")
    bob = make_identity("1002", "Bob", assembly_id=assembly.id, email="bob@example.com")
    carol = make_identity("1003", "Carol", assembly_id=assembly.id, phone="3004445566")

    units = {}
    for number, coefficient, owner in (
        ("101", "0.30", alice),
        ("102", "0.25", bob),
        ("103", "0.15", bob),
        ("201", "0.30", carol),
    ):
        unit = Unit(
            assembly_id=assembly.id,
            number=number,
            coefficient=Decimal(coefficient),
            owner_document_id=owner.document_id,
            owner_name=owner.full_name,
            current_representative_id=owner.id,
        )
        db_session.add(unit)
        units[number] = unit
    db_session.commit()

    return SimpleNamespace(
        assembly=assembly,
        admin=admin,
        operator=operator,
        alice=alice,
        bob=bob,
        carol=carol,
        units=units,
    )


@pytest.fixture()
def client(
    db_session: Session,
    audit_s3_client: InMemoryS3Client,
    gateway: RecordingGateway,
    document_store: InMemoryDocumentStore,
    publisher: RecordingPublisher,
) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_notification_gateway] = lambda: gateway
    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_event_publisher] = lambda: publisher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers() -> Callable[[Identity], dict[str, str]]:
    def _headers(identity: Identity) -> dict[str, str]:
        tokens, _ = issue_tokens(subject=identity.id, role=identity.role, settings=get_settings())
        return {"Authorization": f"Bearer {tokens.access_token}"}

    return _headers
