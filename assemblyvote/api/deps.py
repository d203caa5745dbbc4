"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from assemblyvote.core.config import get_settings
from assemblyvote.db.session import SessionLocal
from assemblyvote.services.attendance import AttendanceRegistry
from assemblyvote.services.delegation import DelegationEngine
from assemblyvote.services.events import AssemblyEventPublisher, EventPublisher
from assemblyvote.services.notifications import CompositeNotificationGateway, NotificationGateway
from assemblyvote.services.storage import DocumentStore, ProxyDocumentStore
from assemblyvote.services.voting import VotingService


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@lru_cache
def get_notification_gateway() -> NotificationGateway:
    return CompositeNotificationGateway(settings=get_settings())


@lru_cache
def get_document_store() -> DocumentStore:
    return ProxyDocumentStore(settings=get_settings())


@lru_cache
def get_event_publisher() -> EventPublisher | None:
    settings = get_settings()
    if not settings.enable_event_feed:
        return None
    return AssemblyEventPublisher(settings=settings)


def get_delegation_engine(
    session: Session = Depends(get_db_session),
    gateway: NotificationGateway = Depends(get_notification_gateway),
    document_store: DocumentStore = Depends(get_document_store),
) -> DelegationEngine:
    return DelegationEngine(session, gateway=gateway, document_store=document_store)


def get_voting_service(
    session: Session = Depends(get_db_session),
    publisher: EventPublisher | None = Depends(get_event_publisher),
) -> VotingService:
    return VotingService(session, publisher=publisher)


def get_attendance_registry(
    session: Session = Depends(get_db_session),
    publisher: EventPublisher | None = Depends(get_event_publisher),
) -> AttendanceRegistry:
    return AttendanceRegistry(session, publisher=publisher)


def client_context(request: Request) -> tuple[str | None, str | None]:
    """Caller IP and user agent recorded with signatures and audit rows."""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else None
    if ip_address is None and request.client is not None:
        ip_address = request.client.host
    return ip_address, request.headers.get("user-agent")


__all__ = [
    "client_context",
    "get_attendance_registry",
    "get_db_session",
    "get_delegation_engine",
    "get_document_store",
    "get_event_publisher",
    "get_notification_gateway",
    "get_voting_service",
]
