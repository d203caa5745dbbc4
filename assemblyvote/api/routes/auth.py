"""Authentication endpoints for issuing JWTs."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Any, Literal
from uuid import uuid4

from cryptography.hazmat.primitives import serialization
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from assemblyvote.api.deps import get_db_session
from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.documents import DocumentId
from assemblyvote.models import AuthAccount, Identity, IdentityRole
from assemblyvote.schemas import LoginRequest, RefreshRequest, TokenPayload, TokenResponse
from assemblyvote.services.identities import IdentityDirectory, verify_password

router = APIRouter()
security_scheme = HTTPBearer(auto_error=True)


@dataclass(frozen=True)
class AuthenticatedUser:
    identity_id: str
    role: IdentityRole
    token_id: str


class RefreshTokenStore:
    """In-memory store tracking active and blacklisted refresh tokens."""

    def __init__(self) -> None:
        self._active: dict[str, str] = {}
        self._blacklist: set[str] = set()
        self._lock = Lock()

    def mark_active(self, subject: str, token_id: str) -> None:
        with self._lock:
            self._active[subject] = token_id

    def is_active(self, subject: str, token_id: str) -> bool:
        with self._lock:
            if token_id in self._blacklist:
                return False
            return self._active.get(subject) == token_id

    def blacklist(self, token_id: str) -> None:
        with self._lock:
            self._blacklist.add(token_id)

    def reset(self) -> None:
        with self._lock:
            self._active.clear()
            self._blacklist.clear()


refresh_token_store = RefreshTokenStore()


def _create_token(
    *,
    subject: str,
    settings: Settings,
    expires_delta: timedelta,
    token_type: Literal["access", "refresh"],
    role: IdentityRole,
    signing_key: Any,
) -> tuple[str, str]:
    now = datetime.now(UTC)
    token_id = uuid4().hex
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "role": role.value,
        "type": token_type,
        "jti": token_id,
    }
    encoded = jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm)
    return encoded, token_id


def issue_tokens(*, subject: str, role: IdentityRole, settings: Settings) -> tuple[TokenResponse, str]:
    signing_key = _load_signing_key(settings)
    access_token, _ = _create_token(
        subject=subject,
        settings=settings,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
        token_type="access",
        role=role,
        signing_key=signing_key,
    )
    refresh_token, refresh_id = _create_token(
        subject=subject,
        settings=settings,
        expires_delta=timedelta(days=settings.refresh_token_expire_days),
        token_type="refresh",
        role=role,
        signing_key=signing_key,
    )
    response = TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.access_token_expire_minutes * 60,
    )
    return response, refresh_id


def _decode_token(*, token: str, settings: Settings) -> TokenPayload:
    try:
        payload = jwt.decode(token, _load_verifying_key(settings), algorithms=[settings.jwt_algorithm])
    except JWTError as exc:  # pragma: no cover - jose normalizes errors
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    try:
        return TokenPayload(**payload)
    except ValidationError as exc:  # pragma: no cover - validation handles data issues
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def _load_signing_key(settings: Settings) -> Any:
    try:
        return serialization.load_pem_private_key(settings.jwt_private_key.encode("utf-8"), password=None)
    except ValueError as exc:  # pragma: no cover - configuration issue
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Invalid JWT signing key",
        ) from exc


def _load_verifying_key(settings: Settings) -> str:
    public_key = _load_signing_key(settings).public_key()
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> AuthenticatedUser:
    settings = get_settings()
    payload = _decode_token(token=credentials.credentials, settings=settings)
    if payload.type != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    request.state.identity_id = payload.sub
    request.state.role = payload.role.value
    return AuthenticatedUser(identity_id=payload.sub, role=payload.role, token_id=payload.jti)


def require_role(*roles: IdentityRole) -> Callable[..., AuthenticatedUser]:
    allowed_roles = set(roles)

    def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency


def _find_account(session: Session, login: str) -> AuthAccount | None:
    """Accept either a full login handle or a bare document number."""
    handle = login.strip().lower()
    if "@" not in handle:
        document_id = DocumentId.parse(login)
        if document_id is None:
            return None
        identity = session.scalar(select(Identity).where(Identity.document_id == str(document_id)))
        if identity is not None and identity.auth_account is not None:
            return identity.auth_account
        handle = IdentityDirectory(session).synthetic_handle(document_id)
    return session.scalar(select(AuthAccount).where(AuthAccount.login_handle == handle))


@router.post("/login", response_model=TokenResponse, summary="Issue JWT access tokens")
def login(payload: LoginRequest, session: Session = Depends(get_db_session)) -> TokenResponse:
    settings = get_settings()
    account = _find_account(session, payload.document)
    if account is None or not verify_password(payload.password, account.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if account.identity is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account has no profile")

    identity = account.identity
    response, refresh_id = issue_tokens(subject=identity.id, role=identity.role, settings=settings)
    refresh_token_store.mark_active(identity.id, refresh_id)
    return response


@router.post("/refresh", response_model=TokenResponse, summary="Rotate JWT refresh tokens")
def refresh_token(payload: RefreshRequest, session: Session = Depends(get_db_session)) -> TokenResponse:
    settings = get_settings()
    token = _decode_token(token=payload.refresh_token, settings=settings)
    if token.type != "refresh":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token type")
    if not refresh_token_store.is_active(token.sub, token.jti):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token revoked")
    identity = session.get(Identity, token.sub)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown identity")

    refresh_token_store.blacklist(token.jti)
    response, refresh_id = issue_tokens(subject=identity.id, role=identity.role, settings=settings)
    refresh_token_store.mark_active(identity.id, refresh_id)
    return response


__all__ = [
    "AuthenticatedUser",
    "get_current_user",
    "issue_tokens",
    "refresh_token_store",
    "require_role",
    "router",
]
