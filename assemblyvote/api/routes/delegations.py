"""Delegation (proxy) endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from assemblyvote.api.deps import client_context, get_db_session, get_delegation_engine
from assemblyvote.api.routes.auth import AuthenticatedUser, get_current_user
from assemblyvote.models import ProxyType
from assemblyvote.schemas import (
    DelegationResult,
    DigitalDelegationCreate,
    DigitalDelegationRequested,
    DocumentAttached,
    ManualDelegationCreate,
    PowerStatsRead,
    ProxyRead,
    SignatureVerify,
)
from assemblyvote.services.delegation import DelegationEngine, DelegationOutcome
from assemblyvote.services.identities import IdentityDirectory

router = APIRouter(prefix="/delegations")


def _result(outcome: DelegationOutcome) -> DelegationResult:
    return DelegationResult(
        proxy_id=outcome.proxy_id,
        status=outcome.status,
        representative_id=outcome.representative_id,
        units_transferred=outcome.units_transferred,
        superseded_proxy_ids=outcome.superseded_proxy_ids,
        document_hash=outcome.document_hash,
        warnings=outcome.warnings,
    )


@router.post(
    "/digital",
    response_model=DigitalDelegationRequested,
    status_code=status.HTTP_201_CREATED,
    summary="Start an OTP-signed delegation",
)
def request_digital_delegation(
    payload: DigitalDelegationCreate,
    request: Request,
    engine: DelegationEngine = Depends(get_delegation_engine),
    user: AuthenticatedUser = Depends(get_current_user),
) -> DigitalDelegationRequested:
    ip_address, user_agent = client_context(request)
    outcome = engine.request_digital_delegation(
        user.identity_id,
        payload.representative,
        payload.external_name,
        external_doc=payload.external_doc,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return DigitalDelegationRequested(
        proxy_id=outcome.proxy_id,
        signature_id=outcome.signature_id,
        expires_at=outcome.expires_at,
        channels=outcome.channels,
        warnings=outcome.warnings,
    )


@router.post(
    "/digital/{signature_id}/verify",
    response_model=DelegationResult,
    summary="Confirm a delegation with the OTP code",
)
def verify_digital_delegation(
    signature_id: str,
    payload: SignatureVerify,
    request: Request,
    engine: DelegationEngine = Depends(get_delegation_engine),
    user: AuthenticatedUser = Depends(get_current_user),
) -> DelegationResult:
    ip_address, user_agent = client_context(request)
    outcome = engine.verify_digital_delegation(
        signature_id,
        user.identity_id,
        payload.code,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return _result(outcome)


@router.post(
    "/manual",
    response_model=DelegationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Register a PDF or operator-entered delegation",
)
def register_manual_delegation(
    payload: ManualDelegationCreate,
    request: Request,
    engine: DelegationEngine = Depends(get_delegation_engine),
    user: AuthenticatedUser = Depends(get_current_user),
) -> DelegationResult:
    ip_address, _ = client_context(request)
    outcome = engine.register_manual_delegation(
        user.identity_id,
        payload.representative,
        ProxyType(payload.type),
        payload.document_ref,
        principal_document=payload.principal_document,
        external_name=payload.external_name,
        external_doc=payload.external_doc,
        ip_address=ip_address,
    )
    return _result(outcome)


@router.post("/{proxy_id}/revoke", response_model=DelegationResult, summary="Revoke a delegation")
def revoke_delegation(
    proxy_id: str,
    request: Request,
    engine: DelegationEngine = Depends(get_delegation_engine),
    user: AuthenticatedUser = Depends(get_current_user),
) -> DelegationResult:
    ip_address, _ = client_context(request)
    return _result(engine.revoke(proxy_id, user.identity_id, ip_address=ip_address))


@router.post(
    "/{proxy_id}/document",
    response_model=DocumentAttached,
    summary="Upload the signed proxy document",
)
async def attach_document(
    proxy_id: str,
    request: Request,
    engine: DelegationEngine = Depends(get_delegation_engine),
    user: AuthenticatedUser = Depends(get_current_user),
) -> DocumentAttached:
    payload = await request.body()
    filename = request.headers.get("x-upload-filename")
    url = engine.attach_document(proxy_id, user.identity_id, payload, filename)
    return DocumentAttached(proxy_id=proxy_id, document_url=url)


@router.get("/mine", response_model=list[ProxyRead], summary="Delegations granted by the caller")
def my_delegations(
    engine: DelegationEngine = Depends(get_delegation_engine),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[ProxyRead]:
    return [ProxyRead.model_validate(proxy) for proxy in engine.proxies_of(user.identity_id)]


@router.get("/power", response_model=PowerStatsRead, summary="Voting weight held by the caller")
def my_power(
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> PowerStatsRead:
    return PowerStatsRead.model_validate(IdentityDirectory(session).power_stats(user.identity_id))


__all__ = ["router"]
