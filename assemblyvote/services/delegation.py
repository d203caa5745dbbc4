"""Delegation engine: proxy lifecycle, OTP digital signatures and ledger transfers."""
from __future__ import annotations

import hashlib
import json
import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.documents import DocumentId
from assemblyvote.core.errors import (
    AlreadyProcessed,
    CoreError,
    Expired,
    ExternalDependencyFailed,
    Forbidden,
    InvalidCode,
    NoContactChannel,
    NotFound,
    TooManyAttempts,
    ValidationError,
)
from assemblyvote.db.session import retry_on_conflict, serializable_transaction
from assemblyvote.models import (
    ELEVATED_ROLES,
    Assembly,
    DigitalSignature,
    Identity,
    NotificationChannel,
    NotificationType,
    Proxy,
    ProxyStatus,
    ProxyType,
    SignatureStatus,
    Unit,
)
from assemblyvote.models.base import as_utc, utcnow
from assemblyvote.obs import DELEGATION_COUNTER, SIGNATURES_EXPIRED_COUNTER, core_span
from assemblyvote.services.audit_trail import record_audit
from assemblyvote.services.identities import IdentityDirectory, authorize
from assemblyvote.services.ledger import RepresentationLedger
from assemblyvote.services.notifications import NotificationGateway, dispatch_all
from assemblyvote.services.storage import DocumentStore
from assemblyvote.services.templates import TemplateRenderer

logger = logging.getLogger(__name__)

_MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)


@dataclass(slots=True, frozen=True)
class ContactChannels:
    email: str | None
    phone: str | None


@dataclass(slots=True, frozen=True)
class DelegationRequestOutcome:
    proxy_id: str
    signature_id: str
    expires_at: datetime
    channels: list[str]
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class DelegationOutcome:
    proxy_id: str
    status: ProxyStatus
    representative_id: str | None
    units_transferred: int = 0
    superseded_proxy_ids: list[str] = field(default_factory=list)
    document_hash: str | None = None
    warnings: list[str] = field(default_factory=list)


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def compute_document_hash(
    *,
    proxy_id: str,
    principal_id: str,
    representative_id: str,
    external_name: str | None,
    ip_address: str | None,
    user_agent: str | None,
    signed_at: datetime,
) -> str:
    """SHA-256 over the canonical JSON form of the signed delegation."""
    canonical = json.dumps(
        {
            "proxy_id": proxy_id,
            "principal_id": principal_id,
            "representative_id": representative_id,
            "external_name": external_name,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "signed_at": as_utc(signed_at).isoformat(),
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class DelegationEngine:
    """Creates, signs, approves and revokes proxies.

    Every representation change runs in one serializable transaction: the old
    approved proxy is revoked and its units restored before the new proxy is
    approved and its units transferred. Notifications and object storage are
    only touched outside those transactions.
    """

    def __init__(
        self,
        session: Session,
        *,
        gateway: NotificationGateway,
        document_store: DocumentStore | None = None,
        renderer: TemplateRenderer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._gateway = gateway
        self._store = document_store
        self._renderer = renderer or TemplateRenderer(session)
        self._directory = IdentityDirectory(session, settings=self._settings)
        self._ledger = RepresentationLedger(session, directory=self._directory)

    # Digital (OTP) path

    def request_digital_delegation(
        self,
        principal_id: str,
        representative: str,
        external_name: str | None = None,
        *,
        external_doc: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> DelegationRequestOutcome:
        principal = self._directory.require(principal_id)
        owned = self._require_owned_units(principal)
        rep_identity, rep_document = self._resolve_representative(principal, representative)
        stated_document = self._stated_document(external_doc) or rep_document
        channels = self._contact_channels(principal, owned)

        code = generate_otp()
        expires_at = utcnow() + timedelta(minutes=self._settings.otp_ttl_minutes)
        with core_span("delegation.request", principal_id=principal.id):
            with serializable_transaction(self._session):
                proxy = Proxy(
                    principal_id=principal.id,
                    representative_id=rep_identity.id if rep_identity else None,
                    external_name=external_name or (rep_identity.full_name if rep_identity else None),
                    external_doc_number=stated_document,
                    type=ProxyType.DIGITAL,
                    status=ProxyStatus.PENDING,
                )
                self._session.add(proxy)
                self._session.flush()
                signature = DigitalSignature(
                    proxy_id=proxy.id,
                    principal_id=principal.id,
                    otp_code=code,
                    otp_expires_at=expires_at,
                    status=SignatureStatus.PENDING,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    failed_attempts=0,
                )
                self._session.add(signature)
                self._session.flush()
                proxy_id, signature_id = proxy.id, signature.id
                record_audit(
                    self._session,
                    action="proxy.requested",
                    resource_type="Proxy",
                    resource_id=proxy_id,
                    assembly_id=owned[0].assembly_id,
                    actor_id=principal.id,
                    payload={"type": ProxyType.DIGITAL.value, "representative_document": rep_document},
                    ip_address=ip_address,
                )

        variables = self._otp_variables(principal, owned, code)
        email_message = self._renderer.render(
            self._renderer.get_template(owned[0].assembly_id, NotificationType.OTP_SIGN, NotificationChannel.EMAIL),
            variables,
        )
        sms_message = self._renderer.render(
            self._renderer.get_template(owned[0].assembly_id, NotificationType.OTP_SIGN, NotificationChannel.SMS),
            variables,
        )
        report = dispatch_all(
            self._gateway,
            email=channels.email,
            subject=email_message.subject or "",
            html=email_message.body,
            phone=channels.phone,
            sms_body=sms_message.body,
        )

        if not report.any_success:
            with serializable_transaction(self._session):
                orphan = self._session.get(Proxy, proxy_id)
                if orphan is not None:
                    self._session.delete(orphan)
            DELEGATION_COUNTER.labels(type=ProxyType.DIGITAL.value, outcome="dispatch_failed").inc()
            logger.error(
                "otp dispatch failed on every channel",
                extra={"proxy_id": proxy_id, "errors": report.errors},
            )
            raise ExternalDependencyFailed("Could not deliver the signature code on any channel")

        DELEGATION_COUNTER.labels(type=ProxyType.DIGITAL.value, outcome="requested").inc()
        logger.info(
            "digital delegation requested",
            extra={"proxy_id": proxy_id, "channels": report.delivered},
        )
        return DelegationRequestOutcome(
            proxy_id=proxy_id,
            signature_id=signature_id,
            expires_at=expires_at,
            channels=report.delivered,
            warnings=report.errors,
        )

    def verify_digital_delegation(
        self,
        signature_id: str,
        principal_id: str,
        code: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> DelegationOutcome:
        now = as_utc(now or utcnow())
        signature = self._session.scalar(
            select(DigitalSignature).where(
                DigitalSignature.id == signature_id,
                DigitalSignature.principal_id == principal_id,
            )
        )
        if signature is None:
            raise NotFound(f"Signature '{signature_id}' was not found")
        if signature.status != SignatureStatus.PENDING:
            raise AlreadyProcessed("This signature has already been processed")
        if now > as_utc(signature.otp_expires_at):
            self._expire_signature(signature_id, now, reason="window_elapsed")
            raise Expired("The signature code has expired; request a new one")
        if signature.failed_attempts >= self._settings.otp_max_attempts:
            self._expire_signature(signature_id, now, reason="attempts_exhausted")
            raise TooManyAttempts("Too many invalid codes; request a new one")
        if not self._code_matches(signature, code):
            self._record_failed_attempt(signature_id, now)
            raise InvalidCode("The signature code is not valid")

        def _approve() -> tuple[str, str, str, int, list[str], list[str]]:
            with serializable_transaction(self._session):
                current = self._session.scalar(
                    select(DigitalSignature)
                    .where(DigitalSignature.id == signature_id)
                    .execution_options(populate_existing=True)
                )
                if current is None or current.status != SignatureStatus.PENDING:
                    raise AlreadyProcessed("This signature has already been processed")
                proxy = self._session.get(Proxy, current.proxy_id, populate_existing=True)
                if proxy is None or proxy.status != ProxyStatus.PENDING:
                    raise AlreadyProcessed("This delegation has already been processed")
                principal = self._directory.require(proxy.principal_id)

                current.status = SignatureStatus.VERIFIED
                current.verified_at = now
                current.ip_address = ip_address or current.ip_address
                current.user_agent = user_agent or current.user_agent
                self._session.flush()

                representative = self._materialize_representative(proxy, principal)
                document_hash = compute_document_hash(
                    proxy_id=proxy.id,
                    principal_id=principal.id,
                    representative_id=representative.id,
                    external_name=proxy.external_name,
                    ip_address=current.ip_address,
                    user_agent=current.user_agent,
                    signed_at=now,
                )
                current.document_hash = document_hash
                moved, superseded = self._activate(principal, proxy, representative, now)
                record_audit(
                    self._session,
                    action="proxy.verified",
                    resource_type="Proxy",
                    resource_id=proxy.id,
                    assembly_id=principal.assembly_id,
                    actor_id=principal.id,
                    payload={
                        "representative_id": representative.id,
                        "units_transferred": moved,
                        "superseded": [item.id for item in superseded],
                        "document_hash": document_hash,
                    },
                    ip_address=ip_address,
                )
                return (
                    proxy.id,
                    representative.id,
                    document_hash,
                    moved,
                    [item.id for item in superseded],
                    [item.document_url for item in superseded if item.document_url],
                )

        with core_span("delegation.verify", signature_id=signature_id, principal_id=principal_id):
            # A retry after a lost race sees the signature as processed.
            proxy_id, representative_id, document_hash, moved, superseded_ids, stale_documents = (
                retry_on_conflict(_approve)
            )

        warnings = self._delete_documents(stale_documents)
        warnings.extend(self._send_proxy_document(proxy_id, document_hash, now))
        DELEGATION_COUNTER.labels(type=ProxyType.DIGITAL.value, outcome="approved").inc()
        logger.info(
            "digital delegation approved",
            extra={"proxy_id": proxy_id, "representative_id": representative_id, "units": moved},
        )
        return DelegationOutcome(
            proxy_id=proxy_id,
            status=ProxyStatus.APPROVED,
            representative_id=representative_id,
            units_transferred=moved,
            superseded_proxy_ids=superseded_ids,
            document_hash=document_hash,
            warnings=warnings,
        )

    # Manual (PDF / operator) path

    def register_manual_delegation(
        self,
        actor_id: str,
        representative: str,
        proxy_type: ProxyType,
        document_ref: str | None = None,
        *,
        principal_document: str | None = None,
        external_name: str | None = None,
        external_doc: str | None = None,
        ip_address: str | None = None,
    ) -> DelegationOutcome:
        actor = self._directory.require(actor_id)
        if proxy_type == ProxyType.OPERATOR:
            authorize(actor, *ELEVATED_ROLES)
            if not principal_document:
                raise ValidationError("principal_document is required for operator delegations")
            principal = self._directory.owner_identity_of(principal_document)
            if principal is None:
                raise NotFound(f"No owner identity for document '{principal_document}'")
        elif proxy_type == ProxyType.PDF:
            if not document_ref:
                raise ValidationError("A signed document is required for PDF delegations")
            principal = actor
        else:
            raise ValidationError("Digital delegations must go through the signature flow")

        owned = self._require_owned_units(principal)
        rep_identity, rep_document = self._resolve_representative(principal, representative)
        stated_document = self._stated_document(external_doc) or rep_document
        now = utcnow()

        with core_span("delegation.register", principal_id=principal.id, proxy_type=proxy_type.value):
            with serializable_transaction(self._session):
                if rep_identity is None:
                    rep_identity = self._directory.ensure_identity(
                        rep_document,
                        full_name=external_name,
                        assembly_id=owned[0].assembly_id,
                    ).identity
                proxy = Proxy(
                    principal_id=principal.id,
                    external_name=external_name or rep_identity.full_name,
                    external_doc_number=stated_document,
                    type=proxy_type,
                    document_url=document_ref,
                )
                moved, superseded = self._activate(principal, proxy, rep_identity, now)
                record_audit(
                    self._session,
                    action="proxy.registered",
                    resource_type="Proxy",
                    resource_id=proxy.id,
                    assembly_id=owned[0].assembly_id,
                    actor_id=actor.id,
                    payload={
                        "type": proxy_type.value,
                        "principal_id": principal.id,
                        "representative_id": rep_identity.id,
                        "units_transferred": moved,
                        "superseded": [item.id for item in superseded],
                    },
                    ip_address=ip_address,
                )
                proxy_id = proxy.id
                representative_id = rep_identity.id
                superseded_ids = [item.id for item in superseded]
                stale_documents = [
                    item.document_url
                    for item in superseded
                    if item.document_url and item.document_url != document_ref
                ]

        warnings = self._delete_documents(stale_documents)
        DELEGATION_COUNTER.labels(type=proxy_type.value, outcome="approved").inc()
        logger.info(
            "manual delegation registered",
            extra={"proxy_id": proxy_id, "type": proxy_type.value, "units": moved},
        )
        return DelegationOutcome(
            proxy_id=proxy_id,
            status=ProxyStatus.APPROVED,
            representative_id=representative_id,
            units_transferred=moved,
            superseded_proxy_ids=superseded_ids,
            warnings=warnings,
        )

    def revoke(self, proxy_id: str, principal_id: str, *, ip_address: str | None = None) -> DelegationOutcome:
        proxy = self._session.get(Proxy, proxy_id)
        if proxy is None:
            raise NotFound(f"Proxy '{proxy_id}' was not found")
        if proxy.principal_id != principal_id:
            raise Forbidden("Only the principal may revoke this delegation")
        if proxy.status not in (ProxyStatus.APPROVED, ProxyStatus.PENDING):
            raise AlreadyProcessed("This delegation is no longer active")

        now = utcnow()
        restored = 0
        with core_span("delegation.revoke", proxy_id=proxy_id):
            with serializable_transaction(self._session):
                proxy = self._session.get(Proxy, proxy_id, populate_existing=True)
                if proxy is None or proxy.status not in (ProxyStatus.APPROVED, ProxyStatus.PENDING):
                    raise AlreadyProcessed("This delegation is no longer active")
                principal = self._directory.require(proxy.principal_id)
                previous_status = proxy.status
                if proxy.status == ProxyStatus.APPROVED and proxy.representative_id:
                    restored = self._ledger.restore_rights(principal.document_id, proxy.representative_id)
                elif proxy.signature is not None and proxy.signature.status == SignatureStatus.PENDING:
                    proxy.signature.status = SignatureStatus.EXPIRED
                proxy.status = ProxyStatus.REVOKED
                proxy.revoked_at = now
                record_audit(
                    self._session,
                    action="proxy.revoked",
                    resource_type="Proxy",
                    resource_id=proxy.id,
                    assembly_id=principal.assembly_id,
                    actor_id=principal.id,
                    payload={"previous_status": previous_status.value, "units_restored": restored},
                    ip_address=ip_address,
                )
                proxy_type = proxy.type
                representative_id = proxy.representative_id
                document_url = proxy.document_url

        warnings = self._delete_documents([document_url] if document_url else [])
        DELEGATION_COUNTER.labels(type=proxy_type.value, outcome="revoked").inc()
        logger.info("delegation revoked", extra={"proxy_id": proxy_id, "units": restored})
        return DelegationOutcome(
            proxy_id=proxy_id,
            status=ProxyStatus.REVOKED,
            representative_id=representative_id,
            units_transferred=restored,
            warnings=warnings,
        )

    def attach_document(
        self,
        proxy_id: str,
        principal_id: str,
        payload: bytes,
        filename: str | None = None,
    ) -> str:
        """Upload a signed proxy document and record its location on the proxy."""

        if self._store is None:
            raise ExternalDependencyFailed("No document store is configured")
        proxy = self._session.get(Proxy, proxy_id)
        if proxy is None:
            raise NotFound(f"Proxy '{proxy_id}' was not found")
        if proxy.principal_id != principal_id:
            raise Forbidden("Only the principal may attach documents to this delegation")
        if proxy.status in (ProxyStatus.REVOKED, ProxyStatus.EXPIRED):
            raise AlreadyProcessed("This delegation is no longer active")
        if not payload:
            raise ValidationError("Document is empty")

        url = self._store.put(proxy_id, payload, filename=filename)
        previous = proxy.document_url
        proxy.document_url = url
        self._session.commit()
        if previous and previous != url:
            self._delete_documents([previous])
        return url

    def expire_lapsed(self, now: datetime | None = None) -> int:
        """Expire every pending signature whose window has elapsed."""

        now = as_utc(now or utcnow())
        with serializable_transaction(self._session):
            lapsed = list(
                self._session.scalars(
                    select(DigitalSignature).where(
                        DigitalSignature.status == SignatureStatus.PENDING,
                        DigitalSignature.otp_expires_at < now,
                    )
                )
            )
            for signature in lapsed:
                self._mark_expired(signature, now, reason="swept")
        if lapsed:
            SIGNATURES_EXPIRED_COUNTER.inc(len(lapsed))
            logger.info("expired lapsed signatures", extra={"count": len(lapsed)})
        return len(lapsed)

    def proxies_of(self, principal_id: str) -> list[Proxy]:
        statement = select(Proxy).where(Proxy.principal_id == principal_id).order_by(Proxy.created_at.desc())
        return list(self._session.scalars(statement))

    # Internals

    def _require_owned_units(self, principal: Identity) -> list[Unit]:
        owned = self._directory.units_owned_by(principal.document_id)
        if not owned:
            raise Forbidden("Only unit owners can delegate their vote")
        return owned

    def _resolve_representative(self, principal: Identity, representative: str) -> tuple[Identity | None, str]:
        if not representative or not str(representative).strip():
            raise ValidationError("A representative is required")
        identity = self._directory.resolve(str(representative).strip())
        if identity is not None:
            document = identity.document_id
        else:
            parsed = DocumentId.parse(representative)
            if parsed is None:
                raise ValidationError("A representative is required")
            document = str(parsed)
        if document == principal.document_id or (identity is not None and identity.id == principal.id):
            raise ValidationError("A principal cannot delegate to themselves")
        return identity, document

    @staticmethod
    def _stated_document(external_doc: str | None) -> str | None:
        """Representative document as written on the proxy, when it is given separately."""
        if external_doc is None or not external_doc.strip():
            return None
        parsed = DocumentId.parse(external_doc)
        if parsed is None:
            raise ValidationError(f"'{external_doc}' is not a valid document number")
        return str(parsed)

    def _contact_channels(self, principal: Identity, owned: list[Unit]) -> ContactChannels:
        email = next((unit.owner_email for unit in owned if unit.owner_email), None) or principal.email
        phone = next((unit.owner_phone for unit in owned if unit.owner_phone), None) or principal.phone
        if not email and not phone:
            raise NoContactChannel("No email or phone is registered for this owner")
        return ContactChannels(email=email, phone=phone)

    def _materialize_representative(self, proxy: Proxy, principal: Identity) -> Identity:
        if proxy.representative_id is not None:
            identity = self._directory.get(proxy.representative_id)
            if identity is not None:
                return identity
        if not proxy.external_doc_number:
            raise ValidationError("The delegation has no representative document")
        resolution = self._directory.ensure_identity(
            proxy.external_doc_number,
            full_name=proxy.external_name,
            assembly_id=principal.assembly_id,
        )
        if resolution.identity.id == principal.id:
            raise ValidationError("A principal cannot delegate to themselves")
        return resolution.identity

    def _activate(
        self,
        principal: Identity,
        proxy: Proxy,
        representative: Identity,
        now: datetime,
    ) -> tuple[int, list[Proxy]]:
        superseded = list(
            self._session.scalars(
                select(Proxy).where(
                    Proxy.principal_id == principal.id,
                    Proxy.status == ProxyStatus.APPROVED,
                )
            )
        )
        for previous in superseded:
            if previous.representative_id is not None:
                self._ledger.restore_rights(principal.document_id, previous.representative_id)
            previous.status = ProxyStatus.REVOKED
            previous.revoked_at = now
        # The partial unique index must see the old proxy revoked before the new one is approved.
        self._session.flush()

        proxy.status = ProxyStatus.APPROVED
        proxy.representative_id = representative.id
        self._session.add(proxy)
        self._session.flush()

        moved = self._ledger.transfer_rights(principal.document_id, principal.id, representative.id)
        moved += self._ledger.transfer_rights(principal.document_id, None, representative.id)
        return moved, superseded

    def _expire_signature(self, signature_id: str, now: datetime, *, reason: str) -> None:
        with serializable_transaction(self._session):
            signature = self._session.get(DigitalSignature, signature_id, populate_existing=True)
            if signature is not None and signature.status == SignatureStatus.PENDING:
                self._mark_expired(signature, now, reason=reason)

    def _mark_expired(self, signature: DigitalSignature, now: datetime, *, reason: str) -> None:
        signature.status = SignatureStatus.EXPIRED
        proxy = signature.proxy
        if proxy is not None and proxy.status == ProxyStatus.PENDING:
            proxy.status = ProxyStatus.EXPIRED
        record_audit(
            self._session,
            action="proxy.expired",
            resource_type="Proxy",
            resource_id=signature.proxy_id,
            actor_id=signature.principal_id,
            payload={"reason": reason, "at": now.isoformat()},
        )

    @staticmethod
    def _code_matches(signature: DigitalSignature, code: str | None) -> bool:
        # Codes are read aloud and retyped; spacing and case are not significant.
        supplied = re.sub(r"\s+", "", code or "").upper()
        return secrets.compare_digest(supplied, signature.otp_code.upper())

    def _record_failed_attempt(self, signature_id: str, now: datetime) -> None:
        with serializable_transaction(self._session):
            signature = self._session.get(DigitalSignature, signature_id, populate_existing=True)
            if signature is None or signature.status != SignatureStatus.PENDING:
                return
            signature.failed_attempts += 1
            exhausted = signature.failed_attempts >= self._settings.otp_max_attempts
            if exhausted:
                self._mark_expired(signature, now, reason="attempts_exhausted")
        logger.warning(
            "invalid signature code",
            extra={"signature_id": signature_id, "exhausted": exhausted},
        )
        if exhausted:
            raise TooManyAttempts("Too many invalid codes; request a new one")

    def _otp_variables(self, principal: Identity, owned: list[Unit], code: str) -> dict[str, object]:
        assembly = self._session.get(Assembly, owned[0].assembly_id)
        coefficient = sum((Decimal(unit.coefficient) for unit in owned), Decimal("0"))
        return {
            "name": principal.full_name,
            "otp_code": code,
            "units": ", ".join(unit.number for unit in owned),
            "coef": f"{coefficient:.4f}",
            "assembly_name": assembly.name if assembly else "",
            "appUrl": self._settings.app_url,
            "expires_minutes": self._settings.otp_ttl_minutes,
        }

    def _send_proxy_document(self, proxy_id: str, document_hash: str, signed_at: datetime) -> list[str]:
        proxy = self._session.get(Proxy, proxy_id)
        if proxy is None:
            return []
        principal = proxy.principal
        owned = self._directory.units_owned_by(principal.document_id)
        email = next((unit.owner_email for unit in owned if unit.owner_email), None) or principal.email
        if not email:
            return []
        assembly = self._session.get(Assembly, owned[0].assembly_id) if owned else None
        representative = proxy.representative
        scheduled = assembly.scheduled_for if assembly else None
        variables = {
            "NOMBRE_PODERDANTE": principal.full_name,
            "CEDULA_PODERDANTE": principal.document_id,
            "NOMBRE_APODERADO": representative.full_name if representative else proxy.external_name,
            "CEDULA_APODERADO": representative.document_id if representative else proxy.external_doc_number,
            "FECHA_ASAMBLEA": scheduled.strftime("%Y-%m-%d") if scheduled else "",
            "CIUDAD": assembly.city if assembly and assembly.city else "",
            "DIA": signed_at.day,
            "MES": _MONTHS[signed_at.month - 1],
            "ANIO": signed_at.year,
            "OTP": proxy.signature.otp_code if proxy.signature else "",
            "TIMESTAMP": signed_at.isoformat(),
            "HASH": document_hash,
        }
        message = self._renderer.render(
            self._renderer.get_template(
                assembly.id if assembly else None,
                NotificationType.PROXY_DOCUMENT,
                NotificationChannel.EMAIL,
            ),
            variables,
        )
        report = dispatch_all(
            self._gateway,
            email=email,
            subject=message.subject or "",
            html=message.body,
            phone=None,
            sms_body="",
        )
        return [f"proxy document not delivered ({error})" for error in report.errors]

    def _delete_documents(self, urls: list[str]) -> list[str]:
        if self._store is None:
            return []
        warnings: list[str] = []
        for url in urls:
            try:
                self._store.delete(url)
            except CoreError as exc:
                logger.warning("failed to delete proxy document", extra={"location": url})
                warnings.append(f"document cleanup failed: {exc.message}")
        return warnings


__all__ = [
    "ContactChannels",
    "DelegationEngine",
    "DelegationOutcome",
    "DelegationRequestOutcome",
    "compute_document_hash",
    "generate_otp",
]
