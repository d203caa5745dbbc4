"""Identity directory: owner resolution, authorization and lazy identity creation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assemblyvote.core.config import Settings, get_settings
from assemblyvote.core.documents import DocumentId
from assemblyvote.core.errors import Conflict, Forbidden, NotFound
from assemblyvote.models import AuthAccount, Identity, IdentityRole, Unit

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class IdentityResolution:
    """Outcome of :meth:`IdentityDirectory.ensure_identity`."""

    identity: Identity
    created: bool
    repaired: bool


@dataclass(slots=True, frozen=True)
class RepresentedUnit:
    unit_id: str
    number: str
    coefficient: Decimal
    owner_document_id: str
    own: bool


@dataclass(slots=True, frozen=True)
class PowerStats:
    """Voting weight an identity currently exercises."""

    identity_id: str
    total_weight: Decimal
    own_weight: Decimal
    represented_weight: Decimal
    units: list[RepresentedUnit]


def hash_password(raw_password: str, *, rounds: int = 12) -> str:
    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(raw_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:  # pragma: no cover - invalid hash format
        return False


def authorize(identity: Identity, *roles: IdentityRole) -> Identity:
    """Raise :class:`Forbidden` unless ``identity`` holds one of ``roles``."""
    if identity.role not in roles:
        allowed = ", ".join(sorted(role.value for role in roles))
        raise Forbidden(f"Role {identity.role.value} may not perform this action (requires {allowed})")
    return identity


class IdentityDirectory:
    """Read access to identities and units plus idempotent identity creation."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    def get(self, identity_id: str) -> Identity | None:
        return self._session.get(Identity, identity_id)

    def require(self, identity_id: str) -> Identity:
        identity = self.get(identity_id)
        if identity is None:
            raise NotFound(f"Identity '{identity_id}' was not found")
        return identity

    def owner_identity_of(self, document: object) -> Identity | None:
        document_id = DocumentId.parse(document)
        if document_id is None:
            return None
        return self._session.scalar(select(Identity).where(Identity.document_id == str(document_id)))

    def resolve(self, doc_or_id: str) -> Identity | None:
        """Find an identity by primary key, falling back to its document number."""
        identity = self.get(doc_or_id)
        if identity is not None:
            return identity
        return self.owner_identity_of(doc_or_id)

    def synthetic_handle(self, document: object) -> str:
        return f"{str(DocumentId(document)).lower()}@{self._settings.synthetic_login_domain}"

    def units_owned_by(self, document: object) -> list[Unit]:
        document_id = DocumentId.parse(document)
        if document_id is None:
            return []
        statement = select(Unit).where(Unit.owner_document_id == str(document_id)).order_by(Unit.number)
        return list(self._session.scalars(statement))

    def units_represented_by(self, identity_id: str, *, assembly_id: str | None = None) -> list[Unit]:
        statement = select(Unit).where(Unit.current_representative_id == identity_id)
        if assembly_id is not None:
            statement = statement.where(Unit.assembly_id == assembly_id)
        return list(self._session.scalars(statement.order_by(Unit.number)))

    def power_stats(self, identity_id: str) -> PowerStats:
        identity = self.require(identity_id)
        units = self.units_represented_by(identity.id)
        represented = [
            RepresentedUnit(
                unit_id=unit.id,
                number=unit.number,
                coefficient=Decimal(unit.coefficient),
                owner_document_id=unit.owner_document_id,
                own=unit.owner_document_id == identity.document_id,
            )
            for unit in units
        ]
        own_weight = sum((item.coefficient for item in represented if item.own), Decimal("0"))
        total_weight = sum((item.coefficient for item in represented), Decimal("0"))
        return PowerStats(
            identity_id=identity.id,
            total_weight=total_weight,
            own_weight=own_weight,
            represented_weight=total_weight - own_weight,
            units=represented,
        )

    def ensure_identity(
        self,
        document: object,
        *,
        full_name: str | None = None,
        assembly_id: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> IdentityResolution:
        """Return the identity for ``document``, creating or repairing it as needed.

        Creation is two-phase: an auth account keyed by a synthetic login handle,
        then the profile, then the link between them. Either half may already
        exist from an earlier interrupted run (a ghost); the missing half is
        created and linked instead of duplicating the existing one. Must run
        inside an open transaction so the savepoints below are meaningful.
        """

        document_id = DocumentId(document)
        handle = self.synthetic_handle(document_id)
        created = False
        repaired = False

        profile = self.owner_identity_of(document_id)
        account = self._account_for(profile, handle)

        if account is None:
            account = AuthAccount(
                login_handle=handle,
                hashed_password=hash_password(str(document_id), rounds=self._settings.bcrypt_rounds),
            )
            try:
                with self._session.begin_nested():
                    self._session.add(account)
            except IntegrityError:
                account = self._session.scalar(select(AuthAccount).where(AuthAccount.login_handle == handle))
                if account is None:
                    raise
            else:
                created = profile is None
                repaired = profile is not None

        if profile is None:
            profile = Identity(
                document_id=str(document_id),
                full_name=(full_name or "").strip() or str(document_id),
                assembly_id=assembly_id,
                email=email,
                phone=phone,
                role=IdentityRole.USER,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(profile)
            except IntegrityError:
                profile = self.owner_identity_of(document_id)
                if profile is None:
                    raise
            else:
                if not created:
                    repaired = True

        if account.identity_id is None:
            account.identity_id = profile.id
            self._session.flush()
            repaired = repaired or not created
        elif account.identity_id != profile.id:
            raise Conflict(
                f"Login '{account.login_handle}' is already bound to a different identity",
            )

        if created or repaired:
            logger.info(
                "resolved delegate identity",
                extra={"identity_id": profile.id, "created": created, "repaired": repaired},
            )
        return IdentityResolution(identity=profile, created=created, repaired=repaired)

    def _account_for(self, profile: Identity | None, handle: str) -> AuthAccount | None:
        if profile is not None:
            linked = self._session.scalar(select(AuthAccount).where(AuthAccount.identity_id == profile.id))
            if linked is not None:
                return linked
        return self._session.scalar(select(AuthAccount).where(AuthAccount.login_handle == handle))


__all__ = [
    "IdentityDirectory",
    "IdentityResolution",
    "PowerStats",
    "RepresentedUnit",
    "authorize",
    "hash_password",
    "verify_password",
]
