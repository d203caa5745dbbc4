from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from assemblyvote.core.documents import DocumentId
from assemblyvote.core.errors import Conflict, Forbidden, NotFound
from assemblyvote.db.session import serializable_transaction
from assemblyvote.models import AuthAccount, Identity, IdentityRole, Unit
from assemblyvote.services.identities import IdentityDirectory, authorize, hash_password, verify_password


def test_document_id_normalises_separators() -> None:
    assert DocumentId(" 1.020.304 ") == "1020304"
    assert DocumentId("ab-12") == "AB12"
    assert DocumentId.parse("  ") is None
    with pytest.raises(ValueError):
        DocumentId(None)


def test_identity_document_is_stored_canonically(db_session: Session, make_identity) -> None:
    identity = make_identity("80.123.456")
    assert identity.document_id == "80123456"
    assert IdentityDirectory(db_session).owner_identity_of("80 123 456").id == identity.id


def test_resolve_by_id_then_document(db_session: Session, community) -> None:
    directory = IdentityDirectory(db_session)
    assert directory.resolve(community.bob.id).id == community.bob.id
    assert directory.resolve("1.002").id == community.bob.id
    assert directory.resolve("424242") is None
    with pytest.raises(NotFound):
        directory.require("missing")


def test_authorize_rejects_other_roles(community) -> None:
    assert authorize(community.admin, IdentityRole.ADMIN) is community.admin
    with pytest.raises(Forbidden):
        authorize(community.alice, IdentityRole.ADMIN, IdentityRole.OPERATOR)


def test_password_hashing_round_trip() -> None:
    hashed = hash_password("1001", rounds=4)
    assert verify_password("1001", hashed)
    assert not verify_password("1002", hashed)


def test_power_stats_split_own_and_represented(db_session: Session, community) -> None:
    db_session.get(Unit, community.units["102"].id).current_representative_id = community.alice.id
    db_session.commit()

    stats = IdentityDirectory(db_session).power_stats(community.alice.id)

    assert stats.own_weight == Decimal("0.30")
    assert stats.represented_weight == Decimal("0.25")
    assert stats.total_weight == Decimal("0.55")
    assert {(unit.number, unit.own) for unit in stats.units} == {("101", True), ("102", False)}


def test_ensure_identity_creates_account_and_profile(db_session: Session, community) -> None:
    directory = IdentityDirectory(db_session)
    with serializable_transaction(db_session):
        resolution = directory.ensure_identity("7.777", full_name="Delegate", assembly_id=community.assembly.id)

    assert resolution.created and not resolution.repaired
    identity = resolution.identity
    assert identity.document_id == "7777"
    assert identity.role == IdentityRole.USER
    account = db_session.scalar(select(AuthAccount).where(AuthAccount.identity_id == identity.id))
    assert account.login_handle == "7777@assemblyvote.local"
    assert verify_password("7777", account.hashed_password)


def test_ensure_identity_is_idempotent(db_session: Session, community) -> None:
    directory = IdentityDirectory(db_session)
    with serializable_transaction(db_session):
        first = directory.ensure_identity("7777", full_name="Delegate").identity
    with serializable_transaction(db_session):
        second = directory.ensure_identity("7.777")

    assert second.identity.id == first.id
    assert not second.created and not second.repaired
    assert db_session.scalar(select(func.count(Identity.id)).where(Identity.document_id == "7777")) == 1
    assert db_session.scalar(select(func.count(AuthAccount.id))) == 1


def test_ensure_identity_repairs_ghost_account(db_session: Session, community) -> None:
    db_session.add(AuthAccount(login_handle="8888@assemblyvote.local", hashed_password=hash_password("x", rounds=4)))
    db_session.commit()

    directory = IdentityDirectory(db_session)
    with serializable_transaction(db_session):
        resolution = directory.ensure_identity("8888", full_name="Ghost")

    assert resolution.repaired and not resolution.created
    account = db_session.scalar(select(AuthAccount).where(AuthAccount.login_handle == "8888@assemblyvote.local"))
    assert account.identity_id == resolution.identity.id
    assert db_session.scalar(select(func.count(AuthAccount.id))) == 1


def test_ensure_identity_repairs_profile_without_account(db_session: Session, community) -> None:
    directory = IdentityDirectory(db_session)
    with serializable_transaction(db_session):
        resolution = directory.ensure_identity(community.carol.document_id)

    assert resolution.identity.id == community.carol.id
    assert resolution.repaired
    assert resolution.identity.auth_account is not None


def test_ensure_identity_conflicting_account_binding(db_session: Session, community) -> None:
    db_session.add(
        AuthAccount(
            login_handle="1003@assemblyvote.local",
            hashed_password=hash_password("x", rounds=4),
            identity_id=community.alice.id,
        )
    )
    db_session.commit()

    with pytest.raises(Conflict):
        with serializable_transaction(db_session):
            IdentityDirectory(db_session).ensure_identity(community.carol.document_id)
