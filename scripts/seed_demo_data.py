"""Seed script for a demo assembly with units, owners and staff accounts."""
from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from assemblyvote.db.session import SessionLocal, engine
from assemblyvote.models import Assembly, Base, IdentityRole, Unit
from assemblyvote.services.identities import IdentityDirectory
from assemblyvote.services.ledger import RepresentationLedger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_ASSEMBLY = "Asamblea Ordinaria Demo"

# (unit number, coefficient, owner document, owner name)
DEMO_UNITS = [
    ("101", "0.25", "1001", "Ana Torres"),
    ("102", "0.20", "1002", "Bruno Diaz"),
    ("201", "0.15", "1003", "Carla Rios"),
    ("202", "0.15", "1003", "Carla Rios"),
    ("301", "0.25", "1004", "Diego Mora"),
]

DEMO_STAFF = [
    ("9001", "Administrador Demo", IdentityRole.ADMIN),
    ("9002", "Operador Demo", IdentityRole.OPERATOR),
]


def seed(session: Session) -> Assembly:
    """Create the demo assembly if it is missing and make every owner log-in ready."""

    assembly = session.scalar(select(Assembly).where(Assembly.name == DEMO_ASSEMBLY))
    if assembly is None:
        assembly = Assembly(
            name=DEMO_ASSEMBLY,
            city="Bogota",
            scheduled_for=datetime.now(tz=UTC) + timedelta(days=7),
        )
        session.add(assembly)
        session.flush()
        logger.info("Created assembly %s", assembly.id)
    else:
        logger.info("Assembly %s already exists", assembly.id)

    existing_units = {unit.number for unit in session.scalars(select(Unit).where(Unit.assembly_id == assembly.id))}
    directory = IdentityDirectory(session)
    for number, coefficient, document, name in DEMO_UNITS:
        if number in existing_units:
            logger.info("Unit %s already exists", number)
            continue
        owner = directory.ensure_identity(document, full_name=name, assembly_id=assembly.id).identity
        session.add(
            Unit(
                assembly_id=assembly.id,
                number=number,
                coefficient=Decimal(coefficient),
                owner_document_id=document,
                owner_name=name,
                current_representative_id=owner.id,
            )
        )
        logger.info("Added unit %s", number)

    for document, name, role in DEMO_STAFF:
        staff = directory.ensure_identity(document, full_name=name, assembly_id=assembly.id).identity
        if staff.role != role:
            staff.role = role
            logger.info("Granted %s to %s", role.value, document)

    session.flush()
    RepresentationLedger(session, directory=directory).coefficient_total(assembly.id)
    return assembly


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed(session)
        session.commit()


if __name__ == "__main__":
    main()
