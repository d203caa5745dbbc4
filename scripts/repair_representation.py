"""Point every unit back at its owner or the owner's approved representative."""
from __future__ import annotations

import argparse
import logging

from assemblyvote.core.logging import configure_logging
from assemblyvote.db.session import SessionLocal, serializable_transaction
from assemblyvote.services.audit_trail import record_audit
from assemblyvote.services.ledger import RepresentationLedger

logger = logging.getLogger(__name__)


def repair(assembly_id: str | None, *, dry_run: bool = False) -> int:
    with SessionLocal() as session:
        ledger = RepresentationLedger(session)
        with serializable_transaction(session):
            repaired = ledger.reconcile(assembly_id)
            for unit in repaired:
                logger.info(
                    "unit %s: %s -> %s",
                    unit.number,
                    unit.previous_representative_id or "unassigned",
                    unit.representative_id,
                )
            if dry_run:
                session.rollback()
                return len(repaired)
            if repaired:
                record_audit(
                    session,
                    action="ledger.reconciled",
                    resource_type="Assembly",
                    resource_id=assembly_id or "*",
                    assembly_id=assembly_id,
                    payload={"units": [unit.unit_id for unit in repaired]},
                )
        if assembly_id is not None:
            ledger.coefficient_total(assembly_id)
        return len(repaired)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--assembly", dest="assembly_id", default=None, help="limit the repair to one assembly")
    parser.add_argument("--dry-run", action="store_true", help="report the repairs without saving them")
    args = parser.parse_args()

    configure_logging()
    count = repair(args.assembly_id, dry_run=args.dry_run)
    logger.info("representation repair finished", extra={"units": count, "dry_run": args.dry_run})


if __name__ == "__main__":
    main()
