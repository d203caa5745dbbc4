"""Domain audit rows written alongside the state changes they describe."""
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from assemblyvote.models import AuditLog


def record_audit(
    session: Session,
    *,
    action: str,
    resource_type: str,
    resource_id: str | None,
    assembly_id: str | None = None,
    actor_id: str | None = None,
    payload: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Stage an :class:`AuditLog` row in the caller's transaction."""

    log = AuditLog(
        assembly_id=assembly_id,
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        payload=payload,
        ip_address=ip_address,
    )
    session.add(log)
    return log


__all__ = ["record_audit"]
