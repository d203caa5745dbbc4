"""Attendance and quorum endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from assemblyvote.api.deps import get_attendance_registry
from assemblyvote.api.routes.auth import AuthenticatedUser, get_current_user
from assemblyvote.schemas import AttendanceByDocument, AttendanceToggled, BulkAttendanceRead, QuorumRead
from assemblyvote.services.attendance import AttendanceRegistry

router = APIRouter()


@router.post("/attendance/{unit_id}/toggle", response_model=AttendanceToggled)
def toggle_attendance(
    unit_id: str,
    registry: AttendanceRegistry = Depends(get_attendance_registry),
    user: AuthenticatedUser = Depends(get_current_user),
) -> AttendanceToggled:
    outcome = registry.toggle_attendance(user.identity_id, unit_id)
    return AttendanceToggled(
        unit_id=outcome.unit_id,
        present=outcome.present,
        quorum=QuorumRead.model_validate(outcome.quorum),
    )


@router.post("/attendance/by-document", response_model=BulkAttendanceRead)
def register_by_document(
    payload: AttendanceByDocument,
    registry: AttendanceRegistry = Depends(get_attendance_registry),
    user: AuthenticatedUser = Depends(get_current_user),
) -> BulkAttendanceRead:
    outcome = registry.register_attendance_by_document(user.identity_id, payload.document)
    return BulkAttendanceRead(
        identity_id=outcome.identity_id,
        checked_in_units=outcome.checked_in_units,
        already_present_units=outcome.already_present_units,
        quorum=QuorumRead.model_validate(outcome.quorum) if outcome.quorum else None,
    )


@router.get("/assemblies/{assembly_id}/quorum", response_model=QuorumRead)
def get_quorum(
    assembly_id: str,
    registry: AttendanceRegistry = Depends(get_attendance_registry),
    _user: AuthenticatedUser = Depends(get_current_user),
) -> QuorumRead:
    return QuorumRead.model_validate(registry.get_quorum(assembly_id))


__all__ = ["router"]
