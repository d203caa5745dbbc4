"""Schemas for attendance and quorum endpoints."""
from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from assemblyvote.schemas.common import SuccessEnvelope


class QuorumRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assembly_id: str
    present_weight: Decimal
    total_weight: Decimal
    ratio: Decimal
    percentage: Decimal
    present_units: int
    total_units: int
    has_quorum: bool


class AttendanceToggled(SuccessEnvelope):
    unit_id: str
    present: bool
    quorum: QuorumRead


class AttendanceByDocument(BaseModel):
    document: str = Field(..., min_length=1, max_length=64)


class BulkAttendanceRead(SuccessEnvelope):
    identity_id: str
    checked_in_units: list[str]
    already_present_units: list[str]
    quorum: QuorumRead | None = None


__all__ = ["AttendanceByDocument", "AttendanceToggled", "BulkAttendanceRead", "QuorumRead"]
