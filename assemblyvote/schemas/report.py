"""Schemas for assembly reports and notification management."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from assemblyvote.schemas.common import SuccessEnvelope
from assemblyvote.schemas.vote import VoteTallyRead


class AttendanceRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unit: str
    coefficient: Decimal
    representative: str
    checked_in_at: datetime | None = None


class UnitReportRead(SuccessEnvelope):
    rows: list[AttendanceRowRead]
    total_coefficient: Decimal


class ProxyRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proxy_id: str
    type: str
    status: str
    principal: str
    principal_units: list[str]
    principal_coefficient: Decimal
    representative: str
    representative_document: str | None
    created_at: datetime


class ProxiesReportRead(SuccessEnvelope):
    rows: list[ProxyRowRead]


class VoteReportEntry(VoteTallyRead):
    title: str


class VotesReportRead(SuccessEnvelope):
    votes: list[VoteReportEntry]


class TemplateSave(BaseModel):
    subject: str | None = Field(default=None, max_length=255)
    body: str = Field(..., min_length=1)


class TemplateRead(SuccessEnvelope):
    model_config = ConfigDict(from_attributes=True)

    assembly_id: str
    type: str
    channel: str
    subject: str | None
    body: str


class WelcomeSent(SuccessEnvelope):
    recipients: int
    emails_sent: int
    sms_sent: int


__all__ = [
    "AttendanceRowRead",
    "ProxiesReportRead",
    "ProxyRowRead",
    "TemplateRead",
    "TemplateSave",
    "UnitReportRead",
    "VoteReportEntry",
    "VotesReportRead",
    "WelcomeSent",
]
