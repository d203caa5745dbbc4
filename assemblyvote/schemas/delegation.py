"""Schemas for delegation endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from assemblyvote.models import ProxyStatus, ProxyType
from assemblyvote.schemas.common import SuccessEnvelope


class DigitalDelegationCreate(BaseModel):
    representative: str = Field(..., min_length=1, max_length=64)
    external_name: str | None = Field(default=None, max_length=255)
    external_doc: str | None = Field(default=None, max_length=64)


class DigitalDelegationRequested(SuccessEnvelope):
    proxy_id: str
    signature_id: str
    expires_at: datetime
    channels: list[str]


class SignatureVerify(BaseModel):
    code: str = Field(..., min_length=4, max_length=12)


class ManualDelegationCreate(BaseModel):
    representative: str = Field(..., min_length=1, max_length=64)
    type: Literal[ProxyType.PDF, ProxyType.OPERATOR]
    document_ref: str | None = Field(default=None, max_length=1024)
    principal_document: str | None = Field(default=None, max_length=64)
    external_name: str | None = Field(default=None, max_length=255)
    external_doc: str | None = Field(default=None, max_length=64)


class DelegationResult(SuccessEnvelope):
    proxy_id: str
    status: ProxyStatus
    representative_id: str | None
    units_transferred: int
    superseded_proxy_ids: list[str] = Field(default_factory=list)
    document_hash: str | None = None


class ProxyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    principal_id: str
    representative_id: str | None
    external_name: str | None
    external_doc_number: str | None
    type: ProxyType
    status: ProxyStatus
    document_url: str | None
    revoked_at: datetime | None
    created_at: datetime


class DocumentAttached(SuccessEnvelope):
    proxy_id: str
    document_url: str


class RepresentedUnitRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unit_id: str
    number: str
    coefficient: Decimal
    owner_document_id: str
    own: bool


class PowerStatsRead(SuccessEnvelope):
    model_config = ConfigDict(from_attributes=True)

    identity_id: str
    total_weight: Decimal
    own_weight: Decimal
    represented_weight: Decimal
    units: list[RepresentedUnitRead]


__all__ = [
    "DelegationResult",
    "DigitalDelegationCreate",
    "DigitalDelegationRequested",
    "DocumentAttached",
    "ManualDelegationCreate",
    "PowerStatsRead",
    "ProxyRead",
    "RepresentedUnitRead",
    "SignatureVerify",
]
