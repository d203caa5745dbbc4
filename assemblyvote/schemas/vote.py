"""Schemas for vote, ballot and tally endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from assemblyvote.models import VoteStatus
from assemblyvote.schemas.common import SuccessEnvelope


class VoteCreate(BaseModel):
    assembly_id: str = Field(..., max_length=36)
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    options: list[str] = Field(..., min_length=2)


class VoteUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    options: list[str] | None = None


class VoteStatusUpdate(BaseModel):
    status: VoteStatus


class VoteOptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    order_index: int


class VoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    assembly_id: str
    title: str
    description: str | None
    status: VoteStatus
    opened_at: datetime | None
    closed_at: datetime | None
    options: list[VoteOptionRead]


class BallotCreate(BaseModel):
    option_id: str = Field(..., max_length=36)
    target: str | None = Field(default=None, max_length=64)


class CastResult(SuccessEnvelope):
    model_config = ConfigDict(from_attributes=True)

    vote_id: str
    option_id: str
    ballots_created: int
    weight: Decimal
    unit_ids: list[str]
    skipped_unit_ids: list[str] = Field(default_factory=list)


class OptionTallyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    option_id: str
    label: str
    count: int
    weight: Decimal
    percentage: Decimal


class VoteTallyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    vote_id: str
    status: str
    total_weight: Decimal
    total_ballots: int
    options: list[OptionTallyRead]


__all__ = [
    "BallotCreate",
    "CastResult",
    "OptionTallyRead",
    "VoteCreate",
    "VoteOptionRead",
    "VoteRead",
    "VoteStatusUpdate",
    "VoteTallyRead",
    "VoteUpdate",
]
