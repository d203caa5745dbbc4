"""Envelope shared by every successful response."""
from __future__ import annotations

from pydantic import BaseModel, Field


class SuccessEnvelope(BaseModel):
    success: bool = True
    warnings: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    success: bool = False
    code: str
    message: str


__all__ = ["ErrorResponse", "SuccessEnvelope"]
