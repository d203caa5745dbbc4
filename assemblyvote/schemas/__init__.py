"""Pydantic schemas package."""

from .attendance import AttendanceByDocument, AttendanceToggled, BulkAttendanceRead, QuorumRead
from .auth import LoginRequest, RefreshRequest, TokenPayload, TokenResponse
from .common import ErrorResponse, SuccessEnvelope
from .delegation import (
    DelegationResult,
    DigitalDelegationCreate,
    DigitalDelegationRequested,
    DocumentAttached,
    ManualDelegationCreate,
    PowerStatsRead,
    ProxyRead,
    RepresentedUnitRead,
    SignatureVerify,
)
from .report import (
    AttendanceRowRead,
    ProxiesReportRead,
    ProxyRowRead,
    TemplateRead,
    TemplateSave,
    UnitReportRead,
    VoteReportEntry,
    VotesReportRead,
    WelcomeSent,
)
from .vote import (
    BallotCreate,
    CastResult,
    OptionTallyRead,
    VoteCreate,
    VoteOptionRead,
    VoteRead,
    VoteStatusUpdate,
    VoteTallyRead,
    VoteUpdate,
)

__all__ = [
    "AttendanceByDocument",
    "AttendanceRowRead",
    "AttendanceToggled",
    "BallotCreate",
    "BulkAttendanceRead",
    "CastResult",
    "DelegationResult",
    "DigitalDelegationCreate",
    "DigitalDelegationRequested",
    "DocumentAttached",
    "ErrorResponse",
    "LoginRequest",
    "ManualDelegationCreate",
    "OptionTallyRead",
    "PowerStatsRead",
    "ProxiesReportRead",
    "ProxyRead",
    "ProxyRowRead",
    "QuorumRead",
    "RefreshRequest",
    "RepresentedUnitRead",
    "SignatureVerify",
    "SuccessEnvelope",
    "TemplateRead",
    "TemplateSave",
    "TokenPayload",
    "TokenResponse",
    "UnitReportRead",
    "VoteCreate",
    "VoteOptionRead",
    "VoteRead",
    "VoteReportEntry",
    "VoteStatusUpdate",
    "VoteTallyRead",
    "VoteUpdate",
    "WelcomeSent",
]
