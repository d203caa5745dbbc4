"""ORM models package."""
from .assembly import Assembly
from .audit_log import AuditLog
from .base import Base, TimestampMixin
from .identity import ELEVATED_ROLES, AuthAccount, Identity, IdentityRole
from .notification_template import NotificationChannel, NotificationTemplate, NotificationType
from .proxy import DigitalSignature, Proxy, ProxyStatus, ProxyType, SignatureStatus
from .unit import AttendanceLog, Unit
from .vote import Ballot, Vote, VoteOption, VoteStatus

__all__ = [
    "Assembly",
    "AttendanceLog",
    "AuditLog",
    "AuthAccount",
    "Ballot",
    "Base",
    "DigitalSignature",
    "ELEVATED_ROLES",
    "Identity",
    "IdentityRole",
    "NotificationChannel",
    "NotificationTemplate",
    "NotificationType",
    "Proxy",
    "ProxyStatus",
    "ProxyType",
    "SignatureStatus",
    "TimestampMixin",
    "Unit",
    "Vote",
    "VoteOption",
    "VoteStatus",
]
