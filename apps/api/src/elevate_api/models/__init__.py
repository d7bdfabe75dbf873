"""SQLAlchemy models package."""

# Import all models
from .user import User, UserRoleEnum, UserTypeEnum  # noqa: F401
from .submission import (  # noqa: F401
    ActivityCode,
    Submission,
    SubmissionStatus,
    SubmissionVisibility,
)
from .points_ledger import LedgerSource, PointsLedgerEntry  # noqa: F401
from .badge import Badge, EarnedBadge, LearnTagGrant  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
from .kajabi_event import KajabiEvent, KajabiEventStatus  # noqa: F401
