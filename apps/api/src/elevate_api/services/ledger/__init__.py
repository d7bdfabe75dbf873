"""Points ledger service exports."""

from .amplify import (  # noqa: F401
    AmplifyApprovalResult,
    AmplifyCaps,
    AmplifyPayload,
    AmplifyWarning,
    approve_amplify_submission,
    local_instant,
    trailing_window,
)
from .badges import BADGE_RULES, BadgeFacts, BadgeRule, grant_badges_for_user  # noqa: F401
from .errors import (  # noqa: F401
    LedgerError,
    LedgerIntegrityError,
    SubmissionLimitError,
    SubmissionNotFoundError,
    SubmissionStateError,
)
from .ledger import (  # noqa: F401
    LeaderboardRow,
    LedgerAppendResult,
    UserPointsSummary,
    append_ledger_entry,
    approval_event_id,
    get_ledger_entry,
    leaderboard,
    revocation_event_id,
    summarize_user_points,
)
from .review import ReviewResult, approve_submission, reject_submission  # noqa: F401
from .revocation import revoke_submission  # noqa: F401
from .scoring import LEARN_TAG_POINTS, compute_points  # noqa: F401
