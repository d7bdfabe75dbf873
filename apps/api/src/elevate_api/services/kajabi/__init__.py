"""Kajabi integration exports."""

from .client import KajabiClient, KajabiClientError, KajabiEnrollmentResult  # noqa: F401
from .enrollment import (  # noqa: F401
    KajabiInviteError,
    KajabiInviteResult,
    KajabiInviteUserNotFoundError,
    invite_user,
)
from .events import (  # noqa: F401
    KajabiDeliveryOutcome,
    KajabiEventNotFoundError,
    KajabiReplaySummary,
    ingest_kajabi_delivery,
    replay_unmatched_events,
)
from .webhook import (  # noqa: F401
    KajabiProcessReason,
    KajabiProcessResult,
    TagGrantResult,
    compute_external_event_id,
    process_kajabi_webhook,
)
