"""Exceptions raised by the points ledger services."""

from __future__ import annotations


class LedgerError(RuntimeError):
    """Base exception for ledger, approval and revocation failures."""


class SubmissionLimitError(LedgerError):
    """Raised when an approval would push a rolling quota past its cap."""

    code = "SUBMISSION_LIMIT_EXCEEDED"

    def __init__(self, limit_name: str, attempted_total: int, cap: int) -> None:
        message = f"{limit_name} submission limit exceeded. Current: {attempted_total}, Maximum allowed: {cap}"
        super().__init__(message)
        self.limit_name = limit_name
        self.attempted_total = attempted_total
        self.cap = cap


class SubmissionStateError(LedgerError):
    """Raised when a submission is not in a state that allows the operation."""


class SubmissionNotFoundError(LedgerError):
    """Raised when attempting to act on a missing submission."""

    def __init__(self, submission_id: object) -> None:
        super().__init__(f"Submission {submission_id} not found")
        self.submission_id = submission_id


class LedgerIntegrityError(LedgerError):
    """Raised when ledger rows contradict submission state."""
