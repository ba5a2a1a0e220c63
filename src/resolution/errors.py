"""
Resolution engine exceptions.

Retryable failures (oracle, index) leave a candidate unresolved so the next
run of the batch picks it up again. Integrity failures are fatal for the
item and must reach an operator.
"""


class ResolutionError(Exception):
    """Base exception for all resolution errors."""
    pass


class TransientOracleFailure(ResolutionError):
    """
    Raised when an arbitration call times out or fails at the network level.

    Retried with exponential backoff up to the configured bound.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class AmbiguousOracleResponse(TransientOracleFailure):
    """
    Raised when the oracle reply is not a valid decision.

    Covers malformed JSON and out-of-enum decisions. Handled exactly like a
    transient failure.
    """

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


class OracleExhaustedError(ResolutionError):
    """Raised when all arbitration attempts failed; the candidate stays unresolved."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Arbitration failed after {attempts} attempt(s): {last_error}"
        )


class IndexUnavailable(ResolutionError):
    """
    Raised when the lexical index backing store cannot be reached.

    Retryable infrastructure failure: the batch pauses instead of treating
    candidates as NEW.
    """
    pass


class LedgerConflict(ResolutionError):
    """
    Raised when a resolution would duplicate one already recorded.

    Either the candidate already has a record, or another candidate of the
    batch already updates the same canonical article.
    """

    def __init__(self, candidate_id: str, message: str | None = None):
        self.candidate_id = candidate_id
        super().__init__(message or f"Resolution already recorded for candidate: {candidate_id}")


class IdentityIntegrityError(ResolutionError):
    """
    Raised when an UPDATE references a canonical article that does not exist.

    A data-integrity bug, not retryable.
    """

    def __init__(self, candidate_id: str, canonical_id: str):
        self.candidate_id = candidate_id
        self.canonical_id = canonical_id
        super().__init__(
            f"Candidate {candidate_id} resolved as UPDATE of unknown canonical article {canonical_id}"
        )


class CandidateNotFoundError(ResolutionError):
    """Raised when a requested candidate or its resolution does not exist."""

    def __init__(self, candidate_id: str):
        self.candidate_id = candidate_id
        super().__init__(f"Candidate not found: {candidate_id}")


class PublicationNotFoundError(ResolutionError):
    """Raised when no publication exists for a date."""

    def __init__(self, pub_date: str):
        self.pub_date = pub_date
        super().__init__(f"Publication not found: {pub_date}")
