"""
Resolution Ledger - one immutable decision per candidate.

Records are never edited. A decision overturned by an operator is stored as
a ResolutionAmendment next to the original record; amendments are audit
data and do not touch canonical identity.
"""

import logging
import sqlite3
from typing import Optional

from .entities import (
    Decision,
    DecisionSource,
    ResolutionAmendment,
    ResolutionRecord,
)
from .errors import CandidateNotFoundError, LedgerConflict
from .persistence import ResolutionStore

logger = logging.getLogger(__name__)


def validate_record(record: ResolutionRecord) -> None:
    """
    Check the shape of a record before it is written.

    Raises:
        ValueError: If the record violates a ledger rule
    """
    if record.decision == Decision.UPDATE and not record.matched_canonical_id:
        raise ValueError(
            f"UPDATE resolution for {record.candidate_id} requires matched_canonical_id"
        )
    if record.decision != Decision.UPDATE and record.matched_canonical_id:
        raise ValueError(
            f"{record.decision.value} resolution for {record.candidate_id} "
            "must not carry matched_canonical_id"
        )
    if record.decision_source in (DecisionSource.ARBITER, DecisionSource.MANUAL):
        if not (record.rationale and record.rationale.strip()):
            raise ValueError(
                f"{record.decision_source.value} resolution for {record.candidate_id} requires a rationale"
            )


class ResolutionLedger:
    """Append-only ledger of resolution decisions."""

    def __init__(self, store: ResolutionStore):
        self.store = store

    def record(
        self,
        resolution: ResolutionRecord,
        conn: Optional[sqlite3.Connection] = None,
    ) -> ResolutionRecord:
        """
        Write the decision for a candidate.

        Raises:
            ValueError: If the record is malformed
            LedgerConflict: If the candidate already has a decision
        """
        validate_record(resolution)
        try:
            self.store.insert_resolution(resolution, conn)
        except LedgerConflict:
            logger.info(f"[Ledger] Conflict: {resolution.candidate_id} already resolved")
            raise

        logger.info(
            f"[Ledger] {resolution.batch_date}/{resolution.candidate_id}: "
            f"{resolution.decision.value} via {resolution.decision_source.value}"
            + (f" -> {resolution.matched_canonical_id}" if resolution.matched_canonical_id else "")
        )
        return resolution

    def get(self, candidate_id: str, batch_date: str) -> Optional[ResolutionRecord]:
        return self.store.get_resolution(batch_date, candidate_id)

    def list_for_batch(self, batch_date: str) -> list[ResolutionRecord]:
        return self.store.list_resolutions(batch_date)

    def find_batch_update(self, batch_date: str, canonical_id: str) -> Optional[ResolutionRecord]:
        """The UPDATE already recorded in this batch for a canonical article, if any."""
        return self.store.find_batch_update(batch_date, canonical_id)

    # =========================================================================
    # Amendments
    # =========================================================================

    def amend(
        self,
        candidate_id: str,
        batch_date: str,
        decision: Decision,
        rationale: str,
        amended_by: str,
        matched_canonical_id: Optional[str] = None,
    ) -> ResolutionAmendment:
        """
        Record that a decision was overturned.

        Raises:
            CandidateNotFoundError: If the candidate has no ledger record
            ValueError: If the amendment is malformed
        """
        if self.get(candidate_id, batch_date) is None:
            raise CandidateNotFoundError(candidate_id)
        if not rationale or not rationale.strip():
            raise ValueError("Amendment requires a rationale")
        if decision == Decision.UPDATE and not matched_canonical_id:
            raise ValueError("UPDATE amendment requires matched_canonical_id")
        if decision != Decision.UPDATE and matched_canonical_id:
            raise ValueError(f"{decision.value} amendment must not carry matched_canonical_id")

        amendment = self.store.insert_amendment(
            batch_date,
            ResolutionAmendment(
                candidate_id=candidate_id,
                decision=decision,
                rationale=rationale.strip(),
                amended_by=amended_by,
                matched_canonical_id=matched_canonical_id,
            ),
        )
        logger.warning(
            f"[Ledger] Amended {batch_date}/{candidate_id} -> {decision.value} by {amended_by}"
        )
        return amendment

    def list_amendments(self, candidate_id: str, batch_date: str) -> list[ResolutionAmendment]:
        return self.store.list_amendments(batch_date, candidate_id)

    def effective_decision(self, candidate_id: str, batch_date: str) -> Optional[Decision]:
        """Latest amendment's decision, else the original one; None if unresolved."""
        amendments = self.list_amendments(candidate_id, batch_date)
        if amendments:
            return amendments[-1].decision
        record = self.get(candidate_id, batch_date)
        return record.decision if record else None
