"""
Batch Resolver - runs one day's candidates through the resolution pipeline.

Stages:
    1. Stage candidates; candidates already in the ledger are reused
    2. Query the lexical index (parallel, read-only)
    3. Classify best matches into tiers
    4. Arbitrate BORDERLINE candidates (bounded pool, rate limited, batch timeout)
    5. Tie-break same-batch UPDATEs of one canonical article
    6. Ledger write, then identity mutation, in descending score order
    7. Assemble the publication

Unresolved candidates (oracle exhausted, timed out, index unavailable) stay
staged and are picked up by the next run of the same batch.
"""

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..dedup.classifier import SimilarityClassifier, tier_to_decision
from ..dedup.lexical_index import IndexMatch, LexicalIndex, lookback_window
from ..infra.settings import ResolverSettings
from ..oracle.base import ArbitrationOracle, ArbitrationResult
from ..oracle.claude_oracle import ClaudeArbitrationOracle
from ..oracle.retry_policy import RetryingOracle
from .assembler import (
    ClaudePublicationSummarizer,
    HeadlineDigestSummarizer,
    PublicationAssembler,
    PublicationSummarizer,
)
from .entities import (
    CandidateArticle,
    Confidence,
    Decision,
    DecisionSource,
    ResolutionRecord,
    SeverityChange,
    SimilarityTier,
)
from .errors import (
    CandidateNotFoundError,
    IdentityIntegrityError,
    IndexUnavailable,
    LedgerConflict,
    OracleExhaustedError,
)
from .identity import IdentityResolver, allocate_canonical_id
from .ledger import ResolutionLedger
from .persistence import ResolutionStore

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Outcome of one run of a batch."""
    batch_date: str
    total: int = 0
    new: int = 0
    update: int = 0
    skip: int = 0
    reused: int = 0
    unresolved: int = 0
    failed: int = 0
    unresolved_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)
    decisions: dict[str, str] = field(default_factory=dict)
    paused: bool = False
    dry_run: bool = False
    publication_slug: Optional[str] = None

    def count(self, decision: Decision) -> None:
        if decision == Decision.NEW:
            self.new += 1
        elif decision == Decision.UPDATE:
            self.update += 1
        else:
            self.skip += 1

    def mark_unresolved(self, candidate_id: str) -> None:
        self.unresolved += 1
        self.unresolved_ids.append(candidate_id)

    def mark_failed(self, candidate_id: str) -> None:
        self.failed += 1
        self.failed_ids.append(candidate_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_date": self.batch_date,
            "total": self.total,
            "new": self.new,
            "update": self.update,
            "skip": self.skip,
            "reused": self.reused,
            "unresolved": self.unresolved,
            "failed": self.failed,
            "unresolved_ids": sorted(self.unresolved_ids),
            "failed_ids": sorted(self.failed_ids),
            "decisions": dict(sorted(self.decisions.items())),
            "paused": self.paused,
            "dry_run": self.dry_run,
            "publication_slug": self.publication_slug,
        }


@dataclass
class Assessment:
    """Working state of one candidate between classification and the ledger write."""
    candidate: CandidateArticle
    match: Optional[IndexMatch] = None
    tier: SimilarityTier = SimilarityTier.NEW
    decision: Optional[Decision] = None
    source: DecisionSource = DecisionSource.THRESHOLD
    matched_canonical_id: Optional[str] = None
    rationale: Optional[str] = None
    confidence: Optional[Confidence] = None
    update_summary: Optional[str] = None
    update_content: Optional[str] = None
    severity_change: Optional[SeverityChange] = None

    @property
    def score(self) -> float:
        return self.match.score if self.match else 0.0

    def to_record(self) -> ResolutionRecord:
        is_update = self.decision == Decision.UPDATE
        return ResolutionRecord(
            candidate_id=self.candidate.candidate_id,
            batch_date=self.candidate.batch_date,
            decision=self.decision,
            decision_source=self.source,
            lexical_score=self.match.score if self.match else None,
            matched_canonical_id=self.matched_canonical_id if is_update else None,
            rationale=self.rationale,
            similarity_tier=self.tier,
            nearest_canonical_id=self.match.canonical_id if self.match else None,
            confidence=self.confidence,
            update_summary=self.update_summary if is_update else None,
            update_content=self.update_content if is_update else None,
            severity_change=self.severity_change if is_update else None,
        )


def article_text(headline: str, summary: str, body: str) -> str:
    return f"Headline: {headline}\nSummary: {summary}\nFull Report: {body}"


class BatchResolver:
    """Coordinates the resolution of a batch; all writes happen on the calling thread."""

    def __init__(
        self,
        store: ResolutionStore,
        oracle: ArbitrationOracle,
        settings: Optional[ResolverSettings] = None,
        index: Optional[LexicalIndex] = None,
        assembler: Optional[PublicationAssembler] = None,
    ):
        self.store = store
        self.settings = settings or ResolverSettings()
        self.index = index or LexicalIndex(store, self.settings.scoring)
        self.classifier = SimilarityClassifier(self.settings.thresholds)
        self.ledger = ResolutionLedger(store)
        self.identity = IdentityResolver(store, self.index)
        self.assembler = assembler or PublicationAssembler(
            store,
            self.ledger,
            regenerate_on_skip=self.settings.pipeline.regenerate_on_skip,
        )
        if isinstance(oracle, RetryingOracle):
            self.oracle = oracle
        else:
            self.oracle = RetryingOracle.from_config(oracle, self.settings.oracle)

    @classmethod
    def create(
        cls,
        db_path: str | Path,
        settings: Optional[ResolverSettings] = None,
        oracle: Optional[ArbitrationOracle] = None,
        summarizer: Optional[PublicationSummarizer] = None,
    ) -> "BatchResolver":
        """
        Build a resolver with its store and default collaborators.

        Without an explicit oracle the Claude oracle is used. The publication
        summarizer is Claude-backed when ANTHROPIC_API_KEY is set, otherwise
        the headline digest.
        """
        settings = settings or ResolverSettings.from_env()
        store = ResolutionStore(db_path)

        if oracle is None:
            oracle = ClaudeArbitrationOracle(settings.oracle)
        if summarizer is None:
            if os.getenv("ANTHROPIC_API_KEY"):
                summarizer = ClaudePublicationSummarizer(settings.oracle)
            else:
                summarizer = HeadlineDigestSummarizer()

        assembler = PublicationAssembler(
            store,
            ResolutionLedger(store),
            summarizer=summarizer,
            regenerate_on_skip=settings.pipeline.regenerate_on_skip,
        )
        return cls(store, oracle, settings=settings, assembler=assembler)

    # =========================================================================
    # Entry Points
    # =========================================================================

    def run(
        self,
        batch_date: str,
        candidates: Optional[list[CandidateArticle]] = None,
        dry_run: bool = False,
    ) -> BatchReport:
        """
        Resolve a batch.

        Args:
            batch_date: ISO date of the batch
            candidates: New candidates for the batch; previously staged
                unresolved candidates are always included
            dry_run: Classify and arbitrate without writing anything

        Returns:
            BatchReport
        """
        candidates = candidates or []
        for candidate in candidates:
            if candidate.batch_date != batch_date:
                raise ValueError(
                    f"Candidate {candidate.candidate_id} belongs to batch {candidate.batch_date}, not {batch_date}"
                )

        report = BatchReport(batch_date=batch_date, dry_run=dry_run)
        pending = self._collect_pending(batch_date, candidates, dry_run)
        report.total = len(pending)
        logger.info(
            f"[Pipeline] Batch {batch_date}: {len(pending)} candidate(s)"
            + (" (dry run)" if dry_run else "")
        )

        if not dry_run and pending:
            self.assembler.draft(batch_date, pending, self.settings.pipeline.publication_type)

        fresh = []
        recorded = []
        for candidate in pending:
            existing = self.ledger.get(candidate.candidate_id, batch_date)
            if existing is None:
                fresh.append(candidate)
            else:
                recorded.append((existing, candidate))

        try:
            for existing, candidate in recorded:
                self._reuse(existing, candidate, report, dry_run)

            if fresh:
                assessments = self._assess(batch_date, fresh, pending)
                self._arbitrate(assessments, report)
                decided = [a for a in assessments if a.decision is not None]
                self._break_ties(batch_date, decided)
                self._write(decided, report, dry_run)
        except IndexUnavailable as e:
            self._pause(report, pending, e)
            return report

        if not dry_run and pending:
            publication = self.assembler.assemble(batch_date, self.settings.pipeline.publication_type)
            report.publication_slug = publication.slug

        logger.info(
            f"[Pipeline] Batch {batch_date} done: new={report.new} update={report.update} "
            f"skip={report.skip} reused={report.reused} unresolved={report.unresolved} "
            f"failed={report.failed}"
        )
        if report.unresolved:
            logger.warning(f"[Pipeline] Unresolved candidates: {sorted(report.unresolved_ids)}")
        return report

    def unresolved(self, batch_date: str) -> list[CandidateArticle]:
        """Candidates of a batch still awaiting resolution."""
        return self.store.get_staged_candidates(batch_date)

    def triage(
        self,
        batch_date: str,
        candidate_id: str,
        decision: Decision,
        rationale: str,
        matched_canonical_id: Optional[str] = None,
    ) -> ResolutionRecord:
        """
        Record an operator decision for an unresolved candidate and apply it.

        Raises:
            CandidateNotFoundError: If the candidate is not staged
            LedgerConflict: If the candidate already has a decision, or another
                candidate of the batch already updates the same article
            ValueError: If the decision is malformed or targets an unknown article
        """
        candidate = self.store.get_staged_candidate(batch_date, candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(candidate_id)
        if matched_canonical_id and self.store.get_canonical(matched_canonical_id) is None:
            raise ValueError(f"Unknown canonical article: {matched_canonical_id}")

        if decision == Decision.UPDATE and matched_canonical_id:
            prior = self.ledger.find_batch_update(batch_date, matched_canonical_id)
            if prior is not None:
                raise LedgerConflict(
                    candidate_id,
                    f"Canonical article {matched_canonical_id} is already updated in batch "
                    f"{batch_date} by candidate {prior.candidate_id}",
                )

        record = ResolutionRecord(
            candidate_id=candidate_id,
            batch_date=batch_date,
            decision=decision,
            decision_source=DecisionSource.MANUAL,
            matched_canonical_id=matched_canonical_id,
            rationale=rationale,
            nearest_canonical_id=matched_canonical_id,
        )
        self.ledger.record(record)
        self.identity.apply(record, candidate)
        self.assembler.assemble(batch_date, self.settings.pipeline.publication_type)
        logger.info(f"[Pipeline] Triaged {batch_date}/{candidate_id} as {decision.value}")
        return record

    # =========================================================================
    # Stages
    # =========================================================================

    def _collect_pending(
        self,
        batch_date: str,
        candidates: list[CandidateArticle],
        dry_run: bool,
    ) -> list[CandidateArticle]:
        if not dry_run:
            staged = self.store.stage_candidates(candidates)
            logger.debug(f"[Pipeline] Staged {staged} new candidate(s)")
            return self.store.get_staged_candidates(batch_date)

        by_id = {c.candidate_id: c for c in self.store.get_staged_candidates(batch_date)}
        for candidate in candidates:
            by_id.setdefault(candidate.candidate_id, candidate)
        return [by_id[k] for k in sorted(by_id)]

    def _reuse(
        self,
        record: ResolutionRecord,
        candidate: CandidateArticle,
        report: BatchReport,
        dry_run: bool,
    ) -> None:
        if not dry_run:
            try:
                self.identity.apply(record, candidate)
            except IdentityIntegrityError:
                report.mark_failed(candidate.candidate_id)
                return
        report.reused += 1
        report.decisions[candidate.candidate_id] = record.decision.value

    def _pause(
        self,
        report: BatchReport,
        pending: list[CandidateArticle],
        error: IndexUnavailable,
    ) -> None:
        """
        Stop the batch on an index outage.

        Candidates without an applied outcome stay staged and are reported
        unresolved; ledger entries already committed are reused next run.
        """
        logger.error(f"[Pipeline] Lexical index unavailable, pausing batch {report.batch_date}: {error}")
        report.paused = True
        settled = set(report.decisions) | set(report.unresolved_ids) | set(report.failed_ids)
        for candidate in pending:
            if candidate.candidate_id not in settled:
                report.mark_unresolved(candidate.candidate_id)
        logger.warning(f"[Pipeline] Unresolved candidates: {sorted(report.unresolved_ids)}")

    def _assess(
        self,
        batch_date: str,
        fresh: list[CandidateArticle],
        batch: list[CandidateArticle],
    ) -> list[Assessment]:
        date_floor, date_ceiling = lookback_window(batch_date, self.settings.scoring.lookback_days)
        siblings = {allocate_canonical_id(batch_date, c.candidate_id) for c in batch}

        def best_match(candidate: CandidateArticle) -> Optional[IndexMatch]:
            matches = self.index.query(
                candidate.searchable_text(),
                excluded_ids=siblings,
                date_floor=date_floor,
                date_ceiling=date_ceiling,
                limit=1,
            )
            return matches[0] if matches else None

        workers = max(1, self.settings.pipeline.query_workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            matches = list(executor.map(best_match, fresh))

        t = self.settings.thresholds
        assessments = []
        for candidate, match in zip(fresh, matches):
            tier = self.classifier.classify(
                match.canonical_id if match else None,
                match.score if match else None,
            )
            assessment = Assessment(candidate=candidate, match=match, tier=tier)
            assessment.decision = tier_to_decision(tier)

            if tier == SimilarityTier.NEW:
                assessment.rationale = (
                    f"Best score {match.score:.1f} below borderline threshold {t.borderline_min:.1f}"
                    if match else "No lexical match in lookback window"
                )
            elif tier == SimilarityTier.AUTO_UPDATE:
                assessment.matched_canonical_id = match.canonical_id
                assessment.rationale = (
                    f"Score {match.score:.1f} in update band [{t.update_min:.1f}, {t.duplicate_min:.1f}]"
                )
            elif tier == SimilarityTier.AUTO_DUPLICATE:
                assessment.rationale = (
                    f"Score {match.score:.1f} above duplicate threshold {t.duplicate_min:.1f} "
                    f"(duplicate of {match.canonical_id})"
                )
            assessments.append(assessment)

        return assessments

    def _arbitrate(self, assessments: list[Assessment], report: BatchReport) -> None:
        borderline = [a for a in assessments if a.tier == SimilarityTier.BORDERLINE]
        if not borderline:
            return

        logger.info(f"[Pipeline] Arbitrating {len(borderline)} borderline candidate(s)")
        executor = ThreadPoolExecutor(max_workers=self.settings.oracle.workers)
        futures: dict[Future, Assessment] = {}
        try:
            for assessment in borderline:
                canonical = self.store.get_canonical(assessment.match.canonical_id)
                c = assessment.candidate
                futures[executor.submit(
                    self.oracle.arbitrate,
                    article_text(c.headline, c.summary, c.body),
                    article_text(canonical.headline, canonical.summary, canonical.body),
                    assessment.match.score,
                )] = assessment

            done, not_done = wait(futures, timeout=self.settings.pipeline.batch_timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for future in not_done:
            assessment = futures[future]
            future.cancel()
            logger.warning(f"[Pipeline] Arbitration timed out for {assessment.candidate.candidate_id}")
            report.mark_unresolved(assessment.candidate.candidate_id)

        for future in done:
            assessment = futures[future]
            try:
                result = future.result()
            except OracleExhaustedError as e:
                logger.warning(f"[Pipeline] {assessment.candidate.candidate_id} left unresolved: {e}")
                report.mark_unresolved(assessment.candidate.candidate_id)
                continue
            except Exception as e:
                logger.error(
                    f"[Pipeline] Arbitration error for {assessment.candidate.candidate_id}: {e}",
                    exc_info=True,
                )
                report.mark_unresolved(assessment.candidate.candidate_id)
                continue
            self._apply_arbitration(assessment, result)

    def _apply_arbitration(self, assessment: Assessment, result: ArbitrationResult) -> None:
        assessment.decision = result.decision
        assessment.source = DecisionSource.ARBITER
        assessment.rationale = result.rationale
        assessment.confidence = result.confidence
        if result.decision == Decision.UPDATE:
            assessment.matched_canonical_id = assessment.match.canonical_id
            assessment.update_summary = result.update_summary
            assessment.update_content = result.update_content
            assessment.severity_change = result.severity_change

    def _break_ties(self, batch_date: str, decided: list[Assessment]) -> None:
        """
        One UPDATE per canonical article per batch.

        Highest score wins, ties broken by candidate id; an UPDATE already in
        the ledger for this batch beats every candidate of this run. Losers
        become SKIP with a rationale naming the winner.
        """
        groups: dict[str, list[Assessment]] = {}
        for a in decided:
            if a.decision == Decision.UPDATE:
                groups.setdefault(a.matched_canonical_id, []).append(a)

        for canonical_id, group in groups.items():
            prior = self.ledger.find_batch_update(batch_date, canonical_id)
            group.sort(key=lambda a: (-a.score, a.candidate.candidate_id))
            if prior is not None:
                winner_id, losers = prior.candidate_id, group
            else:
                winner_id, losers = group[0].candidate.candidate_id, group[1:]

            for loser in losers:
                logger.info(
                    f"[Pipeline] Tie-break: {loser.candidate.candidate_id} -> SKIP, "
                    f"{winner_id} updates {canonical_id}"
                )
                loser.decision = Decision.SKIP
                loser.matched_canonical_id = None
                loser.update_summary = None
                loser.update_content = None
                loser.severity_change = None
                loser.rationale = (
                    f"Canonical article {canonical_id} is updated in this batch by candidate {winner_id}"
                    + (f"; original rationale: {loser.rationale}" if loser.rationale else "")
                )

    def _write(self, decided: list[Assessment], report: BatchReport, dry_run: bool) -> None:
        decided.sort(key=lambda a: (-a.score, a.candidate.candidate_id))

        for assessment in decided:
            candidate = assessment.candidate
            record = assessment.to_record()

            if dry_run:
                report.decisions[candidate.candidate_id] = record.decision.value
                report.count(record.decision)
                continue

            try:
                self.ledger.record(record)
            except LedgerConflict:
                existing = self.ledger.get(candidate.candidate_id, candidate.batch_date)
                self._reuse(existing, candidate, report, dry_run)
                continue

            # IndexUnavailable propagates: the committed record is reused next run
            try:
                self.identity.apply(record, candidate)
            except IdentityIntegrityError:
                report.mark_failed(candidate.candidate_id)
                continue

            report.decisions[candidate.candidate_id] = record.decision.value
            report.count(record.decision)
