"""
Scrape Coordinator

Drives one scraping run: filters the work queue against what the database
already holds for the month, then fetches, classifies, extracts, validates
and persists each target in turn. Per-target failures are recorded in the
run statistics, the scraping_errors table and the diagnostics file, and the
loop moves on. Only startup failures end a run.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from core.configuration import ScraperConfig
from core.errors import (Blocked, BlockedExhausted, NoPriceFound, NotFound, PersistenceFailure,
                         RunCancelled, ScraperError, TransportError)
from core.fetch_controller import FetchController, FetchResult, FetchStatus
from core.rate_limiter import RequestPacer
from extraction.orchestrator import ExtractionOrchestrator
from extraction.outlier_validator import OutlierValidator, swap_if_inverted
from extraction.page_classifier import PageClass, classify_by_name, classify_by_structure
from models.target import DataSource, PriceRecord, Target
from strategies.core.strategy_context import StrategyContext
from utils.database_manager import DatabaseManager, InsertOutcome
from utils.diagnostics import DiagnosticsSink
from utils.logging import bind_run_context, get_logger

logger = logging.getLogger(__name__)
events = get_logger(__name__)


class TargetState(Enum):
    """Where a target ended up in the per-target state machine."""
    PENDING = "pending"
    FETCHING = "fetching"
    NOT_FOUND = "not_found"
    BLOCKED_EXHAUSTED = "blocked_exhausted"
    TRANSPORT_FAILED = "transport_failed"
    EXTRACTING = "extracting"
    NO_PRICE_FOUND = "no_price_found"
    EXTRACTED = "extracted"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    DUPLICATE_SKIPPED = "duplicate_skipped"
    PERSISTENCE_FAILED = "persistence_failed"
    CANCELLED = "cancelled"


FAILURE_STATES = (
    TargetState.NOT_FOUND,
    TargetState.BLOCKED_EXHAUSTED,
    TargetState.TRANSPORT_FAILED,
    TargetState.NO_PRICE_FOUND,
    TargetState.PERSISTENCE_FAILED,
)


@dataclass
class TargetOutcome:
    """Final state of one target plus everything needed for bookkeeping."""
    target: Target
    state: TargetState = TargetState.PENDING
    url: Optional[str] = None
    expected_class: Optional[PageClass] = None
    structural_class: Optional[PageClass] = None
    record: Optional[PriceRecord] = None
    error: Optional[ScraperError] = None
    attempts: int = 0
    elapsed_ms: int = 0

    @property
    def is_failure(self) -> bool:
        return self.state in FAILURE_STATES

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None


class RunStats:
    """Run counters; every update happens under one lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self.processed = 0
        self.success = 0
        self.failure = 0
        self.duplicates = 0
        self.outliers = 0
        self.not_found = 0
        self.blocked = 0
        self.transport = 0
        self.no_price = 0
        self.persistence_failures = 0
        self.swapped = 0
        self.class_mismatches = 0
        self.by_class: Dict[str, Dict[str, int]] = {
            page_class.value: {'attempted': 0, 'success': 0, 'not_found': 0} for page_class in PageClass
        }
        self.by_method: Dict[str, int] = {}

    def record(self, outcome: TargetOutcome) -> None:
        if outcome.state is TargetState.CANCELLED:
            return

        with self._lock:
            self.processed += 1
            class_stats = self.by_class.get(outcome.expected_class.value) if outcome.expected_class else None
            if class_stats is not None:
                class_stats['attempted'] += 1

            if outcome.structural_class is not None and outcome.expected_class is not None \
                    and outcome.structural_class is not outcome.expected_class:
                self.class_mismatches += 1

            state = outcome.state
            if state is TargetState.PERSISTED:
                self.success += 1
                if class_stats is not None:
                    class_stats['success'] += 1
                record = outcome.record
                if record.is_outlier:
                    self.outliers += 1
                if record.extraction_method:
                    self.by_method[record.extraction_method] = self.by_method.get(record.extraction_method, 0) + 1
                if record.extraction_details.get('swapped'):
                    self.swapped += 1
            elif state is TargetState.DUPLICATE_SKIPPED:
                self.duplicates += 1
            elif outcome.is_failure:
                self.failure += 1
                if state is TargetState.NOT_FOUND:
                    self.not_found += 1
                    if class_stats is not None:
                        class_stats['not_found'] += 1
                elif state is TargetState.BLOCKED_EXHAUSTED:
                    self.blocked += 1
                elif state is TargetState.TRANSPORT_FAILED:
                    self.transport += 1
                elif state is TargetState.NO_PRICE_FOUND:
                    self.no_price += 1
                elif state is TargetState.PERSISTENCE_FAILED:
                    self.persistence_failures += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'processed': self.processed,
                'success': self.success,
                'failure': self.failure,
                'duplicates': self.duplicates,
                'outliers': self.outliers,
                'not_found': self.not_found,
                'blocked': self.blocked,
                'transport': self.transport,
                'no_price': self.no_price,
                'persistence_failures': self.persistence_failures,
                'swapped': self.swapped,
                'class_mismatches': self.class_mismatches,
                'by_class': {k: dict(v) for k, v in self.by_class.items()},
                'by_method': dict(self.by_method),
            }


class ScrapeCoordinator:
    """Runs the fetch, extract, validate and persist loop over a work queue."""

    def __init__(self,
                 config: ScraperConfig,
                 database: DatabaseManager,
                 fetcher: Optional[FetchController] = None,
                 orchestrator: Optional[ExtractionOrchestrator] = None,
                 validator: Optional[OutlierValidator] = None,
                 pacer: Optional[RequestPacer] = None,
                 diagnostics: Optional[DiagnosticsSink] = None,
                 stop_event: Optional[threading.Event] = None):
        """
        Initialize the coordinator.

        Args:
            config: Run configuration
            database: Persistence collaborator
            fetcher: Page fetcher; built from the config at run start when omitted
            orchestrator: Extraction orchestrator
            validator: Outlier validator
            pacer: Inter-request delay
            diagnostics: JSONL error sink
            stop_event: Shared cancellation flag
        """
        self.config = config
        self.database = database
        self.stop_event = stop_event or threading.Event()
        self.fetcher = fetcher
        self._owns_fetcher = fetcher is None
        self.orchestrator = orchestrator or ExtractionOrchestrator(context=StrategyContext.from_config(config))
        self.validator = validator or OutlierValidator.from_config(config)
        self.pacer = pacer or RequestPacer.from_config(config, self.stop_event)
        self.diagnostics = diagnostics or DiagnosticsSink(config.diagnostics_dir)
        self.stats = RunStats()
        self.session_id: Optional[str] = None

    @property
    def period(self) -> date:
        return self.config.period

    def stop(self) -> None:
        """Request cancellation; the current target finishes, no new one starts."""
        logger.info("Stop requested, finishing current target")
        self.stop_event.set()

    def _ensure_fetcher(self) -> FetchController:
        if self.fetcher is None:
            # May raise FatalConfigurationError when no rotation entry is usable
            self.fetcher = FetchController.from_config(self.config, self.stop_event)
        return self.fetcher

    def build_work_queue(self, targets: Iterable[Target]) -> List[Target]:
        """
        Drop targets that already have a record for the period and apply the target cap.

        Args:
            targets: Candidate targets in processing order

        Returns:
            Targets still to be scraped
        """
        covered = self.database.existing_postal_codes(self.period)
        queue = []
        seen = set()
        skipped = 0
        for target in targets:
            if target.postal_code in covered:
                skipped += 1
                continue
            if target.postal_code in seen:
                continue
            seen.add(target.postal_code)
            queue.append(target)

        if self.config.max_targets and len(queue) > self.config.max_targets:
            queue = queue[:self.config.max_targets]

        logger.info(f"Work queue for {self.period}: {len(queue)} targets "
                    f"({skipped} already covered)")
        return queue

    def run(self, targets: Iterable[Target]) -> Dict[str, Any]:
        """
        Process every uncovered target and finalize the session.

        Args:
            targets: Candidate targets

        Returns:
            Run summary with the session id, final status and counters

        Raises:
            PersistenceFailure: If the database is unreachable or the session cannot start
            FatalConfigurationError: If the fetcher cannot be built; the session is marked failed first
        """
        self.database.check_connection()
        queue = self.build_work_queue(targets)
        self.session_id = self.database.start_session(self.period, len(queue), self.config.to_dict())
        bind_run_context(self.session_id, self.period.isoformat())
        events.info("run_started", planned=len(queue), workers=self.config.max_workers)
        started = time.monotonic()

        try:
            self._ensure_fetcher()
            if self.config.max_workers > 1 and len(queue) > 1:
                self._run_concurrent(queue)
            else:
                self._run_sequential(queue)
        except Exception as e:
            logger.error(f"Run {self.session_id} aborted: {e}")
            self.database.fail_session(self.session_id, f"{type(e).__name__}: {e}", self.stats.snapshot())
            raise
        finally:
            if self._owns_fetcher and self.fetcher is not None:
                self.fetcher.close()

        stats = self.stats.snapshot()
        stats['elapsed_seconds'] = round(time.monotonic() - started, 1)
        cancelled = self.stop_event.is_set() and stats['processed'] < len(queue)

        if cancelled:
            reason = RunCancelled(f"Run cancelled after {stats['processed']} of {len(queue)} targets")
            self.database.fail_session(self.session_id, str(reason), stats)
            events.warning(reason.kind, processed=stats['processed'], planned=len(queue))
            status = 'cancelled'
        else:
            self.database.complete_session(self.session_id, stats)
            status = 'completed'

        events.info("run_finished", status=status, processed=stats['processed'],
                    success=stats['success'], failure=stats['failure'])
        return dict(stats, session_id=self.session_id, status=status, planned=len(queue),
                    period=self.period.isoformat())

    def _run_sequential(self, queue: List[Target]) -> None:
        total = len(queue)
        for index, target in enumerate(queue):
            if self.stop_event.is_set():
                break
            outcome = self.process_target(target)
            self._after_target(outcome, total)
            if outcome.state is TargetState.CANCELLED:
                break
            if index < total - 1 and not self.pacer.wait():
                break

    def _run_concurrent(self, queue: List[Target]) -> None:
        total = len(queue)
        logger.info(f"Processing {total} targets with {self.config.max_workers} workers")
        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix='scrape') as executor:
            futures = [executor.submit(self._process_and_pace, target) for target in queue]
            for future in as_completed(futures):
                self._after_target(future.result(), total)

    def _process_and_pace(self, target: Target) -> TargetOutcome:
        if self.stop_event.is_set():
            return TargetOutcome(target, TargetState.CANCELLED)
        outcome = self.process_target(target)
        self.pacer.wait()
        return outcome

    def _after_target(self, outcome: TargetOutcome, total: int) -> None:
        self.stats.record(outcome)
        if outcome.state is TargetState.CANCELLED:
            return

        snapshot = self.stats.snapshot()
        if self.session_id is not None:
            self.database.update_session_progress(self.session_id, snapshot)

        processed = snapshot['processed']
        interval = self.config.progress_interval
        if interval and (processed % interval == 0 or processed == total):
            logger.info(f"Progress: {processed}/{total} targets, {snapshot['success']} successful, "
                        f"{snapshot['failure']} failed, {snapshot['duplicates']} duplicates")

    def process_target(self, target: Target) -> TargetOutcome:
        """
        Run one target through fetch, extraction, validation and persistence.

        Never raises for per-target failures; the outcome carries the error.

        Args:
            target: The target to process

        Returns:
            TargetOutcome with the final state
        """
        fetcher = self._ensure_fetcher()
        started = time.monotonic()
        outcome = TargetOutcome(target, url=fetcher.url_for(target),
                                expected_class=classify_by_name(target.display_name))

        if self.stop_event.is_set():
            outcome.state = TargetState.CANCELLED
            return outcome

        outcome.state = TargetState.FETCHING
        fetch = fetcher.fetch(target)
        outcome.attempts = fetch.attempt_count

        if not fetch.ok:
            self._handle_fetch_failure(outcome, fetch)
        else:
            self._extract_and_persist(outcome, fetch, started)

        outcome.elapsed_ms = int((time.monotonic() - started) * 1000)
        if outcome.is_failure:
            self._record_failure(outcome)

        events.info("target_processed", postal_code=target.postal_code, city=target.display_name,
                    state=outcome.state.value, attempts=outcome.attempts, elapsed_ms=outcome.elapsed_ms)
        return outcome

    def _handle_fetch_failure(self, outcome: TargetOutcome, fetch: FetchResult) -> None:
        name = f"{outcome.target.display_name} ({outcome.target.postal_code})"
        if fetch.status is FetchStatus.CANCELLED:
            outcome.state = TargetState.CANCELLED
        elif fetch.status is FetchStatus.NOT_FOUND:
            outcome.state = TargetState.NOT_FOUND
            outcome.error = NotFound(f"No page for {name}: {fetch.error}", fetch.url)
        elif fetch.status is FetchStatus.BLOCKED:
            outcome.state = TargetState.BLOCKED_EXHAUSTED
            if fetch.exhausted:
                outcome.error = BlockedExhausted(
                    f"Blocked on all {fetch.attempt_count} attempts for {name}: {fetch.error}", fetch.url)
            else:
                outcome.error = Blocked(f"Blocked for {name}: {fetch.error}", fetch.url)
        else:
            outcome.state = TargetState.TRANSPORT_FAILED
            outcome.error = TransportError(
                f"Transport failure after {fetch.attempt_count} attempts for {name}: {fetch.error}", fetch.url)

    def _extract_and_persist(self, outcome: TargetOutcome, fetch: FetchResult, started: float) -> None:
        target = outcome.target
        outcome.state = TargetState.EXTRACTING
        structure = classify_by_structure(fetch.document)
        outcome.structural_class = structure.page_class

        try:
            extraction = self.orchestrator.extract(fetch.document, None, outcome.expected_class, fetch.url)
        except NoPriceFound as e:
            outcome.state = TargetState.NO_PRICE_FOUND
            outcome.error = e
            return
        outcome.state = TargetState.EXTRACTED

        price_a, price_b = extraction.price_a, extraction.price_b
        details = extraction.to_dict()
        details['dom_signature'] = structure.dom_signature
        if self.config.correct_inverted_prices:
            price_a, price_b, order = swap_if_inverted(price_a, price_b)
            if order.should_swap:
                logger.warning(f"Swapped prices for {target.display_name} ({target.postal_code}): {order.issue}")
                details['swapped'] = True
                details['swap_reason'] = order.issue

        verdict = self.validator.evaluate(price_a, price_b)
        if verdict.reasons:
            details['outlier_reasons'] = verdict.reasons
        outcome.state = TargetState.VALIDATED

        record = PriceRecord(
            period=self.period,
            postal_code=target.postal_code,
            display_name=target.display_name,
            price_a=price_a,
            price_b=price_b,
            latitude=target.latitude,
            longitude=target.longitude,
            is_outlier=verdict.has_outlier,
            outlier_severity=verdict.severity.value,
            source_url=fetch.url,
            extraction_method=extraction.method,
            structural_class=structure.page_class.value,
            expected_class=outcome.expected_class.value,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            data_source=DataSource.ORIGINAL,
            extraction_details=details,
        )
        outcome.record = record

        try:
            result = self.database.insert(record)
        except PersistenceFailure as e:
            outcome.state = TargetState.PERSISTENCE_FAILED
            outcome.error = e
            return

        if result is InsertOutcome.DUPLICATE:
            outcome.state = TargetState.DUPLICATE_SKIPPED
        else:
            outcome.state = TargetState.PERSISTED

    def _record_failure(self, outcome: TargetOutcome) -> None:
        target = outcome.target
        message = str(outcome.error)
        logger.warning(f"{outcome.state.value}: {message}")

        context: Dict[str, Any] = {'attempts': outcome.attempts}
        if isinstance(outcome.error, NoPriceFound):
            context['trace'] = [entry.to_dict() for entry in outcome.error.trace]

        self.database.log_error(self.session_id, target.postal_code, target.display_name,
                                outcome.error_kind, message, outcome.url,
                                retry_count=max(outcome.attempts - 1, 0), context=context)
        try:
            self.diagnostics.record(self.session_id, target.postal_code, target.display_name,
                                    outcome.error_kind, message, outcome.url)
        except OSError as e:
            logger.error(f"Failed to write diagnostics entry for {target.postal_code}: {e}")
