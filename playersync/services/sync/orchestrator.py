"""Sync orchestrator for roster and stat synchronization against ESPN.

This orchestrator coordinates:
- Roster sync: fetch roster → match each player → link/update/insert
- Stat sync: fetch completed games for a week → box scores → transform → upsert
- Historical and full syncs over week ranges, run sequentially
- A single-flight guard so only one sync runs at a time
- Cooperative cancellation, checked before every item and during waits
- An append-only report for every run that reaches a terminal status

Error policy:
- ApiError: retried a bounded number of times, then counted; too many in a
  row is a systemic failure
- DataError (and any other per-item exception): counted, item skipped, run
  continues unless continue_on_error is False
- Manual-review matches: counted as matching errors, nothing linked
- SystemicFailure: run ends as failed

Callers always get a SyncResult back, either for a finished run or an
immediate "already running" rejection.
"""
import asyncio
import json
import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from playersync.core.alerts import AlertSeverity, AlertSink, LoggingAlertSink
from playersync.core.exceptions import (
    ApiError,
    ApiTimeoutError,
    ConfigurationError,
    DataError,
    SyncCancelledError,
    SystemicFailure,
)
from playersync.core.logging import clear_correlation_id, set_correlation_id
from playersync.core.metrics import MetricsSink, PrometheusMetricsSink
from playersync.models import SyncReportRecord
from playersync.repositories import SyncReportRepository
from playersync.services.sync.adapters.base import ProviderAdapter
from playersync.services.sync.candidate_store import CandidateFilter, CandidateStore, SqlCandidateStore
from playersync.services.sync.matchers.matching_service import MatchingService
from playersync.services.sync.matchers.player_matcher import MatchConfig
from playersync.services.sync.stats_transformer import StatsTransformer
from playersync.services.sync.types import (
    ALREADY_RUNNING_MESSAGE,
    CandidatePlayer,
    ExternalPlayer,
    GameEvent,
    MatchingStatistics,
    MatchMethod,
    PlayerMatchResult,
    RawStatEntry,
    SyncMetrics,
    SyncOptions,
    SyncReport,
    SyncResult,
    SyncStatus,
    SyncType,
    UnmatchedPlayer,
)
from playersync.services.sync.utils.name_normalizer import normalize, normalize_position, normalize_team

logger = logging.getLogger(__name__)

MAX_WEEK = 22
MANUAL_REVIEW_ALERT_RATIO = 0.1


class SyncGuard:
    """
    Single-flight guard: at most one sync holds it at a time.

    Acquisition is a non-blocking lock acquire, so two near-simultaneous
    start requests can never both succeed. Share one guard between
    orchestrators to widen the scope beyond a single instance.
    """

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()


class _RunAborted(Exception):
    """An item failed and continue_on_error is off."""


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


@dataclass
class _Run:
    result: SyncResult
    options: SyncOptions
    cancel_event: asyncio.Event
    loop: Optional[asyncio.AbstractEventLoop] = None
    consecutive_api_errors: int = 0
    unlinked: Dict[int, CandidatePlayer] = field(default_factory=dict)
    candidates_loaded: bool = False
    # Dry runs persist no links; external id -> internal id, or -1 for a new player
    dry_run_links: Dict[str, int] = field(default_factory=dict)


class SyncOrchestrator:
    """
    Coordinates sync jobs between ESPN and the player catalog.

    This is the main entry point for the sync layer. All sync operations
    and the matching admin surface go through this orchestrator.

    Usage:
        orchestrator = SyncOrchestrator(db, provider=EspnAdapter())
        result = await orchestrator.sync_players()
        result = await orchestrator.sync_player_stats(2024, 3)
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        provider: Optional[ProviderAdapter] = None,
        store: Optional[CandidateStore] = None,
        reports: Optional[SyncReportRepository] = None,
        match_config: Optional[MatchConfig] = None,
        transformer: Optional[StatsTransformer] = None,
        metrics: Optional[MetricsSink] = None,
        alerts: Optional[AlertSink] = None,
        guard: Optional[SyncGuard] = None,
    ):
        """
        Initialize the sync orchestrator.

        Args:
            db: SQLAlchemy session, used for the default store and report log
            provider: Upstream provider adapter (defaults to EspnAdapter)
            store: Candidate store (defaults to SqlCandidateStore(db))
            reports: Report log (defaults to SyncReportRepository(db))
            match_config: Matching policy (defaults to settings)
            transformer: Stats transformer
            metrics: Metrics sink (defaults to Prometheus)
            alerts: Alert sink (defaults to logging)
            guard: Single-flight guard (defaults to one per orchestrator)
        """
        if store is None or reports is None:
            if db is None:
                raise ValueError("db is required unless both store and reports are provided")

        self.db = db
        self.store = store or SqlCandidateStore(db)
        self.reports = reports or SyncReportRepository(db)
        self.matching = MatchingService(self.store, match_config)
        self.transformer = transformer or StatsTransformer()
        self.metrics = metrics or PrometheusMetricsSink()
        self.alerts = alerts or LoggingAlertSink()
        self._guard = guard or SyncGuard()
        self._active: Optional[_Run] = None

        if provider is None:
            from playersync.services.sync.adapters.espn_adapter import EspnAdapter
            provider = EspnAdapter()
        self.provider = provider

    # ========================================================================
    # Sync entry points
    # ========================================================================

    async def sync_players(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Sync the provider roster into the player catalog.

        For each roster player:
        1. Already linked by external id → update (or skip if unchanged)
        2. Matcher auto-links → write link + update, players_updated
        3. Matcher flags manual review → matching_errors, nothing written
        4. No match → insert as a new player, new_players_added

        Args:
            options: Run options (defaults from settings)

        Returns:
            SyncResult for the run, or an "already running" rejection
        """
        options = options or SyncOptions.from_settings()
        return await self._execute(SyncType.PLAYERS, options, self._players_body, {})

    async def sync_player_stats(self, season: int, week: int, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Sync per-game stats for one week.

        Re-running the same week updates existing rows instead of adding
        duplicates (rows are keyed by player, game and stat name).

        Args:
            season: Season year
            week: Week number
            options: Run options (defaults from settings)

        Returns:
            SyncResult for the run, or an "already running" rejection
        """
        self._validate_season_week(season, week, week)
        options = options or SyncOptions.from_settings()

        async def body(run: _Run) -> None:
            try:
                await self._sync_week(run, season, week)
            except ApiError as e:
                raise SystemicFailure(f"Could not fetch events for {season} week {week}: {e}") from e

        return await self._execute(SyncType.PLAYER_STATS, options, body, {"season": season, "week": week})

    async def sync_historical_stats(
        self,
        season: int,
        start_week: int,
        end_week: int,
        options: Optional[SyncOptions] = None,
    ) -> SyncResult:
        """
        Backfill stats for a week range, one week at a time.

        A week whose event list cannot be fetched is recorded and skipped;
        repeated API errors beyond max_consecutive_api_errors fail the run.

        Returns:
            One aggregate SyncResult for the whole range
        """
        self._validate_season_week(season, start_week, end_week)
        options = options or SyncOptions.from_settings()

        async def body(run: _Run) -> None:
            await self._weeks_body(run, season, start_week, end_week)

        parameters = {"season": season, "start_week": start_week, "end_week": end_week}
        return await self._execute(SyncType.HISTORICAL, options, body, parameters)

    async def full_sync(
        self,
        season: int,
        options: Optional[SyncOptions] = None,
        start_week: int = 1,
        end_week: int = 18,
    ) -> SyncResult:
        """
        Roster sync followed by stats for every week, under one guard.

        Returns:
            One aggregate SyncResult of type FULL
        """
        self._validate_season_week(season, start_week, end_week)
        options = options or SyncOptions.from_settings()

        async def body(run: _Run) -> None:
            await self._players_body(run)
            await self._pause(run, run.options.week_delay_seconds)
            await self._weeks_body(run, season, start_week, end_week)

        parameters = {"season": season, "start_week": start_week, "end_week": end_week}
        return await self._execute(SyncType.FULL, options, body, parameters)

    # ========================================================================
    # Run state
    # ========================================================================

    def is_sync_running(self) -> bool:
        """True while any sync holds the guard."""
        return self._guard.is_running

    def cancel_running_sync(self) -> bool:
        """
        Ask the active run to stop before its next item.

        Returns:
            True if a run was signalled, False if nothing was running
        """
        run = self._active
        if run is None or run.result.is_terminal:
            return False
        logger.info(f"Cancellation requested for sync {run.result.sync_id}")
        if run.loop is None or _running_loop() is run.loop:
            run.cancel_event.set()
        else:
            # asyncio.Event is not thread-safe; set it on the loop that owns the run
            run.loop.call_soon_threadsafe(run.cancel_event.set)
        return True

    def get_sync_status(self) -> Dict[str, Any]:
        """Running state plus the last report per sync type."""
        run = self._active
        last = {}
        for sync_type in SyncType:
            report = self.last_sync_report(sync_type)
            last[sync_type.value] = None if report is None else {
                "report_id": report.report_id,
                "status": report.result.status.value,
                "ended_at": report.result.end_time.isoformat() if report.result.end_time else None,
                "records_processed": report.result.records_processed,
                "errors": len(report.result.errors),
            }
        return {
            "running": self.is_sync_running(),
            "active_sync_id": run.result.sync_id if run else None,
            "active_sync_type": run.result.sync_type.value if run else None,
            "last_reports": last,
        }

    # ========================================================================
    # Reports
    # ========================================================================

    def last_sync_report(self, sync_type: Optional[SyncType] = None) -> Optional[SyncReport]:
        """Most recent report, optionally for one sync type."""
        record = self.reports.latest(sync_type.value if sync_type else None)
        return self._to_report(record) if record else None

    def sync_history(self, limit: int = 10, sync_type: Optional[SyncType] = None) -> List[SyncReport]:
        """Reports newest first."""
        records = self.reports.history(limit=limit, sync_type=sync_type.value if sync_type else None)
        return [self._to_report(r) for r in records]

    def sync_metrics(self, since: Optional[datetime] = None) -> SyncMetrics:
        """Aggregate run metrics computed from the report log."""
        records = self.reports.history(limit=None, since=since)
        metrics = SyncMetrics(since=since)

        durations = []
        for record in records:
            metrics.total_syncs += 1
            metrics.syncs_by_type[record.sync_type] = metrics.syncs_by_type.get(record.sync_type, 0) + 1
            if record.status == SyncStatus.COMPLETED.value:
                metrics.successful_syncs += 1
                if metrics.last_successful_sync is None or (
                    record.ended_at and record.ended_at > metrics.last_successful_sync
                ):
                    metrics.last_successful_sync = record.ended_at
            elif record.status == SyncStatus.FAILED.value:
                metrics.failed_syncs += 1
            elif record.status == SyncStatus.CANCELLED.value:
                metrics.cancelled_syncs += 1
            if record.duration_ms is not None:
                durations.append(record.duration_ms)
            metrics.total_records_processed += record.records_processed or 0
            metrics.total_errors += (record.matching_errors or 0) + (record.data_errors or 0) + (record.api_errors or 0)

        metrics.average_duration_ms = sum(durations) / len(durations) if durations else 0.0
        return metrics

    # ========================================================================
    # Matching surface
    # ========================================================================

    def find_matching_player(self, external: ExternalPlayer) -> PlayerMatchResult:
        """Score one external player against the catalog without writing."""
        return self.matching.find_matching_player(external)

    def link_player(self, internal_id: int, external_id: str) -> bool:
        """Manual link override; idempotent, replaces a previous link."""
        return self.matching.link_player(internal_id, external_id)

    async def unmatched_players(self, roster: Optional[List[ExternalPlayer]] = None) -> List[UnmatchedPlayer]:
        """Manual review queue over the current roster (fetched if not given)."""
        if roster is None:
            roster = await self.provider.fetch_roster()
        return self.matching.unmatched_players(roster)

    async def matching_statistics(self, roster: Optional[List[ExternalPlayer]] = None) -> MatchingStatistics:
        """Matching summary over the current roster (fetched if not given)."""
        if roster is None:
            roster = await self.provider.fetch_roster()
        return self.matching.matching_statistics(roster)

    async def validate_connectivity(self) -> bool:
        """Cheap upstream reachability check."""
        return await self.provider.ping()

    # ========================================================================
    # Run lifecycle
    # ========================================================================

    async def _execute(
        self,
        sync_type: SyncType,
        options: SyncOptions,
        body: Callable[[_Run], Awaitable[None]],
        parameters: Dict[str, Any],
    ) -> SyncResult:
        if not self._guard.try_acquire():
            logger.warning(f"Rejected {sync_type.value} sync: {ALREADY_RUNNING_MESSAGE}")
            self.metrics.sync_rejected(sync_type.value)
            return SyncResult.already_running(sync_type)

        run = _Run(
            result=SyncResult(sync_type=sync_type),
            options=options,
            cancel_event=asyncio.Event(),
            loop=asyncio.get_running_loop(),
        )
        result = run.result
        self._active = run
        token = set_correlation_id(result.sync_id)
        self.metrics.sync_started(sync_type.value)
        logger.info(f"Starting {sync_type.value} sync {result.sync_id} (dry_run={options.dry_run})")

        status = SyncStatus.COMPLETED
        try:
            await asyncio.wait_for(body(run), timeout=options.timeout_minutes * 60)
        except SyncCancelledError:
            status = SyncStatus.CANCELLED
            result.add_warning("Sync cancelled; items already processed were kept")
        except _RunAborted as e:
            status = SyncStatus.FAILED
            result.add_error(f"Sync aborted: {e}")
        except SystemicFailure as e:
            status = SyncStatus.FAILED
            result.add_error(f"Systemic failure: {e}")
        except asyncio.TimeoutError:
            status = SyncStatus.FAILED
            result.add_error(f"Sync exceeded timeout of {options.timeout_minutes} minutes")
        except asyncio.CancelledError:
            status = SyncStatus.CANCELLED
            result.add_warning("Sync task was cancelled")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {sync_type.value} sync {result.sync_id}")
            status = SyncStatus.FAILED
            result.add_error(f"Unexpected error: {e}")
        finally:
            self._finish(run, status, parameters)
            self._active = None
            self._guard.release()
            clear_correlation_id(token)

        return result

    def _finish(self, run: _Run, status: SyncStatus, parameters: Dict[str, Any]) -> None:
        result = run.result
        if status != SyncStatus.COMPLETED:
            self.store.rollback()
        result.finalize(status)

        logger.info(
            f"Finished {result.sync_type.value} sync {result.sync_id}: {status.value} in {result.duration_ms}ms, "
            f"processed={result.records_processed} updated={result.players_updated} "
            f"added={result.new_players_added} stats={result.stats_records_processed} "
            f"matching_errors={result.matching_errors} data_errors={result.data_errors} "
            f"api_errors={result.api_errors}"
        )

        self._write_report(result, {**parameters, "options": run.options.to_dict()})
        self.metrics.sync_finished(result.sync_type.value, result)
        self._raise_alerts(result)

    def _write_report(self, result: SyncResult, parameters: Dict[str, Any]) -> None:
        record = SyncReportRecord(
            id=str(uuid.uuid4()),
            sync_id=result.sync_id,
            sync_type=result.sync_type.value,
            status=result.status.value,
            started_at=result.start_time,
            ended_at=result.end_time,
            duration_ms=result.duration_ms,
            errors=json.dumps(list(result.errors)),
            warnings=json.dumps(list(result.warnings)),
            parameters=json.dumps(parameters, default=str),
            created_at=datetime.utcnow(),
            **result.counters(),
        )
        try:
            self.reports.append(record)
        except Exception as e:
            logger.error(f"Failed to write sync report for {result.sync_id}: {e}")
            self.reports.rollback()

    def _raise_alerts(self, result: SyncResult) -> None:
        context = {"sync_id": result.sync_id, "sync_type": result.sync_type.value, **result.counters()}
        if result.status == SyncStatus.FAILED:
            self.alerts.alert(
                AlertSeverity.ERROR,
                f"{result.sync_type.value} sync failed: {result.errors[-1] if result.errors else 'unknown error'}",
                context,
            )
        elif result.errors:
            self.alerts.alert(
                AlertSeverity.WARNING,
                f"{result.sync_type.value} sync finished {result.status.value} with {len(result.errors)} errors",
                context,
            )
        if result.players_processed and result.matching_errors / result.players_processed > MANUAL_REVIEW_ALERT_RATIO:
            self.alerts.alert(
                AlertSeverity.WARNING,
                f"{result.matching_errors} of {result.players_processed} players need manual review",
                context,
            )

    @staticmethod
    def _validate_season_week(season: int, start_week: int, end_week: int) -> None:
        max_season = datetime.utcnow().year + 1
        if not 1920 <= season <= max_season:
            raise ConfigurationError(f"Invalid season: {season}")
        if not 1 <= start_week <= end_week <= MAX_WEEK:
            raise ConfigurationError(f"Invalid week range: {start_week}-{end_week}")

    # ========================================================================
    # Cancellation, pacing and upstream calls
    # ========================================================================

    @staticmethod
    def _check_cancelled(run: _Run) -> None:
        if run.cancel_event.is_set():
            raise SyncCancelledError()

    async def _checkpoint(self, run: _Run) -> None:
        """Yield to the event loop, then honour a pending cancellation."""
        await asyncio.sleep(0)
        self._check_cancelled(run)

    async def _pause(self, run: _Run, seconds: float) -> None:
        """Sleep that ends early, raising SyncCancelledError, on cancellation."""
        if seconds <= 0:
            await self._checkpoint(run)
            return
        try:
            await asyncio.wait_for(run.cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise SyncCancelledError()

    async def _call_provider(self, run: _Run, description: str, func: Callable[..., Awaitable[Any]], *args) -> Any:
        """
        Call the provider with a deadline and bounded retries.

        Retryable ApiErrors (including timeouts and rate limiting) are
        retried up to options.max_retries times. A final failure counts as
        one API error; exceeding max_consecutive_api_errors in a row raises
        SystemicFailure.

        Raises:
            ApiError: The call failed after retries
            SystemicFailure: Too many consecutive API errors
            SyncCancelledError: Cancelled before or between attempts
        """
        options = run.options
        self._check_cancelled(run)

        async def attempt():
            self._check_cancelled(run)
            try:
                return await asyncio.wait_for(func(*args), timeout=options.request_timeout_seconds)
            except asyncio.TimeoutError as e:
                raise ApiTimeoutError(
                    f"{description} timed out after {options.request_timeout_seconds}s"
                ) from e

        async def sleep(seconds: float) -> None:
            await self._pause(run, seconds)

        try:
            async for retry_state in AsyncRetrying(
                stop=stop_after_attempt(options.max_retries + 1),
                wait=wait_exponential(multiplier=options.retry_delay_seconds, max=30),
                retry=retry_if_exception(lambda e: isinstance(e, ApiError) and e.retryable),
                sleep=sleep,
                reraise=True,
            ):
                with retry_state:
                    value = await attempt()
        except ApiError as e:
            run.result.api_errors += 1
            run.consecutive_api_errors += 1
            self.metrics.api_error(e.error_type)
            logger.warning(
                f"API error during {description} "
                f"({run.consecutive_api_errors} consecutive): {e}"
            )
            if run.consecutive_api_errors > options.max_consecutive_api_errors:
                raise SystemicFailure(
                    f"{run.consecutive_api_errors} consecutive API errors, last: {e}"
                ) from e
            raise

        run.consecutive_api_errors = 0
        return value

    # ========================================================================
    # Roster sync
    # ========================================================================

    async def _players_body(self, run: _Run) -> None:
        result, options = run.result, run.options
        await self._checkpoint(run)

        try:
            roster = await self._call_provider(run, "roster fetch", self.provider.fetch_roster)
        except ApiError as e:
            raise SystemicFailure(f"Could not fetch roster: {e}") from e

        roster = self._filter_roster(run, roster)
        self._load_unlinked(run)
        logger.info(f"Syncing {len(roster)} roster players in batches of {options.batch_size}")

        for start in range(0, len(roster), options.batch_size):
            if start:
                await self._pause(run, options.batch_delay_seconds)
            for external in roster[start:start + options.batch_size]:
                await self._checkpoint(run)
                self._sync_one_player(run, external)

        logger.info(
            f"Roster sync processed {result.players_processed} players: "
            f"{result.players_updated} updated, {result.new_players_added} added, "
            f"{result.matching_errors} for review, {result.data_errors} errors"
        )

    def _filter_roster(self, run: _Run, roster: List[ExternalPlayer]) -> List[ExternalPlayer]:
        result, options = run.result, run.options
        player_ids = set(options.player_ids) if options.player_ids else None
        teams = {normalize_team(t) for t in options.team_abbreviations} if options.team_abbreviations else None

        seen = set()
        kept = []
        for external in roster:
            if external.external_id in seen:
                result.add_warning(f"Duplicate roster entry for {external.external_id} ({external.name}) ignored")
                continue
            seen.add(external.external_id)
            if player_ids is not None and external.external_id not in player_ids:
                continue
            if teams is not None and normalize_team(external.team) not in teams:
                continue
            if options.skip_inactive and not external.active:
                result.records_skipped += 1
                continue
            kept.append(external)
        return kept

    def _load_unlinked(self, run: _Run) -> None:
        if run.candidates_loaded:
            return
        candidates = self.store.load_candidates(CandidateFilter(unlinked_only=True))
        run.unlinked = {c.internal_id: c for c in candidates}
        run.candidates_loaded = True

    def _sync_one_player(self, run: _Run, external: ExternalPlayer) -> None:
        result = run.result
        result.players_processed += 1
        result.records_processed += 1
        try:
            outcome = self._process_player(run, external)
            if not run.options.dry_run:
                self.store.commit()
        except Exception as e:
            self.store.rollback()
            self._record_data_error(run, f"Player {external.external_id} ({external.name!r}): {e}", e)
            return
        self.metrics.item_processed(result.sync_type.value, outcome)

    def _process_player(self, run: _Run, external: ExternalPlayer) -> str:
        result, options = run.result, run.options

        linked = self.store.find_by_external_id(external.external_id)
        if linked is not None:
            if not options.force_full_sync and self._is_unchanged(linked, external):
                result.records_skipped += 1
                return "unchanged"
            if not options.dry_run:
                self.store.upsert_player(self._apply_external(linked, external))
            result.players_updated += 1
            return "updated"

        match = self.matching.matcher.match(external, list(run.unlinked.values()))

        if match.is_match:
            if options.dry_run:
                run.dry_run_links[external.external_id] = match.internal_id
            else:
                self.store.write_link(match.internal_id, external.external_id, match.method, match.confidence)
                self.store.upsert_player(self._apply_external(self.store.get(match.internal_id), external))
            run.unlinked.pop(match.internal_id, None)
            result.players_updated += 1
            return "linked"

        if match.requires_manual_review:
            best = match.best_candidate
            result.matching_errors += 1
            result.add_warning(
                f"Player {external.external_id} ({external.name}) needs manual review: "
                f"best candidate {best.name if best else '?'} scored {match.confidence:.2f}"
            )
            return "manual_review"

        if not options.dry_run:
            self.store.upsert_player(CandidatePlayer(
                internal_id=None,
                name=external.name,
                team=external.team,
                position=external.position,
                external_id=external.external_id,
                active=external.active,
                match_method=MatchMethod.NEW_PLAYER.value,
                match_confidence=1.0,
            ))
        else:
            run.dry_run_links[external.external_id] = -1
        result.new_players_added += 1
        return "added"

    @staticmethod
    def _is_unchanged(linked: CandidatePlayer, external: ExternalPlayer) -> bool:
        return (
            normalize(linked.name) == normalize(external.name)
            and normalize_team(linked.team) == normalize_team(external.team)
            and normalize_position(linked.position) == normalize_position(external.position)
            and linked.active == external.active
        )

    @staticmethod
    def _apply_external(candidate: CandidatePlayer, external: ExternalPlayer) -> CandidatePlayer:
        return replace(
            candidate,
            name=external.name,
            team=external.team or candidate.team,
            position=external.position or candidate.position,
            active=external.active,
        )

    def _record_data_error(self, run: _Run, message: str, exc: Exception) -> None:
        """Count a per-item failure; abort the run if continue_on_error is off."""
        result = run.result
        result.data_errors += 1
        result.add_error(message)
        self.metrics.item_processed(result.sync_type.value, "data_error")
        if isinstance(exc, DataError):
            logger.warning(message)
        else:
            logger.error(message, exc_info=exc)
        if not run.options.continue_on_error:
            raise _RunAborted(message) from exc

    # ========================================================================
    # Stat sync
    # ========================================================================

    async def _weeks_body(self, run: _Run, season: int, start_week: int, end_week: int) -> None:
        for week in range(start_week, end_week + 1):
            await self._checkpoint(run)
            try:
                await self._sync_week(run, season, week)
            except ApiError as e:
                run.result.add_error(f"Week {week} skipped, events unavailable: {e}")
            if week < end_week:
                await self._pause(run, run.options.week_delay_seconds)

    async def _sync_week(self, run: _Run, season: int, week: int) -> None:
        """
        Sync one week's completed games.

        Raises:
            ApiError: If the week's event list cannot be fetched
        """
        result = run.result
        events = await self._call_provider(
            run, f"events for {season} week {week}", self.provider.fetch_week_events, season, week
        )
        completed = [e for e in events if e.completed]
        if not completed:
            result.add_warning(f"No completed games for {season} week {week}")
            return

        logger.info(f"Syncing stats for {len(completed)} completed games in {season} week {week}")
        self._load_unlinked(run)

        for event in completed:
            await self._checkpoint(run)
            await self._sync_event(run, event)

    async def _sync_event(self, run: _Run, event: GameEvent) -> None:
        result = run.result
        try:
            payload = await self._call_provider(
                run, f"box score for event {event.event_id}", self.provider.fetch_box_score, event.event_id
            )
        except ApiError as e:
            result.add_error(f"Box score for event {event.event_id} unavailable: {e}")
            return

        try:
            entries = self.provider.parse_box_score(payload, event)
        except Exception as e:
            self._record_data_error(run, f"Box score for event {event.event_id} could not be parsed: {e}", e)
            return

        by_player: "OrderedDict[str, List[RawStatEntry]]" = OrderedDict()
        for entry in entries:
            by_player.setdefault(entry.player_external_id, []).append(entry)

        for external_id, player_entries in by_player.items():
            await self._checkpoint(run)
            self._sync_player_stat_line(run, external_id, player_entries)

    def _sync_player_stat_line(self, run: _Run, external_id: str, entries: List[RawStatEntry]) -> None:
        result, options = run.result, run.options
        first = entries[0]
        result.records_processed += 1

        try:
            if options.validate_data:
                validation = self.transformer.validate_entry(first)
                if not validation.is_valid:
                    raise DataError(f"Invalid stat line: {'; '.join(validation.errors)}")

            player_id = self._resolve_stat_player(run, first)
            if player_id is None:
                result.records_skipped += len(entries)
                return

            for entry in entries:
                result.stats_records_processed += 1
                try:
                    stat = self.transformer.transform(entry)
                except DataError as e:
                    self._record_data_error(run, f"Stat {entry.stat_key} for {external_id} in {entry.game_id}: {e}", e)
                    continue
                for warning in stat.warnings:
                    result.add_warning(f"{external_id} in {entry.game_id}: {warning}")
                if options.dry_run:
                    continue
                if self.store.upsert_stat_row(replace(stat, player_id=player_id)):
                    result.new_stats_added += 1
                else:
                    result.stats_updated += 1

            if not options.dry_run:
                self.store.commit()
            self.metrics.item_processed(result.sync_type.value, "stat_line")
        except _RunAborted:
            self.store.rollback()
            raise
        except Exception as e:
            self.store.rollback()
            self._record_data_error(run, f"Stat line for {external_id} ({first.player_name!r}): {e}", e)

    def _resolve_stat_player(self, run: _Run, entry: RawStatEntry) -> Optional[int]:
        """
        Find or create the catalog entry for a box-score player.

        Returns:
            Internal player id, or None if the player needs manual review
        """
        result, options = run.result, run.options

        linked = self.store.find_by_external_id(entry.player_external_id)
        if linked is not None:
            return linked.internal_id
        if entry.player_external_id in run.dry_run_links:
            return run.dry_run_links[entry.player_external_id]

        external = ExternalPlayer(
            external_id=entry.player_external_id,
            name=entry.player_name,
            team=entry.team,
            position=entry.position,
        )
        match = self.matching.matcher.match(external, list(run.unlinked.values()))

        if match.is_match:
            if options.dry_run:
                run.dry_run_links[external.external_id] = match.internal_id
            else:
                self.store.write_link(match.internal_id, external.external_id, match.method, match.confidence)
            run.unlinked.pop(match.internal_id, None)
            return match.internal_id

        if match.requires_manual_review:
            result.matching_errors += 1
            result.add_warning(
                f"Stats for {external.external_id} ({external.name}) skipped, player needs manual review"
            )
            return None

        if options.dry_run:
            # Nothing persisted; count the player as new once and use a placeholder id
            result.new_players_added += 1
            run.dry_run_links[external.external_id] = -1
            return -1

        created = self.store.upsert_player(CandidatePlayer(
            internal_id=None,
            name=external.name,
            team=external.team,
            position=external.position,
            external_id=external.external_id,
            match_method=MatchMethod.NEW_PLAYER.value,
            match_confidence=1.0,
        ))
        result.new_players_added += 1
        return created.internal_id

    # ========================================================================
    # Report conversion
    # ========================================================================

    @staticmethod
    def _to_report(record: SyncReportRecord) -> SyncReport:
        result = SyncResult(
            sync_type=SyncType(record.sync_type),
            sync_id=record.sync_id,
            start_time=record.started_at,
            records_processed=record.records_processed or 0,
            players_processed=record.players_processed or 0,
            players_updated=record.players_updated or 0,
            new_players_added=record.new_players_added or 0,
            stats_records_processed=record.stats_records_processed or 0,
            new_stats_added=record.new_stats_added or 0,
            stats_updated=record.stats_updated or 0,
            records_skipped=record.records_skipped or 0,
            matching_errors=record.matching_errors or 0,
            data_errors=record.data_errors or 0,
            api_errors=record.api_errors or 0,
            errors=json.loads(record.errors or "[]"),
            warnings=json.loads(record.warnings or "[]"),
        )
        result.finalize(SyncStatus(record.status), end_time=record.ended_at or record.started_at)
        return SyncReport(
            report_id=record.id,
            sync_type=result.sync_type,
            result=result,
            created_at=record.created_at,
            parameters=json.loads(record.parameters) if record.parameters else {},
        )
