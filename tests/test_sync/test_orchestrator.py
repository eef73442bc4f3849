"""Integration tests for SyncOrchestrator.

Test Strategy:
1. Test sync_players() linking, inserting and flagging for review
2. Test sync_player_stats() idempotence and per-item error isolation
3. Test historical and full syncs across weeks
4. Test single-flight guard, cancellation and timeouts
5. Test retry, consecutive API error and abort policies
6. Test the report log, history and metrics

Each test follows the pattern:
- Given: Database with sample data and a mocked provider
- When: SyncOrchestrator method is called
- Then: Correct SyncResult counters and database state
"""
import asyncio
import sys
from pathlib import Path
from typing import Dict, List
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.orm import Session

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import add_player
from playersync.core.alerts import AlertSeverity, RecordingAlertSink
from playersync.core.exceptions import ApiError, ConfigurationError
from playersync.core.metrics import NullMetricsSink
from playersync.models import MatchAuditLog, Player, PlayerGameStat, SyncReportRecord
from playersync.repositories import PlayerGameStatRepository
from playersync.services.sync.adapters.base import ProviderAdapter
from playersync.services.sync.matchers import MatchConfig
from playersync.services.sync.orchestrator import SyncGuard, SyncOrchestrator
from playersync.services.sync.types import (
    ALREADY_RUNNING_MESSAGE,
    ExternalPlayer,
    GameEvent,
    RawStatEntry,
    SyncOptions,
    SyncStatus,
    SyncType,
)


def fast_options(**overrides) -> SyncOptions:
    """Options with every delay disabled."""
    values = dict(
        retry_delay_seconds=0,
        week_delay_seconds=0,
        batch_delay_seconds=0,
        max_retries=0,
    )
    values.update(overrides)
    return SyncOptions(**values)


def make_provider(
    roster: List[ExternalPlayer] = None,
    events: Dict[int, List[GameEvent]] = None,
    box_scores: Dict[str, List[RawStatEntry]] = None,
):
    """Mocked provider; box score payloads are the raw entries themselves."""
    events = events or {}
    box_scores = box_scores or {}

    provider = Mock(spec=ProviderAdapter)
    provider.fetch_roster = AsyncMock(return_value=list(roster or []))
    provider.fetch_week_events = AsyncMock(side_effect=lambda season, week: list(events.get(week, [])))
    provider.fetch_box_score = AsyncMock(side_effect=lambda event_id: {"entries": box_scores.get(event_id, [])})
    provider.parse_box_score = Mock(side_effect=lambda payload, event: payload["entries"])
    provider.ping = AsyncMock(return_value=True)
    return provider


def stat(player_id, name, game_id, stat_key, value, week=1, team="KC", position="QB"):
    return RawStatEntry(
        player_external_id=player_id,
        player_name=name,
        game_id=game_id,
        stat_key=stat_key,
        value=value,
        season=2024,
        week=week,
        team=team,
        position=position,
    )


@pytest.fixture
def alerts():
    return RecordingAlertSink()


@pytest.fixture
def build(db_session: Session, alerts):
    """Factory for orchestrators bound to the test session."""
    def _build(provider, **kwargs):
        return SyncOrchestrator(
            db_session,
            provider=provider,
            match_config=MatchConfig(),
            metrics=NullMetricsSink(),
            alerts=alerts,
            **kwargs,
        )
    return _build


ROSTER = [
    ExternalPlayer("3139477", "Pat Mahomes", "KC", "QB"),
    ExternalPlayer("2330", "T. Brady", "TB", "QB"),
    ExternalPlayer("4241389", "Rashee Rice", "KC", "WR"),
]


class TestSyncPlayers:
    """Tests for roster sync."""

    # Matching Outcomes
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_links_inserts_and_flags(self, build, store, db_session: Session):
        """Should auto-link, insert and flag for review in one pass."""
        mahomes = add_player(store, "Patrick Mahomes", "KC", "QB")
        brady = add_player(store, "Tom Brady", "TB", "QB")
        orchestrator = build(make_provider(ROSTER[:2]))

        result = await orchestrator.sync_players(fast_options())

        assert result.status == SyncStatus.COMPLETED
        assert result.players_processed == 2
        assert result.players_updated == 1
        assert result.matching_errors == 1
        assert result.new_players_added == 0
        assert result.errors == ()
        assert any("2330" in w and "manual review" in w for w in result.warnings)

        row = db_session.get(Player, mahomes.internal_id)
        assert row.espn_id == "3139477"
        assert row.match_method == "name_variation"
        assert row.name == "Pat Mahomes"
        assert db_session.get(Player, brady.internal_id).espn_id is None
        assert db_session.query(MatchAuditLog).count() == 1

    @pytest.mark.asyncio
    async def test_inserts_unknown_players(self, build, db_session: Session):
        """Should insert players with no catalog counterpart."""
        orchestrator = build(make_provider(ROSTER))

        result = await orchestrator.sync_players(fast_options())

        assert result.new_players_added == 3
        assert result.players_processed == 3
        rows = db_session.query(Player).order_by(Player.id).all()
        assert [r.espn_id for r in rows] == ["3139477", "2330", "4241389"]
        assert all(r.match_method == "new_player" for r in rows)

    @pytest.mark.asyncio
    async def test_second_run_skips_unchanged(self, build, db_session: Session):
        """Should skip linked players whose data has not changed."""
        orchestrator = build(make_provider(ROSTER))
        await orchestrator.sync_players(fast_options())

        result = await orchestrator.sync_players(fast_options())

        assert result.records_skipped == 3
        assert result.players_updated == 0
        assert result.new_players_added == 0
        assert db_session.query(Player).count() == 3

    @pytest.mark.asyncio
    async def test_force_full_sync_updates_and_picks_up_changes(self, build, db_session: Session):
        """Should update linked players when forced or changed."""
        provider = make_provider(ROSTER)
        orchestrator = build(provider)
        await orchestrator.sync_players(fast_options())

        forced = await orchestrator.sync_players(fast_options(force_full_sync=True))
        assert forced.players_updated == 3

        provider.fetch_roster.return_value = [ExternalPlayer("2330", "Tom Brady", "NE", "QB")]
        traded = await orchestrator.sync_players(fast_options())

        assert traded.players_updated == 1
        row = db_session.query(Player).filter(Player.espn_id == "2330").one()
        assert row.team == "NE"
        assert row.name == "Tom Brady"

    # Filters
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_skips_inactive_and_filters(self, build, db_session: Session):
        """Should honour skip_inactive, team and player filters."""
        roster = ROSTER + [ExternalPlayer("15847", "Travis Kelce", "KC", "TE", active=False)]
        orchestrator = build(make_provider(roster))

        result = await orchestrator.sync_players(fast_options(team_abbreviations=["kc"]))

        assert result.players_processed == 2
        assert result.records_skipped == 1
        assert {r.espn_id for r in db_session.query(Player)} == {"3139477", "4241389"}

        only = await orchestrator.sync_players(fast_options(player_ids=["2330"]))
        assert only.players_processed == 1
        assert only.new_players_added == 1

    @pytest.mark.asyncio
    async def test_duplicate_roster_entries_processed_once(self, build, db_session: Session):
        """Should process each external id at most once per run."""
        orchestrator = build(make_provider(ROSTER + [ROSTER[0]]))

        result = await orchestrator.sync_players(fast_options())

        assert result.players_processed == 3
        assert any("Duplicate roster entry" in w for w in result.warnings)
        assert db_session.query(Player).count() == 3

    @pytest.mark.asyncio
    async def test_dry_run_writes_no_players(self, build, db_session: Session):
        """Should count outcomes without persisting catalog changes."""
        orchestrator = build(make_provider(ROSTER))

        result = await orchestrator.sync_players(fast_options(dry_run=True))

        assert result.new_players_added == 3
        assert db_session.query(Player).count() == 0
        report = orchestrator.last_sync_report(SyncType.PLAYERS)
        assert report.parameters["options"]["dry_run"] is True

    # Error Isolation
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_one_bad_item_does_not_stop_batch(self, build, db_session: Session, alerts):
        """Should record item #37 as a data error and process all 100."""
        roster = [ExternalPlayer(str(1000 + i), f"Player {chr(65 + i % 26)}{i:03d}", "KC", "WR") for i in range(100)]
        roster[36] = ExternalPlayer("1036", "   ", "KC", "WR")
        orchestrator = build(make_provider(roster))

        result = await orchestrator.sync_players(fast_options(batch_size=10))

        assert result.status == SyncStatus.COMPLETED
        assert result.players_processed == 100
        assert result.data_errors == 1
        assert result.new_players_added == 99
        assert len(result.errors) == 1
        assert "1036" in result.errors[0]
        assert db_session.query(Player).count() == 99
        assert alerts.alerts[0][0] == AlertSeverity.WARNING

    @pytest.mark.asyncio
    async def test_stop_on_error_fails_run(self, build, db_session: Session, alerts):
        """Should abort as failed when continue_on_error is off."""
        roster = [ExternalPlayer(str(1000 + i), f"Player {chr(65 + i)}", "KC", "WR") for i in range(10)]
        roster[4] = ExternalPlayer("1004", "", "KC", "WR")
        orchestrator = build(make_provider(roster))

        result = await orchestrator.sync_players(fast_options(continue_on_error=False))

        assert result.status == SyncStatus.FAILED
        assert result.players_processed == 5
        assert result.data_errors == 1
        assert db_session.query(Player).count() == 4
        assert any(severity == AlertSeverity.ERROR for severity, _, _ in alerts.alerts)

    @pytest.mark.asyncio
    async def test_roster_fetch_failure_fails_run(self, build):
        """Should fail the run when the roster cannot be fetched."""
        provider = make_provider()
        provider.fetch_roster.side_effect = ApiError("ESPN returned 503", status_code=503)
        orchestrator = build(provider)

        result = await orchestrator.sync_players(fast_options(max_retries=2))

        assert result.status == SyncStatus.FAILED
        assert result.api_errors == 1
        assert provider.fetch_roster.await_count == 3
        assert "Could not fetch roster" in result.errors[-1]

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self, build):
        """Should not retry errors marked non-retryable."""
        provider = make_provider()
        provider.fetch_roster.side_effect = ApiError("ESPN returned 404", retryable=False, status_code=404)
        orchestrator = build(provider)

        await orchestrator.sync_players(fast_options(max_retries=3))

        assert provider.fetch_roster.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_recovers_on_retry(self, build, db_session: Session):
        """Should succeed when a retry gets through."""
        provider = make_provider()
        provider.fetch_roster.side_effect = [ApiError("ESPN returned 502", status_code=502), list(ROSTER)]
        orchestrator = build(provider)

        result = await orchestrator.sync_players(fast_options(max_retries=1))

        assert result.status == SyncStatus.COMPLETED
        assert result.api_errors == 0
        assert result.new_players_added == 3

    @pytest.mark.asyncio
    async def test_request_timeout(self, build):
        """Should treat a slow provider call as a timed-out API error."""
        async def slow():
            await asyncio.sleep(5)

        provider = make_provider()
        provider.fetch_roster = AsyncMock(side_effect=slow)
        orchestrator = build(provider)

        result = await orchestrator.sync_players(fast_options(request_timeout_seconds=0.01))

        assert result.status == SyncStatus.FAILED
        assert result.api_errors == 1
        assert "timed out" in result.errors[-1]


class TestSyncPlayerStats:
    """Tests for weekly stat sync."""

    EVENTS = {1: [
        GameEvent("401671789", 2024, 1, completed=True),
        GameEvent("401671800", 2024, 1, completed=False),
    ]}
    BOX_SCORES = {"401671789": [
        stat("3139477", "Patrick Mahomes", "401671789", "passingYards", "291"),
        stat("3139477", "Patrick Mahomes", "401671789", "passingTouchdowns", "1"),
        stat("4241389", "Rashee Rice", "401671789", "receivingYards", "103", position="WR"),
    ]}

    @pytest.mark.asyncio
    async def test_sync_week(self, build, db_session: Session):
        """Should store stats for completed games only."""
        provider = make_provider(events=self.EVENTS, box_scores=self.BOX_SCORES)
        orchestrator = build(provider)

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.status == SyncStatus.COMPLETED
        assert result.sync_type == SyncType.PLAYER_STATS
        assert result.stats_records_processed == 3
        assert result.new_stats_added == 3
        assert result.new_players_added == 2
        provider.fetch_box_score.assert_awaited_once_with("401671789")

        categories = {s.stat_name: s.category for s in db_session.query(PlayerGameStat)}
        assert categories == {
            "passingYards": "passing",
            "passingTouchdowns": "passing",
            "receivingYards": "receiving",
        }

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, build, db_session: Session):
        """Should update rather than duplicate stats on a re-run."""
        orchestrator = build(make_provider(events=self.EVENTS, box_scores=self.BOX_SCORES))
        await orchestrator.sync_player_stats(2024, 1, fast_options())

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.new_stats_added == 0
        assert result.stats_updated == 3
        assert result.new_players_added == 0
        assert db_session.query(PlayerGameStat).count() == 3
        assert db_session.query(Player).count() == 2

    @pytest.mark.asyncio
    async def test_links_existing_catalog_player(self, build, store, db_session: Session):
        """Should attach stats to a matched catalog player."""
        mahomes = add_player(store, "Patrick Mahomes", "KC", "QB")
        orchestrator = build(make_provider(events=self.EVENTS, box_scores=self.BOX_SCORES))

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.new_players_added == 1
        assert db_session.get(Player, mahomes.internal_id).espn_id == "3139477"
        assert len(PlayerGameStatRepository(db_session).find_for_player(mahomes.internal_id, season=2024)) == 2

    @pytest.mark.asyncio
    async def test_bad_stat_value_is_isolated(self, build, db_session: Session):
        """Should skip a non-numeric stat and keep the rest."""
        box_scores = {"401671789": self.BOX_SCORES["401671789"] + [
            stat("4241389", "Rashee Rice", "401671789", "receptions", "seven", position="WR"),
        ]}
        orchestrator = build(make_provider(events=self.EVENTS, box_scores=box_scores))

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.status == SyncStatus.COMPLETED
        assert result.data_errors == 1
        assert result.new_stats_added == 3
        assert any("receptions" in e for e in result.errors)
        assert db_session.query(PlayerGameStat).count() == 3

    @pytest.mark.asyncio
    async def test_box_score_failure_is_recorded(self, build):
        """Should record an unavailable box score and finish the week."""
        provider = make_provider(events=self.EVENTS, box_scores=self.BOX_SCORES)
        provider.fetch_box_score.side_effect = ApiError("ESPN returned 500", status_code=500)
        orchestrator = build(provider)

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.status == SyncStatus.COMPLETED
        assert result.api_errors == 1
        assert any("401671789" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_events_failure_fails_single_week(self, build):
        """Should fail a single-week sync when events cannot be fetched."""
        provider = make_provider()
        provider.fetch_week_events.side_effect = ApiError("ESPN returned 500", status_code=500)
        orchestrator = build(provider)

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.status == SyncStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_completed_games(self, build):
        """Should complete with a warning when nothing has been played."""
        orchestrator = build(make_provider(events={1: [GameEvent("1", 2024, 1, completed=False)]}))

        result = await orchestrator.sync_player_stats(2024, 1, fast_options())

        assert result.status == SyncStatus.COMPLETED
        assert result.stats_records_processed == 0
        assert any("No completed games" in w for w in result.warnings)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("season,week", [(2024, 0), (2024, 30), (1800, 1)])
    async def test_invalid_season_week(self, build, season, week):
        """Should reject impossible season/week values before running."""
        orchestrator = build(make_provider())

        with pytest.raises(ConfigurationError):
            await orchestrator.sync_player_stats(season, week, fast_options())


class TestHistoricalAndFullSync:
    """Tests for multi-week syncs."""

    @staticmethod
    def _weeks(*weeks):
        events = {w: [GameEvent(f"40{w}", 2024, w, completed=True)] for w in weeks}
        box_scores = {
            f"40{w}": [stat("3139477", "Patrick Mahomes", f"40{w}", "passingYards", str(200 + w), week=w)]
            for w in weeks
        }
        return events, box_scores

    @pytest.mark.asyncio
    async def test_backfill_weeks(self, build, db_session: Session):
        """Should aggregate all weeks into one result."""
        events, box_scores = self._weeks(1, 2, 3)
        orchestrator = build(make_provider(events=events, box_scores=box_scores))

        result = await orchestrator.sync_historical_stats(2024, 1, 3, fast_options())

        assert result.sync_type == SyncType.HISTORICAL
        assert result.status == SyncStatus.COMPLETED
        assert result.new_stats_added == 3
        assert result.new_players_added == 1
        assert db_session.query(PlayerGameStat).count() == 3

    @pytest.mark.asyncio
    async def test_dry_run_counts_new_player_once(self, build, db_session: Session):
        """Should count an unknown player once across weeks without writing it."""
        events, box_scores = self._weeks(1, 2, 3)
        orchestrator = build(make_provider(events=events, box_scores=box_scores))

        result = await orchestrator.sync_historical_stats(2024, 1, 3, fast_options(dry_run=True))

        assert result.status == SyncStatus.COMPLETED
        assert result.new_players_added == 1
        assert db_session.query(Player).count() == 0
        assert db_session.query(PlayerGameStat).count() == 0

    @pytest.mark.asyncio
    async def test_dry_run_reuses_matched_player(self, build, store, db_session: Session):
        """Should keep using a dry-run match in later weeks instead of adding the player."""
        mahomes = add_player(store, "Patrick Mahomes", "KC", "QB")
        events, box_scores = self._weeks(1, 2)
        orchestrator = build(make_provider(events=events, box_scores=box_scores))

        result = await orchestrator.sync_historical_stats(2024, 1, 2, fast_options(dry_run=True))

        assert result.new_players_added == 0
        assert result.matching_errors == 0
        assert db_session.get(Player, mahomes.internal_id).espn_id is None

    @pytest.mark.asyncio
    async def test_backfill_continues_past_failed_week(self, build):
        """Should record a failed week and continue with the next."""
        events, box_scores = self._weeks(1, 2, 3)
        provider = make_provider(events=events, box_scores=box_scores)

        def fetch(season, week):
            if week == 2:
                raise ApiError("ESPN returned 404", retryable=False, status_code=404)
            return events[week]

        provider.fetch_week_events.side_effect = fetch
        orchestrator = build(provider)

        result = await orchestrator.sync_historical_stats(2024, 1, 3, fast_options())

        assert result.status == SyncStatus.COMPLETED
        assert result.api_errors == 1
        assert result.new_stats_added == 2
        assert any(e.startswith("Week 2") for e in result.errors)
        assert provider.fetch_week_events.await_count == 3

    @pytest.mark.asyncio
    async def test_backfill_aborts_on_systemic_failure(self, build, alerts):
        """Should fail once consecutive API errors exceed the limit."""
        provider = make_provider()
        provider.fetch_week_events.side_effect = ApiError("ESPN returned 503", status_code=503)
        orchestrator = build(provider)

        result = await orchestrator.sync_historical_stats(
            2024, 1, 5, fast_options(max_retries=1, max_consecutive_api_errors=2)
        )

        assert result.status == SyncStatus.FAILED
        assert result.api_errors == 3
        assert provider.fetch_week_events.await_count == 6
        assert "consecutive API errors" in result.errors[-1]
        assert alerts.alerts[0][0] == AlertSeverity.ERROR

    @pytest.mark.asyncio
    async def test_full_sync(self, build, db_session: Session):
        """Should run the roster sync and then each week."""
        events, box_scores = self._weeks(1, 2)
        orchestrator = build(make_provider(ROSTER, events=events, box_scores=box_scores))

        result = await orchestrator.full_sync(2024, fast_options(), start_week=1, end_week=2)

        assert result.sync_type == SyncType.FULL
        assert result.status == SyncStatus.COMPLETED
        assert result.players_processed == 3
        assert result.new_players_added == 3
        assert result.new_stats_added == 2
        assert db_session.query(Player).count() == 3

    @pytest.mark.asyncio
    async def test_full_dry_run_counts_roster_players_once(self, build, db_session: Session):
        """Should not count roster players again when their stats arrive."""
        events, box_scores = self._weeks(1, 2)
        orchestrator = build(make_provider(ROSTER, events=events, box_scores=box_scores))

        result = await orchestrator.full_sync(2024, fast_options(dry_run=True), start_week=1, end_week=2)

        assert result.status == SyncStatus.COMPLETED
        assert result.new_players_added == 3
        assert db_session.query(Player).count() == 0

    @pytest.mark.asyncio
    async def test_invalid_week_range(self, build):
        """Should reject a reversed week range."""
        orchestrator = build(make_provider())

        with pytest.raises(ConfigurationError):
            await orchestrator.sync_historical_stats(2024, 5, 2, fast_options())


class TestRunControl:
    """Tests for the single-flight guard, cancellation and timeouts."""

    @pytest.mark.asyncio
    async def test_concurrent_start_is_rejected(self, build, db_session: Session):
        """Should let exactly one of two simultaneous runs proceed."""
        orchestrator = build(make_provider(ROSTER))

        first, second = await asyncio.gather(
            orchestrator.sync_players(fast_options()),
            orchestrator.sync_players(fast_options()),
        )

        rejected = [r for r in (first, second) if r.rejected]
        completed = [r for r in (first, second) if not r.rejected]
        assert len(rejected) == 1
        assert len(completed) == 1
        assert completed[0].status == SyncStatus.COMPLETED
        assert rejected[0].status == SyncStatus.FAILED
        assert rejected[0].errors == (ALREADY_RUNNING_MESSAGE,)
        assert all(value == 0 for value in rejected[0].counters().values())
        assert db_session.query(SyncReportRecord).count() == 1

    @pytest.mark.asyncio
    async def test_shared_guard_spans_orchestrators(self, build):
        """Should reject a run on another orchestrator sharing the guard."""
        guard = SyncGuard()
        a = build(make_provider(ROSTER), guard=guard)
        b = build(make_provider(ROSTER), guard=guard)

        results = await asyncio.gather(a.sync_players(fast_options()), b.sync_players(fast_options()))

        assert sum(r.rejected for r in results) == 1

    @pytest.mark.asyncio
    async def test_guard_released_after_run(self, build):
        """Should accept a new run once the previous one finished."""
        orchestrator = build(make_provider(ROSTER))

        await orchestrator.sync_players(fast_options())
        assert orchestrator.is_sync_running() is False

        result = await orchestrator.sync_players(fast_options())
        assert result.rejected is False

    @pytest.mark.asyncio
    async def test_cancel_running_sync(self, build, db_session: Session):
        """Should stop before the next item and keep finished items."""
        roster = [ExternalPlayer(str(1000 + i), f"Player {i:03d}", "KC", "WR") for i in range(50)]
        orchestrator = build(make_provider(roster))

        task = asyncio.create_task(orchestrator.sync_players(fast_options()))
        for _ in range(5):
            await asyncio.sleep(0)
        assert orchestrator.is_sync_running() is True
        assert orchestrator.cancel_running_sync() is True

        result = await task

        assert result.status == SyncStatus.CANCELLED
        assert result.players_processed < 50
        assert db_session.query(Player).count() == result.new_players_added
        assert orchestrator.last_sync_report().result.status == SyncStatus.CANCELLED
        assert orchestrator.is_sync_running() is False

    def test_cancel_without_running_sync(self, build):
        """Should report that nothing was cancelled."""
        assert build(make_provider()).cancel_running_sync() is False

    @pytest.mark.asyncio
    async def test_cancel_during_week_delay(self, build):
        """Should cut a pause between weeks short on cancellation."""
        events = {w: [] for w in range(1, 4)}
        orchestrator = build(make_provider(events=events))

        task = asyncio.create_task(
            orchestrator.sync_historical_stats(2024, 1, 3, fast_options(week_delay_seconds=30))
        )
        for _ in range(10):
            await asyncio.sleep(0)
        orchestrator.cancel_running_sync()

        result = await asyncio.wait_for(task, timeout=5)

        assert result.status == SyncStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self, build):
        """Should wake the run's event loop when cancelled from a worker thread."""
        events = {w: [] for w in range(1, 4)}
        orchestrator = build(make_provider(events=events))

        task = asyncio.create_task(
            orchestrator.sync_historical_stats(2024, 1, 3, fast_options(week_delay_seconds=30))
        )
        for _ in range(10):
            await asyncio.sleep(0)
        assert await asyncio.to_thread(orchestrator.cancel_running_sync) is True

        result = await asyncio.wait_for(task, timeout=5)

        assert result.status == SyncStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_run_timeout(self, build):
        """Should fail a run that exceeds timeout_minutes."""
        async def slow():
            await asyncio.sleep(5)

        provider = make_provider()
        provider.fetch_roster = AsyncMock(side_effect=slow)
        orchestrator = build(provider)

        result = await orchestrator.sync_players(
            fast_options(request_timeout_seconds=30, timeout_minutes=0.001)
        )

        assert result.status == SyncStatus.FAILED
        assert "exceeded timeout" in result.errors[-1]

    @pytest.mark.asyncio
    async def test_result_is_frozen(self, build):
        """Should refuse changes to a finished result."""
        result = await build(make_provider(ROSTER)).sync_players(fast_options())

        with pytest.raises(AttributeError):
            result.players_processed = 0

    def test_invalid_options(self):
        """Should reject invalid option values at construction."""
        with pytest.raises(ConfigurationError):
            SyncOptions(batch_size=0)
        with pytest.raises(ConfigurationError):
            SyncOptions(max_retries=-1)


class TestReportsAndMetrics:
    """Tests for the report log and its read surface."""

    @pytest.mark.asyncio
    async def test_history_newest_first(self, build):
        """Should list reports newest first and filter by type."""
        orchestrator = build(make_provider(ROSTER, events={1: []}))
        first = await orchestrator.sync_players(fast_options())
        stats = await orchestrator.sync_player_stats(2024, 1, fast_options())
        second = await orchestrator.sync_players(fast_options())

        history = orchestrator.sync_history(limit=10)
        assert [r.result.sync_id for r in history] == [second.sync_id, stats.sync_id, first.sync_id]

        players_only = orchestrator.sync_history(sync_type=SyncType.PLAYERS)
        assert [r.result.sync_id for r in players_only] == [second.sync_id, first.sync_id]
        assert orchestrator.sync_history(limit=1)[0].result.sync_id == second.sync_id

    @pytest.mark.asyncio
    async def test_report_round_trips_counters(self, build):
        """Should rebuild the finished result from the stored report."""
        orchestrator = build(make_provider(ROSTER))
        result = await orchestrator.sync_players(fast_options())

        report = orchestrator.last_sync_report(SyncType.PLAYERS)

        assert report.sync_type == SyncType.PLAYERS
        assert report.result.sync_id == result.sync_id
        assert report.result.status == SyncStatus.COMPLETED
        assert report.result.counters() == result.counters()
        assert report.result.is_terminal
        assert orchestrator.last_sync_report(SyncType.FULL) is None

    @pytest.mark.asyncio
    async def test_sync_metrics(self, build):
        """Should aggregate outcomes across reports."""
        provider = make_provider(ROSTER)
        orchestrator = build(provider)
        await orchestrator.sync_players(fast_options())
        provider.fetch_roster.side_effect = ApiError("down", retryable=False)
        await orchestrator.sync_players(fast_options())

        metrics = orchestrator.sync_metrics()

        assert metrics.total_syncs == 2
        assert metrics.successful_syncs == 1
        assert metrics.failed_syncs == 1
        assert metrics.success_rate == 0.5
        assert metrics.syncs_by_type == {"players": 2}
        assert metrics.total_records_processed == 3
        assert metrics.last_successful_sync is not None

    def test_sync_metrics_empty(self, build):
        """Should report zeros when nothing has run."""
        metrics = build(make_provider()).sync_metrics()

        assert metrics.total_syncs == 0
        assert metrics.success_rate == 0.0
        assert metrics.average_duration_ms == 0.0

    @pytest.mark.asyncio
    async def test_get_sync_status(self, build):
        """Should expose running state and last report per type."""
        orchestrator = build(make_provider(ROSTER))
        await orchestrator.sync_players(fast_options())

        status = orchestrator.get_sync_status()

        assert status["running"] is False
        assert status["last_reports"]["players"]["status"] == "completed"
        assert status["last_reports"]["full"] is None

    @pytest.mark.asyncio
    async def test_manual_review_ratio_alert(self, build, store, alerts):
        """Should alert when too many players need manual review."""
        add_player(store, "Tom Brady", "TB", "QB")
        orchestrator = build(make_provider([ExternalPlayer("2330", "T. Brady", "TB", "QB")]))

        result = await orchestrator.sync_players(fast_options())

        assert result.matching_errors == 1
        assert any("need manual review" in message for _, message, _ in alerts.alerts)


class TestMatchingSurface:
    """Tests for the matching operations exposed by the orchestrator."""

    @pytest.mark.asyncio
    async def test_unmatched_and_statistics(self, build, store):
        """Should compute the review queue from the provider roster."""
        add_player(store, "Patrick Mahomes", "KC", "QB")
        add_player(store, "Tom Brady", "TB", "QB")
        orchestrator = build(make_provider(ROSTER[:2]))

        unmatched = await orchestrator.unmatched_players()
        stats = await orchestrator.matching_statistics()

        assert [u.external_id for u in unmatched] == ["2330"]
        assert stats.total_external_players == 2
        assert stats.requiring_manual_review == 1

    def test_link_player(self, build, store, db_session: Session):
        """Should link through the matching service."""
        brady = add_player(store, "Tom Brady", "TB", "QB")
        orchestrator = build(make_provider())

        assert orchestrator.link_player(brady.internal_id, "2330") is True
        assert orchestrator.link_player(999, "2330") is False
        assert orchestrator.find_matching_player(ExternalPlayer("2330", "T. Brady")).internal_id == brady.internal_id

    @pytest.mark.asyncio
    async def test_validate_connectivity(self, build):
        """Should delegate the connectivity check to the provider."""
        provider = make_provider()
        provider.ping.return_value = False

        assert await build(provider).validate_connectivity() is False
