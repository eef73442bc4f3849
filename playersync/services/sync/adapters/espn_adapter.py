"""
ESPN adapter for NFL rosters, schedules and box scores.

ESPN API Endpoints (unofficial, community documented):
- Teams:      {base}/football/nfl/teams
- Roster:     {base}/football/nfl/teams/{team_id}/roster
- Scoreboard: {base}/football/nfl/scoreboard?seasontype=2&week=W&dates=YYYY
- Summary:    {base}/football/nfl/summary?event={event_id}

Data transformation:
- Roster athletes → ExternalPlayer (ESPN athlete id as external id)
- Scoreboard events → GameEvent
- Box score statistics groups → RawStatEntry, one per player per stat key.
  Compound keys such as "completions/passingAttempts" with "22/31", or
  "sacks-sackYardsLost" with "2-14", are split.
  Placeholder values ("--") are dropped.

Error mapping:
- HTTP 429 → RateLimitedError
- HTTP 5xx, transport errors → retryable ApiError
- HTTP 4xx, malformed JSON, open circuit → non-retryable ApiError

Retries are left to the caller so the run's SyncOptions.max_retries applies.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError

from playersync.core.config import settings
from playersync.core.exceptions import ApiError, ApiTimeoutError, RateLimitedError
from playersync.core.logging import get_logger
from playersync.core.metrics import record_espn_api_request_failure, record_espn_api_request_success
from playersync.services.core.circuit_breaker import call_with_breaker, espn_api_breaker
from playersync.services.sync.adapters.base import ProviderAdapter
from playersync.services.sync.stats_transformer import is_not_recorded
from playersync.services.sync.types import ExternalPlayer, GameEvent, RawStatEntry

logger = get_logger(__name__)

COMPOUND_HYPHEN = re.compile(r"(?<=\d)-")


class EspnAdapter(ProviderAdapter):
    """
    ESPN public API adapter.

    Usage:
        adapter = EspnAdapter()
        roster = await adapter.fetch_roster()
        events = await adapter.fetch_week_events(2024, 1)
        payload = await adapter.fetch_box_score(events[0].event_id)
        entries = adapter.parse_box_score(payload, events[0])
        await adapter.close()
    """

    name = "espn"

    def __init__(
        self,
        base_url: Optional[str] = None,
        sport_path: Optional[str] = None,
        timeout: Optional[float] = None,
        season_type: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the ESPN adapter.

        Args:
            base_url: ESPN site API base (defaults to settings.ESPN_BASE_URL)
            sport_path: Sport path, e.g. 'football/nfl'
            timeout: Per-request timeout in seconds
            season_type: 1=preseason, 2=regular season, 3=postseason
            client: Pre-built HTTP client (tests pass one with a mock transport)
            breaker: Circuit breaker (defaults to the shared ESPN breaker)
        """
        self.base_url = (base_url or settings.ESPN_BASE_URL).rstrip("/")
        self.sport_path = (sport_path or settings.ESPN_SPORT_PATH).strip("/")
        self.timeout = timeout or settings.ESPN_TIMEOUT
        self.season_type = season_type or settings.ESPN_SEASON_TYPE
        self.breaker = breaker or espn_api_breaker
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{self.sport_path}/{path.lstrip('/')}"

    async def _request(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise ApiTimeoutError(f"Timeout calling {url}: {e}") from e
        except httpx.RequestError as e:
            raise ApiError(f"Transport error calling {url}: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(
                f"Rate limited by ESPN on {url}",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= 500:
            raise ApiError(f"ESPN returned {response.status_code} for {url}", status_code=response.status_code)
        if response.status_code >= 400:
            raise ApiError(
                f"ESPN returned {response.status_code} for {url}",
                retryable=False,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(f"Malformed JSON from {url}", retryable=False) from e
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected payload type from {url}: {type(data).__name__}", retryable=False)
        return data

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Fetch a JSON object from ESPN under circuit breaker protection.

        Raises:
            ApiError: On any upstream failure
        """
        url = self._url(path)
        try:
            data = await call_with_breaker(self.breaker, self._request, url, params, failure_types=(ApiError,))
        except CircuitBreakerError as e:
            record_espn_api_request_failure("circuit_open")
            raise ApiError(f"ESPN circuit breaker is open: {e}", retryable=False) from e
        except ApiError as e:
            record_espn_api_request_failure(e.error_type)
            raise

        record_espn_api_request_success()
        return data

    # ==================== ROSTER ====================

    async def fetch_teams(self) -> List[Dict[str, Any]]:
        """All teams as {'id', 'abbreviation', 'name'} dicts."""
        data = await self._get_json("teams")
        teams = []
        for sport in data.get("sports", [])[:1]:
            for league in sport.get("leagues", [])[:1]:
                for entry in league.get("teams", []):
                    team = entry.get("team", {})
                    if team.get("id"):
                        teams.append({
                            "id": str(team["id"]),
                            "abbreviation": team.get("abbreviation"),
                            "name": team.get("displayName"),
                        })
        return teams

    async def fetch_team_roster(self, team_id: str, team_abbreviation: Optional[str] = None) -> List[ExternalPlayer]:
        """Roster for one team."""
        data = await self._get_json(f"teams/{team_id}/roster")
        abbreviation = team_abbreviation or data.get("team", {}).get("abbreviation")

        players = []
        for group in data.get("athletes", []):
            # Grouped rosters (offense/defense/specialTeam) carry 'items';
            # flat rosters are a plain athlete list.
            items = group.get("items") if isinstance(group, dict) and "items" in group else [group]
            for athlete in items:
                player = self._parse_athlete(athlete, abbreviation)
                if player is not None:
                    players.append(player)
        return players

    async def fetch_roster(self) -> List[ExternalPlayer]:
        teams = await self.fetch_teams()
        roster: List[ExternalPlayer] = []
        for team in teams:
            roster.extend(await self.fetch_team_roster(team["id"], team.get("abbreviation")))
        logger.info(f"Fetched {len(roster)} players across {len(teams)} ESPN teams")
        return roster

    @staticmethod
    def _parse_athlete(athlete: Dict[str, Any], team: Optional[str]) -> Optional[ExternalPlayer]:
        athlete_id = athlete.get("id")
        name = athlete.get("fullName") or athlete.get("displayName")
        if not athlete_id or not name:
            return None

        active = True
        status = athlete.get("status")
        if isinstance(status, dict) and status.get("type"):
            active = status["type"] == "active"

        return ExternalPlayer(
            external_id=str(athlete_id),
            name=name,
            team=team,
            position=(athlete.get("position") or {}).get("abbreviation"),
            active=active,
            first_name=athlete.get("firstName"),
            last_name=athlete.get("lastName"),
        )

    # ==================== SCHEDULE ====================

    async def fetch_week_events(self, season: int, week: int) -> List[GameEvent]:
        data = await self._get_json(
            "scoreboard",
            {"seasontype": self.season_type, "week": week, "dates": season},
        )
        events = []
        for event in data.get("events", []):
            if not event.get("id"):
                continue
            home, away = self._parse_competitors(event)
            events.append(GameEvent(
                event_id=str(event["id"]),
                season=season,
                week=week,
                name=event.get("name", ""),
                start_time=self._parse_espn_date(event.get("date")),
                completed=bool(event.get("status", {}).get("type", {}).get("completed")),
                home_team=home,
                away_team=away,
            ))
        logger.info(f"Fetched {len(events)} ESPN events for {season} week {week}")
        return events

    @staticmethod
    def _parse_competitors(event: Dict[str, Any]) -> tuple:
        home = away = None
        for competition in event.get("competitions", [])[:1]:
            for competitor in competition.get("competitors", []):
                abbreviation = competitor.get("team", {}).get("abbreviation")
                if competitor.get("homeAway") == "home":
                    home = abbreviation
                elif competitor.get("homeAway") == "away":
                    away = abbreviation
        return home, away

    @staticmethod
    def _parse_espn_date(date_str: Optional[str]) -> Optional[datetime]:
        if not date_str:
            return None
        try:
            return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except ValueError:
            return None

    # ==================== BOX SCORES ====================

    async def fetch_box_score(self, event_id: str) -> Dict[str, Any]:
        return await self._get_json("summary", {"event": event_id})

    def parse_box_score(self, payload: Dict[str, Any], event: GameEvent) -> List[RawStatEntry]:
        entries: List[RawStatEntry] = []
        for team_block in payload.get("boxscore", {}).get("players", []):
            team = team_block.get("team", {}).get("abbreviation")
            for group in team_block.get("statistics", []):
                group_name = group.get("name")
                keys = group.get("keys", [])
                for athlete_block in group.get("athletes", []):
                    athlete = athlete_block.get("athlete", {})
                    athlete_id = athlete.get("id")
                    if not athlete_id:
                        continue
                    values = athlete_block.get("stats", [])
                    for key, value in zip(keys, values):
                        for stat_key, stat_value in self._split_compound(key, value):
                            if is_not_recorded(stat_value):
                                continue
                            entries.append(RawStatEntry(
                                player_external_id=str(athlete_id),
                                player_name=athlete.get("displayName", ""),
                                game_id=event.event_id,
                                stat_key=stat_key,
                                value=stat_value,
                                season=event.season,
                                week=event.week,
                                team=team,
                                position=(athlete.get("position") or {}).get("abbreviation"),
                                category_hint=group_name,
                            ))
        return entries

    @staticmethod
    def _split_compound(key: str, value: Any) -> List[tuple]:
        """
        Split paired stats into separate entries.

        "completions/passingAttempts" = "22/31" and "sacks-sackYardsLost" = "2-14"
        both become two stats. A value whose part count differs from the key's
        is passed on unchanged.
        """
        if not isinstance(value, str):
            return [(key, value)]
        if "/" in key:
            parts, values = key.split("/"), value.split("/")
        elif "-" in key:
            # Only split on a hyphen after a digit so "1--5" keeps its negative part
            parts, values = key.split("-"), COMPOUND_HYPHEN.split(value.strip())
        else:
            return [(key, value)]
        if len(values) != len(parts):
            return [(key, value)]
        return list(zip(parts, values))

    async def ping(self) -> bool:
        try:
            await self._get_json("teams")
            return True
        except ApiError as e:
            logger.warning(f"ESPN connectivity check failed: {e}")
            return False
