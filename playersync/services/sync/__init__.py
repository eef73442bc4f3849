"""
ESPN Data Sync Service

Provides the synchronization layer between the ESPN public API and the
internal player catalog.

Key components:
- Matchers: Resolve ESPN players to catalog entries
- Adapters: Fetch and normalize ESPN rosters, schedules and box scores
- Stats transformer: Categorize and validate per-game stats
- Orchestrator: Coordinate sync jobs, reports and monitoring
"""
