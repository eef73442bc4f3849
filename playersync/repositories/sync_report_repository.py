"""
Repository for the append-only sync report log.

Reports are inserted once when a run finishes and are never updated.
History queries filter by sync type and order by recency.
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy import desc

from playersync.models import SyncReportRecord
from playersync.repositories.base import BaseRepository


class SyncReportRepository(BaseRepository[SyncReportRecord]):
    """Repository for sync_reports rows."""

    def __init__(self, db):
        super().__init__(SyncReportRecord, db)

    def append(self, record: SyncReportRecord) -> SyncReportRecord:
        """Insert a finished report and commit."""
        self.db.add(record)
        self.db.commit()
        return record

    def latest(self, sync_type: Optional[str] = None) -> Optional[SyncReportRecord]:
        """Most recent report, optionally for one sync type."""
        query = self.query()
        if sync_type:
            query = query.filter(SyncReportRecord.sync_type == sync_type)
        return query.order_by(desc(SyncReportRecord.created_at), desc(SyncReportRecord.started_at)).first()

    def history(
        self,
        limit: int = 10,
        sync_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[SyncReportRecord]:
        """
        Reports ordered newest first.

        Args:
            limit: Maximum number of reports (None for all)
            sync_type: Restrict to one sync type
            since: Only reports created at or after this time

        Returns:
            List of report records
        """
        query = self.query()
        if sync_type:
            query = query.filter(SyncReportRecord.sync_type == sync_type)
        if since is not None:
            query = query.filter(SyncReportRecord.created_at >= since)
        query = query.order_by(desc(SyncReportRecord.created_at), desc(SyncReportRecord.started_at))
        if limit is not None:
            query = query.limit(limit)
        return query.all()
