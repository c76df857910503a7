"""
Row-change stream built on SQLAlchemy session events.

Changes to watched tables are captured during flush, held on the session
until commit, and only then broadcast, so subscribers never see rows from a
transaction that rolled back.
"""

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from fulfillment.realtime.transport import DELETE, INSERT, UPDATE, ChangeEvent

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("purchases", "purchase_requests", "user_library")

PENDING_KEY = "pending_changes"
OLD_ROWS_KEY = "pending_old_rows"


def plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    return value


def snapshot(obj) -> Dict:
    mapper = inspect(obj).mapper
    return {attr.key: plain(getattr(obj, attr.key)) for attr in mapper.column_attrs}


def previous_snapshot(obj) -> Dict:
    state = inspect(obj)
    old = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            old[attr.key] = plain(history.deleted[0])
        elif history.unchanged:
            old[attr.key] = plain(history.unchanged[0])
    return old


def stored_row(session: Session, obj) -> Optional[Dict]:
    """The row as the database holds it right now, before this flush writes."""
    table = obj.__table__
    identity = inspect(obj).identity or ()
    keys = [col == value for col, value in zip(table.primary_key.columns, identity)]
    if not keys:
        return None
    row = session.connection().execute(select(table).where(*keys)).mappings().first()
    return {key: plain(value) for key, value in row.items()} if row is not None else None


def record_change(session: Session, table: str, event_type: str, new: Optional[dict] = None,
                  old: Optional[dict] = None) -> None:
    """Queue a change on ``session``; it is published when the session commits."""
    session.info.setdefault(PENDING_KEY, []).append(
        ChangeEvent(table=table, event_type=event_type, new=dict(new or {}), old=dict(old or {}))
    )


class ChangeFeed:
    def __init__(self, transport, tables: Iterable[str] = WATCHED_TABLES):
        self.transport = transport
        self.tables = set(tables)
        self._installed = False

    def install(self) -> "ChangeFeed":
        if not self._installed:
            event.listen(Session, "before_flush", self._before_flush)
            event.listen(Session, "after_flush", self._after_flush)
            event.listen(Session, "after_commit", self._after_commit)
            event.listen(Session, "after_soft_rollback", self._after_rollback)
            self._installed = True
        return self

    def remove(self) -> None:
        if self._installed:
            event.remove(Session, "before_flush", self._before_flush)
            event.remove(Session, "after_flush", self._after_flush)
            event.remove(Session, "after_commit", self._after_commit)
            event.remove(Session, "after_soft_rollback", self._after_rollback)
            self._installed = False

    def _watched(self, obj) -> bool:
        table = getattr(obj, "__tablename__", None)
        return table in self.tables

    def _before_flush(self, session, flush_context, instances):
        # attributes expired by an earlier commit carry no history, so the
        # old row is read back before the flush overwrites it
        old_rows = session.info.setdefault(OLD_ROWS_KEY, {})
        for obj in list(session.dirty) + list(session.deleted):
            if self._watched(obj) and id(obj) not in old_rows:
                old_rows[id(obj)] = stored_row(session, obj)

    def _old_values(self, session, obj) -> Dict:
        stored = session.info.get(OLD_ROWS_KEY, {}).pop(id(obj), None)
        return stored if stored is not None else previous_snapshot(obj)

    def _after_flush(self, session, flush_context):
        for obj in session.new:
            if self._watched(obj):
                record_change(session, obj.__tablename__, INSERT, new=snapshot(obj))

        for obj in session.dirty:
            if self._watched(obj) and session.is_modified(obj, include_collections=False):
                record_change(
                    session, obj.__tablename__, UPDATE,
                    new=snapshot(obj), old=self._old_values(session, obj),
                )

        for obj in session.deleted:
            if self._watched(obj):
                record_change(session, obj.__tablename__, DELETE, old=self._old_values(session, obj))

        session.info.pop(OLD_ROWS_KEY, None)

    def _after_commit(self, session):
        changes = session.info.pop(PENDING_KEY, [])
        committed_at = datetime.utcnow()
        for change in changes:
            if change.table not in self.tables:
                continue
            change.commit_timestamp = committed_at
            try:
                self.transport.broadcast(change)
            except Exception:
                logger.exception(f"Failed to publish {change}")

    def _after_rollback(self, session, previous_transaction):
        session.info.pop(OLD_ROWS_KEY, None)
        if session.info.pop(PENDING_KEY, None):
            logger.debug("Discarded pending changes after rollback")
