# ============================================================================
# barberbook/core/change_feed.py
# Post-commit notifications for loyalty tables
# ============================================================================
"""
Collects inserts/updates on watched tables during a flush and hands them to
subscribers once the transaction commits. Rolled-back changes are dropped.
"""
import json
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

import redis
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from barberbook.config.settings import get_settings
from barberbook.config.redis import RedisKeys, get_redis
from barberbook.models.loyalty import LoyaltyAccount, LoyaltySettings

logger = logging.getLogger(__name__)

WATCHED_MODELS = (LoyaltyAccount, LoyaltySettings)
PENDING_KEY = "pending_changes"

ChangeCallback = Callable[[Dict[str, Any]], None]


class ChangeFeed:
    """In-process subscriber registry with optional Redis fan-out"""

    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = defaultdict(list)

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback for a table. Returns a function that unsubscribes it."""
        self._subscribers[table].append(callback)

        def unsubscribe():
            if callback in self._subscribers[table]:
                self._subscribers[table].remove(callback)

        return unsubscribe

    def publish(self, change: Dict[str, Any]) -> None:
        table = change["table"]
        for callback in list(self._subscribers.get(table, [])):
            try:
                callback(change)
            except Exception as e:
                logger.error(f"Change feed subscriber for {table} failed: {e}")

        if get_settings().CHANGE_FEED_REDIS_ENABLED:
            try:
                get_redis().publish(RedisKeys.TABLE_CHANGES.format(table=table), json.dumps(change))
            except redis.RedisError as e:
                logger.error(f"Failed to publish {table} change to Redis: {e}")


change_feed = ChangeFeed()


def _serialize(target) -> Dict[str, Any]:
    # Only loaded values; server defaults are expired at this point and must not trigger a load mid-flush
    state = inspect(target)
    row = {}
    for column in state.mapper.column_attrs:
        if column.key not in state.dict:
            continue
        value = state.dict[column.key]
        row[column.key] = value if isinstance(value, (int, float, bool, str, type(None))) else str(value)
    return row


def _queue_change(operation: str):
    def listener(mapper, connection, target):
        session = Session.object_session(target)
        if session is None:
            return
        session.info.setdefault(PENDING_KEY, []).append({
            "table": target.__tablename__,
            "operation": operation,
            "row": _serialize(target),
        })

    return listener


def _flush_pending(session):
    pending = session.info.pop(PENDING_KEY, [])
    for change in pending:
        change_feed.publish(change)


def _discard_pending(session):
    session.info.pop(PENDING_KEY, None)


_registered = False


def register_listeners() -> None:
    """Attach the ORM hooks once per process."""
    global _registered
    if _registered:
        return

    for model in WATCHED_MODELS:
        event.listen(model, "after_insert", _queue_change("insert"))
        event.listen(model, "after_update", _queue_change("update"))

    event.listen(Session, "after_commit", _flush_pending)
    event.listen(Session, "after_rollback", _discard_pending)
    _registered = True
    logger.info(f"Change feed listening on {', '.join(m.__tablename__ for m in WATCHED_MODELS)}")
