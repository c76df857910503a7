"""
Fan-out of row changes into the four notification shapes clients consume.

A ``RealtimeService`` belongs to one consumer (one websocket connection, one
test). It keeps a map of ``SubscriptionKey -> RealtimeChannel``; subscribing
again under the same key closes the previous channel first, so a key never
holds more than one live channel.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from fulfillment.config import settings
from fulfillment.models.book import Book
from fulfillment.models.bundle import Bundle
from fulfillment.models.user import User
from fulfillment.realtime.transport import INSERT, UPDATE, ChangeEvent
from fulfillment.schemas.notification_schemas import (
    ActivityFeedNotification,
    AdminApprovalNotification,
    PurchaseStatusNotification,
    ReadingProgressNotification,
)

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown User"
UNKNOWN_ITEM = "Unknown Item"
UNKNOWN_BOOK = "Unknown Book"

# returned instead of an id when the subscription type is switched off
NO_SUBSCRIPTION = None

COMPLETED = "completed"


class SubscriptionType(str, Enum):
    PURCHASE_UPDATES = "purchase_updates"
    ADMIN_NOTIFICATIONS = "admin_notifications"
    PROGRESS_SYNC = "progress_sync"
    ACTIVITY_FEED = "activity_feed"


@dataclass(frozen=True)
class SubscriptionKey:
    type: SubscriptionType
    scope: Optional[int] = None

    @property
    def id(self) -> str:
        if self.scope is None:
            return self.type.value
        return f"{self.type.value}:{self.scope}"


@dataclass
class RealtimeConfig:
    purchase_updates: bool = True
    admin_notifications: bool = True
    progress_sync: bool = True
    activity_feed: bool = True

    @classmethod
    def from_settings(cls):
        return cls(
            purchase_updates=settings.realtime_enable_purchase_updates,
            admin_notifications=settings.realtime_enable_admin_notifications,
            progress_sync=settings.realtime_enable_progress_sync,
            activity_feed=settings.realtime_enable_activity_feed,
        )

    def enabled(self, subscription_type: SubscriptionType) -> bool:
        return getattr(self, subscription_type.value)


class RealtimeService:
    def __init__(self, transport, session_factory: Callable, config: Optional[RealtimeConfig] = None,
                 max_workers: Optional[int] = None):
        self.transport = transport
        self.session_factory = session_factory
        self.config = config or RealtimeConfig.from_settings()
        self._subscriptions: Dict[SubscriptionKey, object] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.realtime_enrichment_workers,
            thread_name_prefix="realtime-enrich",
        )

    # -------------------------
    # ENRICHMENT
    # -------------------------

    def _lookup(self, model, row_id, attribute: str, placeholder: str) -> str:
        try:
            with self.session_factory() as session:
                row = session.get(model, int(row_id))
                value = getattr(row, attribute, None) if row is not None else None
        except Exception:
            logger.warning(f"{model.__name__} {row_id} lookup failed, using '{placeholder}'", exc_info=True)
            return placeholder
        return value or placeholder

    def user_display_name(self, user_id) -> str:
        return self._lookup(User, user_id, "display_name", UNKNOWN_USER)

    def book_title(self, book_id) -> str:
        return self._lookup(Book, book_id, "title", UNKNOWN_BOOK)

    def item_title(self, item_type, item_id) -> str:
        if item_type == "book":
            return self._lookup(Book, item_id, "title", UNKNOWN_ITEM)
        if item_type == "bundle":
            return self._lookup(Bundle, item_id, "title", UNKNOWN_ITEM)
        return UNKNOWN_ITEM

    def _in_parallel(self, *lookups):
        futures = [self._executor.submit(fn, *args) for fn, *args in lookups]
        return [future.result() for future in futures]

    # -------------------------
    # SUBSCRIPTIONS
    # -------------------------

    def _open(self, key: SubscriptionKey, bindings) -> Optional[str]:
        if not self.config.enabled(key.type):
            logger.debug(f"{key.type.value} disabled, not subscribing")
            return NO_SUBSCRIPTION

        with self._lock:
            previous = self._subscriptions.pop(key, None)
            if previous is not None:
                previous.unsubscribe()

            channel = self.transport.channel(key.id)
            for event_type, table, handler, row_filter in bindings:
                channel.on(event_type, table, handler, filter=row_filter)
            channel.subscribe()
            self._subscriptions[key] = channel

        logger.info(f"Subscribed {key.id}")
        return key.id

    def subscribe_to_purchase_updates(self, user_id: int, callback) -> Optional[str]:
        def on_purchase(change: ChangeEvent):
            row = change.new
            callback(PurchaseStatusNotification(
                source="purchase",
                purchase_id=row["id"],
                status=row["status"],
                item_type=row["item_type"],
                item_id=row["item_id"],
            ))

        def on_request(change: ChangeEvent):
            row = change.new
            callback(PurchaseStatusNotification(
                source="purchase_request",
                purchase_id=row["id"],
                status=row["status"],
                item_type=row["item_type"],
                item_id=row["item_id"],
            ))

        scope = {"user_id": user_id}
        return self._open(SubscriptionKey(SubscriptionType.PURCHASE_UPDATES, user_id), [
            (UPDATE, "purchases", on_purchase, scope),
            (UPDATE, "purchase_requests", on_request, scope),
        ])

    def subscribe_to_admin_notifications(self, callback) -> Optional[str]:
        def on_request(change: ChangeEvent):
            row = change.new
            name, title = self._in_parallel(
                (self.user_display_name, row["user_id"]),
                (self.item_title, row["item_type"], row["item_id"]),
            )
            callback(AdminApprovalNotification(
                request_id=row["id"],
                user_id=row["user_id"],
                user_display_name=name,
                item_type=row["item_type"],
                item_id=row["item_id"],
                item_title=title,
                amount=row["amount"],
            ))

        return self._open(SubscriptionKey(SubscriptionType.ADMIN_NOTIFICATIONS), [
            (INSERT, "purchase_requests", on_request, None),
        ])

    def subscribe_to_progress_sync(self, user_id: int, callback) -> Optional[str]:
        def on_progress(change: ChangeEvent):
            row = change.new
            callback(ReadingProgressNotification(
                book_id=row["book_id"],
                book_title=self.book_title(row["book_id"]),
                progress=row.get("progress") or 0,
                last_read_position=row.get("last_read_position"),
                status=row["status"],
            ))

        return self._open(SubscriptionKey(SubscriptionType.PROGRESS_SYNC, user_id), [
            (UPDATE, "user_library", on_progress, {"user_id": user_id}),
        ])

    def subscribe_to_activity_feed(self, callback) -> Optional[str]:
        def emit(activity_type: str, row: dict, metadata: dict):
            name, title = self._in_parallel(
                (self.user_display_name, row["user_id"]),
                (self.book_title, row["book_id"]),
            )
            callback(ActivityFeedNotification(
                activity_type=activity_type,
                user_id=row["user_id"],
                user_display_name=name,
                item_id=row["book_id"],
                item_title=title,
                metadata=metadata,
            ))

        def on_added(change: ChangeEvent):
            emit("book_added", change.new, {
                "status": change.new.get("status"),
                "added_at": change.new.get("added_at"),
            })

        def on_updated(change: ChangeEvent):
            # only the transition into completed counts
            if change.new.get("status") != COMPLETED or change.old.get("status") == COMPLETED:
                return
            emit("book_completed", change.new, {
                "progress": change.new.get("progress"),
                "completed_at": datetime.utcnow().isoformat(),
            })

        return self._open(SubscriptionKey(SubscriptionType.ACTIVITY_FEED), [
            (INSERT, "user_library", on_added, None),
            (UPDATE, "user_library", on_updated, None),
        ])

    # -------------------------
    # TEARDOWN / CONFIG
    # -------------------------

    def unsubscribe(self, subscription_id: Optional[str]) -> bool:
        with self._lock:
            for key in list(self._subscriptions):
                if key.id == subscription_id:
                    self._subscriptions.pop(key).unsubscribe()
                    logger.info(f"Unsubscribed {subscription_id}")
                    return True
        return False

    def unsubscribe_all(self) -> int:
        with self._lock:
            channels = list(self._subscriptions.values())
            self._subscriptions.clear()

        for channel in channels:
            channel.unsubscribe()
        return len(channels)

    def active_subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscription_ids(self):
        with self._lock:
            return [key.id for key in self._subscriptions]

    def update_config(self, **toggles) -> RealtimeConfig:
        """Change toggles for future subscriptions; live ones are left alone."""
        for name, value in toggles.items():
            if not hasattr(self.config, name):
                raise ValueError(f"Unknown realtime toggle: {name}")
            setattr(self.config, name, bool(value))
        return self.get_config()

    def get_config(self) -> RealtimeConfig:
        return RealtimeConfig(**asdict(self.config))

    def close(self) -> None:
        self.unsubscribe_all()
        self._executor.shutdown(wait=False)
