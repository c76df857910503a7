"""
Tests for the realtime stack: the in-process transport, the commit-time
change feed and the four subscription types built on top of them.
"""

from decimal import Decimal

import pytest

from fulfillment.constants.purchase_status import ItemType, PurchaseStatus
from fulfillment.constants.request_status import RequestStatus
from fulfillment.database import session_factory
from fulfillment.models.library import LibraryEntry, LibraryStatus
from fulfillment.models.purchase_request import PurchaseRequest
from fulfillment.realtime.transport import INSERT, UPDATE, ChangeEvent
from fulfillment.repositories.purchase_repository import PurchaseRepository
from fulfillment.services.realtime_service import (
    NO_SUBSCRIPTION,
    UNKNOWN_BOOK,
    UNKNOWN_ITEM,
    UNKNOWN_USER,
    RealtimeConfig,
    RealtimeService,
)


@pytest.fixture
def service(transport):
    service = RealtimeService(transport, session_factory, config=RealtimeConfig(), max_workers=2)
    yield service
    service.close()


@pytest.fixture
def received():
    return []


def save(session, row):
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


class TestLocalRealtimeTransport:

    def test_filters_on_table_event_and_columns(self, transport):
        seen = []
        transport.channel("mine").on(UPDATE, "purchases", seen.append, filter={"user_id": 1}).subscribe()

        transport.broadcast(ChangeEvent("purchases", UPDATE, new={"id": 1, "user_id": 1}))
        transport.broadcast(ChangeEvent("purchases", UPDATE, new={"id": 2, "user_id": 2}))
        transport.broadcast(ChangeEvent("purchases", INSERT, new={"id": 3, "user_id": 1}))
        transport.broadcast(ChangeEvent("purchase_requests", UPDATE, new={"id": 4, "user_id": 1}))

        assert [c.new["id"] for c in seen] == [1]

    def test_failing_handler_does_not_starve_others(self, transport):
        seen = []

        def broken(change):
            raise RuntimeError("handler bug")

        transport.channel("a").on(INSERT, "purchases", broken).subscribe()
        transport.channel("b").on(INSERT, "purchases", seen.append).subscribe()

        delivered = transport.broadcast(ChangeEvent("purchases", INSERT, new={"id": 1}))

        assert delivered == 2
        assert len(seen) == 1

    def test_unsubscribed_channel_receives_nothing(self, transport):
        seen = []
        channel = transport.channel("gone").on(INSERT, "purchases", seen.append).subscribe()

        channel.unsubscribe()
        transport.broadcast(ChangeEvent("purchases", INSERT, new={"id": 1}))

        assert seen == []
        assert transport.channel_names == []


class TestChangeFeed:

    def test_changes_publish_on_commit(self, change_feed, transport, session, buyer, book):
        seen = []
        transport.channel("feed").on(INSERT, "purchase_requests", seen.append).subscribe()

        request = PurchaseRequest(user_id=buyer.id, item_type=ItemType.book, item_id=book.id, amount=Decimal("1"))
        session.add(request)
        session.flush()
        assert seen == []

        session.commit()

        assert len(seen) == 1
        assert seen[0].new["status"] == "pending"
        assert seen[0].new["amount"] == 1.0

    def test_rolled_back_changes_are_never_published(self, change_feed, transport, session, buyer, book):
        seen = []
        transport.channel("feed").on(INSERT, "purchase_requests", seen.append).subscribe()

        session.add(PurchaseRequest(user_id=buyer.id, item_type=ItemType.book, item_id=book.id, amount=1))
        session.flush()
        session.rollback()

        assert seen == []

    def test_update_carries_the_stored_old_row(self, change_feed, transport, session, buyer, book):
        seen = []
        transport.channel("feed").on(UPDATE, "user_library", seen.append).subscribe()
        entry = save(session, LibraryEntry(user_id=buyer.id, book_id=book.id, status=LibraryStatus.reading))

        entry.status = LibraryStatus.completed
        save(session, entry)

        assert seen[0].old["status"] == "reading"
        assert seen[0].new["status"] == "completed"

    def test_version_checked_update_publishes_once(self, change_feed, transport, session, buyer, book):
        seen = []
        transport.channel("feed").on(UPDATE, "purchases", seen.append).subscribe()
        purchase = PurchaseRepository(session).create_purchase({
            "user_id": buyer.id, "item_type": ItemType.book, "item_id": book.id, "amount": book.price,
        }).data

        PurchaseRepository(session).update_purchase_with_version_check(
            purchase.id, {"status": PurchaseStatus.awaiting_payment}, purchase.updated_at
        )

        assert len(seen) == 1
        assert seen[0].old["status"] == "pending"
        assert seen[0].new["status"] == "awaiting_payment"


class TestPurchaseUpdates:

    def test_only_own_purchases_are_forwarded(self, change_feed, service, received, session, buyer,
                                              other_buyer, book):
        repository = PurchaseRepository(session)
        mine = repository.create_purchase({
            "user_id": buyer.id, "item_type": ItemType.book, "item_id": book.id, "amount": book.price,
        }).data
        theirs = repository.create_purchase({
            "user_id": other_buyer.id, "item_type": ItemType.book, "item_id": book.id, "amount": book.price,
        }).data

        assert service.subscribe_to_purchase_updates(buyer.id, received.append) == f"purchase_updates:{buyer.id}"

        repository.update_purchase(mine.id, {"status": PurchaseStatus.awaiting_payment})
        repository.update_purchase(theirs.id, {"status": PurchaseStatus.awaiting_payment})

        assert len(received) == 1
        assert received[0].purchase_id == mine.id
        assert received[0].status == "awaiting_payment"
        assert received[0].source == "purchase"

    def test_request_status_changes_are_forwarded(self, change_feed, service, received, session, buyer, book):
        request = save(session, PurchaseRequest(
            user_id=buyer.id, item_type=ItemType.book, item_id=book.id, amount=Decimal("19.99"),
        ))
        service.subscribe_to_purchase_updates(buyer.id, received.append)

        request.status = RequestStatus.contacted
        save(session, request)

        assert received[0].source == "purchase_request"
        assert received[0].status == "contacted"


class TestAdminNotifications:

    def test_new_request_is_enriched(self, change_feed, service, received, session, buyer, book):
        service.subscribe_to_admin_notifications(received.append)

        request = save(session, PurchaseRequest(
            user_id=buyer.id, item_type=ItemType.book, item_id=book.id, amount=Decimal("19.99"),
        ))

        notification = received[0]
        assert notification.type == "admin_approval_required"
        assert notification.request_id == request.id
        assert notification.user_display_name == "Abebe Kebede"
        assert notification.item_title == "Test Book"
        assert notification.amount == 19.99

    def test_missing_rows_fall_back_to_placeholders(self, service, received):
        service.subscribe_to_admin_notifications(received.append)

        service.transport.broadcast(ChangeEvent("purchase_requests", INSERT, new={
            "id": 1, "user_id": 999, "item_type": "bundle", "item_id": 999, "amount": 5,
        }))

        assert received[0].user_display_name == UNKNOWN_USER
        assert received[0].item_title == UNKNOWN_ITEM


class TestProgressSync:

    def test_progress_updates_are_forwarded(self, change_feed, service, received, session, buyer, book):
        entry = save(session, LibraryEntry(user_id=buyer.id, book_id=book.id))
        service.subscribe_to_progress_sync(buyer.id, received.append)

        entry.progress = 42
        entry.last_read_position = "epubcfi(/6/4)"
        entry.status = LibraryStatus.reading
        save(session, entry)

        assert received[0].book_title == "Test Book"
        assert received[0].progress == 42
        assert received[0].last_read_position == "epubcfi(/6/4)"
        assert received[0].status == "reading"


class TestActivityFeed:

    def test_added_and_completed_fire_once_each(self, change_feed, service, received, session, buyer, book):
        service.subscribe_to_activity_feed(received.append)

        entry = save(session, LibraryEntry(user_id=buyer.id, book_id=book.id))
        entry.status = LibraryStatus.reading
        save(session, entry)
        entry.status = LibraryStatus.completed
        entry.progress = 100
        save(session, entry)
        entry.last_read_position = "end"
        save(session, entry)

        assert [n.activity_type for n in received] == ["book_added", "book_completed"]
        assert received[0].user_display_name == "Abebe Kebede"
        assert received[0].item_title == "Test Book"
        assert received[1].metadata["progress"] == 100


class TestSubscriptionManagement:

    def test_disabled_type_never_touches_the_transport(self, transport):
        service = RealtimeService(transport, session_factory, config=RealtimeConfig(activity_feed=False))

        assert service.subscribe_to_activity_feed(lambda n: None) is NO_SUBSCRIPTION
        assert transport.channel_names == []
        service.close()

    def test_resubscribing_replaces_the_channel(self, service, transport, buyer):
        first, second = [], []
        service.subscribe_to_purchase_updates(buyer.id, first.append)
        service.subscribe_to_purchase_updates(buyer.id, second.append)

        transport.broadcast(ChangeEvent("purchases", UPDATE, new={
            "id": 1, "user_id": buyer.id, "status": "completed", "item_type": "book", "item_id": 1,
        }))

        assert transport.channel_names == [f"purchase_updates:{buyer.id}"]
        assert service.active_subscription_count() == 1
        assert first == []
        assert len(second) == 1

    def test_unsubscribe(self, service, transport, buyer):
        subscription = service.subscribe_to_progress_sync(buyer.id, lambda n: None)
        service.subscribe_to_admin_notifications(lambda n: None)

        assert service.unsubscribe(subscription)
        assert not service.unsubscribe(subscription)
        assert service.subscription_ids() == ["admin_notifications"]
        assert service.unsubscribe_all() == 1
        assert transport.channel_names == []

    def test_config_changes_apply_to_new_subscriptions_only(self, service, transport, buyer):
        service.subscribe_to_progress_sync(buyer.id, lambda n: None)

        config = service.update_config(progress_sync=False)

        assert config.progress_sync is False
        assert service.active_subscription_count() == 1
        assert service.subscribe_to_progress_sync(buyer.id + 1, lambda n: None) is NO_SUBSCRIPTION

    def test_unknown_toggle(self, service):
        with pytest.raises(ValueError):
            service.update_config(push_notifications=True)

    def test_get_config_is_a_copy(self, service):
        service.get_config().activity_feed = False

        assert service.get_config().activity_feed is True


class TestEnrichment:

    def test_placeholders_for_missing_rows(self, service):
        assert service.user_display_name(404) == UNKNOWN_USER
        assert service.book_title(404) == UNKNOWN_BOOK
        assert service.item_title("magazine", 1) == UNKNOWN_ITEM

    def test_lookup_errors_degrade_to_placeholders(self, transport):
        def broken_sessions():
            raise ConnectionError("database unreachable")

        service = RealtimeService(transport, broken_sessions, config=RealtimeConfig())

        assert service.user_display_name(1) == UNKNOWN_USER
        assert service.item_title("book", 1) == UNKNOWN_ITEM
        service.close()
