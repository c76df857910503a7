"""
Tests for the manual-payment purchase workflow, from initiation through the
admin decision and the library grant.
"""

from decimal import Decimal

import pytest
from sqlmodel import select

from fulfillment.constants.purchase_status import PurchaseStatus
from fulfillment.models.library import LibraryEntry
from fulfillment.notifications import PurchaseEvent
from fulfillment.utils.result import ErrorCode, failure


def library_of(session, user):
    return sorted(session.exec(select(LibraryEntry.book_id).where(LibraryEntry.user_id == user.id)).all())


@pytest.fixture
def initiated(purchase_service, buyer, book):
    result = purchase_service.initiate_purchase(buyer, "book", book.id)
    assert result.success, result.error
    return result.data


@pytest.fixture
def linked(purchase_service, initiated):
    result = purchase_service.link_bot_chat(initiated["initiation_token"], chat_id=4242, telegram_user_id=77)
    assert result.success, result.error
    return result.data


@pytest.fixture
def proof_submitted(purchase_service, linked, buyer):
    result = purchase_service.submit_payment_proof(linked.id, buyer, file=object())
    assert result.success, result.error
    return result.data


class TestInitiatePurchase:

    def test_creates_pending_purchase_with_bot_link(self, initiated):
        purchase = initiated["purchase"]

        assert purchase.status == PurchaseStatus.pending_initiation
        assert purchase.amount == Decimal("19.99")
        assert purchase.amount_in_birr == Decimal("2398.80")
        assert purchase.transaction_reference.startswith("AST-")
        assert purchase.initiation_token == initiated["initiation_token"]
        assert initiated["bot_link"].endswith(f"?start={initiated['initiation_token']}")

    def test_second_purchase_of_same_item_is_refused(self, purchase_service, initiated, buyer, book):
        result = purchase_service.initiate_purchase(buyer, "book", book.id)

        assert result.code == ErrorCode.DUPLICATE_PURCHASE

    def test_free_items_cannot_be_bought(self, purchase_service, buyer, free_book):
        result = purchase_service.initiate_purchase(buyer, "book", free_book.id)

        assert result.code == ErrorCode.VALIDATION_ERROR

    def test_unknown_item(self, purchase_service, buyer):
        assert purchase_service.initiate_purchase(buyer, "book", 999).code == ErrorCode.NOT_FOUND
        assert purchase_service.initiate_purchase(buyer, "magazine", 1).code == ErrorCode.VALIDATION_ERROR

    def test_other_buyers_cannot_read_it(self, purchase_service, initiated, other_buyer, admin):
        purchase_id = initiated["purchase"].id

        assert purchase_service.get_purchase_for_user(purchase_id, other_buyer).code == ErrorCode.NOT_FOUND
        assert purchase_service.get_purchase_for_user(purchase_id, admin).success


class TestBotLink:

    def test_link_moves_purchase_to_awaiting_payment(self, linked):
        assert linked.status == PurchaseStatus.awaiting_payment
        assert linked.telegram_chat_id == 4242
        assert linked.telegram_user_id == 77

    def test_unknown_token(self, purchase_service):
        assert purchase_service.link_bot_chat("missing", chat_id=1).code == ErrorCode.TOKEN_NOT_FOUND

    def test_linking_twice_is_an_invalid_transition(self, purchase_service, initiated, linked):
        result = purchase_service.link_bot_chat(initiated["initiation_token"], chat_id=4242)

        assert result.code == ErrorCode.INVALID_TRANSITION


class TestPaymentProof:

    def test_proof_moves_purchase_to_verification(self, proof_submitted, storage, dispatcher):
        assert proof_submitted.status == PurchaseStatus.pending_verification
        assert proof_submitted.payment_proof_key == storage.uploaded[0]

        event = dispatcher.calls[-1]
        assert event["event"] == PurchaseEvent.PROOF_SUBMITTED
        assert event["user"]["email"] == "abebe@example.com"
        assert event["extra"]["purchase"]["item_title"] == "Test Book"

    def test_only_the_buyer_may_submit(self, purchase_service, linked, other_buyer, storage):
        result = purchase_service.submit_payment_proof(linked.id, other_buyer, file=object())

        assert result.code == ErrorCode.FORBIDDEN
        assert storage.uploaded == []

    def test_proof_before_bot_link_is_refused(self, purchase_service, initiated, buyer):
        result = purchase_service.submit_payment_proof(initiated["purchase"].id, buyer, file=object())

        assert result.code == ErrorCode.INVALID_TRANSITION

    def test_storage_failure_leaves_purchase_alone(self, purchase_service, storage, linked, buyer):
        storage.fail = True

        result = purchase_service.submit_payment_proof(linked.id, buyer, file=object())

        assert result.code == ErrorCode.STORAGE_ERROR
        assert purchase_service.repository.get_purchase_by_id(linked.id).data.status == PurchaseStatus.awaiting_payment


class TestAdminDecision:

    def test_approval_completes_and_grants_the_book(self, purchase_service, session, proof_submitted,
                                                    admin, buyer, book, dispatcher):
        result = purchase_service.approve_purchase(
            proof_submitted.id, admin, proof_submitted.updated_at, admin_notes="paid in full"
        )

        assert result.success
        assert result.data.status == PurchaseStatus.completed
        assert result.data.admin_notes == "paid in full"
        assert library_of(session, buyer) == [book.id]

        event = dispatcher.calls[-1]
        assert event["event"] == PurchaseEvent.PURCHASE_APPROVED
        assert event["extra"]["approved_date"] == result.data.updated_at.strftime("%Y-%m-%d")

    def test_approval_with_stale_version_is_refused(self, purchase_service, linked, buyer, admin):
        seen_before_proof = linked.updated_at
        purchase_service.submit_payment_proof(linked.id, buyer, file=object())

        result = purchase_service.approve_purchase(linked.id, admin, seen_before_proof)

        assert result.code == ErrorCode.STALE_WRITE

    def test_approving_a_bundle_grants_every_book(self, purchase_service, session, buyer, admin, bundle):
        purchase = purchase_service.initiate_purchase(buyer, "bundle", bundle.id).data["purchase"]
        token = purchase.initiation_token
        purchase_service.link_bot_chat(token, chat_id=1)
        purchase_service.submit_payment_proof(purchase.id, buyer, file=object())
        current = purchase_service.repository.get_purchase_by_id(purchase.id).data

        purchase_service.approve_purchase(purchase.id, admin, current.updated_at)

        assert len(library_of(session, buyer)) == 2

    def test_library_grant_is_idempotent(self, purchase_service, session, proof_submitted, admin, buyer):
        approved = purchase_service.approve_purchase(proof_submitted.id, admin, proof_submitted.updated_at).data

        again = purchase_service.grant_library_access(approved)

        assert again.data == []
        assert len(library_of(session, buyer)) == 1

    def test_failed_bundle_lookup_leaves_purchase_pending(self, purchase_service, session, buyer, admin,
                                                          bundle, monkeypatch):
        purchase = purchase_service.initiate_purchase(buyer, "bundle", bundle.id).data["purchase"]
        purchase_service.link_bot_chat(purchase.initiation_token, chat_id=1)
        submitted = purchase_service.submit_payment_proof(purchase.id, buyer, file=object()).data
        seen = submitted.updated_at
        monkeypatch.setattr(
            purchase_service.catalog, "get_bundle_books",
            lambda bundle_id: failure("Catalog unavailable", ErrorCode.DATABASE_ERROR),
        )

        failed = purchase_service.approve_purchase(purchase.id, admin, seen)

        assert failed.code == ErrorCode.DATABASE_ERROR
        assert purchase_service.repository.get_purchase_by_id(purchase.id).data.status == \
            PurchaseStatus.pending_verification
        assert library_of(session, buyer) == []

        monkeypatch.undo()
        retried = purchase_service.approve_purchase(purchase.id, admin, seen)

        assert retried.data.status == PurchaseStatus.completed
        assert len(library_of(session, buyer)) == 2

    def test_regrant_needs_a_completed_purchase(self, purchase_service, proof_submitted):
        result = purchase_service.grant_library_access(proof_submitted)

        assert result.code == ErrorCode.INVALID_TRANSITION

    def test_rejection_frees_the_item(self, purchase_service, linked, admin, buyer, book, dispatcher):
        result = purchase_service.reject_purchase(linked.id, admin, linked.updated_at, reason="no payment seen")

        assert result.data.status == PurchaseStatus.rejected
        assert result.data.admin_notes == "no payment seen"
        assert dispatcher.calls[-1]["event"] == PurchaseEvent.PURCHASE_REJECTED
        assert purchase_service.initiate_purchase(buyer, "book", book.id).success

    def test_finished_purchases_cannot_be_rejected(self, purchase_service, proof_submitted, admin):
        approved = purchase_service.approve_purchase(proof_submitted.id, admin, proof_submitted.updated_at).data

        result = purchase_service.reject_purchase(approved.id, admin, approved.updated_at)

        assert result.code == ErrorCode.INVALID_TRANSITION


class TestAdminViews:

    def test_stats_and_listing(self, purchase_service, initiated):
        stats = purchase_service.get_purchase_stats().data
        listing = purchase_service.list_purchases(status="pending_initiation").data

        assert stats["pending_initiation"] == 1
        assert listing["total_items"] == 1
        assert purchase_service.list_purchases().data["results"][0].id == initiated["purchase"].id
