"""
Tests for the payment bot gateway: shared-secret auth, token resolution and
the currency rate the bot quotes in.
"""

from decimal import Decimal

import pytest

from fulfillment.constants.purchase_status import ItemType, PurchaseStatus
from fulfillment.models.payment_config import PaymentConfigType
from fulfillment.repositories.purchase_repository import PurchaseRepository
from fulfillment.services.bot_gateway_service import BotGatewayService, validate_bot_auth
from fulfillment.services.payment_config_service import PaymentConfigService
from fulfillment.utils.result import ErrorCode, failure


@pytest.fixture
def gateway(session, converter):
    return BotGatewayService(session, converter=converter)


@pytest.fixture
def purchase(session, buyer, book):
    return PurchaseRepository(session).create_purchase({
        "user_id": buyer.id,
        "item_type": ItemType.book,
        "item_id": book.id,
        "amount": book.price,
        "status": PurchaseStatus.pending_initiation,
        "initiation_token": "bot-token-1",
        "transaction_reference": "AST-1700000000000-A1B2C3",
    }).data


@pytest.fixture
def payment_methods(session):
    service = PaymentConfigService(session)
    service.create_payment_config({
        "config_type": PaymentConfigType.mobile_money,
        "provider_name": "telebirr",
        "account_number": "0911000000",
        "account_name": "Astewai Books",
        "display_order": 2,
    })
    service.create_payment_config({
        "config_type": PaymentConfigType.bank_account,
        "provider_name": "CBE",
        "account_number": "1000123456789",
        "account_name": "Astewai Books PLC",
        "instructions": "Use the reference as the transfer reason",
        "display_order": 1,
    })
    service.create_payment_config({
        "config_type": PaymentConfigType.bank_account,
        "provider_name": "Closed Bank",
        "account_number": "1",
        "account_name": "Old Account",
        "is_active": False,
    })


class TestValidateBotAuth:

    @pytest.mark.parametrize("header, secret, expected", [
        ("Bearer s3cret", "s3cret", True),
        ("s3cret", "s3cret", True),
        ("Bearer wrong", "s3cret", False),
        (None, "s3cret", False),
        ("", "s3cret", False),
        ("Bearer ", "s3cret", False),
        ("Bearer s3cret", None, False),
        ("Bearer ", "", False),
        ("Bearer anything", "", False),
    ])
    def test_fails_closed(self, header, secret, expected):
        assert validate_bot_auth(header, secret) is expected

    def test_defaults_to_configured_secret(self):
        assert validate_bot_auth("Bearer bot-secret")
        assert not validate_bot_auth("Bearer other")


class TestPurchaseInfo:

    @pytest.mark.parametrize("token", [None, "", "   ", 123])
    def test_malformed_tokens(self, gateway, token):
        assert gateway.get_purchase_info(token).code == ErrorCode.INVALID_TOKEN

    def test_unknown_token(self, gateway):
        assert gateway.get_purchase_info("nope").code == ErrorCode.TOKEN_NOT_FOUND

    def test_resolves_purchase_with_active_payment_options(self, gateway, purchase, payment_methods):
        info = gateway.get_purchase_info("bot-token-1").data

        assert info["purchase"] == {
            "id": purchase.id,
            "item_type": "book",
            "item_id": purchase.item_id,
            "item_title": "Test Book",
            "amount": 19.99,
            "amount_in_birr": 2398.8,
            "currency": "ETB",
            "status": "pending_initiation",
            "transaction_reference": "AST-1700000000000-A1B2C3",
            "user": {"id": purchase.user_id, "email": "abebe@example.com", "name": "Abebe Kebede"},
        }
        assert [o["provider_name"] for o in info["payment_options"]] == ["CBE", "telebirr"]
        assert "display_order" not in info["payment_options"][0]
        assert info["payment_options"][0]["type"] == "bank_account"
        assert info["payment_options"][1]["instructions"] == ""

    def test_payment_options_degrade_to_empty(self, gateway, purchase, monkeypatch, caplog):
        monkeypatch.setattr(
            gateway.payment_configs, "get_active_payment_methods", lambda: failure("connection reset")
        )

        result = gateway.get_purchase_info("bot-token-1")

        assert result.success
        assert result.data["payment_options"] == []
        assert "Payment options unavailable" in caplog.text

    def test_lookup_failure_is_a_database_error(self, gateway, monkeypatch):
        monkeypatch.setattr(gateway.purchases, "find_purchase_by_token", lambda token: failure("down"))

        assert gateway.get_purchase_info("bot-token-1").code == ErrorCode.DATABASE_ERROR

    def test_unexpected_errors_are_contained(self, gateway, monkeypatch):
        def explode(token):
            raise RuntimeError("boom")

        monkeypatch.setattr(gateway.purchases, "find_purchase_by_token", explode)

        result = gateway.get_purchase_info("bot-token-1")

        assert result.code == ErrorCode.INTERNAL_ERROR
        assert result.error == "Internal server error"


class TestCurrencyRate:

    @pytest.mark.parametrize("rate", [0, -1, None, "abc", float("nan")])
    def test_invalid_rate(self, gateway, rate):
        assert gateway.update_currency_rate(rate).code == ErrorCode.INVALID_RATE
        assert gateway.converter.rate == Decimal("120")

    def test_new_rate_applies_to_quotes(self, gateway, purchase):
        info = gateway.update_currency_rate(130).data

        assert info["rate"] == Decimal("130")
        assert info["source"] == "admin"
        assert gateway.get_purchase_info("bot-token-1").data["purchase"]["amount_in_birr"] == 2598.7
