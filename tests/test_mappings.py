"""Tests for provider field mappings and result vocabularies."""

from decimal import Decimal

import pytest

from pay_recon.exceptions import MalformedCallbackError
from pay_recon.models.payment import Provider, TransactionStatus
from pay_recon.providers.mappings import (
    MAPPINGS,
    UNMAPPED_RESULT,
    acknowledgement_for,
    first_present,
    normalize,
    resolve_path,
    resolve_status,
    to_amount,
)


class TestResolvePath:
    """Tests for dotted path resolution."""

    def test_nested_dicts(self) -> None:
        """Test plain dotted paths walk nested dicts."""
        assert resolve_path({"a": {"b": {"c": 1}}}, "a.b.c") == 1

    def test_missing_segment(self) -> None:
        """Test a missing or non-dict segment resolves to None."""
        assert resolve_path({"a": {}}, "a.b.c") is None
        assert resolve_path({"a": "text"}, "a.b") is None

    def test_list_index(self) -> None:
        """Test numeric selectors index into lists."""
        payload = {"units": [{"id": "x"}, {"id": "y"}]}

        assert resolve_path(payload, "units[1].id") == "y"
        assert resolve_path(payload, "units[5].id") is None

    def test_list_selector(self) -> None:
        """Test Field=value selectors pick the matching list item."""
        payload = {"Item": [{"Name": "Amount", "Value": 1}, {"Name": "MpesaReceiptNumber", "Value": "R1"}]}

        assert resolve_path(payload, "Item[Name=MpesaReceiptNumber].Value") == "R1"
        assert resolve_path(payload, "Item[Name=Balance].Value") is None

    def test_first_present_skips_empty(self) -> None:
        """Test empty strings and None are skipped."""
        payload = {"a": "", "b": None, "c": "found"}

        assert first_present(payload, ("a", "b", "c")) == "found"
        assert first_present(payload, ("x",)) is None


class TestToAmount:
    """Tests for amount normalization."""

    @pytest.mark.parametrize("value,expected", [(500, "500.00"), ("12.5", "12.50"), (1.1, "1.10")])
    def test_numeric(self, value: object, expected: str) -> None:
        """Test numeric inputs are quantized to cents."""
        assert to_amount(value) == Decimal(expected)

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "-nan", "Infinity", float("nan"), float("inf")])
    def test_non_numeric(self, value: object) -> None:
        """Test booleans, text and non-finite values are rejected."""
        assert to_amount(value) is None


class TestNormalize:
    """Tests for normalize."""

    def test_stk_success_callback(self, stk_callback) -> None:
        """Test a successful STK callback yields every canonical field."""
        payload = stk_callback("ws_CO_1", 0, amount=500, receipt="NLJ7RT61SV")

        callback = normalize(Provider.MOBILE_MONEY, payload)

        assert callback.correlation_id == "ws_CO_1"
        assert callback.secondary_id == "29115-34620561-1"
        assert callback.result_code == "0"
        assert callback.amount == Decimal("500.00")
        assert callback.currency == "KES"
        assert callback.receipt_ref == "NLJ7RT61SV"
        assert callback.raw is payload
        assert callback.has_identifier

    def test_stk_failure_has_no_metadata(self, stk_callback) -> None:
        """Test a failed STK callback carries no amount or receipt."""
        callback = normalize(Provider.MOBILE_MONEY, stk_callback("ws_CO_1", 1032, desc="Request cancelled by user"))

        assert callback.result_code == "1032"
        assert callback.result_message == "Request cancelled by user"
        assert callback.amount is None
        assert callback.receipt_ref is None

    def test_flat_error_body(self) -> None:
        """Test flat error bodies resolve code and message."""
        payload = {"CheckoutRequestID": "ws_CO_1", "errorCode": "500.001.1001", "errorMessage": "Processing"}

        callback = normalize(Provider.MOBILE_MONEY, payload)

        assert callback.correlation_id == "ws_CO_1"
        assert callback.result_code == "500.001.1001"
        assert callback.result_message == "Processing"

    def test_card_capture_event(self) -> None:
        """Test capture webhooks resolve the order id through related ids."""
        payload = {
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "summary": "Payment completed",
            "resource": {
                "id": "CAP-1",
                "status": "COMPLETED",
                "custom_id": "PR-1",
                "amount": {"value": "12.50", "currency_code": "USD"},
                "supplementary_data": {"related_ids": {"order_id": "ORDER-1"}},
            },
        }

        callback = normalize(Provider.CARD_WALLET, payload)

        assert callback.correlation_id == "ORDER-1"
        assert callback.secondary_id == "PR-1"
        assert callback.result_code == "PAYMENT.CAPTURE.COMPLETED"
        assert callback.amount == Decimal("12.50")
        assert callback.currency == "USD"
        assert callback.receipt_ref == "CAP-1"

    def test_card_order_event(self) -> None:
        """Test order webhooks read purchase unit fields."""
        payload = {
            "event_type": "CHECKOUT.ORDER.APPROVED",
            "resource": {
                "id": "ORDER-1",
                "status": "APPROVED",
                "purchase_units": [{"custom_id": "PR-1", "amount": {"value": "9", "currency_code": "EUR"}}],
            },
        }

        callback = normalize(Provider.CARD_WALLET, payload)

        assert callback.correlation_id == "ORDER-1"
        assert callback.secondary_id == "PR-1"
        assert callback.currency == "EUR"

    def test_secondary_id_alone_is_enough(self) -> None:
        """Test a secondary id without a correlation id is accepted."""
        callback = normalize(Provider.MOBILE_MONEY, {"MerchantRequestID": "29115-1-1", "ResultCode": 0})

        assert callback.correlation_id is None
        assert callback.has_identifier
        assert callback.currency == "KES"

    @pytest.mark.parametrize("payload", [{}, {"Body": {"stkCallback": {"ResultCode": 0}}}, "text", None])
    def test_malformed_payloads(self, payload: object) -> None:
        """Test payloads without identifiers are rejected."""
        with pytest.raises(MalformedCallbackError):
            normalize(Provider.MOBILE_MONEY, payload)  # type: ignore[arg-type]


class TestResolveStatus:
    """Tests for result vocabularies."""

    def test_success(self) -> None:
        """Test result code 0 maps to SUCCEEDED."""
        assert resolve_status(Provider.MOBILE_MONEY, "0") == (TransactionStatus.SUCCEEDED, None, True)

    def test_failure_prefers_provider_message(self) -> None:
        """Test the provider's failure message becomes the detail."""
        status, detail, mapped = resolve_status(Provider.MOBILE_MONEY, "1", "Balance too low")

        assert status == TransactionStatus.FAILED
        assert detail == "Balance too low"
        assert mapped

    def test_failure_default_detail(self) -> None:
        """Test known failure codes fall back to their description."""
        _, detail, _ = resolve_status(Provider.MOBILE_MONEY, "1032")

        assert detail == "Request cancelled by user"

    def test_pending_has_no_detail(self) -> None:
        """Test pending results carry no detail."""
        assert resolve_status(Provider.MOBILE_MONEY, "500.001.1001", "Processing") == (
            TransactionStatus.PENDING,
            None,
            True,
        )

    def test_card_vocabulary(self) -> None:
        """Test card/wallet event types map to canonical statuses."""
        assert resolve_status(Provider.CARD_WALLET, "CHECKOUT.ORDER.APPROVED")[0] == TransactionStatus.ACKNOWLEDGED
        assert resolve_status(Provider.CARD_WALLET, "VOIDED")[0] == TransactionStatus.FAILED

    @pytest.mark.parametrize("code", [None, "7777", "PAYMENT.CAPTURE.REFUNDED"])
    def test_unmapped(self, code: str | None) -> None:
        """Test unknown codes fail with the unmapped detail."""
        provider = Provider.CARD_WALLET if code and "." in code else Provider.MOBILE_MONEY

        assert resolve_status(provider, code) == (TransactionStatus.FAILED, UNMAPPED_RESULT, False)


class TestAcknowledgement:
    """Tests for provider acknowledgements."""

    def test_shapes(self) -> None:
        """Test each provider gets its own acknowledgement body."""
        assert acknowledgement_for(Provider.MOBILE_MONEY) == {"ResultCode": 0, "ResultDesc": "Success"}
        assert acknowledgement_for(Provider.CARD_WALLET) == {"status": "received"}

    def test_returns_copy(self) -> None:
        """Test callers cannot mutate the shared acknowledgement."""
        ack = acknowledgement_for(Provider.MOBILE_MONEY)
        ack["ResultCode"] = 1

        assert MAPPINGS[Provider.MOBILE_MONEY].acknowledgement["ResultCode"] == 0
