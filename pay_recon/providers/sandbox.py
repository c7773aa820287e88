"""In-process sandbox provider for tests, simulations and local development."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pay_recon.exceptions import ProviderRejectedError, ProviderUnavailableError
from pay_recon.models.payment import InitiationResult, Provider, ProviderStatus
from pay_recon.providers.base import ProviderAdapter
from pay_recon.providers.mappings import get_mapping, to_amount
from pay_recon.providers.pool import IdPool

logger = logging.getLogger(__name__)

# Result code a provider reports while the payer has not answered yet
PENDING_CODES = {
    Provider.MOBILE_MONEY: "500.001.1001",
    Provider.CARD_WALLET: "PAYER_ACTION_REQUIRED",
}


@dataclass
class SandboxPayment:
    """State the sandbox keeps for one issued correlation id."""

    correlation_id: str
    secondary_id: str
    amount: Decimal
    currency: str
    payer_ref: str
    callback_target: str
    result_code: str | None = None
    result_message: str | None = None
    settled_amount: Decimal | None = None
    receipt_ref: str | None = None
    settled_at: datetime | None = None


class SandboxProviderAdapter(ProviderAdapter):
    """Provider adapter that answers from a scripted, in-memory ledger.

    Payments start pending. :meth:`settle` scripts the result the next
    status pull reports, :meth:`build_callback` renders the webhook the
    real provider would send, and ``unavailable`` simulates an outage.
    """

    def __init__(
        self,
        provider: Provider,
        seed: int | None = None,
        pool: IdPool | None = None,
    ) -> None:
        self._provider = provider
        self.pool = pool or IdPool(seed=seed)
        self.unavailable = False
        self.pull_count = 0
        self._lock = threading.Lock()
        self._payments: dict[str, SandboxPayment] = {}

    @property
    def provider(self) -> Provider:
        return self._provider

    def initiate(
        self,
        amount: Decimal,
        currency: str,
        payer_ref: str,
        description: str,
        callback_target: str,
    ) -> InitiationResult:
        """Accept a payment request and mint provider identifiers."""
        if self.unavailable:
            raise ProviderUnavailableError(f"{self._provider.value} sandbox is unavailable")
        if amount <= 0:
            raise ProviderRejectedError(
                "Invalid amount",
                details={"errorCode": "400.002.02", "errorMessage": f"Invalid Amount {amount}"},
            )

        with self._lock:
            if self._provider == Provider.MOBILE_MONEY:
                correlation_id = self.pool.checkout_request_id()
                secondary_id = self.pool.merchant_request_id()
                raw: dict[str, Any] = {
                    "MerchantRequestID": secondary_id,
                    "CheckoutRequestID": correlation_id,
                    "ResponseCode": "0",
                    "ResponseDescription": "Success. Request accepted for processing",
                    "CustomerMessage": "Success. Request accepted for processing",
                }
            else:
                correlation_id = self.pool.order_id()
                secondary_id = self.pool.request_id()
                raw = {"id": correlation_id, "status": "CREATED", "custom_id": secondary_id}

            self._payments[correlation_id] = SandboxPayment(
                correlation_id=correlation_id,
                secondary_id=secondary_id,
                amount=amount,
                currency=currency,
                payer_ref=payer_ref,
                callback_target=callback_target,
            )

        logger.debug("Sandbox %s issued %s for %s", self._provider.value, correlation_id, description)
        return InitiationResult(correlation_id=correlation_id, secondary_id=secondary_id, raw=raw)

    def settle(
        self,
        correlation_id: str,
        result_code: str | int,
        amount: Decimal | None = None,
        message: str | None = None,
    ) -> None:
        """Script the result later pulls report for ``correlation_id``."""
        with self._lock:
            payment = self._payments[correlation_id]
            payment.result_code = str(result_code)
            payment.result_message = message
            payment.settled_amount = amount if amount is not None else payment.amount
            payment.receipt_ref = (
                self.pool.receipt_number()
                if self._provider == Provider.MOBILE_MONEY
                else self.pool.capture_id()
            )
            payment.settled_at = datetime.now(timezone.utc)

    def fetch_status(self, correlation_id: str) -> ProviderStatus:
        """Report the scripted result, or a pending code when none is scripted."""
        with self._lock:
            self.pull_count += 1
            if self.unavailable:
                raise ProviderUnavailableError(f"{self._provider.value} sandbox is unavailable")
            payment = self._payments.get(correlation_id)
            if payment is None:
                raise ProviderUnavailableError(f"Unknown correlation id {correlation_id}")
            if payment.result_code is None:
                code = PENDING_CODES[self._provider]
                return ProviderStatus(result_code=code, raw={"code": code})
            return ProviderStatus(
                result_code=payment.result_code,
                result_message=payment.result_message,
                amount=payment.settled_amount,
                receipt_ref=payment.receipt_ref,
                settled_at=payment.settled_at,
                raw={
                    "code": payment.result_code,
                    "message": payment.result_message,
                    "amount": str(payment.settled_amount),
                    "receipt": payment.receipt_ref,
                },
            )

    def build_callback(
        self,
        correlation_id: str,
        result_code: str | int,
        amount: Decimal | int | str | None = None,
        message: str | None = None,
        receipt_ref: str | None = None,
    ) -> dict[str, Any]:
        """Render the webhook payload the provider would deliver.

        Unknown correlation ids are allowed so orphan callbacks can be built.
        """
        with self._lock:
            payment = self._payments.get(correlation_id)
            secondary_id = payment.secondary_id if payment else self.pool.merchant_request_id()
            currency = payment.currency if payment else (get_mapping(self._provider).default_currency or "USD")
            if amount is None and payment is not None:
                amount = payment.amount
            phone = payment.payer_ref if payment else self.pool.msisdn()
            if receipt_ref is None:
                receipt_ref = (
                    self.pool.receipt_number()
                    if self._provider == Provider.MOBILE_MONEY
                    else self.pool.capture_id()
                )

        if self._provider == Provider.MOBILE_MONEY:
            return self._mobile_money_callback(
                correlation_id, secondary_id, str(result_code), amount, message, receipt_ref, phone
            )
        return self._card_wallet_callback(
            correlation_id, secondary_id, str(result_code), amount, currency, message, receipt_ref
        )

    def _mobile_money_callback(
        self,
        correlation_id: str,
        secondary_id: str,
        result_code: str,
        amount: Any,
        message: str | None,
        receipt_ref: str,
        phone: str,
    ) -> dict[str, Any]:
        callback: dict[str, Any] = {
            "MerchantRequestID": secondary_id,
            "CheckoutRequestID": correlation_id,
            "ResultCode": int(result_code) if result_code.isdigit() else result_code,
            "ResultDesc": message
            or ("The service request is processed successfully." if result_code == "0" else "Request failed"),
        }
        if result_code == "0":
            items: list[dict[str, Any]] = [
                {"Name": "MpesaReceiptNumber", "Value": receipt_ref},
                {"Name": "TransactionDate", "Value": int(datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S"))},
                {"Name": "PhoneNumber", "Value": int(phone) if str(phone).isdigit() else phone},
            ]
            if amount is not None:
                value = to_amount(amount)
                # M-Pesa reports whole shillings as integers
                numeric = int(value) if value == value.to_integral_value() else float(value)
                items.insert(0, {"Name": "Amount", "Value": numeric})
            callback["CallbackMetadata"] = {"Item": items}
        return {"Body": {"stkCallback": callback}}

    def _card_wallet_callback(
        self,
        correlation_id: str,
        secondary_id: str,
        event_type: str,
        amount: Any,
        currency: str,
        message: str | None,
        receipt_ref: str,
    ) -> dict[str, Any]:
        money = None
        if amount is not None:
            money = {"value": str(to_amount(amount)), "currency_code": currency}
        state = event_type.rsplit(".", 1)[-1]

        if event_type.startswith("PAYMENT.CAPTURE."):
            resource: dict[str, Any] = {
                "id": receipt_ref,
                "status": state,
                "custom_id": secondary_id,
                "supplementary_data": {"related_ids": {"order_id": correlation_id}},
            }
            if money:
                resource["amount"] = money
            if message:
                resource["status_details"] = {"reason": message}
        else:
            unit: dict[str, Any] = {"custom_id": secondary_id}
            if money:
                unit["amount"] = money
            resource = {"id": correlation_id, "status": state, "purchase_units": [unit]}

        return {
            "id": f"WH-{self.pool.uuid()[:20].upper()}",
            "event_type": event_type,
            "summary": message or f"Event {event_type}",
            "resource": resource,
        }
