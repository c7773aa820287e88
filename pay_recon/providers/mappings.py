"""Declarative per-provider callback field mappings and result vocabularies.

Every provider names the same facts differently. This module is the only
place those names appear: the engine normalizes a raw payload once through
:func:`normalize` and works with canonical fields afterwards.

Paths are dotted; a segment may carry ``[n]`` to index a list or
``[Field=value]`` to pick the first list element whose ``Field`` equals
``value`` (M-Pesa wraps callback metadata as ``[{"Name": ..., "Value": ...}]``).
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from pay_recon.exceptions import MalformedCallbackError
from pay_recon.models.payment import NormalizedCallback, Provider, TransactionStatus

logger = logging.getLogger(__name__)

UNMAPPED_RESULT = "unmapped provider result"

_SEGMENT = re.compile(r"^(?P<name>[^\[\]]*)(?:\[(?P<selector>[^\]]+)\])?$")
_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ResultMapping:
    """Canonical status for one provider result code."""

    status: TransactionStatus
    detail: str | None = None


@dataclass(frozen=True)
class FieldMapping:
    """Where a provider puts each canonical field, in order of preference."""

    correlation_paths: tuple[str, ...]
    secondary_paths: tuple[str, ...] = ()
    result_code_paths: tuple[str, ...] = ()
    message_paths: tuple[str, ...] = ()
    amount_paths: tuple[str, ...] = ()
    currency_paths: tuple[str, ...] = ()
    receipt_paths: tuple[str, ...] = ()
    default_currency: str | None = None
    results: dict[str, ResultMapping] = field(default_factory=dict)
    acknowledgement: dict[str, Any] = field(default_factory=dict)


MOBILE_MONEY_MAPPING = FieldMapping(
    correlation_paths=("Body.stkCallback.CheckoutRequestID", "CheckoutRequestID"),
    secondary_paths=("Body.stkCallback.MerchantRequestID", "MerchantRequestID"),
    result_code_paths=("Body.stkCallback.ResultCode", "ResultCode", "errorCode"),
    message_paths=("Body.stkCallback.ResultDesc", "ResultDesc", "errorMessage"),
    amount_paths=("Body.stkCallback.CallbackMetadata.Item[Name=Amount].Value",),
    receipt_paths=("Body.stkCallback.CallbackMetadata.Item[Name=MpesaReceiptNumber].Value",),
    default_currency="KES",
    results={
        "0": ResultMapping(TransactionStatus.SUCCEEDED),
        "1": ResultMapping(TransactionStatus.FAILED, "Insufficient balance"),
        "1001": ResultMapping(TransactionStatus.FAILED, "Subscriber busy with another transaction"),
        "1019": ResultMapping(TransactionStatus.FAILED, "Transaction expired"),
        "1025": ResultMapping(TransactionStatus.FAILED, "Unable to send payment prompt"),
        "1032": ResultMapping(TransactionStatus.FAILED, "Request cancelled by user"),
        "1037": ResultMapping(TransactionStatus.FAILED, "Subscriber could not be reached"),
        "2001": ResultMapping(TransactionStatus.FAILED, "Invalid initiator information"),
        "9999": ResultMapping(TransactionStatus.FAILED, "Unable to send payment prompt"),
        "4999": ResultMapping(TransactionStatus.PENDING, "Transaction still under processing"),
        "500.001.1001": ResultMapping(TransactionStatus.PENDING, "Transaction is being processed"),
    },
    acknowledgement={"ResultCode": 0, "ResultDesc": "Success"},
)

CARD_WALLET_MAPPING = FieldMapping(
    correlation_paths=("resource.supplementary_data.related_ids.order_id", "resource.id"),
    secondary_paths=("resource.custom_id", "resource.purchase_units[0].custom_id"),
    result_code_paths=("event_type", "resource.status"),
    message_paths=("resource.status_details.reason", "summary"),
    amount_paths=("resource.amount.value", "resource.purchase_units[0].amount.value"),
    currency_paths=(
        "resource.amount.currency_code",
        "resource.purchase_units[0].amount.currency_code",
    ),
    receipt_paths=("resource.id",),
    results={
        "CHECKOUT.ORDER.APPROVED": ResultMapping(TransactionStatus.ACKNOWLEDGED),
        "APPROVED": ResultMapping(TransactionStatus.ACKNOWLEDGED),
        "CREATED": ResultMapping(TransactionStatus.PENDING),
        "SAVED": ResultMapping(TransactionStatus.PENDING),
        "PAYER_ACTION_REQUIRED": ResultMapping(TransactionStatus.PENDING),
        "PAYMENT.CAPTURE.PENDING": ResultMapping(TransactionStatus.PENDING),
        "PENDING": ResultMapping(TransactionStatus.PENDING),
        "PAYMENT.CAPTURE.COMPLETED": ResultMapping(TransactionStatus.SUCCEEDED),
        "COMPLETED": ResultMapping(TransactionStatus.SUCCEEDED),
        "CHECKOUT.ORDER.COMPLETED": ResultMapping(TransactionStatus.SUCCEEDED),
        "PAYMENT.CAPTURE.DENIED": ResultMapping(TransactionStatus.FAILED, "Capture denied"),
        "DENIED": ResultMapping(TransactionStatus.FAILED, "Capture denied"),
        "PAYMENT.CAPTURE.DECLINED": ResultMapping(TransactionStatus.FAILED, "Capture declined"),
        "DECLINED": ResultMapping(TransactionStatus.FAILED, "Capture declined"),
        "CHECKOUT.ORDER.VOIDED": ResultMapping(TransactionStatus.FAILED, "Order voided"),
        "VOIDED": ResultMapping(TransactionStatus.FAILED, "Order voided"),
    },
    acknowledgement={"status": "received"},
)

MAPPINGS: dict[Provider, FieldMapping] = {
    Provider.MOBILE_MONEY: MOBILE_MONEY_MAPPING,
    Provider.CARD_WALLET: CARD_WALLET_MAPPING,
}


def get_mapping(provider: Provider) -> FieldMapping:
    """Return the field mapping registered for ``provider``."""
    return MAPPINGS[provider]


def acknowledgement_for(provider: Provider) -> dict[str, Any]:
    """Return a fresh copy of the acknowledgement body the provider expects."""
    return dict(MAPPINGS[provider].acknowledgement)


def resolve_path(payload: Any, path: str) -> Any:
    """Resolve a dotted path against nested dicts and lists; ``None`` if absent."""
    current = payload
    for segment in path.split("."):
        match = _SEGMENT.match(segment)
        if match is None or current is None:
            return None
        name, selector = match.group("name"), match.group("selector")
        if name:
            if not isinstance(current, dict):
                return None
            current = current.get(name)
        if selector is not None:
            current = _select(current, selector)
    return current


def _select(items: Any, selector: str) -> Any:
    if not isinstance(items, list):
        return None
    if selector.isdigit():
        index = int(selector)
        return items[index] if index < len(items) else None
    key, _, wanted = selector.partition("=")
    for item in items:
        if isinstance(item, dict) and str(item.get(key)) == wanted:
            return item
    return None


def first_present(payload: Any, paths: tuple[str, ...]) -> Any:
    """Return the value at the first path that resolves to something non-empty."""
    for path in paths:
        value = resolve_path(payload, path)
        if value is not None and value != "":
            return value
    return None


def to_amount(value: Any) -> Decimal | None:
    """Convert a provider amount (int, float or string) to a two-digit Decimal."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise InvalidOperation(value)
        return amount.quantize(_CENTS)
    except InvalidOperation:
        logger.debug("Ignoring non-numeric amount %r", value)
        return None


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def normalize(provider: Provider, payload: dict[str, Any]) -> NormalizedCallback:
    """Extract the canonical callback fields from a raw provider payload.

    Raises
    ------
    MalformedCallbackError
        The payload is not an object or carries neither a correlation id nor
        a secondary id.
    """
    if not isinstance(payload, dict):
        raise MalformedCallbackError(f"{provider.value} callback body is not an object")
    mapping = get_mapping(provider)
    currency = first_present(payload, mapping.currency_paths) or mapping.default_currency
    callback = NormalizedCallback(
        provider=provider,
        correlation_id=_as_text(first_present(payload, mapping.correlation_paths)),
        secondary_id=_as_text(first_present(payload, mapping.secondary_paths)),
        result_code=_as_text(first_present(payload, mapping.result_code_paths)),
        result_message=_as_text(first_present(payload, mapping.message_paths)),
        amount=to_amount(first_present(payload, mapping.amount_paths)),
        currency=_as_text(currency),
        receipt_ref=_as_text(first_present(payload, mapping.receipt_paths)),
        raw=payload,
    )
    if not callback.has_identifier:
        raise MalformedCallbackError(f"{provider.value} callback carries no transaction identifier")
    return callback


def resolve_status(
    provider: Provider, result_code: str | None, message: str | None = None
) -> tuple[TransactionStatus, str | None, bool]:
    """Map a provider result code to ``(status, detail, mapped)``.

    Unknown or missing codes resolve to ``FAILED`` with the detail
    ``"unmapped provider result"`` and ``mapped=False``.
    """
    result = get_mapping(provider).results.get(result_code) if result_code is not None else None
    if result is None:
        return TransactionStatus.FAILED, UNMAPPED_RESULT, False
    detail = None
    if result.status == TransactionStatus.FAILED:
        detail = message or result.detail
    return result.status, detail, True
