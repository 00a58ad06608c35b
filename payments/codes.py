"""Key2Pay response codes and their normalization.

The processor reports outcomes through `responsecode`, sometimes prefixed
with the transaction currency (``EGP9998``), sometimes nested inside an
object, and on errors through `error_code_tag` / `error_text`. Everything is
reduced to a bare code string before classification.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Union

CODE_APPROVED = "0"
CODE_CAPTURED = "CAPTURED"

CODE_DEBIT_PENDING = "9"
CODE_DEBIT_FAILED = "6"

CODE_INSUFFICIENT_FUNDS = "51"
CODE_DO_NOT_HONOUR = "05"
CODE_RESTRICTED_CARD = "62"
CODE_INVALID_TRANSACTION = "12"
CODE_TIMEOUT = "9998"
CODE_INVALID_CREDENTIALS = "1000"

APPROVED_CODES = frozenset({CODE_APPROVED, CODE_CAPTURED})
PENDING_CODES = frozenset({CODE_DEBIT_PENDING})
FAILURE_CODES = frozenset(
    {
        CODE_DEBIT_FAILED,
        CODE_INSUFFICIENT_FUNDS,
        CODE_DO_NOT_HONOUR,
        CODE_RESTRICTED_CARD,
        CODE_INVALID_TRANSACTION,
        CODE_TIMEOUT,
        CODE_INVALID_CREDENTIALS,
    }
)

# Keys searched, in order, when the code arrives as a structured value.
CODE_KEYS = ("responsecode", "error_code_tag", "error_text")

_CURRENCY_PREFIXED = re.compile(r"[A-Z]{3}([0-9]+)")

_STATUS_MESSAGES = {
    CODE_APPROVED: "Payment approved successfully.",
    CODE_CAPTURED: "Payment captured successfully.",
    CODE_INSUFFICIENT_FUNDS: "Payment failed: Insufficient funds in the account.",
    CODE_DO_NOT_HONOUR: "Payment failed: Do not honour - the transaction was declined by the bank.",
    CODE_RESTRICTED_CARD: "Payment failed: Restricted card - this card cannot be used for this transaction.",
    CODE_INVALID_TRANSACTION: "Payment failed: Invalid transaction - the transaction details are not valid.",
    CODE_TIMEOUT: "Payment failed: Transaction timeout - the request took too long to process.",
    CODE_INVALID_CREDENTIALS: "Payment failed: Invalid merchant credentials.",
    CODE_DEBIT_PENDING: "Payment is processing, awaiting confirmation.",
    CODE_DEBIT_FAILED: "Payment failed: The transaction was not completed.",
}
UNKNOWN_STATUS_MESSAGE = "Payment processed with unknown response code."


@dataclass(frozen=True)
class Scalar:
    value: str


@dataclass(frozen=True)
class Structured:
    fields: Mapping[str, Any]


NotificationField = Union[Scalar, Structured]


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value).strip()


def as_field(value: Any) -> NotificationField:
    """Wrap a raw notification value in the field union.

    Mappings become `Structured`; sequences contribute their first element;
    everything else is rendered as text.
    """

    if isinstance(value, (Scalar, Structured)):
        return value
    if isinstance(value, Mapping):
        return Structured(value)
    if isinstance(value, (list, tuple)):
        first = value[0] if value else None
        if isinstance(first, Mapping):
            return Structured(first)
        if isinstance(first, (list, tuple)):
            return Scalar("")
        return Scalar(_scalar_text(first))
    return Scalar(_scalar_text(value))


def extract_code(field: NotificationField) -> str:
    """Return the raw code carried by the field, without prefix stripping."""

    if isinstance(field, Structured):
        for key in CODE_KEYS:
            value = field.fields.get(key)
            if value is None or isinstance(value, (Mapping, list, tuple)):
                continue
            text = _scalar_text(value)
            if text:
                return text
        return ""
    return field.value


def strip_currency_prefix(code: str) -> str:
    match = _CURRENCY_PREFIXED.fullmatch(code)
    return match.group(1) if match else code


def normalize(value: Any) -> str:
    """Return the canonical status code for a raw notification value.

    >>> normalize("EGP9998")
    '9998'
    >>> normalize({"responsecode": "USD51"})
    '51'
    """

    return strip_currency_prefix(extract_code(as_field(value)))


def status_message(code: str) -> str:
    """Operator-facing description of a normalized code, used in order notes."""

    return _STATUS_MESSAGES.get(code, UNKNOWN_STATUS_MESSAGE)


def is_known(code: str) -> bool:
    return code in APPROVED_CODES or code in PENDING_CODES or code in FAILURE_CODES
