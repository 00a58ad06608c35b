"""Redaction of secret-bearing fields before data reaches a log sink.

Order notes are not logs: they are written unredacted.
"""

from typing import Any, Mapping

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset(
    {
        "Authorization",
        "password",
        "merchantid",
        "api_key",
        "secret_key",
        "card",
        "cardholder",
        "authcode",
        "trackid",
        "token",
        "udf4",
        "payer_account_no",
    }
)


def redact(data: Mapping[str, Any]) -> dict:
    """Return a copy of `data` with denylisted values replaced.

    Keys match case-sensitively. Nested mappings are redacted the same way;
    the input is never modified.
    """

    if not isinstance(data, Mapping):
        return data
    clean = {}
    for key, value in data.items():
        if key in SENSITIVE_KEYS:
            clean[key] = REDACTED
        elif isinstance(value, Mapping):
            clean[key] = redact(value)
        else:
            clean[key] = value
    return clean
