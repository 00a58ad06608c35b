"""Customer-facing payment messages.

Customers never see raw response codes; these helpers translate codes, or
the audit trail of an already failed order, into plain text.
"""

import re

from orders.models import Order
from orders.selectors import recent_notes
from payments import codes

GENERIC_ERROR_MESSAGE = "Sorry, there was an unexpected issue with your payment. Please try again or contact support."
FAILED_ORDER_MESSAGE = (
    "Your payment was not successful. Please try again or contact support if you believe this is an error."
)
AWAITING_CONFIRMATION_MESSAGE = (
    "Your order is awaiting payment confirmation from Key2Pay. We will update your order status once the "
    "payment is confirmed via our secure webhook system."
)
PAYMENT_CONFIRMED_MESSAGE = "Thank you! Your payment has been confirmed and your order is being processed."
DEFAULT_PAGE_MESSAGE = "Thank you for your order. We will process your payment shortly."

_FRIENDLY_MESSAGES = {
    codes.CODE_APPROVED: "Your payment has been approved successfully!",
    codes.CODE_CAPTURED: "Your payment has been approved successfully!",
    codes.CODE_DEBIT_PENDING: "Your payment is being processed. We will update your order once it is confirmed.",
    codes.CODE_DEBIT_FAILED: "Sorry, your payment could not be completed. Please try again or use a different "
    "payment method.",
    codes.CODE_INSUFFICIENT_FUNDS: "Sorry, your payment could not be processed due to insufficient funds. "
    "Please check your account balance and try again.",
    codes.CODE_DO_NOT_HONOUR: "Sorry, your payment was declined by your bank. Please contact your bank or try a "
    "different payment method.",
    codes.CODE_RESTRICTED_CARD: "Sorry, this card cannot be used for this transaction. Please try a different card "
    "or contact your bank.",
    codes.CODE_INVALID_TRANSACTION: "Sorry, there was an issue with the transaction details. Please check your "
    "information and try again.",
    codes.CODE_TIMEOUT: "Sorry, the payment request timed out. Please try again or contact support if the problem "
    "persists.",
    codes.CODE_INVALID_CREDENTIALS: "Sorry, online payment is temporarily unavailable. Please contact support.",
}

# Codes looked for in the audit trail of a failed order, highest priority first.
NOTE_CODE_PRIORITY = (
    codes.CODE_INSUFFICIENT_FUNDS,
    codes.CODE_DO_NOT_HONOUR,
    codes.CODE_RESTRICTED_CARD,
    codes.CODE_INVALID_TRANSACTION,
    codes.CODE_TIMEOUT,
    codes.CODE_INVALID_CREDENTIALS,
    codes.CODE_DEBIT_FAILED,
)
NOTES_SCANNED = 10


def friendly_message(code: str) -> str:
    return _FRIENDLY_MESSAGES.get(code, GENERIC_ERROR_MESSAGE)


def _note_marker(code: str):
    return re.compile(rf"Code: {re.escape(code)}(?![0-9A-Za-z])")


def friendly_message_for_order(order: Order) -> str:
    """Explain why `order` failed using the codes recorded in its notes.

    Only the most recent notes are considered, newest first; the first note
    carrying a known code decides. Within one note, `NOTE_CODE_PRIORITY`
    breaks ties.
    """

    for note in recent_notes(order, limit=NOTES_SCANNED):
        for code in NOTE_CODE_PRIORITY:
            if _note_marker(code).search(note.content):
                return friendly_message(code)
    return FAILED_ORDER_MESSAGE


def page_message(order: Order) -> str:
    """Status text for the order-received page."""

    if order.has_status(Order.STATUS_PENDING):
        return AWAITING_CONFIRMATION_MESSAGE
    if order.has_status(*Order.PAID_STATUSES):
        return PAYMENT_CONFIRMED_MESSAGE
    if order.has_status(Order.STATUS_FAILED):
        return friendly_message_for_order(order)
    return DEFAULT_PAGE_MESSAGE
