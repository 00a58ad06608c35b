"""Map normalized Key2Pay codes to order transitions.

`classify` is pure: it reads the order and returns a `Transition` describing
the target status, the audit note and whether payment completion must be
recorded. The reconciler applies it.

Status never regresses: a paid order (processing/completed) is not moved to
pending, failed or on-hold, and a failed order is not moved back to pending.
A notification that would do so leaves the status unchanged and says so in
its note.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from common.choices import PaymentOutcome, UnknownCodePolicy
from orders.models import Order
from payments import codes
from payments.messages import friendly_message

# Statuses a failure or hold may overwrite.
OPEN_STATUSES = frozenset({Order.STATUS_PENDING, Order.STATUS_ON_HOLD, Order.STATUS_FAILED})


@dataclass(frozen=True)
class Transition:
    code: str
    outcome: str
    from_status: str
    target_status: str
    note_text: str
    user_message: str
    complete_payment: bool = False
    transaction_id: str = ""

    @property
    def changes_status(self) -> bool:
        return self.from_status != self.target_status


def _as_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def _amount_mismatch(order: Order, amount) -> Optional[Decimal]:
    received = _as_decimal(amount)
    if received is None or not order.total or order.total <= 0:
        return None
    if received != Decimal(order.total).quantize(Decimal("0.01")):
        return received
    return None


def _skipped(order: Order, code: str, outcome: str, transaction_id: str, note: str) -> Transition:
    return Transition(
        code=code,
        outcome=outcome,
        from_status=order.status,
        target_status=order.status,
        note_text=(
            f"Key2Pay notification ignored for {order.status} order: {note} "
            f"Transaction ID: {transaction_id}, Code: {code}"
        ),
        user_message=friendly_message(code),
        transaction_id=transaction_id,
    )


def _approve(order: Order, code: str, outcome: str, transaction_id: str, note: str, amount) -> Transition:
    if order.has_status(Order.STATUS_REFUNDED):
        return _skipped(order, code, outcome, transaction_id, "payment already refunded.")

    mismatch = _amount_mismatch(order, amount)
    if mismatch is not None and not order.has_status(*Order.PAID_STATUSES):
        return Transition(
            code=code,
            outcome=outcome,
            from_status=order.status,
            target_status=Order.STATUS_ON_HOLD,
            note_text=(
                f"Key2Pay payment received, but amount mismatch. Expected: {order.total}, "
                f"Received: {mismatch}. Transaction ID: {transaction_id}, Code: {code}"
            ),
            user_message=friendly_message(codes.CODE_DEBIT_PENDING),
            transaction_id=transaction_id,
        )

    if order.has_status(*Order.NEEDS_PAYMENT_STATUSES):
        target = Order.STATUS_COMPLETED
    else:
        target = order.status

    if order.transaction_id and transaction_id and order.transaction_id != transaction_id:
        note = (
            f"Key2Pay payment re-confirmed with a different transaction ID. "
            f"Recorded: {order.transaction_id}, Received: {transaction_id}, Code: {code}"
        )

    return Transition(
        code=code,
        outcome=outcome,
        from_status=order.status,
        target_status=target,
        note_text=note,
        user_message=friendly_message(codes.CODE_APPROVED),
        complete_payment=True,
        transaction_id=transaction_id,
    )


def classify(
    order: Order,
    code: str,
    transaction_id: str = "",
    error_text: str = "",
    *,
    amount=None,
    unknown_code_policy: str = UnknownCodePolicy.APPROVE,
) -> Transition:
    """Decide what a normalized `code` means for `order`."""

    transaction_id = transaction_id or ""
    error_text = error_text or ""
    description = codes.status_message(code)

    if code == codes.CODE_CAPTURED:
        return _approve(
            order,
            code,
            PaymentOutcome.APPROVED,
            transaction_id,
            f"Key2Pay payment completed successfully. Transaction ID: {transaction_id}, "
            f"Code: {code} - {description}",
            amount,
        )

    if code == codes.CODE_APPROVED:
        return _approve(
            order,
            code,
            PaymentOutcome.APPROVED,
            transaction_id,
            f"Key2Pay payment approved. Transaction ID: {transaction_id}, Code: {code} - {description}",
            amount,
        )

    if code in codes.PENDING_CODES:
        if not order.has_status(Order.STATUS_PENDING):
            return _skipped(order, code, PaymentOutcome.PENDING, transaction_id, "payment reported as processing.")
        return Transition(
            code=code,
            outcome=PaymentOutcome.PENDING,
            from_status=order.status,
            target_status=Order.STATUS_PENDING,
            note_text=(
                f"Key2Pay payment is processing. Transaction ID: {transaction_id}, Code: {code} - {description}"
            ),
            user_message=friendly_message(code),
            transaction_id=transaction_id,
        )

    if code in codes.FAILURE_CODES:
        if not order.has_status(*OPEN_STATUSES):
            return _skipped(
                order,
                code,
                PaymentOutcome.FAILED,
                transaction_id,
                f"payment reported as failed ({description}) Error: {error_text}.",
            )
        return Transition(
            code=code,
            outcome=PaymentOutcome.FAILED,
            from_status=order.status,
            target_status=Order.STATUS_FAILED,
            note_text=(
                f"Key2Pay payment failed. {description} Transaction ID: {transaction_id}, "
                f"Code: {code}, Error: {error_text}"
            ),
            user_message=friendly_message(code),
            transaction_id=transaction_id,
        )

    # Unknown codes are treated as approved unless the gateway is configured
    # to hold them for review.
    if unknown_code_policy == UnknownCodePolicy.HOLD:
        if not order.has_status(*OPEN_STATUSES):
            return _skipped(order, code, PaymentOutcome.UNKNOWN, transaction_id, "unknown response code.")
        return Transition(
            code=code,
            outcome=PaymentOutcome.UNKNOWN,
            from_status=order.status,
            target_status=Order.STATUS_ON_HOLD,
            note_text=(
                f"Key2Pay payment returned an unknown response code and was put on hold for review. "
                f"Transaction ID: {transaction_id}, Code: {code}, Error: {error_text}"
            ),
            user_message=friendly_message(code),
            transaction_id=transaction_id,
        )

    return _approve(
        order,
        code,
        PaymentOutcome.UNKNOWN,
        transaction_id,
        f"Key2Pay payment processed with unknown response code. Transaction ID: {transaction_id}, "
        f"Code: {code} - {description}",
        amount,
    )
