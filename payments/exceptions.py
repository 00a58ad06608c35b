"""Errors raised while reconciling or initiating Key2Pay payments.

Reconciliation errors carry the HTTP status used in the webhook
acknowledgment, so the view only has to render them.
"""


class ReconciliationError(Exception):
    http_status = 400
    default_message = "Unable to process payment notification."

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedNotification(ReconciliationError):
    default_message = "Invalid webhook data received."


class NotFound(ReconciliationError):
    """The notification cannot be routed to an order."""

    def __init__(self, track_id: str = "", message: str = ""):
        self.track_id = track_id
        super().__init__(message or f"Order not found for track_id: {track_id}")


class MalformedTrackId(NotFound):
    http_status = 400


class OrderNotFound(NotFound):
    http_status = 404


class TokenMismatch(ReconciliationError):
    http_status = 403
    default_message = "Webhook token does not match this order."

    def __init__(self, order_id=None, message: str = ""):
        self.order_id = order_id
        super().__init__(message)


class UnknownGateway(LookupError):
    def __init__(self, gateway_id: str):
        self.gateway_id = gateway_id
        super().__init__(f"Unknown Key2Pay gateway: {gateway_id}")


class PaymentInitiationError(ValueError):
    """Raised when the processor refuses or fails to create a payment session.

    `user_message` is safe to show at checkout; `detail` is for logs.
    """

    def __init__(self, user_message: str, detail: str = "", redirect: str = ""):
        self.user_message = user_message
        self.detail = detail or user_message
        self.redirect = redirect
        super().__init__(self.detail)
