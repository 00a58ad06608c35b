"""Key2Pay payment-method variants.

Each method is a plain record: the processor's payment method type, the API
endpoint used to open a session, and any checkout fields the customer must
supply. `build_initiation_payload` is shared by all of them.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class CheckoutField:
    name: str
    label: str
    placeholder: str = ""
    required: bool = True
    missing_message: str = ""


@dataclass(frozen=True)
class PaymentMethod:
    gateway_id: str
    payment_method_type: str
    title: str
    description: str
    endpoint: str
    extra_checkout_fields: Tuple[CheckoutField, ...] = field(default_factory=tuple)
    # The processor must return both a transaction id and a token for the
    # session to be usable.
    requires_session_token: bool = False

    def build_initiation_payload(self, order, context: "InitiationContext") -> Dict:
        return build_initiation_payload(self, order, context)


@dataclass(frozen=True)
class InitiationContext:
    track_id: str
    return_url: str
    failure_url: str
    server_url: str
    customer_ip: str = ""
    site_name: str = ""
    language: str = DEFAULT_LANGUAGE
    checkout_fields: Mapping[str, str] = field(default_factory=dict)


CARD = PaymentMethod(
    gateway_id="key2pay_credit",
    payment_method_type="CARD",
    title="Key2Pay Credit Card",
    description="Pay securely with your credit or debit card via Key2Pay.",
    endpoint="/PaymentToken/Create",
)

THAI_DEBIT = PaymentMethod(
    gateway_id="key2pay_thai_debit",
    payment_method_type="THAI_DEBIT",
    title="Key2Pay Thai QR Debit (QR Payment)",
    description="Pay using Thai QR Debit payments via Key2Pay.",
    endpoint="/transaction/s2s",
    extra_checkout_fields=(
        CheckoutField(
            name="payer_bank_code",
            label="Bank Code",
            placeholder="e.g., 014",
            missing_message="Please provide your Bank Code.",
        ),
        CheckoutField(
            name="payer_account_no",
            label="Bank Account Number",
            placeholder="Enter your debit account number",
            missing_message="Please provide your Bank Account Number.",
        ),
        CheckoutField(
            name="payer_account_name",
            label="Bank Account Name",
            placeholder="Name on your debit account",
            missing_message="Please provide your Bank Account Name.",
        ),
    ),
    requires_session_token=True,
)

INSTAPAY = PaymentMethod(
    gateway_id="key2pay_instapay",
    payment_method_type="PHQR",
    title="Key2Pay InstaPay",
    description="Pay instantly using InstaPay via your banking app.",
    endpoint="/PaymentToken/Create",
)

PAYMENT_METHODS: Dict[str, PaymentMethod] = {m.gateway_id: m for m in (CARD, THAI_DEBIT, INSTAPAY)}


def build_initiation_payload(method: PaymentMethod, order, context: InitiationContext) -> Dict:
    """Build the body of the session-creation request for `order`.

    Credentials are not included; the caller adds them.
    """

    billing = order.billing or {}
    payload = {
        "payment_method": {"type": method.payment_method_type},
        "trackid": context.track_id,
        "bill_currencycode": order.currency,
        "bill_amount": float(order.total),
        "returnUrl": context.return_url,
        "returnUrl_on_failure": context.failure_url,
        "serverUrl": context.server_url,
        "productdesc": f"Order {order.id} from {context.site_name}".strip(),
        "bill_customerip": context.customer_ip,
        "bill_email": order.email,
        "bill_phone": billing.get("phone") or "",
        "bill_country": billing.get("country") or "",
        "bill_city": billing.get("city") or "",
        "bill_state": billing.get("state") or "",
        "bill_address": billing.get("address") or "",
        "bill_zip": billing.get("zip") or "",
        "lang": context.language,
    }
    for checkout_field in method.extra_checkout_fields:
        payload[checkout_field.name] = (context.checkout_fields.get(checkout_field.name) or "").strip()
    return payload
