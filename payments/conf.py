"""Gateway configuration resolved from Django settings.

Settings are read once per request into an immutable `GatewayConfig` which
is passed explicitly to the reconciler and the outbound services.
"""

from dataclasses import dataclass, field
from typing import Tuple

from common.choices import UnknownCodePolicy
from django.conf import settings
from payments.exceptions import UnknownGateway
from payments.methods import PAYMENT_METHODS

DEFAULT_API_BASE_URL = "https://api.key2payment.com/"


@dataclass(frozen=True)
class GatewayConfig:
    gateway_id: str
    api_base_url: str = DEFAULT_API_BASE_URL
    merchant_id: str = ""
    password: str = ""
    disable_url_fallback: bool = True
    debug: bool = False
    enabled: bool = True
    unknown_code_policy: str = UnknownCodePolicy.APPROVE
    webhook_ips: Tuple[str, ...] = field(default_factory=tuple)
    site_url: str = "http://localhost:8000"

    @property
    def is_configured(self) -> bool:
        return bool(self.merchant_id and self.password)

    @property
    def is_available(self) -> bool:
        return self.enabled and self.is_configured

    def build_api_url(self, endpoint: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def absolute_url(self, path: str) -> str:
        return f"{self.site_url.rstrip('/')}/{path.lstrip('/')}"


def get_gateway_config(gateway_id: str) -> GatewayConfig:
    """Build the configuration for `gateway_id`.

    Shared values come from `settings.KEY2PAY`; `settings.KEY2PAY_GATEWAYS`
    may override any of them per gateway. Raises `UnknownGateway` for ids
    without a registered payment method.
    """

    if gateway_id not in PAYMENT_METHODS:
        raise UnknownGateway(gateway_id)

    values = dict(getattr(settings, "KEY2PAY", {}) or {})
    overrides = (getattr(settings, "KEY2PAY_GATEWAYS", {}) or {}).get(gateway_id) or {}
    values.update(overrides)

    policy = str(values.get("UNKNOWN_CODE_POLICY") or UnknownCodePolicy.APPROVE).lower()
    if policy not in UnknownCodePolicy.values:
        policy = UnknownCodePolicy.APPROVE

    return GatewayConfig(
        gateway_id=gateway_id,
        api_base_url=(values.get("API_BASE_URL") or DEFAULT_API_BASE_URL).strip(),
        merchant_id=(values.get("MERCHANT_ID") or "").strip(),
        password=(values.get("PASSWORD") or "").strip(),
        disable_url_fallback=bool(values.get("DISABLE_URL_FALLBACK", True)),
        debug=bool(values.get("DEBUG", False)),
        enabled=bool(values.get("ENABLED", True)),
        unknown_code_policy=policy,
        webhook_ips=tuple(values.get("WEBHOOK_IPS") or ()),
        site_url=values.get("SITE_URL") or "http://localhost:8000",
    )
