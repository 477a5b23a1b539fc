"""
Gateway registry.

``GATEWAY_CLASSES`` is the closed set of adapters. The registry builds one
instance per configured gateway at first use. A gateway that is enabled
but misconfigured is logged and left out, so one bad credential never
takes the other gateways down with it.
"""

from __future__ import annotations

import logging
import threading

from edubill.core.exceptions import GatewayConfigurationError
from edubill.core.exceptions import NotFoundError
from edubill.gateways.base import PaymentGateway
from edubill.gateways.config import GatewayConfig
from edubill.gateways.config import load_gateway_configs
from edubill.gateways.constants import GatewayCode
from edubill.gateways.paymob import PayMobGateway
from edubill.gateways.paytabs import PayTabsGateway
from edubill.gateways.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

GATEWAY_CLASSES: dict[str, type[PaymentGateway]] = {
    GatewayCode.STRIPE: StripeGateway,
    GatewayCode.PAYTABS: PayTabsGateway,
    GatewayCode.PAYMOB: PayMobGateway,
}


def build_gateway(code: str, config: GatewayConfig) -> PaymentGateway:
    try:
        gateway_class = GATEWAY_CLASSES[code]
    except KeyError:
        raise NotFoundError(f"Unknown payment gateway: {code}", code="unknown_gateway") from None
    gateway = gateway_class(config)
    if gateway.is_enabled:
        gateway.initialize()
    return gateway


class GatewayRegistry:
    """
    The gateways available to this process.

    Usage:
        registry = get_registry()
        gateway = registry.select_gateway("SAR", "SA", preferred="paytabs")
    """

    def __init__(self, configs: dict[str, GatewayConfig] | None = None):
        configs = load_gateway_configs() if configs is None else configs
        self._gateways: dict[str, PaymentGateway] = {}
        self.configuration_errors: dict[str, GatewayConfigurationError] = {}
        for code, config in configs.items():
            try:
                self._gateways[code] = build_gateway(code, config)
            except GatewayConfigurationError as exc:
                logger.error("Payment gateway '%s' disabled: %s", code, exc)
                self.configuration_errors[code] = exc

    def __contains__(self, code: str) -> bool:
        return code in self._gateways

    def get(self, code: str) -> PaymentGateway:
        try:
            return self._gateways[code]
        except KeyError:
            raise NotFoundError(
                f"Payment gateway '{code}' is not configured",
                code="unknown_gateway",
            ) from None

    def get_enabled(self, code: str) -> PaymentGateway:
        gateway = self.get(code)
        if not gateway.is_enabled:
            raise NotFoundError(f"Payment gateway '{code}' is disabled", code="gateway_disabled")
        return gateway

    def enabled(self) -> list[PaymentGateway]:
        """Enabled gateways, lowest priority value first."""
        gateways = [g for g in self._gateways.values() if g.is_enabled]
        return sorted(gateways, key=lambda g: (g.priority, g.code))

    def determine_supported_gateways(self, currency: str, country: str) -> list[PaymentGateway]:
        return [g for g in self.enabled() if g.supports(currency, country)]

    def select_gateway(
        self,
        currency: str,
        country: str,
        preferred: str | None = None,
    ) -> PaymentGateway | None:
        """
        Pick the gateway for a tenant.

        ``preferred`` wins when it is enabled and supports the currency and
        country. Otherwise the highest-priority supported gateway is used.
        Returns None when nothing supports the pair.
        """
        supported = self.determine_supported_gateways(currency, country)
        if preferred:
            for gateway in supported:
                if gateway.code == preferred:
                    return gateway
        return supported[0] if supported else None

    def fallback_for(self, gateway: PaymentGateway) -> PaymentGateway | None:
        """The enabled fallback configured for ``gateway``, if any."""
        code = gateway.fallback_gateway
        if not code or code == gateway.code:
            return None
        fallback = self._gateways.get(code)
        if fallback is None or not fallback.is_enabled:
            return None
        return fallback


_registry: GatewayRegistry | None = None
_registry_lock = threading.Lock()


def get_registry() -> GatewayRegistry:
    global _registry  # noqa: PLW0603
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = GatewayRegistry()
    return _registry


def reset_registry() -> None:
    global _registry  # noqa: PLW0603
    with _registry_lock:
        _registry = None
