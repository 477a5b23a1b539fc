"""
Per-deployment gateway configuration.

``settings.PAYMENT_GATEWAYS`` maps a gateway code to a plain dict. Each dict
is validated into an immutable GatewayConfig when the registry is built.
Missing currency/country lists fall back to the gateway's defaults.
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from edubill.gateways.constants import DEFAULT_PAYMENT_METHODS
from edubill.gateways.constants import DEFAULT_SUPPORTED_COUNTRIES
from edubill.gateways.constants import DEFAULT_SUPPORTED_CURRENCIES
from edubill.gateways.constants import GatewayCode

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3


class GatewayConfig(BaseModel):
    """
    Settings for one payment gateway.
    """

    model_config = ConfigDict(frozen=True)

    code: GatewayCode
    enabled: bool = False
    priority: int = Field(
        default=100,
        description="Lower values are tried first.",
    )
    supported_currencies: tuple[str, ...] = ()
    supported_countries: tuple[str, ...] = ()
    supported_payment_methods: tuple[str, ...] = ()
    fallback_gateway: GatewayCode | None = None
    credentials: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(
        default=2,
        ge=0,
        le=MAX_RETRY_ATTEMPTS - 1,
        description="Retries after the first attempt, for transient errors only.",
    )

    @field_validator("supported_currencies", "supported_countries", mode="before")
    @classmethod
    def _upper(cls, value):
        return tuple(str(v).upper() for v in value or ())

    @field_validator("fallback_gateway", mode="before")
    @classmethod
    def _blank_fallback(cls, value):
        return value or None

    @model_validator(mode="before")
    @classmethod
    def _apply_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("code") not in GatewayCode.values:
            return data
        code = GatewayCode(data["code"])
        data = dict(data)
        data["supported_currencies"] = (
            data.get("supported_currencies") or DEFAULT_SUPPORTED_CURRENCIES[code]
        )
        data["supported_countries"] = (
            data.get("supported_countries") or DEFAULT_SUPPORTED_COUNTRIES[code]
        )
        data["supported_payment_methods"] = (
            data.get("supported_payment_methods") or DEFAULT_PAYMENT_METHODS[code]
        )
        if data.get("fallback_gateway") == code:
            data["fallback_gateway"] = None
        return data

    def credential(self, name: str, default: str = "") -> str:
        return self.credentials.get(name) or default

    def missing_credentials(self, required: tuple[str, ...]) -> list[str]:
        return [name for name in required if not self.credentials.get(name)]


def load_gateway_configs(raw: dict | None = None) -> dict[GatewayCode, GatewayConfig]:
    """
    Validate ``settings.PAYMENT_GATEWAYS`` into GatewayConfig objects.

    Unknown gateway codes are logged and skipped.
    """
    raw = settings.PAYMENT_GATEWAYS if raw is None else raw
    configs: dict[GatewayCode, GatewayConfig] = {}
    for code, options in raw.items():
        if code not in GatewayCode.values:
            logger.warning("Ignoring unknown payment gateway '%s' in settings", code)
            continue
        configs[GatewayCode(code)] = GatewayConfig(code=code, **options)
    return configs
