"""
Provider lookup by payment method name.

A provider is only registered when its credentials are configured; an
unconfigured provider is logged and left out, so a charge naming it is
rejected as an unsupported method rather than failing at the provider.
"""

import logging
from collections.abc import Iterable
from typing import Optional

from wallet_engine.config import Settings
from wallet_engine.errors import ValidationError
from wallet_engine.models.enums import RejectReason
from wallet_engine.providers.base import PaymentProvider
from wallet_engine.providers.easypaisa import EasypaisaProvider
from wallet_engine.providers.jazzcash import JazzCashProvider
from wallet_engine.providers.mock_provider import MockPaymentProvider

logger = logging.getLogger("wallet_engine.providers.registry")


class ProviderRegistry:
    def __init__(self, providers: Iterable[PaymentProvider] = ()):
        self._providers: dict[str, PaymentProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: PaymentProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: Optional[str]) -> Optional[PaymentProvider]:
        if not name:
            return None
        return self._providers.get(name.strip().lower())

    def resolve(self, name: Optional[str]) -> PaymentProvider:
        """Like get(), but an unknown name is a caller error."""
        provider = self.get(name)
        if provider is None:
            supported = ", ".join(sorted(self._providers)) or "none"
            raise ValidationError(
                RejectReason.UNSUPPORTED_METHOD,
                f"Payment method '{name}' is not supported. Use one of: {supported}.",
            )
        return provider

    @property
    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._providers)


def build_registry(settings: Settings) -> ProviderRegistry:
    """Register every provider whose credentials are present in settings."""
    registry = ProviderRegistry()
    timeout = settings.provider_timeout_seconds

    if settings.easypaisa_username and settings.easypaisa_password and settings.easypaisa_store_id:
        registry.register(EasypaisaProvider(
            base_url=settings.easypaisa_base_url,
            username=settings.easypaisa_username,
            password=settings.easypaisa_password,
            store_id=settings.easypaisa_store_id,
            account_num=settings.easypaisa_account_num,
            default_email=settings.easypaisa_default_email,
            timeout=timeout,
        ))
    else:
        logger.warning("EASYPAISA credentials not configured - Easypaisa charges are disabled")

    if settings.jazzcash_merchant_id and settings.jazzcash_password and settings.jazzcash_integrity_salt:
        registry.register(JazzCashProvider(
            base_url=settings.jazzcash_base_url,
            merchant_id=settings.jazzcash_merchant_id,
            password=settings.jazzcash_password,
            integrity_salt=settings.jazzcash_integrity_salt,
            return_url=settings.jazzcash_return_url,
            timeout=timeout,
        ))
    else:
        logger.warning("JAZZCASH credentials not configured - JazzCash charges are disabled")

    if settings.mock_provider_enabled:
        registry.register(MockPaymentProvider(
            failure_rate=settings.mock_failure_rate,
            latency_ms=settings.mock_latency_ms,
            settle_rate=settings.mock_settle_rate,
        ))

    logger.info("Registered providers: %s", ", ".join(registry.names) or "none")
    return registry
