from wallet_engine.providers.base import PaymentProvider, ProviderResponse
from wallet_engine.providers.easypaisa import EasypaisaProvider
from wallet_engine.providers.jazzcash import JazzCashProvider
from wallet_engine.providers.mock_provider import MockPaymentProvider
from wallet_engine.providers.registry import ProviderRegistry, build_registry

__all__ = [
    "PaymentProvider",
    "ProviderResponse",
    "EasypaisaProvider",
    "JazzCashProvider",
    "MockPaymentProvider",
    "ProviderRegistry",
    "build_registry",
]
