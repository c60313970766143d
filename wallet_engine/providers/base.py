"""
Abstract wallet provider interface.

All providers (Easypaisa, JazzCash, the local mock) implement the same two
capabilities (initiate a charge, inquire about its status) and hand back
one normalized ProviderResponse. Provider-specific field names are
extracted inside each adapter and never leak upward.

Adapters keep configuration only. Each call opens its own httpx client, so
a single instance can be shared across concurrent requests.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from wallet_engine.engine.status import NormalizedStatus, StatusRules, normalize
from wallet_engine.errors import NetworkError, ProviderError

logger = logging.getLogger("wallet_engine.providers")

DEFAULT_TIMEOUT_SECONDS = 30.0
PK_MOBILE_PATTERN = re.compile(r"03\d{9}")


@dataclass
class ProviderResponse:
    """Normalized envelope for both initiate and inquiry responses."""

    raw: Any
    response_code: Optional[str] = None
    response_desc: Optional[str] = None
    transaction_status: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)  # provider-specific extras


class PaymentProvider(ABC):
    """Abstract base class for wallet providers."""

    channel: str = ""
    currency: str = "PKR"
    payer_account_pattern: re.Pattern = PK_MOBILE_PATTERN
    # Which stored field inquire() expects: "reference" or "provider_transaction_id"
    lookup_field: str = "provider_transaction_id"

    def __init__(
        self,
        base_url: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'easypaisa')."""
        ...

    @property
    @abstractmethod
    def rules(self) -> StatusRules:
        """Accepted codes and status patterns used by normalize()."""
        ...

    @abstractmethod
    async def initiate(self, reference: str, amount: float, payer_account: str) -> ProviderResponse:
        """
        Ask the provider to start a charge.

        Raises:
            NetworkError: Transport failure or timeout; outcome unknown.
            ProviderError: The provider returned an error payload.
        """
        ...

    @abstractmethod
    async def inquire(self, lookup_key: str) -> ProviderResponse:
        """
        Ask the provider for the current status of a charge.

        `lookup_key` is the stored field named by `lookup_field`.

        Raises:
            NetworkError: Transport failure or timeout.
            ProviderError: The provider returned an error payload.
        """
        ...

    def lookup_key(self, transaction: Any) -> Optional[str]:
        """Pick the identifier inquire() expects from a stored transaction."""
        return getattr(transaction, self.lookup_field, None)

    def normalize(self, response: ProviderResponse) -> NormalizedStatus:
        return normalize(response.transaction_status, response.response_code, self.rules)

    async def _post_json(
        self,
        path: str,
        body: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
        error_fields: tuple[str, str] = ("responseCode", "responseDesc"),
        id_field: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        POST a JSON body and return the decoded JSON object.

        Transport problems become NetworkError; HTTP error statuses and
        bodies that are not a JSON object become ProviderError. `request_id`
        is an id the request itself assigned; both errors carry it so the
        charge can still be inquired later.
        """
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("[%s] Request timeout: %s", self.name, url)
            raise NetworkError(
                f"{self.name} network error: Request timeout",
                provider=self.name,
                provider_transaction_id=request_id,
            ) from e
        except httpx.TransportError as e:
            logger.error("[%s] Network error: %s", self.name, e)
            raise NetworkError(
                f"{self.name} network error: {e}",
                provider=self.name,
                provider_transaction_id=request_id,
            ) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            payload = data if isinstance(data, dict) else {}
            code_field, desc_field = error_fields
            code = str_or_none(payload.get(code_field))
            message = str_or_none(payload.get(desc_field)) or f"HTTP {response.status_code}"
            logger.error("[%s] Error response: %s - %s", self.name, code, message)
            raise ProviderError(
                f"{self.name} error: {message}",
                code=code,
                http_status=response.status_code,
                raw=data if data is not None else response.text,
                provider=self.name,
                provider_transaction_id=(str_or_none(payload.get(id_field)) if id_field else None) or request_id,
            )

        if not isinstance(data, dict):
            raise ProviderError(
                f"{self.name} parse error: response is not a JSON object",
                http_status=response.status_code,
                raw=response.text,
                provider=self.name,
                provider_transaction_id=request_id,
            )

        return data


def str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
