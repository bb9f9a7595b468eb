"""
Base class for upstream market data providers.

A provider turns one entity key into a dictionary of logical fields. All
failures are converted into a failed ProviderResult so that one provider
going down never aborts the entity:

- 401/403 -> authentication
- 404 -> not found
- 429 -> rate limited (no backoff; the entity simply lacks these fields)
- 5xx and other non-2xx -> upstream unavailable
- timeouts / transport errors -> network
- undecodable JSON -> malformed payload
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from core.exceptions import (
    MalformedPayloadError,
    ProviderAuthenticationError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from schemas.queue import ErrorKind, ProviderResult
import logging

logger = logging.getLogger(__name__)

# Query parameters that carry credentials and must not be logged
SECRET_PARAMS = ("token", "apiKey", "apikey")


class Provider(ABC):
    """
    Abstract base class for all providers.

    Attributes:
        name: Provider identifier used in logs and results
        min_interval_seconds: Minimum spacing between entities while active
        timeout: Per-request timeout in seconds
    """

    name = "provider"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str,
        timeout: float = 30.0,
        min_interval_seconds: float = 1.0
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.min_interval_seconds = min_interval_seconds

    @abstractmethod
    async def fetch_fields(self, entity_key: str) -> Dict[str, Any]:
        """
        Fetch and map upstream data for one entity.

        Returns:
            Logical field -> value (values may be None)

        Raises:
            ProviderError: For any upstream failure
        """
        pass

    async def fetch(self, entity_key: str) -> ProviderResult:
        """Fetch fields for one entity; never raises"""
        try:
            fields = await self.fetch_fields(entity_key)
        except ProviderError as e:
            logger.warning(
                f"{self.name} failed for {entity_key}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return ProviderResult.failure(self.name, entity_key, ErrorKind(e.error_kind), e.message)
        except Exception as e:
            logger.exception(f"{self.name} raised unexpectedly for {entity_key}")
            return ProviderResult.failure(
                self.name, entity_key, ErrorKind.UNEXPECTED, f"{type(e).__name__}: {e}"
            )

        return ProviderResult.success(self.name, entity_key, fields)

    async def _get_json(self, path: str, entity_key: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET ``base_url + path`` and decode the JSON body.

        Raises:
            ProviderError subclasses mapped from the HTTP status or transport failure
        """
        url = f"{self.base_url}{path}"
        context = {"provider": self.name, "entity_key": entity_key, "url": url}

        logger.debug(f"{self.name}: GET {url} params={_redact(params)}")

        try:
            response = await self.client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ProviderNetworkError(
                f"Request timed out after {self.timeout}s",
                context={**context, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise ProviderNetworkError(
                f"Network error: {type(e).__name__}",
                context=context,
                original_exception=e
            )

        status = response.status_code
        context["status_code"] = status

        if status in (401, 403):
            raise ProviderAuthenticationError(f"Authentication failed (HTTP {status})", context=context)

        if status == 404:
            raise ProviderNotFoundError("Resource not found (HTTP 404)", context=context)

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise ProviderRateLimitError(
                "Rate limit exceeded (HTTP 429)",
                context=context,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if status >= 400:
            raise ProviderUnavailableError(
                f"HTTP {status}",
                context={**context, "response_body": response.text[:500]}
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedPayloadError(
                "Failed to parse JSON response",
                context={**context, "response_body": response.text[:500]},
                original_exception=e
            )


def _redact(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {k: ("***" if k in SECRET_PARAMS else v) for k, v in params.items()}
