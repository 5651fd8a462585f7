"""HTTP clients for the wallet activity providers.

Every provider exposes the same contract: ``fetch(wallet)`` returns the
provider-native records for that wallet, or raises. Each outbound request is
issued through the provider's RetryController, which also applies the shared
rate limit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from solana_whale_tracker.ingestor.normalizers import (
    HeliusNormalizer,
    Normalizer,
    SolanaFMNormalizer,
    SolanaRpcNormalizer,
    SolscanNormalizer,
)
from solana_whale_tracker.ingestor.retry import ProviderError, RetryController, ThrottledError

logger = logging.getLogger(__name__)

DEFAULT_HELIUS_URL = "https://api.helius.xyz"
DEFAULT_SOLSCAN_URL = "https://public-api.solscan.io"
DEFAULT_SOLANAFM_URL = "https://api.solana.fm"
DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_PAGE_LIMIT = 50
DEFAULT_SIGNATURE_LIMIT = 10

# JSON-RPC error codes that public Solana nodes use for rate limiting
RPC_THROTTLED_CODES = frozenset({429, -32005, -32429})


class RpcError(ProviderError):
    """Raised when a JSON-RPC call returns an error object."""

    def __init__(self, method: str, code: Any, message: str) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code


class TransactionProvider(Protocol):
    """A source of wallet activity."""

    name: str
    normalizer: Normalizer

    async def fetch(self, wallet: str) -> list[dict[str, Any]]:
        """Return provider-native transaction records for ``wallet``."""
        ...


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Pull the list of records out of a provider response body.

    Accepts a bare list or a list wrapped under ``data`` or ``result``.

    Raises:
        ProviderError: If the body has no recognizable record list.
    """
    if isinstance(payload, dict):
        for key in ("data", "result"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
    if not isinstance(payload, list):
        raise ProviderError(f"unexpected response shape: {type(payload).__name__}")
    return [record for record in payload if isinstance(record, dict)]


class HeliusProvider:
    """Helius enhanced transactions API (primary indexer)."""

    name = "Helius"

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry: RetryController,
        api_key: str,
        *,
        base_url: str = DEFAULT_HELIUS_URL,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> None:
        self._client = client
        self._retry = retry
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._limit = limit
        self.normalizer: Normalizer = HeliusNormalizer()

    async def fetch(self, wallet: str) -> list[dict[str, Any]]:
        url = f"{self._base_url}/v0/addresses/{wallet}/transactions"

        async def request(_endpoint: str | None) -> Any:
            response = await self._client.get(
                url,
                params={"api-key": self._api_key, "limit": self._limit},
            )
            response.raise_for_status()
            return response.json()

        return extract_records(await self._retry.call(request))


class SolscanProvider:
    """Solscan public API (first fallback)."""

    name = "Solscan"

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry: RetryController,
        *,
        base_url: str = DEFAULT_SOLSCAN_URL,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> None:
        self._client = client
        self._retry = retry
        self._base_url = base_url.rstrip("/")
        self._limit = limit
        self.normalizer: Normalizer = SolscanNormalizer()

    async def fetch(self, wallet: str) -> list[dict[str, Any]]:
        url = f"{self._base_url}/transaction/last"

        async def request(_endpoint: str | None) -> Any:
            response = await self._client.get(
                url,
                params={"account": wallet, "limit": self._limit},
                headers={"accept": "application/json"},
            )
            if response.status_code == 404:
                logger.warning("Solscan returned 404 for wallet %s", wallet)
            response.raise_for_status()
            return response.json()

        return extract_records(await self._retry.call(request))


class SolanaFMProvider:
    """SolanaFM transaction search (second fallback)."""

    name = "SolanaFM"

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry: RetryController,
        *,
        base_url: str = DEFAULT_SOLANAFM_URL,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> None:
        self._client = client
        self._retry = retry
        self._base_url = base_url.rstrip("/")
        self._limit = limit
        self.normalizer: Normalizer = SolanaFMNormalizer()

    async def fetch(self, wallet: str) -> list[dict[str, Any]]:
        url = f"{self._base_url}/v0/transactions/search"

        async def request(_endpoint: str | None) -> Any:
            response = await self._client.post(
                url,
                json={"address": wallet, "limit": self._limit},
            )
            if response.status_code == 405:
                logger.warning("SolanaFM rejected the request method, check API changes")
            response.raise_for_status()
            return response.json()

        return extract_records(await self._retry.call(request))


class SolanaRpcProvider:
    """Direct Solana JSON-RPC access over a rotatable list of endpoints.

    Lists the wallet's recent signatures, then loads each transaction that is
    not already known. The RetryController passed in owns the endpoint list
    and rotates it when a node throttles.
    """

    name = "Solana RPC"

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry: RetryController,
        *,
        normalizer: Normalizer | None = None,
        signature_limit: int = DEFAULT_SIGNATURE_LIMIT,
        is_known: Callable[[str], bool] | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            client: Shared HTTP client.
            retry: Controller holding the RPC endpoint list.
            normalizer: Record normalizer; defaults to plain RPC normalization.
            signature_limit: Signatures requested per wallet per poll.
            is_known: Predicate for signatures that need not be loaded again.
        """
        self._client = client
        self._retry = retry
        self._signature_limit = signature_limit
        self._is_known = is_known
        self._request_id = 0
        self.normalizer: Normalizer = normalizer or SolanaRpcNormalizer()

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        async def request(endpoint: str | None) -> Any:
            if endpoint is None:
                raise ProviderError("no RPC endpoint configured")
            self._request_id += 1
            response = await self._client.post(
                endpoint,
                json={
                    "jsonrpc": "2.0",
                    "id": self._request_id,
                    "method": method,
                    "params": params,
                },
            )
            response.raise_for_status()
            body = response.json()
            error = body.get("error")
            if error:
                code = error.get("code")
                message = str(error.get("message", "unknown error"))
                if code in RPC_THROTTLED_CODES or "rate limit" in message.lower():
                    raise ThrottledError(f"{method}: {message}")
                raise RpcError(method, code, message)
            return body.get("result")

        return await self._retry.call(request)

    async def fetch(self, wallet: str) -> list[dict[str, Any]]:
        signatures = await self._rpc(
            "getSignaturesForAddress",
            [wallet, {"limit": self._signature_limit}],
        )

        records: list[dict[str, Any]] = []
        for entry in signatures or []:
            signature = entry.get("signature")
            if not signature or (self._is_known and self._is_known(signature)):
                continue
            transaction = await self._rpc(
                "getTransaction",
                [
                    signature,
                    {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0},
                ],
            )
            if transaction:
                records.append(transaction)

        logger.debug("Loaded %d RPC transactions for %s", len(records), wallet)
        return records
