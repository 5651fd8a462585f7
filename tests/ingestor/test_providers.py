"""Tests for provider HTTP clients."""

import json
from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from solana_whale_tracker.ingestor.providers import (
    HeliusProvider,
    RpcError,
    SolanaFMProvider,
    SolanaRpcProvider,
    SolscanProvider,
    extract_records,
)
from solana_whale_tracker.ingestor.rate_limiter import RateLimiter
from solana_whale_tracker.ingestor.retry import ProviderError, RetryController, ThrottledError

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _retry(endpoints: list[str] | None = None, max_retries: int = 2) -> RetryController:
    return RetryController(
        RateLimiter(100, 60.0),
        endpoints=endpoints or (),
        max_retries=max_retries,
        sleep=AsyncMock(),
    )


class TestExtractRecords:
    """Tests for extract_records()."""

    def test_bare_list(self) -> None:
        """Test a top-level list."""
        assert extract_records([{"a": 1}, "junk"]) == [{"a": 1}]

    def test_wrapped(self) -> None:
        """Test lists under data or result."""
        assert extract_records({"data": [{"a": 1}]}) == [{"a": 1}]
        assert extract_records({"result": [{"b": 2}]}) == [{"b": 2}]

    def test_unexpected_shape(self) -> None:
        """Test bodies without a record list raise."""
        with pytest.raises(ProviderError):
            extract_records({"error": "nope"})


class TestHeliusProvider:
    """Tests for HeliusProvider."""

    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        """Test request shape and parsed records."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"signature": "sig1"}])

        async with _client(handler) as client:
            provider = HeliusProvider(client, _retry(), "secret", base_url="https://helius.test/")
            records = await provider.fetch(WALLET)

        assert records == [{"signature": "sig1"}]
        assert seen[0].url.path == f"/v0/addresses/{WALLET}/transactions"
        assert seen[0].url.params["api-key"] == "secret"
        assert seen[0].url.params["limit"] == "50"

    @pytest.mark.asyncio
    async def test_throttled_then_success(self) -> None:
        """Test a 429 is retried through the controller."""
        responses = [httpx.Response(429), httpx.Response(200, json=[{"signature": "s"}])]

        def handler(_request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with _client(handler) as client:
            provider = HeliusProvider(client, _retry(), "key")
            assert await provider.fetch(WALLET) == [{"signature": "s"}]

    @pytest.mark.asyncio
    async def test_server_error_is_fatal(self) -> None:
        """Test a 500 propagates without retry."""
        calls = 0

        def handler(_request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500)

        async with _client(handler) as client:
            provider = HeliusProvider(client, _retry(), "key")
            with pytest.raises(httpx.HTTPStatusError):
                await provider.fetch(WALLET)
        assert calls == 1


class TestSolscanProvider:
    """Tests for SolscanProvider."""

    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        """Test request shape."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [{"txHash": "h"}]})

        async with _client(handler) as client:
            provider = SolscanProvider(client, _retry(), base_url="https://solscan.test", limit=5)
            assert await provider.fetch(WALLET) == [{"txHash": "h"}]

        assert seen[0].url.path == "/transaction/last"
        assert seen[0].url.params["account"] == WALLET
        assert seen[0].url.params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_not_found_raises(self) -> None:
        """Test 404 is reported as a failure."""
        async with _client(lambda _r: httpx.Response(404)) as client:
            provider = SolscanProvider(client, _retry())
            with pytest.raises(httpx.HTTPStatusError):
                await provider.fetch(WALLET)


class TestSolanaFMProvider:
    """Tests for SolanaFMProvider."""

    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        """Test the search is posted as JSON."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"result": [{"signatures": ["fm"]}]})

        async with _client(handler) as client:
            provider = SolanaFMProvider(client, _retry(), base_url="https://fm.test")
            assert await provider.fetch(WALLET) == [{"signatures": ["fm"]}]

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/v0/transactions/search"
        assert json.loads(seen[0].content) == {"address": WALLET, "limit": 50}


class TestSolanaRpcProvider:
    """Tests for SolanaRpcProvider."""

    @pytest.mark.asyncio
    async def test_fetch_skips_known_signatures(self) -> None:
        """Test signatures are listed then unknown ones loaded."""
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            bodies.append(body)
            if body["method"] == "getSignaturesForAddress":
                result = [{"signature": "known"}, {"signature": "new"}]
            else:
                result = {"transaction": {"signatures": [body["params"][0]]}}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        async with _client(handler) as client:
            provider = SolanaRpcProvider(
                client,
                _retry(["https://rpc.test"]),
                signature_limit=7,
                is_known=lambda sig: sig == "known",
            )
            records = await provider.fetch(WALLET)

        assert records == [{"transaction": {"signatures": ["new"]}}]
        assert [b["method"] for b in bodies] == ["getSignaturesForAddress", "getTransaction"]
        assert bodies[0]["params"] == [WALLET, {"limit": 7}]
        assert bodies[1]["params"][1] == {
            "encoding": "jsonParsed",
            "maxSupportedTransactionVersion": 0,
        }

    @pytest.mark.asyncio
    async def test_rate_limit_error_rotates_endpoint(self) -> None:
        """Test a JSON-RPC rate limit error fails over to the next endpoint."""
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if request.url.host == "rpc-a.test":
                error = {"code": 429, "message": "Too many requests"}
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": error})
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": []})

        async with _client(handler) as client:
            provider = SolanaRpcProvider(
                client, _retry(["https://rpc-a.test", "https://rpc-b.test"])
            )
            assert await provider.fetch(WALLET) == []

        assert hosts == ["rpc-a.test", "rpc-b.test"]

    @pytest.mark.asyncio
    async def test_rate_limit_exhaustion(self) -> None:
        """Test persistent throttling surfaces as ThrottledError."""
        error = {"code": -32005, "message": "node is behind"}

        async with _client(
            lambda _r: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": error})
        ) as client:
            provider = SolanaRpcProvider(client, _retry(["https://rpc.test"], max_retries=1))
            with pytest.raises(ThrottledError):
                await provider.fetch(WALLET)

    @pytest.mark.asyncio
    async def test_other_rpc_error_is_fatal(self) -> None:
        """Test non-throttling RPC errors raise RpcError."""
        error = {"code": -32602, "message": "Invalid param"}

        async with _client(
            lambda _r: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": error})
        ) as client:
            provider = SolanaRpcProvider(client, _retry(["https://rpc.test"]))
            with pytest.raises(RpcError) as exc_info:
                await provider.fetch(WALLET)

        assert exc_info.value.code == -32602
        assert exc_info.value.method == "getSignaturesForAddress"

    @pytest.mark.asyncio
    async def test_no_endpoint(self) -> None:
        """Test a provider without endpoints fails."""
        async with _client(lambda _r: httpx.Response(200)) as client:
            provider = SolanaRpcProvider(client, _retry())
            with pytest.raises(ProviderError, match="no RPC endpoint"):
                await provider.fetch(WALLET)
