"""Tests for the Telegram Bot API transport."""

import json
from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from solana_whale_tracker.alerter.channels.telegram import (
    RecipientUnreachableError,
    TelegramError,
    TelegramTransport,
)

Handler = Callable[[httpx.Request], httpx.Response]


def _transport(handler: Handler, **kwargs: object) -> TelegramTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramTransport("123:abc", client=client, **kwargs)  # type: ignore[arg-type]


class TestSendMessage:
    """Tests for send_message()."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        """Test the request payload."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        transport = _transport(handler)
        await transport.send_message(42, "*hi*")

        assert seen[0].url.path == "/bot123:abc/sendMessage"
        assert json.loads(seen[0].content) == {
            "chat_id": 42,
            "text": "*hi*",
            "disable_web_page_preview": True,
            "parse_mode": "MarkdownV2",
        }

    @pytest.mark.asyncio
    async def test_plain_text(self) -> None:
        """Test parse_mode can be disabled."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": {}})

        await _transport(handler).send_message(42, "hi", parse_mode=None)
        assert "parse_mode" not in seen[0]

    @pytest.mark.asyncio
    async def test_forbidden_raises_unreachable(self) -> None:
        """Test error code 403 maps to RecipientUnreachableError."""
        body = {"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"}
        transport = _transport(lambda _r: httpx.Response(403, json=body))

        with pytest.raises(RecipientUnreachableError, match="blocked") as exc_info:
            await transport.send_message(42, "hi")
        assert exc_info.value.error_code == 403

    @pytest.mark.asyncio
    async def test_other_api_error(self) -> None:
        """Test other API errors raise TelegramError."""
        body = {"ok": False, "error_code": 400, "description": "Bad Request: can't parse entities"}
        transport = _transport(lambda _r: httpx.Response(400, json=body))

        with pytest.raises(TelegramError) as exc_info:
            await transport.send_message(42, "hi")
        assert not isinstance(exc_info.value, RecipientUnreachableError)
        assert exc_info.value.error_code == 400

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self) -> None:
        """Test 429 waits retry_after seconds and tries again."""
        responses = [
            httpx.Response(
                429,
                json={"ok": False, "error_code": 429, "parameters": {"retry_after": 3}},
            ),
            httpx.Response(200, json={"ok": True, "result": {}}),
        ]
        transport = _transport(lambda _r: responses.pop(0))

        with patch(
            "solana_whale_tracker.alerter.channels.telegram.asyncio.sleep",
            new_callable=AsyncMock,
        ) as mock_sleep:
            await transport.send_message(42, "hi")

        mock_sleep.assert_awaited_once_with(3)

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_retries(self) -> None:
        """Test repeated timeouts end in TelegramError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        transport = _transport(handler, max_retries=2)

        with (
            patch(
                "solana_whale_tracker.alerter.channels.telegram.asyncio.sleep",
                new_callable=AsyncMock,
            ),
            pytest.raises(TelegramError, match="after 2 attempts"),
        ):
            await transport.send_message(42, "hi")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Test transport errors are wrapped."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TelegramError, match="sendMessage failed"):
            await _transport(handler).send_message(42, "hi")

    @pytest.mark.asyncio
    async def test_without_shared_client(self) -> None:
        """Test a transport creating its own client per call."""
        transport = TelegramTransport("123:abc")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.post.return_value = httpx.Response(200, json={"ok": True, "result": {}})
            mock_client_class.return_value.__aenter__.return_value = mock_client

            await transport.send_message(1, "hi")

        mock_client.post.assert_awaited_once()


class TestGetUpdates:
    """Tests for get_updates()."""

    @pytest.mark.asyncio
    async def test_returns_updates(self) -> None:
        """Test offset and timeout are forwarded."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": [{"update_id": 5}]})

        updates = await _transport(handler).get_updates(5, poll_timeout=0)

        assert updates == [{"update_id": 5}]
        assert seen[0]["offset"] == 5
        assert seen[0]["timeout"] == 0

    @pytest.mark.asyncio
    async def test_no_offset(self) -> None:
        """Test the first poll has no offset."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": []})

        assert await _transport(handler).get_updates(poll_timeout=0) == []
        assert "offset" not in seen[0]
