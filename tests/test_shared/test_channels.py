"""
Tests for email channels.

These tests verify that the recording channel tracks sends and that the
SendGrid channel builds the right request and reports failures as results.
"""

import asyncio
import json

import httpx
import pytest

from shared.channels import EmailChannel, EmailResult, SendGridEmailChannel


class TestEmailChannel:
    """Tests for the recording email channel."""

    @pytest.mark.asyncio
    async def test_send_email_success(self, email_channel: EmailChannel):
        """Test successful email send."""
        result = await email_channel.send(
            to="test@example.com",
            subject="Test Subject",
            body="Test body content",
        )

        assert result.success is True
        assert result.recipient == "test@example.com"
        assert result.subject == "Test Subject"
        assert result.body == "Test body content"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_tracks_sent_messages(self, email_channel: EmailChannel):
        """Test that channel tracks sent messages."""
        await email_channel.send("a@example.com", "Subject A", "Body A")
        await email_channel.send("b@example.com", "Subject B", "Body B")

        assert email_channel.get_sent_count() == 2
        assert [m.recipient for m in email_channel.sent_messages] == ["a@example.com", "b@example.com"]

    @pytest.mark.asyncio
    async def test_find_message_to(self, email_channel: EmailChannel):
        await email_channel.send("target@example.com", "Hello", "World")
        await email_channel.send("other@example.com", "Hi", "There")

        found = email_channel.find_message_to("target@example.com")

        assert found is not None
        assert found.subject == "Hello"
        assert email_channel.find_message_to("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_clear_history(self, email_channel: EmailChannel):
        await email_channel.send("test@example.com", "Test", "Body")
        email_channel.clear_history()

        assert email_channel.get_sent_count() == 0

    @pytest.mark.asyncio
    async def test_simulated_failure(self):
        """Test that fail_rate=1.0 always fails, and failures are still recorded."""
        channel = EmailChannel(fail_rate=1.0)

        result = await channel.send("test@example.com", "Test", "Body")

        assert result.success is False
        assert result.error is not None
        assert channel.get_sent_count() == 1
        assert channel.get_successful_sends() == []

    def test_result_str(self):
        result = EmailResult(success=True, recipient="a@example.com", subject="Hi", body="")

        assert "a@example.com" in str(result)
        assert "Hi" in str(result)


class TestSendGridEmailChannel:
    """Tests for the SendGrid channel, using an httpx mock transport."""

    def _channel(self, handler) -> SendGridEmailChannel:
        return SendGridEmailChannel(
            api_key="SG.test-key",
            from_addr="noreply@revend.co",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_posts_sendgrid_payload(self):
        """Test the request shape matches the v3 mail/send API."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(202)

        result = await self._channel(handler).send("alice@janssen-it.nl", "Hello", "<p>Hi</p>")

        assert result.success is True
        assert captured["url"] == "https://api.sendgrid.com/v3/mail/send"
        assert captured["auth"] == "Bearer SG.test-key"
        assert captured["body"]["personalizations"] == [{"to": [{"email": "alice@janssen-it.nl"}]}]
        assert captured["body"]["from"] == {"email": "noreply@revend.co"}
        assert captured["body"]["subject"] == "Hello"
        assert captured["body"]["content"] == [{"type": "text/html", "value": "<p>Hi</p>"}]

    @pytest.mark.asyncio
    async def test_error_status_is_failed_result(self):
        channel = self._channel(lambda request: httpx.Response(401, text="unauthorized"))

        result = await channel.send("alice@janssen-it.nl", "Hello", "Body")

        assert result.success is False
        assert "401" in result.error
        assert channel.get_sent_count() == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_failed_result(self):
        """Test that connection errors don't raise."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await self._channel(handler).send("alice@janssen-it.nl", "Hello", "Body")

        assert result.success is False
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_slow_provider_does_not_stall_event_loop(self):
        """Test that other coroutines keep running while SendGrid is slow to answer."""
        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.3)
            return httpx.Response(202)

        ticks = 0
        done = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not done.is_set():
                ticks += 1
                await asyncio.sleep(0.01)

        ticker_task = asyncio.create_task(ticker())
        result = await self._channel(slow_handler).send("alice@janssen-it.nl", "Hello", "Body")
        done.set()
        await ticker_task

        assert result.success is True
        assert ticks >= 10
