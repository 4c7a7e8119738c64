"""Tests for DeliveryQueue, the SMS gateway client and the welcome email."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from membership.services.delivery_queue import DeliveryQueue
from membership.services.email import send_welcome_email
from membership.services.sms import SmsGateway, SmsGatewayError


class TestDeliveryQueue:
    """Unit tests for DeliveryQueue."""

    def test_enqueue_non_blocking(self):
        """enqueue() returns immediately without awaiting the job."""
        queue = DeliveryQueue(maxsize=10)
        send = AsyncMock()

        queue.enqueue("job", send)

        assert queue.pending() == 1
        send.assert_not_called()

    def test_queue_overflow_drops_oldest(self, caplog):
        """When the queue is full, the oldest job is dropped."""
        queue = DeliveryQueue(maxsize=3)
        for i in range(3):
            queue.enqueue(f"job-{i}", AsyncMock())

        with caplog.at_level(logging.WARNING):
            queue.enqueue("job-3", AsyncMock())

        assert queue.pending() == 3
        assert "dropped job-0" in caplog.text
        labels = [queue._queue.get_nowait().label for _ in range(3)]
        assert labels == ["job-1", "job-2", "job-3"]

    @pytest.mark.asyncio
    async def test_drain_delivers_in_order(self):
        queue = DeliveryQueue(maxsize=10)
        delivered = []

        for i in range(3):
            queue.enqueue(f"job-{i}", AsyncMock(side_effect=lambda i=i: delivered.append(i)))

        await queue.drain()

        assert delivered == [0, 1, 2]
        assert queue.sent == 3
        assert queue.pending() == 0

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_others(self, caplog):
        """A job that raises is logged and the rest still go out."""
        queue = DeliveryQueue(maxsize=10)
        ok = AsyncMock()
        queue.enqueue("broken", AsyncMock(side_effect=RuntimeError("boom")))
        queue.enqueue("fine", ok)

        with caplog.at_level(logging.ERROR):
            await queue.drain()

        ok.assert_awaited_once()
        assert queue.failed == 1
        assert queue.sent == 1
        assert "Delivery failed: broken" in caplog.text

    @pytest.mark.asyncio
    async def test_run_loop_delivers_and_stops_on_cancel(self):
        queue = DeliveryQueue(maxsize=10)
        done = asyncio.Event()

        async def send():
            done.set()

        task = asyncio.create_task(queue.run())
        queue.enqueue("job", send)
        await asyncio.wait_for(done.wait(), timeout=2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert queue.sent == 1


class TestSmsGateway:
    """Unit tests for SmsGateway."""

    def _configured(self):
        return patch.multiple(
            "membership.services.sms.settings",
            SMS_API_URL="https://sms.test/api",
            SMS_USER="user",
            SMS_KEY="key",
            SMS_STRIP_PREFIX="+91",
        )

    @pytest.mark.asyncio
    async def test_unconfigured_gateway_skips(self):
        client = MagicMock()
        client.get = AsyncMock()
        gateway = SmsGateway(client=client)

        with patch.multiple("membership.services.sms.settings", SMS_API_URL="", SMS_USER="", SMS_KEY=""):
            await gateway.send_otp("+919876543210", "123456")

        client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_otp_request(self):
        request = httpx.Request("GET", "https://sms.test/api")
        client = MagicMock()
        client.get = AsyncMock(return_value=httpx.Response(200, request=request))
        gateway = SmsGateway(client=client)

        with self._configured():
            await gateway.send_otp("+919876543210", "123456")

        params = client.get.call_args.kwargs["params"]
        assert params["mobile"] == "9876543210"
        assert "123456" in params["message"]

    @pytest.mark.asyncio
    async def test_provider_error_raises(self):
        request = httpx.Request("GET", "https://sms.test/api")
        client = MagicMock()
        client.get = AsyncMock(return_value=httpx.Response(500, request=request))
        gateway = SmsGateway(client=client)

        with self._configured(), pytest.raises(SmsGatewayError):
            await gateway.send_otp("+919876543210", "123456")

    def test_local_number_without_prefix(self):
        gateway = SmsGateway()

        with self._configured():
            assert gateway._local_number("+15551234567") == "15551234567"


class TestWelcomeEmail:
    """Unit tests for send_welcome_email."""

    @pytest.mark.asyncio
    async def test_name_is_escaped_in_html(self):
        """Markup in a registrant's name reaches the mail as text, never as HTML."""
        sent = MagicMock()

        with patch("membership.services.email.settings.RESEND_API_KEY", "test-resend-key"), patch(
            "membership.services.email.resend.Emails.send", sent
        ):
            await send_welcome_email(
                "member@membership.org",
                '<a href="https://evil.test">Claim prize</a>',
                "MBR0123",
                "AB12CD34",
            )

        params = sent.call_args.args[0]
        assert "<a href" not in params["html"]
        assert "&lt;a href=&quot;https://evil.test&quot;&gt;Claim prize&lt;/a&gt;" in params["html"]
        assert "AB12CD34" in params["html"]

    @pytest.mark.asyncio
    async def test_skipped_without_api_key(self):
        sent = MagicMock()

        with patch("membership.services.email.settings.RESEND_API_KEY", ""), patch(
            "membership.services.email.resend.Emails.send", sent
        ):
            await send_welcome_email("member@membership.org", "Test Member", "MBR0123", "AB12CD34")

        sent.assert_not_called()
