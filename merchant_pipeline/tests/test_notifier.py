"""
Merchant Pipeline — Status Change Notifier Tests
Run: pytest merchant_pipeline/tests/test_notifier.py -v
"""

import asyncio
import json

import httpx
import pytest

from merchant_pipeline.models import PipelineStage
from merchant_pipeline.services.notifier import NotificationError, StatusChangeNotifier

URL = "http://notify.test/api/merchant-status"


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def notifier_with(handler):
    return StatusChangeNotifier(url=URL, transport=httpx.MockTransport(handler))


class TestNotifier:
    def test_posts_camelcase_payload(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        sent = _run(notifier_with(handler).notify_status_change("m1", PipelineStage.OFFER, PipelineStage.APPROVED))

        assert sent is True
        assert seen[0].method == "POST"
        assert str(seen[0].url) == URL
        assert json.loads(seen[0].content) == {"merchantId": "m1", "oldStatus": "offer", "newStatus": "approved"}

    def test_disabled_without_url(self):
        notifier = StatusChangeNotifier(url="")
        assert not notifier.enabled
        assert _run(notifier.notify_status_change("m1", PipelineStage.LEAD, PipelineStage.PHONE)) is False

    def test_error_status_raises(self):
        notifier = notifier_with(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(NotificationError):
            _run(notifier.notify_status_change("m1", PipelineStage.LEAD, PipelineStage.PHONE))

    def test_timeout_raises(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(NotificationError, match="Timeout"):
            _run(notifier_with(handler).notify_status_change("m1", PipelineStage.LEAD, PipelineStage.PHONE))

    def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NotificationError):
            _run(notifier_with(handler).notify_status_change("m1", PipelineStage.LEAD, PipelineStage.PHONE))
