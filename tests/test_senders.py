"""
FCM sender tests: per-token outcome mapping for v1 and legacy responses.
"""

import json

import httpx
import pytest

from conftest import v1_invalid_argument, v1_unregistered
from push_dispatch.credentials import mask_token
from push_dispatch.services.payloads import Notification
from push_dispatch.services.senders import (
    FcmLegacySender,
    FcmV1Sender,
    v1_error_code,
)

NOTIFICATION = Notification(title="t", body="b", data={"type": "new_image"})
V1_URL = "https://fcm.googleapis.com/v1/projects/household-test/messages:send"
LEGACY_URL = "https://fcm.googleapis.com/fcm/send"


class TestV1ErrorCode:

    def test_prefers_fcm_error_code(self):
        assert v1_error_code(v1_unregistered()[1]) == "UNREGISTERED"

    def test_falls_back_to_status(self):
        assert v1_error_code(v1_invalid_argument()[1]) == "INVALID_ARGUMENT"

    @pytest.mark.parametrize("body", [None, "oops", {}, {"error": "flat string"}])
    def test_unrecognised_bodies(self, body):
        assert v1_error_code(body) is None


class TestFcmV1Sender:

    @pytest.mark.asyncio
    async def test_outcomes(self, http_client, provider):
        provider.rejections["dead"] = v1_unregistered()
        provider.timeouts.add("slow")
        sender = FcmV1Sender(http_client, V1_URL, access_token="ya29.x")

        results = {t: await sender.send_one(t, NOTIFICATION) for t in ("ok", "dead", "slow")}

        assert results["ok"].status == "sent"
        assert results["ok"].message_id.startswith("projects/household-test/messages/")
        assert results["dead"].status == "rejected"
        assert results["dead"].http_status == 404
        assert results["dead"].error_code == "UNREGISTERED"
        assert results["slow"].status == "failed"
        assert "ReadTimeout" in results["slow"].error

    @pytest.mark.asyncio
    async def test_bearer_header_and_one_token_per_batch(self, http_client, provider):
        sender = FcmV1Sender(http_client, V1_URL, access_token="ya29.x")

        assert sender.batches(["a", "b"]) == [["a"], ["b"]]
        await sender.send_batch(["a"], NOTIFICATION)

        request = provider.v1_sends[0]
        assert request.headers["authorization"] == "Bearer ya29.x"
        assert str(request.url) == V1_URL


class TestFcmLegacySender:

    @pytest.mark.asyncio
    async def test_per_index_results(self, http_client, provider):
        provider.legacy_results["t2"] = {"error": "NotRegistered"}
        sender = FcmLegacySender(http_client, LEGACY_URL, server_key="srv")

        results = await sender.send_batch(["t1", "t2", "t3"], NOTIFICATION)

        assert [r.status for r in results] == ["sent", "rejected", "sent"]
        assert results[1].error_code == "NotRegistered"
        request = provider.legacy_sends[0]
        assert request.headers["authorization"] == "key=srv"
        assert json.loads(request.content)["registration_ids"] == ["t1", "t2", "t3"]

    def test_batches_respect_size(self, http_client):
        sender = FcmLegacySender(http_client, LEGACY_URL, server_key="srv", batch_size=2)
        assert sender.batches(["a", "b", "c"]) == [["a", "b"], ["c"]]

    @pytest.mark.asyncio
    async def test_whole_batch_refusal_rejects_every_token(self, http_client, provider):
        provider.legacy_status = 401
        sender = FcmLegacySender(http_client, LEGACY_URL, server_key="wrong")

        results = await sender.send_batch(["t1", "t2"], NOTIFICATION)

        assert all(r.status == "rejected" and r.http_status == 401 for r in results)

    @pytest.mark.asyncio
    async def test_missing_results_are_failed(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"success": 1}))
        async with httpx.AsyncClient(transport=transport) as client:
            sender = FcmLegacySender(client, LEGACY_URL, server_key="srv")
            results = await sender.send_batch(["t1"], NOTIFICATION)

        assert results[0].status == "failed"

    @pytest.mark.asyncio
    async def test_network_error_fails_whole_batch(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sender = FcmLegacySender(client, LEGACY_URL, server_key="srv")
            results = await sender.send_batch(["t1", "t2"], NOTIFICATION)

        assert [r.status for r in results] == ["failed", "failed"]


def test_mask_token_hides_most_of_the_token():
    assert mask_token("abcdefghijklmnopqrstuvwxyz") == "abcdefghijkl…"
    assert mask_token("short") == "short"
