"""
HTTP API Tests
==============

The real FastAPI app over ASGITransport, with the fake provider behind
app.state.http_client and the DB dependency bound to in-memory SQLite.
"""

import pytest

from push_dispatch.config import settings


class TestDispatchEndpoint:

    @pytest.mark.asyncio
    async def test_scenario_returns_report(self, test_client, household, provider):
        response = await test_client.post("/dispatch", json={"content_id": "img_1"})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert (body["sent"], body["total"]) == (2, 2)
        assert len(provider.v1_sends) == 2

    @pytest.mark.asyncio
    async def test_report_masks_device_tokens(self, test_client, db_session, provider):
        from conftest import seed
        from push_dispatch.models import Device, HouseholdMember, Image

        long_token = "fcm-token-" + "x" * 40
        await seed(
            db_session,
            Image(id="img_long", user_id="u1", household_id="hl"),
            HouseholdMember(household_id="hl", user_id="u1"),
            HouseholdMember(household_id="hl", user_id="u2"),
            Device(user_id="u2", token=long_token),
        )

        response = await test_client.post("/dispatch", json={"content_id": "img_long"})

        assert response.status_code == 200
        assert response.json()["results"][0]["token"] == "fcm-token-xx…"
        assert long_token not in response.text
        assert provider.v1_sends[0].content.count(long_token.encode()) == 1

    @pytest.mark.asyncio
    async def test_unknown_content_is_404_with_no_calls(self, test_client, household, provider):
        response = await test_client.post("/dispatch", json={"content_id": "img_missing"})

        assert response.status_code == 404
        assert response.json()["error"] == "content_not_found"
        assert provider.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"content_id": ""}, {"content_id": "   "}, {"content_id": 5}])
    async def test_malformed_body_is_400(self, test_client, payload):
        response = await test_client.post("/dispatch", json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_invalid_content_type_is_400(self, test_client):
        response = await test_client.post(
            "/dispatch", json={"content_id": "img_1", "content_type": "video"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_nobody_to_notify_is_still_200(self, test_client, db_session, provider):
        from conftest import seed
        from push_dispatch.models import HouseholdMember, Image

        await seed(
            db_session,
            Image(id="img_solo", user_id="u1", household_id="solo"),
            HouseholdMember(household_id="solo", user_id="u1"),
        )

        response = await test_client.post("/dispatch", json={"content_id": "img_solo"})

        assert response.status_code == 200
        assert response.json()["sent"] == 0
        assert response.json()["reason"] == "no recipients"

    @pytest.mark.asyncio
    async def test_credential_failure_is_502_with_provider_body(
        self, test_client, household, provider
    ):
        provider.token_response = (401, {"error": "invalid_client"})

        response = await test_client.post("/dispatch", json={"content_id": "img_1"})

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "credential_exchange_failed"
        assert body["details"]["provider_error"] == {"error": "invalid_client"}
        assert provider.send_count == 0

    @pytest.mark.asyncio
    async def test_unconfigured_delivery_is_500(self, test_client, household):
        from push_dispatch.main import app

        app.state.delivery_protocol = None
        response = await test_client.post("/dispatch", json={"content_id": "img_1"})

        assert response.status_code == 500
        assert response.json()["error"] == "configuration_error"

    @pytest.mark.asyncio
    async def test_debug_notify_self_needs_configuration(
        self, test_client, household, provider, monkeypatch
    ):
        payload = {"content_id": "img_1", "debug_notify_self": True}

        response = await test_client.post("/dispatch", json=payload)
        assert response.json()["total"] == 2

        monkeypatch.setattr(settings, "allow_debug_notify_self", True)
        response = await test_client.post("/dispatch", json=payload)
        assert response.json()["total"] == 3


class TestTriggerAliases:

    @pytest.mark.asyncio
    async def test_push_new_image(self, test_client, household, provider):
        response = await test_client.post("/push-new-image", json={"image_id": "img_1"})

        assert response.status_code == 200
        assert response.json()["content_type"] == "image"

    @pytest.mark.asyncio
    async def test_push_new_message_does_not_match_images(self, test_client, household):
        response = await test_client.post("/push-new-message", json={"message_id": "img_1"})
        assert response.status_code == 404

        response = await test_client.post("/push-new-message", json={"message_id": "msg_1"})
        assert response.status_code == 200
        assert response.json()["sent"] == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path, field", [
        ("/push-new-image", "image_id"),
        ("/push-new-message", "message_id"),
    ])
    @pytest.mark.parametrize("value", ["", "   ", 5])
    async def test_blank_or_malformed_id_is_400(
        self, test_client, household, provider, path, field, value
    ):
        response = await test_client.post(path, json={field: value})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_padded_id_is_trimmed(self, test_client, household):
        response = await test_client.post("/push-new-image", json={"image_id": "  img_1 "})

        assert response.status_code == 200
        assert response.json()["content_id"] == "img_1"


class TestTriggerAuth:

    @pytest.mark.asyncio
    async def test_token_required_when_configured(self, test_client, household, monkeypatch):
        monkeypatch.setattr(settings, "dispatch_auth_token", "s3cret")

        missing = await test_client.post("/dispatch", json={"content_id": "img_1"})
        wrong = await test_client.post(
            "/dispatch",
            json={"content_id": "img_1"},
            headers={"Authorization": "Bearer nope"},
        )
        right = await test_client.post(
            "/dispatch",
            json={"content_id": "img_1"},
            headers={"Authorization": "Bearer s3cret"},
        )

        assert missing.status_code == 401
        assert missing.json()["error"] == "unauthorized"
        assert wrong.status_code == 401
        assert right.status_code == 200


class TestDevices:

    @pytest.mark.asyncio
    async def test_register_then_remove(self, test_client):
        device = {"user_id": "u9", "token": "tok_9", "platform": "android"}

        first = await test_client.post("/devices", json=device)
        again = await test_client.post("/devices", json=device)
        removed = await test_client.request(
            "DELETE", "/devices", json={"user_id": "u9", "token": "tok_9"}
        )

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert again.json()["created"] is False
        assert removed.json() == {"removed": 1}

    @pytest.mark.asyncio
    async def test_unknown_platform_is_400(self, test_client):
        response = await test_client.post(
            "/devices", json={"user_id": "u9", "token": "tok_9", "platform": "palm"}
        )
        assert response.status_code == 400


class TestHealthAndRequestId:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["delivery_protocol"] == "service_account"
        assert body["access_token_cached"] is False

    @pytest.mark.asyncio
    async def test_request_id_is_echoed_in_header_and_error_body(self, test_client, household):
        response = await test_client.post(
            "/dispatch",
            json={"content_id": "img_missing"},
            headers={"X-Request-ID": "trace-123"},
        )

        assert response.headers["X-Request-ID"] == "trace-123"
        assert response.json()["request_id"] == "trace-123"
