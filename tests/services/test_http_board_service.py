"""Tests for the HTTP board service client."""

import json

import httpx
import pytest

from boardstore.errors import (
    ChannelActive,
    ChannelLocked,
    ChannelStateConflict,
    NotAuthorized,
    NotFound,
    ServiceError,
)
from boardstore.models import ActivityState, Channel, ChannelCreateRequest, EncryptedContent
from boardstore.pagination import CollectionRef
from boardstore.services.http import HttpBoardService

BASE_URL = "https://board.example.test/api/v1"

CHANNEL_JSON = {
    "channel_id": "channel-1",
    "channel_url": f"{BASE_URL}/channels/channel-1",
    "acl_url": f"{BASE_URL}/channels/channel-1/acl",
    "acl_url_link": "https://conv.example.test/conversations/c/acl",
    "kms_resource_url": "kms://resources/r",
    "default_encryption_key_url": "kms://keys/k",
    "activity_state": "inactive",
}


def make_service(handler) -> HttpBoardService:
    return HttpBoardService(
        access_token="token-123",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestRequests:
    """Test request shapes and response parsing."""

    @pytest.mark.asyncio
    async def test_create_channel(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=CHANNEL_JSON)

        async with make_service(handler) as service:
            channel = await service.create_channel(
                ChannelCreateRequest(
                    acl_url_link=CHANNEL_JSON["acl_url_link"],
                    kms_resource_url="kms://resources/r",
                    default_encryption_key_url="kms://keys/k",
                    type="annotated",
                )
            )

        assert isinstance(channel, Channel)
        assert channel.channel_id == "channel-1"
        assert seen["method"] == "POST"
        assert seen["path"] == "/api/v1/channels"
        assert seen["auth"] == "Bearer token-123"
        assert seen["body"]["type"] == "annotated"

    @pytest.mark.asyncio
    async def test_fetch_page_follows_next_link(self):
        next_url = f"{BASE_URL}/channels/channel-1/contents?cursor=abc&limit=2"
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request.url)
            item = {"type": "curve", "encryption_key_url": "kms://keys/k", "payload": "v1.a.b"}
            if "cursor" in request.url.params:
                return httpx.Response(200, json={"items": [item]})
            return httpx.Response(
                200,
                json={"items": [item, item]},
                headers={"Link": f'<{next_url}>; rel="next"'},
            )

        collection = CollectionRef.contents("channel-1")
        async with make_service(handler) as service:
            items, token = await service.fetch_page(collection, None, 2)
            rest, last = await service.fetch_page(collection, token, 2)

        assert len(items) == 2
        assert all(isinstance(item, EncryptedContent) for item in items)
        assert token is not None
        assert len(rest) == 1
        assert last is None
        assert requests[0].params["limit"] == "2"
        assert str(requests[1]) == next_url

    @pytest.mark.asyncio
    async def test_fetch_channels_with_type(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"items": [CHANNEL_JSON]})

        async with make_service(handler) as service:
            items, token = await service.fetch_page(
                CollectionRef.channels("acl://conv", "annotated"), None, 10
            )

        assert [item.channel_id for item in items] == ["channel-1"]
        assert token is None
        assert seen["params"] == {"aclUrlLink": "acl://conv", "limit": "10", "type": "annotated"}

    @pytest.mark.asyncio
    async def test_update_activity_state(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={**CHANNEL_JSON, "activity_state": "locked"})

        async with make_service(handler) as service:
            channel = await service.update_activity_state(
                "channel-1", ActivityState.LOCKED, if_state=ActivityState.ACTIVE
            )

        assert channel.activity_state is ActivityState.LOCKED
        assert seen["method"] == "PATCH"
        assert seen["body"] == {"activity_state": "locked", "if_state": "active"}

    @pytest.mark.asyncio
    async def test_delete_channel(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["params"] = dict(request.url.params)
            return httpx.Response(204)

        async with make_service(handler) as service:
            await service.delete_channel("channel-1", if_state=ActivityState.LOCKED)

        assert seen == {"method": "DELETE", "params": {"ifState": "locked"}}

    @pytest.mark.asyncio
    async def test_ping(self):
        async with make_service(lambda request: httpx.Response(200, json={})) as service:
            assert await service.ping() is True

        async with make_service(lambda request: httpx.Response(503)) as service:
            assert await service.ping() is False


@pytest.mark.unit
class TestErrorMapping:
    """Test translation of HTTP failures."""

    @pytest.mark.parametrize(
        "status,body,expected",
        [
            (401, {"message": "expired"}, NotAuthorized),
            (403, {}, NotAuthorized),
            (404, {}, NotFound),
            (410, {}, NotFound),
            (423, {"error": "locked"}, ChannelLocked),
            (409, {"error": "state_conflict"}, ChannelStateConflict),
            (409, {"error": "channel_active"}, ChannelActive),
            (500, {}, ServiceError),
        ],
    )
    @pytest.mark.asyncio
    async def test_status_codes(self, status, body, expected):
        async with make_service(lambda request: httpx.Response(status, json=body)) as service:
            with pytest.raises(expected):
                await service.get_channel("channel-1")

    @pytest.mark.asyncio
    async def test_service_error_carries_status(self):
        async with make_service(lambda request: httpx.Response(502, text="bad gateway")) as service:
            with pytest.raises(ServiceError) as exc_info:
                await service.get_channel("channel-1")

        assert exc_info.value.status_code == 502
        assert "bad gateway" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_locked_error_names_channel(self):
        async with make_service(lambda request: httpx.Response(423, json={})) as service:
            with pytest.raises(ChannelLocked) as exc_info:
                await service.delete_all_contents("channel-1")

        assert exc_info.value.channel_id == "channel-1"

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_service(handler) as service:
            with pytest.raises(ServiceError, match="connection refused"):
                await service.get_channel("channel-1")
