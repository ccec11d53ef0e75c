"""httpx client for a remote board service.

Resources:
- ``POST /channels`` and ``GET /channels/{id}``
- ``GET /channels?aclUrlLink=...&type=...&limit=N`` and
  ``GET /channels/{id}/contents?limit=N``; the ``next`` link of the response
  ``Link`` header continues the listing
- ``POST /channels/{id}/contents``, ``DELETE /channels/{id}/contents``
- ``PUT /channels/{id}/image``
- ``PATCH /channels/{id}`` and ``DELETE /channels/{id}?ifState=...``
- ``GET /ping``
"""

from __future__ import annotations

from typing import Any

import httpx

from ..config import settings
from ..errors import (
    ChannelActive,
    ChannelLocked,
    ChannelStateConflict,
    NotAuthorized,
    NotFound,
    ServiceError,
)
from ..logging import get_logger
from ..models import ActivityState, Channel, ChannelCreateRequest, ChannelImage, EncryptedContent
from ..pagination import CollectionRef, ContinuationToken

logger = get_logger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def raise_for_status(response: httpx.Response, channel_id: str | None = None) -> None:
    """Translate an unsuccessful response into a board store error."""
    status = response.status_code
    if status < 400:
        return

    message = _error_message(response)
    if status in (401, 403):
        raise NotAuthorized(message)
    if status in (404, 410):
        raise NotFound(message)
    if status == 423:
        raise ChannelLocked(message, channel_id)
    if status == 409:
        code = None
        try:
            body = response.json()
            code = body.get("error") if isinstance(body, dict) else None
        except ValueError:
            pass
        if code == "channel_active":
            raise ChannelActive(message, channel_id)
        raise ChannelStateConflict(message)
    raise ServiceError(message, status_code=status)


class HttpBoardService:
    """Board service reached over HTTP, authenticated as one participant."""

    supports_type_filter = True

    def __init__(
        self,
        access_token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.board_service_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout if timeout is not None else settings.http_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> HttpBoardService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, url: str, channel_id: str | None = None, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Board service request failed", method=method, url=url, error=str(e))
            raise ServiceError(f"Board service request failed: {e}") from e

        raise_for_status(response, channel_id)
        return response

    async def create_channel(self, request: ChannelCreateRequest) -> Channel:
        response = await self._request("POST", "/channels", json=request.model_dump(mode="json"))
        return Channel.model_validate(response.json())

    async def get_channel(self, channel_id: str) -> Channel:
        response = await self._request("GET", f"/channels/{channel_id}", channel_id)
        return Channel.model_validate(response.json())

    async def fetch_page(
        self,
        collection: CollectionRef,
        token: ContinuationToken | None,
        limit: int,
    ) -> tuple[list[Any], ContinuationToken | None]:
        if token is not None:
            response = await self._request("GET", token.value)
        elif collection.kind == "channels":
            params: dict[str, Any] = {"aclUrlLink": collection.owner, "limit": limit}
            channel_type = collection.param("type")
            if channel_type:
                params["type"] = channel_type
            response = await self._request("GET", "/channels", params=params)
        else:
            response = await self._request(
                "GET",
                f"/channels/{collection.owner}/contents",
                collection.owner,
                params={"limit": limit},
            )

        item_model = Channel if collection.kind == "channels" else EncryptedContent
        items = [item_model.model_validate(item) for item in response.json().get("items", [])]

        next_link = response.links.get("next")
        next_token = ContinuationToken(next_link["url"]) if next_link else None
        return items, next_token

    async def add_contents(
        self, channel_id: str, contents: list[EncryptedContent]
    ) -> list[EncryptedContent]:
        body = {
            "items": [content.model_dump(mode="json", exclude_none=True) for content in contents]
        }
        response = await self._request(
            "POST", f"/channels/{channel_id}/contents", channel_id, json=body
        )
        return [EncryptedContent.model_validate(item) for item in response.json()["items"]]

    async def delete_all_contents(self, channel_id: str) -> None:
        await self._request("DELETE", f"/channels/{channel_id}/contents", channel_id)

    async def set_channel_image(self, channel_id: str, image: ChannelImage) -> Channel:
        response = await self._request(
            "PUT", f"/channels/{channel_id}/image", channel_id, json=image.model_dump(mode="json")
        )
        return Channel.model_validate(response.json())

    async def update_activity_state(
        self, channel_id: str, state: ActivityState, if_state: ActivityState
    ) -> Channel:
        response = await self._request(
            "PATCH",
            f"/channels/{channel_id}",
            channel_id,
            json={"activity_state": state.value, "if_state": if_state.value},
        )
        return Channel.model_validate(response.json())

    async def delete_channel(self, channel_id: str, if_state: ActivityState) -> None:
        await self._request(
            "DELETE", f"/channels/{channel_id}", channel_id, params={"ifState": if_state.value}
        )

    async def ping(self) -> bool:
        try:
            await self._request("GET", "/ping")
        except ServiceError:
            return False
        return True
