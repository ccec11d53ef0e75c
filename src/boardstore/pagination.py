"""Cursor-based pagination over remote paged collections.

A ``Page`` is an immutable slice of a remote collection plus the continuation
token the service returned for it. ``Page.next()`` performs exactly one remote
fetch and returns a new ``Page``; nothing is prefetched and no total count is
assumed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, Protocol, TypeVar

from .errors import NoMoreData
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Transform = Callable[[list[Any]], Awaitable[list[T]]]


@dataclass(frozen=True)
class ContinuationToken:
    """Opaque continuation token issued by a paged service."""

    value: str = field(repr=False)


@dataclass(frozen=True)
class CollectionRef:
    """Identifies a remote paged collection.

    ``owner`` is the conversation ACL URL for channel listings and the channel id
    for content listings.
    """

    kind: Literal["channels", "contents"]
    owner: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def channels(cls, acl_url_link: str, channel_type: str | None = None) -> CollectionRef:
        params = (("type", channel_type),) if channel_type else ()
        return cls(kind="channels", owner=acl_url_link, params=params)

    @classmethod
    def contents(cls, channel_id: str) -> CollectionRef:
        return cls(kind="contents", owner=channel_id)

    def param(self, name: str) -> str | None:
        return dict(self.params).get(name)


class PagedCollectionAPI(Protocol):
    """Remote API serving a collection one slice at a time."""

    async def fetch_page(
        self,
        collection: CollectionRef,
        token: ContinuationToken | None,
        limit: int,
    ) -> tuple[list[Any], ContinuationToken | None]:
        """Fetch one slice; returns the raw items and the token for the next slice."""
        ...


class Page(Generic[T]):
    """An immutable slice of a collection with a latent continuation."""

    def __init__(
        self,
        items: Sequence[T],
        next_token: ContinuationToken | None = None,
        *,
        api: PagedCollectionAPI | None = None,
        collection: CollectionRef | None = None,
        limit: int | None = None,
        transform: Transform[T] | None = None,
    ):
        if next_token is not None and (api is None or collection is None or limit is None):
            raise ValueError("A page with a continuation needs an api, collection and limit")

        self._items: tuple[T, ...] = tuple(items)
        self._next_token = next_token
        self._api = api
        self._collection = collection
        self._limit = limit
        self._transform = transform

    @classmethod
    def of(cls, items: Sequence[T]) -> Page[T]:
        """Build a complete, single page from already available items."""
        return cls(items)

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    @property
    def length(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __repr__(self) -> str:
        return f"Page(length={len(self._items)}, has_next={self.has_next()})"

    def has_next(self) -> bool:
        """Whether the service reported a continuation for this slice."""
        return self._next_token is not None

    async def next(self) -> Page[T]:
        """Fetch the following slice.

        Raises:
            NoMoreData: If this is the last page
        """
        if self._next_token is None:
            raise NoMoreData("No further pages for this collection")

        # Guaranteed by the constructor check
        assert self._api is not None and self._collection is not None
        assert self._limit is not None

        return await _fetch(
            self._api, self._collection, self._next_token, self._limit, self._transform
        )

    async def collect(self) -> list[T]:
        """Return the items of this page and every following page."""
        collected = list(self._items)
        page: Page[T] = self
        while page.has_next():
            page = await page.next()
            collected.extend(page.items)
        return collected


async def first_page(
    api: PagedCollectionAPI,
    collection: CollectionRef,
    limit: int,
    transform: Transform[T] | None = None,
) -> Page[T]:
    """Fetch the first slice of a collection.

    Args:
        api: Service serving the collection
        collection: Which collection to page through
        limit: Maximum number of items per page
        transform: Optional async conversion applied to every fetched slice

    Returns:
        The first Page
    """
    if limit < 1:
        raise ValueError(f"Page limit must be positive, got {limit}")

    return await _fetch(api, collection, None, limit, transform)


async def _fetch(
    api: PagedCollectionAPI,
    collection: CollectionRef,
    token: ContinuationToken | None,
    limit: int,
    transform: Transform[T] | None,
) -> Page[T]:
    raw_items, next_token = await api.fetch_page(collection, token, limit)

    items = await transform(raw_items) if transform is not None else raw_items

    logger.debug(
        "Fetched page",
        collection=collection.kind,
        limit=limit,
        length=len(items),
        has_next=next_token is not None,
    )

    return Page(
        items,
        next_token,
        api=api,
        collection=collection,
        limit=limit,
        transform=transform,
    )
