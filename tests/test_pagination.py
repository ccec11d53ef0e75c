"""Tests for cursor-based pagination."""

import pytest

from boardstore.errors import NoMoreData
from boardstore.pagination import CollectionRef, ContinuationToken, Page, first_page


class ListAPI:
    """Serves a fixed list in slices, counting the fetches it answers."""

    def __init__(self, items: list):
        self.items = items
        self.calls: list[tuple[ContinuationToken | None, int]] = []

    async def fetch_page(self, collection, token, limit):
        self.calls.append((token, limit))
        offset = int(token.value) if token is not None else 0
        stop = offset + limit
        next_token = ContinuationToken(str(stop)) if stop < len(self.items) else None
        return self.items[offset:stop], next_token


COLLECTION = CollectionRef.contents("channel-1")


@pytest.mark.unit
class TestCollectionRef:
    def test_channels_with_type(self):
        ref = CollectionRef.channels("acl://conv", "annotated")

        assert ref.kind == "channels"
        assert ref.owner == "acl://conv"
        assert ref.param("type") == "annotated"

    def test_channels_without_type(self):
        assert CollectionRef.channels("acl://conv").param("type") is None

    def test_refs_are_hashable_values(self):
        assert CollectionRef.contents("c") == CollectionRef.contents("c")
        assert len({CollectionRef.contents("c"), CollectionRef.contents("c")}) == 1


@pytest.mark.unit
class TestPage:
    """Test Page navigation."""

    @pytest.mark.asyncio
    async def test_pages_through_collection(self):
        api = ListAPI(list(range(12)))

        page = await first_page(api, COLLECTION, 5)
        lengths = [page.length]
        while page.has_next():
            page = await page.next()
            lengths.append(page.length)

        assert lengths == [5, 5, 2]
        assert len(api.calls) == 3

    @pytest.mark.asyncio
    async def test_next_performs_exactly_one_fetch(self):
        api = ListAPI(list(range(30)))
        page = await first_page(api, COLLECTION, 25)
        assert len(api.calls) == 1

        second = await page.next()

        assert len(api.calls) == 2
        assert list(second) == list(range(25, 30))
        assert not second.has_next()

    @pytest.mark.asyncio
    async def test_exact_multiple_has_no_trailing_empty_page(self):
        api = ListAPI(list(range(10)))

        page = await first_page(api, COLLECTION, 10)

        assert page.length == 10
        assert not page.has_next()

    @pytest.mark.asyncio
    async def test_empty_collection(self):
        page = await first_page(ListAPI([]), COLLECTION, 10)

        assert page.length == 0
        assert not page.has_next()

    @pytest.mark.asyncio
    async def test_next_on_last_page_raises(self):
        page = await first_page(ListAPI([1, 2]), COLLECTION, 10)

        with pytest.raises(NoMoreData):
            await page.next()

    @pytest.mark.asyncio
    async def test_pages_are_immutable(self):
        api = ListAPI(list(range(6)))
        page = await first_page(api, COLLECTION, 3)

        await page.next()
        again = await page.next()

        assert list(page) == [0, 1, 2]
        assert list(again) == [3, 4, 5]

    @pytest.mark.asyncio
    async def test_transform_applies_to_every_page(self):
        async def double(items):
            return [item * 2 for item in items]

        page = await first_page(ListAPI([1, 2, 3]), COLLECTION, 2, double)

        assert list(page) == [2, 4]
        assert list(await page.next()) == [6]

    @pytest.mark.asyncio
    async def test_retry_after_failed_transform(self):
        api = ListAPI(list(range(6)))
        failures = [RuntimeError("key service unavailable")]

        async def flaky(items):
            if items and items[0] == 3 and failures:
                raise failures.pop()
            return items

        page = await first_page(api, COLLECTION, 3, flaky)

        with pytest.raises(RuntimeError, match="unavailable"):
            await page.next()
        retried = await page.next()

        assert list(retried) == [3, 4, 5]
        assert list(page) == [0, 1, 2]
        assert [token.value for token, _ in api.calls[1:]] == ["3", "3"]

    @pytest.mark.asyncio
    async def test_collect(self):
        page = await first_page(ListAPI(list(range(7))), COLLECTION, 3)

        assert await page.collect() == list(range(7))

    @pytest.mark.asyncio
    async def test_limit_must_be_positive(self):
        with pytest.raises(ValueError, match="must be positive"):
            await first_page(ListAPI([1]), COLLECTION, 0)

    def test_continuation_requires_api(self):
        with pytest.raises(ValueError, match="continuation"):
            Page([1], ContinuationToken("1"))

    def test_single_page(self):
        page = Page.of(["a", "b"])

        assert page.items == ("a", "b")
        assert page[1] == "b"
        assert not page.has_next()
        assert repr(page) == "Page(length=2, has_next=False)"

    def test_token_value_is_not_in_repr(self):
        assert "secret" not in repr(ContinuationToken("secret"))
