"""
Unit tests for the provider clients.
"""

from urllib.parse import unquote

import pytest

from manga_gateway import ErrorKind, ProviderGateway, load_provider_configs
from manga_reader.clients import KitsuClient, MangaDexClient, ProviderCallError, slugify


class TestMangaDexClient:
    """Requests built by MangaDexClient."""

    @pytest.mark.asyncio
    async def test_search_manga_params(self, gateway, upstream):
        upstream.mangadex("/manga", {"data": [], "total": 0})

        await MangaDexClient(gateway).search_manga("Naruto", limit=5)

        query = unquote(upstream.params_for("/manga")[0])
        assert query == (
            "title=Naruto&limit=5&offset=0&includes[]=cover_art&includes[]=author"
            "&includes[]=artist&contentRating[]=safe&contentRating[]=suggestive"
            "&contentRating[]=erotica&order[relevance]=desc"
        )

    @pytest.mark.asyncio
    async def test_get_chapters_joins_manga_ids(self, gateway, upstream):
        upstream.mangadex("/chapter", {"data": []})

        await MangaDexClient(gateway).get_chapters("md-1", translated_language="ja")

        raw = upstream.params_for("/chapter")[0]
        assert "manga=md-1" in raw
        assert "translatedLanguage%5B%5D=ja" in raw
        assert raw.endswith("order%5Bvolume%5D=asc&order%5Bchapter%5D=asc")

    @pytest.mark.asyncio
    async def test_get_chapter_includes_group(self, gateway, upstream):
        upstream.mangadex("/chapter/ch-1", {"data": {"id": "ch-1"}})

        response = await MangaDexClient(gateway).get_chapter("ch-1")

        assert response["data"]["id"] == "ch-1"
        assert unquote(upstream.params_for("/chapter/ch-1")[0]) == "includes[]=scanlation_group"

    @pytest.mark.asyncio
    async def test_chapter_pages_use_rate_limiter(self, gateway, upstream):
        upstream.mangadex("/at-home/server/ch-1", {"baseUrl": "https://node.test"})

        await MangaDexClient(gateway).get_chapter_pages("ch-1")

        assert gateway.page_limiter.in_window == 1

    @pytest.mark.asyncio
    async def test_chapter_pages_failure_raises(self, gateway, upstream):
        upstream.mangadex("/at-home/server/ch-1", status=429, text="slow down")

        with pytest.raises(ProviderCallError) as exc_info:
            await MangaDexClient(gateway).get_chapter_pages("ch-1")

        failure = exc_info.value.failure
        assert failure.status == 429
        assert failure.kind == ErrorKind.UPSTREAM_REJECTION
        assert failure.details == "slow down"
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_latest_updates_order(self, gateway, upstream):
        upstream.mangadex("/chapter", {"data": []})

        await MangaDexClient(gateway).get_latest_updates(limit=10)

        query = unquote(upstream.params_for("/chapter")[0])
        assert "includes[]=manga" in query
        assert query.endswith("order[updatedAt]=desc")

    @pytest.mark.asyncio
    async def test_popular_order(self, gateway, upstream):
        upstream.mangadex("/manga", {"data": []})

        await MangaDexClient(gateway).get_popular_manga()

        assert unquote(upstream.params_for("/manga")[0]).endswith("order[followedCount]=desc")

    def test_cover_image_url(self):
        manga = {
            "id": "md-1",
            "relationships": [
                {"type": "author", "id": "a"},
                {"type": "cover_art", "attributes": {"fileName": "c.jpg"}},
            ],
        }

        filename = MangaDexClient.cover_filename(manga)

        assert filename == "c.jpg"
        assert MangaDexClient.cover_image_url("md-1", filename) == (
            "https://uploads.mangadex.org/covers/md-1/c.jpg"
        )
        assert MangaDexClient.cover_filename({"relationships": []}) is None


class TestKitsuClient:
    """Requests built by KitsuClient."""

    @pytest.mark.asyncio
    async def test_search_uses_filter_and_page(self, gateway, upstream):
        upstream.kitsu("/manga", {"data": []})

        await KitsuClient(gateway).search_manga("One Piece", limit=1)

        assert upstream.params_for("/manga")[0] == (
            "filter%5Btext%5D=One%20Piece&page%5Blimit%5D=1"
        )
        assert upstream.requests[0].headers["Accept"] == "application/vnd.api+json"

    @pytest.mark.asyncio
    async def test_get_by_slug_returns_first_hit(self, gateway, upstream):
        upstream.kitsu("/manga", {"data": [{"id": "1"}, {"id": "2"}]})

        manga = await KitsuClient(gateway).get_manga_by_slug("berserk")

        assert manga == {"id": "1"}
        assert "filter%5Bslug%5D=berserk" in upstream.params_for("/manga")[0]

    @pytest.mark.asyncio
    async def test_get_by_slug_missing(self, gateway, upstream):
        upstream.kitsu("/manga", {"data": []})

        assert await KitsuClient(gateway).get_manga_by_slug("nothing") is None

    @pytest.mark.asyncio
    async def test_trending_and_recent(self, gateway, upstream):
        upstream.kitsu("/trending/manga", {"data": [{"id": "t"}]})
        upstream.kitsu("/manga", {"data": [{"id": "r"}]})
        client = KitsuClient(gateway)

        assert await client.get_trending_manga(5) == [{"id": "t"}]
        assert await client.get_recent_manga(3) == [{"id": "r"}]
        assert upstream.params_for("/manga")[0] == "sort=-updatedAt&page%5Blimit%5D=3"

    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_not_retryable(self):
        gateway = ProviderGateway(providers=load_provider_configs({}))
        try:
            with pytest.raises(ProviderCallError) as exc_info:
                await KitsuClient(gateway).search_manga("Naruto")
        finally:
            await gateway.aclose()

        assert exc_info.value.failure.kind == ErrorKind.CONFIGURATION
        assert not exc_info.value.retryable

    def test_image_size_fallback(self):
        images = {"small": "s.jpg", "medium": "m.jpg"}

        assert KitsuClient.poster_image_url(images, "medium") == "m.jpg"
        assert KitsuClient.poster_image_url(images, "large") == "m.jpg"
        ends = {"original": "o.jpg", "small": "s.jpg"}
        assert KitsuClient.poster_image_url(ends, "medium") == "s.jpg"
        assert KitsuClient.poster_image_url({"original": "o.jpg", "tiny": "t.jpg"}, "large") == "o.jpg"
        assert KitsuClient.cover_image_url(None) is None
        assert KitsuClient.cover_image_url({}) is None


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Naruto", "naruto"),
        ("Attack on Titan", "attack-on-titan"),
        ("Kaguya-sama: Love Is War!", "kaguya-sama-love-is-war"),
        ("Pokémon Adventures", "pokemon-adventures"),
        ("  --  ", ""),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected
