"""
Provider clients built on the gateway.

MangaDexClient talks to the primary-content provider (manga, chapters and
page-server manifests); KitsuClient talks to the metadata-art provider
(titles, posters, trending lists). Both go through ProviderGateway.call and
raise ProviderCallError when the gateway reports a failure.
"""

import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional

from manga_gateway import GatewayFailure, GatewayResult, Provider, ProviderGateway

logger = logging.getLogger(__name__)

MANGADEX_COVER_URL = "https://uploads.mangadex.org/covers"
CONTENT_RATINGS = ["safe", "suggestive", "erotica"]
IMAGE_SIZES = ("original", "large", "medium", "small", "tiny")


class ProviderCallError(Exception):
    """A gateway call came back as a GatewayFailure."""

    def __init__(self, failure: GatewayFailure, path: str = ""):
        super().__init__(f"{failure.message} ({failure.status}) for {path or '/'}")
        self.failure = failure
        self.path = path

    @property
    def retryable(self) -> bool:
        return self.failure.retryable


def _unwrap(result: GatewayResult, path: str) -> Any:
    if isinstance(result, GatewayFailure):
        raise ProviderCallError(result, path)
    return result.data


class MangaDexClient:
    """Client for the primary-content provider."""

    provider = Provider.PRIMARY_CONTENT

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        result = await self.gateway.call(self.provider.value, "GET", path, params)
        return _unwrap(result, path)

    async def search_manga(self, title: str, limit: int = 20, offset: int = 0) -> dict:
        """
        Search manga by title.

        Args:
            title: Title query
            limit: Page size
            offset: Result offset

        Returns:
            Manga list response (``data``, ``limit``, ``offset``, ``total``)
        """
        params = {
            "title": title,
            "limit": str(limit),
            "offset": str(offset),
            "includes": ["cover_art", "author", "artist"],
            "contentRating": CONTENT_RATINGS,
            "order": {"relevance": "desc"},
        }
        return await self._get("manga", params)

    async def get_manga(self, manga_id: str) -> dict:
        params = {"includes": ["cover_art", "author", "artist", "tag"]}
        return await self._get(f"manga/{manga_id}", params)

    async def get_chapters(
        self,
        manga_id: str,
        limit: int = 100,
        offset: int = 0,
        translated_language: str = "en",
    ) -> dict:
        """Fetch a page of chapters for one manga, ordered by volume then chapter."""
        params = {
            "limit": str(limit),
            "offset": str(offset),
            "manga": [manga_id],
            "translatedLanguage": [translated_language],
            "order": {"volume": "asc", "chapter": "asc"},
        }
        return await self._get("chapter", params)

    async def get_chapter(self, chapter_id: str) -> dict:
        return await self._get(f"chapter/{chapter_id}", {"includes": ["scanlation_group"]})

    async def get_chapter_pages(self, chapter_id: str) -> dict:
        """
        Resolve the page-server manifest for a chapter.

        This endpoint is rate limited by the gateway; the call may wait for a
        permit before it is sent.
        """
        return await self._get(f"at-home/server/{chapter_id}")

    async def get_popular_manga(self, limit: int = 20, offset: int = 0) -> dict:
        params = {
            "limit": str(limit),
            "offset": str(offset),
            "includes": ["cover_art"],
            "contentRating": CONTENT_RATINGS,
            "order": {"followedCount": "desc"},
        }
        return await self._get("manga", params)

    async def get_latest_updates(self, limit: int = 20, offset: int = 0) -> dict:
        params = {
            "limit": str(limit),
            "offset": str(offset),
            "includes": ["cover_art", "manga"],
            "contentRating": CONTENT_RATINGS,
            "order": {"updatedAt": "desc"},
        }
        return await self._get("chapter", params)

    @staticmethod
    def cover_image_url(manga_id: str, filename: str) -> str:
        return f"{MANGADEX_COVER_URL}/{manga_id}/{filename}"

    @staticmethod
    def cover_filename(manga: dict) -> Optional[str]:
        """Find the cover_art file name among a manga's relationships."""
        for rel in manga.get("relationships", []):
            if rel.get("type") == "cover_art":
                return (rel.get("attributes") or {}).get("fileName")
        return None


class KitsuClient:
    """Client for the metadata-art provider (JSON:API)."""

    provider = Provider.METADATA_ART

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        result = await self.gateway.call(self.provider.value, "GET", path, params)
        return _unwrap(result, path)

    async def search_manga(self, text: str, limit: int = 10) -> dict:
        params = {
            "filter": {"text": text},
            "page": {"limit": str(limit)},
        }
        return await self._get("manga", params)

    async def get_manga_by_slug(self, slug: str) -> Optional[dict]:
        """Return the first manga matching a slug, or None."""
        params = {
            "filter": {"slug": slug},
            "include": "genres",
        }
        response = await self._get("manga", params)
        data = (response or {}).get("data") or []
        if not data:
            logger.info(f"No metadata entry for slug {slug}")
            return None
        return data[0]

    async def get_trending_manga(self, limit: int = 20) -> List[dict]:
        response = await self._get("trending/manga", {"limit": str(limit)})
        return (response or {}).get("data") or []

    async def get_recent_manga(self, limit: int = 12) -> List[dict]:
        params = {
            "sort": "-updatedAt",
            "page": {"limit": str(limit)},
        }
        response = await self._get("manga", params)
        return (response or {}).get("data") or []

    @staticmethod
    def _pick_image(images: Optional[Dict[str, str]], size: str) -> Optional[str]:
        if not images:
            return None
        if images.get(size):
            return images[size]
        # Fall back to the nearest other size, smaller first on a tie
        wanted = IMAGE_SIZES.index(size) if size in IMAGE_SIZES else 0
        ranked = sorted(
            range(len(IMAGE_SIZES)), key=lambda i: (abs(i - wanted), i < wanted)
        )
        for i in ranked:
            if images.get(IMAGE_SIZES[i]):
                return images[IMAGE_SIZES[i]]
        return None

    @classmethod
    def poster_image_url(
        cls, poster_image: Optional[Dict[str, str]], size: str = "large"
    ) -> Optional[str]:
        return cls._pick_image(poster_image, size)

    @classmethod
    def cover_image_url(
        cls, cover_image: Optional[Dict[str, str]], size: str = "original"
    ) -> Optional[str]:
        return cls._pick_image(cover_image, size)


def slugify(title: str) -> str:
    """Lowercase, ASCII-fold, and join alphanumeric runs with ``-``."""
    text = unicodedata.normalize("NFKD", title or "")
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-")
