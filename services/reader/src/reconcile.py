"""
Reconciliation between the two providers.

Neither provider exposes the other's identifiers, so records are matched
by comparing normalized titles. The Reconciler builds the two views the
reader needs: a manga detail (metadata plus ordered chapters) and a reader
session for one chapter (page URLs, neighbours, restored progress).
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, TypeVar

from rapidfuzz import fuzz

from .clients import KitsuClient, MangaDexClient
from .library import ReadingHistory

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.6
SEARCH_CANDIDATES = 5

T = TypeVar("T")


def normalize_title(title: Optional[str]) -> str:
    """Fold case and accents, drop punctuation, collapse whitespace."""
    if not title:
        return ""
    text = unicodedata.normalize("NFKD", title)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.casefold()
    text = re.sub(r"[^\w\s]", " ", text)
    text = text.replace("_", " ")
    return " ".join(text.split())


def title_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Similarity of two titles in [0, 1]."""
    left, right = normalize_title(a), normalize_title(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    # rapidfuzz scores 0-100
    return fuzz.ratio(left, right) / 100.0


def best_match(
    title: str,
    candidates: Sequence[T],
    title_of: Callable[[T], Optional[str]],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> Optional[T]:
    """
    Pick the candidate whose title is closest to ``title``.

    Args:
        title: Title to match against
        candidates: Records from the other provider
        title_of: Extracts a comparable title from a candidate
        threshold: Minimum similarity to accept

    Returns:
        The best candidate at or above the threshold (earliest on ties), or None
    """
    best, best_score = None, -1.0
    for candidate in candidates:
        score = title_similarity(title, title_of(candidate))
        if score >= threshold and score > best_score:
            best, best_score = candidate, score
    return best


def mangadex_title(manga: Optional[dict]) -> str:
    titles = ((manga or {}).get("attributes") or {}).get("title") or {}
    if titles.get("en"):
        return titles["en"]
    return next(iter(titles.values()), "")


def kitsu_title(manga: Optional[dict]) -> str:
    attributes = (manga or {}).get("attributes") or {}
    return attributes.get("canonicalTitle") or (attributes.get("titles") or {}).get("en_jp") or ""


def _as_number(value: Optional[str]) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def sort_chapters(chapters: Sequence[dict]) -> List[dict]:
    """Order chapters by volume, then chapter number; unnumbered sort as 0."""

    def key(chapter):
        attributes = chapter.get("attributes") or {}
        return (_as_number(attributes.get("volume")), _as_number(attributes.get("chapter")))

    return sorted(chapters, key=key)


def chapter_label(chapter: Optional[dict]) -> str:
    attributes = (chapter or {}).get("attributes") or {}
    label = f"Chapter {attributes.get('chapter') or '?'}"
    if attributes.get("title"):
        label += f": {attributes['title']}"
    return label


def chapter_page_urls(at_home: Optional[dict], data_saver: bool = False) -> List[str]:
    """Build image URLs from a page-server manifest."""
    at_home = at_home or {}
    base_url = at_home.get("baseUrl")
    chapter = at_home.get("chapter") or {}
    files_key = "dataSaver" if data_saver else "data"
    files = chapter.get(files_key)

    if not base_url or not chapter.get("hash") or not files:
        logger.error("Chapter manifest is missing baseUrl, hash, or image list")
        return []

    quality = "data-saver" if data_saver else "data"
    return [f"{base_url}/{quality}/{chapter['hash']}/{name}" for name in files]


@dataclass
class MangaDetail:
    """Metadata record and content record for one manga, if found."""

    kitsu: Optional[dict] = None
    mangadex_id: Optional[str] = None
    chapters: List[dict] = field(default_factory=list)

    @property
    def title(self) -> str:
        return kitsu_title(self.kitsu) or "Unknown Title"

    @property
    def found(self) -> bool:
        return self.kitsu is not None or self.mangadex_id is not None


@dataclass
class ReaderSession:
    """Everything needed to display one chapter."""

    manga_slug: str
    manga_title: str
    mangadex_id: Optional[str]
    chapter_id: str
    chapter_title: str = ""
    chapter: Optional[dict] = None
    chapters: List[dict] = field(default_factory=list)
    page_urls: List[str] = field(default_factory=list)
    initial_page: int = 1
    poster_url: Optional[str] = None

    @property
    def total_pages(self) -> int:
        return len(self.page_urls)

    def _neighbour(self, step: int) -> Optional[str]:
        ids = [c.get("id") for c in self.chapters]
        if self.chapter_id not in ids:
            return None
        index = ids.index(self.chapter_id) + step
        if 0 <= index < len(ids):
            return ids[index]
        return None

    @property
    def previous_chapter_id(self) -> Optional[str]:
        return self._neighbour(-1)

    @property
    def next_chapter_id(self) -> Optional[str]:
        return self._neighbour(1)


class Reconciler:
    """Cross-references the two providers by title."""

    def __init__(
        self,
        mangadex: MangaDexClient,
        kitsu: KitsuClient,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ):
        self.mangadex = mangadex
        self.kitsu = kitsu
        self.threshold = threshold

    async def find_mangadex_id(self, title: str) -> Optional[str]:
        if not title:
            return None
        response = await self.mangadex.search_manga(title, limit=SEARCH_CANDIDATES)
        match = best_match(title, response.get("data") or [], mangadex_title, self.threshold)
        if match is None:
            logger.warning(f"No content entry matches title: {title}")
            return None
        return match.get("id")

    async def find_kitsu_manga(self, title: str) -> Optional[dict]:
        if not title:
            return None
        response = await self.kitsu.search_manga(title, limit=SEARCH_CANDIDATES)
        match = best_match(title, response.get("data") or [], kitsu_title, self.threshold)
        if match is None:
            logger.warning(f"No metadata entry matches title: {title}")
        return match

    async def load_chapters(self, mangadex_id: str, limit: int = 100) -> List[dict]:
        response = await self.mangadex.get_chapters(mangadex_id, limit=limit)
        return sort_chapters(response.get("data") or [])

    async def resolve_manga(
        self, slug: Optional[str] = None, mangadex_id: Optional[str] = None
    ) -> MangaDetail:
        """
        Resolve a manga across both providers.

        With a content id, its title is looked up on the metadata side.
        Otherwise the metadata record is fetched by slug and its title is
        looked up on the content side. Chapters are loaded whenever a
        content id is known.
        """
        detail = MangaDetail(mangadex_id=mangadex_id)

        if mangadex_id:
            response = await self.mangadex.get_manga(mangadex_id)
            manga = response.get("data")
            if manga:
                detail.kitsu = await self.find_kitsu_manga(mangadex_title(manga))
        elif slug:
            detail.kitsu = await self.kitsu.get_manga_by_slug(slug)
            if detail.kitsu:
                detail.mangadex_id = await self.find_mangadex_id(kitsu_title(detail.kitsu))
        else:
            raise ValueError("Either slug or mangadex_id is required")

        if detail.mangadex_id:
            detail.chapters = await self.load_chapters(detail.mangadex_id)
            logger.info(f"Resolved {detail.title}: {len(detail.chapters)} chapters")
        else:
            logger.warning(f"No content id determined for slug: {slug}")

        return detail

    async def open_chapter(
        self,
        slug: str,
        chapter_id: str,
        history: Optional[ReadingHistory] = None,
        data_saver: bool = False,
    ) -> ReaderSession:
        """Build a reader session for one chapter of the manga at ``slug``."""
        kitsu = await self.kitsu.get_manga_by_slug(slug)
        title = kitsu_title(kitsu) or "Unknown Manga"
        session = ReaderSession(
            manga_slug=slug,
            manga_title=title,
            mangadex_id=None,
            chapter_id=chapter_id,
        )
        if kitsu is None:
            return session

        poster = (kitsu.get("attributes") or {}).get("posterImage")
        session.poster_url = KitsuClient.poster_image_url(poster, "medium")

        session.mangadex_id = await self.find_mangadex_id(title)
        if session.mangadex_id is None:
            return session

        session.chapters = await self.load_chapters(session.mangadex_id)

        chapter_response = await self.mangadex.get_chapter(chapter_id)
        session.chapter = chapter_response.get("data")
        session.chapter_title = chapter_label(session.chapter)

        manifest = await self.mangadex.get_chapter_pages(chapter_id)
        session.page_urls = chapter_page_urls(manifest, data_saver=data_saver)

        if history is not None and session.page_urls:
            session.initial_page = history.resume_page(slug, chapter_id, session.total_pages)

        return session
