"""
MangaRead Reader

Provider clients, cross-provider reconciliation and local library for the
manga reader, built on the gateway.
"""

from .clients import KitsuClient, MangaDexClient, ProviderCallError, slugify
from .images import fetch_chapter_images, fetch_page_image
from .library import Bookmarks, ReadingHistory
from .reconcile import (
    MangaDetail,
    ReaderSession,
    Reconciler,
    best_match,
    chapter_page_urls,
    normalize_title,
    sort_chapters,
    title_similarity,
)

__all__ = [
    "MangaDexClient",
    "KitsuClient",
    "ProviderCallError",
    "slugify",
    "Reconciler",
    "MangaDetail",
    "ReaderSession",
    "normalize_title",
    "title_similarity",
    "best_match",
    "sort_chapters",
    "chapter_page_urls",
    "fetch_page_image",
    "fetch_chapter_images",
    "ReadingHistory",
    "Bookmarks",
]
