"""
MangaRead Reader

Command-line front end for searching, resolving and reading manga through
the provider gateway. Titles and art come from the metadata provider,
chapters and pages from the content provider; the two are matched by title.

Reading history and bookmarks are kept locally under data/.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx
from tqdm import tqdm

from manga_gateway import ProviderGateway

from .clients import KitsuClient, MangaDexClient, ProviderCallError, slugify
from .images import fetch_chapter_images
from .library import DATA_DIR, Bookmarks, ReadingHistory
from .reconcile import (
    Reconciler,
    chapter_label,
    chapter_page_urls,
    kitsu_title,
    mangadex_title,
    sort_chapters,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

DOWNLOAD_DIR = DATA_DIR / "downloads"


def _print(title: str, payload) -> None:
    print(f"\n--- {title} ---")
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _summarize_mangadex(manga: dict) -> dict:
    attributes = manga.get("attributes") or {}
    filename = MangaDexClient.cover_filename(manga)
    return {
        "id": manga.get("id"),
        "title": mangadex_title(manga),
        "status": attributes.get("status"),
        "year": attributes.get("year"),
        "cover_url": MangaDexClient.cover_image_url(manga["id"], filename) if filename else None,
    }


def _summarize_kitsu(manga: dict) -> dict:
    attributes = manga.get("attributes") or {}
    title = kitsu_title(manga)
    return {
        "id": manga.get("id"),
        "slug": attributes.get("slug") or slugify(title),
        "title": title,
        "rating": attributes.get("averageRating"),
        "chapters": attributes.get("chapterCount"),
        "poster_url": KitsuClient.poster_image_url(attributes.get("posterImage")),
    }


def _summarize_chapter(chapter: dict) -> dict:
    attributes = chapter.get("attributes") or {}
    return {
        "id": chapter.get("id"),
        "volume": attributes.get("volume"),
        "chapter": attributes.get("chapter"),
        "label": chapter_label(chapter),
        "pages": attributes.get("pages"),
    }


async def search(gateway: ProviderGateway, title: str, limit: int) -> dict:
    response = await MangaDexClient(gateway).search_manga(title, limit=limit)
    results = [_summarize_mangadex(m) for m in response.get("data") or []]
    return {"query": title, "total": response.get("total", len(results)), "results": results}


async def manga_info(
    gateway: ProviderGateway, slug: Optional[str], mangadex_id: Optional[str]
) -> dict:
    reconciler = Reconciler(MangaDexClient(gateway), KitsuClient(gateway))
    detail = await reconciler.resolve_manga(slug=slug, mangadex_id=mangadex_id)
    attributes = (detail.kitsu or {}).get("attributes") or {}
    return {
        "title": detail.title,
        "mangadex_id": detail.mangadex_id,
        "kitsu_id": (detail.kitsu or {}).get("id"),
        "synopsis": attributes.get("description") or "No description available",
        "rating": attributes.get("averageRating"),
        "status": attributes.get("status"),
        "poster_url": KitsuClient.poster_image_url(attributes.get("posterImage")),
        "cover_url": KitsuClient.cover_image_url(attributes.get("coverImage")),
        "chapters": [_summarize_chapter(c) for c in detail.chapters],
    }


async def list_chapters(gateway: ProviderGateway, mangadex_id: str, language: str) -> List[dict]:
    response = await MangaDexClient(gateway).get_chapters(
        mangadex_id, translated_language=language
    )
    return [_summarize_chapter(c) for c in sort_chapters(response.get("data") or [])]


async def read_chapter(
    gateway: ProviderGateway,
    slug: str,
    chapter_id: str,
    page: Optional[int],
    data_saver: bool,
    history: ReadingHistory,
) -> dict:
    reconciler = Reconciler(MangaDexClient(gateway), KitsuClient(gateway))
    session = await reconciler.open_chapter(slug, chapter_id, history=history, data_saver=data_saver)

    current = session.initial_page
    if page is not None and session.total_pages:
        current = max(1, min(page, session.total_pages))

    if session.total_pages:
        history.record(
            slug,
            chapter_id,
            page=current,
            total_pages=session.total_pages,
            manga_id=session.mangadex_id,
            manga_title=session.manga_title,
            chapter=((session.chapter or {}).get("attributes") or {}).get("chapter"),
            poster_url=session.poster_url,
        )

    return {
        "manga": session.manga_title,
        "chapter": session.chapter_title,
        "page": current,
        "total_pages": session.total_pages,
        "page_url": session.page_urls[current - 1] if session.page_urls else None,
        "previous_chapter": session.previous_chapter_id,
        "next_chapter": session.next_chapter_id,
    }


async def download_chapter(
    gateway: ProviderGateway,
    chapter_id: str,
    output_dir: Path,
    data_saver: bool,
    client: Optional[httpx.AsyncClient] = None,
    **fetch_options,
) -> dict:
    """
    Fetch a chapter's manifest and save every page image to disk.

    Pages are written as 001.png, 002.png, ... in page order. Pages that
    still fail after retrying are listed in ``failed_pages``.
    """
    manifest = await MangaDexClient(gateway).get_chapter_pages(chapter_id)
    urls = chapter_page_urls(manifest, data_saver=data_saver)
    if not urls:
        return {"status": "error", "error": "Chapter has no pages", "chapter_id": chapter_id}

    target = output_dir / chapter_id
    target.mkdir(parents=True, exist_ok=True)

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=30)
    try:
        with tqdm(total=len(urls), desc=f"Chapter {chapter_id[:8]}", unit="page") as progress:
            images = await fetch_chapter_images(
                client, urls, on_page=progress.update, **fetch_options
            )
    finally:
        if owns_client:
            await client.aclose()

    failed = []
    for index, (url, content) in enumerate(zip(urls, images), 1):
        if content is None:
            failed.append(index)
            continue
        suffix = Path(url).suffix or ".jpg"
        (target / f"{index:03d}{suffix}").write_bytes(content)

    return {
        "status": "completed" if not failed else "completed_with_errors",
        "pages": len(urls),
        "failed_pages": failed,
        "output_directory": str(target),
    }


async def prefetch_manifests(gateway: ProviderGateway, mangadex_id: str, limit: int) -> dict:
    """
    Resolve page manifests for the first ``limit`` chapters of a manga.

    Page-server calls are rate limited, so long runs pause once the
    per-minute quota is used up.
    """
    reconciler = Reconciler(MangaDexClient(gateway), KitsuClient(gateway))
    chapters = (await reconciler.load_chapters(mangadex_id))[:limit]
    resolved, errors = {}, []

    for chapter in tqdm(chapters, desc="Manifests", unit="chapter"):
        chapter_id = chapter.get("id")
        try:
            manifest = await reconciler.mangadex.get_chapter_pages(chapter_id)
        except ProviderCallError as e:
            errors.append(f"{chapter_id}: {e}")
            if not e.retryable:
                break
            continue
        resolved[chapter_id] = len(chapter_page_urls(manifest))

    return {
        "status": "completed" if not errors else "completed_with_errors",
        "chapters_resolved": len(resolved),
        "pages": resolved,
        "errors": errors[:20],
    }


async def discover(gateway: ProviderGateway, source: str, limit: int) -> List[dict]:
    if source == "trending":
        return [_summarize_kitsu(m) for m in await KitsuClient(gateway).get_trending_manga(limit)]
    if source == "recent":
        return [_summarize_kitsu(m) for m in await KitsuClient(gateway).get_recent_manga(limit)]
    if source == "popular":
        response = await MangaDexClient(gateway).get_popular_manga(limit=limit)
        return [_summarize_mangadex(m) for m in response.get("data") or []]
    response = await MangaDexClient(gateway).get_latest_updates(limit=limit)
    return [_summarize_chapter(c) for c in response.get("data") or []]


async def run_command(args) -> int:
    history = ReadingHistory()

    async with ProviderGateway.from_env() as gateway:
        if args.command == "search":
            _print("Search Results", await search(gateway, args.title, args.limit))
        elif args.command == "info":
            _print("Manga", await manga_info(gateway, args.slug, args.mdid))
        elif args.command == "chapters":
            _print("Chapters", await list_chapters(gateway, args.mdid, args.language))
        elif args.command == "read":
            _print(
                "Reader",
                await read_chapter(
                    gateway, args.slug, args.chapter_id, args.page, args.data_saver, history
                ),
            )
        elif args.command == "download":
            _print(
                "Download Summary",
                await download_chapter(gateway, args.chapter_id, args.output_dir, args.data_saver),
            )
        elif args.command == "prefetch":
            _print("Prefetch Summary", await prefetch_manifests(gateway, args.mdid, args.limit))
        elif args.command in ("trending", "recent", "popular", "latest"):
            _print(args.command.title(), await discover(gateway, args.command, args.limit))
    return 0


def run_library_command(args) -> int:
    if args.command == "history":
        _print("Reading History", ReadingHistory().recent(args.limit))
        return 0

    bookmarks = Bookmarks()
    if args.action == "add":
        entry = bookmarks.add(args.slug, manga_title=args.title or "", manga_id=args.mdid)
        _print("Bookmarked", entry)
    elif args.action == "remove":
        if not bookmarks.remove(args.slug):
            print(f"No bookmark for {args.slug}")
            return 1
        print(f"Removed bookmark for {args.slug}")
    else:
        _print("Bookmarks", bookmarks.list())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search and read manga through the provider gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m manga_reader.main search "Naruto"             # Search content provider
  python -m manga_reader.main info --slug naruto          # Resolve across providers
  python -m manga_reader.main info --mdid <uuid>          # Resolve from a content id
  python -m manga_reader.main read naruto <chapter-id>    # Open a chapter
  python -m manga_reader.main download <chapter-id>       # Save page images
  python -m manga_reader.main prefetch <uuid> --limit 80  # Warm manifests (rate limited)
  python -m manga_reader.main bookmark add naruto --title Naruto
  python -m manga_reader.main history
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    search_parser = subparsers.add_parser("search", help="Search manga by title")
    search_parser.add_argument("title", help="Title to search for")
    search_parser.add_argument("--limit", type=int, default=20, help="Results (default: 20)")

    info_parser = subparsers.add_parser("info", help="Show manga details and chapters")
    group = info_parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--slug", help="Metadata provider slug")
    group.add_argument("--mdid", help="Content provider manga id")

    chapters_parser = subparsers.add_parser("chapters", help="List chapters of a manga")
    chapters_parser.add_argument("mdid", help="Content provider manga id")
    chapters_parser.add_argument(
        "--language", default="en", help="Translated language (default: en)"
    )

    read_parser = subparsers.add_parser("read", help="Open a chapter and record progress")
    read_parser.add_argument("slug", help="Metadata provider slug")
    read_parser.add_argument("chapter_id", help="Content provider chapter id")
    read_parser.add_argument("--page", type=int, default=None, help="Jump to page")
    read_parser.add_argument("--data-saver", action="store_true", help="Use compressed images")

    download_parser = subparsers.add_parser("download", help="Download a chapter's pages")
    download_parser.add_argument("chapter_id", help="Content provider chapter id")
    download_parser.add_argument(
        "--output-dir",
        type=Path,
        default=DOWNLOAD_DIR,
        help=f"Output directory (default: {DOWNLOAD_DIR})",
    )
    download_parser.add_argument("--data-saver", action="store_true", help="Use compressed images")

    prefetch_parser = subparsers.add_parser("prefetch", help="Resolve page manifests")
    prefetch_parser.add_argument("mdid", help="Content provider manga id")
    prefetch_parser.add_argument("--limit", type=int, default=40, help="Chapters (default: 40)")

    for name, default, help_text in (
        ("trending", 20, "Trending manga (metadata provider)"),
        ("recent", 12, "Recently updated manga (metadata provider)"),
        ("popular", 20, "Most followed manga (content provider)"),
        ("latest", 20, "Latest chapter uploads (content provider)"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--limit", type=int, default=default, help=f"Results (default: {default})")

    bookmark_parser = subparsers.add_parser("bookmark", help="Manage local bookmarks")
    bookmark_parser.add_argument("action", choices=["add", "remove", "list"])
    bookmark_parser.add_argument("slug", nargs="?", help="Manga slug")
    bookmark_parser.add_argument("--title", help="Title to store with the bookmark")
    bookmark_parser.add_argument("--mdid", help="Content provider manga id")

    history_parser = subparsers.add_parser("history", help="Show recent reading history")
    history_parser.add_argument("--limit", type=int, default=10, help="Entries (default: 10)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command in ("bookmark", "history"):
        if args.command == "bookmark" and args.action != "list" and not args.slug:
            parser.error("bookmark add/remove requires a slug")
        return run_library_command(args)

    try:
        return asyncio.run(run_command(args))
    except ProviderCallError as e:
        if e.retryable:
            logger.error(f"Provider unavailable, try again later: {e}")
        else:
            logger.error(f"Request cannot be completed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
