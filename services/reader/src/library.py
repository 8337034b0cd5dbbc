"""
Local reading history and bookmarks.

Both are plain JSON files under the data directory. A missing or corrupt
file starts empty; nothing is shared between machines.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Paths - check for Docker mount first, then fall back to project-relative paths
if os.environ.get("MANGA_READER_DATA_DIR"):
    DATA_DIR = Path(os.environ["MANGA_READER_DATA_DIR"])
elif Path("/app/data").exists():
    DATA_DIR = Path("/app/data")
else:
    PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
    DATA_DIR = PROJECT_ROOT / "data"

HISTORY_FILE = DATA_DIR / "reading_history.json"
BOOKMARKS_FILE = DATA_DIR / "bookmarks.json"


class _JsonStore:
    def __init__(self, path: Path):
        self.path = path
        self._data = None

    def _default(self):
        raise NotImplementedError

    @property
    def data(self):
        if self._data is None:
            self._data = self._load()
        return self._data

    def _load(self):
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, type(self._default())):
                    return data
                logger.warning(f"Unexpected content in {self.path}, starting empty")
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not load {self.path}: {e}")
        return self._default()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, ensure_ascii=False, indent=2)


class ReadingHistory(_JsonStore):
    """Last read position per manga, keyed by slug."""

    def __init__(self, path: Optional[Path] = None):
        super().__init__(path or HISTORY_FILE)

    def _default(self) -> dict:
        return {}

    def record(
        self,
        manga_slug: str,
        chapter_id: str,
        page: int,
        total_pages: int,
        manga_id: Optional[str] = None,
        manga_title: str = "",
        chapter: Optional[str] = None,
        poster_url: Optional[str] = None,
    ) -> dict:
        """Save the current reading position and return the stored entry."""
        now = datetime.now().isoformat()
        entry = {
            "lastTime": now,
            "mangaId": manga_id or manga_slug,
            "mangaSlug": manga_slug,
            "mangaTitle": manga_title,
            "chapterId": chapter_id,
            "chapter": chapter or "Unknown",
            "page": page,
            "totalPages": total_pages,
            "posterUrl": poster_url,
            "lastRead": now,
        }
        self.data[manga_slug] = entry
        self.save()
        return entry

    def get(self, manga_slug: str) -> Optional[dict]:
        return self.data.get(manga_slug)

    def resume_page(self, manga_slug: str, chapter_id: str, total_pages: int) -> int:
        """
        Page to open a chapter at.

        The saved page is used only when it belongs to the same chapter,
        and is clamped to the chapter's page count.
        """
        entry = self.get(manga_slug)
        if not entry or entry.get("chapterId") != chapter_id or not entry.get("page"):
            return 1
        return max(1, min(int(entry["page"]), total_pages))

    def recent(self, limit: int = 10) -> List[dict]:
        entries = sorted(
            self.data.values(), key=lambda e: e.get("lastRead") or "", reverse=True
        )
        return entries[:limit]

    def remove(self, manga_slug: str) -> bool:
        if manga_slug not in self.data:
            return False
        del self.data[manga_slug]
        self.save()
        return True


class Bookmarks(_JsonStore):
    """Saved manga, in the order they were added."""

    def __init__(self, path: Optional[Path] = None):
        super().__init__(path or BOOKMARKS_FILE)

    def _default(self) -> list:
        return []

    def _index(self, manga_slug: str) -> Optional[int]:
        for i, item in enumerate(self.data):
            if item.get("mangaSlug") == manga_slug:
                return i
        return None

    def add(
        self,
        manga_slug: str,
        manga_title: str = "",
        manga_id: Optional[str] = None,
        poster_url: Optional[str] = None,
    ) -> dict:
        """Add a bookmark, or refresh the existing one for the same slug."""
        entry = {
            "mangaSlug": manga_slug,
            "mangaTitle": manga_title,
            "mangaId": manga_id,
            "posterUrl": poster_url,
            "addedAt": datetime.now().isoformat(),
        }
        index = self._index(manga_slug)
        if index is None:
            self.data.append(entry)
        else:
            entry["addedAt"] = self.data[index].get("addedAt", entry["addedAt"])
            self.data[index] = entry
        self.save()
        return entry

    def remove(self, manga_slug: str) -> bool:
        index = self._index(manga_slug)
        if index is None:
            return False
        del self.data[index]
        self.save()
        return True

    def contains(self, manga_slug: str) -> bool:
        return self._index(manga_slug) is not None

    def list(self) -> List[dict]:
        return list(self.data)
