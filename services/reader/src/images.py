"""
Page image fetching with bounded retry.

Images are served by the page server named in a chapter manifest, not by
the gateway, so they are fetched with a plain httpx client.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_CONCURRENCY = 4


async def fetch_page_image(
    client: httpx.AsyncClient,
    url: str,
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_RETRY_DELAY,
    fallback: Optional[bytes] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[bytes]:
    """
    Fetch one page image, retrying with a fixed delay.

    Args:
        client: HTTP client to fetch with
        url: Image URL
        attempts: Total attempts, at least 1
        delay: Seconds to wait between attempts
        fallback: Returned when every attempt fails

    Returns:
        Image bytes, or ``fallback``
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            response = await client.get(url)
            if response.is_success:
                return response.content
            logger.warning(
                f"Error loading image {url} (attempt {attempt}/{attempts}): "
                f"status {response.status_code}"
            )
        except httpx.TransportError as e:
            logger.warning(f"Error loading image {url} (attempt {attempt}/{attempts}): {e}")

        if attempt < attempts:
            await sleep(delay)

    logger.error(f"Failed to load image {url} after {attempts} attempts")
    return fallback


async def fetch_chapter_images(
    client: httpx.AsyncClient,
    urls: Sequence[str],
    concurrency: int = DEFAULT_CONCURRENCY,
    on_page: Optional[Callable[[], None]] = None,
    **kwargs,
) -> List[Optional[bytes]]:
    """Fetch every page of a chapter, at most ``concurrency`` at a time, in page order."""
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def fetch(url: str) -> Optional[bytes]:
        async with semaphore:
            content = await fetch_page_image(client, url, **kwargs)
        if on_page is not None:
            on_page()
        return content

    return list(await asyncio.gather(*(fetch(url) for url in urls)))
