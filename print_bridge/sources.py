"""Fetching trust documents (certificates, keys) from files or URLs."""

import asyncio
from pathlib import Path
from typing import Optional

import httpx

# Trust material must never come from a stale cache
NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


async def fetch_text(source: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """Return the text at ``source``, a file path or an http(s) URL.

    Raises ``OSError`` for unreadable files and ``httpx.HTTPError`` for
    failed requests (including non-2xx answers).
    """
    if not is_url(source):
        return await asyncio.to_thread(Path(source).read_text, encoding="utf-8")

    if client is not None:
        response = await client.get(source, headers=NO_CACHE_HEADERS)
        response.raise_for_status()
        return response.text

    async with httpx.AsyncClient() as own_client:
        response = await own_client.get(source, headers=NO_CACHE_HEADERS)
        response.raise_for_status()
        return response.text
