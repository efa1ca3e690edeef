"""
Lazy traversal of paginated cloud API list endpoints.

List endpoints return ``{"data": [...], "links": {"next": <absolute url>}}``.
A ``next`` link is followed only when it lives under the client's API base;
a link with any other base ends the traversal (treated as "no more pages")
rather than raising, to tolerate vendor inconsistencies.

Each page's ``next`` link depends on that page's response, so pages are
fetched strictly one after another.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from helios.src.client import CloudClient

logger = logging.getLogger(__name__)


def next_page_path(links: Any, base_url: str) -> str | None:
    """Return the relative path of the next page, or ``None`` to stop.

    Args:
        links: The ``links`` object of a page (may be missing or malformed).
        base_url: API base the link must start with.

    Returns:
        A path starting with ``/`` (query string preserved), or ``None``
        when there is no next link or it has an unexpected base.
    """
    if not isinstance(links, dict):
        return None
    link = links.get("next")
    if not isinstance(link, str) or not link:
        return None
    if not link.startswith(base_url):
        logger.warning("Next page URL from unexpected base, stopping: %s", link)
        return None

    path = link[len(base_url) :]
    if not path.startswith("/"):
        path = "/" + path
    return path


class PagedCollection:
    """Finite, restartable async iterable over the pages of a list endpoint.

    Every ``async for`` starts a fresh traversal from *first_path*; nothing
    is fetched until iteration begins.

    Args:
        client: Authenticated cloud client.
        first_path: Path of the first page, e.g. ``"/communication-device"``.

    Usage::

        devices = await PagedCollection(client, "/communication-device").collect()
    """

    def __init__(self, client: CloudClient, first_path: str) -> None:
        self._client = client
        self._first_path = first_path

    def __aiter__(self) -> AsyncIterator[list[Any]]:
        return self._pages()

    async def _pages(self) -> AsyncIterator[list[Any]]:
        path: str | None = self._first_path
        page_number = 0
        while path is not None:
            payload = await self._client.get_json(path)
            page_number += 1

            records = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(records, list):
                logger.debug(
                    "Page %d of %s carried no data list", page_number, self._first_path
                )
                records = []
            yield records

            links = payload.get("links") if isinstance(payload, dict) else None
            path = next_page_path(links, self._client.base_url)

    async def collect(self) -> list[Any]:
        """Walk every page and return all records in order."""
        records: list[Any] = []
        async for page in self:
            records.extend(page)
        return records
