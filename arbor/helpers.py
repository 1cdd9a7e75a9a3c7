"""Template helpers registered by default on every site."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any


def _page_url(page: int) -> str:
    return "/" if page == 1 else f"/page/{page}/"


@dataclass
class PaginateOptions:
    """Options of the ``paginate`` helper.

    Attributes:
        size: Results per page.
        url: Builds the URL of a page number (1-based).
    """

    size: int = 10
    url: Callable[[int], str] = _page_url


def paginate(
    results: Iterable[Any],
    options: PaginateOptions | dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Split results into pages.

    Args:
        results: Items to paginate.
        options: Page size and URL builder.

    Returns:
        One mapping per page with ``url``, ``results`` and ``pagination``
        (``page``, ``totalPages``, ``totalResults``, ``previous``, ``next``).
        An empty input still produces one empty page.
    """
    if options is None:
        options = PaginateOptions()
    elif isinstance(options, dict):
        options = PaginateOptions(**options)
    if options.size < 1:
        raise ValueError("paginate size must be at least 1")

    items = list(results)
    total_pages = max(1, math.ceil(len(items) / options.size))
    pages = []
    for number in range(1, total_pages + 1):
        start = (number - 1) * options.size
        pages.append(
            {
                "url": options.url(number),
                "results": items[start : start + options.size],
                "pagination": {
                    "page": number,
                    "totalPages": total_pages,
                    "totalResults": len(items),
                    "previous": options.url(number - 1) if number > 1 else None,
                    "next": options.url(number + 1) if number < total_pages else None,
                },
            }
        )
    return pages
