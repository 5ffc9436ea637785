"""HTML renderer for the search results page."""

from __future__ import annotations

from html import escape
from urllib.parse import quote

from edaoogle.domain.search import SearchResponse


_PAGE_HEAD = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8" />
    <title>EDAoogle</title>
    <link rel="preload" href="https://fonts.googleapis.com" />
    <link rel="preload" href="https://fonts.gstatic.com" crossorigin />
    <link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;800&display=swap" rel="stylesheet" />
    <link rel="preload" href="/css/style.css" />
    <link rel="stylesheet" href="/css/style.css" />
</head>
<body>
    <article class="edaoogle">
        <div class="title"><a href="/">EDAoogle</a></div>
        <div class="search">
            <form action="/search" method="get">
                <input type="text" name="q" value="{query}" autofocus>
            </form>
        </div>
"""

_PAGE_TAIL = """    </article>
</body>
</html>
"""


def render_results_html(response: SearchResponse, *, link_prefix: str = "/wiki", limit: int | None = None) -> str:
    """Render a results page; an empty response renders "0 results", not an error."""
    shown = response.results if limit is None else response.results[:limit]
    parts = [_PAGE_HEAD.format(query=escape(response.query, quote=True))]
    parts.append(
        f'        <div class="results">{response.total} results ({response.elapsed_seconds:.6f} seconds):</div>\n'
    )
    for result in shown:
        href = f"{link_prefix}/{quote(result.url)}"
        parts.append(
            f'        <div class="result"><a href="{escape(href, quote=True)}">{escape(result.url)}</a></div>\n'
        )
    parts.append(_PAGE_TAIL)
    return "".join(parts)


def render_unavailable_html(query: str) -> str:
    """Page shown when the index cannot be read."""
    return (
        _PAGE_HEAD.format(query=escape(query, quote=True))
        + '        <div class="results">Search is temporarily unavailable.</div>\n'
        + _PAGE_TAIL
    )
