"""Markup-blind word tokenizer shared by the indexer and the query engine.

Documents and query text go through the same code path so that a term
indexed as ``database`` is also what a query for ``Database`` looks up.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
import re


# A tag runs from "<" to the next ">"; an unterminated tag swallows the rest of the input.
_TOKEN_PATTERN = re.compile(rb"<[^>]*>?|[A-Za-z]+")
_TAG_OPEN = ord("<")


class TokenStream:
    """Lazy, restartable sequence of normalized tokens.

    Every call to ``iter()`` rescans the underlying bytes, so the same
    stream can be consumed more than once and always yields the same words.
    """

    __slots__ = ("_data",)

    def __init__(self, data: bytes) -> None:
        self._data = data

    def __iter__(self) -> Iterator[str]:
        for match in _TOKEN_PATTERN.finditer(self._data):
            chunk = match.group(0)
            if chunk[0] == _TAG_OPEN:
                continue
            yield chunk.lower().decode("ascii")

    def __repr__(self) -> str:
        return f"TokenStream({len(self._data)} bytes)"


def tokenize(data: bytes | bytearray | str) -> TokenStream:
    """Return the normalized word tokens found in ``data``.

    Text is encoded as UTF-8 first, lone surrogates included (undecodable
    argv bytes arrive as surrogates); only ASCII letters form tokens, so
    multi-byte characters act as delimiters the same way for documents and queries.
    """
    if isinstance(data, str):
        data = data.encode("utf-8", "surrogatepass")
    return TokenStream(bytes(data))


def count_keywords(data: bytes | bytearray | str) -> dict[str, int]:
    """Count how often each token occurs in ``data``."""
    return dict(Counter(tokenize(data)))
