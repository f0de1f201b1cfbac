"""
kwic.py

Keyword-in-context lookup over cleaned token streams.

Given a dictionary of glob patterns grouped under category labels, e.g.::

    KwicDictionary({"work": ["work*", "job*"], "pay": ["salar*", "wage*"]})

``kwic`` scans each document's cleaned (pre-stem) token stream and emits
one hit per matching token, with ``window`` token slots on either side.
Gaps left by stopword removal count as slots and render as empty strings,
so the window reflects the original token spacing.

``kwic_context_frequency`` then re-cleans the matched windows, removes the
dictionary's own terms, stems, and ranks the surrounding vocabulary.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

import pandas as pd

from .errors import ConfigurationError
from .feature_matrix import build_feature_matrix, stem_streams, trim
from .text_stats import text_frequency
from .token_cleaner import TokenCleaner, TokenStreams, is_gap


# ---------------------------------------------------------------------
# Dictionary of glob patterns
# ---------------------------------------------------------------------


class KwicDictionary:
    """
    Ordered mapping: category label → glob patterns.

    ``*`` matches any run of characters (typically a suffix, ``"work*"``)
    and ``?`` a single character. Matching is against whole tokens.
    """

    def __init__(
        self,
        categories: Mapping[str, Sequence[str]],
        *,
        case_sensitive: bool = True,
    ) -> None:
        if not categories:
            raise ConfigurationError("A KWIC dictionary needs at least one category.")
        self.case_sensitive = case_sensitive
        self.categories: Dict[str, Tuple[str, ...]] = {}
        self._compiled: List[Tuple[str, str, Pattern[str]]] = []

        flags = 0 if case_sensitive else re.IGNORECASE
        for label, patterns in categories.items():
            if isinstance(patterns, str):
                patterns = [patterns]
            patterns = tuple(patterns)
            if not patterns:
                raise ConfigurationError(f"Category '{label}' has no patterns.")
            self.categories[label] = patterns
            for pattern in patterns:
                if not pattern:
                    raise ConfigurationError(f"Empty pattern in category '{label}'.")
                self._compiled.append(
                    (label, pattern, re.compile(fnmatch.translate(pattern), flags))
                )

    def __repr__(self) -> str:
        return f"KwicDictionary({self.categories!r})"

    @property
    def patterns(self) -> List[str]:
        return [p for _, p, _ in self._compiled]

    def match(self, token: str) -> Optional[Tuple[str, str]]:
        """
        Return ``(category, pattern)`` of the first matching pattern, in
        dictionary order, or ``None``.
        """
        for label, pattern, regex in self._compiled:
            if regex.match(token):
                return label, pattern
        return None

    def matches(self, token: str) -> bool:
        return self.match(token) is not None


# ---------------------------------------------------------------------
# KWIC
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class KwicHit:
    doc_id: str
    position: int
    pre: Tuple[str, ...]
    keyword: str
    post: Tuple[str, ...]
    pattern: str
    category: str

    def window_text(self) -> str:
        """Pre-context, keyword and post-context joined by spaces."""
        return " ".join(t for t in (*self.pre, self.keyword, *self.post) if t)


def kwic(
    streams: TokenStreams,
    dictionary: KwicDictionary,
    window: int = 5,
) -> List[KwicHit]:
    """
    Find every content token matching ``dictionary``.

    Each matching token produces exactly one :class:`KwicHit`, in document
    order then position order. ``pre`` and ``post`` hold up to ``window``
    token slots (fewer at document edges); gaps are rendered as ``""``.
    """
    if window < 0:
        raise ConfigurationError("window must be non-negative.")

    hits: List[KwicHit] = []
    for doc_id, stream in zip(streams.doc_ids, streams.streams):
        rendered = ["" if is_gap(t) else t for t in stream]
        for pos, token in enumerate(stream):
            if is_gap(token):
                continue
            found = dictionary.match(token)
            if found is None:
                continue
            category, pattern = found
            hits.append(
                KwicHit(
                    doc_id=doc_id,
                    position=pos,
                    pre=tuple(rendered[max(0, pos - window) : pos]),
                    keyword=token,
                    post=tuple(rendered[pos + 1 : pos + 1 + window]),
                    pattern=pattern,
                    category=category,
                )
            )
    return hits


def kwic_frame(hits: Iterable[KwicHit]) -> pd.DataFrame:
    """Hits as a DataFrame (``pre``/``post`` joined into strings)."""
    rows = [
        {
            "doc_id": h.doc_id,
            "position": h.position,
            "pre": " ".join(t for t in h.pre if t),
            "keyword": h.keyword,
            "post": " ".join(t for t in h.post if t),
            "pattern": h.pattern,
            "category": h.category,
        }
        for h in hits
    ]
    return pd.DataFrame(
        rows,
        columns=["doc_id", "position", "pre", "keyword", "post", "pattern", "category"],
    )


# ---------------------------------------------------------------------
# Context vocabulary
# ---------------------------------------------------------------------


def kwic_context_frequency(
    hits: Sequence[KwicHit],
    cleaner: TokenCleaner,
    dictionary: KwicDictionary,
    *,
    stemmer: Optional[str] = "snowball",
    language: str = "english",
    min_termfreq: int = 1,
    n: Optional[int] = None,
) -> pd.DataFrame:
    """
    Rank the vocabulary found around KWIC hits.

    Steps: join each hit's window into one text → re-clean with ``cleaner``
    → drop tokens matching ``dictionary`` (so the keywords do not dominate
    their own context table) → stem → count one row per hit → trim → rank.

    Returns
    -------
    pd.DataFrame
        Same columns as :func:`text_frequency`.
    """
    if not hits:
        return pd.DataFrame(columns=["term", "frequency", "rank", "docfreq"])

    texts = [h.window_text() for h in hits]
    ids = [f"{h.doc_id}:{h.position}" for h in hits]
    streams = cleaner.clean_texts(texts, doc_ids=ids)

    without_keywords = TokenStreams(
        doc_ids=streams.doc_ids,
        streams=tuple(
            tuple(t for t in s if is_gap(t) or not dictionary.matches(t))
            for s in streams.streams
        ),
        config=streams.config,
    )
    stemmed = stem_streams(without_keywords, stemmer=stemmer, language=language)
    context = build_feature_matrix(
        stemmed,
        pd.DataFrame({"category": [h.category for h in hits]}),
    )
    context = trim(context, min_termfreq=min_termfreq)
    return text_frequency(context, n=n)
