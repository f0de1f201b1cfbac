"""
feature_matrix.py

Stemming, document-feature matrix construction and trimming.

- ``stem_streams`` reduces content tokens to stems with nltk (Snowball or
  Porter); gaps pass through untouched.
- ``build_feature_matrix`` drops gaps and counts terms per document into a
  ``scipy.sparse`` CSR matrix whose rows follow corpus order.
- ``trim`` removes rare columns. Rows are never removed or reordered, so
  the metadata can be re-attached at any point.
- ``save_feature_matrix`` / ``load_feature_matrix`` persist an intermediate
  matrix (``.npz`` + JSON sidecar).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse

from .errors import ConfigurationError, CovariateAlignmentError, UnknownTermError
from .token_cleaner import TokenStreams, is_gap


# ---------------------------------------------------------------------
# FeatureMatrix container
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """
    Sparse document × term count matrix.

    Attributes
    ----------
    counts:
        ``scipy.sparse.csr_matrix`` of shape (n_docs, n_terms), int64.
    vocabulary:
        Column labels, sorted lexicographically at construction time.
    doc_ids:
        Row labels, in corpus order.
    metadata:
        Covariate table aligned row-for-row with ``counts``.
    config:
        Parameters that produced this matrix (stemmer, trim thresholds).
    """

    counts: sparse.csr_matrix
    vocabulary: Tuple[str, ...]
    doc_ids: Tuple[str, ...]
    metadata: pd.DataFrame
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        n_docs, n_terms = self.counts.shape
        if n_docs != len(self.doc_ids) or n_docs != len(self.metadata):
            raise CovariateAlignmentError(
                f"Matrix has {n_docs} rows, {len(self.doc_ids)} ids and "
                f"{len(self.metadata)} metadata rows."
            )
        if n_terms != len(self.vocabulary):
            raise ValueError(
                f"Matrix has {n_terms} columns but {len(self.vocabulary)} terms."
            )

    @property
    def n_docs(self) -> int:
        return self.counts.shape[0]

    @property
    def n_terms(self) -> int:
        return self.counts.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.counts.shape

    def term_index(self, term: str) -> int:
        try:
            return self._index[term]
        except KeyError:
            raise UnknownTermError(term) from None

    @property
    def _index(self) -> Dict[str, int]:
        # cached lazily; frozen dataclass so go through __dict__
        cache = self.__dict__.get("_index_cache")
        if cache is None:
            cache = {t: i for i, t in enumerate(self.vocabulary)}
            self.__dict__["_index_cache"] = cache
        return cache

    def __contains__(self, term: str) -> bool:
        return term in self._index

    def column(self, term: str) -> np.ndarray:
        """Dense count vector of ``term`` across documents."""
        j = self.term_index(term)
        return np.asarray(self.counts[:, j].todense()).ravel()

    def term_frequencies(self) -> pd.Series:
        """Corpus-wide count per term."""
        totals = np.asarray(self.counts.sum(axis=0)).ravel()
        return pd.Series(totals, index=list(self.vocabulary), name="frequency")

    def doc_frequencies(self) -> pd.Series:
        """Number of documents each term occurs in."""
        docfreq = np.asarray((self.counts > 0).sum(axis=0)).ravel()
        return pd.Series(docfreq, index=list(self.vocabulary), name="docfreq")

    def doc_lengths(self) -> np.ndarray:
        return np.asarray(self.counts.sum(axis=1)).ravel()

    def empty_documents(self) -> np.ndarray:
        """Boolean mask of documents with no remaining terms."""
        return self.doc_lengths() == 0

    def to_frame(self) -> pd.DataFrame:
        """Dense DataFrame view (small matrices only)."""
        return pd.DataFrame(
            self.counts.toarray(), index=list(self.doc_ids), columns=list(self.vocabulary)
        )

    def select_rows(self, mask: Union[Sequence[bool], np.ndarray]) -> "FeatureMatrix":
        """New matrix with only the rows where ``mask`` is True (order kept)."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (self.n_docs,):
            raise CovariateAlignmentError(
                f"Row mask does not match {self.n_docs} documents."
            )
        idx = np.flatnonzero(mask)
        return FeatureMatrix(
            counts=self.counts[idx],
            vocabulary=self.vocabulary,
            doc_ids=tuple(self.doc_ids[i] for i in idx),
            metadata=self.metadata.iloc[idx].reset_index(drop=True),
            config=dict(self.config),
        )


# ---------------------------------------------------------------------
# Stemming
# ---------------------------------------------------------------------


def load_stemmer(name: str = "snowball", language: str = "english") -> Callable[[str], str]:
    """Return an nltk stemming function (``"snowball"`` or ``"porter"``)."""
    if name == "snowball":
        from nltk.stem.snowball import SnowballStemmer

        if language not in SnowballStemmer.languages:
            raise ConfigurationError(f"Snowball has no stemmer for language {language!r}.")
        return SnowballStemmer(language).stem
    if name == "porter":
        from nltk.stem.porter import PorterStemmer

        return PorterStemmer().stem
    raise ConfigurationError(f"Unknown stemmer {name!r}; expected 'snowball' or 'porter'.")


def stem_streams(
    streams: TokenStreams,
    stemmer: Optional[str] = "snowball",
    language: str = "english",
) -> TokenStreams:
    """
    Stem every content token. ``stemmer=None`` returns the streams unchanged.
    """
    if stemmer is None:
        return streams
    stem = load_stemmer(stemmer, language)
    return streams.map(stem)


# ---------------------------------------------------------------------
# Matrix construction & trimming
# ---------------------------------------------------------------------


def build_feature_matrix(
    streams: TokenStreams,
    metadata: Optional[pd.DataFrame] = None,
) -> FeatureMatrix:
    """
    Count term occurrences per document.

    Gaps are dropped; the vocabulary is sorted so column order does not
    depend on token order.

    Parameters
    ----------
    streams:
        Token streams (usually stemmed) in corpus order.
    metadata:
        Covariate table with one row per stream. ``None`` gives an empty
        table.

    Raises
    ------
    CovariateAlignmentError
        If ``metadata`` does not have one row per stream.
    """
    n_docs = len(streams.streams)
    if metadata is None:
        metadata = pd.DataFrame(index=range(n_docs))
    if len(metadata) != n_docs:
        raise CovariateAlignmentError(
            f"Metadata has {len(metadata)} rows but there are {n_docs} token streams."
        )

    vocabulary = sorted({t for s in streams.streams for t in s if not is_gap(t)})
    index = {t: j for j, t in enumerate(vocabulary)}

    rows: List[int] = []
    cols: List[int] = []
    for i, stream in enumerate(streams.streams):
        for t in stream:
            if is_gap(t):
                continue
            rows.append(i)
            cols.append(index[t])

    data = np.ones(len(rows), dtype=np.int64)
    counts = sparse.coo_matrix(
        (data, (rows, cols)), shape=(n_docs, len(vocabulary)), dtype=np.int64
    ).tocsr()
    # coo -> csr sums duplicate (row, col) entries
    counts.sum_duplicates()

    return FeatureMatrix(
        counts=counts,
        vocabulary=tuple(vocabulary),
        doc_ids=tuple(streams.doc_ids),
        metadata=metadata.reset_index(drop=True),
        config={"tokenizer": streams.config.model_dump()},
    )


def trim(
    matrix: FeatureMatrix,
    min_termfreq: int = 2,
    min_docfreq: Optional[int] = None,
) -> FeatureMatrix:
    """
    Drop terms whose corpus-wide count is below ``min_termfreq`` (and,
    optionally, whose document frequency is below ``min_docfreq``).

    Terms seen only once are treated as noise (typos, translation residue)
    by the default threshold of 2. Only columns are removed; the row count
    and order are unchanged.
    """
    if min_termfreq < 0 or (min_docfreq is not None and min_docfreq < 0):
        raise ConfigurationError("Trim thresholds must be non-negative.")

    keep = np.asarray(matrix.counts.sum(axis=0)).ravel() >= min_termfreq
    if min_docfreq is not None:
        keep &= np.asarray((matrix.counts > 0).sum(axis=0)).ravel() >= min_docfreq

    idx = np.flatnonzero(keep)
    config = dict(matrix.config)
    config.update({"min_termfreq": min_termfreq, "min_docfreq": min_docfreq})
    return FeatureMatrix(
        counts=matrix.counts[:, idx].tocsr(),
        vocabulary=tuple(matrix.vocabulary[j] for j in idx),
        doc_ids=matrix.doc_ids,
        metadata=matrix.metadata,
        config=config,
    )


def remove_terms(matrix: FeatureMatrix, terms: Sequence[str]) -> FeatureMatrix:
    """Drop the listed terms (missing ones are ignored)."""
    drop = set(terms)
    idx = [j for j, t in enumerate(matrix.vocabulary) if t not in drop]
    return FeatureMatrix(
        counts=matrix.counts[:, idx].tocsr(),
        vocabulary=tuple(matrix.vocabulary[j] for j in idx),
        doc_ids=matrix.doc_ids,
        metadata=matrix.metadata,
        config=dict(matrix.config),
    )


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------


def save_feature_matrix(matrix: FeatureMatrix, path: Union[str, Path]) -> Path:
    """
    Write ``matrix`` to ``<path>.npz`` plus a ``<path>.json`` sidecar holding
    vocabulary, document ids, metadata and config. Returns the ``.npz`` path.
    """
    path = Path(path).with_suffix(".npz")
    sparse.save_npz(path, matrix.counts)
    sidecar = {
        "vocabulary": list(matrix.vocabulary),
        "doc_ids": list(matrix.doc_ids),
        "metadata": matrix.metadata.to_dict(orient="list"),
        "metadata_columns": list(matrix.metadata.columns),
        "config": matrix.config,
    }
    path.with_suffix(".json").write_text(json.dumps(sidecar, indent=2, default=str), encoding="utf-8")
    return path


def load_feature_matrix(path: Union[str, Path]) -> FeatureMatrix:
    """Inverse of :func:`save_feature_matrix`."""
    path = Path(path).with_suffix(".npz")
    counts = sparse.load_npz(path).tocsr().astype(np.int64)
    sidecar = json.loads(path.with_suffix(".json").read_text(encoding="utf-8"))
    metadata = pd.DataFrame(sidecar["metadata"], columns=sidecar["metadata_columns"])
    if metadata.empty and not sidecar["metadata_columns"]:
        metadata = pd.DataFrame(index=range(counts.shape[0]))
    return FeatureMatrix(
        counts=counts,
        vocabulary=tuple(sidecar["vocabulary"]),
        doc_ids=tuple(sidecar["doc_ids"]),
        metadata=metadata,
        config=sidecar.get("config", {}),
    )
