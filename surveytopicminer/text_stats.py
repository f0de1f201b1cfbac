"""
text_stats.py

Read-only exploratory statistics over a trimmed FeatureMatrix:

- ``text_frequency``  → ranked term frequencies (optionally per group)
- ``keyness``         → signed chi-squared / log-likelihood keyness of a
                        target group against the remaining documents
- ``term_similarity`` → nearest (similarity) or farthest (distance) terms
                        to a query term, over term column vectors

None of these functions modifies the matrix they are given.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

from .errors import ConfigurationError, CovariateAlignmentError, MissingColumnError
from .feature_matrix import FeatureMatrix


SIMILARITY_METHODS = ("cosine", "correlation")
DISTANCE_METHODS = ("euclidean", "manhattan")
KEYNESS_MEASURES = ("chi2", "lr")


# ---------------------------------------------------------------------
# Frequency ranking
# ---------------------------------------------------------------------


def _rank_frequencies(
    frequency: np.ndarray,
    docfreq: np.ndarray,
    vocabulary: Sequence[str],
) -> pd.DataFrame:
    df = pd.DataFrame(
        {
            "term": list(vocabulary),
            "frequency": frequency.astype(np.int64),
            "docfreq": docfreq.astype(np.int64),
        }
    )
    # descending count, ties broken by term
    df.sort_values(["frequency", "term"], ascending=[False, True], inplace=True, kind="mergesort")
    df.reset_index(drop=True, inplace=True)
    df.insert(2, "rank", np.arange(1, len(df) + 1))
    return df


def text_frequency(
    matrix: FeatureMatrix,
    n: Optional[int] = None,
    *,
    bottom: bool = False,
    groups: Optional[str] = None,
) -> pd.DataFrame:
    """
    Rank terms by corpus-wide count.

    Parameters
    ----------
    matrix:
        Trimmed FeatureMatrix.
    n:
        Number of rows to return. ``None`` returns the full ranking.
    bottom:
        If True, return the last ``n`` terms of the ranking (still in rank
        order) instead of the first ``n``.
    groups:
        Optional covariate name; ranks are then computed within each level
        and a ``group`` column is added.

    Returns
    -------
    pd.DataFrame
        Columns ``term, frequency, rank, docfreq`` (+ ``group``). Terms are
        ordered by descending frequency, ties in lexicographic order, and
        ``rank`` is the 1-based position in that order.
    """
    if n is not None and n < 0:
        raise ConfigurationError("n must be non-negative.")

    def _cut(df: pd.DataFrame) -> pd.DataFrame:
        if n is None:
            return df
        return (df.tail(n) if bottom else df.head(n)).reset_index(drop=True)

    if groups is None:
        freq = np.asarray(matrix.counts.sum(axis=0)).ravel()
        docfreq = np.asarray((matrix.counts > 0).sum(axis=0)).ravel()
        return _cut(_rank_frequencies(freq, docfreq, matrix.vocabulary))

    if groups not in matrix.metadata.columns:
        raise MissingColumnError(groups, matrix.metadata.columns)

    labels = matrix.metadata[groups].astype(str).to_numpy()
    frames: List[pd.DataFrame] = []
    for level in sorted(set(labels)):
        rows = np.flatnonzero(labels == level)
        sub = matrix.counts[rows]
        freq = np.asarray(sub.sum(axis=0)).ravel()
        docfreq = np.asarray((sub > 0).sum(axis=0)).ravel()
        present = freq > 0
        ranked = _rank_frequencies(
            freq[present],
            docfreq[present],
            [t for t, keep in zip(matrix.vocabulary, present) if keep],
        )
        ranked = _cut(ranked)
        ranked["group"] = level
        frames.append(ranked)

    if not frames:
        return pd.DataFrame(columns=["term", "frequency", "rank", "docfreq", "group"])
    return pd.concat(frames, ignore_index=True)


# ---------------------------------------------------------------------
# Keyness
# ---------------------------------------------------------------------


def target_mask(matrix: FeatureMatrix, covariate: str, value: object) -> np.ndarray:
    """Boolean mask of documents where ``covariate == value``."""
    if covariate not in matrix.metadata.columns:
        raise MissingColumnError(covariate, matrix.metadata.columns)
    return (matrix.metadata[covariate].astype(str) == str(value)).to_numpy()


def keyness(
    matrix: FeatureMatrix,
    target: Union[Sequence[bool], np.ndarray],
    *,
    measure: str = "chi2",
    correction: bool = False,
) -> pd.DataFrame:
    """
    Compare term use in the ``target`` documents against the rest.

    For each term a 2×2 table is built::

                      target      reference
        term            a             b
        other tokens    c             d

    and scored with Pearson's chi-squared (``measure="chi2"``, optionally
    with Yates' continuity correction) or the likelihood-ratio G²
    (``measure="lr"``), both via :func:`scipy.stats.chi2_contingency`.
    The statistic is signed: positive when the term is
    over-represented in the target group (``a`` above its expected count),
    negative when it leans towards the reference group.

    Parameters
    ----------
    matrix:
        Trimmed FeatureMatrix.
    target:
        Boolean mask over documents (see :func:`target_mask`). Its
        complement is the reference group.
    measure:
        ``"chi2"`` or ``"lr"``.
    correction:
        Apply Yates' correction (chi2 only).

    Returns
    -------
    pd.DataFrame
        Columns ``term, statistic, p_value, n_target, n_reference,
        direction``, sorted by absolute statistic (descending), then term.
    """
    if measure not in KEYNESS_MEASURES:
        raise ConfigurationError(
            f"Unknown keyness measure {measure!r}; expected one of {KEYNESS_MEASURES}."
        )
    mask = np.asarray(target, dtype=bool)
    if mask.shape != (matrix.n_docs,):
        raise CovariateAlignmentError(
            f"Target mask has {mask.size} entries for {matrix.n_docs} documents."
        )
    if not mask.any() or mask.all():
        raise ConfigurationError("Both the target and the reference group need documents.")

    a = np.asarray(matrix.counts[np.flatnonzero(mask)].sum(axis=0)).ravel().astype(np.int64)
    b = np.asarray(matrix.counts[np.flatnonzero(~mask)].sum(axis=0)).ravel().astype(np.int64)
    total_target = a.sum()
    total_reference = b.sum()
    if total_target == 0 or total_reference == 0:
        raise ConfigurationError("Both groups need at least one counted term.")

    n_terms = len(matrix.vocabulary)
    stat = np.zeros(n_terms)
    p_value = np.ones(n_terms)
    sign = np.zeros(n_terms)
    lambda_ = None if measure == "chi2" else "log-likelihood"
    for j in range(n_terms):
        table = np.array([[a[j], b[j]], [total_target - a[j], total_reference - b[j]]])
        # a term (or its complement) with no counts is independent of the groups
        if not table.sum(axis=1).all():
            continue
        result = stats.chi2_contingency(
            table,
            correction=correction and measure == "chi2",
            lambda_=lambda_,
        )
        stat[j] = result[0]
        p_value[j] = result[1]
        sign[j] = np.sign(a[j] - result[3][0, 0])
    signed = sign * stat

    df = pd.DataFrame(
        {
            "term": list(matrix.vocabulary),
            "statistic": signed,
            "p_value": p_value,
            "n_target": a.astype(np.int64),
            "n_reference": b.astype(np.int64),
            "direction": np.where(sign > 0, "target", np.where(sign < 0, "reference", "none")),
        }
    )
    df["_abs"] = np.abs(signed)
    df.sort_values(["_abs", "term"], ascending=[False, True], inplace=True, kind="mergesort")
    return df.drop(columns="_abs").reset_index(drop=True)


# ---------------------------------------------------------------------
# Similarity / distance between terms
# ---------------------------------------------------------------------


def term_similarity(
    matrix: FeatureMatrix,
    term: str,
    *,
    method: str = "cosine",
    n: Optional[int] = 10,
    include_self: bool = True,
) -> pd.DataFrame:
    """
    Score every term's column vector against ``term``'s column vector.

    Similarities (``"cosine"``, ``"correlation"``) are sorted descending and
    the ``n`` nearest terms are returned; distances (``"euclidean"``,
    ``"manhattan"``) are sorted descending and the ``n`` farthest terms are
    returned. The query term scores 1 (similarity) or 0 (distance) against
    itself; with ``include_self=True`` it is always among the ``n`` rows
    returned, so a distance ranking ends with the query term.

    Raises
    ------
    UnknownTermError
        ``term`` is not in the (trimmed) vocabulary.
    ConfigurationError
        Unknown ``method``.
    """
    from sklearn.metrics.pairwise import (
        cosine_similarity,
        euclidean_distances,
        manhattan_distances,
        pairwise_distances,
    )

    if method not in SIMILARITY_METHODS + DISTANCE_METHODS:
        raise ConfigurationError(
            f"Unknown similarity method {method!r}; expected one of "
            f"{SIMILARITY_METHODS + DISTANCE_METHODS}."
        )
    j = matrix.term_index(term)

    # terms are the samples: transpose to (n_terms, n_docs)
    X = matrix.counts.T.tocsr().astype(float)
    query = X[j]

    if method == "cosine":
        scores = cosine_similarity(X, query).ravel()
    elif method == "correlation":
        dense = X.toarray()
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = 1.0 - pairwise_distances(dense, dense[j : j + 1], metric="correlation").ravel()
        scores = np.nan_to_num(scores, nan=0.0)
    elif method == "euclidean":
        scores = euclidean_distances(X, query).ravel()
    else:
        scores = manhattan_distances(X, query).ravel()

    if method in SIMILARITY_METHODS:
        scores = np.clip(scores, -1.0, 1.0)
    # exact self-score regardless of floating-point noise
    scores[j] = 0.0 if method in DISTANCE_METHODS else 1.0

    df = pd.DataFrame({"term": list(matrix.vocabulary), "score": scores})
    if not include_self:
        df = df[df["term"] != term]
    df.sort_values(["score", "term"], ascending=[False, True], inplace=True, kind="mergesort")
    df.reset_index(drop=True, inplace=True)
    df["method"] = method
    if n is not None:
        top = df.head(n)
        if include_self and n > 0 and term not in set(top["term"]):
            # the query row takes the last slot
            top = pd.concat([df.head(n - 1), df[df["term"] == term]])
        df = top.reset_index(drop=True)
    return df
