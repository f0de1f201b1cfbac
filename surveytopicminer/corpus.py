"""
corpus.py

Ingestion and corpus construction for SurveyTopicMiner.

- ``read_corpus`` loads a delimited survey export (one narrative per row plus
  covariate columns) and validates it row by row before anything else runs.
- ``corpus_from_frame`` / ``build_corpus`` wrap in-memory data.
- ``Corpus`` is an immutable, ordered collection of documents with a
  column-aligned metadata table. Document order is the join key for every
  downstream stage (token streams, feature matrix, topic model).

Quick usage
-----------
    from surveytopicminer import read_corpus

    corpus = read_corpus("responses.csv", text_field="narrative")
    male = corpus.partition("gender", "male")
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import CovariateAlignmentError, MalformedRowError, MissingColumnError


# ---------------------------------------------------------------------
# Corpus container
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Corpus:
    """
    Ordered documents plus one metadata row per document.

    Attributes
    ----------
    doc_ids:
        Unique document identifiers, in corpus order.
    texts:
        Raw narrative strings, aligned with ``doc_ids``.
    metadata:
        Covariate table (string dtype), one row per document, same order.
        Treat it as read-only; :meth:`covariate` and :meth:`subset` return
        copies.
    text_field:
        Name of the source column the texts came from.
    """

    doc_ids: Tuple[str, ...]
    texts: Tuple[str, ...]
    metadata: pd.DataFrame
    text_field: str = "text"

    def __post_init__(self) -> None:
        n_docs = len(self.texts)
        if len(self.doc_ids) != n_docs:
            raise CovariateAlignmentError(
                f"{len(self.doc_ids)} document ids for {n_docs} documents."
            )
        if len(self.metadata) != n_docs:
            raise CovariateAlignmentError(
                f"Metadata has {len(self.metadata)} rows but the corpus has "
                f"{n_docs} documents."
            )
        if len(set(self.doc_ids)) != n_docs:
            raise CovariateAlignmentError("Document ids must be unique.")

    # ------------------------------------------------------------------
    # Basic accessors
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.texts)

    @property
    def n_docs(self) -> int:
        return len(self.texts)

    @property
    def covariates(self) -> List[str]:
        return list(self.metadata.columns)

    def covariate(self, name: str) -> pd.Series:
        """Return one covariate column (copy), indexed by doc id."""
        if name not in self.metadata.columns:
            raise MissingColumnError(name, self.metadata.columns)
        values = self.metadata[name].copy()
        values.index = list(self.doc_ids)
        return values

    def partition(self, covariate: str, value: Any) -> np.ndarray:
        """
        Boolean mask selecting documents where ``covariate == value``.

        This is the predicate used to define the keyness target group; its
        complement is the reference group.
        """
        column = self.covariate(covariate)
        return (column.astype(str) == str(value)).to_numpy()

    def subset(self, mask: Union[Sequence[bool], np.ndarray]) -> "Corpus":
        """Keep the documents where ``mask`` is True, preserving order."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (self.n_docs,):
            raise CovariateAlignmentError(
                f"Mask of length {mask.shape[0] if mask.ndim else 0} does not "
                f"match {self.n_docs} documents."
            )
        idx = np.flatnonzero(mask)
        return Corpus(
            doc_ids=tuple(self.doc_ids[i] for i in idx),
            texts=tuple(self.texts[i] for i in idx),
            metadata=self.metadata.iloc[idx].reset_index(drop=True),
            text_field=self.text_field,
        )

    def summary(self) -> pd.DataFrame:
        """
        Per-document overview: id, character count, whitespace token count,
        followed by the covariates.
        """
        df = pd.DataFrame(
            {
                "doc_id": list(self.doc_ids),
                "n_chars": [len(t) for t in self.texts],
                "n_words": [len(t.split()) for t in self.texts],
            }
        )
        return pd.concat([df, self.metadata.reset_index(drop=True)], axis=1)


# ---------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------


def build_corpus(
    texts: Sequence[str],
    metadata: Optional[pd.DataFrame] = None,
    *,
    doc_ids: Optional[Sequence[str]] = None,
    text_field: str = "text",
) -> Corpus:
    """
    Wrap texts and a covariate table into a :class:`Corpus`.

    Raises
    ------
    CovariateAlignmentError
        If the metadata row count (or the number of ids) differs from the
        number of texts.
    """
    texts_t = tuple("" if t is None else str(t) for t in texts)
    if metadata is None:
        metadata = pd.DataFrame(index=range(len(texts_t)))
    if len(metadata) != len(texts_t):
        raise CovariateAlignmentError(
            f"Metadata has {len(metadata)} rows but {len(texts_t)} texts were given."
        )
    if doc_ids is None:
        ids = tuple(f"text{i + 1}" for i in range(len(texts_t)))
    else:
        ids = tuple(str(d) for d in doc_ids)

    meta = metadata.reset_index(drop=True).astype(str)
    return Corpus(doc_ids=ids, texts=texts_t, metadata=meta, text_field=text_field)


def corpus_from_frame(
    df: pd.DataFrame,
    text_field: str,
    *,
    docid_field: Optional[str] = None,
) -> Corpus:
    """
    Build a corpus from a DataFrame: ``text_field`` holds the narratives,
    every other column (except ``docid_field``) becomes a covariate.
    """
    if text_field not in df.columns:
        raise MissingColumnError(text_field, df.columns)
    if docid_field is not None and docid_field not in df.columns:
        raise MissingColumnError(docid_field, df.columns)

    texts = df[text_field].fillna("").astype(str).tolist()
    drop = [text_field] + ([docid_field] if docid_field else [])
    metadata = df.drop(columns=drop).fillna("")
    doc_ids = df[docid_field].astype(str).tolist() if docid_field else None

    return build_corpus(texts, metadata, doc_ids=doc_ids, text_field=text_field)


def read_corpus(
    path: Union[str, Path],
    text_field: str,
    *,
    docid_field: Optional[str] = None,
    delimiter: str = ",",
    encoding: str = "utf-8-sig",
) -> Corpus:
    """
    Read a delimited file (header row + data rows) into a :class:`Corpus`.

    The file is checked in one pass before the DataFrame is built: every
    data row must have exactly as many fields as the header. Empty lines
    are skipped; a row holding an empty (or quoted empty) narrative is kept
    as an empty document. Every column other than ``text_field`` (and
    ``docid_field``) is kept as a string covariate.

    Parameters
    ----------
    path:
        Location of the delimited file.
    text_field:
        Column holding the free-text narrative.
    docid_field:
        Optional column with document identifiers. If omitted, ids are
        ``text1`` .. ``textN``.
    delimiter, encoding:
        Passed to the CSV reader. The default ``"utf-8-sig"`` also reads
        files that start with a byte-order mark, as spreadsheet exports do.

    Raises
    ------
    MissingColumnError
        ``text_field`` or ``docid_field`` is not in the header.
    MalformedRowError
        A row's field count differs from the header, or the file is empty.
    """
    path = Path(path)
    with path.open("r", encoding=encoding, newline="") as fh:
        reader = csv.reader(fh, delimiter=delimiter)
        try:
            header = next(reader)
        except StopIteration:
            raise MalformedRowError(1, 1, 0) from None

        header = [h.strip() for h in header]
        if text_field not in header:
            raise MissingColumnError(text_field, header)
        if docid_field is not None and docid_field not in header:
            raise MissingColumnError(docid_field, header)

        rows: List[List[str]] = []
        for row in reader:
            if not row:
                continue
            if len(row) != len(header):
                raise MalformedRowError(reader.line_num, len(header), len(row))
            rows.append(row)

    df = pd.DataFrame(rows, columns=header, dtype=str)
    return corpus_from_frame(df, text_field, docid_field=docid_field)
