"""
pipeline.py

SurveyPipeline: sequences the analysis stages from one PipelineConfig.

    read file -> Corpus -> TokenStreams -> FeatureMatrix (stemmed, trimmed)
              -> frequency table -> K search [-> TopicModel]

Every stage is also exposed on its own, so a notebook can run them one by
one and inspect intermediate values. Nothing is cached between calls; each
stage takes its inputs as arguments and returns a new value.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import pandas as pd

from .config import PipelineConfig, build_config
from .corpus import Corpus, read_corpus
from .errors import ConfigurationError
from .feature_matrix import FeatureMatrix, build_feature_matrix, stem_streams, trim
from .text_stats import text_frequency
from .token_cleaner import TokenCleaner, TokenStreams
from .topic_modeler import (
    KSearchResult,
    SelectionPolicy,
    TopicModel,
    TopicModeler,
    make_engine,
    select_k,
)


@dataclass
class PipelineResult:
    """
    Outputs of :meth:`SurveyPipeline.run`.

    ``model`` is only set when ``run`` was given an explicit ``k``.
    """

    corpus: Corpus
    tokens: TokenStreams
    matrix: FeatureMatrix
    frequencies: pd.DataFrame
    k_search: Optional[KSearchResult]
    model: Optional[TopicModel] = None
    config: Optional[Dict[str, Any]] = None


class SurveyPipeline:
    """
    End-to-end runner over a delimited survey export.

    Example
    -------
        config = PipelineConfig(text_field="narrative", prevalence="~ gender")
        pipe = SurveyPipeline(config, verbose=True)
        result = pipe.run("survey.csv")
        result.k_search.diagnostics
    """

    def __init__(
        self,
        config: Union[PipelineConfig, Dict[str, Any]],
        *,
        logger: Optional[Callable[[str], None]] = None,
        verbose: bool = False,
    ) -> None:
        if isinstance(config, dict):
            config = build_config(PipelineConfig, config)
        self.config = config
        self.logger = logger
        self.verbose = verbose

        self.cleaner = TokenCleaner(config.tokenizer, logger=logger)
        self.modeler = TopicModeler(make_engine(config.engine), seed=config.seed, logger=logger)

    def _log(self, message: str) -> None:
        if not self.verbose:
            return
        if self.logger is not None:
            self.logger(message)
        else:
            print(message)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def load(self, path: Union[str, Path]) -> Corpus:
        cfg = self.config
        corpus = read_corpus(
            path,
            cfg.text_field,
            docid_field=cfg.docid_field,
            delimiter=cfg.delimiter,
            encoding=cfg.encoding,
        )
        self._log(
            f"[SurveyPipeline] Loaded {corpus.n_docs} document(s) from '{path}' "
            f"with covariates {corpus.covariates}."
        )
        return corpus

    def tokenize(self, corpus: Corpus) -> TokenStreams:
        return self.cleaner.transform(corpus, verbose=self.verbose)

    def build_matrix(self, tokens: TokenStreams, corpus: Corpus) -> FeatureMatrix:
        """Stem, count and trim."""
        cfg = self.config
        stemmed = stem_streams(tokens, stemmer=cfg.stemmer, language=cfg.stem_language)
        full = build_feature_matrix(stemmed, corpus.metadata)
        matrix = trim(full, min_termfreq=cfg.min_termfreq, min_docfreq=cfg.min_docfreq)
        self._log(
            f"[SurveyPipeline] Feature matrix: {full.n_terms} terms → {matrix.n_terms} "
            f"after trimming (min_termfreq={cfg.min_termfreq}, min_docfreq={cfg.min_docfreq})."
        )
        n_empty = int(matrix.empty_documents().sum())
        if n_empty:
            self._log(f"[SurveyPipeline]   → {n_empty} document(s) have no terms left.")
        return matrix

    def search_k(self, matrix: FeatureMatrix) -> KSearchResult:
        cfg = self.config
        return self.modeler.search_k(
            matrix,
            cfg.k_values,
            prevalence=cfg.prevalence,
            n_words=cfg.n_words,
            n_jobs=cfg.n_jobs,
            verbose=self.verbose,
        )

    def fit_topics(self, matrix: FeatureMatrix, k: int) -> TopicModel:
        return self.modeler.fit(matrix, k, prevalence=self.config.prevalence, verbose=self.verbose)

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(
        self,
        path: Union[str, Path],
        *,
        k: Optional[int] = None,
        search: bool = True,
        policy: Optional[SelectionPolicy] = None,
    ) -> PipelineResult:
        """
        Run every stage on ``path``.

        Parameters
        ----------
        path:
            Delimited input file.
        k:
            If given, also fit a model with this many topics.
        search:
            Run the K search over ``config.k_values``.
        policy:
            If given (and ``k`` is not), pick K from the search with
            :func:`select_k` and fit that model. Needs ``search=True``.
        """
        if policy is not None and k is not None:
            raise ConfigurationError("Pass either k or policy, not both.")
        if policy is not None and not search:
            raise ConfigurationError("A selection policy needs search=True.")

        corpus = self.load(path)
        tokens = self.tokenize(corpus)
        matrix = self.build_matrix(tokens, corpus)
        frequencies = text_frequency(matrix)

        k_search = self.search_k(matrix) if search else None
        if policy is not None:
            k = select_k(k_search, policy)
            self._log(f"[SurveyPipeline] Selected K={k}.")
        model = self.fit_topics(matrix, k) if k is not None else None

        self._log("[SurveyPipeline] Done.")
        return PipelineResult(
            corpus=corpus,
            tokens=tokens,
            matrix=matrix,
            frequencies=frequencies,
            k_search=k_search,
            model=model,
            config=self.config.model_dump(),
        )
