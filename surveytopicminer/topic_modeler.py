"""
topic_modeler.py

Topic modeling for SurveyTopicMiner:
- Converts a trimmed FeatureMatrix into the inference input (optionally
  dropping documents left empty by trimming, together with their metadata).
- Delegates inference to a swappable ``TopicInferenceEngine``:
    * ``GensimLdaEngine``  – gensim ``LdaModel`` (default)
    * ``SklearnLdaEngine`` – scikit-learn ``LatentDirichletAllocation``
- Searches a range of topic counts and reports, per K, semantic coherence
  (UMass, via gensim ``CoherenceModel``) and exclusivity (FREX-weighted).
  Choosing K is left to a pluggable selection policy; the default asks a
  person to decide from the coherence/exclusivity frontier.
- Summarises topics by highest probability and FREX terms.
- Estimates covariate effects on topic prevalence (statsmodels OLS) and
  inter-topic correlation.

Topics are numbered from 1 in every table ("Topic 1" .. "Topic K").
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import numpy as np
import pandas as pd
from scipy import sparse, stats

from .corpus import Corpus
from .errors import ConfigurationError, ModelSelectionRequired, TopicInferenceError
from .feature_matrix import FeatureMatrix


# ---------------------------------------------------------------------
# Inference input
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class TopicInput:
    """
    Matrix handed to an inference engine.

    Attributes
    ----------
    counts:
        CSR matrix (documents × terms).
    vocabulary, doc_ids, metadata:
        Labels aligned with ``counts``.
    dropped_doc_ids:
        Documents removed because they had no terms left after trimming.
    """

    counts: sparse.csr_matrix
    vocabulary: Tuple[str, ...]
    doc_ids: Tuple[str, ...]
    metadata: pd.DataFrame
    dropped_doc_ids: Tuple[str, ...] = ()


def to_topic_input(matrix: FeatureMatrix, drop_empty: bool = True) -> TopicInput:
    """
    Convert a trimmed FeatureMatrix to engine input.

    With ``drop_empty=True`` documents with no remaining terms are dropped
    from the copy (with their metadata rows); ``matrix`` is not modified.
    With ``drop_empty=False`` they are kept and inference will reject the
    matrix as degenerate.
    """
    empty = matrix.empty_documents()
    if drop_empty and empty.any():
        kept = matrix.select_rows(~empty)
        dropped = tuple(d for d, e in zip(matrix.doc_ids, empty) if e)
        return TopicInput(
            counts=kept.counts,
            vocabulary=kept.vocabulary,
            doc_ids=kept.doc_ids,
            metadata=kept.metadata,
            dropped_doc_ids=dropped,
        )
    return TopicInput(
        counts=matrix.counts,
        vocabulary=matrix.vocabulary,
        doc_ids=matrix.doc_ids,
        metadata=matrix.metadata.reset_index(drop=True),
    )


# ---------------------------------------------------------------------
# Inference engines
# ---------------------------------------------------------------------


class TopicInferenceEngine(ABC):
    """
    Contract for topic inference backends.

    ``fit`` receives a document × term count matrix, its vocabulary, the
    number of topics and a seed, and returns ``(theta, beta)``:

    - ``theta``: (n_docs, k) document-topic proportions, rows sum to 1
    - ``beta``:  (k, n_terms) topic-term probabilities, rows sum to 1

    The same inputs and seed must give the same output.
    """

    name: str = "engine"

    def fit(
        self,
        counts: sparse.csr_matrix,
        vocabulary: Sequence[str],
        k: int,
        seed: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        self._check_input(counts, vocabulary, k)
        theta, beta = self._fit(counts, vocabulary, k, seed)
        return self._check_output(theta, beta, k)

    @abstractmethod
    def _fit(
        self,
        counts: sparse.csr_matrix,
        vocabulary: Sequence[str],
        k: int,
        seed: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Backend-specific fit; inputs are already validated."""

    def get_params(self) -> Dict[str, Any]:
        return {"engine": self.name}

    @staticmethod
    def _check_input(counts: sparse.csr_matrix, vocabulary: Sequence[str], k: int) -> None:
        n_docs, n_terms = counts.shape
        if n_docs == 0 or n_terms == 0:
            raise TopicInferenceError(f"empty matrix of shape {counts.shape}", k=k)
        if n_terms != len(vocabulary):
            raise TopicInferenceError("vocabulary does not match matrix columns", k=k)
        zero_rows = np.flatnonzero(np.asarray(counts.sum(axis=1)).ravel() == 0)
        if zero_rows.size:
            raise TopicInferenceError(
                f"degenerate matrix: {zero_rows.size} document(s) have no terms "
                f"(first row index {int(zero_rows[0])})",
                k=k,
            )
        if k < 2 or k > n_terms:
            raise TopicInferenceError(f"need 2 <= K <= {n_terms} terms", k=k)

    @staticmethod
    def _check_output(theta: np.ndarray, beta: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
        theta = np.asarray(theta, dtype=float)
        beta = np.asarray(beta, dtype=float)
        if not (np.all(np.isfinite(theta)) and np.all(np.isfinite(beta))):
            raise TopicInferenceError("inference produced non-finite values", k=k)
        theta_sums = theta.sum(axis=1, keepdims=True)
        beta_sums = beta.sum(axis=1, keepdims=True)
        if np.any(theta_sums <= 0) or np.any(beta_sums <= 0):
            raise TopicInferenceError("inference produced empty distributions", k=k)
        return theta / theta_sums, beta / beta_sums


class GensimLdaEngine(TopicInferenceEngine):
    """
    LDA via gensim's ``LdaModel``.

    Parameters mirror gensim: ``passes`` over the corpus, ``iterations``
    per document, Dirichlet priors ``alpha`` / ``eta``. ``chunksize=None``
    processes the whole corpus in one chunk per pass.
    """

    name = "gensim"

    def __init__(
        self,
        passes: int = 20,
        iterations: int = 400,
        alpha: Union[str, float] = "symmetric",
        eta: Optional[Union[str, float]] = None,
        chunksize: Optional[int] = None,
    ) -> None:
        self.passes = passes
        self.iterations = iterations
        self.alpha = alpha
        self.eta = eta
        self.chunksize = chunksize

    def get_params(self) -> Dict[str, Any]:
        return {
            "engine": self.name,
            "passes": self.passes,
            "iterations": self.iterations,
            "alpha": self.alpha,
            "eta": self.eta,
            "chunksize": self.chunksize,
        }

    def _fit(self, counts, vocabulary, k, seed):
        try:
            from gensim.matutils import Sparse2Corpus
            from gensim.models import LdaModel
        except ImportError as e:
            raise ImportError(
                "gensim is required for GensimLdaEngine. Install with 'pip install gensim'."
            ) from e

        bow = list(Sparse2Corpus(counts, documents_columns=False))
        id2word = {i: term for i, term in enumerate(vocabulary)}

        try:
            model = LdaModel(
                corpus=bow,
                id2word=id2word,
                num_topics=k,
                passes=self.passes,
                iterations=self.iterations,
                alpha=self.alpha,
                eta=self.eta,
                chunksize=self.chunksize or len(bow),
                random_state=seed,
            )
            gamma, _ = model.inference(bow)
        except (ValueError, FloatingPointError) as e:
            raise TopicInferenceError(f"gensim LdaModel failed: {e}", k=k) from e

        return gamma, model.get_topics()


class SklearnLdaEngine(TopicInferenceEngine):
    """LDA via scikit-learn's ``LatentDirichletAllocation`` (batch updates)."""

    name = "sklearn"

    def __init__(
        self,
        max_iter: int = 100,
        doc_topic_prior: Optional[float] = None,
        topic_word_prior: Optional[float] = None,
    ) -> None:
        self.max_iter = max_iter
        self.doc_topic_prior = doc_topic_prior
        self.topic_word_prior = topic_word_prior

    def get_params(self) -> Dict[str, Any]:
        return {
            "engine": self.name,
            "max_iter": self.max_iter,
            "doc_topic_prior": self.doc_topic_prior,
            "topic_word_prior": self.topic_word_prior,
        }

    def _fit(self, counts, vocabulary, k, seed):
        from sklearn.decomposition import LatentDirichletAllocation

        lda = LatentDirichletAllocation(
            n_components=k,
            learning_method="batch",
            max_iter=self.max_iter,
            doc_topic_prior=self.doc_topic_prior,
            topic_word_prior=self.topic_word_prior,
            random_state=seed,
        )
        try:
            theta = lda.fit_transform(counts)
        except (ValueError, FloatingPointError) as e:
            raise TopicInferenceError(f"LatentDirichletAllocation failed: {e}", k=k) from e
        return theta, lda.components_


def make_engine(name: str, **params: Any) -> TopicInferenceEngine:
    """Build an engine by name (``"gensim"`` or ``"sklearn"``)."""
    if name == "gensim":
        return GensimLdaEngine(**params)
    if name == "sklearn":
        return SklearnLdaEngine(**params)
    raise ConfigurationError(f"Unknown topic engine {name!r}; expected 'gensim' or 'sklearn'.")


# ---------------------------------------------------------------------
# Fitted model & result containers
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class TopicModel:
    """
    A fitted topic model.

    Attributes
    ----------
    theta:
        (n_docs, K) document-topic proportions; rows sum to 1.
    beta:
        (K, n_terms) topic-term probabilities; rows sum to 1.
    vocabulary, doc_ids, metadata:
        Labels for the columns of ``beta`` and rows of ``theta``.
    counts:
        The matrix the model was fitted on (used by diagnostics).
    k:
        Number of topics.
    prevalence:
        Prevalence formula (``"~ gender + urban"``) or None.
    seed:
        Random seed passed to the engine.
    config:
        Run-time parameters for reproducibility and audit trails.
    """

    theta: np.ndarray
    beta: np.ndarray
    vocabulary: Tuple[str, ...]
    doc_ids: Tuple[str, ...]
    metadata: pd.DataFrame
    counts: sparse.csr_matrix
    k: int
    prevalence: Optional[str]
    seed: int
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def topic_ids(self) -> List[int]:
        return list(range(1, self.k + 1))

    @property
    def prevalence_covariates(self) -> List[str]:
        return parse_prevalence(self.prevalence, self.metadata.columns)

    def theta_frame(self) -> pd.DataFrame:
        """Document-topic proportions with covariates attached."""
        df = pd.DataFrame(
            self.theta,
            columns=[f"Topic {t}" for t in self.topic_ids],
        )
        df.insert(0, "doc_id", list(self.doc_ids))
        return pd.concat([df, self.metadata.reset_index(drop=True)], axis=1)

    def topic_proportions(self) -> pd.Series:
        """Expected share of the corpus per topic."""
        return pd.Series(self.theta.mean(axis=0), index=self.topic_ids, name="proportion")


@dataclass
class KSearchResult:
    """
    Output of :meth:`TopicModeler.search_k`.

    Attributes
    ----------
    diagnostics:
        One row per candidate K: ``k, semantic_coherence, exclusivity, ok,
        error``. Failed fits have ``ok=False`` and NaN diagnostics.
    failed:
        Candidate Ks whose fit raised TopicInferenceError.
    models:
        Fitted models keyed by K (only when ``keep_models=True``).
    config:
        Search parameters.
    """

    diagnostics: pd.DataFrame
    failed: List[int]
    models: Dict[int, TopicModel]
    config: Dict[str, Any]

    def frontier(self) -> List[int]:
        return pareto_frontier(self.diagnostics)


@dataclass
class TopicCorrelation:
    """
    Pairwise correlation of topic prevalence across documents.

    Attributes
    ----------
    correlation:
        K × K correlation DataFrame (index/columns are topic numbers).
    adjacency:
        Boolean K × K DataFrame; True where correlation > cutoff
        (diagonal False).
    edges:
        ``(topic_i, topic_j, correlation)`` for every adjacent pair, i < j.
    cutoff:
        Threshold used for ``adjacency``.
    """

    correlation: pd.DataFrame
    adjacency: pd.DataFrame
    edges: List[Tuple[int, int, float]]
    cutoff: float


# ---------------------------------------------------------------------
# Formula helpers
# ---------------------------------------------------------------------


_TERM_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def parse_prevalence(formula: Optional[str], columns: Iterable[str]) -> List[str]:
    """
    Parse an additive prevalence formula such as ``"~ gender + urban"``
    into covariate names. ``None`` and ``"~ 1"`` give an empty list.

    Raises
    ------
    ConfigurationError
        Missing ``~``, interaction or transformation terms, or covariates
        not present in ``columns``.
    """
    if formula is None:
        return []
    text = formula.strip()
    if not text.startswith("~"):
        raise ConfigurationError(f"Prevalence formula must start with '~': {formula!r}")
    rhs = text[1:].strip()
    if rhs in ("", "1"):
        return []

    columns = set(columns)
    terms: List[str] = []
    for raw in rhs.split("+"):
        term = raw.strip()
        if not _TERM_RE.match(term):
            raise ConfigurationError(
                f"Only additive formulas of covariate names are supported; got term {term!r}."
            )
        if term not in columns:
            raise ConfigurationError(
                f"Prevalence covariate '{term}' not found; available: {sorted(columns)}"
            )
        if term not in terms:
            terms.append(term)
    return terms


# ---------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------


def top_term_indices(beta: np.ndarray, n: int) -> np.ndarray:
    """(K, n) indices of each topic's most probable terms (ties by index)."""
    n = min(n, beta.shape[1])
    return np.argsort(-beta, axis=1, kind="mergesort")[:, :n]


def semantic_coherence(
    beta: np.ndarray,
    counts: sparse.csr_matrix,
    vocabulary: Sequence[str],
    n_words: int = 10,
) -> np.ndarray:
    """
    UMass coherence of each topic's top ``n_words`` terms, computed by
    gensim's ``CoherenceModel`` over document co-occurrence in ``counts``.
    Higher (closer to 0) is more coherent.
    """
    from gensim.corpora import Dictionary
    from gensim.matutils import Sparse2Corpus
    from gensim.models import CoherenceModel

    bow = list(Sparse2Corpus(counts, documents_columns=False))
    dictionary = Dictionary.from_corpus(bow, id2word={i: t for i, t in enumerate(vocabulary)})
    top = top_term_indices(beta, n_words)
    topics = [[vocabulary[j] for j in row] for row in top]

    cm = CoherenceModel(
        topics=topics,
        corpus=bow,
        dictionary=dictionary,
        coherence="u_mass",
        topn=top.shape[1],
    )
    return np.asarray(cm.get_coherence_per_topic(), dtype=float)


def frex_scores(beta: np.ndarray, weight: float = 0.5) -> np.ndarray:
    """
    (K, n_terms) FREX scores: weighted harmonic mean of the within-topic
    exclusivity rank (weight ``weight``) and frequency rank.
    """
    n_terms = beta.shape[1]
    word_share = beta / beta.sum(axis=0, keepdims=True)
    excl_rank = stats.rankdata(word_share, axis=1) / n_terms
    freq_rank = stats.rankdata(beta, axis=1) / n_terms
    return 1.0 / (weight / excl_rank + (1.0 - weight) / freq_rank)


def exclusivity(beta: np.ndarray, n_words: int = 10, frex_weight: float = 0.7) -> np.ndarray:
    """
    FREX-weighted exclusivity per topic: the sum of :func:`frex_scores`
    (weight ``frex_weight``) over a topic's top ``n_words`` terms.
    """
    top = top_term_indices(beta, n_words)
    return np.take_along_axis(frex_scores(beta, frex_weight), top, axis=1).sum(axis=1)


def pareto_frontier(diagnostics: pd.DataFrame) -> List[int]:
    """
    Candidate Ks that no other successful candidate beats on *both*
    semantic coherence and exclusivity (strictly). Sorted ascending.
    """
    ok = diagnostics[diagnostics["ok"]] if "ok" in diagnostics else diagnostics
    points = ok[["k", "semantic_coherence", "exclusivity"]].to_numpy(dtype=float)
    frontier: List[int] = []
    for k, coh, exc in points:
        dominated = np.any((points[:, 1] > coh) & (points[:, 2] > exc))
        if not dominated:
            frontier.append(int(k))
    return sorted(frontier)


# ---------------------------------------------------------------------
# Selection policies
# ---------------------------------------------------------------------


SelectionPolicy = Callable[[pd.DataFrame], int]


def require_manual_selection(diagnostics: pd.DataFrame) -> int:
    """Default policy: stop and ask for a human decision."""
    raise ModelSelectionRequired(pareto_frontier(diagnostics))


def frontier_max_coherence(diagnostics: pd.DataFrame) -> int:
    """Pick the frontier K with the highest semantic coherence (smallest K on ties)."""
    frontier = pareto_frontier(diagnostics)
    if not frontier:
        raise ModelSelectionRequired([])
    sub = diagnostics[diagnostics["k"].isin(frontier)]
    sub = sub.sort_values(["semantic_coherence", "k"], ascending=[False, True])
    return int(sub.iloc[0]["k"])


def select_k(search: KSearchResult, policy: SelectionPolicy = require_manual_selection) -> int:
    """Apply a selection policy to a K search and validate its answer."""
    k = int(policy(search.diagnostics))
    ok = set(search.diagnostics.loc[search.diagnostics["ok"], "k"].astype(int))
    if k not in ok:
        raise ConfigurationError(f"Selected K={k} is not a successfully fitted candidate {sorted(ok)}.")
    return k


# ---------------------------------------------------------------------
# Worker for the K search (module level so joblib can pickle it)
# ---------------------------------------------------------------------


def _evaluate_candidate(
    engine: TopicInferenceEngine,
    topic_input: TopicInput,
    k: int,
    seed: int,
    n_words: int,
) -> Tuple[int, Optional[np.ndarray], Optional[np.ndarray], Dict[str, Any]]:
    try:
        theta, beta = engine.fit(topic_input.counts, topic_input.vocabulary, k, seed)
    except TopicInferenceError as e:
        return k, None, None, {
            "k": k,
            "semantic_coherence": np.nan,
            "exclusivity": np.nan,
            "ok": False,
            "error": str(e),
        }

    coherence = semantic_coherence(beta, topic_input.counts, topic_input.vocabulary, n_words)
    excl = exclusivity(beta, n_words)
    return k, theta, beta, {
        "k": k,
        "semantic_coherence": float(np.mean(coherence)),
        "exclusivity": float(np.mean(excl)),
        "ok": True,
        "error": None,
    }


# ---------------------------------------------------------------------
# TopicModeler – orchestration over an engine
# ---------------------------------------------------------------------


class TopicModeler:
    """
    Fit, compare and interpret topic models over a trimmed FeatureMatrix.

    Responsibilities
    ----------------
    - Validate K and the prevalence formula before any fitting.
    - Search candidate Ks and expose coherence/exclusivity per K.
    - Fit a chosen K and summarise topics (probability / FREX terms).
    - Estimate covariate effects on prevalence and topic correlations.

    Design philosophy
    -----------------
    - Inference itself lives behind :class:`TopicInferenceEngine`, so the
      statistical backend can be swapped without touching this class.
    - Every method returns a new value; fitted models are read-only.
    """

    def __init__(
        self,
        engine: Optional[TopicInferenceEngine] = None,
        *,
        seed: int = 42,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Parameters
        ----------
        engine:
            Inference backend. Defaults to :class:`GensimLdaEngine`.
        seed:
            Random seed passed to every fit.
        logger:
            Optional logging callback used when ``verbose=True``. Falls back
            to ``print``.
        """
        self.engine = engine if engine is not None else GensimLdaEngine()
        self.seed = seed
        self.logger = logger

    def _log(self, message: str, verbose: bool = True) -> None:
        if not verbose:
            return
        if self.logger is not None:
            self.logger(message)
        else:
            print(message)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _check_k(k: int, n_terms: int) -> None:
        if not isinstance(k, (int, np.integer)) or k < 2 or k > n_terms:
            raise ConfigurationError(
                f"Number of topics must be an integer in [2, {n_terms}] "
                f"(the trimmed vocabulary size); got {k!r}."
            )

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    def search_k(
        self,
        matrix: FeatureMatrix,
        k_values: Iterable[int] = range(3, 11),
        *,
        prevalence: Optional[str] = None,
        n_words: int = 10,
        n_jobs: int = 1,
        drop_empty: bool = True,
        keep_models: bool = False,
        verbose: bool = False,
    ) -> KSearchResult:
        """
        Fit one model per candidate K and record its diagnostics.

        A K whose fit raises :class:`TopicInferenceError` is reported in
        ``failed`` and the search continues. K values outside
        ``[2, n_terms]`` are rejected before any fitting.

        Parameters
        ----------
        matrix:
            Trimmed FeatureMatrix.
        k_values:
            Candidate topic counts (default 3..10).
        prevalence:
            Optional additive prevalence formula, validated and stored on
            the kept models.
        n_words:
            Top terms per topic used by both diagnostics.
        n_jobs:
            Parallel fits via joblib (1 = sequential).
        drop_empty:
            See :func:`to_topic_input`.
        keep_models:
            Keep the fitted models in the result.
        """
        ks = sorted(set(int(k) for k in k_values))
        if not ks:
            raise ConfigurationError("k_values must contain at least one candidate.")
        for k in ks:
            self._check_k(k, matrix.n_terms)
        if n_words < 2:
            raise ConfigurationError("n_words must be at least 2.")
        parse_prevalence(prevalence, matrix.metadata.columns)

        topic_input = to_topic_input(matrix, drop_empty=drop_empty)
        self._log(
            f"[TopicModeler] Searching K in {ks} over {len(topic_input.doc_ids)} documents "
            f"x {len(topic_input.vocabulary)} terms (engine='{self.engine.name}')...",
            verbose,
        )
        if topic_input.dropped_doc_ids:
            self._log(
                f"[TopicModeler]   → dropped {len(topic_input.dropped_doc_ids)} empty document(s).",
                verbose,
            )

        if n_jobs == 1:
            outcomes = [
                _evaluate_candidate(self.engine, topic_input, k, self.seed, n_words) for k in ks
            ]
        else:
            from joblib import Parallel, delayed

            outcomes = Parallel(n_jobs=n_jobs)(
                delayed(_evaluate_candidate)(self.engine, topic_input, k, self.seed, n_words)
                for k in ks
            )

        rows: List[Dict[str, Any]] = []
        models: Dict[int, TopicModel] = {}
        failed: List[int] = []
        for k, theta, beta, row in outcomes:
            rows.append(row)
            if not row["ok"]:
                failed.append(k)
                self._log(f"[TopicModeler]   K={k} failed: {row['error']}", verbose)
                continue
            self._log(
                f"[TopicModeler]   K={k}: coherence={row['semantic_coherence']:.3f}, "
                f"exclusivity={row['exclusivity']:.3f}",
                verbose,
            )
            if keep_models:
                models[k] = self._make_model(topic_input, theta, beta, k, prevalence)

        diagnostics = pd.DataFrame(
            rows, columns=["k", "semantic_coherence", "exclusivity", "ok", "error"]
        )
        config = {
            "k_values": ks,
            "n_words": n_words,
            "prevalence": prevalence,
            "seed": self.seed,
            "n_jobs": n_jobs,
            "drop_empty": drop_empty,
            "num_documents": len(topic_input.doc_ids),
            "num_terms": len(topic_input.vocabulary),
            **self.engine.get_params(),
        }
        return KSearchResult(diagnostics=diagnostics, failed=failed, models=models, config=config)

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(
        self,
        matrix: FeatureMatrix,
        k: int,
        *,
        prevalence: Optional[str] = None,
        drop_empty: bool = True,
        verbose: bool = False,
    ) -> TopicModel:
        """
        Fit a K-topic model. Deterministic for a fixed matrix, K, formula
        and seed.

        Raises
        ------
        ConfigurationError
            K outside ``[2, n_terms]`` or an invalid prevalence formula.
        TopicInferenceError
            The engine could not fit the matrix.
        """
        self._check_k(k, matrix.n_terms)
        parse_prevalence(prevalence, matrix.metadata.columns)

        topic_input = to_topic_input(matrix, drop_empty=drop_empty)
        self._log(
            f"[TopicModeler] Fitting K={k} with engine='{self.engine.name}' "
            f"(seed={self.seed})...",
            verbose,
        )
        theta, beta = self.engine.fit(topic_input.counts, topic_input.vocabulary, k, self.seed)
        model = self._make_model(topic_input, theta, beta, k, prevalence)
        self._log("[TopicModeler]   → done.", verbose)
        return model

    def _make_model(
        self,
        topic_input: TopicInput,
        theta: np.ndarray,
        beta: np.ndarray,
        k: int,
        prevalence: Optional[str],
    ) -> TopicModel:
        config = {
            "k": k,
            "prevalence": prevalence,
            "seed": self.seed,
            "num_documents": len(topic_input.doc_ids),
            "num_terms": len(topic_input.vocabulary),
            "dropped_doc_ids": list(topic_input.dropped_doc_ids),
            **self.engine.get_params(),
        }
        return TopicModel(
            theta=theta,
            beta=beta,
            vocabulary=topic_input.vocabulary,
            doc_ids=topic_input.doc_ids,
            metadata=topic_input.metadata,
            counts=topic_input.counts,
            k=k,
            prevalence=prevalence,
            seed=self.seed,
            config=config,
        )

    # ------------------------------------------------------------------
    # Interpretation
    # ------------------------------------------------------------------

    @staticmethod
    def label_topics(model: TopicModel, n: int = 15, frex_weight: float = 0.5) -> pd.DataFrame:
        """
        Top terms per topic by probability and by FREX.

        Returns
        -------
        pd.DataFrame
            Long format: ``topic, rank, prob_term, prob, frex_term, frex``,
            ``n`` rows per topic (fewer if the vocabulary is smaller).
        """
        n = min(n, model.beta.shape[1])
        frex = frex_scores(model.beta, weight=frex_weight)
        prob_idx = top_term_indices(model.beta, n)
        frex_idx = np.argsort(-frex, axis=1, kind="mergesort")[:, :n]

        rows: List[Dict[str, Any]] = []
        for t in range(model.k):
            for r in range(n):
                pj, fj = prob_idx[t, r], frex_idx[t, r]
                rows.append(
                    {
                        "topic": t + 1,
                        "rank": r + 1,
                        "prob_term": model.vocabulary[pj],
                        "prob": float(model.beta[t, pj]),
                        "frex_term": model.vocabulary[fj],
                        "frex": float(frex[t, fj]),
                    }
                )
        return pd.DataFrame(rows, columns=["topic", "rank", "prob_term", "prob", "frex_term", "frex"])

    @staticmethod
    def top_documents(model: TopicModel, corpus: Corpus, topic: int, n: int = 3) -> pd.DataFrame:
        """The ``n`` documents with the highest prevalence of ``topic``."""
        if topic < 1 or topic > model.k:
            raise ConfigurationError(f"topic must be in [1, {model.k}]; got {topic}.")
        text_by_id = dict(zip(corpus.doc_ids, corpus.texts))
        col = model.theta[:, topic - 1]
        order = np.argsort(-col, kind="mergesort")[:n]
        return pd.DataFrame(
            {
                "doc_id": [model.doc_ids[i] for i in order],
                "prevalence": col[order],
                "text": [text_by_id.get(model.doc_ids[i], "") for i in order],
            }
        )

    # ------------------------------------------------------------------
    # Covariate effects
    # ------------------------------------------------------------------

    @staticmethod
    def estimate_effect(
        model: TopicModel,
        covariate: str,
        level_a: str,
        level_b: str,
        *,
        alpha: float = 0.05,
        controls: Optional[Sequence[str]] = None,
    ) -> pd.DataFrame:
        """
        Per-topic difference in expected prevalence between documents with
        ``covariate == level_a`` and ``covariate == level_b``.

        Each topic's proportions are regressed (statsmodels OLS) on
        treatment-coded dummies of ``covariate`` with ``level_b`` as the
        reference, plus dummies for ``controls`` (default: the other
        covariates of the model's prevalence formula). The coefficient of
        ``level_a`` is the A − B difference.

        Returns
        -------
        pd.DataFrame
            ``topic, estimate, lower, upper, p_value, excludes_zero`` with a
            ``1 - alpha`` confidence interval.
        """
        import statsmodels.api as sm

        meta = model.metadata
        if covariate not in meta.columns:
            raise ConfigurationError(
                f"Covariate '{covariate}' not found; available: {list(meta.columns)}"
            )
        if not 0.0 < alpha < 1.0:
            raise ConfigurationError("alpha must be in (0, 1).")

        values = meta[covariate].astype(str)
        level_a, level_b = str(level_a), str(level_b)
        levels = set(values)
        for level in (level_a, level_b):
            if level not in levels:
                raise ConfigurationError(
                    f"Level '{level}' not present in '{covariate}'; levels: {sorted(levels)}"
                )
        if level_a == level_b:
            raise ConfigurationError("level_a and level_b must differ.")

        if controls is None:
            controls = [c for c in model.prevalence_covariates if c != covariate]
        for c in controls:
            if c not in meta.columns:
                raise ConfigurationError(f"Control covariate '{c}' not found.")

        dummies = pd.get_dummies(values, prefix=covariate, prefix_sep="=")
        dummies = dummies.drop(columns=f"{covariate}={level_b}")
        parts = [dummies]
        for c in controls:
            parts.append(
                pd.get_dummies(meta[c].astype(str), prefix=c, prefix_sep="=", drop_first=True)
            )
        X = sm.add_constant(pd.concat(parts, axis=1).astype(float), has_constant="add")
        target_col = f"{covariate}={level_a}"

        rows: List[Dict[str, Any]] = []
        for t in range(model.k):
            res = sm.OLS(model.theta[:, t], X).fit()
            lower, upper = res.conf_int(alpha=alpha).loc[target_col]
            estimate = float(res.params[target_col])
            rows.append(
                {
                    "topic": t + 1,
                    "estimate": estimate,
                    "lower": float(lower),
                    "upper": float(upper),
                    "p_value": float(res.pvalues[target_col]),
                    "excludes_zero": bool(lower > 0 or upper < 0),
                }
            )
        return pd.DataFrame(
            rows, columns=["topic", "estimate", "lower", "upper", "p_value", "excludes_zero"]
        )

    # ------------------------------------------------------------------
    # Topic correlation
    # ------------------------------------------------------------------

    @staticmethod
    def topic_correlation(model: TopicModel, cutoff: float = 0.01) -> TopicCorrelation:
        """
        Correlate topic-prevalence columns across documents; a pair of
        topics is linked when their correlation exceeds ``cutoff``.
        """
        with np.errstate(divide="ignore", invalid="ignore"):
            corr = np.corrcoef(model.theta, rowvar=False)
        corr = np.nan_to_num(np.atleast_2d(corr), nan=0.0)
        np.fill_diagonal(corr, 1.0)

        adjacency = corr > cutoff
        np.fill_diagonal(adjacency, False)

        ids = model.topic_ids
        edges = [
            (ids[i], ids[j], float(corr[i, j]))
            for i in range(model.k)
            for j in range(i + 1, model.k)
            if adjacency[i, j]
        ]
        return TopicCorrelation(
            correlation=pd.DataFrame(corr, index=ids, columns=ids),
            adjacency=pd.DataFrame(adjacency, index=ids, columns=ids),
            edges=edges,
            cutoff=cutoff,
        )
