"""
SurveyTopicMiner

Exploratory text analysis and topic modeling for survey narratives.

High-level API
--------------
- read_corpus / corpus_from_frame / build_corpus → Corpus (texts + covariates)
- TokenCleaner        → cleaned token streams with gap markers
- build_feature_matrix / trim → sparse document × term counts
- text_frequency, keyness, term_similarity → exploratory statistics
- KwicDictionary, kwic, kwic_context_frequency → keyword-in-context
- TopicModeler        → K search, fit, topic labels, covariate effects,
                        topic correlations
- SurveyPipeline      → end-to-end run from one PipelineConfig
- Visualization helpers:
    * plot_frequency, plot_keyness, plot_similarity
    * plot_search_k, plot_topic_terms, plot_topic_effects,
      plot_topic_correlation, save_figure
"""

from importlib.metadata import PackageNotFoundError, version


# Core APIs
from .config import PipelineConfig, TokenizerConfig, load_pipeline_config, save_pipeline_config
from .corpus import Corpus, build_corpus, corpus_from_frame, read_corpus
from .errors import (
    ConfigurationError,
    CovariateAlignmentError,
    IngestionError,
    MalformedRowError,
    MissingColumnError,
    ModelSelectionRequired,
    SurveyTopicMinerError,
    TopicInferenceError,
    UnknownTermError,
)
from .feature_matrix import (
    FeatureMatrix,
    build_feature_matrix,
    load_feature_matrix,
    save_feature_matrix,
    stem_streams,
    trim,
)
from .kwic import KwicDictionary, KwicHit, kwic, kwic_context_frequency, kwic_frame
from .pipeline import PipelineResult, SurveyPipeline
from .text_stats import keyness, target_mask, term_similarity, text_frequency
from .token_cleaner import GAP, Gap, TokenCleaner, TokenStreams, is_gap
from .topic_modeler import (
    GensimLdaEngine,
    KSearchResult,
    SklearnLdaEngine,
    TopicCorrelation,
    TopicInferenceEngine,
    TopicModel,
    TopicModeler,
    frontier_max_coherence,
    pareto_frontier,
    require_manual_selection,
    select_k,
    to_topic_input,
)

# Visualization APIs
from .topic_viz import (
    plot_frequency,
    plot_keyness,
    plot_search_k,
    plot_similarity,
    plot_topic_correlation,
    plot_topic_effects,
    plot_topic_terms,
    save_figure,
)


# ---------------------------------------------------------------------
# Runtime version (single source of truth = pyproject.toml)
# ---------------------------------------------------------------------
try:
    __version__ = version("surveytopicminer")
except PackageNotFoundError:
    # Fallback when running directly from a clone without installation
    __version__ = "0.0.0"

__all__ = [
    "PipelineConfig",
    "TokenizerConfig",
    "load_pipeline_config",
    "save_pipeline_config",
    "Corpus",
    "build_corpus",
    "corpus_from_frame",
    "read_corpus",
    "SurveyTopicMinerError",
    "IngestionError",
    "MissingColumnError",
    "MalformedRowError",
    "CovariateAlignmentError",
    "ConfigurationError",
    "UnknownTermError",
    "TopicInferenceError",
    "ModelSelectionRequired",
    "FeatureMatrix",
    "build_feature_matrix",
    "stem_streams",
    "trim",
    "save_feature_matrix",
    "load_feature_matrix",
    "KwicDictionary",
    "KwicHit",
    "kwic",
    "kwic_frame",
    "kwic_context_frequency",
    "text_frequency",
    "target_mask",
    "keyness",
    "term_similarity",
    "GAP",
    "Gap",
    "TokenCleaner",
    "TokenStreams",
    "is_gap",
    "TopicInferenceEngine",
    "GensimLdaEngine",
    "SklearnLdaEngine",
    "TopicModel",
    "TopicModeler",
    "KSearchResult",
    "TopicCorrelation",
    "to_topic_input",
    "pareto_frontier",
    "select_k",
    "require_manual_selection",
    "frontier_max_coherence",
    "SurveyPipeline",
    "PipelineResult",
    "plot_frequency",
    "plot_keyness",
    "plot_similarity",
    "plot_search_k",
    "plot_topic_terms",
    "plot_topic_effects",
    "plot_topic_correlation",
    "save_figure",
    "__version__",
]
