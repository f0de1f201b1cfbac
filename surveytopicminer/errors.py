"""
errors.py

Named failures for SurveyTopicMiner.

Every stage raises one of these instead of a generic message, so callers can
tell an ingestion problem from a bad configuration or a failed topic fit.
Where it is natural, each error also derives from the matching builtin
(``KeyError``, ``ValueError``, ``LookupError``, ``RuntimeError``) so existing
``except ValueError`` code keeps working.
"""

from __future__ import annotations

from typing import Optional, Sequence


class SurveyTopicMinerError(Exception):
    """Base class for all package errors."""


# ---------------------------------------------------------------------
# Ingestion / corpus
# ---------------------------------------------------------------------


class IngestionError(SurveyTopicMinerError):
    """Reading the source table failed; nothing downstream can run."""


class MissingColumnError(IngestionError, KeyError):
    """A required column (text field, doc id field, covariate) is absent."""

    def __init__(self, column: str, available: Optional[Sequence[str]] = None) -> None:
        self.column = column
        self.available = list(available) if available is not None else None
        msg = f"Column '{column}' not found"
        if self.available is not None:
            msg += f"; available columns: {self.available}"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class MalformedRowError(IngestionError, ValueError):
    """A data row does not have as many fields as the header."""

    def __init__(self, line_number: int, expected: int, found: int) -> None:
        self.line_number = line_number
        self.expected = expected
        self.found = found
        super().__init__(
            f"Line {line_number}: expected {expected} fields, found {found}."
        )


class CovariateAlignmentError(SurveyTopicMinerError, ValueError):
    """Metadata rows and documents are out of step."""


# ---------------------------------------------------------------------
# Configuration / lookup
# ---------------------------------------------------------------------


class ConfigurationError(SurveyTopicMinerError, ValueError):
    """A stage was configured with values it cannot work with."""


class UnknownTermError(SurveyTopicMinerError, LookupError):
    """The queried term is not part of the (trimmed) vocabulary."""

    def __init__(self, term: str) -> None:
        self.term = term
        super().__init__(
            f"Term '{term}' is not in the vocabulary. Check that it survived "
            "stemming and trimming (min_termfreq / min_docfreq)."
        )

    def __str__(self) -> str:
        return self.args[0]


# ---------------------------------------------------------------------
# Topic modeling
# ---------------------------------------------------------------------


class TopicInferenceError(SurveyTopicMinerError, RuntimeError):
    """The topic inference engine could not produce a model for this K."""

    def __init__(self, message: str, k: Optional[int] = None) -> None:
        self.k = k
        super().__init__(message if k is None else f"K={k}: {message}")


class ModelSelectionRequired(SurveyTopicMinerError):
    """Raised by the default K-selection policy: a person has to choose K."""

    def __init__(self, candidates: Sequence[int]) -> None:
        self.candidates = list(candidates)
        super().__init__(
            "Choose the number of topics from the coherence/exclusivity "
            f"frontier: {self.candidates}. Pass an explicit K or a selection "
            "policy."
        )
