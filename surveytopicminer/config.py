"""
config.py

Validated configuration models for SurveyTopicMiner.

Stage classes still take plain keyword arguments with documented defaults;
these pydantic models collect the same parameters in one serialisable place
so a whole run can be reproduced from a JSON file. Validation happens when
a model is built, i.e. before any document is touched.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError


#: Default token-removal patterns (regex, ``re.search`` semantics):
#: digit/hyphen-only tokens, tokens of length <= 2, pure punctuation.
DEFAULT_REMOVE_PATTERNS: List[str] = [
    r"^[0-9-]+$",
    r"^.{1,2}$",
    r"^[^\w\s]+$",
]

#: Characters a token may contain before it is treated as translation
#: residue (regex character-class body). The default keeps plain ASCII.
DEFAULT_KEEP_ALPHABET = r"\x00-\x7F"

STOPWORD_SOURCES = ("sklearn", "nltk", "spacy")
STEMMERS = ("snowball", "porter")


M = TypeVar("M", bound=BaseModel)


class TokenizerConfig(BaseModel):
    """
    Parameters of the tokenization & cleaning stage (see ``TokenCleaner``).

    Attributes
    ----------
    method:
        ``"nltk"`` (regex tokenizer, no downloads) or ``"spacy"``.
    spacy_model:
        spaCy pipeline to load when ``method="spacy"``. ``None`` uses a
        blank tokenizer for ``language``.
    language:
        Two-letter language code (spaCy) used for the blank tokenizer.
    remove_punct, remove_symbols, remove_numbers, remove_url:
        Drop these token classes during segmentation.
    split_hyphens:
        Split hyphenated compounds ("part-time" -> "part", "-", "time").
    remove_patterns:
        Regexes; a token matching any of them (anywhere) is removed.
    pattern_padding:
        Leave a gap where a pattern-removed token was (default: delete).
    lowercase:
        Lowercase content tokens.
    stopwords:
        Name of the stopword list (``"sklearn"``, ``"nltk"``, ``"spacy"``),
        or ``None`` to skip stopword removal.
    stopword_language:
        Language passed to the nltk stopword corpus.
    extra_stopwords:
        Additional terms removed together with the named list.
    padding:
        Replace removed stopwords / residue tokens with gaps.
    keep_alphabet:
        Regex character-class body of allowed characters; tokens with any
        other character are replaced by a gap. ``None`` disables the filter.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: Literal["nltk", "spacy"] = "nltk"
    spacy_model: Optional[str] = None
    language: str = "en"
    remove_punct: bool = True
    remove_symbols: bool = True
    remove_numbers: bool = True
    remove_url: bool = True
    split_hyphens: bool = True
    remove_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_REMOVE_PATTERNS))
    pattern_padding: bool = False
    lowercase: bool = True
    stopwords: Optional[str] = "sklearn"
    stopword_language: str = "english"
    extra_stopwords: List[str] = Field(default_factory=list)
    padding: bool = True
    keep_alphabet: Optional[str] = DEFAULT_KEEP_ALPHABET

    @field_validator("remove_patterns")
    @classmethod
    def _patterns_compile(cls, patterns: List[str]) -> List[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid regex {pattern!r}: {e}") from e
        return patterns

    @field_validator("stopwords")
    @classmethod
    def _stopwords_known(cls, name: Optional[str]) -> Optional[str]:
        if name is None:
            return None
        if not name.strip():
            raise ValueError("stopword list name must not be empty")
        if name not in STOPWORD_SOURCES:
            raise ValueError(
                f"unknown stopword list {name!r}; expected one of {STOPWORD_SOURCES}"
            )
        return name

    @field_validator("keep_alphabet")
    @classmethod
    def _alphabet_compiles(cls, alphabet: Optional[str]) -> Optional[str]:
        if alphabet is None:
            return None
        if not alphabet:
            raise ValueError("keep_alphabet must not be empty (use None to disable)")
        try:
            re.compile(f"[^{alphabet}]")
        except re.error as e:
            raise ValueError(f"invalid character class {alphabet!r}: {e}") from e
        return alphabet


class PipelineConfig(BaseModel):
    """
    End-to-end run parameters for :class:`~surveytopicminer.pipeline.SurveyPipeline`.
    """

    model_config = ConfigDict(extra="forbid")

    text_field: str
    docid_field: Optional[str] = None
    delimiter: str = ","
    encoding: str = "utf-8-sig"
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    stemmer: Optional[Literal["snowball", "porter"]] = "snowball"
    stem_language: str = "english"
    min_termfreq: int = Field(default=2, ge=0)
    min_docfreq: Optional[int] = Field(default=None, ge=0)
    engine: Literal["gensim", "sklearn"] = "gensim"
    k_values: List[int] = Field(default_factory=lambda: list(range(3, 11)))
    prevalence: Optional[str] = None
    n_words: int = Field(default=10, ge=2)
    seed: int = 42
    n_jobs: int = 1

    @field_validator("k_values")
    @classmethod
    def _k_values_valid(cls, values: List[int]) -> List[int]:
        if not values:
            raise ValueError("k_values must not be empty")
        bad = [k for k in values if k < 2]
        if bad:
            raise ValueError(f"topic counts must be >= 2, got {bad}")
        return sorted(set(values))


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def build_config(model: Type[M], data: Optional[Dict[str, Any]] = None, **overrides: Any) -> M:
    """
    Instantiate ``model`` from ``data`` + keyword overrides.

    pydantic ``ValidationError`` is re-raised as :class:`ConfigurationError`
    so callers only need to handle the package's own error taxonomy.
    """
    payload: Dict[str, Any] = dict(data or {})
    payload.update(overrides)
    try:
        return model(**payload)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {model.__name__}: {e}") from e


def load_pipeline_config(path: Union[str, Path]) -> PipelineConfig:
    """Read a :class:`PipelineConfig` from a JSON file."""
    with Path(path).open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    return build_config(PipelineConfig, data)


def save_pipeline_config(config: PipelineConfig, path: Union[str, Path]) -> None:
    """Write a :class:`PipelineConfig` as pretty-printed JSON."""
    Path(path).write_text(config.model_dump_json(indent=2), encoding="utf-8")
