"""
token_cleaner.py

TokenCleaner: deterministic tokenization and cleaning of survey narratives.

Main features
-------------
- Dual backends: an nltk ``RegexpTokenizer`` (default, no model downloads)
  or a spaCy tokenizer.
- Token-class removal during segmentation (punctuation, symbols, numbers,
  URLs) and optional hyphen splitting.
- Regex pattern removal (default: digit/hyphen-only tokens, tokens of
  length <= 2, pure punctuation).
- Lowercasing, named stopword lists, and a target-alphabet filter for
  machine-translation residue.
- Removed stopwords and residue tokens leave a ``GAP`` marker behind so
  that positional windows (KWIC) still see the original spacing.

Steps always run in this order:

    segment -> remove patterns -> lowercase -> remove stopwords -> alphabet filter

Quick usage
-----------
    from surveytopicminer import TokenCleaner

    cleaner = TokenCleaner(stopwords="sklearn")
    streams = cleaner.transform(corpus)
    streams.streams[0]   # ('love', GAP, 'job', ...)
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, List, Optional, Pattern, Sequence, Tuple, Union

from .config import TokenizerConfig, build_config
from .corpus import Corpus
from .errors import ConfigurationError


# ---------------------------------------------------------------------
# Gap tokens and token streams
# ---------------------------------------------------------------------


class Gap:
    """
    Placeholder left where a token was removed.

    There is exactly one instance, ``GAP``. It is never equal to a string,
    so content tokens and gaps cannot be confused downstream.
    """

    _instance: Optional["Gap"] = None

    def __new__(cls) -> "Gap":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "GAP"

    def __reduce__(self):
        # keep the singleton across pickling (joblib workers)
        return (Gap, ())


GAP = Gap()

Token = Union[str, Gap]


def is_gap(token: Token) -> bool:
    return token is GAP


@dataclass(frozen=True)
class TokenStreams:
    """
    Cleaned token streams, one per document, in corpus order.

    Attributes
    ----------
    doc_ids:
        Document identifiers aligned with ``streams``.
    streams:
        One tuple of tokens per document; each token is a ``str`` or ``GAP``.
    config:
        The TokenizerConfig that produced these streams (audit trail).
    """

    doc_ids: Tuple[str, ...]
    streams: Tuple[Tuple[Token, ...], ...]
    config: TokenizerConfig

    def __len__(self) -> int:
        return len(self.streams)

    def n_tokens(self) -> List[int]:
        """Number of content (non-gap) tokens per document."""
        return [sum(1 for t in s if not is_gap(t)) for s in self.streams]

    def to_strings(self) -> List[List[str]]:
        """Streams with gaps rendered as empty strings."""
        return [["" if is_gap(t) else t for t in s] for s in self.streams]

    def content(self) -> List[List[str]]:
        """Streams with gaps dropped."""
        return [[t for t in s if not is_gap(t)] for s in self.streams]

    def map(self, fn: Callable[[str], str]) -> "TokenStreams":
        """Apply ``fn`` to every content token; gaps pass through."""
        return TokenStreams(
            doc_ids=self.doc_ids,
            streams=tuple(
                tuple(t if is_gap(t) else fn(t) for t in s) for s in self.streams
            ),
            config=self.config,
        )


# ---------------------------------------------------------------------
# Segmentation rules
# ---------------------------------------------------------------------

# URLs first, then decimal numbers, then words (with inner hyphens and
# apostrophes), then any single non-space character.
_TOKEN_PATTERN = r"""
    (?:https?://|www\.)\S+
  | [+-]?\d+(?:[.,]\d+)+
  | \w+(?:[-'’]\w+)*
  | [^\w\s]
"""

_URL_RE = re.compile(r"^(?:https?://|www\.)\S+$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^[+-]?\d+(?:[.,]\d+)*%?$")

URL, NUMBER, PUNCT, SYMBOL, WORD = "url", "number", "punct", "symbol", "word"


def classify_token(token: str) -> str:
    """
    Assign a segmentation class to a raw token.

    URLs and numbers are recognised by regex; a token made only of Unicode
    punctuation (``P*``) or only of symbols (``S*``) is punctuation or a
    symbol; everything else is a word.
    """
    if _URL_RE.match(token):
        return URL
    if _NUMBER_RE.match(token):
        return NUMBER
    categories = {unicodedata.category(ch)[0] for ch in token}
    if categories == {"P"}:
        return PUNCT
    if categories <= {"S", "P"}:
        return SYMBOL
    return WORD


# ---------------------------------------------------------------------
# Stopword providers
# ---------------------------------------------------------------------


def load_stopwords(name: str, language: str = "english") -> FrozenSet[str]:
    """
    Look up a named stopword list.

    - ``"sklearn"``: scikit-learn's long English list (318 terms).
    - ``"nltk"``: the nltk stopword corpus for ``language`` (downloaded
      quietly on first use).
    - ``"spacy"``: spaCy's English stopword set.
    """
    if not name or not name.strip():
        raise ConfigurationError("Stopword list name must not be empty.")

    if name == "sklearn":
        from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

        return frozenset(w.lower() for w in ENGLISH_STOP_WORDS)

    if name == "nltk":
        import nltk

        try:
            from nltk.corpus import stopwords

            words = stopwords.words(language)
        except LookupError:
            nltk.download("stopwords", quiet=True)
            from nltk.corpus import stopwords

            words = stopwords.words(language)
        return frozenset(w.lower() for w in words)

    if name == "spacy":
        try:
            from spacy.lang.en.stop_words import STOP_WORDS
        except ImportError as e:
            raise ImportError(
                "spaCy is required for stopwords='spacy'. Install with 'pip install spacy'."
            ) from e
        return frozenset(w.lower() for w in STOP_WORDS)

    raise ConfigurationError(
        f"Unknown stopword list {name!r}; expected 'sklearn', 'nltk' or 'spacy'."
    )


# ---------------------------------------------------------------------
# TokenCleaner
# ---------------------------------------------------------------------


class TokenCleaner:
    """
    Turn each document of a corpus into a cleaned token stream.

    This class is responsible for:
      * Segmenting text into tokens (nltk regex tokenizer or spaCy)
      * Dropping punctuation / symbols / numbers / URLs as configured
      * Removing tokens that match any of the configured regex patterns
      * Lowercasing
      * Replacing stopwords and foreign-alphabet residue with gaps

    The output is a :class:`TokenStreams` with the same number of documents,
    in the same order, as the input. The transformation is pure: running it
    twice with the same configuration gives identical streams.
    """

    def __init__(
        self,
        config: Optional[TokenizerConfig] = None,
        *,
        logger: Optional[Callable[[str], None]] = None,
        **overrides: Any,
    ) -> None:
        """
        Parameters
        ----------
        config:
            A TokenizerConfig. Omit it to use defaults.
        logger:
            Optional logging callback used when ``verbose=True`` in
            :meth:`transform`. Falls back to ``print``.
        **overrides:
            Individual TokenizerConfig fields, e.g. ``stopwords="nltk"``.
            Applied on top of ``config``.

        Raises
        ------
        ConfigurationError
            Invalid regex, empty or unknown stopword list name, unknown
            field.
        """
        base = config.model_dump() if config is not None else {}
        self.config: TokenizerConfig = build_config(TokenizerConfig, base, **overrides)
        self.logger = logger

        self._patterns: List[Pattern[str]] = [re.compile(p) for p in self.config.remove_patterns]
        self._outside_alphabet: Optional[Pattern[str]] = (
            re.compile(f"[^{self.config.keep_alphabet}]")
            if self.config.keep_alphabet is not None
            else None
        )

        stop: FrozenSet[str] = frozenset()
        if self.config.stopwords is not None:
            stop = load_stopwords(self.config.stopwords, self.config.stopword_language)
        self._stopwords: FrozenSet[str] = stop | frozenset(
            w.lower() for w in self.config.extra_stopwords
        )

        if self.config.method == "nltk":
            self._tokenizer = self._load_nltk_tokenizer()
            self._nlp = None
        else:
            self._nlp = self._load_spacy_tokenizer(self.config.spacy_model, self.config.language)
            self._tokenizer = None

    def _log(self, message: str, verbose: bool = True) -> None:
        if not verbose:
            return
        if self.logger is not None:
            self.logger(message)
        else:
            print(message)

    @property
    def stopwords(self) -> FrozenSet[str]:
        return self._stopwords

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def transform(self, corpus: Corpus, verbose: bool = False) -> TokenStreams:
        """Clean every document of ``corpus``; order and count are preserved."""
        self._log(
            f"[TokenCleaner] Cleaning {corpus.n_docs} document(s) with method='{self.config.method}'...",
            verbose,
        )
        result = self.clean_texts(corpus.texts, doc_ids=corpus.doc_ids)
        if verbose:
            n_tokens = sum(result.n_tokens())
            self._log(f"[TokenCleaner]   → {n_tokens} content tokens kept.")
        return result

    def clean_texts(
        self,
        texts: Sequence[str],
        doc_ids: Optional[Sequence[str]] = None,
    ) -> TokenStreams:
        """Clean an ad-hoc list of strings (ids default to ``text1..textN``)."""
        if doc_ids is None:
            doc_ids = [f"text{i + 1}" for i in range(len(texts))]
        if len(doc_ids) != len(texts):
            raise ConfigurationError(
                f"{len(doc_ids)} ids supplied for {len(texts)} texts."
            )
        streams = tuple(self.clean_text(t) for t in texts)
        return TokenStreams(doc_ids=tuple(doc_ids), streams=streams, config=self.config)

    def clean_text(self, text: str) -> Tuple[Token, ...]:
        """Run all cleaning steps on a single string."""
        tokens: List[Token] = list(self._segment(text or ""))
        tokens = self._remove_patterns(tokens)
        if self.config.lowercase:
            tokens = [t if is_gap(t) else t.lower() for t in tokens]
        if self._stopwords:
            tokens = self._remove_stopwords(tokens)
        if self._outside_alphabet is not None:
            tokens = self._filter_alphabet(tokens)
        return tuple(tokens)

    # ------------------------------------------------------------------
    # Step 1 – segmentation
    # ------------------------------------------------------------------

    def _segment(self, text: str) -> List[str]:
        if self._tokenizer is not None:
            raw = self._tokenizer.tokenize(text)
        else:
            raw = [tok.text for tok in self._nlp(text) if not tok.is_space]  # type: ignore[misc]

        drop = {
            PUNCT: self.config.remove_punct,
            SYMBOL: self.config.remove_symbols,
            NUMBER: self.config.remove_numbers,
            URL: self.config.remove_url,
            WORD: False,
        }

        out: List[str] = []
        for token in raw:
            kind = classify_token(token)
            if kind == WORD and self.config.split_hyphens and "-" in token:
                for i, part in enumerate(token.split("-")):
                    if i > 0 and not drop[PUNCT]:
                        out.append("-")
                    if part and not drop[classify_token(part)]:
                        out.append(part)
                continue
            if not drop[kind]:
                out.append(token)
        return out

    # ------------------------------------------------------------------
    # Steps 2, 4, 5 – removal
    # ------------------------------------------------------------------

    def _remove_patterns(self, tokens: List[Token]) -> List[Token]:
        if not self._patterns:
            return tokens
        out: List[Token] = []
        for t in tokens:
            if not is_gap(t) and any(p.search(t) for p in self._patterns):
                if self.config.pattern_padding:
                    out.append(GAP)
                continue
            out.append(t)
        return out

    def _remove_stopwords(self, tokens: List[Token]) -> List[Token]:
        out: List[Token] = []
        for t in tokens:
            if not is_gap(t) and t.lower() in self._stopwords:
                if self.config.padding:
                    out.append(GAP)
                continue
            out.append(t)
        return out

    def _filter_alphabet(self, tokens: List[Token]) -> List[Token]:
        """
        Gap out tokens containing any character outside ``keep_alphabet``.

        Heuristic for residue of upstream machine translation; with the
        ASCII default, legitimate accented names ("José") are removed too.
        """
        out: List[Token] = []
        for t in tokens:
            if not is_gap(t) and self._outside_alphabet.search(t):  # type: ignore[union-attr]
                if self.config.padding:
                    out.append(GAP)
                continue
            out.append(t)
        return out

    # ---------------------------------------------------------------------
    # Lazy back-end loaders (keep heavy imports optional)
    # ---------------------------------------------------------------------

    @staticmethod
    def _load_nltk_tokenizer():
        from nltk.tokenize import RegexpTokenizer

        return RegexpTokenizer(
            _TOKEN_PATTERN,
            flags=re.UNICODE | re.MULTILINE | re.DOTALL | re.VERBOSE,
        )

    @staticmethod
    def _load_spacy_tokenizer(model_name: Optional[str], language: str):
        """
        Load a spaCy pipeline for tokenization.

        With ``model_name=None`` a blank pipeline for ``language`` is used
        (tokenizer rules only, nothing to download). A named model is
        downloaded on the fly if it is missing.
        """
        import subprocess
        import sys

        try:
            import spacy
        except ImportError as e:
            raise ImportError(
                "spaCy is required for method='spacy'. Install with 'pip install spacy'."
            ) from e

        if model_name is None:
            return spacy.blank(language)

        try:
            return spacy.load(model_name, disable=["parser", "ner", "lemmatizer"])
        except OSError:
            print(f"[TokenCleaner] spaCy model '{model_name}' not found. Downloading…")
            subprocess.run([sys.executable, "-m", "spacy", "download", model_name], check=True)
            return spacy.load(model_name, disable=["parser", "ner", "lemmatizer"])
