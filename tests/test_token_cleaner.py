import pickle

import pytest

from surveytopicminer.config import TokenizerConfig
from surveytopicminer.corpus import build_corpus
from surveytopicminer.errors import ConfigurationError
from surveytopicminer.token_cleaner import GAP, Gap, TokenCleaner, classify_token, is_gap


def test_gap_is_a_singleton_distinct_from_strings():
    assert Gap() is GAP
    assert GAP != ""
    assert is_gap(GAP)
    assert not is_gap("")
    assert pickle.loads(pickle.dumps(GAP)) is GAP


def test_scenario_a_stream(cleaner):
    # "I" and "my" fall to the short-token pattern, "and" is a padded stopword
    assert cleaner.clean_text("I love my job and my salary") == ("love", "job", GAP, "salary")
    assert cleaner.clean_text("I hate my job") == ("hate", "job")


def test_stream_count_and_order(cleaner, survey_corpus):
    streams = cleaner.transform(survey_corpus)
    assert len(streams) == survey_corpus.n_docs
    assert streams.doc_ids == survey_corpus.doc_ids


def test_cleaning_is_deterministic(cleaner, survey_corpus):
    assert cleaner.transform(survey_corpus).streams == cleaner.transform(survey_corpus).streams


def test_empty_document_gives_empty_stream(cleaner):
    assert cleaner.clean_text("") == ()
    assert cleaner.clean_text("!!! 42 ...") == ()


def test_punctuation_numbers_urls_removed(cleaner):
    tokens = cleaner.clean_text("Visit https://example.org today, 3.5 stars $$ wonderful!")
    assert tokens == ("visit", "today", "stars", "wonderful")


def test_hyphens_split():
    cleaner = TokenCleaner(stopwords=None)
    assert cleaner.clean_text("part-time worker") == ("part", "time", "worker")


def test_hyphens_kept_when_not_splitting():
    cleaner = TokenCleaner(stopwords=None, split_hyphens=False)
    assert cleaner.clean_text("part-time worker") == ("part-time", "worker")


def test_pattern_padding_leaves_gap():
    cleaner = TokenCleaner(stopwords=None, pattern_padding=True)
    assert cleaner.clean_text("my salary") == (GAP, "salary")


def test_without_padding_stopwords_are_deleted():
    cleaner = TokenCleaner(padding=False)
    assert cleaner.clean_text("love and salary") == ("love", "salary")


def test_alphabet_filter_gaps_non_ascii():
    cleaner = TokenCleaner(stopwords=None)
    assert cleaner.clean_text("José enjoys работа") == (GAP, "enjoys", GAP)


def test_alphabet_filter_can_be_disabled():
    cleaner = TokenCleaner(stopwords=None, keep_alphabet=None)
    assert cleaner.clean_text("José enjoys") == ("josé", "enjoys")


def test_extra_stopwords():
    cleaner = TokenCleaner(extra_stopwords=["Salary"])
    assert cleaner.clean_text("fair salary") == ("fair", GAP)


def test_lowercase_optional():
    cleaner = TokenCleaner(stopwords=None, lowercase=False)
    assert cleaner.clean_text("Great Job") == ("Great", "Job")


def test_invalid_regex_is_configuration_error():
    with pytest.raises(ConfigurationError):
        TokenCleaner(remove_patterns=["(unclosed"])


def test_empty_stopword_name_is_configuration_error():
    with pytest.raises(ConfigurationError):
        TokenCleaner(stopwords="  ")


def test_unknown_stopword_list():
    with pytest.raises(ConfigurationError):
        TokenCleaner(stopwords="klingon")


def test_unknown_option_rejected():
    with pytest.raises(ConfigurationError):
        TokenCleaner(remove_emoji=True)


def test_config_object_and_overrides_combine():
    cleaner = TokenCleaner(TokenizerConfig(lowercase=False), stopwords=None)
    assert cleaner.config.lowercase is False
    assert cleaner.config.stopwords is None


def test_streams_keep_config_and_helpers(cleaner):
    corpus = build_corpus(["I love my job and my salary"])
    streams = cleaner.transform(corpus)
    assert streams.config == cleaner.config
    assert streams.n_tokens() == [3]
    assert streams.to_strings() == [["love", "job", "", "salary"]]
    assert streams.content() == [["love", "job", "salary"]]
    assert streams.map(str.upper).streams == (("LOVE", "JOB", GAP, "SALARY"),)


@pytest.mark.parametrize(
    "token, kind",
    [
        ("www.example.com", "url"),
        ("12.5", "number"),
        ("!?", "punct"),
        ("$", "symbol"),
        ("salary", "word"),
    ],
)
def test_classify_token(token, kind):
    assert classify_token(token) == kind


def test_verbose_uses_logger(survey_corpus):
    messages = []
    cleaner = TokenCleaner(logger=messages.append)
    cleaner.transform(survey_corpus, verbose=True)
    assert messages and messages[0].startswith("[TokenCleaner]")

    messages.clear()
    cleaner.transform(survey_corpus)
    assert messages == []
