import numpy as np
import pandas as pd
import pytest

from surveytopicminer.errors import ConfigurationError, CovariateAlignmentError, UnknownTermError
from surveytopicminer.feature_matrix import (
    build_feature_matrix,
    load_feature_matrix,
    load_stemmer,
    remove_terms,
    save_feature_matrix,
    stem_streams,
    trim,
)
from surveytopicminer.token_cleaner import GAP


def test_scenario_a_vocabulary(two_doc_matrix):
    assert set(two_doc_matrix.vocabulary) == {"love", "job", "salari", "hate"}
    assert two_doc_matrix.term_frequencies()["job"] == 2
    assert two_doc_matrix.doc_frequencies()["job"] == 2


def test_stemming_keeps_gaps(two_doc_corpus, cleaner):
    stemmed = stem_streams(cleaner.transform(two_doc_corpus))
    assert stemmed.streams[0] == ("love", "job", GAP, "salari")


def test_porter_stemmer_and_none(two_doc_corpus, cleaner):
    streams = cleaner.transform(two_doc_corpus)
    assert stem_streams(streams, stemmer=None) is streams
    porter = stem_streams(streams, stemmer="porter")
    assert "salari" in porter.streams[0]


def test_unknown_stemmer():
    with pytest.raises(ConfigurationError):
        load_stemmer("lancaster")
    with pytest.raises(ConfigurationError):
        load_stemmer("snowball", language="klingon")


def test_rows_follow_corpus_order(survey_matrix, survey_corpus):
    assert survey_matrix.doc_ids == survey_corpus.doc_ids
    assert survey_matrix.n_docs == survey_corpus.n_docs
    assert list(survey_matrix.metadata["gender"]) == list(survey_corpus.metadata["gender"])


def test_vocabulary_sorted(survey_matrix):
    assert list(survey_matrix.vocabulary) == sorted(survey_matrix.vocabulary)


def test_trim_keeps_rows_and_is_monotonic(survey_corpus, cleaner):
    full = build_feature_matrix(stem_streams(cleaner.transform(survey_corpus)), survey_corpus.metadata)
    previous = full.n_terms
    for threshold in range(0, 6):
        trimmed = trim(full, min_termfreq=threshold)
        assert trimmed.n_docs == full.n_docs
        assert trimmed.doc_ids == full.doc_ids
        assert trimmed.n_terms <= previous
        assert (trimmed.term_frequencies() >= threshold).all()
        previous = trimmed.n_terms


def test_trim_default_drops_singletons(two_doc_corpus, cleaner):
    full = build_feature_matrix(stem_streams(cleaner.transform(two_doc_corpus)), two_doc_corpus.metadata)
    trimmed = trim(full)
    assert trimmed.vocabulary == ("job",)
    assert trimmed.config["min_termfreq"] == 2


def test_trim_docfreq(survey_matrix):
    trimmed = trim(survey_matrix, min_termfreq=0, min_docfreq=4)
    assert (trimmed.doc_frequencies() >= 4).all()


def test_trim_negative_threshold():
    with pytest.raises(ConfigurationError):
        trim(None, min_termfreq=-1)


def test_empty_documents_after_trim(two_doc_corpus, cleaner):
    full = build_feature_matrix(stem_streams(cleaner.transform(two_doc_corpus)), two_doc_corpus.metadata)
    trimmed = trim(full, min_termfreq=3)
    assert trimmed.n_terms == 0
    assert trimmed.empty_documents().tolist() == [True, True]


def test_metadata_alignment_checked(two_doc_corpus, cleaner):
    streams = cleaner.transform(two_doc_corpus)
    with pytest.raises(CovariateAlignmentError):
        build_feature_matrix(streams, pd.DataFrame({"g": ["a"]}))


def test_column_and_unknown_term(two_doc_matrix):
    assert two_doc_matrix.column("job").tolist() == [1, 1]
    assert "job" in two_doc_matrix
    with pytest.raises(UnknownTermError):
        two_doc_matrix.column("wage")


def test_select_rows_and_remove_terms(survey_matrix):
    mask = np.array([True, False] * 4)
    half = survey_matrix.select_rows(mask)
    assert half.n_docs == 4
    assert half.vocabulary == survey_matrix.vocabulary

    term = survey_matrix.vocabulary[0]
    removed = remove_terms(survey_matrix, [term, "not-a-term"])
    assert term not in removed
    assert removed.n_terms == survey_matrix.n_terms - 1


def test_save_and_load(tmp_path, survey_matrix):
    path = save_feature_matrix(survey_matrix, tmp_path / "matrix")
    assert path.suffix == ".npz"
    loaded = load_feature_matrix(path)
    assert loaded.vocabulary == survey_matrix.vocabulary
    assert loaded.doc_ids == survey_matrix.doc_ids
    assert (loaded.counts != survey_matrix.counts).nnz == 0
    assert loaded.metadata["gender"].tolist() == survey_matrix.metadata["gender"].tolist()


def test_to_frame(two_doc_matrix):
    frame = two_doc_matrix.to_frame()
    assert frame.loc["text2", "hate"] == 1
    assert frame.loc["text1", "hate"] == 0
