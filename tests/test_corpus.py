import numpy as np
import pandas as pd
import pytest

from surveytopicminer.corpus import Corpus, build_corpus, corpus_from_frame, read_corpus
from surveytopicminer.errors import (
    CovariateAlignmentError,
    IngestionError,
    MalformedRowError,
    MissingColumnError,
)


def write(tmp_path, content, name="survey.csv"):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_read_corpus_keeps_order_and_covariates(tmp_path):
    path = write(
        tmp_path,
        "id,narrative,gender\n"
        "r1,I love my job,male\n"
        "r2,\"I hate traffic, really\",female\n",
    )
    corpus = read_corpus(path, "narrative", docid_field="id")

    assert corpus.doc_ids == ("r1", "r2")
    assert corpus.texts == ("I love my job", "I hate traffic, really")
    assert corpus.covariates == ["gender"]
    assert corpus.metadata["gender"].tolist() == ["male", "female"]
    assert corpus.text_field == "narrative"


def test_read_corpus_default_ids_and_blank_lines(tmp_path):
    path = write(tmp_path, "text,group\nfirst,a\n\nsecond,b\n")
    corpus = read_corpus(path, "text")
    assert corpus.doc_ids == ("text1", "text2")
    assert len(corpus) == 2


def test_read_corpus_keeps_empty_narratives_in_single_column_file(tmp_path):
    path = write(tmp_path, 'narrative\nfirst\n""\nthird\n')
    corpus = read_corpus(path, "narrative")
    assert corpus.n_docs == 3
    assert corpus.texts == ("first", "", "third")
    assert corpus.doc_ids == ("text1", "text2", "text3")


def test_read_corpus_strips_byte_order_mark(tmp_path):
    path = tmp_path / "excel_export.csv"
    path.write_text("narrative,gender\nI love my job,male\n", encoding="utf-8-sig")
    corpus = read_corpus(path, "narrative")
    assert corpus.texts == ("I love my job",)
    assert corpus.covariates == ["gender"]


def test_read_corpus_custom_delimiter(tmp_path):
    path = write(tmp_path, "text;group\nhello there;a\n", name="survey.tsv")
    corpus = read_corpus(path, "text", delimiter=";")
    assert corpus.texts == ("hello there",)


def test_missing_text_column(tmp_path):
    path = write(tmp_path, "body,group\nhello,a\n")
    with pytest.raises(MissingColumnError) as info:
        read_corpus(path, "narrative")
    assert info.value.column == "narrative"
    assert isinstance(info.value, KeyError)
    assert "body" in str(info.value)


def test_malformed_row_reports_line(tmp_path):
    path = write(tmp_path, "text,group\nok,a\nbroken,b,extra\n")
    with pytest.raises(MalformedRowError) as info:
        read_corpus(path, "text")
    assert info.value.line_number == 3
    assert info.value.expected == 2
    assert info.value.found == 3
    assert isinstance(info.value, IngestionError)


def test_empty_file_is_malformed(tmp_path):
    path = write(tmp_path, "")
    with pytest.raises(MalformedRowError):
        read_corpus(path, "text")


def test_build_corpus_alignment():
    with pytest.raises(CovariateAlignmentError):
        build_corpus(["a", "b"], pd.DataFrame({"g": ["x"]}))


def test_duplicate_ids_rejected():
    with pytest.raises(CovariateAlignmentError):
        build_corpus(["a", "b"], doc_ids=["d1", "d1"])


def test_corpus_from_frame_fills_missing_text():
    df = pd.DataFrame({"text": ["hello", None], "age": [30, 41]})
    corpus = corpus_from_frame(df, "text")
    assert corpus.texts == ("hello", "")
    assert corpus.metadata["age"].tolist() == ["30", "41"]


def test_partition_and_subset(survey_corpus):
    mask = survey_corpus.partition("gender", "male")
    assert mask.dtype == bool
    assert mask.sum() == 4

    males = survey_corpus.subset(mask)
    assert males.n_docs == 4
    assert set(males.metadata["gender"]) == {"male"}
    assert males.doc_ids == tuple(d for d, m in zip(survey_corpus.doc_ids, mask) if m)


def test_subset_mask_length_checked(survey_corpus):
    with pytest.raises(CovariateAlignmentError):
        survey_corpus.subset(np.array([True, False]))


def test_covariate_unknown(survey_corpus):
    with pytest.raises(MissingColumnError):
        survey_corpus.covariate("income")


def test_covariate_indexed_by_doc_id(survey_corpus):
    gender = survey_corpus.covariate("gender")
    assert list(gender.index) == list(survey_corpus.doc_ids)


def test_summary_columns(two_doc_corpus):
    summary = two_doc_corpus.summary()
    assert list(summary.columns) == ["doc_id", "n_chars", "n_words", "gender"]
    assert summary["n_words"].tolist() == [7, 4]


def test_corpus_direct_construction_checks_metadata():
    with pytest.raises(CovariateAlignmentError):
        Corpus(doc_ids=("a",), texts=("x",), metadata=pd.DataFrame({"g": ["1", "2"]}))
