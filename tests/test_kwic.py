import pytest

from surveytopicminer.errors import ConfigurationError
from surveytopicminer.kwic import KwicDictionary, kwic, kwic_context_frequency, kwic_frame
from surveytopicminer.token_cleaner import is_gap


@pytest.fixture
def dictionary():
    return KwicDictionary({"work": ["job*", "work*"], "pay": ["salar*"]})


def test_every_match_is_reported_once(cleaner, survey_corpus, dictionary):
    streams = cleaner.transform(survey_corpus)
    hits = kwic(streams, dictionary, window=3)

    expected = [
        (doc_id, pos)
        for doc_id, stream in zip(streams.doc_ids, streams.streams)
        for pos, token in enumerate(stream)
        if not is_gap(token) and dictionary.matches(token)
    ]
    found = [(h.doc_id, h.position) for h in hits]
    assert found == expected
    assert len(set(found)) == len(found)
    assert {h.category for h in hits} == {"work", "pay"}


def test_window_counts_gaps_as_slots(cleaner, two_doc_corpus):
    streams = cleaner.transform(two_doc_corpus)  # ('love', 'job', GAP, 'salary')
    hits = kwic(streams, KwicDictionary({"pay": ["salar*"]}), window=1)
    assert len(hits) == 1
    hit = hits[0]
    assert hit.pre == ("",)
    assert hit.keyword == "salary"
    assert hit.post == ()
    assert hit.position == 3


def test_window_truncated_at_document_edges(cleaner, two_doc_corpus):
    streams = cleaner.transform(two_doc_corpus)
    hits = kwic(streams, KwicDictionary({"work": ["job"]}), window=5)
    first = hits[0]
    assert first.pre == ("love",)
    assert first.post == ("", "salary")
    assert first.window_text() == "love job salary"
    assert hits[1].pre == ("hate",)
    assert hits[1].post == ()


def test_first_category_wins():
    d = KwicDictionary({"a": ["sal*"], "b": ["salary"]})
    assert d.match("salary") == ("a", "sal*")
    assert d.patterns == ["sal*", "salary"]


def test_case_sensitivity(cleaner, two_doc_corpus):
    streams = cleaner.transform(two_doc_corpus)
    assert kwic(streams, KwicDictionary({"work": ["JOB"]})) == []
    insensitive = KwicDictionary({"work": ["JOB"]}, case_sensitive=False)
    assert len(kwic(streams, insensitive)) == 2


def test_glob_matches_whole_token():
    d = KwicDictionary({"work": ["job"]})
    assert d.matches("job")
    assert not d.matches("jobs")
    assert KwicDictionary({"x": ["jo?"]}).matches("job")


def test_invalid_dictionary():
    with pytest.raises(ConfigurationError):
        KwicDictionary({})
    with pytest.raises(ConfigurationError):
        KwicDictionary({"work": []})
    with pytest.raises(ConfigurationError):
        KwicDictionary({"work": [""]})


def test_negative_window(cleaner, two_doc_corpus, dictionary):
    with pytest.raises(ConfigurationError):
        kwic(cleaner.transform(two_doc_corpus), dictionary, window=-1)


def test_kwic_frame_columns(cleaner, two_doc_corpus, dictionary):
    frame = kwic_frame(kwic(cleaner.transform(two_doc_corpus), dictionary))
    assert list(frame.columns) == ["doc_id", "position", "pre", "keyword", "post", "pattern", "category"]
    assert frame["keyword"].tolist() == ["job", "salary", "job"]
    assert frame.loc[0, "post"] == "salary"


def test_context_frequency_excludes_keywords(cleaner, two_doc_corpus):
    d = KwicDictionary({"pay": ["salar*"]})
    hits = kwic(cleaner.transform(two_doc_corpus), d, window=5)
    freq = kwic_context_frequency(hits, cleaner, d)
    assert set(freq["term"]) == {"love", "job"}
    assert "salari" not in freq["term"].tolist()
    assert freq["frequency"].tolist() == [1, 1]


def test_context_frequency_counts_across_hits(cleaner, survey_corpus):
    d = KwicDictionary({"pay": ["salar*"]})
    hits = kwic(cleaner.transform(survey_corpus), d, window=5)
    freq = kwic_context_frequency(hits, cleaner, d, min_termfreq=2)
    assert freq.iloc[0]["term"] == "job"
    assert (freq["frequency"] >= 2).all()


def test_context_frequency_without_hits(cleaner, dictionary):
    freq = kwic_context_frequency([], cleaner, dictionary)
    assert freq.empty
