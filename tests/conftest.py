import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from surveytopicminer.corpus import build_corpus
from surveytopicminer.feature_matrix import FeatureMatrix, build_feature_matrix, stem_streams, trim
from surveytopicminer.token_cleaner import TokenCleaner


@pytest.fixture
def two_doc_corpus():
    return build_corpus(
        ["I love my job and my salary", "I hate my job"],
        pd.DataFrame({"gender": ["male", "female"]}),
    )


@pytest.fixture
def cleaner():
    return TokenCleaner()


@pytest.fixture
def two_doc_matrix(two_doc_corpus, cleaner):
    streams = stem_streams(cleaner.transform(two_doc_corpus))
    return trim(build_feature_matrix(streams, two_doc_corpus.metadata), min_termfreq=1)


@pytest.fixture
def survey_corpus():
    texts = [
        "The salary is fair and the job pays well every month.",
        "My job is stable, the salary went up and the manager is fair.",
        "I love the job, the salary and the colleagues at work.",
        "The salary is decent but the job hours are long at work.",
        "The commute is slow and the traffic is terrible every morning.",
        "I hate the traffic, the bus is late and the commute is long.",
        "The train commute is crowded and the traffic never moves.",
        "Traffic again, the bus was late and the commute took hours.",
    ]
    metadata = pd.DataFrame(
        {
            "gender": ["male", "male", "female", "male", "female", "female", "male", "female"],
            "urban": ["yes", "no", "yes", "no", "yes", "no", "yes", "no"],
        }
    )
    return build_corpus(texts, metadata)


@pytest.fixture
def survey_matrix(survey_corpus, cleaner):
    streams = stem_streams(cleaner.transform(survey_corpus))
    return trim(build_feature_matrix(streams, survey_corpus.metadata), min_termfreq=2)


def make_separable_matrix(docs_per_cluster=10, words_per_cluster=10):
    """Two blocks of documents; each document uses every word of its block once."""
    vocab_a = [f"alpha{i:02d}" for i in range(words_per_cluster)]
    vocab_b = [f"beta{i:02d}" for i in range(words_per_cluster)]
    vocabulary = tuple(sorted(vocab_a + vocab_b))
    index = {t: j for j, t in enumerate(vocabulary)}

    dense = np.zeros((2 * docs_per_cluster, len(vocabulary)), dtype=np.int64)
    for i in range(docs_per_cluster):
        for t in vocab_a:
            dense[i, index[t]] = 1
        for t in vocab_b:
            dense[docs_per_cluster + i, index[t]] = 1

    n_docs = dense.shape[0]
    return FeatureMatrix(
        counts=sparse.csr_matrix(dense),
        vocabulary=vocabulary,
        doc_ids=tuple(f"text{i + 1}" for i in range(n_docs)),
        metadata=pd.DataFrame(
            {"group": ["a"] * docs_per_cluster + ["b"] * docs_per_cluster}
        ),
    )


@pytest.fixture
def separable_matrix():
    return make_separable_matrix()
