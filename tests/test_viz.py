import json

import numpy as np
import pandas as pd
import plotly.graph_objects as go
import pytest
from scipy import sparse

from surveytopicminer.errors import ConfigurationError
from surveytopicminer.text_stats import keyness, target_mask, term_similarity, text_frequency
from surveytopicminer.topic_modeler import KSearchResult, TopicModel, TopicModeler
from surveytopicminer.topic_viz import (
    plot_frequency,
    plot_keyness,
    plot_search_k,
    plot_similarity,
    plot_topic_correlation,
    plot_topic_effects,
    plot_topic_terms,
    save_figure,
)


@pytest.fixture
def small_model():
    rng = np.random.default_rng(2)
    theta = rng.dirichlet([1.0, 1.0, 1.0], size=12)
    beta = rng.dirichlet(np.ones(6), size=3)
    return TopicModel(
        theta=theta,
        beta=beta,
        vocabulary=("bus", "commut", "job", "late", "salari", "traffic"),
        doc_ids=tuple(f"text{i + 1}" for i in range(12)),
        metadata=pd.DataFrame({"gender": ["male", "female"] * 6}),
        counts=sparse.csr_matrix((12, 6), dtype=np.int64),
        k=3,
        prevalence="~ gender",
        seed=0,
    )


def test_exploratory_plots(survey_matrix):
    freq = text_frequency(survey_matrix)
    assert isinstance(plot_frequency(freq, n=5), go.Figure)
    assert isinstance(plot_frequency(text_frequency(survey_matrix, groups="gender"), n=3), go.Figure)

    key = keyness(survey_matrix, target_mask(survey_matrix, "gender", "male"))
    fig = plot_keyness(key, n=3, target_label="male", reference_label="female")
    assert len(fig.data[0].y) <= 6

    sim = term_similarity(survey_matrix, "commut", n=5)
    assert isinstance(plot_similarity(sim, term="commut"), go.Figure)


def test_plot_frequency_requires_columns():
    with pytest.raises(ValueError):
        plot_frequency(pd.DataFrame({"term": ["a"]}))


def test_plot_search_k_marks_frontier():
    diag = pd.DataFrame(
        {
            "k": [3, 4, 5],
            "semantic_coherence": [-1.0, -2.0, -3.0],
            "exclusivity": [9.0, 9.5, 8.0],
            "ok": [True, True, True],
            "error": [None, None, None],
        }
    )
    fig = plot_search_k(KSearchResult(diagnostics=diag, failed=[], models={}, config={}))
    by_name = {trace.name: list(trace.text) for trace in fig.data}
    assert by_name["Frontier"] == ["K=3", "K=4"]
    assert by_name["Dominated"] == ["K=5"]


def test_topic_plots(small_model):
    labels = TopicModeler.label_topics(small_model, n=4)
    assert isinstance(plot_topic_terms(labels, n=4), go.Figure)
    assert isinstance(plot_topic_terms(labels, score="frex"), go.Figure)
    with pytest.raises(ValueError):
        plot_topic_terms(labels, score="lift")

    effects = TopicModeler.estimate_effect(small_model, "gender", "male", "female")
    fig = plot_topic_effects(effects)
    assert len(fig.data[0].x) == 3

    corr = TopicModeler.topic_correlation(small_model)
    heat = plot_topic_correlation(corr)
    assert np.asarray(heat.data[0].z).shape == (3, 3)


def test_save_figure(tmp_path, survey_matrix):
    fig = plot_frequency(text_frequency(survey_matrix), n=3)

    json_path = save_figure(fig, tmp_path / "freq.json")
    assert json.loads(json_path.read_text(encoding="utf-8"))["data"]

    html_path = save_figure(fig, tmp_path / "freq.html")
    assert "<html" in html_path.read_text(encoding="utf-8").lower()

    with pytest.raises(ConfigurationError):
        save_figure(fig, tmp_path / "freq.png")
