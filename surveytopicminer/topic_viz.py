# topic_viz.py

"""
topic_viz.py

Visualization helpers for SurveyTopicMiner.

This module is intentionally thin and UI-agnostic. It:

- Renders ranked term frequencies and keyness tables as bar charts.
- Renders term similarity/distance rankings.
- Renders the K search (semantic coherence vs. exclusivity, frontier marked).
- Renders topic term tables, covariate effects and topic correlations.

All plotting functions take the DataFrames / result objects produced by the
analysis modules and return Plotly Figure objects, so they can be used in
notebooks, Streamlit, Dash, etc. ``save_figure`` writes a figure to
HTML or JSON.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .errors import ConfigurationError
from .topic_modeler import KSearchResult, TopicCorrelation, pareto_frontier


def _require_columns(df: pd.DataFrame, columns, what: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{what} is missing column(s) {missing}.")


# ---------------------------------------------------------------------
# Frequencies & keyness
# ---------------------------------------------------------------------


def plot_frequency(
    freq_df: pd.DataFrame,
    *,
    n: int = 20,
    width: int = 800,
    height: int = 500,
    title: Optional[str] = None,
) -> go.Figure:
    """
    Horizontal bar chart of the top ``n`` terms of a frequency table.

    Parameters
    ----------
    freq_df:
        Output of ``text_frequency``. If it has a ``group`` column, bars are
        colored by group.
    n:
        Number of terms (per group) to show.
    width, height:
        Figure size in pixels.
    title:
        Optional title.
    """
    _require_columns(freq_df, ["term", "frequency", "rank"], "Frequency table")
    df = freq_df[freq_df["rank"] <= n].copy()
    color = "group" if "group" in df.columns else None

    fig = px.bar(
        df.iloc[::-1],
        x="frequency",
        y="term",
        color=color,
        orientation="h",
        hover_data=[c for c in ("rank", "docfreq") if c in df.columns],
        labels={"frequency": "Frequency", "term": ""},
        width=width,
        height=height,
    )
    fig.update_layout(
        title=title or f"Top {n} Terms by Frequency",
        plot_bgcolor="white",
        xaxis=dict(showgrid=True, gridcolor="rgb(204, 204, 204)"),
        barmode="group",
    )
    return fig


def plot_keyness(
    keyness_df: pd.DataFrame,
    *,
    n: int = 20,
    target_label: str = "Target",
    reference_label: str = "Reference",
    width: int = 800,
    height: int = 600,
) -> go.Figure:
    """
    Diverging bar chart of the ``n`` most positive and ``n`` most negative
    keyness statistics.
    """
    _require_columns(keyness_df, ["term", "statistic"], "Keyness table")
    df = keyness_df.sort_values("statistic", ascending=False, kind="mergesort")
    top = df[df["statistic"] > 0].head(n)
    bottom = df[df["statistic"] < 0].tail(n)
    df = pd.concat([top, bottom]).iloc[::-1]

    colors = np.where(df["statistic"] > 0, "darkblue", "lightgrey")
    fig = go.Figure(
        go.Bar(
            x=df["statistic"],
            y=df["term"],
            orientation="h",
            marker=dict(color=colors),
            hovertemplate="%{y}: %{x:.3f}<extra></extra>",
        )
    )
    fig.update_layout(
        title=f"Keyness: {target_label} vs. {reference_label}",
        xaxis_title="Signed statistic",
        width=width,
        height=height,
        plot_bgcolor="white",
        margin=dict(l=10, r=10, t=50, b=40),
    )
    return fig


def plot_similarity(
    similarity_df: pd.DataFrame,
    *,
    term: Optional[str] = None,
    width: int = 700,
    height: int = 450,
) -> go.Figure:
    """Bar chart of a ``term_similarity`` ranking."""
    _require_columns(similarity_df, ["term", "score"], "Similarity table")
    method = similarity_df["method"].iloc[0] if "method" in similarity_df and len(similarity_df) else "score"

    fig = px.bar(
        similarity_df.iloc[::-1],
        x="score",
        y="term",
        orientation="h",
        labels={"score": str(method).capitalize(), "term": ""},
        width=width,
        height=height,
    )
    label = f" to '{term}'" if term else ""
    fig.update_layout(title=f"Term {method}{label}", plot_bgcolor="white")
    return fig


# ---------------------------------------------------------------------
# Topic model diagnostics
# ---------------------------------------------------------------------


def plot_search_k(
    search: Union[KSearchResult, pd.DataFrame],
    *,
    width: int = 700,
    height: int = 500,
) -> go.Figure:
    """
    Scatter of mean semantic coherence (x) against mean exclusivity (y),
    one point per successfully fitted K. Frontier candidates are
    highlighted.
    """
    diag = search.diagnostics if isinstance(search, KSearchResult) else search
    _require_columns(diag, ["k", "semantic_coherence", "exclusivity"], "K-search diagnostics")
    ok = diag[diag["ok"]] if "ok" in diag.columns else diag
    frontier = set(pareto_frontier(diag))

    df = ok.copy()
    df["frontier"] = df["k"].isin(frontier)

    fig = go.Figure()
    for on_frontier, color, name in ((False, "lightgrey", "Dominated"), (True, "darkblue", "Frontier")):
        part = df[df["frontier"] == on_frontier]
        fig.add_trace(
            go.Scatter(
                x=part["semantic_coherence"],
                y=part["exclusivity"],
                mode="markers+text",
                text=[f"K={k}" for k in part["k"]],
                textposition="top center",
                marker=dict(size=12, color=color, line=dict(width=0.7, color="DarkSlateGrey")),
                name=name,
            )
        )
    fig.update_layout(
        title="Model Selection: Semantic Coherence vs. Exclusivity",
        xaxis_title="Semantic coherence",
        yaxis_title="Exclusivity",
        width=width,
        height=height,
        plot_bgcolor="white",
    )
    return fig


def plot_topic_terms(
    labels_df: pd.DataFrame,
    *,
    score: str = "prob",
    n: int = 10,
    width: int = 900,
    height: Optional[int] = None,
) -> go.Figure:
    """
    One horizontal bar panel per topic from ``TopicModeler.label_topics``.

    ``score="prob"`` plots highest-probability terms, ``score="frex"`` the
    FREX terms.
    """
    if score not in ("prob", "frex"):
        raise ValueError("score must be 'prob' or 'frex'.")
    term_col = f"{score}_term"
    _require_columns(labels_df, ["topic", "rank", term_col, score], "Topic label table")

    df = labels_df[labels_df["rank"] <= n].copy()
    df["topic_label"] = "Topic " + df["topic"].astype(str)
    n_topics = df["topic"].nunique()

    fig = px.bar(
        df,
        x=score,
        y=term_col,
        facet_col="topic_label",
        facet_col_wrap=min(3, max(n_topics, 1)),
        orientation="h",
        labels={score: score.upper() if score == "frex" else "Probability", term_col: ""},
        width=width,
        height=height or 260 * int(np.ceil(n_topics / 3)),
    )
    fig.update_yaxes(matches=None, showticklabels=True, autorange="reversed")
    fig.for_each_annotation(lambda a: a.update(text=a.text.split("=")[-1]))
    fig.update_layout(plot_bgcolor="white", showlegend=False)
    return fig


def plot_topic_effects(
    effects_df: pd.DataFrame,
    *,
    title: Optional[str] = None,
    width: int = 700,
    height: int = 450,
) -> go.Figure:
    """
    Point estimates with confidence-interval bars from
    ``TopicModeler.estimate_effect``; topics whose interval excludes zero
    are drawn in a darker color.
    """
    _require_columns(effects_df, ["topic", "estimate", "lower", "upper"], "Effect table")
    df = effects_df.copy()
    excl = df["excludes_zero"] if "excludes_zero" in df.columns else pd.Series(False, index=df.index)

    fig = go.Figure(
        go.Scatter(
            x=df["estimate"],
            y=["Topic " + str(t) for t in df["topic"]],
            mode="markers",
            marker=dict(size=10, color=np.where(excl, "darkblue", "grey")),
            error_x=dict(
                type="data",
                symmetric=False,
                array=df["upper"] - df["estimate"],
                arrayminus=df["estimate"] - df["lower"],
            ),
            showlegend=False,
        )
    )
    fig.add_vline(x=0, line=dict(color="black", dash="dash", width=1))
    fig.update_layout(
        title=title or "Difference in Topic Prevalence",
        xaxis_title="Estimated difference (A − B)",
        width=width,
        height=height,
        plot_bgcolor="white",
    )
    return fig


def plot_topic_correlation(
    correlation: TopicCorrelation,
    *,
    width: int = 600,
    height: int = 550,
) -> go.Figure:
    """Heatmap of the topic correlation matrix; linked pairs are annotated."""
    corr = correlation.correlation
    labels = [f"Topic {t}" for t in corr.index]
    text = np.where(correlation.adjacency.to_numpy(), "●", "")

    fig = go.Figure(
        go.Heatmap(
            z=corr.to_numpy(),
            x=labels,
            y=labels,
            zmin=-1,
            zmax=1,
            colorscale="RdBu",
            reversescale=True,
            text=text,
            texttemplate="%{text}",
            hovertemplate="%{y} × %{x}: %{z:.3f}<extra></extra>",
        )
    )
    fig.update_layout(
        title=f"Topic Correlation (links where r > {correlation.cutoff})",
        width=width,
        height=height,
        yaxis=dict(autorange="reversed"),
    )
    return fig


# ---------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------


def save_figure(fig: go.Figure, path: Union[str, Path]) -> Path:
    """
    Write ``fig`` to ``path``: ``.html`` (standalone page, plotly.js from
    CDN) or ``.json`` (Plotly figure JSON).
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".html":
        fig.write_html(str(path), include_plotlyjs="cdn")
    elif suffix == ".json":
        path.write_text(fig.to_json(), encoding="utf-8")
    else:
        raise ConfigurationError(f"Unsupported figure format {suffix!r}; use '.html' or '.json'.")
    return path
