"""Exploratory plots for the differential-expression walkthrough."""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.graph_objs import Figure
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .differential import DesignComparison


class PlottingError(ValueError):
    """Raised when the inputs of a plot cannot be drawn."""


def _ordered_samples(expression: pd.DataFrame, metadata: Optional[pd.DataFrame]) -> pd.DataFrame:
    if metadata is None:
        return expression
    shared_samples = [col for col in metadata.index if col in expression.columns]
    return expression[shared_samples] if shared_samples else expression


# ---------------------------------------------------------------------------
# Sample level
# ---------------------------------------------------------------------------

def perform_pca(
    expression: pd.DataFrame,
    metadata: pd.DataFrame,
    top_n: int = 500,
    scale: bool = False,
    color_by: Optional[str] = None,
    symbol_by: Optional[str] = None,
) -> Figure:
    """PCA of samples on the ``top_n`` most variable genes of a transformed matrix."""

    expression = _ordered_samples(expression, metadata)
    if expression.shape[1] < 2:
        raise PlottingError("PCA needs at least two samples.")
    expression = expression.loc[expression.var(axis=1).sort_values(ascending=False).index[:top_n]]
    matrix = expression.to_numpy().T
    if scale:
        matrix = StandardScaler().fit_transform(matrix)

    pca = PCA(n_components=2)
    components = pca.fit_transform(matrix)
    explained = pca.explained_variance_ratio_ * 100

    pca_df = metadata.reindex(expression.columns).astype(str)
    pca_df["PC1"] = components[:, 0]
    pca_df["PC2"] = components[:, 1]
    pca_df = pca_df.rename_axis("sample").reset_index()

    fig = px.scatter(
        pca_df,
        x="PC1",
        y="PC2",
        color=color_by if color_by in metadata.columns else None,
        symbol=symbol_by if symbol_by in metadata.columns else None,
        hover_name="sample",
        labels={"PC1": f"PC1 ({explained[0]:.1f}% variance)", "PC2": f"PC2 ({explained[1]:.1f}% variance)"},
    )
    fig.update_traces(marker=dict(size=10, line=dict(width=1, color="DarkSlateGrey")))
    return fig


def sample_distance_heatmap(
    expression: pd.DataFrame,
    metadata: Optional[pd.DataFrame] = None,
    label_by: Optional[str] = None,
    color_scale: str = "Blues_r",
) -> Figure:
    """Euclidean distances between samples, ordered by hierarchical clustering."""

    expression = _ordered_samples(expression, metadata)
    samples = expression.T
    distances = squareform(pdist(samples.to_numpy(), metric="euclidean"))
    order = leaves_list(linkage(pdist(samples.to_numpy()), method="complete")) if len(samples) > 1 else [0]

    labels = samples.index.astype(str)
    if metadata is not None and label_by in metadata.columns:
        extra = metadata[label_by].reindex(samples.index).astype(str)
        labels = [f"{sample} ({value})" for sample, value in zip(samples.index, extra)]
    labels = [labels[i] for i in order]

    ordered = pd.DataFrame(distances[np.ix_(order, order)], index=labels, columns=labels)
    return px.imshow(
        ordered,
        color_continuous_scale=color_scale,
        aspect="auto",
        labels=dict(x="Sample", y="Sample", color="Distance"),
    )


# ---------------------------------------------------------------------------
# Gene level
# ---------------------------------------------------------------------------

def tpm_scatterplot(
    averages: pd.DataFrame,
    x_condition: str,
    y_condition: str,
    highlight: Optional[Iterable[str]] = None,
    pseudocount: float = 1.0,
    color_highlight: str = "#d73027",
    color_other: str = "#808080",
) -> Figure:
    """Mean TPM of two conditions on log10 axes, with ``highlight`` genes coloured."""

    for condition in (x_condition, y_condition):
        if condition not in averages.columns:
            raise PlottingError(f"Condition '{condition}' is not a column of the average expression table.")

    df = pd.DataFrame(
        {
            x_condition: np.log10(averages[x_condition] + pseudocount),
            y_condition: np.log10(averages[y_condition] + pseudocount),
        },
        index=averages.index,
    )
    highlighted = set(highlight) if highlight is not None else set()
    df["status"] = np.where(df.index.isin(list(highlighted)), "highlighted", "other")
    df = df.rename_axis("gene").reset_index()

    fig = px.scatter(
        df,
        x=x_condition,
        y=y_condition,
        color="status",
        hover_name="gene",
        color_discrete_map={"highlighted": color_highlight, "other": color_other},
        opacity=0.7,
    )
    upper = float(max(df[x_condition].max(), df[y_condition].max(), 0.0))
    fig.add_shape(type="line", x0=0, y0=0, x1=upper, y1=upper, line=dict(dash="dash", color="black"))
    fig.update_layout(
        xaxis_title=f"log10(mean TPM + {pseudocount:g}) {x_condition}",
        yaxis_title=f"log10(mean TPM + {pseudocount:g}) {y_condition}",
    )
    return fig


def generate_heatmap(
    expression: pd.DataFrame,
    metadata: Optional[pd.DataFrame] = None,
    genes: Optional[Sequence[str]] = None,
    top_n: int = 50,
    color_scale: str = "RdBu_r",
) -> Figure:
    if genes is not None:
        selected = [gene for gene in genes if gene in expression.index][:top_n]
    else:
        selected = expression.var(axis=1).sort_values(ascending=False).index[:top_n]
    sub_expression = _ordered_samples(expression.loc[selected], metadata)
    sub_expression = sub_expression.loc[sub_expression.var(axis=1) > 0]
    if sub_expression.empty:
        raise PlottingError("No variable genes left to draw in the heatmap.")
    z = StandardScaler().fit_transform(sub_expression.T).T

    if len(z) > 1:
        row_order = leaves_list(linkage(pdist(z), method="average"))
    else:
        row_order = np.arange(len(z))
    ordered = pd.DataFrame(z[row_order], index=sub_expression.index[row_order], columns=sub_expression.columns)

    return px.imshow(
        ordered,
        color_continuous_scale=color_scale,
        aspect="auto",
        labels=dict(x="Sample", y="Gene", color="Z-score"),
    )


# ---------------------------------------------------------------------------
# Result level
# ---------------------------------------------------------------------------

def _regulation(df: pd.DataFrame, padj_threshold: float, log2fc_threshold: float) -> np.ndarray:
    conditions = [
        (df["padj"] < padj_threshold) & (df["log2FoldChange"] > log2fc_threshold),
        (df["padj"] < padj_threshold) & (df["log2FoldChange"] < -log2fc_threshold),
    ]
    return np.select(conditions, ["up", "down"], default="ns")


def generate_volcano_plot(
    deseq_results: pd.DataFrame,
    log2fc_threshold: float = 1.0,
    padj_threshold: float = 0.05,
    max_log2fc: Optional[float] = None,
    color_up: str = "#d73027",
    color_down: str = "#4575b4",
    color_ns: str = "#808080",
) -> Figure:
    df = deseq_results.dropna(subset=["padj"]).copy()
    df["-log10(padj)"] = -np.log10(df["padj"].replace(0, np.nan))
    if max_log2fc is not None:
        df["log2FoldChange"] = df["log2FoldChange"].clip(-max_log2fc, max_log2fc)
    df["regulation"] = _regulation(df, padj_threshold, log2fc_threshold)

    fig = px.scatter(
        df.rename_axis("gene").reset_index(),
        x="log2FoldChange",
        y="-log10(padj)",
        color="regulation",
        hover_name="gene",
        hover_data={"padj": True, "log2FoldChange": True},
        color_discrete_map={"up": color_up, "down": color_down, "ns": color_ns},
    )
    fig.add_vline(x=log2fc_threshold, line_dash="dash", line_color="black")
    fig.add_vline(x=-log2fc_threshold, line_dash="dash", line_color="black")
    fig.add_hline(y=-np.log10(padj_threshold), line_dash="dash", line_color="black")
    fig.update_layout(xaxis_title="log2 Fold Change", yaxis_title="-log10 adjusted p-value")
    return fig


def generate_ma_plot(
    deseq_results: pd.DataFrame,
    padj_threshold: float = 0.05,
    color_significant: str = "#d73027",
    color_ns: str = "#808080",
) -> Figure:
    df = deseq_results.loc[deseq_results["baseMean"] > 0].copy()
    df["log10(baseMean)"] = np.log10(df["baseMean"])
    df["significant"] = np.where(df["padj"] < padj_threshold, "padj < %g" % padj_threshold, "ns")

    fig = px.scatter(
        df.rename_axis("gene").reset_index(),
        x="log10(baseMean)",
        y="log2FoldChange",
        color="significant",
        hover_name="gene",
        color_discrete_map={"padj < %g" % padj_threshold: color_significant, "ns": color_ns},
    )
    fig.add_hline(y=0, line_color="black")
    fig.update_layout(xaxis_title="log10 mean of normalized counts", yaxis_title="log2 Fold Change")
    return fig


def venn_diagram(
    comparison: DesignComparison,
    color_first: str = "#1b9e77",
    color_second: str = "#7570b3",
) -> Figure:
    """Two-set Venn diagram of the genes found significant under two designs."""

    fig = go.Figure()
    circles = [(0.0, color_first), (1.2, color_second)]
    for x0, color in circles:
        fig.add_shape(
            type="circle",
            x0=x0,
            y0=0,
            x1=x0 + 2,
            y1=2,
            line_color=color,
            fillcolor=color,
            opacity=0.35,
        )

    fig.add_trace(
        go.Scatter(
            x=[0.6, 1.6, 2.6, 1.0, 2.2],
            y=[1.0, 1.0, 1.0, 2.2, 2.2],
            text=[
                str(len(comparison.only_first)),
                str(len(comparison.shared)),
                str(len(comparison.only_second)),
                comparison.first_name,
                comparison.second_name,
            ],
            mode="text",
            textfont=dict(size=[20, 20, 20, 14, 14]),
            hoverinfo="skip",
            showlegend=False,
        )
    )
    fig.update_xaxes(visible=False, range=[-0.2, 3.4])
    fig.update_yaxes(visible=False, range=[-0.2, 2.5], scaleanchor="x", scaleratio=1)
    fig.update_layout(plot_bgcolor="white", margin=dict(l=20, r=20, t=20, b=20))
    return fig


__all__ = [
    "PlottingError",
    "perform_pca",
    "sample_distance_heatmap",
    "tpm_scatterplot",
    "generate_heatmap",
    "generate_volcano_plot",
    "generate_ma_plot",
    "venn_diagram",
]
