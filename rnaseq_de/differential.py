"""Differential expression with pydeseq2 and comparison of model designs."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

import numpy as np
import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.ds import DeseqStats

from . import config
from .logging_utils import get_logger

logger = get_logger(__name__)


class DifferentialExpressionError(RuntimeError):
    """Raised when the differential expression step fails."""


@dataclass
class DesignSpec:
    """A named model design together with the contrast to test."""

    name: str
    formula: str = config.DEFAULT_DESIGN_FORMULA
    contrast: Tuple[str, str, str] = (
        config.DEFAULT_CONDITION_COLUMN,
        "treated",
        config.DEFAULT_REFERENCE_LEVEL,
    )

    @property
    def factors(self) -> List[str]:
        terms = re.split(r"[+*:]", self.formula.strip().lstrip("~"))
        factors: List[str] = []
        for term in terms:
            term = term.strip()
            if term and term not in {"0", "1"} and term not in factors:
                factors.append(term)
        return factors


@dataclass
class DeseqResult:
    design: DesignSpec
    results: pd.DataFrame
    normalized_counts: pd.DataFrame
    vst_counts: Optional[pd.DataFrame] = None


@dataclass
class DesignComparison:
    """Significant genes of two designs, split into the three Venn regions."""

    first_name: str
    second_name: str
    only_first: Set[str] = field(default_factory=set)
    only_second: Set[str] = field(default_factory=set)
    shared: Set[str] = field(default_factory=set)

    def as_frame(self) -> pd.DataFrame:
        rows = (
            [(gene, self.first_name) for gene in sorted(self.only_first)]
            + [(gene, self.second_name) for gene in sorted(self.only_second)]
            + [(gene, "both") for gene in sorted(self.shared)]
        )
        return pd.DataFrame(rows, columns=["gene", "significant_in"])


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def filter_low_counts(
    counts: pd.DataFrame,
    min_total: int = config.DEFAULT_MIN_TOTAL_COUNT,
) -> pd.DataFrame:
    keep = counts.sum(axis=1) >= min_total
    logger.info(
        "Keeping %d of %d genes with at least %d reads in total",
        int(keep.sum()),
        len(keep),
        min_total,
    )
    return counts.loc[keep]


# ---------------------------------------------------------------------------
# Model fit
# ---------------------------------------------------------------------------

def _validate_design(metadata: pd.DataFrame, design: DesignSpec) -> None:
    missing = [factor for factor in design.factors if factor not in metadata.columns]
    if missing:
        raise DifferentialExpressionError(
            f"Design '{design.name}' uses factor(s) missing from the metadata: {', '.join(missing)}"
        )
    factor, tested, reference = design.contrast
    if factor not in design.factors:
        raise DifferentialExpressionError(
            f"Contrast factor '{factor}' is not part of the design formula '{design.formula}'."
        )
    levels = set(metadata[factor].astype(str))
    for level in (tested, reference):
        if level not in levels:
            raise DifferentialExpressionError(
                f"Level '{level}' of '{factor}' does not occur in the metadata."
            )


def run_deseq2(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    design: DesignSpec,
    alpha: float = config.DEFAULT_PADJ_THRESHOLD,
    shrink_lfc: bool = False,
    vst: bool = True,
    n_cpus: int = config.DEFAULT_THREADS,
) -> DeseqResult:
    """Fit the negative binomial GLM of ``design`` and test its contrast.

    ``counts`` is genes x samples; every sample must have a metadata row.
    Normalized counts (and, with ``vst``, variance stabilized counts) are
    returned genes x samples as well.
    """

    _validate_design(metadata, design)
    missing = [sample for sample in counts.columns if sample not in metadata.index]
    if missing:
        raise DifferentialExpressionError(
            f"Samples without metadata cannot be modelled: {', '.join(map(str, missing))}"
        )
    sample_metadata = metadata.loc[list(counts.columns), design.factors]
    sample_counts = counts.round().astype(int).T

    factor, tested, reference = design.contrast
    logger.info("Running DESeq2 for design '%s' (%s): %s vs %s", design.name, design.formula, tested, reference)

    inference = DefaultInference(n_cpus=n_cpus)
    try:
        dds = DeseqDataSet(
            counts=sample_counts,
            metadata=sample_metadata,
            design=design.formula,
            refit_cooks=True,
            inference=inference,
            quiet=True,
        )
        dds.deseq2()

        stats = DeseqStats(
            dds,
            contrast=[factor, tested, reference],
            alpha=alpha,
            inference=inference,
            quiet=True,
        )
        stats.summary()
        if shrink_lfc:
            stats.lfc_shrink(coeff=f"{factor}[T.{tested}]")

        normalized = pd.DataFrame(
            np.asarray(dds.layers["normed_counts"]),
            index=dds.obs_names,
            columns=dds.var_names,
        ).T
        vst_counts = None
        if vst:
            dds.vst(use_design=False)
            vst_counts = pd.DataFrame(
                np.asarray(dds.layers["vst_counts"]),
                index=dds.obs_names,
                columns=dds.var_names,
            ).T
    except (ValueError, KeyError, RuntimeError, np.linalg.LinAlgError) as exc:
        raise DifferentialExpressionError(f"DESeq2 failed for design '{design.name}': {exc}") from exc

    results = stats.results_df.copy()
    results.index.name = "gene"
    normalized.index.name = "gene"
    if vst_counts is not None:
        vst_counts.index.name = "gene"

    logger.info(
        "Design '%s': %d genes tested, %d with padj < %s",
        design.name,
        len(results),
        int((results["padj"] < alpha).sum()),
        alpha,
    )
    return DeseqResult(design=design, results=results, normalized_counts=normalized, vst_counts=vst_counts)


# ---------------------------------------------------------------------------
# Result summaries
# ---------------------------------------------------------------------------

def significant_genes(
    results: pd.DataFrame,
    padj_threshold: float = config.DEFAULT_PADJ_THRESHOLD,
    log2fc_threshold: float = 0.0,
) -> pd.Index:
    padj = results["padj"]
    mask = padj.notna() & (padj < padj_threshold) & (results["log2FoldChange"].abs() >= log2fc_threshold)
    return results.index[mask]


def compare_designs(
    first: DeseqResult,
    second: DeseqResult,
    padj_threshold: float = config.DEFAULT_PADJ_THRESHOLD,
    log2fc_threshold: float = 0.0,
) -> DesignComparison:
    first_genes = set(significant_genes(first.results, padj_threshold, log2fc_threshold))
    second_genes = set(significant_genes(second.results, padj_threshold, log2fc_threshold))
    return DesignComparison(
        first_name=first.design.name,
        second_name=second.design.name,
        only_first=first_genes - second_genes,
        only_second=second_genes - first_genes,
        shared=first_genes & second_genes,
    )


__all__ = [
    "DifferentialExpressionError",
    "DesignSpec",
    "DeseqResult",
    "DesignComparison",
    "filter_low_counts",
    "run_deseq2",
    "significant_genes",
    "compare_designs",
]
