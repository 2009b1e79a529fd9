"""TPM normalization and per-condition averaging of count matrices."""
from __future__ import annotations

from itertools import zip_longest
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from . import config
from .logging_utils import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

def _preview(items: Sequence, limit: int = 5) -> str:
    shown = ", ".join(str(item) for item in list(items)[:limit])
    if len(items) > limit:
        shown += f", ... ({len(items) - limit} more)"
    return shown


class NormalizationError(ValueError):
    """Base class for data-quality problems detected during normalization."""


class AlignmentError(NormalizationError):
    """Raised when count matrix genes and gene length genes do not line up."""

    def __init__(self, message: str, genes: Iterable = ()):
        super().__init__(message)
        self.genes = list(genes)


class InvalidLengthError(NormalizationError):
    """Raised when a gene length is missing, zero or negative."""

    def __init__(self, genes: Iterable):
        self.genes = list(genes)
        super().__init__(
            f"Gene length must be a positive number for {len(self.genes)} gene(s): "
            f"{_preview(self.genes)}"
        )


class InvalidCountError(NormalizationError):
    """Raised when the count matrix holds negative or non-finite values."""

    def __init__(self, genes: Iterable):
        self.genes = list(genes)
        super().__init__(
            f"Counts must be finite and non-negative; offending gene(s): {_preview(self.genes)}"
        )


class EmptyLibraryError(NormalizationError):
    """Raised when a sample has no reads left to scale by."""

    def __init__(self, samples: Iterable):
        self.samples = list(samples)
        super().__init__(
            f"Sample(s) with an empty library cannot be TPM normalized: {_preview(self.samples)}"
        )


class EmptyGroupError(NormalizationError):
    """Raised when a requested condition matches no sample."""

    def __init__(self, conditions: Iterable):
        self.conditions = list(conditions)
        super().__init__(
            f"No samples matched condition(s): {_preview(self.conditions)}"
        )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _check_gene_alignment(counts: pd.DataFrame, lengths_kb: pd.Series) -> None:
    if counts.index.has_duplicates:
        duplicated = counts.index[counts.index.duplicated()].unique().tolist()
        raise AlignmentError(
            f"Count matrix contains duplicated gene identifiers: {_preview(duplicated)}",
            genes=duplicated,
        )
    if counts.index.equals(lengths_kb.index):
        return

    if len(counts.index) != len(lengths_kb.index):
        message = (
            f"Count matrix has {len(counts.index)} genes but the gene length table has "
            f"{len(lengths_kb.index)}."
        )
        mismatched = list(counts.index.difference(lengths_kb.index, sort=False)) + list(
            lengths_kb.index.difference(counts.index, sort=False)
        )
    else:
        message = "Gene order of the count matrix and the gene length table differs."
        mismatched = []
    if not mismatched:
        mismatched = [
            gene if gene is not None else other
            for gene, other in zip_longest(counts.index, lengths_kb.index)
            if gene != other
        ]
    raise AlignmentError(
        f"{message} First mismatched gene(s): {_preview(mismatched)}. "
        "Use align_gene_lengths() to join the tables by gene identifier.",
        genes=mismatched,
    )


def _check_counts(counts: pd.DataFrame) -> None:
    try:
        values = counts.to_numpy(dtype=float)
    except (TypeError, ValueError) as exc:
        raise NormalizationError("Count matrix must contain only numeric values.") from exc
    bad_rows = (~np.isfinite(values) | (values < 0)).any(axis=1)
    if bad_rows.any():
        raise InvalidCountError(counts.index[bad_rows])


def invalid_lengths(lengths_kb: pd.Series) -> pd.Index:
    """Return the genes whose length is missing, non-finite, zero or negative."""

    values = pd.to_numeric(lengths_kb, errors="coerce").astype(float)
    mask = ~np.isfinite(values.to_numpy()) | (values.to_numpy() <= 0)
    return lengths_kb.index[mask]


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def align_gene_lengths(
    counts: pd.DataFrame,
    lengths_kb: pd.Series,
    allow_missing: bool = False,
) -> pd.Series:
    """Join gene lengths onto the genes of ``counts`` by identifier.

    Genes of the count matrix absent from ``lengths_kb`` raise
    :class:`InvalidLengthError` unless ``allow_missing`` is set, in which case
    their length is left as NaN for :func:`compute_tpm` to reject or drop.
    """

    if lengths_kb.index.has_duplicates:
        duplicated = lengths_kb.index[lengths_kb.index.duplicated()].unique().tolist()
        raise AlignmentError(
            f"Gene length table contains duplicated gene identifiers: {_preview(duplicated)}",
            genes=duplicated,
        )
    missing = counts.index[~counts.index.isin(lengths_kb.index)]
    if len(missing) and not allow_missing:
        raise InvalidLengthError(missing)
    return lengths_kb.reindex(counts.index)


def compute_rpk(counts: pd.DataFrame, lengths_kb: pd.Series) -> pd.DataFrame:
    """Reads per kilobase: each row of ``counts`` divided by its gene length."""

    return counts.astype(float).div(lengths_kb.astype(float), axis=0)


def compute_scaling_factors(rpk: pd.DataFrame) -> pd.Series:
    """Per-sample scaling factor, the summed RPK of a sample divided by one million."""

    totals = rpk.sum(axis=0)
    empty = totals.index[~(totals > 0)]
    if len(empty):
        raise EmptyLibraryError(empty)
    return totals / config.TPM_SCALE


def compute_tpm(
    counts: pd.DataFrame,
    lengths_kb: pd.Series,
    drop_invalid_lengths: bool = False,
) -> pd.DataFrame:
    """
    Compute transcripts per million.

    Parameters
    ----------
    counts : genes x samples DataFrame of raw read counts
    lengths_kb : effective gene length in kilobases, indexed by the same genes
        in the same order as ``counts``
    drop_invalid_lengths : exclude genes with a missing or non-positive length
        (they are logged) instead of raising :class:`InvalidLengthError`.
        Exclusion happens before scaling, so every column still sums to one
        million.

    Returns
    -------
    genes x samples DataFrame of TPM values

    Raises
    ------
    AlignmentError, InvalidLengthError, InvalidCountError, EmptyLibraryError
    """

    _check_gene_alignment(counts, lengths_kb)
    _check_counts(counts)

    invalid = invalid_lengths(lengths_kb)
    if len(invalid):
        if not drop_invalid_lengths:
            raise InvalidLengthError(invalid)
        logger.warning(
            "Excluding %d gene(s) without a usable length from TPM: %s",
            len(invalid),
            _preview(invalid),
        )
        keep = ~counts.index.isin(invalid)
        counts = counts.loc[keep]
        lengths_kb = lengths_kb.loc[keep]

    rpk = compute_rpk(counts, lengths_kb)
    scale = compute_scaling_factors(rpk)
    tpm = rpk.div(scale, axis=1)
    logger.debug("Computed TPM for %d genes x %d samples", *tpm.shape)
    return tpm


# ---------------------------------------------------------------------------
# Derived tables
# ---------------------------------------------------------------------------

def average_by_condition(
    tpm: pd.DataFrame,
    metadata: pd.DataFrame,
    condition_column: str = config.DEFAULT_CONDITION_COLUMN,
    conditions: Optional[Sequence] = None,
) -> pd.DataFrame:
    """Mean TPM per gene for every condition label in ``metadata[condition_column]``.

    Samples are grouped through the metadata table, not through their names.
    A requested condition that matches none of the columns of ``tpm`` raises
    :class:`EmptyGroupError`.
    """

    if condition_column not in metadata.columns:
        raise NormalizationError(f"Metadata has no column '{condition_column}'.")
    if metadata.index.has_duplicates:
        duplicated = metadata.index[metadata.index.duplicated()].unique().tolist()
        raise NormalizationError(
            f"Metadata lists the same sample more than once: {_preview(duplicated)}"
        )

    labels = metadata[condition_column].astype(object).reindex(tpm.columns)
    if conditions is None:
        conditions = list(pd.unique(metadata[condition_column].dropna().astype(object)))

    averages = {}
    unmatched: List = []
    for condition in conditions:
        samples = labels.index[labels == condition]
        if len(samples) == 0:
            unmatched.append(condition)
            continue
        averages[condition] = tpm[samples].mean(axis=1)
    if unmatched:
        raise EmptyGroupError(unmatched)

    result = pd.DataFrame(averages, index=tpm.index)
    result.columns.name = condition_column
    return result


def filter_expressed(
    tpm: pd.DataFrame,
    min_tpm: float = config.DEFAULT_MIN_TPM,
    min_samples: int = 2,
) -> pd.Series:
    """Boolean mask of genes with TPM >= ``min_tpm`` in at least ``min_samples`` samples."""

    return (tpm >= min_tpm).sum(axis=1) >= min_samples


__all__ = [
    "NormalizationError",
    "AlignmentError",
    "InvalidLengthError",
    "InvalidCountError",
    "EmptyLibraryError",
    "EmptyGroupError",
    "invalid_lengths",
    "align_gene_lengths",
    "compute_rpk",
    "compute_scaling_factors",
    "compute_tpm",
    "average_by_condition",
    "filter_expressed",
]
