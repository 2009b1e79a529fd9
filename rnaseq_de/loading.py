"""Loading helpers for count matrices, gene lengths and sample metadata."""
from __future__ import annotations

from pathlib import Path
from typing import Tuple

import pandas as pd

from .logging_utils import get_logger

logger = get_logger(__name__)

FEATURECOUNTS_ANNOTATION_COLUMNS = ["Chr", "Start", "End", "Strand", "Length"]
_BAM_SUFFIXES = (".bam", ".sortedByCoord.out", ".Aligned", ".sorted")


class LoadingError(RuntimeError):
    """Raised when an input table is missing or malformed."""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _separator(path: Path) -> str:
    suffixes = [s.lower() for s in path.suffixes if s.lower() not in {".gz", ".bz2", ".zip"}]
    if suffixes and suffixes[-1] in {".tsv", ".txt", ".tab"}:
        return "\t"
    return ","


def _read_table(path: Path, **kwargs) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise LoadingError(f"File '{path}' was not found.")
    try:
        table = pd.read_csv(path, sep=kwargs.pop("sep", _separator(path)), index_col=0, **kwargs)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise LoadingError(f"Could not parse '{path}': {exc}") from exc
    if table.empty:
        raise LoadingError(f"File '{path}' does not contain any rows.")
    table.index = table.index.astype(str)
    return table


def _ensure_numeric(table: pd.DataFrame, path: Path) -> pd.DataFrame:
    numeric = table.apply(pd.to_numeric, errors="coerce")
    bad_columns = numeric.columns[numeric.isna().any()]
    if len(bad_columns):
        raise LoadingError(
            f"Count table '{path}' contains non-numeric or missing values in column(s): "
            f"{', '.join(map(str, bad_columns))}"
        )
    return numeric


def _sample_name(column: str) -> str:
    name = Path(str(column)).name
    stripped = True
    while stripped:
        stripped = False
        for suffix in _BAM_SUFFIXES:
            if name.endswith(suffix) and len(name) > len(suffix):
                name = name[: -len(suffix)]
                stripped = True
    return name


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_counts(path: Path) -> pd.DataFrame:
    """Read a genes x samples count matrix whose first column holds gene identifiers."""

    path = Path(path)
    counts = _ensure_numeric(_read_table(path), path)
    counts.index.name = "gene"
    logger.info("Loaded counts for %d genes x %d samples from %s", *counts.shape, path.name)
    return counts


def load_featurecounts(path: Path) -> Tuple[pd.DataFrame, pd.Series]:
    """Read a featureCounts table and return ``(counts, lengths_kb)``."""

    path = Path(path)
    table = _read_table(path, sep="\t", comment="#")
    missing = [col for col in FEATURECOUNTS_ANNOTATION_COLUMNS if col not in table.columns]
    if missing:
        raise LoadingError(
            f"'{path}' does not look like featureCounts output; missing column(s): {', '.join(missing)}"
        )

    lengths_kb = pd.to_numeric(table["Length"], errors="coerce") / 1_000
    lengths_kb.name = "length_kb"
    lengths_kb.index.name = "gene"

    counts = table.drop(columns=FEATURECOUNTS_ANNOTATION_COLUMNS)
    counts.columns = [_sample_name(col) for col in counts.columns]
    if pd.Index(counts.columns).has_duplicates:
        raise LoadingError(f"Sample names derived from '{path}' are not unique: {list(counts.columns)}")
    counts = _ensure_numeric(counts, path)
    counts.index.name = "gene"
    logger.info("Loaded featureCounts table with %d genes x %d samples", *counts.shape)
    return counts, lengths_kb


def load_metadata(path: Path) -> pd.DataFrame:
    metadata = _read_table(Path(path))
    if metadata.index.has_duplicates:
        raise LoadingError(f"Metadata '{path}' lists the same sample more than once.")
    metadata.index.name = "sample"
    return metadata


def load_gene_lengths(path: Path, unit: str = "bp") -> pd.Series:
    """Read a gene length table and return lengths in kilobases."""

    path = Path(path)
    table = _read_table(path)
    if "length" in table.columns:
        lengths = table["length"]
    elif len(table.columns) == 1:
        lengths = table.iloc[:, 0]
    else:
        raise LoadingError(f"Gene length table '{path}' must have a 'length' column.")

    lengths = pd.to_numeric(lengths, errors="coerce")
    if unit == "bp":
        lengths = lengths / 1_000
    elif unit != "kb":
        raise LoadingError(f"Unsupported length unit '{unit}'. Use 'bp' or 'kb'.")
    lengths.name = "length_kb"
    lengths.index.name = "gene"
    return lengths


def align_samples(counts: pd.DataFrame, metadata: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Reorder count columns to follow the metadata sample order."""

    missing = [sample for sample in metadata.index if sample not in counts.columns]
    if missing:
        raise LoadingError(
            f"Samples listed in the metadata are missing from the count matrix: {', '.join(missing)}"
        )
    extra = [sample for sample in counts.columns if sample not in metadata.index]
    if extra:
        logger.warning("Ignoring %d sample(s) without metadata: %s", len(extra), ", ".join(extra))
    return counts.loc[:, list(metadata.index)], metadata.copy()


def relevel(metadata: pd.DataFrame, column: str, reference: str) -> pd.DataFrame:
    """Return a copy of ``metadata`` where ``reference`` is the first level of ``column``."""

    if column not in metadata.columns:
        raise LoadingError(f"Metadata has no column '{column}'.")
    values = metadata[column].astype(str)
    levels = list(pd.unique(values))
    if reference not in levels:
        raise LoadingError(
            f"Reference level '{reference}' not found in column '{column}' (levels: {', '.join(levels)})."
        )
    levels.remove(reference)
    releveled = metadata.copy()
    releveled[column] = pd.Categorical(values, categories=[reference] + levels)
    return releveled


__all__ = [
    "FEATURECOUNTS_ANNOTATION_COLUMNS",
    "LoadingError",
    "load_counts",
    "load_featurecounts",
    "load_metadata",
    "load_gene_lengths",
    "align_samples",
    "relevel",
]
