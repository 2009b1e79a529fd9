"""Gene length estimation from a GTF genome annotation."""
from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd

from .logging_utils import get_logger

logger = get_logger(__name__)


class AnnotationError(RuntimeError):
    """Raised when an annotation file cannot be used to derive gene lengths."""


def parse_gtf_attributes(attributes: str) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    for item in attributes.split(";"):
        item = item.strip()
        if not item:
            continue
        if " " not in item:
            continue
        key, value = item.split(" ", 1)
        parsed[key] = value.replace('"', "").strip()
    return parsed


def _merged_width(intervals: List[Tuple[int, int]]) -> int:
    # GTF intervals are 1-based and inclusive
    total = 0
    current_start, current_end = None, None
    for start, end in sorted(intervals):
        if current_end is None or start > current_end + 1:
            if current_end is not None:
                total += current_end - current_start + 1
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    if current_end is not None:
        total += current_end - current_start + 1
    return total


def gene_lengths_from_gtf(gtf_file: Path, feature: str = "exon") -> pd.Series:
    """Return gene lengths in kilobases from the union of each gene's exons.

    Overlapping exons from different transcripts of the same gene are counted
    once, so the length is the number of genomic bases covered by the gene's
    exonic sequence.
    """

    gtf_file = Path(gtf_file)
    if not gtf_file.exists():
        raise AnnotationError(f"Annotation file '{gtf_file}' was not found.")

    intervals: Dict[str, List[Tuple[int, int]]] = defaultdict(list)
    with gtf_file.open() as handle:
        for line in handle:
            if line.startswith("#"):
                continue
            parts = line.strip().split("\t")
            if len(parts) < 9 or parts[2] != feature:
                continue
            gene_id = parse_gtf_attributes(parts[8]).get("gene_id")
            if not gene_id:
                continue
            try:
                start, end = int(parts[3]), int(parts[4])
            except ValueError as exc:
                raise AnnotationError(
                    f"Invalid coordinates in '{gtf_file}': {parts[3]}-{parts[4]}"
                ) from exc
            intervals[gene_id].append((start, end))

    if not intervals:
        raise AnnotationError(f"No '{feature}' records with a gene_id were found in '{gtf_file}'.")

    lengths = pd.Series(
        {gene: _merged_width(gene_intervals) / 1_000 for gene, gene_intervals in intervals.items()},
        name="length_kb",
        dtype=float,
    )
    lengths.index.name = "gene"
    logger.info("Derived exonic lengths for %d genes from %s", len(lengths), gtf_file.name)
    return lengths


__all__ = [
    "AnnotationError",
    "parse_gtf_attributes",
    "gene_lengths_from_gtf",
]
