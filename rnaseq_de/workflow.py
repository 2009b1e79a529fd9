"""End-to-end differential-expression workflow for a single dataset."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from . import config
from .annotation import gene_lengths_from_gtf
from .differential import (
    DeseqResult,
    DesignComparison,
    DesignSpec,
    compare_designs,
    filter_low_counts,
    run_deseq2,
    significant_genes,
)
from .loading import (
    align_samples,
    load_counts,
    load_featurecounts,
    load_gene_lengths,
    load_metadata,
    relevel,
)
from .logging_utils import get_logger
from .tpm import align_gene_lengths, average_by_condition, compute_tpm

logger = get_logger(__name__)


def _default_designs() -> List[DesignSpec]:
    return [DesignSpec(name="condition")]


@dataclass
class WorkflowConfig:
    """Parameters of one run of the workflow."""

    dataset: str
    designs: List[DesignSpec] = field(default_factory=_default_designs)
    condition_column: str = config.DEFAULT_CONDITION_COLUMN
    reference_level: str = config.DEFAULT_REFERENCE_LEVEL
    min_total_count: int = config.DEFAULT_MIN_TOTAL_COUNT
    padj_threshold: float = config.DEFAULT_PADJ_THRESHOLD
    log2fc_threshold: float = config.DEFAULT_LOG2FC_THRESHOLD
    drop_invalid_lengths: bool = False
    vst: bool = True
    n_cpus: int = config.DEFAULT_THREADS
    data_dir: Optional[Path] = None
    output_dir: Optional[Path] = None


@dataclass
class WorkflowResult:
    counts: pd.DataFrame
    metadata: pd.DataFrame
    tpm: pd.DataFrame
    averages: pd.DataFrame
    deseq_results: Dict[str, DeseqResult]
    comparison: Optional[DesignComparison] = None


class WorkflowError(RuntimeError):
    """Raised when the inputs of a dataset are incomplete."""


class RNASeqWorkflow:
    """Workflow going from a count matrix to TPM tables and DESeq2 results."""

    def __init__(self, params: WorkflowConfig):
        self.params = params
        self.dataset_dir = Path(params.data_dir) if params.data_dir else config.DATA_DIR / params.dataset
        self.output_dir = Path(params.output_dir) if params.output_dir else config.RESULTS_DIR / params.dataset
        self.counts_file = self.dataset_dir / config.COUNTS_FILE
        self.featurecounts_file = self.dataset_dir / config.FEATURECOUNTS_FILE
        self.metadata_file = self.dataset_dir / config.METADATA_FILE
        self.lengths_file = self.dataset_dir / config.GENE_LENGTHS_FILE
        self.gtf_file = self.dataset_dir / config.GTF_FILE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> WorkflowResult:
        self._validate_inputs()
        counts, lengths_kb = self._load_counts()
        metadata = load_metadata(self.metadata_file)
        counts, metadata = align_samples(counts, metadata)
        metadata = relevel(metadata, self.params.condition_column, self.params.reference_level)

        filtered = filter_low_counts(counts, self.params.min_total_count)
        lengths_kb = align_gene_lengths(filtered, lengths_kb, allow_missing=self.params.drop_invalid_lengths)
        tpm = compute_tpm(filtered, lengths_kb, drop_invalid_lengths=self.params.drop_invalid_lengths)
        averages = average_by_condition(tpm, metadata, self.params.condition_column)

        deseq_results: Dict[str, DeseqResult] = {}
        for design in self.params.designs:
            deseq_results[design.name] = run_deseq2(
                filtered,
                metadata,
                design,
                alpha=self.params.padj_threshold,
                vst=self.params.vst,
                n_cpus=self.params.n_cpus,
            )

        comparison = None
        if len(deseq_results) >= 2:
            first, second = list(deseq_results.values())[:2]
            comparison = compare_designs(
                first,
                second,
                padj_threshold=self.params.padj_threshold,
                log2fc_threshold=self.params.log2fc_threshold,
            )

        result = WorkflowResult(
            counts=filtered,
            metadata=metadata,
            tpm=tpm,
            averages=averages,
            deseq_results=deseq_results,
            comparison=comparison,
        )
        self._write_outputs(result)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _validate_inputs(self) -> None:
        if not self.dataset_dir.exists():
            raise WorkflowError(f"Dataset directory '{self.dataset_dir}' was not found.")
        if not self.metadata_file.exists():
            raise WorkflowError(
                f"Each dataset must contain a '{config.METADATA_FILE}' file describing the samples."
            )
        if not (self.featurecounts_file.exists() or self.counts_file.exists()):
            raise WorkflowError(
                f"Dataset '{self.params.dataset}' needs either '{config.FEATURECOUNTS_FILE}' "
                f"or '{config.COUNTS_FILE}'."
            )
        if not self.params.designs:
            raise WorkflowError("At least one model design is required.")

    def _load_counts(self) -> Tuple[pd.DataFrame, pd.Series]:
        if self.featurecounts_file.exists():
            return load_featurecounts(self.featurecounts_file)

        counts = load_counts(self.counts_file)
        if self.lengths_file.exists():
            lengths_kb = load_gene_lengths(self.lengths_file)
        elif self.gtf_file.exists():
            lengths_kb = gene_lengths_from_gtf(self.gtf_file)
        else:
            raise WorkflowError(
                f"No gene lengths available: provide '{config.GENE_LENGTHS_FILE}' or "
                f"'{config.GTF_FILE}' next to '{config.COUNTS_FILE}'."
            )
        return counts, lengths_kb

    def _write_outputs(self, result: WorkflowResult) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        result.tpm.to_csv(self.output_dir / "tpm.csv")
        result.averages.to_csv(self.output_dir / "average_tpm.csv")

        summary: Dict[str, object] = {
            "dataset": self.params.dataset,
            "genes_tested": int(result.counts.shape[0]),
            "samples": list(map(str, result.counts.columns)),
            "designs": {},
        }
        for name, deseq_result in result.deseq_results.items():
            deseq_result.results.to_csv(self.output_dir / f"deseq2_{name}.csv")
            deseq_result.normalized_counts.to_csv(self.output_dir / f"normalized_counts_{name}.csv")
            significant = significant_genes(
                deseq_result.results,
                padj_threshold=self.params.padj_threshold,
                log2fc_threshold=self.params.log2fc_threshold,
            )
            summary["designs"][name] = {
                "formula": deseq_result.design.formula,
                "contrast": list(deseq_result.design.contrast),
                "significant_genes": int(len(significant)),
            }
        if result.comparison is not None:
            result.comparison.as_frame().to_csv(self.output_dir / "design_comparison.csv", index=False)

        log_path = self.output_dir / "run_log.json"
        if log_path.exists():
            data = json.loads(log_path.read_text())
            data.append(summary)
        else:
            data = [summary]
        log_path.write_text(json.dumps(data, indent=2))
        logger.info("Wrote results for dataset '%s' to %s", self.params.dataset, self.output_dir)


def list_available_datasets() -> List[str]:
    """Return the datasets available under the data directory."""

    return sorted([p.name for p in config.DATA_DIR.glob("*") if (p / config.METADATA_FILE).exists()])


__all__ = [
    "WorkflowConfig",
    "WorkflowResult",
    "WorkflowError",
    "RNASeqWorkflow",
    "list_available_datasets",
]
