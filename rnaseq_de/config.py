"""Configuration for the RNA-seq differential-expression walkthrough."""
from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

DATA_DIR = BASE_DIR / "data"
RESULTS_DIR = BASE_DIR / "results"

# Expected file names inside data/<dataset>/
COUNTS_FILE = "counts.csv"
FEATURECOUNTS_FILE = "featurecounts.txt"
METADATA_FILE = "metadata.csv"
GENE_LENGTHS_FILE = "gene_lengths.csv"
GTF_FILE = "annotation.gtf"

# Defaults used by the workflow and the web interface
DEFAULT_DESIGN_FORMULA = "~ condition"
DEFAULT_CONDITION_COLUMN = "condition"
DEFAULT_REFERENCE_LEVEL = "untreated"
DEFAULT_MIN_TOTAL_COUNT = 10
DEFAULT_PADJ_THRESHOLD = 0.05
DEFAULT_LOG2FC_THRESHOLD = 1.0
DEFAULT_MIN_TPM = 1.0
DEFAULT_THREADS = 1

TPM_SCALE = 1_000_000

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


__all__ = [
    "BASE_DIR",
    "DATA_DIR",
    "RESULTS_DIR",
    "COUNTS_FILE",
    "FEATURECOUNTS_FILE",
    "METADATA_FILE",
    "GENE_LENGTHS_FILE",
    "GTF_FILE",
    "DEFAULT_DESIGN_FORMULA",
    "DEFAULT_CONDITION_COLUMN",
    "DEFAULT_REFERENCE_LEVEL",
    "DEFAULT_MIN_TOTAL_COUNT",
    "DEFAULT_PADJ_THRESHOLD",
    "DEFAULT_LOG2FC_THRESHOLD",
    "DEFAULT_MIN_TPM",
    "DEFAULT_THREADS",
    "TPM_SCALE",
    "LOG_LEVEL",
]
