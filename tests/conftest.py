"""
Pytest configuration and shared fixtures.

Provides small hand-checked count matrices for the normalization tests and a
simulated two-condition experiment for the workflow and DESeq2 tests.
"""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def small_counts() -> pd.DataFrame:
    """Two genes x two samples with known TPM values."""
    counts = pd.DataFrame(
        {"s1": [10, 0], "s2": [20, 5]},
        index=pd.Index(["g1", "g2"], name="gene"),
    )
    return counts


@pytest.fixture
def small_lengths() -> pd.Series:
    return pd.Series([1.0, 2.0], index=pd.Index(["g1", "g2"], name="gene"), name="length_kb")


@pytest.fixture
def random_counts() -> pd.DataFrame:
    rng = np.random.default_rng(0)
    values = rng.integers(0, 500, size=(40, 4))
    values[:, 0] += 1
    return pd.DataFrame(
        values,
        index=[f"gene{i}" for i in range(40)],
        columns=["a1", "a2", "b1", "b2"],
    )


@pytest.fixture
def random_lengths(random_counts) -> pd.Series:
    rng = np.random.default_rng(1)
    return pd.Series(rng.uniform(0.2, 10.0, size=len(random_counts)), index=random_counts.index)


@pytest.fixture
def simulated_experiment():
    """Six samples, two conditions and two library types, 200 genes.

    The first 20 genes are four-fold up in the treated samples.
    """
    rng = np.random.default_rng(42)
    n_genes = 200
    samples = ["untr1", "untr2", "untr3", "trt1", "trt2", "trt3"]
    metadata = pd.DataFrame(
        {
            "condition": ["untreated"] * 3 + ["treated"] * 3,
            "type": ["single", "paired", "paired", "single", "paired", "paired"],
        },
        index=pd.Index(samples, name="sample"),
    )

    base_mean = rng.uniform(50, 1000, size=n_genes)
    fold_change = np.ones(n_genes)
    fold_change[:20] = 4.0
    dispersion = 0.05
    counts = np.empty((n_genes, len(samples)), dtype=int)
    for j, condition in enumerate(metadata["condition"]):
        mu = base_mean * (fold_change if condition == "treated" else 1.0)
        n = 1.0 / dispersion
        p = n / (n + mu)
        counts[:, j] = rng.negative_binomial(n, p)

    genes = [f"FBgn{i:07d}" for i in range(n_genes)]
    counts_df = pd.DataFrame(counts, index=pd.Index(genes, name="gene"), columns=samples)
    lengths_kb = pd.Series(rng.uniform(0.5, 5.0, size=n_genes), index=counts_df.index, name="length_kb")
    return counts_df, lengths_kb, metadata


@pytest.fixture
def dataset_dir(tmp_path, simulated_experiment) -> Path:
    """A dataset directory with counts.csv, gene_lengths.csv and metadata.csv."""
    counts, lengths_kb, metadata = simulated_experiment
    directory = tmp_path / "pasilla_like"
    directory.mkdir()
    counts.to_csv(directory / "counts.csv")
    (lengths_kb * 1_000).rename("length").to_csv(directory / "gene_lengths.csv")
    metadata.to_csv(directory / "metadata.csv")
    return directory
