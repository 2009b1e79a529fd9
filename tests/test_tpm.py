import numpy as np
import pandas as pd
import pytest

from rnaseq_de.tpm import (
    AlignmentError,
    EmptyGroupError,
    EmptyLibraryError,
    InvalidCountError,
    InvalidLengthError,
    NormalizationError,
    align_gene_lengths,
    average_by_condition,
    compute_rpk,
    compute_scaling_factors,
    compute_tpm,
    filter_expressed,
)


def test_tpm_matches_hand_computed_values(small_counts, small_lengths):
    rpk = compute_rpk(small_counts, small_lengths)
    assert rpk.loc["g1"].tolist() == [10.0, 20.0]
    assert rpk.loc["g2"].tolist() == [0.0, 2.5]

    scale = compute_scaling_factors(rpk)
    assert scale["s1"] == pytest.approx(1e-5)
    assert scale["s2"] == pytest.approx(2.25e-5)

    tpm = compute_tpm(small_counts, small_lengths)
    assert tpm.loc["g1", "s1"] == pytest.approx(1_000_000)
    assert tpm.loc["g1", "s2"] == pytest.approx(888_888.888, rel=1e-6)
    assert tpm.loc["g2", "s1"] == 0
    assert tpm.loc["g2", "s2"] == pytest.approx(111_111.111, rel=1e-6)


def test_columns_sum_to_one_million(random_counts, random_lengths):
    tpm = compute_tpm(random_counts, random_lengths)
    assert tpm.shape == random_counts.shape
    for total in tpm.sum(axis=0):
        assert total == pytest.approx(1_000_000, rel=1e-6)


def test_zero_exactly_where_count_is_zero(random_counts, random_lengths):
    counts = random_counts.copy()
    counts.iloc[3, 1] = 0
    counts.iloc[7, 2] = 0
    tpm = compute_tpm(counts, random_lengths)
    assert (tpm >= 0).all().all()
    assert ((tpm == 0) == (counts == 0)).all().all()


def test_tpm_is_invariant_to_sequencing_depth(random_counts, random_lengths):
    deeper = random_counts.copy()
    deeper["a2"] = deeper["a2"] * 7
    original = compute_tpm(random_counts, random_lengths)
    scaled = compute_tpm(deeper, random_lengths)
    np.testing.assert_allclose(scaled["a2"], original["a2"], rtol=1e-12)


def test_doubling_a_length_halves_its_rpk_and_shifts_the_column(random_counts, random_lengths):
    longer = random_lengths.copy()
    longer.iloc[0] *= 2
    rpk = compute_rpk(random_counts, random_lengths)
    rpk_longer = compute_rpk(random_counts, longer)
    np.testing.assert_allclose(rpk_longer.iloc[0], rpk.iloc[0] / 2)

    tpm = compute_tpm(random_counts, random_lengths)
    tpm_longer = compute_tpm(random_counts, longer)
    nonzero = random_counts["a1"] > 0
    assert (tpm_longer.loc[nonzero, "a1"] != tpm.loc[nonzero, "a1"]).all()


def test_output_is_deterministic(random_counts, random_lengths):
    first = compute_tpm(random_counts, random_lengths)
    second = compute_tpm(random_counts, random_lengths)
    pd.testing.assert_frame_equal(first, second, check_exact=True)


def test_reordered_length_table_raises_alignment_error():
    counts = pd.DataFrame({"s1": [1, 2, 3]}, index=["A", "B", "C"])
    lengths = pd.Series([1.0, 3.0, 2.0], index=["A", "C", "B"])
    with pytest.raises(AlignmentError) as excinfo:
        compute_tpm(counts, lengths)
    assert excinfo.value.genes == ["B", "C"]


def test_length_table_of_different_size_raises_alignment_error(small_counts):
    lengths = pd.Series([1.0], index=["g1"])
    with pytest.raises(AlignmentError) as excinfo:
        compute_tpm(small_counts, lengths)
    assert excinfo.value.genes == ["g2"]


def test_extra_trailing_length_is_reported(small_counts, small_lengths):
    lengths = pd.concat([small_lengths, pd.Series([3.0], index=["g3"])])
    with pytest.raises(AlignmentError) as excinfo:
        compute_tpm(small_counts, lengths)
    assert excinfo.value.genes == ["g3"]
    assert "g3" in str(excinfo.value)


def test_duplicated_genes_raise_alignment_error():
    counts = pd.DataFrame({"s1": [1, 2]}, index=["A", "A"])
    lengths = pd.Series([1.0, 1.0], index=["A", "A"])
    with pytest.raises(AlignmentError):
        compute_tpm(counts, lengths)


@pytest.mark.parametrize("bad_length", [0.0, -1.0, np.nan, np.inf])
def test_invalid_length_is_rejected(small_counts, bad_length):
    lengths = pd.Series([1.0, bad_length], index=["g1", "g2"])
    with pytest.raises(InvalidLengthError) as excinfo:
        compute_tpm(small_counts, lengths)
    assert excinfo.value.genes == ["g2"]


def test_invalid_length_can_be_dropped_before_scaling(random_counts, random_lengths):
    lengths = random_lengths.copy()
    lengths.iloc[5] = 0
    tpm = compute_tpm(random_counts, lengths, drop_invalid_lengths=True)
    assert "gene5" not in tpm.index
    assert len(tpm) == len(random_counts) - 1
    for total in tpm.sum(axis=0):
        assert total == pytest.approx(1_000_000, rel=1e-6)


def test_dropping_the_only_expressed_gene_empties_the_library():
    counts = pd.DataFrame({"s1": [4, 0], "s2": [2, 6]}, index=["g1", "g2"])
    lengths = pd.Series([0.0, 1.0], index=["g1", "g2"])
    with pytest.raises(EmptyLibraryError) as excinfo:
        compute_tpm(counts, lengths, drop_invalid_lengths=True)
    assert excinfo.value.samples == ["s1"]


def test_empty_library_names_the_sample(small_lengths):
    counts = pd.DataFrame({"s1": [3, 4], "empty": [0, 0]}, index=["g1", "g2"])
    with pytest.raises(EmptyLibraryError) as excinfo:
        compute_tpm(counts, small_lengths)
    assert excinfo.value.samples == ["empty"]


@pytest.mark.parametrize("bad_count", [-1, np.nan, np.inf])
def test_negative_or_non_finite_counts_are_rejected(small_lengths, bad_count):
    counts = pd.DataFrame({"s1": [3.0, bad_count]}, index=["g1", "g2"])
    with pytest.raises(InvalidCountError) as excinfo:
        compute_tpm(counts, small_lengths)
    assert excinfo.value.genes == ["g2"]


def test_errors_share_a_common_base():
    for error in (AlignmentError("x"), InvalidLengthError(["g"]), EmptyLibraryError(["s"]), EmptyGroupError(["c"])):
        assert isinstance(error, NormalizationError)
        assert isinstance(error, ValueError)


def test_align_gene_lengths_joins_by_identifier():
    counts = pd.DataFrame({"s1": [1, 2, 3]}, index=["A", "B", "C"])
    lengths = pd.Series([1.0, 3.0, 2.0, 9.0], index=["A", "C", "B", "unused"])
    aligned = align_gene_lengths(counts, lengths)
    assert aligned.index.tolist() == ["A", "B", "C"]
    assert aligned.tolist() == [1.0, 2.0, 3.0]
    compute_tpm(counts, aligned)


def test_align_gene_lengths_reports_missing_genes():
    counts = pd.DataFrame({"s1": [1, 2]}, index=["A", "B"])
    lengths = pd.Series([1.0], index=["A"])
    with pytest.raises(InvalidLengthError) as excinfo:
        align_gene_lengths(counts, lengths)
    assert excinfo.value.genes == ["B"]

    aligned = align_gene_lengths(counts, lengths, allow_missing=True)
    assert np.isnan(aligned["B"])


def test_average_by_condition_uses_metadata_labels():
    tpm = pd.DataFrame(
        {"x1": [10.0, 0.0], "x2": [20.0, 2.0], "y1": [5.0, 5.0]},
        index=["g1", "g2"],
    )
    metadata = pd.DataFrame({"condition": ["ctrl", "ctrl", "treated"]}, index=["x1", "x2", "y1"])
    averages = average_by_condition(tpm, metadata)
    assert averages.columns.tolist() == ["ctrl", "treated"]
    assert averages.loc["g1", "ctrl"] == 15.0
    assert averages.loc["g2", "ctrl"] == 1.0
    assert averages.loc["g1", "treated"] == 5.0


def test_average_by_condition_reports_unmatched_conditions():
    tpm = pd.DataFrame({"x1": [1.0]}, index=["g1"])
    metadata = pd.DataFrame({"condition": ["ctrl"]}, index=["x1"])
    with pytest.raises(EmptyGroupError) as excinfo:
        average_by_condition(tpm, metadata, conditions=["ctrl", "knockdown"])
    assert excinfo.value.conditions == ["knockdown"]


def test_average_by_condition_ignores_samples_missing_from_tpm():
    tpm = pd.DataFrame({"x1": [1.0]}, index=["g1"])
    metadata = pd.DataFrame({"condition": ["ctrl", "treated"]}, index=["x1", "gone"])
    with pytest.raises(EmptyGroupError):
        average_by_condition(tpm, metadata)


def test_average_by_condition_rejects_duplicate_samples():
    tpm = pd.DataFrame({"x1": [1.0], "x2": [2.0]}, index=["g1"])
    metadata = pd.DataFrame({"condition": ["ctrl", "ctrl"]}, index=["x1", "x1"])
    with pytest.raises(NormalizationError, match="x1"):
        average_by_condition(tpm, metadata)


def test_filter_expressed():
    tpm = pd.DataFrame({"a": [0.5, 2.0, 3.0], "b": [0.1, 0.5, 4.0]}, index=["low", "one", "both"])
    mask = filter_expressed(tpm, min_tpm=1.0, min_samples=2)
    assert mask.tolist() == [False, False, True]
