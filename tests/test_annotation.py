import pytest

from rnaseq_de.annotation import AnnotationError, gene_lengths_from_gtf, parse_gtf_attributes

GTF_TEXT = "\n".join(
    [
        "#!genome-build BDGP6",
        'chr2L\tFlyBase\tgene\t100\t900\t.\t+\t.\tgene_id "FBgn01";',
        'chr2L\tFlyBase\texon\t100\t199\t.\t+\t.\tgene_id "FBgn01"; transcript_id "FBtr01";',
        'chr2L\tFlyBase\texon\t150\t249\t.\t+\t.\tgene_id "FBgn01"; transcript_id "FBtr02";',
        'chr2L\tFlyBase\texon\t500\t599\t.\t+\t.\tgene_id "FBgn01"; transcript_id "FBtr02";',
        'chr3R\tFlyBase\texon\t1\t2000\t.\t-\t.\tgene_id "FBgn02"; transcript_id "FBtr03";',
        'chr3R\tFlyBase\texon\t2001\t2500\t.\t-\t.\tgene_id "FBgn02"; transcript_id "FBtr03";',
    ]
)


def test_parse_gtf_attributes():
    parsed = parse_gtf_attributes('gene_id "FBgn01"; transcript_id "FBtr01"; gene_name "pasha";')
    assert parsed == {"gene_id": "FBgn01", "transcript_id": "FBtr01", "gene_name": "pasha"}


def test_gene_lengths_count_overlapping_exons_once(tmp_path):
    gtf = tmp_path / "annotation.gtf"
    gtf.write_text(GTF_TEXT + "\n")
    lengths = gene_lengths_from_gtf(gtf)
    # FBgn01: 100-249 (150 bp) + 500-599 (100 bp); FBgn02: 1-2500
    assert lengths["FBgn01"] == pytest.approx(0.25)
    assert lengths["FBgn02"] == pytest.approx(2.5)
    assert lengths.index.name == "gene"


def test_gene_lengths_require_matching_features(tmp_path):
    gtf = tmp_path / "annotation.gtf"
    gtf.write_text(GTF_TEXT + "\n")
    with pytest.raises(AnnotationError):
        gene_lengths_from_gtf(gtf, feature="CDS")


def test_missing_annotation_file(tmp_path):
    with pytest.raises(AnnotationError, match="was not found"):
        gene_lengths_from_gtf(tmp_path / "missing.gtf")
