"""Bulk RNA-seq differential-expression walkthrough: TPM, DESeq2 and plots."""
