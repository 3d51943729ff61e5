# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


import polars as pl

__all__ = ["OUTPUT_SCHEMA"]


def _segment_schema(prefix: str) -> dict:
    return {
        f"{prefix}_call": pl.Utf8,
        f"{prefix}_score": pl.Int64,
        f"{prefix}_identity": pl.Float64,
        f"{prefix}_ambiguous": pl.Boolean,
        f"{prefix}_alternates": pl.Utf8,
        f"{prefix}_cigar": pl.Utf8,
        f"{prefix}_sequence_start": pl.Int64,
        f"{prefix}_sequence_end": pl.Int64,
        f"{prefix}_germline_start": pl.Int64,
        f"{prefix}_germline_end": pl.Int64,
    }


# column order matches Annotation.to_dict()
OUTPUT_SCHEMA = {
    "sequence_id": pl.Utf8,
    "locus": pl.Utf8,
    "v_gene": pl.Utf8,
    "d_gene": pl.Utf8,
    "j_gene": pl.Utf8,
    "c_gene": pl.Utf8,
    "cdr3_length": pl.Int64,
    "junction_aa": pl.Utf8,
    "productive": pl.Boolean,
    "productivity_issues": pl.Utf8,
    "sequence_input": pl.Utf8,
    "sequence_oriented": pl.Utf8,
    "quality": pl.Utf8,
    "rev_comp": pl.Boolean,
    "germline_database": pl.Utf8,
    "frame": pl.Int64,
    "in_frame": pl.Boolean,
    "stop_codon": pl.Boolean,
    **_segment_schema("v"),
    **_segment_schema("d"),
    **_segment_schema("j"),
    **_segment_schema("c"),
    "c_frame_consistent": pl.Boolean,
    "np1": pl.Utf8,
    "np1_length": pl.Int64,
    "np2": pl.Utf8,
    "np2_length": pl.Int64,
    "junction": pl.Utf8,
    "junction_start": pl.Int64,
    "junction_end": pl.Int64,
    "cdr3": pl.Utf8,
    "cdr3_aa": pl.Utf8,
}
