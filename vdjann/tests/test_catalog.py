# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

import os

import pytest
from abutils import Sequence

from ..core.errors import CatalogError
from ..reference.catalog import (
    Catalog,
    GeneSegment,
    find_j_anchor,
    find_v_anchor,
    infer_frame,
    load,
    load_fasta,
)
from .conftest import J_ANCHOR, V_ANCHOR

# =============================================
#              FRAMES AND ANCHORS
# =============================================


def test_infer_frame_prefers_frame_without_stops():
    # frame 0 has a stop codon, frames 1 and 2 don't
    assert infer_frame("TAGCCCGGG") == 1


def test_infer_frame_ties_go_to_lowest_frame():
    assert infer_frame("CCCCCCCCC") == 0


def test_find_v_anchor(v_sequence):
    assert find_v_anchor(v_sequence, 0) == V_ANCHOR
    assert v_sequence[V_ANCHOR : V_ANCHOR + 3] in ["TGT", "TGC"]


def test_find_v_anchor_ignores_out_of_frame_cysteine(v_sequence):
    assert find_v_anchor(v_sequence, 1) != V_ANCHOR


def test_find_v_anchor_ignores_5_prime_cysteine():
    # the only in-frame cysteine is more than 60 bases from the 3' end
    sequence = "TGT" + "GCC" * 30
    assert find_v_anchor(sequence, 0) is None


def test_find_j_anchor(j_sequence):
    anchor, frame = find_j_anchor(j_sequence)
    assert anchor == J_ANCHOR
    assert frame == 2
    assert j_sequence[anchor : anchor + 3] == "TGG"


def test_find_j_anchor_requires_both_glycines():
    # W-G-X-A instead of W-G-X-G
    assert find_j_anchor("TTTGACTACTGGGGCCAGGCAACC") == (None, None)


# =============================================
#                   LOADING
# =============================================


def test_load_simple_headers(catalog, v_sequence, j_sequence):
    assert len(catalog) == 4
    v = catalog["IGHV3-23*01"]
    assert v.segment_type == "V"
    assert v.frame == 0
    assert v.anchor == V_ANCHOR
    assert v.locus == "IGH"
    assert v.gene == "IGHV3-23"
    j = catalog["IGHJ4*02"]
    assert j.segment_type == "J"
    assert j.frame == 2
    assert j.anchor == J_ANCHOR
    d = catalog["IGHD3-22*01"]
    assert d.segment_type == "D"
    assert d.anchor is None
    c = catalog["IGHG1*01"]
    assert c.segment_type == "C"
    assert c.frame == 2


def test_load_types_and_loci(catalog):
    assert [s.id for s in catalog.of_type("V")] == ["IGHV3-23*01"]
    assert [s.id for s in catalog.of_type("d")] == ["IGHD3-22*01"]
    assert catalog.loci == ["IGH"]
    assert "IGHJ4*02" in catalog
    assert "IGHJ6*01" not in catalog
    assert catalog.get("IGHJ6*01") is None


def test_load_sequence_objects(v_sequence, j_sequence):
    catalog = load(
        [Sequence(v_sequence, id="IGHV3-23*01"), Sequence(j_sequence, id="IGHJ4*02")]
    )
    assert len(catalog) == 2
    assert catalog["IGHV3-23*01"].sequence == v_sequence


def test_load_gene_segments(v_sequence, j_sequence):
    segments = [
        GeneSegment("V1", "V", v_sequence, frame=0, anchor=V_ANCHOR),
        GeneSegment("J1", "J", j_sequence, frame=2, anchor=J_ANCHOR),
    ]
    catalog = load(segments)
    assert catalog["V1"] is segments[0]


def test_load_10x_headers(v_sequence, j_sequence):
    records = [
        ("1|IGHV3-23 ENST00000390606|IGHV3-23|5'UTR|IG|IGH|None|00", "ACGTACGT"),
        ("2|IGHV3-23 ENST00000390606|IGHV3-23|L-REGION+V-REGION|IG|IGH|None|00", v_sequence),
        ("3|IGHJ4 ENST00000390565|IGHJ4|J-REGION|IG|IGH|None|00", j_sequence),
    ]
    catalog = load(records)
    assert len(catalog) == 2
    v = catalog["IGHV3-23"]
    assert v.segment_type == "V"
    assert v.feature_id == 2
    assert catalog["IGHJ4"].feature_id == 3


def test_load_frame_from_header(v_sequence, j_sequence):
    catalog = load([("IGHV3-23*01|V|1", v_sequence), ("IGHJ4*02|J", j_sequence)])
    assert catalog["IGHV3-23*01"].frame == 1


def test_load_uppercases_sequences(v_sequence, j_sequence):
    catalog = load([("IGHV3-23*01", v_sequence.lower()), ("IGHJ4*02", j_sequence)])
    assert catalog["IGHV3-23*01"].sequence == v_sequence


def test_segments_are_naturally_sorted(j_sequence):
    catalog = load(
        [
            ("IGHV1-18*01", "ATG" * 10),
            ("IGHV1-2*02", "ATG" * 10),
            ("IGHV1-3*01", "ATG" * 10),
            ("IGHJ4*02", j_sequence),
        ]
    )
    assert [s.id for s in catalog.of_type("V")] == [
        "IGHV1-2*02",
        "IGHV1-3*01",
        "IGHV1-18*01",
    ]


def test_catalog_is_read_only(catalog):
    assert isinstance(catalog.segments, tuple)
    with pytest.raises(Exception):
        catalog["IGHV3-23*01"].sequence = "ACGT"


# =============================================
#                   ERRORS
# =============================================


def test_empty_catalog_raises():
    with pytest.raises(CatalogError):
        load([])


def test_non_nucleotide_characters_raise(j_sequence):
    with pytest.raises(CatalogError):
        load([("IGHV3-23*01", "ACGTXACGT"), ("IGHJ4*02", j_sequence)])


def test_uracil_is_not_accepted(j_sequence):
    with pytest.raises(CatalogError):
        load([("IGHV3-23*01", "ACGUACGU"), ("IGHJ4*02", j_sequence)])


def test_empty_sequence_raises(j_sequence):
    with pytest.raises(CatalogError):
        load([("IGHV3-23*01", ""), ("IGHJ4*02", j_sequence)])


def test_duplicate_ids_raise(v_sequence, j_sequence):
    with pytest.raises(CatalogError):
        load(
            [
                ("IGHV3-23*01", v_sequence),
                ("IGHV3-23*01", v_sequence),
                ("IGHJ4*02", j_sequence),
            ]
        )


def test_missing_j_segments_raise(v_sequence):
    with pytest.raises(CatalogError):
        load([("IGHV3-23*01", v_sequence)])


def test_missing_v_segments_raise(j_sequence):
    with pytest.raises(CatalogError):
        load([("IGHJ4*02", j_sequence)])


def test_invalid_frame_raises(v_sequence, j_sequence):
    with pytest.raises(CatalogError):
        load([("IGHV3-23*01|V|5", v_sequence), ("IGHJ4*02", j_sequence)])


def test_invalid_segment_type_raises(v_sequence, j_sequence):
    with pytest.raises(CatalogError):
        load([("IGHV3-23*01|X", v_sequence), ("IGHJ4*02", j_sequence)])


# =============================================
#                  FASTA I/O
# =============================================


def test_load_fasta(tmp_path, germline_records):
    fasta = tmp_path / "human.fasta"
    fasta.write_text("".join(f">{h}\n{s}\n" for h, s in germline_records))
    catalog = load_fasta(str(fasta))
    assert isinstance(catalog, Catalog)
    assert catalog.name == "human"
    assert len(catalog) == 4
    assert catalog["IGHG1*01"].frame == 2


def test_load_fasta_missing_file_raises(tmp_path):
    with pytest.raises(CatalogError):
        load_fasta(os.path.join(str(tmp_path), "missing.fasta"))
