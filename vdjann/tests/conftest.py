# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for vdjann tests.
"""

import pytest
from abutils import Sequence

from ..reference.catalog import load
from ..reference.index import build

# IGHV3-23*01, in frame 0 and ending with the conserved cysteine codon (TGT)
# followed by "GCGAAAGA"
V_SEQUENCE = "".join(
    """
    GAG GTG CAG CTG TTG GAG TCT GGG GGA GGC TTG GTA CAG CCT GGG GGG TCC CTG AGA CTC
    TCC TGT GCA GCC TCT GGA TTC ACC TTT AGC AGC TAT GCC ATG AGC TGG GTC CGC CAG GCT
    CCA GGG AAG GGG CTG GAG TGG GTC TCA GCT ATT AGT GGT AGT GGT GGT AGC ACA TAC TAC
    GCA GAC TCC GTG AAG GGC CGG TTC ACC ATC TCC AGA GAC AAT TCC AAG AAC ACG CTG TAT
    CTG CAA ATG AAC AGC CTG AGA GCC GAG GAC ACG GCC GTA TAT TAC TGT GCG AAA GA
    """.split()
)
V_ANCHOR = len(V_SEQUENCE) - 11

# IGHD3-22*01
D_SEQUENCE = "GTATTACTATGATAGTAGTGGTTATTACTAC"

# IGHJ4*02, with the conserved W-G-Q-G motif (TGG GGC CAG GGA) in frame 2
J_SEQUENCE = "ACTACTTTGACTACTGGGGCCAGGGAACCCTGGTCACCGTCTCCTCAG"
J_ANCHOR = 14

# start of IGHG1 CH1, beginning at the 2nd base of the first codon (frame 2)
C_SEQUENCE = "".join(
    """
    CC TCC ACC AAG GGC CCA TCG GTC TTC CCC CTG GCA CCC TCC TCC AAG AGC ACC TCT GGG
    GGC ACA GCG GCC CTG GGC TGC CTG GTC AAG GAC TAC TTC CCC GAA CCG GTG ACG GTG TCG
    """.split()
)

# 30-base non-templated insert (10 codons, no stops)
INSERT = "CGCGGTTATAGCAGCAGCTCCCCCTACGAC"
INSERT_AA = "RGYSSSSPYD"

# V (through the conserved cysteine) + insert + J (from the conserved tryptophan) + C
PRODUCTIVE_SEQUENCE = V_SEQUENCE[: V_ANCHOR + 3] + INSERT + J_SEQUENCE[J_ANCHOR:] + C_SEQUENCE


def _substitute(sequence: str, position: int) -> str:
    base = "A" if sequence[position] != "A" else "C"
    return sequence[:position] + base + sequence[position + 1 :]


@pytest.fixture
def v_sequence():
    return V_SEQUENCE


@pytest.fixture
def d_sequence():
    return D_SEQUENCE


@pytest.fixture
def j_sequence():
    return J_SEQUENCE


@pytest.fixture
def c_sequence():
    return C_SEQUENCE


@pytest.fixture
def germline_records():
    """Simple-header germline records: one each of V, D, J and C."""
    return [
        ("IGHV3-23*01", V_SEQUENCE),
        ("IGHD3-22*01", D_SEQUENCE),
        ("IGHJ4*02", J_SEQUENCE),
        ("IGHG1*01|C|2", C_SEQUENCE),
    ]


@pytest.fixture
def catalog(germline_records):
    return load(germline_records, name="test")


@pytest.fixture
def index(catalog):
    return build(catalog)


@pytest.fixture
def ambiguous_catalog():
    """Two V alleles that differ at a single position near the 5' end."""
    return load(
        [
            ("IGHV3-23*01", V_SEQUENCE),
            ("IGHV3-23*04", _substitute(V_SEQUENCE, 10)),
            ("IGHJ4*02", J_SEQUENCE),
        ],
        name="ambiguous",
    )


@pytest.fixture
def ambiguous_index(ambiguous_catalog):
    return build(ambiguous_catalog)


@pytest.fixture
def productive_query():
    """V + 30-base insert + J + C, in frame and without stop codons."""
    return Sequence(PRODUCTIVE_SEQUENCE, id="productive")


@pytest.fixture
def out_of_frame_query():
    """Same as ``productive_query``, with a single extra base in the insert."""
    sequence = V_SEQUENCE[: V_ANCHOR + 3] + INSERT + "T" + J_SEQUENCE[J_ANCHOR:]
    return Sequence(sequence, id="out_of_frame")


@pytest.fixture
def stop_codon_query():
    """Same as ``productive_query``, with an in-frame TAG in the insert."""
    insert = INSERT[:6] + "TAG" + INSERT[9:]
    sequence = V_SEQUENCE[: V_ANCHOR + 3] + insert + J_SEQUENCE[J_ANCHOR:]
    return Sequence(sequence, id="stop_codon")


@pytest.fixture
def c_frame_mismatch_query():
    """J and C separated by a single base, which shifts the C reading frame."""
    sequence = (
        V_SEQUENCE[: V_ANCHOR + 3]
        + INSERT
        + J_SEQUENCE[J_ANCHOR:]
        + "A"
        + C_SEQUENCE
    )
    return Sequence(sequence, id="c_frame_mismatch")


@pytest.fixture
def substituted_v_query():
    """Full-length V with a single substitution in the middle."""
    return Sequence(_substitute(V_SEQUENCE, 150), id="substituted_v")


@pytest.fixture
def short_query():
    return Sequence("ACGTACGTAC", id="short")
