# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


from dataclasses import dataclass
from typing import Optional, Union

import abutils
from abutils import Sequence

from ..reference.catalog import STOP_CODONS
from .caller import SegmentCall

__all__ = ["JunctionRegion", "locate", "has_stop_codon"]


@dataclass(frozen=True)
class JunctionRegion:
    """
    The junction of a V(D)J rearrangement, from the first base of the conserved V
    cysteine codon to the last base of the conserved J tryptophan/phenylalanine codon.

    .. note::
        ``start`` and ``end`` are 0-indexed positions in the oriented query and ``end``
        is exclusive, so ``sequence[start : end]`` is the junction. ``frame`` is the
        0-based reading frame of the query, as defined by the V segment.

    """

    start: int
    end: int
    frame: int
    in_frame: bool
    stop_codon: bool
    junction: str
    junction_aa: str
    cdr3: str
    cdr3_aa: str

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def cdr3_length(self) -> int:
        return len(self.cdr3_aa)


def has_stop_codon(sequence: str) -> bool:
    """
    ``True`` if any complete codon of `sequence`, read from the first base, is a
    stop codon.
    """
    for i in range(0, len(sequence) - 2, 3):
        if sequence[i : i + 3] in STOP_CODONS:
            return True
    return False


def locate(
    query: Union[str, Sequence],
    v_call: Optional[SegmentCall],
    j_call: Optional[SegmentCall],
) -> Optional[JunctionRegion]:
    """
    Locates the junction using the conserved V and J anchors, mapped onto the query
    through the alignment offsets of the V and J calls.

    Parameters
    ----------
    query : str or Sequence
        The oriented query sequence.

    v_call : SegmentCall
        V segment call.

    j_call : SegmentCall
        J segment call.

    Returns
    -------
    JunctionRegion or None
        ``None`` if either call is missing, either segment has no anchor, either
        anchor codon falls outside the aligned portion of its segment, or the J anchor
        is not downstream of the V anchor.

    """
    if v_call is None or j_call is None:
        return None
    sequence = str(query.sequence) if isinstance(query, Sequence) else str(query)
    sequence = sequence.upper()

    v_anchor = _map_anchor(v_call)
    j_anchor = _map_anchor(j_call)
    if v_anchor is None or j_anchor is None:
        return None
    start = v_anchor
    end = j_anchor + 3
    if j_anchor < start + 3 or start < 0 or end > len(sequence):
        return None

    frame = (v_call.segment.frame - v_call.offset) % 3
    junction = sequence[start:end]
    junction_aa = abutils.tl.translate(junction)
    return JunctionRegion(
        start=start,
        end=end,
        frame=frame,
        in_frame=(end - start) % 3 == 0,
        stop_codon=has_stop_codon(junction),
        junction=junction,
        junction_aa=junction_aa,
        cdr3=junction[3:-3],
        cdr3_aa=junction_aa[1:-1],
    )


def _map_anchor(segment_call: SegmentCall) -> Optional[int]:
    """
    Query position of the first base of a segment's anchor codon, or ``None`` if the
    codon isn't entirely within the aligned portion of the segment.
    """
    anchor = segment_call.segment.anchor
    if anchor is None:
        return None
    candidate = segment_call.candidate
    if anchor < candidate.ref_start or anchor + 3 > candidate.ref_end:
        return None
    return candidate.to_query(anchor)
