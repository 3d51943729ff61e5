# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import abutils
from abutils import Sequence

from ..core.config import AnnotationConfig, resolve_config
from ..reference.catalog import Catalog, GeneSegment
from .matcher import Candidate

__all__ = ["SegmentCall", "call", "call_d_by_alignment"]


@dataclass(frozen=True)
class SegmentCall:
    """
    The winning ``Candidate`` for a single segment type.

    ``ambiguous`` is ``True`` when one or more other segments tied the winning
    score and reference coverage exactly. The ids of those segments are in
    ``alternates``. The winner itself is always the first candidate in the
    matcher's deterministic ordering.

    """

    candidate: Candidate
    segment: GeneSegment
    ambiguous: bool = False
    alternates: Tuple[str, ...] = ()

    @property
    def segment_type(self) -> str:
        return self.segment.segment_type

    @property
    def segment_id(self) -> str:
        return self.segment.id

    @property
    def score(self) -> int:
        return self.candidate.score

    @property
    def identity(self) -> float:
        return self.candidate.identity

    @property
    def offset(self) -> int:
        return self.candidate.offset

    @property
    def query_start(self) -> int:
        return self.candidate.query_start

    @property
    def query_end(self) -> int:
        return self.candidate.query_end


def call(
    candidates: Iterable[Candidate],
    segment_type: str,
    catalog: Catalog,
    config: Optional[AnnotationConfig] = None,
) -> Optional[SegmentCall]:
    """
    Calls a single segment from an ordered stream of candidates.

    Parameters
    ----------
    candidates : Iterable[Candidate]
        Candidates, ordered by descending score (as produced by ``find_candidates()``).
        Only as many candidates as are needed to resolve ties are consumed.

    segment_type : str
        Segment type to call. Candidates of other types are ignored.

    catalog : Catalog
        Germline catalog the candidates were found in.

    config : AnnotationConfig, optional
        Provides the minimum score for `segment_type`.

    Returns
    -------
    SegmentCall or None
        ``None`` if there are no candidates or the best score is below the
        minimum score for `segment_type`.

    """
    config = resolve_config(config)
    segment_type = segment_type.upper()
    best = None
    alternates = []
    for candidate in candidates:
        if candidate.segment_type != segment_type:
            continue
        if best is None:
            if candidate.score < config.min_score(segment_type):
                return None
            best = candidate
            continue
        if (
            candidate.score < best.score
            or candidate.ref_coverage < best.ref_coverage
        ):
            break
        if (
            candidate.segment_id != best.segment_id
            and candidate.segment_id not in alternates
        ):
            alternates.append(candidate.segment_id)
    if best is None:
        return None
    return SegmentCall(
        candidate=best,
        segment=catalog[best.segment_id],
        ambiguous=len(alternates) > 0,
        alternates=tuple(alternates),
    )


def call_d_by_alignment(
    sequence: str,
    catalog: Catalog,
    offset: int = 0,
    config: Optional[AnnotationConfig] = None,
) -> Optional[SegmentCall]:
    """
    Calls a D segment by local alignment of a (short) junction region against
    every D segment in the catalog. Used when the region is too short, or too
    divergent, to be seeded by the k-mer index.

    Parameters
    ----------
    sequence : str
        The region of the query between the V and J calls.

    catalog : Catalog
        Germline catalog.

    offset : int, default=0
        Position of `sequence` in the full query. Query coordinates of the returned
        call are relative to the full query.

    config : AnnotationConfig, optional
        Provides the alignment scoring parameters and the minimum D score.

    Returns
    -------
    SegmentCall or None
        The highest scoring alignment, with ties broken by reference coverage and
        then by lower segment id. ``None`` if the catalog has no D segments or no
        alignment reaches the minimum score.

    """
    config = resolve_config(config)
    d_segments = catalog.of_type("D")
    if not d_segments or not sequence:
        return None
    targets = [Sequence(s.sequence, id=s.id) for s in d_segments]
    alns = abutils.tl.local_alignment(
        sequence, targets=targets, **config.alignment_params
    )
    # a single target returns a single alignment
    if not isinstance(alns, (list, tuple)):
        alns = [alns]
    alns = [a for a in alns if a is not None and a.score > 0]
    if not alns:
        return None
    # same tie-breaking as the k-mer matcher
    lengths = {s.id: len(s) for s in d_segments}
    alns = sorted(
        alns,
        key=lambda a: (-a.score, -_coverage(a, lengths), a.target.id),
    )
    best = alns[0]
    if best.score < config.min_score("D"):
        return None
    best_coverage = _coverage(best, lengths)
    alternates = []
    for aln in alns[1:]:
        if aln.score < best.score or _coverage(aln, lengths) < best_coverage:
            break
        if aln.target.id != best.target.id and aln.target.id not in alternates:
            alternates.append(aln.target.id)
    candidate = Candidate(
        segment_id=best.target.id,
        segment_type="D",
        score=int(best.score),
        query_start=offset + best.query_begin,
        query_end=offset + best.query_end + 1,
        ref_start=best.target_begin,
        ref_end=best.target_end + 1,
        mismatches=tuple(_alignment_mismatches(best, offset + best.query_begin)),
        ref_length=lengths[best.target.id],
    )
    return SegmentCall(
        candidate=candidate,
        segment=catalog[best.target.id],
        ambiguous=len(alternates) > 0,
        alternates=tuple(alternates),
    )


def _coverage(aln, lengths: dict) -> float:
    return (aln.target_end + 1 - aln.target_begin) / lengths[aln.target.id]


def _alignment_mismatches(aln, query_start: int) -> List[int]:
    """
    Query positions of mismatches (and insertions) in a pairwise alignment.
    """
    mismatches = []
    pos = query_start
    for q, t in zip(aln.aligned_query, aln.aligned_target):
        if q == "-":
            continue
        if t == "-" or q != t:
            mismatches.append(pos)
        pos += 1
    return mismatches
