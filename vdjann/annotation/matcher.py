# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


import heapq
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import abutils
from abutils import Sequence

from ..core.config import AnnotationConfig, resolve_config
from ..reference.index import KmerIndex, iter_kmers

__all__ = ["Candidate", "find_candidates", "orient_query"]


@dataclass(frozen=True)
class Candidate:
    """
    A gap-free alignment of a query sequence to a single germline segment.

    .. note::
        all start/end positions are 0-indexed and end positions are exclusive,
        so ``sequence[query_start : query_end]`` is the aligned query region.

    """

    segment_id: str
    segment_type: str
    score: int
    query_start: int
    query_end: int
    ref_start: int
    ref_end: int
    mismatches: Tuple[int, ...] = ()
    seed_hits: int = 0
    ref_length: int = 0

    @property
    def offset(self) -> int:
        """
        Alignment diagonal: ``reference position - query position``.
        """
        return self.ref_start - self.query_start

    @property
    def length(self) -> int:
        return self.query_end - self.query_start

    @property
    def identity(self) -> float:
        if self.length == 0:
            return 0.0
        return 1 - len(self.mismatches) / self.length

    @property
    def ref_coverage(self) -> float:
        """
        Fraction of the reference segment covered by the alignment.
        """
        if self.ref_length == 0:
            return 0.0
        return (self.ref_end - self.ref_start) / self.ref_length

    def to_query(self, ref_position: int) -> int:
        """
        Maps a reference position onto the query through the alignment offset.
        """
        return ref_position - self.offset

    def cigar(self, query_length: int) -> str:
        """
        CIGAR string for the alignment, with soft clipping at either end.
        Mismatches are not distinguished from matches.
        """
        cigar = ""
        if self.query_start > 0:
            cigar += f"{self.query_start}S"
        cigar += f"{self.length}M"
        if query_length > self.query_end:
            cigar += f"{query_length - self.query_end}S"
        return cigar


def _sort_key(candidate: Candidate) -> tuple:
    return (
        -candidate.score,
        -candidate.ref_coverage,
        candidate.segment_id,
        candidate.query_start,
        candidate.ref_start,
        candidate.query_end,
    )


def find_candidates(
    query: Union[str, Sequence],
    index: KmerIndex,
    segment_type: Optional[str] = None,
    window: Optional[Tuple[int, int]] = None,
    config: Optional[AnnotationConfig] = None,
) -> Iterator[Candidate]:
    """
    Finds candidate germline segments for a query using k-mer seeds that are chained
    along alignment diagonals and then extended without gaps.

    Parameters
    ----------
    query : str or Sequence
        Query sequence, in the orientation to be annotated.

    index : KmerIndex
        k-mer index of the germline catalog.

    segment_type : str, optional
        Only return candidates of this segment type (``"V"``, ``"D"``, ``"J"`` or ``"C"``).

    window : Tuple[int, int], optional
        Restrict seeding to k-mers entirely within ``query[window[0] : window[1]]``.
        Extension is not restricted.

    config : AnnotationConfig, optional
        Defaults to the config the index was built with.

    Returns
    -------
    Iterator[Candidate]
        Candidates ordered by descending score, then descending reference coverage,
        then lower segment id, then leftmost query start. The ordering is
        deterministic. The iterator is lazy, finite and can only be consumed once.
        Queries shorter than ``index.k`` yield nothing.

    """
    config = resolve_config(config) if config is not None else index.config
    sequence = _as_string(query)
    if len(sequence) < index.k:
        return iter(())
    candidates = _collect_candidates(sequence, index, segment_type, window, config)
    return _ordered(candidates)


def _ordered(candidates: List[Candidate]) -> Iterator[Candidate]:
    heap = [(_sort_key(c), i, c) for i, c in enumerate(candidates)]
    heapq.heapify(heap)
    while heap:
        yield heapq.heappop(heap)[2]


def _collect_candidates(
    sequence: str,
    index: KmerIndex,
    segment_type: Optional[str],
    window: Optional[Tuple[int, int]],
    config: AnnotationConfig,
) -> List[Candidate]:
    start, end = window if window is not None else (0, len(sequence))

    # seeds, grouped by (segment, diagonal)
    seeds = defaultdict(list)
    for pos, kmer in iter_kmers(sequence, index.k, start=start, end=end):
        for segment_id, offset in index.hits(kmer, segment_type=segment_type):
            seeds[(segment_id, offset - pos)].append(pos)

    candidates = []
    seen = set()
    for segment_id, diagonal in sorted(seeds):
        segment = index.catalog[segment_id]
        positions = seeds[(segment_id, diagonal)]
        for chain, gap_mismatches in _chain_seeds(
            sequence, segment.sequence, diagonal, positions, index.k, config
        ):
            if len(chain) < config.min_seed_hits:
                continue
            qs, qe, mismatches = _extend(
                sequence,
                segment.sequence,
                diagonal,
                chain[0],
                chain[-1] + index.k,
                gap_mismatches,
                config,
            )
            key = (segment_id, qs, qe, diagonal)
            if key in seen:
                continue
            seen.add(key)
            n_mismatches = len(mismatches)
            score = (qe - qs - n_mismatches) * config.match_score
            score += n_mismatches * config.mismatch_score
            candidates.append(
                Candidate(
                    segment_id=segment_id,
                    segment_type=segment.segment_type,
                    score=score,
                    query_start=qs,
                    query_end=qe,
                    ref_start=qs + diagonal,
                    ref_end=qe + diagonal,
                    mismatches=tuple(sorted(mismatches)),
                    seed_hits=len(chain),
                    ref_length=len(segment),
                )
            )
    return candidates


def _match(a: str, b: str) -> bool:
    return a == b and a != "N"


def _chain_seeds(
    sequence: str,
    reference: str,
    diagonal: int,
    positions: List[int],
    k: int,
    config: AnnotationConfig,
) -> Iterator[Tuple[List[int], List[int]]]:
    """
    Splits the seeds on a single diagonal into chains. Consecutive seeds are joined
    when they overlap, or when the mismatch rate in the gap between them (measured
    over the joined span) is at most ``config.max_mismatch_rate``.

    Yields ``(seed positions, mismatch positions)`` for each chain.
    """
    chain = [positions[0]]
    mismatches = []
    for pos in positions[1:]:
        prev_end = chain[-1] + k
        if pos <= prev_end:
            chain.append(pos)
            continue
        gap = [
            q
            for q in range(prev_end, pos)
            if not _match(sequence[q], reference[q + diagonal])
        ]
        span = pos + k - chain[0]
        if (len(mismatches) + len(gap)) / span <= config.max_mismatch_rate:
            chain.append(pos)
            mismatches.extend(gap)
        else:
            yield chain, mismatches
            chain = [pos]
            mismatches = []
    yield chain, mismatches


def _extend(
    sequence: str,
    reference: str,
    diagonal: int,
    start: int,
    end: int,
    mismatches: Iterable[int],
    config: AnnotationConfig,
) -> Tuple[int, int, List[int]]:
    """
    Extends a gap-free alignment in both directions. Perfect matches are always
    absorbed. A single mismatch is crossed only if it is followed by
    ``config.min_perfect_extension`` perfect matches and the total mismatch count
    stays within ``config.max_mismatches``.

    Returns the extended query start and end (exclusive) and the mismatch positions.
    """
    mismatches = list(mismatches)
    perf = config.min_perfect_extension
    qlen = len(sequence)
    rlen = len(reference)

    # 5' extension
    while True:
        while (
            start > 0
            and start + diagonal > 0
            and _match(sequence[start - 1], reference[start - 1 + diagonal])
        ):
            start -= 1
        if start <= 0 or start + diagonal <= 0:
            break
        if len(mismatches) >= config.max_mismatches:
            break
        mis = start - 1
        if mis - perf < 0 or mis - perf + diagonal < 0:
            break
        if not all(
            _match(sequence[mis - j], reference[mis - j + diagonal])
            for j in range(1, perf + 1)
        ):
            break
        mismatches.append(mis)
        start = mis

    # 3' extension
    while True:
        while (
            end < qlen
            and end + diagonal < rlen
            and _match(sequence[end], reference[end + diagonal])
        ):
            end += 1
        if end >= qlen or end + diagonal >= rlen:
            break
        if len(mismatches) >= config.max_mismatches:
            break
        mis = end
        if mis + perf >= qlen or mis + perf + diagonal >= rlen:
            break
        if not all(
            _match(sequence[mis + j], reference[mis + j + diagonal])
            for j in range(1, perf + 1)
        ):
            break
        mismatches.append(mis)
        end = mis + 1

    return start, end, mismatches


def orient_query(
    query: Union[str, Sequence],
    index: KmerIndex,
) -> Tuple[str, bool]:
    """
    Determines the orientation of a query by counting the k-mers with at least one
    hit in the germline index, for the query and its reverse complement.

    Returns
    -------
    Tuple[str, bool]
        The oriented sequence and whether it was reverse complemented. Ties keep the
        input orientation.

    """
    sequence = _as_string(query)
    forward = _count_seeded(sequence, index)
    rc = abutils.tl.reverse_complement(sequence)
    reverse = _count_seeded(rc, index)
    if reverse > forward:
        return rc, True
    return sequence, False


def _count_seeded(sequence: str, index: KmerIndex) -> int:
    return sum(1 for _, kmer in iter_kmers(sequence, index.k) if kmer in index)


def _as_string(query: Union[str, Sequence]) -> str:
    if isinstance(query, Sequence):
        return str(query.sequence).upper()
    return str(query).upper()
