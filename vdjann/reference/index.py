# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


import logging
from collections import defaultdict
from typing import FrozenSet, Iterator, Optional, Tuple

import abutils

from ..core.config import AnnotationConfig, resolve_config
from ..core.errors import KmerIndexError
from .catalog import Catalog

__all__ = ["KmerIndex", "build", "iter_kmers", "is_unambiguous"]


_UNAMBIGUOUS = frozenset("ACGT")


def is_unambiguous(kmer: str) -> bool:
    """
    ``True`` if `kmer` contains only ``A``, ``C``, ``G`` and ``T``.
    """
    return all(c in _UNAMBIGUOUS for c in kmer)


def iter_kmers(
    sequence: str, k: int, start: int = 0, end: Optional[int] = None
) -> Iterator[Tuple[int, str]]:
    """
    Yields ``(position, kmer)`` for every unambiguous k-mer that starts at or after
    `start` and ends at or before `end`.

    .. note::
        k-mers containing ambiguous bases (``N`` or any other non-``ACGT`` character)
        are skipped, never expanded. The same policy applies when the index is built
        and when query windows are looked up, so an ``N`` in either the reference or
        the query only removes the k-mers that overlap it.

    """
    end = len(sequence) if end is None else min(end, len(sequence))
    start = max(0, start)
    for i in range(start, end - k + 1):
        kmer = sequence[i : i + k]
        if is_unambiguous(kmer):
            yield i, kmer


class KmerIndex:
    """
    Maps each k-mer in a ``Catalog`` to the segments (and offsets) at which it occurs.

    The index is read-only after ``build()`` returns and can be shared across
    workers without locking.

    """

    def __init__(
        self,
        catalog: Catalog,
        k: int,
        table: dict,
        config: AnnotationConfig,
    ):
        self.catalog = catalog
        self.k = k
        self.config = config
        self._table = table

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, kmer: str) -> bool:
        return kmer in self._table

    def __repr__(self) -> str:
        return f"KmerIndex(k={self.k}, kmers={len(self)}, catalog={self.catalog})"

    def hits(
        self, kmer: str, segment_type: Optional[str] = None
    ) -> Tuple[Tuple[str, int], ...]:
        """
        Sorted ``(segment_id, offset)`` occurrences of `kmer`, optionally restricted
        to a single segment type.
        """
        if segment_type is None:
            return tuple(h[1:] for h in self._table.get(kmer, ()))
        segment_type = segment_type.upper()
        return tuple(h[1:] for h in self._table.get(kmer, ()) if h[0] == segment_type)

    def lookup(
        self, kmer: str, segment_type: Optional[str] = None
    ) -> FrozenSet[Tuple[str, int]]:
        """
        Returns the set of ``(segment_id, offset)`` occurrences of `kmer`.

        k-mers that contain ambiguous bases, or that have the wrong length, return
        an empty set.
        """
        kmer = kmer.upper()
        if len(kmer) != self.k or not is_unambiguous(kmer):
            return frozenset()
        return frozenset(self.hits(kmer, segment_type=segment_type))


def build(
    catalog: Catalog,
    k: Optional[int] = None,
    config: Optional[AnnotationConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> KmerIndex:
    """
    Builds a ``KmerIndex`` from a ``Catalog``.

    Parameters
    ----------
    catalog : Catalog
        Germline reference catalog.

    k : int, optional
        k-mer length. Defaults to ``config.kmer_size``. If both are provided, `k` is used
        and the returned index's config is updated to match.

    config : AnnotationConfig, optional
        Annotation config. Defaults to ``AnnotationConfig()``.

    logger : logging.Logger, optional
        Logger for segments that are too short to be indexed.

    Returns
    -------
    KmerIndex

    Raises
    ------
    KmerIndexError
        If `k` is less than 1 or longer than any V or J segment.

    """
    logger = logger if logger is not None else abutils.log.null_logger()
    config = resolve_config(config)
    if k is None:
        k = config.kmer_size
    if not isinstance(k, int) or k < 1:
        raise KmerIndexError(f"Invalid k-mer length: {k}")
    if k != config.kmer_size:
        config = config.replace(kmer_size=k)

    # every V and J segment must be long enough to be seeded
    too_short = [
        s.id for s in catalog if s.segment_type in ["V", "J"] and len(s) < k
    ]
    if too_short:
        raise KmerIndexError(
            f"k-mer length {k} is longer than the following V/J segments: {', '.join(too_short)}"
        )

    table = defaultdict(list)
    for segment in catalog:
        if len(segment) < k:
            logger.info(
                f"{segment.id} is shorter than k ({k}) and will not be indexed"
            )
            continue
        for offset, kmer in iter_kmers(segment.sequence, k):
            table[kmer].append((segment.segment_type, segment.id, offset))

    # sorted, immutable buckets
    frozen = {kmer: tuple(sorted(hits)) for kmer, hits in table.items()}
    index = KmerIndex(catalog=catalog, k=k, table=frozen, config=config)
    logger.info(f"built {index}")
    return index
