# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

import logging
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional, Tuple, Union

import abutils
from abutils import Sequence
from tqdm.auto import tqdm

from ..core.config import AnnotationConfig, resolve_config
from ..reference.catalog import Catalog
from ..reference.index import KmerIndex, build
from .annotation import Annotation
from .caller import call, call_d_by_alignment
from .junction import locate
from .matcher import find_candidates, orient_query
from .productivity import assemble

__all__ = [
    "AnnotationSummary",
    "annotate",
    "annotate_single_sequence",
    "summarize",
]


# loci that rearrange a D segment
D_LOCI = ["IGH", "TRB", "TRD"]


@dataclass
class AnnotationSummary:
    """
    Aggregate counts for a batch of annotations.
    """

    total: int = 0
    no_vj: int = 0
    no_d: int = 0
    no_junction: int = 0
    productive: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    def __str__(self) -> str:
        lines = [
            f"total sequences: {self.total}",
            f"missing V or J call: {self.no_vj}",
            f"missing D call: {self.no_d}",
            f"junction not found: {self.no_junction}",
            f"productive: {self.productive}",
            f"failed: {self.failed}",
        ]
        return "\n".join(lines)


def annotate(
    queries: Iterable[Union[Sequence, str, Tuple[str, str]]],
    reference: Union[Catalog, KmerIndex],
    config: Union[AnnotationConfig, dict, str, None] = None,
    n_processes: int = 1,
    chunksize: int = 500,
    verbose: bool = False,
    logger: Optional[logging.Logger] = None,
) -> List[Annotation]:
    """
    Annotates a batch of V(D)J contigs.

    Parameters
    ----------
    queries : Iterable[Sequence | str | Tuple[str, str]]
        Query sequences. Can be ``abutils.Sequence`` objects, ``(id, sequence)`` tuples
        or anything else accepted by ``abutils.Sequence()``.

    reference : Catalog or KmerIndex
        Germline reference. If a ``Catalog`` is provided, it will be indexed using `config`.

    config : AnnotationConfig, dict or str, optional
        Annotation config. If `reference` is a ``KmerIndex`` and `config` is not
        provided, the index's config is used.

    n_processes : int, default=1
        Number of worker processes. If ``1``, queries are annotated in the calling process.

    chunksize : int, default=500
        Number of queries submitted to a worker process at a time.

    verbose : bool, default=False
        Show a progress bar.

    logger : logging.Logger, optional
        Logger for batch-level messages. Defaults to a null logger.

    Returns
    -------
    List[Annotation]
        One ``Annotation`` per query, in input order. Queries that raised an
        unexpected exception during annotation have it recorded in the ``Annotation``
        log (see ``Annotation.exceptions``) rather than aborting the batch.

    """
    logger = logger if logger is not None else abutils.log.null_logger()
    index = _resolve_index(reference, config, logger)
    config = resolve_config(config) if config is not None else index.config
    queries = [_as_query(q) for q in queries]
    if not queries:
        return []
    chunksize = max(1, chunksize)
    chunks = [queries[i : i + chunksize] for i in range(0, len(queries), chunksize)]
    logger.info(f"annotating {len(queries)} sequences in {len(chunks)} chunk(s)")

    annotations = []
    if verbose:
        progress_bar = tqdm(total=len(queries), desc="  - annotating")
    if n_processes is None or n_processes <= 1:
        for chunk in chunks:
            annotations.extend(_annotate_chunk(chunk, index, config))
            if verbose:
                progress_bar.update(len(chunk))
    else:
        with ProcessPoolExecutor(max_workers=n_processes) as executor:
            # the index is passed explicitly with each chunk
            futures = [
                executor.submit(_annotate_chunk, chunk, index, config)
                for chunk in chunks
            ]
            if verbose:
                for future in as_completed(futures):
                    progress_bar.update(len(future.result()))
            # gather in submission order
            for future in futures:
                annotations.extend(future.result())
    if verbose:
        progress_bar.close()
    return annotations


def _annotate_chunk(
    queries: List[Sequence], index: KmerIndex, config: AnnotationConfig
) -> List[Annotation]:
    annotated = []
    for query in queries:
        ab = _new_annotation(query, index)
        try:
            ab = _annotate(ab, index, config)
        except Exception:
            ab.exception("ANNOTATION EXCEPTION", traceback.format_exc())
            ab.productive = False
            ab.productivity_issues = "annotation exception"
        annotated.append(ab)
    return annotated


def annotate_single_sequence(
    query: Union[Sequence, str, Tuple[str, str]],
    index: KmerIndex,
    config: Optional[AnnotationConfig] = None,
) -> Annotation:
    """
    Annotates a single V(D)J contig.

    Parameters
    ----------
    query : Sequence, str or Tuple[str, str]
        The query sequence.

    index : KmerIndex
        k-mer index of the germline reference.

    config : AnnotationConfig, optional
        Defaults to the index's config.

    Returns
    -------
    Annotation

    """
    config = resolve_config(config) if config is not None else index.config
    ab = _new_annotation(_as_query(query), index)
    return _annotate(ab, index, config)


def _new_annotation(query: Sequence, index: KmerIndex) -> Annotation:
    return Annotation(
        sequence_id=query.id,
        sequence_input=str(query.sequence).upper(),
        quality=query.qual,
        germline_database=index.catalog.name,
    )


def _annotate(ab: Annotation, index: KmerIndex, config: AnnotationConfig) -> Annotation:
    catalog = index.catalog
    ab.log("=" * (len(str(ab.sequence_id)) + 15))
    ab.log(" SEQUENCE ID:", ab.sequence_id)
    ab.log("=" * (len(str(ab.sequence_id)) + 15) + "\n")
    ab.log(f">{ab.sequence_id}\n{ab.sequence_input}\n")
    ab.log("GERMLINE DATABASE:", ab.germline_database)

    # orient the input sequence
    ab.sequence_oriented, ab.rev_comp = orient_query(ab.sequence_input, index)
    sequence = ab.sequence_oriented
    ab.log("REV COMP:", ab.rev_comp)
    ab.log("SEQUENCE ORIENTED:", sequence)

    ab.log("\n--------")
    ab.log(" V GENE")
    ab.log("--------\n")
    v = call(find_candidates(sequence, index, "V", config=config), "V", catalog, config)
    _log_call(ab, "V", v)

    ab.log("\n--------")
    ab.log(" J GENE")
    ab.log("--------\n")
    j = call(find_candidates(sequence, index, "J", config=config), "J", catalog, config)
    _log_call(ab, "J", j)

    ab.log("\n--------")
    ab.log(" D GENE")
    ab.log("--------\n")
    d = None
    if v is not None and j is not None and j.query_start > v.query_end:
        region = (v.query_end, j.query_start)
        ab.log("D REGION:", f"{region[0]}-{region[1]}")
        d = call(
            find_candidates(sequence, index, "D", window=region, config=config),
            "D",
            catalog,
            config,
        )
        if (
            d is None
            and region[1] - region[0] >= config.min_d_region
            and (v.segment.locus is None or v.segment.locus in D_LOCI)
        ):
            ab.log("D ALIGNMENT FALLBACK:", True)
            d = call_d_by_alignment(
                sequence[region[0] : region[1]],
                catalog,
                offset=region[0],
                config=config,
            )
    _log_call(ab, "D", d)

    ab.log("\n-----------------")
    ab.log(" CONSTANT REGION")
    ab.log("-----------------\n")
    c_window = (j.query_end, len(sequence)) if j is not None else None
    c = call(
        find_candidates(sequence, index, "C", window=c_window, config=config),
        "C",
        catalog,
        config,
    )
    _log_call(ab, "C", c)

    ab.log("\n----------")
    ab.log(" JUNCTION")
    ab.log("----------\n")
    junction = locate(sequence, v, j)
    if junction is None:
        ab.log("JUNCTION:", None)
    else:
        ab.log("JUNCTION START:", junction.start)
        ab.log("JUNCTION END:", junction.end)
        ab.log("JUNCTION:", junction.junction)
        ab.log("JUNCTION AA:", junction.junction_aa)
        ab.log("FRAME:", junction.frame)
        ab.log("IN FRAME:", junction.in_frame)
        ab.log("STOP CODON:", junction.stop_codon)

    ab.log("\n--------------")
    ab.log(" PRODUCTIVITY")
    ab.log("--------------\n")
    ab = assemble(ab.sequence_id, v, d, j, c, junction, annotation=ab, config=config)
    ab.log("LOCUS:", ab.locus)
    ab.log("PRODUCTIVE:", ab.productive)
    ab.log("PRODUCTIVITY ISSUES:", ab.productivity_issues)
    ab.log("\n")
    return ab


def _log_call(ab: Annotation, segment_type: str, segment_call) -> None:
    if segment_call is None:
        ab.log(f"{segment_type} CALL:", None)
        return
    candidate = segment_call.candidate
    ab.log(f"{segment_type} CALL:", segment_call.segment_id)
    ab.log(f"{segment_type} SCORE:", segment_call.score)
    ab.log(f"{segment_type} AMBIGUOUS:", segment_call.ambiguous)
    if segment_call.alternates:
        ab.log(f"{segment_type} ALTERNATES:", ", ".join(segment_call.alternates))
    ab.log(f"{segment_type} SEQUENCE START:", candidate.query_start)
    ab.log(f"{segment_type} SEQUENCE END:", candidate.query_end)
    ab.log(f"{segment_type} GERMLINE START:", candidate.ref_start)
    ab.log(f"{segment_type} GERMLINE END:", candidate.ref_end)
    ab.log(f"{segment_type} MISMATCHES:", len(candidate.mismatches))


def summarize(annotations: Iterable[Annotation]) -> AnnotationSummary:
    """
    Counts the annotations that lack V/J calls, D calls or a junction, are
    productive, or failed with an unexpected exception.

    .. note::
        ``no_d`` counts all annotations without a D call, including light chains,
        which never have one.

    """
    summary = AnnotationSummary()
    for ab in annotations:
        summary.total += 1
        if ab.exceptions:
            summary.failed += 1
            continue
        if ab.v_hit is None or ab.j_hit is None:
            summary.no_vj += 1
        if ab.d_hit is None:
            summary.no_d += 1
        if ab.junction_region is None:
            summary.no_junction += 1
        if ab.productive:
            summary.productive += 1
    return summary


def _resolve_index(
    reference: Union[Catalog, KmerIndex],
    config: Union[AnnotationConfig, dict, str, None],
    logger: logging.Logger,
) -> KmerIndex:
    if isinstance(reference, KmerIndex):
        return reference
    if isinstance(reference, Catalog):
        return build(reference, config=config, logger=logger)
    raise ValueError(
        f"Invalid germline reference: {type(reference)}. Must be a Catalog or a KmerIndex."
    )


def _as_query(query: Union[Sequence, str, Tuple[str, str]]) -> Sequence:
    if isinstance(query, Sequence):
        return query
    if isinstance(query, (tuple, list)) and len(query) == 2:
        return Sequence(query[1], id=query[0])
    return Sequence(query)
