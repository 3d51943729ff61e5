# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

import logging
import multiprocessing as mp
import os
from collections.abc import Iterable
from typing import List, Optional, Tuple, Union

import abutils
import polars as pl
from abutils import Sequence
from natsort import natsorted

from ..annotation.annotation import Annotation
from ..annotation.annotator import annotate, summarize
from ..annotation.schema import OUTPUT_SCHEMA
from ..reference.catalog import Catalog, load_fasta
from ..reference.index import KmerIndex, build
from .config import AnnotationConfig, resolve_config

__all__ = ["run"]


def run(
    sequences: Union[str, Sequence, Iterable],
    reference: Union[str, Catalog, KmerIndex],
    config: Union[AnnotationConfig, dict, str, None] = None,
    log_directory: Optional[str] = None,
    as_dataframe: bool = False,
    chunksize: int = 500,
    n_processes: Optional[int] = 1,
    verbose: bool = False,
    debug: bool = False,
    logger: Optional[logging.Logger] = None,
) -> Union[Annotation, List[Annotation], pl.DataFrame]:
    """
    Annotate V(D)J contigs.

    Parameters
    ----------

    sequences : Union[str, Sequence, Iterable[Sequence]]
        The sequences to annotate. Can be one of the following:

          - ``str``: path to a FASTA/Q file, path to a directory of FASTA/Q files, or a single sequence, as a string
          - ``Sequence``: a single ``abutils.Sequence`` object
          - ``Iterable[Sequence]``: an iterable of ``abutils.Sequence`` objects, ``(id, sequence)``
            tuples or sequence strings

        .. note::
            If `sequences` is a directory path, files in the directory will be consumed recursively, including
            files in any subfolders.

    reference : Union[str, Catalog, KmerIndex]
        Germline reference. Can be a path to a FASTA file of germline gene segments, a ``Catalog``
        or a ``KmerIndex``.

    config : Union[AnnotationConfig, dict, str], optional
        Annotation config, as an ``AnnotationConfig``, a ``dict`` or a string of comma-separated
        ``key=value`` pairs (for example, ``"kmer_size=14,min_score_v=60"``).

    log_directory : Optional[str], default=None
        If provided, a log of sequences that failed annotation (``"<name>.failed"``) will be
        written to this directory.

    as_dataframe : bool, default=False
        Return annotations as a ``polars.DataFrame`` rather than a list of ``Annotation`` objects.

    chunksize : int, default=500
        Number of sequences to process at a time.

    n_processes : Optional[int], default=1
        Number of processes to use for annotation. If ``None``, the number of processes will
        be set to the number of available CPU cores.

    verbose : bool, default=False
        Whether to print verbose output.

    debug : bool, default=False
        If ``True``, successfully annotated sequences will be logged (``"<name>.succeeded"``)
        in addition to sequences that errored during annotation.

    logger : Optional[logging.Logger], default=None
        Logger for run-level messages. Defaults to a null logger.

    Returns
    -------
    Union[Annotation, List[Annotation], pl.DataFrame]
        A single ``Annotation`` if a single sequence was provided, otherwise a list of
        ``Annotation`` objects (in input order) or a ``polars.DataFrame``.

    """
    logger = logger if logger is not None else abutils.log.null_logger()
    config = resolve_config(config) if config is not None else None

    # germline reference
    index = _process_reference(reference, config, logger)
    if verbose:
        print(f"germline reference: {index.catalog}")

    # input sequences
    queries, name = _process_inputs(sequences)
    logger.info(f"loaded {len(queries)} sequences from {name}")
    if verbose:
        print(f"  {name}")
        print("-" * (len(name) + 4))

    # annotate
    if n_processes is None:
        n_processes = mp.cpu_count()
    annotations = annotate(
        queries,
        index,
        config=config,
        n_processes=n_processes,
        chunksize=chunksize,
        verbose=verbose,
        logger=logger,
    )

    # summary
    summary = summarize(annotations)
    logger.info(f"annotation summary: {summary.to_dict()}")
    if verbose:
        print("")
        print(summary)

    # logs
    if log_directory is not None:
        _write_logs(annotations, log_directory, name, debug=debug)

    if as_dataframe:
        return pl.DataFrame(
            [a.to_dict() for a in annotations], schema=OUTPUT_SCHEMA
        )
    if len(annotations) == 1 and _is_single(sequences):
        return annotations[0]
    return annotations


def _process_reference(
    reference: Union[str, Catalog, KmerIndex],
    config: Optional[AnnotationConfig],
    logger: logging.Logger,
) -> KmerIndex:
    """
    Process the various germline references accepted by vdjann and return a ``KmerIndex``.
    """
    if isinstance(reference, KmerIndex):
        return reference
    if isinstance(reference, str):
        reference = load_fasta(reference, logger=logger)
    if isinstance(reference, Catalog):
        return build(reference, config=config, logger=logger)
    raise ValueError(
        "Invalid germline reference. Must be a path to a FASTA file, a Catalog or a KmerIndex."
    )


def _process_inputs(
    sequences: Union[str, Sequence, Iterable],
) -> Tuple[List[Sequence], str]:
    """
    Process the various inputs accepted by vdjann and return a list of ``Sequence`` objects.

    Parameters
    ----------
    sequences : Union[str, Sequence, Iterable[Sequence]]
        The sequences to process.

    Returns
    -------
    sequences : List[Sequence]
        A list of one or more ``Sequence`` objects.

    name : str
        Name of the input, used to name log files. The file name (without extension)
        for a single file, the directory name for a directory, ``"vdjann"`` otherwise.
    """
    if isinstance(sequences, str):
        if os.path.isfile(sequences):
            name = _input_name(sequences)
            return list(abutils.io.parse_fastx(sequences)), name
        if os.path.isdir(sequences):
            name = os.path.basename(os.path.normpath(sequences))
            queries = []
            for f in natsorted(abutils.io.list_files(sequences, recursive=True)):
                queries.extend(abutils.io.parse_fastx(f))
            return queries, name
        return [Sequence(sequences)], "vdjann"
    if isinstance(sequences, Sequence):
        return [sequences], "vdjann"
    if isinstance(sequences, Iterable):
        queries = []
        for s in sequences:
            if isinstance(s, Sequence):
                queries.append(s)
            elif isinstance(s, (tuple, list)) and len(s) == 2:
                queries.append(Sequence(s[1], id=s[0]))
            else:
                queries.append(Sequence(s))
        return queries, "vdjann"
    raise ValueError(
        "Invalid input sequences. Must be a path to a file or directory, a single sequence, or an iterable of sequences."
    )


def _input_name(sequence_file: str) -> str:
    """
    File name without its extension (and without a trailing ``.gz``).
    """
    basename = os.path.basename(sequence_file)
    if basename.endswith(".gz"):
        basename = basename[:-3]
    return ".".join(basename.split(".")[:-1]) or basename


def _is_single(sequences) -> bool:
    if isinstance(sequences, Sequence):
        return True
    return isinstance(sequences, str) and not os.path.exists(sequences)


def _write_logs(
    annotations: List[Annotation], log_directory: str, name: str, debug: bool = False
) -> Tuple[str, Optional[str]]:
    """
    Write failed (and, if `debug` is ``True``, succeeded) annotation logs.

    Returns
    -------
    failed_logfile : str

    succeeded_logfile : Optional[str]
        Only returned if `debug` is ``True``.
    """
    abutils.io.make_dir(log_directory)
    failed = [a for a in annotations if a.exceptions]
    succeeded = [a for a in annotations if not a.exceptions]
    failed_logfile = os.path.join(log_directory, f"{name}.failed")
    with open(failed_logfile, "w") as f:
        for fail in failed:
            f.write(fail.format_log())
    succeeded_logfile = None
    if debug:
        succeeded_logfile = os.path.join(log_directory, f"{name}.succeeded")
        with open(succeeded_logfile, "w") as f:
            for succ in succeeded:
                f.write(succ.format_log())
    return failed_logfile, succeeded_logfile
