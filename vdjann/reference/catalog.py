# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple, Union

import abutils
from abutils import Sequence
from Bio.SeqIO.FastaIO import SimpleFastaParser
from natsort import natsorted

from ..core.errors import CatalogError

__all__ = [
    "GeneSegment",
    "Catalog",
    "load",
    "load_fasta",
    "find_v_anchor",
    "find_j_anchor",
    "infer_frame",
]


LOCI = ["IGH", "IGK", "IGL", "TRA", "TRB", "TRD", "TRG"]

REGION_TYPES = {
    "L-REGION+V-REGION": "V",
    "V-REGION": "V",
    "D-REGION": "D",
    "J-REGION": "J",
    "C-REGION": "C",
}

STOP_CODONS = ["TAA", "TAG", "TGA"]
CYS_CODONS = ["TGT", "TGC"]
J_ANCHOR_CODONS = ["TGG", "TTT", "TTC"]  # W, F

# the conserved 2nd cysteine is always within this many bases of the V 3' end
V_ANCHOR_WINDOW = 60

_NUCLEOTIDES = re.compile("^[ACGTN]+$")


# ------------------------------
#        GENE SEGMENTS
# ------------------------------


@dataclass(frozen=True)
class GeneSegment:
    """
    A germline gene segment.

    .. note::
        ``frame`` is the 0-based offset of the first complete codon and ``anchor``
        is the 0-based position of the first base of the conserved anchor codon
        (the 2nd cysteine for V segments, the W/F of the W/F-G-X-G motif for J
        segments). D and C segments have no anchor.

    """

    id: str
    segment_type: str
    sequence: str
    frame: int = 0
    anchor: Optional[int] = None
    name: Optional[str] = None
    locus: Optional[str] = None
    feature_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.sequence)

    @property
    def gene(self) -> str:
        """
        Gene name without the allele (``"IGHV1-2*02"`` -> ``"IGHV1-2"``).
        """
        return (self.name or self.id).split("*")[0]

    def max_score(self, match_score: int) -> int:
        return len(self.sequence) * match_score


# ------------------------------
#          CATALOG
# ------------------------------


class Catalog:
    """
    Read-only collection of germline ``GeneSegment`` objects.

    Catalogs never change after construction and can be shared by any number of
    concurrent workers. Build them with ``load()`` or ``load_fasta()``.

    """

    def __init__(self, segments: Iterable[GeneSegment], name: Optional[str] = None):
        self.name = name
        self._segments = tuple(natsorted(segments, key=lambda s: s.id))
        self._by_id = {s.id: s for s in self._segments}
        self._by_type = {
            t: tuple(s for s in self._segments if s.segment_type == t)
            for t in ["V", "D", "J", "C"]
        }

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[GeneSegment]:
        return iter(self._segments)

    def __contains__(self, segment_id: str) -> bool:
        return segment_id in self._by_id

    def __getitem__(self, segment_id: str) -> GeneSegment:
        return self._by_id[segment_id]

    def __repr__(self) -> str:
        counts = ", ".join(f"{t}={len(s)}" for t, s in self._by_type.items())
        return f"Catalog(name={self.name}, {counts})"

    @property
    def segments(self) -> Tuple[GeneSegment, ...]:
        return self._segments

    @property
    def loci(self) -> list:
        return natsorted(set(s.locus for s in self._segments if s.locus is not None))

    def get(self, segment_id: str) -> Optional[GeneSegment]:
        return self._by_id.get(segment_id)

    def of_type(self, segment_type: str) -> Tuple[GeneSegment, ...]:
        return self._by_type.get(segment_type.upper(), ())


# ------------------------------
#           LOADING
# ------------------------------


def load(
    sequences: Iterable[Union[GeneSegment, Sequence, Tuple[str, str]]],
    name: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Catalog:
    """
    Builds a ``Catalog`` from germline gene segment sequences.

    Parameters
    ----------
    sequences : Iterable[GeneSegment | Sequence | Tuple[str, str]]
        Germline sequences. ``abutils.Sequence`` objects and ``(header, sequence)``
        tuples have their segment type, name, locus and (optionally) frame parsed
        from the header. Two header formats are supported:

          - 10x Genomics-style ``|``-delimited headers, for example
            ``"12|IGHV1-2 ENST00000390593|IGHV1-2|L-REGION+V-REGION|IG|IGH|None|00"``.
            ``5'UTR`` records and unknown region types are skipped.

          - simple headers containing the gene name (``"IGHV1-2*02"``), optionally
            followed by the segment type and frame (``"IGHV1-2*02|V|0"``). If not
            provided, the segment type is parsed as the fourth character of the
            gene name, with isotype names (``"IGHG1*01"``) inferred as ``"C"``.

    name : str, optional
        Name of the catalog (for example, ``"human"``).

    logger : logging.Logger, optional
        Logger for skipped records. Defaults to a null logger.

    Returns
    -------
    Catalog

    Raises
    ------
    CatalogError
        If the input is empty, a sequence contains non-nucleotide characters, ids
        are duplicated, a frame is invalid, or no usable V or J segments are present.

    """
    logger = logger if logger is not None else abutils.log.null_logger()
    segments = []
    n_records = 0
    for record in sequences:
        n_records += 1
        if isinstance(record, GeneSegment):
            segment = _validate_segment(record)
        else:
            header, sequence = _parse_record(record)
            segment = _segment_from_header(header, sequence, logger)
        if segment is not None:
            segments.append(segment)
    if n_records == 0:
        raise CatalogError("The germline reference is empty")

    # duplicates
    seen = set()
    for s in segments:
        if s.id in seen:
            raise CatalogError(f"Duplicate germline segment id: {s.id}")
        seen.add(s.id)

    # V and J segments are required
    for segment_type in ["V", "J"]:
        if not any(s.segment_type == segment_type for s in segments):
            raise CatalogError(
                f"The germline reference contains no usable {segment_type} segments"
            )
    for s in segments:
        if s.segment_type in ["V", "J"] and s.anchor is None:
            logger.warning(
                f"No conserved anchor found for {s.id}. Junctions can't be located for sequences assigned to it."
            )
    catalog = Catalog(segments, name=name)
    logger.info(f"loaded {catalog}")
    return catalog


def load_fasta(
    fasta_file: str,
    name: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Catalog:
    """
    Builds a ``Catalog`` from a FASTA file of germline gene segments. See ``load()``
    for the supported header formats.

    Parameters
    ----------
    fasta_file : str
        Path to a FASTA-formatted file.

    name : str, optional
        Name of the catalog. Defaults to the file name, without extension.

    logger : logging.Logger, optional
        Logger for skipped records.

    Returns
    -------
    Catalog

    """
    if not os.path.isfile(fasta_file):
        raise CatalogError(f"The germline reference file {fasta_file} does not exist")
    if name is None:
        name = os.path.basename(fasta_file).split(".")[0]
    # full titles are kept, since 10x-style headers contain whitespace
    with open(fasta_file) as f:
        records = list(SimpleFastaParser(f))
    return load(records, name=name, logger=logger)


def _parse_record(record) -> Tuple[str, str]:
    if isinstance(record, Sequence):
        return str(record.id), str(record.sequence)
    if isinstance(record, (tuple, list)) and len(record) == 2:
        return str(record[0]), str(record[1])
    raise CatalogError(f"Invalid germline record: {record}")


def _segment_from_header(
    header: str, sequence: str, logger: logging.Logger
) -> Optional[GeneSegment]:
    header = header.strip().lstrip(">")
    fields = header.split("|")
    frame = None
    feature_id = None
    if len(fields) >= 4:
        # 10x-style header
        region = fields[3].strip()
        if region not in REGION_TYPES:
            logger.warning(f"SKIPPED: {header} has unsupported region type {region}")
            return None
        segment_type = REGION_TYPES[region]
        name = fields[2].strip()
        try:
            feature_id = int(fields[0])
        except ValueError:
            feature_id = None
    else:
        name = fields[0].strip()
        if len(fields) >= 2 and fields[1].strip():
            segment_type = fields[1].strip().upper()
        else:
            segment_type = _segment_type_from_name(name)
        if len(fields) == 3 and fields[2].strip():
            try:
                frame = int(fields[2])
            except ValueError:
                raise CatalogError(f"Invalid frame for {name}: {fields[2]}")
    if not name:
        raise CatalogError(f"Missing germline segment name in header: {header}")
    if segment_type not in ["V", "D", "J", "C"]:
        raise CatalogError(
            f"Invalid segment type for {name}: {segment_type}. Must be one of V, D, J or C"
        )
    return _build_segment(
        segment_id=name,
        segment_type=segment_type,
        sequence=sequence,
        frame=frame,
        feature_id=feature_id,
    )


def _segment_type_from_name(name: str) -> str:
    if len(name) < 4:
        raise CatalogError(f"Can't infer the segment type from name: {name}")
    segment = name[3].upper()
    if segment in ["A", "G", "E", "M"]:
        segment = "C"
    return segment


def _build_segment(
    segment_id: str,
    segment_type: str,
    sequence: str,
    frame: Optional[int] = None,
    feature_id: Optional[int] = None,
) -> GeneSegment:
    sequence = _check_sequence(segment_id, sequence)
    anchor = None
    if segment_type == "J":
        anchor, j_frame = find_j_anchor(sequence)
        if frame is None:
            frame = j_frame if j_frame is not None else infer_frame(sequence)
    elif frame is None:
        frame = infer_frame(sequence) if segment_type in ["V", "C"] else 0
    _check_frame(segment_id, frame)
    if segment_type == "V":
        anchor = find_v_anchor(sequence, frame)
    return GeneSegment(
        id=segment_id,
        segment_type=segment_type,
        sequence=sequence,
        frame=frame,
        anchor=anchor,
        name=segment_id,
        locus=_parse_locus(segment_id),
        feature_id=feature_id,
    )


def _validate_segment(segment: GeneSegment) -> GeneSegment:
    if segment.segment_type not in ["V", "D", "J", "C"]:
        raise CatalogError(
            f"Invalid segment type for {segment.id}: {segment.segment_type}"
        )
    _check_sequence(segment.id, segment.sequence)
    _check_frame(segment.id, segment.frame)
    if segment.anchor is not None and not 0 <= segment.anchor <= len(segment) - 3:
        raise CatalogError(f"Anchor position for {segment.id} is out of bounds")
    return segment


def _check_sequence(segment_id: str, sequence: str) -> str:
    sequence = sequence.strip().upper()
    if not sequence:
        raise CatalogError(f"Germline segment {segment_id} has an empty sequence")
    if not _NUCLEOTIDES.match(sequence):
        bad = natsorted(set(c for c in sequence if c not in "ACGTN"))
        raise CatalogError(
            f"Germline segment {segment_id} contains non-nucleotide characters: {', '.join(bad)}"
        )
    return sequence


def _check_frame(segment_id: str, frame: int) -> None:
    if frame not in [0, 1, 2]:
        raise CatalogError(f"Invalid frame for {segment_id}: {frame}. Must be 0, 1 or 2")


def _parse_locus(name: str) -> Optional[str]:
    prefix = name[:3].upper()
    return prefix if prefix in LOCI else None


# ------------------------------
#       FRAMES AND ANCHORS
# ------------------------------


def _codons(sequence: str, frame: int) -> Iterator[Tuple[int, str]]:
    for i in range(frame, len(sequence) - 2, 3):
        yield i, sequence[i : i + 3]


def infer_frame(sequence: str) -> int:
    """
    Returns the frame (0, 1 or 2) with the fewest stop codons. Ties go to the
    lowest frame.
    """
    stops = []
    for frame in range(3):
        stops.append(sum(1 for _, c in _codons(sequence, frame) if c in STOP_CODONS))
    return stops.index(min(stops))


def find_v_anchor(sequence: str, frame: int) -> Optional[int]:
    """
    Finds the conserved 2nd cysteine of a V segment: the last in-frame ``TGT``/``TGC``
    codon within the 3' end of the segment.

    Returns
    -------
    int or None
        0-based position of the first base of the cysteine codon.

    """
    window_start = max(0, len(sequence) - V_ANCHOR_WINDOW)
    anchor = None
    for i, codon in _codons(sequence, frame):
        if i >= window_start and codon in CYS_CODONS:
            anchor = i
    return anchor


def find_j_anchor(sequence: str) -> Tuple[Optional[int], Optional[int]]:
    """
    Finds the conserved W/F-G-X-G motif of a J segment, checking all three frames.

    Returns
    -------
    Tuple[Optional[int], Optional[int]]
        Position of the first base of the W/F codon and the frame in which the motif
        was found, or ``(None, None)`` if no motif is present. If motifs are found in
        more than one frame, the most 5' motif is used.

    """
    hits = []
    for frame in range(3):
        for i, codon in _codons(sequence, frame):
            if codon not in J_ANCHOR_CODONS:
                continue
            gly1 = sequence[i + 3 : i + 6]
            gly2 = sequence[i + 9 : i + 12]
            if gly1.startswith("GG") and gly2.startswith("GG") and len(gly2) == 3:
                hits.append((i, frame))
                break
    if not hits:
        return None, None
    return min(hits)
