# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


from typing import Optional

from ..core.config import AnnotationConfig, resolve_config
from .annotation import Annotation
from .caller import SegmentCall
from .junction import JunctionRegion

__all__ = ["assemble", "assess_productivity", "c_frame_consistent", "vj_delta"]


def c_frame_consistent(j: SegmentCall, c: SegmentCall) -> bool:
    """
    ``True`` if the reading frame of the C segment, mapped onto the query, matches
    the reading frame of the J segment.
    """
    return (j.segment.frame - j.offset) % 3 == (c.segment.frame - c.offset) % 3


def assemble(
    query_id: str,
    v: Optional[SegmentCall],
    d: Optional[SegmentCall],
    j: Optional[SegmentCall],
    c: Optional[SegmentCall],
    junction: Optional[JunctionRegion],
    sequence: Optional[str] = None,
    annotation: Optional[Annotation] = None,
    config: Optional[AnnotationConfig] = None,
) -> Annotation:
    """
    Composes segment calls and the junction into an ``Annotation``.

    Parameters
    ----------
    query_id : str
        Sequence ID of the query.

    v, d, j, c : SegmentCall or None
        Segment calls. Any of them can be ``None``.

    junction : JunctionRegion or None
        The junction, or ``None`` if it could not be located.

    sequence : str, optional
        The oriented query sequence. Used to populate the non-templated regions.

    annotation : Annotation, optional
        Record to populate. If not provided, a new ``Annotation`` is created. No other
        state is read or modified.

    config : AnnotationConfig, optional
        Provides the CDR3 length and V-J span bounds used by ``assess_productivity()``.

    Returns
    -------
    Annotation

    """
    ab = annotation if annotation is not None else Annotation()
    ab.sequence_id = query_id
    if sequence is not None and ab.sequence_oriented is None:
        ab.sequence_oriented = sequence

    for prefix, hit in [("v", v), ("d", d), ("j", j), ("c", c)]:
        _annotate_segment(ab, prefix, hit, ab.sequence_oriented)
    ab.v_hit, ab.d_hit, ab.j_hit, ab.c_hit = v, d, j, c
    ab.locus = _locus(v, j)

    # non-templated regions
    if ab.sequence_oriented is not None and v is not None and j is not None:
        if d is not None:
            ab.np1 = ab.sequence_oriented[v.query_end : d.query_start]
            ab.np2 = ab.sequence_oriented[d.query_end : j.query_start]
            ab.np2_length = len(ab.np2)
        else:
            ab.np1 = ab.sequence_oriented[v.query_end : j.query_start]
        ab.np1_length = len(ab.np1)

    # junction
    ab.junction_region = junction
    if junction is not None:
        ab.frame = junction.frame
        ab.in_frame = junction.in_frame
        ab.stop_codon = junction.stop_codon
        ab.junction = junction.junction
        ab.junction_aa = junction.junction_aa
        ab.junction_start = junction.start
        ab.junction_end = junction.end
        ab.cdr3 = junction.cdr3
        ab.cdr3_aa = junction.cdr3_aa
        ab.cdr3_length = junction.cdr3_length
    if j is not None and c is not None:
        ab.c_frame_consistent = c_frame_consistent(j, c)

    return assess_productivity(ab, config=config)


def assess_productivity(
    ab: Annotation, config: Optional[AnnotationConfig] = None
) -> Annotation:
    """
    Checks whether an Annotation is productive and annotates any
    productivity issues.

    Parameters
    ----------

    ab : Annotation
        Annotation object to update. The following ``Annotation`` properties are updated:

        - ``productive``
        - ``productivity_issues``

        The following ``Annotation`` properties are used, if populated:

        - ``v_hit``
        - ``j_hit``
        - ``d_hit``
        - ``c_hit``
        - ``junction_region``

    config : AnnotationConfig, optional
        Provides the CDR3 length bounds and the V-J span bounds.
    """
    config = resolve_config(config)
    v, j = ab.v_hit, ab.j_hit
    issues = []
    if v is None:
        issues.append("no V call")
    if j is None:
        issues.append("no J call")
    if v is not None and j is not None:
        if (
            v.segment.locus is not None
            and j.segment.locus is not None
            and v.segment.locus != j.segment.locus
        ):
            issues.append(f"V/J locus mismatch ({v.segment_id} and {j.segment_id})")
        misordered = _misordered(v, ab.d_hit, j, ab.c_hit)
        if misordered:
            issues.append("misordered segments")
        if ab.junction_region is None:
            issues.append("junction not found")
        else:
            if not ab.junction_region.in_frame:
                issues.append("out-of-frame junction")
            elif not (
                config.cdr3_min_length
                <= ab.junction_region.cdr3_length
                <= config.cdr3_max_length
            ):
                issues.append(
                    f"CDR3 length out of range ({ab.junction_region.cdr3_length} aa)"
                )
            if ab.junction_region.stop_codon:
                issues.append("stop codon(s)")
        if not misordered:
            delta = vj_delta(v, j)
            min_delta = config.min_vj_delta
            if "IGH" in [v.segment.locus, j.segment.locus]:
                min_delta = config.min_vj_delta_igh
            if not min_delta <= delta <= config.max_vj_delta:
                issues.append(f"V-J span out of range (delta {delta})")
    if ab.j_hit is not None and ab.c_hit is not None:
        if not c_frame_consistent(ab.j_hit, ab.c_hit):
            issues.append(
                f"J/C frame mismatch ({ab.j_hit.segment_id} and {ab.c_hit.segment_id})"
            )

    # flag sequences with issues as non-productive
    ab.productive = not issues
    ab.productivity_issues = "|".join(issues)

    return ab


def vj_delta(v: SegmentCall, j: SegmentCall) -> int:
    """
    Difference between the germline length spanned by the V and J calls (from the
    aligned start of V to the aligned end of J) and the length of the query between
    the same two points.

    Negative values mean the query span is longer than the germline span, as with
    non-templated insertions. Positive values mean germline bases are missing.
    """
    germline = (len(v.segment) - v.candidate.ref_start) + j.candidate.ref_end
    return germline - (j.query_end - v.query_start)


def _misordered(
    v: SegmentCall,
    d: Optional[SegmentCall],
    j: SegmentCall,
    c: Optional[SegmentCall],
) -> bool:
    # segments must appear 5' to 3' in V, D, J, C order
    if j.query_start < v.query_start:
        return True
    if d is not None and not v.query_start <= d.query_start <= j.query_start:
        return True
    if c is not None and c.query_start < j.query_start:
        return True
    return False


def _annotate_segment(
    ab: Annotation, prefix: str, hit: Optional[SegmentCall], sequence: Optional[str]
) -> None:
    if hit is None:
        return
    setattr(ab, f"{prefix}_call", hit.segment_id)
    setattr(ab, f"{prefix}_gene", hit.segment.gene)
    setattr(ab, f"{prefix}_score", hit.score)
    setattr(ab, f"{prefix}_identity", hit.identity)
    setattr(ab, f"{prefix}_ambiguous", hit.ambiguous)
    setattr(ab, f"{prefix}_alternates", "|".join(hit.alternates))
    if sequence is not None:
        setattr(ab, f"{prefix}_cigar", hit.candidate.cigar(len(sequence)))
    setattr(ab, f"{prefix}_sequence_start", hit.query_start)
    setattr(ab, f"{prefix}_sequence_end", hit.query_end)
    setattr(ab, f"{prefix}_germline_start", hit.candidate.ref_start)
    setattr(ab, f"{prefix}_germline_end", hit.candidate.ref_end)


def _locus(v: Optional[SegmentCall], j: Optional[SegmentCall]) -> Optional[str]:
    for hit in [v, j]:
        if hit is not None and hit.segment.locus is not None:
            return hit.segment.locus
    return None
