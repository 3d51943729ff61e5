# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from abutils.tools.log import LoggingMixin

from .caller import SegmentCall
from .junction import JunctionRegion

__all__ = ["Annotation"]


# object-valued fields that are not part of the flat output
_OBJECT_FIELDS = ["v_hit", "d_hit", "j_hit", "c_hit", "junction_region"]


@dataclass
class Annotation(LoggingMixin):
    """
    Class for storing contig annotation data.

    Includes the LoggingMixin, which provides methods for logging and exception handling.

    """

    # most useful info up front
    sequence_id: str = None
    locus: str = None
    v_gene: str = None
    d_gene: str = None
    j_gene: str = None
    c_gene: str = None
    cdr3_length: int = None
    junction_aa: str = None
    productive: bool = False
    productivity_issues: list = field(default_factory=list)

    # everything else
    sequence_input: str = None
    sequence_oriented: str = None
    quality: str = None
    rev_comp: bool = False
    germline_database: str = None
    frame: int = None
    in_frame: bool = None
    stop_codon: bool = None
    v_call: str = None
    v_score: int = None
    v_identity: float = None
    v_ambiguous: bool = None
    v_alternates: str = None
    v_cigar: str = None
    v_sequence_start: int = None
    v_sequence_end: int = None
    v_germline_start: int = None
    v_germline_end: int = None
    d_call: str = None
    d_score: int = None
    d_identity: float = None
    d_ambiguous: bool = None
    d_alternates: str = None
    d_cigar: str = None
    d_sequence_start: int = None
    d_sequence_end: int = None
    d_germline_start: int = None
    d_germline_end: int = None
    j_call: str = None
    j_score: int = None
    j_identity: float = None
    j_ambiguous: bool = None
    j_alternates: str = None
    j_cigar: str = None
    j_sequence_start: int = None
    j_sequence_end: int = None
    j_germline_start: int = None
    j_germline_end: int = None
    c_call: str = None
    c_score: int = None
    c_identity: float = None
    c_ambiguous: bool = None
    c_alternates: str = None
    c_cigar: str = None
    c_sequence_start: int = None
    c_sequence_end: int = None
    c_germline_start: int = None
    c_germline_end: int = None
    c_frame_consistent: bool = None
    np1: str = None
    np1_length: int = None
    np2: str = None
    np2_length: int = None
    junction: str = None
    junction_start: int = None
    junction_end: int = None
    cdr3: str = None
    cdr3_aa: str = None

    # segment calls and junction
    v_hit: Optional[SegmentCall] = field(default=None, repr=False)
    d_hit: Optional[SegmentCall] = field(default=None, repr=False)
    j_hit: Optional[SegmentCall] = field(default=None, repr=False)
    c_hit: Optional[SegmentCall] = field(default=None, repr=False)
    junction_region: Optional[JunctionRegion] = field(default=None, repr=False)

    def __post_init__(self):
        # establish the list of output fields
        self.output_fields = [k for k in self.__dict__ if k not in _OBJECT_FIELDS]

        # initialize the LoggingMixin
        super().__init__()

    def to_dict(
        self,
        include: Optional[Union[Iterable, str]] = None,
        exclude: Optional[Union[Iterable, str]] = None,
    ) -> dict:
        """
        Convert the Annotation object to a flat dictionary of annotations.

        Parameters:
        ----------
        include : Iterable or str, default: None
            Fields to include in the dictionary, in addition to the default fields.

        exclude : Iterable or str, default: None
            Fields to exclude from the dictionary.

        Returns:
        --------
        dict: The dictionary representation of the annotation.

        """
        output_fields = list(self.output_fields)

        # excluded fields
        if exclude is not None:
            if isinstance(exclude, str):
                exclude = [exclude]
            output_fields = [f for f in output_fields if f not in exclude]

        # included fields
        if include is not None:
            if isinstance(include, str):
                include = [include]
            output_fields.extend(include)

        return {k: self.__dict__.get(k, None) for k in output_fields}
