# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


from dataclasses import asdict, dataclass, field, fields, replace
from typing import Optional, Union

from ..utils.callbacks import parse_dict_from_string
from .errors import ConfigError

__all__ = ["AnnotationConfig", "DEFAULT_MIN_SCORES", "SEGMENT_TYPES"]


SEGMENT_TYPES = ("V", "D", "J", "C")

DEFAULT_MIN_SCORES = {
    "V": 40,
    "D": 10,
    "J": 20,
    "C": 40,
}


@dataclass(frozen=True)
class AnnotationConfig:
    """
    Tunable constants used by the k-mer index, the seed-and-extend matcher and
    the segment caller.

    Parameters
    ----------
    kmer_size : int, default=12
        Length of the k-mers used to index the reference and seed candidate alignments.

    min_seed_hits : int, default=2
        Minimum number of k-mer seeds that must be chained on a single
        (segment, diagonal) pair before the chain is extended.

    max_mismatch_rate : float, default=0.15
        Maximum mismatch rate allowed in the gap between two chained seeds.

    min_perfect_extension : int, default=5
        Number of perfectly matching bases required after a mismatch before the
        extension is allowed to cross it.

    max_mismatches : int, default=10
        Maximum number of mismatches accumulated during extension of a single chain.

    match_score : int, default=2
        Score for each matching base.

    mismatch_score : int, default=-3
        Score for each mismatched base. Must be <= 0.

    gap_open : int, default=-5
        Gap open penalty used by the D-gene alignment fallback. Must be <= 0.

    gap_extend : int, default=-1
        Gap extension penalty used by the D-gene alignment fallback. Must be <= 0.

    min_scores : dict
        Minimum score required to call a segment, keyed by segment type
        (``"V"``, ``"D"``, ``"J"``, ``"C"``). Missing keys use the defaults.

    min_d_region : int, default=5
        Shortest region between the V and J calls that is sent to the D-gene
        alignment fallback.

    cdr3_min_length : int, default=5
        Shortest productive CDR3, in amino acids.

    cdr3_max_length : int, default=27
        Longest productive CDR3, in amino acids.

    min_vj_delta : int, default=-25
        Lower bound for the difference between the germline length spanned by the V
        and J calls and the length of the query they span. Negative values mean the
        query span is longer than the germline span (non-templated insertions).

    min_vj_delta_igh : int, default=-55
        ``min_vj_delta`` for IGH rearrangements, which carry a D segment and longer
        non-templated regions.

    max_vj_delta : int, default=25
        Upper bound for the V-J span difference. Positive values mean germline bases
        are missing from the query span (deletions or overlapping calls).

    """

    kmer_size: int = 12
    min_seed_hits: int = 2
    max_mismatch_rate: float = 0.15
    min_perfect_extension: int = 5
    max_mismatches: int = 10
    match_score: int = 2
    mismatch_score: int = -3
    gap_open: int = -5
    gap_extend: int = -1
    min_scores: dict = field(default_factory=lambda: dict(DEFAULT_MIN_SCORES))
    min_d_region: int = 5
    cdr3_min_length: int = 5
    cdr3_max_length: int = 27
    min_vj_delta: int = -25
    min_vj_delta_igh: int = -55
    max_vj_delta: int = 25

    def __post_init__(self):
        # fill in missing min_scores and normalize keys
        min_scores = dict(DEFAULT_MIN_SCORES)
        for key, val in (self.min_scores or {}).items():
            if key.upper() not in SEGMENT_TYPES:
                raise ConfigError(
                    f"Invalid segment type in min_scores: {key}. Must be one of {SEGMENT_TYPES}"
                )
            min_scores[key.upper()] = val
        object.__setattr__(self, "min_scores", min_scores)
        self._validate()

    def _validate(self):
        if self.kmer_size < 1:
            raise ConfigError(f"kmer_size must be positive, got {self.kmer_size}")
        if self.min_seed_hits < 1:
            raise ConfigError(
                f"min_seed_hits must be positive, got {self.min_seed_hits}"
            )
        if not 0 <= self.max_mismatch_rate <= 1:
            raise ConfigError(
                f"max_mismatch_rate must be between 0 and 1, got {self.max_mismatch_rate}"
            )
        if self.min_perfect_extension < 1:
            raise ConfigError(
                f"min_perfect_extension must be positive, got {self.min_perfect_extension}"
            )
        if self.max_mismatches < 0:
            raise ConfigError(
                f"max_mismatches must be >= 0, got {self.max_mismatches}"
            )
        if self.match_score <= 0:
            raise ConfigError(f"match_score must be > 0, got {self.match_score}")
        for name in ["mismatch_score", "gap_open", "gap_extend"]:
            if getattr(self, name) > 0:
                raise ConfigError(f"{name} must be <= 0, got {getattr(self, name)}")
        if not 0 <= self.cdr3_min_length <= self.cdr3_max_length:
            raise ConfigError(
                f"Invalid CDR3 length bounds: {self.cdr3_min_length}-{self.cdr3_max_length}"
            )
        if max(self.min_vj_delta, self.min_vj_delta_igh) > self.max_vj_delta:
            raise ConfigError(
                f"Invalid V-J delta bounds: min {self.min_vj_delta} (IGH {self.min_vj_delta_igh}), max {self.max_vj_delta}"
            )

    def __hash__(self):
        # min_scores is a dict, so it's hashed as sorted items
        values = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, dict):
                value = tuple(sorted(value.items()))
            values.append(value)
        return hash(tuple(values))

    @property
    def alignment_params(self) -> dict:
        """
        Scoring parameters in the format expected by ``abutils`` pairwise aligners.
        """
        return {
            "match": self.match_score,
            "mismatch": self.mismatch_score,
            "gap_open": self.gap_open,
            "gap_extend": self.gap_extend,
        }

    def min_score(self, segment_type: str) -> int:
        return self.min_scores[segment_type.upper()]

    def to_dict(self) -> dict:
        return asdict(self)

    def replace(self, **kwargs) -> "AnnotationConfig":
        """
        Returns a copy of the config with updated values. Keys of the form
        ``min_score_v`` update the corresponding entry of ``min_scores``.
        """
        kwargs = _collect_min_scores(kwargs, dict(self.min_scores))
        _check_keys(kwargs)
        return replace(self, **kwargs)

    @classmethod
    def from_dict(cls, params: Optional[dict] = None) -> "AnnotationConfig":
        """
        Builds a config from a ``dict``. Unknown keys raise ``ConfigError``.
        """
        params = _collect_min_scores(dict(params or {}), dict(DEFAULT_MIN_SCORES))
        _check_keys(params)
        return cls(**params)

    @classmethod
    def from_string(cls, params: Optional[str] = None) -> "AnnotationConfig":
        """
        Builds a config from comma-separated ``key=value`` pairs, for example
        ``"kmer_size=14,min_seed_hits=3,min_score_v=60"``.
        """
        try:
            parsed = parse_dict_from_string(value=params)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        return cls.from_dict(parsed)


def resolve_config(
    config: Union["AnnotationConfig", dict, str, None] = None,
) -> AnnotationConfig:
    """
    Accepts an ``AnnotationConfig``, a ``dict``, a ``key=value`` string or ``None``
    and returns an ``AnnotationConfig``.
    """
    if config is None:
        return AnnotationConfig()
    if isinstance(config, AnnotationConfig):
        return config
    if isinstance(config, dict):
        return AnnotationConfig.from_dict(config)
    if isinstance(config, str):
        return AnnotationConfig.from_string(config)
    raise ConfigError(f"Invalid config type: {type(config)}")


def _collect_min_scores(params: dict, min_scores: dict) -> dict:
    if "min_scores" in params:
        min_scores.update(
            {k.upper(): v for k, v in (params.pop("min_scores") or {}).items()}
        )
    for key in list(params.keys()):
        if key.startswith("min_score_"):
            min_scores[key.split("_")[-1].upper()] = params.pop(key)
    params["min_scores"] = min_scores
    return params


def _check_keys(params: dict) -> None:
    valid = [f.name for f in fields(AnnotationConfig)]
    unknown = [k for k in params if k not in valid]
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")
