# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

import pytest

from ..core.config import DEFAULT_MIN_SCORES, AnnotationConfig, resolve_config
from ..core.errors import ConfigError, VdjannError
from ..utils.callbacks import parse_dict_from_string

# =============================================
#              CALLBACK PARSING
# =============================================


def test_parse_dict_from_string_converts_values():
    parsed = parse_dict_from_string(
        value="kmer_size=14,max_mismatch_rate=0.2,name=human,debug=true,extra=none"
    )
    assert parsed == {
        "kmer_size": 14,
        "max_mismatch_rate": 0.2,
        "name": "human",
        "debug": True,
        "extra": None,
    }


def test_parse_dict_from_string_empty_returns_none():
    assert parse_dict_from_string(value=None) is None
    assert parse_dict_from_string(value="") is None


def test_parse_dict_from_string_malformed_raises():
    with pytest.raises(ValueError):
        parse_dict_from_string(value="kmer_size")


# =============================================
#               ANNOTATION CONFIG
# =============================================


def test_default_config():
    config = AnnotationConfig()
    assert config.kmer_size == 12
    assert config.min_seed_hits == 2
    assert config.max_mismatch_rate == 0.15
    assert config.min_perfect_extension == 5
    assert config.match_score == 2
    assert config.mismatch_score == -3
    assert config.min_scores == DEFAULT_MIN_SCORES
    assert config.cdr3_min_length == 5
    assert config.cdr3_max_length == 27
    assert config.min_vj_delta == -25
    assert config.min_vj_delta_igh == -55
    assert config.max_vj_delta == 25


def test_partial_min_scores_are_filled_in():
    config = AnnotationConfig(min_scores={"v": 60})
    assert config.min_score("V") == 60
    assert config.min_score("j") == DEFAULT_MIN_SCORES["J"]


def test_invalid_min_scores_key_raises():
    with pytest.raises(ConfigError):
        AnnotationConfig(min_scores={"X": 10})


@pytest.mark.parametrize(
    "params",
    [
        {"kmer_size": 0},
        {"min_seed_hits": 0},
        {"max_mismatch_rate": 1.5},
        {"match_score": 0},
        {"mismatch_score": 3},
        {"gap_open": 5},
        {"cdr3_min_length": -1},
        {"cdr3_min_length": 20, "cdr3_max_length": 10},
        {"min_vj_delta": 30},
        {"min_vj_delta_igh": 30},
    ],
)
def test_invalid_values_raise(params):
    with pytest.raises(ConfigError):
        AnnotationConfig(**params)


def test_config_error_is_vdjann_error():
    with pytest.raises(VdjannError):
        AnnotationConfig(kmer_size=-1)


def test_from_string():
    config = AnnotationConfig.from_string("kmer_size=14,min_seed_hits=3,min_score_v=60")
    assert config.kmer_size == 14
    assert config.min_seed_hits == 3
    assert config.min_score("V") == 60
    assert config.min_score("D") == DEFAULT_MIN_SCORES["D"]


def test_from_string_malformed_raises():
    with pytest.raises(ConfigError):
        AnnotationConfig.from_string("kmer_size")


def test_from_dict_unknown_key_raises():
    with pytest.raises(ConfigError):
        AnnotationConfig.from_dict({"kmer_length": 14})


def test_replace_returns_new_config():
    config = AnnotationConfig()
    updated = config.replace(kmer_size=16, min_score_j=30)
    assert updated.kmer_size == 16
    assert updated.min_score("J") == 30
    assert config.kmer_size == 12
    assert config.min_score("J") == DEFAULT_MIN_SCORES["J"]


def test_to_dict_round_trips():
    config = AnnotationConfig(kmer_size=14, min_scores={"V": 50})
    assert AnnotationConfig.from_dict(config.to_dict()) == config


def test_config_is_hashable():
    config = AnnotationConfig(min_scores={"V": 50})
    assert hash(config) == hash(AnnotationConfig(min_scores={"V": 50}))
    assert len({config, AnnotationConfig()}) == 2
    assert len({config, AnnotationConfig(min_scores={"v": 50})}) == 1


def test_alignment_params():
    config = AnnotationConfig()
    assert config.alignment_params == {
        "match": 2,
        "mismatch": -3,
        "gap_open": -5,
        "gap_extend": -1,
    }


def test_resolve_config():
    config = AnnotationConfig(kmer_size=14)
    assert resolve_config(None) == AnnotationConfig()
    assert resolve_config(config) is config
    assert resolve_config({"kmer_size": 14}) == config
    assert resolve_config("kmer_size=14") == config
    with pytest.raises(ConfigError):
        resolve_config(14)
