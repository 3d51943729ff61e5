# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT


__all__ = ["VdjannError", "CatalogError", "KmerIndexError", "ConfigError"]


class VdjannError(Exception):
    """
    Base class for errors raised while setting up an annotation run.

    Per-sequence outcomes (no candidates, no call, no junction) are never
    raised. They are represented as ``None`` fields on the ``Annotation``.
    """


class CatalogError(VdjannError):
    """
    Raised when a germline reference catalog is empty or malformed.
    """


class KmerIndexError(VdjannError):
    """
    Raised when a k-mer index can't be built from a catalog (for example,
    when the k-mer length is longer than one of the V or J segments).
    """


class ConfigError(VdjannError):
    """
    Raised for unknown or invalid configuration values.
    """
