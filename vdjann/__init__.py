# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

from .annotation.annotation import Annotation
from .annotation.annotator import annotate, annotate_single_sequence, summarize
from .core.config import AnnotationConfig
from .core.errors import CatalogError, ConfigError, KmerIndexError, VdjannError
from .core.vdjann import run
from .reference.catalog import Catalog, GeneSegment, load, load_fasta
from .reference.index import KmerIndex, build
from .version import __version__
