"""scpfilter core type definitions.

Type aliases shared by the container structures and the filtering
machinery.

Type Categories
--------------
Matrix Types: Dense/sparse matrix representations
Mask Types: Feature selection masks, tri-state and final
Filter Types: Values accepted by variable filters and expressions

Examples
--------
>>> import numpy as np
>>> from scpfilter.core.types import FeatureMask
>>>
>>> keep: FeatureMask = np.array([True, False, True])
"""

from __future__ import annotations

import numpy as np
import polars as pl
import scipy.sparse as sp

# =============================================================================
# Matrix Type Aliases
# =============================================================================

type DenseMatrix = np.ndarray
"""Dense NumPy matrix (2D array) of shape (n_samples, n_features)."""

type SparseMatrix = sp.spmatrix
"""Any scipy sparse matrix format (CSR, CSC, ...)."""

type Matrix = DenseMatrix | SparseMatrix
"""Union of dense and sparse matrix types."""

type MaskMatrix = np.ndarray | sp.spmatrix
"""Status code matrix (int8) holding MaskCode values."""

# =============================================================================
# Mask Type Aliases
# =============================================================================

type RawMask = pl.Series
"""Tri-state feature mask produced by a filter evaluator.

Boolean polars Series with one entry per feature of an assay:
- true: the feature matches
- false: the feature does not match
- null: undefined, the metadata value was missing
"""

type FeatureMask = np.ndarray
"""Final boolean feature mask (no undefined entries).

True values indicate features to keep. Produced by reconcile_mask().
"""

type BooleanMask = np.ndarray | pl.Series | list[bool]
"""Boolean mask accepted by ScpContainer.subset_features()."""

# =============================================================================
# Filter Type Aliases
# =============================================================================

type FilterScalar = str | int | float | np.number
"""Single value compared against a feature metadata column."""

type FilterValue = FilterScalar | list | tuple | np.ndarray | pl.Series
"""Value(s) accepted by VariableFilter().

Must be wholly numeric or wholly character; the filter variant is chosen
from it.
"""

# =============================================================================
# Metadata Type Aliases
# =============================================================================

type JsonValue = None | bool | int | float | str | list["JsonValue"] | dict[str, "JsonValue"]
"""JSON-serializable value."""

type ProvenanceParams = dict[str, JsonValue]
"""Parameter dictionary for ProvenanceLog."""

__all__ = [
    # Matrix types
    "DenseMatrix",
    "SparseMatrix",
    "Matrix",
    "MaskMatrix",
    # Mask types
    "RawMask",
    "FeatureMask",
    "BooleanMask",
    # Filter types
    "FilterScalar",
    "FilterValue",
    # Metadata types
    "JsonValue",
    "ProvenanceParams",
]
