"""Shared pytest fixtures for scpfilter tests.

This module provides reusable fixtures for testing the container structures
and feature filtering. The main fixture is a small three-level container
(PSMs -> peptides -> proteins) whose assays have heterogeneous feature
metadata: the proteins assay has no 'location' variable, and the PSM and
peptide assays contain missing values.

Feature metadata of the PSM assay::

    idx  location        pval
    0    Mitochondrion   0.01
    1    Cytoplasm       0.5
    2    None            0.02
    3    Mitochondrion   None
    4    unknown         0.03
    5    Mito-like       0.04
    6    Nucleus         0.8
    7    Mitochondrion   0.001
    8    ER (lumen)      0.1
    9    None            0.03
"""

import numpy as np
import polars as pl
import pytest
from scipy import sparse

from scpfilter.core import (
    AggregationLink,
    Assay,
    MaskCode,
    ScpContainer,
    ScpMatrix,
)

N_SAMPLES = 4


def make_matrix(n_features: int, offset: int = 0) -> np.ndarray:
    """Matrix whose column j holds the value offset + j in every sample."""
    return np.tile(np.arange(offset, offset + n_features, dtype=np.float64), (N_SAMPLES, 1))


@pytest.fixture
def sample_obs() -> pl.DataFrame:
    """Create sample obs DataFrame with 4 samples.

    Returns
    -------
    pl.DataFrame
        DataFrame with sample IDs and batch assignments.
    """
    return pl.DataFrame({
        "_index": ["S1", "S2", "S3", "S4"],
        "batch": ["batch1", "batch1", "batch2", "batch2"],
    })


@pytest.fixture
def psm_var() -> pl.DataFrame:
    """Feature metadata of the PSM assay (see module docstring)."""
    return pl.DataFrame({
        "_index": [f"PSM{i}" for i in range(1, 11)],
        "location": [
            "Mitochondrion",
            "Cytoplasm",
            None,
            "Mitochondrion",
            "unknown",
            "Mito-like",
            "Nucleus",
            "Mitochondrion",
            "ER (lumen)",
            None,
        ],
        "pval": [0.01, 0.5, 0.02, None, 0.03, 0.04, 0.8, 0.001, 0.1, 0.03],
    })


@pytest.fixture
def peptide_var() -> pl.DataFrame:
    """Feature metadata of the peptide assay."""
    return pl.DataFrame({
        "_index": ["PEP1", "PEP2", "PEP3", "PEP4"],
        "location": ["Mitochondrion", "Cytoplasm", "Mitochondrion", "unknown"],
        "pval": [0.02, 0.1, None, 0.5],
    })


@pytest.fixture
def protein_var() -> pl.DataFrame:
    """Feature metadata of the protein assay, without a 'location' variable."""
    return pl.DataFrame({
        "_index": ["PROT1", "PROT2", "PROT3"],
        "pval": [0.01, 0.2, 0.03],
        "protein_class": ["enzyme", "transporter", "enzyme"],
    })


@pytest.fixture
def sample_mask_M() -> np.ndarray:
    """Create mask matrix for the PSM assay with various mask codes.

    Returns
    -------
    np.ndarray
        int8 array of shape (4, 10).
    """
    M = np.zeros((N_SAMPLES, 10), dtype=np.int8)
    M[0, 0] = MaskCode.MBR
    M[1, 2] = MaskCode.LOD
    M[2, 7] = MaskCode.IMPUTED
    M[3, 9] = MaskCode.OUTLIER
    return M


@pytest.fixture
def feat_container(
    sample_obs: pl.DataFrame,
    psm_var: pl.DataFrame,
    peptide_var: pl.DataFrame,
    protein_var: pl.DataFrame,
    sample_mask_M: np.ndarray,
) -> ScpContainer:
    """Create a container with psms, peptides and proteins assays.

    The PSM assay has a masked dense layer, the peptide assay a sparse
    layer, and a link maps peptides to proteins.

    Returns
    -------
    ScpContainer
        Container with three assays of 10, 4 and 3 features.
    """
    psms = Assay(
        var=psm_var,
        layers={"raw": ScpMatrix(X=make_matrix(10), M=sample_mask_M)},
    )
    peptides = Assay(
        var=peptide_var,
        layers={"raw": ScpMatrix(X=sparse.csr_matrix(make_matrix(4, offset=100)))},
    )
    proteins = Assay(
        var=protein_var,
        layers={
            "raw": ScpMatrix(X=make_matrix(3, offset=200)),
            "log": ScpMatrix(X=np.log1p(make_matrix(3, offset=200))),
        },
    )
    link = AggregationLink(
        source_assay="peptides",
        target_assay="proteins",
        linkage=pl.DataFrame({
            "source_id": ["PEP1", "PEP2", "PEP3", "PEP4"],
            "target_id": ["PROT1", "PROT1", "PROT2", "PROT3"],
        }),
    )
    return ScpContainer(
        obs=sample_obs,
        assays={"psms": psms, "peptides": peptides, "proteins": proteins},
        links=[link],
    )


@pytest.fixture
def location_container(sample_obs: pl.DataFrame) -> ScpContainer:
    """Single-assay container with location = ["Mitochondrion", "Cytoplasm", None]."""
    var = pl.DataFrame({
        "_index": ["F1", "F2", "F3"],
        "location": ["Mitochondrion", "Cytoplasm", None],
    })
    assay = Assay(var=var, layers={"raw": ScpMatrix(X=make_matrix(3))})
    return ScpContainer(obs=sample_obs, assays={"features": assay})


@pytest.fixture
def nan_container(sample_obs: pl.DataFrame) -> ScpContainer:
    """Single-assay container whose float variable holds NaN and null."""
    var = pl.DataFrame({
        "_index": ["F1", "F2", "F3", "F4"],
        "score": [0.5, float("nan"), None, 2.0],
        "n_peptides": [1, 3, None, 5],
    })
    assay = Assay(var=var, layers={"raw": ScpMatrix(X=make_matrix(4))})
    return ScpContainer(obs=sample_obs, assays={"features": assay})
