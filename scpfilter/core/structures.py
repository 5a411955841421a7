from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

import numpy as np
import polars as pl

from scpfilter.core.exceptions import AssayNotFoundError, DimensionError, ValidationError

if TYPE_CHECKING:
    from scpfilter.core.types import BooleanMask, MaskMatrix, Matrix, ProvenanceParams


class MaskCode(IntEnum):
    """
    Data status codes stored in ScpMatrix.M.
    """
    VALID = 0         # Valid, detected values
    MBR = 1          # Match Between Runs missing
    LOD = 2          # Below Limit of Detection
    FILTERED = 3     # Filtered out (quality control)
    OUTLIER = 4      # Statistical outlier
    IMPUTED = 5      # Imputed/filled value
    UNCERTAIN = 6    # Uncertain data quality


@dataclass
class ProvenanceLog:
    """
    记录对容器执行的操作历史。
    Record of operations performed on the container.
    """
    timestamp: str
    action: str
    params: ProvenanceParams
    software_version: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ScpMatrix:
    """
    最小数据单元: 物理存储层，负责数值和状态。
    Minimal data unit: Physical storage layer responsible for values and status.

    Attributes:
        X (Union[np.ndarray, sp.spmatrix]): Quantitative value matrix, dense or sparse (CSR/CSC).
                                            Shape: (N_samples, M_features_local)
        M (Union[np.ndarray, sp.spmatrix, None]): Status mask matrix (int8), see MaskCode.
                                            Shape: (N_samples, M_features_local)
                                            If None, all values are considered valid.
    """
    X: Matrix
    M: Optional[MaskMatrix] = None

    def __post_init__(self):
        if not np.issubdtype(self.X.dtype, np.floating):
            self.X = self.X.astype(np.float64)

        if self.M is not None:
            if self.X.shape != self.M.shape:
                raise DimensionError(
                    f"Shape mismatch: X {self.X.shape} != M {self.M.shape}",
                    expected_shape=self.X.shape,
                    actual_shape=self.M.shape,
                )

            if isinstance(self.M, np.ndarray):
                valid_codes = [code.value for code in MaskCode]
                if not np.all(np.isin(self.M, valid_codes)):
                    invalid_values = np.setdiff1d(np.unique(self.M), valid_codes)
                    raise ValidationError(
                        f"Invalid mask codes found: {invalid_values}. "
                        f"Valid codes are: {valid_codes}",
                        field="M",
                    )

            if self.M.dtype != np.int8:
                self.M = self.M.astype(np.int8)

    def select_features(self, feature_indices: np.ndarray, copy_data: bool = True) -> ScpMatrix:
        """
        Return a new matrix restricted to the given feature (column) indices.
        """
        new_X = self.X[:, feature_indices]
        new_M = self.M[:, feature_indices] if self.M is not None else None

        if copy_data:
            new_X = new_X.copy()
            if new_M is not None:
                new_M = new_M.copy()

        return ScpMatrix(X=new_X, M=new_M)


@dataclass
class AggregationLink:
    """
    描述从源 Assay 到目标 Assay 的特征聚合关系 (例如 Peptide -> Protein)。
    Describes the feature aggregation relationship from source Assay to target Assay.
    """
    source_assay: str
    target_assay: str
    # Linkage table: must contain 'source_id' and 'target_id' columns mapping feature IDs.
    linkage: pl.DataFrame

    def __post_init__(self):
        required_cols = {"source_id", "target_id"}
        if not required_cols.issubset(set(self.linkage.columns)):
            raise ValidationError(
                f"Linkage DataFrame must contain columns: {sorted(required_cols)}",
                field="linkage",
            )

    def restrict(self, source_ids: pl.Series, target_ids: pl.Series) -> AggregationLink:
        """
        Keep only the linkage rows whose source and target features still exist.
        """
        linkage = self.linkage.filter(
            pl.col("source_id").is_in(source_ids.to_list())
            & pl.col("target_id").is_in(target_ids.to_list())
        )
        return AggregationLink(
            source_assay=self.source_assay,
            target_assay=self.target_assay,
            linkage=linkage,
        )


class Assay:
    """
    特征子对象: 负责管理特定特征空间下的数据。
    Feature SubObject: Manages data under a specific feature space.
    """
    def __init__(
        self,
        var: pl.DataFrame,
        layers: Optional[Dict[str, ScpMatrix]] = None,
        feature_id_col: str = "_index"
    ):
        """
        Args:
            var (pl.DataFrame): Local feature metadata, one row per feature.
                                MUST contain a unique ID column specified by feature_id_col.
            layers (Dict[str, ScpMatrix], optional): Data layers. Defaults to None.
            feature_id_col (str): Column name in 'var' that serves as the unique feature identifier.
                                  Defaults to "_index".
        """
        self.feature_id_col = feature_id_col

        if feature_id_col not in var.columns:
            raise ValidationError(
                f"Feature ID column '{feature_id_col}' not found in var.",
                field="feature_id_col",
            )

        if var[feature_id_col].n_unique() != var.height:
            raise ValidationError(
                f"Feature ID column '{feature_id_col}' is not unique.",
                field="feature_id_col",
            )

        self.var: pl.DataFrame = var
        self.layers: Dict[str, ScpMatrix] = layers if layers is not None else {}

        self._validate()

    def _validate(self):
        """
        验证所有 Layer 的特征维度是否与 var 对齐。
        Validate that feature dimensions of all Layers align with var.
        """
        for name, matrix in self.layers.items():
            if matrix.X.shape[1] != self.n_features:
                raise DimensionError(
                    f"Feature dimension mismatch in Layer '{name}': "
                    f"Matrix has {matrix.X.shape[1]}, Assay var has {self.n_features}",
                    expected_shape=(matrix.X.shape[0], self.n_features),
                    actual_shape=matrix.X.shape,
                )

    @property
    def n_features(self) -> int:
        return self.var.height

    @property
    def feature_ids(self) -> pl.Series:
        return self.var[self.feature_id_col]

    def add_layer(self, name: str, matrix: ScpMatrix) -> None:
        """
        添加新的数据层。

        Args:
            name (str): Layer name (e.g., 'raw', 'log', 'imputed').
            matrix (ScpMatrix): Matrix object.
        """
        if matrix.X.shape[1] != self.n_features:
            raise DimensionError(
                f"Feature dimension mismatch: Layer has {matrix.X.shape[1]}, "
                f"Assay var has {self.n_features}",
                expected_shape=(matrix.X.shape[0], self.n_features),
                actual_shape=matrix.X.shape,
            )
        self.layers[name] = matrix

    def __repr__(self) -> str:
        return f"<Assay n_features={self.n_features}, layers={list(self.layers.keys())}>"

    def subset(self, feature_indices: Union[List[int], np.ndarray], copy_data: bool = True) -> Assay:
        """
        Return a new Assay with a subset of features.

        Args:
            feature_indices: Indices of features to keep, in the order to keep them.
            copy_data: Whether to copy the underlying data. Defaults to True.
        """
        feature_indices = np.asarray(feature_indices, dtype=np.int64)
        new_var = self.var[feature_indices, :]
        new_layers = {
            name: matrix.select_features(feature_indices, copy_data=copy_data)
            for name, matrix in self.layers.items()
        }
        return Assay(var=new_var, layers=new_layers, feature_id_col=self.feature_id_col)


class ScpContainer:
    """
    顶层容器: 负责全局样本索引的管理和不同模态 (Assay) 的调度。
    Top-level container: Manages global sample index and dispatches different Assays.

    Processing functions never modify a container in place; they return a new
    one sharing untouched parts with the input.
    """
    def __init__(
        self,
        obs: pl.DataFrame,
        assays: Optional[Dict[str, Assay]] = None,
        links: Optional[List[AggregationLink]] = None,
        history: Optional[List[ProvenanceLog]] = None,
        sample_id_col: str = "_index"
    ):
        """
        Args:
            obs (pl.DataFrame): Global sample metadata.
                                MUST contain a unique ID column specified by sample_id_col.
            assays (Dict[str, Assay], optional): Assays registry, in insertion order. Defaults to None.
            links (List[AggregationLink], optional): Feature aggregation relations (e.g. Peptide -> Protein).
            history (List[ProvenanceLog], optional): Provenance log. Defaults to None.
            sample_id_col (str): Column name in 'obs' that serves as the unique sample identifier.
                                 Defaults to "_index".
        """
        self.sample_id_col = sample_id_col

        if sample_id_col not in obs.columns:
            raise ValidationError(
                f"Sample ID column '{sample_id_col}' not found in obs.",
                field="sample_id_col",
            )

        if obs[sample_id_col].n_unique() != obs.height:
            raise ValidationError(
                f"Sample ID column '{sample_id_col}' is not unique.",
                field="sample_id_col",
            )

        self.obs: pl.DataFrame = obs
        self.assays: Dict[str, Assay] = assays if assays is not None else {}
        self.links: List[AggregationLink] = links if links is not None else []
        self.history: List[ProvenanceLog] = history if history is not None else []

        self._validate()
        if self.links:
            self.validate_links()

    @property
    def n_samples(self) -> int:
        return self.obs.height

    @property
    def sample_ids(self) -> pl.Series:
        return self.obs[self.sample_id_col]

    def _validate(self):
        """
        验证所有 Assay 的样本维度是否与全局 obs 对齐。
        Validate that sample dimensions of all Assays align with global obs.
        """
        for assay_name, assay in self.assays.items():
            for layer_name, matrix in assay.layers.items():
                if matrix.X.shape[0] != self.n_samples:
                    raise DimensionError(
                        f"Sample dimension mismatch in Assay '{assay_name}', Layer '{layer_name}': "
                        f"Matrix has {matrix.X.shape[0]}, Container obs has {self.n_samples}",
                        expected_shape=(self.n_samples, matrix.X.shape[1]),
                        actual_shape=matrix.X.shape,
                    )

    def validate_links(self):
        """
        Validate that all links connect existing assays.
        """
        for link in self.links:
            if link.source_assay not in self.assays:
                raise ValidationError(f"Link source assay '{link.source_assay}' not found.", field="links")
            if link.target_assay not in self.assays:
                raise ValidationError(f"Link target assay '{link.target_assay}' not found.", field="links")

    def add_assay(self, name: str, assay: Assay) -> None:
        """
        注册新的模态 (Assay)。

        Args:
            name (str): Assay name (e.g., 'proteins', 'peptides').
            assay (Assay): Assay object.
        """
        if name in self.assays:
            raise ValidationError(f"Assay '{name}' already exists.", field="assays")

        for layer_name, matrix in assay.layers.items():
            if matrix.X.shape[0] != self.n_samples:
                raise DimensionError(
                    f"Sample dimension mismatch in new Assay '{name}', Layer '{layer_name}': "
                    f"Matrix has {matrix.X.shape[0]}, Container obs has {self.n_samples}",
                    expected_shape=(self.n_samples, matrix.X.shape[1]),
                    actual_shape=matrix.X.shape,
                )
        self.assays[name] = assay

    def log_operation(self, action: str, params: ProvenanceParams, description: Optional[str] = None, software_version: Optional[str] = None):
        """
        记录操作日志。
        Log an operation to the history.
        """
        log = ProvenanceLog(
            timestamp=datetime.now().isoformat(),
            action=action,
            params=params,
            software_version=software_version,
            description=description
        )
        self.history.append(log)

    def subset_features(self, masks: Mapping[str, BooleanMask]) -> ScpContainer:
        """
        Return a new container with the features of each assay subset by a boolean mask.

        Args:
            masks: Mapping from assay name to a boolean mask aligned with that
                   assay's features. Masks may have different lengths across
                   assays. Assays without a mask are kept unchanged.

        Returns:
            ScpContainer: New container; samples, history and untouched assays
                          are shared with this one. Links are restricted to the
                          remaining features.
        """
        for name in masks:
            if name not in self.assays:
                raise AssayNotFoundError(name, available_assays=list(self.assays))

        new_assays = {}
        for name, assay in self.assays.items():
            if name not in masks:
                new_assays[name] = assay
                continue
            mask = _as_feature_mask(masks[name], assay.n_features, name)
            new_assays[name] = assay.subset(np.flatnonzero(mask), copy_data=True)

        new_links = [
            link.restrict(
                new_assays[link.source_assay].feature_ids,
                new_assays[link.target_assay].feature_ids,
            )
            for link in self.links
        ]

        return ScpContainer(
            obs=self.obs,
            assays=new_assays,
            links=new_links,
            history=list(self.history),
            sample_id_col=self.sample_id_col,
        )

    def filter_features(self, filter: Any, na_rm: bool = False) -> ScpContainer:
        """
        Filter features of every assay on their var metadata.

        Shortcut for scpfilter.core.filtering.filter_features(self, filter, na_rm),
        convenient for chaining filters.
        """
        from scpfilter.core.filtering import filter_features

        return filter_features(self, filter, na_rm=na_rm)

    def __repr__(self) -> str:
        assays_desc = ", ".join([f"{k}({v.n_features})" for k, v in self.assays.items()])
        return f"<ScpContainer n_samples={self.n_samples}, assays=[{assays_desc}]>"


def _as_feature_mask(mask: Any, n_features: int, assay_name: str) -> np.ndarray:
    """Convert a mask to a 1D boolean numpy array and check its length."""
    mask_arr = mask.to_numpy() if isinstance(mask, pl.Series) else np.asarray(mask)

    if mask_arr.ndim != 1 or mask_arr.shape[0] != n_features:
        raise DimensionError(
            f"Mask length ({mask_arr.shape[0] if mask_arr.ndim else 0}) does not match "
            f"number of features ({n_features}) in assay '{assay_name}'",
            expected_shape=(n_features,),
            actual_shape=mask_arr.shape,
        )
    if mask_arr.dtype != bool:
        raise ValidationError(
            f"Mask for assay '{assay_name}' must be boolean, got {mask_arr.dtype}",
            field="masks",
        )
    return mask_arr
