from __future__ import annotations

"""
Feature engineering
===================

This module turns cleaned policies into numeric design matrices.

## Two designs
- **GLM design** (`build_glm_transformer`): the classical actuarial coding of the
  French MTPL case study. Ages are binned into risk classes, vehicle power is a
  factor capped at 9, `Density` enters on the log scale, `Area` as an ordinal
  code, and every factor is dummy coded against its first level.
- **Network design** (`build_nn_transformer`): continuous variables are centered
  and scaled (`Density` after a log), factors are one-hot encoded in full.
  The network is left to find its own interactions and non-linearities.

## Leakage rule
Transformers are fitted on the learning sample ONLY (`make_design(..., fit=True)`)
and then applied unchanged to the test sample (`fit=False`).
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import FunctionTransformer, OneHotEncoder, StandardScaler

NUMERIC_FEATURES = ["VehPower", "VehAge", "DrivAge", "BonusMalus", "Density"]
CATEGORICAL_FEATURES = ["Area", "VehBrand", "VehGas", "Region"]

GLM_CATEGORICAL = ["VehPowerGLM", "VehAgeGLM", "DrivAgeGLM", "VehBrand", "VehGas", "Region"]
GLM_CONTINUOUS = ["BonusMalusGLM", "DensityGLM", "AreaGLM"]

VEHPOWER_GLM_CAP = 9
VEHAGE_BINS = [-np.inf, 0, 10, np.inf]
VEHAGE_LABELS = ["0", "1-10", "11+"]
DRIVAGE_BINS = [-np.inf, 20, 25, 30, 40, 50, 70, np.inf]
DRIVAGE_LABELS = ["18-20", "21-25", "26-30", "31-40", "41-50", "51-70", "71+"]
AREA_CODES = {"A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6}


@dataclass(frozen=True)
class FeatureMatrix:
    """Model inputs for one sample: design matrix, claim counts and exposures."""

    X: np.ndarray
    y: np.ndarray
    exposure: np.ndarray
    feature_names: list[str]

    def __len__(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.X.shape[1])


def add_glm_features(df: pd.DataFrame) -> pd.DataFrame:
    """Add the binned / transformed GLM covariates (`*GLM` columns) to a copy of `df`."""
    df = df.copy()
    df["VehPowerGLM"] = df["VehPower"].clip(upper=VEHPOWER_GLM_CAP).astype(int).astype(str)
    df["VehAgeGLM"] = pd.cut(df["VehAge"], bins=VEHAGE_BINS, labels=VEHAGE_LABELS).astype(str)
    df["DrivAgeGLM"] = pd.cut(df["DrivAge"], bins=DRIVAGE_BINS, labels=DRIVAGE_LABELS).astype(str)
    df["BonusMalusGLM"] = df["BonusMalus"].astype(float)
    df["DensityGLM"] = np.log(df["Density"].astype(float))
    area = df["Area"].map(AREA_CODES)
    if area.isna().any():
        unknown = sorted(df.loc[area.isna(), "Area"].astype(str).unique())
        raise ValueError(f"Unknown Area codes: {unknown}")
    df["AreaGLM"] = area.astype(float)
    return df


def build_glm_transformer() -> Pipeline:
    """GLM design: dummy-coded risk classes plus standardized continuous terms."""
    column_trans = ColumnTransformer(
        transformers=[
            (
                "onehot_categorical",
                OneHotEncoder(drop="first", handle_unknown="ignore", sparse_output=False),
                GLM_CATEGORICAL,
            ),
            ("scaled_numeric", StandardScaler(), GLM_CONTINUOUS),
        ],
        remainder="drop",
        sparse_threshold=0.0,
    )
    return make_pipeline(FunctionTransformer(add_glm_features), column_trans)


def build_nn_transformer() -> ColumnTransformer:
    """Network design: centered/scaled numerics and full one-hot factors."""
    log_scale_transformer = make_pipeline(
        FunctionTransformer(func=np.log, feature_names_out="one-to-one"), StandardScaler()
    )
    return ColumnTransformer(
        transformers=[
            ("scaled_numeric", StandardScaler(), ["VehPower", "VehAge", "DrivAge", "BonusMalus"]),
            ("log_scaled_numeric", log_scale_transformer, ["Density"]),
            (
                "onehot_categorical",
                OneHotEncoder(handle_unknown="ignore", sparse_output=False),
                CATEGORICAL_FEATURES,
            ),
        ],
        remainder="drop",
        sparse_threshold=0.0,
    )


def _feature_names(transformer) -> list[str]:
    # the FunctionTransformer in the GLM pipeline has no output names
    last = transformer.steps[-1][1] if isinstance(transformer, Pipeline) else transformer
    return [str(name) for name in last.get_feature_names_out()]


def make_design(df: pd.DataFrame, transformer, *, fit: bool) -> FeatureMatrix:
    """Apply `transformer` to policies and package the result with counts and exposures.

    With `fit=True` the transformer is fitted on `df` first (learning sample only).
    """
    if fit:
        X = transformer.fit_transform(df)
    else:
        X = transformer.transform(df)

    X = np.asarray(X, dtype=np.float32)
    assert np.isfinite(X).all(), "Non-finite values in design matrix"

    return FeatureMatrix(
        X=X,
        y=df["ClaimNb"].to_numpy(dtype=float),
        exposure=df["Exposure"].to_numpy(dtype=float),
        feature_names=_feature_names(transformer),
    )
