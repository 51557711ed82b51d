from __future__ import annotations

"""
Model comparison
================

Fits a sequence of Poisson frequency models of increasing flexibility on the same
learning sample and scores each on the learning (in-sample) and test
(out-of-sample) policies:

| name         | kind        | hidden layers       |
|--------------|-------------|---------------------|
| Homogeneous  | homogeneous | intercept only      |
| GLM          | glm         | scikit-learn, IRLS-type solver on the GLM design |
| GLMnet       | network     | none (GLM trained by gradient descent) |
| NN1 .. NN4   | network     | 1 .. 4 tanh layers  |
| NN3dropout   | network     | 3 layers + dropout  |

Every network of one run is trained with the same `TrainingConfig` (optimizer,
learning rate, epochs, batch size, seed). Models are fitted one after the other.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from .builder import (
    TrainingConfig,
    TrainingHistory,
    count_parameters,
    glm_predict,
    homogeneous_fit,
    homogeneous_predict,
    init_network,
    predict_network,
    train_glm,
    train_network,
    train_or_load_glm,
    train_or_load_network,
)
from .builder.glm import glm_n_params
from .config import DEFAULT_DROPOUT_RATE, DEFAULT_GLM_ALPHA
from .features import build_glm_transformer, build_nn_transformer, make_design
from .metrics import ModelResult, average_frequency, poisson_deviance, results_frame

logger = logging.getLogger(__name__)

MODEL_KINDS = ("homogeneous", "glm", "network")


@dataclass(frozen=True)
class ModelSpec:
    name: str
    kind: str
    depth: int = 0
    units: Optional[tuple[int, ...]] = None
    dropout: float = 0.0

    def __post_init__(self):
        if self.kind not in MODEL_KINDS:
            raise ValueError(f"Unknown model kind: {self.kind} (choose from {MODEL_KINDS})")


def default_model_specs() -> list[ModelSpec]:
    return [
        ModelSpec("Homogeneous", "homogeneous"),
        ModelSpec("GLM", "glm"),
        ModelSpec("GLMnet", "network", depth=0),
        ModelSpec("NN1", "network", depth=1),
        ModelSpec("NN2", "network", depth=2),
        ModelSpec("NN3", "network", depth=3),
        ModelSpec("NN4", "network", depth=4),
        ModelSpec("NN3dropout", "network", depth=3, dropout=DEFAULT_DROPOUT_RATE),
    ]


def select_specs(specs: Sequence[ModelSpec], names: Optional[Iterable[str]]) -> list[ModelSpec]:
    """Keep the specs named in `names` (in `names` order); all specs when `names` is None."""
    if names is None:
        return list(specs)
    by_name = {s.name.lower(): s for s in specs}
    out = []
    for name in names:
        key = name.strip().lower()
        if key not in by_name:
            raise KeyError(f"Unknown model: {name} (available: {[s.name for s in specs]})")
        out.append(by_name[key])
    return out


@dataclass
class FittedModel:
    """A trained model together with the feature transformer fitted on its learning sample."""

    spec: ModelSpec
    model: object
    transformer: object = None
    n_params: int = 1
    history: TrainingHistory = field(default_factory=TrainingHistory)
    runtime_s: float = 0.0

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        """Expected claim counts for the policies in `df`."""
        exposure = df["Exposure"].to_numpy(dtype=float)
        if self.spec.kind == "homogeneous":
            return homogeneous_predict(self.model, exposure)
        design = make_design(df, self.transformer, fit=False)
        if self.spec.kind == "glm":
            return glm_predict(self.model, design.X, design.exposure)
        return predict_network(self.model, design.X, design.exposure)

    def predict_frequency(self, df: pd.DataFrame) -> np.ndarray:
        return self.predict(df) / df["Exposure"].to_numpy(dtype=float)


def fit_model(
    spec: ModelSpec,
    train_df: pd.DataFrame,
    config: Optional[TrainingConfig] = None,
    *,
    glm_alpha: float = DEFAULT_GLM_ALPHA,
    model_dir: Optional[str | Path] = None,
    force_retrain: bool = False,
) -> FittedModel:
    """Fit one model on the learning sample.

    With `model_dir=None` nothing is cached; otherwise the GLM / networks are
    trained or loaded through the `train_or_load_*` builders.
    """
    if config is None:
        config = TrainingConfig()

    start = time.perf_counter()

    if spec.kind == "homogeneous":
        lam = homogeneous_fit(train_df["ClaimNb"].to_numpy(), train_df["Exposure"].to_numpy())
        return FittedModel(spec=spec, model=lam, runtime_s=time.perf_counter() - start)

    if spec.kind == "glm":
        transformer = build_glm_transformer()
        design = make_design(train_df, transformer, fit=True)
        if model_dir is None:
            model = train_glm(design.X, design.y, design.exposure, alpha=glm_alpha)
            runtime_s = time.perf_counter() - start
        else:
            model, meta = train_or_load_glm(
                design.X,
                design.y,
                design.exposure,
                name=spec.name,
                alpha=glm_alpha,
                model_dir=model_dir,
                force_retrain=force_retrain,
            )
            # training time of the cached fit, not the load
            runtime_s = meta["runtime_s"]
        return FittedModel(
            spec=spec,
            model=model,
            transformer=transformer,
            n_params=glm_n_params(model),
            runtime_s=runtime_s,
        )

    transformer = build_nn_transformer()
    design = make_design(train_df, transformer, fit=True)
    if model_dir is None:
        model = init_network(
            design.n_features,
            design.y,
            design.exposure,
            depth=spec.depth,
            units=spec.units,
            dropout=spec.dropout,
            seed=config.seed,
        )
        history = train_network(model, design.X, design.y, design.exposure, config)
    else:
        model, history, _ = train_or_load_network(
            spec.name,
            design.X,
            design.y,
            design.exposure,
            depth=spec.depth,
            units=spec.units,
            dropout=spec.dropout,
            config=config,
            model_dir=model_dir,
            force_retrain=force_retrain,
        )
    return FittedModel(
        spec=spec,
        model=model,
        transformer=transformer,
        n_params=count_parameters(model),
        history=history,
        runtime_s=history.runtime_s,
    )


def evaluate_model(fitted: FittedModel, train_df: pd.DataFrame, test_df: pd.DataFrame) -> ModelResult:
    mu_train = fitted.predict(train_df)
    mu_test = fitted.predict(test_df)
    return ModelResult(
        name=fitted.spec.name,
        n_params=int(fitted.n_params),
        epochs=fitted.history.epochs,
        runtime_s=float(fitted.runtime_s),
        in_sample_deviance=poisson_deviance(train_df["ClaimNb"], mu_train),
        out_of_sample_deviance=poisson_deviance(test_df["ClaimNb"], mu_test),
        avg_frequency=average_frequency(mu_test, test_df["Exposure"]),
    )


def run_experiment(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    specs: Optional[Sequence[ModelSpec]] = None,
    config: Optional[TrainingConfig] = None,
    *,
    glm_alpha: float = DEFAULT_GLM_ALPHA,
    model_dir: Optional[str | Path] = None,
    force_retrain: bool = False,
) -> tuple[pd.DataFrame, dict[str, TrainingHistory]]:
    """Fit and score every model; returns the results table and the network loss histories."""
    if specs is None:
        specs = default_model_specs()
    if config is None:
        config = TrainingConfig()

    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate model names: {names}")

    results: list[ModelResult] = []
    histories: dict[str, TrainingHistory] = {}
    for spec in specs:
        logger.info("Fitting %s (%s)", spec.name, spec.kind)
        fitted = fit_model(
            spec,
            train_df,
            config,
            glm_alpha=glm_alpha,
            model_dir=model_dir,
            force_retrain=force_retrain,
        )
        result = evaluate_model(fitted, train_df, test_df)
        logger.info(
            "%s: in-sample=%.5f out-of-sample=%.5f (%.1fs)",
            result.name,
            result.in_sample_deviance,
            result.out_of_sample_deviance,
            result.runtime_s,
        )
        results.append(result)
        if spec.kind == "network":
            histories[spec.name] = fitted.history

    return results_frame(results), histories
