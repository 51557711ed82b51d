from __future__ import annotations

import time
from pathlib import Path

import joblib
import numpy as np
from sklearn.linear_model import PoissonRegressor

from ..config import DEFAULT_GLM_ALPHA, DEFAULT_GLM_MAX_ITER, MODELS_DIR, PROJECT_ROOT


def train_glm(
    X_train: np.ndarray,
    y_train: np.ndarray,
    exposure: np.ndarray,
    *,
    alpha: float = DEFAULT_GLM_ALPHA,
    max_iter: int = DEFAULT_GLM_MAX_ITER,
) -> PoissonRegressor:
    """Train a Poisson GLM with log link and log(exposure) offset.

    scikit-learn has no offset argument; fitting the frequency N / exposure with
    `sample_weight=exposure` gives the same estimating equations as counts with
    an offset of log(exposure).
    """
    exposure = np.asarray(exposure, dtype=float)
    if (exposure <= 0).any():
        raise ValueError("Exposure must be strictly positive")
    freq = np.asarray(y_train, dtype=float) / exposure
    model = PoissonRegressor(alpha=alpha, max_iter=max_iter)
    model.fit(X_train, freq, sample_weight=exposure)
    return model


def glm_predict(model: PoissonRegressor, X: np.ndarray, exposure: np.ndarray) -> np.ndarray:
    """Expected claim counts exposure * exp(X beta)."""
    return model.predict(X) * np.asarray(exposure, dtype=float)


def glm_n_params(model: PoissonRegressor) -> int:
    return int(np.size(model.coef_) + 1)


def _glm_model_path(*, model_dir: str | Path, name: str, n_train: int, alpha: float, max_iter: int) -> Path:
    """Deterministic cache path for a given (name, sample size, penalty, iteration cap)."""
    model_dir = Path(model_dir)
    if not model_dir.is_absolute():
        model_dir = PROJECT_ROOT / model_dir
    model_dir.mkdir(parents=True, exist_ok=True)
    a = str(alpha).replace(".", "p")
    return model_dir / f"{name.lower()}_n{n_train}_a{a}_it{max_iter}.joblib"


def train_or_load_glm(
    X_train: np.ndarray,
    y_train: np.ndarray,
    exposure: np.ndarray,
    *,
    name: str = "GLM",
    alpha: float = DEFAULT_GLM_ALPHA,
    max_iter: int = DEFAULT_GLM_MAX_ITER,
    model_dir: str | Path = MODELS_DIR,
    force_retrain: bool = False,
):
    """Train (or load) the Poisson GLM; returns `(model, meta)`."""
    path = _glm_model_path(model_dir=model_dir, name=name, n_train=len(y_train), alpha=alpha, max_iter=max_iter)
    expected = {
        "alpha": float(alpha),
        "max_iter": int(max_iter),
        "n_train": int(len(y_train)),
        "n_features": int(X_train.shape[1]),
    }
    if path.exists() and not force_retrain:
        payload = joblib.load(path)
        meta = dict(payload.get("meta", {}))
        if all(meta.get(k) == v for k, v in expected.items()):
            meta["saved_to"] = str(path)
            return payload["model"], meta

    start = time.perf_counter()
    model = train_glm(X_train, y_train, exposure, alpha=alpha, max_iter=max_iter)
    meta = {
        "name": name,
        **expected,
        "n_iter": int(model.n_iter_),
        "runtime_s": time.perf_counter() - start,
        "n_params": glm_n_params(model),
        "saved_to": str(path),
    }
    joblib.dump({"model": model, "meta": meta}, path)
    return model, meta
