from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import mean_poisson_deviance

# Poisson deviance needs strictly positive predictions
MU_FLOOR = 1e-12


def _check_counts(y, mu, sample_weight=None) -> tuple[np.ndarray, np.ndarray]:
    y = np.asarray(y, dtype=float).ravel()
    mu = np.asarray(mu, dtype=float).ravel()
    if y.shape != mu.shape:
        raise ValueError(f"Length mismatch: y has {y.shape[0]} rows, predictions have {mu.shape[0]}")
    if sample_weight is not None and np.asarray(sample_weight).ravel().shape != y.shape:
        raise ValueError("sample_weight must have the same length as y")
    if (y < 0).any():
        raise ValueError("Observed values must be non-negative")
    if not np.isfinite(mu).all():
        raise ValueError("Predictions contain NaN or inf")
    return y, np.maximum(mu, MU_FLOOR)


def poisson_deviance(y, mu) -> float:
    """Mean Poisson deviance per policy on claim counts.

    2 * mean(mu - y + y * log(y / mu)), where the log term is 0 for y = 0.
    `mu` are expected counts, i.e. frequency times exposure.
    """
    y, mu = _check_counts(y, mu)
    return float(mean_poisson_deviance(y, mu))


def frequency_deviance(freq, freq_hat, exposure) -> float:
    """Exposure-weighted mean Poisson deviance on frequencies (claims per policy-year)."""
    freq, freq_hat = _check_counts(freq, freq_hat, exposure)
    return float(mean_poisson_deviance(freq, freq_hat, sample_weight=np.asarray(exposure, dtype=float)))


def average_frequency(counts, exposure) -> float:
    """Portfolio frequency: total (observed or expected) claims over total exposure."""
    total_exposure = float(np.sum(exposure))
    if total_exposure <= 0:
        raise ValueError("Total exposure must be positive")
    return float(np.sum(counts)) / total_exposure


def d2_score(y, mu, exposure: Optional[np.ndarray] = None) -> float:
    """Share of deviance explained relative to the homogeneous model.

    The null model predicts the portfolio frequency times each policy's exposure
    (or the mean count when no exposure is given).
    """
    y, mu = _check_counts(y, mu)
    if exposure is None:
        mu_null = np.full_like(y, y.mean())
    else:
        mu_null = average_frequency(y, exposure) * np.asarray(exposure, dtype=float)
    dev_null = poisson_deviance(y, mu_null)
    if dev_null <= 0:
        return float("nan")
    return 1.0 - poisson_deviance(y, mu) / dev_null


@dataclass
class ModelResult:
    name: str
    n_params: int
    epochs: int
    runtime_s: float
    in_sample_deviance: float
    out_of_sample_deviance: float
    avg_frequency: float


def results_frame(results: Iterable[ModelResult], *, scale: float = 100.0) -> pd.DataFrame:
    """Tabulate model results, deviances reported in units of 10^-2 by default."""
    df = pd.DataFrame([asdict(r) for r in results])
    if df.empty:
        return df
    df = df.set_index("name")
    df["in_sample_deviance"] = df["in_sample_deviance"] * scale
    df["out_of_sample_deviance"] = df["out_of_sample_deviance"] * scale
    return df
