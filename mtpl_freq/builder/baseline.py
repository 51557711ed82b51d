from __future__ import annotations

import numpy as np


def homogeneous_fit(y: np.ndarray, exposure: np.ndarray) -> float:
    """Homogeneous model: the MLE of a single frequency, sum(N) / sum(exposure).

    This "model" has one parameter and ignores every covariate.
    """
    total_exposure = float(np.sum(exposure))
    if total_exposure <= 0:
        raise ValueError("Total exposure must be positive")
    return float(np.sum(y)) / total_exposure


def homogeneous_predict(lam: float, exposure: np.ndarray) -> np.ndarray:
    """Expected claim counts lam * exposure."""
    return lam * np.asarray(exposure, dtype=float)
