import numpy as np
import pandas as pd
import pytest

AREAS = ["A", "B", "C", "D", "E", "F"]
BRANDS = ["B1", "B2", "B3", "B5", "B12"]
REGIONS = ["R11", "R24", "R53", "R82", "R93"]


def make_policies(n: int = 2000, seed: int = 0) -> pd.DataFrame:
    """Synthetic freMTPL2freq-like table; frequency driven by BonusMalus and DrivAge."""
    rng = np.random.default_rng(seed)
    drivage = rng.integers(18, 95, size=n)
    bonus = rng.integers(50, 160, size=n)
    exposure = rng.uniform(0.05, 1.0, size=n)
    log_rate = -2.3 + 0.02 * (bonus - 80) - 0.01 * (drivage - 45)
    claims = rng.poisson(exposure * np.exp(log_rate))
    return pd.DataFrame(
        {
            "IDpol": np.arange(1, n + 1),
            "ClaimNb": claims,
            "Exposure": exposure,
            "Area": rng.choice(AREAS, size=n),
            "VehPower": rng.integers(4, 15, size=n),
            "VehAge": rng.integers(0, 25, size=n),
            "DrivAge": drivage,
            "BonusMalus": bonus,
            "VehBrand": rng.choice(BRANDS, size=n),
            "VehGas": rng.choice(["Regular", "Diesel"], size=n),
            "Density": rng.integers(1, 27000, size=n),
            "Region": rng.choice(REGIONS, size=n),
        }
    )


@pytest.fixture
def raw_policies() -> pd.DataFrame:
    return make_policies()


@pytest.fixture
def policies(raw_policies) -> pd.DataFrame:
    from mtpl_freq.data import clean_policies

    return clean_policies(raw_policies)


@pytest.fixture
def poisson_sample():
    """Linear-predictor Poisson data with known coefficients (intercept, b1, b2)."""
    rng = np.random.default_rng(42)
    n = 20_000
    X = rng.normal(size=(n, 2)).astype(np.float32)
    beta = np.array([-1.5, 0.6, -0.4])
    exposure = rng.uniform(0.2, 1.0, size=n)
    mu = exposure * np.exp(beta[0] + X @ beta[1:])
    y = rng.poisson(mu).astype(float)
    return X, y, exposure, beta
