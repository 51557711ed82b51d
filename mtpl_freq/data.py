"""
Data loading and preprocessing utilities.

This module handles loading the raw French MTPL frequency table (freMTPL2freq),
cleaning it, caching the processed dataset and splitting it into the
learning and test samples used by every model.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.datasets import fetch_openml
from sklearn.model_selection import train_test_split

from .config import (
    BONUSMALUS_CAP,
    CLAIMNB_CAP,
    DATA_PROCESSED,
    DATA_RAW,
    DEFAULT_RANDOM_STATE,
    DEFAULT_TEST_SIZE,
    DRIVAGE_CAP,
    EXPOSURE_CAP,
    OPENML_FREQ_DATA_ID,
    PROCESSED_POLICIES_FILE,
    RAW_POLICIES_FILE,
    VEHAGE_CAP,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Data Processing Constants
# ============================================================================

REQUIRED_COLUMNS = [
    "IDpol",
    "ClaimNb",
    "Exposure",
    "Area",
    "VehPower",
    "VehAge",
    "DrivAge",
    "BonusMalus",
    "VehBrand",
    "VehGas",
    "Density",
    "Region",
]

STRING_COLUMNS = ["Area", "VehBrand", "VehGas", "Region"]


def load_raw_policies(
    data_dir: Optional[Path] = None,
    file_name: Optional[str] = None,
    *,
    download: bool = True,
) -> pd.DataFrame:
    """
    Load the raw freMTPL2freq policy table.

    The CSV in the raw data directory is used when present. Otherwise the table
    is fetched from OpenML and written there so later runs work offline.

    Parameters
    ----------
    data_dir : Path, optional
        Directory containing the raw file. If None, uses DATA_RAW from config.
    file_name : str, optional
        Name of the raw CSV. If None, uses RAW_POLICIES_FILE from config.
    download : bool
        Fetch from OpenML when the CSV is missing.

    Returns
    -------
    pd.DataFrame
        Raw policy data, one row per policy.
    """
    if data_dir is None:
        data_dir = DATA_RAW

    if file_name is None:
        file_name = RAW_POLICIES_FILE

    path = Path(data_dir) / file_name
    if path.exists():
        logger.info("Loading raw policies from %s", path)
        return pd.read_csv(path)

    if not download:
        raise FileNotFoundError(f"Raw policy file not found: {path}")

    logger.info("Fetching freMTPL2freq from OpenML (data_id=%d)", OPENML_FREQ_DATA_ID)
    df = fetch_openml(data_id=OPENML_FREQ_DATA_ID, as_frame=True).frame

    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Saved raw policies to %s", path)
    return df


def clean_policies(df: pd.DataFrame) -> pd.DataFrame:
    """
    Clean policy data: strip quoted labels, cap outliers, derive the frequency.

    Parameters
    ----------
    df : pd.DataFrame
        Raw policy dataframe with the freMTPL2freq columns.

    Returns
    -------
    pd.DataFrame
        Cleaned policy dataframe with an extra `Frequency` column.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"Missing required columns: {missing}")

    df = df[REQUIRED_COLUMNS].copy()

    # OpenML exports keep the R quotes around factor levels ("'B'")
    for col in STRING_COLUMNS:
        df[col] = df[col].astype(str).str.strip("'")

    df["IDpol"] = df["IDpol"].astype(np.int64)
    df["ClaimNb"] = df["ClaimNb"].astype(np.int64).clip(upper=CLAIMNB_CAP)
    df["Exposure"] = df["Exposure"].astype(float).clip(upper=EXPOSURE_CAP)
    df["VehPower"] = df["VehPower"].astype(np.int64)
    df["VehAge"] = df["VehAge"].astype(np.int64).clip(upper=VEHAGE_CAP)
    df["DrivAge"] = df["DrivAge"].astype(np.int64).clip(upper=DRIVAGE_CAP)
    df["BonusMalus"] = df["BonusMalus"].astype(np.int64).clip(upper=BONUSMALUS_CAP)
    df["Density"] = df["Density"].astype(float)

    initial_count = len(df)
    df = df[df["Exposure"] > 0]
    removed = initial_count - len(df)
    if removed > 0:
        logger.warning("Removed %d policies with non-positive exposure", removed)

    df["Frequency"] = df["ClaimNb"] / df["Exposure"]

    df = df.sort_values("IDpol").reset_index(drop=True)

    assert (df["ClaimNb"] >= 0).all()
    assert (df["Exposure"] <= EXPOSURE_CAP).all()

    return df


def load_and_process_policies(
    data_raw_dir: Optional[Path] = None,
    data_processed_dir: Optional[Path] = None,
    output_file: Optional[str] = None,
    force_reprocess: bool = False,
    n_samples: Optional[int] = None,
) -> pd.DataFrame:
    """
    Load raw policies, clean them, and cache the processed table.

    This is the main entry point for data loading. It will:
    1. Load the raw CSV (or fetch it from OpenML)
    2. Clean the data (labels, caps, frequency)
    3. Save to processed directory if file doesn't exist or force_reprocess=True
    4. Return the cleaned dataframe, optionally truncated to `n_samples` rows

    Parameters
    ----------
    data_raw_dir : Path, optional
        Directory containing raw data files. If None, uses DATA_RAW from config.
    data_processed_dir : Path, optional
        Directory to save processed data. If None, uses DATA_PROCESSED from config.
    output_file : str, optional
        Name of output file (CSV format). If None, uses PROCESSED_POLICIES_FILE from config.
    force_reprocess : bool
        If True, reprocess even if processed file exists.
    n_samples : int, optional
        Keep only the first `n_samples` policies (quick runs).

    Returns
    -------
    pd.DataFrame
        Cleaned policy dataframe.
    """
    if data_raw_dir is None:
        data_raw_dir = DATA_RAW

    if data_processed_dir is None:
        data_processed_dir = DATA_PROCESSED

    if output_file is None:
        output_file = PROCESSED_POLICIES_FILE

    data_processed_dir = Path(data_processed_dir)
    data_processed_dir.mkdir(parents=True, exist_ok=True)

    output_path = data_processed_dir / output_file

    if output_path.exists() and not force_reprocess:
        logger.info("Loading processed policies from %s", output_path)
        df = pd.read_csv(output_path)
    else:
        df = load_raw_policies(data_raw_dir)
        logger.info("Loaded %s raw policies", f"{len(df):,}")

        df = clean_policies(df)
        logger.info("Cleaned data: %s policies", f"{len(df):,}")

        logger.info("Saving processed policies to %s", output_path)
        df.to_csv(output_path, index=False)

    if n_samples is not None:
        df = df.iloc[:n_samples].reset_index(drop=True)

    return df


def split_train_test(
    df: pd.DataFrame,
    *,
    test_size: float = DEFAULT_TEST_SIZE,
    random_state: int = DEFAULT_RANDOM_STATE,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split policies into a learning sample and a held-out test sample."""
    if not 0.0 < test_size < 1.0:
        raise ValueError(f"test_size must be in (0, 1), got {test_size}")

    train, test = train_test_split(df, test_size=test_size, random_state=random_state)
    return train.reset_index(drop=True), test.reset_index(drop=True)
