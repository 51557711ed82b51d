import numpy as np
import pandas as pd
import pytest

from mtpl_freq.data import (
    clean_policies,
    load_and_process_policies,
    load_raw_policies,
    split_train_test,
)


def test_clean_policies_strips_quotes_and_caps(raw_policies):
    raw = raw_policies.copy()
    raw["Area"] = "'" + raw["Area"] + "'"
    raw.loc[0, ["ClaimNb", "Exposure", "VehAge", "DrivAge", "BonusMalus"]] = [11, 2.0, 40, 99, 230]

    df = clean_policies(raw)

    assert set(df["Area"].unique()) <= {"A", "B", "C", "D", "E", "F"}
    first = df.loc[df["IDpol"] == 1].iloc[0]
    assert first["ClaimNb"] == 4
    assert first["Exposure"] == 1.0
    assert first["VehAge"] == 20
    assert first["DrivAge"] == 90
    assert first["BonusMalus"] == 150
    np.testing.assert_allclose(df["Frequency"], df["ClaimNb"] / df["Exposure"])


def test_clean_policies_drops_zero_exposure_and_sorts(raw_policies):
    raw = raw_policies.sample(frac=1.0, random_state=1).reset_index(drop=True)
    raw.loc[raw["IDpol"] == 5, "Exposure"] = 0.0

    df = clean_policies(raw)

    assert 5 not in set(df["IDpol"])
    assert len(df) == len(raw) - 1
    assert df["IDpol"].is_monotonic_increasing


def test_clean_policies_missing_columns(raw_policies):
    with pytest.raises(KeyError, match="Density"):
        clean_policies(raw_policies.drop(columns=["Density"]))


def test_load_raw_policies_reads_local_csv(tmp_path, raw_policies):
    raw_policies.to_csv(tmp_path / "freMTPL2freq.csv", index=False)
    df = load_raw_policies(tmp_path)
    assert len(df) == len(raw_policies)
    assert list(df.columns) == list(raw_policies.columns)


def test_load_raw_policies_missing_without_download(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_raw_policies(tmp_path, download=False)


def test_load_and_process_policies_caches(tmp_path, raw_policies):
    raw_dir = tmp_path / "raw"
    processed_dir = tmp_path / "processed"
    raw_dir.mkdir()
    raw_policies.to_csv(raw_dir / "freMTPL2freq.csv", index=False)

    df = load_and_process_policies(raw_dir, processed_dir)
    cache = processed_dir / "freMTPL2freq_cleaned.csv"
    assert cache.exists()
    assert "Frequency" in df.columns

    # the cache is used even once the raw file is gone
    (raw_dir / "freMTPL2freq.csv").unlink()
    again = load_and_process_policies(raw_dir, processed_dir, n_samples=100)
    assert len(again) == 100
    pd.testing.assert_frame_equal(again, df.iloc[:100].reset_index(drop=True), check_dtype=False)


def test_split_train_test(policies):
    train, test = split_train_test(policies, test_size=0.1, random_state=0)
    assert len(train) + len(test) == len(policies)
    assert len(test) == pytest.approx(0.1 * len(policies), abs=1)
    assert set(train["IDpol"]).isdisjoint(set(test["IDpol"]))
    assert train.index.equals(pd.RangeIndex(len(train)))


@pytest.mark.parametrize("test_size", [0.0, 1.0, -0.2])
def test_split_train_test_rejects_bad_size(policies, test_size):
    with pytest.raises(ValueError):
        split_train_test(policies, test_size=test_size)
