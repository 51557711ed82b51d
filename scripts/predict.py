#!/usr/bin/env python
from __future__ import annotations

"""
Predict the claim frequency of a single policy.

This is the "point" script: choose a model and a policy id (IDpol), and get:
- predicted expected claims over the policy's exposure, and the annual frequency
- observed claim count and exposure

The model is fitted on the learning sample of the usual train/test split (cached
under models/ when possible); the policy may come from either sample.

Usage (examples):
  poetry run scripts/predict.py --idpol 1 --model GLM
  poetry run scripts/predict.py --idpol 1 --model NN3 --epochs 50
  poetry run scripts/predict.py --idpol 1 --model Homogeneous --json
"""

import argparse
import json
from pathlib import Path

from mtpl_freq.builder import TrainingConfig
from mtpl_freq.config import (
    DEFAULT_NN_EPOCHS,
    DEFAULT_NN_SEED,
    DEFAULT_RANDOM_STATE,
    DEFAULT_TEST_SIZE,
    MODELS_DIR,
    ensure_directories,
)
from mtpl_freq.data import load_and_process_policies, split_train_test
from mtpl_freq.experiment import default_model_specs, fit_model, select_specs
from mtpl_freq.log import setup_logging


def predict_one(
    idpol: int,
    model: str,
    *,
    n_samples: int | None = None,
    config: TrainingConfig | None = None,
    test_size: float = DEFAULT_TEST_SIZE,
    random_state: int = DEFAULT_RANDOM_STATE,
    force_retrain: bool = False,
    data_raw_dir: Path | None = None,
    data_processed_dir: Path | None = None,
    model_dir: Path = MODELS_DIR,
) -> dict:
    ensure_directories()
    (spec,) = select_specs(default_model_specs(), [model])

    df = load_and_process_policies(data_raw_dir, data_processed_dir, n_samples=n_samples)
    row = df.loc[df["IDpol"] == int(idpol)]
    if row.empty:
        return {
            "idpol": int(idpol),
            "model": spec.name,
            "eligible": False,
            "reason": "policy not found in the (possibly truncated) dataset",
            "prediction": None,
        }

    train, test = split_train_test(df, test_size=test_size, random_state=random_state)
    sample = "learn" if bool((train["IDpol"] == int(idpol)).any()) else "test"

    fitted = fit_model(spec, train, config, model_dir=model_dir, force_retrain=force_retrain)
    expected = float(fitted.predict(row)[0])
    exposure = float(row["Exposure"].iloc[0])

    return {
        "idpol": int(idpol),
        "model": spec.name,
        "eligible": True,
        "sample": sample,
        "exposure": exposure,
        "prediction": expected,
        "predicted_frequency": expected / exposure,
        "observed_claims": int(row["ClaimNb"].iloc[0]),
        "n_params": int(fitted.n_params),
    }


def build_parser() -> argparse.ArgumentParser:
    names = [s.name for s in default_model_specs()]
    p = argparse.ArgumentParser(description="Predict the claim frequency of one policy.")
    p.add_argument("--idpol", required=True, type=int, help="Policy ID (IDpol).")
    p.add_argument("--model", required=True, choices=names, help="Model to use.")
    p.add_argument("--n-samples", type=int, default=None, help="Use only the first N policies (default: all).")
    p.add_argument("--epochs", type=int, default=DEFAULT_NN_EPOCHS, help=f"Epochs (default: {DEFAULT_NN_EPOCHS}).")
    p.add_argument("--seed", type=int, default=DEFAULT_NN_SEED, help=f"Training seed (default: {DEFAULT_NN_SEED}).")
    p.add_argument("--force-retrain", action="store_true", help="Ignore model caches and retrain.")
    p.add_argument("--model-dir", default=str(MODELS_DIR), help="Model cache directory (default: models/).")
    p.add_argument("--json", action="store_true", help="Print machine-readable JSON output.")
    p.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    out = predict_one(
        args.idpol,
        args.model,
        n_samples=args.n_samples,
        config=TrainingConfig(epochs=args.epochs, seed=args.seed),
        force_retrain=args.force_retrain,
        model_dir=Path(args.model_dir),
    )

    if args.json:
        print(json.dumps(out, default=str, indent=2))
        return

    print(f"idpol={out['idpol']} | model={out['model']}")
    if not out["eligible"]:
        print(f"eligible=False | reason={out['reason']}")
        return
    print(
        f"expected_claims={out['prediction']:.4f} | frequency={out['predicted_frequency']:.4f} | "
        f"observed_claims={out['observed_claims']} | exposure={out['exposure']:.3f} | sample={out['sample']}"
    )


if __name__ == "__main__":
    main()
