#!/usr/bin/env python
from __future__ import annotations

"""
Benchmark Poisson frequency models on French MTPL (freMTPL2freq).

Fits the homogeneous model, the Poisson GLM and networks with 0-4 hidden layers
on the same learning sample, then prints in-sample and out-of-sample mean Poisson
deviance (in 10^-2) for each.

Usage (examples):
  poetry run scripts/benchmark.py
  poetry run scripts/benchmark.py --n-samples 100000 --epochs 20
  poetry run scripts/benchmark.py --models GLM,NN1,NN3 --optimizer adam --learning-rate 0.01 --plot
"""

import argparse
from pathlib import Path

import pandas as pd

from mtpl_freq.builder import TrainingConfig
from mtpl_freq.config import (
    DEFAULT_NN_BATCH_SIZE,
    DEFAULT_NN_EPOCHS,
    DEFAULT_NN_LEARNING_RATE,
    DEFAULT_NN_OPTIMIZER,
    DEFAULT_NN_SEED,
    DEFAULT_NN_VALIDATION_FRACTION,
    DEFAULT_RANDOM_STATE,
    DEFAULT_TEST_SIZE,
    FIGURES_DIR,
    MODELS_DIR,
    ensure_directories,
)
from mtpl_freq.data import load_and_process_policies, split_train_test
from mtpl_freq.experiment import default_model_specs, run_experiment, select_specs
from mtpl_freq.log import setup_logging
from mtpl_freq.metrics import average_frequency


def benchmark(
    *,
    n_samples: int | None = None,
    models: list[str] | None = None,
    config: TrainingConfig | None = None,
    test_size: float = DEFAULT_TEST_SIZE,
    random_state: int = DEFAULT_RANDOM_STATE,
    force_retrain: bool = False,
    plot: bool = False,
    output: str | None = None,
    data_raw_dir: Path | None = None,
    data_processed_dir: Path | None = None,
    model_dir: Path = MODELS_DIR,
    figures_dir: Path = FIGURES_DIR,
) -> pd.DataFrame:
    ensure_directories()
    if config is None:
        config = TrainingConfig()

    df = load_and_process_policies(data_raw_dir, data_processed_dir, n_samples=n_samples)
    train, test = split_train_test(df, test_size=test_size, random_state=random_state)
    specs = select_specs(default_model_specs(), models)

    print(f"Policies: {len(df):,} | learn={len(train):,} | test={len(test):,}")
    print(
        f"Observed frequency: learn={average_frequency(train['ClaimNb'], train['Exposure']):.4f} | "
        f"test={average_frequency(test['ClaimNb'], test['Exposure']):.4f}"
    )
    print(
        f"Optimizer: {config.optimizer} | lr={config.learning_rate} | epochs={config.epochs} | "
        f"batch={config.batch_size} | seed={config.seed}"
    )

    results, histories = run_experiment(
        train,
        test,
        specs,
        config,
        model_dir=model_dir,
        force_retrain=force_retrain,
    )

    print("\n=== Results (mean Poisson deviance, 10^-2) ===")
    with pd.option_context("display.float_format", "{:,.4f}".format, "display.width", 120):
        print(results)

    if plot and histories:
        from mtpl_freq.plots import plot_loss_curves

        fig_path = plot_loss_curves(histories, Path(figures_dir) / "loss_curves.png")
        print(f"\nSaved loss curves: {fig_path}")

    if output:
        out_path = Path(output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        results.to_csv(out_path)
        print(f"Saved results: {out_path}")

    return results


def build_parser() -> argparse.ArgumentParser:
    names = ", ".join(s.name for s in default_model_specs())
    p = argparse.ArgumentParser(description="Compare Poisson GLM and feed-forward networks on freMTPL2freq.")
    p.add_argument("--n-samples", type=int, default=None, help="Use only the first N policies (default: all).")
    p.add_argument("--models", default=None, help=f"Comma-separated subset of: {names} (default: all).")
    p.add_argument("--epochs", type=int, default=DEFAULT_NN_EPOCHS, help=f"Epochs (default: {DEFAULT_NN_EPOCHS}).")
    p.add_argument(
        "--batch-size", type=int, default=DEFAULT_NN_BATCH_SIZE, help=f"Batch size (default: {DEFAULT_NN_BATCH_SIZE})."
    )
    p.add_argument(
        "--learning-rate",
        type=float,
        default=DEFAULT_NN_LEARNING_RATE,
        help=f"Learning rate (default: {DEFAULT_NN_LEARNING_RATE}).",
    )
    p.add_argument(
        "--optimizer",
        default=DEFAULT_NN_OPTIMIZER,
        choices=["adam", "nadam", "sgd", "rmsprop", "adagrad"],
        help=f"Optimizer (default: {DEFAULT_NN_OPTIMIZER}).",
    )
    p.add_argument(
        "--validation-fraction",
        type=float,
        default=DEFAULT_NN_VALIDATION_FRACTION,
        help=f"Share of the learning sample held out for validation loss (default: {DEFAULT_NN_VALIDATION_FRACTION}).",
    )
    p.add_argument("--seed", type=int, default=DEFAULT_NN_SEED, help=f"Training seed (default: {DEFAULT_NN_SEED}).")
    p.add_argument("--test-size", type=float, default=DEFAULT_TEST_SIZE, help=f"Test share (default: {DEFAULT_TEST_SIZE}).")
    p.add_argument("--force-retrain", action="store_true", help="Ignore model caches and retrain.")
    p.add_argument("--plot", action="store_true", help="Save training/validation loss curves.")
    p.add_argument("--output", default=None, help="Write the results table to this CSV path.")
    p.add_argument("--model-dir", default=str(MODELS_DIR), help="Model cache directory (default: models/).")
    p.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    config = TrainingConfig(
        epochs=args.epochs,
        batch_size=args.batch_size,
        learning_rate=args.learning_rate,
        optimizer=args.optimizer,
        validation_fraction=args.validation_fraction,
        seed=args.seed,
    )
    models = [m for m in args.models.split(",") if m.strip()] if args.models else None
    benchmark(
        n_samples=args.n_samples,
        models=models,
        config=config,
        test_size=args.test_size,
        force_retrain=args.force_retrain,
        plot=args.plot,
        output=args.output,
        model_dir=Path(args.model_dir),
    )


if __name__ == "__main__":
    main()
