from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import torch
from torch import nn
from torch.utils.data import DataLoader, TensorDataset

from ..config import (
    DEFAULT_DEVICE,
    DEFAULT_NN_BATCH_SIZE,
    DEFAULT_NN_EPOCHS,
    DEFAULT_NN_LEARNING_RATE,
    DEFAULT_NN_OPTIMIZER,
    DEFAULT_NN_SEED,
    DEFAULT_NN_VALIDATION_FRACTION,
    MODELS_DIR,
    PROJECT_ROOT,
)
from .baseline import homogeneous_fit
from .network import PoissonNet, build_network, count_parameters

logger = logging.getLogger(__name__)

OPTIMIZERS = {
    "adam": torch.optim.Adam,
    "nadam": torch.optim.NAdam,
    "sgd": torch.optim.SGD,
    "rmsprop": torch.optim.RMSprop,
    "adagrad": torch.optim.Adagrad,
}


@dataclass(frozen=True)
class TrainingConfig:
    """Optimizer settings shared by every network of one experiment."""

    epochs: int = DEFAULT_NN_EPOCHS
    batch_size: int = DEFAULT_NN_BATCH_SIZE
    learning_rate: float = DEFAULT_NN_LEARNING_RATE
    optimizer: str = DEFAULT_NN_OPTIMIZER
    validation_fraction: float = DEFAULT_NN_VALIDATION_FRACTION
    seed: int = DEFAULT_NN_SEED
    device: str = DEFAULT_DEVICE

    def __post_init__(self):
        if self.optimizer.lower() not in OPTIMIZERS:
            raise ValueError(f"Unknown optimizer: {self.optimizer} (choose from {sorted(OPTIMIZERS)})")
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        if not 0.0 <= self.validation_fraction < 1.0:
            raise ValueError(f"validation_fraction must be in [0, 1), got {self.validation_fraction}")

    def make_optimizer(self, params) -> torch.optim.Optimizer:
        return OPTIMIZERS[self.optimizer.lower()](params, lr=self.learning_rate)


@dataclass
class TrainingHistory:
    train_loss: list[float] = field(default_factory=list)
    val_loss: list[float] = field(default_factory=list)
    runtime_s: float = 0.0

    @property
    def epochs(self) -> int:
        return len(self.train_loss)


def _to_tensors(X, y, exposure, device: str):
    X_t = torch.as_tensor(np.asarray(X, dtype=np.float32), device=device)
    y_t = torch.as_tensor(np.asarray(y, dtype=np.float32), device=device)
    v_t = torch.as_tensor(np.log(np.asarray(exposure, dtype=np.float32)), device=device)
    return X_t, y_t, v_t


def _validation_split(n: int, fraction: float, seed: int) -> tuple[np.ndarray, np.ndarray]:
    """Seeded random (train_idx, val_idx); val_idx is empty when fraction is 0."""
    rng = np.random.default_rng(seed)
    perm = rng.permutation(n)
    n_val = int(math.floor(n * fraction))
    if n_val >= n:
        raise ValueError("Validation split leaves no training rows")
    return np.sort(perm[n_val:]), np.sort(perm[:n_val])


def train_network(
    model: PoissonNet,
    X: np.ndarray,
    y: np.ndarray,
    exposure: np.ndarray,
    config: Optional[TrainingConfig] = None,
    *,
    log_every: int = 10,
) -> TrainingHistory:
    """Fit `model` by mini-batch gradient descent on the Poisson loss.

    Each epoch: shuffle, then forward -> loss -> backward -> optimizer step per
    batch. A seeded random share of the rows (`validation_fraction`) is held out
    and only used to record the validation loss after every epoch.
    """
    if config is None:
        config = TrainingConfig()

    n = int(np.asarray(y).shape[0])
    if not (np.asarray(X).shape[0] == n == np.asarray(exposure).shape[0]):
        raise ValueError("X, y and exposure must have the same number of rows")
    if (np.asarray(exposure) <= 0).any():
        raise ValueError("Exposure must be strictly positive")

    np.random.seed(config.seed)
    torch.manual_seed(config.seed)

    train_idx, val_idx = _validation_split(n, config.validation_fraction, config.seed)
    X_t, y_t, v_t = _to_tensors(X, y, exposure, config.device)

    model.to(config.device)
    optimizer = config.make_optimizer(model.parameters())
    # exp(eta) - y * eta, the Poisson NLL without the log(y!) constant
    loss_fn = nn.PoissonNLLLoss(log_input=True, full=False)

    train_ds = TensorDataset(X_t[train_idx], y_t[train_idx], v_t[train_idx])
    loader = DataLoader(
        train_ds,
        batch_size=config.batch_size,
        shuffle=True,
        generator=torch.Generator().manual_seed(config.seed),
    )
    X_val, y_val, v_val = X_t[val_idx], y_t[val_idx], v_t[val_idx]

    history = TrainingHistory()
    start = time.perf_counter()

    for epoch in range(config.epochs):
        model.train()
        total, rows = 0.0, 0
        for xb, yb, vb in loader:
            optimizer.zero_grad()
            loss = loss_fn(model(xb, vb), yb)
            loss.backward()
            optimizer.step()
            total += float(loss.item()) * len(yb)
            rows += len(yb)

        epoch_loss = total / rows
        if not math.isfinite(epoch_loss):
            raise FloatingPointError(f"Training loss diverged at epoch {epoch + 1}: {epoch_loss}")
        history.train_loss.append(epoch_loss)

        if len(val_idx) > 0:
            model.eval()
            with torch.no_grad():
                history.val_loss.append(float(loss_fn(model(X_val, v_val), y_val).item()))

        if log_every and ((epoch + 1) % log_every == 0 or epoch + 1 == config.epochs):
            val_msg = f" | val_loss={history.val_loss[-1]:.5f}" if history.val_loss else ""
            logger.info("epoch %d/%d | loss=%.5f%s", epoch + 1, config.epochs, epoch_loss, val_msg)

    history.runtime_s = time.perf_counter() - start
    model.eval()
    return history


def predict_network(
    model: PoissonNet,
    X: np.ndarray,
    exposure: np.ndarray,
    *,
    batch_size: int = DEFAULT_NN_BATCH_SIZE,
    device: str = DEFAULT_DEVICE,
) -> np.ndarray:
    """Expected claim counts for every row, in eval mode (dropout off)."""
    X_t, _, v_t = _to_tensors(X, np.zeros(len(exposure)), exposure, device)
    model.to(device)
    model.eval()
    parts: list[np.ndarray] = []
    with torch.no_grad():
        for start in range(0, X_t.shape[0], batch_size):
            stop = start + batch_size
            parts.append(model.predict_mu(X_t[start:stop], v_t[start:stop]).cpu().numpy())
    if not parts:
        return np.zeros(0, dtype=float)
    return np.concatenate(parts).astype(float)


def _network_model_path(
    *,
    model_dir: str | Path,
    name: str,
    units: Sequence[int],
    dropout: float,
    config: TrainingConfig,
    n_train: int,
) -> Path:
    """Deterministic cache path for a given (architecture, optimizer settings, sample size)."""
    model_dir = Path(model_dir)
    if not model_dir.is_absolute():
        model_dir = PROJECT_ROOT / model_dir
    model_dir.mkdir(parents=True, exist_ok=True)
    u = "-".join(str(w) for w in units) or "none"
    d = str(dropout).replace(".", "p")
    lr = str(config.learning_rate).replace(".", "p")
    v = str(config.validation_fraction).replace(".", "p")
    return model_dir / (
        f"{name.lower()}_u{u}_do{d}_{config.optimizer.lower()}_lr{lr}"
        f"_e{config.epochs}_b{config.batch_size}_v{v}_s{config.seed}_n{n_train}.pt"
    )


def _config_meta(config: TrainingConfig) -> dict:
    """Training settings a cached network must match to be reused."""
    return {
        "optimizer": config.optimizer.lower(),
        "learning_rate": float(config.learning_rate),
        "epochs": int(config.epochs),
        "batch_size": int(config.batch_size),
        "validation_fraction": float(config.validation_fraction),
        "seed": int(config.seed),
    }


def init_network(
    n_input: int,
    y: np.ndarray,
    exposure: np.ndarray,
    *,
    depth: int,
    units: Optional[Sequence[int]] = None,
    dropout: float = 0.0,
    seed: int = DEFAULT_NN_SEED,
) -> PoissonNet:
    """Seeded network whose output bias starts at log(portfolio frequency)."""
    lam = homogeneous_fit(y, exposure)
    init_bias = math.log(lam) if lam > 0 else None
    # weight initialisation draws from the torch RNG
    torch.manual_seed(seed)
    return build_network(n_input, depth, units=units, dropout=dropout, init_bias=init_bias)


def load_network(path: str | Path):
    """Load a saved network; returns `(model, history, meta)`."""
    payload = torch.load(Path(path), map_location="cpu", weights_only=True)
    meta = dict(payload["meta"])
    model = PoissonNet(n_input=meta["n_input"], hidden=meta["units"], dropout=meta["dropout"])
    model.load_state_dict(payload["state_dict"])
    model.eval()
    history = TrainingHistory(**payload.get("history", {}))
    meta["saved_to"] = str(path)
    return model, history, meta


def train_or_load_network(
    name: str,
    X: np.ndarray,
    y: np.ndarray,
    exposure: np.ndarray,
    *,
    depth: int,
    units: Optional[Sequence[int]] = None,
    dropout: float = 0.0,
    config: Optional[TrainingConfig] = None,
    model_dir: str | Path = MODELS_DIR,
    force_retrain: bool = False,
):
    """Train (or load) a Poisson network; returns `(model, history, meta)`.

    Training starts from the homogeneous model (see `init_network`).
    """
    if config is None:
        config = TrainingConfig()

    model = init_network(X.shape[1], y, exposure, depth=depth, units=units, dropout=dropout, seed=config.seed)

    path = _network_model_path(
        model_dir=model_dir,
        name=name,
        units=model.hidden,
        dropout=dropout,
        config=config,
        n_train=len(y),
    )
    expected = {
        "n_input": int(X.shape[1]),
        "units": list(model.hidden),
        "dropout": float(dropout),
        "n_train": int(len(y)),
        **_config_meta(config),
    }
    if path.exists() and not force_retrain:
        cached, history, meta = load_network(path)
        if all(meta.get(k) == v for k, v in expected.items()):
            logger.info("Loaded %s from %s", name, path)
            return cached, history, meta
        logger.info("Cached %s at %s was trained with other settings; retraining", name, path)

    logger.info(
        "Training %s: depth=%d units=%s dropout=%.3f params=%d",
        name,
        model.depth,
        model.hidden,
        dropout,
        count_parameters(model),
    )
    history = train_network(model, X, y, exposure, config)

    meta = {
        "name": name,
        "depth": model.depth,
        "n_params": count_parameters(model),
        **expected,
        "saved_to": str(path),
    }
    torch.save({"state_dict": model.state_dict(), "meta": meta, "history": asdict(history)}, path)
    return model, history, meta
