from __future__ import annotations

from pathlib import Path
from typing import Mapping

import matplotlib

matplotlib.use("Agg")  # Use a non-interactive backend, scripts only write files
import matplotlib.pyplot as plt

from .builder.training import TrainingHistory


def plot_loss_curves(histories: Mapping[str, TrainingHistory], path: str | Path) -> Path:
    """Plot training (solid) and validation (dashed) Poisson loss per epoch for each network."""
    if not histories:
        raise ValueError("No training histories to plot")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(9, 5))
    for name, history in histories.items():
        epochs = range(1, history.epochs + 1)
        (line,) = ax.plot(epochs, history.train_loss, label=f"{name} (train)")
        if history.val_loss:
            ax.plot(epochs, history.val_loss, linestyle="--", color=line.get_color(), label=f"{name} (val)")

    ax.set_xlabel("Epoch")
    ax.set_ylabel("Poisson loss")
    ax.set_title("Training and validation loss")
    ax.legend(fontsize="small", ncol=2)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path
