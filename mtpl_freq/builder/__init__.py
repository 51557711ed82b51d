"""Model builders (code) for claim-frequency models.

Naming note:
- This package is called `builder` to avoid confusion with the **project-root** `models/`
  directory, which stores *saved model artifacts* (joblib / torch files) produced by training.
"""

from .baseline import homogeneous_fit, homogeneous_predict
from .glm import glm_predict, train_glm, train_or_load_glm
from .network import PoissonNet, build_network, count_parameters
from .training import (
    TrainingConfig,
    TrainingHistory,
    init_network,
    load_network,
    predict_network,
    train_network,
    train_or_load_network,
)

__all__ = [
    "homogeneous_fit",
    "homogeneous_predict",
    "train_glm",
    "glm_predict",
    "train_or_load_glm",
    "PoissonNet",
    "build_network",
    "count_parameters",
    "TrainingConfig",
    "TrainingHistory",
    "init_network",
    "train_network",
    "predict_network",
    "train_or_load_network",
    "load_network",
]
