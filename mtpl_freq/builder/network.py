from __future__ import annotations

"""
Feed-forward Poisson networks
=============================

Every model here maps features x and an exposure v to an expected claim count

    mu(x, v) = exp( beta_0 + <beta, z(x)> + log(v) )

where z is the composition of the hidden layers (dense + tanh [+ dropout]).
With no hidden layers z is the identity and the network *is* a Poisson GLM with
log link and log-exposure offset, so the GLM and the deep models share the same
graph, loss and optimizer.

`forward` returns the log of the expected count; the exponential link is only
applied in `predict_mu` so the loss can work on the log scale.
"""

from typing import Optional, Sequence

import torch
from torch import nn

from ..config import DEFAULT_HIDDEN_UNITS


class PoissonNet(nn.Module):
    def __init__(
        self,
        n_input: int,
        hidden: Sequence[int] = (),
        dropout: float = 0.0,
        init_bias: Optional[float] = None,
    ):
        super().__init__()
        self.n_input = int(n_input)
        self.hidden = tuple(int(h) for h in hidden)
        self.dropout = float(dropout)

        layers: list[nn.Module] = []
        width_in = self.n_input
        for width in self.hidden:
            layers.append(nn.Linear(width_in, width))
            layers.append(nn.Tanh())
            if self.dropout > 0:
                layers.append(nn.Dropout(self.dropout))
            width_in = width
        self.hidden_layers = nn.Sequential(*layers)

        self.output_layer = nn.Linear(width_in, 1)
        # start from the homogeneous model: exp(bias) = portfolio frequency
        if init_bias is not None:
            nn.init.constant_(self.output_layer.bias, float(init_bias))

    @property
    def depth(self) -> int:
        return len(self.hidden)

    def forward(self, x: torch.Tensor, log_exposure: torch.Tensor) -> torch.Tensor:
        z = self.hidden_layers(x)
        return self.output_layer(z).squeeze(-1) + log_exposure

    def predict_mu(self, x: torch.Tensor, log_exposure: torch.Tensor) -> torch.Tensor:
        """Expected claim counts (exponential link applied)."""
        return torch.exp(self.forward(x, log_exposure))


def build_network(
    n_input: int,
    depth: int,
    *,
    units: Optional[Sequence[int]] = None,
    dropout: float = 0.0,
    init_bias: Optional[float] = None,
) -> PoissonNet:
    """Build a Poisson network with `depth` hidden layers.

    `units` overrides the default widths from config; its length must equal `depth`.
    """
    if depth < 0:
        raise ValueError(f"depth must be non-negative, got {depth}")
    if not 0.0 <= dropout < 1.0:
        raise ValueError(f"dropout must be in [0, 1), got {dropout}")

    if units is None:
        if depth not in DEFAULT_HIDDEN_UNITS:
            raise ValueError(
                f"No default widths for depth {depth}; pass `units` explicitly "
                f"(defaults exist for {sorted(DEFAULT_HIDDEN_UNITS)})"
            )
        units = DEFAULT_HIDDEN_UNITS[depth]

    units = tuple(int(u) for u in units)
    if len(units) != depth:
        raise ValueError(f"Expected {depth} hidden widths, got {len(units)}: {units}")
    if any(u <= 0 for u in units):
        raise ValueError(f"Hidden widths must be positive, got {units}")

    return PoissonNet(n_input=n_input, hidden=units, dropout=dropout, init_bias=init_bias)


def count_parameters(module: nn.Module) -> int:
    return int(sum(p.numel() for p in module.parameters() if p.requires_grad))
