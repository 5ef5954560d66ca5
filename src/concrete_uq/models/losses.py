"""
Heteroscedastic regression loss

    precision = exp(-log σ²)
    L = mean_batch( Σ_d precision ⊙ (y - μ)² + log σ² ) + Σ_wrappers R

Operating on log σ² avoids dividing by a variance that can approach zero.
"""

from typing import Dict, Optional

import torch
import torch.nn as nn
from torch import Tensor

from ..errors import ConfigurationError, NumericalDivergenceError


def _check_finite(tensor: Tensor, quantity: str):
    if not torch.isfinite(tensor).all():
        raise NumericalDivergenceError(quantity)


def heteroscedastic_loss(
    target: Tensor,
    prediction: Tensor,
    output_dim: Optional[int] = None
) -> Tensor:
    """
    Heteroscedastic negative log-likelihood (up to constants)

    Args:
        target: True targets [batch_size, output_dim]
        prediction: Concatenated model output [batch_size, 2 * output_dim],
            mean columns first, log-variance columns second
        output_dim: Expected output dimension (inferred from target if None)

    Returns:
        Scalar loss averaged over the batch
    """
    if target.dim() == 1:
        target = target.unsqueeze(-1)

    if output_dim is None:
        output_dim = target.shape[-1]

    if target.shape[-1] != output_dim:
        raise ConfigurationError(
            f"Target has {target.shape[-1]} columns, expected output_dim={output_dim}"
        )
    if prediction.shape[-1] != 2 * output_dim:
        raise ConfigurationError(
            f"Prediction has {prediction.shape[-1]} columns, expected {2 * output_dim}"
        )
    if prediction.shape[0] != target.shape[0]:
        raise ConfigurationError(
            f"Batch size mismatch: prediction {prediction.shape[0]}, target {target.shape[0]}"
        )

    mean = prediction[:, :output_dim]
    log_var = prediction[:, output_dim:]
    _check_finite(log_var, 'log_var')

    precision = torch.exp(-log_var)
    per_row_loss = torch.sum(precision * (target - mean) ** 2 + log_var, dim=1)

    return torch.mean(per_row_loss)


class HeteroscedasticLoss(nn.Module):
    """
    Composite training loss: heteroscedastic NLL plus the summed
    regularization terms returned by the Concrete Dropout wrappers

    Args:
        output_dim (int): Number of regression targets
    """

    def __init__(self, output_dim: int = 1):
        super().__init__()
        if output_dim < 1:
            raise ConfigurationError(f"output_dim must be >= 1, got {output_dim}")
        self.output_dim = output_dim
        self.name = "HeteroscedasticNLL"

    def forward(
        self,
        prediction: Tensor,
        target: Tensor,
        regularization: Optional[Tensor] = None
    ) -> Dict[str, Tensor]:
        """
        Args:
            prediction: Model output [batch_size, 2 * output_dim]
            target: True targets [batch_size, output_dim]
            regularization: Summed wrapper regularization (scalar)

        Returns:
            Dictionary containing:
                - loss: Total loss used for the backward pass
                - nll: Heteroscedastic data term
                - regularization: Regularization term
        """
        nll = heteroscedastic_loss(target, prediction, self.output_dim)

        if regularization is None:
            regularization = torch.zeros((), device=prediction.device)

        loss = nll + regularization
        _check_finite(loss, 'loss')

        return {
            'loss': loss,
            'nll': nll,
            'regularization': regularization,
        }
