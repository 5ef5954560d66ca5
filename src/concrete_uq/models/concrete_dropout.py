"""
Concrete Dropout Layer Wrapper

Wraps a differentiable transform f and learns its dropout probability by
gradient descent, using the Concrete (relaxed Bernoulli) distribution in
place of a hard dropout mask.

Mathematical Formulation:
    p = sigmoid(p_logit)
    z = (log(p + ε) - log(1 - p + ε) + log(u + ε) - log(1 - u + ε)) / t,  u ~ U(0, 1)
    x' = x ⊙ (1 - sigmoid(z)) / (1 - p)
    y = f(x')

Regularization (Gal, Hron & Kendall, 2017):
    R = λ_w ‖W‖² / (1 - p) + d · λ_p · [p log p + (1 - p) log(1 - p)]

Where:
    - W: Kernel of the wrapped transform
    - d: Input feature dimension of the wrapped transform
    - λ_w, λ_p: Weight and dropout regularizers
    - t: Temperature of the relaxation (0.1)
"""

import math
from typing import Optional, Tuple

import torch
import torch.nn as nn
import torch.nn.functional as F
from torch import Tensor

from ..errors import ConfigurationError

__all__ = [
    "ConcreteDropout",
    "logit",
    "regularizer_constants",
]

EPS = 1e-7
TEMPERATURE = 0.1


def logit(q: float) -> float:
    """Inverse of the sigmoid: log(q) - log(1 - q)"""
    return math.log(q) - math.log(1.0 - q)


def regularizer_constants(
    num_samples: int,
    length_scale: float = 1e-4
) -> Tuple[float, float]:
    """
    Regularizer constants derived from the training set size

    Args:
        num_samples: Number of training examples N
        length_scale: Prior length scale l

    Returns:
        weight_regularizer: l² / N
        dropout_regularizer: 2 / N
    """
    if num_samples < 1:
        raise ConfigurationError(f"num_samples must be >= 1, got {num_samples}")
    if length_scale <= 0:
        raise ConfigurationError(f"length_scale must be > 0, got {length_scale}")

    weight_regularizer = length_scale ** 2 / num_samples
    dropout_regularizer = 2.0 / num_samples
    return weight_regularizer, dropout_regularizer


class ConcreteDropout(nn.Module):
    """
    Applies Concrete Dropout to the input of a wrapped transform

    The wrapper holds the transform by composition and exposes the same
    forward call. Each forward returns the transformed output together with
    this wrapper's regularization term, so the caller sums the terms
    explicitly.

    Args:
        layer (nn.Module): Wrapped transform with a learnable ``weight`` kernel
        weight_regularizer (float): λ_w, scales the kernel penalty
        dropout_regularizer (float): λ_p, scales the negative Bernoulli entropy
        init_min (float): Lower bound for the initial dropout probability
        init_max (float): Upper bound for the initial dropout probability
        is_mc_dropout (bool): Apply the relaxation at inference as well
        in_features (int, optional): Input feature dimension d. Read from
            ``layer.in_features`` when omitted, or from the first input.
    """

    def __init__(
        self,
        layer: nn.Module,
        weight_regularizer: float = 1e-6,
        dropout_regularizer: float = 1e-5,
        init_min: float = 0.1,
        init_max: float = 0.1,
        is_mc_dropout: bool = True,
        in_features: Optional[int] = None
    ):
        super().__init__()

        if not 0.0 < init_min < 1.0 or not 0.0 < init_max < 1.0:
            raise ConfigurationError(
                f"init_min and init_max must lie in (0, 1), got {init_min}, {init_max}"
            )
        if init_min > init_max:
            raise ConfigurationError(
                f"init_min ({init_min}) must not exceed init_max ({init_max})"
            )
        if weight_regularizer < 0 or dropout_regularizer < 0:
            raise ConfigurationError(
                "weight_regularizer and dropout_regularizer must be non-negative"
            )
        if not isinstance(getattr(layer, 'weight', None), Tensor):
            raise ConfigurationError(
                f"Wrapped layer {type(layer).__name__} has no weight kernel"
            )

        self.layer = layer
        self.weight_regularizer = weight_regularizer
        self.dropout_regularizer = dropout_regularizer
        self.init_min = init_min
        self.init_max = init_max
        self.is_mc_dropout = is_mc_dropout
        self.temperature = TEMPERATURE

        if in_features is None:
            in_features = getattr(layer, 'in_features', None)
        if in_features is not None and in_features < 1:
            raise ConfigurationError(f"in_features must be >= 1, got {in_features}")
        self.in_features = in_features

        # Dropout logit, sampled once in logit space
        self.p_logit = nn.Parameter(torch.empty(()))
        nn.init.uniform_(self.p_logit, logit(init_min), logit(init_max))

    @property
    def p(self) -> Tensor:
        """Current dropout probability"""
        return torch.sigmoid(self.p_logit)

    @property
    def retention_probability(self) -> Tensor:
        """Probability that a unit survives the relaxed mask"""
        return torch.sigmoid(-self.p_logit)

    @property
    def kernel(self) -> Tensor:
        return self.layer.weight

    def _resolve_input_dim(self, x: Tensor) -> int:
        if x.dim() < 2:
            raise ConfigurationError(
                f"Expected input of shape [batch, features], got {tuple(x.shape)}"
            )

        input_dim = x.shape[-1]
        if self.in_features is None:
            self.in_features = input_dim
        elif input_dim != self.in_features:
            raise ConfigurationError(
                f"Input has {input_dim} features, wrapped layer expects {self.in_features}"
            )
        return self.in_features

    def regularization(self, input_dim: Optional[int] = None) -> Tensor:
        """
        Regularization term for the current dropout probability

        Recomputed on every call since it depends on p and on the kernel.

        Args:
            input_dim: Input feature dimension d (defaults to ``in_features``)

        Returns:
            Scalar regularization tensor
        """
        if input_dim is None:
            input_dim = self.in_features
        if input_dim is None:
            raise ConfigurationError(
                "Input feature dimension is undefined; pass in_features or run a forward pass"
            )

        p = self.p
        retain_prob = self.retention_probability

        # Kernel penalty grows as units are dropped more often
        kernel_regularizer = self.weight_regularizer * torch.sum(self.kernel ** 2) / retain_prob

        # Negative entropy of Bernoulli(p), log terms in logit space
        dropout_regularizer = (
            p * F.logsigmoid(self.p_logit)
            + retain_prob * F.logsigmoid(-self.p_logit)
        )
        dropout_regularizer = dropout_regularizer * self.dropout_regularizer * input_dim

        return kernel_regularizer + dropout_regularizer

    def concrete_dropout(self, x: Tensor) -> Tensor:
        """
        Relaxed dropout of x with inverse-probability scaling

        Args:
            x: Input [batch_size, in_features]

        Returns:
            x': Same shape as x, E_u[x'] ≈ x
        """
        p = self.p
        retain_prob = self.retention_probability
        unif_noise = torch.rand_like(x)

        drop_prob = (
            torch.log(p + EPS)
            - torch.log(retain_prob + EPS)
            + torch.log(unif_noise + EPS)
            - torch.log(1.0 - unif_noise + EPS)
        )
        drop_prob = torch.sigmoid(drop_prob / self.temperature)

        random_tensor = 1.0 - drop_prob

        x = x * random_tensor
        x = x / retain_prob
        return x

    def forward(
        self,
        x: Tensor,
        training: Optional[bool] = None
    ) -> Tuple[Tensor, Tensor]:
        """
        Forward pass through the relaxation and the wrapped layer

        Args:
            x: Input [batch_size, in_features]
            training: Training/inference flag. ``None`` uses ``self.training``.

        Returns:
            output: f(x') [batch_size, out_features]
            regularization: Scalar regularization term
        """
        input_dim = self._resolve_input_dim(x)
        if training is None:
            training = self.training

        regularization = self.regularization(input_dim)

        if self.is_mc_dropout or training:
            x = self.concrete_dropout(x)

        return self.layer(x), regularization

    def extra_repr(self) -> str:
        return (
            f"weight_regularizer={self.weight_regularizer}, "
            f"dropout_regularizer={self.dropout_regularizer}, "
            f"is_mc_dropout={self.is_mc_dropout}"
        )
