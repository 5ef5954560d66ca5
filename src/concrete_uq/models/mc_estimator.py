"""
Monte Carlo Uncertainty Estimator

Runs S stochastic forward passes of a trained Concrete Dropout model over a
fixed input batch and decomposes the predictive uncertainty:

    ŷ      = 1/S Σ_k μ_k(x)
    Var_ep = 1/S Σ_k (μ_k(x) - ŷ)²          (epistemic: disagreement between passes)
    Var_al = 1/S Σ_k exp(log σ²_k(x))        (aleatoric: predicted data noise)

Overall band: ŷ ± (√Var_ep + √Var_al). The summed variance Var_ep + Var_al is
exposed separately as ``total_variance``.
"""

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn
from torch import Tensor

from .concrete_dropout import ConcreteDropout
from ..errors import (
    ConfigurationError,
    DegenerateStatisticsWarning,
    NumericalDivergenceError,
)


@dataclass(frozen=True)
class UncertaintyReport:
    """
    Per-row uncertainty statistics, each of shape [n, output_dim]

    Attributes:
        mean: Predictive mean
        epistemic_variance: Variance of the mean head across passes
        aleatoric_variance: Predicted noise variance averaged across passes
        num_samples: Number of Monte Carlo passes S
    """

    mean: Tensor
    epistemic_variance: Tensor
    aleatoric_variance: Tensor
    num_samples: int

    @property
    def epistemic_std(self) -> Tensor:
        return torch.sqrt(self.epistemic_variance)

    @property
    def aleatoric_std(self) -> Tensor:
        return torch.sqrt(self.aleatoric_variance)

    @property
    def total_std(self) -> Tensor:
        """Sum of standard deviations (band used by ``interval``)"""
        return self.epistemic_std + self.aleatoric_std

    @property
    def total_variance(self) -> Tensor:
        return self.epistemic_variance + self.aleatoric_variance

    def interval(self, num_std: float = 2.0) -> Tuple[Tensor, Tensor]:
        """Lower and upper band: mean ± num_std * total_std"""
        half_width = num_std * self.total_std
        return self.mean - half_width, self.mean + half_width

    def to_numpy(self) -> Dict[str, np.ndarray]:
        return {
            'mean': self.mean.cpu().numpy(),
            'epistemic_variance': self.epistemic_variance.cpu().numpy(),
            'aleatoric_variance': self.aleatoric_variance.cpu().numpy(),
            'epistemic_std': self.epistemic_std.cpu().numpy(),
            'aleatoric_std': self.aleatoric_std.cpu().numpy(),
            'total_std': self.total_std.cpu().numpy(),
        }


class MonteCarloEstimator:
    """
    Aggregates repeated stochastic forward passes into an UncertaintyReport

    The model is called as ``model(x, training=False)`` and must return
    ``(output, regularization)``; stochasticity comes from wrappers with
    ``is_mc_dropout=True``.

    Args:
        num_samples (int): Number of Monte Carlo passes S
        num_workers (int): Threads used to run the passes. Each pass writes
            its own ensemble slot and draws its own noise.
    """

    def __init__(self, num_samples: int = 50, num_workers: int = 1):
        if num_samples < 1:
            raise ConfigurationError(f"num_samples must be >= 1, got {num_samples}")
        if num_workers < 1:
            raise ConfigurationError(f"num_workers must be >= 1, got {num_workers}")

        self.num_samples = num_samples
        self.num_workers = num_workers

    def _validate_inputs(self, model: nn.Module, x: Tensor):
        if x.dim() != 2:
            raise ConfigurationError(
                f"Expected input of shape [n, input_dim], got {tuple(x.shape)}"
            )
        if x.shape[0] == 0:
            raise ConfigurationError("Cannot estimate uncertainty for an empty input batch")

        input_dim = getattr(model, 'input_dim', None)
        if input_dim is not None and x.shape[1] != input_dim:
            raise ConfigurationError(
                f"Input has {x.shape[1]} features, model expects {input_dim}"
            )

        wrappers = [m for m in model.modules() if isinstance(m, ConcreteDropout)]
        if not any(m.is_mc_dropout for m in wrappers):
            warnings.warn(
                "No Concrete Dropout layer has is_mc_dropout=True; "
                "passes are deterministic and epistemic variance will be zero",
                DegenerateStatisticsWarning,
            )

    def sample(self, model: nn.Module, x: Tensor) -> Tensor:
        """
        Draw the Monte Carlo ensemble

        Args:
            model: Trained model returning (output, regularization)
            x: Inputs [n, input_dim]

        Returns:
            ensemble: [S, n, 2 * output_dim]
        """
        self._validate_inputs(model, x)

        samples: List[Optional[Tensor]] = [None] * self.num_samples

        def run_pass(k: int):
            # Grad mode is thread local
            with torch.no_grad():
                output, _ = model(x, training=False)
            if not torch.isfinite(output).all():
                raise NumericalDivergenceError('sampled output', sample_index=k)
            samples[k] = output

        if self.num_workers == 1:
            for k in range(self.num_samples):
                run_pass(k)
        else:
            with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
                list(executor.map(run_pass, range(self.num_samples)))

        return torch.stack(samples, dim=0)

    def aggregate(self, ensemble: Tensor, output_dim: int) -> UncertaintyReport:
        """
        Decompose an ensemble into predictive mean, epistemic and aleatoric variance

        Args:
            ensemble: [S, n, 2 * output_dim]
            output_dim: Number of regression targets

        Returns:
            UncertaintyReport with [n, output_dim] statistics
        """
        if ensemble.dim() != 3 or ensemble.shape[-1] != 2 * output_dim:
            raise ConfigurationError(
                f"Expected ensemble of shape [S, n, {2 * output_dim}], got {tuple(ensemble.shape)}"
            )

        num_samples = ensemble.shape[0]
        if num_samples < 2:
            warnings.warn(
                f"Epistemic variance from {num_samples} sample is defined as 0 "
                "and carries no information; use num_samples >= 2",
                DegenerateStatisticsWarning,
            )

        means = ensemble[:, :, :output_dim]
        log_vars = ensemble[:, :, output_dim:]

        predictive_mean = means.mean(dim=0)
        epistemic = means.var(dim=0, unbiased=False)
        aleatoric = torch.exp(log_vars).mean(dim=0)

        if not torch.isfinite(aleatoric).all():
            raise NumericalDivergenceError('aleatoric variance')

        return UncertaintyReport(
            mean=predictive_mean,
            epistemic_variance=epistemic,
            aleatoric_variance=aleatoric,
            num_samples=num_samples,
        )

    def estimate(self, model: nn.Module, x: Tensor) -> UncertaintyReport:
        """
        Full estimation: sample the ensemble, aggregate, discard the ensemble

        Args:
            model: Trained model
            x: Inputs [n, input_dim]

        Returns:
            UncertaintyReport
        """
        ensemble = self.sample(model, x)

        output_dim = getattr(model, 'output_dim', None)
        if output_dim is None:
            output_dim = ensemble.shape[-1] // 2

        return self.aggregate(ensemble, output_dim)
