import numpy as np
import torch
from typing import Dict, Sequence, Tuple
from sklearn.metrics import mean_absolute_error, mean_squared_error

from ..errors import ConfigurationError

_normal = torch.distributions.Normal(0.0, 1.0)


def _check_shapes(*arrays: np.ndarray):
    shapes = {np.shape(a) for a in arrays}
    if len(shapes) != 1:
        raise ConfigurationError(f"Shape mismatch: {sorted(shapes)}")


def compute_rmse(mean: np.ndarray, targets: np.ndarray) -> float:
    """Root mean squared error of the predictive mean"""
    _check_shapes(mean, targets)
    return float(np.sqrt(mean_squared_error(targets.reshape(len(targets), -1),
                                            mean.reshape(len(mean), -1))))


def compute_mae(mean: np.ndarray, targets: np.ndarray) -> float:
    _check_shapes(mean, targets)
    return float(mean_absolute_error(targets.reshape(len(targets), -1),
                                     mean.reshape(len(mean), -1)))


def compute_gaussian_nll(
    mean: np.ndarray,
    variance: np.ndarray,
    targets: np.ndarray
) -> float:
    """
    Average Gaussian negative log-likelihood

    Args:
        mean: [N, D] predictive mean
        variance: [N, D] predictive variance
        targets: [N, D] true targets

    Returns:
        nll: 0.5 * mean(log(2πσ²) + (y - μ)² / σ²)

    Raises:
        ConfigurationError: If any variance is not strictly positive
    """
    _check_shapes(mean, variance, targets)
    if not np.all(variance > 0):
        raise ConfigurationError("Predictive variance must be strictly positive")
    nll = 0.5 * (np.log(2 * np.pi * variance) + (targets - mean) ** 2 / variance)
    return float(np.mean(nll))


def compute_picp(
    lower: np.ndarray,
    upper: np.ndarray,
    targets: np.ndarray
) -> float:
    """Prediction interval coverage probability"""
    _check_shapes(lower, upper, targets)
    covered = (targets >= lower) & (targets <= upper)
    return float(np.mean(covered))


def compute_interval_width(lower: np.ndarray, upper: np.ndarray) -> float:
    """Mean prediction interval width"""
    _check_shapes(lower, upper)
    return float(np.mean(upper - lower))


def compute_calibration_error(
    mean: np.ndarray,
    std: np.ndarray,
    targets: np.ndarray,
    coverage_levels: Sequence[float] = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9)
) -> Tuple[float, np.ndarray, np.ndarray]:
    """
    Regression calibration error

    For each nominal coverage level c, build the central Gaussian interval
    mean ± z_c·std and measure the observed coverage.

    Args:
        mean: [N, D] predictive mean
        std: [N, D] predictive standard deviation
        targets: [N, D] true targets
        coverage_levels: Nominal coverage levels in (0, 1)

    Returns:
        calibration_error: Mean |observed - nominal|
        nominal: Nominal coverage levels
        observed: Observed coverage per level
    """
    _check_shapes(mean, std, targets)

    nominal = np.asarray(coverage_levels, dtype=float)
    observed = np.zeros_like(nominal)

    for i, level in enumerate(nominal):
        z = _normal.icdf(torch.tensor(0.5 + float(level) / 2.0)).item()
        observed[i] = compute_picp(mean - z * std, mean + z * std, targets)

    calibration_error = float(np.mean(np.abs(observed - nominal)))
    return calibration_error, nominal, observed


def compute_all_metrics(report, targets: np.ndarray, num_std: float = 2.0) -> Dict[str, float]:
    """
    Compute all regression and uncertainty metrics

    Args:
        report: UncertaintyReport from the Monte Carlo estimator
        targets: [N, D] true targets
        num_std: Band half-width in total standard deviations

    Returns:
        Dictionary with all metrics
    """
    stats = report.to_numpy()
    targets = np.asarray(targets, dtype=np.float64).reshape(stats['mean'].shape)

    mean = stats['mean']
    total_std = stats['total_std']
    lower = mean - num_std * total_std
    upper = mean + num_std * total_std

    total_variance = stats['epistemic_variance'] + stats['aleatoric_variance']
    calibration_error, _, _ = compute_calibration_error(mean, np.sqrt(total_variance), targets)

    return {
        'rmse': compute_rmse(mean, targets),
        'mae': compute_mae(mean, targets),
        'nll': compute_gaussian_nll(mean, total_variance, targets),
        'picp': compute_picp(lower, upper, targets),
        'interval_width': compute_interval_width(lower, upper),
        'calibration_error': calibration_error,
        'mean_epistemic_std': float(np.mean(stats['epistemic_std'])),
        'mean_aleatoric_std': float(np.mean(stats['aleatoric_std'])),
    }
