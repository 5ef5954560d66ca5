# src/concrete_uq/evaluation/__init__.py
"""
Evaluation metrics for regression uncertainty
"""

from .regression_metrics import (
    compute_rmse,
    compute_mae,
    compute_gaussian_nll,
    compute_picp,
    compute_interval_width,
    compute_calibration_error,
    compute_all_metrics
)

__all__ = [
    'compute_rmse',
    'compute_mae',
    'compute_gaussian_nll',
    'compute_picp',
    'compute_interval_width',
    'compute_calibration_error',
    'compute_all_metrics',
]
