"""
Concrete UQ: Learned Dropout Rates and Uncertainty Decomposition for Regression

This package provides Concrete Dropout layers, a heteroscedastic dual-head
regression model and a Monte Carlo estimator that separates epistemic from
aleatoric uncertainty.
"""

__version__ = "1.0.0"

from .errors import (
    ConcreteUQError,
    ConfigurationError,
    NumericalDivergenceError,
    DegenerateStatisticsWarning,
)
from .models import (
    ConcreteDropout,
    HeteroscedasticRegressor,
    HeteroscedasticLoss,
    MonteCarloEstimator,
    UncertaintyReport,
)

__all__ = [
    'ConcreteUQError',
    'ConfigurationError',
    'NumericalDivergenceError',
    'DegenerateStatisticsWarning',
    'ConcreteDropout',
    'HeteroscedasticRegressor',
    'HeteroscedasticLoss',
    'MonteCarloEstimator',
    'UncertaintyReport',
]
