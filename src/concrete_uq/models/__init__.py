"""
Concrete Dropout Models Package

Contains the Concrete Dropout wrapper, the heteroscedastic dual-head model,
its loss and the Monte Carlo uncertainty estimator.
"""

from .concrete_dropout import ConcreteDropout, logit, regularizer_constants
from .heteroscedastic import HeteroscedasticRegressor
from .losses import HeteroscedasticLoss, heteroscedastic_loss
from .mc_estimator import MonteCarloEstimator, UncertaintyReport

__all__ = [
    'ConcreteDropout',
    'logit',
    'regularizer_constants',
    'HeteroscedasticRegressor',
    'HeteroscedasticLoss',
    'heteroscedastic_loss',
    'MonteCarloEstimator',
    'UncertaintyReport',
]
