"""
Error taxonomy for Concrete Dropout uncertainty estimation

- ConfigurationError: bad construction arguments or mismatched shapes,
  raised before any computation proceeds
- NumericalDivergenceError: NaN/Inf in the loss, the log variance or a
  sampled output
- DegenerateStatisticsWarning: non-fatal, computation proceeds
"""

from typing import Optional


class ConcreteUQError(Exception):
    """Base class for all errors raised by this package"""


class ConfigurationError(ConcreteUQError, ValueError):
    """Invalid configuration (fatal)"""


class NumericalDivergenceError(ConcreteUQError, ArithmeticError):
    """
    Non-finite values appeared in a monitored quantity

    Args:
        quantity: Name of the quantity that diverged (e.g. 'log_var')
        sample_index: Monte Carlo sample index, if the failure happened
            while sampling
    """

    def __init__(self, quantity: str, sample_index: Optional[int] = None):
        self.quantity = quantity
        self.sample_index = sample_index

        message = f"Non-finite values in {quantity}"
        if sample_index is not None:
            message += f" (Monte Carlo sample {sample_index})"
        super().__init__(message)


class DegenerateStatisticsWarning(UserWarning):
    """Statistics were computed but are not informative"""
