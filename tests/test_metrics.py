import math

import numpy as np
import pytest
import torch

from concrete_uq.errors import ConfigurationError
from concrete_uq.evaluation import (
    compute_all_metrics,
    compute_calibration_error,
    compute_gaussian_nll,
    compute_interval_width,
    compute_mae,
    compute_picp,
    compute_rmse,
)
from concrete_uq.models.mc_estimator import UncertaintyReport


def test_point_metrics():
    targets = np.array([[1.0], [2.0], [3.0], [4.0]])
    mean = np.array([[1.0], [2.0], [3.0], [6.0]])

    assert compute_rmse(mean, targets) == pytest.approx(1.0)
    assert compute_mae(mean, targets) == pytest.approx(0.5)
    assert compute_rmse(targets, targets) == 0.0


def test_gaussian_nll_known_value():
    nll = compute_gaussian_nll(np.zeros((1, 1)), np.ones((1, 1)), np.ones((1, 1)))
    assert nll == pytest.approx(0.5 * (math.log(2 * math.pi) + 1.0))


@pytest.mark.parametrize("bad_variance", [0.0, -1.0])
def test_gaussian_nll_rejects_non_positive_variance(bad_variance):
    variance = np.array([[1.0], [bad_variance]])
    with pytest.raises(ConfigurationError):
        compute_gaussian_nll(np.zeros((2, 1)), variance, np.zeros((2, 1)))


def test_interval_coverage_and_width():
    targets = np.array([[0.0], [1.0], [5.0], [-3.0]])
    lower = np.full((4, 1), -1.0)
    upper = np.full((4, 1), 2.0)

    assert compute_picp(lower, upper, targets) == pytest.approx(0.5)
    assert compute_interval_width(lower, upper) == pytest.approx(3.0)


def test_calibrated_gaussian_has_small_calibration_error():
    rng = np.random.default_rng(0)
    std = rng.uniform(0.5, 2.0, size=(20000, 1))
    mean = rng.normal(size=(20000, 1))
    targets = mean + std * rng.standard_normal((20000, 1))

    error, nominal, observed = compute_calibration_error(mean, std, targets)

    assert error < 0.02
    assert nominal.shape == observed.shape


def test_unit_gaussian_interval_quantiles():
    # One target at each side of z_0.5 = 0.6745 and z_0.9 = 1.6449
    targets = np.array([[0.6], [0.7], [1.6], [1.7]])
    mean = np.zeros((4, 1))
    std = np.ones((4, 1))

    _, _, observed = compute_calibration_error(mean, std, targets, coverage_levels=(0.5, 0.9))

    assert observed[0] == pytest.approx(0.25)
    assert observed[1] == pytest.approx(0.75)


def test_overconfident_predictions_are_miscalibrated():
    rng = np.random.default_rng(0)
    mean = np.zeros((5000, 1))
    targets = rng.standard_normal((5000, 1))

    error, _, observed = compute_calibration_error(mean, np.full((5000, 1), 0.2), targets)

    assert error > 0.2
    assert np.all(observed[:-1] <= observed[1:])


def test_shape_mismatch():
    with pytest.raises(ConfigurationError):
        compute_rmse(np.zeros((3, 1)), np.zeros((4, 1)))


def test_all_metrics_from_report():
    report = UncertaintyReport(
        mean=torch.zeros(100, 1),
        epistemic_variance=torch.full((100, 1), 0.25),
        aleatoric_variance=torch.full((100, 1), 0.25),
        num_samples=20,
    )
    targets = np.zeros((100, 1))

    metrics = compute_all_metrics(report, targets)

    assert metrics['rmse'] == 0.0
    assert metrics['picp'] == 1.0
    assert metrics['interval_width'] == pytest.approx(4.0)
    assert metrics['mean_epistemic_std'] == pytest.approx(0.5)
    assert metrics['mean_aleatoric_std'] == pytest.approx(0.5)
    assert set(metrics) >= {'mae', 'nll', 'calibration_error'}
