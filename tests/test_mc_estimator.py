import math
import warnings

import pytest
import torch
import torch.nn as nn

from concrete_uq.errors import (
    ConfigurationError,
    DegenerateStatisticsWarning,
    NumericalDivergenceError,
)
from concrete_uq.models.heteroscedastic import HeteroscedasticRegressor
from concrete_uq.models.mc_estimator import MonteCarloEstimator, UncertaintyReport


def build_fixed_model(p_logit: float) -> HeteroscedasticRegressor:
    """One hidden layer of 2 units with hand-set weights"""
    model = HeteroscedasticRegressor(
        input_dim=1, output_dim=1, hidden_sizes=(2,), activation='relu', is_mc_dropout=True
    )
    with torch.no_grad():
        trunk = model.trunk[0].layer
        trunk.weight.copy_(torch.tensor([[1.0], [0.5]]))
        trunk.bias.copy_(torch.tensor([0.5, 0.5]))

        model.mean_head.layer.weight.copy_(torch.tensor([[1.0, 2.0]]))
        model.mean_head.layer.bias.fill_(0.1)

        model.log_var_head.layer.weight.zero_()
        model.log_var_head.layer.bias.fill_(-1.0)

        for layer in model.concrete_layers():
            layer.p_logit.fill_(p_logit)
    return model


X = torch.tensor([[0.0], [1.0]])
# relu([0.5, 0.5]) -> 0.5 + 1.0 + 0.1; relu([1.5, 1.0]) -> 1.5 + 2.0 + 0.1
DETERMINISTIC_MEAN = torch.tensor([[1.6], [3.6]])


def test_invalid_sample_count():
    with pytest.raises(ConfigurationError):
        MonteCarloEstimator(num_samples=0)
    with pytest.raises(ConfigurationError):
        MonteCarloEstimator(num_samples=10, num_workers=0)


def test_empty_input_is_rejected():
    estimator = MonteCarloEstimator(num_samples=5)
    with pytest.raises(ConfigurationError):
        estimator.estimate(build_fixed_model(-2.0), torch.zeros(0, 1))


@pytest.mark.parametrize("x", [torch.zeros(3), torch.zeros(2, 3)])
def test_bad_input_shape_is_rejected(x):
    estimator = MonteCarloEstimator(num_samples=5)
    with pytest.raises(ConfigurationError):
        estimator.estimate(build_fixed_model(-2.0), x)


def test_single_sample_warns_and_reports_zero_epistemic():
    estimator = MonteCarloEstimator(num_samples=1)

    with pytest.warns(DegenerateStatisticsWarning):
        report = estimator.estimate(build_fixed_model(0.0), X)

    assert torch.equal(report.epistemic_variance, torch.zeros(2, 1))


def test_aggregate_known_ensemble():
    # S=2, n=1, output_dim=1: means [1, 3], variances [1, 3]
    ensemble = torch.tensor([[[1.0, 0.0]], [[3.0, math.log(3.0)]]])

    report = MonteCarloEstimator(num_samples=2).aggregate(ensemble, output_dim=1)

    assert report.mean.item() == pytest.approx(2.0)
    assert report.epistemic_variance.item() == pytest.approx(1.0)
    assert report.aleatoric_variance.item() == pytest.approx(2.0, rel=1e-6)
    assert report.num_samples == 2


def test_aggregate_rejects_wrong_width():
    with pytest.raises(ConfigurationError):
        MonteCarloEstimator().aggregate(torch.zeros(4, 3, 3), output_dim=1)


def test_aggregate_overflowing_variance_is_divergence():
    # Finite samples whose exp(log_var) overflows float32
    ensemble = torch.tensor([[[0.0, 100.0]], [[1.0, 100.0]]], dtype=torch.float32)

    with pytest.raises(NumericalDivergenceError) as exc_info:
        MonteCarloEstimator(num_samples=2).aggregate(ensemble, output_dim=1)

    assert exc_info.value.quantity == 'aleatoric variance'


def test_no_dropout_effect_gives_zero_epistemic():
    model = build_fixed_model(-30.0)
    report = MonteCarloEstimator(num_samples=50).estimate(model, X)

    assert torch.allclose(report.epistemic_variance, torch.zeros(2, 1), atol=1e-8)
    assert torch.allclose(report.mean, DETERMINISTIC_MEAN, atol=1e-5)


def test_deterministic_model_warns_and_gives_exact_zero():
    model = HeteroscedasticRegressor(input_dim=1, hidden_sizes=(4,), is_mc_dropout=False)

    with pytest.warns(DegenerateStatisticsWarning):
        report = MonteCarloEstimator(num_samples=10).estimate(model, X)

    assert torch.allclose(report.epistemic_variance, torch.zeros(2, 1), atol=1e-12)


def test_mean_converges_to_deterministic_value_when_dropout_vanishes():
    model = build_fixed_model(-12.0)
    report = MonteCarloEstimator(num_samples=1000).estimate(model, X)

    assert torch.allclose(report.mean, DETERMINISTIC_MEAN, atol=0.05)
    assert torch.allclose(report.aleatoric_variance, torch.full((2, 1), math.exp(-1.0)))


def test_epistemic_variance_grows_with_dropout_probability():
    estimator = MonteCarloEstimator(num_samples=1000)

    epistemic = []
    for p in (0.05, 0.2, 0.4):
        model = build_fixed_model(math.log(p) - math.log(1 - p))
        epistemic.append(estimator.estimate(model, X).epistemic_variance)

    assert torch.all(epistemic[0] < epistemic[1])
    assert torch.all(epistemic[1] < epistemic[2])


def test_threaded_sampling_fills_every_slot():
    model = build_fixed_model(0.0)
    estimator = MonteCarloEstimator(num_samples=16, num_workers=4)

    ensemble = estimator.sample(model, X)

    assert ensemble.shape == (16, 2, 2)
    assert torch.isfinite(ensemble).all()
    # Independent noise per pass
    assert ensemble[:, 1, 0].std().item() > 0


class FlakyModel(nn.Module):
    """Returns NaN on a given call"""

    def __init__(self, bad_call: int):
        super().__init__()
        self.bad_call = bad_call
        self.calls = 0

    def forward(self, x, training=None):
        output = torch.zeros(x.shape[0], 2)
        if self.calls == self.bad_call:
            output[0, 0] = float('nan')
        self.calls += 1
        return output, torch.zeros(())


def test_non_finite_sample_reports_index():
    estimator = MonteCarloEstimator(num_samples=5)

    with warnings.catch_warnings():
        warnings.simplefilter('ignore', DegenerateStatisticsWarning)
        with pytest.raises(NumericalDivergenceError) as exc_info:
            estimator.sample(FlakyModel(bad_call=2), X)

    assert exc_info.value.sample_index == 2


def test_report_derived_quantities():
    report = UncertaintyReport(
        mean=torch.tensor([[1.0]]),
        epistemic_variance=torch.tensor([[4.0]]),
        aleatoric_variance=torch.tensor([[9.0]]),
        num_samples=10,
    )

    assert report.epistemic_std.item() == pytest.approx(2.0)
    assert report.aleatoric_std.item() == pytest.approx(3.0)
    assert report.total_std.item() == pytest.approx(5.0)
    assert report.total_variance.item() == pytest.approx(13.0)

    lower, upper = report.interval(num_std=2.0)
    assert lower.item() == pytest.approx(-9.0)
    assert upper.item() == pytest.approx(11.0)

    stats = report.to_numpy()
    assert set(stats) == {
        'mean', 'epistemic_variance', 'aleatoric_variance',
        'epistemic_std', 'aleatoric_std', 'total_std',
    }


def test_report_is_immutable():
    report = UncertaintyReport(
        mean=torch.zeros(1, 1),
        epistemic_variance=torch.zeros(1, 1),
        aleatoric_variance=torch.ones(1, 1),
        num_samples=2,
    )
    with pytest.raises(AttributeError):
        report.mean = torch.ones(1, 1)
