import numpy as np
import pytest

from concrete_uq.data import gen_data, gen_heteroscedastic_data, get_dataloaders
from concrete_uq.errors import ConfigurationError


def test_linear_data_without_noise():
    X, Y = gen_data(50, input_dim=3, noise_std=0.0, seed=1)

    assert X.shape == (50, 3)
    assert Y.shape == (50, 1)
    np.testing.assert_allclose(Y[:, 0], 2.0 * X.sum(axis=1) + 8.0, rtol=1e-5, atol=1e-5)


def test_heteroscedastic_noise_grows_with_input():
    X, Y = gen_heteroscedastic_data(20000, seed=0)
    residual = Y[:, 0] - np.sin(X[:, 0])

    near = residual[np.abs(X[:, 0]) < 1.0].std()
    far = residual[np.abs(X[:, 0]) > 3.0].std()
    assert far > 2 * near


def test_dataloaders_split():
    train_loader, val_loader, test_loader, num_train = get_dataloaders(
        num_samples=200, input_dim=2, batch_size=16, seed=0
    )

    sizes = [len(loader.dataset) for loader in (train_loader, val_loader, test_loader)]
    assert sum(sizes) == 200
    assert num_train == sizes[0] == 160

    batch = next(iter(train_loader))
    assert batch['inputs'].shape == (16, 2)
    assert batch['targets'].shape == (16, 1)


def test_unknown_dataset():
    with pytest.raises(ConfigurationError):
        get_dataloaders(dataset_name='mnist')
    with pytest.raises(ConfigurationError):
        get_dataloaders(dataset_name='heteroscedastic', input_dim=2)
