"""
Synthetic Regression Datasets

Supported datasets:
- linear: y = 2·Σx + 8 + σ·ε with constant noise
- heteroscedastic: y = sin(x) with noise growing in |x|

"""

import torch
from torch.utils.data import Dataset, DataLoader
from sklearn.model_selection import train_test_split
from typing import Dict, Optional, Tuple
import numpy as np

from ..errors import ConfigurationError


class RegressionDataset(Dataset):
    """
    Tensor dataset yielding {'inputs', 'targets'} batches
    """

    def __init__(self, inputs: np.ndarray, targets: np.ndarray):
        if len(inputs) != len(targets):
            raise ConfigurationError(
                f"inputs ({len(inputs)}) and targets ({len(targets)}) differ in length"
            )
        self.inputs = torch.as_tensor(inputs, dtype=torch.float32)
        self.targets = torch.as_tensor(targets, dtype=torch.float32)

    def __len__(self):
        return len(self.inputs)

    def __getitem__(self, idx) -> Dict[str, torch.Tensor]:
        return {
            'inputs': self.inputs[idx],
            'targets': self.targets[idx],
        }


def gen_data(
    num_samples: int,
    input_dim: int = 1,
    noise_std: float = 1.0,
    seed: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Linear-Gaussian data with constant noise

    Returns:
        X: [num_samples, input_dim]
        Y: [num_samples, 1]
    """
    rng = np.random.default_rng(seed)
    w = 2.0
    b = 8.0
    X = rng.standard_normal((num_samples, input_dim))
    Y = X.dot(np.full((input_dim, 1), w)) + b + noise_std * rng.standard_normal((num_samples, 1))
    return X.astype(np.float32), Y.astype(np.float32)


def gen_heteroscedastic_data(
    num_samples: int,
    low: float = -4.0,
    high: float = 4.0,
    seed: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    1-D sine with input-dependent noise: σ(x) = 0.1 + 0.2·|x|

    Returns:
        X: [num_samples, 1]
        Y: [num_samples, 1]
    """
    rng = np.random.default_rng(seed)
    X = rng.uniform(low, high, size=(num_samples, 1))
    noise_std = 0.1 + 0.2 * np.abs(X)
    Y = np.sin(X) + noise_std * rng.standard_normal((num_samples, 1))
    return X.astype(np.float32), Y.astype(np.float32)


def get_dataloaders(
    dataset_name: str = 'linear',
    num_samples: int = 1000,
    input_dim: int = 1,
    noise_std: float = 1.0,
    batch_size: int = 20,
    val_fraction: float = 0.1,
    test_fraction: float = 0.1,
    seed: int = 42,
    num_workers: int = 0
) -> Tuple[DataLoader, DataLoader, DataLoader, int]:
    """
    Build train/val/test loaders for a synthetic dataset

    Returns:
        train_loader, val_loader, test_loader, num_train
    """
    if dataset_name == 'linear':
        X, Y = gen_data(num_samples, input_dim=input_dim, noise_std=noise_std, seed=seed)
    elif dataset_name == 'heteroscedastic':
        if input_dim != 1:
            raise ConfigurationError("heteroscedastic dataset is one-dimensional")
        X, Y = gen_heteroscedastic_data(num_samples, seed=seed)
    else:
        raise ConfigurationError(f"Unknown dataset: {dataset_name}")

    if not 0.0 < val_fraction + test_fraction < 1.0:
        raise ConfigurationError("val_fraction + test_fraction must lie in (0, 1)")

    X_train, X_rest, Y_train, Y_rest = train_test_split(
        X, Y, test_size=val_fraction + test_fraction, random_state=seed
    )
    X_val, X_test, Y_val, Y_test = train_test_split(
        X_rest, Y_rest,
        test_size=test_fraction / (val_fraction + test_fraction),
        random_state=seed
    )

    print(f"✓ {dataset_name}: train {len(X_train)}, val {len(X_val)}, test {len(X_test)}")

    train_loader = DataLoader(
        RegressionDataset(X_train, Y_train),
        batch_size=batch_size,
        shuffle=True,
        num_workers=num_workers
    )
    val_loader = DataLoader(
        RegressionDataset(X_val, Y_val),
        batch_size=batch_size * 2,
        shuffle=False,
        num_workers=num_workers
    )
    test_loader = DataLoader(
        RegressionDataset(X_test, Y_test),
        batch_size=batch_size * 2,
        shuffle=False,
        num_workers=num_workers
    )

    return train_loader, val_loader, test_loader, len(X_train)
