from .synthetic import (
    RegressionDataset,
    gen_data,
    gen_heteroscedastic_data,
    get_dataloaders,
)

__all__ = [
    'RegressionDataset',
    'gen_data',
    'gen_heteroscedastic_data',
    'get_dataloaders',
]
