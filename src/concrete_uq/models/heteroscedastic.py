import torch
import torch.nn as nn
from torch import Tensor
from typing import Dict, List, Optional, Sequence, Tuple

from .concrete_dropout import ConcreteDropout
from ..errors import ConfigurationError


ACTIVATIONS = {
    'relu': nn.ReLU,
    'tanh': nn.Tanh,
    'gelu': nn.GELU,
}


class HeteroscedasticRegressor(nn.Module):
    """
    Dual-head regression network with Concrete Dropout on every layer

    A trunk of Concrete Dropout wrapped dense layers feeds two wrapped
    output heads: the predictive mean and the log predictive variance.
    Their outputs are concatenated along the feature axis, mean columns
    first.

    Args:
        input_dim (int): Number of input features
        output_dim (int): Number of regression targets
        hidden_sizes (Sequence[int]): Width of each trunk layer
        activation (str): Trunk activation ('relu', 'tanh' or 'gelu')
        weight_regularizer (float): λ_w for every wrapper
        dropout_regularizer (float): λ_p for every wrapper
        init_min (float): Lower bound for initial dropout probabilities
        init_max (float): Upper bound for initial dropout probabilities
        is_mc_dropout (bool): Keep dropout active at inference
    """

    def __init__(
        self,
        input_dim: int,
        output_dim: int = 1,
        hidden_sizes: Sequence[int] = (1024, 1024, 1024),
        activation: str = 'relu',
        weight_regularizer: float = 1e-6,
        dropout_regularizer: float = 1e-5,
        init_min: float = 0.1,
        init_max: float = 0.1,
        is_mc_dropout: bool = True,
    ):
        super().__init__()

        if input_dim < 1 or output_dim < 1:
            raise ConfigurationError(
                f"input_dim and output_dim must be >= 1, got {input_dim}, {output_dim}"
            )
        if activation not in ACTIVATIONS:
            raise ConfigurationError(f"Unknown activation: {activation}")

        self.input_dim = input_dim
        self.output_dim = output_dim
        self.hidden_sizes = list(hidden_sizes)
        self.activation_name = activation
        self.weight_regularizer = weight_regularizer
        self.dropout_regularizer = dropout_regularizer
        self.init_min = init_min
        self.init_max = init_max
        self.is_mc_dropout = is_mc_dropout

        # Trunk
        self.trunk = nn.ModuleList()
        last = input_dim
        for hidden in self.hidden_sizes:
            self.trunk.append(self._wrap(nn.Linear(last, hidden)))
            last = hidden
        self.activation = ACTIVATIONS[activation]()

        # Output heads
        self.mean_head = self._wrap(nn.Linear(last, output_dim))
        self.log_var_head = self._wrap(nn.Linear(last, output_dim))

    def _wrap(self, layer: nn.Module) -> ConcreteDropout:
        return ConcreteDropout(
            layer,
            weight_regularizer=self.weight_regularizer,
            dropout_regularizer=self.dropout_regularizer,
            init_min=self.init_min,
            init_max=self.init_max,
            is_mc_dropout=self.is_mc_dropout,
        )

    def concrete_layers(self) -> List[ConcreteDropout]:
        """All wrappers: trunk order, then mean head, then log-variance head"""
        return list(self.trunk) + [self.mean_head, self.log_var_head]

    def dropout_probabilities(self) -> List[float]:
        """Current dropout probability of every wrapper"""
        return [layer.p.item() for layer in self.concrete_layers()]

    def forward(
        self,
        x: Tensor,
        training: Optional[bool] = None
    ) -> Tuple[Tensor, Tensor]:
        """
        Forward pass

        Args:
            x: Input [batch_size, input_dim]
            training: Training/inference flag passed to every wrapper.
                ``None`` uses ``self.training``.

        Returns:
            output: [batch_size, 2 * output_dim] (mean, log variance)
            regularization: Sum of every wrapper's regularization term
        """
        if training is None:
            training = self.training

        regularization = torch.zeros((), device=x.device)

        hidden = x
        for layer in self.trunk:
            hidden, layer_reg = layer(hidden, training=training)
            hidden = self.activation(hidden)
            regularization = regularization + layer_reg

        mean, mean_reg = self.mean_head(hidden, training=training)
        log_var, log_var_reg = self.log_var_head(hidden, training=training)
        regularization = regularization + mean_reg + log_var_reg

        output = torch.cat([mean, log_var], dim=1)
        return output, regularization

    def split_output(self, output: Tensor) -> Tuple[Tensor, Tensor]:
        """Split concatenated output into (mean, log_var)"""
        if output.shape[-1] != 2 * self.output_dim:
            raise ConfigurationError(
                f"Output has {output.shape[-1]} columns, expected {2 * self.output_dim}"
            )
        return output[..., :self.output_dim], output[..., self.output_dim:]

    def get_config(self) -> Dict:
        """Return config"""
        return {
            'input_dim': self.input_dim,
            'output_dim': self.output_dim,
            'hidden_sizes': self.hidden_sizes,
            'activation': self.activation_name,
            'weight_regularizer': self.weight_regularizer,
            'dropout_regularizer': self.dropout_regularizer,
            'init_min': self.init_min,
            'init_max': self.init_max,
            'is_mc_dropout': self.is_mc_dropout,
        }

    @classmethod
    def from_pretrained(cls, checkpoint_path: str, device: str = 'cpu'):
        """Load checkpoint"""
        checkpoint = torch.load(checkpoint_path, map_location=device, weights_only=False)
        config = checkpoint['config']
        model = cls(**config)
        model.load_state_dict(checkpoint['model_state_dict'])
        model.to(device)
        return model

    def save_pretrained(self, save_path: str):
        """Save checkpoint"""
        torch.save({
            'config': self.get_config(),
            'model_state_dict': self.state_dict(),
        }, save_path)
        print(f"✓ Model saved to {save_path}")
