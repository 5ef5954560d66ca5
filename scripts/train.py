"""
Training Script for Concrete Dropout Heteroscedastic Regression

Usage:
    python scripts/train.py --dataset heteroscedastic --num_samples 2000 --epochs 200
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import torch
from torch.optim import AdamW
from transformers import get_linear_schedule_with_warmup
import random
import numpy as np
import json

from concrete_uq.models import HeteroscedasticRegressor, HeteroscedasticLoss, regularizer_constants
from concrete_uq.data import get_dataloaders
from concrete_uq.training import Trainer


def set_seed(seed: int):
    """Set random seed"""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)
    torch.backends.cudnn.deterministic = True
    torch.backends.cudnn.benchmark = False


def parse_args():
    """Parse arguments"""
    parser = argparse.ArgumentParser(description='Train a Concrete Dropout regressor')

    # Dataset
    parser.add_argument('--dataset', type=str, default='linear',
                       choices=['linear', 'heteroscedastic'])
    parser.add_argument('--num_samples', type=int, default=1000)
    parser.add_argument('--input_dim', type=int, default=1)
    parser.add_argument('--noise_std', type=float, default=1.0)

    # Model
    parser.add_argument('--hidden_sizes', type=int, nargs='+', default=[1024, 1024, 1024])
    parser.add_argument('--activation', type=str, default='relu',
                       choices=['relu', 'tanh', 'gelu'])
    parser.add_argument('--length_scale', type=float, default=1e-4,
                       help='Prior length scale for the weight regularizer')
    parser.add_argument('--init_min', type=float, default=0.1)
    parser.add_argument('--init_max', type=float, default=0.1)
    parser.add_argument('--no_mc_dropout', action='store_true',
                       help='Disable dropout at inference')

    # Training
    parser.add_argument('--epochs', type=int, default=500)
    parser.add_argument('--batch_size', type=int, default=20)
    parser.add_argument('--learning_rate', type=float, default=1e-3)
    parser.add_argument('--warmup_steps', type=int, default=0)
    parser.add_argument('--gradient_accumulation_steps', type=int, default=1)
    parser.add_argument('--max_grad_norm', type=float, default=10.0)
    parser.add_argument('--early_stopping_patience', type=int, default=50)

    # Output
    parser.add_argument('--output_dir', type=str, default=None)

    # Hardware
    parser.add_argument('--device', type=str, default='cpu')

    # Reproducibility
    parser.add_argument('--seed', type=int, default=42)

    return parser.parse_args()


def main():
    """Main function"""
    args = parse_args()

    print("\n" + "="*60)
    print("Concrete Dropout Training")
    print("="*60 + "\n")

    set_seed(args.seed)
    print(f" Seed: {args.seed}")

    if args.device == 'cuda' and not torch.cuda.is_available():
        print(" CUDA not available, using CPU")
        args.device = 'cpu'
    device = torch.device(args.device)
    print(f" Device: {device}")

    if args.output_dir is None:
        args.output_dir = f"experiments/{args.dataset}"
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    print(f" Output: {output_dir}")

    # Load dataset
    print(f"\n{'='*60}")
    print(f"Generating {args.dataset} data...")
    print(f"{'='*60}\n")

    train_loader, val_loader, _, num_train = get_dataloaders(
        dataset_name=args.dataset,
        num_samples=args.num_samples,
        input_dim=args.input_dim,
        noise_std=args.noise_std,
        batch_size=args.batch_size,
        seed=args.seed
    )

    weight_regularizer, dropout_regularizer = regularizer_constants(
        num_train, length_scale=args.length_scale
    )

    # Initialize model
    model = HeteroscedasticRegressor(
        input_dim=args.input_dim,
        output_dim=1,
        hidden_sizes=args.hidden_sizes,
        activation=args.activation,
        weight_regularizer=weight_regularizer,
        dropout_regularizer=dropout_regularizer,
        init_min=args.init_min,
        init_max=args.init_max,
        is_mc_dropout=not args.no_mc_dropout
    )
    loss_fn = HeteroscedasticLoss(output_dim=model.output_dim)

    print(f"✓ Hidden sizes: {model.hidden_sizes}")
    print(f"✓ Weight regularizer: {weight_regularizer:.3e}")
    print(f"✓ Dropout regularizer: {dropout_regularizer:.3e}")
    print(f"✓ Parameters: {sum(p.numel() for p in model.parameters()):,}")

    # Optimizer; regularization comes from the Concrete Dropout layers
    optimizer = AdamW(
        model.parameters(),
        lr=args.learning_rate,
        weight_decay=0.0
    )

    total_steps = len(train_loader) * args.epochs // args.gradient_accumulation_steps
    scheduler = get_linear_schedule_with_warmup(
        optimizer,
        num_warmup_steps=args.warmup_steps,
        num_training_steps=total_steps
    )

    print(f"\n✓ Optimizer: AdamW (lr={args.learning_rate})")
    print(f"✓ Total steps: {total_steps}")

    trainer = Trainer(
        model=model,
        loss_fn=loss_fn,
        train_loader=train_loader,
        val_loader=val_loader,
        optimizer=optimizer,
        scheduler=scheduler,
        device=device,
        output_dir=args.output_dir,
        max_epochs=args.epochs,
        early_stopping_patience=args.early_stopping_patience,
        gradient_accumulation_steps=args.gradient_accumulation_steps,
        max_grad_norm=args.max_grad_norm,
        show_progress=False
    )

    history = trainer.train()

    config_file = output_dir / 'model_config.json'
    with open(config_file, 'w') as f:
        json.dump({
            **model.get_config(),
            'dataset': args.dataset,
            'num_samples': args.num_samples,
            'noise_std': args.noise_std,
            'length_scale': args.length_scale,
            'batch_size': args.batch_size,
            'learning_rate': args.learning_rate,
            'epochs': args.epochs,
            'seed': args.seed,
            'final_dropout_probabilities': history['dropout_probabilities'][-1],
        }, f, indent=2)

    print(f"\n{'='*60}")
    print("TRAINING COMPLETE!")
    print(f"{'='*60}")
    print(f"\nBest checkpoint: {output_dir}/checkpoints/best_model.pt")
    print(f"\nEvaluate with:")
    print(f"   python scripts/evaluate.py --checkpoint {output_dir}/checkpoints/best_model.pt --dataset {args.dataset}")


if __name__ == '__main__':
    main()
