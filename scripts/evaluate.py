"""
Evaluation Script for Concrete Dropout Regression

Runs Monte Carlo sampling on the test split, decomposes uncertainty and
writes metric tables.

Usage:
    python scripts/evaluate.py \
        --checkpoint experiments/linear/checkpoints/best_model.pt \
        --dataset linear --mc_samples 100

"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import torch
import numpy as np
import pandas as pd
import json

from concrete_uq.models import HeteroscedasticRegressor, MonteCarloEstimator
from concrete_uq.data import get_dataloaders
from concrete_uq.evaluation import compute_all_metrics


def parse_args():
    """Parse arguments"""
    parser = argparse.ArgumentParser(description='Evaluate a Concrete Dropout regressor')

    parser.add_argument('--checkpoint', type=str, required=True,
                       help='Path to model checkpoint')
    parser.add_argument('--dataset', type=str, default='linear',
                       choices=['linear', 'heteroscedastic'])
    parser.add_argument('--num_samples', type=int, default=1000)
    parser.add_argument('--noise_std', type=float, default=1.0)
    parser.add_argument('--mc_samples', type=int, default=100,
                       help='Monte Carlo forward passes')
    parser.add_argument('--num_workers', type=int, default=1,
                       help='Threads used for Monte Carlo passes')
    parser.add_argument('--num_std', type=float, default=2.0,
                       help='Interval half-width in total standard deviations')
    parser.add_argument('--device', type=str, default='cpu')
    parser.add_argument('--output_dir', type=str, default='results')
    parser.add_argument('--seed', type=int, default=42)

    return parser.parse_args()


def convert_to_native(obj):
    """Convert numpy types to native Python types for JSON serialization"""
    if isinstance(obj, (np.integer, np.int32, np.int64)):
        return int(obj)
    elif isinstance(obj, (np.floating, np.float32, np.float64)):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {key: convert_to_native(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_to_native(item) for item in obj]
    else:
        return obj


def main():
    """Main evaluation"""
    args = parse_args()

    print("\n" + "="*60)
    print("Concrete Dropout Evaluation")
    print("="*60 + "\n")

    device = torch.device(args.device if torch.cuda.is_available() else 'cpu')
    print(f"✓ Device: {device}")

    print(f"\nLoading checkpoint: {args.checkpoint}")
    model = HeteroscedasticRegressor.from_pretrained(args.checkpoint, device=str(device))
    model.eval()
    print("✓ Model loaded")

    config = model.get_config()
    print(f"\nModel Configuration:")
    for key, value in config.items():
        print(f"  {key}: {value}")

    # Same seed and split as training
    _, _, test_loader, _ = get_dataloaders(
        dataset_name=args.dataset,
        num_samples=args.num_samples,
        input_dim=config['input_dim'],
        noise_std=args.noise_std,
        seed=args.seed
    )
    test_set = test_loader.dataset
    inputs = test_set.inputs.to(device)
    targets = test_set.targets.numpy()

    torch.manual_seed(args.seed)
    estimator = MonteCarloEstimator(num_samples=args.mc_samples, num_workers=args.num_workers)
    report = estimator.estimate(model, inputs)

    metrics = compute_all_metrics(report, targets, num_std=args.num_std)
    dropout_probabilities = model.dropout_probabilities()

    print("\n" + "="*60)
    print("RESULTS")
    print("="*60 + "\n")

    print("Accuracy Metrics:")
    print(f"  RMSE:        {metrics['rmse']:.4f}")
    print(f"  MAE:         {metrics['mae']:.4f}")
    print(f"  NLL:         {metrics['nll']:.4f}")

    print("\nInterval Metrics:")
    print(f"  PICP:        {metrics['picp']:.4f}")
    print(f"  Width:       {metrics['interval_width']:.4f}")
    print(f"  Cal. error:  {metrics['calibration_error']:.4f}")

    print("\nUncertainty Statistics:")
    print(f"  Epistemic:   {metrics['mean_epistemic_std']:.4f}")
    print(f"  Aleatoric:   {metrics['mean_aleatoric_std']:.4f}")
    print(f"  Dropout p:   {', '.join(f'{p:.3f}' for p in dropout_probabilities)}")

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    metrics_native = convert_to_native({
        **metrics,
        'mc_samples': args.mc_samples,
        'dropout_probabilities': dropout_probabilities,
    })

    metrics_file = output_dir / f'{args.dataset}_metrics.json'
    with open(metrics_file, 'w') as f:
        json.dump(metrics_native, f, indent=2)
    print(f"\n✓ Metrics saved to: {metrics_file}")

    # Per-row predictions
    stats = report.to_numpy()
    df = pd.DataFrame({
        'target': targets[:, 0],
        'mean': stats['mean'][:, 0],
        'epistemic_std': stats['epistemic_std'][:, 0],
        'aleatoric_std': stats['aleatoric_std'][:, 0],
        'total_std': stats['total_std'][:, 0],
    })
    csv_file = output_dir / f'{args.dataset}_predictions.csv'
    df.to_csv(csv_file, index=False)
    print(f"✓ Predictions saved to: {csv_file}")

    print("\n" + "="*60)
    print("EVALUATION COMPLETE!")
    print("="*60)


if __name__ == '__main__':
    main()
