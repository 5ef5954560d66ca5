import torch
import torch.nn as nn
from torch.utils.data import DataLoader
from tqdm import tqdm
import numpy as np
from pathlib import Path
from typing import Dict
import json
import time

from ..errors import NumericalDivergenceError


class Trainer:
    """
    Trainer for Concrete Dropout regression models

    Minimizes the heteroscedastic loss plus the regularization terms the
    model returns from every forward pass.

    Args:
        model: Model returning (output, regularization)
        loss_fn: HeteroscedasticLoss
        train_loader: Training data loader
        val_loader: Validation data loader
        optimizer: Optimizer
        scheduler: Learning rate scheduler (optional)
        device: Device to train on
        output_dir: Directory to save checkpoints
        max_epochs: Maximum number of epochs
        early_stopping_patience: Patience for early stopping
        gradient_accumulation_steps: Steps to accumulate gradients
        max_grad_norm: Maximum gradient norm for clipping
        show_progress: Display tqdm progress bars
    """

    def __init__(
        self,
        model: nn.Module,
        loss_fn: nn.Module,
        train_loader: DataLoader,
        val_loader: DataLoader,
        optimizer,
        scheduler=None,
        device: str = 'cpu',
        output_dir: str = 'experiments',
        max_epochs: int = 100,
        early_stopping_patience: int = 10,
        gradient_accumulation_steps: int = 1,
        max_grad_norm: float = 10.0,
        log_interval: int = 100,
        show_progress: bool = True,
    ):
        self.model = model.to(device)
        self.loss_fn = loss_fn
        self.train_loader = train_loader
        self.val_loader = val_loader
        self.optimizer = optimizer
        self.scheduler = scheduler
        self.device = device
        self.output_dir = Path(output_dir)
        self.max_epochs = max_epochs
        self.early_stopping_patience = early_stopping_patience
        self.gradient_accumulation_steps = gradient_accumulation_steps
        self.max_grad_norm = max_grad_norm
        self.log_interval = log_interval
        self.show_progress = show_progress

        # Create output directories
        self.checkpoint_dir = self.output_dir / 'checkpoints'
        self.log_dir = self.output_dir / 'logs'
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Training state
        self.current_epoch = 0
        self.global_step = 0
        self.best_val_loss = float('inf')
        self.epochs_without_improvement = 0

        # History
        self.history = {
            'train_loss': [],
            'train_regularization': [],
            'val_loss': [],
            'val_rmse': [],
            'learning_rate': [],
            'dropout_probabilities': [],
        }

    def current_lr(self) -> float:
        if self.scheduler is not None:
            return self.scheduler.get_last_lr()[0]
        return self.optimizer.param_groups[0]['lr']

    def train_epoch(self) -> Dict[str, float]:
        """Train for one epoch"""
        self.model.train()

        total_loss = 0
        total_nll = 0
        total_reg = 0

        progress_bar = tqdm(
            self.train_loader,
            desc=f"Epoch {self.current_epoch+1}/{self.max_epochs}",
            disable=not self.show_progress
        )

        for step, batch in enumerate(progress_bar):
            inputs = batch['inputs'].to(self.device)
            targets = batch['targets'].to(self.device)

            # Forward pass
            outputs, regularization = self.model(inputs, training=True)
            try:
                losses = self.loss_fn(outputs, targets, regularization)
            except NumericalDivergenceError as e:
                print(f"\n✗ Divergence at epoch {self.current_epoch + 1}, step {step}: {e}")
                raise

            loss = losses['loss']

            # Normalize loss for gradient accumulation
            loss = loss / self.gradient_accumulation_steps
            loss.backward()

            if (step + 1) % self.gradient_accumulation_steps == 0:
                torch.nn.utils.clip_grad_norm_(
                    self.model.parameters(),
                    self.max_grad_norm
                )

                self.optimizer.step()
                if self.scheduler is not None:
                    self.scheduler.step()
                self.optimizer.zero_grad()

                self.global_step += 1

            # Track metrics
            total_loss += losses['loss'].item()
            total_nll += losses['nll'].item()
            total_reg += losses['regularization'].item()

            progress_bar.set_postfix({
                'loss': f"{total_loss / (step + 1):.4f}",
                'reg': f"{total_reg / (step + 1):.4f}",
                'lr': f"{self.current_lr():.2e}"
            })

            if (step + 1) % self.log_interval == 0:
                self.log_step(step, total_loss / (step + 1), self.current_lr())

        num_batches = len(self.train_loader)
        return {
            'loss': total_loss / num_batches,
            'nll': total_nll / num_batches,
            'regularization': total_reg / num_batches,
        }

    def validate(self) -> Dict[str, float]:
        """Validate the model"""
        self.model.eval()

        total_loss = 0
        squared_errors = []

        with torch.no_grad():
            for batch in tqdm(self.val_loader, desc="Validating", disable=not self.show_progress):
                inputs = batch['inputs'].to(self.device)
                targets = batch['targets'].to(self.device)

                outputs, regularization = self.model(inputs, training=False)
                losses = self.loss_fn(outputs, targets, regularization)
                total_loss += losses['loss'].item()

                mean = outputs[:, :self.loss_fn.output_dim]
                squared_errors.append(((mean - targets) ** 2).cpu().numpy())

        squared_errors = np.concatenate(squared_errors, axis=0)

        return {
            'loss': total_loss / len(self.val_loader),
            'rmse': float(np.sqrt(squared_errors.mean())),
        }

    def save_checkpoint(self, filename: str = 'checkpoint.pt', is_best: bool = False):
        """Save model checkpoint"""
        checkpoint = {
            'epoch': self.current_epoch,
            'global_step': self.global_step,
            'model_state_dict': self.model.state_dict(),
            'optimizer_state_dict': self.optimizer.state_dict(),
            'scheduler_state_dict': self.scheduler.state_dict() if self.scheduler is not None else None,
            'best_val_loss': self.best_val_loss,
            'history': self.history,
            'config': self.model.get_config()
        }

        save_path = self.checkpoint_dir / filename
        torch.save(checkpoint, save_path)

        if is_best:
            best_path = self.checkpoint_dir / 'best_model.pt'
            torch.save(checkpoint, best_path)
            print(f"✓ Best model saved: {best_path}")

    def load_checkpoint(self, checkpoint_path: str):
        """Load model checkpoint"""
        checkpoint = torch.load(checkpoint_path, map_location=self.device, weights_only=False)

        self.model.load_state_dict(checkpoint['model_state_dict'])
        self.optimizer.load_state_dict(checkpoint['optimizer_state_dict'])
        if self.scheduler is not None and checkpoint['scheduler_state_dict'] is not None:
            self.scheduler.load_state_dict(checkpoint['scheduler_state_dict'])

        self.current_epoch = checkpoint['epoch']
        self.global_step = checkpoint['global_step']
        self.best_val_loss = checkpoint['best_val_loss']
        self.history = checkpoint['history']

        print(f"✓ Checkpoint loaded from: {checkpoint_path}")

    def log_step(self, step: int, loss: float, lr: float):
        """Log training step"""
        log_data = {
            'epoch': self.current_epoch,
            'step': step,
            'global_step': self.global_step,
            'loss': loss,
            'learning_rate': lr,
            'timestamp': time.time()
        }

        log_file = self.log_dir / f'train_log_epoch_{self.current_epoch}.jsonl'
        with open(log_file, 'a') as f:
            f.write(json.dumps(log_data) + '\n')

    def log_epoch(self, train_metrics: Dict, val_metrics: Dict):
        """Log epoch results"""
        dropout_probabilities = self.model.dropout_probabilities()

        if self.show_progress:
            print(f"\nEpoch {self.current_epoch + 1}/{self.max_epochs} Results:")
            print(f"  Train Loss: {train_metrics['loss']:.4f}")
            print(f"  Train Reg:  {train_metrics['regularization']:.4f}")
            print(f"  Val Loss:   {val_metrics['loss']:.4f}")
            print(f"  Val RMSE:   {val_metrics['rmse']:.4f}")
            print(f"  Dropout p:  {', '.join(f'{p:.3f}' for p in dropout_probabilities)}")

        # Update history
        self.history['train_loss'].append(train_metrics['loss'])
        self.history['train_regularization'].append(train_metrics['regularization'])
        self.history['val_loss'].append(val_metrics['loss'])
        self.history['val_rmse'].append(val_metrics['rmse'])
        self.history['learning_rate'].append(self.current_lr())
        self.history['dropout_probabilities'].append(dropout_probabilities)

        history_file = self.log_dir / 'history.json'
        with open(history_file, 'w') as f:
            json.dump(self.history, f, indent=2)

    def check_early_stopping(self, val_loss: float) -> bool:
        """Check if training should stop early"""
        if val_loss < self.best_val_loss:
            self.best_val_loss = val_loss
            self.epochs_without_improvement = 0
            return False
        else:
            self.epochs_without_improvement += 1
            if self.epochs_without_improvement >= self.early_stopping_patience:
                print(f"\n⚠ Early stopping triggered! No improvement for {self.early_stopping_patience} epochs.")
                return True
            return False

    def train(self):
        """Main training loop"""
        print("\n" + "="*60)
        print("Starting Training")
        print("="*60 + "\n")

        start_time = time.time()

        for epoch in range(self.max_epochs):
            self.current_epoch = epoch

            train_metrics = self.train_epoch()
            val_metrics = self.validate()

            self.log_epoch(train_metrics, val_metrics)

            is_best = val_metrics['loss'] < self.best_val_loss
            self.save_checkpoint(filename='last_checkpoint.pt', is_best=is_best)

            if self.check_early_stopping(val_metrics['loss']):
                break

        elapsed_time = time.time() - start_time
        print("\n" + "="*60)
        print("Training Complete!")
        print("="*60)
        print(f"Total time: {elapsed_time:.1f} s")
        print(f"Best validation loss: {self.best_val_loss:.4f}")
        print(f"Best model saved at: {self.checkpoint_dir / 'best_model.pt'}")

        return self.history
