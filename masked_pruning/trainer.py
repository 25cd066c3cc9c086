"""
Train-to-convergence loop with early stopping and best-model restoration.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import torch
import torch.nn as nn

from utils.data_loader import make_loader
from utils.metrics import copy_model_state, load_model_state
from utils.train_utils import train_epoch, dataset_loss


class EarlyStopping:
    """
    Signals a stop after ``patience`` consecutive calls without a strict
    decrease of the observed score.
    """

    def __init__(self, patience: int, init_score: float = math.inf):
        self.patience = patience
        self.best_score = init_score
        self.counter = 0

    def __call__(self, score: float) -> bool:
        if score < self.best_score:
            self.best_score = score
            self.counter = 0
        else:
            self.counter += 1
        return self.counter >= self.patience


def split_train_val(inputs: torch.Tensor,
                    targets: torch.Tensor,
                    validation_fraction: float) -> Tuple[Tuple[torch.Tensor, torch.Tensor],
                                                         Tuple[torch.Tensor, torch.Tensor]]:
    """
    Take the trailing ``validation_fraction`` of samples as validation set.

    NOTE: No shuffling is performed; callers pass pre-shuffled data.
    """
    n_samples = inputs.size(0)
    n_val = int(round(n_samples * validation_fraction))
    n_train = n_samples - n_val

    return (inputs[:n_train], targets[:n_train]), (inputs[n_train:], targets[n_train:])


class ConvergenceTrainer:
    """
    Trains until the training loss plateaus, keeping the model with the
    lowest validation loss seen.

    Early stopping watches the training loss while the snapshot watches the
    validation loss.
    """

    def __init__(self,
                 model: nn.Module,
                 optimizer: torch.optim.Optimizer,
                 loss_fn,
                 batch_size: int = 128,
                 max_epochs: int = 100,
                 patience: int = 3,
                 validation_fraction: float = 0.1,
                 device: Optional[torch.device] = None,
                 progress: bool = True):
        self.model = model
        self.optimizer = optimizer
        self.loss_fn = loss_fn
        self.batch_size = batch_size
        self.max_epochs = max_epochs
        self.patience = patience
        self.validation_fraction = validation_fraction
        self.device = device
        self.progress = progress

        self.history: Dict[str, List[float]] = {
            'train_loss': [],
            'val_loss': []
        }
        self.best_val_loss = math.inf
        self.best_state: Optional[Dict[str, torch.Tensor]] = None

    def evaluate(self, inputs: torch.Tensor, targets: torch.Tensor) -> float:
        return dataset_loss(self.model, inputs, targets, self.loss_fn)

    def fit(self, train_data: Tuple[torch.Tensor, torch.Tensor]) -> nn.Module:
        inputs, targets = train_data
        if self.device is not None:
            inputs, targets = inputs.to(self.device), targets.to(self.device)

        (x_train, y_train), (x_val, y_val) = split_train_val(inputs, targets, self.validation_fraction)
        train_loader = make_loader(x_train, y_train, batch_size=self.batch_size)

        self.best_val_loss = self.evaluate(x_val, y_val)
        self.best_state = copy_model_state(self.model)
        early_stopping = EarlyStopping(self.patience)

        for epoch in range(1, self.max_epochs + 1):
            train_epoch(self.model, train_loader, self.loss_fn, self.optimizer,
                        epoch=epoch, progress=self.progress)

            val_loss = self.evaluate(x_val, y_val)
            train_loss = self.evaluate(x_train, y_train)

            self.history['val_loss'].append(val_loss)
            self.history['train_loss'].append(train_loss)

            logging.info(f"Epoch {epoch:3d} - loss (val/train): {val_loss:7.4f} / {train_loss:7.4f}")

            if val_loss < self.best_val_loss:
                self.best_val_loss = val_loss
                self.best_state = copy_model_state(self.model)

            if early_stopping(train_loss):
                logging.info(f"No improvement for {self.patience} epochs. Stopping early.")
                break

        load_model_state(self.model, self.best_state)
        logging.info(f"Best loss (val/train): {self.best_val_loss:.4f} / "
                     f"{self.evaluate(x_train, y_train):.4f}")

        return self.model


def train_to_convergence(model: nn.Module,
                         optimizer: torch.optim.Optimizer,
                         train_data: Tuple[torch.Tensor, torch.Tensor],
                         loss_fn,
                         batch_size: int = 128,
                         max_epochs: int = 100,
                         patience: int = 3,
                         validation_fraction: float = 0.1,
                         device: Optional[torch.device] = None,
                         progress: bool = True) -> nn.Module:
    trainer = ConvergenceTrainer(model, optimizer, loss_fn,
                                 batch_size=batch_size,
                                 max_epochs=max_epochs,
                                 patience=patience,
                                 validation_fraction=validation_fraction,
                                 device=device,
                                 progress=progress)
    return trainer.fit(train_data)
