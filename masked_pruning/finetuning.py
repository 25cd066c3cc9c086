"""
Fine-tuning stopping policies applied after each pruning round.

A FineTuneStrategy is a tagged value: its ``kind`` picks the stopping rule in
``finetune`` and ``value`` is that rule's single parameter.
"""

import logging
import math
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Union

import torch
import torch.nn as nn

from utils.train_utils import train_epoch


class FineTuneKind(Enum):
    EPOCHS = 'epochs'
    ABSOLUTE_LOSS = 'absolute_loss'
    LOSS_DIFFERENCE = 'loss_difference'
    ACCURACY_DIFFERENCE = 'accuracy_difference'


class FineTuneStrategy(NamedTuple):
    kind: FineTuneKind
    value: Union[int, float]


def TuneByEpochs(epochs: int) -> FineTuneStrategy:
    return FineTuneStrategy(FineTuneKind.EPOCHS, epochs)


def TuneByAbsoluteLoss(threshold: float) -> FineTuneStrategy:
    return FineTuneStrategy(FineTuneKind.ABSOLUTE_LOSS, threshold)


def TuneByLossDifference(threshold: float) -> FineTuneStrategy:
    return FineTuneStrategy(FineTuneKind.LOSS_DIFFERENCE, threshold)


def TuneByAccuracyDifference(threshold: float) -> FineTuneStrategy:
    return FineTuneStrategy(FineTuneKind.ACCURACY_DIFFERENCE, threshold)


def _exceeds(value: float, threshold: float) -> bool:
    # Values equal to the threshold up to float rounding count as reached
    return value > threshold and not math.isclose(value, threshold, rel_tol=1e-9, abs_tol=1e-12)


def _should_continue(kind: FineTuneKind, threshold, history: Dict[str, List[float]]) -> bool:
    epoch = len(history['train_loss'])

    if kind is FineTuneKind.EPOCHS:
        return epoch < threshold

    if epoch == 0:
        return True

    if kind is FineTuneKind.ABSOLUTE_LOSS:
        return _exceeds(history['train_loss'][-1], threshold)

    if kind is FineTuneKind.LOSS_DIFFERENCE:
        # First epoch is compared against a zero baseline
        previous = history['train_loss'][-2] if epoch > 1 else 0.0
        return _exceeds(abs(previous - history['train_loss'][-1]), threshold)

    if kind is FineTuneKind.ACCURACY_DIFFERENCE:
        previous = history['train_acc'][-2] if epoch > 1 else 0.0
        return _exceeds(history['train_acc'][-1] - previous, threshold)

    raise ValueError(f"Unknown fine-tune strategy: {kind}")


def finetune(strategy: FineTuneStrategy,
             model: nn.Module,
             loss_fn,
             optimizer: torch.optim.Optimizer,
             data,
             max_epochs: int = 100,
             device: Optional[torch.device] = None,
             progress: bool = True) -> Dict:
    """
    Train ``model`` on ``data`` until ``strategy`` says stop.

    Every epoch is a full pass over ``data`` with one optimizer step per
    batch; there is no held-out set. Loss and accuracy based strategies also
    stop after ``max_epochs``; ``TuneByEpochs`` ignores the cap.
    """
    kind = strategy.kind
    if not isinstance(kind, FineTuneKind):
        raise ValueError(f"Unknown fine-tune strategy: {kind}")

    history = {
        'train_loss': [],
        'train_acc': []
    }

    while _should_continue(kind, strategy.value, history):
        if kind is not FineTuneKind.EPOCHS and len(history['train_loss']) >= max_epochs:
            break

        epoch = len(history['train_loss']) + 1
        train_loss, train_acc = train_epoch(model, data, loss_fn, optimizer,
                                            device=device, epoch=epoch, progress=progress)

        history['train_loss'].append(train_loss)
        history['train_acc'].append(train_acc)

        logging.info(f"epoch: {epoch} - train accuracy: {train_acc:.4f} - train loss: {train_loss:.4f}")

    history['epochs'] = len(history['train_loss'])
    return history
