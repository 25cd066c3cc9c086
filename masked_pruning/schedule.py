"""
Scheduled pruning: alternate pruning steps with fine-tuning.
"""

import logging
from typing import Optional, Sequence, Tuple

import torch
import torch.nn as nn

from .finetuning import FineTuneStrategy, finetune
from .pruner import PruningMethod, prune_with, sparsity, log_sparsity_stats


PruningSchedule = Sequence[Tuple[PruningMethod, FineTuneStrategy]]


def scheduled_pruning(model: nn.Module,
                      schedule: PruningSchedule,
                      loss_fn,
                      optimizer: torch.optim.Optimizer,
                      data,
                      max_epochs: int = 100,
                      device: Optional[torch.device] = None,
                      verbose: bool = False,
                      progress: bool = True) -> nn.Module:
    """
    Apply every ``(pruning_method, strategy)`` pair of ``schedule`` in order.

    The model must already be masked (see ``masked_layers.mask``). Each step
    prunes the masks and then fine-tunes with the shared ``optimizer`` and
    ``data``. Returns the model after the last step.
    """
    for step, (pruning_method, strategy) in enumerate(schedule, start=1):
        logging.info(f"Step {step}/{len(schedule)}: pruning to "
                     f"{100 * pruning_method.target_sparsity:.1f}% "
                     f"({'layer-wise' if pruning_method.layerwise else 'global'}), "
                     f"fine-tuning by {strategy.kind.value}={strategy.value}")
        logging.info(f"Old sparsity: {sparsity(model):.4f}")

        model = prune_with(model, pruning_method)

        logging.info(f"Current sparsity: {sparsity(model):.4f}")
        if verbose:
            log_sparsity_stats(model, prefix=f"Step {step} - ")

        finetune(strategy, model, loss_fn, optimizer, data,
                 max_epochs=max_epochs, device=device, progress=progress)

    return model
