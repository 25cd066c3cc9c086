"""
Scheduled Magnitude Pruning

Masked layers, magnitude pruning to a target sparsity, training to
convergence, and fine-tuning policies run after each pruning step.
"""

from .masked_layers import MaskedLayer, wrap, mask, unmask, named_masked_layers
from .pruner import PruningMethod, prune, prune_with, sparsity, sparsity_stats, log_sparsity_stats
from .trainer import ConvergenceTrainer, EarlyStopping, split_train_val, train_to_convergence
from .finetuning import (
    FineTuneKind,
    FineTuneStrategy,
    TuneByEpochs,
    TuneByAbsoluteLoss,
    TuneByLossDifference,
    TuneByAccuracyDifference,
    finetune
)
from .schedule import PruningSchedule, scheduled_pruning
from .results import ResultsWriter

__all__ = [
    'MaskedLayer',
    'wrap',
    'mask',
    'unmask',
    'named_masked_layers',
    'PruningMethod',
    'prune',
    'prune_with',
    'sparsity',
    'sparsity_stats',
    'log_sparsity_stats',
    'ConvergenceTrainer',
    'EarlyStopping',
    'split_train_val',
    'train_to_convergence',
    'FineTuneKind',
    'FineTuneStrategy',
    'TuneByEpochs',
    'TuneByAbsoluteLoss',
    'TuneByLossDifference',
    'TuneByAccuracyDifference',
    'finetune',
    'PruningSchedule',
    'scheduled_pruning',
    'ResultsWriter'
]
