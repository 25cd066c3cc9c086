from .data_loader import get_fashion_mnist_tensors, load_fashion_mnist, shuffle_tensors, make_loader
from .train_utils import train_epoch, dataset_loss
from .metrics import (
    correct_predictions,
    accuracy,
    count_parameters,
    count_nonzero_parameters,
    copy_model_state,
    load_model_state
)

__all__ = [
    'get_fashion_mnist_tensors',
    'load_fashion_mnist',
    'shuffle_tensors',
    'make_loader',
    'train_epoch',
    'dataset_loss',
    'correct_predictions',
    'accuracy',
    'count_parameters',
    'count_nonzero_parameters',
    'copy_model_state',
    'load_model_state'
]
