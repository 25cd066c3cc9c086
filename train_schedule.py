"""
Train a dense classifier on Fashion-MNIST, then prune it step by step to
increasing sparsity targets, retraining to convergence after every step.

Usage:
    python train_schedule.py --device accelerator --epochs 120 \
                             --targets 0.5 0.7 0.8 0.85 0.9 0.92 0.94 0.96 0.98 0.99
"""

import torch
import torch.nn as nn
import torch.optim as optim
import argparse
import os
import json
import time
import logging
from datetime import datetime

from models import DenseClassifier
from utils.data_loader import get_fashion_mnist_tensors
from utils.metrics import accuracy, count_parameters, count_nonzero_parameters
from masked_pruning import ResultsWriter, mask, unmask, prune, sparsity, train_to_convergence

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

DEFAULT_TARGETS = [0.5, 0.7, 0.8, 0.85, 0.9, 0.92, 0.94, 0.96, 0.98, 0.99]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Scheduled magnitude pruning - dense classifier on Fashion-MNIST')

    # Training
    parser.add_argument('--epochs', type=int, default=120, help='Maximum epochs per training run')
    parser.add_argument('--batch_size', type=int, default=128, help='Batch size')
    parser.add_argument('--lr', type=float, default=3e-4, help='Adam learning rate')
    parser.add_argument('--patience', type=int, default=5,
                        help='Epochs without training loss improvement before stopping')
    parser.add_argument('--validation_fraction', type=float, default=0.1,
                        help='Trailing fraction of the (pre-shuffled) training set used for validation')

    # Pruning
    parser.add_argument('--targets', nargs='+', type=float, default=DEFAULT_TARGETS,
                        help='Sparsity targets, applied in order')
    parser.add_argument('--layerwise', action='store_true',
                        help='Reach each target within every layer instead of globally')

    # Experiment
    parser.add_argument('--data_dir', type=str, default='./data')
    parser.add_argument('--results_dir', type=str, default='./results')
    parser.add_argument('--seed', type=int, default=0x35c88aa0a17d0e83, help='Random seed')
    parser.add_argument('--no_progress', action='store_true', help='Hide per-batch progress bars')

    # Hardware
    parser.add_argument('--device', type=str, default='accelerator', choices=['cpu', 'accelerator'],
                        help='Where tensors are allocated')

    return parser.parse_args(argv)


def resolve_device(name: str) -> torch.device:
    if name == 'accelerator':
        if torch.cuda.is_available():
            return torch.device('cuda')
        logging.warning("No accelerator available, falling back to CPU")
    return torch.device('cpu')


def log_accuracy(model, train_data, test_data, label='Accuracy'):
    acc_test = accuracy(model, *test_data)
    acc_train = accuracy(model, *train_data)
    logging.info(f"{label}: test {100 * acc_test:.1f}% / train {100 * acc_train:.1f}%")
    return acc_test, acc_train


def main(argv=None):
    args = parse_args(argv)

    generator = torch.Generator().manual_seed(args.seed)
    torch.manual_seed(args.seed)

    device = resolve_device(args.device)
    logging.info(f"Using device: {device}")

    os.makedirs(args.results_dir, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    results_path = os.path.join(args.results_dir, f'{timestamp}.tsv')

    with open(os.path.join(args.results_dir, f'{timestamp}_args.json'), 'w') as f:
        json.dump(vars(args), f, indent=2)

    logging.info("Loading Fashion-MNIST...")
    # Pre-shuffled once so the validation partition is the same in every round
    train_data, test_data = get_fashion_mnist_tensors(args.data_dir, generator=generator)
    train_data = tuple(t.to(device) for t in train_data)
    test_data = tuple(t.to(device) for t in test_data)
    logging.info(f"Train samples: {train_data[0].size(0)}")
    logging.info(f"Test samples: {test_data[0].size(0)}")

    model = DenseClassifier(in_features=train_data[0].size(1), num_classes=10).to(device)
    total_params, _ = count_parameters(model)
    logging.info(f"Model parameters: {total_params:,}")
    criterion = nn.CrossEntropyLoss()

    def fit(net):
        optimizer = optim.Adam(net.parameters(), lr=args.lr)
        return train_to_convergence(net, optimizer, train_data, criterion,
                                    batch_size=args.batch_size,
                                    max_epochs=args.epochs,
                                    patience=args.patience,
                                    validation_fraction=args.validation_fraction,
                                    progress=not args.no_progress)

    with ResultsWriter(results_path) as results:
        start = time.time()
        fit(model)
        logging.info(f"Train: {time.time() - start:.1f}s")

        original_acc_test, original_acc_train = log_accuracy(model, train_data, test_data,
                                                             label='Original accuracy')
        results.write_row(0.0, original_acc_test, original_acc_train)

        masked_model = mask(model)
        for target in args.targets:
            start = time.time()
            achieved = prune(masked_model, target, by=torch.abs, layerwise=args.layerwise)
            logging.info(f"Prune step to {target:.2f}: sparsity {achieved:.4f} ({time.time() - start:.1f}s)")

            start = time.time()
            fit(masked_model)
            logging.info(f"Finetune step: {time.time() - start:.1f}s")

            acc_test, acc_train = log_accuracy(masked_model, train_data, test_data)
            results.write_row(sparsity(masked_model), acc_test, acc_train)

    final_acc_test, final_acc_train = log_accuracy(masked_model, train_data, test_data, label='Final accuracy')
    logging.info("Final results:")
    logging.info(f"sparsity     {100 * sparsity(masked_model):+.1f}%")
    logging.info(f"dacc (test)  {100 * (final_acc_test - original_acc_test):+.1f}%")
    logging.info(f"dacc (train) {100 * (final_acc_train - original_acc_train):+.1f}%")

    nonzero, total, _ = count_nonzero_parameters(unmask(masked_model))
    logging.info(f"Nonzero parameters: {nonzero:,}/{total:,}")
    logging.info(f"Results saved to: {results_path}")


if __name__ == '__main__':
    main()
