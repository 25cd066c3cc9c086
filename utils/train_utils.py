import torch
import torch.nn as nn
from tqdm import tqdm

from .metrics import correct_predictions


def train_epoch(model, train_loader, criterion, optimizer, device=None, epoch=0, progress=True):
    """
    One pass over ``train_loader`` with a single optimizer step per batch.

    Returns the sample-weighted mean loss and accuracy (fraction) of the
    epoch, measured on the forward pass preceding each step.
    """
    model.train()
    running_loss = 0.0
    correct = 0
    total = 0

    pbar = tqdm(train_loader, desc=f'Epoch {epoch} [Train]', leave=False, disable=not progress)
    for inputs, targets in pbar:
        if device is not None:
            inputs, targets = inputs.to(device), targets.to(device)

        optimizer.zero_grad()
        outputs = model(inputs)
        loss = criterion(outputs, targets)
        loss.backward()
        optimizer.step()

        batch_size = inputs.size(0)
        running_loss += loss.item() * batch_size
        correct += correct_predictions(outputs.detach(), targets)
        total += batch_size

        pbar.set_postfix({
            'loss': running_loss / total,
            'acc': correct / total
        })

    avg_loss = running_loss / total if total > 0 else 0.0
    accuracy = correct / total if total > 0 else 0.0

    return avg_loss, accuracy


def dataset_loss(model: nn.Module, inputs: torch.Tensor, targets: torch.Tensor, criterion) -> float:
    """
    Loss of ``model`` on a whole partition evaluated as one batch.
    """
    was_training = model.training
    model.eval()
    with torch.no_grad():
        loss = criterion(model(inputs), targets)
    model.train(was_training)
    return loss.item()
