import torch
import torch.nn as nn
from typing import Dict


def correct_predictions(outputs: torch.Tensor, targets: torch.Tensor) -> int:
    """
    Number of rows whose arg-max matches the target. Targets may be class
    indices or one-hot / probability rows.
    """
    if targets.dim() > 1:
        targets = targets.argmax(dim=1)
    return outputs.argmax(dim=1).eq(targets).sum().item()


def accuracy(model: nn.Module, inputs: torch.Tensor, targets: torch.Tensor) -> float:
    was_training = model.training
    model.eval()
    with torch.no_grad():
        outputs = model(inputs)
    model.train(was_training)
    return correct_predictions(outputs, targets) / inputs.size(0)


def count_parameters(model):
    total_params = sum(p.numel() for p in model.parameters())
    trainable_params = sum(p.numel() for p in model.parameters() if p.requires_grad)
    return total_params, trainable_params


def count_nonzero_parameters(model):
    total_nonzero = 0
    total_params = 0

    for param in model.parameters():
        total_params += param.numel()
        total_nonzero += torch.count_nonzero(param).item()

    sparsity = 1.0 - total_nonzero / total_params if total_params > 0 else 0.0
    return total_nonzero, total_params, sparsity


def copy_model_state(model: nn.Module) -> Dict[str, torch.Tensor]:
    """
    Independent snapshot of every parameter and buffer of ``model``.
    """
    return {name: tensor.detach().clone() for name, tensor in model.state_dict().items()}


def load_model_state(model: nn.Module, state: Dict[str, torch.Tensor]) -> None:
    """
    Copy the values of ``state`` into ``model`` in place.
    """
    with torch.no_grad():
        for name, tensor in model.state_dict().items():
            if name in state:
                tensor.copy_(state[name])
