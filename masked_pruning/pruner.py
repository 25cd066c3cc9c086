"""
Magnitude-based pruning over MaskedLayer masks.

Pruning only ever flips mask entries from one to zero. Raising the target
removes additional weights from the surviving set; a target that is already
met leaves the masks untouched.
"""

import logging
from typing import Callable, Dict, List, NamedTuple

import torch
import torch.nn as nn

from .masked_layers import named_masked_layers


ScoreFn = Callable[[torch.Tensor], torch.Tensor]


class PruningMethod(NamedTuple):
    """
    One pruning action: reach ``target_sparsity`` by removing the entries with
    the lowest ``by`` score, either globally or within each layer.
    """
    target_sparsity: float
    by: ScoreFn = torch.abs
    layerwise: bool = False


def _prune_entries(masks: List[torch.Tensor],
                   params: List[torch.Tensor],
                   target_sparsity: float,
                   by: ScoreFn) -> int:
    """
    Zero the lowest scoring unmasked entries across ``masks`` until the share
    of zero entries reaches ``target_sparsity``. Returns how many were pruned.
    """
    total = sum(m.numel() for m in masks)
    if total == 0:
        return 0

    num_zero = sum(int((m == 0).sum().item()) for m in masks)
    num_to_prune = int(round(target_sparsity * total)) - num_zero
    if num_to_prune <= 0:
        return 0

    scores = []
    for param, mask in zip(params, masks):
        score = by(param.detach()).flatten().to(torch.float64)
        # Already pruned entries must never be selected again
        scores.append(score.masked_fill(mask.flatten() == 0, float('inf')))
    scores = torch.cat(scores)

    num_to_prune = min(num_to_prune, total - num_zero)
    _, indices = torch.topk(scores, num_to_prune, largest=False)

    offset = 0
    for mask in masks:
        numel = mask.numel()
        in_layer = indices[(indices >= offset) & (indices < offset + numel)] - offset
        mask.view(-1)[in_layer] = 0
        offset += numel

    return num_to_prune


def prune(model: nn.Module,
          target_sparsity: float,
          by: ScoreFn = torch.abs,
          layerwise: bool = False) -> float:
    """
    Prune ``model`` in place up to ``target_sparsity`` and return the sparsity
    achieved.

    With ``layerwise=False`` all masked parameters compete in one ranking, so
    the per-layer sparsities can differ. With ``layerwise=True`` every masked
    layer is brought to the target individually.
    """
    layers = [layer for _, layer in named_masked_layers(model)]

    with torch.no_grad():
        if layerwise:
            groups = [layer.masks() for layer in layers]
        else:
            groups = [[entry for layer in layers for entry in layer.masks()]]

        for group in groups:
            params = [param for _, param, _ in group]
            masks = [mask for _, _, mask in group]
            _prune_entries(masks, params, target_sparsity, by)

        for layer in layers:
            layer.apply_mask()

    return sparsity(model)


def prune_with(model: nn.Module, method: PruningMethod) -> nn.Module:
    prune(model, method.target_sparsity, by=method.by, layerwise=method.layerwise)
    return model


def sparsity(model: nn.Module) -> float:
    """
    Fraction of zero mask entries over all masked parameters.
    """
    total = 0
    zeros = 0
    for _, layer in named_masked_layers(model):
        for _, _, mask in layer.masks():
            total += mask.numel()
            zeros += int((mask == 0).sum().item())
    return zeros / total if total > 0 else 0.0


def sparsity_stats(model: nn.Module) -> Dict:
    """
    Calculate sparsity statistics from the masks of ``model``.
    """
    total_params = 0
    remaining_params = 0
    layer_stats = {}

    for name, layer in named_masked_layers(model):
        layer_total = 0
        layer_remaining = 0
        for _, _, mask in layer.masks():
            layer_total += mask.numel()
            layer_remaining += int(mask.sum().item())

        total_params += layer_total
        remaining_params += layer_remaining

        layer_stats[name] = {
            'total': layer_total,
            'remaining': layer_remaining,
            'sparsity': 1.0 - layer_remaining / layer_total if layer_total > 0 else 0.0
        }

    overall = 1.0 - remaining_params / total_params if total_params > 0 else 0.0

    return {
        'overall': overall,
        'total_params': total_params,
        'remaining_params': remaining_params,
        'layers': layer_stats
    }


def log_sparsity_stats(model: nn.Module, prefix: str = "") -> None:
    stats = sparsity_stats(model)

    logging.info(f"{prefix}Sparsity: {100 * stats['overall']:.2f}%")
    logging.info(f"Total parameters: {stats['total_params']:,}")
    logging.info(f"Remaining parameters: {stats['remaining_params']:,}")

    for name, layer_stat in stats['layers'].items():
        logging.info(f"{name}: {100 * layer_stat['sparsity']:.2f}% "
                     f"({layer_stat['remaining']:,}/{layer_stat['total']:,} remaining)")
