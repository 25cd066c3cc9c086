"""
Mask-carrying layer wrappers.

A MaskedLayer holds one binary mask per parameter of the wrapped layer and
multiplies the parameters by their masks in place right before every forward
pass. The multiplication runs outside autograd, so the optimizer sees the
masked values as ordinary leaf parameters.
"""

import copy
import logging
from typing import Iterator, List, Tuple

import torch
import torch.nn as nn


MASKABLE_LAYERS = (nn.Linear, nn.Conv1d, nn.Conv2d, nn.Conv3d)


class MaskedLayer(nn.Module):
    """
    Wraps a dense or convolutional layer with same-shaped binary masks.
    """

    def __init__(self, layer: nn.Module):
        super().__init__()
        self.layer = layer
        self._mask_names = {}

        for name, param in layer.named_parameters():
            buffer_name = f'{name}_mask'
            # Masks are buffers: they follow .to(device) but get no gradient
            self.register_buffer(buffer_name, torch.ones_like(param))
            self._mask_names[name] = buffer_name

    def masks(self) -> List[Tuple[str, nn.Parameter, torch.Tensor]]:
        return [
            (name, param, getattr(self, self._mask_names[name]))
            for name, param in self.layer.named_parameters()
        ]

    def apply_mask(self) -> None:
        with torch.no_grad():
            for _, param, mask in self.masks():
                param.mul_(mask)

    def forward(self, *args):
        self.apply_mask()
        return self.layer(*args)

    def extra_repr(self) -> str:
        return ', '.join(self._mask_names.values())


def wrap(layer: nn.Module) -> nn.Module:
    """
    Wrap a single layer. Unsupported layer kinds are returned unchanged.
    """
    if isinstance(layer, MaskedLayer):
        return layer
    if not isinstance(layer, MASKABLE_LAYERS):
        logging.warning(f"MaskedLayer not implemented for `{type(layer).__name__}` layers. "
                        f"Returning input layer as is.")
        return layer
    return MaskedLayer(layer)


def mask(model: nn.Module) -> nn.Module:
    """
    Return a masked deep copy of ``model``; the original is left untouched.
    """
    return _mask_children(copy.deepcopy(model))


def _mask_children(model: nn.Module) -> nn.Module:
    if isinstance(model, nn.Sequential):
        return nn.Sequential(*(_mask_children(layer) for layer in model))
    return wrap(model)


def unmask(model: nn.Module) -> nn.Module:
    """
    Strip MaskedLayer wrappers, keeping the current parameter values.
    """
    if isinstance(model, MaskedLayer):
        return model.layer
    if isinstance(model, nn.Sequential):
        return nn.Sequential(*(unmask(layer) for layer in model))
    return model


def named_masked_layers(model: nn.Module) -> Iterator[Tuple[str, MaskedLayer]]:
    for name, module in model.named_modules():
        if isinstance(module, MaskedLayer):
            yield name, module
