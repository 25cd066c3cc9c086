import torch.nn as nn


def DenseClassifier(in_features=784, hidden_sizes=(256, 128, 64, 64), num_classes=10):
    """
    Fully connected GELU classifier returning logits.
    """
    layers = []
    for width in hidden_sizes:
        layers.append(nn.Linear(in_features, width))
        layers.append(nn.GELU())
        in_features = width
    layers.append(nn.Linear(in_features, num_classes))
    return nn.Sequential(*layers)
