from .mlp import DenseClassifier

__all__ = ['DenseClassifier']
