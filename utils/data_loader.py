import torch
from torch.utils.data import DataLoader, TensorDataset
from torchvision import datasets


def load_fashion_mnist(data_dir='./data', train=True):
    """
    Fashion-MNIST as flattened float tensors in [0, 1] and integer labels.
    """
    dataset = datasets.FashionMNIST(root=data_dir, train=train, download=True)

    inputs = dataset.data.float().div(255.0).flatten(start_dim=1)
    targets = dataset.targets.long()

    return inputs, targets


def shuffle_tensors(inputs, targets, generator=None):
    """
    Shuffle samples along the batch axis with an explicit ``generator`` so the
    trailing validation partition stays the same across training rounds.
    """
    indices = torch.randperm(inputs.size(0), generator=generator)
    return inputs[indices], targets[indices]


def get_fashion_mnist_tensors(data_dir='./data', generator=None):
    x_train, y_train = load_fashion_mnist(data_dir, train=True)
    x_test, y_test = load_fashion_mnist(data_dir, train=False)

    x_train, y_train = shuffle_tensors(x_train, y_train, generator=generator)

    return (x_train, y_train), (x_test, y_test)


def make_loader(inputs, targets, batch_size=128):
    """
    Batches in stored order; no reshuffling between epochs.
    """
    return DataLoader(TensorDataset(inputs, targets), batch_size=batch_size, shuffle=False)
