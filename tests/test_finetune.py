import pytest
import torch
from torch import nn
from torch.optim import SGD
from torch.utils.data import DataLoader, TensorDataset

import masked_pruning.finetuning as finetuning
from masked_pruning.finetuning import (
    FineTuneKind,
    FineTuneStrategy,
    TuneByEpochs,
    TuneByAbsoluteLoss,
    TuneByLossDifference,
    TuneByAccuracyDifference,
    finetune,
)
from masked_pruning.masked_layers import mask
from masked_pruning.pruner import prune


def scripted_epochs(monkeypatch, losses=None, accuracies=None):
    """Replace the epoch routine with one returning scripted values."""
    calls = []

    def fake_train_epoch(model, data, criterion, optimizer, device=None, epoch=0, progress=True):
        calls.append(epoch)
        index = len(calls) - 1
        loss = losses[index] if losses is not None else 1.0
        acc = accuracies[index] if accuracies is not None else 0.0
        return loss, acc

    monkeypatch.setattr(finetuning, 'train_epoch', fake_train_epoch)
    return calls


def run(strategy, max_epochs=100):
    model = nn.Linear(2, 2)
    return finetune(strategy, model, nn.CrossEntropyLoss(), SGD(model.parameters(), lr=0.1),
                    data=[], max_epochs=max_epochs, progress=False)


def test_by_epochs_runs_exactly_n_passes(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[0.0] * 10)
    history = run(TuneByEpochs(5))
    assert calls == [1, 2, 3, 4, 5]
    assert history['epochs'] == 5


def test_by_absolute_loss_stops_below_threshold(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[1.0, 0.5, 0.05, 0.01])
    run(TuneByAbsoluteLoss(0.1))
    assert len(calls) == 3


def test_by_loss_difference_stops_on_small_change(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[1.0, 0.5, 0.49, 0.48])
    run(TuneByLossDifference(0.01))
    assert len(calls) == 3


def test_by_loss_difference_first_epoch_compares_to_zero(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[0.005, 0.004])
    run(TuneByLossDifference(0.01))
    assert len(calls) == 1


def test_by_accuracy_difference_stops_when_gain_is_small(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[1.0] * 5, accuracies=[0.5, 0.8, 0.85, 0.86, 0.9])
    run(TuneByAccuracyDifference(0.02))
    assert len(calls) == 4


def test_by_accuracy_difference_stops_when_accuracy_drops(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[1.0] * 5, accuracies=[0.5, 0.8, 0.7, 0.9])
    run(TuneByAccuracyDifference(0.02))
    assert len(calls) == 3


def test_threshold_strategies_stop_at_epoch_cap(monkeypatch):
    calls = scripted_epochs(monkeypatch, losses=[1.0] * 20)
    history = run(TuneByAbsoluteLoss(0.1), max_epochs=7)
    assert len(calls) == 7
    assert history['train_loss'] == [1.0] * 7


def test_unknown_strategy_raises():
    with pytest.raises(ValueError):
        run(FineTuneStrategy('bogus', 1))


def test_strategies_are_tagged_values():
    strategy = TuneByLossDifference(0.01)
    assert strategy.kind is FineTuneKind.LOSS_DIFFERENCE
    assert strategy.value == 0.01
    assert strategy == FineTuneStrategy(FineTuneKind.LOSS_DIFFERENCE, 0.01)


def test_finetune_keeps_pruned_weights_out_of_the_output():
    torch.manual_seed(0)
    model = mask(nn.Sequential(nn.Linear(4, 8), nn.ReLU(), nn.Linear(8, 2)))
    prune(model, 0.5)

    x = torch.randn(32, 4)
    y = (x[:, 0] > 0).long()
    loader = DataLoader(TensorDataset(x, y), batch_size=8)
    optimizer = SGD(model.parameters(), lr=0.1, momentum=0.9)

    history = finetune(TuneByEpochs(3), model, nn.CrossEntropyLoss(), optimizer, loader, progress=False)

    assert history['epochs'] == 3
    assert all(0.0 <= acc <= 1.0 for acc in history['train_acc'])

    model(x)
    for layer in (model[0], model[2]):
        for _, param, m in layer.masks():
            assert torch.all(param[m == 0] == 0)
