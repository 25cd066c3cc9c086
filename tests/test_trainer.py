import math

import torch
from torch import nn
from torch.optim import SGD

from masked_pruning.trainer import ConvergenceTrainer, EarlyStopping, split_train_val, train_to_convergence
from utils.metrics import copy_model_state


def build_data(n=20):
    generator = torch.Generator().manual_seed(0)
    x = torch.randn(n, 4, generator=generator)
    y = (x[:, 0] > 0).long()
    return x, y


def build_model():
    torch.manual_seed(0)
    return nn.Sequential(nn.Linear(4, 8), nn.ReLU(), nn.Linear(8, 2))


def test_split_takes_trailing_samples_without_shuffling():
    x = torch.arange(10).float().unsqueeze(1)
    y = torch.arange(10)
    (x_train, y_train), (x_val, y_val) = split_train_val(x, y, 0.2)
    assert torch.equal(y_train, torch.arange(8))
    assert torch.equal(y_val, torch.tensor([8, 9]))
    assert x_val.shape == (2, 1)


def test_early_stopping_counts_consecutive_non_improvements():
    stop = EarlyStopping(patience=2)
    assert stop(1.0) is False
    assert stop(1.0) is False
    assert stop(0.5) is False
    assert stop(0.7) is False
    assert stop(0.6) is True
    assert stop.best_score == 0.5


def test_stops_after_patience_epochs_without_improvement():
    model = build_model()
    # zero learning rate keeps the training loss constant after epoch 1
    optimizer = SGD(model.parameters(), lr=0.0)
    trainer = ConvergenceTrainer(model, optimizer, nn.CrossEntropyLoss(),
                                 batch_size=4, max_epochs=20, patience=3, progress=False)
    trainer.fit(build_data())
    assert len(trainer.history['train_loss']) == 4
    assert len(trainer.history['val_loss']) == 4


def test_stops_at_max_epochs():
    model = build_model()
    optimizer = SGD(model.parameters(), lr=0.0)
    trainer = ConvergenceTrainer(model, optimizer, nn.CrossEntropyLoss(),
                                 batch_size=4, max_epochs=2, patience=10, progress=False)
    trainer.fit(build_data())
    assert len(trainer.history['train_loss']) == 2


class ScriptedTrainer(ConvergenceTrainer):
    """Returns scripted losses and records the model state at each validation."""

    def __init__(self, *args, val_losses, train_losses, n_val, **kwargs):
        super().__init__(*args, **kwargs)
        self.val_losses = list(val_losses)
        self.train_losses = list(train_losses)
        self.n_val = n_val
        self.val_states = []

    def evaluate(self, inputs, targets):
        if inputs.size(0) == self.n_val:
            self.val_states.append(copy_model_state(self.model))
            return self.val_losses.pop(0)
        return self.train_losses.pop(0) if self.train_losses else 0.0


def test_restores_best_validation_snapshot():
    model = build_model()
    optimizer = SGD(model.parameters(), lr=0.5)
    trainer = ScriptedTrainer(model, optimizer, nn.CrossEntropyLoss(),
                              batch_size=4, max_epochs=4, patience=10,
                              validation_fraction=0.25, progress=False,
                              val_losses=[10.0, 1.0, 0.5, 0.8, 0.9],
                              train_losses=[1.0, 0.9, 0.8, 0.7],
                              n_val=5)
    result = trainer.fit(build_data(20))

    assert result is model
    assert trainer.best_val_loss == 0.5
    best_state = trainer.val_states[2]
    last_state = trainer.val_states[-1]
    final_state = copy_model_state(model)
    for name, tensor in final_state.items():
        assert torch.equal(tensor, best_state[name])
    assert any(not torch.equal(final_state[name], last_state[name]) for name in final_state)


def test_snapshot_is_independent_of_live_model():
    model = build_model()
    state = copy_model_state(model)
    with torch.no_grad():
        model[0].weight.add_(1.0)
    assert not torch.equal(state['0.weight'], model[0].weight)


def test_train_to_convergence_reduces_loss():
    model = build_model()
    x, y = build_data(64)
    loss_fn = nn.CrossEntropyLoss()
    with torch.no_grad():
        initial = loss_fn(model(x[:58]), y[:58]).item()

    trained = train_to_convergence(model, SGD(model.parameters(), lr=0.1), (x, y), loss_fn,
                                   batch_size=8, max_epochs=30, patience=3, progress=False)

    with torch.no_grad():
        final = loss_fn(trained(x[:58]), y[:58]).item()
    assert trained is model
    assert math.isfinite(final)
    assert final < initial


def test_early_stopping_treats_equal_score_as_no_improvement():
    stop = EarlyStopping(patience=2)
    assert stop.best_score == math.inf
    assert stop(0.5) is False
    assert stop(0.5) is False
    assert stop.counter == 1
    assert stop(0.5) is True


def test_validation_improvement_does_not_reset_patience():
    model = build_model()
    optimizer = SGD(model.parameters(), lr=0.1)
    trainer = ScriptedTrainer(model, optimizer, nn.CrossEntropyLoss(),
                              batch_size=4, max_epochs=10, patience=2,
                              validation_fraction=0.25, progress=False,
                              val_losses=[10.0, 5.0, 4.0, 3.0, 2.0, 1.0],
                              train_losses=[1.0, 1.0, 1.0, 1.0, 1.0],
                              n_val=5)
    trainer.fit(build_data(20))

    assert len(trainer.history['val_loss']) == 3
    assert trainer.best_val_loss == 3.0
