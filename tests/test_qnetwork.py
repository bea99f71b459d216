"""Tests for the numpy Q-network, optimiser and replay buffer."""

import numpy as np
import pytest

from physics_agent_trainer.moves import NUM_MOVES
from physics_agent_trainer.qnetwork import QNetwork, NesterovSGD, ReplayBuffer, STATE_SIZE


@pytest.fixture
def network():
    return QNetwork(hidden_size=8, rng=np.random.default_rng(0))


@pytest.fixture
def batch():
    rng = np.random.default_rng(1)
    states = rng.normal(size=(16, STATE_SIZE))
    actions = rng.integers(0, NUM_MOVES, size=16)
    targets = rng.normal(size=16)
    return states, actions, targets


class TestQNetwork:
    def test_output_shapes(self, network):
        assert network(np.zeros(STATE_SIZE)).shape == (NUM_MOVES,)
        assert network(np.zeros((5, STATE_SIZE))).shape == (5, NUM_MOVES)

    def test_copy_is_deep(self, network):
        clone = network.copy()
        clone.biases[-1] += 1.0
        assert not np.allclose(clone(np.zeros(STATE_SIZE)), network(np.zeros(STATE_SIZE)))

    def test_gradients_match_finite_differences(self, network, batch):
        states, actions, targets = batch
        _, gradients = network.loss_and_gradients(states, actions, targets)

        eps = 1e-6
        for param, grad in zip(network.parameters, gradients):
            flat = param.reshape(-1)
            for index in (0, flat.size // 2, flat.size - 1):
                original = flat[index]
                flat[index] = original + eps
                loss_plus, _ = network.loss_and_gradients(states, actions, targets)
                flat[index] = original - eps
                loss_minus, _ = network.loss_and_gradients(states, actions, targets)
                flat[index] = original
                numeric = (loss_plus - loss_minus) / (2 * eps)
                assert grad.reshape(-1)[index] == pytest.approx(numeric, abs=1e-5)

    def test_training_reduces_loss(self, network, batch):
        states, actions, targets = batch
        optimiser = NesterovSGD(network.parameters, learning_rate=1e-2, momentum=0.9)
        first, _ = network.loss_and_gradients(states, actions, targets)
        for _ in range(200):
            _, gradients = network.loss_and_gradients(states, actions, targets)
            optimiser.step(gradients)
        last, _ = network.loss_and_gradients(states, actions, targets)
        assert last < first

    def test_soft_update(self, network):
        target = QNetwork(hidden_size=8, rng=np.random.default_rng(5))
        before = target.weights[0].copy()
        target.soft_update(network, 0.25)
        np.testing.assert_allclose(target.weights[0], 0.75 * before + 0.25 * network.weights[0])

        target.soft_update(network, 1.0)
        np.testing.assert_allclose(target.weights[0], network.weights[0])


class TestReplayBuffer:
    def test_capacity(self):
        buffer = ReplayBuffer(capacity=3)
        for i in range(5):
            buffer.push(np.full(STATE_SIZE, i), i % NUM_MOVES, float(i), np.zeros(STATE_SIZE), False)
        assert len(buffer) == 3

    def test_sample_shapes(self):
        buffer = ReplayBuffer(capacity=10)
        for i in range(10):
            buffer.push(np.full(STATE_SIZE, i), i % NUM_MOVES, float(i), np.zeros(STATE_SIZE), i == 9)
        states, actions, rewards, next_states, dones = buffer.sample(4, np.random.default_rng(0))
        assert states.shape == (4, STATE_SIZE)
        assert actions.shape == (4,)
        assert rewards.shape == (4,)
        assert next_states.shape == (4, STATE_SIZE)
        assert dones.dtype == bool
        # Without replacement
        assert len(set(rewards.tolist())) == 4
