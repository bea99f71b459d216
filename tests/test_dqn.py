"""Tests for the deep Q-learning search."""

import math

import numpy as np
import pytest

from physics_agent_trainer.agents import DQNAgent
from physics_agent_trainer.algorithms import score_agent
from physics_agent_trainer.config import DQNConfig
from physics_agent_trainer.dqn import DQNAlgorithm
from physics_agent_trainer.qnetwork import QNetwork, NesterovSGD, ReplayBuffer, STATE_SIZE
from physics_agent_trainer.world import World, Goal


class CollectingSink:
    def __init__(self, limit):
        self.limit = limit
        self.messages = []
        self.closed = False

    def send(self, message):
        if len(self.messages) >= self.limit:
            self.closed = True
            return False
        self.messages.append(message)
        return True


@pytest.fixture
def small_config():
    return DQNConfig(
        number_of_steps=40,
        repeat_move=5,
        hidden_size=8,
        batch_size=8,
        replay_capacity=50,
        evaluate_every=2,
        seed=0,
    )


class TestSchedule:
    def test_epsilon_decays(self):
        algorithm = DQNAlgorithm(DQNConfig(epsilon_decay_games=100.0))
        assert algorithm.epsilon(0) == 1.0
        assert algorithm.epsilon(100) == pytest.approx(math.exp(-1.0))
        assert algorithm.epsilon(50) > algorithm.epsilon(51)


class TestOptimise:
    def test_returns_finite_loss(self, small_config):
        rng = np.random.default_rng(0)
        algorithm = DQNAlgorithm(small_config)
        q_net = QNetwork(small_config.hidden_size, rng=rng)
        target_net = q_net.copy()
        optimiser = NesterovSGD(q_net.parameters, small_config.learning_rate, small_config.momentum)
        replay = ReplayBuffer(small_config.replay_capacity)
        for i in range(10):
            replay.push(rng.normal(size=STATE_SIZE), i % 8, 1.0, rng.normal(size=STATE_SIZE), i == 9)

        before = [w.copy() for w in target_net.weights]
        loss = algorithm.optimise(q_net, target_net, optimiser, replay, rng)
        assert np.isfinite(loss)
        # Target network drifts toward the online network
        assert any(not np.array_equal(a, b) for a, b in zip(before, target_net.weights))


class TestTrain:
    def test_sends_greedy_snapshots(self, flat_world, small_config):
        sink = CollectingSink(limit=3)
        DQNAlgorithm(small_config).train(flat_world, sink)

        assert len(sink.messages) == 3
        for score, agent in sink.messages:
            assert isinstance(agent, DQNAgent)
            assert agent.repeat_move == small_config.repeat_move
            assert 0.0 <= score < math.inf

    def test_snapshot_score_matches_replay(self, flat_world, small_config):
        sink = CollectingSink(limit=2)
        DQNAlgorithm(small_config).train(flat_world, sink)
        for score, agent in sink.messages:
            assert score_agent(flat_world, agent.copy(), small_config.number_of_steps) == score

    def test_snapshots_are_independent(self, flat_world, small_config):
        sink = CollectingSink(limit=2)
        DQNAlgorithm(small_config).train(flat_world, sink)
        (_, first), (_, second) = sink.messages
        assert first.network is not second.network

    def test_closed_sink_stops_before_next_game(self, flat_world, small_config):
        sink = CollectingSink(limit=3)
        sink.closed = True
        DQNAlgorithm(small_config).train(flat_world, sink)
        assert sink.messages == []

    def test_world_without_player_sends_nothing(self, small_config):
        world = World()
        world.add(Goal(), (0.0, 0.0))
        sink = CollectingSink(limit=3)
        DQNAlgorithm(small_config).train(world, sink)
        assert sink.messages == []
