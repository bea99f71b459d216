"""Tests for moves and agents."""

import numpy as np
import pytest

from physics_agent_trainer.agents import GeneticAgent, DQNAgent, AGENTS
from physics_agent_trainer.moves import Move, NO_MOVE, NUM_MOVES
from physics_agent_trainer.qnetwork import QNetwork


LEFT = Move(left=True)
RIGHT = Move(right=True)


class TestMove:
    def test_default_is_no_input(self):
        assert Move() == NO_MOVE
        assert not (NO_MOVE.left or NO_MOVE.right or NO_MOVE.up)

    def test_index_bijection(self):
        moves = [Move.from_index(i) for i in range(NUM_MOVES)]
        assert len(set(moves)) == NUM_MOVES
        assert [m.to_index() for m in moves] == list(range(NUM_MOVES))

    def test_cleared_bits_turn_flags_on(self):
        assert Move.from_index(0) == Move(left=True, right=True, up=True)
        assert Move.from_index(7) == NO_MOVE
        assert Move.from_index(6) == Move(left=True)

    def test_index_out_of_range(self):
        with pytest.raises(ValueError):
            Move.from_index(8)

    def test_random_reproducible(self):
        a = [Move.random(np.random.default_rng(3)) for _ in range(5)]
        b = [Move.random(np.random.default_rng(3)) for _ in range(5)]
        assert a == b


class TestGeneticAgent:
    def test_repeats_each_move(self):
        agent = GeneticAgent([LEFT, RIGHT], repeat_move=2)
        moves = [agent.get_move(None) for _ in range(6)]
        assert moves == [LEFT, LEFT, RIGHT, RIGHT, NO_MOVE, NO_MOVE]

    def test_ignores_state(self):
        agent = GeneticAgent([RIGHT], repeat_move=1)
        assert agent(np.zeros(4, dtype=np.float32)) == RIGHT

    def test_reset(self):
        agent = GeneticAgent([LEFT, RIGHT], repeat_move=1)
        agent.get_move(None)
        agent.reset()
        assert agent.get_move(None) == LEFT

    def test_copy_is_rewound_and_independent(self):
        agent = GeneticAgent([LEFT, RIGHT], repeat_move=1)
        agent.get_move(None)
        clone = agent.copy()
        assert clone.get_move(None) == LEFT
        assert agent.get_move(None) == RIGHT

    def test_invalid_repeat(self):
        with pytest.raises(ValueError):
            GeneticAgent([LEFT], repeat_move=0)


class TestDQNAgent:
    def test_holds_move_for_repeat_ticks(self):
        network = QNetwork(rng=np.random.default_rng(0))
        agent = DQNAgent(network, repeat_move=3)
        state = np.array([0.0, 1.0, 0.0, 0.0], dtype=np.float32)
        expected = Move.from_index(network.best_action(state))
        moves = [agent.get_move(state) for _ in range(3)]
        assert moves == [expected] * 3

    def test_no_state_means_no_move(self):
        agent = DQNAgent(QNetwork(rng=np.random.default_rng(0)), repeat_move=2)
        assert agent.get_move(None) == NO_MOVE

    def test_copy_shares_nothing(self):
        agent = DQNAgent(QNetwork(rng=np.random.default_rng(0)), repeat_move=1)
        clone = agent.copy()
        clone.network.weights[0] += 1.0
        assert not np.allclose(clone.network.weights[0], agent.network.weights[0])


class TestRegistry:
    def test_all_agents_registered(self):
        assert AGENTS["genetic"] is GeneticAgent
        assert AGENTS["dqn"] is DQNAgent
