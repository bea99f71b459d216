"""Agents: stateful units that produce one Move per tick.

Each agent takes the environment's exported state (or None when the world has
no player) and returns a Move. Open-loop agents ignore the state. An agent's
internal cursor only changes through ``get_move``; call ``reset`` or ``copy``
before replaying it from the start.
"""

import copy
from typing import Optional, Sequence, List

import numpy as np

from .moves import Move, NO_MOVE
from .qnetwork import QNetwork


class Agent:
    """Base class for agents."""

    name: str = "base"

    def __call__(self, state: Optional[np.ndarray]) -> Move:
        return self.get_move(state)

    def get_move(self, state: Optional[np.ndarray]) -> Move:
        raise NotImplementedError

    def reset(self) -> None:
        """Rewind to the first tick."""
        pass

    def copy(self) -> "Agent":
        """Independent snapshot, rewound to the first tick."""
        clone = copy.deepcopy(self)
        clone.reset()
        return clone


class GeneticAgent(Agent):
    """Pre-recorded move sequence.

    Each move is held for ``repeat_move`` ticks. Once the sequence runs out the
    agent keeps returning the no-op move.
    """

    name = "genetic"

    def __init__(self, moves: Sequence[Move], repeat_move: int = 1):
        if repeat_move < 1:
            raise ValueError(f"repeat_move must be >= 1, got {repeat_move}")
        self.moves: List[Move] = list(moves)
        self.repeat_move = repeat_move
        self.curr = 0

    def reset(self):
        self.curr = 0

    def get_move(self, state=None):
        index = self.curr // self.repeat_move
        if index < len(self.moves):
            self.curr += 1
            return self.moves[index]
        return NO_MOVE

    def __repr__(self):
        return f"GeneticAgent(moves={len(self.moves)}, repeat_move={self.repeat_move}, curr={self.curr})"


class DQNAgent(Agent):
    """Greedy policy read from a Q-network snapshot.

    Picks the best move for the current state, then holds it for
    ``repeat_move`` ticks before looking again.
    """

    name = "dqn"

    def __init__(self, network: QNetwork, repeat_move: int = 1):
        if repeat_move < 1:
            raise ValueError(f"repeat_move must be >= 1, got {repeat_move}")
        self.network = network
        self.repeat_move = repeat_move
        self._current = NO_MOVE
        self._held = repeat_move  # forces a fresh decision on the first tick

    def reset(self):
        self._current = NO_MOVE
        self._held = self.repeat_move

    def get_move(self, state):
        if self._held < self.repeat_move:
            self._held += 1
            return self._current
        if state is None:
            self._current = NO_MOVE
        else:
            self._current = Move.from_index(self.network.best_action(state))
        self._held = 1
        return self._current


AGENTS = {
    "genetic": GeneticAgent,
    "dqn": DQNAgent,
}
