"""Gymnasium environment wrapper around PhysicsEnvironment.

Provides the standard Gym API for learners that choose one of the 8 discrete
moves from the player's state vector.
"""

from typing import Optional

import numpy as np
import gymnasium
from gymnasium import spaces

from .config import PhysicsConfig
from .moves import Move, NUM_MOVES
from .physics import PhysicsEnvironment
from .world import World


class MoveSearchEnv(gymnasium.Env):
    """Gymnasium wrapper for a World.

    Observation space:
        Box(4,) float32 - player [x, y, vx, vy] in simulation units
        (zeros when the world has no player)

    Action space:
        Discrete(8) - move index, decoded with ``Move.from_index``

    One env step holds the chosen move for ``repeat_move`` physics ticks.

    Reward = goal distance before the step minus goal distance after it
    (0 when the world has no goal). The episode terminates when the goal is
    reached and is truncated after ``max_episode_steps`` env steps.
    """

    metadata = {"render_modes": []}

    def __init__(
        self,
        world: World,
        physics_config: Optional[PhysicsConfig] = None,
        repeat_move: int = 1,
        max_episode_steps: int = 1000,
    ):
        super().__init__()

        self.world = world
        self.physics_config = physics_config or PhysicsConfig()
        self.repeat_move = repeat_move
        self.max_episode_steps = max_episode_steps

        self.action_space = spaces.Discrete(NUM_MOVES)
        self.observation_space = spaces.Box(
            low=-np.inf, high=np.inf, shape=(4,), dtype=np.float32,
        )

        # Populated on reset
        self._environment: Optional[PhysicsEnvironment] = None
        self._episode_steps = 0

    @property
    def environment(self) -> Optional[PhysicsEnvironment]:
        return self._environment

    def reset(self, *, seed=None, options=None):
        super().reset(seed=seed)

        # Fresh physics world
        self._environment = PhysicsEnvironment.from_world(self.world, self.physics_config)
        self._episode_steps = 0

        return self._get_obs(), self._get_info()

    def step(self, action):
        assert self._environment is not None, "Must call reset() before step()"

        player_move = Move.from_index(int(action))
        before = self._environment.distance_to_goals()
        for _ in range(self.repeat_move):
            self._environment.step(player_move)
        after = self._environment.distance_to_goals()
        self._episode_steps += 1

        reward = 0.0
        if before is not None and after is not None:
            reward = before - after

        terminated = self._environment.won
        truncated = self._episode_steps >= self.max_episode_steps

        return self._get_obs(), float(reward), terminated, truncated, self._get_info()

    def _get_obs(self):
        state = self._environment.state()
        if state is None:
            return np.zeros(4, dtype=np.float32)
        return state

    def _get_info(self):
        return {
            "episode_steps": self._episode_steps,
            "distance_to_goals": self._environment.distance_to_goals(),
            "won": self._environment.won,
        }
