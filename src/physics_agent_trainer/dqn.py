"""Deep Q-learning over the discrete move space.

The learner plays episodes in MoveSearchEnv with epsilon-greedy exploration,
stores transitions in a replay buffer and fits the Q-network to
``r + gamma * max_a' Q_target(s', a')`` with a Huber loss. Every
``evaluate_every`` games a greedy snapshot is rolled out tick by tick, scored
like a genetic individual, and sent to the consumer.
"""

import itertools
import logging
import math
from typing import Optional

import numpy as np

from .agents import DQNAgent
from .algorithms import Algorithm, Sink, score_agent
from .config import DQNConfig, PhysicsConfig
from .gym_env import MoveSearchEnv
from .moves import NUM_MOVES
from .qnetwork import QNetwork, NesterovSGD, ReplayBuffer
from .world import World


LOGGER = logging.getLogger(__name__)


class DQNAlgorithm(Algorithm):
    """Gradient-based search for a closed-loop policy."""

    name = "dqn"

    def __init__(
        self,
        config: Optional[DQNConfig] = None,
        physics_config: Optional[PhysicsConfig] = None,
    ):
        super().__init__(physics_config)
        self.config = config or DQNConfig()

    def epsilon(self, game: int) -> float:
        """Exploration probability for a given game number."""
        return math.exp(-game / self.config.epsilon_decay_games)

    def snapshot(self, network: QNetwork) -> DQNAgent:
        return DQNAgent(network.copy(), self.config.repeat_move)

    def optimise(
        self,
        q_net: QNetwork,
        target_net: QNetwork,
        optimiser: NesterovSGD,
        replay: ReplayBuffer,
        rng: np.random.Generator,
    ) -> float:
        """One gradient step on a sampled batch. Returns the loss."""
        cfg = self.config
        states, actions, rewards, next_states, dones = replay.sample(cfg.batch_size, rng)

        next_q = target_net(next_states).max(axis=1)
        targets = rewards + cfg.gamma * next_q * (~dones)

        loss, gradients = q_net.loss_and_gradients(states, actions, targets, cfg.huber_delta)
        optimiser.step(gradients)
        target_net.soft_update(q_net, cfg.target_update_rate)
        return loss

    def train(self, world: World, sink: Sink) -> None:
        cfg = self.config
        if world.player_count == 0:
            LOGGER.warning("DQN training needs a player, nothing to do")
            return

        rng = np.random.default_rng(cfg.seed)

        q_net = QNetwork(cfg.hidden_size, rng=rng)
        target_net = q_net.copy()
        optimiser = NesterovSGD(q_net.parameters, cfg.learning_rate, cfg.momentum)
        replay = ReplayBuffer(cfg.replay_capacity)

        env = MoveSearchEnv(
            world,
            physics_config=self.physics_config,
            repeat_move=cfg.repeat_move,
            max_episode_steps=max(1, cfg.number_of_steps // cfg.repeat_move),
        )

        for game in itertools.count():
            # Snapshots go out only every evaluate_every games
            if sink.closed:
                LOGGER.info("Consumer gone after %d games, stopping DQN training", game)
                return

            if game % cfg.evaluate_every == 0:
                agent = self.snapshot(q_net)
                score = score_agent(world, agent.copy(), cfg.number_of_steps, self.physics_config)
                if not sink.send((score, agent)):
                    LOGGER.info("Consumer gone after %d games, stopping DQN training", game)
                    return
                LOGGER.debug("Game %d: greedy score %.4f", game, score)

            state, _ = env.reset()
            epsilon = self.epsilon(game)
            while True:
                if rng.random() < epsilon:
                    action = int(rng.integers(0, NUM_MOVES))
                else:
                    action = q_net.best_action(state)

                next_state, reward, terminated, truncated, _ = env.step(action)
                replay.push(state, action, reward, next_state, terminated)
                state = next_state

                if len(replay) >= cfg.batch_size:
                    self.optimise(q_net, target_net, optimiser, replay, rng)

                if terminated or truncated:
                    break
