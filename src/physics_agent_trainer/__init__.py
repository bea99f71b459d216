"""physics-agent-trainer: search for moves that get a physics-driven player to a goal.

A 2D pymunk world with fixed and movable blocks, goal regions and a capsule
player driven by left/right/up moves. Training algorithms (a genetic search
over move sequences and a deep Q-learner) run on a background thread and
stream scored agents to the caller through a bounded channel.
"""

from .config import PhysicsConfig, GeneticConfig, DQNConfig, TrainingConfig, TrainerConfig, CONFIGS
from .moves import Move, NO_MOVE
from .world import World, ObjectAndTransform, Block, Goal, Player, example_world
from .physics import PhysicsEnvironment, GoalDimensions, FloorContact
from .agents import Agent, GeneticAgent, DQNAgent, AGENTS
from .algorithms import Algorithm, GeneticAlgorithm, TrainingDetails, score_agent, score_moves
from .dqn import DQNAlgorithm
from .gym_env import MoveSearchEnv
from .training import (
    ALGORITHMS,
    create_algorithm,
    channel,
    Sender,
    Receiver,
    spawn_training_thread,
    TrainingSession,
    Visualization,
)

__all__ = [
    "PhysicsConfig",
    "GeneticConfig",
    "DQNConfig",
    "TrainingConfig",
    "TrainerConfig",
    "CONFIGS",
    "Move",
    "NO_MOVE",
    "World",
    "ObjectAndTransform",
    "Block",
    "Goal",
    "Player",
    "example_world",
    "PhysicsEnvironment",
    "GoalDimensions",
    "FloorContact",
    "Agent",
    "GeneticAgent",
    "DQNAgent",
    "AGENTS",
    "Algorithm",
    "GeneticAlgorithm",
    "TrainingDetails",
    "score_agent",
    "score_moves",
    "DQNAlgorithm",
    "MoveSearchEnv",
    "ALGORITHMS",
    "create_algorithm",
    "channel",
    "Sender",
    "Receiver",
    "spawn_training_thread",
    "TrainingSession",
    "Visualization",
]
