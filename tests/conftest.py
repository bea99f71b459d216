"""Pytest configuration and shared fixtures."""

import pytest

from physics_agent_trainer.config import PhysicsConfig
from physics_agent_trainer.world import World, Block, Goal, Player, example_world


@pytest.fixture
def physics_config():
    """Default physics constants."""
    return PhysicsConfig()


@pytest.fixture
def flat_world():
    """Fixed floor, player resting on it, goal 50 units to the right."""
    return example_world()


@pytest.fixture
def floor_only_world():
    """Fixed floor and a resting player, no goal."""
    world = World()
    world.add(Block(fixed=True), (0.0, 0.0), (400.0, 20.0))
    world.add(Player(), (0.0, 40.0))
    return world


@pytest.fixture
def goal_at_spawn_world():
    """Player spawns inside the goal."""
    world = World()
    world.add(Block(fixed=True), (0.0, 0.0), (400.0, 20.0))
    world.add(Goal(), (0.0, 40.0), (60.0, 60.0))
    world.add(Player(), (0.0, 40.0))
    return world
