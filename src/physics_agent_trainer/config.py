"""Configuration system for the physics environment and training algorithms.

PhysicsConfig holds the tuning constants of the simulation: the render-to-
simulation scale factor, gravity, player geometry and the locomotion impulses.
GeneticConfig and DQNConfig parameterize the two search strategies, and
TrainingConfig sizes the channel between the training worker and its consumer.

Render units are the units a World Description is written in. Every length
handed to the physics backend is multiplied by ``PhysicsConfig.scale`` and every
length read back is divided by it.
"""

from dataclasses import dataclass, field, asdict
from typing import Tuple, Dict, Any, ClassVar, Optional


# Render-space units -> simulation-space units
RENDER_TO_PHYSICS_SCALE = 0.05

# Player capsule (render units): radius of the end caps, length of the straight section
PLAYER_RADIUS = 20.0
PLAYER_DEPTH = 20.0

# A contact counts as floor when its normal points within ~45 degrees of straight down
FLOOR_NORMAL_THRESHOLD = -0.7071

WIN_EPSILON = 1e-7


@dataclass
class PhysicsConfig:
    """Simulation constants shared by every rollout.

    The floor threshold and impulse magnitudes are hand-tuned. Behavior on
    steep or curved surfaces follows from them but is not calibrated.
    """

    scale: float = RENDER_TO_PHYSICS_SCALE
    gravity: float = -9.81  # Simulation units/sec^2, negative = down
    dt: float = 1.0 / 60.0  # One logical tick
    substeps: int = 3  # Backend steps per tick

    # Player geometry is given in render units and scaled on construction
    player_radius: float = PLAYER_RADIUS
    player_depth: float = PLAYER_DEPTH
    player_mass: float = 1.0
    player_friction: float = 0.5

    block_density: float = 1.0  # Mass per simulation unit^2 for movable blocks
    block_friction: float = 1.0

    floor_normal_threshold: float = FLOOR_NORMAL_THRESHOLD
    move_impulse: float = 0.15  # Tangential push per tick while on ground
    jump_impulse: float = 5.0  # Total upward push per tick, split across floor contacts

    win_epsilon: float = WIN_EPSILON
    collision_slop: float = 0.005  # Allowed overlap in simulation units

    @property
    def player_radius_physics(self) -> float:
        return self.player_radius * self.scale

    @property
    def player_depth_physics(self) -> float:
        return self.player_depth * self.scale

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PhysicsConfig":
        """Create from dictionary. Missing keys keep their defaults."""
        known = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def _check_range(name: str, value: float, bounds: Tuple[float, float]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"{name} must be in [{low}, {high}], got {value}")


@dataclass
class GeneticConfig:
    """Parameters of the evolutionary search over move sequences.

    An individual is ``number_of_steps // repeat_move`` moves long and each move
    is held for ``repeat_move`` ticks.
    """

    number_of_steps: int = 1000
    number_of_agents: int = 1000
    repeat_move: int = 20
    mutation_rate: float = 0.1
    keep_best: bool = False  # Elitism: carry the best individual over unchanged
    workers: int = 1  # Processes used to score a generation
    seed: Optional[int] = None

    # Valid ranges
    NUMBER_OF_STEPS_RANGE: ClassVar[Tuple[int, int]] = (1, 100000)
    NUMBER_OF_AGENTS_RANGE: ClassVar[Tuple[int, int]] = (10, 1000)
    REPEAT_MOVE_RANGE: ClassVar[Tuple[int, int]] = (1, 100)
    MUTATION_RATE_RANGE: ClassVar[Tuple[float, float]] = (0.0, 1.0)

    def __post_init__(self):
        _check_range("number_of_steps", self.number_of_steps, self.NUMBER_OF_STEPS_RANGE)
        _check_range("number_of_agents", self.number_of_agents, self.NUMBER_OF_AGENTS_RANGE)
        _check_range("repeat_move", self.repeat_move, self.REPEAT_MOVE_RANGE)
        _check_range("mutation_rate", self.mutation_rate, self.MUTATION_RATE_RANGE)
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @property
    def genome_length(self) -> int:
        return self.number_of_steps // self.repeat_move

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GeneticConfig":
        """Create from dictionary. Missing keys keep their defaults."""
        known = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class DQNConfig:
    """Parameters of the deep Q-learning search.

    The network maps the 4-value player state to one Q-value per discrete move.
    Each chosen move is held for ``repeat_move`` ticks.
    """

    number_of_steps: int = 1000
    repeat_move: int = 20
    hidden_size: int = 32
    learning_rate: float = 1e-1
    momentum: float = 0.9
    gamma: float = 0.99
    huber_delta: float = 1.0
    target_update_rate: float = 0.01  # Soft update factor for the target network
    replay_capacity: int = 10000
    batch_size: int = 1000
    epsilon_decay_games: float = 10000.0  # epsilon = exp(-game / epsilon_decay_games)
    evaluate_every: int = 1000  # Games between emitted snapshots
    seed: Optional[int] = None

    NUMBER_OF_STEPS_RANGE: ClassVar[Tuple[int, int]] = (1, 100000)
    REPEAT_MOVE_RANGE: ClassVar[Tuple[int, int]] = (1, 100)

    def __post_init__(self):
        _check_range("number_of_steps", self.number_of_steps, self.NUMBER_OF_STEPS_RANGE)
        _check_range("repeat_move", self.repeat_move, self.REPEAT_MOVE_RANGE)
        if self.batch_size > self.replay_capacity:
            raise ValueError(
                f"batch_size ({self.batch_size}) cannot exceed replay_capacity ({self.replay_capacity})"
            )
        if self.evaluate_every < 1:
            raise ValueError(f"evaluate_every must be >= 1, got {self.evaluate_every}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DQNConfig":
        """Create from dictionary. Missing keys keep their defaults."""
        known = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class TrainingConfig:
    """Channel sizing for a training session."""
    channel_capacity: int = 100  # Worker blocks once this many messages are unread
    drain_batch_size: int = 1000  # Max messages pulled per poll
    send_poll_interval: float = 0.05  # Seconds between checks for a closed receiver while blocked

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class TrainerConfig:
    """Complete configuration combining all parameter groups."""
    physics: PhysicsConfig = field(default_factory=PhysicsConfig)
    genetic: GeneticConfig = field(default_factory=GeneticConfig)
    dqn: DQNConfig = field(default_factory=DQNConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to nested dictionary."""
        return {
            "physics": self.physics.to_dict(),
            "genetic": self.genetic.to_dict(),
            "dqn": self.dqn.to_dict(),
            "training": self.training.to_dict(),
        }


# Predefined configurations
CONFIGS = {
    # Full-size search
    "default": TrainerConfig(),

    # Small population and short horizon, for quick looks and tests
    "quick": TrainerConfig(
        genetic=GeneticConfig(number_of_steps=200, number_of_agents=50, repeat_move=10),
        dqn=DQNConfig(number_of_steps=200, repeat_move=10, batch_size=64,
                      replay_capacity=2000, evaluate_every=20),
    ),

    # Long horizon with elitism, best score never gets worse
    "elitist": TrainerConfig(
        genetic=GeneticConfig(number_of_steps=2000, number_of_agents=500,
                              repeat_move=20, mutation_rate=0.05, keep_best=True),
    ),

    # Low gravity, bigger hops
    "moon": TrainerConfig(
        physics=PhysicsConfig(gravity=-1.62, jump_impulse=3.0),
    ),
}
