"""Training algorithms and the genetic search over move sequences.

An Algorithm runs a search against a World and pushes ``(score, agent)``
messages into a sink. The sink's ``send`` returns False once the consumer is
gone, and that is the only way a running search is stopped: every algorithm
checks the result of each send and returns when it fails. Algorithms that
send rarely also check ``sink.closed`` between units of work.

Scores are the minimum distance to a goal reached during a rollout, so lower
is better and 0 means the goal was reached.
"""

import math
import logging
from concurrent.futures import ProcessPoolExecutor
from contextlib import ExitStack
from functools import cmp_to_key
from typing import List, Optional, Sequence, Tuple, Any, Protocol

import numpy as np
import pandas as pd

from .agents import Agent, GeneticAgent
from .config import GeneticConfig, PhysicsConfig
from .moves import Move
from .physics import PhysicsEnvironment
from .world import World


LOGGER = logging.getLogger(__name__)

Message = Tuple[float, Agent]
Genome = List[Move]


class Sink(Protocol):
    @property
    def closed(self) -> bool: ...

    def send(self, message: Any) -> bool: ...

class Source(Protocol):
    def try_iter(self, limit: Optional[int] = None): ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Consumer-side aggregation
# ---------------------------------------------------------------------------

class TrainingDetails:
    """Buffers scored agents coming out of a training worker.

    ``receive_messages`` never blocks and pulls at most ``drain_batch_size``
    messages per call, so a burst from the worker cannot stall the caller.
    The list of received agents only grows until the details are discarded.
    """

    def __init__(self, receiver: Source, drain_batch_size: int = 1000):
        self.receiver = receiver
        self.drain_batch_size = drain_batch_size
        self.agents: List[Message] = []

    def __len__(self) -> int:
        return len(self.agents)

    def receive_messages(self) -> int:
        """Drain pending messages. Returns how many arrived."""
        before = len(self.agents)
        self.agents.extend(self.receiver.try_iter(self.drain_batch_size))
        return len(self.agents) - before

    @property
    def scores(self) -> List[float]:
        return [score for score, _ in self.agents]

    def best(self) -> Optional[Message]:
        """Lowest-score message received so far."""
        if not self.agents:
            return None
        return min(self.agents, key=cmp_to_key(lambda a, b: compare_scores(a[0], b[0])))

    def to_dataframe(self) -> pd.DataFrame:
        """One row per received message."""
        return pd.DataFrame(
            [
                {"index": i, "score": score, "agent": agent.name}
                for i, (score, agent) in enumerate(self.agents)
            ],
            columns=["index", "score", "agent"],
        )

    def close(self) -> None:
        """Drop the receiver, which tells the worker to stop."""
        self.receiver.close()


# ---------------------------------------------------------------------------
# Algorithm interface
# ---------------------------------------------------------------------------

class Algorithm:
    """Base class for training procedures."""

    name: str = "base"

    def __init__(self, physics_config: Optional[PhysicsConfig] = None):
        self.physics_config = physics_config or PhysicsConfig()

    def train(self, world: World, sink: Sink) -> None:
        """Search for agents, sending ``(score, agent)`` until ``sink.send`` fails."""
        raise NotImplementedError

    def training_details_receiver(self, source: Source, drain_batch_size: int = 1000) -> TrainingDetails:
        """Wrap the message source in an aggregation object for the consumer."""
        return TrainingDetails(source, drain_batch_size=drain_batch_size)


# ---------------------------------------------------------------------------
# Rollouts
# ---------------------------------------------------------------------------

def score_agent(
    world: World,
    agent: Agent,
    number_of_steps: int,
    physics_config: Optional[PhysicsConfig] = None,
) -> float:
    """Minimum distance to a goal over one rollout in a fresh environment.

    Stops early once the goal is reached. Returns inf if the distance is never
    defined (no goals or no player).
    """
    environment = PhysicsEnvironment.from_world(world, physics_config)
    score = math.inf
    for _ in range(number_of_steps):
        environment.step(agent.get_move(environment.state()))
        distance = environment.distance_to_goals()
        if distance is not None:
            score = min(score, distance)
        if environment.won:
            break
    return score


def score_moves(
    world: World,
    moves: Sequence[Move],
    repeat_move: int,
    number_of_steps: int,
    physics_config: Optional[PhysicsConfig] = None,
) -> float:
    """Fitness of a move sequence, padded with no-op moves up to ``number_of_steps``."""
    return score_agent(world, GeneticAgent(moves, repeat_move), number_of_steps, physics_config)


def _score_moves_task(task) -> float:
    """Process-pool entry point."""
    return score_moves(*task)


# ---------------------------------------------------------------------------
# Genetic operators
# ---------------------------------------------------------------------------

def compare_scores(a: float, b: float) -> int:
    """Three-way comparison. Anything neither less nor greater is a tie."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def best_and_worst(scores: Sequence[float]) -> Tuple[int, float]:
    """Index of the best (lowest) score and the worst (highest) score value."""
    key = cmp_to_key(compare_scores)
    indices = range(len(scores))
    best = min(indices, key=lambda i: key(scores[i]))
    worst = max(indices, key=lambda i: key(scores[i]))
    return best, scores[worst]


def selection_weights(scores: Sequence[float], worst_score: float) -> np.ndarray:
    """Fitness-proportionate weights, higher for lower scores."""
    return worst_score + 1.0 - np.asarray(scores, dtype=np.float64)


def select_parents(
    scores: Sequence[float], worst_score: float, rng: np.random.Generator,
) -> Tuple[int, int]:
    """Two distinct parent indices drawn by weight without replacement."""
    weights = selection_weights(scores, worst_score)
    first, second = rng.choice(len(scores), size=2, replace=False, p=weights / weights.sum())
    return int(first), int(second)


def random_genome(length: int, rng: np.random.Generator) -> Genome:
    return [Move.random(rng) for _ in range(length)]


def uniform_crossover(parent1: Sequence[Move], parent2: Sequence[Move], rng: np.random.Generator) -> Genome:
    """Each gene taken unchanged from one parent, chosen by a fair coin."""
    if len(parent1) != len(parent2):
        raise ValueError(f"Parents differ in length: {len(parent1)} != {len(parent2)}")
    picks = rng.random(len(parent1)) < 0.5
    return [a if pick else b for a, b, pick in zip(parent1, parent2, picks)]


def mutate(genome: Sequence[Move], mutation_rate: float, rng: np.random.Generator) -> Genome:
    """Re-draw each flag of each gene with probability ``mutation_rate``."""
    mutated = []
    for move in genome:
        left, right, up = move.left, move.right, move.up
        if rng.random() < mutation_rate:
            left = bool(rng.random() < 0.5)
        if rng.random() < mutation_rate:
            right = bool(rng.random() < 0.5)
        if rng.random() < mutation_rate:
            up = bool(rng.random() < 0.5)
        mutated.append(Move(left=left, right=right, up=up))
    return mutated


# ---------------------------------------------------------------------------
# Genetic algorithm
# ---------------------------------------------------------------------------

class GeneticAlgorithm(Algorithm):
    """Evolves fixed-length move sequences.

    Each generation sends its best individual, then breeds the next one with
    fitness-proportionate parent selection, uniform crossover and per-flag
    mutation. With ``keep_best`` the best individual is carried over as is.
    """

    name = "genetic"

    def __init__(
        self,
        config: Optional[GeneticConfig] = None,
        physics_config: Optional[PhysicsConfig] = None,
    ):
        super().__init__(physics_config)
        self.config = config or GeneticConfig()

    def _evaluate(
        self,
        world: World,
        genomes: Sequence[Genome],
        pool: Optional[ProcessPoolExecutor] = None,
    ) -> List[float]:
        cfg = self.config
        tasks = [
            (world, genome, cfg.repeat_move, cfg.number_of_steps, self.physics_config)
            for genome in genomes
        ]
        if pool is None:
            return [_score_moves_task(task) for task in tasks]
        chunksize = max(1, len(tasks) // (cfg.workers * 4))
        return list(pool.map(_score_moves_task, tasks, chunksize=chunksize))

    def breed(
        self,
        genomes: Sequence[Genome],
        scores: Sequence[float],
        worst_score: float,
        rng: np.random.Generator,
    ) -> Genome:
        """One child from two weighted parents."""
        i, j = select_parents(scores, worst_score, rng)
        child = uniform_crossover(genomes[i], genomes[j], rng)
        return mutate(child, self.config.mutation_rate, rng)

    def train(self, world: World, sink: Sink) -> None:
        cfg = self.config
        if not world.goals() or world.player_count == 0:
            LOGGER.warning("Genetic training needs a player and at least one goal, nothing to do")
            return

        rng = np.random.default_rng(cfg.seed)

        with ExitStack() as stack:
            pool = None
            if cfg.workers > 1:
                pool = stack.enter_context(ProcessPoolExecutor(max_workers=cfg.workers))

            genomes = [random_genome(cfg.genome_length, rng) for _ in range(cfg.number_of_agents)]
            scores = self._evaluate(world, genomes, pool)

            generation = 0
            while True:
                best, worst_score = best_and_worst(scores)
                best_score = scores[best]
                agent = GeneticAgent(list(genomes[best]), cfg.repeat_move)
                if not sink.send((best_score, agent)):
                    LOGGER.info("Consumer gone after %d generations, stopping genetic training", generation)
                    return
                LOGGER.debug("Generation %d: best %.4f, worst %.4f", generation, best_score, worst_score)

                if cfg.keep_best:
                    next_genomes, next_scores = [genomes[best]], [best_score]
                else:
                    next_genomes, next_scores = [], []

                children = [
                    self.breed(genomes, scores, worst_score, rng)
                    for _ in range(cfg.number_of_agents - len(next_genomes))
                ]
                next_scores.extend(self._evaluate(world, children, pool))
                next_genomes.extend(children)

                genomes, scores = next_genomes, next_scores
                generation += 1
