"""Training orchestration: background worker, bounded channel, session lifecycle.

A TrainingSession runs one Algorithm on one background thread. The worker
sends ``(score, agent)`` messages through a bounded channel and blocks while
the channel is full. The consumer only ever drains it without blocking.
Closing the receiver, or letting it be garbage collected, is the one signal
that stops the worker: its next send fails and the algorithm returns.

Usage:
    with TrainingSession(GeneticAlgorithm(), world) as session:
        while ...:
            session.poll()
            score, agent = session.best()
"""

import queue
import logging
import threading
import weakref
from typing import Any, Iterator, List, Optional, Tuple

from .agents import Agent
from .algorithms import Algorithm, GeneticAlgorithm, TrainingDetails, Message
from .config import PhysicsConfig, TrainingConfig
from .dqn import DQNAlgorithm
from .physics import PhysicsEnvironment
from .world import World


LOGGER = logging.getLogger(__name__)


ALGORITHMS = {
    "genetic": GeneticAlgorithm,
    "dqn": DQNAlgorithm,
}


def create_algorithm(name: str, **kwargs) -> Algorithm:
    """Instantiate a registered algorithm by name."""
    try:
        cls = ALGORITHMS[name]
    except KeyError:
        raise ValueError(f"Unknown algorithm: {name!r} (known: {sorted(ALGORITHMS)})") from None
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Bounded channel
# ---------------------------------------------------------------------------

class Sender:
    """Producer end. ``send`` blocks while the channel is full."""

    def __init__(self, messages: queue.Queue, closed: threading.Event, poll_interval: float):
        self._messages = messages
        self._closed = closed
        self._poll_interval = poll_interval

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, message: Any) -> bool:
        """Queue a message. Returns False once the receiver is gone."""
        while not self._closed.is_set():
            try:
                self._messages.put(message, timeout=self._poll_interval)
                return True
            except queue.Full:
                continue
        return False


class Receiver:
    """Consumer end. Closing it, or dropping the last reference, stops the sender."""

    def __init__(self, messages: queue.Queue, closed: threading.Event):
        self._messages = messages
        self._closed = closed
        self._finalizer = weakref.finalize(self, closed.set)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def try_recv(self) -> Any:
        """Next message without waiting. Raises queue.Empty if there is none."""
        return self._messages.get_nowait()

    def recv(self, timeout: Optional[float] = None) -> Any:
        """Next message, waiting up to ``timeout`` seconds. Raises queue.Empty on timeout."""
        return self._messages.get(timeout=timeout)

    def try_iter(self, limit: Optional[int] = None) -> Iterator[Any]:
        """Yield pending messages without blocking, at most ``limit`` of them."""
        count = 0
        while limit is None or count < limit:
            try:
                yield self._messages.get_nowait()
            except queue.Empty:
                return
            count += 1

    def close(self) -> None:
        self._finalizer()


def channel(capacity: int = 100, poll_interval: float = 0.05) -> Tuple[Sender, Receiver]:
    """Create a bounded single-producer/single-consumer channel."""
    if capacity < 1:
        raise ValueError(f"capacity must be >= 1, got {capacity}")
    messages: queue.Queue = queue.Queue(maxsize=capacity)
    closed = threading.Event()
    return Sender(messages, closed, poll_interval), Receiver(messages, closed)


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------

def _run_training(algorithm: Algorithm, world: World, sender: Sender) -> None:
    LOGGER.info("Training worker started (%s)", algorithm.name)
    algorithm.train(world, sender)
    LOGGER.info("Training worker finished (%s)", algorithm.name)


def spawn_training_thread(
    algorithm: Algorithm,
    world: World,
    config: Optional[TrainingConfig] = None,
) -> Tuple[threading.Thread, Receiver]:
    """Run ``algorithm.train`` on a clone of the world in a daemon thread."""
    config = config or TrainingConfig()
    sender, receiver = channel(config.channel_capacity, config.send_poll_interval)
    thread = threading.Thread(
        target=_run_training,
        args=(algorithm, world.clone(), sender),
        name=f"{algorithm.name}-training",
        daemon=True,
    )
    thread.start()
    return thread, receiver


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

class Visualization:
    """Replays an agent against a fresh environment for display.

    ``transforms`` lines up with ``world.objects``. Bodies report their live
    transform, fixed blocks and goals report their placement in the world.
    """

    def __init__(
        self,
        agent: Agent,
        world: World,
        physics_config: Optional[PhysicsConfig] = None,
    ):
        self.agent = agent.copy()
        self.world = world
        self.environment = PhysicsEnvironment(physics_config)
        if world.player_position is not None:
            self.environment.add_player(world.player_position)
        self.handles = [self.environment.add_object(o) for o in world.objects]
        self.steps = 0

    @property
    def won(self) -> bool:
        return self.environment.won

    def distance_to_goals(self) -> Optional[float]:
        return self.environment.distance_to_goals()

    def transforms(self) -> List[Tuple[float, float, float]]:
        """(x, y, angle) per world object, render units."""
        result = []
        for handle, placed in zip(self.handles, self.world.objects):
            if handle is None:
                result.append((placed.position[0], placed.position[1], placed.rotation))
            else:
                result.append(self.environment.body_transform(handle))
        return result

    def step(self) -> List[Tuple[float, float, float]]:
        """Advance one tick with the agent's move."""
        self.environment.step(self.agent.get_move(self.environment.state()))
        self.steps += 1
        return self.transforms()


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class TrainingSession:
    """One training run: worker thread, receiver and received history.

    Created per run and passed to whatever needs it. ``stop`` (or leaving the
    ``with`` block) closes the receiver so the worker winds down on its own.
    """

    def __init__(
        self,
        algorithm: Algorithm,
        world: World,
        config: Optional[TrainingConfig] = None,
    ):
        self.algorithm = algorithm
        self.world = world
        self.config = config or TrainingConfig()

        self.thread: Optional[threading.Thread] = None
        self.trained_world: Optional[World] = None
        self.details: Optional[TrainingDetails] = None

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    @property
    def agents(self) -> List[Message]:
        return self.details.agents if self.details is not None else []

    def start(self) -> "TrainingSession":
        """Start a new run. A run already in progress is stopped first."""
        if self.details is not None:
            self.stop(timeout=0)
        # Later edits to self.world do not reach the running worker or replays
        self.trained_world = self.world.clone()
        self.thread, receiver = spawn_training_thread(self.algorithm, self.trained_world, self.config)
        self.details = self.algorithm.training_details_receiver(
            receiver, drain_batch_size=self.config.drain_batch_size,
        )
        return self

    def poll(self) -> int:
        """Drain pending messages without blocking. Returns how many arrived."""
        if self.details is None:
            raise RuntimeError("Training session has not been started")
        return self.details.receive_messages()

    def best(self) -> Optional[Message]:
        return self.details.best() if self.details is not None else None

    def visualize(self, index: int) -> Visualization:
        """Replay the agent of the ``index``-th received message."""
        _, agent = self.agents[index]
        return Visualization(agent, self.trained_world, self.algorithm.physics_config)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Close the receiver and wait up to ``timeout`` seconds for the worker.

        ``timeout=0`` returns without joining and ``None`` waits until the
        worker exits. The received history is kept until the next ``start``.
        """
        if self.details is not None:
            self.details.close()
        if self.thread is not None and timeout != 0:
            self.thread.join(timeout)
            if self.thread.is_alive():
                LOGGER.warning("Training worker still running after stop, it exits at its next send")

    def __enter__(self) -> "TrainingSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop(timeout=0)
