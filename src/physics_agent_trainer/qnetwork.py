"""Small numpy Q-network for discrete move selection.

Two hidden ReLU layers map the 4-value player state to one Q-value per
discrete move. Training uses a Huber loss on the Q-values of the taken
actions and SGD with Nesterov momentum.
"""

from collections import deque
from typing import List, Optional, Tuple

import numpy as np

from .moves import NUM_MOVES


STATE_SIZE = 4


class QNetwork:
    """Multilayer perceptron: STATE_SIZE -> hidden -> hidden -> NUM_MOVES."""

    def __init__(
        self,
        hidden_size: int = 32,
        rng: Optional[np.random.Generator] = None,
    ):
        rng = rng or np.random.default_rng()
        sizes = [STATE_SIZE, hidden_size, hidden_size, NUM_MOVES]
        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        for fan_in, fan_out in zip(sizes[:-1], sizes[1:]):
            # Uniform(-1/sqrt(fan_in), 1/sqrt(fan_in)), the usual linear-layer init
            bound = 1.0 / np.sqrt(fan_in)
            self.weights.append(rng.uniform(-bound, bound, size=(fan_in, fan_out)))
            self.biases.append(rng.uniform(-bound, bound, size=fan_out))

    @property
    def parameters(self) -> List[np.ndarray]:
        return [p for pair in zip(self.weights, self.biases) for p in pair]

    def copy(self) -> "QNetwork":
        clone = QNetwork.__new__(QNetwork)
        clone.weights = [w.copy() for w in self.weights]
        clone.biases = [b.copy() for b in self.biases]
        return clone

    def forward(self, states: np.ndarray) -> np.ndarray:
        """Q-values for a single state (shape (4,)) or a batch (shape (N, 4))."""
        x = np.asarray(states, dtype=np.float64)
        last = len(self.weights) - 1
        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            x = x @ w + b
            if i < last:
                x = np.maximum(x, 0.0)
        return x

    def __call__(self, states: np.ndarray) -> np.ndarray:
        return self.forward(states)

    def best_action(self, state: np.ndarray) -> int:
        """Index of the highest Q-value. Ties go to the lowest index."""
        return int(np.argmax(self.forward(state)))

    def loss_and_gradients(
        self,
        states: np.ndarray,
        actions: np.ndarray,
        targets: np.ndarray,
        delta: float = 1.0,
    ) -> Tuple[float, List[np.ndarray]]:
        """Mean Huber loss of Q(s, a) against targets, with parameter gradients.

        Gradients are returned in the same order as ``parameters``.
        """
        x = np.asarray(states, dtype=np.float64)
        batch = x.shape[0]

        activations = [x]
        pre_activations = []
        last = len(self.weights) - 1
        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            z = activations[-1] @ w + b
            pre_activations.append(z)
            activations.append(np.maximum(z, 0.0) if i < last else z)

        q_values = activations[-1]
        rows = np.arange(batch)
        chosen = q_values[rows, actions]
        error = chosen - targets

        abs_error = np.abs(error)
        quadratic = np.minimum(abs_error, delta)
        linear = abs_error - quadratic
        loss = float(np.mean(0.5 * quadratic ** 2 + delta * linear))

        # dL/dQ is only nonzero on the taken actions
        grad_q = np.zeros_like(q_values)
        grad_q[rows, actions] = np.clip(error, -delta, delta) / batch

        grads_w: List[np.ndarray] = [None] * len(self.weights)
        grads_b: List[np.ndarray] = [None] * len(self.biases)
        grad = grad_q
        for i in range(last, -1, -1):
            grads_w[i] = activations[i].T @ grad
            grads_b[i] = grad.sum(axis=0)
            if i > 0:
                grad = (grad @ self.weights[i].T) * (pre_activations[i - 1] > 0)

        return loss, [g for pair in zip(grads_w, grads_b) for g in pair]

    def soft_update(self, source: "QNetwork", rate: float) -> None:
        """Move parameters toward ``source`` by ``rate``."""
        for target, new in zip(self.parameters, source.parameters):
            target *= 1.0 - rate
            target += rate * new


class NesterovSGD:
    """SGD with Nesterov momentum, updating parameters in place."""

    def __init__(self, parameters: List[np.ndarray], learning_rate: float = 1e-1, momentum: float = 0.9):
        self.parameters = parameters
        self.learning_rate = learning_rate
        self.momentum = momentum
        self._velocity = [np.zeros_like(p) for p in parameters]

    def step(self, gradients: List[np.ndarray]) -> None:
        for param, grad, velocity in zip(self.parameters, gradients, self._velocity):
            velocity *= self.momentum
            velocity += grad
            param -= self.learning_rate * (grad + self.momentum * velocity)


class ReplayBuffer:
    """Fixed-capacity store of (state, action, reward, next_state, done) transitions."""

    def __init__(self, capacity: int = 10000):
        self.capacity = capacity
        self._items: deque = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._items)

    def push(
        self,
        state: np.ndarray,
        action: int,
        reward: float,
        next_state: np.ndarray,
        done: bool,
    ) -> None:
        self._items.append((state, action, reward, next_state, done))

    def sample(
        self, batch_size: int, rng: np.random.Generator,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Sample without replacement, returned as stacked arrays."""
        indices = rng.choice(len(self._items), size=batch_size, replace=False)
        batch = [self._items[i] for i in indices]
        states, actions, rewards, next_states, dones = zip(*batch)
        return (
            np.stack(states).astype(np.float64),
            np.asarray(actions, dtype=np.int64),
            np.asarray(rewards, dtype=np.float64),
            np.stack(next_states).astype(np.float64),
            np.asarray(dones, dtype=bool),
        )
