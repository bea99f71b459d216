"""Discrete per-tick input for the player."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


NUM_MOVES = 8


@dataclass(frozen=True)
class Move:
    """One tick's input: three independent flags. Default is no input."""
    left: bool = False
    right: bool = False
    up: bool = False

    @classmethod
    def random(cls, rng: Optional[np.random.Generator] = None) -> "Move":
        """Each flag drawn independently with probability 0.5."""
        rng = rng or np.random.default_rng()
        left, right, up = rng.random(3) < 0.5
        return cls(left=bool(left), right=bool(right), up=bool(up))

    @classmethod
    def from_index(cls, index: int) -> "Move":
        """Decode one of the 8 discrete actions.

        A cleared bit turns the flag on: bit 0 -> left, bit 1 -> right, bit 2 -> up.
        """
        if not 0 <= index < NUM_MOVES:
            raise ValueError(f"Move index must be in [0, {NUM_MOVES}), got {index}")
        return cls(
            left=(index & 1) == 0,
            right=(index & 2) == 0,
            up=(index & 4) == 0,
        )

    def to_index(self) -> int:
        """Inverse of from_index."""
        return (
            (0 if self.left else 1)
            | (0 if self.right else 2)
            | (0 if self.up else 4)
        )

    def to_dict(self):
        return {"left": self.left, "right": self.right, "up": self.up}


NO_MOVE = Move()
