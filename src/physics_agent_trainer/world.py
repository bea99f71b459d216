"""World Description: the static, serializable scene a rollout is built from.

A World is an ordered list of positioned objects. Blocks are boxes (fixed or
movable), goals are non-colliding rectangles, and the player is a vertical
capsule. The player can either appear as an object in the list or be given
out-of-band as ``player_position``.

All values are in render units. Reading and writing files is left to callers;
``to_dict``/``from_dict`` only convert to and from plain Python data.
"""

import copy
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any, Union


@dataclass(frozen=True)
class Block:
    """Box obstacle. Fixed blocks never move; movable ones are dynamic bodies."""
    fixed: bool = True


@dataclass(frozen=True)
class Goal:
    """Rectangular target region. Not physically simulated."""


@dataclass(frozen=True)
class Player:
    """The controllable capsule. Its rotation is always locked."""


WorldObject = Union[Block, Goal, Player]


def _object_to_dict(obj: WorldObject) -> Dict[str, Any]:
    if isinstance(obj, Block):
        return {"type": "block", "fixed": obj.fixed}
    if isinstance(obj, Goal):
        return {"type": "goal"}
    if isinstance(obj, Player):
        return {"type": "player"}
    raise ValueError(f"Unknown world object: {obj!r}")


def _object_from_dict(d: Dict[str, Any]) -> WorldObject:
    kind = d.get("type")
    if kind == "block":
        return Block(fixed=bool(d.get("fixed", True)))
    if kind == "goal":
        return Goal()
    if kind == "player":
        return Player()
    raise ValueError(f"Unknown world object type: {kind!r}")


@dataclass
class ObjectAndTransform:
    """A world object with its placement.

    Only the magnitude of ``scale`` sets the physical size; its sign is ignored.
    ``rotation`` (radians) applies to blocks and goals, never to the player.
    """
    object: WorldObject
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    rotation: float = 0.0

    @property
    def size(self) -> Tuple[float, float]:
        """Absolute (width, height) in render units."""
        return abs(self.scale[0]), abs(self.scale[1])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "object": _object_to_dict(self.object),
            "position": list(self.position),
            "scale": list(self.scale),
            "rotation": self.rotation,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ObjectAndTransform":
        position = tuple(float(v) for v in d.get("position", (0.0, 0.0, 0.0)))
        scale = tuple(float(v) for v in d.get("scale", (1.0, 1.0, 1.0)))
        # 2D scales are padded with a unit depth
        if len(position) == 2:
            position = position + (0.0,)
        if len(scale) == 2:
            scale = scale + (1.0,)
        return cls(
            object=_object_from_dict(d["object"]),
            position=position,
            scale=scale,
            rotation=float(d.get("rotation", 0.0)),
        )


@dataclass
class World:
    """Ordered list of placed objects plus an optional player spawn point.

    A well-formed world holds at most one player, counting ``player_position``.
    """
    objects: List[ObjectAndTransform] = field(default_factory=list)
    player_position: Optional[Tuple[float, float]] = None

    def players(self) -> List[ObjectAndTransform]:
        return [o for o in self.objects if isinstance(o.object, Player)]

    def goals(self) -> List[ObjectAndTransform]:
        return [o for o in self.objects if isinstance(o.object, Goal)]

    def blocks(self) -> List[ObjectAndTransform]:
        return [o for o in self.objects if isinstance(o.object, Block)]

    @property
    def player_count(self) -> int:
        return len(self.players()) + (1 if self.player_position is not None else 0)

    @property
    def is_well_formed(self) -> bool:
        return self.player_count <= 1

    def clone(self) -> "World":
        """Independent deep copy, handed to a training worker."""
        return copy.deepcopy(self)

    def add(
        self,
        obj: WorldObject,
        position: Tuple[float, float],
        scale: Tuple[float, float] = (1.0, 1.0),
        rotation: float = 0.0,
    ) -> ObjectAndTransform:
        """Append an object placed at a 2D position with a 2D scale."""
        placed = ObjectAndTransform(
            object=obj,
            position=(float(position[0]), float(position[1]), 0.0),
            scale=(float(scale[0]), float(scale[1]), 1.0),
            rotation=float(rotation),
        )
        self.objects.append(placed)
        return placed

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"objects": [o.to_dict() for o in self.objects]}
        if self.player_position is not None:
            d["player_position"] = list(self.player_position)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "World":
        player_position = d.get("player_position")
        return cls(
            objects=[ObjectAndTransform.from_dict(o) for o in d.get("objects", [])],
            player_position=(
                (float(player_position[0]), float(player_position[1]))
                if player_position is not None else None
            ),
        )


def example_world(goal_offset: float = 50.0) -> World:
    """Flat fixed floor at the origin, player above it, goal to the right at floor height.

    The floor is 400x20 so its top surface sits at y=10. The player capsule is 60
    tall and spawns resting on it. The goal is a 20x40 rectangle ``goal_offset``
    units to the right.
    """
    world = World()
    world.add(Block(fixed=True), (0.0, 0.0), (400.0, 20.0))
    world.add(Goal(), (goal_offset, 30.0), (20.0, 40.0))
    world.add(Player(), (0.0, 40.0))
    return world
