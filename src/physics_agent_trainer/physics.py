"""Physics environment built on pymunk.

A PhysicsEnvironment is a live simulation of one World Description. It owns a
pymunk.Space, an arena of rigid bodies addressed by integer handles, the goal
rectangles and the ``won`` flag. Each rollout builds a fresh environment and
throws it away after scoring, so nothing here is shared between threads.

There is no character controller in pymunk, so locomotion is derived from the
raw contact geometry of the player capsule every tick (see ``step``).
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pymunk
from pymunk import Vec2d

from .config import PhysicsConfig
from .moves import Move
from .world import World, ObjectAndTransform, Block, Goal, Player


LOGGER = logging.getLogger(__name__)

# Collision types for different object categories
COLLISION_PLAYER = 1
COLLISION_BLOCK = 2

# Index of a body in PhysicsEnvironment.bodies
BodyHandle = int


@dataclass(frozen=True)
class GoalDimensions:
    """Goal rectangle in simulation units. Rotation in radians."""
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0

    def distance_to(self, px: float, py: float) -> float:
        """Euclidean distance from a point to this rectangle (0 inside it)."""
        dx = px - self.x
        dy = py - self.y
        # Into the goal's local axes
        cos_r = math.cos(self.rotation)
        sin_r = math.sin(self.rotation)
        local_x = cos_r * dx + sin_r * dy
        local_y = -sin_r * dx + cos_r * dy
        rx = max(abs(local_x) - self.width / 2, 0.0)
        ry = max(abs(local_y) - self.height / 2, 0.0)
        return math.hypot(rx, ry)


@dataclass(frozen=True)
class FloorContact:
    """A contact point under the player.

    ``normal`` is the unit vector from the player's lower cap center to the
    contact point. ``body`` is the body on the other side of the contact.
    """
    point: Vec2d
    normal: Vec2d
    body: Optional[pymunk.Body]


def _box_vertices(
    x: float, y: float, width: float, height: float, rotation: float = 0.0,
) -> List[Tuple[float, float]]:
    """Corners of a rotated box centered at (x, y)."""
    half_w, half_h = width / 2, height / 2
    cos_r = math.cos(rotation)
    sin_r = math.sin(rotation)
    corners = [(-half_w, -half_h), (half_w, -half_h), (half_w, half_h), (-half_w, half_h)]
    return [
        (x + cx * cos_r - cy * sin_r, y + cx * sin_r + cy * cos_r)
        for cx, cy in corners
    ]


class PhysicsEnvironment:
    """Live simulation of a World.

    Handles returned by ``add_object`` index into ``bodies``. Fixed blocks live
    on the space's static body and goals are plain rectangles, so neither gets
    a handle.
    """

    def __init__(self, config: Optional[PhysicsConfig] = None):
        """Create an empty environment.

        Args:
            config: Physics constants. Uses defaults if None.
        """
        self.config = config or PhysicsConfig()

        self.space = pymunk.Space()
        self.space.gravity = (0, self.config.gravity)
        self.space.collision_slop = self.config.collision_slop

        self.bodies: List[pymunk.Body] = []
        self.goals: List[GoalDimensions] = []
        self.player_handle: Optional[BodyHandle] = None
        self._player_shape: Optional[pymunk.Shape] = None

        # Flips to True once and stays there
        self.won = False

    @classmethod
    def from_world(cls, world: World, config: Optional[PhysicsConfig] = None) -> "PhysicsEnvironment":
        """Build an environment holding every object of the world."""
        environment = cls(config)
        if world.player_position is not None:
            environment.add_player(world.player_position)
        for object_and_transform in world.objects:
            environment.add_object(object_and_transform)
        return environment

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_object(self, object_and_transform: ObjectAndTransform) -> Optional[BodyHandle]:
        """Create the simulation primitive for one world object.

        Returns:
            Handle of the created body, or None for fixed blocks and goals.
        """
        obj = object_and_transform.object
        x, y = object_and_transform.position[0], object_and_transform.position[1]
        width, height = object_and_transform.size
        rotation = object_and_transform.rotation

        if isinstance(obj, Block):
            if obj.fixed:
                self.create_static_box(x, y, width, height, rotation)
                return None
            return self.create_dynamic_box(x, y, width, height, rotation)
        if isinstance(obj, Goal):
            s = self.config.scale
            self.goals.append(GoalDimensions(x * s, y * s, width * s, height * s, rotation))
            return None
        if isinstance(obj, Player):
            return self.add_player((x, y))
        raise ValueError(f"Unknown world object: {obj!r}")

    def _add_body(self, body: pymunk.Body, *shapes: pymunk.Shape) -> BodyHandle:
        """Add a body and its shapes, returning its handle."""
        self.space.add(body, *shapes)
        self.bodies.append(body)
        return len(self.bodies) - 1

    def create_static_box(
        self, x: float, y: float, width: float, height: float, rotation: float = 0.0,
    ) -> pymunk.Shape:
        """Create a fixed box collider. Arguments in render units."""
        s = self.config.scale
        vertices = _box_vertices(x * s, y * s, width * s, height * s, rotation)
        shape = pymunk.Poly(self.space.static_body, vertices, radius=0.0)
        shape.collision_type = COLLISION_BLOCK
        shape.friction = self.config.block_friction
        self.space.add(shape)
        return shape

    def create_dynamic_box(
        self, x: float, y: float, width: float, height: float, rotation: float = 0.0,
    ) -> BodyHandle:
        """Create a movable box. Arguments in render units."""
        s = self.config.scale
        size = (width * s, height * s)
        mass = self.config.block_density * size[0] * size[1]
        body = pymunk.Body(mass, pymunk.moment_for_box(mass, size))
        body.position = (x * s, y * s)
        body.angle = rotation

        shape = pymunk.Poly.create_box(body, size)
        shape.collision_type = COLLISION_BLOCK
        shape.friction = self.config.block_friction
        return self._add_body(body, shape)

    def add_player(self, position: Tuple[float, float]) -> Optional[BodyHandle]:
        """Create the player capsule at a render-space position.

        A world holds at most one player; extra players are ignored.
        """
        if self.player_handle is not None:
            LOGGER.warning("World has more than one player, ignoring the one at %s", position)
            return None

        s = self.config.scale
        radius = self.config.player_radius_physics
        half_depth = self.config.player_depth_physics / 2

        # Infinite moment keeps the capsule upright
        body = pymunk.Body(self.config.player_mass, float("inf"))
        body.position = (position[0] * s, position[1] * s)

        # A segment with a radius is a capsule
        shape = pymunk.Segment(body, (0, -half_depth), (0, half_depth), radius)
        shape.collision_type = COLLISION_PLAYER
        shape.friction = self.config.player_friction

        self.player_handle = self._add_body(body, shape)
        self._player_shape = shape
        return self.player_handle

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def player_body(self) -> Optional[pymunk.Body]:
        if self.player_handle is None:
            return None
        return self.bodies[self.player_handle]

    def body(self, handle: BodyHandle) -> pymunk.Body:
        return self.bodies[handle]

    def body_transform(self, handle: BodyHandle) -> Tuple[float, float, float]:
        """(x, y, angle) of a body, position in render units."""
        body = self.bodies[handle]
        s = self.config.scale
        return body.position.x / s, body.position.y / s, body.angle

    def player_position(self) -> Optional[Tuple[float, float]]:
        """Player center in render units, None without a player."""
        if self.player_handle is None:
            return None
        x, y, _ = self.body_transform(self.player_handle)
        return x, y

    def distance_to_goals(self) -> Optional[float]:
        """Render-space distance from the player center to the nearest goal.

        Returns None when there is no goal or no player.
        """
        body = self.player_body
        if body is None or not self.goals:
            return None
        px, py = body.position
        return min(goal.distance_to(px, py) for goal in self.goals) / self.config.scale

    def state(self) -> Optional[np.ndarray]:
        """[x, y, vx, vy] of the player in simulation units, None without a player."""
        body = self.player_body
        if body is None:
            return None
        return np.array(
            [body.position.x, body.position.y, body.velocity.x, body.velocity.y],
            dtype=np.float32,
        )

    def _player_lower_center(self) -> Vec2d:
        body = self.player_body
        return body.position - Vec2d(0, self.config.player_depth_physics / 2)

    def floor_contacts(self) -> List[FloorContact]:
        """Contact points that are underfoot.

        Reads the solver's arbiters on the player body from the last step. A
        contact is floor when the offset from the lower cap center to the
        point, divided by the player radius, has a vertical component below
        ``floor_normal_threshold``.
        """
        if self._player_shape is None:
            return []

        player_shape = self._player_shape
        lower_center = self._player_lower_center()
        radius = self.config.player_radius_physics
        contacts: List[FloorContact] = []

        def collect(arbiter: pymunk.Arbiter) -> None:
            shape_a, shape_b = arbiter.shapes
            # Arbiter shape order is not fixed, find the player's side
            player_is_a = shape_a is player_shape
            other = shape_b if player_is_a else shape_a
            other_body = other.body if other.body.body_type == pymunk.Body.DYNAMIC else None
            for point in arbiter.contact_point_set.points:
                on_player = point.point_a if player_is_a else point.point_b
                offset = (on_player - lower_center) / radius
                if offset.y < self.config.floor_normal_threshold:
                    contacts.append(FloorContact(
                        point=on_player,
                        normal=offset.normalized(),
                        body=other_body,
                    ))

        self.player_body.each_arbiter(collect)
        return contacts

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def _locomotion(self, player_move: Move) -> None:
        """Turn a move into impulses on the player and the bodies it stands on."""
        contacts = self.floor_contacts()
        if not contacts:
            return

        total = Vec2d(0, 0)

        def push(contact: FloorContact, impulse: Vec2d) -> None:
            nonlocal total
            total += impulse
            if contact.body is not None:
                contact.body.apply_impulse_at_world_point(-impulse, contact.point)

        if player_move.left:
            contact = min(contacts, key=lambda c: c.point.x)
            n = contact.normal
            push(contact, Vec2d(n.y, -n.x) * self.config.move_impulse)

        if player_move.right:
            contact = max(contacts, key=lambda c: c.point.x)
            n = contact.normal
            push(contact, Vec2d(-n.y, n.x) * self.config.move_impulse)

        if player_move.up:
            share = self.config.jump_impulse / len(contacts)
            for contact in contacts:
                # Away from the contact, into the player
                push(contact, -contact.normal * share)

        self.player_body.apply_impulse_at_local_point(total, (0, 0))

    def step(self, player_move: Move = Move()) -> None:
        """Advance the world by one tick.

        Applies locomotion from the current floor contacts, runs the backend for
        one fixed timestep, then checks whether the player reached a goal.
        Without a player the move is ignored and only the bodies are simulated.
        """
        if self._player_shape is not None:
            self._locomotion(player_move)

        substeps = self.config.substeps
        for _ in range(substeps):
            self.space.step(self.config.dt / substeps)

        if not self.won:
            distance = self.distance_to_goals()
            if distance is not None and distance < self.config.win_epsilon:
                self.won = True
