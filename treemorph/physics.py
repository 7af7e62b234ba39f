"""
Inertial Rotation Controller - spin, tilt and scale of the tree group

Yaw is physically inertial: lateral hand motion while the tree is assembled
adds an impulse to the angular velocity, which then glides and decays like a
heavy object. Pitch follows the hand height directly (like tilting a camera),
and scale eases toward the configured target.

This controller is the only writer of PhysicsState. Layers read the angular
velocity as a shared "wind" signal.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .config import GROUP_OFFSET, clamp_tree_scale
from .gesture_classifier import TreeMode
from .math_utils import approach, clamp, quat_from_euler

logger = logging.getLogger(__name__)


@dataclass
class Orientation:
    yaw: float = 0.0
    pitch: float = 0.0


@dataclass
class PhysicsState:
    angular_velocity: float = 0.0
    orientation: Orientation = field(default_factory=Orientation)
    scale: float = 1.0


@dataclass
class GroupTransform:
    """World transform of the rotating tree group for one frame."""
    position: np.ndarray
    quaternion: np.ndarray
    scale: float

    @classmethod
    def from_physics(cls, state: PhysicsState, offset=GROUP_OFFSET) -> "GroupTransform":
        euler = np.array([state.orientation.pitch, state.orientation.yaw, 0.0])
        return cls(
            position=np.asarray(offset, dtype=float),
            quaternion=quat_from_euler(euler),
            scale=state.scale,
        )


class InertialRotationController:
    """
    Integrates hand motion into bounded angular velocity, orientation and scale.

    Attributes:
        state: Current PhysicsState
        scale_target: Scale the group eases toward
    """
    # Minimum per-frame hand x delta that counts as a push
    IMPULSE_THRESHOLD = 0.001
    # Angular velocity added per unit of hand x delta
    IMPULSE_GAIN = 5.0
    # Per-frame velocity retention (5% energy loss per frame)
    DAMPING = 0.95
    MAX_ANGULAR_VELOCITY = 5.0
    # Below this the tree is considered at rest and snaps to 0
    REST_EPSILON = 0.001
    PITCH_GAIN = 0.3
    PITCH_RATE = 2.0
    SCALE_RATE = 5.0

    def __init__(self, scale_target: float = 1.0, initial_scale: Optional[float] = None):
        self.scale_target = clamp_tree_scale(scale_target)
        start = self.scale_target if initial_scale is None else initial_scale
        self.state = PhysicsState(scale=start)
        self._last_hand_x: Optional[float] = None

    def set_scale_target(self, value: float):
        """Live scale change; the group eases toward it instead of snapping."""
        self.scale_target = clamp_tree_scale(value)

    def apply_impulse(self, velocity: float, dx: float, mode: TreeMode) -> float:
        """
        Velocity after this frame's push (if any), damping, clamping and rest snap.

        Args:
            velocity: Angular velocity from the previous frame
            dx: Hand x delta since the previous frame
            mode: Current gesture mode; only ASSEMBLED accepts pushes

        Returns:
            The new angular velocity, always within [-MAX, MAX]
        """
        if mode is TreeMode.ASSEMBLED and abs(dx) > self.IMPULSE_THRESHOLD:
            velocity += dx * self.IMPULSE_GAIN
        velocity *= self.DAMPING
        velocity = clamp(velocity, -self.MAX_ANGULAR_VELOCITY, self.MAX_ANGULAR_VELOCITY)
        if abs(velocity) < self.REST_EPSILON:
            velocity = 0.0
        return velocity

    def update(self, hand_position: np.ndarray, mode: TreeMode, dt: float) -> PhysicsState:
        """
        Advance one frame.

        Args:
            hand_position: (x, y) hand position in [-1, 1]
            mode: Mode from the classifier for this frame
            dt: Frame time in seconds

        Returns:
            The new PhysicsState
        """
        hand_x = float(hand_position[0])
        hand_y = float(hand_position[1])
        dx = 0.0 if self._last_hand_x is None else hand_x - self._last_hand_x
        self._last_hand_x = hand_x

        prev = self.state
        velocity = self.apply_impulse(prev.angular_velocity, dx, mode)
        orientation = Orientation(
            yaw=prev.orientation.yaw + velocity * dt,
            pitch=approach(prev.orientation.pitch, hand_y * self.PITCH_GAIN, dt, self.PITCH_RATE),
        )
        scale = approach(prev.scale, self.scale_target, dt, self.SCALE_RATE)
        self.state = PhysicsState(angular_velocity=velocity, orientation=orientation, scale=scale)
        return self.state

    def reset(self):
        self.state = PhysicsState(scale=self.scale_target)
        self._last_hand_x = None
