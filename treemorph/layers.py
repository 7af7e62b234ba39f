"""
Layer Animator - per-element transforms for every layer, every frame

Architecture:
- FrameSnapshot: the single-tick view of shared state (morph value, angular
  velocity, group transform, camera, time). Every layer of a tick sees the same one.
- TransformBatch: what a layer hands to the rendering side (positions,
  quaternions, scales, plus pass-through color/shape tags).
- *_transforms(): pure functions (snapshot, elements, params) -> TransformBatch.
- Layer: owns one element set and any per-layer filters (e.g. wind), and turns
  a snapshot into a TransformBatch via its pure function.

Layers never write shared state and never touch each other's elements.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from .config import CAMERA_POSITION, FoliageParams, OrnamentParams, SnowParams, StarParams
from .fields import LayerElements, PositionFieldGenerator, sample_box, sample_cylinder
from .math_utils import quat_from_euler, quat_identity
from .physics import GroupTransform

logger = logging.getLogger(__name__)


@dataclass
class CameraPose:
    """Observer pose in world space. The camera looks down its local -Z axis."""
    position: np.ndarray = field(default_factory=lambda: np.array(CAMERA_POSITION, dtype=float))
    quaternion: np.ndarray = field(default_factory=quat_identity)


@dataclass(frozen=True)
class FrameSnapshot:
    """Read-only shared state for one tick, taken after physics and morph ran."""
    time: float
    dt: float
    morph: float
    angular_velocity: float
    group: GroupTransform
    camera: CameraPose


@dataclass
class TransformBatch:
    """
    Per-element output of one layer for one frame.

    Attributes:
        positions: (n, 3) positions (group-local when in_group, else world)
        quaternions: (n, 4) orientations (x, y, z, w)
        scales: (n, 3) per-axis scale
        ids: Optional (n,) stable element ids
        color: Color assignment passed through to rendering
        shape: Geometry tag passed through to rendering
        in_group: Whether positions live inside the rotating tree group
    """
    positions: np.ndarray
    quaternions: np.ndarray
    scales: np.ndarray
    ids: Optional[np.ndarray] = None
    color: Optional[str] = None
    shape: str = "point"
    in_group: bool = True

    def __len__(self) -> int:
        return int(self.positions.shape[0])

    @classmethod
    def empty(cls, **kwargs) -> "TransformBatch":
        return cls(np.zeros((0, 3)), np.zeros((0, 4)), np.zeros((0, 3)), **kwargs)

    def to_dict(self, include_elements: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "count": len(self),
            "color": self.color,
            "shape": self.shape,
            "in_group": self.in_group,
        }
        if include_elements:
            out["positions"] = self.positions.tolist()
            out["quaternions"] = self.quaternions.tolist()
            out["scales"] = self.scales.tolist()
            if self.ids is not None:
                out["ids"] = [int(i) for i in self.ids]
        return out


class WindFilter:
    """
    Per-frame exponential filter that lets visual wind lag the real spin.

    Attributes:
        rate: Fraction of the gap closed each frame (0..1)
        gain: Multiplier applied to the angular velocity before filtering
        value: Current filtered wind
    """

    def __init__(self, rate: float, gain: float = 1.0):
        self.rate = max(0.0, min(1.0, rate))
        self.gain = gain
        self.value = 0.0

    def update(self, angular_velocity: float) -> float:
        self.value += (angular_velocity * self.gain - self.value) * self.rate
        return self.value

    def reset(self):
        self.value = 0.0


def _uniform_scales(s: np.ndarray) -> np.ndarray:
    return np.repeat(np.asarray(s, dtype=float)[:, None], 3, axis=1)


# --------- Pure transform functions ---------

def blend_anchors(elements: LayerElements, morph: float) -> np.ndarray:
    """lerp(scattered, assembled, morph) for every element."""
    return elements.scattered + (elements.assembled - elements.scattered) * morph


def foliage_transforms(
    snapshot: FrameSnapshot,
    elements: LayerElements,
    params: FoliageParams,
    wind: float,
    tree_height: float,
) -> TransformBatch:
    """
    Foliage point cloud: blended anchors plus drift, breathing and wind shear.

    Drift fades out as the tree assembles. Wind shear grows with height above
    the base of the tree and is driven by the filtered angular velocity.
    """
    t = snapshot.time
    m = snapshot.morph
    r = elements.seeds[:, 0]
    pos = blend_anchors(elements, m)

    drift = np.sin(t * params.drift_frequency + r * 100.0) * (1.0 - m) * params.drift_amplitude
    pos = pos + drift[:, None]

    height = elements.assembled[:, 1] + tree_height / 2.0
    shear = wind * height * params.wind_gain * np.sin(t * params.wind_frequency + r * 20.0)
    pos[:, 0] += shear
    pos[:, 2] += shear * 0.5

    breathe = np.sin(t * params.breathe_frequency + r * 10.0) * params.breathe_amplitude
    sizes = elements.size_base * (1.0 + breathe)
    return TransformBatch(pos, quat_identity(len(elements)), _uniform_scales(sizes))


def ornament_transforms(
    snapshot: FrameSnapshot,
    elements: LayerElements,
    params: OrnamentParams,
    scale_base: float,
) -> TransformBatch:
    """
    Decorative instances: blended anchors with a gentle vertical float.

    Ornaments tumble while scattered and only turn about Y once assembled;
    they pulse in size and shrink to half size when fully scattered.
    """
    t = snapshot.time
    m = snapshot.morph
    r = elements.seeds[:, 0]
    pos = blend_anchors(elements, m)
    pos[:, 1] += np.sin(t * params.float_frequency + r * 10.0) * params.float_amplitude

    sx, sy, sz = params.spin_rates
    spin = np.array([t * sx * (1.0 - m), t * sy, t * sz * (1.0 - m)])
    quats = quat_from_euler(elements.base_euler + spin)

    pulse = scale_base + np.sin(t * params.pulse_frequency + r * 100.0) * (scale_base * params.pulse_amount)
    sizes = pulse * (0.5 + 0.5 * m)
    return TransformBatch(pos, quats, _uniform_scales(sizes))


def star_transforms(snapshot: FrameSnapshot, elements: LayerElements, params: StarParams) -> TransformBatch:
    """Focal ornament: spins, wobbles, pulses; smaller while scattered."""
    t = snapshot.time
    m = snapshot.morph
    n = len(elements)
    pos = blend_anchors(elements, m)
    euler = np.tile([0.0, t * params.spin_rate, math.sin(t * params.wobble_frequency) * params.wobble_amplitude], (n, 1))
    pulse = 1.0 + math.sin(t * params.pulse_frequency) * params.pulse_amount
    sizes = np.full(n, pulse * (0.6 + 0.4 * m))
    return TransformBatch(pos, quat_from_euler(euler), _uniform_scales(sizes))


def snow_transforms(
    snapshot: FrameSnapshot,
    elements: LayerElements,
    params: SnowParams,
    wind: float,
) -> TransformBatch:
    """
    Ambient particulate in world space.

    Flakes fall and wrap vertically, swirl around the Y axis with the filtered
    wind (more strongly higher up), get pushed outward by |wind|, and jitter
    with a small turbulence term.
    """
    t = snapshot.time
    base = elements.assembled
    rx, ry, rz = elements.seeds[:, 0], elements.seeds[:, 1], elements.seeds[:, 2]

    y = base[:, 1] - t * (params.fall_speed + ry)
    y = np.mod(y - params.wrap_floor, params.wrap_height) + params.wrap_floor

    angle = np.arctan2(base[:, 2], base[:, 0]) + wind * params.swirl * (y - params.wrap_floor)
    radius = np.hypot(base[:, 0], base[:, 2]) + abs(wind) * params.centrifugal * np.sin(t + rx * 10.0)

    x = radius * np.cos(angle) + np.sin(t * 2.0 + rz * 10.0) * params.turbulence
    z = radius * np.sin(angle) + np.cos(t * 1.5 + rx * 10.0) * params.turbulence
    pos = np.column_stack([x, y, z])
    return TransformBatch(pos, quat_identity(len(elements)), _uniform_scales(elements.size_base), in_group=False)


# --------- Layers ---------

class Layer:
    """
    Base class for an animated element layer.

    Subclasses implement _generate() to build their element set and animate()
    to turn a FrameSnapshot into a TransformBatch.

    Attributes:
        name: Unique layer name (also selects the random streams)
        shape: Geometry tag passed through to rendering
        in_group: Whether the layer is parented to the rotating tree group
        color: Current color assignment (opaque to the simulation)
    """
    shape = "point"
    in_group = True

    def __init__(self, name: str, generator: PositionFieldGenerator, count: int, color: Optional[str] = None):
        self.name = name
        self.generator = generator
        self.color = color
        self.count = max(0, int(count))
        self.elements = self._generate(self.count)

    def _generate(self, count: int) -> LayerElements:
        raise NotImplementedError

    def resize(self, count: int) -> bool:
        """
        Change the element count. Anchors are only regenerated if it differs.

        Returns:
            True if the element set was regenerated
        """
        count = max(0, int(count))
        if count == self.count:
            return False
        logger.info(f"Layer '{self.name}' resized {self.count} -> {count}")
        self.count = count
        self.elements = self._generate(count)
        return True

    def teardown(self):
        self.count = 0
        self.elements = LayerElements.empty()

    def animate(self, snapshot: FrameSnapshot) -> TransformBatch:
        raise NotImplementedError

    def advance(self, snapshot: FrameSnapshot) -> TransformBatch:
        """Run one frame and tag the batch with this layer's pass-through data."""
        if self.count == 0:
            batch = TransformBatch.empty()
        else:
            batch = self.animate(snapshot)
        batch.color = self.color
        batch.shape = self.shape
        batch.in_group = self.in_group
        return batch


class FoliageLayer(Layer):
    """Dense point cloud forming the body of the tree."""

    def __init__(self, name: str, generator: PositionFieldGenerator, count: int,
                 params: Optional[FoliageParams] = None, color: Optional[str] = None):
        self.params = params or FoliageParams()
        self.wind = WindFilter(self.params.wind_rate)
        super().__init__(name, generator, count, color=color)

    def _generate(self, count: int) -> LayerElements:
        return self.generator.generate(self.name, count, size_range=(0.5, 2.0))

    def advance(self, snapshot: FrameSnapshot) -> TransformBatch:
        # Runs even while the layer is empty
        self.wind.update(snapshot.angular_velocity)
        return super().advance(snapshot)

    def animate(self, snapshot: FrameSnapshot) -> TransformBatch:
        return foliage_transforms(snapshot, self.elements, self.params, self.wind.value, self.generator.tree_height)


class OrnamentLayer(Layer):
    """Instanced decorations (gift boxes, balls, tiny lights) hugging the cone surface."""

    def __init__(self, name: str, generator: PositionFieldGenerator, count: int, shape: str = "sphere",
                 scale_base: float = 0.2, params: Optional[OrnamentParams] = None, color: Optional[str] = None):
        self.shape = shape
        self.scale_base = scale_base
        self.params = params or OrnamentParams()
        super().__init__(name, generator, count, color=color)

    def _generate(self, count: int) -> LayerElements:
        return self.generator.generate(
            self.name, count,
            radial_range=(0.8, 1.3),
            turns=3.0,
            height_margin=1.0,
            shell_inner=0.8,
            shell_spread=0.5,
            random_orientation=True,
        )

    def animate(self, snapshot: FrameSnapshot) -> TransformBatch:
        return ornament_transforms(snapshot, self.elements, self.params, self.scale_base)


class StarLayer(Layer):
    """The single focal ornament on top of the tree."""
    shape = "star"

    def __init__(self, name: str, generator: PositionFieldGenerator,
                 params: Optional[StarParams] = None, color: Optional[str] = None):
        self.params = params or StarParams()
        super().__init__(name, generator, 1, color=color)

    def _generate(self, count: int) -> LayerElements:
        if count <= 0:
            return LayerElements.empty()
        (rng,) = self.generator.streams(self.name, 1)
        h = self.generator.tree_height
        s = self.generator.scatter_radius
        assembled = np.tile([0.0, h / 2.0 + self.params.height_offset, 0.0], (count, 1))
        scattered = sample_box(rng, count, (s, s, s), center=(0.0, 10.0, 0.0))
        return LayerElements(
            assembled=assembled,
            scattered=scattered,
            seeds=np.zeros((count, 1)),
            size_base=np.ones(count),
            base_euler=np.zeros((count, 3)),
        )

    def animate(self, snapshot: FrameSnapshot) -> TransformBatch:
        return star_transforms(snapshot, self.elements, self.params)


class SnowLayer(Layer):
    """Falling particulate around the scene, stirred by the tree's spin."""
    in_group = False

    def __init__(self, name: str, generator: PositionFieldGenerator, count: int,
                 params: Optional[SnowParams] = None, color: Optional[str] = "#ffffff"):
        self.params = params or SnowParams()
        self.wind = WindFilter(self.params.wind_rate, gain=self.params.wind_gain)
        super().__init__(name, generator, count, color=color)

    def _generate(self, count: int) -> LayerElements:
        if count <= 0:
            return LayerElements.empty(3)
        pos_rng, seed_rng, size_rng = self.generator.streams(self.name, 3)
        floor = self.params.wrap_floor
        positions = sample_cylinder(pos_rng, count, (2.0, 17.0), (floor, floor + self.params.wrap_height))
        logger.info(f"Generated {count} elements for layer '{self.name}'")
        return LayerElements(
            assembled=positions,
            scattered=positions.copy(),
            seeds=seed_rng.random((count, 3)),
            size_base=0.2 + size_rng.random(count) * 0.5,
            base_euler=np.zeros((count, 3)),
        )

    def advance(self, snapshot: FrameSnapshot) -> TransformBatch:
        self.wind.update(snapshot.angular_velocity)
        return super().advance(snapshot)

    def animate(self, snapshot: FrameSnapshot) -> TransformBatch:
        return snow_transforms(snapshot, self.elements, self.params, self.wind.value)
