"""
Position Field Generator - per-element anchors for every layer

Each layer owns a fixed set of elements. For every element we precompute:
- an assembled anchor (tree cone, apex at the top)
- a scattered anchor (spherical shell around the origin)
- random phase channels in [0, 1) used only by secondary motion
- a base size and a base orientation

Anchors are drawn from their own random streams, separate from the phase
channels, so changing how many phase channels a layer wants never moves its
anchors. Elements are generated once and are only regenerated when the
layer's element count changes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayerElements:
    """
    Immutable per-layer element arrays (one row per element).

    Attributes:
        assembled: (n, 3) assembled-arrangement anchors
        scattered: (n, 3) scattered-arrangement anchors
        seeds: (n, k) uniform randoms for secondary motion
        size_base: (n,) base size
        base_euler: (n, 3) base orientation (XYZ Euler, radians)
    """
    assembled: np.ndarray
    scattered: np.ndarray
    seeds: np.ndarray
    size_base: np.ndarray
    base_euler: np.ndarray

    def __len__(self) -> int:
        return int(self.assembled.shape[0])

    @classmethod
    def empty(cls, seed_channels: int = 1) -> "LayerElements":
        return cls(
            assembled=np.zeros((0, 3)),
            scattered=np.zeros((0, 3)),
            seeds=np.zeros((0, seed_channels)),
            size_base=np.zeros(0),
            base_euler=np.zeros((0, 3)),
        )


# --------- Samplers ---------

def sample_cone(
    rng: np.random.Generator,
    count: int,
    height: float,
    radius: float,
    radial_range: Tuple[float, float] = (0.0, 1.0),
    turns: float = 1.0,
    height_span: Optional[float] = None,
) -> np.ndarray:
    """
    Sample points inside a cone standing on the XZ plane, apex at +height/2.

    Args:
        rng: Random generator
        count: Number of points
        height: Cone height H (the taper is always computed over the full H)
        radius: Base radius R_max
        radial_range: (lo, hi) multiplier range for U(lo, hi) * R_max; (0, 1)
            fills the cone, (0.8, 1.3) biases toward an outer annulus
        turns: Multiplier on the angle range, > 1 gives spiral banding
        height_span: Vertical extent heights are drawn from (default: height)

    Returns:
        (count, 3) array of (r cos theta, h, r sin theta)
    """
    span = height if height_span is None else height_span
    h = (rng.random(count) - 0.5) * span
    taper = 1.0 - (h + height / 2.0) / height
    lo, hi = radial_range
    r = (lo + rng.random(count) * (hi - lo)) * radius * taper
    theta = rng.random(count) * 2.0 * math.pi * turns
    return np.column_stack([r * np.cos(theta), h, r * np.sin(theta)])


def sample_shell(
    rng: np.random.Generator,
    count: int,
    radius: float,
    inner: float = 0.5,
    spread: float = 0.5,
) -> np.ndarray:
    """
    Sample points in a spherical shell with radius in [radius*inner, radius*(inner+spread)].

    Directions are uniform on the sphere (phi = acos(2u - 1) - pi/2, lambda = 2 pi v).
    """
    u = rng.random(count)
    v = rng.random(count)
    phi = np.arccos(2.0 * u - 1.0) - math.pi / 2.0
    lam = 2.0 * math.pi * v
    sr = radius * (inner + rng.random(count) * spread)
    return np.column_stack([
        sr * np.cos(phi) * np.cos(lam),
        sr * np.cos(phi) * np.sin(lam),
        sr * np.sin(phi),
    ])


def sample_box(
    rng: np.random.Generator,
    count: int,
    size: Tuple[float, float, float],
    center: Tuple[float, float, float] = (0.0, 0.0, 0.0),
) -> np.ndarray:
    """Uniform points in an axis-aligned box of the given full size."""
    size = np.asarray(size, dtype=float)
    center = np.asarray(center, dtype=float)
    return (rng.random((count, 3)) - 0.5) * size + center


def sample_cylinder(
    rng: np.random.Generator,
    count: int,
    radius_range: Tuple[float, float],
    y_range: Tuple[float, float],
) -> np.ndarray:
    """Uniform-in-radius points in a vertical cylindrical band."""
    r = radius_range[0] + rng.random(count) * (radius_range[1] - radius_range[0])
    theta = rng.random(count) * 2.0 * math.pi
    y = y_range[0] + rng.random(count) * (y_range[1] - y_range[0])
    return np.column_stack([r * np.cos(theta), y, r * np.sin(theta)])


# --------- Generator ---------

class PositionFieldGenerator:
    """
    Deterministic factory for LayerElements.

    A root seed is split per layer name, so each layer gets independent
    streams and regenerating one layer never shifts another layer's anchors.

    Attributes:
        tree_height: Assembled cone height H
        tree_radius: Assembled cone base radius
        scatter_radius: Scattered shell reference radius S
    """

    def __init__(self, tree_height: float, tree_radius: float, scatter_radius: float, seed: Optional[int] = None):
        self.tree_height = tree_height
        self.tree_radius = tree_radius
        self.scatter_radius = scatter_radius
        self._root = np.random.SeedSequence(seed)
        self._generation = {}

    def streams(self, layer: str, n: int):
        """Independent generators for one (re)generation of a layer."""
        gen = self._generation.get(layer, 0)
        self._generation[layer] = gen + 1
        key = [ord(c) for c in layer] + [gen]
        seq = np.random.SeedSequence(entropy=self._root.entropy, spawn_key=tuple(key))
        return [np.random.default_rng(s) for s in seq.spawn(n)]

    def rng_for(self, layer: str) -> np.random.Generator:
        """A single fresh generator for layers that sample elements one at a time."""
        return self.streams(layer, 1)[0]

    def generate(
        self,
        layer: str,
        count: int,
        radial_range: Tuple[float, float] = (0.0, 1.0),
        turns: float = 1.0,
        height_margin: float = 0.0,
        shell_inner: float = 0.5,
        shell_spread: float = 0.5,
        seed_channels: int = 1,
        size_range: Tuple[float, float] = (1.0, 1.0),
        random_orientation: bool = False,
    ) -> LayerElements:
        """
        Generate the element set for one layer.

        Args:
            layer: Layer name (selects the random streams)
            count: Number of elements; zero or less yields an empty set
            radial_range: Cone radius multiplier range (annulus bias)
            turns: Spiral banding multiplier for the cone angle
            height_margin: Shrinks the cone height span by this much
            shell_inner: Inner shell radius as a fraction of scatter_radius
            shell_spread: Shell thickness as a fraction of scatter_radius
            seed_channels: Number of secondary-motion random channels
            size_range: (lo, hi) range of the base size
            random_orientation: Draw base X/Y rotations in [0, pi)

        Returns:
            LayerElements with count rows
        """
        if count <= 0:
            return LayerElements.empty(seed_channels)
        cone_rng, shell_rng, seed_rng, size_rng, rot_rng = self.streams(layer, 5)
        assembled = sample_cone(
            cone_rng, count, self.tree_height, self.tree_radius,
            radial_range=radial_range, turns=turns,
            height_span=self.tree_height - height_margin,
        )
        scattered = sample_shell(shell_rng, count, self.scatter_radius, inner=shell_inner, spread=shell_spread)
        seeds = seed_rng.random((count, seed_channels))
        size_base = size_range[0] + size_rng.random(count) * (size_range[1] - size_range[0])
        base_euler = np.zeros((count, 3))
        if random_orientation:
            base_euler[:, :2] = rot_rng.random((count, 2)) * math.pi
        logger.info(f"Generated {count} elements for layer '{layer}'")
        return LayerElements(
            assembled=assembled,
            scattered=scattered,
            seeds=seeds,
            size_base=size_base,
            base_euler=base_euler,
        )
