"""
Configuration constants and scene configuration.

All tunable extents, counts, rates and per-layer motion parameters live here so
they can be adjusted in one place without touching animation logic. Values
outside their valid range are clamped (with a warning), never rejected.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tree geometry
# ---------------------------------------------------------------------------
TREE_HEIGHT = 12.0
TREE_RADIUS = 5.0
SCATTER_RADIUS = 15.0

# Minimum value accepted for any spatial extent
MIN_EXTENT = 1e-3

# ---------------------------------------------------------------------------
# Element counts
# ---------------------------------------------------------------------------
FOLIAGE_COUNT = 20000
SNOW_COUNT = 3000

# ---------------------------------------------------------------------------
# Colors (opaque to the simulation, passed through to rendering)
# ---------------------------------------------------------------------------
DEFAULT_COLORS = {
    "foliage": "#0f5c2e",      # deep emerald
    "heavy": "#8a1c1c",        # burgundy gift boxes
    "light": "#ffd700",        # gold balls
    "extra_light": "#fff5cc",  # warm tiny lights
}

# ---------------------------------------------------------------------------
# Live scale targets (slider ranges)
# ---------------------------------------------------------------------------
TREE_SCALE_RANGE = (0.5, 1.5)
PHOTO_SCALE_RANGE = (0.5, 2.0)

# ---------------------------------------------------------------------------
# Scene placement
# ---------------------------------------------------------------------------
GROUP_OFFSET = (0.0, -2.0, 0.0)
CAMERA_POSITION = (0.0, 0.0, 30.0)
FOCUS_DISTANCE = 10.0

# ---------------------------------------------------------------------------
# Gesture classification
# ---------------------------------------------------------------------------
# Mean wrist-to-fingertip distance below which the hand counts as closed.
OPENNESS_THRESHOLD = 0.2


def _clamped(name: str, value: float, lo: Optional[float], hi: Optional[float]) -> float:
    """Clamp value into [lo, hi], logging when it had to move."""
    out = value
    if lo is not None and out < lo:
        out = lo
    if hi is not None and out > hi:
        out = hi
    if out != value:
        logger.warning(f"Config value {name}={value} out of range, clamped to {out}")
    return out


# --------- Per-layer motion parameters ---------

@dataclass
class FoliageParams:
    breathe_amplitude: float = 0.1
    breathe_frequency: float = 2.0
    drift_amplitude: float = 2.0
    drift_frequency: float = 0.5
    wind_gain: float = 0.1
    wind_frequency: float = 5.0
    wind_rate: float = 0.1      # per-frame approach of the wind filter

    def __post_init__(self):
        self.wind_rate = _clamped("foliage.wind_rate", self.wind_rate, 0.0, 1.0)


@dataclass
class OrnamentParams:
    float_amplitude: float = 0.2
    float_frequency: float = 1.5
    spin_rates: Tuple[float, float, float] = (0.5, 0.3, 0.2)
    pulse_amount: float = 0.2
    pulse_frequency: float = 3.0


@dataclass
class StarParams:
    spin_rate: float = 1.0
    wobble_amplitude: float = 0.1
    wobble_frequency: float = 0.5
    pulse_amount: float = 0.15
    pulse_frequency: float = 3.0
    height_offset: float = 0.8


@dataclass
class SnowParams:
    fall_speed: float = 2.0
    wrap_floor: float = -10.0
    wrap_height: float = 40.0
    wind_gain: float = 10.0
    wind_rate: float = 0.05
    swirl: float = 0.01
    centrifugal: float = 0.5
    turbulence: float = 0.5

    def __post_init__(self):
        self.wind_rate = _clamped("snow.wind_rate", self.wind_rate, 0.0, 1.0)
        self.wrap_height = _clamped("snow.wrap_height", self.wrap_height, MIN_EXTENT, None)


@dataclass
class PhotoParams:
    float_frequencies: Tuple[float, float, float] = (0.5, 0.3, 0.2)
    sway_amplitude: float = 0.05
    sway_frequency: float = 2.0
    hover_lift: float = 2.0
    hover_scale: float = 1.2
    normal_rate: float = 0.05   # per-frame convergence while not focused
    focus_rate: float = 0.2     # per-frame convergence while focused
    scale_rate: float = 0.1
    radius_offset: float = 1.2

    def __post_init__(self):
        for name in ("normal_rate", "focus_rate", "scale_rate"):
            setattr(self, name, _clamped(f"photo.{name}", getattr(self, name), 0.0, 1.0))


@dataclass
class OrnamentLayerConfig:
    """One decorative instance layer (cubes or spheres sharing a color slot)."""
    name: str
    count: int
    shape: str = "sphere"
    color_key: str = "light"
    scale_base: float = 0.2

    def __post_init__(self):
        self.count = int(_clamped(f"{self.name}.count", self.count, 0, None))
        self.scale_base = _clamped(f"{self.name}.scale_base", self.scale_base, 0.0, None)


def _default_ornaments() -> List[OrnamentLayerConfig]:
    return [
        OrnamentLayerConfig("heavy", 150, shape="cube", color_key="heavy", scale_base=0.35),
        OrnamentLayerConfig("light", 250, shape="sphere", color_key="light", scale_base=0.2),
        OrnamentLayerConfig("extra_light", 300, shape="sphere", color_key="extra_light", scale_base=0.1),
    ]


# --------- Scene configuration ---------

@dataclass
class SceneConfig:
    """
    Everything the simulation reads at construction time.

    Only tree_scale, photo_scale, colors and layer counts may change during a
    session, and those go through Simulation events rather than this object.
    """
    tree_height: float = TREE_HEIGHT
    tree_radius: float = TREE_RADIUS
    scatter_radius: float = SCATTER_RADIUS
    foliage_count: int = FOLIAGE_COUNT
    snow_count: int = SNOW_COUNT
    ornaments: List[OrnamentLayerConfig] = field(default_factory=_default_ornaments)
    colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLORS))
    tree_scale: float = 1.0
    photo_scale: float = 1.0
    openness_threshold: float = OPENNESS_THRESHOLD
    hysteresis: float = 0.0
    seed: Optional[int] = None
    group_offset: Tuple[float, float, float] = GROUP_OFFSET
    camera_position: Tuple[float, float, float] = CAMERA_POSITION
    focus_distance: float = FOCUS_DISTANCE
    foliage: FoliageParams = field(default_factory=FoliageParams)
    ornament: OrnamentParams = field(default_factory=OrnamentParams)
    star: StarParams = field(default_factory=StarParams)
    snow: SnowParams = field(default_factory=SnowParams)
    photo: PhotoParams = field(default_factory=PhotoParams)

    def __post_init__(self):
        self.tree_height = _clamped("tree_height", self.tree_height, MIN_EXTENT, None)
        self.tree_radius = _clamped("tree_radius", self.tree_radius, MIN_EXTENT, None)
        self.scatter_radius = _clamped("scatter_radius", self.scatter_radius, MIN_EXTENT, None)
        self.foliage_count = int(_clamped("foliage_count", self.foliage_count, 0, None))
        self.snow_count = int(_clamped("snow_count", self.snow_count, 0, None))
        self.tree_scale = clamp_tree_scale(self.tree_scale)
        self.photo_scale = clamp_photo_scale(self.photo_scale)
        self.openness_threshold = _clamped("openness_threshold", self.openness_threshold, 0.0, None)
        self.hysteresis = _clamped("hysteresis", self.hysteresis, 0.0, None)
        self.focus_distance = _clamped("focus_distance", self.focus_distance, MIN_EXTENT, None)
        self.group_offset = tuple(float(v) for v in self.group_offset)
        self.camera_position = tuple(float(v) for v in self.camera_position)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SceneConfig":
        """
        Build a config from plain JSON-style data.

        Nested parameter blocks are dicts; unknown keys are ignored with a warning.
        """
        nested = {
            "foliage": FoliageParams,
            "ornament": OrnamentParams,
            "star": StarParams,
            "snow": SnowParams,
            "photo": PhotoParams,
        }
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            if key in nested and isinstance(value, dict):
                kwargs[key] = _build_params(nested[key], value, key)
            elif key == "ornaments":
                kwargs[key] = [OrnamentLayerConfig(**item) for item in value]
            elif key == "colors":
                colors = dict(DEFAULT_COLORS)
                colors.update(value)
                kwargs[key] = colors
            else:
                kwargs[key] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _build_params(cls, values: Dict[str, Any], prefix: str):
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {prefix}.{key}")
            continue
        kwargs[key] = tuple(value) if isinstance(value, list) else value
    return cls(**kwargs)


def clamp_tree_scale(value: float) -> float:
    return _clamped("tree_scale", float(value), *TREE_SCALE_RANGE)


def clamp_photo_scale(value: float) -> float:
    return _clamped("photo_scale", float(value), *PHOTO_SCALE_RANGE)


def load_config(path: str) -> SceneConfig:
    """
    Load a SceneConfig from a JSON file.

    Args:
        path: Path to a JSON object with SceneConfig keys

    Returns:
        The parsed (and clamped) configuration
    """
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    logger.info(f"Loaded scene config from {path}")
    return SceneConfig.from_dict(data)
