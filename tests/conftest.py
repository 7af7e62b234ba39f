import time

import numpy as np
import pytest

from treemorph.config import SceneConfig, OrnamentLayerConfig
from treemorph.fields import PositionFieldGenerator
from treemorph.gesture_classifier import LandmarkSample, NUM_LANDMARKS, WRIST, MIDDLE_MCP, FINGERTIPS
from treemorph.layers import CameraPose, FrameSnapshot
from treemorph.math_utils import quat_identity
from treemorph.physics import GroupTransform


def _sample(spread: float, center=(0.5, 0.5)) -> LandmarkSample:
    """
    Synthetic hand whose mean wrist-to-fingertip distance is exactly `spread`
    (in the plane) and whose wrist/knuckle midpoint sits at `center`.
    """
    cx, cy = center
    pts = np.zeros((NUM_LANDMARKS, 3))
    pts[:, 0] = cx
    pts[:, 1] = cy
    pts[WRIST] = (cx, cy, 0.0)
    pts[MIDDLE_MCP] = (cx, cy, 0.0)
    offsets = [(1, 0), (0, 1), (-1, 0), (0, -1)]
    for idx, (ox, oy) in zip(FINGERTIPS, offsets):
        pts[idx] = (cx + ox * spread, cy + oy * spread, 0.0)
    return LandmarkSample(pts)


@pytest.fixture
def make_sample():
    return _sample


@pytest.fixture
def closed_hand():
    return _sample(0.1)


@pytest.fixture
def open_hand():
    return _sample(0.4)


@pytest.fixture
def generator():
    return PositionFieldGenerator(tree_height=12.0, tree_radius=5.0, scatter_radius=15.0, seed=1234)


def _snapshot(morph: float = 0.0, t: float = 0.0, angular_velocity: float = 0.0, dt: float = 1.0 / 60.0,
              group: GroupTransform = None, camera: CameraPose = None) -> FrameSnapshot:
    if group is None:
        group = GroupTransform(position=np.array([0.0, -2.0, 0.0]), quaternion=quat_identity(), scale=1.0)
    return FrameSnapshot(
        time=t,
        dt=dt,
        morph=morph,
        angular_velocity=angular_velocity,
        group=group,
        camera=camera or CameraPose(),
    )


@pytest.fixture
def make_snapshot():
    return _snapshot


@pytest.fixture
def small_config():
    """A scene small enough to tick quickly in tests."""
    return SceneConfig(
        foliage_count=300,
        snow_count=40,
        ornaments=[
            OrnamentLayerConfig("heavy", 6, shape="cube", color_key="heavy", scale_base=0.35),
            OrnamentLayerConfig("light", 8, shape="sphere", color_key="light", scale_base=0.2),
        ],
        seed=7,
    )


@pytest.fixture
def wait_for():
    """Poll a predicate (e.g. a background image load) with a timeout."""
    def _wait(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait
