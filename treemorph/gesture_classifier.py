"""
Gesture Classifier - hand openness and position from landmark samples

Turns the latest hand-landmark sample (or its absence) into:
- openness: mean wrist-to-fingertip distance in normalized landmark units
- mode: ASSEMBLED (closed hand) or SCATTERED (open hand)
- hand_position: wrist/knuckle midpoint mapped to [-1, 1], mirrored on X

Losing the hand is not an error. Openness creeps back toward "open" and the
hand position decays toward the origin, so the scene always settles into
SCATTERED with no rotation input rather than freezing in whatever state it was.

Coordinate conventions:
- Landmarks are normalized in [0..1] for x/y (relative to image width/height).
- Larger x moves right, larger y moves down (image coordinates).
- z is relative depth from MediaPipe (not true metric depth).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from .config import OPENNESS_THRESHOLD

logger = logging.getLogger(__name__)

# MediaPipe hand landmark indices
WRIST = 0
MIDDLE_MCP = 9
FINGERTIPS = (8, 12, 16, 20)  # index, middle, ring, pinky
NUM_LANDMARKS = 21


class TreeMode(Enum):
    """Discrete arrangement requested by the hand. The value is the morph target."""
    SCATTERED = 0
    ASSEMBLED = 1


@dataclass
class LandmarkSample:
    """
    One frame of hand landmarks from the tracker.

    Attributes:
        points: (21, 3) array of normalized (x, y, z) landmark positions
    """
    points: np.ndarray

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=float)
        if self.points.ndim != 2 or self.points.shape[0] < NUM_LANDMARKS or self.points.shape[1] < 3:
            raise ValueError(f"Expected at least {NUM_LANDMARKS}x3 landmarks, got {self.points.shape}")
        self.points = self.points[:NUM_LANDMARKS, :3]

    @classmethod
    def from_landmarks(cls, landmarks) -> "LandmarkSample":
        """
        Build a sample from MediaPipe landmarks or (x, y, z) tuples.

        Args:
            landmarks: Sequence of objects with x/y/z attributes, or of 3-tuples

        Returns:
            LandmarkSample holding a copy of the coordinates
        """
        pts = []
        for p in landmarks:
            if hasattr(p, "x"):
                pts.append((p.x, p.y, p.z))
            else:
                pts.append((p[0], p[1], p[2]))
        return cls(np.array(pts, dtype=float))

    @property
    def wrist(self) -> np.ndarray:
        return self.points[WRIST]

    @property
    def middle_knuckle(self) -> np.ndarray:
        return self.points[MIDDLE_MCP]

    @property
    def fingertips(self) -> np.ndarray:
        return self.points[list(FINGERTIPS)]


@dataclass
class GestureState:
    """Per-frame output of the classifier. Read-only downstream."""
    openness: float = 1.0
    mode: TreeMode = TreeMode.SCATTERED
    hand_position: np.ndarray = field(default_factory=lambda: np.zeros(2))
    hand_present: bool = False


class LandmarkSmoother:
    """
    Applies exponential moving average (EMA) smoothing to hand landmarks.

    Reduces jitter in landmark positions across frames. State is dropped when
    the hand disappears so a re-entering hand does not glide in from its old spot.

    Attributes:
        alpha: Smoothing factor (0.0 = no update, 1.0 = no smoothing)
    """

    def __init__(self, alpha: float = 0.5):
        self.alpha = max(0.0, min(1.0, alpha))
        self.prev: Optional[np.ndarray] = None

    def smooth(self, sample: LandmarkSample) -> LandmarkSample:
        if self.prev is None:
            self.prev = sample.points.copy()
            return sample
        sm = self.alpha * sample.points + (1.0 - self.alpha) * self.prev
        self.prev = sm
        return LandmarkSample(sm.copy())

    def reset(self):
        self.prev = None


def hand_openness(sample: LandmarkSample) -> float:
    """
    Mean 3D distance from the wrist to the four fingertips.

    Closed fist lands around 0.1 - 0.15, open hand around 0.3 - 0.5
    (depending on hand size and distance from the camera).
    """
    return float(np.mean(np.linalg.norm(sample.fingertips - sample.wrist, axis=1)))


def hand_center(sample: LandmarkSample) -> np.ndarray:
    """
    Hand position in [-1, 1]^2 from the wrist / middle-knuckle midpoint.

    X is inverted because the camera image is mirrored for the viewer.
    """
    center = (sample.wrist[:2] + sample.middle_knuckle[:2]) / 2.0
    pos = np.array([(center[0] - 0.5) * -2.0, (center[1] - 0.5) * 2.0])
    return np.clip(pos, -1.0, 1.0)


class GestureClassifier:
    """
    Converts the latest landmark sample into a GestureState.

    The classifier is the only writer of GestureState. With hysteresis=0 the
    mode is a pure threshold of openness; a positive band keeps the current mode
    until openness leaves [threshold - band/2, threshold + band/2).
    """
    # Openness increment per frame while no hand is visible
    ABSENT_OPENNESS_STEP = 0.05
    # Openness ceiling ("fully open")
    MAX_OPENNESS = 1.0
    # Per-frame decay of the hand position toward the origin while absent
    HAND_POSITION_DECAY = 0.95

    def __init__(
        self,
        threshold: float = OPENNESS_THRESHOLD,
        hysteresis: float = 0.0,
        absent_step: float = ABSENT_OPENNESS_STEP,
        position_decay: float = HAND_POSITION_DECAY,
        smoother_alpha: Optional[float] = None,
        initial_openness: float = MAX_OPENNESS,
    ):
        """
        Args:
            threshold: Openness below which the hand counts as closed
            hysteresis: Width of the dead band around threshold (0 disables it)
            absent_step: Openness increment per frame while the hand is missing
            position_decay: Per-frame multiplier on hand_position while missing
            smoother_alpha: Optional EMA factor for incoming landmarks
            initial_openness: Starting openness (default: fully open)
        """
        self.threshold = threshold
        self.hysteresis = max(0.0, hysteresis)
        self.absent_step = absent_step
        self.position_decay = position_decay
        self.smoother = LandmarkSmoother(smoother_alpha) if smoother_alpha is not None else None
        self._initial_openness = initial_openness
        self.state = GestureState(openness=initial_openness, mode=self.classify(initial_openness))

    def classify(self, openness: float, previous: Optional[TreeMode] = None) -> TreeMode:
        """
        Map openness to a mode.

        Args:
            openness: Current openness value
            previous: Mode of the previous frame, only consulted with hysteresis

        Returns:
            ASSEMBLED if the hand is closed, SCATTERED otherwise
        """
        if self.hysteresis > 0.0 and previous is not None:
            half = self.hysteresis / 2.0
            if previous is TreeMode.ASSEMBLED:
                return TreeMode.ASSEMBLED if openness < self.threshold + half else TreeMode.SCATTERED
            return TreeMode.ASSEMBLED if openness < self.threshold - half else TreeMode.SCATTERED
        return TreeMode.ASSEMBLED if openness < self.threshold else TreeMode.SCATTERED

    def update(self, sample: Optional[LandmarkSample]) -> GestureState:
        """
        Advance one frame.

        Args:
            sample: Latest landmark sample, or None when no hand was detected

        Returns:
            The new GestureState (a fresh object each frame)
        """
        prev = self.state
        if sample is not None:
            if self.smoother is not None:
                sample = self.smoother.smooth(sample)
            openness = hand_openness(sample)
            position = hand_center(sample)
            present = True
        else:
            if self.smoother is not None:
                self.smoother.reset()
            openness = min(prev.openness + self.absent_step, self.MAX_OPENNESS)
            position = prev.hand_position * self.position_decay
            present = False

        mode = self.classify(openness, prev.mode)
        if mode is not prev.mode:
            logger.info(f"Gesture mode {prev.mode.name} -> {mode.name} (openness={openness:.3f})")
        self.state = GestureState(openness=openness, mode=mode, hand_position=position, hand_present=present)
        return self.state

    def reset(self, openness: Optional[float] = None):
        """Forget all history, e.g. on a full simulation restart."""
        value = self._initial_openness if openness is None else openness
        if self.smoother is not None:
            self.smoother.reset()
        self.state = GestureState(openness=value, mode=self.classify(value))
