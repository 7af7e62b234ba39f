"""
Hand Tracking Adapter - webcam frames to LandmarkSample

Wraps MediaPipe Hands so the rest of the package only ever sees
LandmarkSample | None. Frames must be passed un-mirrored: the classifier
mirrors the hand X position itself, so flip only the image you display.
"""

import logging
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from .gesture_classifier import LandmarkSample

logger = logging.getLogger(__name__)


class HandTracker:
    """
    Single-hand MediaPipe tracker.

    Attributes:
        last_landmarks: Raw MediaPipe landmarks of the last detected hand (for drawing)
    """

    def __init__(self, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5):
        self._mp_hands = mp.solutions.hands
        self._hands = self._mp_hands.Hands(
            static_image_mode=False,
            max_num_hands=1,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self._mp_draw = mp.solutions.drawing_utils
        self.last_landmarks = None

    def process(self, frame_bgr: np.ndarray) -> Optional[LandmarkSample]:
        """
        Detect a hand in a BGR frame.

        Args:
            frame_bgr: Camera frame as returned by cv2.VideoCapture.read()

        Returns:
            LandmarkSample of the first hand, or None if no hand was found
        """
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        result = self._hands.process(rgb)
        if not result.multi_hand_landmarks:
            self.last_landmarks = None
            return None
        hand = result.multi_hand_landmarks[0]
        self.last_landmarks = hand
        return LandmarkSample.from_landmarks(hand.landmark)

    def draw(self, frame_bgr: np.ndarray):
        """Overlay the last detected hand skeleton onto frame_bgr in place."""
        if self.last_landmarks is not None:
            self._mp_draw.draw_landmarks(frame_bgr, self.last_landmarks, self._mp_hands.HAND_CONNECTIONS)

    def close(self):
        self._hands.close()


def open_camera(index: int = 0) -> Optional[cv2.VideoCapture]:
    """Open a webcam, or return None (with an error logged) if it is unavailable."""
    cap = cv2.VideoCapture(index)
    if not cap.isOpened():
        logger.error(f"Failed to open camera {index}")
        return None
    return cap
