"""
Morph State Controller - the shared scattered/assembled blend value.

Every layer reads the same MorphState.value each frame; nothing else writes it.
"""

from dataclasses import dataclass

from .gesture_classifier import TreeMode
from .math_utils import approach, clamp


@dataclass
class MorphState:
    value: float = 0.0   # 0 = scattered, 1 = assembled
    target: float = 0.0


class MorphStateController:
    """
    First-order low-pass of the mode toward 0/1 with time constant 1/RATE.

    The value approaches its target monotonically and never overshoots, but
    it never lands exactly on it either; use is_settled() for convergence checks.
    """
    RATE = 2.0

    def __init__(self, rate: float = RATE, initial: float = 0.0):
        self.rate = rate
        initial = clamp(initial, 0.0, 1.0)
        self.state = MorphState(value=initial, target=initial)

    def update(self, mode: TreeMode, dt: float) -> MorphState:
        target = float(mode.value)
        value = clamp(approach(self.state.value, target, dt, self.rate), 0.0, 1.0)
        self.state = MorphState(value=value, target=target)
        return self.state

    def is_settled(self, epsilon: float = 1e-3) -> bool:
        return abs(self.state.value - self.state.target) <= epsilon

    def reset(self, value: float = 0.0):
        value = clamp(value, 0.0, 1.0)
        self.state = MorphState(value=value, target=value)
