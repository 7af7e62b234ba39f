import pytest

from treemorph.gesture_classifier import TreeMode
from treemorph.morph import MorphStateController


def test_monotonic_convergence_to_assembled():
    ctrl = MorphStateController()
    prev = ctrl.state.value
    for _ in range(600):
        state = ctrl.update(TreeMode.ASSEMBLED, 1.0 / 60.0)
        assert state.target == 1.0
        assert prev <= state.value <= 1.0
        prev = state.value
    assert state.value > 0.999
    assert ctrl.is_settled()


def test_never_reaches_target_exactly_in_one_small_step():
    ctrl = MorphStateController()
    ctrl.update(TreeMode.ASSEMBLED, 1.0 / 60.0)
    assert 0.0 < ctrl.state.value < 1.0
    assert not ctrl.is_settled()


def test_large_dt_does_not_overshoot():
    ctrl = MorphStateController()
    state = ctrl.update(TreeMode.ASSEMBLED, 5.0)
    assert state.value == 1.0


def test_scatter_decreases_monotonically():
    ctrl = MorphStateController(initial=1.0)
    prev = 1.0
    for _ in range(100):
        state = ctrl.update(TreeMode.SCATTERED, 1.0 / 30.0)
        assert 0.0 <= state.value <= prev
        prev = state.value


def test_reset_and_initial_clamp():
    ctrl = MorphStateController(initial=4.0)
    assert ctrl.state.value == 1.0
    ctrl.reset()
    assert ctrl.state.value == 0.0
    assert ctrl.state.target == pytest.approx(0.0)
