import numpy as np
import pytest

from treemorph.gesture_classifier import TreeMode
from treemorph.math_utils import quat_rotate
from treemorph.physics import GroupTransform, InertialRotationController, Orientation, PhysicsState


def test_velocity_stays_bounded_under_large_pushes():
    ctrl = InertialRotationController()
    v = 0.0
    for i in range(500):
        dx = 0.8 if i % 7 else -0.3
        v = ctrl.apply_impulse(v, dx, TreeMode.ASSEMBLED)
        assert -5.0 <= v <= 5.0
    assert v == pytest.approx(5.0)


def test_update_bounded_with_swiping_hand():
    ctrl = InertialRotationController()
    rng = np.random.default_rng(3)
    for _ in range(300):
        state = ctrl.update(rng.uniform(-1, 1, size=2), TreeMode.ASSEMBLED, 1.0 / 60.0)
        assert abs(state.angular_velocity) <= 5.0


def test_glide_decays_geometrically_to_exact_zero():
    ctrl = InertialRotationController()
    v = 5.0
    history = []
    for _ in range(200):
        v = ctrl.apply_impulse(v, 0.0, TreeMode.ASSEMBLED)
        history.append(v)
    assert history[0] == pytest.approx(4.75)
    assert history[1] == pytest.approx(4.75 * 0.95)
    assert history[-1] == 0.0
    first_zero = history.index(0.0)
    assert first_zero < 200
    assert all(h == 0.0 for h in history[first_zero:])


def test_no_impulse_while_scattered():
    ctrl = InertialRotationController()
    assert ctrl.apply_impulse(0.0, 0.5, TreeMode.SCATTERED) == 0.0


def test_tiny_motion_is_not_a_push():
    ctrl = InertialRotationController()
    assert ctrl.apply_impulse(0.0, 0.0005, TreeMode.ASSEMBLED) == 0.0


def test_push_direction_and_yaw_integration():
    ctrl = InertialRotationController()
    ctrl.update(np.array([0.0, 0.0]), TreeMode.ASSEMBLED, 0.1)
    state = ctrl.update(np.array([0.2, 0.0]), TreeMode.ASSEMBLED, 0.1)
    assert state.angular_velocity == pytest.approx(0.2 * 5.0 * 0.95)
    assert state.orientation.yaw == pytest.approx(state.angular_velocity * 0.1)


def test_first_frame_has_no_delta():
    ctrl = InertialRotationController()
    state = ctrl.update(np.array([0.9, 0.0]), TreeMode.ASSEMBLED, 1.0 / 60.0)
    assert state.angular_velocity == 0.0


def test_pitch_follows_hand_height():
    ctrl = InertialRotationController()
    for _ in range(300):
        state = ctrl.update(np.array([0.0, 1.0]), TreeMode.SCATTERED, 1.0 / 60.0)
    assert state.orientation.pitch == pytest.approx(0.3, abs=1e-3)


def test_scale_target_clamped_and_approached():
    ctrl = InertialRotationController()
    ctrl.set_scale_target(3.0)
    assert ctrl.scale_target == 1.5
    prev = ctrl.state.scale
    for _ in range(120):
        state = ctrl.update(np.zeros(2), TreeMode.SCATTERED, 1.0 / 60.0)
        assert prev <= state.scale <= 1.5
        prev = state.scale
    assert state.scale == pytest.approx(1.5, abs=1e-3)


def test_reset_forgets_motion():
    ctrl = InertialRotationController()
    ctrl.update(np.array([0.0, 0.0]), TreeMode.ASSEMBLED, 0.1)
    ctrl.update(np.array([0.5, 0.5]), TreeMode.ASSEMBLED, 0.1)
    ctrl.reset()
    assert ctrl.state.angular_velocity == 0.0
    assert ctrl.state.orientation.yaw == 0.0


def test_group_transform_from_physics():
    state = PhysicsState(orientation=Orientation(yaw=np.pi / 2, pitch=0.0), scale=1.2)
    group = GroupTransform.from_physics(state)
    np.testing.assert_allclose(group.position, [0.0, -2.0, 0.0])
    np.testing.assert_allclose(quat_rotate(group.quaternion, [1.0, 0.0, 0.0]), [0.0, 0.0, -1.0], atol=1e-9)
    assert group.scale == 1.2
