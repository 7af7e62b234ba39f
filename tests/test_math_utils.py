import numpy as np
import pytest

from treemorph.math_utils import (
    approach,
    clamp,
    look_at_quaternion,
    quat_conjugate,
    quat_from_euler,
    quat_identity,
    quat_multiply,
    quat_rotate,
    quat_slerp,
    safe_unit,
)


def test_clamp_and_approach():
    assert clamp(2.0, 0.0, 1.0) == 1.0
    assert clamp(-2.0, 0.0, 1.0) == 0.0
    assert approach(0.0, 1.0, 0.1, 2.0) == pytest.approx(0.2)
    assert approach(0.0, 1.0, 10.0, 2.0) == 1.0
    assert approach(0.5, 1.0, -1.0, 2.0) == 0.5


def test_safe_unit_handles_zero():
    np.testing.assert_array_equal(safe_unit(np.zeros(3)), np.zeros(3))
    np.testing.assert_allclose(safe_unit(np.array([3.0, 0.0, 4.0])), [0.6, 0.0, 0.8])


def test_identity_batches():
    assert quat_identity().shape == (4,)
    q = quat_identity(5)
    assert q.shape == (5, 4)
    np.testing.assert_array_equal(q[:, 3], np.ones(5))


def test_euler_xyz_order():
    # qx * qy: (1, 0, 0) -> Y90 -> (0, 0, -1) -> X90 -> (0, 1, 0)
    q = quat_from_euler([np.pi / 2, np.pi / 2, 0.0])
    np.testing.assert_allclose(quat_rotate(q, [1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-9)


def test_batched_rotation_matches_single():
    eulers = np.array([[0.1, 0.2, 0.3], [1.0, -0.5, 2.0]])
    qs = quat_from_euler(eulers)
    v = np.array([[1.0, 2.0, 3.0], [-1.0, 0.5, 0.0]])
    batched = quat_rotate(qs, v)
    for i in range(2):
        np.testing.assert_allclose(batched[i], quat_rotate(qs[i], v[i]))


def test_conjugate_inverts():
    q = quat_from_euler([0.3, -1.2, 0.7])
    np.testing.assert_allclose(quat_multiply(quat_conjugate(q), q), quat_identity(), atol=1e-12)
    v = np.array([0.2, 0.4, -1.0])
    np.testing.assert_allclose(quat_rotate(quat_conjugate(q), quat_rotate(q, v)), v, atol=1e-12)


def test_multiply_composes_rotations():
    a = quat_from_euler([0.0, np.pi / 2, 0.0])
    b = quat_from_euler([np.pi / 2, 0.0, 0.0])
    v = np.array([0.0, 1.0, 0.0])
    np.testing.assert_allclose(quat_rotate(quat_multiply(a, b), v), quat_rotate(a, quat_rotate(b, v)), atol=1e-12)


@pytest.mark.parametrize("direction", [(1.0, 0.0, 0.0), (0.3, -2.0, 1.0), (0.0, 1.0, 0.0)])
def test_look_at_points_plus_z_along_direction(direction):
    q = look_at_quaternion(direction)
    assert np.linalg.norm(q) == pytest.approx(1.0)
    forward = quat_rotate(q, [0.0, 0.0, 1.0])
    np.testing.assert_allclose(forward, safe_unit(np.asarray(direction)), atol=1e-3)


def test_slerp_endpoints_and_midpoint():
    a = quat_identity()
    b = quat_from_euler([0.0, np.pi / 2, 0.0])
    np.testing.assert_allclose(quat_slerp(a, b, 0.0), a, atol=1e-12)
    np.testing.assert_allclose(quat_slerp(a, b, 1.0), b, atol=1e-12)
    mid = quat_slerp(a, b, 0.5)
    np.testing.assert_allclose(mid, quat_from_euler([0.0, np.pi / 4, 0.0]), atol=1e-12)


def test_slerp_takes_short_path():
    b = quat_from_euler([0.0, 0.4, 0.0])
    mid = quat_slerp(quat_identity(), -b, 0.5)
    np.testing.assert_allclose(np.abs(mid), np.abs(quat_from_euler([0.0, 0.2, 0.0])), atol=1e-12)


def test_slerp_batched():
    a = quat_identity(3)
    b = quat_from_euler(np.array([[0.0, 0.2, 0.0], [0.0, 0.4, 0.0], [0.0, 0.6, 0.0]]))
    out = quat_slerp(a, b, np.array([0.5, 0.5, 0.5]))
    np.testing.assert_allclose(out[1], quat_from_euler([0.0, 0.2, 0.0]), atol=1e-12)
