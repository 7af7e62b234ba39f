"""
Math helpers shared by the simulation components.

Scalars and vectors are plain floats / numpy arrays. Quaternions are stored as
(x, y, z, w) numpy arrays and Euler angles use the XYZ order, which is what the
rendering side expects. Most quaternion helpers accept either a single
quaternion of shape (4,) or a batch of shape (n, 4).
"""

import math
from typing import Sequence, Union

import numpy as np


Number = Union[float, np.ndarray]


# --------- Scalar helpers ---------

def clamp(value: float, lo: float, hi: float) -> float:
    return lo if value < lo else hi if value > hi else value


def lerp(a: Number, b: Number, t: Number) -> Number:
    """Linear interpolation, t=0 -> a, t=1 -> b."""
    return a + (b - a) * t


def approach_factor(dt: float, rate: float) -> float:
    """
    Blend factor for a frame-rate independent exponential approach.

    Args:
        dt: Frame time in seconds
        rate: Approach rate (1 / time constant)

    Returns:
        min(1, dt * rate), never negative, so a single step can never overshoot
    """
    return clamp(dt * rate, 0.0, 1.0)


def approach(current: Number, target: Number, dt: float, rate: float) -> Number:
    """
    Move current toward target by one exponential-approach step.

    Args:
        current: Current value (scalar or array)
        target: Target value
        dt: Frame time in seconds
        rate: Approach rate

    Returns:
        The updated value, between current and target inclusive
    """
    return current + (target - current) * approach_factor(dt, rate)


def safe_unit(v: np.ndarray) -> np.ndarray:
    """
    Normalize a vector to unit length, handling zero vectors safely.

    Args:
        v: Input vector (numpy array)

    Returns:
        Unit vector in the same direction, or the original vector if magnitude is zero
    """
    n = np.linalg.norm(v)
    if n == 0:
        return v
    return v / n


# --------- Quaternions ---------

def quat_identity(count: int = 0) -> np.ndarray:
    if count <= 0:
        return np.array([0.0, 0.0, 0.0, 1.0])
    q = np.zeros((count, 4))
    q[:, 3] = 1.0
    return q


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b (apply b first, then a). Broadcasts over batches."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    ax, ay, az, aw = a[..., 0], a[..., 1], a[..., 2], a[..., 3]
    bx, by, bz, bw = b[..., 0], b[..., 1], b[..., 2], b[..., 3]
    return np.stack([
        ax * bw + aw * bx + ay * bz - az * by,
        ay * bw + aw * by + az * bx - ax * bz,
        az * bw + aw * bz + ax * by - ay * bx,
        aw * bw - ax * bx - ay * by - az * bz,
    ], axis=-1)


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    """Inverse of a unit quaternion."""
    q = np.array(q, dtype=float)
    q[..., :3] *= -1.0
    return q


def quat_normalize(q: np.ndarray) -> np.ndarray:
    q = np.asarray(q, dtype=float)
    n = np.linalg.norm(q, axis=-1, keepdims=True)
    n = np.where(n == 0, 1.0, n)
    return q / n


def quat_rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Rotate vector(s) v by quaternion(s) q.

    Args:
        q: Quaternion (4,) or (n, 4)
        v: Vector (3,) or (n, 3)

    Returns:
        Rotated vector(s), broadcast shape of the inputs
    """
    q = np.asarray(q, dtype=float)
    v = np.asarray(v, dtype=float)
    u = q[..., :3]
    w = q[..., 3:4]
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quat_from_euler(euler: np.ndarray) -> np.ndarray:
    """
    Convert XYZ-order Euler angles to quaternions.

    Args:
        euler: Angles in radians, shape (3,) or (n, 3)

    Returns:
        Quaternions, shape (4,) or (n, 4)
    """
    e = np.asarray(euler, dtype=float)
    c1, c2, c3 = np.cos(e[..., 0] / 2), np.cos(e[..., 1] / 2), np.cos(e[..., 2] / 2)
    s1, s2, s3 = np.sin(e[..., 0] / 2), np.sin(e[..., 1] / 2), np.sin(e[..., 2] / 2)
    return np.stack([
        s1 * c2 * c3 + c1 * s2 * s3,
        c1 * s2 * c3 - s1 * c2 * s3,
        c1 * c2 * s3 + s1 * s2 * c3,
        c1 * c2 * c3 - s1 * s2 * s3,
    ], axis=-1)


def quat_from_matrix(m: np.ndarray) -> np.ndarray:
    """Quaternion from a pure 3x3 rotation matrix."""
    m11, m12, m13 = m[0]
    m21, m22, m23 = m[1]
    m31, m32, m33 = m[2]
    trace = m11 + m22 + m33
    if trace > 0:
        s = 0.5 / math.sqrt(trace + 1.0)
        return np.array([(m32 - m23) * s, (m13 - m31) * s, (m21 - m12) * s, 0.25 / s])
    if m11 > m22 and m11 > m33:
        s = 2.0 * math.sqrt(1.0 + m11 - m22 - m33)
        return np.array([0.25 * s, (m12 + m21) / s, (m13 + m31) / s, (m32 - m23) / s])
    if m22 > m33:
        s = 2.0 * math.sqrt(1.0 + m22 - m11 - m33)
        return np.array([(m12 + m21) / s, 0.25 * s, (m23 + m32) / s, (m13 - m31) / s])
    s = 2.0 * math.sqrt(1.0 + m33 - m11 - m22)
    return np.array([(m13 + m31) / s, (m23 + m32) / s, 0.25 * s, (m21 - m12) / s])


def look_at_quaternion(direction: Sequence[float], up: Sequence[float] = (0.0, 1.0, 0.0)) -> np.ndarray:
    """
    Orientation whose local +Z axis points along direction.

    Used to turn panels so their face points away from the trunk axis.
    A direction parallel to up is nudged so the basis stays well defined.
    """
    z = safe_unit(np.asarray(direction, dtype=float))
    if not np.any(z):
        z = np.array([0.0, 0.0, 1.0])
    up = np.asarray(up, dtype=float)
    x = np.cross(up, z)
    if np.linalg.norm(x) < 1e-9:
        z = safe_unit(z + np.array([0.0001, 0.0, 0.0001]))
        x = np.cross(up, z)
    x = safe_unit(x)
    y = np.cross(z, x)
    return quat_from_matrix(np.column_stack([x, y, z]))


def quat_slerp(a: np.ndarray, b: np.ndarray, t: Number) -> np.ndarray:
    """
    Spherical interpolation between unit quaternions, batched.

    Takes the short path and falls back to a normalized lerp when the
    quaternions are nearly parallel.
    """
    a = np.asarray(a, dtype=float)
    b = np.array(b, dtype=float)
    t = np.asarray(t, dtype=float)
    if t.ndim == a.ndim - 1 and a.ndim > 1:
        t = t[..., None]
    dot = np.sum(a * b, axis=-1, keepdims=True)
    b = np.where(dot < 0, -b, b)
    dot = np.abs(dot)

    near = dot > 0.9995
    theta = np.arccos(np.clip(dot, -1.0, 1.0))
    sin_theta = np.sin(theta)
    safe_sin = np.where(near, 1.0, sin_theta)
    wa = np.where(near, 1.0 - t, np.sin((1.0 - t) * theta) / safe_sin)
    wb = np.where(near, t, np.sin(t * theta) / safe_sin)
    return quat_normalize(wa * a + wb * b)
