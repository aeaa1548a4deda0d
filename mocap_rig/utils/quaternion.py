"""
Quaternion operations for joint rotations.

Quaternions are represented as (w, x, y, z) where w is the scalar part
and (x, y, z) is the vector part. This follows the convention:
    q = w + xi + yj + zk

All operations support batched inputs with shape (..., 4).
"""

from typing import Union

import torch
import torch.nn.functional as F

from ..core.constants import DEFAULT_EPS_NORM, DEFAULT_SLERP_EPS


def normalize_quaternion(q: torch.Tensor, eps: float = DEFAULT_EPS_NORM) -> torch.Tensor:
    """
    Normalize quaternion to unit length.

    Args:
        q: Quaternion tensor of shape (..., 4) as [w, x, y, z]
        eps: Small constant for numerical stability

    Returns:
        Normalized quaternion of shape (..., 4)
    """
    return F.normalize(q, p=2, dim=-1, eps=eps)


def identity_quaternion(
    *batch_shape: int,
    device: torch.device = None,
    dtype: torch.dtype = torch.float32
) -> torch.Tensor:
    """
    Create identity quaternions (no rotation).

    Args:
        batch_shape: Leading dimensions, e.g. identity_quaternion(5) -> (5, 4)
        device: Torch device
        dtype: Torch dtype

    Returns:
        Identity quaternions of shape (*batch_shape, 4)
    """
    q = torch.zeros(*batch_shape, 4, device=device, dtype=dtype)
    q[..., 0] = 1.0
    return q


def quaternion_conjugate(q: torch.Tensor) -> torch.Tensor:
    """
    Compute quaternion conjugate: q* = w - xi - yj - zk

    For unit quaternions the conjugate is the inverse rotation.
    """
    return torch.cat([q[..., :1], -q[..., 1:]], dim=-1)


def quaternion_multiply(q1: torch.Tensor, q2: torch.Tensor) -> torch.Tensor:
    """
    Compute the Hamilton product q1 * q2 (apply q2 first, then q1).

    Args:
        q1: First quaternion of shape (..., 4) as [w, x, y, z]
        q2: Second quaternion of shape (..., 4) as [w, x, y, z]

    Returns:
        Product quaternion of shape (..., 4)
    """
    w1, x1, y1, z1 = q1.unbind(dim=-1)
    w2, x2, y2, z2 = q2.unbind(dim=-1)

    w = w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2
    x = w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2
    y = w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2
    z = w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2

    return torch.stack([w, x, y, z], dim=-1)


def quaternion_to_matrix(q: torch.Tensor) -> torch.Tensor:
    """
    Convert unit quaternion to 3x3 rotation matrix.

    Args:
        q: Quaternion of shape (..., 4) as [w, x, y, z]; normalized first

    Returns:
        Rotation matrix of shape (..., 3, 3)
    """
    q = normalize_quaternion(q)
    w, x, y, z = q.unbind(dim=-1)

    r00 = 1 - 2 * (y * y + z * z)
    r01 = 2 * (x * y - z * w)
    r02 = 2 * (x * z + y * w)

    r10 = 2 * (x * y + z * w)
    r11 = 1 - 2 * (x * x + z * z)
    r12 = 2 * (y * z - x * w)

    r20 = 2 * (x * z - y * w)
    r21 = 2 * (y * z + x * w)
    r22 = 1 - 2 * (x * x + y * y)

    return torch.stack([
        torch.stack([r00, r01, r02], dim=-1),
        torch.stack([r10, r11, r12], dim=-1),
        torch.stack([r20, r21, r22], dim=-1),
    ], dim=-2)


def matrix_to_quaternion(R: torch.Tensor) -> torch.Tensor:
    """
    Convert 3x3 rotation matrix to unit quaternion.

    Each of the four components can be recovered from the diagonal; the
    largest one is taken as the divisor and the rest follow from the
    off-diagonal sums and differences.

    Args:
        R: Rotation matrix of shape (..., 3, 3), orthonormal with det +1

    Returns:
        Unit quaternion of shape (..., 4) as [w, x, y, z]
    """
    r00, r11, r22 = R[..., 0, 0], R[..., 1, 1], R[..., 2, 2]

    # 4w^2, 4x^2, 4y^2, 4z^2
    squares = torch.stack([
        1.0 + r00 + r11 + r22,
        1.0 + r00 - r11 - r22,
        1.0 - r00 + r11 - r22,
        1.0 - r00 - r11 + r22,
    ], dim=-1)

    d21 = R[..., 2, 1] - R[..., 1, 2]
    d02 = R[..., 0, 2] - R[..., 2, 0]
    d10 = R[..., 1, 0] - R[..., 0, 1]
    s01 = R[..., 0, 1] + R[..., 1, 0]
    s02 = R[..., 0, 2] + R[..., 2, 0]
    s12 = R[..., 1, 2] + R[..., 2, 1]

    # Row k is 4 * q_k * q
    scaled = torch.stack([
        torch.stack([squares[..., 0], d21, d02, d10], dim=-1),
        torch.stack([d21, squares[..., 1], s01, s02], dim=-1),
        torch.stack([d02, s01, squares[..., 2], s12], dim=-1),
        torch.stack([d10, s02, s12, squares[..., 3]], dim=-1),
    ], dim=-2)
    candidates = scaled / (2.0 * torch.sqrt(squares.clamp(min=DEFAULT_EPS_NORM))).unsqueeze(-1)

    best = squares.argmax(dim=-1)
    index = best[..., None, None].expand(*best.shape, 1, 4)
    q = candidates.gather(-2, index).squeeze(-2)

    return normalize_quaternion(q)


def quaternion_from_axis_angle(
    axis: torch.Tensor,
    angle: Union[float, torch.Tensor]
) -> torch.Tensor:
    """
    Create quaternion from axis-angle representation.

    q = cos(θ/2) + sin(θ/2) * (ax*i + ay*j + az*k)

    Args:
        axis: Rotation axis of shape (..., 3), will be normalized
        angle: Rotation angle in radians, scalar or shape (...)

    Returns:
        Unit quaternion of shape (..., 4) as [w, x, y, z]
    """
    axis = F.normalize(axis, p=2, dim=-1)
    angle = torch.as_tensor(angle, device=axis.device, dtype=axis.dtype)

    half_angle = angle / 2
    w = torch.cos(half_angle).expand(axis.shape[:-1])
    xyz = axis * torch.sin(half_angle).unsqueeze(-1)

    return torch.cat([w.unsqueeze(-1), xyz], dim=-1)


def quaternion_slerp(
    q0: torch.Tensor,
    q1: torch.Tensor,
    t: Union[float, torch.Tensor],
    eps: float = DEFAULT_SLERP_EPS
) -> torch.Tensor:
    """
    Spherical linear interpolation between two quaternions.

    q(t) = sin((1-t)θ)/sin(θ) * q0 + sin(tθ)/sin(θ) * q1

    Always takes the shorter arc: q1 is negated when the dot product is
    negative (q and -q represent the same rotation).

    Args:
        q0: Start quaternion of shape (..., 4)
        q1: End quaternion of shape (..., 4)
        t: Interpolation parameter in [0, 1], scalar or shape (...)
        eps: Below this sin(θ) the result falls back to normalized lerp

    Returns:
        Interpolated unit quaternion of shape (..., 4)
    """
    q0 = normalize_quaternion(q0)
    q1 = normalize_quaternion(q1)

    t = torch.as_tensor(t, device=q0.device, dtype=q0.dtype)
    if t.dim() > 0:
        t = t.unsqueeze(-1)

    dot = (q0 * q1).sum(dim=-1, keepdim=True)
    q1 = torch.where(dot < 0, -q1, q1)
    dot = torch.clamp(dot.abs(), 0.0, 1.0)

    theta = torch.acos(dot)
    sin_theta = torch.sin(theta)

    small_angle = sin_theta < eps
    safe_sin = torch.where(small_angle, torch.ones_like(sin_theta), sin_theta)

    s0 = torch.where(small_angle, 1 - t, torch.sin((1 - t) * theta) / safe_sin)
    s1 = torch.where(small_angle, t.expand_as(sin_theta), torch.sin(t * theta) / safe_sin)

    return normalize_quaternion(s0 * q0 + s1 * q1)


def lerp(
    v0: torch.Tensor,
    v1: torch.Tensor,
    t: Union[float, torch.Tensor]
) -> torch.Tensor:
    """
    Linear interpolation v0 * (1 - t) + v1 * t.

    A tensor t of shape (...) is broadcast over the last axis of v0/v1.
    """
    t = torch.as_tensor(t, device=v0.device, dtype=v0.dtype)
    if t.dim() > 0:
        t = t.unsqueeze(-1)
    return v0 * (1 - t) + v1 * t


def quaternion_angle_distance(q1: torch.Tensor, q2: torch.Tensor) -> torch.Tensor:
    """
    Compute angular distance between two quaternions.

    Args:
        q1: First quaternion of shape (..., 4)
        q2: Second quaternion of shape (..., 4)

    Returns:
        Angular distance in radians of shape (...)
    """
    q1 = normalize_quaternion(q1)
    q2 = normalize_quaternion(q2)

    # q and -q are the same rotation
    dot = torch.abs((q1 * q2).sum(dim=-1))
    dot = torch.clamp(dot, -1.0, 1.0)

    return 2 * torch.acos(dot)
