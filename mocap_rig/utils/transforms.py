"""
4x4 transform primitives for joint poses.

All matrices use the column-vector convention documented in
mocap_rig.core.types: translation in M[:3, 3], composition right to left.
Every function accepts batched inputs of shape (..., 4, 4) unless noted.

Angles are radians internally; rotation_matrix_degrees is the only
degree-based entry point.
"""

import logging
import math
from functools import reduce
from typing import Optional, Sequence, Tuple, Union

import torch

from ..core.constants import DEFAULT_DETERMINANT_EPS, DEFAULT_SCALE_EPS
from ..core.exceptions import DegenerateTransformError
from .quaternion import (
    identity_quaternion,
    matrix_to_quaternion,
    quaternion_from_axis_angle,
    quaternion_to_matrix,
)

logger = logging.getLogger(__name__)

VectorLike = Union[torch.Tensor, Sequence[float]]


def identity_transforms(
    *batch_shape: int,
    device: torch.device = None,
    dtype: torch.dtype = torch.float32
) -> torch.Tensor:
    """Identity matrices of shape (*batch_shape, 4, 4)."""
    eye = torch.eye(4, device=device, dtype=dtype)
    if not batch_shape:
        return eye
    return eye.expand(*batch_shape, 4, 4).clone()


def _as_vector(v: VectorLike, dtype: torch.dtype = torch.float32) -> torch.Tensor:
    if isinstance(v, torch.Tensor):
        return v
    return torch.tensor(v, dtype=dtype)


def translation_matrix(offset: VectorLike) -> torch.Tensor:
    """
    Translation transform.

    Args:
        offset: Translation of shape (..., 3)

    Returns:
        Transform of shape (..., 4, 4)
    """
    offset = _as_vector(offset)
    M = identity_transforms(*offset.shape[:-1], device=offset.device, dtype=offset.dtype)
    M[..., :3, 3] = offset
    return M


def scale_matrix(scale: Union[float, VectorLike]) -> torch.Tensor:
    """
    Scale transform; a float is a uniform scale.

    Args:
        scale: Scale of shape (..., 3) or a single float

    Returns:
        Transform of shape (..., 4, 4)
    """
    if isinstance(scale, (int, float)):
        scale = [float(scale)] * 3
    scale = _as_vector(scale)
    M = identity_transforms(*scale.shape[:-1], device=scale.device, dtype=scale.dtype)
    M[..., 0, 0] = scale[..., 0]
    M[..., 1, 1] = scale[..., 1]
    M[..., 2, 2] = scale[..., 2]
    return M


def rotation_matrix_from_quaternion(q: torch.Tensor) -> torch.Tensor:
    """Rotation transform of shape (..., 4, 4) from quaternions (..., 4)."""
    M = identity_transforms(*q.shape[:-1], device=q.device, dtype=q.dtype)
    M[..., :3, :3] = quaternion_to_matrix(q)
    return M


def rotation_matrix_axis_angle(axis: VectorLike, angle: Union[float, torch.Tensor]) -> torch.Tensor:
    """
    Rotation transform about an axis.

    Args:
        axis: Rotation axis of shape (..., 3), normalized internally
        angle: Angle in radians, scalar or shape (...)

    Returns:
        Transform of shape (..., 4, 4)
    """
    axis = _as_vector(axis)
    return rotation_matrix_from_quaternion(quaternion_from_axis_angle(axis, angle))


def rotation_matrix_degrees(axis: VectorLike, degrees: float) -> torch.Tensor:
    """Degree wrapper around rotation_matrix_axis_angle."""
    return rotation_matrix_axis_angle(axis, math.radians(degrees))


def compose_trs(
    translation: torch.Tensor,
    rotation: torch.Tensor,
    scale: Optional[torch.Tensor] = None
) -> torch.Tensor:
    """
    Build T @ R @ S from components.

    Args:
        translation: (..., 3)
        rotation: Quaternion (..., 4) as [w, x, y, z]
        scale: (..., 3), defaults to ones

    Returns:
        Transform of shape (..., 4, 4)
    """
    M = identity_transforms(*translation.shape[:-1], device=translation.device, dtype=translation.dtype)
    R = quaternion_to_matrix(rotation)
    if scale is not None:
        # Scaling the columns of R is R @ diag(scale)
        R = R * scale.unsqueeze(-2)
    M[..., :3, :3] = R
    M[..., :3, 3] = translation
    return M


def compose(*transforms: torch.Tensor) -> torch.Tensor:
    """
    Multiply transforms left to right: compose(A, B, C) == A @ B @ C.

    Raises:
        ValueError: If no transform is given
    """
    if not transforms:
        raise ValueError("compose() needs at least one transform")
    return reduce(torch.matmul, transforms)


def transpose_transform(M: torch.Tensor) -> torch.Tensor:
    """Swap the last two axes."""
    return M.transpose(-1, -2)


def is_finite_transform(M: torch.Tensor) -> torch.Tensor:
    """Boolean of shape (...) telling which transforms hold only finite values."""
    return torch.isfinite(M).flatten(-2).all(dim=-1)


def invert_transform(M: torch.Tensor, eps: float = DEFAULT_DETERMINANT_EPS) -> torch.Tensor:
    """
    Invert transforms.

    Args:
        M: Transform(s) of shape (..., 4, 4)
        eps: Determinant magnitude below which a matrix counts as singular

    Returns:
        Inverse of shape (..., 4, 4)

    Raises:
        DegenerateTransformError: If any matrix is singular or non-finite
    """
    if not bool(is_finite_transform(M).all()):
        raise DegenerateTransformError("Cannot invert a transform with non-finite entries")

    det = torch.linalg.det(M)
    if bool((det.abs() < eps).any()):
        raise DegenerateTransformError(f"Cannot invert a singular transform (|det| < {eps})")

    return torch.linalg.inv(M)


def invert_transforms_safe(
    M: torch.Tensor,
    eps: float = DEFAULT_DETERMINANT_EPS
) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Invert a stack of transforms, substituting identity for singular ones.

    Args:
        M: Transforms of shape (J, 4, 4)
        eps: Determinant threshold

    Returns:
        inverses: (J, 4, 4)
        degenerate: (J,) bool mask of substituted entries
    """
    finite = is_finite_transform(M)
    det = torch.where(finite, torch.linalg.det(torch.nan_to_num(M)), torch.zeros_like(finite, dtype=M.dtype))
    degenerate = (~finite) | (det.abs() < eps)

    safe = torch.where(degenerate[..., None, None], identity_transforms(*M.shape[:-2], dtype=M.dtype, device=M.device), M)
    inverses = torch.linalg.inv(safe)
    return inverses, degenerate


def _decompose(M: torch.Tensor, eps: float) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """Batched decomposition; returns (translation, quaternion, scale, degenerate mask)."""
    translation = M[..., :3, 3].clone()
    basis = M[..., :3, :3]

    # Per-column basis vector lengths
    scale = torch.linalg.norm(basis, dim=-2)
    degenerate = (scale < eps).any(dim=-1) | ~is_finite_transform(M)

    safe_scale = torch.where(degenerate.unsqueeze(-1), torch.ones_like(scale), scale)
    safe_basis = torch.where(degenerate[..., None, None], torch.eye(3, dtype=M.dtype, device=M.device), basis)
    rotation = safe_basis / safe_scale.unsqueeze(-2)

    # A reflected basis is folded into a negative x scale
    reflected = torch.linalg.det(rotation) < 0
    flip = torch.ones_like(safe_scale)
    flip[..., 0] = 1.0 - 2.0 * reflected.to(M.dtype)
    rotation = rotation * flip.unsqueeze(-2)
    safe_scale = safe_scale * flip

    quaternion = matrix_to_quaternion(rotation)

    return translation, quaternion, safe_scale, degenerate


def decompose_transform(
    M: torch.Tensor,
    eps: float = DEFAULT_SCALE_EPS
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Decompose transforms into translation, rotation and scale.

    Translation comes from the last column, scale is the length of each
    basis column, rotation is the normalized basis as a quaternion.
    Non-uniform scale is fine; a collapsed basis is not.

    Args:
        M: Transform(s) of shape (..., 4, 4)
        eps: Basis length below which the transform is degenerate

    Returns:
        translation (..., 3), quaternion (..., 4) as [w, x, y, z], scale (..., 3)

    Raises:
        DegenerateTransformError: If any basis column is shorter than eps
    """
    translation, quaternion, scale, degenerate = _decompose(M, eps)
    if bool(degenerate.any()):
        raise DegenerateTransformError(
            f"Cannot decompose transform: basis vector shorter than {eps} or non-finite entries"
        )
    return translation, quaternion, scale


def decompose_transforms_safe(
    M: torch.Tensor,
    eps: float = DEFAULT_SCALE_EPS
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Decompose transforms, substituting the identity TRS for degenerate ones.

    Returns:
        translation (..., 3), quaternion (..., 4), scale (..., 3), degenerate (...)
    """
    translation, quaternion, scale, degenerate = _decompose(M, eps)
    if bool(degenerate.any()):
        mask = degenerate.unsqueeze(-1)
        translation = torch.where(mask, torch.zeros_like(translation), translation)
        quaternion = torch.where(
            mask,
            identity_quaternion(*quaternion.shape[:-1], device=M.device, dtype=M.dtype),
            quaternion,
        )
        scale = torch.where(mask, torch.ones_like(scale), scale)
    return translation, quaternion, scale, degenerate
