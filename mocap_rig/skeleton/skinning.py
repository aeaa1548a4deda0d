"""
Skinning matrix evaluation.

Every tick the per-joint local transforms (rest pose, sampled clip data and
retargeted overrides) are composed down the hierarchy and multiplied by the
inverse bind pose:

    world[i] = world[parent(i)] @ local[i]          (roots: world = local)
    skin[i]  = world[i] @ inverse_bind[i]

Composition runs one breadth-first level at a time, so a whole level is a
single batched matmul and every parent is finished before its children.
"""

import logging
from typing import Optional

import numpy as np
import torch

from ..core.exceptions import InvalidSkeletonError, InvalidSkinError
from ..core.types import JointOverrides
from ..utils.config import SkinningConfig
from ..utils.transforms import identity_transforms, is_finite_transform
from .hierarchy import SkeletonHierarchy

logger = logging.getLogger(__name__)


def resolve_local_transforms(
    hierarchy: SkeletonHierarchy,
    local_transforms: Optional[torch.Tensor] = None,
    overrides: Optional[JointOverrides] = None
) -> torch.Tensor:
    """
    Per-joint local transforms for one evaluation.

    Starts from the rest pose, copies in the given locals (shorter inputs
    keep the rest pose for the remaining joints), then applies sparse
    overrides. Non-finite entries fall back to the rest pose.

    Args:
        hierarchy: Model skeleton
        local_transforms: (N, 4, 4) locals in model joint order
        overrides: model joint index -> (4, 4) local

    Returns:
        (J, 4, 4) local transforms
    """
    rest = hierarchy.rest_transforms
    joint_count = len(hierarchy)
    locals_ = rest.clone()

    if local_transforms is not None:
        count = min(local_transforms.shape[0], joint_count)
        if local_transforms.shape[0] > joint_count:
            logger.debug(f"Ignoring {local_transforms.shape[0] - joint_count} locals past the joint count")
        locals_[:count] = local_transforms[:count].to(dtype=rest.dtype, device=rest.device)

    if overrides:
        for index, transform in overrides.items():
            if not 0 <= index < joint_count:
                logger.warning(f"Override for joint {index} is out of range ({joint_count} joints), skipping")
                continue
            locals_[index] = transform.to(dtype=rest.dtype, device=rest.device)

    finite = is_finite_transform(locals_)
    if not bool(finite.all()):
        bad = torch.nonzero(~finite).flatten()
        logger.warning(f"Non-finite local transform on joint(s) {bad.tolist()}, using rest pose")
        locals_[bad] = rest[bad]

    return locals_


def compose_world_transforms(
    hierarchy: SkeletonHierarchy,
    local_transforms: torch.Tensor
) -> torch.Tensor:
    """
    Compose local transforms into world transforms, level by level.

    Args:
        hierarchy: Model skeleton
        local_transforms: (J, 4, 4) locals

    Returns:
        (J, 4, 4) world transforms
    """
    world = torch.empty_like(local_transforms)
    for depth, (ids, parents) in enumerate(hierarchy.levels):
        if depth == 0:
            world[ids] = local_transforms[ids]
        else:
            world[ids] = world[parents] @ local_transforms[ids]
    return world


def compute_skinning_matrices(
    hierarchy: SkeletonHierarchy,
    local_transforms: Optional[torch.Tensor] = None,
    overrides: Optional[JointOverrides] = None
) -> torch.Tensor:
    """
    Skinning matrices for one pose.

    Args:
        hierarchy: Model skeleton
        local_transforms: (N, 4, 4) locals in model joint order; rest pose if None
        overrides: Sparse model joint index -> local, e.g. from a retargeter

    Returns:
        (J, 4, 4) skinning matrices, world @ inverse_bind
    """
    locals_ = resolve_local_transforms(hierarchy, local_transforms, overrides)
    world = compose_world_transforms(hierarchy, locals_)
    return world @ hierarchy.inverse_bind_transforms


class SkinningEvaluator:
    """
    Skinning evaluator writing into a fixed-capacity matrix buffer.

    The buffer has one slot per model joint up to the renderer-declared
    capacity. Slots past the live joint count always hold identity. The
    same tensor is overwritten on every evaluate() call.
    """

    def __init__(self, hierarchy: SkeletonHierarchy, capacity: Optional[int] = None):
        """
        Args:
            hierarchy: Model skeleton
            capacity: Buffer slots; defaults to the joint count

        Raises:
            InvalidSkeletonError: If the skeleton has more joints than capacity
        """
        joint_count = len(hierarchy)
        if capacity is None:
            capacity = joint_count
        if capacity < joint_count:
            raise InvalidSkeletonError(
                f"Skeleton has {joint_count} joints but the skinning buffer holds {capacity}"
            )

        self.hierarchy = hierarchy
        self.capacity = capacity
        self._buffer = identity_transforms(capacity, dtype=hierarchy.rest_transforms.dtype)
        self._world = compose_world_transforms(hierarchy, hierarchy.rest_transforms)

    @classmethod
    def from_config(cls, hierarchy: SkeletonHierarchy, config: SkinningConfig) -> 'SkinningEvaluator':
        """Evaluator sized to the renderer capacity in config.max_joints."""
        return cls(hierarchy, capacity=config.max_joints)

    @property
    def joint_count(self) -> int:
        return len(self.hierarchy)

    @property
    def buffer(self) -> torch.Tensor:
        """(capacity, 4, 4) skinning matrices from the last evaluation."""
        return self._buffer

    @property
    def world_transforms(self) -> torch.Tensor:
        """(J, 4, 4) world transforms from the last evaluation."""
        return self._world

    def evaluate(
        self,
        local_transforms: Optional[torch.Tensor] = None,
        overrides: Optional[JointOverrides] = None
    ) -> torch.Tensor:
        """
        Recompute every skinning matrix into the buffer.

        Args:
            local_transforms: (N, 4, 4) locals in model joint order
            overrides: Sparse model joint index -> local

        Returns:
            The (capacity, 4, 4) buffer
        """
        locals_ = resolve_local_transforms(self.hierarchy, local_transforms, overrides)
        self._world = compose_world_transforms(self.hierarchy, locals_)
        self._buffer[:self.joint_count] = self._world @ self.hierarchy.inverse_bind_transforms
        return self._buffer

    def as_numpy(self) -> np.ndarray:
        """Contiguous float32 copy of the buffer for upload."""
        return np.ascontiguousarray(self._buffer.detach().cpu().numpy(), dtype=np.float32)

    def __repr__(self) -> str:
        return f"SkinningEvaluator(joints={self.joint_count}, capacity={self.capacity})"


def skin_vertices(
    rest_vertices: torch.Tensor,
    skin,
    matrices: torch.Tensor
) -> torch.Tensor:
    """
    Linear blend skinning of vertices.

    Args:
        rest_vertices: (V, 3) bind-pose vertex positions
        skin: SkinWeights with indices (V, I) and weights (V, I)
        matrices: (J, 4, 4) skinning matrices (a larger buffer is fine)

    Returns:
        (V, 3) deformed vertices

    Raises:
        InvalidSkinError: If a joint index is outside the matrix stack
    """
    indices = torch.as_tensor(skin.indices, dtype=torch.long)
    weights = torch.as_tensor(skin.weights, dtype=rest_vertices.dtype)

    if indices.numel() and int(indices.max()) >= matrices.shape[0]:
        raise InvalidSkinError(
            f"Joint index {int(indices.max())} out of range for {matrices.shape[0]} matrices"
        )

    V = rest_vertices.shape[0]
    rest_homo = torch.cat([
        rest_vertices,
        torch.ones(V, 1, device=rest_vertices.device, dtype=rest_vertices.dtype)
    ], dim=-1)

    deformed = torch.zeros_like(rest_vertices)
    matrices = matrices.to(dtype=rest_vertices.dtype)

    for slot in range(indices.shape[1]):
        M = matrices[indices[:, slot]]  # (V, 4, 4)
        transformed = torch.einsum('vij,vj->vi', M, rest_homo)[:, :3]
        deformed = deformed + weights[:, slot:slot + 1] * transformed

    return deformed
