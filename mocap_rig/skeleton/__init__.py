"""
Skeleton module for mocap_rig.

Contains:
- Hierarchy: parent-indexed joint trees built from flat path lists
- Retarget: capture-rig to model-rig joint maps with basis correction
- Skinning: hierarchy composition into skinning matrix buffers
"""

from .hierarchy import (
    Joint,
    SkeletonHierarchy,
    SkeletonSlot,
    parent_path_of,
    joint_name_of,
    paths_from_parent_indices,
)
from .retarget import (
    JointRetargeter,
    Z_FLIP,
    IDENTITY_BASIS,
    ARKIT_TO_MIXAMO,
)
from .skinning import (
    SkinningEvaluator,
    compute_skinning_matrices,
    compose_world_transforms,
    resolve_local_transforms,
    skin_vertices,
)

__all__ = [
    # Hierarchy
    "Joint",
    "SkeletonHierarchy",
    "SkeletonSlot",
    "parent_path_of",
    "joint_name_of",
    "paths_from_parent_indices",
    # Retarget
    "JointRetargeter",
    "Z_FLIP",
    "IDENTITY_BASIS",
    "ARKIT_TO_MIXAMO",
    # Skinning
    "SkinningEvaluator",
    "compute_skinning_matrices",
    "compose_world_transforms",
    "resolve_local_transforms",
    "skin_vertices",
]
