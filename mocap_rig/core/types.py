"""
Type aliases and shape conventions for mocap_rig.

Shape Conventions:
==================

Transforms
----------
A transform is a (4, 4) matrix in column-vector convention:
    - M[:3, :3] holds the rotation/scale basis (one basis vector per column)
    - M[:3, 3] holds the translation
    - points transform as M @ [x, y, z, 1]

Composition therefore reads right to left: world = parent_world @ local.

Quaternions
-----------
Quaternions are (w, x, y, z) with the scalar part first, matching
mocap_rig.utils.quaternion.

Poses
-----
A pose is a stack of per-joint transforms, shape (J, 4, 4), indexed by joint
id. Clip frames use the clip's track order (capture order); skinning buffers
use the model skeleton's joint order.
"""

from typing import Dict, List, Sequence, Tuple, Union

import numpy as np
import torch


# =============================================================================
# Basic Type Aliases
# =============================================================================

# Single (4, 4) transform
Transform = torch.Tensor

# Stack of transforms, shape (J, 4, 4)
TransformStack = torch.Tensor

# Translation (3,), quaternion (4,), scale (3,)
TRS = Tuple[torch.Tensor, torch.Tensor, torch.Tensor]

# Anything that can be turned into a transform stack
TransformLike = Union[torch.Tensor, np.ndarray, Sequence[Sequence[Sequence[float]]]]

# Sparse per-joint local transforms keyed by model joint id
JointOverrides = Dict[int, torch.Tensor]

# Joint path list as delivered by an importer
JointPaths = List[str]


def as_transform_stack(
    transforms: TransformLike,
    dtype: torch.dtype = torch.float32,
    name: str = "transforms"
) -> torch.Tensor:
    """
    Convert an array-like of (4, 4) matrices into a (J, 4, 4) tensor.

    Args:
        transforms: Tensor, ndarray or nested sequence of matrices
        dtype: Target dtype
        name: Name for error messages

    Returns:
        Tensor of shape (J, 4, 4)

    Raises:
        ValueError: If the trailing dimensions are not (4, 4)
    """
    if isinstance(transforms, torch.Tensor):
        stack = transforms.to(dtype=dtype)
    elif isinstance(transforms, np.ndarray):
        stack = torch.from_numpy(np.ascontiguousarray(transforms)).to(dtype=dtype)
    else:
        items = list(transforms)
        if len(items) == 0:
            return torch.zeros(0, 4, 4, dtype=dtype)
        stack = torch.stack([torch.as_tensor(np.asarray(m), dtype=dtype) for m in items])

    if stack.dim() == 2:
        stack = stack.unsqueeze(0)

    if stack.dim() != 3 or stack.shape[-2:] != (4, 4):
        raise ValueError(f"{name} should have shape (J, 4, 4), got {tuple(stack.shape)}")

    return stack
