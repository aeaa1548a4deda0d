"""
Model asset interface.

What the skeleton pipeline needs from a 3D asset importer:
- Joint paths with parallel bind and rest transforms (SkeletonAsset)
- Per-vertex joint indices and weights in the model's joint order (SkinWeights)
- The asset's up-axis/handedness convention (CoordinateSystem)

load_skeleton_asset() reads the joint hierarchy of a glTF file. Arrays are
numpy at this boundary; SkeletonHierarchy.build() converts them to torch.
"""

import base64
import json
import logging
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Union

import numpy as np
from scipy.spatial.transform import Rotation

from ..core.constants import DEFAULT_MAX_INFLUENCES, DEFAULT_SEPARATOR
from ..core.exceptions import InvalidSkeletonError, InvalidSkinError

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

class SkeletonAsset(NamedTuple):
    """Skeleton as delivered by an importer."""
    joint_paths: List[str]          # e.g. 'Hips/Spine/Neck'
    bind_transforms: np.ndarray     # (J, 4, 4) model space
    rest_transforms: np.ndarray     # (J, 4, 4) local
    up_axis: str = 'y'

    def coordinate_correction(self, target: str = 'y') -> np.ndarray:
        """Basis change from the asset's up axis to target."""
        return CoordinateSystem.correction_between(self.up_axis, target)


class SkinWeights(NamedTuple):
    """Per-vertex joint influences."""
    indices: np.ndarray   # (V, I) int64
    weights: np.ndarray   # (V, I) float32, rows sum to 1


# =============================================================================
# Coordinate Systems
# =============================================================================

class CoordinateSystem:
    """Coordinate system conversion utilities."""

    OPENGL = 'opengl'      # Y-up, right-handed (target)
    BLENDER = 'blender'    # Z-up, right-handed
    DIRECTX = 'directx'    # Y-up, left-handed

    _UP_AXES = {'y': OPENGL, 'z': BLENDER}

    # Conversion matrices to OpenGL (Y-up, right-handed)
    _CONVERSIONS = {
        ('blender', 'opengl'): np.array([
            [1, 0, 0, 0],
            [0, 0, 1, 0],
            [0, -1, 0, 0],
            [0, 0, 0, 1]
        ], dtype=np.float32),
        ('directx', 'opengl'): np.array([
            [1, 0, 0, 0],
            [0, 1, 0, 0],
            [0, 0, -1, 0],
            [0, 0, 0, 1]
        ], dtype=np.float32),
    }

    @staticmethod
    def from_up_axis(up_axis: str) -> str:
        """System name for an up axis ('y' or 'z'), or a system name passed through."""
        key = up_axis.lower()
        return CoordinateSystem._UP_AXES.get(key, key)

    @staticmethod
    def get_conversion_matrix(
        from_system: str,
        to_system: str = 'opengl'
    ) -> np.ndarray:
        """Get 4x4 transformation matrix for coordinate conversion."""
        if from_system == to_system:
            return np.eye(4, dtype=np.float32)

        key = (from_system, to_system)
        if key in CoordinateSystem._CONVERSIONS:
            return CoordinateSystem._CONVERSIONS[key].copy()

        inverse_key = (to_system, from_system)
        if inverse_key in CoordinateSystem._CONVERSIONS:
            return np.linalg.inv(CoordinateSystem._CONVERSIONS[inverse_key]).astype(np.float32)

        # Chain through OpenGL
        if from_system != CoordinateSystem.OPENGL and to_system != CoordinateSystem.OPENGL:
            to_gl = CoordinateSystem.get_conversion_matrix(from_system, CoordinateSystem.OPENGL)
            from_gl = CoordinateSystem.get_conversion_matrix(CoordinateSystem.OPENGL, to_system)
            return (from_gl @ to_gl).astype(np.float32)

        logger.warning(f"Unknown coordinate conversion: {from_system} -> {to_system}, using identity")
        return np.eye(4, dtype=np.float32)

    @staticmethod
    def correction_between(from_up_axis: str, to_up_axis: str = 'y') -> np.ndarray:
        """Conversion matrix between two up-axis (or system name) conventions."""
        return CoordinateSystem.get_conversion_matrix(
            CoordinateSystem.from_up_axis(from_up_axis),
            CoordinateSystem.from_up_axis(to_up_axis),
        )


# =============================================================================
# Skin Weights
# =============================================================================

def prepare_skin_weights(
    indices: np.ndarray,
    weights: np.ndarray,
    joint_count: int,
    max_influences: int = DEFAULT_MAX_INFLUENCES
) -> SkinWeights:
    """
    Validate and normalize per-vertex skin weights.

    Vertices with more than max_influences entries keep their heaviest
    ones. Weights are normalized to sum to 1; a vertex whose weights sum
    to zero is bound fully to joint 0.

    Args:
        indices: (V, I) joint indices into the model skeleton
        weights: (V, I) joint weights
        joint_count: Number of model joints
        max_influences: Influences kept per vertex

    Returns:
        SkinWeights with (V, min(I, max_influences)) arrays

    Raises:
        InvalidSkinError: Shape mismatch, or an index outside [0, joint_count)
    """
    indices = np.asarray(indices, dtype=np.int64)
    weights = np.asarray(weights, dtype=np.float32)

    if indices.ndim != 2 or indices.shape != weights.shape:
        raise InvalidSkinError(
            f"Joint indices {indices.shape} and weights {weights.shape} should be matching (V, I) arrays"
        )

    if indices.size and (indices.min() < 0 or indices.max() >= joint_count):
        bad = int(indices.max()) if indices.max() >= joint_count else int(indices.min())
        raise InvalidSkinError(f"Joint index {bad} out of range for {joint_count} joints")

    weights = np.maximum(weights, 0.0)

    if indices.shape[1] > max_influences:
        # Sort descending by weight and keep the top slots
        order = np.argsort(-weights, axis=1, kind='stable')[:, :max_influences]
        indices = np.take_along_axis(indices, order, axis=1)
        weights = np.take_along_axis(weights, order, axis=1)

    # Normalize weights per vertex
    weight_sums = weights.sum(axis=1, keepdims=True)
    unbound = weight_sums[:, 0] <= 0
    weights = weights / np.where(weight_sums > 0, weight_sums, 1.0)

    if unbound.any():
        logger.debug(f"{int(unbound.sum())} vertices without weights bound to joint 0")
        weights[unbound] = 0.0
        indices[unbound] = 0
        if weights.shape[1]:
            weights[unbound, 0] = 1.0

    return SkinWeights(indices=indices, weights=weights.astype(np.float32))


# =============================================================================
# glTF Import
# =============================================================================

_COMPONENT_DTYPES = {
    5126: np.float32,
}


def _node_local_matrix(node: Dict) -> np.ndarray:
    """Local 4x4 transform of a glTF node (matrix or TRS)."""
    if 'matrix' in node:
        # glTF stores matrices column-major
        return np.asarray(node['matrix'], dtype=np.float64).reshape(4, 4).T

    translation = np.asarray(node.get('translation', [0, 0, 0]), dtype=np.float64)
    rotation = node.get('rotation', [0, 0, 0, 1])  # glTF uses [x, y, z, w]
    scale = np.asarray(node.get('scale', [1, 1, 1]), dtype=np.float64)

    M = np.eye(4)
    M[:3, :3] = Rotation.from_quat(rotation).as_matrix() * scale[None, :]
    M[:3, 3] = translation
    return M


def _read_buffer(gltf: Dict, index: int, base_dir: Path) -> bytes:
    uri = gltf['buffers'][index].get('uri')
    if uri is None:
        raise InvalidSkeletonError("Binary glTF buffers (.glb) are not supported")
    if uri.startswith('data:'):
        return base64.b64decode(uri.split(',', 1)[1])
    with open(base_dir / uri, 'rb') as f:
        return f.read()


def _read_mat4_accessor(gltf: Dict, accessor_index: int, base_dir: Path) -> np.ndarray:
    """(count, 4, 4) matrices of a MAT4 float accessor."""
    accessor = gltf['accessors'][accessor_index]
    if accessor.get('type') != 'MAT4' or accessor.get('componentType') not in _COMPONENT_DTYPES:
        raise InvalidSkeletonError(f"Accessor {accessor_index} is not a float MAT4 accessor")

    view = gltf['bufferViews'][accessor['bufferView']]
    data = _read_buffer(gltf, view['buffer'], base_dir)
    offset = view.get('byteOffset', 0) + accessor.get('byteOffset', 0)
    count = accessor['count']

    values = np.frombuffer(data, dtype=np.float32, count=count * 16, offset=offset)
    return values.reshape(count, 4, 4).transpose(0, 2, 1).astype(np.float64)


def load_skeleton_asset(
    gltf_path: Union[str, Path],
    skin_index: int = 0,
    separator: str = DEFAULT_SEPARATOR
) -> SkeletonAsset:
    """
    Read the joint hierarchy of a glTF skin.

    Joint paths are the chain of joint names from the skin's root joint.
    Non-joint nodes between two joints are folded into the child's rest
    transform. Bind poses come from inverseBindMatrices when present and
    from the composed rest pose otherwise.

    Args:
        gltf_path: Path to a .gltf file
        skin_index: Which skin to read
        separator: Separator for the joint paths

    Returns:
        SkeletonAsset with up_axis 'y'

    Raises:
        InvalidSkeletonError: If the file has no such skin or is malformed
    """
    gltf_path = Path(gltf_path)
    with open(gltf_path) as f:
        try:
            gltf = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidSkeletonError(f"{gltf_path} is not a glTF JSON file: {e}") from e

    skins = gltf.get('skins', [])
    if skin_index >= len(skins):
        raise InvalidSkeletonError(f"{gltf_path} has no skin {skin_index}")

    skin = skins[skin_index]
    nodes = gltf.get('nodes', [])
    joint_nodes = skin.get('joints', [])
    if not joint_nodes:
        raise InvalidSkeletonError(f"Skin {skin_index} of {gltf_path} has no joints")

    joint_set = set(joint_nodes)
    names = {idx: nodes[idx].get('name', f'joint_{idx}') for idx in joint_nodes}

    # Build child to parent mapping by traversing ALL nodes
    child_to_parent = {}
    for node_idx, node in enumerate(nodes):
        for child_idx in node.get('children', []):
            child_to_parent[child_idx] = node_idx

    parent_joint: Dict[int, Optional[int]] = {}
    rest_by_node: Dict[int, np.ndarray] = {}
    for idx in joint_nodes:
        local = _node_local_matrix(nodes[idx])
        current = idx
        visited = {idx}
        parent = None
        while current in child_to_parent:
            current = child_to_parent[current]
            if current in visited:
                raise InvalidSkeletonError(f"Node hierarchy of {gltf_path} contains a cycle")
            visited.add(current)
            if current in joint_set:
                parent = current
                break
            # Intermediate node: fold into this joint's local transform
            local = _node_local_matrix(nodes[current]) @ local
        parent_joint[idx] = parent
        rest_by_node[idx] = local

    def _path(idx: int) -> str:
        segments = [names[idx]]
        current = parent_joint[idx]
        while current is not None:
            segments.append(names[current])
            current = parent_joint[current]
        return separator.join(reversed(segments))

    paths = [_path(idx) for idx in joint_nodes]
    rest = np.stack([rest_by_node[idx] for idx in joint_nodes])

    if 'inverseBindMatrices' in skin:
        inverse_binds = _read_mat4_accessor(gltf, skin['inverseBindMatrices'], gltf_path.parent)
        if inverse_binds.shape[0] != len(joint_nodes):
            raise InvalidSkeletonError(
                f"Skin has {len(joint_nodes)} joints but {inverse_binds.shape[0]} inverse bind matrices"
            )
        try:
            bind = np.linalg.inv(inverse_binds)
        except np.linalg.LinAlgError as e:
            raise InvalidSkeletonError(f"Singular inverse bind matrix in {gltf_path}") from e
    else:
        world: Dict[int, np.ndarray] = {}

        def _world(idx: int) -> np.ndarray:
            if idx not in world:
                parent = parent_joint[idx]
                local = rest_by_node[idx]
                world[idx] = local if parent is None else _world(parent) @ local
            return world[idx]

        bind = np.stack([_world(idx) for idx in joint_nodes])

    logger.info(f"Loaded glTF skeleton from {gltf_path.name}: {len(paths)} joints")

    return SkeletonAsset(
        joint_paths=paths,
        bind_transforms=bind.astype(np.float32),
        rest_transforms=rest.astype(np.float32),
        up_axis='y',
    )
