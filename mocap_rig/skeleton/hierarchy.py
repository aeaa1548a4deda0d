"""
Skeleton hierarchy built from flat joint-path lists.

Importers hand over skeletons as parallel arrays: joint paths such as
"root/hips/spine", bind transforms (model space) and rest transforms (local).
SkeletonHierarchy turns them into a parent-indexed tree once at load time:

- path strings are parsed exactly once; parents are found by string lookup,
  so the input order of the paths does not matter
- every bind/rest transform is re-expressed through a coordinate correction
  C as C @ T @ C^-1
- a breadth-first evaluation order is fixed at build time so per-frame
  composition never re-derives it
- inverse bind matrices are computed once

Example:
    >>> skeleton = SkeletonHierarchy.build(
    ...     ['root', 'root/spine', 'root/spine/head'],
    ...     bind_transforms, rest_transforms,
    ... )
    >>> skeleton.parent_of(2)
    1
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import torch

from ..core.constants import DEFAULT_SEPARATOR
from ..core.exceptions import DegenerateTransformError, InvalidSkeletonError
from ..core.types import TransformLike, as_transform_stack
from ..utils.config import SkinningConfig
from ..utils.transforms import invert_transform, invert_transforms_safe

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Joint:
    """
    Single joint of a skeleton.

    Attributes:
        index: Dense 0-based joint id
        name: Display name (last path segment)
        path: Full hierarchical path
        bind_transform: Model-space transform at rigging time (4, 4)
        rest_transform: Default local transform (4, 4)
        parent: Parent joint id, None for roots
    """
    index: int
    name: str
    path: str
    bind_transform: torch.Tensor
    rest_transform: torch.Tensor
    parent: Optional[int] = None

    @property
    def is_root(self) -> bool:
        return self.parent is None


def parent_path_of(path: str, separator: str = DEFAULT_SEPARATOR) -> str:
    """Path with its last segment removed ('a/b/c' -> 'a/b', 'a' -> '')."""
    return separator.join(path.split(separator)[:-1])


def joint_name_of(path: str, separator: str = DEFAULT_SEPARATOR) -> str:
    """Last non-empty segment of a path."""
    segments = [s for s in path.split(separator) if s]
    return segments[-1] if segments else path


def paths_from_parent_indices(
    names: Sequence[str],
    parent_indices: Sequence[Optional[int]],
    separator: str = DEFAULT_SEPARATOR
) -> List[str]:
    """
    Build hierarchical paths for a skeleton described by parent indices.

    Capture rigs report joint names plus a parent index per joint (negative
    or None for roots). The path of a joint is the chain of its ancestors'
    names down to itself, e.g. 'hips_joint/spine_1_joint'.

    Args:
        names: Joint names in rig order
        parent_indices: Parent index per joint; None or < 0 for roots
        separator: Path separator

    Returns:
        One path per joint, in the same order

    Raises:
        InvalidSkeletonError: If lengths differ or the parent chain loops
    """
    if len(names) != len(parent_indices):
        raise InvalidSkeletonError(
            f"Got {len(names)} joint names but {len(parent_indices)} parent indices"
        )

    count = len(names)
    paths = []
    for index, name in enumerate(names):
        segments = [name]
        seen = {index}
        current = parent_indices[index]
        while current is not None and 0 <= current < count:
            if current in seen:
                raise InvalidSkeletonError(f"Parent chain of joint '{name}' contains a cycle")
            seen.add(current)
            segments.append(names[current])
            current = parent_indices[current]
        paths.append(separator.join(reversed(segments)))

    return paths


class SkeletonHierarchy:
    """
    Immutable parent-indexed joint tree.

    Use SkeletonHierarchy.build() to construct one. After construction the
    hierarchy is read-only and can be shared between any number of
    evaluators without synchronization.
    """

    def __init__(
        self,
        joints: List[Joint],
        levels: List[Tuple[torch.Tensor, torch.Tensor]],
        inverse_bind_transforms: torch.Tensor,
        separator: str = DEFAULT_SEPARATOR
    ):
        """
        Args:
            joints: Joints ordered by id
            levels: Breadth-first (joint ids, parent ids) batches
            inverse_bind_transforms: (J, 4, 4)
            separator: Separator the paths were split on
        """
        self._joints = joints
        self._levels = levels
        self.separator = separator

        self._path_to_index: Dict[str, int] = {j.path: j.index for j in joints}
        self._name_to_index: Dict[str, int] = {}
        for joint in joints:
            self._name_to_index.setdefault(joint.name, joint.index)

        self._children: List[List[int]] = [[] for _ in joints]
        for joint in joints:
            if joint.parent is not None:
                self._children[joint.parent].append(joint.index)

        self._depth: List[int] = [0] * len(joints)
        for depth, (ids, _) in enumerate(levels):
            for i in ids.tolist():
                self._depth[i] = depth

        self.bind_transforms = torch.stack([j.bind_transform for j in joints])
        self.rest_transforms = torch.stack([j.rest_transform for j in joints])
        self.inverse_bind_transforms = inverse_bind_transforms
        self.parent_indices = torch.tensor(
            [-1 if j.parent is None else j.parent for j in joints], dtype=torch.long
        )

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        paths: Sequence[str],
        bind_transforms: TransformLike,
        rest_transforms: TransformLike,
        coordinate_correction: Optional[torch.Tensor] = None,
        separator: str = DEFAULT_SEPARATOR
    ) -> 'SkeletonHierarchy':
        """
        Build a hierarchy from a flat joint-path list.

        Args:
            paths: Joint paths, one per joint, in any order
            bind_transforms: (J, 4, 4) model-space bind poses
            rest_transforms: (J, 4, 4) local rest poses
            coordinate_correction: (4, 4) basis change C applied as C @ T @ C^-1
            separator: Path separator

        Returns:
            SkeletonHierarchy

        Raises:
            InvalidSkeletonError: Empty skeleton, mismatched array lengths,
                empty or duplicate paths, malformed or singular transforms
        """
        paths = list(paths)
        if len(paths) == 0:
            raise InvalidSkeletonError("Skeleton has no joints")

        try:
            binds = as_transform_stack(bind_transforms, name="bind_transforms")
            rests = as_transform_stack(rest_transforms, name="rest_transforms")
        except ValueError as e:
            raise InvalidSkeletonError(str(e)) from e

        if binds.shape[0] != len(paths) or rests.shape[0] != len(paths):
            raise InvalidSkeletonError(
                f"Expected {len(paths)} bind and rest transforms, "
                f"got {binds.shape[0]} bind and {rests.shape[0]} rest"
            )

        if coordinate_correction is not None:
            correction = torch.as_tensor(coordinate_correction, dtype=binds.dtype)
            try:
                correction_inv = invert_transform(correction)
            except DegenerateTransformError as e:
                raise InvalidSkeletonError(f"Coordinate correction is not invertible: {e}") from e
            binds = correction @ binds @ correction_inv
            rests = correction @ rests @ correction_inv

        # First pass: path -> index
        path_to_index: Dict[str, int] = {}
        for index, path in enumerate(paths):
            if not path:
                raise InvalidSkeletonError(f"Joint {index} has an empty path")
            if path in path_to_index:
                raise InvalidSkeletonError(f"Duplicate joint path: '{path}'")
            path_to_index[path] = index

        # Second pass: parents by string lookup
        parents: List[Optional[int]] = [
            path_to_index.get(parent_path_of(path, separator)) for path in paths
        ]

        joints = [
            Joint(
                index=index,
                name=joint_name_of(path, separator),
                path=path,
                bind_transform=binds[index],
                rest_transform=rests[index],
                parent=parents[index],
            )
            for index, path in enumerate(paths)
        ]

        levels = cls._build_levels(parents)

        inverse_binds, degenerate = invert_transforms_safe(binds)
        for index in torch.nonzero(degenerate).flatten().tolist():
            logger.warning(f"Bind pose of joint '{paths[index]}' is not invertible, using identity")

        logger.info(f"Built skeleton: {len(joints)} joints, {len(levels[0][0])} root(s), depth {len(levels)}")

        return cls(joints, levels, inverse_binds, separator)

    @classmethod
    def from_asset(
        cls,
        asset,
        coordinate_correction: Optional[torch.Tensor] = None,
        separator: str = DEFAULT_SEPARATOR,
        config: Optional[SkinningConfig] = None
    ) -> 'SkeletonHierarchy':
        """
        Build from an importer's SkeletonAsset (joint_paths, bind_transforms, rest_transforms).

        With a config, its separator is used and, unless a correction is
        given, the asset is converted from its up axis to config.up_axis.
        """
        if config is not None:
            separator = config.separator
            if coordinate_correction is None:
                coordinate_correction = torch.from_numpy(asset.coordinate_correction(config.up_axis)).float()
        return cls.build(
            asset.joint_paths,
            asset.bind_transforms,
            asset.rest_transforms,
            coordinate_correction=coordinate_correction,
            separator=separator,
        )

    @staticmethod
    def _build_levels(parents: List[Optional[int]]) -> List[Tuple[torch.Tensor, torch.Tensor]]:
        """Group joints into breadth-first levels; parents always precede children."""
        children: List[List[int]] = [[] for _ in parents]
        roots = []
        for index, parent in enumerate(parents):
            if parent is None:
                roots.append(index)
            else:
                children[parent].append(index)

        levels = []
        visited = 0
        frontier = deque(roots)
        while frontier:
            ids = list(frontier)
            frontier.clear()
            visited += len(ids)
            parent_ids = [-1 if parents[i] is None else parents[i] for i in ids]
            levels.append((
                torch.tensor(ids, dtype=torch.long),
                torch.tensor(parent_ids, dtype=torch.long),
            ))
            for i in ids:
                frontier.extend(children[i])

        if visited != len(parents):
            raise InvalidSkeletonError("Joint hierarchy is not a forest")

        return levels

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._joints)

    def __iter__(self) -> Iterator[Joint]:
        return iter(self._joints)

    def __getitem__(self, index: int) -> Joint:
        return self._joints[index]

    @property
    def joints(self) -> List[Joint]:
        return list(self._joints)

    @property
    def joint_count(self) -> int:
        return len(self._joints)

    @property
    def joint_paths(self) -> List[str]:
        return [j.path for j in self._joints]

    @property
    def joint_names(self) -> List[str]:
        return [j.name for j in self._joints]

    @property
    def levels(self) -> List[Tuple[torch.Tensor, torch.Tensor]]:
        """Breadth-first (joint ids, parent ids) batches; level 0 holds the roots."""
        return self._levels

    @property
    def evaluation_order(self) -> List[int]:
        """Joint ids in parent-before-child order."""
        return [i for ids, _ in self._levels for i in ids.tolist()]

    @property
    def roots(self) -> List[int]:
        return self._levels[0][0].tolist()

    def parent_of(self, index: int) -> Optional[int]:
        return self._joints[index].parent

    def children(self, index: int) -> List[int]:
        return list(self._children[index])

    def depth(self, index: int) -> int:
        return self._depth[index]

    def find(self, key: str) -> Optional[int]:
        """Joint id for a path, falling back to a joint name; None if unknown."""
        index = self._path_to_index.get(key)
        if index is None:
            index = self._name_to_index.get(key)
        return index

    def index_of(self, key: str) -> int:
        """
        Joint id for a path or name.

        Raises:
            KeyError: If no joint has that path or name
        """
        index = self.find(key)
        if index is None:
            raise KeyError(f"No joint with path or name '{key}'")
        return index

    def describe(self) -> str:
        """Indented tree listing, one joint per line."""
        lines = []

        def _walk(index: int, indent: int):
            joint = self._joints[index]
            lines.append(f"{'  ' * indent}[{index}] {joint.name} (parent: {joint.parent})")
            for child in self._children[index]:
                _walk(child, indent + 1)

        for root in self.roots:
            _walk(root, 0)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"SkeletonHierarchy(joints={len(self)}, roots={len(self.roots)}, depth={len(self._levels)})"


class SkeletonSlot:
    """
    Holds the active skeleton of a loaded model.

    A failed build leaves the previously active skeleton in place, so a bad
    asset never takes down a model that was already playing.
    """

    def __init__(self, hierarchy: Optional[SkeletonHierarchy] = None):
        self.hierarchy = hierarchy

    def activate(
        self,
        paths: Sequence[str],
        bind_transforms: TransformLike,
        rest_transforms: TransformLike,
        coordinate_correction: Optional[torch.Tensor] = None,
        separator: str = DEFAULT_SEPARATOR
    ) -> bool:
        """
        Build and activate a skeleton.

        Returns:
            True if the new skeleton is active, False if the build failed
            and the previous one was kept
        """
        try:
            hierarchy = SkeletonHierarchy.build(
                paths, bind_transforms, rest_transforms,
                coordinate_correction=coordinate_correction,
                separator=separator,
            )
        except InvalidSkeletonError as e:
            logger.error(f"Rejected skeleton, keeping previous: {e}")
            return False

        self.hierarchy = hierarchy
        return True
