"""
Capture-rig to model-rig joint retargeting.

The capture rig (a body-tracking sensor's skeleton) and the model rig (the
character's skeleton) are authored independently: they differ in joint count,
joint order and coordinate basis. A JointRetargeter holds the fixed
correspondence between them:

    capture index -> model index        (not total, not necessarily injective)
    correction    (4, 4) basis change   (applied as correction @ local)

Retargeting is a lookup plus one matrix product per joint. Hierarchy
composition happens later in the skinning evaluator, once every transform is
expressed in model joint indices.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import torch

from ..core.exceptions import RetargetError
from ..core.types import JointOverrides
from .hierarchy import SkeletonHierarchy

logger = logging.getLogger(__name__)


# =============================================================================
# Basis Corrections
# =============================================================================

# Z-flip into the model's winding (right-handed sensor space -> model space)
Z_FLIP = torch.diag(torch.tensor([1.0, 1.0, -1.0, 1.0]))

# No basis change; used for clips authored for the model itself
IDENTITY_BASIS = torch.eye(4)


# =============================================================================
# Correspondence Tables
# =============================================================================

# Body-tracking capture rig joint names -> Mixamo-style model joint names.
# Capture joints without an entry (extra spine/neck segments, fingers, toe
# ends) are dropped.
ARKIT_TO_MIXAMO: Dict[str, str] = {
    'hips_joint': 'Hips',
    'spine_1_joint': 'Spine',
    'spine_4_joint': 'Spine1',
    'spine_7_joint': 'Spine2',
    'neck_1_joint': 'Neck',
    'head_joint': 'Head',
    # Left arm
    'left_shoulder_1_joint': 'LeftShoulder',
    'left_arm_joint': 'LeftArm',
    'left_forearm_joint': 'LeftForeArm',
    'left_hand_joint': 'LeftHand',
    # Right arm
    'right_shoulder_1_joint': 'RightShoulder',
    'right_arm_joint': 'RightArm',
    'right_forearm_joint': 'RightForeArm',
    'right_hand_joint': 'RightHand',
    # Left leg
    'left_upLeg_joint': 'LeftUpLeg',
    'left_leg_joint': 'LeftLeg',
    'left_foot_joint': 'LeftFoot',
    'left_toes_joint': 'LeftToeBase',
    # Right leg
    'right_upLeg_joint': 'RightUpLeg',
    'right_leg_joint': 'RightLeg',
    'right_foot_joint': 'RightFoot',
    'right_toes_joint': 'RightToeBase',
}


class JointRetargeter:
    """
    Fixed capture-to-model joint map plus basis correction.

    Immutable after construction; safe to share between controllers.

    Example:
        >>> retargeter = JointRetargeter({0: 0, 1: 2})
        >>> retargeter.retarget(local, 2) is None
        True
    """

    def __init__(
        self,
        index_map: Mapping[int, int],
        correction: Optional[torch.Tensor] = None
    ):
        """
        Args:
            index_map: capture joint index -> model joint index
            correction: (4, 4) basis correction, defaults to Z_FLIP

        Raises:
            RetargetError: If correction is not a (4, 4) matrix
        """
        self._index_map: Dict[int, int] = {int(k): int(v) for k, v in index_map.items()}

        if correction is None:
            correction = Z_FLIP
        correction = torch.as_tensor(correction, dtype=torch.float32).clone()
        if correction.shape != (4, 4):
            raise RetargetError(f"Correction should be a (4, 4) matrix, got {tuple(correction.shape)}")
        self._correction = correction

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    @classmethod
    def from_joint_names(
        cls,
        capture_names: Sequence[str],
        hierarchy: SkeletonHierarchy,
        name_table: Mapping[str, str] = ARKIT_TO_MIXAMO,
        correction: Optional[torch.Tensor] = None,
        prefix: str = ''
    ) -> 'JointRetargeter':
        """
        Resolve a name correspondence table against a model skeleton.

        Args:
            capture_names: Capture rig joint names in capture index order
            hierarchy: Model skeleton
            name_table: capture joint name -> model joint name
            correction: Basis correction, defaults to Z_FLIP
            prefix: Prefix of the model joint names (e.g. 'mixamorig:')

        Returns:
            JointRetargeter
        """
        index_map = {}
        missing = []
        for capture_index, name in enumerate(capture_names):
            target = name_table.get(name)
            if target is None:
                continue
            model_index = hierarchy.find(prefix + target)
            if model_index is None:
                missing.append(prefix + target)
                continue
            index_map[capture_index] = model_index

        if missing:
            logger.warning(f"Model skeleton lacks {len(missing)} mapped joint(s): {', '.join(missing)}")
        logger.info(f"Retarget map: {len(index_map)} of {len(capture_names)} capture joints mapped")

        return cls(index_map, correction)

    @classmethod
    def from_paths(
        cls,
        clip_joints: Iterable,
        hierarchy: SkeletonHierarchy
    ) -> 'JointRetargeter':
        """
        Match a clip's tracks to a model skeleton by joint path.

        Used for clips authored for the model itself, so no basis change is
        applied. A track whose path is unknown falls back to a name match.

        Args:
            clip_joints: Objects with `index` and `path` attributes (ClipJoint)
            hierarchy: Model skeleton

        Returns:
            JointRetargeter with identity correction
        """
        index_map = {}
        total = 0
        for joint in clip_joints:
            total += 1
            model_index = hierarchy.find(joint.path)
            if model_index is not None:
                index_map[joint.index] = model_index

        if total and not index_map:
            logger.warning("No clip track matches a model joint path; playback will hold the rest pose")
        else:
            logger.debug(f"Path match: {len(index_map)} of {total} tracks mapped")

        return cls(index_map, IDENTITY_BASIS)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def index_map(self) -> Dict[int, int]:
        return dict(self._index_map)

    @property
    def correction(self) -> torch.Tensor:
        return self._correction

    def __len__(self) -> int:
        return len(self._index_map)

    def __contains__(self, capture_index: int) -> bool:
        return capture_index in self._index_map

    def model_index(self, capture_index: int) -> Optional[int]:
        return self._index_map.get(capture_index)

    def validate(self, hierarchy: SkeletonHierarchy) -> None:
        """
        Check that every destination exists in the model skeleton.

        Raises:
            RetargetError: If a destination index is out of range
        """
        joint_count = len(hierarchy)
        bad: List[Tuple[int, int]] = [
            (src, dst) for src, dst in self._index_map.items()
            if not 0 <= dst < joint_count
        ]
        if bad:
            pairs = ', '.join(f'{src}->{dst}' for src, dst in bad)
            raise RetargetError(f"Destination out of range for {joint_count} model joints: {pairs}")

    # -------------------------------------------------------------------------
    # Retargeting
    # -------------------------------------------------------------------------

    def retarget(
        self,
        captured_local: torch.Tensor,
        capture_index: int
    ) -> Optional[Tuple[int, torch.Tensor]]:
        """
        Map one captured local transform into model space.

        Args:
            captured_local: (4, 4) transform in capture space
            capture_index: Capture rig joint index

        Returns:
            (model index, correction @ captured_local), or None when the
            capture joint has no destination
        """
        model_index = self._index_map.get(capture_index)
        if model_index is None:
            logger.debug(f"Capture joint {capture_index} is unmapped, skipping")
            return None

        correction = self._correction.to(dtype=captured_local.dtype, device=captured_local.device)
        return model_index, correction @ captured_local

    def retarget_pose(
        self,
        transforms: torch.Tensor,
        capture_indices: Optional[Sequence[int]] = None
    ) -> JointOverrides:
        """
        Map a whole captured pose at once.

        When several capture joints share a destination the last one wins.

        Args:
            transforms: (K, 4, 4) captured local transforms
            capture_indices: Capture index of each row, defaults to 0..K-1

        Returns:
            Dict of model joint index -> (4, 4) model-space local transform
        """
        if capture_indices is None:
            capture_indices = range(transforms.shape[0])

        rows = []
        targets = []
        for row, capture_index in enumerate(capture_indices):
            model_index = self._index_map.get(int(capture_index))
            if model_index is not None:
                rows.append(row)
                targets.append(model_index)

        if not rows:
            return {}

        correction = self._correction.to(dtype=transforms.dtype, device=transforms.device)
        mapped = correction @ transforms[torch.tensor(rows, dtype=torch.long)]

        return {target: mapped[k] for k, target in enumerate(targets)}

    def __repr__(self) -> str:
        return f"JointRetargeter(mapped={len(self)})"
