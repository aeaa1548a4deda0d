"""
Animation clip data model.

A clip is a fixed track layout (one ClipJoint per captured joint) plus an
ordered list of frames. Each frame holds one local transform per track and a
presence mask, since a capture rig may drop tracking of individual joints.

Clips are immutable once built. The TRS decomposition of every frame is done
once in the constructor so sampling never decomposes matrices per tick.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, NamedTuple, Optional, Sequence

import torch

from ..core.constants import DEFAULT_FRAME_RATE
from ..core.exceptions import AnimationClipEmptyError, ClipFormatError
from ..utils.transforms import decompose_transforms_safe, identity_transforms

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ClipJoint:
    """
    Track layout entry: one captured joint.

    Attributes:
        index: Capture rig joint index the track belongs to
        name: Joint name
        path: Hierarchical joint path
        bind_transform: Bind pose (4, 4); used where a frame lacks the joint
        rest_transform: Rest pose (4, 4); used when the clip has no frames
        parent_index: Capture index of the parent, None for roots
    """
    index: int
    name: str
    path: str
    bind_transform: torch.Tensor
    rest_transform: torch.Tensor
    parent_index: Optional[int] = None


class ClipFrame(NamedTuple):
    """One captured instant, in track order."""
    frame_id: int
    timestamp: float
    transforms: torch.Tensor  # (K, 4, 4)
    present: torch.Tensor     # (K,) bool


class ClipTRS(NamedTuple):
    """Cached per-frame decomposition of a clip, shapes (F, K, ...)."""
    translations: torch.Tensor  # (F, K, 3)
    rotations: torch.Tensor     # (F, K, 4)
    scales: torch.Tensor        # (F, K, 3)
    degenerate: torch.Tensor    # (F, K) bool


def make_frame(
    frame_id: int,
    timestamp: float,
    transforms: torch.Tensor,
    present: Optional[torch.Tensor] = None
) -> ClipFrame:
    """ClipFrame with every joint present unless a mask is given."""
    transforms = torch.as_tensor(transforms, dtype=torch.float32)
    if present is None:
        present = torch.ones(transforms.shape[0], dtype=torch.bool)
    return ClipFrame(frame_id, float(timestamp), transforms, torch.as_tensor(present, dtype=torch.bool))


class AnimationClip:
    """
    Time-sequenced per-joint local transforms.

    Invariants checked at construction:
    - every frame has one transform per track
    - timestamps never decrease
    - duration >= last timestamp

    Example:
        >>> clip = AnimationClip('wave', joints, frames, duration=1.0)
        >>> clip.frame_count
        2
    """

    def __init__(
        self,
        name: str,
        joints: Sequence[ClipJoint],
        frames: Sequence[ClipFrame],
        duration: Optional[float] = None,
        frame_rate: float = DEFAULT_FRAME_RATE,
        created_at: Optional[datetime] = None
    ):
        """
        Args:
            name: Clip name
            joints: Track layout
            frames: Frames in time order
            duration: Clip length in seconds; defaults to the last timestamp
            frame_rate: Nominal frames per second
            created_at: Recording date, defaults to now

        Raises:
            ClipFormatError: If an invariant does not hold
        """
        self.name = name
        self.joints: List[ClipJoint] = list(joints)
        self.frames: List[ClipFrame] = list(frames)
        self.frame_rate = float(frame_rate)
        self.created_at = created_at or datetime.now()

        track_count = len(self.joints)
        previous = None
        for frame in self.frames:
            if frame.transforms.shape != (track_count, 4, 4):
                raise ClipFormatError(
                    f"Frame {frame.frame_id} of clip '{name}' has transforms of shape "
                    f"{tuple(frame.transforms.shape)}, expected ({track_count}, 4, 4)"
                )
            if frame.present.shape != (track_count,):
                raise ClipFormatError(
                    f"Frame {frame.frame_id} of clip '{name}' has a presence mask of shape "
                    f"{tuple(frame.present.shape)}, expected ({track_count},)"
                )
            if previous is not None and frame.timestamp < previous:
                raise ClipFormatError(f"Frames of clip '{name}' are not in time order")
            previous = frame.timestamp

        last_timestamp = self.frames[-1].timestamp if self.frames else 0.0
        if duration is None:
            duration = last_timestamp
        if duration < last_timestamp:
            raise ClipFormatError(
                f"Clip '{name}' duration {duration} is shorter than its last frame at {last_timestamp}"
            )
        self.duration = float(duration)

        if track_count:
            self.bind_transforms = torch.stack([j.bind_transform for j in self.joints]).float()
            self.rest_transforms = torch.stack([j.rest_transform for j in self.joints]).float()
        else:
            self.bind_transforms = identity_transforms(0)
            self.rest_transforms = identity_transforms(0)

        if self.frames:
            self.transforms = torch.stack([f.transforms for f in self.frames]).float()
            self.present = torch.stack([f.present for f in self.frames])
        else:
            self.transforms = torch.zeros(0, track_count, 4, 4)
            self.present = torch.zeros(0, track_count, dtype=torch.bool)

        self.trs = self._decompose()
        self._warned_empty = False

    def _decompose(self) -> ClipTRS:
        translations, rotations, scales, degenerate = decompose_transforms_safe(self.transforms)
        bad = int((degenerate & self.present).sum())
        if bad:
            logger.warning(f"Clip '{self.name}': {bad} degenerate joint transform(s) will not be interpolated")
        return ClipTRS(translations, rotations, scales, degenerate)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def joint_count(self) -> int:
        return len(self.joints)

    @property
    def is_empty(self) -> bool:
        return not self.frames

    @property
    def capture_indices(self) -> List[int]:
        return [j.index for j in self.joints]

    @property
    def joint_names(self) -> List[str]:
        return [j.name for j in self.joints]

    @property
    def joint_paths(self) -> List[str]:
        return [j.path for j in self.joints]

    @property
    def timestamps(self) -> torch.Tensor:
        return torch.tensor([f.timestamp for f in self.frames], dtype=torch.float64)

    def require_frames(self) -> 'AnimationClip':
        """
        Strict check for callers that cannot fall back to the rest pose.

        Raises:
            AnimationClipEmptyError: If the clip has no frames
        """
        if self.is_empty:
            raise AnimationClipEmptyError(f"Clip '{self.name}' has no frames")
        return self

    def __len__(self) -> int:
        return self.frame_count

    def __repr__(self) -> str:
        return (
            f"AnimationClip(name={self.name!r}, frames={self.frame_count}, "
            f"joints={self.joint_count}, duration={self.duration:.3f})"
        )
