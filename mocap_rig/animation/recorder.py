"""
Recording of sensor frames into animation clips.

The sensor session calls append() from its callback thread; the UI thread
calls finish() when the user stops recording. Both take the same lock, and
finish() freezes the recorder: the returned clip never changes afterwards and
later appends raise RecordingError.
"""

import logging
import math
import threading
from datetime import datetime
from typing import List, NamedTuple, Optional, Sequence

import torch

from ..core.constants import DEFAULT_SEPARATOR
from ..core.exceptions import RecordingError
from ..core.types import TransformLike, as_transform_stack
from ..skeleton.hierarchy import paths_from_parent_indices
from ..utils.config import RecorderConfig
from .clip import AnimationClip, ClipFrame, ClipJoint

logger = logging.getLogger(__name__)


class CaptureFrame(NamedTuple):
    """
    One sensor callback, in the capture rig's fixed joint order.

    Attributes:
        timestamp: Sensor time in seconds
        transforms: (N, 4, 4) joint transforms
        parent_indices: Parent index per joint; None or -1 for roots
        joint_names: Joint names
        present: Optional (N,) tracked mask; all tracked if None
    """
    timestamp: float
    transforms: TransformLike
    parent_indices: Sequence[Optional[int]]
    joint_names: Sequence[str]
    present: Optional[Sequence[bool]] = None


class ClipRecorder:
    """
    Append-only clip builder with capture throttling.

    The first accepted frame fixes the track layout; its transforms become
    the tracks' bind and rest poses. Frames arriving less than
    min_frame_interval after the previous accepted frame are dropped.

    Example:
        >>> recorder = ClipRecorder('take_1')
        >>> for frame in session_frames:
        ...     recorder.append(frame)
        >>> clip = recorder.finish()
    """

    def __init__(
        self,
        name: Optional[str] = None,
        config: Optional[RecorderConfig] = None,
        separator: str = DEFAULT_SEPARATOR
    ):
        """
        Args:
            name: Clip name, defaults to a timestamped name
            config: Frame rate and throttling settings
            separator: Separator for the generated joint paths
        """
        self.config = config or RecorderConfig()
        self.name = name or f"recording_{datetime.now():%Y%m%d_%H%M%S}"
        self.separator = separator

        self._lock = threading.Lock()
        self._joints: List[ClipJoint] = []
        self._frames: List[ClipFrame] = []
        self._first_timestamp: Optional[float] = None
        self._last_timestamp: Optional[float] = None
        self._dropped = 0
        self._clip: Optional[AnimationClip] = None
        self._started_at = datetime.now()

    @property
    def is_recording(self) -> bool:
        return self._clip is None

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def append(self, frame: CaptureFrame) -> bool:
        """
        Record one sensor frame.

        Args:
            frame: Captured frame

        Returns:
            True if the frame was kept, False if throttled

        Raises:
            RecordingError: After finish(), when the joint layout changes, or
                when the tracked mask or timestamp is malformed
        """
        transforms = as_transform_stack(frame.transforms, name="capture transforms")
        if not math.isfinite(frame.timestamp):
            raise RecordingError(f"Capture frame has a non-finite timestamp {frame.timestamp}")

        if frame.present is None:
            present = torch.ones(transforms.shape[0], dtype=torch.bool)
        else:
            present = torch.as_tensor(list(frame.present), dtype=torch.bool)
            if present.shape != (transforms.shape[0],):
                raise RecordingError(
                    f"Capture frame has {transforms.shape[0]} joints but a tracked mask "
                    f"of shape {tuple(present.shape)}"
                )

        with self._lock:
            if self._clip is not None:
                raise RecordingError(f"Recording '{self.name}' is finished")

            if self._last_timestamp is not None:
                if frame.timestamp - self._last_timestamp <= self.config.min_frame_interval:
                    self._dropped += 1
                    return False

            if not self._joints:
                self._joints = self._layout(frame, transforms)
                self._first_timestamp = frame.timestamp
                logger.info(f"Recording '{self.name}': {len(self._joints)} capture joints")
            elif transforms.shape[0] != len(self._joints):
                raise RecordingError(
                    f"Capture frame has {transforms.shape[0]} joints, recording has {len(self._joints)}"
                )

            self._frames.append(ClipFrame(
                frame_id=len(self._frames),
                timestamp=frame.timestamp - self._first_timestamp,
                transforms=transforms,
                present=present,
            ))
            self._last_timestamp = frame.timestamp
            return True

    def _layout(self, frame: CaptureFrame, transforms: torch.Tensor) -> List[ClipJoint]:
        names = list(frame.joint_names)
        parents = [
            None if p is None or p < 0 else int(p)
            for p in frame.parent_indices
        ]
        if len(names) != transforms.shape[0] or len(parents) != transforms.shape[0]:
            raise RecordingError(
                f"Capture frame has {transforms.shape[0]} transforms, "
                f"{len(names)} names and {len(parents)} parent indices"
            )

        paths = paths_from_parent_indices(names, parents, self.separator)
        return [
            ClipJoint(
                index=i,
                name=names[i],
                path=paths[i],
                bind_transform=transforms[i].clone(),
                rest_transform=transforms[i].clone(),
                parent_index=parents[i],
            )
            for i in range(len(names))
        ]

    def finish(self) -> AnimationClip:
        """
        Stop recording and freeze the clip.

        Calling finish() again returns the same clip.

        Returns:
            AnimationClip with timestamps relative to the first frame
        """
        with self._lock:
            if self._clip is None:
                duration = self._frames[-1].timestamp if self._frames else 0.0
                self._clip = AnimationClip(
                    name=self.name,
                    joints=self._joints,
                    frames=self._frames,
                    duration=duration,
                    frame_rate=self.config.frame_rate,
                    created_at=self._started_at,
                )
                if self._frames:
                    logger.info(
                        f"Finished recording '{self.name}': {len(self._frames)} frames, "
                        f"{duration:.2f}s, {self._dropped} throttled"
                    )
                else:
                    logger.warning(f"Finished recording '{self.name}' without frames")
            return self._clip
