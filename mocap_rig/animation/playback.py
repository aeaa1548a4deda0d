"""
Playback controller: clip cursor state machine driving the skinning buffer.

    Idle --play--> Playing --pause--> Paused --resume--> Playing
      ^               |                  |
      +-----stop------+-------stop-------+

play() is valid from any state and stop() clears the clip. pause() and
resume() outside their source state are ignored, so repeated UI taps are
harmless. Events are queued rather than called back and are collected with
drain_events() once per tick.

Each update() while playing runs the per-tick pipeline:

    advance_cursor -> sample_clip -> retarget_pose -> SkinningEvaluator.evaluate
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import torch

from ..core.exceptions import MocapRigError
from ..skeleton.hierarchy import SkeletonHierarchy
from ..skeleton.retarget import JointRetargeter
from ..skeleton.skinning import SkinningEvaluator
from ..utils.config import PlaybackConfig
from .clip import AnimationClip
from .sampler import advance_cursor, resolve_time, sample_clip

logger = logging.getLogger(__name__)


class PlaybackEvent(Enum):
    STARTED = 'started'
    PAUSED = 'paused'
    RESUMED = 'resumed'
    STOPPED = 'stopped'
    LOOPED = 'looped'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class Idle:
    """No clip loaded."""


@dataclass(frozen=True, eq=False)
class Playing:
    clip: AnimationClip
    cursor: float


@dataclass(frozen=True, eq=False)
class Paused:
    clip: AnimationClip
    cursor: float


PlaybackState = Union[Idle, Playing, Paused]


class PlaybackController:
    """
    Plays clips on a model skeleton.

    Args:
        hierarchy: Model skeleton
        evaluator: Skinning evaluator; one sized to the skeleton is created if None
        retargeter: Capture-to-model map used for every clip. If None, clips
            are matched to the model by joint path on play()
        config: Speed, looping, direction and delta clamp defaults

    Example:
        >>> controller = PlaybackController(skeleton, retargeter=retargeter)
        >>> controller.play(clip)
        >>> matrices = controller.update(1 / 60)
        >>> for event in controller.drain_events():
        ...     print(event)
    """

    def __init__(
        self,
        hierarchy: SkeletonHierarchy,
        evaluator: Optional[SkinningEvaluator] = None,
        retargeter: Optional[JointRetargeter] = None,
        config: Optional[PlaybackConfig] = None
    ):
        self.hierarchy = hierarchy
        self.evaluator = evaluator or SkinningEvaluator(hierarchy)
        self.config = config or PlaybackConfig()

        if retargeter is not None:
            retargeter.validate(hierarchy)
        self._retargeter = retargeter
        self._active_retargeter: Optional[JointRetargeter] = retargeter

        self._state: PlaybackState = Idle()
        speed = self.config.speed if math.isfinite(self.config.speed) else 1.0
        self._speed = max(speed, self.config.min_speed)
        self._reversed = self.config.reversed
        self._looping = self.config.looping

        self._events = deque()
        self._looped_this_tick = False
        self._completed = False

        self.evaluator.evaluate()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def play(self, clip: AnimationClip, start_time: float = 0.0) -> None:
        """Start a clip from start_time; valid from any state."""
        if self._retargeter is None:
            self._active_retargeter = JointRetargeter.from_paths(clip.joints, self.hierarchy)
        else:
            self._active_retargeter = self._retargeter

        if not math.isfinite(start_time):
            logger.warning(f"Non-finite start time {start_time}, starting at 0")
            start_time = 0.0
        cursor = resolve_time(start_time, clip.duration, self._looping)
        self._state = Playing(clip, cursor)
        self._completed = False
        self._events.append(PlaybackEvent.STARTED)
        logger.info(f"Playing clip '{clip.name}' from {cursor:.3f}s")

    def pause(self) -> None:
        if not isinstance(self._state, Playing):
            logger.debug("pause() ignored: not playing")
            return
        self._state = Paused(self._state.clip, self._state.cursor)
        self._events.append(PlaybackEvent.PAUSED)

    def resume(self) -> None:
        if not isinstance(self._state, Paused):
            logger.debug("resume() ignored: not paused")
            return
        self._state = Playing(self._state.clip, self._state.cursor)
        self._events.append(PlaybackEvent.RESUMED)

    def stop(self) -> None:
        """Clear the clip and cursor; the last pose stays in the buffer."""
        self._state = Idle()
        self._completed = False
        self._events.append(PlaybackEvent.STOPPED)
        logger.debug("Playback stopped")

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def set_speed(self, speed: float) -> None:
        if not math.isfinite(speed):
            logger.warning(f"Ignoring non-finite playback speed {speed}")
            return
        self._speed = max(speed, self.config.min_speed)

    def set_reversed(self, reversed: bool) -> None:
        if reversed != self._reversed:
            self._completed = False
        self._reversed = reversed

    def toggle_direction(self) -> None:
        self.set_reversed(not self._reversed)

    def set_looping(self, looping: bool) -> None:
        self._looping = looping

    def seek(self, progress: float) -> None:
        """Move the cursor to a fraction of the clip, clamped to [0, 1]."""
        if isinstance(self._state, Idle):
            logger.debug("seek() ignored: no clip")
            return
        if not math.isfinite(progress):
            logger.warning(f"Ignoring non-finite seek progress {progress}")
            return
        clip = self._state.clip
        cursor = min(max(progress, 0.0), 1.0) * clip.duration
        self._state = type(self._state)(clip, cursor)
        self._completed = False

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def clip(self) -> Optional[AnimationClip]:
        return getattr(self._state, 'clip', None)

    @property
    def cursor(self) -> float:
        return getattr(self._state, 'cursor', 0.0)

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def reversed(self) -> bool:
        return self._reversed

    @property
    def looping(self) -> bool:
        return self._looping

    @property
    def is_playing(self) -> bool:
        return isinstance(self._state, Playing)

    @property
    def is_paused(self) -> bool:
        return isinstance(self._state, Paused)

    @property
    def progress(self) -> float:
        clip = self.clip
        if clip is None or clip.duration <= 0:
            return 0.0
        return self.cursor / clip.duration

    @property
    def pose(self) -> torch.Tensor:
        """Last evaluated skinning buffer."""
        return self.evaluator.buffer

    def drain_events(self) -> List[PlaybackEvent]:
        """Return and clear the queued events, oldest first."""
        events = list(self._events)
        self._events.clear()
        return events

    def did_loop_since_last_tick(self) -> bool:
        return self._looped_this_tick

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def update(self, delta_time: float) -> torch.Tensor:
        """
        Advance playback by one tick.

        Args:
            delta_time: Seconds since the previous tick; clamped to
                [0, max_delta_time]

        Returns:
            The skinning buffer. Unchanged when not playing or when the tick
            failed.
        """
        self._looped_this_tick = False

        if not isinstance(self._state, Playing):
            return self.evaluator.buffer

        clip = self._state.clip
        if not math.isfinite(delta_time):
            logger.debug(f"Non-finite delta time {delta_time}, treating as 0")
            delta_time = 0.0
        delta_time = min(max(delta_time, 0.0), self.config.max_delta_time)

        try:
            step = advance_cursor(
                self._state.cursor,
                delta_time,
                clip.duration,
                looping=self._looping,
                reversed=self._reversed,
                speed=self._speed,
                min_speed=self.config.min_speed,
            )
            self._state = Playing(clip, step.cursor)

            if step.looped:
                self._looped_this_tick = True
                self._events.append(PlaybackEvent.LOOPED)
            if step.completed and not self._completed:
                self._completed = True
                self._events.append(PlaybackEvent.COMPLETED)
                logger.info(f"Clip '{clip.name}' completed")

            return self._evaluate(clip, step.cursor)
        except (MocapRigError, RuntimeError, ValueError) as e:
            logger.error(f"Playback tick failed, holding last pose: {e}")
            return self.evaluator.buffer

    def refresh(self) -> torch.Tensor:
        """Re-evaluate the pose at the current cursor without advancing it."""
        if isinstance(self._state, Idle):
            return self.evaluator.buffer
        try:
            return self._evaluate(self._state.clip, self._state.cursor)
        except (MocapRigError, RuntimeError, ValueError) as e:
            logger.error(f"Pose refresh failed, holding last pose: {e}")
            return self.evaluator.buffer

    def _evaluate(self, clip: AnimationClip, cursor: float) -> torch.Tensor:
        pose = sample_clip(clip, cursor, looping=self._looping)
        overrides = self._active_retargeter.retarget_pose(pose.transforms, pose.capture_indices)
        return self.evaluator.evaluate(overrides=overrides)

    def __repr__(self) -> str:
        return f"PlaybackController(state={type(self._state).__name__}, cursor={self.cursor:.3f})"
