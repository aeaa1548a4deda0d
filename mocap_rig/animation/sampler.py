"""
Clip sampling and cursor stepping.

sample_clip() is a pure function of (clip, time, looping): it keeps no cursor
and returns bit-identical poses for identical inputs. The playback cursor
lives in the controller and is moved by advance_cursor().

Frame lookup treats frames as evenly spaced over the clip duration:

    progress = time / duration
    position = progress * (frame_count - 1)
    index    = floor(position)   clamped to [0, frame_count - 1]
    next     = min(index + 1, frame_count - 1)
    weight   = position - index
"""

import logging
import math
from typing import List, NamedTuple

import torch

from ..core.constants import DEFAULT_MIN_PLAYBACK_SPEED
from ..utils.quaternion import lerp, quaternion_slerp
from ..utils.transforms import compose_trs
from .clip import AnimationClip

logger = logging.getLogger(__name__)


class SampledPose(NamedTuple):
    """Interpolated per-track local transforms at one instant."""
    transforms: torch.Tensor     # (K, 4, 4) in track order
    capture_indices: List[int]   # capture joint index of each row
    frame_index: int
    next_frame_index: int
    weight: float
    time: float                  # time after wrap/clamp


class CursorStep(NamedTuple):
    """Result of advancing a playback cursor."""
    cursor: float
    looped: bool
    completed: bool


def resolve_time(time: float, duration: float, looping: bool = True) -> float:
    """
    Bring a time into the clip's range.

    Looping clips wrap with modulo into [0, duration), so the end maps onto
    the start. Otherwise times are clamped to [0, duration]. NaN and
    infinite times resolve to 0.
    """
    if duration <= 0 or not math.isfinite(time):
        return 0.0
    if looping:
        if 0.0 <= time < duration:
            return time
        return time % duration
    return min(max(time, 0.0), duration)


def frame_position(time: float, duration: float, frame_count: int):
    """(index, next index, weight) for a resolved time."""
    if frame_count <= 1 or duration <= 0:
        return 0, 0, 0.0

    position = (time / duration) * (frame_count - 1)
    index = min(max(int(math.floor(position)), 0), frame_count - 1)
    next_index = min(index + 1, frame_count - 1)
    weight = min(max(position - index, 0.0), 1.0)
    return index, next_index, weight


def sample_clip(clip: AnimationClip, time: float, looping: bool = True) -> SampledPose:
    """
    Sample a clip at a time.

    Args:
        clip: Clip to sample
        time: Time in seconds; may be outside [0, duration]
        looping: Wrap out-of-range times instead of clamping them

    Returns:
        SampledPose with one local transform per track. An empty clip
        yields the tracks' rest pose; a single-frame or zero-length clip
        yields its first frame.
    """
    indices = clip.capture_indices

    if clip.is_empty:
        if not clip._warned_empty:
            logger.warning(f"Clip '{clip.name}' has no frames, sampling rest pose")
            clip._warned_empty = True
        return SampledPose(clip.rest_transforms.clone(), indices, 0, 0, 0.0, 0.0)

    bind = clip.bind_transforms

    if clip.frame_count == 1 or clip.duration <= 0:
        present = clip.present[0]
        transforms = torch.where(present[:, None, None], clip.transforms[0], bind)
        return SampledPose(transforms, indices, 0, 0, 0.0, resolve_time(time, clip.duration, looping))

    resolved = resolve_time(time, clip.duration, looping)
    i, j, weight = frame_position(resolved, clip.duration, clip.frame_count)

    trs = clip.trs
    translation = lerp(trs.translations[i], trs.translations[j], weight)
    scale = lerp(trs.scales[i], trs.scales[j], weight)
    rotation = quaternion_slerp(trs.rotations[i], trs.rotations[j], weight)
    blended = compose_trs(translation, rotation, scale)

    present_i = clip.present[i]
    both = present_i & clip.present[j] & ~trs.degenerate[i] & ~trs.degenerate[j]

    current = torch.where(present_i[:, None, None], clip.transforms[i], bind)
    transforms = torch.where(both[:, None, None], blended, current)

    return SampledPose(transforms, indices, i, j, weight, resolved)


def advance_cursor(
    cursor: float,
    delta: float,
    duration: float,
    looping: bool = True,
    reversed: bool = False,
    speed: float = 1.0,
    min_speed: float = DEFAULT_MIN_PLAYBACK_SPEED
) -> CursorStep:
    """
    Move a playback cursor by one tick.

    Speed is clamped to min_speed and multiplies the delta; reverse negates
    it. A looping cursor wraps into [0, duration) and reports the loop; a
    non-looping one clamps and reports completion once it moves past an end.
    A non-finite step leaves the cursor where it is.

    Args:
        cursor: Current time in seconds
        delta: Tick duration in seconds
        duration: Clip duration
        looping: Wrap at the ends
        reversed: Play backwards
        speed: Speed multiplier
        min_speed: Smallest allowed speed

    Returns:
        CursorStep(cursor, looped, completed)
    """
    if duration <= 0:
        return CursorStep(0.0, False, not looping)

    step = delta * max(speed, min_speed)
    if not math.isfinite(step):
        step = 0.0
    if reversed:
        step = -step
    if not math.isfinite(cursor):
        cursor = 0.0
    target = cursor + step

    if looping:
        if target >= duration or target < 0:
            return CursorStep(target % duration, True, False)
        return CursorStep(target, False, False)

    if target > duration:
        return CursorStep(duration, False, True)
    if target < 0:
        return CursorStep(0.0, False, True)
    return CursorStep(target, False, False)
