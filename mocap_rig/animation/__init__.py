"""
Animation module for mocap_rig.

Contains:
- Clip: the recorded/authored clip data model
- Sampler: pure clip sampling and cursor stepping
- Playback: the playback state machine driving the skinning buffer
- Recorder: sensor frames into clips
- Storage: JSON clip records and the recordings directory
"""

from .clip import (
    AnimationClip,
    ClipJoint,
    ClipFrame,
    ClipTRS,
    make_frame,
)
from .sampler import (
    SampledPose,
    CursorStep,
    sample_clip,
    advance_cursor,
    resolve_time,
    frame_position,
)
from .playback import (
    PlaybackController,
    PlaybackEvent,
    PlaybackState,
    Idle,
    Playing,
    Paused,
)
from .recorder import (
    CaptureFrame,
    ClipRecorder,
)
from .storage import (
    RecordingStore,
    clip_to_dict,
    clip_from_dict,
    save_clip,
    load_clip,
    matrix_to_record,
    matrix_from_record,
)

__all__ = [
    # Clip
    "AnimationClip",
    "ClipJoint",
    "ClipFrame",
    "ClipTRS",
    "make_frame",
    # Sampler
    "SampledPose",
    "CursorStep",
    "sample_clip",
    "advance_cursor",
    "resolve_time",
    "frame_position",
    # Playback
    "PlaybackController",
    "PlaybackEvent",
    "PlaybackState",
    "Idle",
    "Playing",
    "Paused",
    # Recorder
    "CaptureFrame",
    "ClipRecorder",
    # Storage
    "RecordingStore",
    "clip_to_dict",
    "clip_from_dict",
    "save_clip",
    "load_clip",
    "matrix_to_record",
    "matrix_from_record",
]
