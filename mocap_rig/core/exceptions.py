"""
Exception hierarchy for mocap_rig.

Every error raised by the library derives from MocapRigError so that the
render loop can absorb failures with a single except clause:

    MocapRigError
    ├── InvalidSkeletonError
    ├── InvalidSkinError
    ├── DegenerateTransformError
    ├── RetargetError
    ├── AnimationClipEmptyError
    ├── ClipFormatError
    └── RecordingError
"""


class MocapRigError(Exception):
    """Base exception for mocap_rig errors."""
    pass


class InvalidSkeletonError(MocapRigError):
    """Malformed joint-path data or mismatched bind/rest array lengths."""
    pass


class InvalidSkinError(MocapRigError):
    """Vertex joint indices that do not address the model skeleton."""
    pass


class DegenerateTransformError(MocapRigError):
    """Transform that cannot be inverted or decomposed (collapsed basis)."""
    pass


class RetargetError(MocapRigError):
    """Retarget map that points outside the model skeleton."""
    pass


class AnimationClipEmptyError(MocapRigError):
    """Clip without frames where at least one frame is required."""
    pass


class ClipFormatError(MocapRigError):
    """Serialized clip record that cannot be turned into a clip."""
    pass


class RecordingError(MocapRigError):
    """Recorder used outside of its recording window."""
    pass
