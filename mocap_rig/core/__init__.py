"""
Core module for mocap_rig.

Contains:
- Constants: Centralized default values and numeric constants
- Types: Type aliases and the transform shape convention
- Exceptions: The library's error hierarchy
"""

from .constants import (
    # Numeric constants
    DEFAULT_EPS,
    DEFAULT_EPS_NORM,
    DEFAULT_SCALE_EPS,
    DEFAULT_DETERMINANT_EPS,
    DEFAULT_SLERP_EPS,
    # Skeleton defaults
    DEFAULT_SEPARATOR,
    DEFAULT_MAX_JOINTS,
    DEFAULT_MAX_INFLUENCES,
    # Animation defaults
    DEFAULT_FRAME_RATE,
    DEFAULT_MIN_FRAME_INTERVAL,
    DEFAULT_PLAYBACK_SPEED,
    DEFAULT_MIN_PLAYBACK_SPEED,
    DEFAULT_MAX_DELTA_TIME,
    DEFAULT_LOOPING,
)

from .types import (
    Transform,
    TransformStack,
    TRS,
    TransformLike,
    JointOverrides,
    JointPaths,
    as_transform_stack,
)

from .exceptions import (
    MocapRigError,
    InvalidSkeletonError,
    InvalidSkinError,
    DegenerateTransformError,
    RetargetError,
    AnimationClipEmptyError,
    ClipFormatError,
    RecordingError,
)

__all__ = [
    # Constants
    "DEFAULT_EPS",
    "DEFAULT_EPS_NORM",
    "DEFAULT_SCALE_EPS",
    "DEFAULT_DETERMINANT_EPS",
    "DEFAULT_SLERP_EPS",
    "DEFAULT_SEPARATOR",
    "DEFAULT_MAX_JOINTS",
    "DEFAULT_MAX_INFLUENCES",
    "DEFAULT_FRAME_RATE",
    "DEFAULT_MIN_FRAME_INTERVAL",
    "DEFAULT_PLAYBACK_SPEED",
    "DEFAULT_MIN_PLAYBACK_SPEED",
    "DEFAULT_MAX_DELTA_TIME",
    "DEFAULT_LOOPING",
    # Types
    "Transform",
    "TransformStack",
    "TRS",
    "TransformLike",
    "JointOverrides",
    "JointPaths",
    "as_transform_stack",
    # Exceptions
    "MocapRigError",
    "InvalidSkeletonError",
    "InvalidSkinError",
    "DegenerateTransformError",
    "RetargetError",
    "AnimationClipEmptyError",
    "ClipFormatError",
    "RecordingError",
]
