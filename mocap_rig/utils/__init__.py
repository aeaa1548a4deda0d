"""
Utility functions for mocap_rig.

Includes quaternion and 4x4 transform math, visualization helpers, and
configuration management.
"""

from .quaternion import (
    normalize_quaternion,
    identity_quaternion,
    quaternion_conjugate,
    quaternion_multiply,
    quaternion_to_matrix,
    matrix_to_quaternion,
    quaternion_from_axis_angle,
    quaternion_slerp,
    quaternion_angle_distance,
    lerp,
)
from .transforms import (
    identity_transforms,
    translation_matrix,
    scale_matrix,
    rotation_matrix_from_quaternion,
    rotation_matrix_axis_angle,
    rotation_matrix_degrees,
    compose_trs,
    compose,
    transpose_transform,
    is_finite_transform,
    invert_transform,
    invert_transforms_safe,
    decompose_transform,
    decompose_transforms_safe,
)
from .visualization import (
    PlotStyle,
    joint_positions,
    plot_skeleton,
    plot_pose_sequence,
)
from .config import (
    Config,
    PlaybackConfig,
    RecorderConfig,
    SkinningConfig,
    load_config,
    save_config,
)

__all__ = [
    # Quaternion operations
    "normalize_quaternion",
    "identity_quaternion",
    "quaternion_conjugate",
    "quaternion_multiply",
    "quaternion_to_matrix",
    "matrix_to_quaternion",
    "quaternion_from_axis_angle",
    "quaternion_slerp",
    "quaternion_angle_distance",
    "lerp",
    # Transforms
    "identity_transforms",
    "translation_matrix",
    "scale_matrix",
    "rotation_matrix_from_quaternion",
    "rotation_matrix_axis_angle",
    "rotation_matrix_degrees",
    "compose_trs",
    "compose",
    "transpose_transform",
    "is_finite_transform",
    "invert_transform",
    "invert_transforms_safe",
    "decompose_transform",
    "decompose_transforms_safe",
    # Visualization
    "PlotStyle",
    "joint_positions",
    "plot_skeleton",
    "plot_pose_sequence",
    # Config
    "Config",
    "PlaybackConfig",
    "RecorderConfig",
    "SkinningConfig",
    "load_config",
    "save_config",
]
