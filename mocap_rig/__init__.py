"""
mocap_rig: motion capture recording, retargeting and skinned playback

A PyTorch library that records body-tracking joint transforms into animation
clips and plays them back on a character whose skeleton differs from the
capture rig in topology, joint order and coordinate basis.

Key Features:
- Skeleton hierarchies built from flat joint-path lists in one O(n) pass
- Fixed capture-to-model joint maps with a basis correction
- Pure clip sampling with lerp/slerp interpolation
- Breadth-first batched skinning into a fixed-capacity matrix buffer
- Playback state machine with queued events
- Thread-safe clip recording and JSON clip storage

API Design:
- Transforms are (4, 4) column-vector matrices, translation in M[:3, 3]
- Poses are (J, 4, 4) tensors indexed by joint id
- Quaternions are (w, x, y, z)

Example:
    >>> import mocap_rig
    >>> from mocap_rig.skeleton import SkeletonHierarchy, JointRetargeter
    >>> from mocap_rig.animation import PlaybackController
    >>> skeleton = SkeletonHierarchy.from_asset(asset)
    >>> controller = PlaybackController(skeleton, retargeter=retargeter)
    >>> controller.play(clip)
    >>> matrices = controller.update(1 / 60)
"""

__version__ = "0.1.0"
__author__ = "mocap_rig Contributors"

from . import core
from . import utils
from . import skeleton
from . import animation
from . import data

__all__ = [
    "core",
    "utils",
    "skeleton",
    "animation",
    "data",
]
