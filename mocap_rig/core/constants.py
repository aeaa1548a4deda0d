"""
Centralized constants for mocap_rig.

This module defines all default values and numeric constants used throughout
the library. Using these constants ensures consistency between the recorder,
the sampler and the playback controller, and makes it easy to adjust defaults
globally.

Usage:
    from mocap_rig.core.constants import DEFAULT_EPS, DEFAULT_FRAME_RATE

    def my_function(eps: float = DEFAULT_EPS):
        ...
"""

# =============================================================================
# Numeric Constants
# =============================================================================

# Small epsilon for division stability (general use)
DEFAULT_EPS: float = 1e-8

# Epsilon for normalization operations
DEFAULT_EPS_NORM: float = 1e-12

# Basis vectors shorter than this are treated as collapsed during decomposition
DEFAULT_SCALE_EPS: float = 1e-6

# Determinants below this magnitude are treated as singular
DEFAULT_DETERMINANT_EPS: float = 1e-10

# Below this sin(theta) slerp degrades to normalized lerp
DEFAULT_SLERP_EPS: float = 1e-6


# =============================================================================
# Skeleton Defaults
# =============================================================================

# Separator used in hierarchical joint paths ("hips/spine/neck")
DEFAULT_SEPARATOR: str = "/"

# Renderer-declared maximum joint capacity of the skinning buffer
DEFAULT_MAX_JOINTS: int = 128

# Maximum joint influences per vertex
DEFAULT_MAX_INFLUENCES: int = 4


# =============================================================================
# Animation Defaults
# =============================================================================

# Nominal frame rate of captured clips (frames per second)
DEFAULT_FRAME_RATE: float = 30.0

# Capture frames closer than this are dropped by the recorder (seconds)
DEFAULT_MIN_FRAME_INTERVAL: float = 0.033

# Playback speed multiplier
DEFAULT_PLAYBACK_SPEED: float = 1.0

# Playback speed floor; keeps the cursor from stalling
DEFAULT_MIN_PLAYBACK_SPEED: float = 0.1

# Largest delta time routed into the cursor in one tick (seconds)
DEFAULT_MAX_DELTA_TIME: float = 0.1

# Clips loop unless told otherwise
DEFAULT_LOOPING: bool = True


# =============================================================================
# Storage
# =============================================================================

# Sub-directory of a recording store holding captured clips
RECORDINGS_DIRNAME: str = "recordings"

# File suffix of a serialized clip
CLIP_FILE_SUFFIX: str = ".json"

# Version tag written into every clip record
CLIP_FORMAT_VERSION: int = 1
