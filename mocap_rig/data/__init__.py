"""
Data module for mocap_rig.

Importer-facing types: skeleton assets, skin weights, coordinate systems
and the glTF skeleton reader.
"""

from .asset import (
    SkeletonAsset,
    SkinWeights,
    CoordinateSystem,
    prepare_skin_weights,
    load_skeleton_asset,
)

__all__ = [
    "SkeletonAsset",
    "SkinWeights",
    "CoordinateSystem",
    "prepare_skin_weights",
    "load_skeleton_asset",
]
