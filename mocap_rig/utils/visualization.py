"""
Visualization utilities for mocap_rig.

Debug plots of skeleton poses, used to eyeball retargeting results:
- A single pose drawn as joints and bones
- Several poses over time, colored by time
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch


# =============================================================================
# Configuration and Style
# =============================================================================

@dataclass
class PlotStyle:
    """Global plotting style configuration."""
    figsize: Tuple[int, int] = (8, 8)
    dpi: int = 100
    cmap_sequential: str = 'viridis'
    joint_color: str = 'red'
    bone_color: str = 'blue'
    joint_size: float = 30
    bone_width: float = 2
    font_size: int = 12


DEFAULT_STYLE = PlotStyle()


def _ensure_matplotlib():
    """Ensure matplotlib is available."""
    try:
        import matplotlib.pyplot as plt
        from mpl_toolkits.mplot3d import Axes3D  # noqa: F401
        return plt
    except ImportError:
        raise ImportError(
            "matplotlib is required for visualization. "
            "Install with: pip install matplotlib"
        )


def _ensure_numpy(tensor: Union[torch.Tensor, np.ndarray]) -> np.ndarray:
    """Convert tensor to numpy array."""
    if isinstance(tensor, torch.Tensor):
        return tensor.detach().cpu().numpy()
    return np.asarray(tensor)


def joint_positions(world_transforms: Union[torch.Tensor, np.ndarray]) -> np.ndarray:
    """World-space joint origins (J, 3) from world transforms (J, 4, 4)."""
    return _ensure_numpy(world_transforms)[..., :3, 3]


def _bones(parents: Sequence[Optional[int]]) -> List[Tuple[int, int]]:
    return [(p, i) for i, p in enumerate(parents) if p is not None and p >= 0]


def _parents_of(hierarchy) -> List[Optional[int]]:
    return [joint.parent for joint in hierarchy]


def _set_equal_aspect(ax: Any, positions: np.ndarray):
    """Cube-shaped limits around the points so bone lengths are not distorted."""
    if positions.size == 0:
        return
    center = (positions.max(axis=0) + positions.min(axis=0)) / 2
    radius = max(float((positions.max(axis=0) - positions.min(axis=0)).max()) / 2, 1e-3)
    ax.set_xlim(center[0] - radius, center[0] + radius)
    ax.set_ylim(center[1] - radius, center[1] + radius)
    ax.set_zlim(center[2] - radius, center[2] + radius)


# =============================================================================
# Skeleton Plots
# =============================================================================

def plot_skeleton(
    hierarchy,
    world_transforms: Union[torch.Tensor, np.ndarray],
    ax: Any = None,
    title: str = 'Skeleton',
    style: PlotStyle = None,
    show_labels: bool = False,
):
    """
    Plot one skeleton pose.

    Args:
        hierarchy: SkeletonHierarchy giving the parent of every joint
        world_transforms: (J, 4, 4) world transforms, e.g.
            SkinningEvaluator.world_transforms
        ax: Existing 3D matplotlib axis
        title: Plot title
        style: PlotStyle configuration
        show_labels: Write joint names next to the markers

    Returns:
        Tuple of (figure, axis)
    """
    plt = _ensure_matplotlib()
    style = style or DEFAULT_STYLE

    if ax is None:
        fig = plt.figure(figsize=style.figsize, dpi=style.dpi)
        ax = fig.add_subplot(111, projection='3d')
    else:
        fig = ax.get_figure()

    positions = joint_positions(world_transforms)[:len(hierarchy)]

    ax.scatter(positions[:, 0], positions[:, 1], positions[:, 2],
               s=style.joint_size, c=style.joint_color, marker='o')

    for parent, child in _bones(_parents_of(hierarchy)):
        ax.plot(
            [positions[parent, 0], positions[child, 0]],
            [positions[parent, 1], positions[child, 1]],
            [positions[parent, 2], positions[child, 2]],
            c=style.bone_color, linewidth=style.bone_width
        )

    if show_labels:
        for joint, pos in zip(hierarchy, positions):
            ax.text(pos[0], pos[1], pos[2], f'  {joint.name}', fontsize=8)

    _set_equal_aspect(ax, positions)
    ax.set_xlabel('X', fontsize=style.font_size)
    ax.set_ylabel('Y', fontsize=style.font_size)
    ax.set_zlabel('Z', fontsize=style.font_size)
    ax.set_title(title, fontsize=style.font_size + 2)

    return fig, ax


def plot_pose_sequence(
    hierarchy,
    world_sequence: Sequence[Union[torch.Tensor, np.ndarray]],
    style: PlotStyle = None,
    trail_alpha: float = 0.3,
    title: str = 'Skeleton Animation',
):
    """
    Plot several poses of one skeleton, oldest faded, colored by time.

    Args:
        hierarchy: SkeletonHierarchy
        world_sequence: List of (J, 4, 4) world transforms
        style: PlotStyle configuration
        trail_alpha: Alpha of the first pose
        title: Plot title

    Returns:
        Tuple of (figure, axis)
    """
    plt = _ensure_matplotlib()
    style = style or DEFAULT_STYLE

    fig = plt.figure(figsize=style.figsize, dpi=style.dpi)
    ax = fig.add_subplot(111, projection='3d')

    cmap = plt.get_cmap(style.cmap_sequential)
    bones = _bones(_parents_of(hierarchy))
    n_frames = len(world_sequence)
    all_positions = []

    for i, world in enumerate(world_sequence):
        positions = joint_positions(world)[:len(hierarchy)]
        all_positions.append(positions)
        alpha = trail_alpha + (1 - trail_alpha) * (i / max(1, n_frames - 1))
        color = cmap(i / max(1, n_frames - 1))

        for parent, child in bones:
            ax.plot(
                [positions[parent, 0], positions[child, 0]],
                [positions[parent, 1], positions[child, 1]],
                [positions[parent, 2], positions[child, 2]],
                c=color, linewidth=style.bone_width, alpha=alpha
            )

    sm = plt.cm.ScalarMappable(cmap=cmap, norm=plt.Normalize(vmin=0, vmax=1))
    sm.set_array([])
    plt.colorbar(sm, ax=ax, shrink=0.6, label='Time')

    if all_positions:
        _set_equal_aspect(ax, np.concatenate(all_positions, axis=0))
    ax.set_xlabel('X', fontsize=style.font_size)
    ax.set_ylabel('Y', fontsize=style.font_size)
    ax.set_zlabel('Z', fontsize=style.font_size)
    ax.set_title(title, fontsize=style.font_size + 2)

    return fig, ax
