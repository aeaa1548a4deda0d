"""
Pytest configuration and fixtures for mocap_rig tests.
"""

import matplotlib

matplotlib.use('Agg')

import pytest
import torch

from mocap_rig.animation.clip import AnimationClip, ClipJoint, make_frame
from mocap_rig.skeleton.hierarchy import SkeletonHierarchy
from mocap_rig.utils.transforms import identity_transforms, translation_matrix


@pytest.fixture
def cpu_device():
    """Force CPU device for consistent testing."""
    return torch.device('cpu')


@pytest.fixture
def chain_paths():
    """Paths of a 3-deep chain."""
    return ['root', 'root/spine', 'root/spine/head']


@pytest.fixture
def chain_rest():
    """Rest locals of the 3-deep chain: each joint one unit along +X from its parent."""
    rest = identity_transforms(3)
    rest[1] = translation_matrix([1.0, 0.0, 0.0])
    rest[2] = translation_matrix([1.0, 0.0, 0.0])
    return rest


@pytest.fixture
def chain_bind():
    """Bind poses matching the composed rest locals of the chain."""
    return torch.stack([
        translation_matrix([0.0, 0.0, 0.0]),
        translation_matrix([1.0, 0.0, 0.0]),
        translation_matrix([2.0, 0.0, 0.0]),
    ])


@pytest.fixture
def chain_skeleton(chain_paths, chain_bind, chain_rest):
    """3-deep chain hierarchy whose rest pose equals its bind pose."""
    return SkeletonHierarchy.build(chain_paths, chain_bind, chain_rest)


@pytest.fixture
def two_joint_skeleton():
    """Root and child with identity bind and rest poses."""
    return SkeletonHierarchy.build(
        ['root', 'root/child'],
        identity_transforms(2),
        identity_transforms(2),
    )


def make_clip_joints(paths, bind=None, rest=None):
    """ClipJoints for a list of paths; parents derived from the path prefix."""
    count = len(paths)
    bind = identity_transforms(count) if bind is None else bind
    rest = identity_transforms(count) if rest is None else rest
    index_of = {p: i for i, p in enumerate(paths)}
    joints = []
    for i, path in enumerate(paths):
        parent = index_of.get('/'.join(path.split('/')[:-1]))
        joints.append(ClipJoint(
            index=i,
            name=path.split('/')[-1],
            path=path,
            bind_transform=bind[i],
            rest_transform=rest[i],
            parent_index=parent,
        ))
    return joints


def make_clip(frames_transforms, duration, paths=None, name='clip', frame_rate=30.0, present=None):
    """
    Clip from a list of (K, 4, 4) frame transforms evenly spaced over duration.
    """
    count = len(frames_transforms)
    K = frames_transforms[0].shape[0] if count else len(paths or [])
    paths = paths or [f'joint_{k}' for k in range(K)]
    joints = make_clip_joints(paths)
    frames = []
    for i, transforms in enumerate(frames_transforms):
        timestamp = duration * i / max(count - 1, 1)
        mask = None if present is None else present[i]
        frames.append(make_frame(i, timestamp, transforms, mask))
    return AnimationClip(name, joints, frames, duration=duration, frame_rate=frame_rate)


@pytest.fixture
def clip_factory():
    """Build clips from per-frame transform stacks."""
    return make_clip


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
