"""
Tests for skinning matrix evaluation.
"""

import logging

import numpy as np
import pytest
import torch

from mocap_rig.core.exceptions import InvalidSkeletonError, InvalidSkinError
from mocap_rig.data.asset import SkinWeights
from mocap_rig.skeleton.hierarchy import SkeletonHierarchy
from mocap_rig.skeleton.skinning import (
    SkinningEvaluator,
    compose_world_transforms,
    compute_skinning_matrices,
    resolve_local_transforms,
    skin_vertices,
)
from mocap_rig.utils.config import SkinningConfig
from mocap_rig.utils.transforms import (
    identity_transforms,
    rotation_matrix_degrees,
    translation_matrix,
)


# =============================================================================
# Pose Composition Tests
# =============================================================================

class TestComposition:
    """Tests for hierarchy composition."""

    def test_rest_pose_is_identity(self, chain_skeleton):
        """When the rest pose composes to the bind pose, every skin matrix is identity."""
        skin = compute_skinning_matrices(chain_skeleton)
        assert torch.allclose(skin, identity_transforms(3), atol=1e-6)

    def test_identity_locals_identity_binds(self, two_joint_skeleton):
        """Identity locals on identity binds give identity skinning."""
        skin = compute_skinning_matrices(two_joint_skeleton, identity_transforms(2))
        assert torch.allclose(skin, identity_transforms(2))

    def test_root_rotation_reaches_leaf(self, chain_skeleton, chain_rest):
        """A rotation applied only at the root moves the leaf in the same tick."""
        locals_ = chain_rest.clone()
        locals_[0] = rotation_matrix_degrees([0.0, 0.0, 1.0], 90.0)
        world = compose_world_transforms(chain_skeleton, locals_)
        assert torch.allclose(world[2][:3, 3], torch.tensor([0.0, 2.0, 0.0]), atol=1e-6)

    def test_world_times_inverse_bind(self, chain_skeleton, chain_rest):
        """skin = world @ inverse(bind) for every joint."""
        locals_ = chain_rest.clone()
        locals_[1] = locals_[1] @ rotation_matrix_degrees([1.0, 0.0, 0.0], 30.0)
        world = compose_world_transforms(chain_skeleton, locals_)
        skin = compute_skinning_matrices(chain_skeleton, locals_)
        expected = world @ torch.linalg.inv(chain_skeleton.bind_transforms)
        assert torch.allclose(skin, expected, atol=1e-6)

    def test_child_inherits_root_rotation(self, two_joint_skeleton):
        """Root at 90 degrees about Y, child with zero offset: child skin == root rotation."""
        rotation = rotation_matrix_degrees([0.0, 1.0, 0.0], 90.0)
        skin = compute_skinning_matrices(two_joint_skeleton, overrides={0: rotation})
        assert torch.allclose(skin[1], rotation, atol=1e-6)
        assert torch.allclose(skin[0], rotation, atol=1e-6)

    def test_order_independent_input(self):
        """Children listed before parents still compose from same-tick parents."""
        paths = ['root/a/b', 'root/a', 'root']
        rest = torch.stack([
            translation_matrix([1.0, 0.0, 0.0]),
            translation_matrix([1.0, 0.0, 0.0]),
            torch.eye(4),
        ])
        skeleton = SkeletonHierarchy.build(paths, identity_transforms(3), rest)
        locals_ = rest.clone()
        locals_[2] = translation_matrix([0.0, 5.0, 0.0])
        world = compose_world_transforms(skeleton, locals_)
        assert torch.allclose(world[0][:3, 3], torch.tensor([2.0, 5.0, 0.0]))


# =============================================================================
# Local Resolution Tests
# =============================================================================

class TestResolveLocals:
    """Tests for filling in local transforms."""

    def test_short_input_padded_with_rest(self, chain_skeleton, chain_rest):
        """Missing trailing locals default to the rest pose."""
        locals_ = resolve_local_transforms(chain_skeleton, identity_transforms(1))
        assert torch.allclose(locals_[0], torch.eye(4))
        assert torch.allclose(locals_[1:], chain_rest[1:])

    def test_overrides_replace_entries(self, chain_skeleton, chain_rest):
        """Overrides replace only their joints."""
        override = translation_matrix([0.0, 3.0, 0.0])
        locals_ = resolve_local_transforms(chain_skeleton, overrides={2: override})
        assert torch.allclose(locals_[2], override)
        assert torch.allclose(locals_[:2], chain_rest[:2])

    def test_out_of_range_override_skipped(self, chain_skeleton, chain_rest):
        """An override past the joint count is ignored."""
        locals_ = resolve_local_transforms(chain_skeleton, overrides={9: torch.eye(4)})
        assert torch.allclose(locals_, chain_rest)

    def test_non_finite_falls_back_to_rest(self, chain_skeleton, chain_rest, caplog):
        """NaN locals are replaced by the rest pose with a warning."""
        bad = torch.full((4, 4), float('nan'))
        with caplog.at_level(logging.WARNING):
            locals_ = resolve_local_transforms(chain_skeleton, overrides={1: bad})
        assert torch.allclose(locals_[1], chain_rest[1])
        assert 'Non-finite' in caplog.text


# =============================================================================
# Evaluator Tests
# =============================================================================

class TestSkinningEvaluator:
    """Tests for the fixed-capacity buffer."""

    def test_capacity_padding_is_identity(self, chain_skeleton):
        """Slots past the joint count hold identity."""
        evaluator = SkinningEvaluator(chain_skeleton, capacity=8)
        locals_ = identity_transforms(3)
        locals_[0] = rotation_matrix_degrees([0.0, 1.0, 0.0], 45.0)
        buffer = evaluator.evaluate(locals_)
        assert buffer.shape == (8, 4, 4)
        assert torch.allclose(buffer[3:], identity_transforms(5))

    def test_buffer_reused(self, chain_skeleton):
        """The same tensor is overwritten each evaluation."""
        evaluator = SkinningEvaluator(chain_skeleton, capacity=4)
        first = evaluator.evaluate()
        second = evaluator.evaluate(overrides={0: translation_matrix([1.0, 0.0, 0.0])})
        assert first is second
        assert torch.allclose(second[0][:3, 3], torch.tensor([1.0, 0.0, 0.0]))

    def test_recomputed_every_call(self, chain_skeleton):
        """Changing an ancestor changes descendants on the next call."""
        evaluator = SkinningEvaluator(chain_skeleton)
        evaluator.evaluate(overrides={0: translation_matrix([1.0, 0.0, 0.0])})
        leaf_before = evaluator.world_transforms[2].clone()
        evaluator.evaluate(overrides={0: translation_matrix([0.0, 1.0, 0.0])})
        leaf_after = evaluator.world_transforms[2]
        assert not torch.allclose(leaf_before, leaf_after)

    def test_capacity_too_small(self, chain_skeleton):
        """A buffer smaller than the skeleton is rejected."""
        with pytest.raises(InvalidSkeletonError):
            SkinningEvaluator(chain_skeleton, capacity=2)

    def test_as_numpy(self, chain_skeleton):
        """as_numpy returns a contiguous float32 array."""
        evaluator = SkinningEvaluator(chain_skeleton, capacity=4)
        evaluator.evaluate()
        array = evaluator.as_numpy()
        assert array.dtype == np.float32
        assert array.flags['C_CONTIGUOUS']
        assert array.shape == (4, 4, 4)


# =============================================================================
# Vertex Skinning Tests
# =============================================================================

class TestSkinVertices:
    """Tests for linear blend skinning of vertices."""

    def test_rest_pose_unchanged(self, chain_skeleton):
        """Identity skin matrices leave vertices in place."""
        vertices = torch.tensor([[0.5, 0.0, 0.0], [1.5, 0.1, 0.0]])
        skin = SkinWeights(np.array([[0, 1], [1, 2]]), np.array([[0.5, 0.5], [1.0, 0.0]], dtype=np.float32))
        matrices = compute_skinning_matrices(chain_skeleton)
        assert torch.allclose(skin_vertices(vertices, skin, matrices), vertices, atol=1e-6)

    def test_blend(self):
        """Weights blend the per-joint transformed positions."""
        matrices = torch.stack([torch.eye(4), translation_matrix([2.0, 0.0, 0.0])])
        skin = SkinWeights(np.array([[0, 1]]), np.array([[0.75, 0.25]], dtype=np.float32))
        deformed = skin_vertices(torch.zeros(1, 3), skin, matrices)
        assert torch.allclose(deformed, torch.tensor([[0.5, 0.0, 0.0]]))

    def test_index_out_of_range(self):
        """Indices must address a matrix."""
        skin = SkinWeights(np.array([[3]]), np.array([[1.0]], dtype=np.float32))
        with pytest.raises(InvalidSkinError):
            skin_vertices(torch.zeros(1, 3), skin, identity_transforms(2))


class TestEvaluatorConfig:
    """Tests for sizing the buffer from SkinningConfig."""

    def test_default_capacity(self, chain_skeleton):
        """The default config reserves the renderer's 128 slots."""
        evaluator = SkinningEvaluator.from_config(chain_skeleton, SkinningConfig())
        buffer = evaluator.evaluate()
        assert buffer.shape == (128, 4, 4)
        assert torch.allclose(buffer[3:], identity_transforms(125))

    def test_config_capacity_too_small(self, chain_skeleton):
        """A configured capacity below the joint count is rejected."""
        with pytest.raises(InvalidSkeletonError):
            SkinningEvaluator.from_config(chain_skeleton, SkinningConfig(max_joints=2))
