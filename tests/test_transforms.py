"""
Tests for 4x4 transform primitives.

Column-vector convention: translation in M[:3, 3], points map as M @ p.
"""

import math

import pytest
import torch

from mocap_rig.core.exceptions import DegenerateTransformError
from mocap_rig.utils.quaternion import quaternion_from_axis_angle
from mocap_rig.utils.transforms import (
    compose,
    compose_trs,
    decompose_transform,
    decompose_transforms_safe,
    identity_transforms,
    invert_transform,
    invert_transforms_safe,
    is_finite_transform,
    rotation_matrix_axis_angle,
    rotation_matrix_degrees,
    scale_matrix,
    translation_matrix,
    transpose_transform,
)


def _apply(M, point):
    homo = torch.cat([torch.as_tensor(point, dtype=torch.float32), torch.ones(1)])
    return (M @ homo)[:3]


# =============================================================================
# Construction Tests
# =============================================================================

class TestConstruction:
    """Tests for building transforms."""

    def test_translation_moves_points(self):
        """translation_matrix puts the offset in the last column."""
        M = translation_matrix([1.0, 2.0, 3.0])
        assert torch.allclose(M[:3, 3], torch.tensor([1.0, 2.0, 3.0]))
        assert torch.allclose(_apply(M, [1.0, 1.0, 1.0]), torch.tensor([2.0, 3.0, 4.0]))

    def test_uniform_scale_from_float(self):
        """A float scale is uniform."""
        M = scale_matrix(2.0)
        assert torch.allclose(torch.diagonal(M), torch.tensor([2.0, 2.0, 2.0, 1.0]))

    def test_rotation_axis_angle(self):
        """90 degrees about Y maps +X to -Z."""
        M = rotation_matrix_axis_angle([0.0, 1.0, 0.0], math.pi / 2)
        assert torch.allclose(_apply(M, [1.0, 0.0, 0.0]), torch.tensor([0.0, 0.0, -1.0]), atol=1e-6)

    def test_degrees_wrapper_matches_radians(self):
        """rotation_matrix_degrees is a thin wrapper over radians."""
        a = rotation_matrix_degrees([1.0, 0.0, 0.0], 30.0)
        b = rotation_matrix_axis_angle([1.0, 0.0, 0.0], math.radians(30.0))
        assert torch.allclose(a, b)

    def test_compose_trs_order(self):
        """compose_trs is T @ R @ S."""
        t = torch.tensor([1.0, 0.0, 0.0])
        q = quaternion_from_axis_angle(torch.tensor([0.0, 0.0, 1.0]), math.pi / 2)
        s = torch.tensor([2.0, 2.0, 2.0])
        expected = translation_matrix(t) @ rotation_matrix_axis_angle([0.0, 0.0, 1.0], math.pi / 2) @ scale_matrix(s)
        assert torch.allclose(compose_trs(t, q, s), expected, atol=1e-6)

    def test_compose_multiplies_left_to_right(self):
        """compose(A, B, C) == A @ B @ C."""
        A = translation_matrix([1.0, 0.0, 0.0])
        B = rotation_matrix_degrees([0.0, 0.0, 1.0], 90.0)
        C = scale_matrix(3.0)
        assert torch.allclose(compose(A, B, C), A @ B @ C)

    def test_compose_requires_input(self):
        """compose() without arguments is an error."""
        with pytest.raises(ValueError):
            compose()

    def test_transpose(self):
        """transpose_transform swaps the last two axes."""
        M = torch.arange(16.0).reshape(4, 4)
        assert torch.equal(transpose_transform(M), M.T)


# =============================================================================
# Inversion Tests
# =============================================================================

class TestInversion:
    """Tests for inverting transforms."""

    def test_inverse_of_rigid_transform(self):
        """M @ inv(M) is identity."""
        M = translation_matrix([1.0, -2.0, 0.5]) @ rotation_matrix_degrees([1.0, 1.0, 0.0], 40.0)
        assert torch.allclose(M @ invert_transform(M), torch.eye(4), atol=1e-6)

    def test_singular_raises(self):
        """A collapsed basis cannot be inverted."""
        with pytest.raises(DegenerateTransformError):
            invert_transform(scale_matrix([1.0, 0.0, 1.0]))

    def test_non_finite_raises(self):
        """NaN entries are rejected."""
        M = torch.eye(4)
        M[0, 3] = float('nan')
        with pytest.raises(DegenerateTransformError):
            invert_transform(M)

    def test_safe_inverse_substitutes_identity(self):
        """Degenerate entries invert to identity and are flagged."""
        M = torch.stack([translation_matrix([1.0, 0.0, 0.0]), scale_matrix([0.0, 1.0, 1.0])])
        inverses, degenerate = invert_transforms_safe(M)
        assert degenerate.tolist() == [False, True]
        assert torch.allclose(inverses[0], translation_matrix([-1.0, 0.0, 0.0]))
        assert torch.allclose(inverses[1], torch.eye(4))

    def test_is_finite(self):
        """is_finite_transform reduces over the matrix."""
        M = identity_transforms(2)
        M[1, 2, 2] = float('inf')
        assert is_finite_transform(M).tolist() == [True, False]


# =============================================================================
# Decomposition Tests
# =============================================================================

class TestDecomposition:
    """Tests for TRS decomposition."""

    def test_roundtrip_non_uniform_scale(self):
        """Non-uniform scale decomposes without NaN and recomposes exactly."""
        t = torch.tensor([0.5, -1.0, 2.0])
        q = quaternion_from_axis_angle(torch.tensor([1.0, 2.0, 3.0]), 0.7)
        s = torch.tensor([1.0, 3.0, 0.5])
        M = compose_trs(t, q, s)

        t2, q2, s2 = decompose_transform(M)
        assert torch.isfinite(q2).all()
        assert torch.allclose(t2, t, atol=1e-6)
        assert torch.allclose(s2, s, atol=1e-5)
        assert torch.allclose(compose_trs(t2, q2, s2), M, atol=1e-5)

    def test_negative_determinant_flips_x_scale(self):
        """A mirrored basis decomposes with a negative x scale."""
        M = scale_matrix([1.0, 1.0, -1.0])
        t, q, s = decompose_transform(M)
        assert s[0] < 0
        assert torch.allclose(compose_trs(t, q, s), M, atol=1e-6)

    def test_zero_scale_raises(self):
        """A near-zero basis vector reports a degenerate transform."""
        with pytest.raises(DegenerateTransformError):
            decompose_transform(scale_matrix([1.0, 1e-9, 1.0]))

    def test_safe_decompose_substitutes_identity(self):
        """Degenerate entries decompose to the identity TRS."""
        M = torch.stack([translation_matrix([1.0, 2.0, 3.0]), scale_matrix([0.0, 0.0, 0.0])])
        t, q, s, degenerate = decompose_transforms_safe(M)
        assert degenerate.tolist() == [False, True]
        assert torch.allclose(t[1], torch.zeros(3))
        assert torch.allclose(q[1], torch.tensor([1.0, 0.0, 0.0, 0.0]))
        assert torch.allclose(s[1], torch.ones(3))
        assert torch.allclose(t[0], torch.tensor([1.0, 2.0, 3.0]))

    def test_batched_shapes(self):
        """Batched input (F, K, 4, 4) keeps its leading dimensions."""
        M = identity_transforms(5, 3)
        t, q, s = decompose_transform(M)
        assert t.shape == (5, 3, 3)
        assert q.shape == (5, 3, 4)
        assert s.shape == (5, 3, 3)
