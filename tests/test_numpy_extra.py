"""
Tests for the numpy helpers.
"""

import numpy as np

from qsmtree.utils.numpy_extra import calculate_angle_between_vectors, find_a_vertical_direction_3d, normalize, rotate_vector


def test_normalize() -> None:
    assert np.allclose(normalize(np.array([3.0, 0.0, 4.0])), [0.6, 0.0, 0.8])
    assert np.allclose(normalize(np.zeros(3)), 0.0)


def test_angle_between_vectors() -> None:
    assert np.isclose(calculate_angle_between_vectors(np.array([1.0, 0.0, 0.0]), np.array([0.0, 2.0, 0.0])), 90.0)
    assert np.isclose(calculate_angle_between_vectors(np.array([1.0, 0.0, 0.0]), np.array([-1.0, 0.0, 0.0])), 180.0)
    assert calculate_angle_between_vectors(np.array([1.0, 1e-9, 0.0]), np.array([1.0, 0.0, 0.0])) > 0.0


def test_vertical_direction() -> None:
    rng = np.random.default_rng(0)
    for direction in rng.normal(size=(20, 3)):
        vertical = find_a_vertical_direction_3d(direction)
        assert np.isclose(np.linalg.norm(vertical), 1.0)
        assert np.isclose(np.dot(vertical, direction), 0.0)


def test_rotate_vector() -> None:
    rotated = rotate_vector(np.array([1.0, 0.0, 0.0]), np.array([0.0, 0.0, 2.0]), np.pi / 2.0)

    assert np.allclose(rotated, [0.0, 1.0, 0.0])
