"""Shared tree builders for the test suite."""

from typing import Callable, List, Optional

import numpy as np
import pytest

from qsmtree.core.data_type import Forest, Segment, Tree


def make_tree(
    tips: List[List[float]],
    radii: List[float],
    parents: List[int],
    attribute_names: Optional[List[str]] = None,
) -> Tree:
    """Build a tree from parallel lists of tips, radii and parent ids."""
    names = attribute_names if attribute_names is not None else []
    segments = [
        Segment(tip, radius, parent, [0.0] * len(names))
        for tip, radius, parent in zip(tips, radii, parents)
    ]
    return Tree(segments, names)


def make_binary_tree(
    depth: int,
    trunk_length: float = 2.0,
    trunk_radius: float = 0.2,
    scale: float = 0.7,
    angle: float = 30.0,
    dominance: float = 0.0,
) -> Tree:
    """Build a binary tree with area-conserving forks.

    The larger child of every fork takes ``(1 + dominance) / 2`` of the
    parent's cross-sectional area.
    """
    rng = np.random.default_rng(0)
    segments = [
        Segment([0.0, 0.0, 0.0], trunk_radius, -1),
        Segment([0.0, 0.0, trunk_length], trunk_radius, 0),
    ]
    fraction = 0.5 * (1.0 + dominance)
    frontier = [(1, np.array([0.0, 0.0, 1.0]), trunk_length * scale, 0)]
    while frontier:
        parent, direction, length, level = frontier.pop(0)
        if level >= depth:
            continue
        heading = rng.uniform(0.0, 2.0 * np.pi)
        side = np.array([np.cos(heading), np.sin(heading), 0.0])
        side -= direction * np.dot(side, direction)
        side /= np.linalg.norm(side)
        half = np.radians(angle) / 2.0
        parent_radius = segments[parent].radius
        for sign, share in ((1.0, fraction), (-1.0, 1.0 - fraction)):
            child_direction = np.cos(half) * direction + sign * np.sin(half) * side
            tip = segments[parent].tip + child_direction * length
            segments.append(Segment(tip, parent_radius * np.sqrt(share), parent))
            frontier.append((len(segments) - 1, child_direction, length * scale, level + 1))
    return Tree(segments)


def make_random_tree(num_segments: int, seed: int = 0) -> Tree:
    """Random topology with parents always stored before children."""
    rng = np.random.default_rng(seed)
    segments = [Segment([0.0, 0.0, 0.0], 0.3, -1)]
    for id in range(1, num_segments):
        parent = int(rng.integers(0, id))
        tip = segments[parent].tip + rng.normal(0.0, 0.3, 3) + np.array([0.0, 0.0, 0.5])
        radius = max(segments[parent].radius * rng.uniform(0.5, 0.95), 1e-4)
        segments.append(Segment(tip, radius, parent))
    return Tree(segments)


@pytest.fixture
def trunk_only_tree() -> Tree:
    return make_tree([[0.0, 0.0, 0.0]], [0.2], [-1])


@pytest.fixture
def y_tree() -> Tree:
    """A straight trunk splitting into two equal branches at 2 m."""
    r = 0.1
    return make_tree(
        [
            [0.0, 0.0, 0.0],
            [0.0, 0.0, 1.0],
            [0.0, 0.0, 2.0],
            [-0.5, 0.0, 2.5],
            [-1.0, 0.0, 3.0],
            [0.5, 0.0, 2.5],
            [1.0, 0.0, 3.0],
        ],
        [r, r, r, r / np.sqrt(2.0), r / np.sqrt(2.0), r / np.sqrt(2.0), r / np.sqrt(2.0)],
        [-1, 0, 1, 2, 3, 2, 5],
    )


@pytest.fixture
def binary_tree_factory() -> Callable[..., Tree]:
    return make_binary_tree


@pytest.fixture
def random_tree_factory() -> Callable[..., Tree]:
    return make_random_tree


@pytest.fixture
def small_forest(y_tree: Tree) -> Forest:
    other = y_tree.copy()
    for segment in other.segments:
        segment.tip = segment.tip + np.array([5.0, 0.0, 0.0])
    return Forest([y_tree, other, make_binary_tree(4)], ["test forest"])
