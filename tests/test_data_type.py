"""
Tests for the segment tree model.

These tests verify children construction, topology checks and the
attribute schema helpers.
"""

import numpy as np
import pytest

from conftest import make_tree
from qsmtree.core.data_type import Colour, Forest, Segment, Tree, TopologyError, build_children


class TestBuildChildren:
    """Tests for the children list."""

    def test_y_tree_children(self, y_tree: Tree) -> None:
        """Each segment lists its children in index order."""
        assert build_children(y_tree) == [[1], [2], [3, 5], [4], [], [6], []]

    def test_trunk_only_tree(self, trunk_only_tree: Tree) -> None:
        """A single segment has an empty child list."""
        assert build_children(trunk_only_tree) == [[]]

    def test_forward_parent_is_rejected(self) -> None:
        """Parents stored after their children are a fatal error."""
        tree = make_tree([[0, 0, 0], [0, 0, 1], [0, 0, 2]], [0.1, 0.1, 0.1], [-1, 2, 0])
        with pytest.raises(TopologyError):
            build_children(tree)

    def test_self_parent_is_rejected(self) -> None:
        """A segment cannot be its own parent."""
        tree = make_tree([[0, 0, 0], [0, 0, 1]], [0.1, 0.1], [-1, 1])
        with pytest.raises(TopologyError):
            build_children(tree)

    def test_root_must_have_no_parent(self) -> None:
        """Segment 0 must be the base."""
        tree = make_tree([[0, 0, 0], [0, 0, 1]], [0.1, 0.1], [0, 0])
        with pytest.raises(TopologyError):
            build_children(tree)

    def test_empty_tree_is_rejected(self) -> None:
        """There is no root in an empty tree."""
        with pytest.raises(TopologyError):
            build_children(Tree())

    def test_topology_error_is_a_value_error(self) -> None:
        """Callers catching ValueError also catch topology errors."""
        assert issubclass(TopologyError, ValueError)


class TestAttributes:
    """Tests for per-segment and per-tree attributes."""

    def test_add_and_set_attribute(self, y_tree: Tree) -> None:
        """New attributes are added to every segment."""
        index = y_tree.add_attribute("age", 3.0)
        assert index == 0
        assert np.allclose(y_tree.get_attribute("age"), 3.0)

        y_tree.set_attribute("age", np.arange(len(y_tree)))
        assert y_tree.segments[4].attributes[0] == 4.0

    def test_duplicate_attribute_is_rejected(self, y_tree: Tree) -> None:
        """Attribute names are unique within a schema."""
        y_tree.add_attribute("age")
        with pytest.raises(ValueError):
            y_tree.add_attribute("age")

    def test_missing_attribute(self, y_tree: Tree) -> None:
        """Looking up an unknown attribute raises KeyError."""
        with pytest.raises(KeyError):
            y_tree.attribute_id("age")

    def test_tree_attributes(self, y_tree: Tree) -> None:
        """Tree attributes are appended on first set and updated afterwards."""
        y_tree.set_tree_attribute("height", 3.0)
        y_tree.set_tree_attribute("height", 4.0)
        assert y_tree.tree_attribute_names == ["height"]
        assert y_tree.tree_attribute("height") == 4.0
        with pytest.raises(KeyError):
            y_tree.tree_attribute("DBH")

    def test_mismatched_tree_attributes(self) -> None:
        """Tree attribute names and values must line up."""
        with pytest.raises(ValueError):
            Tree([Segment([0, 0, 0], 0.1, -1)], [], ["height"], [1.0, 2.0])

    def test_validate_schema(self, y_tree: Tree) -> None:
        """A segment with the wrong number of attributes fails validation."""
        y_tree.add_attribute("age")
        y_tree.segments[3].attributes.pop()
        with pytest.raises(ValueError):
            y_tree.validate()


class TestColour:
    """Tests for colour lookup by name."""

    def test_colour_is_resolved_by_name(self) -> None:
        """Colour channels need not be stored consecutively."""
        tree = make_tree([[0, 0, 0], [0, 0, 1]], [0.1, 0.1], [-1, 0], ["blue", "age", "red", "green"])
        tree.segments[1].attributes = [0.3, 7.0, 0.1, 0.2]

        assert tree.colour_indices() == Colour(2, 3, 0)
        assert tree.colours()[1] == Colour(0.1, 0.2, 0.3)

    def test_missing_colour(self, y_tree: Tree) -> None:
        """Trees without colour attributes report no colour."""
        assert y_tree.colour_indices() is None
        with pytest.raises(KeyError):
            y_tree.colours()


class TestGeometry:
    """Tests for geometric helpers."""

    def test_segment_length(self, y_tree: Tree) -> None:
        """The root has no length, others measure tip to parent tip."""
        assert y_tree.segment_length(0) == 0.0
        assert np.isclose(y_tree.segment_length(1), 1.0)
        assert np.isclose(y_tree.segment_length(3), np.sqrt(0.5))

    def test_volume(self, y_tree: Tree) -> None:
        """Volume sums the cylinders of every non-root segment."""
        r = 0.1
        expected = np.pi * r**2 * 2.0 + 4.0 * np.pi * (r**2 / 2.0) * np.sqrt(0.5)
        assert np.isclose(y_tree.volume(), expected)

    def test_copy_is_independent(self, y_tree: Tree) -> None:
        """Copies share no mutable state with the original."""
        copy = y_tree.copy()
        copy.segments[1].tip[2] = 10.0
        copy.segments[1].radius = 1.0
        assert y_tree.segments[1].tip[2] == 1.0
        assert y_tree.segments[1].radius == 0.1

    def test_forest_copy(self, small_forest: Forest) -> None:
        """Forest copies deep-copy their trees."""
        copy = small_forest.copy()
        copy.trees[0].segments[0].radius = 5.0
        assert small_forest.trees[0].segments[0].radius != 5.0
        assert len(copy) == len(small_forest)
        assert copy.comments == small_forest.comments
