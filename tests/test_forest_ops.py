"""
Tests for splitting, combining and rescaling forests.
"""

import numpy as np
import pytest

from conftest import make_tree
from qsmtree.core.data_type import Forest, Tree
from qsmtree.core.forest_ops import combine_forests, scale_attributes, split_forest


def make_stem(x: float, y: float, radius: float, attributes=None, attribute_names=None) -> Tree:
    tree = make_tree([[x, y, 0.0], [x, y, 2.0]], [radius, radius], [-1, 0], attribute_names)
    if attributes is not None:
        for segment in tree.segments:
            segment.attributes = list(attributes)
    return tree


@pytest.fixture
def row_forest() -> Forest:
    """Five stems along x, thickening with distance."""
    return Forest([make_stem(float(x), 0.0, 0.1 * (x + 1)) for x in range(5)], ["row"])


class TestSplitForest:
    """Tests for split_forest."""

    def test_radius(self, row_forest: Forest) -> None:
        inside, outside = split_forest(row_forest, "radius", 0.25)

        assert len(inside) == 2
        assert len(outside) == 3
        assert inside.comments == ["row"]

    def test_plane(self, row_forest: Forest) -> None:
        inside, outside = split_forest(row_forest, "plane", [2.5, 0.0, 0.0])

        assert [tree.root.tip[0] for tree in inside] == [0.0, 1.0, 2.0]
        assert [tree.root.tip[0] for tree in outside] == [3.0, 4.0]

    def test_box(self, row_forest: Forest) -> None:
        inside, outside = split_forest(row_forest, "box", [1.5, 1.0, 1.0])

        assert [tree.root.tip[0] for tree in inside] == [0.0, 1.0]
        assert len(outside) == 3

    def test_attribute(self) -> None:
        names = ["age"]
        forest = Forest([make_stem(0.0, 0.0, 0.1, [age], names) for age in (5.0, 20.0, 40.0)])

        inside, outside = split_forest(forest, "attribute", 30.0, "age")

        assert len(inside) == 2
        assert len(outside) == 1

    def test_missing_attribute_raises(self, row_forest: Forest) -> None:
        with pytest.raises(KeyError):
            split_forest(row_forest, "attribute", 1.0, "age")

    def test_colour(self, row_forest: Forest) -> None:
        names = ["red", "green", "blue"]
        red = make_stem(0.0, 0.0, 0.1, [0.9, 0.1, 0.1], names)
        green = make_stem(1.0, 0.0, 0.1, [0.1, 0.9, 0.1], names)
        forest = Forest([red, green, row_forest.trees[0]])

        inside, outside = split_forest(forest, "colour", [0.5, 0.0, 0.0])

        # The uncoloured stem is skipped
        assert len(inside) + len(outside) == 2
        assert inside.trees[0].root.tip[0] == 1.0
        assert outside.trees[0].root.tip[0] == 0.0

    def test_unknown_criterion(self, row_forest: Forest) -> None:
        with pytest.raises(NotImplementedError):
            split_forest(row_forest, "species", 1.0)

    def test_returns_copies(self, row_forest: Forest) -> None:
        inside, outside = split_forest(row_forest, "radius", 10.0)

        assert len(outside) == 0
        inside.trees[0].root.radius = 5.0
        assert row_forest.trees[0].root.radius == pytest.approx(0.1)


class TestCombineForests:
    """Tests for combine_forests."""

    def test_concatenates(self, row_forest: Forest, small_forest: Forest) -> None:
        combined = combine_forests([row_forest, Forest(), small_forest])

        assert len(combined) == 8
        assert combined.comments == ["row", "test forest"]

    def test_schema_mismatch(self, row_forest: Forest) -> None:
        other = Forest([make_stem(0.0, 0.0, 0.1, [1.0], ["age"])])

        with pytest.raises(ValueError):
            combine_forests([row_forest, other])

    def test_empty(self) -> None:
        assert len(combine_forests([])) == 0


class TestScaleAttributes:
    """Tests for scale_attributes."""

    @pytest.fixture
    def aged_forest(self) -> Forest:
        names = ["age", "height"]
        return Forest([make_stem(0.0, 0.0, 0.1, [10.0, 4.0], names), make_stem(3.0, 0.0, 0.1, [20.0, 8.0], names)])

    def test_single_scale(self, aged_forest: Forest) -> None:
        scaled = scale_attributes(aged_forest, ["age"], 2.0)

        assert np.allclose(scaled.trees[1].get_attribute("age"), 40.0)
        assert np.allclose(scaled.trees[1].get_attribute("height"), 8.0)
        assert np.allclose(aged_forest.trees[1].get_attribute("age"), 20.0)

    def test_per_attribute_scales(self, aged_forest: Forest) -> None:
        scaled = scale_attributes(aged_forest, ["age", "height"], [0.5, 0.25])

        assert np.allclose(scaled.trees[0].get_attribute("age"), 5.0)
        assert np.allclose(scaled.trees[0].get_attribute("height"), 1.0)

    def test_length_mismatch(self, aged_forest: Forest) -> None:
        with pytest.raises(ValueError):
            scale_attributes(aged_forest, ["age", "height"], [0.5])

    def test_missing_attribute(self, aged_forest: Forest) -> None:
        with pytest.raises(KeyError):
            scale_attributes(aged_forest, ["diameter"], 2.0)
