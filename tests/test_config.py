"""
Tests for YAML configuration loading.
"""

import pytest

from qsmtree.core.data_type import Forest
from qsmtree.core.growth import Growth, grow_forest_linear
from qsmtree.core.pruning import prune_diameter
from qsmtree.core.tree_diff import ForestDiff
from qsmtree.core.tree_information import TreeInformation
from qsmtree.utils.config import REQUIRED_SECTIONS, load_default_config, load_or_update_config


class TestLoadConfig:
    """Tests for load_or_update_config."""

    def test_default_sections(self) -> None:
        config = load_default_config()

        for section in REQUIRED_SECTIONS:
            assert section in config
        assert config["allometry"]["breast_height"] == 1.3
        assert config["growth"]["seed"] is None

    def test_overlay_merges_sections(self, tmp_path) -> None:
        path = tmp_path / "user.yaml"
        path.write_text("growth:\n  length_growth: 0.5\n", encoding="utf-8")
        default = load_default_config()

        config = load_or_update_config(str(path), default)

        assert config["growth"]["length_growth"] == 0.5
        assert config["growth"]["phototropism"] == default["growth"]["phototropism"]
        # The current config is not modified
        assert default["growth"]["length_growth"] == 0.3

    def test_empty_file_keeps_current(self, tmp_path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        default = load_default_config()

        assert load_or_update_config(str(path), default) == default

    def test_missing_section(self, tmp_path) -> None:
        path = tmp_path / "partial.yaml"
        path.write_text("pruning:\n  diameter: 2.0\n", encoding="utf-8")

        with pytest.raises(KeyError):
            load_or_update_config(str(path))

    def test_not_a_mapping(self, tmp_path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_or_update_config(str(path))


class TestSectionsAsParameters:
    """Every section feeds its operation's keyword parameters."""

    def test_allometry(self, y_tree) -> None:
        config = load_default_config()

        TreeInformation(y_tree, **config["allometry"])

        assert y_tree.has_tree_attribute("DBH")

    def test_growth(self) -> None:
        config = load_default_config()
        growth = Growth()

        growth.set_params(**config["growth"])

        assert len(growth) == 1

    def test_linear_growth(self, small_forest: Forest) -> None:
        config = load_default_config()

        grown = grow_forest_linear(small_forest, 1.0, **config["linear_growth"])

        assert len(grown) == len(small_forest)

    def test_pruning_and_diff(self, small_forest: Forest) -> None:
        config = load_default_config()

        pruned = prune_diameter(small_forest, config["pruning"]["diameter"])
        diff = ForestDiff(small_forest, small_forest.copy(), estimate_growth=False, **config["diff"])

        assert len(pruned) == len(small_forest)
        assert diff.num_matches == len(small_forest)
