# SmartQSM TreeTools - project-lightlin.github.io
# 
# Copyright (C) 2025-, YANG Jie <nj_yang_jie@foxmail.com>
# All rights reserved.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or 
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
# 
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

import logging
from typing import Dict, List, Optional
import numpy as np
import pandas as pd
from qsmtree.core.data_type import Forest, Tree, build_children
from qsmtree.core.allometry import TreeStatistics, analyze_tree, get_branch_point_lengths
from qsmtree.core.power_law import calculate_power_law

logger = logging.getLogger(__name__)

EPS: float = 1e-10
WOOD_DENSITY: float = 500. # kg/m^3

SEGMENT_ATTRIBUTES = ["volume", "diameter", "length", "strength", "min_strength", "dominance", "angle", "bend", "children", "dimension"]
TREE_ATTRIBUTES = ["height", "volume", "max_diameter", "length", "strength", "dominance", "angle", "bend", "children", "dimension", "monocotal", "DBH"]

class TreeInformation:
    statistics: TreeStatistics
    segment_dataframe: pd.DataFrame
    tree_dataframe: pd.DataFrame
    children: List[List[int]]

    _tree: Tree
    _segment_parameter_to_dtype: Dict[str, str]
    _tree_parameter_to_dtype: Dict[str, str]

    def __init__(
            self,
            tree: Tree,
            prune_length: float = 0.1,
            breast_height: float = 1.3,
            min_branch_count: int = 6,
            min_monocotal_branches: int = 5
    ) -> None:
        for name in SEGMENT_ATTRIBUTES:
            if tree.has_attribute(name):
                raise ValueError(f"Cannot add information that is already present: {name}")
        self._tree = tree
        self.children = build_children(tree)
        self.statistics = analyze_tree(
            tree, self.children,
            prune_length=prune_length,
            breast_height=breast_height,
            min_branch_count=min_branch_count,
            min_monocotal_branches=min_monocotal_branches
        )

        self._segment_parameter_to_dtype = {
            "id": "int64",
            "parent": "int64",
            "volume_m3": "float64",
            "diameter_m": "float64",
            "length_m": "float64",
            "strength": "float64",
            "min_strength": "float64",
            "dominance": "float64",
            "angle_deg": "float64",
            "bend": "float64",
            "children": "int64",
        }
        self._tree_parameter_to_dtype = {
            "height_m": "float64",
            "volume_m3": "float64",
            "max_diameter_m": "float64",
            "length_m": "float64",
            "strength": "float64",
            "dominance": "float64",
            "angle_deg": "float64",
            "bend": "float64",
            "children": "float64",
            "dimension": "float64",
            "monocotal": "float64",
            "DBH_m": "float64",
        }
        self._extract()
        return

    def _extract(self) -> None:
        tree: Tree = self._tree
        statistics: TreeStatistics = self.statistics
        num_segments: int = len(tree.segments)
        radii: np.ndarray = tree.radii()
        lengths: np.ndarray = statistics.lengths

        segment_lengths: np.ndarray = np.array([tree.segment_length(id) for id in range(num_segments)])
        volumes: np.ndarray = np.pi * segment_lengths * radii ** 2
        volumes[0] = 0.
        diameters: np.ndarray = 2. * radii
        strengths: np.ndarray = diameters ** 0.75 / np.maximum(lengths, EPS)

        # Trunk
        tree_volume: float = float(np.sum(volumes))
        max_diameter: float = float(np.max(diameters[1:])) if num_segments > 1 else 0.
        volumes[0] = tree_volume
        diameters[0] = max_diameter
        strengths[0] = max_diameter ** 0.75 / max(lengths[0], EPS)

        # Weakest point between each segment and the root
        min_strengths: np.ndarray = strengths.copy()
        for id in range(1, num_segments):
            parent: int = tree.segments[id].parent_id
            if parent > 0:
                min_strengths[id] = min(strengths[id], min_strengths[parent])

        bifurcation = statistics.bifurcation
        dominances: np.ndarray = bifurcation.dominances.copy()
        angles: np.ndarray = bifurcation.angles.copy()
        num_children: np.ndarray = bifurcation.num_children.astype(np.float64)
        tree_children: float = 0.
        if bifurcation.total_weight > 0.:
            weights: np.ndarray = np.sqrt(bifurcation.weights)
            tree_children = float(np.sum(weights * num_children) / bifurcation.total_weight)
        dominances[0] = bifurcation.tree_dominance
        angles[0] = bifurcation.tree_angle
        num_children[0] = len(self.children[0])

        bends: np.ndarray = np.zeros(num_segments)
        bends[statistics.dominant_path] = statistics.bend
        dimension: float = statistics.dimension if statistics.dimension is not None else 0.

        for name, values in zip(
                SEGMENT_ATTRIBUTES,
                [volumes, diameters, lengths, strengths, min_strengths, dominances, angles, bends, num_children, np.full(num_segments, dimension)]
        ):
            tree.add_attribute(name)
            tree.set_attribute(name, values)
        for name, value in zip(
                TREE_ATTRIBUTES,
                [statistics.height, tree_volume, max_diameter, lengths[0], strengths[0], bifurcation.tree_dominance,
                 bifurcation.tree_angle, statistics.bend, tree_children, dimension, statistics.monocotal, statistics.dbh]
        ):
            tree.set_tree_attribute(name, value)

        self.segment_dataframe = pd.DataFrame({
            "id": np.arange(num_segments),
            "parent": tree.parent_ids(),
            "volume_m3": volumes,
            "diameter_m": diameters,
            "length_m": lengths,
            "strength": strengths,
            "min_strength": min_strengths,
            "dominance": dominances,
            "angle_deg": angles,
            "bend": bends,
            "children": num_children,
        }).astype(self._segment_parameter_to_dtype)
        self.tree_dataframe = pd.DataFrame({
            "height_m": [statistics.height],
            "volume_m3": [tree_volume],
            "max_diameter_m": [max_diameter],
            "length_m": [lengths[0]],
            "strength": [strengths[0]],
            "dominance": [bifurcation.tree_dominance],
            "angle_deg": [bifurcation.tree_angle],
            "bend": [statistics.bend],
            "children": [tree_children],
            "dimension": [statistics.dimension if statistics.dimension is not None else np.nan],
            "monocotal": [statistics.monocotal],
            "DBH_m": [statistics.dbh],
        }).astype(self._tree_parameter_to_dtype)
        return

class ForestInformation:
    tree_informations: List[TreeInformation]
    tree_dataframe: pd.DataFrame
    power_law_dataframe: pd.DataFrame
    summary_dataframe: pd.DataFrame
    total_volume: float
    total_mass: float

    def __init__(self, forest: Forest, graph_directory: Optional[str] = None, **params) -> None:
        if len(forest) == 0:
            raise ValueError("Forest has no trees.")
        self.tree_informations = []
        for tree_id, tree in enumerate(forest.trees):
            self.tree_informations.append(TreeInformation(tree, **params))
            logger.debug(f"Extracted information of tree {tree_id}")
        self.tree_dataframe = pd.concat(
            [information.tree_dataframe for information in self.tree_informations],
            ignore_index=True
        )
        self._fit_power_laws(forest, graph_directory)
        self._summarize()
        return

    def _fit_power_laws(self, forest: Forest, graph_directory: Optional[str]) -> None:
        trunk_diameters: np.ndarray = np.array([2. * tree.root.radius for tree in forest.trees])
        tree_lengths: np.ndarray = self.tree_dataframe["length_m"].to_numpy()
        branch_lengths: np.ndarray = np.concatenate([
            get_branch_point_lengths(information.children, information.statistics.lengths)
            for information in self.tree_informations
        ])
        rows: List[Dict[str, float]] = []
        for name, values in [("trunk_diameter", trunk_diameters), ("tree_length", tree_lengths), ("branch_length", branch_lengths)]:
            values = values[values > 0.]
            graph_file: Optional[str] = None
            if graph_directory is not None:
                graph_file = f"{graph_directory}/{name}_power_law.svg"
            c, d, r2 = calculate_power_law(values, graph_file, name)
            rows.append({"quantity": name, "count": len(values), "c": c, "d": d, "r2": r2})
        self.power_law_dataframe = pd.DataFrame(rows).astype(
            {"quantity": "str", "count": "int64", "c": "float64", "d": "float64", "r2": "float64"}
        )
        return

    def _summarize(self) -> None:
        self.total_volume = float(self.tree_dataframe["volume_m3"].sum())
        self.total_mass = WOOD_DENSITY * self.total_volume
        columns: List[str] = ["max_diameter_m", "height_m", "volume_m3", "strength", "dominance", "angle_deg", "bend", "children", "dimension", "monocotal", "DBH_m"]
        # Unbranched trees carry no dominance or angle
        branched: pd.Series = self.tree_dataframe["children"] > 0.
        rows: List[Dict[str, float]] = []
        for column in columns:
            values: pd.Series = self.tree_dataframe[column]
            if column in ("dominance", "angle_deg", "children"):
                values = values[branched]
            values = values.dropna()
            rows.append({
                "parameter": column,
                "mean": values.mean() if len(values) > 0 else np.nan,
                "min": values.min() if len(values) > 0 else np.nan,
                "max": values.max() if len(values) > 0 else np.nan,
            })
        self.summary_dataframe = pd.DataFrame(rows).set_index("parameter")
        return
