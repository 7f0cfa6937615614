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
from typing import Any, Dict, List, Optional, Tuple
import numpy as np
import pandas as pd
from scipy.spatial import KDTree
from qsmtree.core.data_type import Forest, Tree
from qsmtree.core.overlap import tree_overlap_volume
from qsmtree.utils.parallel import parallelize

logger = logging.getLogger(__name__)

EPS: float = 1e-10

def match_trunks(forest1: Forest, forest2: Forest, max_offset: float = 1.) -> List[int]:
    """Match every tree of forest1 to the closest unmatched trunk of forest2.

    Trunks match when their horizontal offset is below ``max_offset`` times
    the sum of the two trunk radii. Unmatched trees get -1.
    """
    matches: List[int] = [-1] * len(forest1)
    if len(forest1) == 0 or len(forest2) == 0:
        return matches
    roots2: np.ndarray = np.array([tree.root.tip[:2] for tree in forest2.trees])
    radii2: np.ndarray = np.array([tree.root.radius for tree in forest2.trees])
    kdtree: KDTree = KDTree(roots2)
    matched: np.ndarray = np.zeros(len(forest2), dtype=bool)
    for i, tree1 in enumerate(forest1.trees):
        radius1: float = tree1.root.radius
        candidates: List[int] = kdtree.query_ball_point(tree1.root.tip[:2], max_offset * (radius1 + radii2.max()))
        min_offset: float = max_offset
        for j in sorted(candidates):
            if matched[j]:
                continue
            offset: float = np.linalg.norm(tree1.root.tip[:2] - roots2[j]) / max(radius1 + radii2[j], EPS)
            if offset < min_offset:
                min_offset = offset
                matches[i] = j
        if matches[i] != -1:
            matched[matches[i]] = True
    return matches

def _overlap_fraction(overlap: float, scale: float, volume1: float, volume2: float) -> float:
    return overlap * 2. / max(scale ** 3 * volume1 + volume2, EPS)

def match_tree_scale(
        tree1: Tree,
        tree2: Tree,
        estimate_growth: bool = True,
        scale_half_range: float = 0.5,
        scale_divisions: int = 5,
        scale_stop_range: float = 0.02
) -> Tuple[float, float, float]:
    """Find the scale of tree1 about its base that best overlaps tree2.

    Returns:
        (scale, overlap volume, overlap fraction)
    """
    volume1: float = tree1.volume()
    volume2: float = tree2.volume()
    scale_mid: float = 1.
    if not estimate_growth:
        overlap: float = tree_overlap_volume(tree1, tree2, scale_mid)
        return scale_mid, overlap, _overlap_fraction(overlap, scale_mid, volume1, volume2)

    max_overlap: float = 0.
    max_fraction: float = 0.
    scale_range: float = scale_half_range
    # Coarse to fine
    while scale_range > scale_stop_range:
        max_fraction = 0.
        max_overlap = 0.
        best_scale: Optional[float] = None
        for step in range(-scale_divisions, scale_divisions + 1):
            scale: float = scale_mid + scale_range * step / scale_divisions
            if scale <= 0.:
                continue
            overlap = tree_overlap_volume(tree1, tree2, scale)
            fraction: float = _overlap_fraction(overlap, scale, volume1, volume2)
            if fraction > max_fraction:
                max_fraction = fraction
                max_overlap = overlap
                best_scale = scale
        if best_scale is None:
            logger.warning("Trunks overlap but no scale gives any overlap of the trees.")
            break
        scale_mid = best_scale
        scale_range /= scale_divisions
    return scale_mid, max_overlap, max_fraction

class ForestDiff:
    trunk_matches: List[int]
    num_matches: int
    matched_fraction: float
    mean_trunk_overlap: float
    trunk_radius_growth: float
    pair_dataframe: pd.DataFrame
    summary: Dict[str, Any]

    _estimate_growth: bool
    _n_jobs: Optional[int]
    _scale_params: Dict[str, float]

    def __init__(
            self,
            forest1: Forest,
            forest2: Forest,
            estimate_growth: bool = True,
            max_trunk_offset: float = 1.,
            scale_half_range: float = 0.5,
            scale_divisions: int = 5,
            scale_stop_range: float = 0.02,
            n_jobs: Optional[int] = 1
    ) -> None:
        self._estimate_growth = estimate_growth
        self._n_jobs = n_jobs
        self._scale_params = {
            "scale_half_range": scale_half_range,
            "scale_divisions": scale_divisions,
            "scale_stop_range": scale_stop_range,
        }
        self.summary = {}
        self._compare_trunks(forest1, forest2, max_trunk_offset)
        self._compare_trees(forest1, forest2)
        return

    def _compare_trunks(self, forest1: Forest, forest2: Forest, max_trunk_offset: float) -> None:
        self.trunk_matches = match_trunks(forest1, forest2, max_trunk_offset)
        pairs: List[Tuple[int, int]] = [(i, j) for i, j in enumerate(self.trunk_matches) if j != -1]
        self.num_matches = len(pairs)
        self.matched_fraction = self.num_matches / len(forest2) if len(forest2) > 0 else 0.
        if self.num_matches == 0:
            logger.warning("No trunks of the two forests overlap.")
            self.mean_trunk_overlap = np.nan
            self.trunk_radius_growth = np.nan
        else:
            offsets: List[float] = []
            radii1: List[float] = []
            radii2: List[float] = []
            for i, j in pairs:
                root1, root2 = forest1.trees[i].root, forest2.trees[j].root
                offsets.append(np.linalg.norm(root1.tip[:2] - root2.tip[:2]) / max(root1.radius + root2.radius, EPS))
                radii1.append(root1.radius)
                radii2.append(root2.radius)
            self.mean_trunk_overlap = 1. - float(np.mean(offsets))
            self.trunk_radius_growth = float(np.mean(radii2) / max(np.mean(radii1), EPS) - 1.)
        self.summary.update({
            "num_trees1": len(forest1),
            "num_trees2": len(forest2),
            "num_matches": self.num_matches,
            "matched_fraction": self.matched_fraction,
            "mean_trunk_overlap": self.mean_trunk_overlap,
            "trunk_radius_growth": self.trunk_radius_growth,
        })
        logger.info(f"{100. * self.matched_fraction:.1f}% of trees overlap, mean trunk overlap {self.mean_trunk_overlap:.3f}")
        return

    def _compare_trees(self, forest1: Forest, forest2: Forest) -> None:
        columns: Dict[str, str] = {
            "tree1": "int64",
            "tree2": "int64",
            "scale": "float64",
            "overlap_m3": "float64",
            "overlap_fraction": "float64",
            "added_m3": "float64",
            "removed_m3": "float64",
        }
        self.pair_dataframe = pd.DataFrame({k: pd.Series(dtype=v) for k, v in columns.items()})
        # Trunk-only forests carry no branches to compare
        if is_trunks_only(forest1) or is_trunks_only(forest2) or self.num_matches == 0:
            return
        pairs: List[Tuple[int, int]] = [(i, j) for i, j in enumerate(self.trunk_matches) if j != -1]
        results: List[Tuple[float, float, float]] = parallelize(
            match_tree_scale,
            [
                (forest1.trees[i], forest2.trees[j], self._estimate_growth,
                 self._scale_params["scale_half_range"], self._scale_params["scale_divisions"], self._scale_params["scale_stop_range"])
                for i, j in pairs
            ],
            n_jobs=self._n_jobs
        )
        rows: List[Dict[str, float]] = []
        for (i, j), (scale, overlap, fraction) in zip(pairs, results):
            volume1: float = forest1.trees[i].volume()
            volume2: float = forest2.trees[j].volume()
            rows.append({
                "tree1": i,
                "tree2": j,
                "scale": scale,
                "overlap_m3": overlap,
                "overlap_fraction": fraction,
                "added_m3": max(0., volume2 - overlap),
                "removed_m3": max(0., scale ** 3 * volume1 - overlap),
            })
        self.pair_dataframe = pd.DataFrame(rows).astype(columns)

        mean_overlap: float = float(self.pair_dataframe["overlap_m3"].mean())
        self.summary.update({
            "mean_overlap_fraction": float(self.pair_dataframe["overlap_fraction"].mean()),
            "mean_added_m3": float(self.pair_dataframe["added_m3"].mean()),
            "mean_removed_m3": float(self.pair_dataframe["removed_m3"].mean()),
            "added_fraction": float(self.pair_dataframe["added_m3"].mean()) / max(mean_overlap, EPS),
            "removed_fraction": float(self.pair_dataframe["removed_m3"].mean()) / max(mean_overlap, EPS),
            "max_added_tree1": int(self.pair_dataframe.loc[self.pair_dataframe["added_m3"].idxmax(), "tree1"]),
            "max_removed_tree1": int(self.pair_dataframe.loc[self.pair_dataframe["removed_m3"].idxmax(), "tree1"]),
        })
        if self._estimate_growth:
            self.summary.update({
                "mean_scale_growth": float(self.pair_dataframe["scale"].mean() - 1.),
                "min_scale_growth": float(self.pair_dataframe["scale"].min() - 1.),
                "max_scale_growth": float(self.pair_dataframe["scale"].max() - 1.),
            })
        return

def is_trunks_only(forest: Forest) -> bool:
    return all(len(tree.segments) <= 1 for tree in forest.trees)
