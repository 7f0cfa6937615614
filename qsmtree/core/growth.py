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
from typing import Dict, Generator, List, Optional, Tuple
import numpy as np
from qsmtree.core.pipeline import Pipeline, run_to_completion
from qsmtree.core.data_type import Forest, Segment, Tree, build_children
from qsmtree.core.allometry import TreeStatistics, analyze_tree, get_branch_lengths
from qsmtree.core.power_law import calculate_power_law
from qsmtree.core.pruning import prune_diameter, prune_length
from qsmtree.core.decimation import reindex
from qsmtree.utils.numpy_extra import find_a_vertical_direction_3d, normalize, rotate_vector

logger = logging.getLogger(__name__)

EPS: float = 1e-10
TINY: float = np.finfo(np.float64).tiny
MAX_DOMINANCE: float = 0.99
MAX_SCALE: float = 0.95

def calculate_scale_factors(dimension: float, dominance: float) -> Tuple[float, float]:
    """Length scales (k1, k2) of the larger and smaller child branch.

    ``k1 * k2 = k^2`` with ``k = 2^(-1/dimension)`` while k1 is below its cap
    and k2 never exceeds k1. The ratio follows the cross-sectional area split
    implied by the dominance.
    """
    if not dimension > 0.:
        raise ValueError(f"Fractal dimension must be positive, got {dimension}.")
    dominance = min(max(dominance, 0.), MAX_DOMINANCE)
    k: float = 2. ** (-1. / dimension)
    area_ratio: float = (1. - dominance) / (1. + dominance)
    k1: float = min(k * area_ratio ** (-0.5 / dimension), MAX_SCALE)
    # The smaller child never outgrows the larger one
    k2: float = min(k * k / k1, k1)
    return k1, k2

def calculate_child_angles(angle: float, k1: float, k2: float, num_iterations: int = 20) -> Tuple[float, float]:
    # Degrees in and out. Solves tan(a1) = tan(angle - a1) * (k2 / k1)^2
    total: float = np.radians(angle)
    ratio: float = (k2 / k1) ** 2
    angle1: float = 0.5 * total
    for _ in range(num_iterations):
        angle2: float = total - angle1
        angle1 = 0.5 * (angle1 + np.arctan2(ratio * np.sin(angle2), np.cos(angle2)))
    return float(np.degrees(angle1)), float(np.degrees(total - angle1))

def get_subtree(children: List[List[int]], id: int) -> List[int]:
    ids: List[int] = []
    stack: List[int] = [id]
    while stack:
        id = stack.pop()
        ids.append(id)
        stack.extend(children[id])
    return ids

def get_sub_branch_roots(tree: Tree, children: List[List[int]]) -> List[int]:
    return [
        id for id in range(1, len(tree.segments))
        if tree.segments[id].parent_id == 0 or len(children[tree.segments[id].parent_id]) > 1
    ]

class _TreeGrowthContext:
    num_segments: int
    radii: np.ndarray
    power_law: Optional[Tuple[float, float, float]]

    def __init__(self, num_segments: int, radii: np.ndarray, power_law: Optional[Tuple[float, float, float]]) -> None:
        self.num_segments = num_segments
        self.radii = radii
        self.power_law = power_law
        return

class Growth(Pipeline):
    _forest: Optional[Forest]
    _tree_id_to_context: Dict[int, _TreeGrowthContext]
    _rng: np.random.Generator

    _length_growth: float
    _prune_length: float
    _min_branch_count: int
    _phototropism: float
    _num_angle_iterations: int
    _shedding_tolerance: float
    _subtree_size_penalty: float
    _default_dimension: float
    _default_angle: float
    _min_branch_diameter: float

    def __init__(self, verbose: bool = False) -> None:
        super().__init__(verbose=verbose)
        self._forest = None
        self._tree_id_to_context = {}
        self._rng = np.random.default_rng()
        return

    def set_params(
            self,
            length_growth: float = 0.3,
            prune_length: float = 0.1,
            min_branch_count: int = 6,
            phototropism: float = 0.1,
            num_angle_iterations: int = 20,
            enable_shedding: bool = False,
            shedding_tolerance: float = 0.5,
            subtree_size_penalty: float = 1.0,
            default_dimension: float = 2.0,
            default_angle: float = 30.,
            min_branch_diameter: float = 0.001,
            seed: Optional[int] = None
    ) -> None:
        if not prune_length > 0.:
            raise ValueError(f"prune_length must be positive, got {prune_length}.")
        if not default_dimension > 0.:
            raise ValueError(f"default_dimension must be positive, got {default_dimension}.")
        self._length_growth = length_growth
        self._prune_length = prune_length
        self._min_branch_count = min_branch_count
        self._phototropism = phototropism
        self._num_angle_iterations = num_angle_iterations
        self._shedding_tolerance = shedding_tolerance
        self._subtree_size_penalty = subtree_size_penalty
        self._default_dimension = default_dimension
        self._default_angle = default_angle
        self._min_branch_diameter = min_branch_diameter
        self._rng = np.random.default_rng(seed)

        self._clear_pipeline()
        if length_growth < 0.:
            self._add_fns_to_pipeline(len(self), [self._shrink])
            return
        self._add_fns_to_pipeline(len(self), [self._grow])
        if enable_shedding:
            self._add_fns_to_pipeline(len(self), [self._shed])
        return

    def _clear(self) -> None:
        self._forest = None
        self._tree_id_to_context = {}
        return

    def run(self, forest: Forest) -> Generator[str, None, Forest]:
        self._forest = forest.copy()
        yield from self._run_pipeline()
        result: Forest = self._forest
        self._clear()
        return result

    # Shrinking
    def _shrink(self) -> str:
        num_trees: int = len(self._forest)
        self._forest = prune_length(self._forest, -self._length_growth)
        self._forest = prune_diameter(self._forest, self._min_branch_diameter)
        return f"Shrank {num_trees} trees by {-self._length_growth} m, {len(self._forest)} remain."

    # Growing
    def _grow(self) -> str:
        for tree_id, tree in enumerate(self._forest.trees):
            self._grow_tree(tree_id, tree)
        return f"Grew {len(self._forest)} trees by {self._length_growth} m."

    def _grow_tree(self, tree_id: int, tree: Tree) -> None:
        children: List[List[int]] = build_children(tree)
        statistics: TreeStatistics = analyze_tree(
            tree, children,
            prune_length=self._prune_length,
            min_branch_count=self._min_branch_count
        )
        dimension: float = self._default_dimension
        if statistics.dimension is None or statistics.dimension <= 0.:
            logger.warning(f"Tree {tree_id} has no usable fractal dimension, using default {self._default_dimension}")
        else:
            dimension = statistics.dimension
        if statistics.bifurcation.total_weight > 0.:
            dominance: float = statistics.bifurcation.tree_dominance
            angle: float = statistics.bifurcation.tree_angle
        else:
            logger.warning(f"Tree {tree_id} has no bifurcations, using default angle {self._default_angle}")
            dominance = 0.
            angle = self._default_angle
        dominance = min(max(dominance, 0.), MAX_DOMINANCE)
        k1, k2 = calculate_scale_factors(dimension, dominance)
        # Share of the parent area taken by the larger child
        area_fraction1: float = 0.5 * (1. + dominance)
        angle1, angle2 = calculate_child_angles(angle, k1, k2, self._num_angle_iterations)
        radius_ratio: float = tree.root.radius / max(statistics.dominant_path_length, EPS)

        # Rank-length law of the current branches, for shedding
        branch_lengths: np.ndarray = statistics.lengths[get_sub_branch_roots(tree, children)]
        power_law: Optional[Tuple[float, float, float]] = None
        if len(branch_lengths) >= self._min_branch_count:
            power_law = calculate_power_law(branch_lengths)
        self._tree_id_to_context[tree_id] = _TreeGrowthContext(len(tree.segments), tree.radii(), power_law)

        if self._length_growth == 0.:
            return
        leaves: List[int] = [id for id in range(len(tree.segments)) if len(children[id]) == 0]
        area_added: float = (radius_ratio * self._length_growth) ** 2
        for leaf in leaves:
            self._grow_leaf(tree, leaf, area_added, area_fraction1, k1, k2, angle1, angle2)
        if self._verbose:
            logger.info(f"Tree {tree_id}: k1 {k1:.3f}, k2 {k2:.3f}, angles {angle1:.1f}/{angle2:.1f}, {len(leaves)} leaves grown")
        return

    def _grow_leaf(
            self,
            tree: Tree,
            leaf: int,
            area_added: float,
            area_fraction1: float,
            k1: float,
            k2: float,
            angle1: float,
            angle2: float
    ) -> None:
        leaf_segment: Segment = tree.segments[leaf]
        direction: np.ndarray = np.array([0., 0., 1.])
        if leaf_segment.parent_id != -1:
            parent_direction: np.ndarray = normalize(leaf_segment.tip - tree.segments[leaf_segment.parent_id].tip)
            if np.linalg.norm(parent_direction) > 0.:
                direction = parent_direction
        up: np.ndarray = np.array([0., 0., self._phototropism])

        # Worklist of (parent, start, direction, length, radius)
        worklist: List[Tuple[int, np.ndarray, np.ndarray, float, float]] = [
            (leaf, leaf_segment.tip.copy(), direction, self._length_growth, np.sqrt(leaf_segment.radius ** 2 + area_added))
        ]
        while worklist:
            parent_id, start, direction, length, radius = worklist.pop()
            direction = normalize(direction + up)
            if length < self._prune_length:
                tip: np.ndarray = start + direction * length
                tree.segments.append(Segment(tip, radius, parent_id, leaf_segment.attributes))
                continue
            tip = start + direction * length * (1. - k1)
            id: int = len(tree.segments)
            tree.segments.append(Segment(tip, radius, parent_id, leaf_segment.attributes))

            axis: np.ndarray = rotate_vector(
                find_a_vertical_direction_3d(direction), direction, self._rng.uniform(0., 2. * np.pi)
            )
            direction1: np.ndarray = rotate_vector(direction, axis, np.radians(angle1))
            direction2: np.ndarray = rotate_vector(direction, axis, -np.radians(angle2))
            # Children split the cross-sectional area exactly
            worklist.append((id, tip, direction2, length * k2, radius * np.sqrt(1. - area_fraction1)))
            worklist.append((id, tip, direction1, length * k1, radius * np.sqrt(area_fraction1)))

        id = leaf
        while id != -1:
            segment: Segment = tree.segments[id]
            segment.radius = np.sqrt(segment.radius ** 2 + area_added)
            id = segment.parent_id
        return

    # Shedding
    def _shed(self) -> str:
        num_removed: int = 0
        for tree_id, tree in enumerate(self._forest.trees):
            num_removed += self._shed_tree(tree_id, tree)
        return f"Shed {num_removed} newly grown branches."

    def _shed_tree(self, tree_id: int, tree: Tree) -> int:
        context: _TreeGrowthContext = self._tree_id_to_context[tree_id]
        if context.power_law is None:
            logger.info(f"Skipped shedding of tree {tree_id}, too few branches for a power law")
            return 0
        c, d, r2 = context.power_law
        children: List[List[int]] = build_children(tree)
        lengths: np.ndarray = get_branch_lengths(tree, children, self._prune_length)
        candidates: List[int] = sorted(get_sub_branch_roots(tree, children), key=lambda id: -lengths[id])

        num_segments: int = len(tree.segments)
        removed: np.ndarray = np.zeros(num_segments, dtype=bool)
        num_removed_candidates: int = 0
        num_shed: int = 0
        for rank, id in enumerate(candidates):
            if removed[id]:
                num_removed_candidates += 1
                continue
            if id < context.num_segments:
                continue
            observed: float = rank + 1. - num_removed_candidates
            predicted: float = c * lengths[id] ** d
            subtree: List[int] = get_subtree(children, id)
            excess: float = np.log(observed) - np.log(max(predicted, TINY))
            if excess <= self._shedding_tolerance + self._subtree_size_penalty * len(subtree) / num_segments:
                continue
            removed[subtree] = True
            num_removed_candidates += 1
            num_shed += 1
            area: float = tree.segments[id].radius ** 2
            ancestor: int = tree.segments[id].parent_id
            while ancestor != -1:
                segment: Segment = tree.segments[ancestor]
                floor: float = context.radii[ancestor] ** 2 if ancestor < context.num_segments else 0.
                segment.radius = np.sqrt(max(segment.radius ** 2 - area, floor))
                ancestor = segment.parent_id
        if num_shed == 0:
            return 0
        # Children of removed segments are removed too, so the sentinel is enough
        for id in np.flatnonzero(removed):
            tree.segments[id].parent_id = -1
        reindex(tree)
        logger.debug(f"Tree {tree_id}: shed {num_shed} branches, {int(removed.sum())} segments")
        return num_shed

def grow_forest(forest: Forest, length_growth: float, **params) -> Forest:
    growth: Growth = Growth()
    growth.set_params(length_growth=length_growth, **params)
    return run_to_completion(growth.run(forest))

def grow_forest_linear(
        forest: Forest,
        years: float,
        length_rate: float = 0.3,
        diameter_rate: float = 0.004,
        min_branch_diameter: float = 0.001
) -> Forest:
    """Thicken every segment and grow every leaf straight on for ``years``.

    Negative periods thin the segments, then cut the branch tips back and drop
    branches thinner than ``min_branch_diameter`` cm.
    """
    new_forest: Forest = forest.copy()
    radius_growth: float = 0.5 * diameter_rate * years
    for tree in new_forest.trees:
        for segment in tree.segments:
            segment.radius = max(segment.radius + radius_growth, 0.)
    if years < 0.:
        new_forest = prune_length(new_forest, -length_rate * years)
        return prune_diameter(new_forest, min_branch_diameter)
    if years == 0.:
        return new_forest
    for tree in new_forest.trees:
        children: List[List[int]] = build_children(tree)
        for id in range(len(children)):
            if len(children[id]) > 0:
                continue
            segment: Segment = tree.segments[id]
            direction: np.ndarray = np.array([0., 0., 1.])
            if segment.parent_id != -1:
                parent_direction: np.ndarray = normalize(segment.tip - tree.segments[segment.parent_id].tip)
                if np.linalg.norm(parent_direction) > 0.:
                    direction = parent_direction
            tip: np.ndarray = segment.tip + direction * length_rate * years
            # New growth is as thin as the old leaf
            tree.segments.append(Segment(tip, max(segment.radius - radius_growth, 0.), id, segment.attributes))
    return new_forest
