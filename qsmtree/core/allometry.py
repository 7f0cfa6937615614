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
from typing import List, NamedTuple, Optional, Tuple
import numpy as np
from qsmtree.core.data_type import Tree, build_children
from qsmtree.core.power_law import calculate_power_law
from qsmtree.utils.numpy_extra import calculate_angle_between_vectors

logger = logging.getLogger(__name__)

EPS: float = 1e-10
TINY: float = np.finfo(np.float64).tiny

class BifurcationProperties(NamedTuple):
    dominances: np.ndarray
    angles: np.ndarray # Degrees
    weights: np.ndarray # r1^2 + r2^2
    num_children: np.ndarray # 0 except at branch points
    tree_dominance: float
    tree_angle: float
    total_weight: float

class TreeStatistics(NamedTuple):
    lengths: np.ndarray
    bifurcation: BifurcationProperties
    dominant_path: List[int]
    bend: float
    dbh: float
    monocotal: float
    dimension: Optional[float]
    height: float
    trunk_radius: float
    dominant_path_length: float

def get_branch_lengths(tree: Tree, children: List[List[int]], prune_length: float) -> np.ndarray:
    # Length of the longest path from each segment to a leaf, plus the unresolved twig at the leaf
    tips: np.ndarray = tree.tips()
    num_segments: int = len(tree.segments)
    lengths: np.ndarray = np.zeros(num_segments)
    for id in range(num_segments):
        if len(children[id]) > 0:
            continue
        lengths[id] = prune_length
        child: int = id
        parent: int = tree.segments[id].parent_id
        while parent > 0:
            length: float = lengths[child] + np.linalg.norm(tips[child] - tips[parent])
            if length <= lengths[parent]:
                break
            lengths[parent] = length
            child = parent
            parent = tree.segments[parent].parent_id
    if len(children[0]) > 0:
        lengths[0] = max(lengths[child] for child in children[0])
    return lengths

def _get_significant_child(tree: Tree, children: List[List[int]], tips: np.ndarray, id: int, child: int) -> Tuple[float, np.ndarray]:
    # Radius and direction right after a bifurcation are noisy, so look one segment further
    if len(children[child]) == 1:
        grandchild: int = children[child][0]
        return tree.segments[grandchild].radius, tips[grandchild] - tips[child]
    return tree.segments[child].radius, tips[child] - tips[id]

def get_bifurcation_properties(tree: Tree, children: List[List[int]]) -> BifurcationProperties:
    tips: np.ndarray = tree.tips()
    num_segments: int = len(tree.segments)
    dominances: np.ndarray = np.zeros(num_segments)
    angles: np.ndarray = np.zeros(num_segments)
    weights: np.ndarray = np.zeros(num_segments)
    num_children: np.ndarray = np.zeros(num_segments, dtype=np.int64)
    tree_dominance: float = 0.
    tree_angle: float = 0.
    total_weight: float = 0.
    for id in range(num_segments):
        if len(children[id]) < 2:
            continue
        num_children[id] = len(children[id])
        max_radius: float = -1.
        second_radius: float = -1.
        max_direction: np.ndarray = np.zeros(3)
        second_direction: np.ndarray = np.zeros(3)
        for child in children[id]:
            radius, direction = _get_significant_child(tree, children, tips, id, child)
            if radius > max_radius:
                second_radius, second_direction = max_radius, max_direction
                max_radius, max_direction = radius, direction
            elif radius > second_radius:
                second_radius, second_direction = radius, direction
        weight: float = max_radius ** 2 + second_radius ** 2
        dominance: float = -1. + 2. * max_radius ** 2 / weight if weight > 0. else 0.
        angle: float = calculate_angle_between_vectors(max_direction, second_direction)
        dominances[id] = dominance
        angles[id] = angle
        weights[id] = weight
        # Square root keeps the thick trunk fork from dominating the means
        tree_dominance += np.sqrt(weight) * dominance
        tree_angle += np.sqrt(weight) * angle
        total_weight += np.sqrt(weight)
    if total_weight > 0.:
        tree_dominance /= total_weight
        tree_angle /= total_weight
    return BifurcationProperties(
        dominances, angles, weights, num_children,
        float(tree_dominance), float(tree_angle), float(total_weight)
    )

def get_dominant_path(tree: Tree, children: List[List[int]], lengths: np.ndarray) -> List[int]:
    path: List[int] = [0]
    while len(children[path[-1]]) > 0:
        path.append(max(children[path[-1]], key=lambda child: tree.segments[child].radius * lengths[child]))
    return path

def get_trunk_bend(tree: Tree, children: List[List[int]], lengths: np.ndarray) -> float:
    root_radius: float = tree.root.radius
    if not np.isfinite(root_radius) or root_radius <= 0.:
        raise ValueError(f"Trunk bend needs a positive root radius, got {root_radius}.")
    path: List[int] = get_dominant_path(tree, children, lengths)
    if len(path) <= 2:
        return 0.
    points: np.ndarray = tree.tips()[path]
    weights: np.ndarray = tree.radii()[path] ** 2
    path_length: float = float(np.linalg.norm(points[-1] - points[0]))

    total_weight: float = TINY + float(np.sum(weights))
    mean: np.ndarray = np.sum(weights[:, None] * points, axis=0) / total_weight
    offsets: np.ndarray = points - mean
    heights: np.ndarray = offsets[:, 2]
    horizontals: np.ndarray = offsets[:, :2]

    # Least squares of both horizontal axes against height
    sum_h: float = float(np.sum(weights * heights))
    sum_xy: np.ndarray = np.sum(weights[:, None] * horizontals, axis=0)
    sum_hxy: np.ndarray = np.sum((weights * heights)[:, None] * horizontals, axis=0)
    sum_hh: float = float(np.sum(weights * heights ** 2))
    s_hxy: np.ndarray = sum_hxy - sum_h * sum_xy / total_weight
    s_hh: float = sum_hh - sum_h ** 2 / total_weight
    gradient: np.ndarray = s_hxy / s_hh if abs(s_hh) > TINY else np.zeros(2)

    deviations: np.ndarray = horizontals - heights[:, None] * gradient[None, :]
    variance: float = float(np.sum(weights * np.sum(deviations ** 2, axis=1))) / total_weight
    return float(np.sqrt(variance) / max(path_length, EPS))

def get_dbh(tree: Tree, children: List[List[int]], breast_height: float = 1.3) -> float:
    tips: np.ndarray = tree.tips()
    base_height: float = tips[0][2]
    dbhs: List[float] = []
    for stem in children[0]:
        id: int = stem
        parent: int = 0
        # The root is the base, not a fork
        through_branch: bool = False
        while tips[id][2] - base_height < breast_height and len(children[id]) > 0:
            through_branch = len(children[id]) > 1
            parent = id
            id = max(children[id], key=lambda child: tree.segments[child].radius)
        height: float = tips[id][2] - base_height
        if height < breast_height:
            continue
        radius: float = tree.segments[id].radius
        if not through_branch:
            parent_height: float = tips[parent][2] - base_height
            blend: float = (breast_height - parent_height) / max(height - parent_height, EPS)
            blend = min(max(blend, 0.), 1.)
            radius = tree.segments[parent].radius * (1. - blend) + radius * blend
        dbhs.append(2. * radius)
    if len(dbhs) == 0:
        return 0.
    return float(np.mean(dbhs))

def _count_branches(children: List[List[int]], id: int) -> int:
    # Every child at a branch point starts a branch
    count: int = 0
    stack: List[int] = [id]
    while stack:
        id = stack.pop()
        if len(children[id]) > 1:
            count += len(children[id])
        stack.extend(children[id])
    return count

def _get_peak_height(tips: np.ndarray, children: List[List[int]], id: int) -> float:
    peak: float = tips[id][2]
    stack: List[int] = [id]
    while stack:
        id = stack.pop()
        peak = max(peak, tips[id][2])
        stack.extend(children[id])
    return peak

def get_monocotal(tree: Tree, children: List[List[int]], min_branch_count: int = 5) -> float:
    tips: np.ndarray = tree.tips()
    monocotal: float = 0.
    for stem in children[0]:
        id: int = stem
        path_length: float = float(np.linalg.norm(tips[id] - tips[0]))
        while len(children[id]) == 1:
            child: int = children[id][0]
            path_length += float(np.linalg.norm(tips[child] - tips[id]))
            id = child
        # A bare pole says nothing about palm-like growth
        if _count_branches(children, stem) < min_branch_count:
            continue
        straight_length: float = float(np.linalg.norm(tips[id] - tips[0]))
        height_to_peak: float = _get_peak_height(tips, children, id) - tips[id][2]
        score: float = straight_length / max(path_length + height_to_peak, EPS)
        monocotal = max(monocotal, score)
    return monocotal

def get_branch_point_lengths(children: List[List[int]], lengths: np.ndarray) -> np.ndarray:
    return np.array([lengths[id] for id in range(len(children)) if len(children[id]) > 1], dtype=np.float64)

def get_fractal_dimension(
        tree: Tree,
        children: List[List[int]],
        lengths: np.ndarray,
        min_branch_count: int = 6,
        graph_file: Optional[str] = None
) -> Optional[float]:
    branch_lengths: np.ndarray = get_branch_point_lengths(children, lengths)
    if len(branch_lengths) < min_branch_count:
        logger.debug(f"Skipped fractal dimension, {len(branch_lengths)} branch points < {min_branch_count}")
        return None
    c, d, r2 = calculate_power_law(branch_lengths, graph_file, "branch length")
    return min(-d, 3.)

def analyze_tree(
        tree: Tree,
        children: Optional[List[List[int]]] = None,
        prune_length: float = 0.1,
        breast_height: float = 1.3,
        min_branch_count: int = 6,
        min_monocotal_branches: int = 5
) -> TreeStatistics:
    if children is None:
        children = build_children(tree)
    lengths: np.ndarray = get_branch_lengths(tree, children, prune_length)
    bifurcation: BifurcationProperties = get_bifurcation_properties(tree, children)
    dominant_path: List[int] = get_dominant_path(tree, children, lengths)
    tips: np.ndarray = tree.tips()
    return TreeStatistics(
        lengths=lengths,
        bifurcation=bifurcation,
        dominant_path=dominant_path,
        bend=get_trunk_bend(tree, children, lengths),
        dbh=get_dbh(tree, children, breast_height),
        monocotal=get_monocotal(tree, children, min_monocotal_branches),
        dimension=get_fractal_dimension(tree, children, lengths, min_branch_count),
        height=float(tips[:, 2].max() - tips[0][2]),
        trunk_radius=tree.root.radius,
        dominant_path_length=float(lengths[0])
    )
