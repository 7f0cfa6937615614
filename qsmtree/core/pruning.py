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
from typing import List
import numpy as np
from qsmtree.core.data_type import Forest, Segment, Tree, build_children

logger = logging.getLogger(__name__)

EPS: float = 1e-10

def get_max_subtree_diameters(tree: Tree, children: List[List[int]]) -> np.ndarray:
    num_segments: int = len(tree.segments)
    max_diameters: np.ndarray = np.array([2. * segment.radius for segment in tree.segments])
    for id in range(num_segments):
        if len(children[id]) > 0:
            continue
        child: int = id
        parent: int = tree.segments[id].parent_id
        while parent != -1:
            # Stop once the parent already holds a larger maximum
            if max_diameters[child] <= max_diameters[parent]:
                break
            max_diameters[parent] = max_diameters[child]
            child = parent
            parent = tree.segments[parent].parent_id
    return max_diameters

def get_min_leaf_distances(tree: Tree, children: List[List[int]]) -> np.ndarray:
    num_segments: int = len(tree.segments)
    tips: np.ndarray = tree.tips()
    distances: np.ndarray = np.full(num_segments, np.inf)
    for id in range(num_segments):
        if len(children[id]) > 0:
            continue
        distances[id] = 0.
        child: int = id
        parent: int = tree.segments[id].parent_id
        while parent != -1:
            distance: float = distances[child] + np.linalg.norm(tips[child] - tips[parent])
            if distance >= distances[parent]:
                break
            distances[parent] = distance
            child = parent
            parent = tree.segments[parent].parent_id
    return distances

def _rebuild(tree: Tree, keep: np.ndarray) -> Tree:
    # Survivors are re-parented to their nearest surviving ancestor
    new_tree: Tree = Tree([tree.root.copy()], tree.attribute_names, tree.tree_attribute_names, tree.tree_attributes)
    new_ids: np.ndarray = np.zeros(len(tree.segments), dtype=np.int64)
    for id in range(1, len(tree.segments)):
        segment: Segment = tree.segments[id]
        if not keep[id]:
            new_ids[id] = new_ids[segment.parent_id]
            continue
        new_segment: Segment = segment.copy()
        new_segment.parent_id = int(new_ids[segment.parent_id])
        new_ids[id] = len(new_tree.segments)
        new_tree.segments.append(new_segment)
    return new_tree

def prune_tree_diameter(tree: Tree, diameter: float) -> Tree:
    children: List[List[int]] = build_children(tree)
    max_diameters: np.ndarray = get_max_subtree_diameters(tree, children)
    keep: np.ndarray = max_diameters > 0.01 * diameter # diameter is given in cm
    keep[0] = True
    return _rebuild(tree, keep)

def prune_tree_length(tree: Tree, length: float) -> Tree:
    children: List[List[int]] = build_children(tree)
    distances: np.ndarray = get_min_leaf_distances(tree, children)
    survives: np.ndarray = distances > length
    survives[0] = True
    keep: np.ndarray = survives.copy()
    cut_tips: List[np.ndarray] = [segment.tip for segment in tree.segments]
    for id in range(1, len(tree.segments)):
        parent: int = tree.segments[id].parent_id
        if survives[id] or not survives[parent] or (parent == 0 and distances[0] <= length):
            continue
        # Cut the segment exactly where the distance to the nearest leaf equals length
        blend: float = (distances[parent] - length) / max(distances[parent] - distances[id], EPS)
        blend = min(max(blend, EPS), 1.)
        cut_tips[id] = tree.segments[parent].tip * (1. - blend) + tree.segments[id].tip * blend
        keep[id] = True
    new_tree: Tree = tree.copy()
    for segment, tip in zip(new_tree.segments, cut_tips):
        segment.tip = np.array(tip, dtype=np.float64)
    return _rebuild(new_tree, keep)

def _prune_forest(forest: Forest, prune_fn, threshold: float, name: str) -> Forest:
    new_forest: Forest = Forest([], forest.comments)
    for tree_id, tree in enumerate(forest.trees):
        new_tree: Tree = prune_fn(tree, threshold)
        if len(new_tree.segments) == 1 and len(tree.segments) > 1:
            logger.info(f"Removed tree {tree_id}, nothing left after {name} pruning at {threshold}")
            continue
        new_forest.trees.append(new_tree)
    return new_forest

def prune_diameter(forest: Forest, diameter: float) -> Forest:
    """Remove branches whose thickest segment is at most ``diameter`` cm across."""
    return _prune_forest(forest, prune_tree_diameter, diameter, "diameter")

def prune_length(forest: Forest, length: float) -> Forest:
    """Shorten every branch tip by ``length`` m, removing branches shorter than that."""
    return _prune_forest(forest, prune_tree_length, length, "length")
