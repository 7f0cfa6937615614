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

from typing import List
import numpy as np
from qsmtree.core.data_type import Forest, Tree, build_children

EPS: float = 1e-10

def smooth_tree(tree: Tree, num_iterations: int = 4) -> Tree:
    """Straighten segments towards the line through their neighbours.

    Thick segments move the most, at most halfway for a segment as thick as the
    trunk, so fine twigs keep their shape.
    """
    new_tree: Tree = tree.copy()
    children: List[List[int]] = build_children(new_tree)
    full_radius_sqr: float = max(new_tree.root.radius ** 2, EPS)
    radii_sqr: np.ndarray = new_tree.radii() ** 2
    for _ in range(num_iterations):
        old_tips: np.ndarray = new_tree.tips()
        root_shift: np.ndarray = np.zeros(3)
        root_weight: float = 0.
        for id in range(1, len(new_tree.segments)):
            if len(children[id]) == 0: # Branch ends are usually thin
                continue
            segment = new_tree.segments[id]
            parent_tip: np.ndarray = old_tips[segment.parent_id]
            if len(children[id]) == 1:
                child_tip: np.ndarray = old_tips[children[id][0]]
            else:
                weights: np.ndarray = radii_sqr[children[id]]
                if np.sum(weights) > 0.:
                    child_tip = np.sum(weights[:, None] * old_tips[children[id]], axis=0) / np.sum(weights)
                else:
                    child_tip = np.mean(old_tips[children[id]], axis=0)
            axis: np.ndarray = child_tip - parent_tip
            axis_length: float = float(np.linalg.norm(axis))
            if axis_length < EPS:
                continue
            axis /= axis_length
            straight_tip: np.ndarray = parent_tip + axis * np.dot(old_tips[id] - parent_tip, axis)
            blend: float = min(0.5 * radii_sqr[id] / full_radius_sqr, 1.)
            new_tip: np.ndarray = old_tips[id] * (1. - blend) + straight_tip * blend
            if segment.parent_id == 0:
                # Half the shift, otherwise the base is too pliant
                root_shift += (old_tips[id] - new_tip) * 0.5 * radii_sqr[id]
                root_weight += radii_sqr[id]
            segment.tip = new_tip
        if root_weight > 0.:
            new_tree.root.tip = new_tree.root.tip + root_shift / root_weight
    return new_tree

def smooth_forest(forest: Forest, num_iterations: int = 4) -> Forest:
    return Forest([smooth_tree(tree, num_iterations) for tree in forest.trees], forest.comments)
