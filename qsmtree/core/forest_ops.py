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
from typing import List, Sequence, Tuple, Union
import numpy as np
from qsmtree.core.data_type import Colour, Forest, Tree

logger = logging.getLogger(__name__)

def _is_inside(tree: Tree, criterion: str, value: Union[float, str, Sequence[float]], attribute: str = "") -> bool:
    root = tree.root
    if criterion == "attribute":
        return root.attributes[tree.attribute_id(attribute)] < float(value)
    if criterion == "radius":
        return root.radius < float(value)
    if criterion == "plane":
        # value is the plane's closest point to the origin
        plane: np.ndarray = np.asarray(value, dtype=np.float64)
        return float(np.dot(root.tip, plane / np.dot(plane, plane))) < 1.
    if criterion == "colour":
        target: np.ndarray = np.asarray(value, dtype=np.float64)
        colour: Colour = tree.colours()[0]
        return float(np.dot(np.array(colour), target / np.dot(target, target))) < 1.
    if criterion == "box":
        half_extents: np.ndarray = np.asarray(value, dtype=np.float64)
        return bool(np.all(np.abs(root.tip) < half_extents))
    raise NotImplementedError(f"Unknown split criterion '{criterion}'.")

def split_forest(
        forest: Forest,
        criterion: str,
        value: Union[float, Sequence[float]],
        attribute: str = ""
) -> Tuple[Forest, Forest]:
    """Split trees by a test on their root segment.

    Criteria:
        attribute: named root attribute below value
        radius: trunk radius below value
        plane: base below the plane whose closest point to the origin is value
        colour: root colour below the colour plane through value
        box: base inside the origin-centred box with half extents value
    """
    inside: Forest = Forest([], forest.comments)
    outside: Forest = Forest([], forest.comments)
    for tree_id, tree in enumerate(forest.trees):
        if criterion == "colour" and tree.colour_indices() is None:
            logger.warning(f"Skipped tree {tree_id} without colour attributes")
            continue
        if _is_inside(tree, criterion, value, attribute):
            inside.trees.append(tree.copy())
        else:
            outside.trees.append(tree.copy())
    return inside, outside

def combine_forests(forests: Sequence[Forest]) -> Forest:
    combined: Forest = Forest()
    attribute_names: List[str] = []
    for forest_id, forest in enumerate(forests):
        if len(forest) == 0:
            continue
        names: List[str] = forest.trees[0].attribute_names
        if len(combined) == 0:
            attribute_names = names
        elif names != attribute_names:
            raise ValueError(f"Forest {forest_id} has attributes {names}, expected {attribute_names}. Cannot concatenate.")
        combined.trees.extend(tree.copy() for tree in forest.trees)
        combined.comments.extend(forest.comments)
    return combined

def scale_attributes(forest: Forest, names: Sequence[str], scales: Union[float, Sequence[float]]) -> Forest:
    if np.isscalar(scales):
        scales = [float(scales)] * len(names)
    if len(scales) != len(names):
        raise ValueError(f"Got {len(scales)} scales for {len(names)} attributes.")
    new_forest: Forest = forest.copy()
    for tree in new_forest.trees:
        ids: List[int] = [tree.attribute_id(name) for name in names]
        for segment in tree.segments:
            for id, scale in zip(ids, scales):
                segment.attributes[id] *= scale
    return new_forest
