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
from qsmtree.core.data_type import Forest, Segment, Tree, TopologyError, build_children

logger = logging.getLogger(__name__)

def reindex(tree: Tree) -> Tree:
    """Compact ``tree`` in place, dropping every non-root segment whose parent is -1.

    Children of a dropped segment must already have been re-parented.
    """
    new_ids: np.ndarray = np.full(len(tree.segments), -1, dtype=np.int64)
    segments: List[Segment] = []
    for id, segment in enumerate(tree.segments):
        if id > 0 and segment.parent_id == -1:
            continue
        new_ids[id] = len(segments)
        segments.append(segment)
    for segment in segments[1:]:
        new_parent_id: int = int(new_ids[segment.parent_id])
        if new_parent_id == -1:
            raise TopologyError(f"Segment was re-indexed onto removed parent {segment.parent_id}.")
        segment.parent_id = new_parent_id
    tree.segments = segments
    return tree

def decimate_stride(tree: Tree, stride: int) -> Tree:
    if stride < 1:
        raise ValueError(f"Decimation stride must be at least 1, got {stride}.")
    children: List[List[int]] = build_children(tree)
    new_tree: Tree = tree.copy()
    counts: np.ndarray = np.zeros(len(tree.segments), dtype=np.int64)
    for id in range(1, len(tree.segments)):
        parent: int = tree.segments[id].parent_id
        counts[id] = counts[parent] + 1 if len(children[parent]) == 1 and parent != 0 else 1
        if counts[id] >= stride:
            counts[id] = 0
    for id in range(1, len(tree.segments)):
        keep: bool = counts[id] == 0 or len(children[id]) != 1
        if keep:
            continue
        # Splice children onto the removed segment's parent
        child: int = children[id][0]
        new_tree.segments[child].parent_id = new_tree.segments[id].parent_id
        new_tree.segments[id].parent_id = -1
    return reindex(new_tree)

def decimate_by_ratio(tree: Tree, ratio: float) -> Tree:
    """Remove single-child segments shorter than ``ratio`` times their diameter."""
    children: List[List[int]] = build_children(tree)
    new_tree: Tree = tree.copy()
    for id in range(1, len(tree.segments)):
        if len(children[id]) != 1:
            continue
        segment: Segment = new_tree.segments[id]
        # The parent may itself have been spliced out already
        length: float = float(np.linalg.norm(segment.tip - new_tree.segments[segment.parent_id].tip))
        if length >= ratio * 2. * segment.radius:
            continue
        new_tree.segments[children[id][0]].parent_id = segment.parent_id
        segment.parent_id = -1
    return reindex(new_tree)

def decimate_forest(forest: Forest, stride: int = 1, ratio: float = 0.) -> Forest:
    new_forest: Forest = Forest([], forest.comments)
    for tree in forest.trees:
        new_tree: Tree = tree
        if stride > 1:
            new_tree = decimate_stride(new_tree, stride)
        if ratio > 0.:
            new_tree = decimate_by_ratio(new_tree, ratio)
        if new_tree is tree:
            new_tree = tree.copy()
        logger.debug(f"Decimated tree from {len(tree.segments)} to {len(new_tree.segments)} segments")
        new_forest.trees.append(new_tree)
    return new_forest
