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

from typing import List, Optional, NamedTuple, Iterator
import numpy as np
from qsmtree.utils.networkx_extra import is_rooted_tree, tree_to_digraph

class TopologyError(ValueError):
    pass

class Colour(NamedTuple):
    red: float
    green: float
    blue: float

class Segment:
    tip: np.ndarray
    radius: float
    parent_id: int
    attributes: List[float]

    def __init__(self, tip: np.ndarray, radius: float, parent_id: int, attributes: Optional[List[float]] = None) -> None:
        self.tip = np.array(tip, dtype=np.float64).reshape(3)
        self.radius = float(radius)
        self.parent_id = int(parent_id)
        self.attributes = [float(value) for value in attributes] if attributes is not None else []
        return

    def copy(self) -> "Segment":
        return Segment(self.tip, self.radius, self.parent_id, self.attributes)

    def __repr__(self) -> str:
        return f"Segment(tip={self.tip.tolist()}, radius={self.radius}, parent_id={self.parent_id})"

class Tree:
    """A rooted hierarchy of cylinders stored as a flat array of segments.

    Segment 0 is the base of the tree. Every other segment is the cylinder from
    its parent's tip to its own tip, and parents are always stored before
    their children.
    """
    segments: List[Segment]
    attribute_names: List[str]
    tree_attribute_names: List[str]
    tree_attributes: List[float]

    def __init__(
            self,
            segments: Optional[List[Segment]] = None,
            attribute_names: Optional[List[str]] = None,
            tree_attribute_names: Optional[List[str]] = None,
            tree_attributes: Optional[List[float]] = None
    ) -> None:
        self.segments = segments if segments is not None else []
        self.attribute_names = list(attribute_names) if attribute_names is not None else []
        self.tree_attribute_names = list(tree_attribute_names) if tree_attribute_names is not None else []
        self.tree_attributes = [float(value) for value in tree_attributes] if tree_attributes is not None else [0.] * len(self.tree_attribute_names)
        if len(self.tree_attributes) != len(self.tree_attribute_names):
            raise ValueError(f"Got {len(self.tree_attributes)} tree attribute values for {len(self.tree_attribute_names)} names.")
        return

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def root(self) -> Segment:
        return self.segments[0]

    def copy(self) -> "Tree":
        return Tree(
            [segment.copy() for segment in self.segments],
            self.attribute_names,
            self.tree_attribute_names,
            self.tree_attributes
        )

    # Per-segment attributes
    def has_attribute(self, name: str) -> bool:
        return name in self.attribute_names

    def attribute_id(self, name: str) -> int:
        if name not in self.attribute_names:
            raise KeyError(f"Attribute '{name}' not found in {self.attribute_names}.")
        return self.attribute_names.index(name)

    def add_attribute(self, name: str, value: float = 0.) -> int:
        if name in self.attribute_names:
            raise ValueError(f"Cannot add attribute '{name}' that is already present.")
        self.attribute_names.append(name)
        for segment in self.segments:
            segment.attributes.append(float(value))
        return len(self.attribute_names) - 1

    def get_attribute(self, name: str) -> np.ndarray:
        id: int = self.attribute_id(name)
        return np.array([segment.attributes[id] for segment in self.segments], dtype=np.float64)

    def set_attribute(self, name: str, values: np.ndarray) -> None:
        id: int = self.attribute_id(name)
        if len(values) != len(self.segments):
            raise ValueError(f"Expected {len(self.segments)} values for attribute '{name}', got {len(values)}.")
        for segment, value in zip(self.segments, values):
            segment.attributes[id] = float(value)
        return

    # Per-tree attributes
    def has_tree_attribute(self, name: str) -> bool:
        return name in self.tree_attribute_names

    def tree_attribute(self, name: str) -> float:
        if name not in self.tree_attribute_names:
            raise KeyError(f"Tree attribute '{name}' not found in {self.tree_attribute_names}.")
        return self.tree_attributes[self.tree_attribute_names.index(name)]

    def set_tree_attribute(self, name: str, value: float) -> None:
        if name in self.tree_attribute_names:
            self.tree_attributes[self.tree_attribute_names.index(name)] = float(value)
        else:
            self.tree_attribute_names.append(name)
            self.tree_attributes.append(float(value))
        return

    # Geometry
    def tips(self) -> np.ndarray:
        return np.array([segment.tip for segment in self.segments], dtype=np.float64).reshape(-1, 3)

    def radii(self) -> np.ndarray:
        return np.array([segment.radius for segment in self.segments], dtype=np.float64)

    def parent_ids(self) -> np.ndarray:
        return np.array([segment.parent_id for segment in self.segments], dtype=np.int64)

    def segment_length(self, id: int) -> float:
        parent_id: int = self.segments[id].parent_id
        if parent_id == -1:
            return 0.
        return float(np.linalg.norm(self.segments[id].tip - self.segments[parent_id].tip))

    def volume(self) -> float:
        volume: float = 0.
        for id in range(1, len(self.segments)):
            volume += np.pi * self.segment_length(id) * self.segments[id].radius ** 2
        return volume

    # Colour
    def colour_indices(self) -> Optional[Colour]:
        names = ("red", "green", "blue")
        if not all(name in self.attribute_names for name in names):
            return None
        return Colour(*(self.attribute_names.index(name) for name in names))

    def colours(self) -> List[Colour]:
        indices: Optional[Colour] = self.colour_indices()
        if indices is None:
            raise KeyError("Tree has no red, green and blue attributes.")
        return [
            Colour(segment.attributes[indices.red], segment.attributes[indices.green], segment.attributes[indices.blue])
            for segment in self.segments
        ]

    def validate(self) -> None:
        for id, segment in enumerate(self.segments):
            if len(segment.attributes) != len(self.attribute_names):
                raise ValueError(f"Segment {id} has {len(segment.attributes)} attributes, but the tree schema has {len(self.attribute_names)}.")
        build_children(self)
        if not is_rooted_tree(tree_to_digraph(self)):
            raise TopologyError("Segments do not form a single rooted tree.")
        return

class Forest:
    trees: List[Tree]
    comments: List[str]

    def __init__(self, trees: Optional[List[Tree]] = None, comments: Optional[List[str]] = None) -> None:
        self.trees = trees if trees is not None else []
        self.comments = list(comments) if comments is not None else []
        return

    def __len__(self) -> int:
        return len(self.trees)

    def __iter__(self) -> Iterator[Tree]:
        return iter(self.trees)

    def copy(self) -> "Forest":
        return Forest([tree.copy() for tree in self.trees], self.comments)

def build_children(tree: Tree) -> List[List[int]]:
    num_segments: int = len(tree.segments)
    if num_segments == 0:
        raise TopologyError("Tree has no segments.")
    if tree.segments[0].parent_id != -1:
        raise TopologyError(f"Segment 0 must have parent -1, got {tree.segments[0].parent_id}.")
    children: List[List[int]] = [[] for _ in range(num_segments)]
    for id in range(1, num_segments):
        parent_id: int = tree.segments[id].parent_id
        if parent_id < 0 or parent_id >= id: # Parents must precede their children
            raise TopologyError(f"Segment {id} has parent {parent_id}, parents must be stored before their children.")
        children[parent_id].append(id)
    return children
