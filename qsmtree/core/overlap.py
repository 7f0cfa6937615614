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

from typing import List, NamedTuple
import numpy as np
from scipy.spatial import KDTree
from qsmtree.core.data_type import Tree

class Cylinder(NamedTuple):
    start: np.ndarray
    end: np.ndarray
    radius: float

def intersection_volume(cylinder1: Cylinder, cylinder2: Cylinder) -> float:
    """Approximate the volume shared by two cylinders whose axes are roughly aligned.

    Returns 0 for disjoint capsules and for degenerate geometry.
    """
    start1: np.ndarray = np.asarray(cylinder1.start, dtype=np.float64)
    end1: np.ndarray = np.asarray(cylinder1.end, dtype=np.float64)
    start2: np.ndarray = np.asarray(cylinder2.start, dtype=np.float64)
    end2: np.ndarray = np.asarray(cylinder2.end, dtype=np.float64)
    r: float = cylinder1.radius
    R: float = cylinder2.radius
    direction1: np.ndarray = end1 - start1
    direction2: np.ndarray = end2 - start2

    # Capsule exclusion along the common perpendicular, undefined for parallel axes
    normal: np.ndarray = np.cross(direction1, direction2)
    side1: np.ndarray = np.cross(normal, direction1)
    side2: np.ndarray = np.cross(normal, direction2)
    denominator1: float = float(np.dot(direction1, side2))
    denominator2: float = float(np.dot(direction2, side1))
    eps: float = 1e-6
    if abs(denominator1) > eps and abs(denominator2) > eps:
        f1: float = -float(np.dot(start1 - start2, side2)) / denominator1
        f2: float = -float(np.dot(start2 - start1, side1)) / denominator2
        closest1: np.ndarray = start1 + direction1 * min(max(f1, 0.), 1.)
        closest2: np.ndarray = start2 + direction2 * min(max(f2, 0.), 1.)
        if np.sum((closest1 - closest2) ** 2) >= (r + R) ** 2:
            return 0.

    if np.dot(direction1, direction2) < 0.:
        direction2 = -direction2
        start2, end2 = end2, start2
    axis: np.ndarray = direction1 + direction2
    axis_length: float = float(np.linalg.norm(axis))
    if not axis_length > 0.:
        return 0.
    axis /= axis_length

    d1: float = float(np.dot(start1, axis))
    d2: float = float(np.dot(end1, axis))
    e1: float = float(np.dot(start2, axis))
    e2: float = float(np.dot(end2, axis))
    if min(d1, d2) >= max(e1, e2) or min(e1, e2) >= max(d1, d2):
        return 0.
    upper: float = min(max(d1, d2), max(e1, e2))
    lower: float = max(min(d1, d2), min(e1, e2))
    overlap_length: float = upper - lower
    if not overlap_length > 0.:
        return 0.

    # Centreline offset at the middle of the shared interval
    middle: float = 0.5 * (upper + lower)
    with np.errstate(divide="ignore", invalid="ignore"):
        position1: np.ndarray = start1 + (end1 - start1) * (middle - d1) / (d2 - d1)
        position2: np.ndarray = start2 + (end2 - start2) * (middle - e1) / (e2 - e1)
    d: float = float(np.linalg.norm(position1 - position2))
    if not np.isfinite(d) or d >= r + R:
        return 0.
    min_radius: float = min(r, R)
    max_radius: float = max(r, R)
    if d < 1e-6 + max_radius - min_radius:
        return float(np.pi * min_radius ** 2 * overlap_length)

    # Circle-circle lens area
    cos1: float = (d * d + r * r - R * R) / (2. * d * r)
    cos2: float = (d * d + R * R - r * r) / (2. * d * R)
    square: float = (-d + r + R) * (d + r - R) * (d - r + R) * (d + r + R)
    area: float = (
        r * r * np.arccos(np.clip(cos1, -1., 1.))
        + R * R * np.arccos(np.clip(cos2, -1., 1.))
        - 0.5 * np.sqrt(max(square, 0.))
    )
    volume: float = float(area * overlap_length)
    if not np.isfinite(volume):
        return 0.
    return max(volume, 0.)

def get_tree_cylinders(tree: Tree, scale: float = 1., eps: float = 1e-7) -> List[Cylinder]:
    # Relative to the root, so a scaled tree grows about its base
    root_tip: np.ndarray = tree.root.tip
    cylinders: List[Cylinder] = []
    for segment in tree.segments[1:]:
        base: np.ndarray = tree.segments[segment.parent_id].tip
        if np.sum((segment.tip - base) ** 2) < eps:
            continue
        cylinders.append(Cylinder(
            scale * (base - root_tip),
            scale * (segment.tip - root_tip),
            scale * segment.radius
        ))
    return cylinders

def tree_overlap_volume(tree1: Tree, tree2: Tree, tree1_scale: float = 1.) -> float:
    cylinders1: List[Cylinder] = get_tree_cylinders(tree1, tree1_scale)
    cylinders2: List[Cylinder] = get_tree_cylinders(tree2)
    if len(cylinders1) == 0 or len(cylinders2) == 0:
        return 0.
    # Bounding spheres discard most pairs before the exact test
    centres1: np.ndarray = np.array([0.5 * (c.start + c.end) for c in cylinders1])
    centres2: np.ndarray = np.array([0.5 * (c.start + c.end) for c in cylinders2])
    extents1: np.ndarray = np.array([0.5 * np.linalg.norm(c.end - c.start) + c.radius for c in cylinders1])
    extents2: np.ndarray = np.array([0.5 * np.linalg.norm(c.end - c.start) + c.radius for c in cylinders2])
    kdtree: KDTree = KDTree(centres2)
    neighbours: List[List[int]] = kdtree.query_ball_point(centres1, extents1 + extents2.max())
    volume: float = 0.
    for i, js in enumerate(neighbours):
        for j in js:
            if np.linalg.norm(centres1[i] - centres2[j]) >= extents1[i] + extents2[j]:
                continue
            volume += intersection_volume(cylinders1[i], cylinders2[j])
    return volume
