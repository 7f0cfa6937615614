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
import os
from typing import Optional, Sequence, Tuple
import numpy as np
from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

TINY: float = np.finfo(np.float64).tiny

def calculate_power_law(
        xs: Sequence[float],
        graph_file: Optional[str] = None,
        x_label: str = "x"
) -> Tuple[float, float, float]:
    """Fit ``count(size >= x) = c * x^d`` in log-log space.

    Each point is weighted by the spacing of its neighbours along the log-size
    axis so that densely sampled size ranges do not dominate the fit.

    Returns:
        (c, d, r2)
    """
    sizes: np.ndarray = np.sort(np.asarray(xs, dtype=np.float64).reshape(-1))
    if np.any(sizes <= 0.) or not np.all(np.isfinite(sizes)):
        raise ValueError("Power law sizes must be positive and finite.")
    n: int = len(sizes)
    log_x: np.ndarray = np.log(sizes)
    log_y: np.ndarray = np.log(n - np.arange(n, dtype=np.float64))

    indices: np.ndarray = np.arange(n)
    weights: np.ndarray = log_x[np.minimum(indices + 1, n - 1)] - log_x[np.maximum(indices - 1, 0)]
    if n > 0:
        # Only one neighbour at each end
        weights[0] *= 2.
        if n > 1:
            weights[-1] *= 2.
    total_weight: float = TINY + float(np.sum(weights))

    mean_x: float = float(np.sum(weights * log_x)) / total_weight
    mean_y: float = float(np.sum(weights * log_y)) / total_weight
    dx: np.ndarray = log_x - mean_x
    dy: np.ndarray = log_y - mean_y
    xx: float = TINY + float(np.sum(weights * dx * dx))
    xy: float = float(np.sum(weights * dx * dy))
    yy: float = float(np.sum(weights * dy * dy))

    b: float = xy / xx
    a: float = mean_y - b * mean_x
    r2: float = xy * xy / max(xx * yy, TINY)

    if graph_file is not None:
        render_power_law_graph(graph_file, log_x, log_y, a, b, x_label)
    return float(np.exp(a)), b, r2

def render_power_law_graph(
        graph_file: str,
        log_x: np.ndarray,
        log_y: np.ndarray,
        a: float,
        b: float,
        x_label: str = "x"
) -> str:
    if not graph_file.lower().endswith(".svg"):
        graph_file += ".svg"
    figure = Figure(figsize=(4., 3.))
    axes = figure.add_subplot(1, 1, 1)
    axes.scatter(log_x, log_y, s=4, color="green")
    if len(log_x) > 0:
        x_range: np.ndarray = np.array([log_x.min(), log_x.max()])
        axes.plot(x_range, a + b * x_range, color="black", linewidth=1.)
    axes.set_xlabel(f"log {x_label}")
    axes.set_ylabel(f"log number larger than {x_label}")
    axes.set_title(f"y = {np.exp(a):.3f} x^{b:.3f}")
    directory: str = os.path.dirname(os.path.abspath(graph_file))
    os.makedirs(directory, exist_ok=True)
    figure.savefig(graph_file, format="svg")
    logger.info(f"Saved power law graph to {graph_file}")
    return graph_file
