import numpy as np
from scipy.spatial.transform import Rotation

def normalize(vector: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    norm: float = np.linalg.norm(vector)
    if norm < eps:
        return np.zeros_like(vector, dtype=float)
    return vector / norm

def calculate_angle_between_vectors(v1: np.ndarray, v2: np.ndarray) -> float:
    # atan2 keeps precision for nearly parallel vectors, unlike arccos
    cross: float = np.linalg.norm(np.cross(v1, v2))
    dot: float = float(np.dot(v1, v2))
    return float(np.degrees(np.arctan2(cross, dot)))

def find_a_vertical_direction_3d(direction: np.ndarray) -> np.ndarray:
    direction: np.ndarray = direction / np.linalg.norm(direction)
    x: float = direction[0]
    y: float = direction[1]
    z: float = direction[2]
    vertical_direction: np.ndarray
    if abs(y) >= abs(x) and abs(z) >= abs(x):
        vertical_direction = np.array([0., -z, y])
    elif abs(x) >= abs(y) and abs(z) >= abs(y):
        vertical_direction = np.array([-z, 0., x])
    else:
        vertical_direction = np.array([-y, x, 0.])
    return vertical_direction / np.linalg.norm(vertical_direction)

def rotate_vector(vector: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    # angle in radians, right-handed about axis
    return Rotation.from_rotvec(normalize(axis) * angle).apply(vector)

