import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest


def unit(vector):
    vector = np.asarray(vector, dtype=float)
    return vector / np.linalg.norm(vector)


@pytest.fixture
def render_sphere():
    """Render a Lambertian sphere lit by a distant source, rows are x and columns are y."""
    def render(light, shape=(101, 101), center=(50, 50), radius=40, albedo=200.0):
        rows, cols = np.indices(shape)
        dx = rows - center[0]
        dy = cols - center[1]
        depth_squared = radius ** 2 - dx ** 2 - dy ** 2
        inside = depth_squared > 0
        z = np.sqrt(np.where(inside, depth_squared, 0))
        normals = np.dstack((dx, dy, z)) / radius
        shading = albedo * np.clip(normals @ unit(light), 0, None)
        return np.where(inside, shading, 0.0)
    return render


@pytest.fixture
def lights():
    return np.array([unit([0, 0, 1]), unit([0.5, 0, 1]), unit([0, 0.5, 1])])
