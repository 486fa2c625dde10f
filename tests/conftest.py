"""Shared fixtures for the food volume test suite."""
import numpy as np
import pytest

from food_volume.nutrition import NutritionTable
from food_volume.pointcloud import CameraPose, DepthFrame

FOOD_LABELS = ["background", "food_containers", "rice"]


@pytest.fixture
def nutrition_table():
    """Small nutrition table (per 100 g)."""
    return NutritionTable.from_records([
        {"category": "rice", "density": 0.9, "calories": 130, "protein": 2.7, "fat": 0.3, "carbs": 28},
        {"category": "Dairy", "density": 1.0, "calories": 60, "protein": 3.2, "fat": 3.3, "carbs": 4.8},
        {"category": "leafy_greens", "density": 0.4, "calories": 15, "protein": 1.4, "fat": 0.2, "carbs": 2.9},
    ])


def make_frame(depth, mask, labels, translation=(0.0, 0.0, 0.0), rotation=(0.0, 0.0, 0.0, 1.0)):
    """DepthFrame from a 2-D depth map."""
    depth = np.asarray(depth, dtype=np.float64)
    return DepthFrame(
        depth_values=depth.ravel(),
        width=depth.shape[1],
        height=depth.shape[0],
        mask=np.asarray(mask),
        labels=list(labels),
        pose=CameraPose(translation=tuple(translation), rotation=tuple(rotation))
    )


@pytest.fixture
def bowl_frame():
    """
    100x100 top view: a rice disc inside a container ring, depth sloping
    from 0.30 m to 0.35 m across the image.
    """
    size = 100
    yy, xx = np.mgrid[0:size, 0:size]
    radius = np.hypot(xx - size / 2, yy - size / 2)

    mask = np.zeros((size, size), dtype=np.int32)
    mask[(radius >= 30) & (radius < 40)] = 1
    mask[radius < 30] = 2

    depth = 0.30 + 0.05 * xx / (size - 1)
    return make_frame(depth, mask, FOOD_LABELS)
