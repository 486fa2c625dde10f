#!/usr/bin/env python3
"""
Dish Geometry Module

Classifies the container as a deep or flat vessel from its silhouette in the
top view, and derives the reference height (base surface) of the food.

A bowl seen from above shows its rim and a cavity filled with food, so the
container label covers only a ring of its bounding box (low fill ratio).
A plate covers most of its bounding box.
"""

from enum import Enum
from typing import List

import numpy as np

from .labels import CONTAINER_CLASS, find_class_id

FILL_RATIO_THRESHOLD = 0.7

# Base surface offsets above the lowest point (m)
DEEP_PLATE_OFFSET_M = 0.02
FLAT_PLATE_OFFSET_M = 0.005


class DishType(Enum):
    DEEP_PLATE = "DEEP_PLATE"
    FLAT_PLATE = "FLAT_PLATE"


def container_fill_ratio(mask: np.ndarray, labels: List[str]) -> float:
    """
    Fill ratio of the container silhouette

    Args:
        mask: (H, W) label mask of the top view
        labels: label names

    Returns:
        fill_ratio: container pixels / bounding box area, 0.0 without a container
    """
    mask = np.asarray(mask)
    container_id = find_class_id(labels, CONTAINER_CLASS)
    if container_id is None or mask.ndim != 2:
        return 0.0

    ys, xs = np.nonzero(mask == container_id)
    if len(xs) == 0:
        return 0.0

    width = int(xs.max() - xs.min()) + 1
    height = int(ys.max() - ys.min()) + 1
    return len(xs) / float(width * height)


def classify_dish_type(
    mask: np.ndarray,
    labels: List[str],
    verbose: bool = False
) -> DishType:
    """
    Deep or flat vessel from the top-view container silhouette

    Args:
        mask: (H, W) label mask of the top view
        labels: label names
        verbose: print the decision

    Returns:
        dish_type: DEEP_PLATE when the fill ratio is below 0.7, FLAT_PLATE
            otherwise or when no container is visible
    """
    fill_ratio = container_fill_ratio(mask, labels)

    if fill_ratio == 0.0:
        dish_type = DishType.FLAT_PLATE
    elif fill_ratio < FILL_RATIO_THRESHOLD:
        dish_type = DishType.DEEP_PLATE
    else:
        dish_type = DishType.FLAT_PLATE

    if verbose:
        print(f"\nDish geometry...")
        print(f"  container fill ratio: {fill_ratio:.3f}")
        print(f"  ✓ dish type: {dish_type.value}")

    return dish_type


def estimate_base_z(points: np.ndarray, dish_type: DishType) -> float:
    """
    Reference height of the food bottom

    Lowest z of the fused cloud plus 2 cm for a deep dish (interior bottom)
    or 5 mm for a flat plate (plate top surface). 0.0 for an empty cloud.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(points) == 0:
        return 0.0

    min_z = float(points[:, 2].min())
    if dish_type == DishType.DEEP_PLATE:
        return min_z + DEEP_PLATE_OFFSET_M
    return min_z + FLAT_PLATE_OFFSET_M
