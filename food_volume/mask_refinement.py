#!/usr/bin/env python3
"""
Mask Refinement Module

Morphological clean-up of a multi-class segmentation mask with OpenCV.

Per class (background excluded):
1. binary mask of the class
2. opening (noise) then closing (holes), 5x5 ellipse
3. drop connected components smaller than min_area
4. polygonal contour smoothing

The classes are then painted back in class-id order.
"""

import cv2
import numpy as np

KERNEL_SIZE = 5
MIN_COMPONENT_AREA = 10
CONTOUR_EPSILON_PERCENT = 2.0


def clean_binary_mask(binary: np.ndarray, kernel_size: int = KERNEL_SIZE) -> np.ndarray:
    kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (kernel_size, kernel_size))
    opened = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
    return cv2.morphologyEx(opened, cv2.MORPH_CLOSE, kernel)


def remove_small_components(binary: np.ndarray, min_area: int = MIN_COMPONENT_AREA) -> np.ndarray:
    num_components, components, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=8)

    result = np.zeros_like(binary)
    # component 0 is the background
    for i in range(1, num_components):
        if stats[i, cv2.CC_STAT_AREA] >= min_area:
            result[components == i] = 255
    return result


def smooth_contours(binary: np.ndarray, epsilon_percent: float = CONTOUR_EPSILON_PERCENT) -> np.ndarray:
    """Refill each outer contour as its polygonal approximation."""
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    result = np.zeros_like(binary)
    for contour in contours:
        arc_length = cv2.arcLength(contour, True)
        approx = cv2.approxPolyDP(contour, epsilon_percent * arc_length / 100.0, True)
        cv2.fillPoly(result, [approx], 255)
    return result


def refine_multiclass_mask(
    mask: np.ndarray,
    num_classes: int,
    background_class_id: int = 0,
    kernel_size: int = KERNEL_SIZE,
    min_area: int = MIN_COMPONENT_AREA,
    epsilon_percent: float = CONTOUR_EPSILON_PERCENT
) -> np.ndarray:
    """
    Refine a multi-class label mask

    Args:
        mask: (H, W) label mask
        num_classes: number of labels; ids >= num_classes are dropped to 0
        background_class_id: class copied through without processing
        kernel_size: morphology kernel size (px)
        min_area: smallest connected component kept (px)
        epsilon_percent: contour approximation tolerance, % of arc length

    Returns:
        refined: mask of identical shape and dtype
    """
    mask = np.asarray(mask)
    refined = np.zeros_like(mask)
    if mask.ndim != 2 or mask.size == 0:
        return refined

    for class_id in range(num_classes):
        binary = np.where(mask == class_id, 255, 0).astype(np.uint8)
        if not binary.any():
            continue

        if class_id != background_class_id:
            binary = clean_binary_mask(binary, kernel_size)
            binary = remove_small_components(binary, min_area)
            binary = smooth_contours(binary, epsilon_percent)

        refined[binary > 0] = class_id

    return refined
