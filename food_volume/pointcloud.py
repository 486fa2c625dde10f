#!/usr/bin/env python3
"""
Depth-to-Point-Cloud Module

Converts one captured view (depth map + segmentation mask + camera pose)
into a 3D point cloud of the food pixels, and fuses the top and side views
into a single filtered cloud.

Pipeline per view:
1. Select mask pixels whose label is a food class
2. Map each mask pixel proportionally into depth-map coordinates
3. Drop samples outside the close-range depth window (0.1 m, 1.0 m)
4. Unproject with a fixed pinhole model (f = half the mask size)
5. Move into the world frame with the camera pose
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .labels import EXCLUDED_CLASSES, food_class_ids

MIN_DEPTH_M = 0.1
MAX_DEPTH_M = 1.0

OUTLIER_STD_MULTIPLIER = 2.0
MIN_POINTS_FOR_FILTERING = 10

# Slack for axes with zero spread (float mean of identical values)
_STD_TOLERANCE_M = 1e-9


@dataclass(frozen=True)
class CameraPose:
    """
    Camera pose of one capture

    Attributes:
        translation: (tx, ty, tz) in meters
        rotation: quaternion (qx, qy, qz, qw)
    """
    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def rotation_matrix(self) -> np.ndarray:
        """3x3 rotation matrix of the pose quaternion (identity for a zero quaternion)."""
        quat = np.asarray(self.rotation, dtype=np.float64)
        if quat.shape != (4,) or not np.isfinite(quat).all() or np.linalg.norm(quat) == 0:
            return np.eye(3)
        return Rotation.from_quat(quat).as_matrix()

    def transform_points(self, points: np.ndarray, apply_rotation: bool = False) -> np.ndarray:
        """
        Camera frame -> world frame

        Args:
            points: (N, 3) camera-space points in meters
            apply_rotation: rotate by the pose quaternion before translating.
                False keeps the translation-only transform.

        Returns:
            world_points: (N, 3)
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if apply_rotation:
            points = points @ self.rotation_matrix().T
        return points + np.asarray(self.translation, dtype=np.float64)


@dataclass(frozen=True, eq=False)
class DepthFrame:
    """
    One captured view

    Attributes:
        depth_values: flat depth map in meters, length width * height
        width: depth map width
        height: depth map height
        mask: (maskHeight, maskWidth) label mask, mask[y][x] indexes labels
        labels: ordered label names
        pose: camera pose of the capture
    """
    depth_values: np.ndarray
    width: int
    height: int
    mask: np.ndarray
    labels: List[str]
    pose: CameraPose = field(default_factory=CameraPose)


def depth_frame_to_pointcloud(
    frame: DepthFrame,
    apply_rotation: bool = False,
    excluded_classes: Sequence[str] = EXCLUDED_CLASSES,
    verbose: bool = False
) -> np.ndarray:
    """
    Build the food point cloud of one view

    Args:
        frame: captured view
        apply_rotation: also apply the pose rotation (see CameraPose.transform_points)
        excluded_classes: labels that are not food
        verbose: print progress

    Returns:
        points: (N, 3) world-frame points in meters, one per accepted pixel
    """
    mask = np.asarray(frame.mask)
    depth_values = np.asarray(frame.depth_values, dtype=np.float64).ravel()
    depth_w, depth_h = int(frame.width), int(frame.height)

    if mask.ndim != 2 or mask.size == 0 or depth_w <= 0 or depth_h <= 0:
        return np.empty((0, 3))

    mask_h, mask_w = mask.shape

    if verbose:
        print(f"\nDepth -> point cloud...")
        print(f"  mask size: {mask_w}x{mask_h}")
        print(f"  depth size: {depth_w}x{depth_h} ({depth_values.size} values)")

    food_ids = food_class_ids(list(frame.labels), excluded_classes)
    v, u = np.nonzero(np.isin(mask, food_ids))

    # Proportional index scaling into the depth map, clamped
    depth_x = np.clip(u * depth_w // mask_w, 0, depth_w - 1)
    depth_y = np.clip(v * depth_h // mask_h, 0, depth_h - 1)
    depth_index = depth_y * depth_w + depth_x

    in_bounds = depth_index < depth_values.size
    u, v, depth_index = u[in_bounds], v[in_bounds], depth_index[in_bounds]
    z = depth_values[depth_index]

    valid = (z > MIN_DEPTH_M) & (z < MAX_DEPTH_M)
    u, v, z = u[valid], v[valid], z[valid]

    # Fixed pinhole model: focal length = half the mask size, principal point at the center
    fx = mask_w / 2.0
    fy = mask_h / 2.0
    cx = mask_w / 2.0
    cy = mask_h / 2.0

    x = (u - cx) * z / fx
    y = (v - cy) * z / fy
    camera_points = np.stack([x, y, z], axis=1)

    points = frame.pose.transform_points(camera_points, apply_rotation=apply_rotation)

    if verbose:
        print(f"  food pixels: {in_bounds.size:,}")
        print(f"  ✓ points generated: {len(points):,}")

    return points


def fuse_point_clouds(
    points_top: np.ndarray,
    points_side: np.ndarray,
    verbose: bool = False
) -> np.ndarray:
    """
    Concatenate two views and drop statistical outliers

    Keeps the points that lie within 2 standard deviations of the mean on all
    three axes at once. Single pass, order independent. Clouds with fewer than
    10 points are returned unfiltered.

    Args:
        points_top: (N, 3) top-view points
        points_side: (M, 3) side-view points
        verbose: print progress

    Returns:
        fused: (K, 3) filtered cloud
    """
    combined = np.vstack([
        np.asarray(points_top, dtype=np.float64).reshape(-1, 3),
        np.asarray(points_side, dtype=np.float64).reshape(-1, 3)
    ])

    if len(combined) < MIN_POINTS_FOR_FILTERING:
        return combined

    mean = combined.mean(axis=0)
    std = combined.std(axis=0)

    deviation = np.abs(combined - mean)
    keep = np.all(deviation <= OUTLIER_STD_MULTIPLIER * std + _STD_TOLERANCE_M, axis=1)
    fused = combined[keep]

    if verbose:
        print(f"\nPoint cloud fusion...")
        print(f"  combined: {len(combined):,} points")
        print(f"  mean: {mean}, std: {std}")
        print(f"  ✓ kept {len(fused):,} points ({len(combined) - len(fused):,} outliers removed)")

    return fused
