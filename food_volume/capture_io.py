#!/usr/bin/env python3
"""
Capture I/O

Loading and saving of captured views, RGB images, point clouds and results.

Frame archive (.npz):
    depth        (H, W) float32 depth in meters
    mask         (maskH, maskW) int label mask
    labels       (L,) label names
    translation  (3,) camera translation (m)
    rotation     (4,) camera quaternion (qx, qy, qz, qw)

Point-cloud export and visualization use Open3D (optional "viz" extra).
"""

from pathlib import Path
from typing import Dict, Optional, Sequence

import cv2
import numpy as np

from .pipeline import VolumeResult
from .pointcloud import CameraPose, DepthFrame

_FRAME_KEYS = ('depth', 'mask', 'labels', 'translation', 'rotation')

# top: red, side: blue, combined: green
_CLOUD_COLORS = ([1, 0, 0], [0, 0, 1], [0, 1, 0])


def load_depth_frame(path) -> DepthFrame:
    """
    Load a captured view

    Raises:
        FileNotFoundError: the archive does not exist
        ValueError: a key is missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"frame archive not found: {path}")

    with np.load(path, allow_pickle=False) as data:
        missing = [key for key in _FRAME_KEYS if key not in data.files]
        if missing:
            raise ValueError(f"{path}: missing {', '.join(missing)}")

        depth = np.asarray(data['depth'], dtype=np.float32)
        if depth.ndim != 2:
            raise ValueError(f"{path}: depth must be 2-D, got shape {depth.shape}")

        pose = CameraPose(
            translation=tuple(float(v) for v in data['translation']),
            rotation=tuple(float(v) for v in data['rotation'])
        )

        return DepthFrame(
            depth_values=depth.ravel(),
            width=depth.shape[1],
            height=depth.shape[0],
            mask=np.asarray(data['mask'], dtype=np.int32),
            labels=[str(label) for label in data['labels']],
            pose=pose
        )


def save_depth_frame(path, frame: DepthFrame):
    """Save a captured view in the archive layout of load_depth_frame."""
    depth = np.asarray(frame.depth_values, dtype=np.float32).reshape(frame.height, frame.width)
    np.savez_compressed(
        path,
        depth=depth,
        mask=np.asarray(frame.mask, dtype=np.int32),
        labels=np.array(list(frame.labels), dtype=str),
        translation=np.asarray(frame.pose.translation, dtype=np.float64),
        rotation=np.asarray(frame.pose.rotation, dtype=np.float64)
    )


def load_rgb_image(path) -> np.ndarray:
    """Read an image as (H, W, 3) RGB."""
    image = cv2.imread(str(path))
    if image is None:
        raise FileNotFoundError(f"image not found or unreadable: {path}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def _to_open3d(points: np.ndarray, color: Optional[Sequence[float]] = None):
    import open3d as o3d

    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64).reshape(-1, 3))
    if color is not None:
        pcd.paint_uniform_color(color)
    return pcd


def save_point_cloud(path, points: np.ndarray) -> bool:
    """Write a point cloud (.ply / .pcd) with Open3D."""
    import open3d as o3d

    return o3d.io.write_point_cloud(str(path), _to_open3d(points))


def visualize_point_clouds(result: VolumeResult, window_name: str = "Food Point Clouds"):
    """
    Show the top (red), side (blue) and fused (green) clouds

    Needs a display.
    """
    import open3d as o3d

    clouds = (result.point_cloud_top, result.point_cloud_side, result.point_cloud_combined)
    geometries = [_to_open3d(points, color) for points, color in zip(clouds, _CLOUD_COLORS) if len(points)]

    o3d.visualization.draw_geometries(
        geometries,
        window_name=window_name,
        width=1024,
        height=768
    )


def volume_result_to_dict(result: VolumeResult) -> Dict:
    """JSON-serialisable summary of a VolumeResult (point clouds as counts)."""
    return {
        'total_volume_ml': result.total_volume,
        'component_volumes_ml': dict(result.component_volumes),
        'nutrition': {
            name: {
                'weight_g': r.weight,
                'calories_kcal': r.calories,
                'proteins_g': r.proteins,
                'fats_g': r.fats,
                'carbohydrates_g': r.carbohydrates
            }
            for name, r in result.nutrition_results.items()
        },
        'num_points_top': len(result.point_cloud_top),
        'num_points_side': len(result.point_cloud_side),
        'num_points_combined': len(result.point_cloud_combined),
        'base_z_m': result.base_z,
        'dish_type': result.dish_type.value
    }
