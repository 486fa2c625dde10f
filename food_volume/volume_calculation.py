#!/usr/bin/env python3
"""
Food Volume Calculation Module

Computes the absolute food volume (ml) from the fused point cloud and
attributes it to a food class.

Method (voxel occupancy):
1. Keep the points at or above the base surface
2. Bin them into a regular grid of 2 mm voxels
3. Count a voxel as filled when it holds at least 30 % of the average
   number of points per voxel (minimum 1)
4. volume = filled voxels x voxel volume

The density-relative threshold adapts to clouds of different densities;
very sparse clouds can be under-counted.
"""

from typing import Dict, List, Optional

import numpy as np

from .labels import EXCLUDED_CLASSES, UNKNOWN_FOOD_LABEL, UNKNOWN_LABEL, is_food_label

VOXEL_SIZE_MM = 2.0
MIN_DENSITY_THRESHOLD = 0.3

# Keeps points that sit exactly on a voxel boundary from slipping down one cell
_INDEX_EPS = 1e-9


class VolumeCalculator:
    """
    Voxel-occupancy volume calculator

    Point clouds are in meters, the voxel size in millimeters.
    """

    def __init__(self, voxel_size_mm: float = VOXEL_SIZE_MM, verbose: bool = False):
        """
        Args:
            voxel_size_mm: voxel edge length (mm)
            verbose: print progress
        """
        self.voxel_size_mm = voxel_size_mm
        self.verbose = verbose

    def _empty_result(self, num_points: int = 0) -> Dict:
        return {
            'volume_ml': 0.0,
            'num_points': num_points,
            'num_points_above_base': 0,
            'num_filled_voxels': 0,
            'grid_shape': (0, 0, 0),
            'min_points_threshold': 0,
            'voxel_size_mm': self.voxel_size_mm,
            'method': 'voxel'
        }

    def calculate_volume_voxel(self, points: np.ndarray, base_z: float) -> Dict:
        """
        Volume of the occupied space above the base surface

        Args:
            points: (N, 3) fused point cloud in meters
            base_z: base surface height in meters

        Returns:
            result: {
                'volume_ml': volume (ml),
                'num_points': input points,
                'num_points_above_base': points with z >= base_z,
                'num_filled_voxels': voxels at or above the density threshold,
                'grid_shape': (nx, ny, nz),
                'min_points_threshold': points needed to fill a voxel,
                'voxel_size_mm': voxel edge (mm),
                'method': 'voxel'
            }
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)

        if self.verbose:
            print(f"\nVolume calculation (voxel)...")
            print(f"  points: {len(points):,}")
            print(f"  base z: {base_z:.4f} m")

        above = points[points[:, 2] >= base_z]
        if len(above) == 0:
            if self.verbose:
                print("  ⚠️ no points above the base surface")
            return self._empty_result(len(points))

        voxel_size_m = self.voxel_size_mm / 1000.0
        min_bound = above.min(axis=0)
        max_bound = above.max(axis=0)

        grid_shape = np.ceil((max_bound - min_bound) / voxel_size_m).astype(np.int64) + 1
        if np.any(grid_shape <= 0):
            if self.verbose:
                print(f"  ⚠️ invalid voxel grid: {tuple(grid_shape)}")
            return self._empty_result(len(points))

        # Per-axis clamped integer division
        indices = np.floor((above - min_bound) / voxel_size_m + _INDEX_EPS).astype(np.int64)
        indices = np.clip(indices, 0, grid_shape - 1)

        # Only occupied voxels are materialised
        flat = np.ravel_multi_index(indices.T, tuple(grid_shape))
        _, counts = np.unique(flat, return_counts=True)

        total_voxels = int(np.prod(grid_shape))
        avg_points_per_voxel = len(above) / total_voxels
        min_points_threshold = max(1, int(avg_points_per_voxel * MIN_DENSITY_THRESHOLD))

        num_filled = int(np.count_nonzero(counts >= min_points_threshold))

        # mm^3 -> ml (1 ml = 1000 mm^3)
        volume_ml = num_filled * self.voxel_size_mm ** 3 / 1000.0

        result = {
            'volume_ml': volume_ml,
            'num_points': len(points),
            'num_points_above_base': len(above),
            'num_filled_voxels': num_filled,
            'grid_shape': tuple(int(n) for n in grid_shape),
            'min_points_threshold': min_points_threshold,
            'voxel_size_mm': self.voxel_size_mm,
            'method': 'voxel'
        }

        if self.verbose:
            print(f"  grid: {result['grid_shape']}")
            print(f"  average points per voxel: {avg_points_per_voxel:.4f}, "
                  f"threshold: {min_points_threshold}")
            print(f"  ✓ volume calculated")
            print(f"    filled voxels: {num_filled:,} (max {int(counts.max())} points)")
            print(f"    volume: {volume_ml:.1f} ml")

        return result


def select_food_class(
    labels: List[str],
    classification: Optional[str] = None,
    excluded_classes=EXCLUDED_CLASSES
) -> str:
    """
    Class that receives the whole volume

    Priority:
    1. external whole-image classification, unless missing or "unknown"
    2. first food label in the label list
    3. "unknown_food"
    """
    if classification is not None and classification != UNKNOWN_LABEL:
        return classification

    for label in labels:
        if is_food_label(label, excluded_classes):
            return label

    return UNKNOWN_FOOD_LABEL


def attribute_volume(
    volume_ml: float,
    labels: List[str],
    classification: Optional[str] = None,
    verbose: bool = False
) -> Dict[str, float]:
    """
    Attribute the undifferentiated voxel volume to a single class

    The voxel grid is not partitioned by class, so a multi-class plate is
    reported under one representative label.

    Returns:
        component_volumes: {class_name: volume_ml}
    """
    selected = select_food_class(labels, classification)

    if verbose:
        print(f"\nClass attribution...")
        print(f"  labels: {', '.join(labels)}")
        print(f"  classification: {classification}")
        print(f"  ✓ selected class: {selected}")

    return {selected: max(0.0, float(volume_ml))}
