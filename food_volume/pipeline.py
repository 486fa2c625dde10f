#!/usr/bin/env python3
"""
Food Volume Estimation Pipeline

Top view + side view (depth, mask, pose) -> volume and nutrition.

Pipeline:
1. Food point cloud per view
2. Fusion and outlier removal
3. Dish type from the top-view container silhouette
4. Base surface height
5. Voxel volume above the base surface
6. Class attribution (external classification preferred)
7. Nutrition from the volume

Every stage is a pure function of its inputs; empty or degenerate captures
give a zero result instead of an error.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from .dish_geometry import DishType, classify_dish_type, estimate_base_z
from .nutrition import NutritionCalculator, NutritionResult, NutritionTable
from .pointcloud import DepthFrame, depth_frame_to_pointcloud, fuse_point_clouds
from .volume_calculation import VOXEL_SIZE_MM, VolumeCalculator, attribute_volume


@dataclass(frozen=True, eq=False)
class VolumeResult:
    """
    Output of one estimation request, read-only once produced

    Attributes:
        total_volume: ml, sum of component_volumes
        component_volumes: {class_name: ml}, read-only mapping
        nutrition_results: {class_name: NutritionResult}, read-only mapping
        point_cloud_top: (N, 3) read-only
        point_cloud_side: (M, 3) read-only
        point_cloud_combined: (K, 3) read-only
        base_z: base surface height (m)
        dish_type: DEEP_PLATE or FLAT_PLATE
    """
    total_volume: float
    component_volumes: Mapping[str, float]
    nutrition_results: Mapping[str, NutritionResult]
    point_cloud_top: np.ndarray
    point_cloud_side: np.ndarray
    point_cloud_combined: np.ndarray
    base_z: float
    dish_type: DishType


def _read_only(points: np.ndarray) -> np.ndarray:
    points = np.array(points, dtype=np.float64, copy=True).reshape(-1, 3)
    points.setflags(write=False)
    return points


class FoodVolumeEstimator:
    """
    Volume and nutrition estimator for a two-view capture

    Holds only configuration; one instance can serve any number of
    independent requests.
    """

    def __init__(
        self,
        nutrition_table: NutritionTable,
        voxel_size_mm: float = VOXEL_SIZE_MM,
        apply_rotation: bool = False,
        verbose: bool = False
    ):
        """
        Args:
            nutrition_table: nutrition categories (loaded once by the caller)
            voxel_size_mm: voxel edge length (mm)
            apply_rotation: apply the camera rotation when moving points into
                the world frame (default: translation only)
            verbose: print progress
        """
        self.nutrition_table = nutrition_table
        self.apply_rotation = apply_rotation
        self.verbose = verbose
        self.volume_calculator = VolumeCalculator(voxel_size_mm=voxel_size_mm, verbose=verbose)
        self.nutrition_calculator = NutritionCalculator(nutrition_table, verbose=verbose)

    def estimate(
        self,
        top_frame: DepthFrame,
        side_frame: DepthFrame,
        classification: Optional[str] = None
    ) -> VolumeResult:
        """
        Estimate food volume and nutrition

        Args:
            top_frame: top-down capture
            side_frame: side capture
            classification: optional whole-image label from an external
                classifier ("unknown" or None when there is none)

        Returns:
            result: VolumeResult
        """
        if self.verbose:
            print("=" * 70)
            print("Food Volume Estimation")
            print("=" * 70)

        points_top = depth_frame_to_pointcloud(top_frame, self.apply_rotation, verbose=self.verbose)
        points_side = depth_frame_to_pointcloud(side_frame, self.apply_rotation, verbose=self.verbose)
        combined = fuse_point_clouds(points_top, points_side, verbose=self.verbose)

        dish_type = classify_dish_type(top_frame.mask, list(top_frame.labels), verbose=self.verbose)
        base_z = estimate_base_z(combined, dish_type)

        volume = self.volume_calculator.calculate_volume_voxel(combined, base_z)

        if volume['num_points_above_base'] == 0:
            component_volumes = {}
        else:
            component_volumes = attribute_volume(
                volume['volume_ml'],
                list(top_frame.labels),
                classification,
                verbose=self.verbose
            )

        nutrition_results = self.nutrition_calculator.calculate_from_volumes(component_volumes)
        total_volume = float(sum(component_volumes.values()))

        if self.verbose:
            print("\n" + "=" * 70)
            print(f"  dish type: {dish_type.value}, base z: {base_z:.4f} m")
            print(f"  total volume: {total_volume:.1f} ml")
            for name, r in nutrition_results.items():
                print(f"  {name}: {r.weight:.1f} g, {r.calories:.1f} kcal, "
                      f"P {r.proteins:.1f} g / F {r.fats:.1f} g / C {r.carbohydrates:.1f} g")
            print("=" * 70)

        return VolumeResult(
            total_volume=total_volume,
            component_volumes=MappingProxyType(dict(component_volumes)),
            nutrition_results=MappingProxyType(dict(nutrition_results)),
            point_cloud_top=_read_only(points_top),
            point_cloud_side=_read_only(points_side),
            point_cloud_combined=_read_only(combined),
            base_z=base_z,
            dish_type=dish_type
        )

    def estimate_from_mask(
        self,
        mask: np.ndarray,
        labels: Sequence[str],
        total_volume_ml: float
    ) -> Dict[str, NutritionResult]:
        """Nutrition from a single mask and an approximate total volume (no 3D data)."""
        return self.nutrition_calculator.calculate_from_mask(mask, labels, total_volume_ml)
