#!/usr/bin/env python3
"""
Food Volume Estimation Pipeline

Two-view (top + side) depth captures -> food volume and nutrition

Pipeline:
1. Food point cloud per view (depth + segmentation mask + camera pose)
2. Fusion and outlier removal
3. Dish type (deep/flat) from the container silhouette
4. Base surface height
5. Voxel volume (ml)
6. Class attribution and nutrition

Usage:
  python3 scripts/estimate_food_volume.py \\
    --top captures/top.npz \\
    --side captures/side.npz \\
    --nutrition data/categories.json \\
    --classification rice \\
    --output results/volume_food.json

Frame archives (.npz): depth, mask, labels, translation, rotation
(see food_volume/capture_io.py).
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import argparse
import json
from datetime import datetime
from pathlib import Path

from food_volume.capture_io import (
    load_depth_frame,
    save_point_cloud,
    visualize_point_clouds,
    volume_result_to_dict,
)
from food_volume.nutrition import NutritionTable
from food_volume.pipeline import FoodVolumeEstimator
from food_volume.volume_calculation import VOXEL_SIZE_MM

DEFAULT_NUTRITION_TABLE = Path(__file__).resolve().parent.parent / "data" / "categories.json"


def estimate_food_volume_pipeline(
    top_path: str,
    side_path: str,
    nutrition_path: str,
    classification: str = None,
    voxel_size_mm: float = VOXEL_SIZE_MM,
    apply_rotation: bool = False,
    cloud_dir: str = None,
    visualize: bool = False
) -> dict:
    """
    Run the estimator on two saved captures

    Args:
        top_path: top-view frame archive
        side_path: side-view frame archive
        nutrition_path: nutrition table JSON
        classification: whole-image label from an external classifier
        voxel_size_mm: voxel edge (mm)
        apply_rotation: apply camera rotation during fusion
        cloud_dir: directory for .ply exports (None: no export)
        visualize: open the point-cloud viewer

    Returns:
        result: JSON-serialisable result
    """
    print(f"Top view: {top_path}")
    print(f"Side view: {side_path}")
    print(f"Nutrition table: {nutrition_path}")

    table = NutritionTable.from_json_file(nutrition_path)
    print(f"  ✓ {len(table)} nutrition categories")

    top_frame = load_depth_frame(top_path)
    side_frame = load_depth_frame(side_path)

    estimator = FoodVolumeEstimator(
        table,
        voxel_size_mm=voxel_size_mm,
        apply_rotation=apply_rotation,
        verbose=True
    )
    volume_result = estimator.estimate(top_frame, side_frame, classification=classification)

    if cloud_dir:
        os.makedirs(cloud_dir, exist_ok=True)
        for name, points in (
            ('top', volume_result.point_cloud_top),
            ('side', volume_result.point_cloud_side),
            ('combined', volume_result.point_cloud_combined),
        ):
            ply_path = os.path.join(cloud_dir, f"point_cloud_{name}.ply")
            save_point_cloud(ply_path, points)
            print(f"  ✓ point cloud saved: {ply_path}")

    if visualize:
        visualize_point_clouds(volume_result)

    result = volume_result_to_dict(volume_result)
    result.update({
        'timestamp': datetime.now().isoformat(),
        'top_frame': top_path,
        'side_frame': side_path,
        'nutrition_table': str(nutrition_path),
        'classification': classification,
        'voxel_size_mm': voxel_size_mm,
        'apply_rotation': apply_rotation
    })
    return result


def main():
    parser = argparse.ArgumentParser(
        description="Food volume and nutrition estimation from top + side depth captures"
    )

    parser.add_argument(
        '--top',
        required=True,
        help='Top-view frame archive (.npz)'
    )
    parser.add_argument(
        '--side',
        required=True,
        help='Side-view frame archive (.npz)'
    )
    parser.add_argument(
        '--nutrition',
        default=str(DEFAULT_NUTRITION_TABLE),
        help='Nutrition table JSON (default: data/categories.json)'
    )
    parser.add_argument(
        '--classification',
        default=None,
        help='Whole-image food label from an external classifier'
    )
    parser.add_argument(
        '--voxel-size',
        type=float,
        default=VOXEL_SIZE_MM,
        help=f'Voxel edge in mm (default: {VOXEL_SIZE_MM})'
    )
    parser.add_argument(
        '--apply-rotation',
        action='store_true',
        help='Apply the camera rotation when fusing views (default: translation only)'
    )
    parser.add_argument(
        '--save-clouds',
        default=None,
        help='Directory to write top/side/combined point clouds (.ply)'
    )
    parser.add_argument(
        '--visualize',
        action='store_true',
        help='Show the point clouds'
    )
    parser.add_argument(
        '--output',
        default='results/volume_estimation.json',
        help='Output JSON path (default: results/volume_estimation.json)'
    )

    args = parser.parse_args()

    try:
        result = estimate_food_volume_pipeline(
            top_path=args.top,
            side_path=args.side,
            nutrition_path=args.nutrition,
            classification=args.classification,
            voxel_size_mm=args.voxel_size,
            apply_rotation=args.apply_rotation,
            cloud_dir=args.save_clouds,
            visualize=args.visualize
        )

        output_dir = os.path.dirname(args.output)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        with open(args.output, 'w') as f:
            json.dump(result, f, indent=2)

        print(f"\n✓ Result saved: {args.output}")

    except Exception as e:
        print(f"\nError: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
