"""
Food Volume & Nutrition Estimation Package

Modules:
    pointcloud: depth + mask + pose -> food point cloud, two-view fusion
    dish_geometry: deep/flat dish classification and base surface height
    volume_calculation: voxel-occupancy volume and class attribution
    nutrition: nutrition table and volume/mask-area nutrition calculation
    region_merger: per-class bounding boxes, clustering and mask merging
    mask_refinement: OpenCV morphological mask clean-up
    segmentation: classifier-driven consolidation of segmentation masks
    pipeline: end-to-end two-view estimator
    capture_io: frame/image/point-cloud I/O
"""

__version__ = "0.1.0"
