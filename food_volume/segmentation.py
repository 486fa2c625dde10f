#!/usr/bin/env python3
"""
Segmentation Consolidation Module

Decides how many distinct food regions a segmentation mask holds and
consolidates their class ids before the volume engine consumes the mask.

The external classifier is any callable image -> label; the label
"unknown" means no confident prediction. Classifier failures are reported
and the region keeps its segmentation labels.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from .labels import UNKNOWN_LABEL, find_class_id
from .mask_refinement import refine_multiclass_mask
from .region_merger import (
    TIGHT_MERGE_DISTANCE_THRESHOLD,
    DishTypeClassificationResult,
    create_classification_regions,
    create_dish_type_classification_regions,
    find_class_bounding_boxes,
    group_classes_by_dish_type,
    merge_all_close_classes,
    merge_classes_on_mask,
    merge_classes_on_mask_by_dish_type,
    merge_close_classes,
)

HIGH_CONFIDENCE_THRESHOLD = 0.9
MIN_REGION_AREA_FRACTION = 0.05

Classifier = Callable[[np.ndarray], str]


@dataclass(frozen=True, eq=False)
class ConsolidationResult:
    mask: np.ndarray
    labels: List[str]
    classifications: List[DishTypeClassificationResult]


class SegmentationConsolidator:
    """
    Region classification and class-id consolidation on a label mask
    """

    def __init__(
        self,
        classify: Optional[Classifier] = None,
        refine_mask: bool = False,
        min_region_area_fraction: float = MIN_REGION_AREA_FRACTION,
        verbose: bool = False
    ):
        """
        Args:
            classify: external classifier (image -> label); None disables
                region classification
            refine_mask: run morphological mask refinement first
            min_region_area_fraction: regions smaller than this share of the
                image are not sent to the classifier
            verbose: print progress
        """
        self.classify = classify
        self.refine_mask = refine_mask
        self.min_region_area_fraction = min_region_area_fraction
        self.verbose = verbose

    def _classify_region(self, image: np.ndarray) -> str:
        if self.classify is None:
            return UNKNOWN_LABEL
        try:
            return self.classify(image)
        except Exception as e:
            print(f"  ⚠️ region classification failed: {e}")
            return UNKNOWN_LABEL

    def _prepare_mask(self, mask: np.ndarray, labels: Sequence[str]) -> np.ndarray:
        mask = np.asarray(mask)
        if not self.refine_mask:
            return mask
        background_id = find_class_id(list(labels), "background")
        return refine_multiclass_mask(
            mask,
            num_classes=len(labels),
            background_class_id=background_id if background_id is not None else 0
        )

    def consolidate_by_dish_type(
        self,
        image: np.ndarray,
        mask: np.ndarray,
        labels: Sequence[str]
    ) -> ConsolidationResult:
        """
        Classify dish-type regions and merge the recognised ones on the mask

        Args:
            image: (H, W, 3) RGB image the mask was computed on
            mask: (H, W) label mask
            labels: label names

        Returns:
            result: consolidated mask, relabelled label list and the accepted
                classifications
        """
        mask = self._prepare_mask(mask, labels)
        updated_labels = list(labels)

        boxes = find_class_bounding_boxes(mask, labels)
        groups = group_classes_by_dish_type(boxes)
        regions = create_dish_type_classification_regions(image, groups)

        image_area = int(np.asarray(image).shape[0]) * int(np.asarray(image).shape[1])
        min_region_area = image_area * self.min_region_area_fraction

        if self.verbose:
            print(f"\nDish-type consolidation...")
            print(f"  classes: {len(boxes)}, groups: {len(groups)}")

        classifications = []
        for region in regions:
            if region.rect.area < min_region_area:
                continue

            label = self._classify_region(region.image)
            if label == UNKNOWN_LABEL:
                continue

            for class_id in region.class_ids:
                updated_labels[class_id] = label
            classifications.append(DishTypeClassificationResult(region, label))

            if self.verbose:
                print(f"  {region.dish_type} {list(region.class_names)} -> {label}")

        if classifications:
            mask = merge_classes_on_mask_by_dish_type(mask, classifications)
        else:
            mask = np.array(mask, copy=True)

        if self.verbose:
            print(f"  ✓ {len(classifications)} region(s) classified")

        return ConsolidationResult(mask, updated_labels, classifications)

    def consolidate_close_classes(
        self,
        image: np.ndarray,
        mask: np.ndarray,
        labels: Sequence[str]
    ) -> ConsolidationResult:
        """
        Classify clusters of close mergeable classes and merge the recognised ones

        Only clusters with more than one class are sent to the classifier.
        """
        mask = self._prepare_mask(mask, labels)
        updated_labels = list(labels)

        clusters = merge_close_classes(find_class_bounding_boxes(mask, labels))
        regions = create_classification_regions(image, clusters)

        accepted = []
        for cluster, region in zip(clusters, regions):
            if len(cluster) < 2:
                continue

            label = self._classify_region(region.image)
            if label == UNKNOWN_LABEL:
                continue

            for class_id in region.class_ids:
                updated_labels[class_id] = label
            accepted.append(cluster)

            if self.verbose:
                print(f"  cluster {list(region.class_names)} -> {label}")

        return ConsolidationResult(merge_classes_on_mask(mask, accepted), updated_labels, [])

    def tight_merge(
        self,
        mask: np.ndarray,
        labels: Sequence[str],
        confidence: float
    ) -> np.ndarray:
        """
        Merge every class pair within 3 px after a high-confidence whole-image classification

        Below HIGH_CONFIDENCE_THRESHOLD the mask is returned unchanged (as a copy).
        """
        if confidence < HIGH_CONFIDENCE_THRESHOLD:
            return np.array(mask, copy=True)

        clusters = merge_all_close_classes(
            find_class_bounding_boxes(mask, labels),
            TIGHT_MERGE_DISTANCE_THRESHOLD
        )

        if self.verbose:
            merged = sum(1 for c in clusters if len(c) > 1)
            print(f"\nTight merge (confidence {confidence:.2f}): {merged} cluster(s) merged")

        return merge_classes_on_mask(mask, clusters)
