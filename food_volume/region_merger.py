#!/usr/bin/env python3
"""
Region Merger Module

Works on a single 2D label mask:
- per-class bounding boxes
- clustering of spatially close classes (fixed mergeable set, or any class
  within a pixel threshold) with transitive closure
- dish-type grouping against a table of dish archetypes
- cropped sub-images per cluster for an external classifier
- mask rewriting that collapses a cluster onto one representative class id

Rects use exclusive right/bottom edges. Mask rewriting only reassigns ids
that already exist in the mask.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components

from .labels import EXCLUDED_CLASSES, UNKNOWN_LABEL

MERGEABLE_CLASSES = frozenset({"beverages", "soups_stews", "dairy", "fats_oils_sauces"})
MERGE_DISTANCE_THRESHOLD = 10
TIGHT_MERGE_DISTANCE_THRESHOLD = 3

INDIVIDUAL_DISH_TYPE = "individual"

# Dish archetype -> classes it is made of. Order is matching priority.
DISH_TYPE_GROUPS: Dict[str, FrozenSet[str]] = {
    # leafy, crunchy
    "salad": frozenset({
        "leafy_greens", "herbs_spices", "other_vegetables", "stem_vegetables", "non-starchy_roots",
    }),
    # broth + vegetables + legumes + starch + sauces
    "soup": frozenset({
        "soups_stews", "non-starchy_roots", "other_vegetables", "beans_nuts",
        "starchy_vegetables", "other_starches", "herbs_spices", "fats_oils_sauces",
    }),
    # meat/fish + vegetables + starch
    "stew": frozenset({
        "soups_stews", "meats", "poultry", "seafood", "non-starchy_roots",
        "other_vegetables", "beans_nuts", "starchy_vegetables", "other_starches",
    }),
    "smoothie": frozenset({"fruits", "dairy", "beverages", "herbs_spices"}),
    "grain_bowl": frozenset({
        "rice_grains_cereals", "beans_nuts", "other_vegetables", "fruits", "dairy",
    }),
    "pasta": frozenset({
        "noodles_pasta", "fats_oils_sauces", "other_vegetables", "beans_nuts",
        "meats", "seafood", "dairy",
    }),
    "sandwich": frozenset({
        "baked_goods", "meats", "poultry", "other_vegetables", "dairy", "fats_oils_sauces",
    }),
    "pizza": frozenset({
        "baked_goods", "meats", "poultry", "seafood", "other_vegetables", "dairy", "fats_oils_sauces",
    }),
    "dessert": frozenset({"sweets_desserts", "baked_goods", "fruits", "dairy"}),
    "beverage": frozenset({"beverages", "dairy", "fruits", "herbs_spices"}),
    "snack": frozenset({"snacks", "other_food"}),
}

MIN_DISH_TYPE_CLASSES = 2


@dataclass(frozen=True)
class Rect:
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def distance_to(self, other: "Rect") -> float:
        """Euclidean gap between the edges of two rects (0 when they touch or overlap)."""
        dx = max(0, self.left - other.right, other.left - self.right)
        dy = max(0, self.top - other.bottom, other.top - self.bottom)
        return float(np.hypot(dx, dy))


@dataclass(frozen=True)
class ClassBoundingBox:
    class_id: int
    class_name: str
    rect: Rect
    area: int


@dataclass(frozen=True, eq=False)
class ClassificationRegion:
    class_ids: Tuple[int, ...]
    class_names: Tuple[str, ...]
    rect: Rect
    image: np.ndarray


@dataclass(frozen=True)
class DishTypeGroup:
    dish_type: str
    boxes: Tuple[ClassBoundingBox, ...]
    required_classes: FrozenSet[str]


@dataclass(frozen=True, eq=False)
class DishTypeClassificationRegion:
    dish_type: str
    class_ids: Tuple[int, ...]
    class_names: Tuple[str, ...]
    rect: Rect
    image: np.ndarray
    required_classes: FrozenSet[str]


@dataclass(frozen=True, eq=False)
class DishTypeClassificationResult:
    region: DishTypeClassificationRegion
    label: str


def find_class_bounding_boxes(
    mask: np.ndarray,
    labels: Sequence[str],
    excluded_classes: Iterable[str] = EXCLUDED_CLASSES
) -> List[ClassBoundingBox]:
    """
    Bounding rect and pixel count of every non-excluded class in the mask

    Ids outside the label list are ignored. Boxes come out in the order the
    classes are first met in a row-major scan.

    Args:
        mask: (H, W) label mask
        labels: label names
        excluded_classes: label names to skip (compared lower-case)

    Returns:
        boxes: list of ClassBoundingBox
    """
    mask = np.asarray(mask)
    if mask.ndim != 2 or mask.size == 0:
        return []

    excluded = frozenset(excluded_classes)
    class_ids, first_index, inverse, counts = np.unique(
        mask.ravel(), return_index=True, return_inverse=True, return_counts=True
    )
    inverse = inverse.ravel()

    # Per-class extents in one pass over the pixel coordinates
    ys, xs = np.divmod(np.arange(mask.size), mask.shape[1])
    num_classes = len(class_ids)
    min_x = np.full(num_classes, mask.shape[1], dtype=np.int64)
    min_y = np.full(num_classes, mask.shape[0], dtype=np.int64)
    max_x = np.full(num_classes, -1, dtype=np.int64)
    max_y = np.full(num_classes, -1, dtype=np.int64)
    np.minimum.at(min_x, inverse, xs)
    np.minimum.at(min_y, inverse, ys)
    np.maximum.at(max_x, inverse, xs)
    np.maximum.at(max_y, inverse, ys)

    boxes = []
    for i in np.argsort(first_index):
        class_id = int(class_ids[i])
        if class_id < 0 or class_id >= len(labels):
            continue
        if labels[class_id].lower() in excluded:
            continue

        rect = Rect(int(min_x[i]), int(min_y[i]), int(max_x[i]) + 1, int(max_y[i]) + 1)
        boxes.append(ClassBoundingBox(class_id, labels[class_id], rect, int(counts[i])))

    return boxes


def _cluster_boxes(boxes: Sequence[ClassBoundingBox], distance_threshold: float) -> List[List[ClassBoundingBox]]:
    """
    Connected components of the "rects within distance_threshold" graph

    Clusters are ordered by their earliest member, members keep input order,
    so the result does not depend on how pairs are scanned.
    """
    if not boxes:
        return []

    rects = np.array([[b.rect.left, b.rect.top, b.rect.right, b.rect.bottom] for b in boxes], dtype=np.int64)
    left, top, right, bottom = rects.T

    dx = np.maximum(0, np.maximum(left[:, None] - right[None, :], left[None, :] - right[:, None]))
    dy = np.maximum(0, np.maximum(top[:, None] - bottom[None, :], top[None, :] - bottom[:, None]))
    adjacency = np.hypot(dx, dy) <= distance_threshold

    _, component = connected_components(csr_matrix(adjacency), directed=False)

    clusters: Dict[int, List[ClassBoundingBox]] = {}
    for box, c in zip(boxes, component):
        clusters.setdefault(int(c), []).append(box)
    return list(clusters.values())


def merge_close_classes(
    boxes: Sequence[ClassBoundingBox],
    distance_threshold: float = MERGE_DISTANCE_THRESHOLD
) -> List[List[ClassBoundingBox]]:
    """
    Cluster close classes of the mergeable set

    Beverages, soups/stews, dairy and sauces bleed into each other on the
    mask; any of them within distance_threshold px (transitively) form one
    cluster. Every other class stays a singleton.

    Re-running on the member boxes of the result gives the same clusters.
    Re-running on each cluster's union rect does not: a union rect can reach
    a box that none of its members is within distance_threshold of.

    Returns:
        clusters: mergeable clusters first, then the singletons in input order
    """
    mergeable = [b for b in boxes if b.class_name.lower() in MERGEABLE_CLASSES]
    others = [b for b in boxes if b.class_name.lower() not in MERGEABLE_CLASSES]

    if not mergeable:
        return [[b] for b in boxes]

    return _cluster_boxes(mergeable, distance_threshold) + [[b] for b in others]


def merge_all_close_classes(
    boxes: Sequence[ClassBoundingBox],
    distance_threshold: float = TIGHT_MERGE_DISTANCE_THRESHOLD
) -> List[List[ClassBoundingBox]]:
    """Cluster any classes whose rects are within distance_threshold px (transitively)."""
    return _cluster_boxes(boxes, distance_threshold)


def combine_rects(rects: Sequence[Rect]) -> Rect:
    """Union rect; Rect(0, 0, 0, 0) for no input."""
    if not rects:
        return Rect(0, 0, 0, 0)
    return Rect(
        min(r.left for r in rects),
        min(r.top for r in rects),
        max(r.right for r in rects),
        max(r.bottom for r in rects)
    )


def crop_image(image: np.ndarray, rect: Rect) -> np.ndarray:
    """
    Crop image to rect, clamped to the image bounds

    A rect with no overlap gives a 1x1 zero placeholder with the image's
    channel layout and dtype.
    """
    image = np.asarray(image)
    height, width = image.shape[:2]

    left = max(0, rect.left)
    top = max(0, rect.top)
    right = min(width, rect.right)
    bottom = min(height, rect.bottom)

    if right - left <= 0 or bottom - top <= 0:
        return np.zeros((1, 1) + image.shape[2:], dtype=image.dtype)

    return image[top:bottom, left:right].copy()


def create_classification_regions(
    image: np.ndarray,
    clusters: Sequence[Sequence[ClassBoundingBox]]
) -> List[ClassificationRegion]:
    """One cropped region per cluster, for the external classifier."""
    regions = []
    for cluster in clusters:
        rect = combine_rects([b.rect for b in cluster])
        regions.append(ClassificationRegion(
            class_ids=tuple(b.class_id for b in cluster),
            class_names=tuple(b.class_name for b in cluster),
            rect=rect,
            image=crop_image(image, rect)
        ))
    return regions


def group_classes_by_dish_type(boxes: Sequence[ClassBoundingBox]) -> List[DishTypeGroup]:
    """
    Match detected classes against the dish archetypes

    An archetype matches when at least two of its classes are present and not
    already taken by a higher-priority archetype. Leftover classes become
    "individual" singleton groups.
    """
    groups = []
    used_ids = set()

    for dish_type, required in DISH_TYPE_GROUPS.items():
        matching = tuple(
            b for b in boxes
            if b.class_id not in used_ids and b.class_name.lower() in required
        )
        if len(matching) >= MIN_DISH_TYPE_CLASSES:
            groups.append(DishTypeGroup(dish_type, matching, required))
            used_ids.update(b.class_id for b in matching)

    for box in boxes:
        if box.class_id not in used_ids:
            groups.append(DishTypeGroup(INDIVIDUAL_DISH_TYPE, (box,), frozenset({box.class_name.lower()})))

    return groups


def create_dish_type_classification_regions(
    image: np.ndarray,
    groups: Sequence[DishTypeGroup]
) -> List[DishTypeClassificationRegion]:
    """One cropped region per dish-type group."""
    regions = []
    for group in groups:
        rect = combine_rects([b.rect for b in group.boxes])
        regions.append(DishTypeClassificationRegion(
            dish_type=group.dish_type,
            class_ids=tuple(b.class_id for b in group.boxes),
            class_names=tuple(b.class_name for b in group.boxes),
            rect=rect,
            image=crop_image(image, rect),
            required_classes=group.required_classes
        ))
    return regions


def _collapse_ids(mask: np.ndarray, class_ids: Sequence[int]) -> None:
    """Rewrite every id in class_ids to the first one, in place."""
    target = class_ids[0]
    others = [c for c in class_ids[1:] if c != target]
    if others:
        mask[np.isin(mask, others)] = target


def merge_classes_on_mask(
    mask: np.ndarray,
    clusters: Sequence[Sequence[ClassBoundingBox]]
) -> np.ndarray:
    """
    Collapse each multi-member cluster onto its first class id

    Returns:
        new_mask: same shape and dtype; the input is not modified
    """
    new_mask = np.array(mask, copy=True)
    if new_mask.size == 0:
        return new_mask

    for cluster in clusters:
        if len(cluster) > 1:
            _collapse_ids(new_mask, [b.class_id for b in cluster])

    return new_mask


def merge_classes_on_mask_by_dish_type(
    mask: np.ndarray,
    results: Sequence[DishTypeClassificationResult]
) -> np.ndarray:
    """
    Collapse dish-type regions the classifier recognised

    Regions labelled "unknown" or with a single class are left as they are.
    """
    new_mask = np.array(mask, copy=True)
    if new_mask.size == 0:
        return new_mask

    for result in results:
        if result.label != UNKNOWN_LABEL and len(result.region.class_ids) > 1:
            _collapse_ids(new_mask, list(result.region.class_ids))

    return new_mask
