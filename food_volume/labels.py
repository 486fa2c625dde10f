#!/usr/bin/env python3
"""
Segmentation label vocabulary shared by the volume engine and the region merger.
"""

from typing import Iterable, List, Optional

# Labels that never count as food (compared lower-case)
EXCLUDED_CLASSES = frozenset({"background", "food_containers", "dining_tools"})

CONTAINER_CLASS = "food_containers"

# Classifier sentinel for "no confident prediction"
UNKNOWN_LABEL = "unknown"

# Attribution fallback when no food label exists at all
UNKNOWN_FOOD_LABEL = "unknown_food"


def is_food_label(label: str, excluded_classes: Iterable[str] = EXCLUDED_CLASSES) -> bool:
    """Return True when the label is not one of the excluded non-food classes."""
    return label.lower() not in excluded_classes


def food_class_ids(labels: List[str], excluded_classes: Iterable[str] = EXCLUDED_CLASSES) -> List[int]:
    """Class ids (indices into labels) of every food label."""
    excluded = frozenset(excluded_classes)
    return [i for i, label in enumerate(labels) if is_food_label(label, excluded)]


def find_class_id(labels: List[str], name: str) -> Optional[int]:
    """Index of the first label equal to name (case-insensitive), or None."""
    name = name.lower()
    for i, label in enumerate(labels):
        if label.lower() == name:
            return i
    return None
