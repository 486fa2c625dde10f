#!/usr/bin/env python3
"""
Nutrition Module

Converts food volume to mass (density) and mass to calories and macros
(per-100 g nutrition table).

Two modes:
- volume mode: per-class volumes from the voxel engine
- mask-area mode: one known total volume split across classes by pixel area

Reference densities (g/ml):
- cooked rice: ~0.9
- water: 1.0
- leafy salad: 0.3-0.5
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .labels import EXCLUDED_CLASSES

# Fallbacks for classes missing from the table, applied per gram
DEFAULT_DENSITY = 0.8
DEFAULT_CALORIES_PER_G = 2.0
DEFAULT_PROTEIN_PER_G = 0.1
DEFAULT_FAT_PER_G = 0.05
DEFAULT_CARBS_PER_G = 0.3

_REQUIRED_FIELDS = ('category', 'density', 'calories', 'protein', 'fat', 'carbs')


@dataclass(frozen=True)
class NutritionCategory:
    """One nutrition table row; macros per 100 g, density in g/ml."""
    category: str
    density: float
    calories: float
    protein: float
    fat: float
    carbs: float


@dataclass(frozen=True)
class NutritionResult:
    weight: float
    calories: float
    proteins: float
    fats: float
    carbohydrates: float


ZERO_NUTRITION = NutritionResult(0.0, 0.0, 0.0, 0.0, 0.0)


class NutritionTable:
    """
    Nutrition categories, loaded once and shared read-only

    Lookup by category name is case-insensitive; when a name appears twice
    the first record wins.
    """

    def __init__(self, categories: Iterable[NutritionCategory]):
        self._categories = tuple(categories)
        self._by_name = {}
        for category in self._categories:
            self._by_name.setdefault(category.category.lower(), category)

    @classmethod
    def from_records(cls, records: Sequence[Mapping]) -> "NutritionTable":
        """
        Build from parsed JSON records

        Args:
            records: [{category, density, calories, protein, fat, carbs}, ...]

        Raises:
            ValueError: a record is not an object or misses a field
        """
        if not isinstance(records, (list, tuple)):
            raise ValueError(f"nutrition table must be a JSON array, got {type(records).__name__}")

        categories = []
        for i, record in enumerate(records):
            if not isinstance(record, Mapping):
                raise ValueError(f"nutrition record {i} is not an object")
            missing = [name for name in _REQUIRED_FIELDS if name not in record]
            if missing:
                raise ValueError(f"nutrition record {i} is missing {', '.join(missing)}")
            try:
                categories.append(NutritionCategory(
                    category=str(record['category']),
                    density=float(record['density']),
                    calories=float(record['calories']),
                    protein=float(record['protein']),
                    fat=float(record['fat']),
                    carbs=float(record['carbs'])
                ))
            except (TypeError, ValueError) as e:
                raise ValueError(f"nutrition record {i} has a non-numeric value: {e}") from e

        return cls(categories)

    @classmethod
    def from_json_file(cls, path) -> "NutritionTable":
        """
        Load from a JSON array file

        Raises:
            FileNotFoundError: the file does not exist
            ValueError: malformed JSON or records
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"nutrition table not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            try:
                records = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"nutrition table is not valid JSON: {path}: {e}") from e

        return cls.from_records(records)

    @property
    def categories(self):
        return self._categories

    def lookup(self, name: str) -> Optional[NutritionCategory]:
        return self._by_name.get(name.lower())

    def resolve_labels(self, labels: Sequence[str]) -> List[Optional[NutritionCategory]]:
        """Per-class-id categories for a label list (None where the table has no entry)."""
        return [self.lookup(label) for label in labels]

    def __contains__(self, name) -> bool:
        return isinstance(name, str) and name.lower() in self._by_name

    def __len__(self) -> int:
        return len(self._categories)


def nutrition_for_mass(category: NutritionCategory, mass_g: float) -> NutritionResult:
    """Scale a per-100 g category to mass_g grams."""
    factor = mass_g / 100.0
    return NutritionResult(
        weight=mass_g,
        calories=category.calories * factor,
        proteins=category.protein * factor,
        fats=category.fat * factor,
        carbohydrates=category.carbs * factor
    )


def default_nutrition_for_volume(volume_ml: float) -> NutritionResult:
    """Fallback estimate for a class missing from the table (per-gram constants)."""
    mass_g = volume_ml * DEFAULT_DENSITY
    return NutritionResult(
        weight=mass_g,
        calories=mass_g * DEFAULT_CALORIES_PER_G,
        proteins=mass_g * DEFAULT_PROTEIN_PER_G,
        fats=mass_g * DEFAULT_FAT_PER_G,
        carbohydrates=mass_g * DEFAULT_CARBS_PER_G
    )


def add_nutrition(a: NutritionResult, b: NutritionResult) -> NutritionResult:
    return NutritionResult(
        weight=a.weight + b.weight,
        calories=a.calories + b.calories,
        proteins=a.proteins + b.proteins,
        fats=a.fats + b.fats,
        carbohydrates=a.carbohydrates + b.carbohydrates
    )


def total_nutrition(results: Mapping[str, NutritionResult]) -> NutritionResult:
    """Sum of per-class results."""
    total = ZERO_NUTRITION
    for result in results.values():
        total = add_nutrition(total, result)
    return total


class NutritionCalculator:
    """
    Volume / mask-area to nutrition

    Pure functions over the nutrition table passed in at construction.
    """

    def __init__(self, table: NutritionTable, verbose: bool = False):
        self.table = table
        self.verbose = verbose

    def calculate_from_volumes(self, component_volumes: Mapping[str, float]) -> Dict[str, NutritionResult]:
        """
        Volume mode

        Args:
            component_volumes: {class_name: volume_ml}

        Returns:
            results: {class_name: NutritionResult}
        """
        if self.verbose:
            print(f"\nNutrition (volume mode)...")

        results = {}
        for class_name, volume_ml in component_volumes.items():
            category = self.table.lookup(class_name)

            if category is not None:
                mass_g = volume_ml * category.density
                results[class_name] = nutrition_for_mass(category, mass_g)
            else:
                results[class_name] = default_nutrition_for_volume(volume_ml)
                if self.verbose:
                    print(f"  ⚠️ no nutrition data for {class_name}, using defaults")

            if self.verbose:
                r = results[class_name]
                print(f"  {class_name}: {volume_ml:.1f} ml -> {r.weight:.1f} g, {r.calories:.1f} kcal")

        return results

    def calculate_from_mask(
        self,
        mask: np.ndarray,
        labels: Sequence[str],
        total_volume_ml: float,
        excluded_classes: Iterable[str] = EXCLUDED_CLASSES
    ) -> Dict[str, NutritionResult]:
        """
        Mask-area mode

        Splits total_volume_ml across the food classes of the mask by pixel
        share alpha = class pixels / all food pixels, then
        mass = total_volume_ml * alpha * density. Classes without a table
        entry contribute nothing and are left out of the result.

        Args:
            mask: (H, W) label mask
            labels: label names
            total_volume_ml: approximate total food volume
            excluded_classes: non-food labels

        Returns:
            results: {class_name: NutritionResult}
        """
        mask = np.asarray(mask)
        excluded = frozenset(excluded_classes)
        categories = self.table.resolve_labels(labels)

        class_ids, pixel_counts = np.unique(mask, return_counts=True)
        valid = {
            int(class_id): int(count)
            for class_id, count in zip(class_ids, pixel_counts)
            if 0 <= class_id < len(labels) and labels[class_id].lower() not in excluded
        }

        total_pixels = sum(valid.values())
        if total_pixels == 0:
            return {}

        if self.verbose:
            print(f"\nNutrition (mask-area mode)...")
            print(f"  total volume: {total_volume_ml:.1f} ml over {total_pixels:,} food pixels")

        results = {}
        for class_id, pixels in valid.items():
            category = categories[class_id]
            if category is None:
                continue

            alpha = pixels / total_pixels
            mass_g = total_volume_ml * alpha * category.density
            class_name = labels[class_id]

            # Two ids may share a name after relabelling
            result = nutrition_for_mass(category, mass_g)
            if class_name in results:
                result = add_nutrition(results[class_name], result)
            results[class_name] = result

            if self.verbose:
                print(f"  {class_name}: alpha={alpha:.3f}, {mass_g:.1f} g")

        return results
